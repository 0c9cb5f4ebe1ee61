"""
conference.services.stats_client
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

媒体服务统计接口客户端 —— 查询本端流的实时观众数。
"""
from __future__ import annotations

from typing import Protocol
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from conference.core.config import settings
from conference.core.exceptions import StatsRequestError
from conference.core.logging import get_logger
from conference.schemas.stats import BroadcastStatistics

logger = get_logger(__name__)


class ListenerCountFetcher(Protocol):
    """``StatsPoller`` 依赖的最小接口。"""

    async def get_listener_count(self, stream_id: str) -> int: ...


class StatsClient:
    """基于 ``httpx.AsyncClient`` 的统计接口客户端。

    请求 ``GET {base_url}/rest/v2/broadcasts/{stream_id}/broadcast-statistics``，
    幂等，可在每个轮询周期安全重试。

    Attributes:
        base_url: 媒体服务应用的 HTTP 基础地址。
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = (base_url or settings.stats_base_url).rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout or settings.STATS_REQUEST_TIMEOUT,
        )

    def stats_url(self, stream_id: str) -> str:
        """拼出指定流的统计接口地址。"""
        return f"{self.base_url}/rest/v2/broadcasts/{quote(stream_id, safe='')}/broadcast-statistics"

    async def get_statistics(self, stream_id: str) -> BroadcastStatistics:
        """获取指定流的完整观众统计。

        Raises:
            StatsRequestError: 网络错误、非 2xx 状态码或响应体格式错误。
        """
        try:
            response = await self._client.get(self.stats_url(stream_id))
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StatsRequestError(stream_id, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise StatsRequestError(stream_id, f"{type(e).__name__}: {e}") from e

        try:
            return BroadcastStatistics.model_validate_json(response.content)
        except ValidationError as e:
            raise StatsRequestError(stream_id, "响应体格式错误") from e

    async def get_listener_count(self, stream_id: str) -> int:
        """获取指定流的观众数（WebRTC 观众）。"""
        stats = await self.get_statistics(stream_id)
        return stats.listener_count

    async def aclose(self) -> None:
        """关闭内部创建的 HTTP 客户端；外部传入的客户端由调用方负责关闭。"""
        if self._owns_client:
            await self._client.aclose()
