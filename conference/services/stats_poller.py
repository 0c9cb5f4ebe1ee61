"""
conference.services.stats_poller
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

观众数轮询器 —— Idle / Active 两态。

本端 stream id 一旦非空即进入 Active，每个周期请求一次观众数：
成功则上报，失败只记日志，调度继续（自愈）。
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from conference.core.exceptions import StatsRequestError
from conference.core.logging import get_logger
from conference.services.periodic import PeriodicTask, SleepFunc
from conference.services.stats_client import ListenerCountFetcher

logger = get_logger(__name__)

# (请求时的 stream_id, 观众数, 代际)
CountCallback = Callable[[str, int, int], Awaitable[None]]


class StatsPoller:
    """周期性查询观众数。

    请求发出时对 stream id 做快照，结果连同快照与代际一起交给 ``on_count``，
    由持有者在自己的串行区内决定是否投递。

    Attributes:
        interval: 轮询间隔（秒）。
    """

    def __init__(
        self,
        fetcher: ListenerCountFetcher,
        stream_id_provider: Callable[[], str],
        on_count: CountCallback,
        interval: float,
        *,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.interval = interval
        self._fetcher = fetcher
        self._stream_id_provider = stream_id_provider
        self._on_count = on_count
        self._task = PeriodicTask("stats-poll", interval, self._tick, sleep=sleep)

    @property
    def is_active(self) -> bool:
        return self._task.is_running

    def is_current(self, generation: int) -> bool:
        return self._task.is_current(generation)

    def activate(self) -> None:
        """Idle → Active。已处于 Active 时不重置调度。"""
        if self.is_active:
            return
        self._task.start()
        logger.info("观众数轮询已启动 | interval=%.1fs", self.interval)

    def stop(self) -> None:
        if self.is_active:
            logger.info("观众数轮询已停止")
        self._task.cancel()

    async def _tick(self, generation: int) -> None:
        stream_id = self._stream_id_provider()
        if not stream_id:
            return
        try:
            count = await self._fetcher.get_listener_count(stream_id)
        except StatsRequestError as e:
            logger.warning("%s，等待下个周期重试", e)
            return
        await self._on_count(stream_id, count, generation)
