"""
conference.schemas.stats
~~~~~~~~~~~~~~~~~~~~~~~~

媒体服务 ``broadcast-statistics`` 接口的响应模型。
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class BroadcastStatistics(BaseModel):
    """单路流的观众统计。

    .. code-block:: json

        {"totalRTMPWatchersCount": 0, "totalHLSWatchersCount": 2, "totalWebRTCWatchersCount": 5}
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    total_webrtc_watchers: int = Field(..., alias="totalWebRTCWatchersCount", ge=0)
    total_hls_watchers: int = Field(default=0, alias="totalHLSWatchersCount")
    total_rtmp_watchers: int = Field(default=0, alias="totalRTMPWatchersCount")

    @property
    def listener_count(self) -> int:
        """上报给使用方的观众数（WebRTC 观众）。"""
        return self.total_webrtc_watchers
