"""
conference.core.exceptions
~~~~~~~~~~~~~~~~~~~~~~~~~~

信令客户端的异常体系。

只有调用方的明显误用（如空的房间 ID）才会抛给调用方；
网络、解码、统计请求等运行期失败一律在内部记录日志后吞掉。
"""
from __future__ import annotations


class ConferenceError(Exception):
    """信令客户端所有异常的基类。"""


class InvalidRoomError(ConferenceError, ValueError):
    """``join_room`` 收到空的房间 ID。"""


class StatsRequestError(ConferenceError):
    """观众数统计请求失败（网络、HTTP 状态码或响应体格式）。"""

    def __init__(self, stream_id: str, reason: str) -> None:
        super().__init__(f"统计请求失败 | stream_id={stream_id} | {reason}")
        self.stream_id = stream_id
        self.reason = reason
