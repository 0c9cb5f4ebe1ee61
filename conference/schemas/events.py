"""
conference.schemas.events
~~~~~~~~~~~~~~~~~~~~~~~~~

面向使用方的类型化事件。

``RoomSession`` 的所有输出都通过同一个有序事件出口投递，
事件顺序与会话内部状态变化的顺序严格一致。
"""
from __future__ import annotations

from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class ConnectionState(str, Enum):
    """会话连接状态。任意状态下丢失连接都会回到 ``DISCONNECTED``。"""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    JOINED_ROOM = "joined_room"


class ConferenceEvent(BaseModel):
    """事件基类（不可变）。"""

    model_config = ConfigDict(frozen=True)


class StreamIdToPublish(ConferenceEvent):
    """服务端确认入房后，告知本端可用于推流的 stream id。每次成功入房恰好一次。"""

    kind: Literal["stream_id_to_publish"] = "stream_id_to_publish"
    stream_id: str = Field(..., description="本端可推流的 stream id")


class StreamsJoined(ConferenceEvent):
    """有新的流加入房间。入房时携带完整初始列表，之后只携带新增部分。"""

    kind: Literal["streams_joined"] = "streams_joined"
    stream_ids: list[str] = Field(..., description="新加入的 stream id")


class StreamsLeft(ConferenceEvent):
    """有流离开房间，只携带离开的部分。"""

    kind: Literal["streams_left"] = "streams_left"
    stream_ids: list[str] = Field(..., description="离开的 stream id")


class ListenerCountUpdated(ConferenceEvent):
    """本端流的当前观众数，仅在统计请求成功时投递。"""

    kind: Literal["listener_count_updated"] = "listener_count_updated"
    count: int = Field(..., ge=0, description="WebRTC 观众数")


class ConnectionStatusChanged(ConferenceEvent):
    """会话连接状态变化。"""

    kind: Literal["connection_status_changed"] = "connection_status_changed"
    state: ConnectionState


Event = Union[
    StreamIdToPublish,
    StreamsJoined,
    StreamsLeft,
    ListenerCountUpdated,
    ConnectionStatusChanged,
]
