"""
conference.schemas.protocol
~~~~~~~~~~~~~~~~~~~~~~~~~~~

信令协议编解码 —— 客户端与服务端之间的 JSON 命令信封。

每条消息都是一个扁平 JSON 对象，至少包含 ``command`` 字段：

- 出站：``joinRoom`` / ``leaveRoom`` / ``getStreamInfo``
- 入站：``notification``（按 ``definition`` 细分）/ ``roomInformation``

解码永不抛异常：格式错误、缺少 ``command`` 或字段类型不符的消息
统一返回 ``None``，由调用方丢弃。未知命令解码为 ``UnknownMessage``，
保证旧客户端能容忍新服务端增加的命令。
"""
from __future__ import annotations

import json
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError

from conference.core.logging import get_logger

logger = get_logger(__name__)

# ── 命令与字段常量 ────────────────────────────────────────────────────

COMMAND: str = "command"
JOIN_ROOM_COMMAND: str = "joinRoom"
LEAVE_ROOM_COMMAND: str = "leaveRoom"
GET_STREAM_INFO_COMMAND: str = "getStreamInfo"
NOTIFICATION_COMMAND: str = "notification"
ROOM_INFORMATION_COMMAND: str = "roomInformation"

JOINED_ROOM_DEFINITION: str = "joinedTheRoom"


class ParticipantRole(str, Enum):
    """参与者角色，仅供上层决定是否推流，不影响协议消息。"""

    PRESENTER = "presenter"
    LISTENER = "listener"


class _Envelope(BaseModel):
    """所有信封模型的公共配置：不可变、允许按字段名或线上别名构造。"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    command: str


# ── 出站命令 ──────────────────────────────────────────────────────────

class JoinRoomCommand(_Envelope):
    """加入房间。``streamId`` 为空表示由服务端分配。"""

    command: Literal["joinRoom"] = JOIN_ROOM_COMMAND
    room_id: StrictStr = Field(..., alias="roomId", min_length=1)
    stream_id: StrictStr = Field(default="", alias="streamId")


class LeaveRoomCommand(_Envelope):
    """离开房间。"""

    command: Literal["leaveRoom"] = LEAVE_ROOM_COMMAND
    room_id: StrictStr = Field(..., alias="roomId")
    stream_id: StrictStr = Field(default="", alias="streamId")


class GetStreamInfoCommand(_Envelope):
    """房间成员轮询请求，服务端以 ``roomInformation`` 应答。"""

    command: Literal["getStreamInfo"] = GET_STREAM_INFO_COMMAND
    room_id: StrictStr = Field(default="", alias="roomId")
    stream_id: StrictStr = Field(default="", alias="streamId")


OutboundCommand = Union[JoinRoomCommand, LeaveRoomCommand, GetStreamInfoCommand]


def encode(command: OutboundCommand) -> str:
    """将出站命令编码为线上 JSON 文本（使用 camelCase 字段名）。"""
    return command.model_dump_json(by_alias=True)


# ── 入站消息 ──────────────────────────────────────────────────────────

class NotificationMessage(_Envelope):
    """服务端通知，``definition`` 决定具体含义。"""

    command: Literal["notification"] = NOTIFICATION_COMMAND
    definition: StrictStr
    stream_id: StrictStr | None = Field(default=None, alias="streamId")
    streams: list[StrictStr] | None = None

    @property
    def is_joined_room(self) -> bool:
        """是否为“已加入房间”确认通知。"""
        return self.definition == JOINED_ROOM_DEFINITION


class RoomInformationMessage(_Envelope):
    """房间当前的完整成员快照。"""

    command: Literal["roomInformation"] = ROOM_INFORMATION_COMMAND
    streams: list[StrictStr]


class UnknownMessage(_Envelope):
    """本客户端不认识的命令，保留原始字段以便记录日志。"""

    model_config = ConfigDict(frozen=True, extra="allow")


InboundMessage = Union[NotificationMessage, RoomInformationMessage, UnknownMessage]

_INBOUND_MODELS: dict[str, type[_Envelope]] = {
    NOTIFICATION_COMMAND: NotificationMessage,
    ROOM_INFORMATION_COMMAND: RoomInformationMessage,
}


def decode(text: str | bytes) -> InboundMessage | None:
    """解码一条入站文本消息。

    Args:
        text: 从信令通道收到的原始文本。

    Returns:
        解码后的消息模型；无法解码时返回 ``None``（已记录日志）。
    """
    try:
        payload = json.loads(text)
    except (TypeError, ValueError):
        logger.warning("信令消息 JSON 解析失败，已丢弃: %.200r", text)
        return None

    if not isinstance(payload, dict):
        logger.warning("信令消息不是 JSON 对象，已丢弃: %.200r", text)
        return None

    command = payload.get(COMMAND)
    if not isinstance(command, str):
        logger.warning("信令消息缺少 command 字段，已丢弃: %.200r", text)
        return None

    model = _INBOUND_MODELS.get(command, UnknownMessage)
    try:
        return model.model_validate(payload)  # type: ignore[return-value]
    except ValidationError as e:
        logger.warning(
            "信令消息字段校验失败，已丢弃 | command=%s | errors=%d",
            command, e.error_count(),
        )
        return None
