"""
conference.schemas
~~~~~~~~~~~~~~~~~~
信令协议、事件与统计接口的 Pydantic 模型。
"""
from conference.schemas.events import (
    ConferenceEvent,
    ConnectionState,
    ConnectionStatusChanged,
    Event,
    ListenerCountUpdated,
    StreamIdToPublish,
    StreamsJoined,
    StreamsLeft,
)
from conference.schemas.protocol import (
    GetStreamInfoCommand,
    JoinRoomCommand,
    LeaveRoomCommand,
    NotificationMessage,
    ParticipantRole,
    RoomInformationMessage,
    UnknownMessage,
    decode,
    encode,
)
from conference.schemas.stats import BroadcastStatistics
