"""
conference
~~~~~~~~~~

多人实时会议房间的信令客户端。
"""
from conference.services.room_session import ConnectionState, RoomSession

__version__ = "0.1.0"
__all__ = ["ConnectionState", "RoomSession"]
