"""
conference.services.delegate
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

事件出口 —— 把 ``RoomSession`` 的类型化事件交给使用方。

- ``DelegateSink``：适配为经典的 delegate 回调（同步或异步方法均可）。
- ``QueueSink``：写入 ``asyncio.Queue``，供偏好“通道式”消费的一方使用。
"""
from __future__ import annotations

import asyncio
import inspect
from typing import Any, Protocol

from conference.core.logging import get_logger
from conference.schemas.events import (
    ConnectionState,
    ConnectionStatusChanged,
    Event,
    ListenerCountUpdated,
    StreamIdToPublish,
    StreamsJoined,
    StreamsLeft,
)

logger = get_logger(__name__)


class EventSink(Protocol):
    """单一有序事件出口。"""

    async def emit(self, event: Event) -> None: ...


class ConferenceClientDelegate(Protocol):
    """会议客户端回调接口。

    ``connection_status_changed`` 为可选方法，未实现时连接状态事件被忽略。
    """

    def stream_id_to_publish(self, stream_id: str) -> Any: ...

    def new_streams_joined(self, stream_ids: list[str]) -> Any: ...

    def streams_left(self, stream_ids: list[str]) -> Any: ...

    def current_listener_count(self, count: int) -> Any: ...


class DelegateSink:
    """把事件分派到 delegate 的对应方法上。"""

    def __init__(self, delegate: ConferenceClientDelegate) -> None:
        self.delegate = delegate

    async def emit(self, event: Event) -> None:
        if isinstance(event, StreamIdToPublish):
            result = self.delegate.stream_id_to_publish(event.stream_id)
        elif isinstance(event, StreamsJoined):
            result = self.delegate.new_streams_joined(list(event.stream_ids))
        elif isinstance(event, StreamsLeft):
            result = self.delegate.streams_left(list(event.stream_ids))
        elif isinstance(event, ListenerCountUpdated):
            result = self.delegate.current_listener_count(event.count)
        elif isinstance(event, ConnectionStatusChanged):
            handler = getattr(self.delegate, "connection_status_changed", None)
            if handler is None:
                return
            result = handler(event.state)
        else:
            logger.debug("delegate 不处理的事件: %r", event)
            return

        if inspect.isawaitable(result):
            await result


class QueueSink:
    """把事件放入队列。默认无界，不会反压会话。"""

    def __init__(self, queue: asyncio.Queue[Event] | None = None) -> None:
        self.queue: asyncio.Queue[Event] = queue if queue is not None else asyncio.Queue()

    async def emit(self, event: Event) -> None:
        await self.queue.put(event)


class LoggingDelegate:
    """只记录日志的 delegate，命令行入口使用。"""

    def __init__(self) -> None:
        self._logger = get_logger("conference.events")

    def stream_id_to_publish(self, stream_id: str) -> None:
        self._logger.info("可推流 stream id: %s", stream_id)

    def new_streams_joined(self, stream_ids: list[str]) -> None:
        self._logger.info("新流加入: %s", ", ".join(stream_ids) or "(无)")

    def streams_left(self, stream_ids: list[str]) -> None:
        self._logger.info("流离开: %s", ", ".join(stream_ids))

    def current_listener_count(self, count: int) -> None:
        self._logger.info("当前观众数: %d", count)

    def connection_status_changed(self, state: ConnectionState) -> None:
        self._logger.info("连接状态: %s", state.value)
