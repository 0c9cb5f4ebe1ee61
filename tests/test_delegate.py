"""
tests.test_delegate
~~~~~~~~~~~~~~~~~~~

事件出口（DelegateSink / QueueSink）单元测试。
"""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from conference.schemas.events import (
    ConnectionState,
    ConnectionStatusChanged,
    ListenerCountUpdated,
    StreamIdToPublish,
    StreamsJoined,
    StreamsLeft,
)
from conference.services.delegate import DelegateSink, LoggingDelegate, QueueSink


class TestDelegateSink:
    """测试事件到 delegate 方法的分派。"""

    @pytest.mark.asyncio
    async def test_dispatches_each_event_type(self) -> None:
        delegate = MagicMock()
        sink = DelegateSink(delegate)

        await sink.emit(StreamIdToPublish(stream_id="s1"))
        await sink.emit(StreamsJoined(stream_ids=["a", "b"]))
        await sink.emit(StreamsLeft(stream_ids=["a"]))
        await sink.emit(ListenerCountUpdated(count=4))
        await sink.emit(ConnectionStatusChanged(state=ConnectionState.CONNECTED))

        delegate.stream_id_to_publish.assert_called_once_with("s1")
        delegate.new_streams_joined.assert_called_once_with(["a", "b"])
        delegate.streams_left.assert_called_once_with(["a"])
        delegate.current_listener_count.assert_called_once_with(4)
        delegate.connection_status_changed.assert_called_once_with(ConnectionState.CONNECTED)

    @pytest.mark.asyncio
    async def test_async_delegate_methods_are_awaited(self) -> None:
        delegate = MagicMock()
        delegate.new_streams_joined = AsyncMock()
        sink = DelegateSink(delegate)

        await sink.emit(StreamsJoined(stream_ids=["c"]))

        delegate.new_streams_joined.assert_awaited_once_with(["c"])

    @pytest.mark.asyncio
    async def test_connection_status_optional(self) -> None:
        """delegate 未实现 connection_status_changed 时静默忽略。"""
        delegate = MagicMock(spec=[
            "stream_id_to_publish", "new_streams_joined", "streams_left", "current_listener_count",
        ])
        sink = DelegateSink(delegate)

        await sink.emit(ConnectionStatusChanged(state=ConnectionState.DISCONNECTED))

        delegate.stream_id_to_publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_logging_delegate_accepts_all_events(self) -> None:
        sink = DelegateSink(LoggingDelegate())

        await sink.emit(StreamIdToPublish(stream_id="s1"))
        await sink.emit(StreamsJoined(stream_ids=[]))
        await sink.emit(StreamsLeft(stream_ids=["x"]))
        await sink.emit(ListenerCountUpdated(count=0))
        await sink.emit(ConnectionStatusChanged(state=ConnectionState.JOINED_ROOM))


class TestQueueSink:
    @pytest.mark.asyncio
    async def test_events_queued_in_order(self) -> None:
        sink = QueueSink()

        await sink.emit(StreamsJoined(stream_ids=["c"]))
        await sink.emit(StreamsLeft(stream_ids=["a"]))

        assert sink.queue.get_nowait() == StreamsJoined(stream_ids=["c"])
        assert sink.queue.get_nowait() == StreamsLeft(stream_ids=["a"])
        assert sink.queue.empty()
