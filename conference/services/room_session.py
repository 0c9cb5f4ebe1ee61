"""
conference.services.room_session
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

会议房间会话 —— 信令协议状态机与成员对账的核心。

一个 ``RoomSession`` 合并三路异步输入：

1. 信令通道的入站消息（以及连接/断开事件）
2. 房间成员轮询定时器
3. 观众数轮询的结果

所有状态修改都在同一把 ``asyncio.Lock`` 内进行，产生的事件按顺序进入待投递队列；
释放锁之后再由唯一的投递者依次交给使用方。因此事件顺序与状态变化顺序严格一致，
而使用方在回调里再调用 ``leave_room`` / ``join_room`` 也不会与会话互相等待。
"""
from __future__ import annotations

import asyncio
import weakref
from collections import deque
from collections.abc import Awaitable, Callable
from contextlib import suppress
from types import TracebackType
from typing import Any

from conference.core.config import settings
from conference.core.exceptions import InvalidRoomError
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
from conference.schemas.protocol import (
    GetStreamInfoCommand,
    JoinRoomCommand,
    LeaveRoomCommand,
    NotificationMessage,
    OutboundCommand,
    ParticipantRole,
    RoomInformationMessage,
    decode,
    encode,
)
from conference.services.channel import MessageChannel
from conference.services.delegate import EventSink
from conference.services.periodic import PeriodicTask, SleepFunc
from conference.services.reconciler import reconcile, unique
from conference.services.stats_client import ListenerCountFetcher
from conference.services.stats_poller import StatsPoller

logger = get_logger(__name__)

__all__ = ["ConnectionState", "RoomSession"]


def _weak_method(method: Callable[..., Awaitable[None]]) -> Callable[..., Awaitable[None]]:
    """只弱引用实例的异步回调。实例被回收后调用即为空操作。"""
    ref = weakref.WeakMethod(method)

    async def call(*args: Any) -> None:
        bound = ref()
        if bound is not None:
            await bound(*args)

    return call


class _SessionChannelListener:
    """通道回调转发器，只弱引用会话，使通道不会让会话常驻内存。"""

    def __init__(self, session: RoomSession) -> None:
        self._session = weakref.ref(session)

    async def on_channel_connected(self) -> None:
        session = self._session()
        if session is not None:
            await session.on_channel_connected()

    async def on_channel_message(self, text: str) -> None:
        session = self._session()
        if session is not None:
            await session.on_channel_message(text)

    async def on_channel_disconnected(self, error: BaseException | None) -> None:
        session = self._session()
        if session is not None:
            await session.on_channel_disconnected(error)


class RoomSession:
    """一次会议参与过程对应的信令会话。

    典型用法::

        async with RoomSession(channel, DelegateSink(delegate), stats_client) as session:
            await session.join_room("room1", "")
            ...
            await session.leave_room()

    ``join_room`` / ``leave_room`` 都不等待网络完成，结果通过事件出口异步送达。
    退出 ``async with`` 或调用 ``close()`` 会取消全部定时器并关闭通道；
    未调用 ``close()`` 就丢弃会话时，回收会话也会取消定时器。

    Attributes:
        room_id: 当前（或最近一次）请求加入的房间。
        own_stream_id: 本端可推流的 stream id；入房前为首选值，确认后为服务端下发值。
        role: 参与者角色，不影响协议消息。
        state: 连接状态。
    """

    def __init__(
        self,
        channel: MessageChannel,
        sink: EventSink,
        stats_client: ListenerCountFetcher | None = None,
        *,
        role: ParticipantRole = ParticipantRole.PRESENTER,
        room_poll_interval: float | None = None,
        stats_poll_interval: float | None = None,
        stop_stats_on_leave: bool | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.room_id: str | None = None
        self.own_stream_id: str = ""
        self.role = role
        self.state: ConnectionState = ConnectionState.DISCONNECTED

        self._channel = channel
        self._sink = sink
        self._membership: list[str] = []
        self._confirmed: bool = False
        self._closed: bool = False
        self._lock = asyncio.Lock()
        self._pending_events: deque[Event] = deque()
        self._dispatching: bool = False
        self._stop_stats_on_leave = (
            settings.STOP_STATS_ON_LEAVE if stop_stats_on_leave is None else stop_stats_on_leave
        )

        # 定时器只弱引用会话
        self._room_poll = PeriodicTask(
            "room-poll",
            room_poll_interval or settings.ROOM_POLL_INTERVAL,
            _weak_method(self._on_room_poll_tick),
            sleep=sleep,
        )
        self._stats_poller: StatsPoller | None = None
        if stats_client is not None:
            session_ref = weakref.ref(self)
            self._stats_poller = StatsPoller(
                stats_client,
                stream_id_provider=lambda: getattr(session_ref(), "own_stream_id", ""),
                on_count=_weak_method(self._deliver_listener_count),
                interval=stats_poll_interval or settings.STATS_POLL_INTERVAL,
                sleep=sleep,
            )

        channel.set_listener(_SessionChannelListener(self))

    def __del__(self) -> None:
        # 未调用 close() 就被回收时，至少停掉定时器
        room_poll = getattr(self, "_room_poll", None)
        stats_poller = getattr(self, "_stats_poller", None)
        with suppress(RuntimeError):  # 事件循环已关闭
            if room_poll is not None:
                room_poll.cancel()
            if stats_poller is not None:
                stats_poller.stop()

    # ── 只读视图 ──────────────────────────────────────────────────────

    @property
    def membership(self) -> list[str]:
        """当前认为在房间内的 stream id（副本）。"""
        return list(self._membership)

    @property
    def room_poll_active(self) -> bool:
        return self._room_poll.is_running

    @property
    def stats_poll_active(self) -> bool:
        return self._stats_poller is not None and self._stats_poller.is_active

    @property
    def closed(self) -> bool:
        return self._closed

    # ── 对外操作 ──────────────────────────────────────────────────────

    async def join_room(self, room_id: str, stream_id: str = "") -> None:
        """请求加入房间。

        Args:
            room_id: 房间 ID，不能为空。
            stream_id: 首选的推流 stream id，空字符串表示由服务端分配。

        Raises:
            InvalidRoomError: ``room_id`` 为空。
        """
        if not room_id:
            raise InvalidRoomError("room_id 不能为空")

        async with self._lock:
            if self._closed:
                logger.warning("会话已关闭，忽略 join_room | room_id=%s", room_id)
                return

            self.room_id = room_id
            self.own_stream_id = stream_id
            self._confirmed = False
            logger.info("请求加入房间 | room_id=%s | stream_id=%s", room_id, stream_id or "(由服务端分配)")

            if self._channel.is_open:
                # 已连接时直接重发，重复入房由服务端裁决
                self._send(JoinRoomCommand(room_id=room_id, stream_id=stream_id))
            else:
                self._set_state(ConnectionState.CONNECTING)
                self._channel.open()

            self._sync_stats_poller()
        await self._dispatch_events()

    async def leave_room(self) -> None:
        """离开房间。未入房时除取消定时器外不做任何事。"""
        async with self._lock:
            self._room_poll.cancel()

            if self.room_id is not None and self._channel.is_open:
                self._send(LeaveRoomCommand(room_id=self.room_id, stream_id=self.own_stream_id))
                logger.info("已离开房间 | room_id=%s", self.room_id)
            else:
                logger.debug("当前未在房间中，leave_room 仅取消定时器")

            self._confirmed = False
            self._membership = []
            if self.state is ConnectionState.JOINED_ROOM:
                self._set_state(ConnectionState.CONNECTED)

            if self._stop_stats_on_leave and self._stats_poller is not None:
                self._stats_poller.stop()
        await self._dispatch_events()

    async def close(self) -> None:
        """销毁会话：取消全部定时器并关闭通道。可重复调用。"""
        async with self._lock:
            if self._closed:
                return
            self._closed = True
            self._room_poll.cancel()
            if self._stats_poller is not None:
                self._stats_poller.stop()
            self._set_state(ConnectionState.DISCONNECTED)
        await self._dispatch_events()

        await self._channel.close()
        logger.info("会话已关闭 | room_id=%s", self.room_id)

    async def __aenter__(self) -> RoomSession:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ── 通道回调 ──────────────────────────────────────────────────────

    async def on_channel_connected(self) -> None:
        """通道连接成功后立即发送入房命令，这总是第一条协议消息。"""
        async with self._lock:
            if self._closed:
                return
            self._set_state(ConnectionState.CONNECTED)
            if self.room_id is not None:
                self._send(JoinRoomCommand(room_id=self.room_id, stream_id=self.own_stream_id))
        await self._dispatch_events()

    async def on_channel_message(self, text: str) -> None:
        message = decode(text)
        if message is None:
            return

        async with self._lock:
            if self._closed:
                return
            if isinstance(message, NotificationMessage):
                self._on_notification(message)
            elif isinstance(message, RoomInformationMessage):
                self._on_room_info(message.streams)
            else:
                logger.info("忽略未知信令命令: %s", message.command)
        await self._dispatch_events()

    async def on_channel_disconnected(self, error: BaseException | None) -> None:
        async with self._lock:
            self._room_poll.cancel()
            self._confirmed = False
            if error is not None:
                logger.warning("信令通道断开 | room_id=%s | %s", self.room_id, error)
            if not self._closed:
                self._set_state(ConnectionState.DISCONNECTED)
        await self._dispatch_events()

    # ── 协议处理（调用方已持有锁）──────────────────────────────────────

    def _on_notification(self, message: NotificationMessage) -> None:
        if not message.is_joined_room:
            logger.debug("忽略通知 | definition=%s", message.definition)
            return
        if self.room_id is None:
            logger.warning("未请求入房却收到入房确认，已忽略")
            return
        if self._confirmed:
            logger.warning("重复的入房确认，已忽略 | room_id=%s", self.room_id)
            return
        self._on_room_joined(message.stream_id, message.streams)

    def _on_room_joined(self, stream_id: str | None, initial_streams: list[str] | None) -> None:
        self._confirmed = True
        if stream_id is not None:
            self.own_stream_id = stream_id
        logger.info(
            "已加入房间 | room_id=%s | stream_id=%s | 成员数=%d",
            self.room_id, self.own_stream_id, len(initial_streams or []),
        )

        if self.own_stream_id:
            self._emit(StreamIdToPublish(stream_id=self.own_stream_id))

        if initial_streams is not None:
            # 第一份权威快照，整体替换
            self._membership = unique(initial_streams)
            self._emit(StreamsJoined(stream_ids=list(self._membership)))

        self._set_state(ConnectionState.JOINED_ROOM)
        self._room_poll.start()
        self._sync_stats_poller()

    def _on_room_info(self, updated_streams: list[str]) -> None:
        if self.state is not ConnectionState.JOINED_ROOM:
            logger.debug("未在房间中，忽略 roomInformation")
            return

        updated = unique(updated_streams)
        delta = reconcile(self._membership, updated)
        self._membership = updated

        # 先通知新加入，再通知离开
        if delta.joined:
            self._emit(StreamsJoined(stream_ids=delta.joined))
        if delta.left:
            self._emit(StreamsLeft(stream_ids=delta.left))
        if not delta.is_empty:
            logger.debug("成员变化 | +%s | -%s", delta.joined, delta.left)

    # ── 定时器回调 ────────────────────────────────────────────────────

    async def _on_room_poll_tick(self, generation: int) -> None:
        async with self._lock:
            if not self._room_poll.is_current(generation):
                return
            if self.state is not ConnectionState.JOINED_ROOM or self.room_id is None:
                return
            self._send(GetStreamInfoCommand(room_id=self.room_id, stream_id=self.own_stream_id))

    async def _deliver_listener_count(self, stream_id: str, count: int, generation: int) -> None:
        async with self._lock:
            if self._closed or self._stats_poller is None:
                return
            if not self._stats_poller.is_current(generation):
                return
            if stream_id != self.own_stream_id:
                logger.debug("stream id 已变化，丢弃过期的观众数 | %s", stream_id)
                return
            self._emit(ListenerCountUpdated(count=count))
        await self._dispatch_events()

    # ── 工具方法 ──────────────────────────────────────────────────────

    def _sync_stats_poller(self) -> None:
        if self._stats_poller is not None and self.own_stream_id:
            self._stats_poller.activate()

    def _send(self, command: OutboundCommand) -> None:
        text = encode(command)
        if self._channel.send(text):
            logger.debug("发送信令: %s", text)
        else:
            logger.warning("信令通道未打开，消息未发送 | command=%s", command.command)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        previous, self.state = self.state, state
        logger.info("连接状态变化 | %s -> %s", previous.value, state.value)
        self._emit(ConnectionStatusChanged(state=state))

    def _emit(self, event: Event) -> None:
        """事件入队，等释放锁后由 ``_dispatch_events`` 投递。"""
        self._pending_events.append(event)

    async def _dispatch_events(self) -> None:
        """按入队顺序投递待发事件。

        同一时刻只有一个投递者；其他协程（包括使用方在回调里发起的调用）
        只负责入队，由正在投递的那一方继续发完。
        """
        if self._dispatching:
            return
        self._dispatching = True
        try:
            while self._pending_events:
                event = self._pending_events.popleft()
                try:
                    await self._sink.emit(event)
                except Exception as e:
                    # 使用方回调出错不应影响会话本身
                    logger.error("事件投递失败 | event=%s | %s", event.kind, e, exc_info=True)
        finally:
            self._dispatching = False
