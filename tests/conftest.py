"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 用内存通道、可控时钟和记录型事件出口替换掉
真实的 WebSocket、定时器和 delegate，使单元测试可在无网络环境下快速运行。
"""
from __future__ import annotations

import asyncio
import json
import os
from typing import Any

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")  # 激活 .env.test 配置
os.environ.setdefault("SIGNALING_URL", "wss://media.test:5443/WebRTCAppEE/websocket")


async def settle(rounds: int = 20) -> None:
    """让出事件循环若干轮，使已唤醒的任务跑完。"""
    for _ in range(rounds):
        await asyncio.sleep(0)


# ── 可控时钟 ──────────────────────────────────────────────────────────

class FakeClock:
    """可手动推进的时钟，``sleep`` 可注入 ``PeriodicTask``。"""

    def __init__(self) -> None:
        self.now: float = 0.0
        self._seq: int = 0
        self._sleepers: list[tuple[float, int, asyncio.Future[None]]] = []

    async def sleep(self, delay: float) -> None:
        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._seq += 1
        self._sleepers.append((self.now + delay, self._seq, fut))
        await fut

    @property
    def pending(self) -> int:
        return sum(1 for _, _, fut in self._sleepers if not fut.done())

    async def advance(self, seconds: float, *, settle_between: bool = True) -> None:
        """把时钟推进 ``seconds``，按到期顺序唤醒睡眠者。

        ``settle_between=False`` 时只把到期的睡眠者全部标记为完成，
        不让出事件循环，用于模拟“tick 已到期但尚未执行”的瞬间。
        """
        target = self.now + seconds
        await settle()
        while True:
            due = [s for s in self._sleepers if s[0] <= target and not s[2].done()]
            if not due:
                break
            entry = min(due, key=lambda s: (s[0], s[1]))
            self._sleepers.remove(entry)
            self.now = entry[0]
            entry[2].set_result(None)
            if settle_between:
                await settle()
        self._sleepers = [s for s in self._sleepers if not s[2].done()]
        self.now = target


# ── 内存通道 ──────────────────────────────────────────────────────────

class FakeChannel:
    """实现 ``MessageChannel`` 协议的内存通道，测试代码扮演服务端。"""

    def __init__(self) -> None:
        self.listener: Any = None
        self.is_open: bool = False
        self.open_calls: int = 0
        self.closed: bool = False
        self.sent: list[str] = []

    def set_listener(self, listener: Any) -> None:
        self.listener = listener

    def open(self) -> None:
        self.open_calls += 1

    def send(self, text: str) -> bool:
        if not self.is_open:
            return False
        self.sent.append(text)
        return True

    async def close(self) -> None:
        self.closed = True
        self.is_open = False

    # 以下方法模拟服务端/网络侧的行为

    async def connect(self) -> None:
        self.is_open = True
        await self.listener.on_channel_connected()

    async def receive(self, payload: dict[str, Any] | str) -> None:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        await self.listener.on_channel_message(text)

    async def drop(self, error: BaseException | None = None) -> None:
        self.is_open = False
        await self.listener.on_channel_disconnected(error)

    def sent_commands(self, command: str | None = None) -> list[dict[str, Any]]:
        messages = [json.loads(t) for t in self.sent]
        if command is None:
            return messages
        return [m for m in messages if m["command"] == command]


# ── 记录型事件出口 ────────────────────────────────────────────────────

class RecordingSink:
    """按顺序记录所有事件。"""

    def __init__(self) -> None:
        self.events: list[Any] = []

    async def emit(self, event: Any) -> None:
        self.events.append(event)

    def of_type(self, *types: type) -> list[Any]:
        return [e for e in self.events if isinstance(e, types)]


def joined_notification(stream_id: str | None = "s1", streams: list[str] | None = None) -> dict[str, Any]:
    """构造服务端的“已加入房间”通知。"""
    payload: dict[str, Any] = {"command": "notification", "definition": "joinedTheRoom"}
    if stream_id is not None:
        payload["streamId"] = stream_id
    if streams is not None:
        payload["streams"] = streams
    return payload


def room_information(streams: list[str]) -> dict[str, Any]:
    return {"command": "roomInformation", "streams": streams}


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()
