"""
conference.services.channel
~~~~~~~~~~~~~~~~~~~~~~~~~~~

信令消息通道 —— 有序、全双工的文本消息传输。

``RoomSession`` 只依赖 ``MessageChannel`` 协议；``WebSocketChannel`` 是基于
``websockets`` 客户端库的默认实现。通道本身不做自动重连。
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import suppress
from typing import Any, Protocol

from websockets import connect
from websockets.exceptions import ConnectionClosedOK, WebSocketException

from conference.core.config import settings
from conference.core.logging import get_logger

logger = get_logger(__name__)


class ChannelListener(Protocol):
    """通道事件的接收方。"""

    async def on_channel_connected(self) -> None: ...

    async def on_channel_message(self, text: str) -> None: ...

    async def on_channel_disconnected(self, error: BaseException | None) -> None: ...


class MessageChannel(Protocol):
    """``RoomSession`` 使用的通道接口。

    - ``open()`` 只发起连接，不等待结果；结果通过 ``ChannelListener`` 回调。
    - ``send()`` 只入队，不等待网络写完成；通道未打开时返回 ``False``。
    """

    @property
    def is_open(self) -> bool: ...

    def set_listener(self, listener: ChannelListener) -> None: ...

    def open(self) -> None: ...

    def send(self, text: str) -> bool: ...

    async def close(self) -> None: ...


class WebSocketChannel:
    """基于 ``websockets`` 的信令通道。

    每次 ``open()`` 启动一个连接任务：连接 → 通知已连接 → 逐条读取文本帧。
    出站消息写入队列，由独立的写任务发送。连接断开（非主动关闭）时
    恰好回调一次 ``on_channel_disconnected``。

    Attributes:
        url: 信令服务 WebSocket 地址。
        connect_timeout: 建立连接的超时（秒）。
        drain_timeout: 主动关闭前等待出站队列发送完毕的最长时间（秒）。
    """

    def __init__(
        self,
        url: str | None = None,
        connect_timeout: float | None = None,
        *,
        drain_timeout: float = 1.0,
        connector: Callable[..., Any] = connect,
    ) -> None:
        self.url = url or settings.SIGNALING_URL
        self.connect_timeout = connect_timeout or settings.CONNECT_TIMEOUT
        self.drain_timeout = drain_timeout
        self._connector = connector
        self._listener: ChannelListener | None = None
        self._ws: Any = None
        self._writable: bool = False
        self._outbox: asyncio.Queue[str] = asyncio.Queue()
        self._conn_task: asyncio.Task[None] | None = None
        self._writer_task: asyncio.Task[None] | None = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None and self._writable

    def set_listener(self, listener: ChannelListener) -> None:
        self._listener = listener

    def open(self) -> None:
        """发起连接。已有连接任务在进行时忽略。"""
        if self._conn_task is not None and not self._conn_task.done():
            logger.debug("信令通道已在连接中，忽略重复 open")
            return
        self._outbox = asyncio.Queue()
        self._conn_task = asyncio.get_running_loop().create_task(
            self._run(), name="signaling-channel",
        )

    def send(self, text: str) -> bool:
        if not self.is_open:
            return False
        self._outbox.put_nowait(text)
        return True

    async def close(self) -> None:
        """主动关闭：尽量发完已入队的消息，然后断开。不会触发断开回调。"""
        task, self._conn_task = self._conn_task, None
        if task is None or task.done():
            return
        if self.is_open:
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._outbox.join(), self.drain_timeout)
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.info("信令通道已关闭 | url=%s", self.url)

    # ── 内部实现 ──────────────────────────────────────────────────────

    async def _run(self) -> None:
        error: BaseException | None = None
        try:
            await self._serve()
        except asyncio.CancelledError:
            raise
        except ConnectionClosedOK:
            pass
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            error = e
            logger.warning("信令连接异常 | url=%s | %s: %s", self.url, type(e).__name__, e)
        except Exception as e:
            error = e
            logger.error("信令通道处理异常: %s", e, exc_info=True)
        finally:
            await self._teardown()

        logger.info("信令连接已断开 | url=%s", self.url)
        if self._listener is not None:
            await self._listener.on_channel_disconnected(error)

    async def _serve(self) -> None:
        ws = await self._connector(self.url, open_timeout=self.connect_timeout)
        self._ws = ws
        self._writable = True
        self._writer_task = asyncio.get_running_loop().create_task(
            self._drain(ws), name="signaling-writer",
        )
        logger.info("信令连接已建立 | url=%s", self.url)

        if self._listener is not None:
            await self._listener.on_channel_connected()

        async for message in ws:
            if not isinstance(message, str):
                logger.debug("忽略二进制信令帧 | %d bytes", len(message))
                continue
            if self._listener is not None:
                await self._listener.on_channel_message(message)

    async def _drain(self, ws: Any) -> None:
        while True:
            text = await self._outbox.get()
            try:
                await ws.send(text)
            except WebSocketException as e:
                # 写失败后不再接受新消息，关闭连接让读循环结束并上报断开
                self._writable = False
                logger.warning("信令消息发送失败，关闭连接: %s", e)
                with suppress(Exception):
                    await ws.close()
                return
            finally:
                self._outbox.task_done()

    async def _teardown(self) -> None:
        ws, self._ws = self._ws, None
        self._writable = False
        writer, self._writer_task = self._writer_task, None
        if writer is not None:
            writer.cancel()
            with suppress(asyncio.CancelledError):
                await writer
        if ws is not None:
            with suppress(Exception):
                await ws.close()
