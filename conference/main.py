"""
conference.main
~~~~~~~~~~~~~~~

命令行入口 —— 加入一个会议房间，把所有事件打印到日志，Ctrl-C 时优雅退出。

    python -m conference.main --room room1 --stream "" --role listener
"""
from __future__ import annotations

import argparse
import asyncio
import signal
from collections.abc import Sequence
from contextlib import suppress

from conference.core.config import settings
from conference.core.logging import get_logger, setup_logging
from conference.schemas.protocol import ParticipantRole
from conference.services.channel import WebSocketChannel
from conference.services.delegate import DelegateSink, LoggingDelegate
from conference.services.room_session import RoomSession
from conference.services.stats_client import StatsClient

logger = get_logger(__name__)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="conference-client",
        description="加入会议房间并持续同步房间成员与观众数",
    )
    parser.add_argument("--room", required=True, help="要加入的房间 ID")
    parser.add_argument("--stream", default="", help="首选的推流 stream id（默认由服务端分配）")
    parser.add_argument(
        "--role",
        choices=[r.value for r in ParticipantRole],
        default=ParticipantRole.PRESENTER.value,
        help="参与者角色",
    )
    parser.add_argument("--url", default=None, help="信令服务地址（默认取 SIGNALING_URL）")
    return parser.parse_args(argv)


async def run_client(
    room_id: str,
    stream_id: str = "",
    role: ParticipantRole = ParticipantRole.PRESENTER,
    url: str | None = None,
) -> None:
    """运行一个会话直到收到 SIGINT / SIGTERM。"""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Windows 不支持 add_signal_handler，退回 KeyboardInterrupt
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    channel = WebSocketChannel(url or settings.SIGNALING_URL)
    stats_client = StatsClient()
    logger.info(
        "🚀 %s v%s | env=%s | url=%s",
        settings.PROJECT_NAME, settings.VERSION, settings.ENVIRONMENT, channel.url,
    )
    try:
        async with RoomSession(channel, DelegateSink(LoggingDelegate()), stats_client, role=role) as session:
            await session.join_room(room_id, stream_id)
            await stop.wait()
            await session.leave_room()
    finally:
        await stats_client.aclose()
        logger.info("👋 客户端已退出")


def run(argv: Sequence[str] | None = None) -> None:
    setup_logging()
    args = parse_args(argv)
    with suppress(KeyboardInterrupt):
        asyncio.run(
            run_client(args.room, args.stream, ParticipantRole(args.role), args.url),
        )


if __name__ == "__main__":
    run()
