"""
conference.services.periodic
~~~~~~~~~~~~~~~~~~~~~~~~~~~~

带代际（generation）标记的可取消周期任务。

每次 ``start()`` / ``cancel()`` 都会让代际加一。循环在每次睡眠结束后、
调用回调前检查代际是否仍然一致，回调本身也会拿到启动时的代际，
以便持有者在自己的串行区内再次确认 ``is_current(generation)``。
这样即使某次 tick 的睡眠已经结束，只要取消先生效，回调就不会再改动状态。
"""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from conference.core.logging import get_logger

logger = get_logger(__name__)

TickCallback = Callable[[int], Awaitable[None]]
SleepFunc = Callable[[float], Awaitable[None]]


class PeriodicTask:
    """按固定间隔重复执行的异步任务。

    Attributes:
        name: 任务名，用于日志。
        interval: 两次 tick 之间的间隔（秒）。
    """

    def __init__(
        self,
        name: str,
        interval: float,
        callback: TickCallback,
        *,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval 必须大于 0")
        self.name = name
        self.interval = interval
        self._callback = callback
        self._sleep = sleep
        self._generation: int = 0
        self._task: asyncio.Task[None] | None = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_running(self) -> bool:
        """当前是否有活跃的周期循环。"""
        return self._task is not None and not self._task.done()

    def is_current(self, generation: int) -> bool:
        """``generation`` 对应的那一轮调度是否仍然有效。"""
        return self.is_running and generation == self._generation

    def start(self) -> int:
        """（重新）启动周期循环，返回本轮的代际。必须在事件循环内调用。"""
        self.cancel()
        generation = self._generation
        self._task = asyncio.get_running_loop().create_task(
            self._run(generation), name=f"periodic:{self.name}",
        )
        logger.debug("周期任务已启动 | name=%s | interval=%.1fs", self.name, self.interval)
        return generation

    def cancel(self) -> None:
        """取消周期循环。可重复调用。"""
        self._generation += 1
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("周期任务已取消 | name=%s", self.name)

    async def _run(self, generation: int) -> None:
        while generation == self._generation:
            await self._sleep(self.interval)
            if generation != self._generation:
                return
            try:
                await self._callback(generation)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # 单次失败不影响后续调度
                logger.error("周期任务执行异常 | name=%s | %s", self.name, e, exc_info=True)
