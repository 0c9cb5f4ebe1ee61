"""
tests.test_periodic
~~~~~~~~~~~~~~~~~~~

带代际标记的周期任务单元测试（使用可控时钟）。
"""
from __future__ import annotations

import pytest

from conference.services.periodic import PeriodicTask
from tests.conftest import FakeClock, settle


class TestPeriodicTask:
    """测试启动、tick、取消与异常自愈。"""

    @pytest.mark.asyncio
    async def test_ticks_on_interval(self, clock: FakeClock) -> None:
        ticks: list[float] = []

        async def on_tick(generation: int) -> None:
            ticks.append(clock.now)

        task = PeriodicTask("t", 5, on_tick, sleep=clock.sleep)
        task.start()

        await clock.advance(4)
        assert ticks == []

        await clock.advance(11)
        assert ticks == [5, 10, 15]
        task.cancel()

    @pytest.mark.asyncio
    async def test_cancel_stops_future_ticks(self, clock: FakeClock) -> None:
        ticks: list[int] = []

        async def on_tick(generation: int) -> None:
            ticks.append(generation)

        task = PeriodicTask("t", 5, on_tick, sleep=clock.sleep)
        task.start()
        await clock.advance(5)
        task.cancel()
        await clock.advance(50)

        assert len(ticks) == 1
        assert not task.is_running

    @pytest.mark.asyncio
    async def test_tick_already_due_does_not_run_after_cancel(self, clock: FakeClock) -> None:
        """睡眠已到期但回调尚未执行时取消，回调不会再被调用。"""
        ticks: list[int] = []

        async def on_tick(generation: int) -> None:
            ticks.append(generation)

        task = PeriodicTask("t", 5, on_tick, sleep=clock.sleep)
        task.start()
        await settle()

        await clock.advance(5, settle_between=False)
        task.cancel()
        await settle()

        assert ticks == []

    @pytest.mark.asyncio
    async def test_generation_changes_on_restart(self, clock: FakeClock) -> None:
        seen: list[int] = []

        async def on_tick(generation: int) -> None:
            seen.append(generation)

        task = PeriodicTask("t", 5, on_tick, sleep=clock.sleep)
        first = task.start()
        second = task.start()

        assert second != first
        assert not task.is_current(first)
        assert task.is_current(second)

        await clock.advance(5)
        assert seen == [second]
        task.cancel()
        assert not task.is_current(second)

    @pytest.mark.asyncio
    async def test_callback_error_does_not_stop_schedule(self, clock: FakeClock) -> None:
        calls: list[float] = []

        async def on_tick(generation: int) -> None:
            calls.append(clock.now)
            if len(calls) == 1:
                raise RuntimeError("boom")

        task = PeriodicTask("t", 5, on_tick, sleep=clock.sleep)
        task.start()
        await clock.advance(10)

        assert calls == [5, 10]
        task.cancel()

    def test_rejects_non_positive_interval(self) -> None:
        async def on_tick(generation: int) -> None:
            return None

        with pytest.raises(ValueError):
            PeriodicTask("t", 0, on_tick)
