"""Shared task doubles and a simulated-time scheduler for the unit tests."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from async_flow.flow.constants import TaskMerger
from async_flow.flow.engine import AsyncFlow
from async_flow.flow.task import FlowTask


class TaskBoom(RuntimeError):
    pass


@dataclass(eq=False)
class _Timer:
    due: float
    seq: int
    callback: Callable[[], None]
    cancelled: bool = False


class ManualScheduler:
    """Scheduler driven by simulated time.

    Timers only fire from `advance()`, in due order.
    """

    def __init__(self) -> None:
        self.now = 0.0
        self.delays: list[float] = []
        self._timers: list[_Timer] = []
        self._seq = itertools.count()

    def after(self, delay: float, callback: Callable[[], None]) -> _Timer:
        timer = _Timer(due=self.now + delay, seq=next(self._seq), callback=callback)
        self.delays.append(delay)
        self._timers.append(timer)
        return timer

    def cancel(self, handle: _Timer) -> None:
        handle.cancelled = True
        if handle in self._timers:
            self._timers.remove(handle)

    @property
    def pending(self) -> int:
        return len(self._timers)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [t for t in self._timers if t.due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: (t.due, t.seq))
            self._timers.remove(timer)
            self.now = timer.due
            timer.callback()
        self.now = target


class StepTask(FlowTask):
    """Completes on the next loop iteration, appending `symbol` to the result.

    Fails its first `failures` runs. Every run is recorded in `log`.
    """

    def __init__(
        self,
        symbol: str,
        log: list[str],
        *,
        failures: int = 0,
        merger: TaskMerger = TaskMerger.NONE,
        **kwargs: Any,
    ) -> None:
        super().__init__(func=self._work, merger=merger, **kwargs)
        self.symbol = symbol
        self._log = log
        self._failures_left = failures

    async def _work(self, prior: str) -> str:
        await asyncio.sleep(0)
        self._log.append(self.symbol)
        if self._failures_left > 0:
            self._failures_left -= 1
            raise TaskBoom(self.symbol)
        return prior + self.symbol

    def equals(self, other: FlowTask) -> bool:
        return isinstance(other, StepTask) and self.symbol == other.symbol


class SymbolTask(FlowTask):
    """Takes `interval` seconds of real time, then appends `symbol`.

    `run` is called before completing; if it raises, the task fails.
    """

    def __init__(
        self,
        *,
        symbol: str,
        interval: float,
        array: list[str] | None = None,
        run: Callable[[], None] | None = None,
        merger: TaskMerger = TaskMerger.NONE,
        **kwargs: Any,
    ) -> None:
        super().__init__(func=self._work, merger=merger, **kwargs)
        self.symbol = symbol
        self.interval = interval
        self._array = array
        self._run = run

    async def _work(self, prior: Any) -> Any:
        await asyncio.sleep(self.interval)
        if self._run is not None:
            self._run()
        if self._array is not None:
            self._array.append(self.symbol)
            return self.symbol
        return prior + self.symbol

    def equals(self, other: FlowTask) -> bool:
        return (
            isinstance(other, SymbolTask)
            and self.symbol == other.symbol
            and self.interval == other.interval
        )


def fail_first(times: int = 1) -> Callable[[], None]:
    """A `run` hook that raises on its first `times` calls."""

    calls = itertools.count()

    def _run() -> None:
        if next(calls) < times:
            raise TaskBoom("Test Exception")

    return _run


def always_fail() -> None:
    raise TaskBoom("Test Exception")


async def settle(flow: AsyncFlow, timeout: float = 1.0) -> Any:
    """Wait until the flow is empty, even if retries are still scheduled."""

    return await asyncio.wait_for(flow.wait_until_empty(allow_scheduled=True), timeout)


class GateTask(FlowTask):
    """Stays in flight until `release` is set, then appends `symbol`."""

    def __init__(self, symbol: str, log: list[str], **kwargs: Any) -> None:
        super().__init__(func=self._work, **kwargs)
        self.symbol = symbol
        self.release = asyncio.Event()
        self._log = log

    async def _work(self, prior: str) -> str:
        self._log.append(self.symbol)
        await self.release.wait()
        return prior + self.symbol

    def equals(self, other: FlowTask) -> bool:
        return isinstance(other, GateTask) and self.symbol == other.symbol


async def spin(times: int = 10) -> None:
    """Let the event loop run a few iterations."""

    for _ in range(times):
        await asyncio.sleep(0)
