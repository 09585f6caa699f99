"""Tasks: a unit of asynchronous work plus its callbacks and policy."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

from async_flow.errors import FlowConfigurationError

from .constants import TaskMerger, TaskState
from .policy import ErrorPolicy, coerce_error_policy

logger = logging.getLogger(__name__)

WorkFunc = Callable[[Any], Awaitable[Any] | Any]
SuccessCallback = Callable[[Any], Any]
ErrorCallback = Callable[[BaseException], Any]


@dataclass(frozen=True, slots=True)
class TaskOutcome:
    """The settled result of one invocation of a task's work."""

    ok: bool
    value: Any = None
    error: BaseException | None = None

    @staticmethod
    def success(value: Any) -> TaskOutcome:
        return TaskOutcome(ok=True, value=value)

    @staticmethod
    def failure(error: BaseException) -> TaskOutcome:
        return TaskOutcome(ok=False, error=error)


class FlowTask:
    """A task to run on an `AsyncFlow`.

    `func` receives the flow's accumulated result and returns the next one,
    either directly or as an awaitable. Subclasses that opt into merging
    (`merger=TaskMerger.BASIC`) must override `equals`.
    """

    def __init__(
        self,
        *,
        func: WorkFunc | None,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
        on_error_policy: ErrorPolicy | Mapping[str, Any] | None = None,
        merger: TaskMerger = TaskMerger.NONE,
    ) -> None:
        self.func = func
        self.on_success = on_success
        self.on_error = on_error
        self.on_error_policy = coerce_error_policy(on_error_policy)
        self.merger = TaskMerger(merger)
        self.state = TaskState.NONE
        self.attempts = 0
        self._merged: list[FlowTask] = []

    def __repr__(self) -> str:
        return f"{type(self).__name__}(state={self.state.value}, attempts={self.attempts})"

    @property
    def merged_tasks(self) -> list[FlowTask]:
        return list(self._merged)

    def equals(self, other: FlowTask) -> bool:
        """Return True when `other` describes the same work as this task."""

        raise NotImplementedError(f"{type(self).__name__} does not define equals()")

    def supports_merging(self) -> bool:
        return type(self).equals is not FlowTask.equals

    def validate(self) -> None:
        if self.func is None or not callable(self.func):
            raise FlowConfigurationError(f"{self!r} has no work function")
        if self.merger is TaskMerger.BASIC and not self.supports_merging():
            raise FlowConfigurationError(
                f"{type(self).__name__} opts into merging but does not define equals()"
            )

    def absorb(self, other: FlowTask) -> None:
        """Fold `other` into this task; its callbacks fire on this task's outcome."""

        self._merged.append(other)
        self._merged.extend(other._merged)
        other._merged = []

    async def run(self, prior_result: Any) -> TaskOutcome:
        """Invoke the work function and settle it into a `TaskOutcome`.

        A `CancelledError` raised by the work itself, such as one from awaiting a
        future that was cancelled elsewhere, is a failure like any other. It is
        re-raised only when the surrounding asyncio task is being cancelled.
        """

        assert self.func is not None
        try:
            value = self.func(prior_result)
            if inspect.isawaitable(value):
                value = await value
        except asyncio.CancelledError as e:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            return TaskOutcome.failure(e)
        except Exception as e:
            return TaskOutcome.failure(e)
        return TaskOutcome.success(value)

    def settle(self, outcome: TaskOutcome) -> None:
        """Record the outcome and notify this task's and merged tasks' callbacks."""

        state = TaskState.DONE if outcome.ok else TaskState.ERROR
        for task in (self, *self._merged):
            task.state = state
            if outcome.ok:
                _notify(task.on_success, outcome.value, kind="success")
            else:
                _notify(task.on_error, outcome.error, kind="error")


def _notify(callback: Callable[[Any], Any] | None, arg: Any, *, kind: str) -> None:
    if callback is None:
        return
    try:
        callback(arg)
    except Exception:
        logger.exception("Task %s callback failed", kind, extra={"callback": kind})
