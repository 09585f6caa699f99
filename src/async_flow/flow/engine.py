"""The flow controller.

An `AsyncFlow` owns a waiting list of tasks and runs them strictly one at a
time on the running event loop, feeding each task the result of the previous
one. All state changes happen on the loop thread, either from the public
methods or from the callback that settles the in-flight task, so the engine
never needs a lock.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from async_flow.config import FlowConfig
from async_flow.errors import FlowConfigurationError

from .constants import MergingPolicy, RunningState, TaskState
from .events import FlowIsEmptyEvent, FlowSnapshot
from .merging import find_merge_target
from .policy import ErrorPolicy, ErrorStep, ErrorStepKind, InsertPosition, decide_error_step
from .scheduler import AsyncioScheduler, Scheduler
from .state_machine import transition
from .task import FlowTask, TaskOutcome

logger = logging.getLogger(__name__)

EmptyListener = Callable[[FlowIsEmptyEvent], Any]


class AsyncFlow:
    """Sequential task-flow controller.

    A new flow starts `PAUSED`; call `start()` to begin executing tasks.
    """

    def __init__(
        self,
        config: FlowConfig | None = None,
        *,
        scheduler: Scheduler | None = None,
        **overrides: Any,
    ) -> None:
        try:
            base = config or FlowConfig()
            self.config = (
                FlowConfig.model_validate({**dict(base), **overrides}) if overrides else base
            )
        except ValidationError as e:
            raise FlowConfigurationError(f"Invalid flow configuration: {e}") from e

        self.name = self.config.name
        self._scheduler: Scheduler = scheduler or AsyncioScheduler()
        self._state = RunningState.PAUSED
        self._result: Any = self.config.init_value
        self._waiting: deque[FlowTask] = deque()
        self._current: FlowTask | None = None
        self._in_flight: asyncio.Task[None] | None = None
        self._held: FlowTask | None = None
        self._timers: set[Any] = set()
        self._empty_listeners: list[EmptyListener] = []
        self._halt_waiters: list[asyncio.Future[RunningState]] = []

    def __repr__(self) -> str:
        return f"AsyncFlow(name={self.name!r}, state={self._state.value})"

    # Introspection

    @property
    def running_state(self) -> RunningState:
        return self._state

    def get_running_state(self) -> RunningState:
        return self._state

    @property
    def result(self) -> Any:
        return self._result

    @property
    def merging_policy(self) -> MergingPolicy:
        return self.config.merging_policy

    @property
    def default_error_policy(self) -> ErrorPolicy:
        return self.config.on_error_policy

    @property
    def waiting_count(self) -> int:
        return len(self._waiting)

    @property
    def has_scheduled_tasks(self) -> bool:
        return bool(self._timers)

    @property
    def is_idle(self) -> bool:
        return self._current is None

    @property
    def is_halted(self) -> bool:
        """Paused or stopped with nothing in flight and no retry pending."""

        return (
            self._state in (RunningState.PAUSED, RunningState.STOPPED)
            and self._current is None
            and not self._timers
        )

    def snapshot(self) -> FlowSnapshot:
        return FlowSnapshot(
            name=self.name,
            running_state=self._state,
            waiting=len(self._waiting),
            in_flight=self._current is not None,
            scheduled=len(self._timers),
            held=self._held is not None,
        )

    # Listeners

    def add_flow_is_empty_listener(self, callback: EmptyListener) -> None:
        if callback not in self._empty_listeners:
            self._empty_listeners.append(callback)

    def remove_flow_is_empty_listener(self, callback: EmptyListener) -> None:
        if callback in self._empty_listeners:
            self._empty_listeners.remove(callback)

    async def wait_until_empty(self, *, allow_scheduled: bool = False) -> Any:
        """Wait for the next empty event and return the accumulated result.

        Unless `allow_scheduled` is set, lulls with a delayed retry still
        pending are skipped, so this resolves on the final drain only.
        """

        if (
            self._state is RunningState.RUNNING
            and self._current is None
            and not self._waiting
            and (allow_scheduled or not self._timers)
        ):
            return self._result

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()

        def _listener(event: FlowIsEmptyEvent) -> None:
            if event.has_scheduled_tasks and not allow_scheduled:
                return
            if not future.done():
                future.set_result(event.result)

        self.add_flow_is_empty_listener(_listener)
        try:
            return await future
        finally:
            self.remove_flow_is_empty_listener(_listener)

    async def wait_until_halted(self) -> RunningState:
        """Wait until the flow is paused or stopped and has settled.

        A halted flow emits no empty event. Returns the state it halted in.
        """

        if self.is_halted:
            return self._state

        future: asyncio.Future[RunningState] = asyncio.get_running_loop().create_future()
        self._halt_waiters.append(future)
        try:
            return await future
        finally:
            if future in self._halt_waiters:
                self._halt_waiters.remove(future)

    # Lifecycle

    def start(self) -> None:
        if self._state in (RunningState.STOPPED, RunningState.RUNNING):
            return
        self._set_state(RunningState.RUNNING)
        self._drive()

    def pause(self) -> None:
        if self._state is RunningState.RUNNING:
            to = RunningState.PAUSED if self._current is None else RunningState.GOING_TO_PAUSE
            self._set_state(to)
            self._notify_halted()

    def stop(self) -> None:
        if self._state is RunningState.STOPPED:
            return
        self._set_state(RunningState.STOPPED)

        dropped = len(self._waiting)
        self._waiting.clear()
        self._held = None
        for handle in list(self._timers):
            self._scheduler.cancel(handle)
        self._timers.clear()
        logger.info(
            "Flow stopped",
            extra={"flow": self.name, "dropped_tasks": dropped},
        )
        self._notify_halted()

    # Queue

    def add_task(self, task: FlowTask) -> None:
        if not isinstance(task, FlowTask):
            raise FlowConfigurationError(f"Not a FlowTask: {task!r}")
        task.validate()

        if self._state is RunningState.STOPPED:
            logger.warning("Task added to a stopped flow was ignored", extra={"flow": self.name})
            return

        target = find_merge_target(
            waiting=self._waiting, task=task, policy=self.config.merging_policy
        )
        if target is not None:
            target.absorb(task)
            logger.debug("Task merged", extra={"flow": self.name, "task": repr(target)})
            return

        task.state = TaskState.WAITING
        self._waiting.append(task)
        self._drive()

    # Driver

    def _set_state(self, to: RunningState) -> None:
        self._state = transition(current=self._state, to=to)
        logger.debug("Flow state changed", extra={"flow": self.name, "state": to.value})

    def _drive(self) -> None:
        if self._state is not RunningState.RUNNING or self._current is not None:
            return

        if not self._waiting:
            self._emit_empty()
            return

        task = self._waiting.popleft()
        task.state = TaskState.RUNNING
        self._current = task
        self._in_flight = asyncio.get_running_loop().create_task(
            self._execute(task, self._result),
            name=f"{self.name}-task",
        )

    async def _execute(self, task: FlowTask, prior_result: Any) -> None:
        # The slot stays occupied until the outcome is fully applied, so
        # callbacks that add tasks cannot start one ahead of a reinsertion.
        try:
            outcome = await task.run(prior_result)
            self._in_flight = None
            if outcome.ok:
                self._on_success(task, outcome)
            else:
                self._on_failure(task, outcome)
        finally:
            self._in_flight = None
            self._current = None

        if self._state is RunningState.GOING_TO_PAUSE:
            self._set_state(RunningState.PAUSED)
        self._notify_halted()
        self._drive()

    def _on_success(self, task: FlowTask, outcome: TaskOutcome) -> None:
        self._result = outcome.value
        task.settle(outcome)

    def _on_failure(self, task: FlowTask, outcome: TaskOutcome) -> None:
        task.attempts += 1
        policy = task.on_error_policy
        if policy is None:
            policy = self.config.on_error_policy
        logger.warning(
            "Task failed",
            extra={
                "flow": self.name,
                "task": repr(task),
                "attempt": task.attempts,
                "action": policy.action.value,
                "error": repr(outcome.error),
            },
        )
        task.settle(outcome)

        if self._state is RunningState.STOPPED:
            return

        step = decide_error_step(policy=policy, attempts_made=task.attempts)
        self._apply_error_step(task, step)

    def _apply_error_step(self, task: FlowTask, step: ErrorStep) -> None:
        kind = step.kind
        if kind is ErrorStepKind.STOP:
            self.stop()
        elif kind is ErrorStepKind.PAUSE:
            if self._state is not RunningState.PAUSED:
                self._set_state(RunningState.PAUSED)
        elif kind is ErrorStepKind.DROP:
            logger.info(
                "Task dropped",
                extra={"flow": self.name, "task": repr(task), "attempt": task.attempts},
            )
        elif kind is ErrorStepKind.REINSERT:
            assert step.position is not None
            if step.delay is None:
                self._reinsert(task, step.position)
            else:
                self._schedule(step.delay, lambda: self._on_retry_timer(task, step.position))
        elif kind is ErrorStepKind.REINSERT_AFTER_PAUSE:
            if self._state is not RunningState.PAUSED:
                self._set_state(RunningState.PAUSED)
            self._held = task
            self._schedule(step.delay or 0.0, lambda: self._on_resume_timer(task))
        else:
            raise AssertionError(f"Unhandled error step: {kind!r}")

    def _reinsert(self, task: FlowTask, position: InsertPosition) -> None:
        task.state = TaskState.WAITING
        if position is InsertPosition.HEAD:
            self._waiting.appendleft(task)
        else:
            self._waiting.append(task)

    def _schedule(self, delay: float, callback: Callable[[], None]) -> None:
        handle: Any = None

        def _fire() -> None:
            self._timers.discard(handle)
            if self._state is RunningState.STOPPED:
                return
            callback()
            self._notify_halted()

        handle = self._scheduler.after(delay, _fire)
        self._timers.add(handle)
        logger.debug("Retry scheduled", extra={"flow": self.name, "delay": delay})

    def _on_retry_timer(self, task: FlowTask, position: InsertPosition | None) -> None:
        self._reinsert(task, position or InsertPosition.HEAD)
        self._drive()

    def _on_resume_timer(self, task: FlowTask) -> None:
        if self._held is task:
            self._held = None
        self._reinsert(task, InsertPosition.HEAD)
        if self._state is RunningState.RUNNING:
            self._drive()
        else:
            self.start()

    def _emit_empty(self) -> None:
        event = FlowIsEmptyEvent(result=self._result, has_scheduled_tasks=bool(self._timers))
        logger.debug(
            "Flow is empty",
            extra={"flow": self.name, "has_scheduled_tasks": event.has_scheduled_tasks},
        )
        for listener in list(self._empty_listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Flow empty listener failed", extra={"flow": self.name})

    def _notify_halted(self) -> None:
        if not self.is_halted or not self._halt_waiters:
            return
        waiters, self._halt_waiters = self._halt_waiters, []
        for future in waiters:
            if not future.done():
                future.set_result(self._state)


def create_async_flow(*, scheduler: Scheduler | None = None, **config: Any) -> AsyncFlow:
    """Build an `AsyncFlow` from keyword configuration.

    Accepts the `FlowConfig` fields; `on_error_policy` may be a mapping.
    """

    return AsyncFlow(scheduler=scheduler, **config)
