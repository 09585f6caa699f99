"""Async Flow.

A sequential task-flow controller for asyncio:
- tasks run strictly one at a time, each receiving the previous result
- configurable error policies (stop, pause, retry, continue)
- merging of duplicate tasks at enqueue time
- explicit pause/resume/stop lifecycle
"""

__version__ = "0.1.0"

from async_flow.config import FlowConfig, FlowSettings
from async_flow.errors import FlowConfigurationError, FlowError
from async_flow.flow.constants import (
    MergingPolicy,
    OnErrorAction,
    RunningState,
    TaskMerger,
    TaskState,
)
from async_flow.flow.engine import AsyncFlow, create_async_flow
from async_flow.flow.events import FlowIsEmptyEvent, FlowSnapshot
from async_flow.flow.policy import ErrorPolicy
from async_flow.flow.scheduler import AsyncioScheduler, Scheduler
from async_flow.flow.task import FlowTask, TaskOutcome

__all__ = [
    "__version__",
    "AsyncFlow",
    "AsyncioScheduler",
    "ErrorPolicy",
    "FlowConfig",
    "FlowConfigurationError",
    "FlowError",
    "FlowIsEmptyEvent",
    "FlowSettings",
    "FlowSnapshot",
    "FlowTask",
    "MergingPolicy",
    "OnErrorAction",
    "RunningState",
    "Scheduler",
    "TaskMerger",
    "TaskOutcome",
    "TaskState",
    "create_async_flow",
]
