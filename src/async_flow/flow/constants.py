from __future__ import annotations

from enum import Enum


class OnErrorAction(str, Enum):
    STOP = "stop"
    PAUSE = "pause"
    RETRY_FIRST = "retry_first"  # reinsert at the head of the waiting list
    RETRY_LAST = "retry_last"  # reinsert at the tail of the waiting list
    RETRY_AFTER_PAUSE = "retry_after_pause"
    CONTINUE = "continue"  # drop the task, run the next one


class RunningState(str, Enum):
    PAUSED = "paused"
    RUNNING = "running"
    STOPPED = "stopped"
    GOING_TO_PAUSE = "going_to_pause"


class MergingPolicy(str, Enum):
    NONE = "none"
    HEAD = "head"
    TAIL = "tail"


class TaskState(str, Enum):
    NONE = "none"
    WAITING = "waiting"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class TaskMerger(str, Enum):
    NONE = "none"
    BASIC = "basic"
