"""Merge-at-enqueue: fold a new task into an equal one at a queue boundary.

Only the boundary element is ever compared: the head under `HEAD`, the tail
under `TAIL`. A task already dequeued for execution is never a candidate.
"""

from __future__ import annotations

from collections import deque

from .constants import MergingPolicy, TaskMerger
from .task import FlowTask


def find_merge_target(
    *, waiting: deque[FlowTask], task: FlowTask, policy: MergingPolicy
) -> FlowTask | None:
    """Return the waiting task `task` should merge into, or None."""

    if policy is MergingPolicy.NONE or task.merger is not TaskMerger.BASIC:
        return None
    if not waiting:
        return None

    boundary = waiting[0] if policy is MergingPolicy.HEAD else waiting[-1]
    if boundary.merger is not TaskMerger.BASIC:
        return None
    return boundary if task.equals(boundary) else None
