from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .constants import RunningState


@dataclass(frozen=True, slots=True)
class FlowIsEmptyEvent:
    """Emitted whenever the waiting list and the in-flight slot are both empty.

    `has_scheduled_tasks` is True while a delayed retry is still pending, so a
    listener can tell a transient lull from a final drain.
    """

    result: Any
    has_scheduled_tasks: bool


@dataclass(frozen=True, slots=True)
class FlowSnapshot:
    name: str
    running_state: RunningState
    waiting: int
    in_flight: bool
    scheduled: int
    held: bool

    def to_json(self) -> dict[str, object]:
        return {
            "name": self.name,
            "running_state": self.running_state.value,
            "waiting": self.waiting,
            "in_flight": self.in_flight,
            "scheduled": self.scheduled,
            "held": self.held,
        }
