"""Error policies and their resolution.

A policy says what the engine does when a task's work fails. Resolution is a
pure function of the policy and the number of attempts already made; it never
touches engine state. The engine applies the returned `ErrorStep`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from async_flow.errors import FlowConfigurationError

from .constants import OnErrorAction

logger = logging.getLogger(__name__)

DelayGenerator = Callable[[], float]


class ErrorPolicy(BaseModel):
    """Response to a task failure.

    `attempts` counts total executions, so `attempts=1` means no retry.
    `delay` is either a fixed number of seconds or a zero-argument callable
    that is invoked for every retry, which allows backoff.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    action: OnErrorAction = Field(
        default=OnErrorAction.STOP,
        description="What to do when a task fails",
    )
    attempts: int = Field(
        default=1,
        gt=0,
        description="Total number of execution attempts allowed per task",
    )
    delay: float | DelayGenerator | None = Field(
        default=None,
        description="Seconds to wait before a retry, or a callable producing them",
    )

    @field_validator("delay")
    @classmethod
    def _non_negative_delay(cls, value: float | DelayGenerator | None) -> Any:
        if isinstance(value, (int, float)) and value < 0:
            raise ValueError("delay must be >= 0")
        return value

    def resolve_delay(self) -> float | None:
        """Return the delay for the next retry, evaluating a generator afresh."""

        if self.delay is None:
            return None
        if callable(self.delay):
            value = float(self.delay())
            if value < 0:
                raise FlowConfigurationError(f"delay generator returned a negative value: {value}")
            return value
        return float(self.delay)


def coerce_error_policy(value: ErrorPolicy | Mapping[str, Any] | None) -> ErrorPolicy | None:
    """Validate a policy given as a model or as a plain mapping."""

    if value is None or isinstance(value, ErrorPolicy):
        return value
    if not isinstance(value, Mapping):
        raise FlowConfigurationError(f"Malformed error policy: {value!r}")
    try:
        return ErrorPolicy.model_validate(dict(value))
    except ValidationError as e:
        raise FlowConfigurationError(f"Malformed error policy: {e}") from e


class ErrorStepKind(str, Enum):
    STOP = "stop"
    PAUSE = "pause"
    DROP = "drop"
    REINSERT = "reinsert"
    REINSERT_AFTER_PAUSE = "reinsert_after_pause"


class InsertPosition(str, Enum):
    HEAD = "head"
    TAIL = "tail"


@dataclass(frozen=True, slots=True)
class ErrorStep:
    """A single step chosen by the error policy.

    `position` is set for both reinsert kinds. `delay` is `None` when the
    reinsertion happens synchronously.
    """

    kind: ErrorStepKind
    position: InsertPosition | None = None
    delay: float | None = None


def _resolve_delay_reported(policy: ErrorPolicy) -> float | None:
    try:
        return policy.resolve_delay()
    except Exception:
        logger.exception("Retry delay could not be resolved; retrying without delay")
        return None


def decide_error_step(*, policy: ErrorPolicy, attempts_made: int) -> ErrorStep:
    """Policy: (policy, attempts made so far) -> next step."""

    action = policy.action
    if action is OnErrorAction.STOP:
        return ErrorStep(kind=ErrorStepKind.STOP)
    if action is OnErrorAction.PAUSE:
        return ErrorStep(kind=ErrorStepKind.PAUSE)
    if action is OnErrorAction.CONTINUE:
        return ErrorStep(kind=ErrorStepKind.DROP)

    if attempts_made >= policy.attempts:
        return ErrorStep(kind=ErrorStepKind.DROP)

    if action is OnErrorAction.RETRY_FIRST or action is OnErrorAction.RETRY_LAST:
        position = (
            InsertPosition.HEAD if action is OnErrorAction.RETRY_FIRST else InsertPosition.TAIL
        )
        return ErrorStep(
            kind=ErrorStepKind.REINSERT,
            position=position,
            delay=_resolve_delay_reported(policy),
        )
    if action is OnErrorAction.RETRY_AFTER_PAUSE:
        return ErrorStep(
            kind=ErrorStepKind.REINSERT_AFTER_PAUSE,
            position=InsertPosition.HEAD,
            delay=_resolve_delay_reported(policy) or 0.0,
        )

    raise FlowConfigurationError(f"Unknown error action: {action!r}")
