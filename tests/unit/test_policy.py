"""Unit tests for error policies and their resolution."""

from __future__ import annotations

import itertools

import pytest

from async_flow.errors import FlowConfigurationError
from async_flow.flow.constants import OnErrorAction
from async_flow.flow.policy import (
    ErrorPolicy,
    ErrorStep,
    ErrorStepKind,
    InsertPosition,
    coerce_error_policy,
    decide_error_step,
)


def test_error_policy_defaults() -> None:
    policy = ErrorPolicy()

    assert policy.action is OnErrorAction.STOP
    assert policy.attempts == 1
    assert policy.delay is None
    assert policy.resolve_delay() is None


def test_coerce_accepts_mapping_with_string_action() -> None:
    policy = coerce_error_policy({"action": "retry_first", "attempts": 2, "delay": 0.25})

    assert policy == ErrorPolicy(action=OnErrorAction.RETRY_FIRST, attempts=2, delay=0.25)


def test_coerce_passes_models_and_none_through() -> None:
    policy = ErrorPolicy(action=OnErrorAction.CONTINUE)

    assert coerce_error_policy(policy) is policy
    assert coerce_error_policy(None) is None


@pytest.mark.parametrize(
    "raw",
    [
        {"attempts": 0},
        {"attempts": -3},
        {"delay": -1},
        {"action": "explode"},
        {"action": "stop", "unknown": 1, "attempts": "many"},
        42,
    ],
)
def test_coerce_rejects_malformed_policies(raw: object) -> None:
    with pytest.raises(FlowConfigurationError):
        coerce_error_policy(raw)  # type: ignore[arg-type]


def test_delay_generator_is_evaluated_for_every_retry() -> None:
    delays = itertools.count(start=1)
    policy = ErrorPolicy(action=OnErrorAction.RETRY_LAST, attempts=5, delay=lambda: next(delays))

    assert [policy.resolve_delay() for _ in range(3)] == [1.0, 2.0, 3.0]


def test_negative_generated_delay_is_a_configuration_error() -> None:
    policy = ErrorPolicy(action=OnErrorAction.RETRY_FIRST, attempts=2, delay=lambda: -1)

    with pytest.raises(FlowConfigurationError):
        policy.resolve_delay()


@pytest.mark.parametrize(
    ("action", "kind"),
    [
        (OnErrorAction.STOP, ErrorStepKind.STOP),
        (OnErrorAction.PAUSE, ErrorStepKind.PAUSE),
        (OnErrorAction.CONTINUE, ErrorStepKind.DROP),
    ],
)
def test_non_retry_actions_ignore_attempts(action: OnErrorAction, kind: ErrorStepKind) -> None:
    policy = ErrorPolicy(action=action, attempts=5)

    assert decide_error_step(policy=policy, attempts_made=1) == ErrorStep(kind=kind)


def test_retry_first_reinserts_at_head_without_delay() -> None:
    policy = ErrorPolicy(action=OnErrorAction.RETRY_FIRST, attempts=3)

    step = decide_error_step(policy=policy, attempts_made=1)

    assert step == ErrorStep(kind=ErrorStepKind.REINSERT, position=InsertPosition.HEAD)


def test_retry_last_carries_the_resolved_delay() -> None:
    policy = ErrorPolicy(action=OnErrorAction.RETRY_LAST, attempts=3, delay=0.5)

    step = decide_error_step(policy=policy, attempts_made=2)

    assert step.kind is ErrorStepKind.REINSERT
    assert step.position is InsertPosition.TAIL
    assert step.delay == 0.5


@pytest.mark.parametrize(
    "action",
    [OnErrorAction.RETRY_FIRST, OnErrorAction.RETRY_LAST, OnErrorAction.RETRY_AFTER_PAUSE],
)
def test_exhausted_retries_fall_back_to_drop(action: OnErrorAction) -> None:
    policy = ErrorPolicy(action=action, attempts=2)

    assert decide_error_step(policy=policy, attempts_made=2).kind is ErrorStepKind.DROP


def test_retry_after_pause_defaults_to_zero_delay_at_head() -> None:
    policy = ErrorPolicy(action=OnErrorAction.RETRY_AFTER_PAUSE, attempts=2)

    step = decide_error_step(policy=policy, attempts_made=1)

    assert step == ErrorStep(
        kind=ErrorStepKind.REINSERT_AFTER_PAUSE, position=InsertPosition.HEAD, delay=0.0
    )


def test_failing_delay_generator_retries_without_delay(caplog: pytest.LogCaptureFixture) -> None:
    def broken() -> float:
        raise RuntimeError("no delay today")

    policy = ErrorPolicy(action=OnErrorAction.RETRY_FIRST, attempts=2, delay=broken)

    step = decide_error_step(policy=policy, attempts_made=1)

    assert step.kind is ErrorStepKind.REINSERT
    assert step.delay is None
    assert "Retry delay could not be resolved" in caplog.text
