"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from helpers import ManualScheduler

from async_flow.flow.engine import AsyncFlow


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def log() -> list[str]:
    return []


@pytest.fixture
def make_flow(scheduler: ManualScheduler) -> Callable[..., AsyncFlow]:
    """Build flows on simulated time with an empty-string seed."""

    def _make(**config: Any) -> AsyncFlow:
        config.setdefault("init_value", "")
        return AsyncFlow(scheduler=scheduler, **config)

    return _make
