"""Timer capability used for delayed retries.

The engine never sleeps itself; it asks a scheduler to call back after a
delay. Tests inject a scheduler driven by simulated time.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Protocol


class Scheduler(Protocol):
    def after(self, delay: float, callback: Callable[[], None]) -> Any:
        """Invoke `callback` once, no earlier than `delay` seconds from now."""
        ...

    def cancel(self, handle: Any) -> None:
        """Cancel a pending callback. Cancelling a fired handle is a no-op."""
        ...


class AsyncioScheduler:
    """Scheduler backed by the running event loop's `call_later`."""

    def after(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = asyncio.get_running_loop()
        return loop.call_later(delay, callback)

    def cancel(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()
