"""CLI entrypoint.

`async-flow demo` runs a small flow of symbol tasks so the error and merging
policies can be tried from the shell.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from typing import Any

from pydantic import ValidationError

from async_flow import __version__
from async_flow.config import FlowSettings
from async_flow.errors import FlowConfigurationError
from async_flow.flow.constants import MergingPolicy, OnErrorAction, RunningState, TaskMerger
from async_flow.flow.engine import AsyncFlow
from async_flow.flow.policy import ErrorPolicy
from async_flow.flow.task import FlowTask
from async_flow.logging import configure_logging

logger = logging.getLogger(__name__)


class DemoTaskError(RuntimeError):
    pass


class SymbolTask(FlowTask):
    """Appends its symbol to the accumulated string after `interval` seconds."""

    def __init__(
        self, *, symbol: str, interval: float, order: list[str], failures: int = 0
    ) -> None:
        super().__init__(func=self._work, merger=TaskMerger.BASIC)
        self.symbol = symbol
        self.interval = interval
        self._order = order
        self._failures_left = failures

    async def _work(self, prior: str) -> str:
        await asyncio.sleep(self.interval)
        if self._failures_left > 0:
            self._failures_left -= 1
            raise DemoTaskError(f"task {self.symbol!r} failed")
        self._order.append(self.symbol)
        return prior + self.symbol

    def equals(self, other: FlowTask) -> bool:
        return (
            isinstance(other, SymbolTask)
            and self.symbol == other.symbol
            and self.interval == other.interval
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="async-flow",
        description="Sequential task-flow controller",
    )
    parser.add_argument("--version", action="version", version=f"async-flow {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    demo = subparsers.add_parser("demo", help="Run a flow of symbol tasks and print the result")
    demo.add_argument("--symbols", default="abc", help="Symbols to enqueue, one task each")
    demo.add_argument(
        "--interval",
        type=float,
        default=0.01,
        help="Seconds each task takes",
    )
    demo.add_argument(
        "--fail",
        default="",
        help="Symbols whose tasks fail, e.g. 'b'",
    )
    demo.add_argument(
        "--fail-times",
        type=int,
        default=1,
        help="How many runs of each failing task fail before it succeeds",
    )
    demo.add_argument(
        "--action",
        choices=[a.value for a in OnErrorAction],
        default=None,
        help="Error action (defaults to ASYNC_FLOW_ERROR_ACTION)",
    )
    demo.add_argument("--attempts", type=int, default=None, help="Total attempts per task")
    demo.add_argument("--delay", type=float, default=None, help="Retry delay in seconds")
    demo.add_argument(
        "--merging",
        choices=[m.value for m in MergingPolicy],
        default=None,
        help="Merging policy (defaults to ASYNC_FLOW_MERGING_POLICY)",
    )
    demo.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Give up waiting for the flow to drain after this many seconds",
    )
    return parser


def _error_policy(args: argparse.Namespace, settings: FlowSettings) -> ErrorPolicy:
    base = settings.error_policy()
    updates: dict[str, Any] = {}
    if args.action is not None:
        updates["action"] = OnErrorAction(args.action)
    if args.attempts is not None:
        updates["attempts"] = args.attempts
    if args.delay is not None:
        updates["delay"] = args.delay
    try:
        return ErrorPolicy.model_validate({**dict(base), **updates})
    except ValidationError as e:
        raise FlowConfigurationError(f"Malformed error policy: {e}") from e


async def _wait_until_settled(flow: AsyncFlow, *, timeout: float) -> bool:
    """Wait for a final drain or a halt. Returns False on timeout."""

    waiters = {
        asyncio.ensure_future(flow.wait_until_empty()),
        asyncio.ensure_future(flow.wait_until_halted()),
    }
    done, pending = await asyncio.wait(
        waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
    )
    for waiter in pending:
        waiter.cancel()
    return bool(done)


async def _run_demo(args: argparse.Namespace, settings: FlowSettings) -> dict[str, object]:
    config = settings.to_flow_config(init_value="")
    merging = MergingPolicy(args.merging) if args.merging else config.merging_policy
    flow = AsyncFlow(
        config,
        merging_policy=merging,
        on_error_policy=_error_policy(args, settings),
    )

    order: list[str] = []
    for symbol in args.symbols:
        failures = args.fail_times if symbol in args.fail else 0
        flow.add_task(
            SymbolTask(symbol=symbol, interval=args.interval, order=order, failures=failures)
        )

    flow.start()
    drained = await _wait_until_settled(flow, timeout=args.timeout)
    if not drained:
        flow.stop()

    state = flow.get_running_state()
    return {
        "result": flow.result,
        "order": order,
        "state": state.value,
        "drained": drained and state is RunningState.RUNNING,
    }


def _cmd_demo(args: argparse.Namespace, settings: FlowSettings) -> int:
    summary = asyncio.run(_run_demo(args, settings))
    print(json.dumps(summary, ensure_ascii=False))
    return 0 if summary["drained"] else 1


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = FlowSettings()
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        if args.command == "demo":
            return _cmd_demo(args, settings)
    except FlowConfigurationError as e:
        logger.error("Invalid flow configuration", extra={"error": str(e)})
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
