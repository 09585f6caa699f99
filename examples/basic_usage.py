#!/usr/bin/env python3
"""Programmatic flow example.

This demonstrates using the flow controller directly:

* load defaults from `.env` / environment
* queue tasks that each extend the previous result
* retry a flaky task with exponential backoff
* wait for the final drain and print the result
"""

from __future__ import annotations

import argparse
import asyncio
import itertools
import random
from typing import Sequence

from async_flow import AsyncFlow, ErrorPolicy, FlowSettings, FlowTask, OnErrorAction
from async_flow.logging import configure_logging


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a small flow (programmatic example).")
    parser.add_argument("--steps", type=int, default=5, help="Number of tasks to queue")
    parser.add_argument(
        "--failure-rate",
        type=float,
        default=0.3,
        help="Probability that a step fails on any given attempt",
    )
    return parser.parse_args(argv)


def _backoff(base: float = 0.05) -> ErrorPolicy:
    delays = (base * 2**n for n in itertools.count())
    return ErrorPolicy(action=OnErrorAction.RETRY_LAST, attempts=4, delay=lambda: next(delays))


def _step(index: int, failure_rate: float) -> FlowTask:
    async def work(prior: list[int]) -> list[int]:
        await asyncio.sleep(0.01)
        if random.random() < failure_rate:
            raise RuntimeError(f"step {index} failed")
        return [*prior, index]

    return FlowTask(
        func=work,
        on_success=lambda result: print(f"step {index} done: {result}"),
        on_error=lambda error: print(f"step {index}: {error}"),
    )


async def _run(args: argparse.Namespace, settings: FlowSettings) -> list[int]:
    flow = AsyncFlow(settings.to_flow_config(init_value=[]), on_error_policy=_backoff())
    for index in range(args.steps):
        flow.add_task(_step(index, args.failure_rate))
    flow.start()
    return await flow.wait_until_empty()


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = FlowSettings()
    configure_logging(settings.log_level)

    result = asyncio.run(_run(args, settings))
    print(f"Completed steps: {result}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
