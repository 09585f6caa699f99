"""Configuration for flows.

`FlowConfig` is the per-engine configuration passed in code. `FlowSettings`
loads process-level defaults from:
- environment variables (prefixed with `ASYNC_FLOW_`)
- and a local `.env` file (if present)
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from async_flow.flow.constants import MergingPolicy, OnErrorAction
from async_flow.flow.policy import ErrorPolicy


class FlowConfig(BaseModel):
    """Configuration of a single `AsyncFlow`."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    name: str = Field(default="flow", description="Diagnostic label used in logs")
    init_value: Any = Field(default=None, description="Seed for the accumulated result")
    merging_policy: MergingPolicy = Field(
        default=MergingPolicy.NONE,
        description="Which queue boundary new tasks may merge into",
    )
    on_error_policy: ErrorPolicy = Field(
        default_factory=ErrorPolicy,
        description="Error policy for tasks that do not specify their own",
    )


class FlowSettings(BaseSettings):
    """Process-level defaults.

    Environment variables:
    - ASYNC_FLOW_LOG_LEVEL
    - ASYNC_FLOW_NAME
    - ASYNC_FLOW_MERGING_POLICY   (none | head | tail)
    - ASYNC_FLOW_ERROR_ACTION     (stop | pause | retry_first | retry_last |
                                   retry_after_pause | continue)
    - ASYNC_FLOW_ERROR_ATTEMPTS
    - ASYNC_FLOW_ERROR_DELAY      (seconds, optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `FlowSettings(_env_file=path_to_env)`.
    """

    log_level: str = Field(default="INFO", description="Root logging level")
    name: str = Field(default="flow", description="Default flow name")
    merging_policy: MergingPolicy = Field(default=MergingPolicy.NONE)
    error_action: OnErrorAction = Field(default=OnErrorAction.STOP)
    error_attempts: int = Field(default=1, gt=0)
    error_delay: float | None = Field(default=None, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="ASYNC_FLOW_",
        env_file=".env",
        extra="ignore",
    )

    def error_policy(self) -> ErrorPolicy:
        return ErrorPolicy(
            action=self.error_action,
            attempts=self.error_attempts,
            delay=self.error_delay,
        )

    def to_flow_config(self, init_value: Any = None) -> FlowConfig:
        return FlowConfig(
            name=self.name,
            init_value=init_value,
            merging_policy=self.merging_policy,
            on_error_policy=self.error_policy(),
        )
