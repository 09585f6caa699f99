"""Exceptions raised by the flow controller."""

from __future__ import annotations


class FlowError(Exception):
    """Base class for flow controller errors."""


class FlowConfigurationError(FlowError, ValueError):
    """Raised when a flow, task or error policy is misconfigured.

    Configuration errors fail fast at construction or registration time; they
    are never produced by a task's own work.
    """
