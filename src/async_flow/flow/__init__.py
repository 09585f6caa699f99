"""The flow controller and its building blocks.

This package holds first-class types for:
- the running-state machine
- tasks and their settled outcomes
- error policies and their resolution
- merging at enqueue time
- the injected timer capability

The engine itself lives in `async_flow.flow.engine`.
"""

__all__: list[str] = []
