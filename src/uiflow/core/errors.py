"""uiflow.core.errors

Error taxonomy.

Only `ConfigurationError` ever escapes to callers (synchronously, at definition
time). The other errors are caught at the runner boundary, logged, and kept on
`FlowRunner.last_error` so hosts can inspect them.
"""

from __future__ import annotations

from typing import Optional


class FlowError(Exception):
    """Base class for every uiflow error."""


class ConfigurationError(FlowError, ValueError):
    """Raised when a flow definition (or one of its steps) is invalid."""


class UnknownStepError(FlowError, LookupError):
    """The runner's current step is not part of the flow."""

    def __init__(self, step: str):
        super().__init__(f"Unknown step '{step}'")
        self.step = step


class StepExecutionError(FlowError):
    """A step callback (`input`, `action` or `on_output`) raised."""

    def __init__(self, step: str, phase: str, message: Optional[str] = None):
        super().__init__(message or f"Step '{step}' failed during {phase}")
        self.step = step
        self.phase = phase


class ChannelResolverError(FlowError):
    """A `channel_transitions` resolver raised."""

    def __init__(self, channel_key: str, step: str):
        super().__init__(f"Channel transition resolver for '{channel_key}' failed on step '{step}'")
        self.channel_key = channel_key
        self.step = step
