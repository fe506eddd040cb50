"""uiflow.core.config

Runner configuration.

A frozen `RunnerConfig` centralizes the knobs a host may tune per runner. The
defaults reproduce the engine's documented behavior, so most callers never
build one explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Union

from .errors import ConfigurationError

# Upper bound on consecutive action -> action transitions before the runner
# stops advancing. Mirrors a tick's `max_steps` guard against runaway graphs.
DEFAULT_MAX_AUTO_TRANSITIONS = 100


class ChannelStrategy(str, Enum):
    """How a runner treats a re-supplied channel map.

    - STICKY: keep the first instance seen per key; only new keys bind.
    - REPLACE: the incoming map is the source of truth.
    """

    STICKY = "sticky"
    REPLACE = "replace"


def coerce_strategy(value: Union[ChannelStrategy, str, None]) -> ChannelStrategy:
    if value is None:
        return ChannelStrategy.STICKY
    if isinstance(value, ChannelStrategy):
        return value
    try:
        return ChannelStrategy(str(value).strip().lower())
    except ValueError:
        raise ConfigurationError(
            f"Unsupported channel strategy '{value}'. Supported: "
            + ", ".join(s.value for s in ChannelStrategy)
        ) from None


@dataclass(frozen=True)
class RunnerConfig:
    """Configuration for a FlowRunner.

    Attributes:
        channel_strategy: default strategy for `FlowRunner.update_channels`
            (default: sticky)
        max_auto_transitions: maximum number of consecutive action-to-action
            transitions without reaching a render step (default: 100)

    Example:
        >>> config = RunnerConfig(channel_strategy="replace")
        >>> config.channel_strategy
        <ChannelStrategy.REPLACE: 'replace'>
    """

    channel_strategy: ChannelStrategy = ChannelStrategy.STICKY
    max_auto_transitions: int = DEFAULT_MAX_AUTO_TRANSITIONS

    def __post_init__(self) -> None:
        # Frozen dataclass: normalize through object.__setattr__.
        object.__setattr__(self, "channel_strategy", coerce_strategy(self.channel_strategy))
        if not isinstance(self.max_auto_transitions, int) or self.max_auto_transitions < 1:
            raise ConfigurationError("max_auto_transitions must be a positive integer")

    def with_strategy(self, strategy: Union[ChannelStrategy, str]) -> "RunnerConfig":
        """Return a copy using another channel strategy."""
        return replace(self, channel_strategy=coerce_strategy(strategy))
