"""uiflow.core.flow

Flow definitions.

A flow is an immutable description: named steps, a start step, optional
per-channel transition resolvers, and an optional factory for runner-owned
internal data. `define_flow` is the only validated boundary; a bad flow fails
here, synchronously, never at first render.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, List, Mapping, Optional

from .errors import ConfigurationError
from .models import ActionStep, FlowData, RenderStep, Resolver, StepDescriptor, step_from_dict


@dataclass(frozen=True)
class FlowDefinition:
    steps: Mapping[str, StepDescriptor]
    start: str
    channel_transitions: Optional[Mapping[str, Resolver]] = None
    create_internal_data: Optional[Callable[[], FlowData]] = None

    @property
    def step_names(self) -> List[str]:
        return list(self.steps.keys())

    def has_step(self, name: Any) -> bool:
        return isinstance(name, str) and name in self.steps

    def get_step(self, name: str) -> Optional[StepDescriptor]:
        return self.steps.get(name)

    def resolver_for(self, channel_key: str) -> Optional[Resolver]:
        if not self.channel_transitions:
            return None
        return self.channel_transitions.get(channel_key)


def _normalize_step(name: Any, raw: Any) -> StepDescriptor:
    if not isinstance(name, str) or not name:
        raise ConfigurationError(f"Step names must be non-empty strings, got {name!r}")
    if isinstance(raw, (RenderStep, ActionStep)):
        raw.validate(name)
        return raw
    return step_from_dict(name, raw)


def define_flow(
    steps: Mapping[str, Any],
    *,
    start: str,
    channel_transitions: Optional[Mapping[str, Resolver]] = None,
    create_internal_data: Optional[Callable[[], FlowData]] = None,
) -> FlowDefinition:
    """Validate and freeze a flow.

    Raises:
        ConfigurationError: if `start` is missing or not a step, if a step is
            malformed, or if a resolver / the internal-data factory is not
            callable.
    """
    if not isinstance(steps, Mapping):
        raise ConfigurationError("steps must be a mapping of step name -> step")
    if not start or start not in steps:
        raise ConfigurationError(f"define_flow: 'start' must be provided and exist in steps. Got {start!r}.")

    normalized = {name: _normalize_step(name, raw) for name, raw in steps.items()}

    transitions = None
    if channel_transitions is not None:
        if not isinstance(channel_transitions, Mapping):
            raise ConfigurationError("channel_transitions must be a mapping of channel key -> resolver")
        for key, resolver in channel_transitions.items():
            if not callable(resolver):
                raise ConfigurationError(f"channel_transitions['{key}'] must be callable")
        transitions = MappingProxyType(dict(channel_transitions))

    if create_internal_data is not None and not callable(create_internal_data):
        raise ConfigurationError("create_internal_data must be callable")

    return FlowDefinition(
        steps=MappingProxyType(normalized),
        start=start,
        channel_transitions=transitions,
        create_internal_data=create_internal_data,
    )
