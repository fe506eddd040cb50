"""uiflow.core.models

Step descriptors and the small value types that flow between the runner,
step callbacks and the rendering surface.

A step is an explicit tagged variant:
- `RenderStep`: computes an input, is rendered with a view, and waits for an
  output event emitted through an `OutputHandle`.
- `ActionStep`: computes an input, runs an (optionally async) action, and
  transitions on its own. It may declare how the surface looks meanwhile
  (`ActionRender`).

The variant is fixed when the flow is defined; plain mappings are classified
once by `step_from_dict`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Mapping,
    Optional,
    Union,
)

from .errors import ConfigurationError

if TYPE_CHECKING:
    from ..channels.channel import Channel

FlowData = Dict[str, Any]
Channels = Optional[Mapping[str, "Channel"]]
NextStep = Optional[str]

InputFn = Callable[[FlowData, FlowData, Channels], Any]
ActionFn = Callable[[Any, FlowData, FlowData, Channels], Any]
OnOutputFn = Callable[[FlowData, FlowData, Any, Channels], Union[NextStep, Awaitable[NextStep]]]


class StepKind(str, Enum):
    RENDER = "render"
    ACTION = "action"


class ActionRenderMode(str, Enum):
    NONE = "none"
    PRESERVE_PREVIOUS = "preserve-previous"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ActionRender:
    """What the surface shows while an action step is current."""

    mode: ActionRenderMode = ActionRenderMode.NONE
    view: Any = None

    def __post_init__(self) -> None:
        try:
            mode = ActionRenderMode(self.mode)
        except ValueError:
            raise ConfigurationError(f"Unsupported action render mode '{self.mode}'") from None
        object.__setattr__(self, "mode", mode)
        if mode == ActionRenderMode.FALLBACK and self.view is None:
            raise ConfigurationError("Fallback action render requires a view")

    @classmethod
    def none(cls) -> "ActionRender":
        return cls(mode=ActionRenderMode.NONE)

    @classmethod
    def preserve_previous(cls) -> "ActionRender":
        return cls(mode=ActionRenderMode.PRESERVE_PREVIOUS)

    @classmethod
    def fallback(cls, view: Any) -> "ActionRender":
        return cls(mode=ActionRenderMode.FALLBACK, view=view)


def _require_callable(step_name: str, attr: str, value: Any) -> None:
    if not callable(value):
        raise ConfigurationError(f"Step '{step_name}' requires a callable '{attr}'")


@dataclass(frozen=True)
class RenderStep:
    """A step rendered by the surface; waits for an emitted output."""

    input: InputFn
    view: Any
    on_output: OnOutputFn

    @property
    def kind(self) -> StepKind:
        return StepKind.RENDER

    def validate(self, name: str) -> None:
        _require_callable(name, "input", self.input)
        _require_callable(name, "on_output", self.on_output)
        if self.view is None:
            raise ConfigurationError(f"Render step '{name}' requires a view")


@dataclass(frozen=True)
class ActionStep:
    """A step executing a task as soon as it becomes current."""

    input: InputFn
    action: ActionFn
    on_output: OnOutputFn
    render: ActionRender = field(default_factory=ActionRender.none)

    @property
    def kind(self) -> StepKind:
        return StepKind.ACTION

    def validate(self, name: str) -> None:
        _require_callable(name, "input", self.input)
        _require_callable(name, "action", self.action)
        _require_callable(name, "on_output", self.on_output)
        if not isinstance(self.render, ActionRender):
            raise ConfigurationError(f"Action step '{name}' has an invalid render policy")


StepDescriptor = Union[RenderStep, ActionStep]


def _coerce_action_render(name: str, raw: Any) -> ActionRender:
    if raw is None:
        return ActionRender.none()
    if isinstance(raw, ActionRender):
        return raw
    if isinstance(raw, (str, ActionRenderMode)):
        return ActionRender(mode=raw)
    if isinstance(raw, Mapping):
        return ActionRender(mode=raw.get("mode", ActionRenderMode.NONE), view=raw.get("view"))
    raise ConfigurationError(f"Action step '{name}' has an invalid render policy: {raw!r}")


def step_from_dict(name: str, raw: Mapping[str, Any]) -> StepDescriptor:
    """Classify a plain mapping as a render or action step (once).

    Accepted keys: `input`, `on_output` (or `onOutput`), and exactly one of
    `view` / `action`. Action steps may also carry `render`.
    """
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"Step '{name}' must be a RenderStep, ActionStep or mapping")

    on_output = raw.get("on_output", raw.get("onOutput"))
    has_view = raw.get("view") is not None
    has_action = raw.get("action") is not None

    if has_view and has_action:
        raise ConfigurationError(f"Step '{name}' declares both 'view' and 'action'")
    if not has_view and not has_action:
        raise ConfigurationError(f"Step '{name}' declares neither 'view' nor 'action'")

    step: StepDescriptor
    if has_action:
        step = ActionStep(
            input=raw.get("input"),
            action=raw["action"],
            on_output=on_output,
            render=_coerce_action_render(name, raw.get("render")),
        )
    else:
        step = RenderStep(input=raw.get("input"), view=raw["view"], on_output=on_output)
    step.validate(name)
    return step


class OutputHandle:
    """Handed to a rendered view; the view calls `emit(output)` when done.

    An inert handle (used when a previous step is shown while an action runs)
    discards everything it receives.
    """

    __slots__ = ("_sink", "_step", "_epoch")

    def __init__(self, step: str, epoch: int, sink: Optional[Callable[[int, Any], Any]] = None):
        self._step = step
        self._epoch = epoch
        self._sink = sink

    @property
    def step(self) -> str:
        return self._step

    @property
    def epoch(self) -> int:
        return self._epoch

    @property
    def interactive(self) -> bool:
        return self._sink is not None

    def emit(self, output: Any = None) -> Any:
        """Deliver an output. Returns the runner task processing it, or None."""
        if self._sink is None:
            return None
        return self._sink(self._epoch, output)

    def __repr__(self) -> str:
        return f"OutputHandle(step={self._step!r}, epoch={self._epoch}, interactive={self.interactive})"


@dataclass(frozen=True)
class FallbackProps:
    """Everything a fallback view receives while its action step is current."""

    input: Any
    domain: FlowData
    internal: FlowData
    channels: Channels
    step: str
    busy: bool


@dataclass(frozen=True)
class ChannelTransitionContext:
    """Argument passed to a `channel_transitions` resolver."""

    domain: FlowData
    internal: FlowData
    current_step: str
    channels: Channels
    channel_key: str


Resolver = Callable[[ChannelTransitionContext], Union[NextStep, Awaitable[NextStep]]]


@dataclass(frozen=True)
class RunnerState:
    """Point-in-time view of a runner (see `FlowRunner.snapshot()`)."""

    current_step: str
    domain: FlowData
    internal: FlowData
    busy: bool
    channels: Channels
    last_render_step: Optional[str]
    version: int
    epoch: int
