"""
uiflow

Declarative, step-based flow runner (render → output → transition).

This package provides a small orchestration core:
- flow definitions (named render/action steps + a start step)
- a runner state machine driving one flow instance on asyncio
- broadcast channels shared between runners, with stable rebinding

Drawing is left to the host through the `RenderSurface` interface.
"""

from .channels import Channel, ChannelBinding, Subscription, create_channel, resolve_channels
from .core.config import ChannelStrategy, RunnerConfig
from .core.errors import (
    ChannelResolverError,
    ConfigurationError,
    FlowError,
    StepExecutionError,
    UnknownStepError,
)
from .core.flow import FlowDefinition, define_flow
from .core.models import (
    ActionRender,
    ActionRenderMode,
    ActionStep,
    ChannelTransitionContext,
    FallbackProps,
    OutputHandle,
    RenderStep,
    RunnerState,
    StepKind,
    step_from_dict,
)
from .core.runner import FlowRunner
from .rendering import FrameKind, InMemoryRenderSurface, RenderFrame, RenderSurface

__all__ = [
    # Channels
    "Channel",
    "ChannelBinding",
    "Subscription",
    "create_channel",
    "resolve_channels",
    # Flow definition
    "FlowDefinition",
    "define_flow",
    "ActionRender",
    "ActionRenderMode",
    "ActionStep",
    "RenderStep",
    "StepKind",
    "step_from_dict",
    # Runner
    "FlowRunner",
    "RunnerConfig",
    "ChannelStrategy",
    "RunnerState",
    "OutputHandle",
    "FallbackProps",
    "ChannelTransitionContext",
    # Rendering
    "RenderSurface",
    "RenderFrame",
    "FrameKind",
    "InMemoryRenderSurface",
    # Errors
    "FlowError",
    "ConfigurationError",
    "UnknownStepError",
    "StepExecutionError",
    "ChannelResolverError",
]
