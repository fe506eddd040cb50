"""uiflow.rendering.base

Rendering surface interface.

The engine never draws anything itself. Every evaluation ends with exactly one
`RenderFrame` handed to the host's `RenderSurface`; what a view *is* (a widget
class, a template name, a callable) is opaque to the runner.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from ..core.errors import FlowError
from ..core.models import FallbackProps, OutputHandle


class FrameKind(str, Enum):
    STEP = "step"  # a render step's view (interactive or preserved)
    FALLBACK = "fallback"  # an action step's placeholder view
    EMPTY = "empty"  # nothing to show
    ERROR = "error"  # degraded state (unknown step, failing input)


@dataclass(frozen=True)
class RenderFrame:
    """One render instruction."""

    kind: FrameKind
    step: str
    version: int
    busy: bool = False
    view: Any = None
    input: Any = None
    output: Optional[OutputHandle] = None
    props: Optional[FallbackProps] = None
    error: Optional[FlowError] = None

    @property
    def interactive(self) -> bool:
        return self.output is not None and self.output.interactive

    @classmethod
    def for_step(
        cls, *, step: str, version: int, view: Any, input: Any, output: OutputHandle, busy: bool = False
    ) -> "RenderFrame":
        return cls(kind=FrameKind.STEP, step=step, version=version, busy=busy, view=view, input=input, output=output)

    @classmethod
    def fallback(cls, *, step: str, version: int, view: Any, props: FallbackProps) -> "RenderFrame":
        return cls(kind=FrameKind.FALLBACK, step=step, version=version, busy=props.busy, view=view, props=props)

    @classmethod
    def empty(cls, *, step: str, version: int, busy: bool = False) -> "RenderFrame":
        return cls(kind=FrameKind.EMPTY, step=step, version=version, busy=busy)

    @classmethod
    def failed(cls, *, step: str, version: int, error: FlowError, busy: bool = False) -> "RenderFrame":
        return cls(kind=FrameKind.ERROR, step=step, version=version, busy=busy, error=error)


class RenderSurface(ABC):
    @abstractmethod
    def render(self, frame: RenderFrame) -> None: ...
