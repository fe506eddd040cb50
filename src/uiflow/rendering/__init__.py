"""
uiflow.rendering

Rendering surface contract plus an in-memory recording surface.
"""

from .base import FrameKind, RenderFrame, RenderSurface
from .in_memory import InMemoryRenderSurface

__all__ = [
    "FrameKind",
    "RenderFrame",
    "RenderSurface",
    "InMemoryRenderSurface",
]
