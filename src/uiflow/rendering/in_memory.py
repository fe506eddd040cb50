"""uiflow.rendering.in_memory

In-memory rendering surface (testing/headless hosts).

Frames are recorded in order. Views that are callables are invoked the way a UI
toolkit would mount them: `view(input, output)` for step frames and
`view(props)` for fallback frames; the return value is kept as the "rendered"
result of that frame.
"""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

from .base import FrameKind, RenderFrame, RenderSurface


class InMemoryRenderSurface(RenderSurface):
    def __init__(self):
        self._frames: List[Tuple[RenderFrame, Any]] = []

    def render(self, frame: RenderFrame) -> None:
        self._frames.append((frame, self._mount(frame)))

    @staticmethod
    def _mount(frame: RenderFrame) -> Any:
        if not callable(frame.view):
            return None
        if frame.kind == FrameKind.STEP:
            return frame.view(frame.input, frame.output)
        if frame.kind == FrameKind.FALLBACK:
            return frame.view(frame.props)
        return None

    @property
    def frames(self) -> List[RenderFrame]:
        return [f for f, _ in self._frames]

    @property
    def rendered(self) -> List[Any]:
        return [r for _, r in self._frames]

    @property
    def last_frame(self) -> Optional[RenderFrame]:
        return self._frames[-1][0] if self._frames else None

    @property
    def last_rendered(self) -> Any:
        return self._frames[-1][1] if self._frames else None

    def emit(self, output: Any = None) -> Any:
        """Emit through the last frame's output handle (like a user clicking)."""
        frame = self.last_frame
        if frame is None or frame.output is None:
            raise RuntimeError("Nothing rendered with an output handle")
        return frame.output.emit(output)

    def clear(self) -> None:
        self._frames.clear()
