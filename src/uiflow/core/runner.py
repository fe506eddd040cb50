"""uiflow.core.runner

Flow runner: the stateful engine bound to one flow and one data instance.

Key semantics:
- `start()` binds channels and evaluates the start step.
- Evaluating a render step hands its input and an `OutputHandle` to the
  surface, then waits. `OutputHandle.emit()` feeds `on_output`.
- Evaluating an action step launches its task exactly once per occurrence
  (epoch) of the step becoming current; the surface shows the step's busy
  render policy meanwhile.
- `on_output` (and channel resolvers) return an optional next step. A known
  name advances; `None`, an unknown name or the current step's own name keeps
  the step occurrence and re-renders.
- Channel emissions re-render, or transition when a resolver is registered
  for the channel key.

Concurrency:
Step bodies (`action`, `on_output`) run under a per-runner lock, so two of
them never overlap. Resolvers are not serialized behind in-flight actions.
When an action (or an async `on_output`) completes after the runner already
moved to another step occurrence, its data mutations stand but its transition
is discarded. Outputs emitted through a handle whose occurrence is gone are
dropped without calling `on_output`.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from typing import Any, Callable, Mapping, Optional, Set, Union

from .config import ChannelStrategy, RunnerConfig
from .errors import ChannelResolverError, FlowError, StepExecutionError, UnknownStepError
from .flow import FlowDefinition
from .models import (
    ActionRenderMode,
    ActionStep,
    ChannelTransitionContext,
    FallbackProps,
    FlowData,
    OutputHandle,
    RenderStep,
    RunnerState,
    StepKind,
)
from ..channels.binding import ChannelBinding, ChannelMap
from ..channels.channel import Channel
from ..logging import get_logger
from ..rendering.base import RenderFrame, RenderSurface

logger = get_logger(__name__)


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class FlowRunner:
    """Drives one flow instance."""

    def __init__(
        self,
        flow: FlowDefinition,
        initial_data: Optional[Mapping[str, Any]] = None,
        *,
        surface: RenderSurface,
        channels: Optional[Mapping[str, Channel]] = None,
        channel_strategy: Union[ChannelStrategy, str, None] = None,
        config: Optional[RunnerConfig] = None,
    ):
        if not isinstance(flow, FlowDefinition):
            raise TypeError("flow must be a FlowDefinition (see define_flow)")
        self._flow = flow
        self._surface = surface
        self._config: RunnerConfig = config or RunnerConfig()
        if channel_strategy is not None:
            self._config = self._config.with_strategy(channel_strategy)

        # One-time shallow copies: the caller's objects and the runner's are independent.
        internal = flow.create_internal_data() if flow.create_internal_data else None
        self._internal: FlowData = dict(internal or {})
        self._domain: FlowData = dict(initial_data or {})

        self._current_step: str = flow.start
        self._busy = False
        self._epoch = 0
        self._version = 0
        self._last_render_step: Optional[str] = None
        self._last_error: Optional[FlowError] = None

        # Epoch whose action task has been launched (at most one launch per epoch).
        self._action_epoch: Optional[int] = None
        self._auto_transitions = 0

        self._lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()
        self._binding = ChannelBinding(self._listener_for)
        self._pending_channels = channels
        self._started = False
        self._closed = False

    # ---------------------------------------------------------------------
    # Public API
    # ---------------------------------------------------------------------

    @property
    def flow(self) -> FlowDefinition:
        return self._flow

    @property
    def surface(self) -> RenderSurface:
        return self._surface

    @property
    def config(self) -> RunnerConfig:
        return self._config

    @property
    def current_step(self) -> str:
        return self._current_step

    @property
    def domain(self) -> FlowData:
        return self._domain

    @property
    def internal(self) -> FlowData:
        return self._internal

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def channels(self) -> Optional[ChannelMap]:
        return self._binding.channels

    @property
    def version(self) -> int:
        """Change counter, bumped after every data mutation point."""
        return self._version

    @property
    def epoch(self) -> int:
        """Number of times a step has become current since start."""
        return self._epoch

    @property
    def last_render_step(self) -> Optional[str]:
        return self._last_render_step

    @property
    def last_error(self) -> Optional[FlowError]:
        return self._last_error

    @property
    def started(self) -> bool:
        return self._started

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_tasks(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    def snapshot(self) -> RunnerState:
        channels = self.channels
        return RunnerState(
            current_step=self._current_step,
            domain=dict(self._domain),
            internal=dict(self._internal),
            busy=self._busy,
            channels=dict(channels) if channels is not None else None,
            last_render_step=self._last_render_step,
            version=self._version,
            epoch=self._epoch,
        )

    async def start(self) -> "FlowRunner":
        """Bind channels and evaluate the start step. Idempotent."""
        if self._closed:
            raise RuntimeError("FlowRunner is closed")
        if self._started:
            return self
        self._started = True
        self._binding.bind(self._pending_channels, self._config.channel_strategy)
        self._pending_channels = None
        logger.debug("Starting flow at step '%s'", self._current_step)
        self._evaluate()
        return self

    def update_channels(
        self,
        channels: Optional[Mapping[str, Channel]],
        strategy: Union[ChannelStrategy, str, None] = None,
    ) -> bool:
        """Re-supply the channel map. Returns True if the bound channels changed.

        Subscriptions are rebuilt (and the step re-rendered) only when the
        resolved map changes; see `uiflow.channels.binding.resolve_channels`.
        """
        if strategy is not None:
            self._config = self._config.with_strategy(strategy)
        if self._closed:
            return False
        if not self._started:
            self._pending_channels = channels
            return False
        changed = self._binding.bind(channels, self._config.channel_strategy)
        if changed:
            self._touch()
            self._render()
        return changed

    def transition_to(self, step: str) -> bool:
        """Move to `step` from outside the flow.

        Returns False for unknown steps, or when an action step cannot be
        launched (no running event loop). Naming the current step re-renders it.
        """
        if self._closed or not self._started:
            return False
        if not self._flow.has_step(step):
            logger.warning("Ignoring external transition to unknown step %r", step)
            return False
        self._auto_transitions = 0
        if step == self._current_step:
            self._touch()
            self._render()
            return True
        return self._enter(step)

    def rerender(self) -> None:
        """Render the current state again (for example after an external data edit)."""
        if self._started and not self._closed:
            self._touch()
            self._render()

    async def settle(self) -> None:
        """Wait until no task launched by this runner is pending."""
        while True:
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                return
            results = await asyncio.gather(*pending, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    raise result

    def close(self) -> None:
        """Release every channel subscription. Later events are ignored."""
        if self._closed:
            return
        self._closed = True
        self._binding.release()
        logger.debug("Closed runner on step '%s'", self._current_step)

    async def __aenter__(self) -> "FlowRunner":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"FlowRunner(step={self._current_step!r}, busy={self._busy}, "
            f"epoch={self._epoch}, version={self._version}, closed={self._closed})"
        )

    # ---------------------------------------------------------------------
    # Evaluation
    # ---------------------------------------------------------------------

    def _evaluate(self) -> None:
        step = self._flow.get_step(self._current_step)
        if step is not None and step.kind == StepKind.ACTION and self._action_epoch != self._epoch:
            self._action_epoch = self._epoch
            self._busy = True
            self._spawn(self._run_action, self._epoch, self._current_step, step)
        self._render()

    def _enter(self, name: str) -> bool:
        step = self._flow.get_step(name)
        if step is not None and step.kind == StepKind.ACTION and _running_loop() is None:
            error = StepExecutionError(
                name, "action", f"Step '{name}' cannot start its action without a running event loop"
            )
            self._last_error = error
            logger.error("%s; staying on '%s'", error, self._current_step)
            self._touch()
            self._render()
            return False
        previous = self._current_step
        self._current_step = name
        self._epoch += 1
        self._busy = False
        if step is not None and step.kind == StepKind.RENDER:
            self._auto_transitions = 0
        self._touch()
        logger.debug("Transition '%s' -> '%s' (epoch %d)", previous, name, self._epoch)
        self._evaluate()
        return True

    def _apply_transition(self, next_step: Any, origin_epoch: int) -> bool:
        if self._closed:
            return False
        if origin_epoch != self._epoch:
            if next_step is not None:
                logger.debug(
                    "Discarding transition to %r: the issuing step occurrence (epoch %d) is no longer current",
                    next_step,
                    origin_epoch,
                )
            self._touch()
            self._render()
            return False
        if next_step is not None and next_step == self._current_step:
            # Same step: re-render the current occurrence.
            self._touch()
            self._render()
            return False
        if next_step is not None and self._flow.has_step(next_step):
            return self._enter(next_step)
        if next_step is not None:
            logger.warning(
                "Step '%s' returned unknown next step %r; staying on current step",
                self._current_step,
                next_step,
            )
        self._touch()
        self._render()
        return False

    def _touch(self) -> None:
        self._version += 1

    # ---------------------------------------------------------------------
    # Rendering
    # ---------------------------------------------------------------------

    def _render(self) -> None:
        if self._closed:
            return
        name = self._current_step
        step = self._flow.get_step(name)
        if step is None:
            error = UnknownStepError(name)
            self._last_error = error
            logger.error("FlowRunner error: unknown step '%s'", name)
            frame = RenderFrame.failed(step=name, version=self._version, error=error, busy=self._busy)
        elif isinstance(step, ActionStep):
            frame = self._action_frame(name, step)
        else:
            self._last_render_step = name
            frame = self._step_frame(name, step, interactive=True)
        self._surface.render(frame)

    def _step_frame(self, name: str, step: RenderStep, *, interactive: bool) -> RenderFrame:
        try:
            value = step.input(self._domain, self._internal, self.channels)
        except Exception as e:
            error = self._step_error(name, "input", e)
            return RenderFrame.failed(step=name, version=self._version, error=error, busy=self._busy)
        sink = self._accept_output if interactive else None
        return RenderFrame.for_step(
            step=name,
            version=self._version,
            view=step.view,
            input=value,
            output=OutputHandle(name, self._epoch, sink),
            busy=self._busy,
        )

    def _action_frame(self, name: str, step: ActionStep) -> RenderFrame:
        policy = step.render
        if policy.mode == ActionRenderMode.PRESERVE_PREVIOUS:
            previous_name = self._last_render_step
            previous = self._flow.get_step(previous_name) if previous_name else None
            if isinstance(previous, RenderStep):
                # Visual only: the preserved view's outputs are discarded.
                return self._step_frame(previous_name, previous, interactive=False)
        elif policy.mode == ActionRenderMode.FALLBACK:
            try:
                value = step.input(self._domain, self._internal, self.channels)
            except Exception as e:
                error = self._step_error(name, "input", e)
                return RenderFrame.failed(step=name, version=self._version, error=error, busy=self._busy)
            props = FallbackProps(
                input=value,
                domain=self._domain,
                internal=self._internal,
                channels=self.channels,
                step=name,
                busy=self._busy,
            )
            return RenderFrame.fallback(step=name, version=self._version, view=policy.view, props=props)
        return RenderFrame.empty(step=name, version=self._version, busy=self._busy)

    # ---------------------------------------------------------------------
    # Step execution
    # ---------------------------------------------------------------------

    def _spawn(self, fn: Callable[..., Any], *args: Any) -> asyncio.Task:
        loop = asyncio.get_running_loop()
        task = loop.create_task(fn(*args))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_action(self, epoch: int, name: str, step: ActionStep) -> None:
        async with self._lock:
            if self._closed or epoch != self._epoch:
                logger.debug("Skipping action of step '%s': epoch %d is no longer current", name, epoch)
                return

            phase = "input"
            try:
                value = step.input(self._domain, self._internal, self.channels)
                phase = "action"
                output = await _maybe_await(step.action(value, self._domain, self._internal, self.channels))
                phase = "on_output"
                next_step = await _maybe_await(step.on_output(self._domain, self._internal, output, self.channels))
            except Exception as e:
                self._step_error(name, phase, e)
                if epoch == self._epoch:
                    self._busy = False
                self._touch()
                self._render()
                return

            if epoch == self._epoch:
                self._busy = False
                target = self._flow.get_step(next_step) if self._flow.has_step(next_step) else None
                if isinstance(target, ActionStep) and next_step != name:
                    self._auto_transitions += 1
                    if self._auto_transitions > self._config.max_auto_transitions:
                        error = StepExecutionError(
                            name,
                            "transition",
                            f"Step '{name}' exceeded max_auto_transitions "
                            f"({self._config.max_auto_transitions}) without reaching a render step",
                        )
                        self._last_error = error
                        logger.error("%s", error)
                        self._touch()
                        self._render()
                        return
            self._apply_transition(next_step, epoch)

    def _accept_output(self, epoch: int, output: Any) -> Optional[asyncio.Task]:
        if self._closed:
            logger.debug("Ignoring output emitted after close")
            return None
        return self._spawn(self._handle_output, epoch, output)

    async def _handle_output(self, epoch: int, output: Any) -> None:
        async with self._lock:
            if self._closed or epoch != self._epoch:
                logger.debug("Discarding output for stale step occurrence (epoch %d)", epoch)
                return
            name = self._current_step
            step = self._flow.get_step(name)
            if not isinstance(step, RenderStep):
                return
            try:
                next_step = await _maybe_await(step.on_output(self._domain, self._internal, output, self.channels))
            except Exception as e:
                self._step_error(name, "on_output", e)
                self._touch()
                self._render()
                return
            self._auto_transitions = 0
            self._apply_transition(next_step, epoch)

    def _step_error(self, name: str, phase: str, exc: BaseException) -> StepExecutionError:
        error = StepExecutionError(name, phase, f"Step '{name}' failed during {phase}: {exc}")
        error.__cause__ = exc
        self._last_error = error
        logger.error("FlowRunner step '%s' failed during %s", name, phase, exc_info=exc)
        return error

    # ---------------------------------------------------------------------
    # Channels
    # ---------------------------------------------------------------------

    def _listener_for(self, channel_key: str) -> Callable[[], None]:
        return functools.partial(self._on_channel_emit, channel_key)

    def _on_channel_emit(self, channel_key: str) -> None:
        if self._closed:
            return
        resolver = self._flow.resolver_for(channel_key)
        if resolver is None:
            self._touch()
            self._render()
            return

        epoch = self._epoch
        context = ChannelTransitionContext(
            domain=self._domain,
            internal=self._internal,
            current_step=self._current_step,
            channels=self.channels,
            channel_key=channel_key,
        )
        try:
            result = resolver(context)
        except Exception as e:
            self._resolver_error(channel_key, e)
            self._touch()
            self._render()
            return

        if inspect.isawaitable(result):
            try:
                self._spawn(self._await_resolver, channel_key, epoch, result)
            except RuntimeError:
                if inspect.iscoroutine(result):
                    result.close()
                raise
            return
        self._apply_resolved(result, epoch)

    async def _await_resolver(self, channel_key: str, epoch: int, pending: Any) -> None:
        try:
            next_step = await pending
        except Exception as e:
            self._resolver_error(channel_key, e)
            if not self._closed:
                self._touch()
                self._render()
            return
        self._apply_resolved(next_step, epoch)

    def _apply_resolved(self, next_step: Any, epoch: int) -> None:
        if self._closed:
            return
        self._auto_transitions = 0
        self._apply_transition(next_step, epoch)

    def _resolver_error(self, channel_key: str, exc: BaseException) -> ChannelResolverError:
        error = ChannelResolverError(channel_key, self._current_step)
        error.__cause__ = exc
        self._last_error = error
        logger.error("FlowRunner channel transition error for '%s'", channel_key, exc_info=exc)
        return error
