"""uiflow.channels.channel

Broadcast channels: the unit of cross-flow shared state.

A channel is a single mutable value cell with synchronous subscriber
notification. Channels live outside any runner, so several runners (and any
other code) can share one instance.

Key semantics:
- `emit()` commits the new value, then notifies every listener registered at
  the time of the call (snapshot; listeners added or removed during the pass
  do not change it).
- A listener that raises is logged and skipped; delivery continues.
- `subscribe()` returns a `Subscription` token. Tokens are independent, even
  for the same listener, and cancelling one is idempotent.
"""

from __future__ import annotations

import itertools
from typing import Any, Callable, Dict, Generic, TypeVar, Union

from ..logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

Listener = Callable[[], None]
Updater = Union[T, Callable[[T], T]]

_token_counter = itertools.count(1)


class Subscription:
    """Registration token returned by `Channel.subscribe()`.

    Calling the token is the same as `unsubscribe()`, so it can be used
    wherever an unsubscribe function is expected.
    """

    __slots__ = ("_channel", "_token")

    def __init__(self, channel: "Channel[Any]", token: int):
        self._channel = channel
        self._token = token

    @property
    def token(self) -> int:
        return self._token

    @property
    def active(self) -> bool:
        return self._channel._has(self._token)

    def unsubscribe(self) -> bool:
        """Remove the registration. Returns False if it was already removed."""
        return self._channel._remove(self._token)

    def __call__(self) -> bool:
        return self.unsubscribe()

    def __repr__(self) -> str:
        return f"Subscription(token={self._token}, active={self.active})"


class Channel(Generic[T]):
    """A shared, observable value cell."""

    def __init__(self, initial: T):
        self._value: T = initial
        self._listeners: Dict[int, Listener] = {}

    def get(self) -> T:
        return self._value

    @property
    def value(self) -> T:
        return self._value

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def emit(self, update: Updater[T]) -> None:
        """Commit a new value (or `update(prev)` when callable) and notify."""
        if callable(update):
            self._value = update(self._value)
        else:
            self._value = update

        # Notification order is unspecified; do not rely on it.
        for listener in list(self._listeners.values()):
            try:
                listener()
            except Exception:
                logger.exception("Channel listener raised; continuing with remaining listeners")

    def subscribe(self, listener: Listener) -> Subscription:
        if not callable(listener):
            raise TypeError("listener must be callable")
        token = next(_token_counter)
        self._listeners[token] = listener
        return Subscription(self, token)

    def unsubscribe(self, subscription: Subscription) -> bool:
        if subscription._channel is not self:
            return False
        return self._remove(subscription.token)

    # ---------------------------------------------------------------------
    # Internals
    # ---------------------------------------------------------------------

    def _has(self, token: int) -> bool:
        return token in self._listeners

    def _remove(self, token: int) -> bool:
        return self._listeners.pop(token, None) is not None

    def __repr__(self) -> str:
        return f"Channel(value={self._value!r}, subscribers={len(self._listeners)})"


def create_channel(initial: T) -> Channel[T]:
    """Create a channel. It is independent of any runner and can be shared."""
    return Channel(initial)
