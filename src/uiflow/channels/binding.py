"""uiflow.channels.binding

Channel-map resolution and subscription ownership for a runner.

Hosts may hand a runner a new channel map at any time (for example on every
re-evaluation of the surrounding UI). Resolution keeps the bound instances
stable so that a structurally-new but identical map does not cause
unsubscribe/resubscribe churn.
"""

from __future__ import annotations

from typing import Callable, Dict, List, Mapping, Optional

from ..core.config import ChannelStrategy, coerce_strategy
from ..logging import get_logger
from .channel import Channel, Subscription

logger = get_logger(__name__)

ChannelMap = Dict[str, Channel]


def _same_bindings(previous: Mapping[str, Channel], candidate: Mapping[str, Channel]) -> bool:
    if len(previous) != len(candidate):
        return False
    for key, channel in candidate.items():
        if key not in previous or previous[key] is not channel:
            return False
    return True


def resolve_channels(
    incoming: Optional[Mapping[str, Channel]],
    strategy: ChannelStrategy = ChannelStrategy.STICKY,
    previous: Optional[ChannelMap] = None,
) -> Optional[ChannelMap]:
    """Resolve the channel map a runner should be bound to.

    - No incoming map resolves to None.
    - STICKY: keys already in `previous` keep their previous instance; new keys
      take the incoming one.
    - REPLACE: the incoming instances win.

    When the candidate has the same keys and identical instances as
    `previous`, `previous` itself is returned (referential stability).
    """
    if incoming is None:
        return None

    strategy = coerce_strategy(strategy)
    if strategy == ChannelStrategy.STICKY:
        candidate: ChannelMap = {}
        for key, channel in incoming.items():
            if previous is not None and key in previous:
                candidate[key] = previous[key]
            else:
                candidate[key] = channel
    else:
        candidate = dict(incoming)

    if previous is not None and _same_bindings(previous, candidate):
        return previous
    return candidate


class ChannelBinding:
    """Owns the resolved channel map of one runner and its subscriptions.

    `listener_factory(key)` builds the zero-argument listener registered on the
    channel bound to `key`.
    """

    def __init__(self, listener_factory: Callable[[str], Callable[[], None]]):
        self._listener_factory = listener_factory
        self._resolved: Optional[ChannelMap] = None
        self._subscriptions: List[Subscription] = []

    @property
    def channels(self) -> Optional[ChannelMap]:
        return self._resolved

    @property
    def subscription_count(self) -> int:
        return sum(1 for s in self._subscriptions if s.active)

    def bind(
        self,
        incoming: Optional[Mapping[str, Channel]],
        strategy: ChannelStrategy = ChannelStrategy.STICKY,
    ) -> bool:
        """Apply a (possibly new) channel map. Returns True if the binding changed."""
        resolved = resolve_channels(incoming, strategy, self._resolved)
        if resolved is self._resolved:
            return False

        self._unsubscribe_all()
        self._resolved = resolved
        if resolved:
            for key, channel in resolved.items():
                self._subscriptions.append(channel.subscribe(self._listener_factory(key)))
        logger.debug("Rebound channels: %s", sorted(resolved) if resolved else None)
        return True

    def release(self) -> None:
        """Drop every subscription. The resolved map is kept for inspection."""
        self._unsubscribe_all()

    def _unsubscribe_all(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
