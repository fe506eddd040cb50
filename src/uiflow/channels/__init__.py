"""
uiflow.channels

Shared observable values and the per-runner binding that subscribes to them.
Channels are created outside any runner so that independent flows can talk.
"""

from .binding import ChannelBinding, resolve_channels
from .channel import Channel, Subscription, create_channel

__all__ = [
    "Channel",
    "Subscription",
    "create_channel",
    "ChannelBinding",
    "resolve_channels",
]
