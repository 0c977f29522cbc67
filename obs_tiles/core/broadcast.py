"""
core/broadcast.py — In-process broadcast channels with cancellable subscriptions.

publish() calls every live listener synchronously, in subscription order, before
returning. Since all publishing happens on the event loop thread, each
subscriber sees messages in exactly the order they were published.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, Optional

log = logging.getLogger(__name__)

Listener = Callable[[Any], None]


class Channel(str, Enum):
    CLIENT_STATE = "client_state"
    OPTIONS = "options"


class Subscription:
    """Handle returned by Broadcaster.subscribe(). cancel() is idempotent."""

    def __init__(self, broadcaster: "Broadcaster", channel: Channel, listener: Listener):
        self.channel = channel
        self.listener = listener
        self._broadcaster = broadcaster
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._broadcaster._remove(self)


class Broadcaster:
    def __init__(self):
        self._subscriptions: dict[Channel, list[Subscription]] = defaultdict(list)

    def subscribe(self, channel: Channel, listener: Listener) -> Subscription:
        sub = Subscription(self, channel, listener)
        self._subscriptions[channel].append(sub)
        log.debug(f"Subscribed to {channel.value}. Total: {len(self._subscriptions[channel])}")
        return sub

    def _remove(self, sub: Subscription) -> None:
        subs = self._subscriptions[sub.channel]
        if sub in subs:
            subs.remove(sub)
        log.debug(f"Unsubscribed from {sub.channel.value}. Total: {len(subs)}")

    def publish(self, channel: Channel, message: Any) -> int:
        """Deliver message to every live listener on channel. Returns the delivery count."""
        delivered = 0
        for sub in list(self._subscriptions[channel]):
            # A listener earlier in this loop may have cancelled a later one
            if not sub.active:
                continue
            try:
                sub.listener(message)
                delivered += 1
            except Exception as e:
                log.error(f"Listener error on {channel.value}: {e}")
        return delivered

    def count(self, channel: Optional[Channel] = None) -> int:
        if channel is not None:
            return len(self._subscriptions[channel])
        return sum(len(subs) for subs in self._subscriptions.values())
