"""
Event Channels

Channels and transfers report their lifecycle through a small set of
enum-tagged events. Listeners register per event and are called in
registration order.
"""

import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class ChannelEvent(Enum):
    """Events emitted by a LanChannel."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECEIVED = "received"      # (packet)
    LISTENING = "listening"    # (port)


class TransferEvent(Enum):
    """Events emitted by a Transfer."""
    STARTED = "started"
    PROGRESS = "progress"      # (percent)
    SUCCEEDED = "succeeded"
    FAILED = "failed"          # (reason)
    CANCELLED = "cancelled"


Listener = Callable[..., Any]


class EventEmitter:
    """Per-instance listener registry."""

    def __init__(self):
        self._listeners: Dict[Enum, List[Listener]] = defaultdict(list)

    def on(self, event: Enum, callback: Listener) -> Listener:
        """Register a callback for an event. Returns the callback."""
        self._listeners[event].append(callback)
        return callback

    def off(self, event: Enum, callback: Listener):
        """Remove a previously registered callback."""
        try:
            self._listeners[event].remove(callback)
        except ValueError:
            pass

    def emit(self, event: Enum, *args):
        for callback in list(self._listeners[event]):
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Listener error on {event.value}: {e}")
