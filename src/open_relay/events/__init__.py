"""Outbound notifications for Open Relay."""

from open_relay.events.bus import EventBus
from open_relay.events.callbacks import RunCallbacks

__all__ = ["EventBus", "RunCallbacks"]
