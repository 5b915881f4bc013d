"""
Event delivery components.
"""

from collab_relay.components.events.bus import EventBus, EventEnvelope, Subscriber

__all__ = ["EventBus", "EventEnvelope", "Subscriber"]
