"""
WebSocket endpoint components.
"""

from collab_relay.components.endpoints.base import WebSocketEndpointBase
from collab_relay.components.endpoints.handlers import SessionEndpoint
from collab_relay.components.endpoints.mixins import (
    ConnectionLifecycleMixin,
    HeartbeatMixin,
    MessageValidationMixin,
)

__all__ = [
    "WebSocketEndpointBase",
    "SessionEndpoint",
    "ConnectionLifecycleMixin",
    "HeartbeatMixin",
    "MessageValidationMixin",
]
