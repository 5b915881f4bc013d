"""
Connection management components.

Handles connection lifecycle: handles, outbound queues, liveness.
"""

from collab_relay.components.connection.handle import (
    ConnectionHandle,
    ConnectionMetadata,
    Role,
    Transport,
)
from collab_relay.components.connection.liveness import LivenessMonitor, handle_heartbeat

__all__ = [
    "ConnectionHandle",
    "ConnectionMetadata",
    "Role",
    "Transport",
    "LivenessMonitor",
    "handle_heartbeat",
]
