"""
Concrete WebSocket Endpoint Implementations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import WebSocket

from collab_relay.components.endpoints.base import WebSocketEndpointBase

if TYPE_CHECKING:
    from collab_relay.components.connection.handle import ConnectionHandle
    from collab_relay.relay import SessionRelay


class SessionEndpoint(WebSocketEndpointBase):
    """
    WebSocket endpoint for hosts and members.

    Every connection starts Unbound; `create` or `join` decides its role.
    No authentication: the owner token sent with `create` is the only
    client identity.
    """

    def __init__(self, websocket: WebSocket, relay: "SessionRelay"):
        settings = relay.settings
        super().__init__(
            websocket=websocket,
            relay=relay,
            endpoint_name="/ws",
            receive_timeout=settings.ws_receive_timeout,
            max_message_size=settings.ws_max_message_size,
        )

    def register_connection(self, handle: "ConnectionHandle") -> None:
        """Attach to the relay and start the writer task."""
        self.relay.connect(handle)

    async def unregister_connection(self, handle: "ConnectionHandle") -> None:
        """Leave or close whatever session the connection was bound to."""
        await self.relay.disconnect(handle)

    async def handle_message(self, data: str) -> None:
        """Forward a command frame to the router."""
        await self.relay.submit(self.handle, data)
