"""
WebSocket Endpoint Base Class.

Owns the transport side of one connection: accept, register with the relay,
read frames, and always run the relay's disconnect cleanup on the way out.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from collab_relay.components.core.constants import RelayConstants, WSCloseCode
from collab_relay.components.core.context import ConnectionContext
from collab_relay.components.core.errors import TransportFailureError
from collab_relay.components.endpoints.mixins import (
    ConnectionLifecycleMixin,
    HeartbeatMixin,
    MessageValidationMixin,
)
from collab_relay.config.logging import get_logger
from collab_relay.infrastructure.correlation import bind_connection_id, reset_connection_id

if TYPE_CHECKING:
    from collab_relay.components.connection.handle import ConnectionHandle
    from collab_relay.relay import SessionRelay

logger = get_logger(__name__)


class WebSocketEndpointBase(
    MessageValidationMixin,
    HeartbeatMixin,
    ConnectionLifecycleMixin,
    ABC,
):
    """
    Base class for WebSocket endpoints.

    Encapsulates common patterns:
    - Connection lifecycle (accept, register, message loop, cleanup)
    - Frame size validation
    - Heartbeat handling
    - Audit logging

    Subclasses implement:
    - register_connection(): Attach the handle to the relay
    - unregister_connection(): Run the relay's cleanup path
    - handle_message(): Process non-heartbeat frames

    Usage:
        endpoint = SessionEndpoint(websocket, relay)
        await endpoint.run()
    """

    def __init__(
        self,
        websocket: WebSocket,
        relay: "SessionRelay",
        endpoint_name: str,
        receive_timeout: float = RelayConstants.WS_RECEIVE_TIMEOUT,
        max_message_size: int = 64 * 1024,
    ):
        """
        Initialize the endpoint handler.

        Args:
            websocket: The WebSocket connection.
            relay: SessionRelay instance.
            endpoint_name: Name for logging (e.g., "/ws").
            receive_timeout: Seconds without any inbound frame before closing.
            max_message_size: Largest accepted frame, in characters.
        """
        self.websocket = websocket
        self.relay = relay
        self.endpoint_name = endpoint_name
        self.receive_timeout = receive_timeout
        self.max_message_size = max_message_size

        self.handle: ConnectionHandle | None = None
        self.context: ConnectionContext | None = None
        self._is_running = False

    @abstractmethod
    def register_connection(self, handle: "ConnectionHandle") -> None:
        """
        Register the connection with the relay.

        Raises:
            ConnectionError: If the relay refuses the connection.
        """

    @abstractmethod
    async def unregister_connection(self, handle: "ConnectionHandle") -> None:
        """Run the relay's disconnect cleanup for this connection."""

    @abstractmethod
    async def handle_message(self, data: str) -> None:
        """Handle a non-heartbeat frame."""

    async def run(self) -> None:
        """
        Main entry point - run the WebSocket endpoint.

        Handles the complete lifecycle:
        1. Accept and wrap the socket in a handle
        2. Register with the relay
        3. Message loop
        4. Cleanup on disconnect, whatever the cause
        """
        await self.websocket.accept()
        self.handle = self.relay.new_handle(self.websocket)
        self.context = ConnectionContext.from_websocket(
            self.websocket, self.endpoint_name, self.handle
        )
        token = bind_connection_id(self.handle.connection_id)

        try:
            try:
                self.register_connection(self.handle)
            except ConnectionError as e:
                self.log_connect_rejected(str(e))
                await self.websocket.close(
                    code=WSCloseCode.SERVER_OVERLOADED,
                    reason="Server at capacity",
                )
                return

            self.log_connect()

            self._is_running = True
            reason = "client_disconnect"
            try:
                reason = await self._message_loop()
            except WebSocketDisconnect:
                reason = "client_disconnect"
            except TransportFailureError:
                reason = "transport_error"
            except Exception as e:
                # Anything else ends the connection like a disconnect
                reason = "transport_error"
                logger.warning(
                    "Connection failed",
                    endpoint=self.endpoint_name,
                    connection=self.handle.connection_id,
                    error=str(e),
                )
            finally:
                self._is_running = False
                self.log_disconnect(reason)
                await self.unregister_connection(self.handle)
        finally:
            reset_connection_id(token)

    async def _message_loop(self) -> str:
        """
        Main message processing loop.

        Returns:
            The reason the loop ended.
        """
        while self._is_running:
            if self.handle.is_closed:
                return "closed_by_relay"

            data = await self._receive_with_timeout()
            if data is None:
                logger.info(
                    "Connection timed out (no messages)",
                    endpoint=self.endpoint_name,
                    connection=self.handle.connection_id,
                    timeout=self.receive_timeout,
                )
                self.relay.metrics.increment_connection_timeouts_sync()
                await self.handle.abort(WSCloseCode.NORMAL, "Connection timeout")
                return "timeout"

            if not await self.validate_message_size(data):
                return "message_too_big"

            self.record_heartbeat()

            if self.answer_heartbeat(data):
                continue

            await self.handle_message(data)

        return "stopped"

    async def _receive_with_timeout(self) -> str | None:
        """
        Receive one frame with timeout.

        Binary frames are decoded as UTF-8; undecodable bytes are replaced
        and the frame then fails JSON decoding like any other bad frame.

        Returns:
            Frame text, or None on timeout.

        Raises:
            WebSocketDisconnect: The peer closed the connection.
            TransportFailureError: The socket can no longer be read.
        """
        try:
            message = await asyncio.wait_for(
                self.websocket.receive(),
                timeout=self.receive_timeout,
            )
        except asyncio.TimeoutError:
            return None
        except RuntimeError as e:
            # Starlette refuses to receive once the socket is closed
            raise TransportFailureError(str(e), connection=self.handle.connection_id) from e

        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", WSCloseCode.NORMAL))
        text = message.get("text")
        if text is not None:
            return text
        return (message.get("bytes") or b"").decode("utf-8", errors="replace")
