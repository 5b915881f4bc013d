"""
WebSocket Endpoint Mixins.

Each mixin handles a single concern for WebSocket endpoints.

Mixins:
    MessageValidationMixin: Frame size checks
    HeartbeatMixin: Liveness recording and heartbeat replies
    ConnectionLifecycleMixin: Connect/disconnect logging and audit

Usage:
    class MyEndpoint(MessageValidationMixin, HeartbeatMixin, WebSocketEndpointBase):
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from fastapi import WebSocket

from collab_relay.components.connection.liveness import handle_heartbeat
from collab_relay.components.core.constants import WSCloseCode
from collab_relay.config.logging import get_logger

if TYPE_CHECKING:
    from collab_relay.components.connection.handle import ConnectionHandle
    from collab_relay.components.core.context import ConnectionContext
    from collab_relay.relay import SessionRelay

logger = get_logger(__name__)


# =============================================================================
# Protocols for mixin dependencies
# =============================================================================


class HasWebSocket(Protocol):
    """Protocol for classes with websocket attribute."""

    websocket: WebSocket
    endpoint_name: str
    context: "ConnectionContext | None"
    max_message_size: int


class HasHandle(Protocol):
    """Protocol for classes bound to a relay connection handle."""

    handle: "ConnectionHandle | None"
    relay: "SessionRelay"


# =============================================================================
# MessageValidationMixin
# =============================================================================


class MessageValidationMixin:
    """
    Mixin for inbound frame validation.

    Requires:
        - self.websocket: WebSocket
        - self.endpoint_name: str
        - self.context: ConnectionContext | None
        - self.max_message_size: int
        - self.relay: SessionRelay
    """

    async def validate_message_size(self: "HasWebSocket & HasHandle", data: str) -> bool:
        """
        Validate frame size against the configured limit.

        Returns:
            True if valid, False if too large (connection closed).
        """
        if len(data) > self.max_message_size:
            logger.warning(
                "Message size exceeded limit",
                endpoint=self.endpoint_name,
                identifier=self.context.identifier if self.context else "unknown",
                size=len(data),
                max_size=self.max_message_size,
            )
            self.relay.metrics.increment_frames_too_large_sync()
            if self.handle is not None:
                await self.handle.abort(WSCloseCode.MESSAGE_TOO_BIG, "Message too large")
            else:
                await self.websocket.close(
                    code=WSCloseCode.MESSAGE_TOO_BIG,
                    reason="Message too large",
                )
            return False
        return True


# =============================================================================
# HeartbeatMixin
# =============================================================================


class HeartbeatMixin:
    """
    Mixin for liveness handling.

    Any inbound frame counts as activity. Heartbeat frames are answered here
    and never reach the router.

    Requires:
        - self.handle: ConnectionHandle
    """

    def record_heartbeat(self: HasHandle) -> None:
        """Record inbound activity for this connection."""
        if self.handle is not None:
            self.handle.mark_alive()

    def answer_heartbeat(self: HasHandle, data: str) -> bool:
        """
        Handle ping/pong frames.

        Returns:
            True if the frame was a heartbeat and needs no further handling.
        """
        if self.handle is None:
            return False
        return handle_heartbeat(self.handle, data)


# =============================================================================
# ConnectionLifecycleMixin
# =============================================================================


class ConnectionLifecycleMixin:
    """
    Mixin for connection lifecycle logging.

    Requires:
        - self.endpoint_name: str
        - self.context: ConnectionContext | None
        - self.handle: ConnectionHandle | None
    """

    def _binding_fields(self: "HasWebSocket & HasHandle") -> dict[str, str | None]:
        if self.handle is None:
            return {}
        meta = self.handle.metadata
        return {"session_id": meta.session_id, "role": meta.role.value}

    def log_connect(self: HasWebSocket) -> None:
        """Log connection event."""
        if self.context is None:
            return
        logger.info("Client connected", endpoint=self.endpoint_name, connection=self.context.identifier)
        self.context.audit("CONNECT")

    def log_disconnect(self: "HasWebSocket & HasHandle", reason: str = "client_disconnect") -> None:
        """Log disconnection event, with the binding the connection had."""
        if self.context is None:
            return
        binding = self._binding_fields()
        logger.info(
            "Client disconnected",
            endpoint=self.endpoint_name,
            connection=self.context.identifier,
            reason=reason,
            **binding,
        )
        self.context.audit("DISCONNECT", reason=reason, **binding)

    def log_connect_rejected(self: HasWebSocket, reason: str) -> None:
        """Log connection rejection event."""
        logger.warning(
            "Connection rejected",
            endpoint=self.endpoint_name,
            identifier=self.context.identifier if self.context else "unknown",
            reason=reason,
        )
        if self.context:
            self.context.audit("REJECTED", reason=reason)


# =============================================================================
# Exports
# =============================================================================


__all__ = [
    "MessageValidationMixin",
    "HeartbeatMixin",
    "ConnectionLifecycleMixin",
    # Protocols
    "HasWebSocket",
    "HasHandle",
]
