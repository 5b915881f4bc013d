"""
Connection context for audit logging, and log sanitizing for client text.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any, TYPE_CHECKING

from collab_relay.config.logging import audit_ws_connection

if TYPE_CHECKING:
    from fastapi import WebSocket
    from collab_relay.components.connection.handle import ConnectionHandle


# C0/C1 controls, zero-width and bidi marks, bidi embeddings/isolates, BOM
_UNSAFE_CHARS = re.compile(
    r"[\x00-\x1f\x7f-\x9f\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]"
)
_ESCAPES = str.maketrans({"\\": "\\\\", '"': '\\"'})


def sanitize_log_data(data: str, max_length: int = 100) -> str:
    """
    Make client-provided text safe to embed in a log line.

    Prompts, names and unknown command types come straight from clients. A
    newline or a bidi override in them could forge or disguise log lines,
    so unsafe characters are stripped and quotes escaped. The text is cut
    to `max_length` before escaping, never inside an escape sequence.
    """
    cut = len(data) > max_length
    cleaned = _UNSAFE_CHARS.sub("", data[:max_length]).translate(_ESCAPES)
    return cleaned + "..." if cut else cleaned


@dataclass(frozen=True)
class ConnectionContext:
    """
    Who is on the other end of a connection, for audit records.

    Usage:
        ctx = ConnectionContext.from_websocket(websocket, "/ws", handle)
        ctx.audit("CONNECT")
        ctx.audit("DISCONNECT", reason="client_disconnect")
    """

    endpoint: str
    connection_id: str
    client: str | None = None
    origin: str | None = None

    @classmethod
    def from_websocket(
        cls,
        websocket: "WebSocket",
        endpoint: str,
        handle: "ConnectionHandle",
    ) -> "ConnectionContext":
        peer = websocket.client
        return cls(
            endpoint=endpoint,
            connection_id=handle.connection_id,
            client=f"{peer.host}:{peer.port}" if peer is not None else None,
            origin=websocket.headers.get("origin"),
        )

    @property
    def identifier(self) -> str:
        """Short identifier for log lines."""
        return self.connection_id

    def to_audit_dict(self, event_type: str, **extra: Any) -> dict[str, Any]:
        """Keyword arguments for audit_ws_connection()."""
        return {"event_type": event_type, **asdict(self), **extra}

    def audit(self, event_type: str, **extra: Any) -> None:
        audit_ws_connection(**self.to_audit_dict(event_type, **extra))
