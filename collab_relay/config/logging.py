"""
Centralized structured logging for the relay.

Every logger handed out by get_logger() accepts keyword context:

    logger.info("Member joined", session_id="ABC123", name="ana")

The keywords travel on the record as `extra_data`. Production renders
records as one JSON object per line; development renders coloured text.
Records also carry the connection id of the socket that triggered them
(see infrastructure.correlation), so every line emitted while handling a
frame can be traced back to one client.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, TYPE_CHECKING

from collab_relay.config.settings import get_settings

if TYPE_CHECKING:
    from collab_relay.config.settings import Settings

# Third-party loggers that are too chatty at our default level
_QUIET_LOGGERS: dict[str, int] = {
    "uvicorn.access": logging.WARNING,
    "uvicorn.error": logging.INFO,
    "sqlalchemy.engine": logging.WARNING,
    "websockets": logging.INFO,
}


def _connection_of(record: logging.LogRecord) -> str | None:
    connection_id = getattr(record, "connection_id", None)
    if connection_id and connection_id != "-":
        return connection_id
    return None


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def __init__(self, include_source: bool = False) -> None:
        super().__init__()
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        connection_id = _connection_of(record)
        if connection_id:
            entry["connection_id"] = connection_id

        data = getattr(record, "extra_data", None)
        if data:
            entry["data"] = data

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        if self.include_source:
            entry["source"] = f"{record.filename}:{record.lineno} ({record.funcName})"

        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Coloured single-line output for a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        parts = [f"{color}{clock} {record.levelname:<8}{self.RESET}"]

        connection_id = _connection_of(record)
        if connection_id:
            parts.append(f"{self.DIM}<{connection_id[:8]}>{self.RESET}")

        parts.append(f"{record.name} - {record.getMessage()}")

        data = getattr(record, "extra_data", None)
        if data:
            parts.append(self.DIM + " ".join(f"{k}={v!r}" for k, v in data.items()) + self.RESET)

        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


class StructuredLogger(logging.Logger):
    """
    Logger whose calls accept arbitrary keyword context.

    Standard keywords (exc_info, stack_info, stacklevel, extra) keep their
    usual meaning; everything else is collected into `extra_data`. Context
    keys must not collide with those names or with LogRecord attributes
    such as `msg`, `args` or `levelname`.
    """

    def _log(
        self,
        level: int,
        msg: object,
        args: Any,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **context: Any,
    ) -> None:
        extra = dict(extra) if extra else {}
        extra["extra_data"] = context or None
        # One extra frame: this override sits between the caller and logging
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)


def setup_logging(settings: Settings | None = None) -> None:
    """
    Install the relay's handler on the root logger.

    Call once at startup; calling again replaces the handler.
    """
    from collab_relay.infrastructure.correlation import ConnectionIdFilter

    settings = settings or get_settings()
    level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(ConnectionIdFilter())
    if settings.environment == "production":
        handler.setFormatter(StructuredFormatter(include_source=settings.debug))
    else:
        handler.setFormatter(DevelopmentFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger.

    Usage:
        from collab_relay.config.logging import get_logger
        logger = get_logger(__name__)

        logger.info("Member joined", session_id="ABC123", name="ana")
        logger.error("History write failed", exc_info=True)
    """
    return logging.getLogger(name)  # type: ignore[return-value]


def mask_token(token: str | None) -> str:
    """
    Mask an owner token for logging.

    Keeps the first 6 characters, enough to correlate lines from the same
    client without writing the whole token to disk.
    """
    if not token:
        return "<no-token>"
    if len(token) <= 6:
        return token[0] + "***"
    return f"{token[:6]}..."


relay_logger = get_logger("collab_relay")
audit_logger = get_logger("collab_relay.audit")


def audit_ws_connection(
    event_type: str,
    connection_id: str,
    session_id: str | None = None,
    role: str | None = None,
    reason: str | None = None,
    **extra: Any,
) -> None:
    """
    Write a connection lifecycle audit record.

    Args:
        event_type: CONNECT, DISCONNECT, EVICTED or REJECTED.
        connection_id: Relay-assigned connection id.
        session_id: Session the connection was bound to, if any.
        role: Role at the time of the event (host, member, unbound).
        reason: Why the connection ended or was refused.
        **extra: Additional context (endpoint, client address, origin).
    """
    audit_logger.info(
        f"WS_AUDIT: {event_type}",
        event_type=event_type,
        connection_id=connection_id,
        session_id=session_id,
        role=role,
        reason=reason,
        **extra,
    )
