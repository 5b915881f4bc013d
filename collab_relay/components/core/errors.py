"""
Relay error taxonomy.

Every protocol error carries a stable wire `code`. The router turns them into
an `error{code, message}` event for the originating connection; none of them
closes the connection.

Usage:
    from collab_relay.components.core.errors import SessionNotFoundError

    raise SessionNotFoundError("ABC123")
"""

from __future__ import annotations

from typing import Any

from collab_relay.config.logging import get_logger

logger = get_logger(__name__)


class RelayError(Exception):
    """
    Base class for relay errors with automatic logging.

    Attributes:
        code: Wire code sent to clients in error events.
        message: Human-readable message sent to clients.
    """

    code: str = "RelayError"
    log_level: str = "debug"

    def __init__(self, message: str, **log_context: Any):
        self.message = message
        log_fn = getattr(logger, self.log_level, logger.debug)
        log_fn(message, code=self.code, **log_context)
        super().__init__(message)


# =============================================================================
# Session lookup
# =============================================================================


class SessionNotFoundError(RelayError):
    """The session id is not (or no longer) registered."""

    code = "SessionNotFound"

    def __init__(self, session_id: str | None = None, **log_context: Any):
        if session_id:
            message = f"Session {session_id} not found"
        else:
            message = "Session not found"
        super().__init__(message, session_id=session_id, **log_context)


class MemberNotFoundError(RelayError):
    """No member with that name is bound to the session."""

    code = "MemberNotFound"

    def __init__(self, name: str, session_id: str | None = None, **log_context: Any):
        super().__init__(
            f"Member {name!r} not found",
            name=name,
            session_id=session_id,
            **log_context,
        )


# =============================================================================
# Naming
# =============================================================================


class NameRequiredError(RelayError):
    """A join was attempted with an empty display name."""

    code = "NameRequired"

    def __init__(self, **log_context: Any):
        super().__init__("A display name is required to join", **log_context)


class NameConflictUnresolvedError(RelayError):
    """No free suffix was found for a display name."""

    code = "NameConflictUnresolved"
    log_level = "warning"

    def __init__(self, name: str, **log_context: Any):
        super().__init__(f"Could not find a free name for {name!r}", name=name, **log_context)


# =============================================================================
# Roles
# =============================================================================


class NotHostError(RelayError):
    """A host-only command came from a connection that is not a host."""

    code = "NotHost"

    def __init__(self, action: str | None = None, **log_context: Any):
        if action:
            message = f"Only the session host can {action}"
        else:
            message = "Only the session host can do that"
        super().__init__(message, action=action, **log_context)


class NotMemberError(RelayError):
    """A member-only command came from a connection that is not a member."""

    code = "NotMember"

    def __init__(self, action: str | None = None, **log_context: Any):
        if action:
            message = f"Only session members can {action}"
        else:
            message = "Only session members can do that"
        super().__init__(message, action=action, **log_context)


class OwnershipConflictError(RelayError):
    """The client already owns (hosts) an active session."""

    code = "OwnershipConflict"
    log_level = "info"

    def __init__(self, message: str = "This client already hosts an active session", **log_context: Any):
        super().__init__(message, **log_context)


class AlreadyInSessionError(RelayError):
    """The connection is already bound and must leave before creating or joining."""

    code = "AlreadyInSession"

    def __init__(self, session_id: str | None = None, **log_context: Any):
        super().__init__(
            "Leave the current session first",
            session_id=session_id,
            **log_context,
        )


# =============================================================================
# Transport and framing
# =============================================================================


class DecodeFailureError(RelayError):
    """An inbound frame could not be decoded. Dropped without a reply."""

    code = "DecodeFailure"

    def __init__(self, reason: str, **log_context: Any):
        super().__init__(f"Malformed frame: {reason}", **log_context)


class TransportFailureError(RelayError):
    """The transport failed. Handled through the disconnect cleanup path."""

    code = "TransportFailure"
    log_level = "info"

    def __init__(self, reason: str, **log_context: Any):
        super().__init__(f"Transport failure: {reason}", **log_context)


__all__ = [
    "RelayError",
    "SessionNotFoundError",
    "MemberNotFoundError",
    "NameRequiredError",
    "NameConflictUnresolvedError",
    "NotHostError",
    "NotMemberError",
    "OwnershipConflictError",
    "AlreadyInSessionError",
    "DecodeFailureError",
    "TransportFailureError",
]
