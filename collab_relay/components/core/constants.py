"""
Relay Constants.

Centralized constants with documentation explaining rationale for each value.
"""

import string
from enum import IntEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "RelayConstants",
    "MSG_PING_PLAIN",
    "SESSION_ID_ALPHABET",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the relay.

    Standard codes (1000-1999) from RFC 6455.
    Custom codes (4000-4999) for application-specific closes.
    """

    # Standard codes (RFC 6455)
    NORMAL = 1000  # Normal closure
    GOING_AWAY = 1001  # Server shutting down or client navigating away
    POLICY_VIOLATION = 1008  # Generic policy violation
    MESSAGE_TOO_BIG = 1009  # Message too large to process
    SERVER_ERROR = 1011  # Unexpected server error
    SERVER_OVERLOADED = 1013  # Server overloaded, try again later

    # Custom application codes (4000-4999)
    SESSION_CLOSED = 4000  # The member's session was closed by (or with) its host
    LIVENESS_TIMEOUT = 4008  # No pong within one liveness interval
    SEND_FAILED = 4010  # Outbound queue overflowed or the transport rejected a send


class RelayConstants:
    """
    Relay operational constants.

    These are defaults used when settings are not available. At runtime the
    SessionRelay reads from `collab_relay.config.settings`, which can
    override the configurable ones via environment variables.
    """

    # ==========================================================================
    # Timeout Constants
    # ==========================================================================

    # WS_RECEIVE_TIMEOUT: 90 seconds
    # Rationale: Three liveness intervals. Clients answer probes with a pong,
    # so a socket silent for this long is already past eviction.
    WS_RECEIVE_TIMEOUT: Final[float] = 90.0

    # LIVENESS_INTERVAL: 30 seconds
    # Rationale: A crashed peer stays visible as "present" for at most one
    # interval. Shorter intervals add probe traffic to every socket.
    LIVENESS_INTERVAL: Final[float] = 30.0

    # FLUSH_TIMEOUT: 5 seconds
    # Rationale: Upper bound for draining outbound queues on shutdown.
    FLUSH_TIMEOUT: Final[float] = 5.0

    # ==========================================================================
    # Session Constants
    # ==========================================================================

    # SESSION_ID_LENGTH: 6
    # Rationale: 36^6 (~2.2 billion) ids for a handful of live sessions, and
    # still short enough to read out loud.
    SESSION_ID_LENGTH: Final[int] = 6

    # MAX_NAME_SUFFIX: 10000
    # Rationale: Bound on the "-N" suffix search. Reaching it would need ten
    # thousand members with the same name in one session.
    MAX_NAME_SUFFIX: Final[int] = 10_000

    # MAX_NAME_LENGTH: 64
    # Rationale: Names show up in member lists and tree views.
    MAX_NAME_LENGTH: Final[int] = 64

    # ==========================================================================
    # Queue Constants
    # ==========================================================================

    # OUTBOUND_QUEUE_SIZE: 256
    # Rationale: Events are small; 256 pending events means the peer has
    # stopped reading. Dropping for that peer keeps everyone else flowing.
    OUTBOUND_QUEUE_SIZE: Final[int] = 256

    # DROP_LOG_INTERVAL: 100
    # Rationale: Log every 100th dropped event to avoid log spam while a
    # peer is stuck.
    DROP_LOG_INTERVAL: Final[int] = 100

    # HISTORY_QUEUE_SIZE: 1000
    # Rationale: Records waiting for the history writer thread.
    HISTORY_QUEUE_SIZE: Final[int] = 1000


# Message constants for the heartbeat protocol
MSG_PING_PLAIN: Final[str] = "ping"

# Session ids are upper-case; input is upper-cased before lookup
SESSION_ID_ALPHABET: Final[str] = string.ascii_uppercase + string.digits

