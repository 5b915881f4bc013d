"""
Core relay components.

Foundational building blocks: constants, context, errors.
"""

from collab_relay.components.core.constants import (
    WSCloseCode,
    RelayConstants,
    MSG_PING_PLAIN,
    SESSION_ID_ALPHABET,
)
from collab_relay.components.core.context import ConnectionContext, sanitize_log_data

__all__ = [
    "WSCloseCode",
    "RelayConstants",
    "MSG_PING_PLAIN",
    "SESSION_ID_ALPHABET",
    "ConnectionContext",
    "sanitize_log_data",
]
