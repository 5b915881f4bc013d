"""
Infrastructure helpers: logging correlation and database access.
"""

from collab_relay.infrastructure.correlation import (
    ConnectionIdFilter,
    bind_connection_id,
    get_connection_id,
    reset_connection_id,
)
from collab_relay.infrastructure.db import build_engine, build_session_factory, session_scope

__all__ = [
    "ConnectionIdFilter",
    "bind_connection_id",
    "get_connection_id",
    "reset_connection_id",
    "build_engine",
    "build_session_factory",
    "session_scope",
]
