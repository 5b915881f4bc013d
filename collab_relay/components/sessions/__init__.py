"""
Session components.

Session registry, session model and id helpers.
"""

from collab_relay.components.sessions.identifiers import (
    generate_session_id,
    is_valid_session_id,
    normalize_session_id,
)
from collab_relay.components.sessions.registry import Binding, Session, SessionRegistry

__all__ = [
    "Binding",
    "Session",
    "SessionRegistry",
    "generate_session_id",
    "is_valid_session_id",
    "normalize_session_id",
]
