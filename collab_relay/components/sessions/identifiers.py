"""
Session identifier helpers.

Ids are short upper-case alphanumeric tokens. Input is case-insensitive:
whatever a client sends is trimmed and upper-cased before validation or
lookup.
"""

from __future__ import annotations

import secrets

from collab_relay.components.core.constants import RelayConstants, SESSION_ID_ALPHABET


def normalize_session_id(raw: str | None) -> str:
    """Trim and upper-case a client-provided session id. None becomes ""."""
    if raw is None:
        return ""
    return raw.strip().upper()


def is_valid_session_id(
    session_id: str,
    length: int = RelayConstants.SESSION_ID_LENGTH,
) -> bool:
    """Whether an already-normalized id has the expected shape."""
    return len(session_id) == length and all(c in SESSION_ID_ALPHABET for c in session_id)


def generate_session_id(length: int = RelayConstants.SESSION_ID_LENGTH) -> str:
    """Generate a random session id using a cryptographically secure source."""
    return "".join(secrets.choice(SESSION_ID_ALPHABET) for _ in range(length))
