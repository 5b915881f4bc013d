"""
Session Registry - single authority for session lifecycle.

Maps session ids to Sessions and keeps each handle's binding metadata
consistent with the Session it is bound to, in both directions.

Thread Safety:
- All methods are synchronous and MUST be called with `registry.lock` held.
  The router and relay take the lock around each command, so a mutation and
  the events it causes are atomic with respect to every other mutation.
- The lock is NON-REENTRANT.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Iterator, NamedTuple

from collab_relay.components.connection.handle import ConnectionHandle, Role
from collab_relay.components.core.constants import RelayConstants
from collab_relay.components.core.errors import (
    AlreadyInSessionError,
    MemberNotFoundError,
    NameConflictUnresolvedError,
    NameRequiredError,
    NotHostError,
    OwnershipConflictError,
    SessionNotFoundError,
)
from collab_relay.components.sessions.identifiers import (
    generate_session_id,
    is_valid_session_id,
    normalize_session_id,
)
from collab_relay.config.logging import get_logger, mask_token

logger = get_logger(__name__)

# Attempts before giving up on finding a free random id
MAX_ID_ATTEMPTS = 100


@dataclass(eq=False)
class Session:
    """One live collaboration session: a host plus named members."""

    session_id: str
    host: ConnectionHandle
    owner_token: str
    prompt: str = ""
    members: dict[str, ConnectionHandle] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    def member_names(self) -> list[str]:
        """Member names in join order."""
        return list(self.members)

    def participants(self) -> list[ConnectionHandle]:
        """Host first, then members in join order."""
        return [self.host, *self.members.values()]


class Binding(NamedTuple):
    """Verified binding of a handle: who it is and where."""

    role: Role
    session_id: str
    name: str | None


class SessionRegistry:
    """
    In-memory registry of active sessions.

    Indices maintained:
    - _sessions: session_id -> Session
    - _owners: owner_token -> session_id (one active session per token)

    Usage:
        registry = SessionRegistry()
        async with registry.lock:
            session_id = registry.create("", token, handle)
    """

    def __init__(
        self,
        id_length: int = RelayConstants.SESSION_ID_LENGTH,
        id_factory: Callable[[int], str] | None = None,
        max_name_length: int = RelayConstants.MAX_NAME_LENGTH,
    ) -> None:
        self.lock = asyncio.Lock()
        self._id_length = id_length
        self._id_factory = id_factory or generate_session_id
        self._max_name_length = max_name_length

        self._sessions: dict[str, Session] = {}
        self._owners: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return isinstance(session_id, str) and normalize_session_id(session_id) in self._sessions

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def get(self, session_id: str | None) -> Session | None:
        """Look up a session by (unnormalized) id."""
        return self._sessions.get(normalize_session_id(session_id))

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def create(
        self,
        proposed_id: str | None,
        owner_token: str | None,
        host: ConnectionHandle,
    ) -> str:
        """
        Register a new session hosted by `host`. MUST be called with lock.

        An empty, malformed or taken proposed id is replaced by a fresh one.

        Raises:
            AlreadyInSessionError: The handle is bound as a member.
            OwnershipConflictError: The handle already hosts a session, or the
                owner token already owns one.

        Returns:
            The final session id.
        """
        current = self.lookup_by_handle(host)
        if current is not None:
            if current.role is Role.HOST:
                raise OwnershipConflictError(
                    "This connection already hosts a session",
                    session_id=current.session_id,
                )
            raise AlreadyInSessionError(current.session_id)

        token = owner_token or host.connection_id
        if token in self._owners:
            raise OwnershipConflictError(session_id=self._owners[token])

        session_id = normalize_session_id(proposed_id)
        if not is_valid_session_id(session_id, self._id_length) or session_id in self._sessions:
            session_id = self._fresh_id()

        self._sessions[session_id] = Session(
            session_id=session_id,
            host=host,
            owner_token=token,
        )
        self._owners[token] = session_id
        host.metadata.bind(Role.HOST, session_id, owner_token=token)

        logger.info(
            "Session created",
            session_id=session_id,
            host=host.connection_id,
            owner=mask_token(token),
        )
        return session_id

    def _fresh_id(self) -> str:
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = self._id_factory(self._id_length)
            if candidate not in self._sessions:
                return candidate
        # Only reachable with a broken id factory
        raise RuntimeError("Could not generate a unique session id")

    def close_session(self, session_id: str) -> Session | None:
        """
        Remove a session and unbind all its handles. MUST be called with lock.

        Callers are responsible for notifying and disconnecting former
        members. Returns None if the session was already gone.
        """
        session = self._sessions.pop(normalize_session_id(session_id), None)
        if session is None:
            return None

        if self._owners.get(session.owner_token) == session.session_id:
            del self._owners[session.owner_token]

        session.host.metadata.unbind()
        for handle in session.members.values():
            handle.metadata.unbind()

        logger.info(
            "Session closed",
            session_id=session.session_id,
            members=len(session.members),
        )
        return session

    # =========================================================================
    # Membership
    # =========================================================================

    def join(self, session_id: str | None, desired_name: str | None, handle: ConnectionHandle) -> str:
        """
        Bind `handle` as a member of a session. MUST be called with lock.

        Raises:
            AlreadyInSessionError: The handle is already bound somewhere.
            SessionNotFoundError: Unknown session id.
            NameRequiredError: Empty name after trimming.

        Returns:
            The final (possibly suffixed) display name.
        """
        current = self.lookup_by_handle(handle)
        if current is not None:
            raise AlreadyInSessionError(current.session_id)

        session = self.get(session_id)
        if session is None:
            raise SessionNotFoundError(normalize_session_id(session_id))

        name = (desired_name or "").strip()[: self._max_name_length].strip()
        if not name:
            raise NameRequiredError(session_id=session.session_id)

        final_name = self._unique_name(session, name)
        session.members[final_name] = handle
        handle.metadata.bind(Role.MEMBER, session.session_id, name=final_name)

        logger.info(
            "Member joined",
            session_id=session.session_id,
            member=final_name,
            connection=handle.connection_id,
        )
        return final_name

    def _unique_name(self, session: Session, name: str) -> str:
        if name not in session.members:
            return name
        for n in range(2, RelayConstants.MAX_NAME_SUFFIX):
            candidate = f"{name}-{n}"
            if candidate not in session.members:
                return candidate
        raise NameConflictUnresolvedError(name, session_id=session.session_id)

    def remove_member(self, session_id: str, name: str) -> bool:
        """Unbind a member. Idempotent. MUST be called with lock."""
        session = self.get(session_id)
        if session is None:
            return False
        handle = session.members.pop(name, None)
        if handle is None:
            return False
        handle.metadata.unbind()
        logger.info("Member left", session_id=session.session_id, member=name)
        return True

    # =========================================================================
    # Prompt and routing
    # =========================================================================

    def set_prompt(self, host: ConnectionHandle, text: str) -> Session:
        """
        Replace the prompt of the session `host` hosts. MUST be called with lock.

        Raises:
            NotHostError: The handle is not the bound host of a live session.
        """
        binding = self.lookup_by_handle(host)
        if binding is None or binding.role is not Role.HOST:
            raise NotHostError("set the prompt", connection=host.connection_id)
        session = self._sessions[binding.session_id]
        session.prompt = text
        return session

    def route_to_host(self, session_id: str) -> ConnectionHandle | None:
        """Host handle a payload should go to, or None if the session is gone."""
        session = self.get(session_id)
        if session is None:
            return None
        return session.host

    def route_to_member(self, session_id: str, name: str) -> ConnectionHandle:
        """
        Handle of a named member.

        Raises:
            MemberNotFoundError: No such member in the session.
        """
        session = self.get(session_id)
        handle = session.members.get(name) if session is not None else None
        if handle is None:
            raise MemberNotFoundError(name, session_id=session_id)
        return handle

    def lookup_by_handle(self, handle: ConnectionHandle) -> Binding | None:
        """
        Resolve the binding of a handle, verified against the Session.

        Stale metadata (pointing at a closed session or a slot now held by
        another handle) resolves to None.
        """
        meta = handle.metadata
        if not meta.is_bound or meta.session_id is None:
            return None
        session = self._sessions.get(meta.session_id)
        if session is None:
            return None
        if meta.role is Role.HOST and session.host is handle:
            return Binding(Role.HOST, session.session_id, None)
        if meta.role is Role.MEMBER and meta.name is not None and session.members.get(meta.name) is handle:
            return Binding(Role.MEMBER, session.session_id, meta.name)
        return None

    # =========================================================================
    # Utility methods
    # =========================================================================

    def get_stats(self) -> dict[str, int]:
        """Get registry statistics for monitoring."""
        return {
            "sessions_count": len(self._sessions),
            "members_count": sum(len(s.members) for s in self._sessions.values()),
            "owner_tokens": len(self._owners),
        }
