"""
Connection Handle.

Wraps one transport-level duplex channel (a WebSocket in production, a fake
in tests). The handle owns:

- a bounded outbound queue drained by a dedicated writer task, so a slow or
  broken peer never blocks delivery to anybody else;
- the liveness flag driven by the LivenessMonitor;
- the mutable binding metadata (role, session, name, owner token).

Binding metadata is written only by the SessionRegistry while the registry
lock is held.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from collab_relay.components.core.constants import RelayConstants, WSCloseCode
from collab_relay.config.logging import get_logger

logger = get_logger(__name__)


class Transport(Protocol):
    """What the handle needs from the underlying socket."""

    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


class Role(str, Enum):
    """Role of a connection in the per-connection state machine."""

    UNBOUND = "unbound"
    HOST = "host"
    MEMBER = "member"


@dataclass
class ConnectionMetadata:
    """Binding of a connection to at most one session."""

    role: Role = Role.UNBOUND
    session_id: str | None = None
    name: str | None = None
    owner_token: str | None = None

    def bind(
        self,
        role: Role,
        session_id: str,
        name: str | None = None,
        owner_token: str | None = None,
    ) -> None:
        self.role = role
        self.session_id = session_id
        self.name = name
        self.owner_token = owner_token

    def unbind(self) -> None:
        self.role = Role.UNBOUND
        self.session_id = None
        self.name = None
        self.owner_token = None

    @property
    def is_bound(self) -> bool:
        return self.role is not Role.UNBOUND


@dataclass(frozen=True, slots=True)
class _CloseRequest:
    """Queue sentinel: close the transport once everything before it is sent."""

    code: int
    reason: str


class ConnectionHandle:
    """
    One live connection.

    Usage:
        handle = ConnectionHandle(websocket)
        handle.start()               # spawn the writer task
        handle.send({"type": "pong"})
        ...
        await handle.abort()         # stop writer, close transport

    Attributes:
        connection_id: Relay-assigned id, used in logs and event envelopes.
        metadata: Session binding, owned by the SessionRegistry.
        alive: Liveness flag. Set on inbound activity, cleared by the
            monitor before each probe.
    """

    def __init__(
        self,
        transport: Transport,
        connection_id: str | None = None,
        queue_size: int = RelayConstants.OUTBOUND_QUEUE_SIZE,
    ) -> None:
        self.transport = transport
        self.connection_id = connection_id or uuid.uuid4().hex[:12]
        self.metadata = ConnectionMetadata()
        self.alive = True

        self._queue: asyncio.Queue[dict[str, Any] | _CloseRequest] = asyncio.Queue(
            maxsize=queue_size
        )
        self._writer: asyncio.Task | None = None
        self._closing = False
        self._closed = False
        self._dead = False
        self._dropped = 0

    def __repr__(self) -> str:
        return (
            f"ConnectionHandle(id={self.connection_id!r}, role={self.metadata.role.value}, "
            f"session={self.metadata.session_id!r}, name={self.metadata.name!r})"
        )

    # =========================================================================
    # State
    # =========================================================================

    @property
    def is_open(self) -> bool:
        """Whether the handle still accepts outbound events."""
        return not (self._closing or self._closed or self._dead)

    @property
    def is_closed(self) -> bool:
        """Whether the transport has been closed by the relay."""
        return self._closed

    @property
    def is_dead(self) -> bool:
        """Whether a send failed; the monitor evicts dead handles."""
        return self._dead

    @property
    def dropped_count(self) -> int:
        """Events dropped because the outbound queue was full."""
        return self._dropped

    @property
    def pending(self) -> int:
        """Events waiting in the outbound queue."""
        return self._queue.qsize()

    def mark_alive(self) -> None:
        """Record inbound activity (any frame, including a probe response)."""
        self.alive = True

    def mark_dead(self) -> None:
        """Flag the handle for eviction on the next monitor cycle."""
        self._dead = True
        self.alive = False

    # =========================================================================
    # Writer
    # =========================================================================

    def start(self) -> None:
        """Spawn the writer task. Must be called from a running event loop."""
        if self._writer is not None:
            return
        self._writer = asyncio.create_task(
            self._writer_loop(),
            name=f"writer_{self.connection_id}",
        )

    async def _writer_loop(self) -> None:
        """Drain the outbound queue into the transport, in order."""
        while not (self._closed or self._dead):
            item = await self._queue.get()
            try:
                if isinstance(item, _CloseRequest):
                    await self._close_transport(item.code, item.reason)
                else:
                    await self.transport.send_text(json.dumps(item))
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug(
                    "Send failed, marking connection dead",
                    connection_id=self.connection_id,
                    error=str(e),
                )
                self.mark_dead()
            finally:
                self._queue.task_done()

        # Nothing will be sent anymore; release flush() waiters
        self._discard_pending()

    def send(self, event: dict[str, Any]) -> bool:
        """
        Enqueue an event without waiting.

        Returns:
            True if queued, False if the handle is closing/dead or the queue
            is full (the event is dropped for this peer only).
        """
        if not self.is_open:
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self._dropped += 1
            if self._dropped % RelayConstants.DROP_LOG_INTERVAL == 1:
                logger.warning(
                    "Outbound queue full, dropping event",
                    connection_id=self.connection_id,
                    event_type=event.get("type"),
                    dropped_total=self._dropped,
                )
            return False

    def close_after_flush(
        self,
        code: int = WSCloseCode.NORMAL,
        reason: str = "",
    ) -> None:
        """
        Close the transport after every already-queued event is sent.

        Later send() calls are refused. If the queue is full the close
        request cannot be queued and the handle is marked dead instead, so
        the monitor terminates it.
        """
        if not self.is_open:
            return
        self._closing = True
        try:
            self._queue.put_nowait(_CloseRequest(int(code), reason))
        except asyncio.QueueFull:
            self.mark_dead()

    async def flush(self, timeout: float | None = None) -> bool:
        """
        Wait until the outbound queue is drained.

        Returns:
            True if drained, False on timeout.
        """
        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False

    async def abort(
        self,
        code: int = WSCloseCode.GOING_AWAY,
        reason: str = "",
    ) -> None:
        """Stop the writer, discard pending events and close the transport."""
        self._closing = True
        if self._writer is not None and not self._writer.done():
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
        self._discard_pending()
        await self._close_transport(int(code), reason)

    def _discard_pending(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._queue.task_done()

    async def _close_transport(self, code: int, reason: str) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self.transport.close(code=code, reason=reason)
        except Exception as e:
            # Peer already gone; nothing left to close
            logger.debug(
                "Failed to close transport",
                connection_id=self.connection_id,
                error=str(e),
            )
