"""
Message Router - per-connection protocol state machine.

Validates role and session preconditions for each command, mutates sessions
through the SessionRegistry and publishes the resulting events on the
EventBus. Every command runs with the registry lock held, and its events are
enqueued before the lock is released, so all participants observe state
changes in one consistent order.

Usage:
    router = MessageRouter(registry, bus, metrics)
    result = await router.dispatch(handle, JoinCommand("ABC123", "ana"))
    await router.handle_disconnect(handle)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, TYPE_CHECKING

from collab_relay.components.connection.handle import ConnectionHandle, Role
from collab_relay.components.core.constants import WSCloseCode
from collab_relay.components.core.context import sanitize_log_data
from collab_relay.components.core.errors import NotHostError, NotMemberError, RelayError
from collab_relay.components.events.bus import EventBus
from collab_relay.components.messages.commands import (
    AnswerCommand,
    CloseCommand,
    Command,
    CreateCommand,
    FeedbackCommand,
    JoinCommand,
    LeaveCommand,
    SetPromptCommand,
    UnknownCommand,
)
from collab_relay.components.messages.events import (
    AnswerReceived,
    Created,
    Error,
    Feedback,
    Joined,
    MemberJoined,
    MemberLeft,
    MemberList,
    PromptUpdate,
    SessionClosed,
)
from collab_relay.components.sessions.registry import Binding, Session, SessionRegistry
from collab_relay.config.logging import get_logger

if TYPE_CHECKING:
    from collab_relay.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)


@dataclass
class RoutingResult:
    """Result of dispatching one command."""

    command: str
    delivered: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        """Whether the command was applied without a protocol error."""
        return self.error is None


class MessageRouter:
    """
    Routes inbound commands for every connection.

    State machine per connection:
    - Unbound -> Host (create)
    - Unbound -> Member (join)
    - Host/Member -> Unbound (leave, close, disconnect)

    Protocol errors are answered with an `error` event to the sender only and
    never close the connection.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        bus: EventBus,
        metrics: "MetricsCollector | None" = None,
    ) -> None:
        self._registry = registry
        self._bus = bus
        self._metrics = metrics
        self._handlers: dict[type, Callable[[ConnectionHandle, Command], int]] = {
            CreateCommand: self._handle_create,
            JoinCommand: self._handle_join,
            SetPromptCommand: self._handle_set_prompt,
            AnswerCommand: self._handle_answer,
            FeedbackCommand: self._handle_feedback,
            LeaveCommand: self._handle_leave,
            CloseCommand: self._handle_close,
            UnknownCommand: self._handle_unknown,
        }

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    # =========================================================================
    # Entry points
    # =========================================================================

    async def dispatch(self, handle: ConnectionHandle, command: Command) -> RoutingResult:
        """Apply one command atomically with respect to all others."""
        async with self._registry.lock:
            return self.dispatch_locked(handle, command)

    def dispatch_locked(self, handle: ConnectionHandle, command: Command) -> RoutingResult:
        """Apply one command. MUST be called with registry.lock."""
        result = RoutingResult(command=command.type)
        handler = self._handlers[type(command)]
        try:
            result.delivered = handler(handle, command)
        except RelayError as e:
            result.error = e.code
            self._bus.publish(Error(e.code, e.message), [handle])
            if self._metrics is not None:
                self._metrics.increment_command_errors_sync()
        if self._metrics is not None:
            self._metrics.increment_commands_processed_sync()
        return result

    async def handle_disconnect(self, handle: ConnectionHandle) -> None:
        """Cleanup path for explicit disconnect, transport error or eviction."""
        async with self._registry.lock:
            self.disconnect_locked(handle)

    def disconnect_locked(self, handle: ConnectionHandle) -> None:
        """
        Unbind a departing connection. Idempotent. MUST be called with registry.lock.

        Host departure closes the session exactly like `close`; member
        departure is announced exactly like `leave`.
        """
        binding = self._registry.lookup_by_handle(handle)
        if binding is None:
            return
        if binding.role is Role.HOST:
            self._close_session_locked(binding.session_id, reason="host_disconnected")
        else:
            self._remove_member_locked(binding)

    def close_all_locked(self, reason: str = "shutdown") -> int:
        """Close every session. MUST be called with registry.lock."""
        closed = 0
        for session in self._registry:
            self._close_session_locked(session.session_id, reason=reason)
            closed += 1
        return closed

    # =========================================================================
    # Command handlers (all run with registry.lock held)
    # =========================================================================

    def _handle_create(self, handle: ConnectionHandle, command: CreateCommand) -> int:
        session_id = self._registry.create(command.session_id, command.owner_token, handle)
        session = self._registry.get(session_id)
        if self._metrics is not None:
            self._metrics.increment_sessions_created_sync()

        delivered = self._bus.publish(Created(session_id), [handle], session_id)
        delivered += self._publish_member_list(session)

        # A prompt staged before the session existed becomes its first prompt
        if command.prompt:
            session.prompt = command.prompt
            delivered += self._bus.publish(
                PromptUpdate(session.prompt), session.participants(), session_id
            )
        return delivered

    def _handle_join(self, handle: ConnectionHandle, command: JoinCommand) -> int:
        name = self._registry.join(command.session_id, command.name, handle)
        session = self._registry.get(command.session_id)
        if self._metrics is not None:
            self._metrics.increment_members_joined_sync()

        delivered = self._bus.publish(
            Joined(session.session_id, name, session.prompt), [handle], session.session_id
        )
        delivered += self._publish_member_list(session)
        delivered += self._bus.publish(
            MemberJoined(session.session_id, name), session.participants(), session.session_id
        )
        return delivered

    def _handle_set_prompt(self, handle: ConnectionHandle, command: SetPromptCommand) -> int:
        session = self._registry.set_prompt(handle, command.text)
        logger.debug(
            "Prompt updated",
            session_id=session.session_id,
            prompt=sanitize_log_data(command.text, max_length=40),
        )
        return self._bus.publish(
            PromptUpdate(session.prompt), session.participants(), session.session_id
        )

    def _handle_answer(self, handle: ConnectionHandle, command: AnswerCommand) -> int:
        binding = self._require_role(handle, Role.MEMBER, "submit answers")
        host = self._registry.route_to_host(binding.session_id)
        if host is None:
            return 0
        return self._bus.publish(
            AnswerReceived(binding.name, command.payload, command.filename),
            [host],
            binding.session_id,
        )

    def _handle_feedback(self, handle: ConnectionHandle, command: FeedbackCommand) -> int:
        binding = self._require_role(handle, Role.HOST, "send feedback")
        target = self._registry.route_to_member(binding.session_id, command.to)
        return self._bus.publish(
            Feedback(command.text, to=target.metadata.name), [target], binding.session_id
        )

    def _handle_leave(self, handle: ConnectionHandle, command: LeaveCommand) -> int:
        binding = self._require_role(handle, Role.MEMBER, "leave a session")
        return self._remove_member_locked(binding)

    def _handle_close(self, handle: ConnectionHandle, command: CloseCommand) -> int:
        binding = self._require_role(handle, Role.HOST, "close the session")
        return self._close_session_locked(binding.session_id, reason="host_closed")

    def _handle_unknown(self, handle: ConnectionHandle, command: UnknownCommand) -> int:
        logger.debug(
            "Unknown command type",
            command_type=sanitize_log_data(command.command_type, max_length=40),
            connection=handle.connection_id,
        )
        if self._metrics is not None:
            self._metrics.increment_commands_unknown_sync()
        self._bus.publish(
            Error("UnknownCommand", f"Unknown command type {command.command_type!r}"),
            [handle],
        )
        return 0

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_role(self, handle: ConnectionHandle, role: Role, action: str) -> Binding:
        binding = self._registry.lookup_by_handle(handle)
        if binding is None or binding.role is not role:
            if role is Role.HOST:
                raise NotHostError(action, connection=handle.connection_id)
            raise NotMemberError(action, connection=handle.connection_id)
        return binding

    def _publish_member_list(self, session: Session) -> int:
        return self._bus.publish(
            MemberList(session.session_id, tuple(session.member_names())),
            session.participants(),
            session.session_id,
        )

    def _remove_member_locked(self, binding: Binding) -> int:
        if not self._registry.remove_member(binding.session_id, binding.name):
            return 0
        if self._metrics is not None:
            self._metrics.increment_members_left_sync()

        session = self._registry.get(binding.session_id)
        if session is None:
            return 0
        delivered = self._bus.publish(
            MemberLeft(session.session_id, binding.name), session.participants(), session.session_id
        )
        delivered += self._publish_member_list(session)
        return delivered

    def _close_session_locked(self, session_id: str, reason: str) -> int:
        """
        Close a session, notify everyone, then disconnect former members.

        `sessionClosed` and the close request are queued on each member in
        the same step, so members always see the event before the socket
        closes. The host stays connected (if it still is) and returns to
        Unbound.
        """
        session = self._registry.close_session(session_id)
        if session is None:
            return 0
        if self._metrics is not None:
            self._metrics.increment_sessions_closed_sync()

        delivered = self._bus.publish(SessionClosed(), session.participants(), session.session_id)
        for member in session.members.values():
            member.close_after_flush(WSCloseCode.SESSION_CLOSED, "session closed")

        logger.info(
            "Session disbanded",
            session_id=session.session_id,
            reason=reason,
            members=len(session.members),
        )
        return delivered
