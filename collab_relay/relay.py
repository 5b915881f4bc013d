"""
Session Relay.

Thin orchestrator that composes the relay components:
- SessionRegistry: session lifecycle and bindings
- MessageRouter: per-connection protocol state machine
- EventBus: outbound delivery and subscriber hooks
- LivenessMonitor: probe and eviction of unresponsive connections
- HistoryRecorder: optional session history (when a database URL is set)

Every accepted connection is tracked here so the monitor can probe it and
shutdown can close it.
"""

from __future__ import annotations

import asyncio
from types import MappingProxyType
from typing import Any, Callable

from collab_relay.components.connection.handle import ConnectionHandle, Transport
from collab_relay.components.connection.liveness import LivenessMonitor
from collab_relay.components.core.constants import RelayConstants, WSCloseCode
from collab_relay.components.core.errors import DecodeFailureError
from collab_relay.components.events.bus import EventBus, Subscriber
from collab_relay.components.messages.commands import Command, decode_command
from collab_relay.components.metrics.collector import MetricsCollector
from collab_relay.components.routing.router import MessageRouter, RoutingResult
from collab_relay.components.sessions.registry import SessionRegistry
from collab_relay.config.logging import audit_ws_connection, get_logger
from collab_relay.config.settings import Settings, get_settings
from collab_relay.persistence.recorder import HistoryRecorder

logger = get_logger(__name__)


class SessionRelay:
    """
    Relay facade used by the WebSocket endpoint, the app lifespan and tests.

    Usage:
        relay = SessionRelay()
        await relay.start()
        handle = relay.new_handle(websocket)
        relay.connect(handle)
        await relay.submit(handle, '{"type": "create"}')
        ...
        await relay.disconnect(handle)
        await relay.shutdown()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        registry: SessionRegistry | None = None,
        metrics: MetricsCollector | None = None,
        recorder: HistoryRecorder | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._metrics = metrics or MetricsCollector()
        self._registry = registry or SessionRegistry(
            id_length=self.settings.session_id_length,
            max_name_length=self.settings.max_name_length,
        )
        self._bus = EventBus(self._metrics)
        self._router = MessageRouter(self._registry, self._bus, self._metrics)
        self._monitor = LivenessMonitor(
            self.connections,
            self.evict,
            interval=self.settings.liveness_interval,
            metrics=self._metrics,
        )
        self._recorder = recorder
        self._connections: dict[str, ConnectionHandle] = {}
        self._monitor_task: asyncio.Task | None = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._shutting_down = False

    # =========================================================================
    # Public properties
    # =========================================================================

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def router(self) -> MessageRouter:
        return self._router

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def monitor(self) -> LivenessMonitor:
        return self._monitor

    @property
    def recorder(self) -> HistoryRecorder | None:
        return self._recorder

    @property
    def connection_map(self) -> MappingProxyType[str, ConnectionHandle]:
        """Tracked connections by id (immutable view)."""
        return MappingProxyType(self._connections)

    @property
    def total_connections(self) -> int:
        return len(self._connections)

    def connections(self) -> list[ConnectionHandle]:
        """Snapshot of tracked connections."""
        return list(self._connections.values())

    def is_shutting_down(self) -> bool:
        return self._shutting_down

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Start the liveness monitor and, if configured, the history recorder."""
        if self._recorder is None and self.settings.history_enabled:
            self._recorder = HistoryRecorder.from_url(
                self.settings.history_database_url,
                metrics=self._metrics,
                queue_size=self.settings.history_queue_size,
            )
        if self._recorder is not None:
            self._unsubscribers.append(self.subscribe(self._recorder.on_event))
            await self._recorder.start()

        if self._monitor_task is None:
            self._monitor_task = asyncio.create_task(self._monitor.run(), name="liveness_monitor")

    async def shutdown(self) -> int:
        """
        Graceful shutdown.

        Stops the monitor, closes every session (members receive
        `sessionClosed` first), then closes all sockets with GOING_AWAY.

        Returns:
            Number of connections closed.
        """
        self._shutting_down = True
        logger.info("Relay shutting down...")

        if self._monitor_task is not None:
            self._monitor_task.cancel()
            await asyncio.gather(self._monitor_task, return_exceptions=True)
            self._monitor_task = None

        async with self._registry.lock:
            sessions_closed = self._router.close_all_locked(reason="shutdown")

        handles = self.connections()
        await asyncio.gather(
            *[h.flush(timeout=RelayConstants.FLUSH_TIMEOUT) for h in handles],
            return_exceptions=True,
        )
        results = await asyncio.gather(
            *[h.abort(WSCloseCode.GOING_AWAY, "Server shutdown") for h in handles],
            return_exceptions=True,
        )
        closed = sum(1 for r in results if not isinstance(r, BaseException))
        self._connections.clear()

        if self._recorder is not None:
            await self._recorder.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

        logger.info(
            "Relay shutdown complete",
            connections_closed=closed,
            sessions_closed=sessions_closed,
        )
        return closed

    # =========================================================================
    # Connections
    # =========================================================================

    def new_handle(self, transport: Transport) -> ConnectionHandle:
        """Wrap a transport in a handle configured from settings."""
        return ConnectionHandle(transport, queue_size=self.settings.ws_outbound_queue_size)

    def connect(self, handle: ConnectionHandle) -> None:
        """
        Track a connection and start its writer task.

        Raises:
            ConnectionError: Shutting down or at the connection limit.
        """
        if self._shutting_down:
            raise ConnectionError("Relay is shutting down")
        if len(self._connections) >= self.settings.ws_max_total_connections:
            self._metrics.increment_connection_rejected_limit_sync()
            raise ConnectionError("Maximum connections reached")

        self._connections[handle.connection_id] = handle
        self._metrics.increment_connections_accepted_sync()
        handle.start()

    async def disconnect(self, handle: ConnectionHandle) -> None:
        """
        Cleanup path for a departing connection. Idempotent.

        Leaves or closes the bound session, then stops the writer and closes
        the transport.
        """
        await self._router.handle_disconnect(handle)
        if self._connections.pop(handle.connection_id, None) is not None:
            self._metrics.increment_connections_closed_sync()
        await handle.abort(WSCloseCode.NORMAL, "")

    async def evict(self, handle: ConnectionHandle) -> None:
        """Eviction callback for the liveness monitor."""
        meta = handle.metadata
        audit_ws_connection(
            event_type="EVICTED",
            connection_id=handle.connection_id,
            session_id=meta.session_id,
            role=meta.role.value,
            reason="dead" if handle.is_dead else "liveness_timeout",
        )
        await self.disconnect(handle)

    # =========================================================================
    # Commands and events
    # =========================================================================

    async def submit(self, handle: ConnectionHandle, frame: str | bytes) -> RoutingResult | None:
        """
        Decode and route one inbound frame.

        Returns:
            The routing result, or None if the frame was malformed and dropped.
        """
        try:
            command = decode_command(frame)
        except DecodeFailureError:
            self._metrics.increment_frames_dropped_sync()
            return None
        return await self.submit_command(handle, command)

    async def submit_command(self, handle: ConnectionHandle, command: Command) -> RoutingResult:
        """Route an already-decoded command."""
        return await self._router.dispatch(handle, command)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Observe every outbound event as an EventEnvelope.

        Returns:
            A function that removes the subscription.
        """
        return self._bus.subscribe(callback)

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """Get relay statistics (for health checks)."""
        handles = self.connections()
        stats: dict[str, Any] = {
            "total_connections": len(handles),
            "max_connections": self.settings.ws_max_total_connections,
            "bound_connections": sum(1 for h in handles if h.metadata.is_bound),
            "pending_events": sum(h.pending for h in handles),
            "dropped_events": sum(h.dropped_count for h in handles),
            "subscribers": self._bus.subscriber_count,
            "shutting_down": self._shutting_down,
            "registry": self._registry.get_stats(),
            "liveness": self._monitor.get_stats(),
        }
        if self._recorder is not None:
            stats["history"] = self._recorder.get_stats()
        return stats
