"""
Metrics Collector for the relay.

Centralizes metrics collection for observability.
Counters are updated from the event loop and from the history writer
thread, so every update takes a threading lock.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any


@dataclass
class ConnectionMetrics:
    """Metrics for connection management."""
    accepted: int = 0
    rejected_limit: int = 0
    closed: int = 0
    evicted: int = 0
    timeouts: int = 0


@dataclass
class SessionMetrics:
    """Metrics for session lifecycle."""
    created: int = 0
    closed: int = 0
    members_joined: int = 0
    members_left: int = 0


@dataclass
class CommandMetrics:
    """Metrics for inbound command processing."""
    processed: int = 0
    errors: int = 0
    unknown: int = 0
    frames_dropped: int = 0
    frames_too_large: int = 0


@dataclass
class DeliveryMetrics:
    """Metrics for outbound event delivery."""
    delivered: int = 0
    dropped: int = 0
    subscriber_errors: int = 0


@dataclass
class HistoryMetrics:
    """Metrics for the session history recorder."""
    written: int = 0
    dropped: int = 0
    failed: int = 0


class MetricsCollector:
    """
    Thread-safe metrics collector for the relay.

    Usage:
        metrics = MetricsCollector()
        metrics.increment_sessions_created_sync()
        stats = metrics.get_snapshot_sync()
    """

    def __init__(self):
        """Initialize metrics collector."""
        self._sync_lock = threading.Lock()
        self._connection = ConnectionMetrics()
        self._session = SessionMetrics()
        self._command = CommandMetrics()
        self._delivery = DeliveryMetrics()
        self._history = HistoryMetrics()

    # ==========================================================================
    # Connection Metrics
    # ==========================================================================

    def increment_connections_accepted_sync(self) -> None:
        with self._sync_lock:
            self._connection.accepted += 1

    def increment_connection_rejected_limit_sync(self) -> None:
        with self._sync_lock:
            self._connection.rejected_limit += 1

    def increment_connections_closed_sync(self) -> None:
        with self._sync_lock:
            self._connection.closed += 1

    def increment_evictions_sync(self) -> None:
        """Increment count of connections evicted by the liveness monitor."""
        with self._sync_lock:
            self._connection.evicted += 1

    def increment_connection_timeouts_sync(self) -> None:
        """Increment count of receive timeouts."""
        with self._sync_lock:
            self._connection.timeouts += 1

    # ==========================================================================
    # Session Metrics
    # ==========================================================================

    def increment_sessions_created_sync(self) -> None:
        with self._sync_lock:
            self._session.created += 1

    def increment_sessions_closed_sync(self) -> None:
        with self._sync_lock:
            self._session.closed += 1

    def increment_members_joined_sync(self) -> None:
        with self._sync_lock:
            self._session.members_joined += 1

    def increment_members_left_sync(self) -> None:
        with self._sync_lock:
            self._session.members_left += 1

    # ==========================================================================
    # Command Metrics
    # ==========================================================================

    def increment_commands_processed_sync(self) -> None:
        with self._sync_lock:
            self._command.processed += 1

    def increment_command_errors_sync(self) -> None:
        """Increment count of commands rejected with an error event."""
        with self._sync_lock:
            self._command.errors += 1

    def increment_commands_unknown_sync(self) -> None:
        with self._sync_lock:
            self._command.unknown += 1

    def increment_frames_dropped_sync(self) -> None:
        """Increment count of malformed frames dropped without a reply."""
        with self._sync_lock:
            self._command.frames_dropped += 1

    def increment_frames_too_large_sync(self) -> None:
        with self._sync_lock:
            self._command.frames_too_large += 1

    # ==========================================================================
    # Delivery Metrics
    # ==========================================================================

    def add_events_delivered_sync(self, count: int) -> None:
        with self._sync_lock:
            self._delivery.delivered += count

    def add_events_dropped_sync(self, count: int) -> None:
        """Add count of events dropped because a peer queue was full or closing."""
        with self._sync_lock:
            self._delivery.dropped += count

    def increment_subscriber_errors_sync(self) -> None:
        with self._sync_lock:
            self._delivery.subscriber_errors += 1

    # ==========================================================================
    # History Metrics
    # ==========================================================================

    def increment_history_written_sync(self) -> None:
        with self._sync_lock:
            self._history.written += 1

    def increment_history_dropped_sync(self) -> None:
        with self._sync_lock:
            self._history.dropped += 1

    def increment_history_failed_sync(self) -> None:
        with self._sync_lock:
            self._history.failed += 1

    # ==========================================================================
    # Snapshot
    # ==========================================================================

    def get_snapshot_sync(self) -> dict[str, Any]:
        """Get a copy of all metrics (for health checks)."""
        with self._sync_lock:
            return self._get_snapshot_internal()

    def _get_snapshot_internal(self) -> dict[str, Any]:
        """
        Build the snapshot dict.

        Metric names follow the pattern {category}_{metric} with a plural
        category (connections, sessions, commands, events, history).
        """
        return {
            # Connection metrics
            "connections_accepted": self._connection.accepted,
            "connections_rejected_limit": self._connection.rejected_limit,
            "connections_closed": self._connection.closed,
            "connections_evicted": self._connection.evicted,
            "connections_timeouts": self._connection.timeouts,
            # Session metrics
            "sessions_created": self._session.created,
            "sessions_closed": self._session.closed,
            "sessions_members_joined": self._session.members_joined,
            "sessions_members_left": self._session.members_left,
            # Command metrics
            "commands_processed": self._command.processed,
            "commands_errors": self._command.errors,
            "commands_unknown": self._command.unknown,
            "commands_frames_dropped": self._command.frames_dropped,
            "commands_frames_too_large": self._command.frames_too_large,
            # Delivery metrics
            "events_delivered": self._delivery.delivered,
            "events_dropped": self._delivery.dropped,
            "events_subscriber_errors": self._delivery.subscriber_errors,
            # History metrics
            "history_written": self._history.written,
            "history_dropped": self._history.dropped,
            "history_failed": self._history.failed,
        }

    def reset(self) -> dict[str, Any]:
        """Reset all metrics and return the previous values."""
        with self._sync_lock:
            snapshot = self._get_snapshot_internal()
            self._connection = ConnectionMetrics()
            self._session = SessionMetrics()
            self._command = CommandMetrics()
            self._delivery = DeliveryMetrics()
            self._history = HistoryMetrics()
            return snapshot
