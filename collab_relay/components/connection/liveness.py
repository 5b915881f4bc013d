"""
Liveness Monitor for the relay.

Periodically probes every connection and evicts the ones that did not
answer the previous probe, or whose writer already failed a send.
Eviction goes through the same cleanup callback as an explicit disconnect,
so host eviction closes the session and member eviction looks like a leave.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Awaitable, Callable, Iterable, TYPE_CHECKING

from collab_relay.components.core.constants import (
    MSG_PING_PLAIN,
    RelayConstants,
    WSCloseCode,
)
from collab_relay.components.messages.events import Ping, Pong
from collab_relay.config.logging import get_logger

if TYPE_CHECKING:
    from collab_relay.components.connection.handle import ConnectionHandle
    from collab_relay.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)

PROBE_EVENT = Ping().to_dict()
PONG_EVENT = Pong().to_dict()
MSG_PONG_PLAIN = "pong"


class LivenessMonitor:
    """
    Periodic liveness probe over all connections.

    Each cycle, for every handle:
    - dead (send failed) or not alive since the last probe: terminate the
      transport and run the eviction callback;
    - otherwise: clear the liveness flag and enqueue a probe.

    A pong, or any other inbound frame, sets the flag again before the next
    cycle. A crashed peer therefore stays visible for at most one interval.

    Usage:
        monitor = LivenessMonitor(relay.connections, relay.evict, interval=30)
        task = asyncio.create_task(monitor.run())
    """

    def __init__(
        self,
        connections: Callable[[], Iterable["ConnectionHandle"]],
        evict_callback: Callable[["ConnectionHandle"], Awaitable[None]],
        interval: float = RelayConstants.LIVENESS_INTERVAL,
        metrics: "MetricsCollector | None" = None,
    ):
        """
        Initialize the monitor.

        Args:
            connections: Returns a snapshot of the handles to probe.
            evict_callback: Disconnect cleanup path for an evicted handle.
            interval: Seconds between cycles.
            metrics: Optional collector for eviction counts.
        """
        self._connections = connections
        self._evict = evict_callback
        self._interval = interval
        self._metrics = metrics
        self._cycles = 0
        self._evicted_total = 0
        self._last_cycle_at: float | None = None

    @property
    def interval(self) -> float:
        """Seconds between probe cycles."""
        return self._interval

    async def run(self) -> None:
        """Run cycles until cancelled. Errors in one cycle never stop the loop."""
        logger.info("Liveness monitor started", interval=self._interval)
        while True:
            try:
                await asyncio.sleep(self._interval)
                evicted = await self.run_cycle()
                if evicted > 0:
                    logger.info("Evicted unresponsive connections", count=evicted)
            except asyncio.CancelledError:
                logger.info("Liveness monitor stopped")
                break
            except Exception as e:
                logger.error("Error in liveness cycle", error=str(e), exc_info=True)

    async def run_cycle(self) -> int:
        """
        Run a single probe/evict cycle.

        Returns:
            Number of connections evicted.
        """
        self._cycles += 1
        self._last_cycle_at = time.time()
        evicted = 0

        for handle in list(self._connections()):
            if handle.is_dead or not handle.alive:
                reason = "send_failed" if handle.is_dead else "liveness_timeout"
                await self._terminate(handle, reason)
                evicted += 1
                continue

            handle.alive = False
            handle.send(PROBE_EVENT)

        self._evicted_total += evicted
        return evicted

    async def _terminate(self, handle: "ConnectionHandle", reason: str) -> None:
        """Close the transport and run the disconnect cleanup path."""
        code = WSCloseCode.SEND_FAILED if handle.is_dead else WSCloseCode.LIVENESS_TIMEOUT
        logger.info(
            "Evicting connection",
            connection_id=handle.connection_id,
            role=handle.metadata.role.value,
            session_id=handle.metadata.session_id,
            reason=reason,
        )
        try:
            await handle.abort(code=code, reason=reason)
        except Exception as e:
            logger.debug("Failed to abort evicted connection", error=str(e))

        try:
            await self._evict(handle)
        except Exception as e:
            logger.warning(
                "Failed to clean up evicted connection",
                connection_id=handle.connection_id,
                error=str(e),
            )

        if self._metrics is not None:
            self._metrics.increment_evictions_sync()

    def get_stats(self) -> dict[str, float | int]:
        """Get liveness monitor statistics."""
        return {
            "interval_seconds": self._interval,
            "cycles": self._cycles,
            "evicted_total": self._evicted_total,
            "last_cycle_age": (
                time.time() - self._last_cycle_at if self._last_cycle_at else 0
            ),
        }


def handle_heartbeat(handle: "ConnectionHandle", data: str) -> bool:
    """
    Centralized heartbeat handling.

    Answers client pings with a pong and treats a pong as the response to
    the monitor's probe. Supports both plain text and JSON frames.

    Args:
        handle: The connection the frame arrived on.
        data: The received frame.

    Returns:
        True if the frame was a heartbeat and was handled, False otherwise.
    """
    frame = data.strip()
    if frame == MSG_PING_PLAIN or _is_json_heartbeat(frame, MSG_PING_PLAIN):
        handle.mark_alive()
        handle.send(PONG_EVENT)
        return True
    if frame == MSG_PONG_PLAIN or _is_json_heartbeat(frame, MSG_PONG_PLAIN):
        handle.mark_alive()
        return True
    return False


def _is_json_heartbeat(frame: str, kind: str) -> bool:
    # Any JSON object whose type is the heartbeat kind, extra fields allowed
    if not frame.startswith("{") or kind not in frame:
        return False
    try:
        data = json.loads(frame)
    except (ValueError, RecursionError):
        return False
    return isinstance(data, dict) and data.get("type") == kind
