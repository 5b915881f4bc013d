"""
Event Bus - delivers outbound events to connection handles.

publish() is synchronous: it serializes the event once, enqueues it on every
destination handle without awaiting, then notifies subscribers. Called with
the registry lock held, so events enter each handle's queue in the order the
mutations happened.

Usage:
    bus = EventBus(metrics)
    unsubscribe = bus.subscribe(recorder.on_event)
    bus.publish(PromptUpdate("..."), session.participants(), session_id)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, TYPE_CHECKING

from collab_relay.components.messages.events import Event
from collab_relay.config.logging import get_logger

if TYPE_CHECKING:
    from collab_relay.components.connection.handle import ConnectionHandle
    from collab_relay.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class EventEnvelope:
    """An outbound event plus where it went."""

    event: Event
    destinations: tuple[str, ...]
    session_id: str | None = None

    @property
    def event_type(self) -> str:
        return self.event.type


Subscriber = Callable[[EventEnvelope], None]


class EventBus:
    """Fan-out of outbound events to handles and subscribers."""

    def __init__(self, metrics: "MetricsCollector | None" = None) -> None:
        self._metrics = metrics
        self._subscribers: list[Subscriber] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback invoked with an EventEnvelope for every event.

        Callbacks run synchronously inside publish() and must not block.

        Returns:
            A function that removes the subscription.
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(
        self,
        event: Event,
        targets: Iterable["ConnectionHandle"],
        session_id: str | None = None,
    ) -> int:
        """
        Enqueue an event on every target handle and notify subscribers.

        Returns:
            Number of handles that accepted the event.
        """
        payload = event.to_dict()
        destinations: list[str] = []
        delivered = 0
        dropped = 0

        for handle in targets:
            destinations.append(handle.connection_id)
            if handle.send(payload):
                delivered += 1
            else:
                dropped += 1

        if self._metrics is not None:
            self._metrics.add_events_delivered_sync(delivered)
            if dropped:
                self._metrics.add_events_dropped_sync(dropped)

        if self._subscribers:
            envelope = EventEnvelope(event, tuple(destinations), session_id)
            for callback in list(self._subscribers):
                try:
                    callback(envelope)
                except Exception as e:
                    # Subscribers never affect routing
                    logger.warning(
                        "Event subscriber failed",
                        event_type=event.type,
                        error=str(e),
                    )
                    if self._metrics is not None:
                        self._metrics.increment_subscriber_errors_sync()

        return delivered
