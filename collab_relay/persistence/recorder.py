"""
Session History Recorder.

Subscribes to the relay's EventBus and writes session history to a database.
on_event() runs inside EventBus.publish(), with the registry lock held, so
it only enqueues; a background task writes each record in a worker thread.

Usage:
    recorder = HistoryRecorder.from_url("sqlite:///collab.db", metrics)
    relay.subscribe(recorder.on_event)
    await recorder.start()
    ...
    await recorder.stop()
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import Engine, select, update
from sqlalchemy.orm import Session, sessionmaker

from collab_relay.components.core.constants import RelayConstants
from collab_relay.components.events.bus import EventEnvelope
from collab_relay.components.messages.events import (
    AnswerReceived,
    Created,
    EventType,
    Feedback,
    Joined,
    MemberLeft,
    PromptUpdate,
    SessionClosed,
)
from collab_relay.config.logging import get_logger
from collab_relay.infrastructure.db import build_engine, build_session_factory, session_scope
from collab_relay.persistence.models import (
    AnswerRecord,
    Base,
    FeedbackRecord,
    MemberRecord,
    PromptRecord,
    SessionRecord,
)

if TYPE_CHECKING:
    from collab_relay.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)

RECORDED_EVENTS: frozenset[str] = frozenset({
    EventType.CREATED.value,
    EventType.JOINED.value,
    EventType.MEMBER_LEFT.value,
    EventType.SESSION_CLOSED.value,
    EventType.PROMPT_UPDATE.value,
    EventType.ANSWER_RECEIVED.value,
    EventType.FEEDBACK.value,
})


class HistoryRecorder:
    """
    Background writer for session history.

    Queue overflow drops the record (logged, counted); write failures are
    logged and never reach the relay.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        metrics: "MetricsCollector | None" = None,
        queue_size: int = RelayConstants.HISTORY_QUEUE_SIZE,
        engine: Engine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._metrics = metrics
        self._engine = engine
        self._queue: asyncio.Queue[tuple[EventEnvelope, datetime]] = asyncio.Queue(
            maxsize=queue_size
        )
        self._task: asyncio.Task | None = None
        self._written = 0
        self._dropped = 0

    @classmethod
    def from_url(
        cls,
        database_url: str,
        metrics: "MetricsCollector | None" = None,
        queue_size: int = RelayConstants.HISTORY_QUEUE_SIZE,
    ) -> "HistoryRecorder":
        """Build a recorder for a database URL, creating tables if missing."""
        engine = build_engine(database_url)
        Base.metadata.create_all(engine)
        return cls(build_session_factory(engine), metrics, queue_size, engine=engine)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # =========================================================================
    # Intake
    # =========================================================================

    def on_event(self, envelope: EventEnvelope) -> None:
        """EventBus subscriber. Never blocks."""
        if envelope.event_type not in RECORDED_EVENTS:
            return
        try:
            self._queue.put_nowait((envelope, datetime.now(timezone.utc)))
        except asyncio.QueueFull:
            self._dropped += 1
            if self._metrics is not None:
                self._metrics.increment_history_dropped_sync()
            logger.warning(
                "History queue full, dropping record",
                event_type=envelope.event_type,
                session_id=envelope.session_id,
            )

    # =========================================================================
    # Worker
    # =========================================================================

    async def start(self) -> None:
        """Start the background writer."""
        if self._task is not None:
            logger.warning("History recorder already running")
            return
        self._task = asyncio.create_task(self.run(), name="history_recorder")
        logger.info("History recorder started")

    async def stop(self, timeout: float = RelayConstants.FLUSH_TIMEOUT) -> None:
        """Drain pending records (bounded by timeout), then stop the writer."""
        if self._task is None:
            return
        if not self._queue.empty():
            try:
                await asyncio.wait_for(self._queue.join(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("History queue drain timeout", remaining=self._queue.qsize())

        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        if self._engine is not None:
            self._engine.dispose()
        logger.info("History recorder stopped", written=self._written, dropped=self._dropped)

    async def run(self) -> None:
        """Write queued records until cancelled."""
        while True:
            try:
                envelope, at = await self._queue.get()
            except asyncio.CancelledError:
                break
            try:
                await asyncio.to_thread(self.record, envelope, at)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if self._metrics is not None:
                    self._metrics.increment_history_failed_sync()
                logger.error(
                    "History write failed",
                    event_type=envelope.event_type,
                    session_id=envelope.session_id,
                    error=str(e),
                )
            finally:
                self._queue.task_done()

    # =========================================================================
    # Writes (worker thread)
    # =========================================================================

    def record(self, envelope: EventEnvelope, at: datetime | None = None) -> None:
        """Write one event synchronously."""
        at = at or datetime.now(timezone.utc)
        event = envelope.event
        session_id = envelope.session_id

        with session_scope(self._session_factory) as db:
            if isinstance(event, Created):
                host = envelope.destinations[0] if envelope.destinations else None
                db.add(SessionRecord(session_id=event.session_id, host_connection=host, created_at=at))
            elif isinstance(event, Joined):
                db.add(MemberRecord(session_id=event.session_id, name=event.name, joined_at=at))
            elif isinstance(event, MemberLeft):
                db.execute(
                    update(MemberRecord)
                    .where(
                        MemberRecord.session_id == event.session_id,
                        MemberRecord.name == event.name,
                        MemberRecord.left_at.is_(None),
                    )
                    .values(left_at=at)
                )
            elif isinstance(event, SessionClosed):
                self._close_session(db, session_id, at)
            elif isinstance(event, PromptUpdate):
                db.add(PromptRecord(session_id=session_id, text=event.text, set_at=at))
            elif isinstance(event, AnswerReceived):
                db.add(
                    AnswerRecord(
                        session_id=session_id,
                        member=event.name,
                        payload=event.payload,
                        filename=event.filename,
                        created_at=at,
                    )
                )
            elif isinstance(event, Feedback):
                db.add(
                    FeedbackRecord(
                        session_id=session_id,
                        to_member=event.to,
                        text=event.text,
                        created_at=at,
                    )
                )

        self._written += 1
        if self._metrics is not None:
            self._metrics.increment_history_written_sync()

    @staticmethod
    def _close_session(db: Session, session_id: str | None, at: datetime) -> None:
        if session_id is None:
            return
        latest = db.scalars(
            select(SessionRecord)
            .where(SessionRecord.session_id == session_id, SessionRecord.closed_at.is_(None))
            .order_by(SessionRecord.id.desc())
            .limit(1)
        ).first()
        if latest is not None:
            latest.closed_at = at
        # Whoever was still present left with the session
        db.execute(
            update(MemberRecord)
            .where(MemberRecord.session_id == session_id, MemberRecord.left_at.is_(None))
            .values(left_at=at)
        )

    def get_stats(self) -> dict[str, int | bool]:
        """Get recorder statistics."""
        return {
            "running": self._task is not None,
            "pending": self._queue.qsize(),
            "written": self._written,
            "dropped": self._dropped,
        }
