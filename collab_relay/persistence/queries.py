"""
Read-side queries over session history, used by the `history` CLI command.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from collab_relay.persistence.models import (
    AnswerRecord,
    FeedbackRecord,
    MemberRecord,
    PromptRecord,
    SessionRecord,
)


def latest_sessions(db: Session, limit: int = 10) -> Sequence[SessionRecord]:
    """Most recently created sessions."""
    return db.scalars(
        select(SessionRecord).order_by(SessionRecord.created_at.desc(), SessionRecord.id.desc()).limit(limit)
    ).all()


def active_members(db: Session, limit: int = 20) -> Sequence[MemberRecord]:
    """Members that have not left yet, newest first."""
    return db.scalars(
        select(MemberRecord)
        .where(MemberRecord.left_at.is_(None))
        .order_by(MemberRecord.joined_at.desc(), MemberRecord.id.desc())
        .limit(limit)
    ).all()


def latest_prompts(db: Session, limit: int = 5) -> Sequence[PromptRecord]:
    return db.scalars(
        select(PromptRecord).order_by(PromptRecord.set_at.desc(), PromptRecord.id.desc()).limit(limit)
    ).all()


def latest_answers(db: Session, limit: int = 5) -> Sequence[AnswerRecord]:
    return db.scalars(
        select(AnswerRecord).order_by(AnswerRecord.created_at.desc(), AnswerRecord.id.desc()).limit(limit)
    ).all()


def latest_feedback(db: Session, limit: int = 5) -> Sequence[FeedbackRecord]:
    return db.scalars(
        select(FeedbackRecord).order_by(FeedbackRecord.created_at.desc(), FeedbackRecord.id.desc()).limit(limit)
    ).all()


def preview(text: str | None, length: int) -> str:
    """First `length` characters, with an ellipsis when cut."""
    if not text:
        return ""
    return text if len(text) <= length else text[:length] + "..."
