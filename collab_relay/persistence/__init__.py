"""
Session history persistence.
"""

from collab_relay.persistence.models import (
    AnswerRecord,
    Base,
    FeedbackRecord,
    MemberRecord,
    PromptRecord,
    SessionRecord,
)
from collab_relay.persistence.recorder import RECORDED_EVENTS, HistoryRecorder

__all__ = [
    "AnswerRecord",
    "Base",
    "FeedbackRecord",
    "MemberRecord",
    "PromptRecord",
    "SessionRecord",
    "HistoryRecorder",
    "RECORDED_EVENTS",
]
