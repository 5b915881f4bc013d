"""
Outbound event value objects.

Each event serializes to the wire dict with `to_dict()`. Optional fields are
omitted rather than sent as null.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union


class EventType(str, Enum):
    """Outbound event discriminants."""

    CREATED = "created"
    JOINED = "joined"
    MEMBER_LIST = "memberList"
    MEMBER_JOINED = "memberJoined"
    MEMBER_LEFT = "memberLeft"
    PROMPT_UPDATE = "promptUpdate"
    ANSWER_RECEIVED = "answerReceived"
    FEEDBACK = "feedback"
    SESSION_CLOSED = "sessionClosed"
    ERROR = "error"
    PING = "ping"
    PONG = "pong"


@dataclass(frozen=True, slots=True)
class Created:
    session_id: str

    type = EventType.CREATED.value

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "sessionId": self.session_id}


@dataclass(frozen=True, slots=True)
class Joined:
    session_id: str
    name: str
    prompt: str = ""

    type = EventType.JOINED.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "sessionId": self.session_id,
            "name": self.name,
            "prompt": self.prompt,
        }


@dataclass(frozen=True, slots=True)
class MemberList:
    session_id: str
    members: tuple[str, ...] = field(default_factory=tuple)

    type = EventType.MEMBER_LIST.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "sessionId": self.session_id,
            "members": list(self.members),
        }


@dataclass(frozen=True, slots=True)
class MemberJoined:
    session_id: str
    name: str

    type = EventType.MEMBER_JOINED.value

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "sessionId": self.session_id, "name": self.name}


@dataclass(frozen=True, slots=True)
class MemberLeft:
    session_id: str
    name: str

    type = EventType.MEMBER_LEFT.value

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "sessionId": self.session_id, "name": self.name}


@dataclass(frozen=True, slots=True)
class PromptUpdate:
    text: str

    type = EventType.PROMPT_UPDATE.value

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True, slots=True)
class AnswerReceived:
    name: str
    payload: str
    filename: str | None = None

    type = EventType.ANSWER_RECEIVED.value

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "name": self.name, "payload": self.payload}
        if self.filename is not None:
            data["filename"] = self.filename
        return data


@dataclass(frozen=True, slots=True)
class Feedback:
    text: str
    # Recipient name, for subscribers only; not sent on the wire
    to: str | None = None

    type = EventType.FEEDBACK.value

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(frozen=True, slots=True)
class SessionClosed:
    type = EventType.SESSION_CLOSED.value

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type}


@dataclass(frozen=True, slots=True)
class Error:
    code: str
    message: str = ""

    type = EventType.ERROR.value

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "code": self.code, "message": self.message}


@dataclass(frozen=True, slots=True)
class Ping:
    type = EventType.PING.value

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type}


@dataclass(frozen=True, slots=True)
class Pong:
    type = EventType.PONG.value

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type}


Event = Union[
    Created,
    Joined,
    MemberList,
    MemberJoined,
    MemberLeft,
    PromptUpdate,
    AnswerReceived,
    Feedback,
    SessionClosed,
    Error,
    Ping,
    Pong,
]
