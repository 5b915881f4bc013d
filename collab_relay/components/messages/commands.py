"""
Inbound command value objects.

Every inbound frame decodes into exactly one of a closed set of immutable
commands. Unknown `type` values become UnknownCommand (answered with an
error); frames that are not JSON objects with a string `type`, or carry
fields of the wrong type, raise DecodeFailureError and are dropped.

Older clients use a few legacy field names, accepted as aliases:
`machineId` for `ownerToken`, `code` for `payload` and the `setQuestion`
command type for `setPrompt`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from collab_relay.components.core.errors import DecodeFailureError


class CommandType(str, Enum):
    """Inbound command discriminants."""

    CREATE = "create"
    JOIN = "join"
    SET_PROMPT = "setPrompt"
    ANSWER = "answer"
    FEEDBACK = "feedback"
    LEAVE = "leave"
    CLOSE = "close"


COMMAND_ALIASES: dict[str, str] = {
    "setQuestion": CommandType.SET_PROMPT.value,
}


def _optional_str(data: dict[str, Any], *keys: str) -> str | None:
    """First present key among `keys`; must be a string (or null)."""
    for key in keys:
        if key in data and data[key] is not None:
            value = data[key]
            if not isinstance(value, str):
                raise DecodeFailureError(f"field {key!r} must be a string")
            return value
    return None


def _str(data: dict[str, Any], *keys: str) -> str:
    return _optional_str(data, *keys) or ""


@dataclass(frozen=True, slots=True)
class CreateCommand:
    """Open a new session with the sender as host."""

    session_id: str | None = None
    owner_token: str | None = None
    prompt: str | None = None

    type = CommandType.CREATE.value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CreateCommand":
        return cls(
            session_id=_optional_str(data, "sessionId"),
            owner_token=_optional_str(data, "ownerToken", "machineId"),
            prompt=_optional_str(data, "prompt"),
        )


@dataclass(frozen=True, slots=True)
class JoinCommand:
    """Join an existing session as a named member."""

    session_id: str = ""
    name: str = ""

    type = CommandType.JOIN.value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "JoinCommand":
        return cls(
            session_id=_str(data, "sessionId"),
            name=_str(data, "name"),
        )


@dataclass(frozen=True, slots=True)
class SetPromptCommand:
    """Replace the session prompt (host only)."""

    text: str = ""

    type = CommandType.SET_PROMPT.value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SetPromptCommand":
        return cls(text=_str(data, "text"))


@dataclass(frozen=True, slots=True)
class AnswerCommand:
    """Submit an artifact to the host (member only)."""

    payload: str = ""
    filename: str | None = None

    type = CommandType.ANSWER.value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnswerCommand":
        return cls(
            payload=_str(data, "payload", "code"),
            filename=_optional_str(data, "filename"),
        )


@dataclass(frozen=True, slots=True)
class FeedbackCommand:
    """Send a note to one member (host only)."""

    to: str = ""
    text: str = ""

    type = CommandType.FEEDBACK.value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FeedbackCommand":
        return cls(to=_str(data, "to"), text=_str(data, "text"))


@dataclass(frozen=True, slots=True)
class LeaveCommand:
    """Leave the current session (member only)."""

    type = CommandType.LEAVE.value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LeaveCommand":
        return cls()


@dataclass(frozen=True, slots=True)
class CloseCommand:
    """Close the session (host only)."""

    type = CommandType.CLOSE.value

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CloseCommand":
        return cls()


@dataclass(frozen=True, slots=True)
class UnknownCommand:
    """A well-formed frame with a type the relay does not know."""

    command_type: str

    type = "unknown"


Command = Union[
    CreateCommand,
    JoinCommand,
    SetPromptCommand,
    AnswerCommand,
    FeedbackCommand,
    LeaveCommand,
    CloseCommand,
    UnknownCommand,
]

_DECODERS = {
    CommandType.CREATE.value: CreateCommand.from_dict,
    CommandType.JOIN.value: JoinCommand.from_dict,
    CommandType.SET_PROMPT.value: SetPromptCommand.from_dict,
    CommandType.ANSWER.value: AnswerCommand.from_dict,
    CommandType.FEEDBACK.value: FeedbackCommand.from_dict,
    CommandType.LEAVE.value: LeaveCommand.from_dict,
    CommandType.CLOSE.value: CloseCommand.from_dict,
}


def command_from_dict(data: Any) -> Command:
    """
    Build a command from an already-parsed frame.

    Raises:
        DecodeFailureError: Not an object, missing/non-string `type`, or a
            field of the wrong type.
    """
    if not isinstance(data, dict):
        raise DecodeFailureError("frame is not a JSON object")
    command_type = data.get("type")
    if not isinstance(command_type, str) or not command_type:
        raise DecodeFailureError("missing or non-string 'type'")

    command_type = COMMAND_ALIASES.get(command_type, command_type)
    decoder = _DECODERS.get(command_type)
    if decoder is None:
        return UnknownCommand(command_type=command_type)
    return decoder(data)


def decode_command(raw: str | bytes) -> Command:
    """
    Decode a raw text frame into a command.

    Raises:
        DecodeFailureError: Invalid JSON (including nesting too deep to parse)
            or an invalid frame shape.
    """
    try:
        data = json.loads(raw)
    except (ValueError, RecursionError) as e:
        # JSONDecodeError and UnicodeDecodeError are ValueErrors; deep nesting
        # exhausts the parser stack
        raise DecodeFailureError(f"invalid JSON ({e.__class__.__name__})") from e
    return command_from_dict(data)
