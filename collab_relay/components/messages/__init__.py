"""
Wire message components.

Inbound commands and outbound events.
"""

from collab_relay.components.messages.commands import (
    AnswerCommand,
    CloseCommand,
    Command,
    CommandType,
    CreateCommand,
    FeedbackCommand,
    JoinCommand,
    LeaveCommand,
    SetPromptCommand,
    UnknownCommand,
    command_from_dict,
    decode_command,
)
from collab_relay.components.messages.events import (
    AnswerReceived,
    Created,
    Error,
    Event,
    EventType,
    Feedback,
    Joined,
    MemberJoined,
    MemberLeft,
    MemberList,
    Ping,
    Pong,
    PromptUpdate,
    SessionClosed,
)

__all__ = [
    # Commands
    "AnswerCommand",
    "CloseCommand",
    "Command",
    "CommandType",
    "CreateCommand",
    "FeedbackCommand",
    "JoinCommand",
    "LeaveCommand",
    "SetPromptCommand",
    "UnknownCommand",
    "command_from_dict",
    "decode_command",
    # Events
    "AnswerReceived",
    "Created",
    "Error",
    "Event",
    "EventType",
    "Feedback",
    "Joined",
    "MemberJoined",
    "MemberLeft",
    "MemberList",
    "Ping",
    "Pong",
    "PromptUpdate",
    "SessionClosed",
]
