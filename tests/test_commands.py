"""
Tests for inbound command decoding and outbound event serialization.
"""

import pytest

from collab_relay.components.core.errors import DecodeFailureError
from collab_relay.components.messages.commands import (
    AnswerCommand,
    CloseCommand,
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
    Error,
    Feedback,
    MemberList,
    SessionClosed,
)


class TestDecodeCommand:
    """Test decoding of each command type."""

    def test_create_with_all_fields(self):
        cmd = decode_command('{"type":"create","sessionId":"ab12cd","ownerToken":"t1","prompt":"q"}')
        assert cmd == CreateCommand(session_id="ab12cd", owner_token="t1", prompt="q")

    def test_create_without_fields(self):
        assert decode_command('{"type":"create"}') == CreateCommand()

    def test_machine_id_is_owner_token_alias(self):
        cmd = decode_command('{"type":"create","machineId":"m1"}')
        assert cmd.owner_token == "m1"

    def test_join(self):
        cmd = decode_command('{"type":"join","sessionId":"ABC123","name":"ana"}')
        assert cmd == JoinCommand(session_id="ABC123", name="ana")

    def test_join_ignores_owner_token(self):
        cmd = decode_command('{"type":"join","sessionId":"ABC123","name":"ana","ownerToken":"t1"}')
        assert cmd == JoinCommand(session_id="ABC123", name="ana")

    def test_join_missing_name_decodes_empty(self):
        # The registry rejects the empty name with NameRequired
        assert decode_command('{"type":"join","sessionId":"ABC123"}').name == ""

    def test_set_prompt_and_legacy_alias(self):
        assert decode_command('{"type":"setPrompt","text":"x"}') == SetPromptCommand("x")
        assert decode_command('{"type":"setQuestion","text":"x"}') == SetPromptCommand("x")

    def test_answer_with_code_alias(self):
        cmd = decode_command('{"type":"answer","code":"print(1)","filename":"a.py"}')
        assert cmd == AnswerCommand(payload="print(1)", filename="a.py")

    def test_answer_prefers_payload(self):
        cmd = decode_command('{"type":"answer","payload":"p","code":"c"}')
        assert cmd.payload == "p"
        assert cmd.filename is None

    def test_feedback(self):
        assert decode_command('{"type":"feedback","to":"ana","text":"ok"}') == FeedbackCommand("ana", "ok")

    def test_leave_and_close_ignore_extra_fields(self):
        assert decode_command('{"type":"leave","x":1}') == LeaveCommand()
        assert decode_command('{"type":"close","sessionId":"ZZ"}') == CloseCommand()

    def test_unknown_type(self):
        cmd = decode_command('{"type":"dance"}')
        assert cmd == UnknownCommand(command_type="dance")
        assert cmd.type == "unknown"

    def test_bytes_frame(self):
        assert decode_command(b'{"type":"leave"}') == LeaveCommand()


class TestDecodeFailures:
    """Frames that are dropped instead of answered."""

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "",
            "[1, 2]",
            '"create"',
            "{}",
            '{"type": 5}',
            '{"type": ""}',
            '{"type": "join", "name": 42}',
            '{"type": "answer", "payload": {"a": 1}}',
            b"\xff\xfe",
        ],
    )
    def test_malformed_frames_raise(self, raw):
        with pytest.raises(DecodeFailureError):
            decode_command(raw)

    @pytest.mark.parametrize("raw", ["[" * 20000, '{"type": "join", "name": ' + "[" * 20000])
    def test_deeply_nested_frames_raise(self, raw):
        with pytest.raises(DecodeFailureError):
            decode_command(raw)

    def test_null_optional_field_is_absent(self):
        assert command_from_dict({"type": "create", "sessionId": None}).session_id is None

    def test_non_dict(self):
        with pytest.raises(DecodeFailureError):
            command_from_dict(["type", "create"])


class TestEventSerialization:
    """Wire shape of outbound events."""

    def test_answer_filename_omitted_when_missing(self):
        assert AnswerReceived("ana", "x").to_dict() == {
            "type": "answerReceived",
            "name": "ana",
            "payload": "x",
        }
        assert AnswerReceived("ana", "x", "a.py").to_dict()["filename"] == "a.py"

    def test_feedback_recipient_not_on_wire(self):
        assert Feedback("nice", to="ana").to_dict() == {"type": "feedback", "text": "nice"}

    def test_member_list(self):
        assert MemberList("ABC123", ("ana", "bo")).to_dict() == {
            "type": "memberList",
            "sessionId": "ABC123",
            "members": ["ana", "bo"],
        }

    def test_error_and_session_closed(self):
        assert Error("NotHost", "nope").to_dict() == {
            "type": "error",
            "code": "NotHost",
            "message": "nope",
        }
        assert SessionClosed().to_dict() == {"type": "sessionClosed"}
