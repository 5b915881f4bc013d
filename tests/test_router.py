"""
End-to-end routing tests through SessionRelay with fake transports.

Each test drives handles with raw frames (as the WebSocket endpoint does) and
inspects what each peer received after the writers have drained.
"""

import asyncio
import json

import pytest

from collab_relay.components.connection.handle import Role
from collab_relay.components.messages.commands import JoinCommand


def frame(**data) -> str:
    return json.dumps(data)


async def host_session(relay, connect, settle, session_id="ROOM01", **extra):
    """Connect a host and create a session; returns (handle, transport, id)."""
    host, host_t = await connect()
    await relay.submit(host, frame(type="create", sessionId=session_id, **extra))
    await settle()
    return host, host_t, host_t.last("created")["sessionId"]


async def join(relay, connect, session_id, name):
    handle, transport = await connect()
    await relay.submit(handle, frame(type="join", sessionId=session_id, name=name))
    return handle, transport


class TestCreateAndJoin:
    """Session creation and membership announcements."""

    @pytest.mark.asyncio
    async def test_create_replies_created_then_member_list(self, relay, connect, settle):
        host, host_t, session_id = await host_session(relay, connect, settle)

        assert session_id == "ROOM01"
        assert host_t.types() == ["created", "memberList"]
        assert host_t.last("memberList")["members"] == []
        assert host.metadata.role is Role.HOST

    @pytest.mark.asyncio
    async def test_create_with_staged_prompt(self, relay, connect, settle):
        _, host_t, _ = await host_session(relay, connect, settle, prompt="Write fizzbuzz")
        assert host_t.types() == ["created", "memberList", "promptUpdate"]
        assert host_t.last("promptUpdate")["text"] == "Write fizzbuzz"

    @pytest.mark.asyncio
    async def test_join_flow(self, relay, connect, settle):
        """Joiner gets joined+memberList+memberJoined; everyone sees the new list."""
        _, host_t, session_id = await host_session(relay, connect, settle, prompt="Q1")
        _, ana_t = await join(relay, connect, "room01", "ana")
        _, bo_t = await join(relay, connect, session_id, "bo")
        await settle()

        assert ana_t.types()[:3] == ["joined", "memberList", "memberJoined"]
        assert ana_t.sent[0] == {"type": "joined", "sessionId": "ROOM01", "name": "ana", "prompt": "Q1"}
        assert ana_t.last("memberList")["members"] == ["ana", "bo"]
        assert bo_t.last("memberList")["members"] == ["ana", "bo"]
        assert [m["name"] for m in host_t.of_type("memberJoined")] == ["ana", "bo"]

    @pytest.mark.asyncio
    async def test_duplicate_names_are_suffixed(self, relay, connect, settle):
        _, host_t, session_id = await host_session(relay, connect, settle)
        _, first_t = await join(relay, connect, session_id, "ana")
        _, second_t = await join(relay, connect, session_id, "ana")
        await settle()

        assert first_t.sent[0]["name"] == "ana"
        assert second_t.sent[0]["name"] == "ana-2"
        assert host_t.last("memberList")["members"] == ["ana", "ana-2"]

    @pytest.mark.asyncio
    async def test_join_unknown_session(self, relay, connect, settle):
        handle, transport = await join(relay, connect, "NOPE99", "ana")
        await settle()

        assert transport.types() == ["error"]
        assert transport.sent[0]["code"] == "SessionNotFound"
        assert handle.metadata.role is Role.UNBOUND
        assert not handle.is_closed

    @pytest.mark.asyncio
    async def test_join_without_name(self, relay, connect, settle):
        _, _, session_id = await host_session(relay, connect, settle)
        handle, transport = await connect()
        result = await relay.submit_command(handle, JoinCommand(session_id=session_id, name="  "))
        await settle()

        assert result.error == "NameRequired"
        assert transport.last("error")["code"] == "NameRequired"

    @pytest.mark.asyncio
    async def test_owner_token_conflict(self, relay, connect, settle):
        await host_session(relay, connect, settle, ownerToken="machine-1")
        other, other_t = await connect()
        result = await relay.submit(other, frame(type="create", ownerToken="machine-1"))
        await settle()

        assert result.error == "OwnershipConflict"
        assert other_t.types() == ["error"]
        assert len(relay.registry) == 1


class TestPromptAnswerFeedback:
    """Content routing between host and members."""

    @pytest.mark.asyncio
    async def test_prompt_reaches_everyone(self, relay, connect, settle):
        host, host_t, session_id = await host_session(relay, connect, settle)
        _, ana_t = await join(relay, connect, session_id, "ana")
        await relay.submit(host, frame(type="setPrompt", text="Reverse a list"))
        await settle()

        assert host_t.last("promptUpdate") == {"type": "promptUpdate", "text": "Reverse a list"}
        assert ana_t.last("promptUpdate")["text"] == "Reverse a list"

    @pytest.mark.asyncio
    async def test_late_joiner_gets_current_prompt(self, relay, connect, settle):
        host, _, session_id = await host_session(relay, connect, settle)
        await relay.submit(host, frame(type="setQuestion", text="Q2"))
        _, late_t = await join(relay, connect, session_id, "late")
        await settle()

        assert late_t.sent[0]["prompt"] == "Q2"

    @pytest.mark.asyncio
    async def test_member_cannot_set_prompt(self, relay, connect, settle):
        _, host_t, session_id = await host_session(relay, connect, settle)
        ana, ana_t = await join(relay, connect, session_id, "ana")
        result = await relay.submit(ana, frame(type="setPrompt", text="hijack"))
        await settle()

        assert result.error == "NotHost"
        assert ana_t.last("error")["code"] == "NotHost"
        assert host_t.of_type("promptUpdate") == []

    @pytest.mark.asyncio
    async def test_answer_goes_to_host_only(self, relay, connect, settle):
        _, host_t, session_id = await host_session(relay, connect, settle)
        ana, ana_t = await join(relay, connect, session_id, "ana")
        _, bo_t = await join(relay, connect, session_id, "bo")
        await relay.submit(ana, frame(type="answer", code="print(1)", filename="a.py"))
        await settle()

        assert host_t.last("answerReceived") == {
            "type": "answerReceived",
            "name": "ana",
            "payload": "print(1)",
            "filename": "a.py",
        }
        assert ana_t.of_type("answerReceived") == []
        assert bo_t.of_type("answerReceived") == []

    @pytest.mark.asyncio
    async def test_host_cannot_answer(self, relay, connect, settle):
        host, host_t, _ = await host_session(relay, connect, settle)
        result = await relay.submit(host, frame(type="answer", payload="x"))
        await settle()

        assert result.error == "NotMember"
        assert host_t.last("error")["code"] == "NotMember"

    @pytest.mark.asyncio
    async def test_feedback_goes_to_named_member(self, relay, connect, settle):
        host, _, session_id = await host_session(relay, connect, settle)
        _, ana_t = await join(relay, connect, session_id, "ana")
        _, bo_t = await join(relay, connect, session_id, "bo")
        await relay.submit(host, frame(type="feedback", to="bo", text="nice"))
        await settle()

        assert bo_t.last("feedback") == {"type": "feedback", "text": "nice"}
        assert ana_t.of_type("feedback") == []

    @pytest.mark.asyncio
    async def test_feedback_to_unknown_member(self, relay, connect, settle):
        host, host_t, _ = await host_session(relay, connect, settle)
        result = await relay.submit(host, frame(type="feedback", to="ghost", text="?"))
        await settle()

        assert result.error == "MemberNotFound"
        assert host_t.last("error")["code"] == "MemberNotFound"


class TestLeaveAndClose:
    """Departures and session teardown."""

    @pytest.mark.asyncio
    async def test_leave_announces_and_unbinds(self, relay, connect, settle):
        _, host_t, session_id = await host_session(relay, connect, settle)
        ana, ana_t = await join(relay, connect, session_id, "ana")
        _, bo_t = await join(relay, connect, session_id, "bo")
        await relay.submit(ana, frame(type="leave"))
        await settle()

        assert host_t.last("memberLeft")["name"] == "ana"
        assert bo_t.last("memberList")["members"] == ["bo"]
        assert ana.metadata.role is Role.UNBOUND
        assert not ana.is_closed
        assert ana_t.of_type("memberLeft") == []

    @pytest.mark.asyncio
    async def test_host_cannot_leave(self, relay, connect, settle):
        host, _, _ = await host_session(relay, connect, settle)
        result = await relay.submit(host, frame(type="leave"))
        assert result.error == "NotMember"

    @pytest.mark.asyncio
    async def test_close_notifies_and_disconnects_members(self, relay, connect, settle):
        host, host_t, session_id = await host_session(relay, connect, settle)
        ana, ana_t = await join(relay, connect, session_id, "ana")
        await relay.submit(host, frame(type="close"))
        await settle()

        assert ana_t.types()[-1] == "sessionClosed"
        assert ana_t.closed == (4000, "session closed")
        assert ana.is_closed
        assert host_t.types()[-1] == "sessionClosed"
        assert host_t.closed is None
        assert host.metadata.role is Role.UNBOUND
        assert session_id not in relay.registry

    @pytest.mark.asyncio
    async def test_commands_after_close_fail(self, relay, connect, settle):
        host, _, session_id = await host_session(relay, connect, settle)
        await relay.submit(host, frame(type="close"))

        assert (await relay.submit(host, frame(type="setPrompt", text="x"))).error == "NotHost"
        late, _ = await join(relay, connect, session_id, "late")
        assert late.metadata.role is Role.UNBOUND

    @pytest.mark.asyncio
    async def test_host_can_create_again_after_close(self, relay, connect, settle):
        host, host_t, _ = await host_session(relay, connect, settle, ownerToken="m1")
        await relay.submit(host, frame(type="close"))
        result = await relay.submit(host, frame(type="create", ownerToken="m1"))
        assert result.success

    @pytest.mark.asyncio
    async def test_host_disconnect_closes_session(self, relay, connect, settle):
        host, _, session_id = await host_session(relay, connect, settle)
        ana, ana_t = await join(relay, connect, session_id, "ana")
        await settle()

        await relay.disconnect(host)
        await settle(ana)

        assert ana_t.types()[-1] == "sessionClosed"
        assert ana_t.closed == (4000, "session closed")
        assert session_id not in relay.registry
        assert relay.total_connections == 1

    @pytest.mark.asyncio
    async def test_member_disconnect_equals_leave(self, relay, connect, settle):
        _, host_t, session_id = await host_session(relay, connect, settle)
        ana, _ = await join(relay, connect, session_id, "ana")
        await settle()

        await relay.disconnect(ana)
        await relay.disconnect(ana)
        await settle()

        assert [m["name"] for m in host_t.of_type("memberLeft")] == ["ana"]
        assert host_t.last("memberList")["members"] == []


class TestConcurrentCommands:
    """Commands from many connections racing on one session."""

    @pytest.mark.asyncio
    async def test_simultaneous_joins_get_distinct_names(self, relay, connect, settle):
        _, host_t, session_id = await host_session(relay, connect, settle)
        handles = [(await connect())[0] for _ in range(20)]

        results = await asyncio.gather(
            *(relay.submit(h, frame(type="join", sessionId=session_id, name="ana")) for h in handles)
        )
        await settle()

        assert all(r.success for r in results)
        names = [h.metadata.name for h in handles]
        assert len(set(names)) == 20
        assert sorted(names) == sorted(["ana"] + [f"ana-{i}" for i in range(2, 21)])
        assert sorted(relay.registry.get(session_id).member_names()) == sorted(names)
        assert sorted(host_t.last("memberList")["members"]) == sorted(names)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("close_first", [True, False])
    async def test_close_racing_join(self, relay, connect, settle, close_first):
        host, _, session_id = await host_session(relay, connect, settle)
        member, member_t = await connect()
        close = relay.submit(host, frame(type="close"))
        join_ = relay.submit(member, frame(type="join", sessionId=session_id, name="ana"))

        if close_first:
            _, joined = await asyncio.gather(close, join_)
        else:
            joined, _ = await asyncio.gather(join_, close)
        await settle(member)

        if joined.success:
            assert member_t.types()[0] == "joined"
            assert member_t.types()[-1] == "sessionClosed"
            assert member_t.closed == (4000, "session closed")
        else:
            assert joined.error == "SessionNotFound"
            assert member_t.types() == ["error"]
            assert member.is_open
        assert member.metadata.role is Role.UNBOUND
        assert member.metadata.session_id is None
        assert member.metadata.name is None
        assert relay.registry.lookup_by_handle(member) is None
        assert session_id not in relay.registry


class TestMalformedInput:
    """Unknown and malformed frames."""

    @pytest.mark.asyncio
    async def test_unknown_command_answers_error(self, relay, connect, settle):
        handle, transport = await connect()
        result = await relay.submit(handle, frame(type="dance"))
        await settle()

        assert result.error is None
        assert transport.sent[0]["code"] == "UnknownCommand"
        assert relay.metrics.get_snapshot_sync()["commands_unknown"] == 1

    @pytest.mark.asyncio
    async def test_malformed_frame_is_dropped(self, relay, connect, settle):
        handle, transport = await connect()
        assert await relay.submit(handle, "{not json") is None
        assert await relay.submit(handle, '{"type": 7}') is None
        assert await relay.submit(handle, "[" * 20000) is None
        await settle()

        assert transport.sent == []
        assert handle.is_open
        assert relay.metrics.get_snapshot_sync()["commands_frames_dropped"] == 3

    @pytest.mark.asyncio
    async def test_connection_limit(self, relay, connect, relay_settings):
        relay_settings.ws_max_total_connections = 1
        await connect()
        with pytest.raises(ConnectionError):
            await connect()
