"""
Tests for the liveness monitor and heartbeat handling.

Cycles are run by hand with run_cycle(); the relay fixture's interval is long
enough that the background loop never fires during a test.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from collab_relay.components.connection.handle import ConnectionHandle
from collab_relay.components.connection.liveness import LivenessMonitor, handle_heartbeat

from conftest import FakeTransport


class TestRunCycle:
    """Probe and eviction decisions."""

    @pytest.mark.asyncio
    async def test_cycle_probes_and_clears_flag(self, relay, connect, settle):
        handle, transport = await connect()

        evicted = await relay.monitor.run_cycle()
        await settle()

        assert evicted == 0
        assert handle.alive is False
        assert transport.types() == ["ping"]

    @pytest.mark.asyncio
    async def test_pong_keeps_connection(self, relay, connect, settle):
        handle, _ = await connect()
        await relay.monitor.run_cycle()
        assert handle_heartbeat(handle, '{"type": "pong"}')

        assert await relay.monitor.run_cycle() == 0
        assert handle.is_open
        assert relay.total_connections == 1

    @pytest.mark.asyncio
    async def test_silent_connection_evicted_after_two_cycles(self, relay, connect):
        handle, transport = await connect()
        await relay.monitor.run_cycle()

        assert await relay.monitor.run_cycle() == 1
        assert transport.closed == (4008, "liveness_timeout")
        assert relay.total_connections == 0
        assert relay.metrics.get_snapshot_sync()["connections_evicted"] == 1

    @pytest.mark.asyncio
    async def test_dead_connection_evicted_on_next_cycle(self, relay, connect):
        handle, transport = await connect()
        handle.mark_dead()

        assert await relay.monitor.run_cycle() == 1
        assert transport.closed == (4010, "send_failed")

    @pytest.mark.asyncio
    async def test_evicted_member_is_announced_as_leaving(self, relay, connect, settle):
        host, host_t = await connect()
        await relay.submit(host, '{"type": "create"}')
        await settle()
        session_id = host_t.last("created")["sessionId"]
        member, _ = await connect()
        await relay.submit(member, f'{{"type": "join", "sessionId": "{session_id}", "name": "ana"}}')

        await relay.monitor.run_cycle()
        host.mark_alive()
        await relay.monitor.run_cycle()
        await settle()

        assert host_t.last("memberLeft")["name"] == "ana"
        assert session_id in relay.registry

    @pytest.mark.asyncio
    async def test_evicted_host_closes_session(self, relay, connect, settle):
        host, host_t = await connect()
        await relay.submit(host, '{"type": "create"}')
        await settle()
        session_id = host_t.last("created")["sessionId"]
        member, member_t = await connect()
        await relay.submit(member, f'{{"type": "join", "sessionId": "{session_id}", "name": "ana"}}')

        await relay.monitor.run_cycle()
        member.mark_alive()
        await relay.monitor.run_cycle()
        await settle(member)

        assert session_id not in relay.registry
        assert member_t.types()[-1] == "sessionClosed"
        assert member_t.closed == (4000, "session closed")

    @pytest.mark.asyncio
    async def test_eviction_callback_failure_does_not_stop_cycle(self):
        handles = [ConnectionHandle(FakeTransport()) for _ in range(2)]
        for h in handles:
            h.alive = False
        evict = AsyncMock(side_effect=RuntimeError("boom"))
        monitor = LivenessMonitor(lambda: handles, evict, interval=1)

        assert await monitor.run_cycle() == 2
        assert evict.await_count == 2
        assert monitor.get_stats()["evicted_total"] == 2

    @pytest.mark.asyncio
    async def test_run_loop_stops_on_cancel(self):
        monitor = LivenessMonitor(lambda: [], AsyncMock(), interval=0.01)
        task = asyncio.create_task(monitor.run())
        await asyncio.sleep(0.05)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert task.done()
        assert monitor.get_stats()["cycles"] >= 1


class TestHandleHeartbeat:
    """Client heartbeat frames."""

    @pytest.mark.parametrize(
        "frame", ["ping", '{"type":"ping"}', '{"type": "ping"}', " ping\n", '{"type":"ping","ts":1}']
    )
    def test_ping_is_answered_with_pong(self, make_handle, frame):
        handle = make_handle()
        handle.alive = False

        assert handle_heartbeat(handle, frame) is True
        assert handle.alive is True
        assert handle.pending == 1

    @pytest.mark.parametrize("frame", ["pong", '{"type":"pong"}', '{"type": "pong", "seq": 4}'])
    def test_pong_marks_alive_without_reply(self, make_handle, frame):
        handle = make_handle()
        handle.alive = False

        assert handle_heartbeat(handle, frame) is True
        assert handle.alive is True
        assert handle.pending == 0

    @pytest.mark.parametrize(
        "frame",
        [
            '{"type":"leave"}',
            "pingpong",
            '{"type":"create","prompt":"ping"}',
            '{"ping": 1}',
            '{"type": "ping"',
            '{"a":' + "[" * 20000 + '"ping"',
        ],
    )
    def test_other_frames_are_not_heartbeats(self, make_handle, frame):
        assert handle_heartbeat(make_handle(), frame) is False
