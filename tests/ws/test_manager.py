"""Unit tests for the WebSocket ConnectionManager."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from colink.auth.session import SessionEvent, SessionEventType
from colink.ws.manager import SIGNED_OUT_CLOSE_CODE, VALID_CHANNELS, ConnectionManager


@pytest.fixture
def mgr() -> ConnectionManager:
    """Fresh ConnectionManager for each test."""
    return ConnectionManager(max_connections_per_user=2)


def _make_ws(*, fail_send: bool = False) -> MagicMock:
    """Create a mock WebSocket."""
    ws = AsyncMock()
    ws.accept = AsyncMock()
    ws.close = AsyncMock()
    if fail_send:
        ws.send_text = AsyncMock(side_effect=RuntimeError("connection closed"))
    else:
        ws.send_text = AsyncMock()
    return ws


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_registers_client(self, mgr: ConnectionManager) -> None:
        ws = _make_ws()
        assert await mgr.connect(ws, "conn-1", user_id=42)
        ws.accept.assert_awaited_once()
        assert mgr.connection_count == 1
        assert mgr.get_stats()["unique_users"] == 1

    @pytest.mark.asyncio
    async def test_connection_limit_per_user(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", user_id=42)
        await mgr.connect(_make_ws(), "conn-2", user_id=42)

        third = _make_ws()
        assert not await mgr.connect(third, "conn-3", user_id=42)
        third.accept.assert_not_awaited()
        third.close.assert_awaited_once_with(code=4008, reason="Too many connections")
        assert mgr.user_connection_count(42) == 2

        assert await mgr.connect(_make_ws(), "conn-4", user_id=7)

    @pytest.mark.asyncio
    async def test_disconnect_cleans_up(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", user_id=42)
        await mgr.subscribe("conn-1", "messages")
        await mgr.disconnect("conn-1")

        assert mgr.connection_count == 0
        assert mgr.get_stats() == {"total_connections": 0, "unique_users": 0, "channels": {}}

    @pytest.mark.asyncio
    async def test_disconnect_unknown_is_harmless(self, mgr: ConnectionManager) -> None:
        await mgr.disconnect("nope")
        assert mgr.connection_count == 0


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_valid_channels(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", user_id=1)
        for channel in VALID_CHANNELS:
            assert await mgr.subscribe("conn-1", channel)
        assert mgr.get_stats()["channels"] == {"messages": 1, "gamification": 1}

    @pytest.mark.asyncio
    async def test_invalid_channel(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(), "conn-1", user_id=1)
        assert not await mgr.subscribe("conn-1", "announcements")

    @pytest.mark.asyncio
    async def test_unknown_connection(self, mgr: ConnectionManager) -> None:
        assert not await mgr.subscribe("ghost", "messages")
        assert not await mgr.unsubscribe("ghost", "messages")


class TestSendToUser:
    @pytest.mark.asyncio
    async def test_only_subscribed_sockets_receive(self, mgr: ConnectionManager) -> None:
        subscribed = _make_ws()
        idle = _make_ws()
        stranger = _make_ws()
        await mgr.connect(subscribed, "a", user_id=1)
        await mgr.connect(idle, "b", user_id=1)
        await mgr.connect(stranger, "c", user_id=2)
        await mgr.subscribe("a", "messages")
        await mgr.subscribe("c", "messages")

        sent = await mgr.send_to_user(1, "messages", {"type": "message", "payload": {"id": 5}})

        assert sent == 1
        subscribed.send_text.assert_awaited_once()
        assert json.loads(subscribed.send_text.call_args.args[0]) == {
            "channel": "messages",
            "data": {"type": "message", "payload": {"id": 5}},
        }
        idle.send_text.assert_not_awaited()
        stranger.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self, mgr: ConnectionManager) -> None:
        ws = _make_ws()
        await mgr.connect(ws, "a", user_id=1)
        await mgr.subscribe("a", "gamification")
        await mgr.unsubscribe("a", "gamification")
        assert await mgr.send_to_user(1, "gamification", {"type": "level_up"}) == 0

    @pytest.mark.asyncio
    async def test_failed_send_drops_connection(self, mgr: ConnectionManager) -> None:
        await mgr.connect(_make_ws(fail_send=True), "a", user_id=1)
        await mgr.subscribe("a", "messages")

        assert await mgr.send_to_user(1, "messages", {"type": "message"}) == 0
        assert mgr.connection_count == 0


class TestSignOut:
    @pytest.mark.asyncio
    async def test_disconnect_user_closes_all(self, mgr: ConnectionManager) -> None:
        ws1, ws2, other = _make_ws(), _make_ws(), _make_ws()
        await mgr.connect(ws1, "a", user_id=1)
        await mgr.connect(ws2, "b", user_id=1)
        await mgr.connect(other, "c", user_id=2)

        assert await mgr.disconnect_user(1) == 2
        ws1.close.assert_awaited_once_with(code=SIGNED_OUT_CLOSE_CODE)
        ws2.close.assert_awaited_once_with(code=SIGNED_OUT_CLOSE_CODE)
        other.close.assert_not_awaited()
        assert mgr.user_connection_count(1) == 0
        assert mgr.connection_count == 1

    @pytest.mark.asyncio
    async def test_close_failure_still_forgets_socket(self, mgr: ConnectionManager) -> None:
        ws = _make_ws()
        ws.close = AsyncMock(side_effect=RuntimeError("already closed"))
        await mgr.connect(ws, "a", user_id=1)

        assert await mgr.disconnect_user(1) == 1
        assert mgr.connection_count == 0

    @pytest.mark.asyncio
    async def test_signed_out_event(self, mgr: ConnectionManager) -> None:
        ws = _make_ws()
        await mgr.connect(ws, "a", user_id=9)

        await mgr.on_session_event(SessionEvent(SessionEventType.SIGNED_IN, 9))
        assert mgr.connection_count == 1

        await mgr.on_session_event(SessionEvent(SessionEventType.SIGNED_OUT, 9))
        assert mgr.connection_count == 0
        ws.close.assert_awaited_once_with(code=SIGNED_OUT_CLOSE_CODE)
