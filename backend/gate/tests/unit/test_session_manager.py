import asyncio

from gate.keyauth.config import KeyAuthConfig
from gate.keyauth.gate import KICK_MESSAGE, KICK_REASON
from gate.session.manager import AUTH_TIMEOUT_CLOSE_CODE, NORMAL_CLOSE_CODE, SessionManager
from gate.tests.helpers import TEST_KEY
from gate.tests.mocks import MockConnection


class TestDelivery:
    async def test_send_chat_and_title(self):
        manager = SessionManager()
        conn = MockConnection("c1")
        manager.register_connection(conn)

        await manager.send_chat("c1", ["hello"])
        await manager.send_title("c1", "Big", "small")

        assert conn.sent_messages == [
            {"type": "chat", "lines": ["hello"]},
            {"type": "title", "title": "Big", "subtitle": "small"},
        ]

    async def test_send_to_unknown_session_is_noop(self):
        await SessionManager().send_chat("ghost", ["hello"])

    async def test_send_to_closed_connection_is_dropped(self):
        manager = SessionManager()
        conn = MockConnection("c1")
        manager.register_connection(conn)
        await conn.close()

        await manager.send_chat("c1", ["hello"])

        assert conn.sent_messages == []

    async def test_broadcast_reaches_every_connection(self):
        manager = SessionManager()
        conns = [MockConnection(f"c{i}") for i in range(3)]
        for conn in conns:
            manager.register_connection(conn)

        await manager.broadcast(["rotated"])

        for conn in conns:
            assert conn.chat_lines() == ["rotated"]


class TestDisconnect:
    async def test_kick_uses_auth_timeout_code(self):
        manager = SessionManager()
        conn = MockConnection("c1")
        manager.register_connection(conn)

        await manager.disconnect("c1", KICK_REASON)

        assert conn.is_closed
        assert conn._close_code == AUTH_TIMEOUT_CLOSE_CODE
        assert conn._close_reason == KICK_REASON
        assert manager.get_connection("c1") is None

    async def test_other_reasons_close_normally(self):
        manager = SessionManager()
        conn = MockConnection("c1")
        manager.register_connection(conn)

        await manager.disconnect("c1", "quit")

        assert conn._close_code == NORMAL_CLOSE_CODE

    async def test_disconnect_unknown_is_noop(self):
        await SessionManager().disconnect("ghost", "quit")

    async def test_close_all(self):
        manager = SessionManager()
        conns = [MockConnection(f"c{i}") for i in range(2)]
        for conn in conns:
            manager.register_connection(conn)

        await manager.close_all()

        assert all(conn.is_closed for conn in conns)
        assert manager.connection_count == 0


class TestAuthTimeout:
    async def test_unverified_connection_closed_with_4001(self, make_gate, session_manager):
        config = KeyAuthConfig(key=TEST_KEY).model_copy(update={"kick_delay_seconds": 0.05})
        gate = make_gate(config, host=session_manager)
        conn = MockConnection("c1")
        session_manager.register_connection(conn)
        await gate.on_connect("c1")

        await asyncio.sleep(0.12)

        assert conn.is_closed
        assert conn._close_code == AUTH_TIMEOUT_CLOSE_CODE
        assert KICK_MESSAGE in conn.chat_lines()
        assert session_manager.get_connection("c1") is None
