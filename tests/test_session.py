"""Tests for the Session handle: lifecycle, auto actions, store visibility."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from ircsession.casemap import Identifier
from ircsession.errors import NotConnected
from ircsession.events import Disconnected, Listener, Message, SelfJoined, Welcome
from ircsession.session import ConnectionStatus, Session
from ircsession.state import Identity
from tests.mocks import FakeTransport, RecordingListener, join_with_names, make_session, msg


class TestLifecycle:
    def test_connect_registers(self):
        # Arrange
        transport = FakeTransport()
        session = Session(Identity("me", "user", "Real Name"), send=transport)

        # Act
        session.connected()

        # Assert
        assert session.status is ConnectionStatus.CONNECTED
        assert transport.texts == ["NICK me", "USER user 0 * :Real Name"]
        assert session.self_identity().nickname == Identifier("me")

    def test_register_on_connect_disabled(self):
        transport = FakeTransport()
        session = Session(Identity("me"), send=transport, register_on_connect=False)
        session.connected()
        assert transport.lines == []

    def test_welcome_marks_registered(self):
        # Arrange
        listener = RecordingListener()
        session = Session(Identity("me"), listener, send=FakeTransport())
        session.connected()

        # Act
        session.feed(msg("001", "me", "Welcome", source="irc.example.net"))

        # Assert
        assert session.status is ConnectionStatus.REGISTERED
        assert listener.of_type(Welcome)

    def test_disconnect_empties_store_before_listener_runs(self):
        # Arrange
        seen: dict[str, object] = {}

        class Inspector(Listener):
            def __init__(self, session_ref):
                self.session_ref = session_ref

            def on_disconnected(self, event):
                session = self.session_ref[0]
                seen["channels"] = list(session.channels())
                seen["self"] = session.self_identity()
                seen["bob"] = session.user("bob")

        ref: list[Session] = []
        session, _, _ = make_session()
        ref.append(session)
        join_with_names(session, "#a", "me bob")
        session.set_listener(Inspector(ref))

        # Act
        events = session.disconnected("connection reset")

        # Assert
        assert events == [Disconnected("connection reset")]
        assert seen == {"channels": [], "self": None, "bob": None}
        assert session.status is ConnectionStatus.DISCONNECTED

    def test_reconnect_starts_clean(self):
        # Arrange
        session, _, _ = make_session()
        join_with_names(session, "#a", "me bob")
        session.disconnected()

        # Act
        session.connected()

        # Assert
        assert list(session.channels()) == []
        assert session.self_identity() is not None


class TestAutoActions:
    def test_identify_then_join_after_welcome(self):
        # Arrange
        transport = FakeTransport()
        session = Session(
            Identity("me"),
            send=transport,
            channels=["#a", "#b"],
            nickserv_password="secret",
        )
        session.connected()
        transport.clear()

        # Act
        session.feed(msg("001", "me", "Welcome", source="irc.example.net"))

        # Assert
        assert transport.texts == ["PRIVMSG NickServ :IDENTIFY secret", "JOIN #a", "JOIN #b"]

    def test_invalid_auto_join_channel_is_logged_not_raised(self):
        transport = FakeTransport()
        session = Session(Identity("me"), send=transport, channels=["nochan"])
        session.connected()
        transport.clear()
        session.feed(msg("001", "me", "Welcome", source="irc.example.net"))
        assert transport.lines == []

    def test_auto_pong(self):
        session, listener, transport = make_session()
        session.feed(msg("PING", "abc123"))
        assert transport.texts == ["PONG :abc123"]
        assert listener.events[0].token == "abc123"

    def test_auto_pong_disabled(self):
        session, _, transport = make_session(auto_pong=False)
        session.feed(msg("PING", "abc123"))
        assert transport.lines == []

    def test_ping_before_connect_is_still_delivered(self):
        # Arrange
        listener = RecordingListener()
        transport = FakeTransport()
        session = Session(Identity("me"), listener, send=transport)

        # Act
        events = session.feed(msg("PING", "irc.example.net"))

        # Assert
        assert [e.kind for e in events] == ["ping"]
        assert listener.events == events
        assert transport.lines == []

    def test_failed_auto_pong_is_logged_not_raised(self):
        # Arrange
        session, listener, transport = make_session()

        # Act
        with patch("ircsession.session.logger") as mock_logger:
            session.feed(msg("PING", "x" * 600))

        # Assert
        mock_logger.error.assert_called_once()
        assert transport.lines == []
        assert listener.events[0].token == "x" * 600


class TestStoreVisibility:
    def test_listener_sees_applied_state(self):
        # Arrange
        observed = []

        class Watcher(Listener):
            def on_self_joined(self, event):
                observed.append(session.channel("#a") is not None)

        session, _, _ = make_session()
        session.set_listener(Watcher())

        # Act
        session.feed(msg("JOIN", "#a", source="me!user@host"))

        # Assert
        assert observed == [True]

    def test_failing_listener_does_not_break_session(self):
        # Arrange
        class Broken(Listener):
            def on_self_joined(self, event):
                raise RuntimeError("observer bug")

        failures = []
        session, _, _ = make_session(on_failure=failures.append)
        session.set_listener(Broken())

        # Act
        events = session.feed(msg("JOIN", "#a", source="me!user@host"))

        # Assert
        assert isinstance(events[0], SelfJoined)
        assert session.channel("#a") is not None
        assert len(failures) == 1

    def test_listener_can_send_commands(self):
        # Arrange
        class Echo(Listener):
            def on_message(self, event):
                session.commands.say(str(event.source), event.text)

        session, _, transport = make_session()
        session.set_listener(Echo())

        # Act
        session.feed(msg("PRIVMSG", "me", "ping me back", source="bob!b@h"))

        # Assert
        assert transport.texts == ["PRIVMSG bob :ping me back"]


class TestSending:
    def test_send_without_transport(self):
        session = Session(Identity("me"))
        session.connected()
        with pytest.raises(NotConnected) as exc_info:
            session.commands.say("#a", "x")
        assert exc_info.value.code == "no_transport"

    def test_send_while_disconnected(self):
        session = Session(Identity("me"), send=FakeTransport())
        with pytest.raises(NotConnected) as exc_info:
            session.commands.join("#a")
        assert exc_info.value.code == "disconnected"

    def test_attach_and_detach(self):
        # Arrange
        transport = FakeTransport()
        session = Session(Identity("me"), register_on_connect=False)
        session.connected()

        # Act
        session.attach(transport)
        session.commands.join("#a")
        session.detach()

        # Assert
        assert transport.texts == ["JOIN #a"]
        with pytest.raises(NotConnected):
            session.commands.join("#b")


class TestAsync:
    @pytest.mark.asyncio
    async def test_async_listener_is_awaited(self):
        # Arrange
        received = []

        class AsyncListener(Listener):
            async def on_message(self, event):
                received.append(event.text)

        session = Session(Identity("me"), AsyncListener(), send=FakeTransport())
        await session.connected_async()

        # Act
        await session.feed_async(msg("PRIVMSG", "me", "hello", source="bob!b@h"))
        await session.disconnected_async("bye")

        # Assert
        assert received == ["hello"]
        assert session.status is ConnectionStatus.DISCONNECTED

    @pytest.mark.asyncio
    async def test_async_feed_returns_events(self):
        session = Session(Identity("me"), send=FakeTransport())
        await session.connected_async()
        events = await session.feed_async(msg("PRIVMSG", "me", "hi", source="bob!b@h"))
        assert isinstance(events[0], Message)
