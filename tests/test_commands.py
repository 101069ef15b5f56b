"""Tests for the command encoder."""

from __future__ import annotations

import pytest

from ircsession.commands import Commands, OutgoingLine
from ircsession.errors import InvalidArgument, MessageTooLong
from ircsession.state import SessionState
from tests.mocks import FakeTransport


@pytest.fixture
def sent() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def commands(sent) -> Commands:
    return Commands(sent)


class TestOutgoingLine:
    def test_text_with_trailing(self):
        line = OutgoingLine("PRIVMSG", ("#a", "hello there"), trailing=True)
        assert line.text == "PRIVMSG #a :hello there"
        assert line.encode() == b"PRIVMSG #a :hello there\r\n"

    def test_text_without_params(self):
        assert str(OutgoingLine("QUIT")) == "QUIT"


class TestEncoding:
    def test_say(self, commands, sent):
        commands.say("#chan", "hi all")
        assert sent.texts == ["PRIVMSG #chan :hi all"]

    def test_notice(self, commands, sent):
        commands.notice("bob", "psst")
        assert sent.texts == ["NOTICE bob :psst"]

    def test_action(self, commands, sent):
        commands.action("#chan", "waves")
        assert sent.texts == ["PRIVMSG #chan :\x01ACTION waves\x01"]

    def test_join_and_part(self, commands, sent):
        commands.join("#chan")
        commands.join("#secret", "key")
        commands.part("#chan")
        commands.part("#secret", "bye now")
        assert sent.texts == [
            "JOIN #chan",
            "JOIN #secret key",
            "PART #chan",
            "PART #secret :bye now",
        ]

    def test_topic(self, commands, sent):
        commands.set_topic("#chan", "new topic")
        commands.set_topic("#chan", "")
        commands.get_topic("#chan")
        assert sent.texts == ["TOPIC #chan :new topic", "TOPIC #chan :", "TOPIC #chan"]

    def test_register(self, commands, sent):
        lines = commands.register("me", "user", "Real Name")
        assert [line.text for line in lines] == ["NICK me", "USER user 0 * :Real Name"]
        assert sent.texts == ["NICK me", "USER user 0 * :Real Name"]

    def test_quit(self, commands, sent):
        commands.quit()
        commands.quit("gone")
        assert sent.texts == ["QUIT", "QUIT :gone"]

    def test_identify(self, commands, sent):
        commands.identify("hunter2")
        assert sent.texts == ["PRIVMSG NickServ :IDENTIFY hunter2"]

    def test_pong(self, commands, sent):
        commands.pong("irc.example.net")
        assert sent.texts == ["PONG :irc.example.net"]

    def test_raw(self, commands, sent):
        commands.raw("mode", "#chan", "+o", "bob")
        commands.raw("WHOIS", "bob")
        commands.raw("AWAY", "gone fishing")
        assert sent.texts == ["MODE #chan +o bob", "WHOIS bob", "AWAY :gone fishing"]

    def test_without_send_only_returns(self):
        line = Commands().say("#a", "x")
        assert line.text == "PRIVMSG #a :x"


class TestValidation:
    @pytest.mark.parametrize(
        "call",
        [
            lambda c: c.say("#a", "two\r\nlines"),
            lambda c: c.say("#a", "nul\x00"),
            lambda c: c.say("", "x"),
            lambda c: c.say("two words", "x"),
            lambda c: c.say(":colon", "x"),
            lambda c: c.say("#a", ""),
            lambda c: c.notice("bob", ""),
            lambda c: c.action("#a", ""),
            lambda c: c.say_split("#a", "nul\x00"),
            lambda c: c.say_split("#a", "\n\n"),
            lambda c: c.join("nochan"),
            lambda c: c.join("#a,#b"),
            lambda c: c.join("#with space"),
            lambda c: c.change_nick("bad nick"),
            lambda c: c.change_nick("bad!nick"),
            lambda c: c.change_nick(""),
            lambda c: c.part("#a", "multi\nline"),
            lambda c: c.raw("PRIVMSG", "#a", "sneaky\r\nQUIT"),
            lambda c: c.raw("BAD CMD"),
        ],
    )
    def test_rejects_malformed_arguments(self, commands, sent, call):
        with pytest.raises(InvalidArgument):
            call(commands)
        assert sent.lines == []

    def test_invalid_argument_is_value_error(self, commands):
        with pytest.raises(ValueError):
            commands.say("#a", "x\ny")

    def test_error_carries_code(self, commands):
        with pytest.raises(InvalidArgument) as exc_info:
            commands.join("nochan")
        assert exc_info.value.code == "not_a_channel"

    def test_empty_message_text_is_rejected(self, commands):
        with pytest.raises(InvalidArgument) as exc_info:
            commands.say("#a", "")
        assert exc_info.value.code == "empty_argument"

    def test_empty_topic_is_still_allowed(self, commands, sent):
        commands.set_topic("#a", "")
        assert sent.texts == ["TOPIC #a :"]

    def test_channel_prefix_follows_server_features(self, sent):
        # Arrange
        state = SessionState()
        state.update_features(chantypes="!")
        commands = Commands(sent, state=state)

        # Act / Assert
        commands.join("!chan")
        with pytest.raises(InvalidArgument):
            commands.join("#chan")


class TestLineLimit:
    def test_exactly_at_limit_is_sent(self, commands, sent):
        # Arrange: "PRIVMSG #a :" + text + CRLF == 512
        text = "x" * (512 - len("PRIVMSG #a :\r\n"))

        # Act
        commands.say("#a", text)

        # Assert
        assert len(sent.lines[0].encode()) == 512

    def test_over_limit_raises_and_sends_nothing(self, commands, sent):
        # Arrange
        text = "x" * 600

        # Act / Assert
        with pytest.raises(MessageTooLong) as exc_info:
            commands.say("#a", text)
        assert exc_info.value.limit == 512
        assert exc_info.value.length > 512
        assert sent.lines == []

    def test_limit_counts_utf8_bytes(self, commands, sent):
        # 3 bytes each
        text = "中" * 170
        with pytest.raises(MessageTooLong):
            commands.say("#a", text)
        assert sent.lines == []

    def test_register_checks_both_lines_first(self, commands, sent):
        with pytest.raises(MessageTooLong):
            commands.register("me", "user", "r" * 600)
        assert sent.lines == []

    def test_say_split(self, commands, sent):
        # Arrange
        text = "word " * 300

        # Act
        lines = commands.say_split("#a", text)

        # Assert
        assert len(lines) > 1
        assert all(len(line.encode()) <= 512 for line in lines)
        assert "".join(line.params[-1] for line in lines) == text

    def test_say_split_breaks_on_newlines(self, commands, sent):
        # Act
        lines = commands.say_split("#a", "line one\r\nline two\n\nline three")

        # Assert
        assert [line.text for line in lines] == [
            "PRIVMSG #a :line one",
            "PRIVMSG #a :line two",
            "PRIVMSG #a :line three",
        ]
        assert sent.texts == [line.text for line in lines]

    def test_custom_limit(self, sent):
        commands = Commands(sent, max_line_bytes=20)
        with pytest.raises(MessageTooLong):
            commands.say("#a", "this is too long")
