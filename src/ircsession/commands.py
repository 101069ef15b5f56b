"""Command encoder: high-level intents -> validated outgoing protocol lines.

Every call builds exactly one line (``register`` builds two), checks it against
the line limit and only then hands it to ``send``. Nothing is truncated or
split here; use ``say_split`` or ``formatting.split_message`` for long text.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from ircsession.errors import InvalidArgument, MessageTooLong
from ircsession.formatting import split_message
from ircsession.protocol import DEFAULT_CHANTYPES, LINE_TERMINATOR, MAX_LINE_BYTES
from ircsession.state import SessionState

_FORBIDDEN_TEXT = ("\x00", "\r", "\n")
_FORBIDDEN_TARGET = (" ", *_FORBIDDEN_TEXT)
_FORBIDDEN_CHANNEL = (*_FORBIDDEN_TARGET, ",", "\x07")
_FORBIDDEN_NICK = (*_FORBIDDEN_TARGET, ",", "!", "@")

CTCP_DELIM = "\x01"


@dataclass(frozen=True)
class OutgoingLine:
    """One encoded line; ``trailing`` marks the last param as the ``:`` param."""

    command: str
    params: tuple[str, ...] = ()
    trailing: bool = False

    @property
    def text(self) -> str:
        if not self.params:
            return self.command
        middle = self.params[:-1] if self.trailing else self.params
        parts = [self.command, *middle]
        if self.trailing:
            parts.append(":" + self.params[-1])
        return " ".join(parts)

    def encode(self, encoding: str = "utf-8") -> bytes:
        return (self.text + LINE_TERMINATOR).encode(encoding, errors="replace")

    def __str__(self) -> str:
        return self.text


def _check(value: str | None, what: str, forbidden: tuple[str, ...]) -> str:
    if not value:
        raise InvalidArgument(f"{what} must not be empty", code="empty_argument", details={"argument": what})
    bad = [c for c in forbidden if c in value]
    if bad:
        raise InvalidArgument(
            f"{what} contains forbidden characters: {bad!r}",
            code="forbidden_characters",
            details={"argument": what, "characters": bad},
        )
    if value.startswith(":"):
        raise InvalidArgument(f"{what} must not start with ':'", code="leading_colon", details={"argument": what})
    return value


def check_text(value: str, what: str = "text", forbidden: tuple[str, ...] = _FORBIDDEN_TEXT) -> str:
    """Free text may be empty but never spans lines."""
    bad = [c for c in forbidden if c in value]
    if bad:
        raise InvalidArgument(
            f"{what} contains forbidden characters: {bad!r}",
            code="forbidden_characters",
            details={"argument": what, "characters": bad},
        )
    return value


def check_message(value: str, what: str = "text") -> str:
    """Message bodies are free text that must say something."""
    if not value:
        raise InvalidArgument(f"{what} must not be empty", code="empty_argument", details={"argument": what})
    return check_text(value, what)


def check_target(value: str, what: str = "target") -> str:
    return _check(value, what, _FORBIDDEN_TARGET)


def check_nick(value: str, what: str = "nickname") -> str:
    return _check(value, what, _FORBIDDEN_NICK)


def check_channel(value: str, chantypes: str = DEFAULT_CHANTYPES, what: str = "channel") -> str:
    _check(value, what, _FORBIDDEN_CHANNEL)
    if value[0] not in chantypes:
        raise InvalidArgument(
            f"{what} {value!r} does not start with one of {chantypes!r}",
            code="not_a_channel",
            details={"argument": what, "chantypes": chantypes},
        )
    return value


class Commands:
    """Encodes commands and passes each valid line to ``send``.

    Args:
        send: Transport hook receiving each ``OutgoingLine``; when None the
            lines are only returned.
        state: Session store, read for the server's channel types.
        max_line_bytes: Line limit including CR LF.
    """

    def __init__(
        self,
        send: Callable[[OutgoingLine], object] | None = None,
        *,
        state: SessionState | None = None,
        max_line_bytes: int = MAX_LINE_BYTES,
        encoding: str = "utf-8",
    ) -> None:
        self._send = send
        self._state = state
        self.max_line_bytes = max_line_bytes
        self.encoding = encoding

    @property
    def chantypes(self) -> str:
        return self._state.features.chantypes if self._state else DEFAULT_CHANTYPES

    def _emit(self, command: str, *params: str, trailing: bool = False) -> OutgoingLine:
        line = OutgoingLine(command, tuple(params), trailing)
        length = len(line.encode(self.encoding))
        if length > self.max_line_bytes:
            raise MessageTooLong(length, self.max_line_bytes)
        if self._send is not None:
            self._send(line)
        return line

    def text_budget(self, command: str, target: str) -> int:
        """Bytes left for the trailing text of ``COMMAND target :text``."""
        overhead = len(f"{command} {target} :{LINE_TERMINATOR}".encode(self.encoding))
        return max(0, self.max_line_bytes - overhead)

    # -- channels ----------------------------------------------------------

    def join(self, channel: str, key: str | None = None) -> OutgoingLine:
        check_channel(channel, self.chantypes)
        if key is None:
            return self._emit("JOIN", channel)
        check_target(key, "key")
        return self._emit("JOIN", channel, key)

    def part(self, channel: str, reason: str | None = None) -> OutgoingLine:
        check_channel(channel, self.chantypes)
        if reason is None:
            return self._emit("PART", channel)
        return self._emit("PART", channel, check_text(reason, "reason"), trailing=True)

    def set_topic(self, channel: str, text: str) -> OutgoingLine:
        """Set the topic; an empty ``text`` clears it."""
        check_channel(channel, self.chantypes)
        return self._emit("TOPIC", channel, check_text(text, "topic"), trailing=True)

    def get_topic(self, channel: str) -> OutgoingLine:
        check_channel(channel, self.chantypes)
        return self._emit("TOPIC", channel)

    def names(self, channel: str) -> OutgoingLine:
        check_channel(channel, self.chantypes)
        return self._emit("NAMES", channel)

    # -- messages ------------------------------------------------------------

    def say(self, target: str, text: str) -> OutgoingLine:
        check_target(target)
        return self._emit("PRIVMSG", target, check_message(text), trailing=True)

    def notice(self, target: str, text: str) -> OutgoingLine:
        check_target(target)
        return self._emit("NOTICE", target, check_message(text), trailing=True)

    def action(self, target: str, text: str) -> OutgoingLine:
        """CTCP ACTION (``/me``)."""
        check_target(target)
        payload = f"{CTCP_DELIM}ACTION {check_message(text)}{CTCP_DELIM}"
        return self._emit("PRIVMSG", target, payload, trailing=True)

    def say_split(self, target: str, text: str) -> list[OutgoingLine]:
        """Send ``text`` as as many PRIVMSG lines as the line limit requires.

        Line breaks in ``text`` start a new message; blank lines are dropped.
        """
        check_target(target)
        check_text(text, forbidden=("\x00",))
        chunks = split_message(text, max_bytes=self.text_budget("PRIVMSG", target))
        if not chunks:
            raise InvalidArgument("text must not be empty", code="empty_argument", details={"argument": "text"})
        return [self.say(target, chunk) for chunk in chunks]

    def identify(self, password: str, service: str = "NickServ") -> OutgoingLine:
        check_target(service, "service")
        check_text(password, "password")
        return self._emit("PRIVMSG", service, f"IDENTIFY {password}", trailing=True)

    # -- connection --------------------------------------------------------

    def change_nick(self, new: str) -> OutgoingLine:
        return self._emit("NICK", check_nick(new))

    def register(self, nick: str, username: str, realname: str) -> list[OutgoingLine]:
        check_nick(nick)
        check_target(username, "username")
        check_text(realname, "realname")
        # encode both before sending either
        user_line = OutgoingLine("USER", (username, "0", "*", realname or username), True)
        if len(user_line.encode(self.encoding)) > self.max_line_bytes:
            raise MessageTooLong(len(user_line.encode(self.encoding)), self.max_line_bytes)
        return [self.change_nick(nick), self._emit("USER", *user_line.params, trailing=True)]

    def quit(self, reason: str | None = None) -> OutgoingLine:
        if reason is None:
            return self._emit("QUIT")
        return self._emit("QUIT", check_text(reason, "reason"), trailing=True)

    def ping(self, token: str) -> OutgoingLine:
        return self._emit("PING", check_text(token, "token"), trailing=True)

    def pong(self, token: str) -> OutgoingLine:
        return self._emit("PONG", check_text(token, "token"), trailing=True)

    def raw(self, command: str, *params: str) -> OutgoingLine:
        """Arbitrary command; the last param is sent as trailing when it has spaces."""
        _check(command, "command", _FORBIDDEN_TARGET)
        for param in params[:-1]:
            check_target(param, "param")
        trailing = False
        if params:
            last = check_text(params[-1], "param")
            trailing = not last or " " in last or last.startswith(":")
        return self._emit(command.upper(), *params, trailing=trailing)
