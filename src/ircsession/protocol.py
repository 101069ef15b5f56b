"""Inbound message shapes and protocol constants.

Splitting a raw line into prefix/command/params belongs to the transport; the
session only sees already-parsed ``RawMessage`` values.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# 512 bytes including the trailing CR LF
MAX_LINE_BYTES = 512
LINE_TERMINATOR = "\r\n"

DEFAULT_CHANTYPES = "#&"

RPL_WELCOME = "001"
RPL_ISUPPORT = "005"
RPL_NOTOPIC = "331"
RPL_TOPIC = "332"
RPL_TOPICWHOTIME = "333"
RPL_NAMREPLY = "353"
RPL_ENDOFNAMES = "366"
ERR_NICKNAMEINUSE = "433"


@dataclass(frozen=True)
class Prefix:
    """Message origin: ``nick!user@host`` or a bare server name in ``nick``."""

    nick: str
    user: str | None = None
    host: str | None = None

    @property
    def is_server(self) -> bool:
        return self.user is None and self.host is None and "." in self.nick

    def __str__(self) -> str:
        out = self.nick
        if self.user:
            out += f"!{self.user}"
        if self.host:
            out += f"@{self.host}"
        return out


def parse_prefix(source: str | None) -> Prefix | None:
    """Split ``nick!user@host`` (any part after the nick optional)."""
    if not source:
        return None
    if source.startswith(":"):
        source = source[1:]
    nick, user, host = source, None, None
    if "@" in nick:
        nick, host = nick.split("@", 1)
    if "!" in nick:
        nick, user = nick.split("!", 1)
    return Prefix(nick=nick, user=user or None, host=host or None)


def normalize_command(command: str | int) -> str:
    """Commands upper-cased, numerics as zero-padded three-digit strings."""
    if isinstance(command, int):
        return str(command).zfill(3)
    command = command.strip()
    if command.isascii() and command.isdigit():
        return command.zfill(3)
    return command.upper()


@dataclass(frozen=True)
class RawMessage:
    """One parsed protocol message as delivered by the transport."""

    command: str
    params: tuple[str, ...] = ()
    prefix: Prefix | None = None
    tags: dict[str, str] = field(default_factory=dict, compare=False)

    @classmethod
    def create(
        cls,
        command: str | int,
        *params: str,
        source: str | Prefix | None = None,
        tags: dict[str, str] | None = None,
    ) -> RawMessage:
        """Build a message from loose parts (source as ``nick!user@host`` string)."""
        prefix = source if isinstance(source, Prefix) else parse_prefix(source)
        return cls(
            command=normalize_command(command),
            params=tuple(str(p) for p in params),
            prefix=prefix,
            tags=dict(tags or {}),
        )

    def param(self, index: int, default: str | None = None) -> str | None:
        """Parameter at ``index`` or ``default`` when the message is short."""
        if -len(self.params) <= index < len(self.params):
            return self.params[index]
        return default

    @property
    def nick(self) -> str | None:
        return self.prefix.nick if self.prefix else None
