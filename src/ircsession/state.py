"""Session state store: self identity, channels, users and rosters.

Readers only ever get frozen snapshots (``ChannelView``, ``UserView``,
``SelfIdentity``, ``ServerFeatures``). Mutation methods are called by the
event translator alone; every one of them leaves the store consistent:

- every roster member has a user record, and every user record lists exactly
  the channels whose rosters contain it;
- a user record is dropped as soon as its channel set becomes empty.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from loguru import logger

from ircsession.casemap import DEFAULT_CASEMAPPING, Identifier, normalize_casemapping
from ircsession.protocol import DEFAULT_CHANTYPES, Prefix

NickLike = str | Identifier


@dataclass(frozen=True)
class Identity:
    """Configured identity the client registers with."""

    nickname: str
    username: str = "ircsession"
    realname: str = "ircsession"


@dataclass(frozen=True)
class SelfIdentity:
    nickname: Identifier
    username: str
    realname: str


@dataclass(frozen=True)
class ServerFeatures:
    """Subset of RPL_ISUPPORT the session relies on."""

    casemapping: str = DEFAULT_CASEMAPPING
    chantypes: str = DEFAULT_CHANTYPES
    prefix_modes: str = "ov"
    prefix_symbols: str = "@+"
    chanmodes: tuple[str, str, str, str] = ("b", "k", "l", "imnpst")

    @property
    def symbol_to_mode(self) -> dict[str, str]:
        return dict(zip(self.prefix_symbols, self.prefix_modes))

    @property
    def mode_to_symbol(self) -> dict[str, str]:
        return dict(zip(self.prefix_modes, self.prefix_symbols))

    def is_channel(self, target: str) -> bool:
        return bool(target) and target[0] in self.chantypes


def parse_prefix_feature(value: str) -> tuple[str, str] | None:
    """Parse ISUPPORT ``PREFIX=(ov)@+`` into ``("ov", "@+")``."""
    if not value.startswith("(") or ")" not in value:
        return None
    modes, symbols = value[1:].split(")", 1)
    if len(modes) != len(symbols):
        return None
    return modes, symbols


def parse_chanmodes_feature(value: str) -> tuple[str, str, str, str] | None:
    parts = value.split(",")
    if len(parts) < 4:
        return None
    return parts[0], parts[1], parts[2], parts[3]


@dataclass(frozen=True)
class UserView:
    nick: Identifier
    user: str | None = None
    host: str | None = None
    channels: frozenset[Identifier] = frozenset()

    @property
    def hostmask(self) -> str:
        return str(Prefix(str(self.nick), self.user, self.host))


@dataclass(frozen=True)
class ChannelView:
    name: Identifier
    topic: str | None = None
    topic_setter: str | None = None
    topic_time: int | None = None
    users: frozenset[Identifier] = frozenset()
    modes: Mapping[Identifier, frozenset[str]] = field(default_factory=lambda: MappingProxyType({}))

    def __contains__(self, nick: object) -> bool:
        if isinstance(nick, str):
            nick = Identifier(nick, self.name.casemapping)
        return nick in self.users

    def member_modes(self, nick: NickLike) -> frozenset[str]:
        """Prefix modes (``o``, ``v``, ...) held by ``nick`` in this channel."""
        return self.modes.get(Identifier.coerce(nick, self.name.casemapping), frozenset())

    def is_op(self, nick: NickLike) -> bool:
        return "o" in self.member_modes(nick)

    def is_voiced(self, nick: NickLike) -> bool:
        return "v" in self.member_modes(nick)


class _User:
    __slots__ = ("nick", "user", "host", "channels")

    def __init__(self, nick: Identifier, user: str | None = None, host: str | None = None) -> None:
        self.nick = nick
        self.user = user
        self.host = host
        self.channels: set[Identifier] = set()

    def view(self) -> UserView:
        return UserView(self.nick, self.user, self.host, frozenset(self.channels))


class _Channel:
    __slots__ = ("name", "topic", "topic_setter", "topic_time", "members")

    def __init__(self, name: Identifier) -> None:
        self.name = name
        self.topic: str | None = None
        self.topic_setter: str | None = None
        self.topic_time: int | None = None
        self.members: dict[Identifier, set[str]] = {}

    def view(self) -> ChannelView:
        return ChannelView(
            name=self.name,
            topic=self.topic,
            topic_setter=self.topic_setter,
            topic_time=self.topic_time,
            users=frozenset(self.members),
            modes=MappingProxyType({nick: frozenset(m) for nick, m in self.members.items()}),
        )


class SessionState:
    """Authoritative in-memory model of the session."""

    def __init__(self) -> None:
        self._self: SelfIdentity | None = None
        self._channels: dict[Identifier, _Channel] = {}
        self._users: dict[Identifier, _User] = {}
        self._features = ServerFeatures()

    # -- reads -------------------------------------------------------------

    def ident(self, name: NickLike) -> Identifier:
        """Identifier for ``name`` under the server's current casemapping."""
        return Identifier.coerce(name, self._features.casemapping)

    def self_identity(self) -> SelfIdentity | None:
        return self._self

    def is_self(self, nick: NickLike | None) -> bool:
        if nick is None or self._self is None:
            return False
        return self.ident(nick) == self._self.nickname

    def channel(self, name: NickLike) -> ChannelView | None:
        chan = self._channels.get(self.ident(name))
        return chan.view() if chan else None

    def channels(self) -> Iterator[ChannelView]:
        """Snapshots of every known channel, produced lazily."""
        for key in list(self._channels):
            chan = self._channels.get(key)
            if chan is not None:
                yield chan.view()

    def user(self, nick: NickLike) -> UserView | None:
        user = self._users.get(self.ident(nick))
        return user.view() if user else None

    def users(self) -> Iterator[UserView]:
        for key in list(self._users):
            user = self._users.get(key)
            if user is not None:
                yield user.view()

    @property
    def features(self) -> ServerFeatures:
        return self._features

    @property
    def is_empty(self) -> bool:
        return self._self is None and not self._channels and not self._users

    def has_channel(self, name: NickLike) -> bool:
        return self.ident(name) in self._channels

    def is_member(self, channel: NickLike, nick: NickLike) -> bool:
        chan = self._channels.get(self.ident(channel))
        return chan is not None and self.ident(nick) in chan.members

    # -- mutation (event translator only) ------------------------------------

    def reset(self) -> None:
        """Forget everything, including self and server features."""
        self._self = None
        self._channels.clear()
        self._users.clear()
        self._features = ServerFeatures()

    def set_self(self, identity: Identity) -> SelfIdentity:
        self._self = SelfIdentity(self.ident(identity.nickname), identity.username, identity.realname)
        return self._self

    def set_self_nick(self, nick: str) -> None:
        if self._self is not None:
            self._self = replace(self._self, nickname=self.ident(nick))

    def add_channel(self, name: str) -> ChannelView:
        key = self.ident(name)
        chan = self._channels.get(key)
        if chan is None:
            chan = self._channels[key] = _Channel(key)
        return chan.view()

    def remove_channel(self, name: NickLike) -> ChannelView | None:
        """Drop a channel, collecting users left without a shared channel."""
        key = self.ident(name)
        chan = self._channels.pop(key, None)
        if chan is None:
            return None
        view = chan.view()
        for nick in chan.members:
            self._unlink(nick, key)
        return view

    def touch_user(self, prefix: Prefix | None) -> None:
        """Learn user/host from a message prefix for an already known user."""
        if prefix is None:
            return
        user = self._users.get(self.ident(prefix.nick))
        if user is None:
            return
        if prefix.user:
            user.user = prefix.user
        if prefix.host:
            user.host = prefix.host

    def add_member(
        self,
        channel: NickLike,
        nick: str,
        *,
        user: str | None = None,
        host: str | None = None,
        modes: Iterable[str] = (),
    ) -> bool:
        """Add ``nick`` to a known channel; False when the channel is unknown."""
        chan_key = self.ident(channel)
        chan = self._channels.get(chan_key)
        if chan is None:
            return False
        key = self.ident(nick)
        record = self._users.get(key)
        if record is None:
            record = self._users[key] = _User(key, user, host)
        else:
            record.user = user or record.user
            record.host = host or record.host
        record.channels.add(chan_key)
        chan.members.setdefault(key, set()).update(modes)
        return True

    def remove_member(self, channel: NickLike, nick: NickLike) -> bool:
        chan_key = self.ident(channel)
        chan = self._channels.get(chan_key)
        key = self.ident(nick)
        if chan is None or key not in chan.members:
            return False
        del chan.members[key]
        self._unlink(key, chan_key)
        return True

    def remove_user(self, nick: NickLike) -> UserView | None:
        """Remove ``nick`` from every roster and delete its record."""
        key = self.ident(nick)
        record = self._users.pop(key, None)
        if record is None:
            return None
        view = record.view()
        for chan_key in record.channels:
            chan = self._channels.get(chan_key)
            if chan is not None:
                chan.members.pop(key, None)
        return view

    def rename_user(self, old: str, new: str) -> UserView | None:
        """Move ``old`` to ``new`` in the user map and every roster in one step."""
        old_key = self.ident(old)
        new_key = self.ident(new)
        if self._self is not None and self._self.nickname == old_key:
            self._self = replace(self._self, nickname=new_key)

        record = self._users.pop(old_key, None)
        if record is None:
            return None
        if new_key != old_key and new_key in self._users:
            logger.debug("Nick {} replaces stale user record {}", old, new)
            self.remove_user(new_key)

        record.nick = new_key
        self._users[new_key] = record
        for chan_key in record.channels:
            members = self._channels[chan_key].members
            members[new_key] = members.pop(old_key, set())
        return record.view()

    def replace_roster(
        self,
        channel: str,
        entries: Mapping[Identifier, tuple[set[str], str | None, str | None]],
    ) -> ChannelView:
        """Swap a channel's roster for ``entries`` (nick -> modes, user, host)."""
        chan_key = self.ident(channel)
        chan = self._channels.get(chan_key)
        if chan is None:
            chan = self._channels[chan_key] = _Channel(chan_key)
        for nick in [n for n in chan.members if n not in entries]:
            self.remove_member(chan_key, nick)
        for nick, (modes, user, host) in entries.items():
            key = self.ident(nick)
            if key in chan.members:
                chan.members[key] = set(modes)
            self.add_member(chan_key, str(nick), user=user, host=host, modes=modes)
        return chan.view()

    def set_topic(
        self,
        channel: NickLike,
        topic: str | None,
        *,
        setter: str | None = None,
        when: int | None = None,
    ) -> ChannelView | None:
        chan = self._channels.get(self.ident(channel))
        if chan is None:
            return None
        chan.topic = topic or None
        chan.topic_setter = setter
        chan.topic_time = when
        return chan.view()

    def set_topic_meta(self, channel: NickLike, setter: str, when: int | None) -> None:
        chan = self._channels.get(self.ident(channel))
        if chan is not None:
            chan.topic_setter = setter
            chan.topic_time = when

    def set_member_mode(self, channel: NickLike, nick: NickLike, mode: str, enabled: bool) -> bool:
        chan = self._channels.get(self.ident(channel))
        key = self.ident(nick)
        if chan is None or key not in chan.members:
            return False
        if enabled:
            chan.members[key].add(mode)
        else:
            chan.members[key].discard(mode)
        return True

    def update_features(self, **changes: object) -> ServerFeatures:
        casemapping = changes.pop("casemapping", None)
        if changes:
            self._features = replace(self._features, **changes)  # type: ignore[arg-type]
        if casemapping is not None:
            self.set_casemapping(str(casemapping))
        return self._features

    def set_casemapping(self, name: str) -> None:
        """Switch casemapping and re-key every identifier held by the store."""
        name = normalize_casemapping(name)
        if name == self._features.casemapping:
            return
        self._features = replace(self._features, casemapping=name)
        if self._self is not None:
            self._self = replace(self._self, nickname=self.ident(self._self.nickname))
        channels, users = self._channels, self._users
        self._channels, self._users = {}, {}
        for chan in channels.values():
            chan.name = self.ident(chan.name)
            chan.members = {self.ident(n): m for n, m in chan.members.items()}
            self._channels[chan.name] = chan
        for record in users.values():
            record.nick = self.ident(record.nick)
            record.channels = {self.ident(c) for c in record.channels}
            self._users[record.nick] = record

    # -- helpers -----------------------------------------------------------

    def _unlink(self, nick: Identifier, channel: Identifier) -> None:
        record = self._users.get(nick)
        if record is None:
            return
        record.channels.discard(channel)
        if not record.channels:
            del self._users[nick]
