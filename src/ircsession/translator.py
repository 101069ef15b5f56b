"""Event translator: raw protocol input -> state mutation + semantic events.

Each input is handled to completion (store mutated) before its events are
returned, so the dispatcher never runs against a half-applied change.
Malformed-but-framed input never raises; it is logged at DEBUG and dropped.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace

from loguru import logger

from ircsession import protocol as p
from ircsession.casemap import Identifier
from ircsession.events import (
    ChannelUsersKnown,
    Connected,
    Disconnected,
    Event,
    Message,
    ModeChange,
    ModeChanged,
    NickChanged,
    Notice,
    Ping,
    Pong,
    RawEvent,
    SelfJoined,
    SelfParted,
    TopicChanged,
    UserJoined,
    UserParted,
    UserQuit,
    Welcome,
)
from ircsession.protocol import Prefix, RawMessage, parse_prefix
from ircsession.state import (
    ChannelView,
    Identity,
    SessionState,
    UserView,
    parse_chanmodes_feature,
    parse_prefix_feature,
)

Handler = Callable[["EventTranslator", RawMessage], list[Event]]

_HANDLERS: dict[str, Handler] = {}

CTCP_DELIM = "\x01"


def handles(*commands: str) -> Callable[[Handler], Handler]:
    """Register a translator method for one or more commands/numerics."""

    def decorator(fn: Handler) -> Handler:
        for command in commands:
            _HANDLERS[command] = fn
        return fn

    return decorator


class EventTranslator:
    """Central state machine of the session."""

    def __init__(self, state: SessionState, identity: Identity) -> None:
        self.state = state
        self.identity = identity
        # channel key -> nick -> (modes, user, host), flushed on end-of-names
        self._pending_names: dict[Identifier, dict[Identifier, tuple[set[str], str | None, str | None]]] = {}
        self._pending_display: dict[Identifier, str] = {}

    # -- lifecycle ---------------------------------------------------------

    def connected(self) -> list[Event]:
        self._reset()
        me = self.state.set_self(self.identity)
        return [Connected(me)]

    def disconnected(self, reason: str | None = None) -> list[Event]:
        self._reset()
        return [Disconnected(reason)]

    def _reset(self) -> None:
        self.state.reset()
        self._pending_names.clear()
        self._pending_display.clear()

    # -- raw input ---------------------------------------------------------

    def feed(self, message: RawMessage) -> list[Event]:
        """Translate one message; unknown commands become ``RawEvent``."""
        handler = _HANDLERS.get(message.command)
        if handler is None:
            return [RawEvent(message)]
        return handler(self, message)

    def _drop(self, message: RawMessage, why: str) -> list[Event]:
        logger.debug("Dropping {} from {}: {}", message.command, message.nick, why)
        return []

    # -- registration / server ----------------------------------------------

    @handles(p.RPL_WELCOME)
    def _on_welcome(self, message: RawMessage) -> list[Event]:
        nick = message.param(0)
        if nick:
            self.state.set_self_nick(nick)
        me = self.state.self_identity()
        if me is None:
            return self._drop(message, "welcome before connect")
        return [Welcome(me.nickname, message.param(-1) if len(message.params) > 1 else None)]

    @handles(p.RPL_ISUPPORT)
    def _on_isupport(self, message: RawMessage) -> list[Event]:
        changes: dict[str, object] = {}
        # first param is our nick, the trailing "are supported" text has spaces
        for token in message.params[1:]:
            if " " in token:
                continue
            key, _, value = token.partition("=")
            key = key.upper()
            if key == "CASEMAPPING" and value:
                changes["casemapping"] = value
            elif key == "CHANTYPES" and value:
                changes["chantypes"] = value
            elif key == "PREFIX":
                parsed = parse_prefix_feature(value) if value else ("", "")
                if parsed is not None:
                    changes["prefix_modes"], changes["prefix_symbols"] = parsed
            elif key == "CHANMODES" and value:
                chanmodes = parse_chanmodes_feature(value)
                if chanmodes is not None:
                    changes["chanmodes"] = chanmodes
        if changes:
            self.state.update_features(**changes)
        return []

    @handles("PING")
    def _on_ping(self, message: RawMessage) -> list[Event]:
        return [Ping(message.param(-1))]

    @handles("PONG")
    def _on_pong(self, message: RawMessage) -> list[Event]:
        return [Pong(message.param(-1))]

    # -- membership --------------------------------------------------------

    @handles("JOIN")
    def _on_join(self, message: RawMessage) -> list[Event]:
        prefix = message.prefix
        channels = message.param(0)
        if prefix is None or not channels:
            return self._drop(message, "missing prefix or channel")

        events: list[Event] = []
        for name in channels.split(","):
            if self.state.is_self(prefix.nick):
                self.state.add_channel(name)
                self.state.add_member(name, prefix.nick, user=prefix.user, host=prefix.host)
                events.append(SelfJoined(self.state.channel(name)))  # type: ignore[arg-type]
            elif self.state.add_member(name, prefix.nick, user=prefix.user, host=prefix.host):
                events.append(
                    UserJoined(self.state.channel(name), self.state.user(prefix.nick))  # type: ignore[arg-type]
                )
            else:
                self._drop(message, f"join for untracked channel {name}")
        return events

    @handles("PART")
    def _on_part(self, message: RawMessage) -> list[Event]:
        if message.prefix is None or not message.param(0):
            return self._drop(message, "missing prefix or channel")
        reason = message.param(1)
        events: list[Event] = []
        for name in message.params[0].split(","):
            events.extend(self._leave(message, name, message.prefix.nick, reason, kicked_by=None))
        return events

    @handles("KICK")
    def _on_kick(self, message: RawMessage) -> list[Event]:
        channel, target = message.param(0), message.param(1)
        if not channel or not target:
            return self._drop(message, "missing channel or target")
        kicker = self.state.ident(message.prefix.nick) if message.prefix else None
        return self._leave(message, channel, target, message.param(2), kicked_by=kicker)

    def _leave(
        self,
        message: RawMessage,
        channel: str,
        nick: str,
        reason: str | None,
        *,
        kicked_by: Identifier | None,
    ) -> list[Event]:
        if self.state.is_self(nick):
            self._pending_names.pop(self.state.ident(channel), None)
            view = self.state.remove_channel(channel)
            if view is None:
                return self._drop(message, f"part from untracked channel {channel}")
            return [SelfParted(view, reason, kicked_by)]

        before = self.state.user(nick)
        if before is None or not self.state.remove_member(channel, nick):
            return self._drop(message, f"{nick} not on {channel}")
        chan_key = self.state.ident(channel)
        user = replace(before, channels=before.channels - {chan_key})
        return [UserParted(self.state.channel(channel), user, reason, kicked_by)]  # type: ignore[arg-type]

    @handles("QUIT")
    def _on_quit(self, message: RawMessage) -> list[Event]:
        prefix = message.prefix
        if prefix is None:
            return self._drop(message, "missing prefix")
        removed = self.state.remove_user(prefix.nick)
        if removed is None:
            removed = UserView(self.state.ident(prefix.nick), prefix.user, prefix.host)
        return [UserQuit(removed, message.param(0))]

    @handles("NICK")
    def _on_nick(self, message: RawMessage) -> list[Event]:
        prefix, new = message.prefix, message.param(0)
        if prefix is None or not new:
            return self._drop(message, "missing prefix or new nick")
        is_self = self.state.is_self(prefix.nick)
        old = self.state.ident(prefix.nick)
        self.state.rename_user(prefix.nick, new)
        self.state.touch_user(Prefix(new, prefix.user, prefix.host))
        return [NickChanged(old, self.state.ident(new), is_self)]

    # -- naming replies ----------------------------------------------------

    @handles(p.RPL_NAMREPLY)
    def _on_names(self, message: RawMessage) -> list[Event]:
        # "<me> <symbol> <channel> :<names>", the symbol is missing on some servers
        if len(message.params) >= 4:
            channel, names = message.params[2], message.params[3]
        elif len(message.params) == 3:
            channel, names = message.params[1], message.params[2]
        else:
            return self._drop(message, "short naming reply")

        key = self.state.ident(channel)
        pending = self._pending_names.setdefault(key, {})
        self._pending_display.setdefault(key, channel)
        symbols = self.state.features.symbol_to_mode
        for entry in names.split():
            modes: set[str] = set()
            while entry and entry[0] in symbols:
                modes.add(symbols[entry[0]])
                entry = entry[1:]
            who = parse_prefix(entry)
            if who is None or not who.nick:
                if entry:
                    logger.debug("Skipping naming entry without a nick: {!r}", entry)
                continue
            pending[self.state.ident(who.nick)] = (modes, who.user, who.host)
        return []

    @handles(p.RPL_ENDOFNAMES)
    def _on_end_of_names(self, message: RawMessage) -> list[Event]:
        channel = message.param(1)
        if not channel:
            return self._drop(message, "end of names without channel")
        key = self.state.ident(channel)
        entries = self._pending_names.pop(key, None)
        display = self._pending_display.pop(key, channel)
        if entries is None:
            view = self.state.channel(key)
            if view is None:
                return self._drop(message, f"end of names for untracked channel {channel}")
            return [ChannelUsersKnown(view)]
        view = self.state.replace_roster(display, entries)
        return [ChannelUsersKnown(view)]

    # -- topics --------------------------------------------------------------

    @handles("TOPIC")
    def _on_topic(self, message: RawMessage) -> list[Event]:
        channel = message.param(0)
        if not channel:
            return self._drop(message, "topic without channel")
        setter = message.nick
        view = self.state.set_topic(channel, message.param(1), setter=setter)
        if view is None:
            return self._drop(message, f"topic for untracked channel {channel}")
        return [TopicChanged(view, view.topic, setter, initial=False)]

    @handles(p.RPL_TOPIC)
    def _on_rpl_topic(self, message: RawMessage) -> list[Event]:
        channel = message.param(1)
        if not channel:
            return self._drop(message, "topic reply without channel")
        view = self.state.set_topic(channel, message.param(2))
        if view is None:
            return self._drop(message, f"topic for untracked channel {channel}")
        return [TopicChanged(view, view.topic, None, initial=True)]

    @handles(p.RPL_NOTOPIC)
    def _on_rpl_notopic(self, message: RawMessage) -> list[Event]:
        channel = message.param(1)
        if not channel:
            return self._drop(message, "no-topic reply without channel")
        view = self.state.set_topic(channel, None)
        if view is None:
            return self._drop(message, f"topic for untracked channel {channel}")
        return [TopicChanged(view, None, None, initial=True)]

    @handles(p.RPL_TOPICWHOTIME)
    def _on_topic_who_time(self, message: RawMessage) -> list[Event]:
        channel, setter = message.param(1), message.param(2)
        if not channel or not setter:
            return self._drop(message, "short topic-who-time reply")
        when = message.param(3)
        self.state.set_topic_meta(channel, setter, int(when) if when and when.isascii() and when.isdigit() else None)
        return []

    # -- modes -------------------------------------------------------------

    @handles("MODE")
    def _on_mode(self, message: RawMessage) -> list[Event]:
        target = message.param(0)
        if not target or not self.state.features.is_channel(target):
            return [RawEvent(message)]
        if not self.state.has_channel(target):
            return self._drop(message, f"mode for untracked channel {target}")
        changes = self._parse_modes(message.params[1:])
        for change in changes:
            if change.mode in self.state.features.prefix_modes and change.argument:
                self.state.set_member_mode(target, change.argument, change.mode, change.adding)
        setter = self.state.ident(message.prefix.nick) if message.prefix else None
        return [ModeChanged(self.state.channel(target), tuple(changes), setter)]  # type: ignore[arg-type]

    def _parse_modes(self, params: tuple[str, ...]) -> list[ModeChange]:
        features = self.state.features
        always_arg = features.prefix_modes + features.chanmodes[0] + features.chanmodes[1]
        set_arg = features.chanmodes[2]
        args = list(params[1:])
        changes: list[ModeChange] = []
        adding = True
        for char in params[0] if params else "":
            if char in "+-":
                adding = char == "+"
                continue
            takes_arg = char in always_arg or (adding and char in set_arg)
            argument = args.pop(0) if takes_arg and args else None
            changes.append(ModeChange(adding, char, argument))
        return changes

    # -- messages ------------------------------------------------------------

    @handles("PRIVMSG")
    def _on_privmsg(self, message: RawMessage) -> list[Event]:
        target, text = message.param(0), message.param(1)
        if message.prefix is None or target is None or text is None:
            return self._drop(message, "short PRIVMSG")
        is_action = False
        if text.startswith(CTCP_DELIM + "ACTION"):
            is_action = True
            text = text[len(CTCP_DELIM + "ACTION") :].strip(CTCP_DELIM).removeprefix(" ")
        return [
            Message(
                source=self.state.ident(message.prefix.nick),
                target=self.state.ident(target),
                text=text,
                channel=self._channel_for(target),
                is_action=is_action,
                prefix=message.prefix,
            )
        ]

    @handles("NOTICE")
    def _on_notice(self, message: RawMessage) -> list[Event]:
        target, text = message.param(0), message.param(1)
        if target is None or text is None:
            return self._drop(message, "short NOTICE")
        source = message.prefix.nick if message.prefix else ""
        return [
            Notice(
                source=self.state.ident(source),
                target=self.state.ident(target),
                text=text,
                channel=self._channel_for(target),
                prefix=message.prefix,
            )
        ]

    def _channel_for(self, target: str) -> ChannelView | None:
        # status messages ("@#chan") address a channel too
        features = self.state.features
        name = target
        if not features.is_channel(name) and features.prefix_symbols:
            name = target.lstrip(features.prefix_symbols)
        if not features.is_channel(name):
            return None
        return self.state.channel(name)
