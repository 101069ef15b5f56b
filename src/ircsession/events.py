"""Semantic event types, the listener capability set and the dispatcher."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, ClassVar

from loguru import logger

from ircsession.casemap import Identifier
from ircsession.errors import ObserverFailure
from ircsession.protocol import Prefix, RawMessage
from ircsession.state import ChannelView, SelfIdentity, UserView

EVENT_TYPES: dict[str, type[Event]] = {}


def event(kind: str):
    """Decorator to register an event class under a kind name.

    The kind selects the listener method (``on_<kind>``) the event is delivered to.
    """

    def decorator(cls: Any) -> Any:
        cls.kind = kind
        EVENT_TYPES[kind] = cls
        return cls

    return decorator


@dataclass(frozen=True)
class Event:
    kind: ClassVar[str] = "event"


@event("connected")
@dataclass(frozen=True)
class Connected(Event):
    """Transport connected; self initialized from the configured identity."""

    identity: SelfIdentity


@event("welcome")
@dataclass(frozen=True)
class Welcome(Event):
    """Registration accepted (RPL_WELCOME)."""

    nick: Identifier
    text: str | None = None


@event("disconnected")
@dataclass(frozen=True)
class Disconnected(Event):
    """Connection dropped; the state store is already empty."""

    reason: str | None = None


@event("self_joined")
@dataclass(frozen=True)
class SelfJoined(Event):
    channel: ChannelView


@event("user_joined")
@dataclass(frozen=True)
class UserJoined(Event):
    channel: ChannelView
    user: UserView


@event("self_parted")
@dataclass(frozen=True)
class SelfParted(Event):
    """We left (or were kicked from) a channel; it is gone from the store."""

    channel: ChannelView
    reason: str | None = None
    kicked_by: Identifier | None = None


@event("user_parted")
@dataclass(frozen=True)
class UserParted(Event):
    channel: ChannelView
    user: UserView
    reason: str | None = None
    kicked_by: Identifier | None = None


@event("nick_changed")
@dataclass(frozen=True)
class NickChanged(Event):
    old: Identifier
    new: Identifier
    is_self: bool = False


@event("user_quit")
@dataclass(frozen=True)
class UserQuit(Event):
    """User left the network; one event regardless of shared channels."""

    user: UserView
    reason: str | None = None


@event("topic_changed")
@dataclass(frozen=True)
class TopicChanged(Event):
    """Topic set by someone (``initial=False``) or reported on join (``initial=True``)."""

    channel: ChannelView
    topic: str | None
    setter: str | None = None
    initial: bool = False


@event("channel_users_known")
@dataclass(frozen=True)
class ChannelUsersKnown(Event):
    """Naming reply complete; ``channel.users`` is the full roster."""

    channel: ChannelView


@event("message")
@dataclass(frozen=True)
class Message(Event):
    source: Identifier
    target: Identifier
    text: str
    channel: ChannelView | None = None
    is_action: bool = False
    prefix: Prefix | None = None

    @property
    def is_private(self) -> bool:
        return self.channel is None


@event("notice")
@dataclass(frozen=True)
class Notice(Event):
    source: Identifier
    target: Identifier
    text: str
    channel: ChannelView | None = None
    prefix: Prefix | None = None

    @property
    def is_private(self) -> bool:
        return self.channel is None


@dataclass(frozen=True)
class ModeChange:
    adding: bool
    mode: str
    argument: str | None = None

    def __str__(self) -> str:
        sign = "+" if self.adding else "-"
        return f"{sign}{self.mode}" + (f" {self.argument}" if self.argument else "")


@event("mode_changed")
@dataclass(frozen=True)
class ModeChanged(Event):
    channel: ChannelView
    changes: tuple[ModeChange, ...]
    setter: Identifier | None = None


@event("ping")
@dataclass(frozen=True)
class Ping(Event):
    token: str | None = None


@event("pong")
@dataclass(frozen=True)
class Pong(Event):
    token: str | None = None


@event("raw")
@dataclass(frozen=True)
class RawEvent(Event):
    """Input with no semantic translation, passed through for forward compatibility."""

    message: RawMessage


class Listener:
    """Observer capability set: override the ``on_<kind>`` methods you need.

    ``on_event`` sees every event before its specific handler. Handlers run
    synchronously; the store already reflects the event being delivered.
    """

    def on_event(self, event: Event) -> Any: ...

    def on_connected(self, event: Connected) -> Any: ...

    def on_welcome(self, event: Welcome) -> Any: ...

    def on_disconnected(self, event: Disconnected) -> Any: ...

    def on_self_joined(self, event: SelfJoined) -> Any: ...

    def on_user_joined(self, event: UserJoined) -> Any: ...

    def on_self_parted(self, event: SelfParted) -> Any: ...

    def on_user_parted(self, event: UserParted) -> Any: ...

    def on_nick_changed(self, event: NickChanged) -> Any: ...

    def on_user_quit(self, event: UserQuit) -> Any: ...

    def on_topic_changed(self, event: TopicChanged) -> Any: ...

    def on_channel_users_known(self, event: ChannelUsersKnown) -> Any: ...

    def on_message(self, event: Message) -> Any: ...

    def on_notice(self, event: Notice) -> Any: ...

    def on_mode_changed(self, event: ModeChanged) -> Any: ...

    def on_ping(self, event: Ping) -> Any: ...

    def on_pong(self, event: Pong) -> Any: ...

    def on_raw(self, event: RawEvent) -> Any: ...


class Dispatcher:
    """Delivers events, in order, to a single registered listener.

    The listener is either an object with ``on_<kind>`` methods (usually a
    ``Listener`` subclass) or a plain callable taking the event. A handler that
    raises is reported as ``ObserverFailure`` to ``on_failure`` and logged;
    later events are still delivered.
    """

    def __init__(
        self,
        listener: object | None = None,
        *,
        on_failure: Callable[[ObserverFailure], None] | None = None,
    ) -> None:
        self._listener = listener
        self._on_failure = on_failure
        self.failures = 0

    @property
    def listener(self) -> object | None:
        return self._listener

    def register(self, listener: object) -> None:
        """Register the listener, replacing any previous one."""
        if self._listener is not None and self._listener is not listener:
            logger.debug("Replacing listener {} with {}", self._listener, listener)
        self._listener = listener

    def unregister(self, listener: object | None = None) -> None:
        """Unregister the listener (only if it is ``listener`` when given)."""
        if listener is None or self._listener is listener:
            self._listener = None

    def dispatch(self, evt: Event) -> None:
        """Deliver ``evt`` synchronously."""
        for handler in self._handlers(evt):
            try:
                result = handler(evt)
                if inspect.isawaitable(result):
                    if inspect.iscoroutine(result):
                        result.close()
                    logger.warning(
                        "Listener returned an awaitable for {}; use the async feed path",
                        evt.kind,
                    )
            except Exception as exc:
                self._report(evt, exc)

    async def dispatch_async(self, evt: Event) -> None:
        """Deliver ``evt``, awaiting coroutine handlers before returning."""
        for handler in self._handlers(evt):
            try:
                result = handler(evt)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                self._report(evt, exc)

    def _handlers(self, evt: Event) -> list[Callable[[Event], Any]]:
        listener = self._listener
        if listener is None:
            return []
        handlers = [
            handler
            for handler in (getattr(listener, "on_event", None), getattr(listener, f"on_{evt.kind}", None))
            if handler is not None
        ]
        if not handlers and callable(listener):
            handlers.append(listener)
        return handlers

    def _report(self, evt: Event, exc: Exception) -> None:
        self.failures += 1
        failure = ObserverFailure(evt, exc)
        logger.exception("Listener failed on {} event: {}", evt.kind, exc)
        if self._on_failure is None:
            return
        try:
            self._on_failure(failure)
        except Exception as hook_exc:
            logger.exception("Failure hook raised for {} event: {}", evt.kind, hook_exc)
