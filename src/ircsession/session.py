"""Session handle: one connection's store, translator, dispatcher and commands.

The transport drives it with ``connected()``, ``feed(message)`` and
``disconnected(reason)`` (or their ``*_async`` twins when observers are
coroutines) and receives outgoing lines through the ``send`` hook.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from enum import Enum, auto

from loguru import logger

from ircsession.commands import Commands, OutgoingLine
from ircsession.errors import IRCSessionError, NotConnected, ObserverFailure
from ircsession.events import Dispatcher, Event, Ping, Welcome
from ircsession.protocol import MAX_LINE_BYTES, RawMessage
from ircsession.state import ChannelView, Identity, NickLike, SelfIdentity, SessionState, UserView
from ircsession.translator import EventTranslator


class ConnectionStatus(Enum):
    DISCONNECTED = auto()
    CONNECTED = auto()
    REGISTERED = auto()


class Session:
    """High-level IRC session.

    Args:
        identity: Nickname, username and real name to register with.
        listener: Observer (``Listener`` subclass or callable).
        send: Transport hook for outgoing lines; can be attached later.
        channels: Joined automatically once registration completes.
        nickserv_password: Sent to NickServ after registration, before joins.
        auto_pong: Answer server PINGs.
        register_on_connect: Send NICK/USER on connect (off when the
            transport registers by itself).
        on_failure: Called with an ``ObserverFailure`` whenever the listener raises.
    """

    def __init__(
        self,
        identity: Identity,
        listener: object | None = None,
        *,
        send: Callable[[OutgoingLine], object] | None = None,
        channels: Iterable[str] = (),
        nickserv_password: str | None = None,
        auto_pong: bool = True,
        register_on_connect: bool = True,
        max_line_bytes: int = MAX_LINE_BYTES,
        on_failure: Callable[[ObserverFailure], None] | None = None,
    ) -> None:
        self.identity = identity
        self.state = SessionState()
        self.translator = EventTranslator(self.state, identity)
        self.dispatcher = Dispatcher(listener, on_failure=on_failure)
        self.commands = Commands(self._send_line, state=self.state, max_line_bytes=max_line_bytes)
        self.status = ConnectionStatus.DISCONNECTED
        self.auto_join = tuple(channels)
        self.nickserv_password = nickserv_password
        self.auto_pong = auto_pong
        self.register_on_connect = register_on_connect
        self._send = send

    # -- wiring ------------------------------------------------------------

    def attach(self, send: Callable[[OutgoingLine], object]) -> None:
        """Attach the transport's outgoing-line hook."""
        self._send = send

    def detach(self) -> None:
        self._send = None

    def set_listener(self, listener: object) -> None:
        self.dispatcher.register(listener)

    @property
    def is_connected(self) -> bool:
        return self.status is not ConnectionStatus.DISCONNECTED

    def _send_line(self, line: OutgoingLine) -> None:
        if self._send is None:
            raise NotConnected("no transport attached", code="no_transport")
        if not self.is_connected:
            raise NotConnected(f"cannot send {line.command} while disconnected", code="disconnected")
        logger.debug(">> {}", line.text)
        self._send(line)

    # -- reads -------------------------------------------------------------

    def self_identity(self) -> SelfIdentity | None:
        return self.state.self_identity()

    def channel(self, name: NickLike) -> ChannelView | None:
        return self.state.channel(name)

    def channels(self) -> Iterator[ChannelView]:
        return self.state.channels()

    def user(self, nick: NickLike) -> UserView | None:
        return self.state.user(nick)

    # -- lifecycle / input -------------------------------------------------

    def connected(self) -> list[Event]:
        events = self._on_connected()
        for evt in events:
            self.dispatcher.dispatch(evt)
        return events

    def feed(self, message: RawMessage) -> list[Event]:
        """Process one raw message to completion, listener included."""
        events = self.translator.feed(message)
        for evt in events:
            self._before_dispatch(evt)
            self.dispatcher.dispatch(evt)
            self._after_dispatch(evt)
        return events

    def disconnected(self, reason: str | None = None) -> list[Event]:
        events = self._on_disconnected(reason)
        for evt in events:
            self.dispatcher.dispatch(evt)
        return events

    async def connected_async(self) -> list[Event]:
        events = self._on_connected()
        for evt in events:
            await self.dispatcher.dispatch_async(evt)
        return events

    async def feed_async(self, message: RawMessage) -> list[Event]:
        events = self.translator.feed(message)
        for evt in events:
            self._before_dispatch(evt)
            await self.dispatcher.dispatch_async(evt)
            self._after_dispatch(evt)
        return events

    async def disconnected_async(self, reason: str | None = None) -> list[Event]:
        events = self._on_disconnected(reason)
        for evt in events:
            await self.dispatcher.dispatch_async(evt)
        return events

    def _on_connected(self) -> list[Event]:
        self.status = ConnectionStatus.CONNECTED
        events = self.translator.connected()
        logger.info("Session connected as {}", self.identity.nickname)
        if self.register_on_connect and self._send is not None:
            self.commands.register(self.identity.nickname, self.identity.username, self.identity.realname)
        return events

    def _on_disconnected(self, reason: str | None) -> list[Event]:
        self.status = ConnectionStatus.DISCONNECTED
        events = self.translator.disconnected(reason)
        logger.info("Session disconnected: {}", reason or "no reason given")
        return events

    def _before_dispatch(self, evt: Event) -> None:
        if isinstance(evt, Ping) and self.auto_pong and self._send is not None:
            if not self.is_connected:
                logger.debug("PING before connect; not answering")
                return
            try:
                self.commands.pong(evt.token or "")
            except IRCSessionError as exc:
                logger.error("Auto PONG failed: {}", exc)
        elif isinstance(evt, Welcome):
            self.status = ConnectionStatus.REGISTERED

    def _after_dispatch(self, evt: Event) -> None:
        if not isinstance(evt, Welcome):
            return
        try:
            if self.nickserv_password:
                self.commands.identify(self.nickserv_password)
            for channel in self.auto_join:
                self.commands.join(channel)
        except IRCSessionError as exc:
            logger.error("Post-registration command failed: {}", exc)
