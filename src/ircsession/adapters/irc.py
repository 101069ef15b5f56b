"""IRC transport: a pydle connection that drives a ``Session``.

pydle owns the socket, line framing, registration and PING replies; every
parsed message is forwarded to the session, and the session's outgoing lines
go through a throttled queue back into pydle.
"""

from __future__ import annotations

import asyncio
import contextlib
import random
from typing import Any

import pydle
from loguru import logger

from ircsession.adapters.base import TransportBase
from ircsession.adapters.irc_throttle import MessageTimer
from ircsession.commands import OutgoingLine
from ircsession.protocol import RawMessage
from ircsession.session import Session

# Backoff: min 2s, max 60s, jitter
_BACKOFF_MIN = 2
_BACKOFF_MAX = 60
_MAX_ATTEMPTS = 10


async def _connect_with_backoff(
    client: pydle.Client,
    hostname: str,
    port: int,
    tls: bool,
) -> None:
    """Connect with exponential backoff and jitter on failure; reconnect on disconnect."""
    attempt = 0
    while True:
        try:
            await client.connect(hostname=hostname, port=port, tls=tls)
            # connect() returns once handle_forever is spawned; wait for the drop
            while client.connected:
                await asyncio.sleep(0.5)
            attempt = 0
            wait = _BACKOFF_MIN * random.uniform(0.5, 1.5)
            logger.info("IRC disconnected, reconnecting in {:.1f}s", wait)
            await asyncio.sleep(wait)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            attempt += 1
            if attempt >= _MAX_ATTEMPTS:
                logger.exception("IRC connect failed after {} attempts", _MAX_ATTEMPTS)
                raise
            delay = min(_BACKOFF_MAX, _BACKOFF_MIN * (2 ** (attempt - 1)))
            wait = delay * random.uniform(0.5, 1.5)
            logger.warning(
                "IRC connect failed (attempt {}): {}, retrying in {:.1f}s",
                attempt,
                exc,
                wait,
            )
            await asyncio.sleep(wait)


def to_raw_message(message: Any) -> RawMessage:
    """Convert a pydle message (numerics may arrive as ints) to a ``RawMessage``."""
    return RawMessage.create(
        message.command,
        *(str(p) for p in (getattr(message, "params", None) or [])),
        source=getattr(message, "source", None) or None,
        tags=getattr(message, "tags", None) or None,
    )


class IRCClient(pydle.Client):
    """pydle client forwarding every message and lifecycle change to a session."""

    # reconnection is handled by _connect_with_backoff
    RECONNECT_ON_ERROR = False

    def __init__(self, session: Session, nick: str, *, throttle_limit: int = 10, **kwargs):
        super().__init__(nick, **kwargs)
        self._irc_session = session
        self._outbound: asyncio.Queue[OutgoingLine] = asyncio.Queue()
        self._consumer_task: asyncio.Task | None = None
        self._throttle = MessageTimer(
            throttle_limit, burst=throttle_limit, max_line_bytes=session.commands.max_line_bytes
        )

    async def on_connect(self):
        """Register (pydle), start the send queue, then tell the session."""
        await super().on_connect()
        if self._consumer_task is None or self._consumer_task.done():
            self._consumer_task = asyncio.create_task(self._consume_outbound())
        await self._irc_session.connected_async()

    async def on_raw(self, message):
        """Let pydle do its bookkeeping, then feed the session."""
        await super().on_raw(message)
        await self._irc_session.feed_async(to_raw_message(message))

    async def on_disconnect(self, expected: bool) -> None:
        await self._stop_consumer()
        await self._irc_session.disconnected_async("closed" if expected else "connection lost")
        await super().on_disconnect(expected)

    def queue_line(self, line: OutgoingLine) -> None:
        """Queue an outgoing line; safe to call from listener callbacks."""
        self._outbound.put_nowait(line)

    async def _consume_outbound(self) -> None:
        """Drain the outgoing queue, paced by line count and size."""
        while True:
            try:
                line = await self._outbound.get()
                size = len(line.encode())
                wait = self._throttle.delay(size)
                if wait > 0:
                    await asyncio.sleep(wait)
                self._throttle.consume(size)
                await self.rawmsg(line.command, *line.params)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.exception("IRC send failed: {}", exc)

    async def _stop_consumer(self) -> None:
        if self._consumer_task:
            self._consumer_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._consumer_task
            self._consumer_task = None


class IRCTransport(TransportBase):
    """Runs an ``IRCClient`` for a session, reconnecting with backoff."""

    def __init__(
        self,
        session: Session,
        *,
        server: str,
        port: int = 6697,
        tls: bool = True,
        throttle_limit: int = 10,
    ) -> None:
        self._session = session
        self._server = server
        self._port = port
        self._tls = tls
        self._throttle_limit = throttle_limit
        self._client: IRCClient | None = None
        self._task: asyncio.Task | None = None
        # pydle registers and answers PING itself
        session.register_on_connect = False
        session.auto_pong = False

    @property
    def name(self) -> str:
        return "irc"

    @property
    def client(self) -> IRCClient | None:
        return self._client

    def send_line(self, line: OutgoingLine) -> None:
        if self._client is None:
            logger.warning("IRC transport not started; dropping {}", line.command)
            return
        self._client.queue_line(line)

    async def start(self) -> None:
        identity = self._session.identity
        self._client = IRCClient(
            self._session,
            identity.nickname,
            username=identity.username,
            realname=identity.realname,
            throttle_limit=self._throttle_limit,
        )
        self._session.attach(self.send_line)
        self._task = asyncio.create_task(
            _connect_with_backoff(
                self._client,
                hostname=self._server,
                port=self._port,
                tls=self._tls,
            )
        )
        logger.info("IRC connection started: {}:{} (tls={})", self._server, self._port, self._tls)

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        if self._client and self._client.connected:
            await self._client.disconnect(expected=True)
        self._session.detach()
        self._client = None
        self._task = None
