"""Base transport interface: start/stop and outgoing lines."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ircsession.commands import OutgoingLine


class TransportBase(ABC):
    """Owns the socket side of a session: framing, I/O and reconnection."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Transport identifier (e.g. 'irc')."""
        ...

    @abstractmethod
    def send_line(self, line: OutgoingLine) -> None:
        """Queue one encoded line for transmission. Must not block."""
        ...

    @abstractmethod
    async def start(self) -> None:
        """Connect and begin feeding the session."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Disconnect and clean up."""
        ...
