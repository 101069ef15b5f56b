"""Transport adapters feeding a ``Session``."""

from ircsession.adapters.base import TransportBase
from ircsession.adapters.irc import IRCClient, IRCTransport

__all__ = ["IRCClient", "IRCTransport", "TransportBase"]
