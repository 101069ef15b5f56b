"""High-level IRC session layer: live state model, semantic events, command encoder."""

from ircsession.casemap import Identifier, casefold
from ircsession.commands import Commands, OutgoingLine
from ircsession.errors import (
    ConfigurationError,
    InvalidArgument,
    IRCSessionError,
    MessageTooLong,
    NotConnected,
    ObserverFailure,
)
from ircsession.events import (
    ChannelUsersKnown,
    Connected,
    Disconnected,
    Dispatcher,
    Event,
    Listener,
    Message,
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
from ircsession.protocol import MAX_LINE_BYTES, Prefix, RawMessage
from ircsession.session import ConnectionStatus, Session
from ircsession.state import ChannelView, Identity, SelfIdentity, SessionState, UserView

__version__ = "0.1.0"

__all__ = [
    "MAX_LINE_BYTES",
    "ChannelUsersKnown",
    "ChannelView",
    "Commands",
    "ConfigurationError",
    "Connected",
    "ConnectionStatus",
    "Disconnected",
    "Dispatcher",
    "Event",
    "IRCSessionError",
    "Identifier",
    "Identity",
    "InvalidArgument",
    "Listener",
    "Message",
    "MessageTooLong",
    "ModeChanged",
    "NickChanged",
    "NotConnected",
    "Notice",
    "ObserverFailure",
    "OutgoingLine",
    "Ping",
    "Pong",
    "Prefix",
    "RawEvent",
    "RawMessage",
    "SelfIdentity",
    "SelfJoined",
    "SelfParted",
    "Session",
    "SessionState",
    "TopicChanged",
    "UserJoined",
    "UserParted",
    "UserQuit",
    "UserView",
    "Welcome",
    "casefold",
]
