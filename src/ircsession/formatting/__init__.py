"""Caller-side text helpers."""

from ircsession.formatting.irc_message_split import split_message

__all__ = ["split_message"]
