"""IRC case mapping and the case-folded identifier value type."""

from __future__ import annotations

import string
from functools import total_ordering

from loguru import logger

DEFAULT_CASEMAPPING = "rfc1459"

_TABLES: dict[str, dict[int, int]] = {
    "ascii": str.maketrans(string.ascii_uppercase, string.ascii_lowercase),
    "rfc1459": str.maketrans(
        string.ascii_uppercase + "[]\\~",
        string.ascii_lowercase + "{}|^",
    ),
    "strict-rfc1459": str.maketrans(
        string.ascii_uppercase + "[]\\",
        string.ascii_lowercase + "{}|",
    ),
}

CASEMAPPINGS = frozenset(_TABLES)


def normalize_casemapping(name: str | None) -> str:
    """Return a known casemapping name, falling back to rfc1459."""
    if not name:
        return DEFAULT_CASEMAPPING
    key = name.lower()
    if key not in _TABLES:
        logger.debug("Unknown CASEMAPPING {}; using {}", name, DEFAULT_CASEMAPPING)
        return DEFAULT_CASEMAPPING
    return key


def casefold(value: str, casemapping: str = DEFAULT_CASEMAPPING) -> str:
    """Fold a nickname or channel name under the given IRC casemapping."""
    return value.translate(_TABLES[normalize_casemapping(casemapping)])


@total_ordering
class Identifier:
    """Nickname or channel name compared by its folded form.

    The original spelling is kept for display (``str(ident)``); equality,
    hashing and ordering only look at the folded form, so ``Identifier("Nick[x]")``
    and ``Identifier("nick{x}")`` are the same key in any dict or set.
    """

    __slots__ = ("_display", "_folded", "_casemapping")

    def __init__(self, value: str, casemapping: str = DEFAULT_CASEMAPPING) -> None:
        self._casemapping = normalize_casemapping(casemapping)
        self._display = value
        self._folded = casefold(value, self._casemapping)

    @classmethod
    def coerce(cls, value: str | Identifier, casemapping: str = DEFAULT_CASEMAPPING) -> Identifier:
        """Wrap a raw string, or rewrap an identifier under ``casemapping``."""
        if isinstance(value, Identifier):
            if value._casemapping == normalize_casemapping(casemapping):
                return value
            return cls(value._display, casemapping)
        return cls(value, casemapping)

    @property
    def display(self) -> str:
        return self._display

    @property
    def folded(self) -> str:
        return self._folded

    @property
    def casemapping(self) -> str:
        return self._casemapping

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Identifier):
            return NotImplemented
        return self._folded == other._folded

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Identifier):
            return NotImplemented
        return self._folded < other._folded

    def __hash__(self) -> int:
        return hash(self._folded)

    def __bool__(self) -> bool:
        return bool(self._display)

    def __str__(self) -> str:
        return self._display

    def __repr__(self) -> str:
        return f"Identifier({self._display!r})"
