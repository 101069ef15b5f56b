"""Outgoing flood control modelled on the server-side message timer.

Servers keep a per-client clock that every received line pushes forward and
start penalising a client once that clock runs too far ahead of real time
(RFC 1459, section 8.10). ``MessageTimer`` keeps the same clock on our side so
the transport slows down before the server does it for us.
"""

from __future__ import annotations

import time

from ircsession.protocol import MAX_LINE_BYTES


class MessageTimer:
    """Client-side copy of the server's message timer.

    Args:
        lines_per_second: Sustained rate for short lines.
        burst: How many short lines may go out back to back.
        max_line_bytes: Size of a full line; a full line costs twice a short one.
    """

    def __init__(self, lines_per_second: float = 10.0, *, burst: int = 10, max_line_bytes: int = MAX_LINE_BYTES) -> None:
        if lines_per_second <= 0 or burst < 1 or max_line_bytes < 1:
            raise ValueError("lines_per_second, burst and max_line_bytes must be positive")
        self._line_cost = 1.0 / lines_per_second
        self._byte_cost = self._line_cost / max_line_bytes
        self._window = burst * self._line_cost
        self._clock = time.monotonic()

    def cost(self, nbytes: int) -> float:
        """Seconds a line of ``nbytes`` pushes the clock forward."""
        return self._line_cost + nbytes * self._byte_cost

    @property
    def ahead(self) -> float:
        """Seconds the clock currently runs ahead of real time."""
        return max(0.0, self._clock - time.monotonic())

    def delay(self, nbytes: int) -> float:
        """Seconds to wait before a line of ``nbytes`` fits in the window."""
        # a single line larger than the whole window only waits for an idle clock
        return max(0.0, self.ahead + min(self.cost(nbytes), self._window) - self._window)

    def consume(self, nbytes: int) -> None:
        """Record a line of ``nbytes`` as sent."""
        self._clock = max(self._clock, time.monotonic()) + self.cost(nbytes)
