"""Tests for the outgoing message timer."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from ircsession.adapters.irc_throttle import MessageTimer


@pytest.fixture
def clock():
    now = [100.0]
    with patch("ircsession.adapters.irc_throttle.time.monotonic", side_effect=lambda: now[0]):
        yield now


class TestMessageTimer:
    def test_full_line_costs_two_short_ones(self, clock):
        timer = MessageTimer(10, burst=3, max_line_bytes=100)
        assert timer.cost(0) == pytest.approx(0.1)
        assert timer.cost(100) == pytest.approx(0.2)

    def test_burst_of_short_lines_then_wait(self, clock):
        # Arrange
        timer = MessageTimer(10, burst=3, max_line_bytes=100)

        # Act
        waits = []
        for _ in range(3):
            waits.append(timer.delay(0))
            timer.consume(0)

        # Assert
        assert waits == [pytest.approx(0, abs=1e-9)] * 3
        assert timer.delay(0) == pytest.approx(0.1)

    def test_long_lines_use_up_the_burst_faster(self, clock):
        # Arrange
        timer = MessageTimer(10, burst=3, max_line_bytes=100)

        # Act
        timer.consume(100)
        timer.consume(100)

        # Assert
        assert timer.ahead == pytest.approx(0.4)
        assert timer.delay(0) == pytest.approx(0.2)

    def test_clock_catches_up_with_real_time(self, clock):
        # Arrange
        timer = MessageTimer(10, burst=1, max_line_bytes=100)
        timer.consume(50)
        assert timer.delay(50) > 0

        # Act
        clock[0] += 5

        # Assert
        assert timer.ahead == 0
        assert timer.delay(50) == 0

    def test_idle_clock_does_not_bank_credit(self, clock):
        # Arrange
        timer = MessageTimer(10, burst=2, max_line_bytes=100)
        clock[0] += 60

        # Act
        timer.consume(0)
        timer.consume(0)

        # Assert
        assert timer.delay(0) == pytest.approx(0.1)

    def test_oversized_line_waits_only_for_an_idle_clock(self, clock):
        # Arrange
        timer = MessageTimer(10, burst=1, max_line_bytes=100)

        # Act / Assert
        assert timer.delay(1000) == 0
        timer.consume(1000)
        assert timer.delay(1000) == pytest.approx(1.1)

    @pytest.mark.parametrize(
        ("rate", "burst", "max_line_bytes"),
        [(0, 1, 512), (-1.0, 1, 512), (1.0, 0, 512), (1.0, 1, 0)],
    )
    def test_rejects_invalid_settings(self, rate, burst, max_line_bytes):
        with pytest.raises(ValueError):
            MessageTimer(rate, burst=burst, max_line_bytes=max_line_bytes)
