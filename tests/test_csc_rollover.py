"""Tests for the wrap-aware rate counters."""

import pytest

from csc_rollover import (
    DEFAULT_MAX_RATE_COUNT,
    RolloverCounter,
    cadence_counter,
    round_half_up,
    speed_counter,
)


def test_round_half_up() -> None:
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(1.25, 1) == pytest.approx(1.3)


def test_first_update_returns_zero() -> None:
    counter = cadence_counter()
    assert counter.update(100, 5000, 0) == 0
    assert counter.revs == 100
    assert counter.time == 5000
    assert counter.rate_count == 0


def test_cadence_from_successive_samples() -> None:
    counter = cadence_counter()
    counter.update(0, 0, 0)
    assert counter.update(60, 60 * 1024, 1000) == 60
    assert counter.update(62, 61 * 1024, 2000) == 120


def test_generic_counter_without_transform() -> None:
    counter = RolloverCounter(resolution=1024)
    counter.update(0, 0, 0)
    assert counter.update(3, 2048, 1000) == pytest.approx(1.5)


def test_still_crank_yields_zero() -> None:
    counter = cadence_counter()
    counter.update(0, 0, 0)
    assert counter.update(60, 61440, 1000) == 60
    assert counter.update(60, 62464, 5000) == 0
    assert counter.time == 62464
    assert counter.value == 0


def test_crank_count_wraps() -> None:
    counter = cadence_counter()
    counter.update(65530, 1000, 0)
    # 4 + (65536 - 65530) = 10 revolutions in one second
    assert counter.update(4, 2024, 1000) == 600


def test_event_time_wraps() -> None:
    counter = cadence_counter()
    counter.update(0, 65000, 0)
    # 488 + (65536 - 65000) = 1024 ticks
    assert counter.update(2, 488, 1000) == 120


def test_wheel_count_wraps_at_32_bits() -> None:
    counter = speed_counter()
    counter.update(2 ** 32 - 2, 0, 0)
    assert counter.update(3, 1024, 1000) == pytest.approx(37.89)


def test_speed_in_kmh() -> None:
    counter = speed_counter(wheel_circumference=2.105)
    counter.update(0, 0, 0)
    # 10 revolutions in 2 s = 5 rev/s * 2.105 m * 3.6
    assert counter.update(10, 2048, 1000) == pytest.approx(37.89)


def test_speed_follows_wheel_circumference() -> None:
    counter = speed_counter()
    counter.wheel_circumference = 2.0
    counter.update(0, 0, 0)
    assert counter.update(5, 1024, 1000) == pytest.approx(36.0)


def test_repeated_event_time_is_gated_until_max() -> None:
    counter = cadence_counter()
    counter.update(0, 0, 0)
    assert counter.update(60, 61440, 1000) == 60

    for expected_count in range(1, DEFAULT_MAX_RATE_COUNT + 1):
        assert counter.update(60, 61440, 1000 + expected_count * 1000) == 60
        assert counter.rate_count == expected_count

    # gate is full: this one is recomputed and found still
    assert counter.update(60, 61440, 9000) == 0
    assert counter.rate_count == 0


def test_fast_arrivals_are_gated() -> None:
    counter = cadence_counter()
    counter.update(0, 0, 0)
    assert counter.update(2, 1024, 200) == 0
    assert counter.rate_count == 1
    assert counter.revs == 0
    assert counter.update(2, 1024, 1000) == 120
    assert counter.rate_count == 0


def test_duplicate_time_with_new_count_after_bypass() -> None:
    counter = cadence_counter(max_rate_count=1)
    counter.update(0, 0, 0)
    assert counter.update(1, 1024, 1000) == 60
    assert counter.update(2, 1024, 2000) == 60  # gated
    assert counter.update(3, 1024, 3000) == 60  # bypassed, zero time delta
    assert counter.revs == 1
    assert counter.update(4, 2048, 4000) == 180


def test_set_max_rate_count() -> None:
    counter = cadence_counter()
    assert counter.set_max_rate_count(7) == 7
    assert counter.max_rate_count == 7
    assert counter.set_max_rate_count(None) == DEFAULT_MAX_RATE_COUNT


def test_reset() -> None:
    counter = cadence_counter()
    counter.set_max_rate_count(9)
    counter.update(0, 0, 0)
    counter.update(60, 61440, 1000)
    counter.update(60, 61440, 1100)

    assert counter.reset() == {"revs": 60, "time": 61440}
    assert counter.revs is None
    assert counter.time is None
    assert counter.value == 0
    assert counter.rate_count == 0
    assert counter.max_rate_count == DEFAULT_MAX_RATE_COUNT
    assert counter.update(5, 100, 0) == 0
