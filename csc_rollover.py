import logging
import math
from typing import Callable, Dict, Optional


logger = logging.getLogger(__name__)

TICKS_PER_SECOND = 1024

WHEEL_MAX_REVS = 2 ** 32
CRANK_MAX_REVS = 2 ** 16
EVENT_TIME_MODULUS = 2 ** 16

DEFAULT_RATE_WINDOW_MS = 500
DEFAULT_MAX_RATE_COUNT = 3

DEFAULT_WHEEL_CIRCUMFERENCE_M = 2.105  # 700x25c
DEFAULT_SPEED_PRECISION = 2


def round_half_up(x: float, digits: int = 0) -> float:
    precision = 10 ** digits
    return math.floor(x * precision + 0.5) / precision


class RolloverCounter:
    """Instantaneous rate from a pair of free-running (count, event time) counters.

    Both counters wrap: event time at ``max_time`` ticks, the cumulative count
    at ``max_revs``. A sample is turned into a rate against the previously
    accepted one:

        rate = (count_2 - count_1) / ((time_2 - time_1) / resolution)

    Notes:
        Sensors repeat notifications faster than the event time moves, and keep
        notifying with an unchanged count while coasting. Repeats are gated: up
        to ``max_rate_count`` consecutive samples that carry the same event
        time, or that arrive less than ``rate_window_ms`` after the last
        accepted one, return the previous value. The next sample is always
        recomputed so the value can't get stuck.
    """

    def __init__(
        self,
        resolution: float = TICKS_PER_SECOND,
        max_revs: int = CRANK_MAX_REVS,
        max_time: int = EVENT_TIME_MODULUS,
        transform: Optional[Callable[[float], float]] = None,
        rate_window_ms: float = DEFAULT_RATE_WINDOW_MS,
        max_rate_count: int = DEFAULT_MAX_RATE_COUNT,
        name: str = "",
    ):
        self.resolution = resolution
        self.max_revs = max_revs
        self.max_time = max_time
        self.rate_window_ms = rate_window_ms
        self.name = name
        self._transform = transform or (lambda x: x)

        self._default_max_rate_count = max_rate_count
        self._max_rate_count = max_rate_count
        self._rate_count = 0

        self._revs: Optional[int] = None
        self._time: Optional[int] = None
        self._last_ms: Optional[float] = None
        self._value: float = 0

    @property
    def value(self) -> float:
        return self._value

    @property
    def revs(self) -> Optional[int]:
        return self._revs

    @property
    def time(self) -> Optional[int]:
        return self._time

    @property
    def rate_count(self) -> int:
        return self._rate_count

    @property
    def max_rate_count(self) -> int:
        return self._max_rate_count

    def set_max_rate_count(self, max_count: Optional[int]) -> int:
        if max_count is None:
            max_count = self._default_max_rate_count
        self._max_rate_count = int(max_count)
        logger.info("%s max rate count: %d", self.name or "counter", self._max_rate_count)
        return self._max_rate_count

    def reset(self) -> Dict[str, Optional[int]]:
        """Forget all samples. Returns the previous (revs, time) pair."""
        previous = {"revs": self._revs, "time": self._time}
        self._revs = None
        self._time = None
        self._last_ms = None
        self._value = 0
        self._rate_count = 0
        self._max_rate_count = self._default_max_rate_count
        return previous

    def _under_rate(self, time: int, now_ms: float) -> bool:
        if self._rate_count >= self._max_rate_count:
            self._rate_count = 0
            return False
        if time == self._time or (now_ms - self._last_ms) < self.rate_window_ms:
            self._rate_count += 1
            return True
        self._rate_count = 0
        return False

    def _store(self, revs: int, time: int, now_ms: float) -> None:
        self._revs = revs
        self._time = time
        self._last_ms = now_ms

    def update(self, revs: int, time: int, now_ms: float) -> float:
        if self._revs is None or self._time is None:
            self._store(revs, time, now_ms)
            return self._value

        if self._under_rate(time, now_ms):
            logger.debug("%s gated sample revs=%d time=%d (%d/%d)",
                         self.name, revs, time, self._rate_count, self._max_rate_count)
            return self._value

        # coasting or not moving
        if revs == self._revs:
            self._time = time
            self._last_ms = now_ms
            self._value = 0
            return self._value

        prev_time = self._time
        if time < prev_time:
            prev_time -= self.max_time

        prev_revs = self._revs
        if revs < prev_revs:
            prev_revs -= self.max_revs

        delta_time = time - prev_time
        if delta_time == 0:
            # Only reachable when the gate was bypassed on a repeated event time.
            logger.debug("%s duplicate event time %d with new count %d", self.name, time, revs)
            return self._value

        self._value = self._transform((revs - prev_revs) / (delta_time / self.resolution))
        self._store(revs, time, now_ms)
        return self._value


class SpeedCounter(RolloverCounter):
    """Wheel channel: revolutions per second to km/h."""

    def __init__(
        self,
        wheel_circumference: float = DEFAULT_WHEEL_CIRCUMFERENCE_M,
        precision: int = DEFAULT_SPEED_PRECISION,
        resolution: float = TICKS_PER_SECOND,
        **kwargs,
    ):
        self.wheel_circumference = float(wheel_circumference)
        self.precision = precision
        kwargs.setdefault("name", "speed")
        super().__init__(
            resolution=resolution,
            max_revs=WHEEL_MAX_REVS,
            max_time=EVENT_TIME_MODULUS,
            transform=self._to_kmh,
            **kwargs,
        )

    def _to_kmh(self, revs_per_second: float) -> float:
        return round_half_up(revs_per_second * self.wheel_circumference * 3.6, self.precision)


def speed_counter(wheel_circumference: float = DEFAULT_WHEEL_CIRCUMFERENCE_M, **kwargs) -> SpeedCounter:
    return SpeedCounter(wheel_circumference=wheel_circumference, **kwargs)


def cadence_counter(resolution: float = TICKS_PER_SECOND, **kwargs) -> RolloverCounter:
    """Crank channel: revolutions per second to whole rpm."""
    kwargs.setdefault("name", "cadence")
    return RolloverCounter(
        resolution=resolution,
        max_revs=CRANK_MAX_REVS,
        max_time=EVENT_TIME_MODULUS,
        transform=lambda revs_per_second: int(round_half_up(revs_per_second * 60)),
        **kwargs,
    )
