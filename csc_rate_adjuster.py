import logging
from typing import Callable, List, Optional, Sequence

from csc_rollover import DEFAULT_MAX_RATE_COUNT, round_half_up


logger = logging.getLogger(__name__)

STATUS_COLLECTING = "collecting"
STATUS_DONE = "done"

DEFAULT_CUTOFF = 20
DEFAULT_MAX_STILL_TIME_MS = 3000
NOMINAL_INTERVAL_MS = 1000

MIN_RATE_COUNT = 2
MAX_RATE_COUNT = 15


def clamp(lower: int, upper: int, value: int) -> int:
    return max(lower, min(upper, value))


class RateAdjuster:
    """Calibrate the noise gate size from a sensor's notification cadence.

    Collects the arrival timestamps of the first ``cutoff`` notifications and
    works out how many of them fit in ``max_still_time_ms``. That count (minus
    one, bounded to [2, 15]) is handed to ``on_done`` exactly once. After that
    the adjuster is frozen until ``reset()``.
    """

    def __init__(
        self,
        cutoff: int = DEFAULT_CUTOFF,
        max_still_time_ms: float = DEFAULT_MAX_STILL_TIME_MS,
        on_done: Optional[Callable[[int], None]] = None,
        sensor: str = "cscs",
        default_rate: int = DEFAULT_MAX_RATE_COUNT,
    ):
        self.cutoff = int(cutoff)
        self.max_still_time_ms = max_still_time_ms
        self.sensor = sensor
        self._on_done = on_done or (lambda rate: None)

        self._sample: List[float] = []
        self._default_rate = int(default_rate)
        self._rate = self._default_rate
        self._status = STATUS_COLLECTING

    @property
    def sample(self) -> List[float]:
        return list(self._sample)

    @property
    def sample_size(self) -> int:
        return len(self._sample)

    @property
    def rate(self) -> int:
        return self._rate

    @property
    def status(self) -> str:
        return self._status

    def is_done(self) -> bool:
        return self._status == STATUS_DONE

    def reset(self) -> None:
        self._sample = []
        self._rate = self._default_rate
        self._status = STATUS_COLLECTING

    @staticmethod
    def timestamp_avg_diff(sample: Sequence[float]) -> float:
        # The first timestamp has no predecessor and counts as a nominal 1 Hz.
        avg = 0.0
        for i, ts in enumerate(sample):
            diff = ts - sample[i - 1] if i > 0 else NOMINAL_INTERVAL_MS
            avg += (diff - avg) / (i + 1)
        return avg

    def calculate(self, sample: Sequence[float]) -> int:
        avg_diff = self.timestamp_avg_diff(sample)
        if avg_diff <= 0:
            rate = MAX_RATE_COUNT
        else:
            rate = clamp(MIN_RATE_COUNT, MAX_RATE_COUNT,
                         int(round_half_up(self.max_still_time_ms / avg_diff)) - 1)

        logger.info("rate adjuster on %s: avg diff %.1f ms, result %d", self.sensor, avg_diff, rate)
        return rate

    def update(self, timestamp_ms: float) -> None:
        if self.is_done():
            return

        self._sample.append(timestamp_ms)

        if len(self._sample) >= self.cutoff:
            self._status = STATUS_DONE
            self._rate = self.calculate(self._sample)
            self._on_done(self._rate)
