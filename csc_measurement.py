import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from csc_fields import (
    CUMULATIVE_CRANK_REVOLUTIONS,
    CUMULATIVE_WHEEL_REVOLUTIONS,
    LAST_CRANK_EVENT_TIME,
    LAST_WHEEL_EVENT_TIME,
    MalformedPayload,
    crank_data_present,
    read_field,
    read_flags,
    wheel_data_present,
)
from csc_rate_adjuster import DEFAULT_CUTOFF, DEFAULT_MAX_STILL_TIME_MS, RateAdjuster
from csc_rollover import (
    DEFAULT_MAX_RATE_COUNT,
    DEFAULT_RATE_WINDOW_MS,
    DEFAULT_SPEED_PRECISION,
    DEFAULT_WHEEL_CIRCUMFERENCE_M,
    TICKS_PER_SECOND,
    cadence_counter,
    speed_counter,
)

__all__ = [
    "DecoderConfig",
    "MalformedPayload",
    "Measurement",
    "MeasurementDecoder",
]

logger = logging.getLogger(__name__)


@dataclass
class DecoderConfig:
    wheel_circumference: float = DEFAULT_WHEEL_CIRCUMFERENCE_M  # meters
    cutoff: int = DEFAULT_CUTOFF
    max_still_time_ms: float = DEFAULT_MAX_STILL_TIME_MS
    rate_window_ms: float = DEFAULT_RATE_WINDOW_MS
    max_rate_count: int = DEFAULT_MAX_RATE_COUNT
    speed_precision: int = DEFAULT_SPEED_PRECISION
    wheel_resolution: float = TICKS_PER_SECOND  # CSC wheel event time is 1/1024 s; some apps divide it by 2048
    crank_resolution: float = TICKS_PER_SECOND


@dataclass
class Measurement:
    flags: int = 0
    wheel_revolutions: Optional[int] = None
    wheel_event_time: Optional[int] = None  # 1/1024 s
    speed: Optional[float] = None  # km/h
    crank_revolutions: Optional[int] = None
    crank_event_time: Optional[int] = None  # 1/1024 s
    cadence: Optional[int] = None  # rpm

    def to_dict(self) -> Dict[str, Any]:
        """Only the fields the payload actually carried."""
        return {key: value for key, value in asdict(self).items() if value is not None}


class MeasurementDecoder:
    """Decode CSC Measurement notifications into speed and cadence.

    One decoder per sensor session. It owns a wheel and a crank
    RolloverCounter plus the RateAdjuster that calibrates their noise gate,
    and never touches the connection that produced the bytes.

    Example notification (Wahoo sensor):

        flags  wheel revs   wheel time  crank revs  crank time
        03    -0c-00-00-00 -44-1a      -02-00      -99-1d

    Wheel rev 12, last wheel event time 6724, crank rev 2, last crank event
    time 7577 (event times in 1/1024 s).
    """

    def __init__(self, config: Optional[DecoderConfig] = None):
        self.config = config or DecoderConfig()

        self.speed = speed_counter(
            wheel_circumference=self.config.wheel_circumference,
            precision=self.config.speed_precision,
            resolution=self.config.wheel_resolution,
            rate_window_ms=self.config.rate_window_ms,
            max_rate_count=self.config.max_rate_count,
        )
        self.cadence = cadence_counter(
            resolution=self.config.crank_resolution,
            rate_window_ms=self.config.rate_window_ms,
            max_rate_count=self.config.max_rate_count,
        )
        self.rate_adjuster = RateAdjuster(
            cutoff=self.config.cutoff,
            max_still_time_ms=self.config.max_still_time_ms,
            on_done=self._on_rate_adjusted,
            default_rate=self.config.max_rate_count,
        )

    def _on_rate_adjusted(self, max_rate_count: int) -> None:
        self.speed.set_max_rate_count(max_rate_count)
        self.cadence.set_max_rate_count(max_rate_count)

    def set_wheel_circumference(self, value: float) -> float:
        self.speed.wheel_circumference = float(value)
        return self.speed.wheel_circumference

    def reset(self) -> Dict[str, Dict[str, Optional[int]]]:
        crank = self.cadence.reset()
        wheel = self.speed.reset()
        self.rate_adjuster.reset()
        return {"wheel": wheel, "crank": crank}

    def encode(self, measurement: Measurement) -> bytes:
        raise NotImplementedError("CSC measurement is decode only")

    def decode(self, payload: bytes, now_ms: Optional[float] = None) -> Measurement:
        """Decode one notification.

        ``now_ms`` is the arrival time in milliseconds on a monotonic clock.
        Raises MalformedPayload only when there is no flags byte; a channel
        whose bytes are truncated is left out of the result.
        """

        if now_ms is None:
            now_ms = time.monotonic() * 1000.0

        flags = read_flags(payload)
        data = Measurement(flags=flags)

        if wheel_data_present(flags):
            try:
                revs = read_field(payload, flags, CUMULATIVE_WHEEL_REVOLUTIONS)
                event_time = read_field(payload, flags, LAST_WHEEL_EVENT_TIME)
            except MalformedPayload as e:
                logger.warning("Dropping wheel data: %s; raw=%s", e, bytes(payload).hex(" "))
            else:
                data.wheel_revolutions = revs
                data.wheel_event_time = event_time
                data.speed = self.speed.update(revs, event_time, now_ms)

        if crank_data_present(flags):
            try:
                revs = read_field(payload, flags, CUMULATIVE_CRANK_REVOLUTIONS)
                event_time = read_field(payload, flags, LAST_CRANK_EVENT_TIME)
            except MalformedPayload as e:
                logger.warning("Dropping crank data: %s; raw=%s", e, bytes(payload).hex(" "))
            else:
                data.crank_revolutions = revs
                data.crank_event_time = event_time
                data.cadence = self.cadence.update(revs, event_time, now_ms)

        if not self.rate_adjuster.is_done():
            self.rate_adjuster.update(now_ms)

        return data
