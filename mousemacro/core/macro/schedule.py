"""
Execution Schedule - local time windows in which playback may run, and
the delay policy applied between loop passes
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import time as dtime
from typing import Optional, Tuple
import random

from .errors import InvalidArgumentError


@dataclass(frozen=True)
class LocalTimeRange:
    """
    Local time range, start inclusive and end exclusive.

    A range whose end is before its start crosses midnight,
    e.g. 23:00-02:00 covers [23:00, 24:00) and [00:00, 02:00).
    """
    start: dtime
    end: dtime

    def __post_init__(self):
        if self.start == self.end:
            raise InvalidArgumentError(
                f"Time range start and end must differ (start={self.start}, end={self.end})"
            )

    @property
    def crosses_midnight(self) -> bool:
        return self.end < self.start

    def contains(self, now: dtime) -> bool:
        if self.crosses_midnight:
            return now >= self.start or now < self.end
        return self.start <= now < self.end

    @staticmethod
    def parse(text: str) -> 'LocalTimeRange':
        """Parse "HH:MM-HH:MM" (seconds optional on either side)"""
        try:
            start_text, end_text = [p.strip() for p in text.split('-')]
            start, end = dtime.fromisoformat(start_text), dtime.fromisoformat(end_text)
        except ValueError as e:
            raise InvalidArgumentError(f"Invalid time range '{text}', expected HH:MM-HH:MM") from e
        return LocalTimeRange(start, end)

    def __str__(self) -> str:
        return f"{self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')}"


@dataclass(frozen=True)
class ExecutionSchedule:
    """Playback gate: no range means always allowed"""
    time_range: Optional[LocalTimeRange] = None

    @staticmethod
    def always() -> 'ExecutionSchedule':
        return ExecutionSchedule()

    @staticmethod
    def within(time_range: LocalTimeRange) -> 'ExecutionSchedule':
        return ExecutionSchedule(time_range=time_range)

    def is_allowed(self, now: dtime) -> bool:
        if self.time_range is None:
            return True
        return self.time_range.contains(now)


@dataclass(frozen=True)
class DelayPolicy:
    """
    Pause between loop passes: base_ms plus a uniform random delay in
    [min_random_ms, max_random_ms]. All values are milliseconds >= 0.
    """
    base_ms: int = 0
    min_random_ms: int = 0
    max_random_ms: int = 0

    def __post_init__(self):
        for name in ("base_ms", "min_random_ms", "max_random_ms"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidArgumentError(f"{name} must be an integer >= 0, got {value!r}")
        if self.min_random_ms > self.max_random_ms:
            raise InvalidArgumentError(
                f"min_random_ms must not exceed max_random_ms "
                f"(min={self.min_random_ms}, max={self.max_random_ms})"
            )

    @property
    def is_zero(self) -> bool:
        return self.base_ms == 0 and self.max_random_ms == 0

    def resolve_delay_ms(self, rng: random.Random) -> int:
        if self.min_random_ms == self.max_random_ms:
            return self.base_ms + self.min_random_ms
        return self.base_ms + rng.randint(self.min_random_ms, self.max_random_ms)

    @staticmethod
    def parse_random_range(text: str) -> Tuple[int, int]:
        """Parse "MIN-MAX" or "N" (min == max) in milliseconds"""
        try:
            parts = [int(p.strip()) for p in text.split('-')]
        except ValueError as e:
            raise InvalidArgumentError(f"Invalid random delay '{text}', expected MIN-MAX") from e
        if len(parts) == 1:
            return (parts[0], parts[0])
        if len(parts) != 2:
            raise InvalidArgumentError(f"Invalid random delay '{text}', expected MIN-MAX")
        return (parts[0], parts[1])
