"""
Test execution schedule
Local time ranges, including ranges crossing midnight
"""

import random
from datetime import time as dtime
from unittest.mock import MagicMock

import pytest

from mousemacro.core.macro.errors import InvalidArgumentError
from mousemacro.core.macro.schedule import DelayPolicy, ExecutionSchedule, LocalTimeRange


class TestLocalTimeRange:

    def test_daytime_range(self):
        r = LocalTimeRange(dtime(9, 0), dtime(17, 0))
        assert not r.crosses_midnight
        assert r.contains(dtime(9, 0))
        assert r.contains(dtime(16, 59))
        assert not r.contains(dtime(17, 0))
        assert not r.contains(dtime(8, 59))

    def test_range_crossing_midnight(self):
        r = LocalTimeRange(dtime(23, 0), dtime(2, 0))
        assert r.crosses_midnight
        assert r.contains(dtime(23, 30))
        assert r.contains(dtime(0, 0))
        assert r.contains(dtime(1, 59))
        assert not r.contains(dtime(2, 0))
        assert not r.contains(dtime(12, 0))

    def test_empty_range_rejected(self):
        with pytest.raises(InvalidArgumentError):
            LocalTimeRange(dtime(8, 0), dtime(8, 0))

    def test_parse(self):
        r = LocalTimeRange.parse("09:15 - 17:30")
        assert r == LocalTimeRange(dtime(9, 15), dtime(17, 30))
        assert str(r) == "09:15-17:30"

    @pytest.mark.parametrize("text", ["", "9-17", "09:00", "25:00-26:00", "a-b", "01:00-02:00-03:00"])
    def test_parse_rejects_bad_text(self, text):
        with pytest.raises(InvalidArgumentError):
            LocalTimeRange.parse(text)


class TestExecutionSchedule:

    def test_always_allows(self):
        assert ExecutionSchedule.always().is_allowed(dtime(3, 0))

    def test_within_gates_on_range(self):
        schedule = ExecutionSchedule.within(LocalTimeRange.parse("22:00-06:00"))
        assert schedule.is_allowed(dtime(23, 0))
        assert not schedule.is_allowed(dtime(12, 0))


class TestDelayPolicy:

    def test_default_is_zero(self):
        policy = DelayPolicy()
        assert policy.is_zero
        assert policy.resolve_delay_ms(random.Random(0)) == 0

    def test_fixed_delay_ignores_rng(self):
        rng = MagicMock()
        assert DelayPolicy(base_ms=150, min_random_ms=20, max_random_ms=20).resolve_delay_ms(rng) == 170
        rng.randint.assert_not_called()

    def test_random_delay_within_bounds(self):
        policy = DelayPolicy(base_ms=100, min_random_ms=10, max_random_ms=50)
        rng = random.Random(3)
        delays = {policy.resolve_delay_ms(rng) for _ in range(200)}
        assert min(delays) >= 110 and max(delays) <= 150
        assert len(delays) > 1

    @pytest.mark.parametrize("kwargs", [
        {"base_ms": -1}, {"min_random_ms": -5}, {"max_random_ms": 1.5},
        {"base_ms": True}, {"min_random_ms": 30, "max_random_ms": 10},
    ])
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(InvalidArgumentError):
            DelayPolicy(**kwargs)

    def test_parse_random_range(self):
        assert DelayPolicy.parse_random_range("100-500") == (100, 500)
        assert DelayPolicy.parse_random_range(" 40 ") == (40, 40)

    @pytest.mark.parametrize("text", ["", "a-b", "1-2-3", "-5"])
    def test_parse_random_range_rejects_bad_text(self, text):
        with pytest.raises(InvalidArgumentError):
            DelayPolicy.parse_random_range(text)
