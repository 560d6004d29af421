"""Tests for decorrelated jitter backoff."""

import math
import random
import statistics
from datetime import timedelta

import pytest

from core.resilience.backoff import P_FACTOR, RP_SCALING_FACTOR, decorrelated_jitter_backoff


def _curve(t: float) -> float:
    return math.pow(2, t) * math.tanh(math.sqrt(P_FACTOR * t))


class TestDecorrelatedJitterBackoff:

    def test_yields_exactly_max_attempts(self):
        delays = list(decorrelated_jitter_backoff(timedelta(seconds=1), 3))
        assert len(delays) == 3

    def test_zero_attempts_yields_nothing(self):
        assert list(decorrelated_jitter_backoff(timedelta(seconds=1), 0)) == []

    def test_delays_are_non_negative_timedeltas(self):
        for seed in range(50):
            for delay in decorrelated_jitter_backoff(timedelta(seconds=1), 5, rng=random.Random(seed)):
                assert isinstance(delay, timedelta)
                assert delay >= timedelta(0)

    def test_zero_first_delay_yields_zeros(self):
        delays = list(decorrelated_jitter_backoff(timedelta(0), 4, rng=random.Random(3)))
        assert delays == [timedelta(0)] * 4

    def test_seeded_sequences_are_reproducible(self):
        a = list(decorrelated_jitter_backoff(timedelta(seconds=1), 5, rng=random.Random(42)))
        b = list(decorrelated_jitter_backoff(timedelta(seconds=1), 5, rng=random.Random(42)))
        assert a == b

    def test_unseeded_generators_differ(self):
        a = list(decorrelated_jitter_backoff(timedelta(seconds=1), 3))
        b = list(decorrelated_jitter_backoff(timedelta(seconds=1), 3))
        assert a != b

    def test_matches_curve_for_known_draws(self):
        rng = random.Random(11)
        replay = random.Random(11)
        draws = [replay.random() for _ in range(3)]

        delays = list(decorrelated_jitter_backoff(timedelta(seconds=2), 3, rng=rng))

        previous = 0.0
        for attempt, (draw, delay) in enumerate(zip(draws, delays)):
            current = _curve(attempt + draw)
            expected = (current - previous) * RP_SCALING_FACTOR * 2.0
            assert delay.total_seconds() == pytest.approx(expected, rel=1e-6)
            previous = current

    def test_first_delay_median_is_near_first_delay(self):
        rng = random.Random(2024)
        firsts = [
            next(iter(decorrelated_jitter_backoff(timedelta(seconds=1), 1, rng=rng))).total_seconds()
            for _ in range(2000)
        ]
        assert 0.6 <= statistics.median(firsts) <= 1.4

    def test_delays_grow_on_average(self):
        rng = random.Random(5)
        sums = [0.0] * 4
        for _ in range(500):
            for i, delay in enumerate(decorrelated_jitter_backoff(timedelta(seconds=1), 4, rng=rng)):
                sums[i] += delay.total_seconds()
        assert sums[0] < sums[1] < sums[2] < sums[3]

    def test_max_delay_caps_every_delay(self):
        cap = timedelta(seconds=2)
        for seed in range(20):
            delays = decorrelated_jitter_backoff(
                timedelta(seconds=1), 8, rng=random.Random(seed), max_delay=cap
            )
            assert all(d <= cap for d in delays)

    def test_negative_first_delay_rejected(self):
        with pytest.raises(ValueError, match="first_delay"):
            decorrelated_jitter_backoff(timedelta(seconds=-1), 3)

    def test_negative_max_attempts_rejected(self):
        with pytest.raises(ValueError, match="max_attempts"):
            decorrelated_jitter_backoff(timedelta(seconds=1), -1)

    def test_is_lazy(self):
        # A huge budget must not be materialized up front
        gen = decorrelated_jitter_backoff(timedelta(milliseconds=1), 10**9, rng=random.Random(0))
        assert next(gen) >= timedelta(0)
