"""
Decorrelated jitter backoff.

Delays follow the "V2" decorrelated jitter curve: each retry draws a
random point t in [i, i+1) and the delay is the distance travelled along
f(t) = 2^t * tanh(sqrt(4t)) since the previous retry. The curve keeps the
median delay of the first retry close to the configured first delay and
roughly doubles after that, while the random walk keeps concurrent
callers from retrying in lockstep.
"""

import math
import random
from collections.abc import Iterator
from datetime import timedelta

# Shape of the tanh curve and the factor that puts its median at first_delay
P_FACTOR = 4.0
RP_SCALING_FACTOR = 1 / 1.4


def decorrelated_jitter_backoff(
    first_delay: timedelta,
    max_attempts: int,
    rng: random.Random | None = None,
    max_delay: timedelta | None = None,
) -> Iterator[timedelta]:
    """
    Generate retry delays with decorrelated jitter.

    Args:
        first_delay: Median delay of the first retry
        max_attempts: Number of delays to produce (one per retry)
        rng: Random source; a fresh OS-seeded Random when omitted.
            Pass a seeded instance for reproducible sequences.
        max_delay: Optional cap applied to every delay

    Yields:
        Exactly max_attempts non-negative delays

    Raises:
        ValueError: If first_delay is negative or max_attempts < 0
    """
    if first_delay < timedelta(0):
        raise ValueError(f"first_delay must be non-negative, got {first_delay}")
    if max_attempts < 0:
        raise ValueError(f"max_attempts must be >= 0, got {max_attempts}")

    # Validate eagerly, generate lazily
    return _generate(first_delay, max_attempts, rng or random.Random(), max_delay)


def _generate(
    first_delay: timedelta,
    max_attempts: int,
    rng: random.Random,
    max_delay: timedelta | None,
) -> Iterator[timedelta]:
    target_seconds = first_delay.total_seconds()
    cap_seconds = max_delay.total_seconds() if max_delay is not None else math.inf

    previous = 0.0
    for attempt in range(max_attempts):
        t = attempt + rng.random()
        current = math.pow(2, t) * math.tanh(math.sqrt(P_FACTOR * t))
        delay_seconds = (current - previous) * RP_SCALING_FACTOR * target_seconds
        yield timedelta(seconds=max(0.0, min(delay_seconds, cap_seconds)))
        previous = current


__all__ = [
    "decorrelated_jitter_backoff",
    "P_FACTOR",
    "RP_SCALING_FACTOR",
]
