"""
Resilience patterns module.

Provides fault tolerance primitives for remote store calls.

Components:
    - decorrelated_jitter_backoff: Lazy, randomized delay sequence
    - RetryPolicy: Classification-aware async retry executor
    - DEFAULT_RETRY: 1s first delay, 3 retries
"""

from .backoff import decorrelated_jitter_backoff
from .retry import (
    DEFAULT_RETRY,
    RetryHook,
    RetryPolicy,
)

__all__ = [
    # Backoff
    "decorrelated_jitter_backoff",
    # Retry
    "RetryPolicy",
    "RetryHook",
    "DEFAULT_RETRY",
]
