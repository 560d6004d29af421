"""
Core types and protocols used across modules.

This module provides the closed enumerations that drive retry decisions.
Remote errors are reduced to an ErrorKind tag once, at the store boundary,
so classification never has to inspect exception types or messages.
"""

from enum import Enum
from typing import Protocol


class Verdict(Enum):
    """
    Outcome of classifying a failed remote operation.

    Verdicts:
        RETRYABLE: Transient server condition, retry with backoff
                   (request timeout, gone, service unavailable, retry-with)
        CONFLICT_IGNORABLE: The goal is already satisfied (resource exists);
                            only the call site that expects it treats it as success
        FATAL: Anything else, including errors without a status code
    """

    RETRYABLE = "retryable"
    CONFLICT_IGNORABLE = "conflict_ignorable"
    FATAL = "fatal"


class ErrorKind(Enum):
    """Status-code tag carried by every DocumentStoreError."""

    REQUEST_TIMEOUT = "request_timeout"  # 408
    GONE = "gone"  # 410
    SERVICE_UNAVAILABLE = "service_unavailable"  # 503
    RETRY_WITH = "retry_with"  # 449, writes only
    CONFLICT = "conflict"  # 409
    NOT_FOUND = "not_found"  # 404
    THROTTLED = "throttled"  # 429, already retried inside the SDK
    OTHER = "other"  # any other status code
    UNCLASSIFIED = "unclassified"  # no status code at all


class OperationKind(Enum):
    """Which kind of remote call produced an error."""

    CREATE_RESOURCE = "create_resource"
    READ = "read"
    QUERY = "query"
    WRITE = "write"


class ErrorClassifier(Protocol):
    """
    Protocol for classification strategies plugged into a RetryPolicy.

    The default implementation is core.errors.classifiers.classify.
    """

    def __call__(self, error: Exception) -> Verdict:
        ...


__all__ = [
    "Verdict",
    "ErrorKind",
    "OperationKind",
    "ErrorClassifier",
]
