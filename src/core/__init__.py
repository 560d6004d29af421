"""
Core library: Reusable, store-agnostic components.

Modules:
    resilience  - Decorrelated jitter backoff and classification-aware retry
    logging     - Structured JSON/console logging with context variables
    errors      - Status-code tagging, failure classification, exception hierarchy
    utils       - JSON serialization helpers

Design Principles:
    - No dependency on a concrete store client beyond error wrapping
    - All modules are independently testable
    - Async-first where applicable
"""

from .types import ErrorClassifier, ErrorKind, OperationKind, Verdict

__version__ = "0.1.0"

__all__ = [
    "ErrorClassifier",
    "ErrorKind",
    "OperationKind",
    "Verdict",
]
