"""
Error classification and exception hierarchy.

Provides:
- DocstoreError hierarchy for typed exceptions
- Status-code to ErrorKind tagging
- Pure (ErrorKind, OperationKind) -> Verdict classification
- Azure SDK exception wrapping
"""

from core.errors.classifiers import (
    # Constants
    COSMOS_STATUS_CODES,
    RETRYABLE_KINDS,
    # Functions
    classify,
    classify_error,
    classify_status_code,
    wrap_cosmos_error,
)
from core.errors.exceptions import (
    ConfigurationError,
    # Base classes
    DocstoreError,
    DocumentStoreError,
    RetryCancelledError,
)
from core.types import ErrorKind, OperationKind, Verdict

__all__ = [
    # Enums
    "ErrorKind",
    "OperationKind",
    "Verdict",
    # Exceptions
    "DocstoreError",
    "DocumentStoreError",
    "RetryCancelledError",
    "ConfigurationError",
    # Classification
    "COSMOS_STATUS_CODES",
    "RETRYABLE_KINDS",
    "classify",
    "classify_error",
    "classify_status_code",
    "wrap_cosmos_error",
]
