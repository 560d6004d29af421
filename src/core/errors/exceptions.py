"""
Exception hierarchy for the document store client.

Provides typed exceptions carrying the status-code tag and diagnostics
needed for retry decisions and logging.
"""

from core.types import ErrorKind, OperationKind


class DocstoreError(Exception):
    """
    Base exception for all document store client errors.

    Attributes:
        message: Human-readable error description
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Remote Store Errors
# =============================================================================


class DocumentStoreError(DocstoreError):
    """
    A remote store call failed.

    Attributes:
        status_code: HTTP-style status code, or None when the failure had none
            (network errors, client-side bugs)
        sub_status: Service sub-status code when present
        kind: ErrorKind tag derived from status_code
        operation: Which kind of call failed
        diagnostics: RequestDiagnostics for the failed call, when available
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        kind: ErrorKind = ErrorKind.UNCLASSIFIED,
        operation: OperationKind | None = None,
        sub_status: int | None = None,
        diagnostics=None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.status_code = status_code
        self.sub_status = sub_status
        self.kind = kind
        self.operation = operation
        self.diagnostics = diagnostics

    def __str__(self) -> str:
        code = self.status_code if self.status_code is not None else "n/a"
        parts = [f"[{code}] {self.message}"]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Retry Errors
# =============================================================================


class RetryCancelledError(DocstoreError):
    """Retries were abandoned because the caller's cancel event was set."""

    def __init__(self, operation_name: str, last_error: Exception):
        super().__init__(
            f"Retries for '{operation_name}' cancelled",
            cause=last_error,
            context={"operation": operation_name},
        )
        self.operation_name = operation_name
        self.last_error = last_error


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(DocstoreError):
    """Configuration is missing or invalid."""

    def __init__(self, errors: list[str]):
        message = "Configuration validation failed:\n" + "\n".join(
            f"  - {e}" for e in errors
        )
        super().__init__(message, context={"errors": errors})
        self.errors = errors
