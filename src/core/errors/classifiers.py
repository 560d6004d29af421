"""
Centralized error classification for document store operations.

Remote failures are wrapped into DocumentStoreError at the store boundary,
tagged with an ErrorKind derived from the status code. Retry decisions are
then a pure function of (ErrorKind, OperationKind).

See: https://docs.microsoft.com/en-us/azure/cosmos-db/sql/troubleshoot-dot-net-sdk
"""

from azure.cosmos.exceptions import CosmosHttpResponseError

from core.errors.exceptions import DocumentStoreError
from core.types import ErrorKind, OperationKind, Verdict


# Cosmos DB status codes with a dedicated kind. Anything else is OTHER.
COSMOS_STATUS_CODES = {
    404: ErrorKind.NOT_FOUND,
    408: ErrorKind.REQUEST_TIMEOUT,
    409: ErrorKind.CONFLICT,
    410: ErrorKind.GONE,
    429: ErrorKind.THROTTLED,
    449: ErrorKind.RETRY_WITH,
    503: ErrorKind.SERVICE_UNAVAILABLE,
}

RETRYABLE_KINDS = frozenset(
    {
        ErrorKind.REQUEST_TIMEOUT,
        ErrorKind.GONE,
        ErrorKind.SERVICE_UNAVAILABLE,
        # 449 is only ever returned for writes, reads never see it
        ErrorKind.RETRY_WITH,
    }
)


def classify_status_code(status_code: int | None) -> ErrorKind:
    """
    Map a status code to its ErrorKind tag.

    Args:
        status_code: HTTP-style status code, or None if the error had none

    Returns:
        ErrorKind tag; UNCLASSIFIED when there is no usable code
    """
    if status_code is None:
        return ErrorKind.UNCLASSIFIED
    try:
        code = int(status_code)
    except (TypeError, ValueError):
        return ErrorKind.UNCLASSIFIED
    return COSMOS_STATUS_CODES.get(code, ErrorKind.OTHER)


def classify_error(kind: ErrorKind, operation: OperationKind | None = None) -> Verdict:
    """
    Decide what to do about a failure of the given kind.

    Rules, in priority order:
        1. timeout / gone / unavailable -> RETRYABLE
        2. retry-with (449) -> RETRYABLE
        3. conflict on a resource-creation call -> CONFLICT_IGNORABLE
        4. anything else, coded or not -> FATAL
    """
    if kind in RETRYABLE_KINDS:
        return Verdict.RETRYABLE
    if kind == ErrorKind.CONFLICT and operation == OperationKind.CREATE_RESOURCE:
        return Verdict.CONFLICT_IGNORABLE
    return Verdict.FATAL


def classify(error: Exception) -> Verdict:
    """
    Classify an exception raised by a store call.

    Only DocumentStoreError carries the tags needed for a decision; any
    other exception is conservatively FATAL.
    """
    if isinstance(error, DocumentStoreError):
        return classify_error(error.kind, error.operation)
    return Verdict.FATAL


def wrap_cosmos_error(
    exc: Exception,
    operation: OperationKind,
    diagnostics=None,
    context: dict | None = None,
) -> DocumentStoreError:
    """
    Wrap an Azure SDK (or unexpected) exception into DocumentStoreError.

    Args:
        exc: Original exception
        operation: Which kind of call raised it
        diagnostics: RequestDiagnostics captured for the failed call
        context: Additional context (merged with {"service": "cosmos"})

    Returns:
        DocumentStoreError tagged with status code and kind
    """
    ctx = {"service": "cosmos", "operation": operation.value}
    if context:
        ctx.update(context)

    if isinstance(exc, DocumentStoreError):
        exc.context.update(ctx)
        return exc

    if isinstance(exc, CosmosHttpResponseError):
        status_code = exc.status_code
        sub_status = getattr(exc, "sub_status", None)
        # SDK messages embed the full response body; keep the first line
        text = str(getattr(exc, "http_error_message", None) or exc.message or exc)
        message = text.splitlines()[0] if text else ""
        return DocumentStoreError(
            message or f"Cosmos request failed with status {status_code}",
            status_code=status_code,
            kind=classify_status_code(status_code),
            operation=operation,
            sub_status=sub_status,
            diagnostics=diagnostics,
            cause=exc,
            context=ctx,
        )

    return DocumentStoreError(
        f"{type(exc).__name__}: {exc}",
        status_code=None,
        kind=ErrorKind.UNCLASSIFIED,
        operation=operation,
        diagnostics=diagnostics,
        cause=exc,
        context=ctx,
    )


__all__ = [
    "COSMOS_STATUS_CODES",
    "RETRYABLE_KINDS",
    "classify_status_code",
    "classify_error",
    "classify",
    "wrap_cosmos_error",
]
