"""
Single-document operations wrapped in the retry policy.

Each operation submits one store call through RetryPolicy.execute(), then
emits the call's diagnostics to the diagnostics logger only when client
elapsed time exceeds that operation's threshold. Every retry also emits the
failed attempt's diagnostics.

Point reads and queries have no side effects. Upserts are idempotent by
identity, so replaying one converges to the same stored document.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import timedelta
from typing import Any, TypeVar

from pydantic import BaseModel

from config.config import DiagnosticsThresholds
from core.errors.exceptions import DocumentStoreError
from core.resilience.retry import DEFAULT_RETRY, RetryPolicy
from docstore.store import DocumentStore, RequestDiagnostics, StoreResponse

logger = logging.getLogger(__name__)

# Sink for request diagnostics; route it to a dedicated handler if needed
diagnostics_logger = logging.getLogger("docstore.diagnostics")

M = TypeVar("M", bound=BaseModel)

GROUP_BY_STATE_QUERY = "SELECT c.State, COUNT(1) as Count FROM Items c GROUP BY c.State"


def log_diagnostics(
    diagnostics: RequestDiagnostics | None,
    should_log: Callable[[RequestDiagnostics], bool],
    message: str = "Request diagnostics",
    **context: Any,
) -> bool:
    """Emit diagnostics to the diagnostics logger if should_log says so."""
    if diagnostics is None or not should_log(diagnostics):
        return False
    diagnostics_logger.warning(
        "%s: %s",
        message,
        diagnostics,
        extra={
            "elapsed_ms": round(diagnostics.elapsed_ms, 3),
            "contacted_regions": list(diagnostics.contacted_regions),
            "activity_id": diagnostics.activity_id,
            **context,
        },
    )
    return True


def _exceeds(threshold: timedelta) -> Callable[[RequestDiagnostics], bool]:
    return lambda diagnostics: diagnostics.elapsed > threshold


def _log_retry_diagnostics(operation_name: str):
    def on_retry(error: Exception, attempt: int, delay: timedelta) -> None:
        diagnostics = error.diagnostics if isinstance(error, DocumentStoreError) else None
        if diagnostics is None:
            diagnostics_logger.warning(
                "Retry %d of %s without diagnostics: %s",
                attempt,
                operation_name,
                error,
                extra={"operation": operation_name, "attempt": attempt},
            )
            return
        log_diagnostics(
            diagnostics,
            lambda _: True,
            message=f"Retry {attempt} of {operation_name}",
            operation=operation_name,
            attempt=attempt,
            status_code=error.status_code,
        )

    return on_retry


class DocumentOperations:
    """
    Point-read, query and upsert against a DocumentStore.

    Usage:
        ops = DocumentOperations(store)
        response = await ops.point_read(ItemCounts.DOCUMENT_ID, ItemCounts.PARTITION_KEY, ItemCounts)
        print(response.resource.counts, response.request_charge)
    """

    def __init__(
        self,
        store: DocumentStore,
        retry_policy: RetryPolicy = DEFAULT_RETRY,
        thresholds: DiagnosticsThresholds | None = None,
        cancel_event: asyncio.Event | None = None,
    ):
        self._store = store
        self.retry_policy = retry_policy
        self.thresholds = thresholds or DiagnosticsThresholds()
        self.cancel_event = cancel_event

    @classmethod
    def from_config(cls, store: DocumentStore, config, cancel_event: asyncio.Event | None = None) -> "DocumentOperations":
        return cls(
            store,
            retry_policy=config.retry.to_policy(),
            thresholds=config.thresholds,
            cancel_event=cancel_event,
        )

    async def _run(self, operation_name: str, call, threshold: timedelta, **context: Any) -> StoreResponse:
        response = await self.retry_policy.execute(
            call,
            operation_name=operation_name,
            on_retry=_log_retry_diagnostics(operation_name),
            cancel_event=self.cancel_event,
        )

        log_diagnostics(
            response.diagnostics,
            _exceeds(threshold),
            message=f"Slow {operation_name}",
            operation=operation_name,
            threshold_ms=threshold.total_seconds() * 1000,
            request_charge=response.request_charge,
            **context,
        )
        logger.debug(
            "%s complete",
            operation_name,
            extra={
                "operation": operation_name,
                "elapsed_ms": round(response.diagnostics.elapsed_ms, 3),
                "request_charge": response.request_charge,
                **context,
            },
        )
        return response

    async def point_read(
        self,
        item_id: str,
        partition_key: str,
        model: type[M] | None = None,
    ) -> StoreResponse:
        """
        Read one document by id and partition value.

        Returns:
            StoreResponse whose resource is ``model`` if given, else the raw dict

        Raises:
            DocumentStoreError: Terminal error after retries (404 is not retried)
        """
        response = await self._run(
            "point_read",
            lambda: self._store.read_item(item_id, partition_key),
            self.thresholds.point_read,
            item_id=item_id,
            partition_key=partition_key,
        )
        if model is None:
            return response
        return StoreResponse(
            model.model_validate(response.resource), response.request_charge, response.diagnostics
        )

    async def query(self, query: str, model: type[M] | None = None) -> StoreResponse:
        """Run a query and return its first page, optionally parsed into ``model``."""
        response = await self._run(
            "query",
            lambda: self._store.query_items(query),
            self.thresholds.query,
            query=query,
        )
        if model is None:
            return response
        return StoreResponse(
            [model.model_validate(row) for row in response.resource],
            response.request_charge,
            response.diagnostics,
        )

    async def upsert(self, item: M) -> StoreResponse:
        """
        Create or replace a document by identity.

        ``item`` must expose ``partition_key``. The response resource is the
        stored document parsed back into the item's own model.
        """
        document = item.to_document()
        partition_key = item.partition_key
        response = await self._run(
            "upsert",
            lambda: self._store.upsert_item(document, partition_key),
            self.thresholds.upsert,
            item_id=document.get("id"),
            partition_key=partition_key,
        )
        return StoreResponse(
            type(item).model_validate(response.resource),
            response.request_charge,
            response.diagnostics,
        )
