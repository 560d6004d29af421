"""
Bulk insert of independent items with a per-run summary document.

- Ensures the database and container exist (409 on the container is fine)
- Writes every item concurrently using asyncio.Semaphore as the ceiling
- Per-item failures are logged and recorded, never raised
- After all writes settle, writes one ItemCounts document summarizing
  successful inserts per partition value
"""

import asyncio
import contextlib
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field

from core.errors.classifiers import classify
from core.errors.exceptions import DocumentStoreError
from core.logging.context_managers import LogContext, log_phase
from core.resilience.retry import RetryPolicy
from core.types import ErrorKind, Verdict
from docstore.models import Item, ItemCounts
from docstore.store import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemFailure:
    """One item that could not be written."""

    item_id: str
    partition_key: str
    status_code: int | None
    error_kind: ErrorKind
    message: str


@dataclass
class BulkInsertResult:
    """Outcome of a bulk insert run."""

    attempted: int
    success_count: int
    counts: ItemCounts
    failures: list[ItemFailure] = field(default_factory=list)
    request_charge: float = 0.0
    cancelled: bool = False

    @property
    def failure_count(self) -> int:
        return len(self.failures)


class BulkWriter:
    """
    Concurrent, best-effort writer for a batch of items.

    This is not a transaction: one item's failure never cancels or blocks
    another, and nothing is rolled back.

    Usage:
        writer = BulkWriter(store, database="Demo", container="Items", max_concurrency=100)
        result = await writer.bulk_insert(items)
        print(result.success_count, result.counts.counts)
    """

    def __init__(
        self,
        store: DocumentStore,
        database: str,
        container: str,
        partition_key_path: str = "/State",
        throughput: int = 10000,
        max_concurrency: int | None = None,
        item_retry_policy: RetryPolicy | None = None,
    ):
        """
        Args:
            store: Store bound to the target database and container
            database: Database to create if missing
            container: Container to create (409 = already exists)
            partition_key_path: Partition key path for a new container
            throughput: Provisioned RU/s for a new container
            max_concurrency: Ceiling on in-flight item writes; None = unbounded
            item_retry_policy: Optional retry for each item write. Off by
                default; bulk favors throughput over per-item resilience.
        """
        if max_concurrency is not None and max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")

        self._store = store
        self.database = database
        self.container = container
        self.partition_key_path = partition_key_path
        self.throughput = throughput
        self.max_concurrency = max_concurrency
        self.item_retry_policy = item_retry_policy

    @classmethod
    def from_config(cls, store: DocumentStore, config) -> "BulkWriter":
        return cls(
            store,
            database=config.database,
            container=config.container,
            partition_key_path=config.partition_key_path,
            throughput=config.container_throughput,
            max_concurrency=config.bulk_max_concurrency,
        )

    async def ensure_container(self) -> None:
        """
        Create database and container if needed.

        Raises:
            DocumentStoreError: Any failure other than a container 409
        """
        await self._store.create_database_if_not_exists(self.database)
        try:
            await self._store.create_container(
                self.container, self.partition_key_path, self.throughput
            )
        except DocumentStoreError as e:
            if classify(e) != Verdict.CONFLICT_IGNORABLE:
                raise
            logger.info(
                "Container already exists, continuing",
                extra={"container": self.container, "status_code": e.status_code},
            )

    async def bulk_insert(
        self,
        items: Sequence[Item],
        cancel_event: asyncio.Event | None = None,
    ) -> BulkInsertResult:
        """
        Insert all items, then write the ItemCounts summary.

        Args:
            items: Items to insert; the order decides the order of counts
            cancel_event: When set, in-flight writes are cancelled and the
                partial result is returned without writing the summary

        Returns:
            BulkInsertResult; per-item failures are in result.failures

        Raises:
            DocumentStoreError: Provisioning failed, or the summary write failed
        """
        with LogContext(operation="bulk_insert", database=self.database, container=self.container):
            with log_phase(logger, "ensure_container"):
                await self.ensure_container()

            start = time.perf_counter()
            succeeded = [False] * len(items)
            failures: list[ItemFailure] = []
            charges: list[float] = []

            semaphore = (
                asyncio.Semaphore(self.max_concurrency) if self.max_concurrency else None
            )

            async def insert_one(index: int, item: Item) -> None:
                async with semaphore if semaphore else contextlib.nullcontext():
                    try:
                        response = await self._write_item(item)
                    except Exception as e:
                        failure = self._record_failure(item, e)
                        failures.append(failure)
                        return
                succeeded[index] = True
                charges.append(response.request_charge)

            tasks = [asyncio.create_task(insert_one(i, item)) for i, item in enumerate(items)]
            cancelled = await self._join(tasks, cancel_event)

            counts = ItemCounts.from_partition_values(
                item.partition_key for item, ok in zip(items, succeeded) if ok
            )
            result = BulkInsertResult(
                attempted=len(items),
                success_count=sum(succeeded),
                counts=counts,
                failures=failures,
                request_charge=sum(charges),
                cancelled=cancelled,
            )

            log_extra = {
                "batch_size": len(items),
                "records_succeeded": result.success_count,
                "records_failed": result.failure_count,
                "request_charge": round(result.request_charge, 2),
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
                "max_concurrency": self.max_concurrency,
            }

            if cancelled:
                logger.warning(
                    "Bulk insert cancelled, summary document not written",
                    extra={**log_extra, "cancelled": True},
                )
                return result

            # Outside the batch: a failure here reaches the caller
            summary = await self._store.upsert_item(counts.to_document(), counts.partition_key)
            result.request_charge += summary.request_charge

            logger.info("Bulk insert complete", extra=log_extra)
            return result

    async def _write_item(self, item: Item):
        def call():
            return self._store.create_item(item.to_document(), item.partition_key)

        if self.item_retry_policy is None:
            return await call()
        return await self.item_retry_policy.execute(call, operation_name="create_item")

    @staticmethod
    def _record_failure(item: Item, error: Exception) -> ItemFailure:
        if isinstance(error, DocumentStoreError):
            status_code, kind, message = error.status_code, error.kind, error.message
            logger.warning(
                "Received %s (%s) for item",
                status_code,
                message,
                extra={
                    "item_id": item.id,
                    "partition_key": item.partition_key,
                    "status_code": status_code,
                    "error_kind": kind.value,
                },
            )
        else:
            status_code, kind, message = None, ErrorKind.UNCLASSIFIED, f"{type(error).__name__}: {error}"
            logger.warning(
                "Exception %s for item",
                message,
                extra={"item_id": item.id, "partition_key": item.partition_key},
                exc_info=error,
            )
        return ItemFailure(item.id, item.partition_key, status_code, kind, message)

    @staticmethod
    async def _join(tasks: list[asyncio.Task], cancel_event: asyncio.Event | None) -> bool:
        """Wait for every task. Returns True if cancel_event cut the wait short."""
        if not tasks:
            return False
        if cancel_event is None:
            await asyncio.gather(*tasks)
            return False

        join = asyncio.gather(*tasks)
        waiter = asyncio.create_task(cancel_event.wait())
        try:
            done, _ = await asyncio.wait({join, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()

        if join in done:
            join.result()
            return False

        join.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        return True
