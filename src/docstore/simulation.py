"""
In-memory document store mimicking Cosmos DB behavior.

This store implements the same interface as CosmosDocumentStore but keeps
documents in process memory. Used in simulation mode (``--simulate``) to
run the demo without an Azure account, and by the test-suite.

Behavior mirrored from the service:
    - create_container raises 409 when the container already exists
    - create_item raises 409 when the id already exists in the partition
    - read_item raises 404 for a missing id
    - upsert_item replaces the whole document
    - query_items supports ``SELECT * FROM c`` and single-field
      ``SELECT c.F, COUNT(1) as N FROM x c GROUP BY c.F``

Fault injection:
    - fail_next("read_item", 503, 503): scripted status codes consumed in order
    - failure_rate / failure_status: random failures for create_item
"""

import asyncio
import copy
import random
import re
from collections import Counter, defaultdict, deque
from datetime import timedelta
from typing import Any

from core.errors.classifiers import classify_status_code
from core.errors.exceptions import DocumentStoreError
from core.logging.setup import get_logger
from core.types import ErrorKind, OperationKind
from docstore.store import RequestDiagnostics, StoreResponse

logger = get_logger(__name__)

_GROUP_BY_COUNT = re.compile(
    r"^\s*SELECT\s+(\w+)\.(\w+)\s*,\s*COUNT\(1\)\s+AS\s+(\w+)\s+FROM\s+\w+\s+(\w+)\s+"
    r"GROUP\s+BY\s+(\w+)\.(\w+)\s*$",
    re.IGNORECASE,
)
_SELECT_ALL = re.compile(r"^\s*SELECT\s+\*\s+FROM\s+\w+(\s+\w+)?\s*$", re.IGNORECASE)

# Nominal RU costs
READ_CHARGE = 1.0
WRITE_CHARGE = 6.29
QUERY_CHARGE = 2.9

SIMULATED_REGION = "Simulated"


class InMemoryDocumentStore:
    """
    DocumentStore held in memory, partitioned like the real container.

    Usage:
        store = InMemoryDocumentStore(partition_key_path="/State")
        store.fail_next("read_item", 503)
        async with store:
            await store.create_container("Items", "/State", 400)
    """

    def __init__(
        self,
        partition_key_path: str = "/State",
        latency: timedelta = timedelta(0),
        failure_rate: float = 0.0,
        failure_status: int = 503,
        rng: random.Random | None = None,
    ):
        self.partition_key_path = partition_key_path
        self._partition_field = partition_key_path.lstrip("/")
        self.latency = latency
        self.failure_rate = failure_rate
        self.failure_status = failure_status
        self._rng = rng or random.Random()

        self.databases: set[str] = set()
        self.containers: set[str] = set()
        self._partitions: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self._scripted: dict[str, deque[int]] = defaultdict(deque)

        # Calls per method name, including failed ones
        self.calls: Counter[str] = Counter()

    async def __aenter__(self) -> "InMemoryDocumentStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False

    async def close(self) -> None:
        pass

    # --------------- fault injection

    def fail_next(self, method: str, *status_codes: int) -> None:
        """Make the next calls to ``method`` fail with these status codes, in order."""
        self._scripted[method].extend(status_codes)

    # --------------- inspection

    def get(self, item_id: str, partition_key: str) -> dict[str, Any] | None:
        doc = self._partitions.get(partition_key, {}).get(item_id)
        return copy.deepcopy(doc) if doc is not None else None

    def count(self) -> int:
        return sum(len(docs) for docs in self._partitions.values())

    # --------------- internals

    def _diagnostics(self, status_code: int | None = None) -> RequestDiagnostics:
        return RequestDiagnostics(
            elapsed=self.latency,
            contacted_regions=(SIMULATED_REGION,),
            status_code=status_code,
        )

    def _error(self, status_code: int, operation: OperationKind, message: str) -> DocumentStoreError:
        return DocumentStoreError(
            message,
            status_code=status_code,
            kind=classify_status_code(status_code),
            operation=operation,
            diagnostics=self._diagnostics(status_code),
            context={"service": "simulation"},
        )

    async def _enter(self, method: str, operation: OperationKind) -> None:
        self.calls[method] += 1
        await asyncio.sleep(self.latency.total_seconds())

        scripted = self._scripted.get(method)
        if scripted:
            status = scripted.popleft()
            raise self._error(status, operation, f"Injected failure for {method}")

        if method == "create_item" and self.failure_rate and self._rng.random() < self.failure_rate:
            raise self._error(self.failure_status, operation, "Injected random failure")

    def _respond(self, resource: Any, charge: float) -> StoreResponse[Any]:
        return StoreResponse(copy.deepcopy(resource), charge, self._diagnostics())

    def _partition_of(self, item: dict[str, Any], partition_key: str) -> str:
        if item.get(self._partition_field) != partition_key:
            raise DocumentStoreError(
                f"Partition key '{partition_key}' does not match item "
                f"{self._partition_field}='{item.get(self._partition_field)}'",
                kind=ErrorKind.UNCLASSIFIED,
                operation=OperationKind.WRITE,
                context={"item_id": item.get("id"), "partition_key": partition_key},
            )
        return partition_key

    # --------------- DocumentStore

    async def create_database_if_not_exists(self, name: str) -> StoreResponse[None]:
        await self._enter("create_database_if_not_exists", OperationKind.CREATE_RESOURCE)
        self.databases.add(name)
        return self._respond(None, READ_CHARGE)

    async def create_container(
        self, name: str, partition_key_path: str, throughput: int
    ) -> StoreResponse[None]:
        await self._enter("create_container", OperationKind.CREATE_RESOURCE)
        if name in self.containers:
            raise self._error(409, OperationKind.CREATE_RESOURCE, f"Container '{name}' already exists")
        self.containers.add(name)
        logger.debug(
            "Created simulated container",
            extra={"container": name, "partition_key": partition_key_path},
        )
        return self._respond(None, READ_CHARGE)

    async def create_item(
        self, item: dict[str, Any], partition_key: str
    ) -> StoreResponse[dict[str, Any]]:
        await self._enter("create_item", OperationKind.WRITE)
        partition = self._partitions[self._partition_of(item, partition_key)]
        if item["id"] in partition:
            raise self._error(409, OperationKind.WRITE, f"Item '{item['id']}' already exists")
        partition[item["id"]] = copy.deepcopy(item)
        return self._respond(item, WRITE_CHARGE)

    async def read_item(
        self, item_id: str, partition_key: str
    ) -> StoreResponse[dict[str, Any]]:
        await self._enter("read_item", OperationKind.READ)
        doc = self._partitions.get(partition_key, {}).get(item_id)
        if doc is None:
            raise self._error(404, OperationKind.READ, f"Item '{item_id}' not found")
        return self._respond(doc, READ_CHARGE)

    async def query_items(self, query: str) -> StoreResponse[list[dict[str, Any]]]:
        await self._enter("query_items", OperationKind.QUERY)
        documents = [doc for docs in self._partitions.values() for doc in docs.values()]

        if _SELECT_ALL.match(query):
            return self._respond(documents, QUERY_CHARGE)

        match = _GROUP_BY_COUNT.match(query)
        if match and match.group(2) == match.group(6):
            field, alias = match.group(2), match.group(3)
            counts = Counter(doc.get(field) for doc in documents)
            rows = [{field: value, alias: n} for value, n in counts.items()]
            return self._respond(rows, QUERY_CHARGE)

        raise self._error(400, OperationKind.QUERY, f"Unsupported query: {query}")

    async def upsert_item(
        self, item: dict[str, Any], partition_key: str
    ) -> StoreResponse[dict[str, Any]]:
        await self._enter("upsert_item", OperationKind.WRITE)
        partition = self._partitions[self._partition_of(item, partition_key)]
        partition[item["id"]] = copy.deepcopy(item)
        return self._respond(item, WRITE_CHARGE)
