"""
Document store interface and the Azure Cosmos DB adapter.

Every store call returns a StoreResponse carrying the resource, the
request charge (RUs) and RequestDiagnostics. Every failure is raised as
DocumentStoreError tagged with status code, ErrorKind and OperationKind,
so retry decisions never need to look at SDK exception types.

Example:
    >>> async with CosmosDocumentStore.from_config(config) as store:
    ...     await store.create_database_if_not_exists(config.database)
    ...     response = await store.read_item(item_id, partition_key)
    ...     print(response.request_charge, response.diagnostics.elapsed)
"""

import json
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Generic, Protocol, TypeVar

from azure.cosmos import PartitionKey
from azure.cosmos.aio import CosmosClient

from core.errors.classifiers import wrap_cosmos_error
from core.errors.exceptions import DocumentStoreError
from core.types import ErrorKind, OperationKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

REQUEST_CHARGE_HEADER = "x-ms-request-charge"
ACTIVITY_ID_HEADER = "x-ms-activity-id"


@dataclass(frozen=True)
class RequestDiagnostics:
    """Client-side view of one store request."""

    elapsed: timedelta
    contacted_regions: tuple[str, ...] = ()
    activity_id: str | None = None
    status_code: int | None = None

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed.total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "elapsed_ms": round(self.elapsed_ms, 3),
            "contacted_regions": list(self.contacted_regions),
            "activity_id": self.activity_id,
            "status_code": self.status_code,
        }

    def __str__(self) -> str:
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class StoreResponse(Generic[T]):
    """Result of a successful store call."""

    resource: T
    request_charge: float
    diagnostics: RequestDiagnostics


class DocumentStore(Protocol):
    """
    Async document store bound to one database and container.

    Implementations raise DocumentStoreError for every failure.
    """

    async def create_database_if_not_exists(self, name: str) -> StoreResponse[None]:
        ...

    async def create_container(
        self, name: str, partition_key_path: str, throughput: int
    ) -> StoreResponse[None]:
        ...

    async def create_item(
        self, item: dict[str, Any], partition_key: str
    ) -> StoreResponse[dict[str, Any]]:
        ...

    async def read_item(
        self, item_id: str, partition_key: str
    ) -> StoreResponse[dict[str, Any]]:
        ...

    async def query_items(self, query: str) -> StoreResponse[list[dict[str, Any]]]:
        """Run a query and return its first page only."""
        ...

    async def upsert_item(
        self, item: dict[str, Any], partition_key: str
    ) -> StoreResponse[dict[str, Any]]:
        ...


@dataclass
class _HeaderCapture:
    """response_hook target; keeps the headers of the last response."""

    headers: dict[str, Any] = field(default_factory=dict)

    def __call__(self, headers, *_args) -> None:
        self.headers = dict(headers or {})

    @property
    def request_charge(self) -> float:
        try:
            return float(self.headers.get(REQUEST_CHARGE_HEADER, 0.0))
        except (TypeError, ValueError):
            return 0.0


class CosmosDocumentStore:
    """
    DocumentStore backed by azure-cosmos (async client).

    The Python SDK does not report which region served a request, so
    contacted_regions holds the first preferred region the client routes to.
    """

    def __init__(
        self,
        client: CosmosClient,
        database: str,
        container: str,
        partition_key_path: str = "/State",
        preferred_regions: list[str] | None = None,
        credential=None,
    ):
        self._client = client
        self._credential = credential
        self.database = database
        self.container = container
        self.partition_key_path = partition_key_path
        self._partition_field = partition_key_path.lstrip("/")
        self._regions = tuple((preferred_regions or [])[:1])

    @classmethod
    def from_config(cls, config) -> "CosmosDocumentStore":
        """Build a store and its CosmosClient from a StoreConfig."""
        if config.use_default_credential:
            from azure.identity.aio import DefaultAzureCredential

            credential = DefaultAzureCredential()
        else:
            credential = config.key

        client = CosmosClient(
            config.endpoint,
            credential=credential,
            preferred_locations=config.preferred_regions or None,
        )
        logger.info(
            "Initialized CosmosDocumentStore",
            extra={
                "endpoint": config.endpoint,
                "database": config.database,
                "container": config.container,
            },
        )
        return cls(
            client,
            config.database,
            config.container,
            partition_key_path=config.partition_key_path,
            preferred_regions=config.preferred_regions,
            credential=None if isinstance(credential, str) else credential,
        )

    async def __aenter__(self) -> "CosmosDocumentStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def close(self) -> None:
        await self._client.close()
        if self._credential is not None:
            await self._credential.close()

    def _container_client(self):
        return self._client.get_database_client(self.database).get_container_client(
            self.container
        )

    def _check_partition(self, item: dict[str, Any], partition_key: str) -> None:
        # The SDK derives the partition from the body
        if item.get(self._partition_field) != partition_key:
            raise DocumentStoreError(
                f"Partition key '{partition_key}' does not match item "
                f"{self._partition_field}='{item.get(self._partition_field)}'",
                kind=ErrorKind.UNCLASSIFIED,
                operation=OperationKind.WRITE,
                context={"item_id": item.get("id"), "partition_key": partition_key},
            )

    async def _call(
        self,
        operation: OperationKind,
        call: Callable[[_HeaderCapture], Awaitable[Any]],
    ) -> StoreResponse[Any]:
        capture = _HeaderCapture()
        start = time.perf_counter()
        try:
            resource = await call(capture)
        except Exception as e:
            headers = dict(getattr(e, "headers", None) or {})
            diagnostics = RequestDiagnostics(
                elapsed=timedelta(seconds=time.perf_counter() - start),
                contacted_regions=self._regions,
                activity_id=headers.get(ACTIVITY_ID_HEADER),
                status_code=getattr(e, "status_code", None),
            )
            raise wrap_cosmos_error(e, operation, diagnostics=diagnostics) from e

        diagnostics = RequestDiagnostics(
            elapsed=timedelta(seconds=time.perf_counter() - start),
            contacted_regions=self._regions,
            activity_id=capture.headers.get(ACTIVITY_ID_HEADER),
        )
        return StoreResponse(resource, capture.request_charge, diagnostics)

    async def create_database_if_not_exists(self, name: str) -> StoreResponse[None]:
        async def call(capture):
            await self._client.create_database_if_not_exists(id=name, response_hook=capture)

        return await self._call(OperationKind.CREATE_RESOURCE, call)

    async def create_container(
        self, name: str, partition_key_path: str, throughput: int
    ) -> StoreResponse[None]:
        async def call(capture):
            await self._client.get_database_client(self.database).create_container(
                id=name,
                partition_key=PartitionKey(path=partition_key_path),
                offer_throughput=throughput,
                response_hook=capture,
            )

        return await self._call(OperationKind.CREATE_RESOURCE, call)

    async def create_item(
        self, item: dict[str, Any], partition_key: str
    ) -> StoreResponse[dict[str, Any]]:
        self._check_partition(item, partition_key)

        async def call(capture):
            return await self._container_client().create_item(body=item, response_hook=capture)

        return await self._call(OperationKind.WRITE, call)

    async def read_item(
        self, item_id: str, partition_key: str
    ) -> StoreResponse[dict[str, Any]]:
        async def call(capture):
            return await self._container_client().read_item(
                item=item_id, partition_key=partition_key, response_hook=capture
            )

        return await self._call(OperationKind.READ, call)

    async def query_items(self, query: str) -> StoreResponse[list[dict[str, Any]]]:
        async def call(capture):
            pager = self._container_client().query_items(query=query, response_hook=capture)
            async for page in pager.by_page():
                return [doc async for doc in page]
            return []

        return await self._call(OperationKind.QUERY, call)

    async def upsert_item(
        self, item: dict[str, Any], partition_key: str
    ) -> StoreResponse[dict[str, Any]]:
        self._check_partition(item, partition_key)

        async def call(capture):
            return await self._container_client().upsert_item(body=item, response_hook=capture)

        return await self._call(OperationKind.WRITE, call)
