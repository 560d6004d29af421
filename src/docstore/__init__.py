"""
Resilient client for an Azure Cosmos DB style document store.

Components:
    - store: DocumentStore protocol and the azure-cosmos adapter
    - simulation: in-memory DocumentStore with fault injection
    - bulk_writer: concurrent best-effort bulk insert + ItemCounts summary
    - operations: point read, query and upsert under the retry policy
    - seed: realistic generated items
"""

from docstore.bulk_writer import BulkInsertResult, BulkWriter, ItemFailure
from docstore.models import Item, ItemCounts, StateCount
from docstore.operations import GROUP_BY_STATE_QUERY, DocumentOperations, log_diagnostics
from docstore.simulation import InMemoryDocumentStore
from docstore.store import (
    CosmosDocumentStore,
    DocumentStore,
    RequestDiagnostics,
    StoreResponse,
)

__all__ = [
    "BulkInsertResult",
    "BulkWriter",
    "CosmosDocumentStore",
    "DocumentOperations",
    "DocumentStore",
    "GROUP_BY_STATE_QUERY",
    "InMemoryDocumentStore",
    "Item",
    "ItemCounts",
    "ItemFailure",
    "RequestDiagnostics",
    "StateCount",
    "StoreResponse",
    "log_diagnostics",
]
