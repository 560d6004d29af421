"""
Tests for point read, query and upsert under the retry policy.
"""

import logging
from datetime import timedelta

import pytest
import pytest_asyncio

from config.config import DiagnosticsThresholds, StoreConfig
from core.errors.exceptions import DocumentStoreError
from core.resilience.retry import DEFAULT_RETRY
from docstore.bulk_writer import BulkWriter
from docstore.models import Item, ItemCounts, StateCount
from docstore.operations import GROUP_BY_STATE_QUERY, DocumentOperations, log_diagnostics
from docstore.simulation import InMemoryDocumentStore
from docstore.store import RequestDiagnostics

DIAGNOSTICS_LOGGER = "docstore.diagnostics"

SAMPLE = Item(
    id="josh@email.com",
    address="123 Easy Street Anytown AR 55222",
    state="AR",
    first_name="Josh",
    last_name="Lane",
    email="josh@email.com",
)


def _diagnostic_records(caplog):
    return [r for r in caplog.records if r.name == DIAGNOSTICS_LOGGER]


@pytest_asyncio.fixture
async def populated(store):
    await BulkWriter(store, "Demo", "Items").bulk_insert(
        [
            Item(id="a@x.com", state="CA"),
            Item(id="b@x.com", state="NY"),
            Item(id="c@x.com", state="CA"),
        ]
    )
    return store


class TestPointRead:

    @pytest.mark.asyncio
    async def test_reads_item_counts(self, populated, fast_policy):
        ops = DocumentOperations(populated, retry_policy=fast_policy)

        response = await ops.point_read(ItemCounts.DOCUMENT_ID, ItemCounts.PARTITION_KEY, ItemCounts)

        assert isinstance(response.resource, ItemCounts)
        assert response.resource.counts == [
            StateCount(state="CA", count=2),
            StateCount(state="NY", count=1),
        ]
        assert response.request_charge > 0

    @pytest.mark.asyncio
    async def test_raw_document_without_model(self, populated, fast_policy):
        ops = DocumentOperations(populated, retry_policy=fast_policy)
        response = await ops.point_read("a@x.com", "CA")
        assert response.resource["id"] == "a@x.com"

    @pytest.mark.asyncio
    async def test_persistent_unavailability_is_terminal(self, populated, fast_policy, caplog):
        populated.fail_next("read_item", 503, 503, 503, 503)
        ops = DocumentOperations(populated, retry_policy=fast_policy)

        with caplog.at_level(logging.DEBUG):
            with pytest.raises(DocumentStoreError) as exc_info:
                await ops.point_read(ItemCounts.DOCUMENT_ID, ItemCounts.PARTITION_KEY)

        assert exc_info.value.status_code == 503
        assert populated.calls["read_item"] == 4
        # One diagnostics entry per retry, none for the final give-up
        retries = [r for r in _diagnostic_records(caplog) if r.getMessage().startswith("Retry")]
        assert [r.attempt for r in retries] == [1, 2, 3]
        assert all(r.status_code == 503 for r in retries)

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self, populated, fast_policy):
        populated.fail_next("read_item", 410, 408)
        ops = DocumentOperations(populated, retry_policy=fast_policy)

        response = await ops.point_read("a@x.com", "CA")

        assert response.resource["id"] == "a@x.com"
        assert populated.calls["read_item"] == 3

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self, store, fast_policy):
        ops = DocumentOperations(store, retry_policy=fast_policy)

        with pytest.raises(DocumentStoreError) as exc_info:
            await ops.point_read("missing", "CA")

        assert exc_info.value.status_code == 404
        assert store.calls["read_item"] == 1


class TestQuery:

    @pytest.mark.asyncio
    async def test_group_by_state(self, populated, fast_policy):
        ops = DocumentOperations(populated, retry_policy=fast_policy)

        response = await ops.query(GROUP_BY_STATE_QUERY, model=StateCount)

        by_state = {row.state: row.count for row in response.resource}
        assert by_state == {"CA": 2, "NY": 1, "__METADATA__": 1}

    @pytest.mark.asyncio
    async def test_retries_query(self, populated, fast_policy):
        populated.fail_next("query_items", 503)
        ops = DocumentOperations(populated, retry_policy=fast_policy)

        response = await ops.query("SELECT * FROM c")

        assert len(response.resource) == 4
        assert populated.calls["query_items"] == 2


class TestUpsert:

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, store, fast_policy):
        ops = DocumentOperations(store, retry_policy=fast_policy)

        first = await ops.upsert(SAMPLE)
        second = await ops.upsert(SAMPLE)

        assert first.resource == SAMPLE
        assert second.resource == SAMPLE
        assert store.count() == 1
        assert store.get("josh@email.com", "AR") == SAMPLE.to_document()

    @pytest.mark.asyncio
    async def test_replayed_upsert_after_retry_with(self, store, fast_policy):
        store.fail_next("upsert_item", 449)
        ops = DocumentOperations(store, retry_policy=fast_policy)

        await ops.upsert(SAMPLE)

        assert store.calls["upsert_item"] == 2
        assert store.count() == 1

    @pytest.mark.asyncio
    async def test_upsert_replaces_fields(self, store, fast_policy):
        ops = DocumentOperations(store, retry_policy=fast_policy)
        await ops.upsert(SAMPLE)

        moved = SAMPLE.model_copy(update={"address": "1 New Road"})
        response = await ops.upsert(moved)

        assert response.resource.address == "1 New Road"
        assert store.get("josh@email.com", "AR")["Address"] == "1 New Road"


class TestDiagnosticsThresholds:

    @pytest.mark.asyncio
    async def test_fast_call_is_not_logged(self, store, fast_policy, caplog):
        ops = DocumentOperations(store, retry_policy=fast_policy)

        with caplog.at_level(logging.DEBUG, logger=DIAGNOSTICS_LOGGER):
            await ops.upsert(SAMPLE)

        assert _diagnostic_records(caplog) == []

    @pytest.mark.asyncio
    async def test_slow_call_is_logged(self, fast_policy, caplog):
        store = InMemoryDocumentStore(latency=timedelta(milliseconds=5))
        ops = DocumentOperations(
            store,
            retry_policy=fast_policy,
            thresholds=DiagnosticsThresholds(point_read_ms=800, query_ms=4000, upsert_ms=1),
        )

        with caplog.at_level(logging.DEBUG, logger=DIAGNOSTICS_LOGGER):
            await ops.upsert(SAMPLE)

        [record] = _diagnostic_records(caplog)
        assert record.getMessage().startswith("Slow upsert")
        assert record.threshold_ms == 1
        assert record.contacted_regions == ["Simulated"]
        assert record.item_id == "josh@email.com"

    @pytest.mark.asyncio
    async def test_thresholds_are_per_operation(self, fast_policy, caplog):
        store = InMemoryDocumentStore(latency=timedelta(milliseconds=5))
        ops = DocumentOperations(
            store,
            retry_policy=fast_policy,
            thresholds=DiagnosticsThresholds(point_read_ms=1, query_ms=4000, upsert_ms=1000),
        )
        await store.upsert_item(SAMPLE.to_document(), "AR")

        with caplog.at_level(logging.DEBUG, logger=DIAGNOSTICS_LOGGER):
            await ops.upsert(SAMPLE)
            await ops.query("SELECT * FROM c")
            await ops.point_read("josh@email.com", "AR")

        assert [r.operation for r in _diagnostic_records(caplog)] == ["point_read"]

    def test_default_thresholds(self):
        thresholds = DocumentOperations(InMemoryDocumentStore()).thresholds
        assert thresholds.point_read == timedelta(milliseconds=800)
        assert thresholds.query == timedelta(milliseconds=4000)
        assert thresholds.upsert == timedelta(milliseconds=1000)


class TestLogDiagnostics:

    def test_predicate_gates_output(self, caplog):
        diagnostics = RequestDiagnostics(timedelta(milliseconds=900), ("West US",))

        with caplog.at_level(logging.DEBUG, logger=DIAGNOSTICS_LOGGER):
            assert log_diagnostics(diagnostics, lambda d: d.elapsed > timedelta(seconds=1)) is False
            assert log_diagnostics(diagnostics, lambda d: True, item_id="a") is True

        [record] = _diagnostic_records(caplog)
        assert record.item_id == "a"
        assert '"elapsed_ms": 900.0' in record.getMessage()

    def test_none_is_ignored(self):
        assert log_diagnostics(None, lambda d: True) is False


class TestFromConfig:

    def test_uses_config_policy_and_thresholds(self, store):
        config = StoreConfig(thresholds=DiagnosticsThresholds(point_read_ms=5))
        ops = DocumentOperations.from_config(store, config)

        assert ops.retry_policy == DEFAULT_RETRY
        assert ops.thresholds.point_read == timedelta(milliseconds=5)
