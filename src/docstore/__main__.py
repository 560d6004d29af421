"""
Demo runner for the document store client.

Usage:
    # Bulk insert, then query, point read and upsert against Azure Cosmos DB
    python -m docstore

    # Skip the bulk insert (container already populated)
    python -m docstore --skip-bulk

    # Run entirely in memory, with 5% of item writes failing with 503
    python -m docstore --simulate --items 1000 --failure-rate 0.05

Settings come from config/config.yaml (or DOCSTORE_CONFIG) with
COSMOS_ENDPOINT / COSMOS_KEY / COSMOS_DATABASE / COSMOS_CONTAINER overrides,
and a .env file in the project root is loaded first.
"""

import argparse
import asyncio
import json
import logging
import os
import random
import signal
import sys
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

from config import load_config
from core.errors.exceptions import DocstoreError
from core.logging.setup import generate_run_id, get_logger, setup_logging
from core.logging.utilities import format_regions, log_exception
from core.utils.json_serializers import json_serializer
from docstore.bulk_writer import BulkWriter
from docstore.models import Item, ItemCounts, StateCount
from docstore.operations import GROUP_BY_STATE_QUERY, DocumentOperations
from docstore.seed import generate_items
from docstore.simulation import InMemoryDocumentStore
from docstore.store import CosmosDocumentStore, StoreResponse

# __main__.py is at src/docstore/__main__.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

SAMPLE_ITEM = Item(
    id="josh@email.com",
    address="123 Easy Street Anytown AR 55222",
    state="AR",
    first_name="Josh",
    last_name="Lane",
    email="josh@email.com",
)

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Bulk insert items, then query, point read and upsert with retries",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m docstore
    python -m docstore --skip-bulk
    python -m docstore --simulate --items 1000 --failure-rate 0.05
        """,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.yaml (default: DOCSTORE_CONFIG or bundled config)",
    )
    parser.add_argument(
        "--items",
        type=int,
        default=None,
        help="Number of items to bulk insert (default: bulk.items_to_insert)",
    )
    parser.add_argument(
        "--skip-bulk",
        action="store_true",
        help="Skip the bulk insert and only run the single-document operations",
    )
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Use the in-memory store instead of Azure Cosmos DB",
    )
    parser.add_argument(
        "--failure-rate",
        type=float,
        default=0.0,
        help="Simulation only: fraction of item writes failing with 503 (default: 0)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for generated items (default: random)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Also write JSON logs to this directory (default: LOG_DIR env var, else console only)",
    )
    return parser.parse_args(argv)


def setup_signal_handlers(loop: asyncio.AbstractEventLoop, cancel_event: asyncio.Event):
    """First CTRL+C cancels outstanding work; a second one cancels every task."""

    def handle_signal(sig):
        if not cancel_event.is_set():
            logger.info("Received signal, cancelling", extra={"signal": sig.name})
            cancel_event.set()
        else:
            logger.warning("Received second signal, forcing immediate shutdown...")
            for task in asyncio.all_tasks(loop):
                task.cancel()

    if sys.platform == "win32":
        logger.debug("Signal handlers not supported on Windows, using KeyboardInterrupt")
        return

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))


def _log_response(title: str, response: StoreResponse) -> None:
    resource = response.resource
    if isinstance(resource, list):
        body = [r.to_document() if hasattr(r, "to_document") else r for r in resource]
    elif hasattr(resource, "to_document"):
        body = resource.to_document()
    else:
        body = resource

    logger.info("%s: %s", title, json.dumps(body, default=json_serializer))
    logger.info(
        "%s elapsed client time: %.1f ms, request charge: %.2f RUs, contacted regions:%s",
        title,
        response.diagnostics.elapsed_ms,
        response.request_charge,
        format_regions(response.diagnostics.contacted_regions),
        extra={
            "elapsed_ms": round(response.diagnostics.elapsed_ms, 3),
            "request_charge": response.request_charge,
        },
    )


async def run(args: argparse.Namespace, config, store, cancel_event: asyncio.Event) -> int:
    rng = random.Random(args.seed)

    if not args.skip_bulk:
        count = args.items if args.items is not None else config.items_to_insert
        items = generate_items(count, rng=rng)
        writer = BulkWriter.from_config(store, config)
        logger.info(
            "Bulk inserting items",
            extra={"batch_size": count, "max_concurrency": writer.max_concurrency},
        )
        result = await writer.bulk_insert(items, cancel_event=cancel_event)
        logger.info(
            "Inserted %d of %d items (%d failed), %.2f RUs",
            result.success_count,
            result.attempted,
            result.failure_count,
            result.request_charge,
        )
        if result.cancelled:
            return 1

    ops = DocumentOperations.from_config(store, config, cancel_event=cancel_event)

    query = await ops.query(GROUP_BY_STATE_QUERY, model=StateCount)
    _log_response("Query", query)

    read = await ops.point_read(ItemCounts.DOCUMENT_ID, ItemCounts.PARTITION_KEY, ItemCounts)
    _log_response("Point read", read)

    upsert = await ops.upsert(SAMPLE_ITEM)
    _log_response("Upsert", upsert)
    return 0


def _make_store(args: argparse.Namespace, config):
    if args.simulate:
        return InMemoryDocumentStore(
            partition_key_path=config.partition_key_path,
            latency=timedelta(milliseconds=5),
            failure_rate=args.failure_rate,
            rng=random.Random(args.seed),
        )
    return CosmosDocumentStore.from_config(config)


async def _main_async(args: argparse.Namespace, config) -> int:
    cancel_event = asyncio.Event()
    setup_signal_handlers(asyncio.get_running_loop(), cancel_event)
    async with _make_store(args, config) as store:
        return await run(args, config, store, cancel_event)


def main(argv=None) -> int:
    load_dotenv(PROJECT_ROOT / ".env")

    global logger
    args = parse_args(argv)

    log_dir_str = args.log_dir or os.getenv("LOG_DIR")
    json_logs = os.getenv("JSON_LOGS", "true").lower() in ("true", "1", "yes")

    setup_logging(
        name="docstore",
        log_dir=Path(log_dir_str) if log_dir_str else None,
        json_format=json_logs,
        console_level=getattr(logging, args.log_level),
        log_to_file=bool(log_dir_str),
        run_id=generate_run_id(),
    )
    logger = get_logger(__name__)

    # The in-memory store needs no credentials
    overrides = {"key": "simulation"} if args.simulate else None
    try:
        config = load_config(args.config, overrides=overrides)
    except (DocstoreError, FileNotFoundError, ValueError) as e:
        logger.error("Configuration error: %s", e)
        return 2

    try:
        return asyncio.run(_main_async(args, config))
    except DocstoreError as e:
        log_exception(logger, e, "Run failed")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
