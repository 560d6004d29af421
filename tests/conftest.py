"""
pytest configuration for docstore tests.

Adds src directory to Python path for imports and provides shared fixtures.
"""

import os
import random
import sys
from datetime import timedelta
from pathlib import Path

import pytest

# Keep developer environment overrides out of config tests
for _var in ("COSMOS_ENDPOINT", "COSMOS_KEY", "COSMOS_DATABASE", "COSMOS_CONTAINER", "DOCSTORE_CONFIG"):
    os.environ.pop(_var, None)

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from core.logging.context import clear_log_context  # noqa: E402
from core.resilience.retry import RetryPolicy  # noqa: E402
from docstore.simulation import InMemoryDocumentStore  # noqa: E402


@pytest.fixture(autouse=True)
def reset_log_context():
    clear_log_context()
    yield
    clear_log_context()


@pytest.fixture
def store():
    """In-memory store partitioned by /State with no latency."""
    return InMemoryDocumentStore(partition_key_path="/State", rng=random.Random(7))


@pytest.fixture
def fast_policy():
    """Three retries with zero backoff so tests never sleep."""
    return RetryPolicy(first_delay=timedelta(0), max_attempts=3, rng=random.Random(1))
