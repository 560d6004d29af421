"""Context managers for structured logging."""

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional

from core.logging.context import get_log_context, set_log_context
from core.logging.utilities import log_with_context


class LogContext:
    """
    Context manager for temporary log context.

    Usage:
        with LogContext(operation="bulk_insert", run_id=run_id):
            # All logs in this block will have operation and run_id
            await writer.bulk_insert(items)
    """

    def __init__(
        self,
        run_id: Optional[str] = None,
        operation: Optional[str] = None,
        database: Optional[str] = None,
        container: Optional[str] = None,
    ):
        self.new_context = {
            "run_id": run_id,
            "operation": operation,
            "database": database,
            "container": container,
        }
        self.old_context: Dict[str, str] = {}

    def __enter__(self) -> "LogContext":
        self.old_context = get_log_context()
        for key, value in self.new_context.items():
            if value is not None:
                set_log_context(**{key: value})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        set_log_context(
            run_id=self.old_context.get("run_id", ""),
            operation=self.old_context.get("operation", ""),
            database=self.old_context.get("database", ""),
            container=self.old_context.get("container", ""),
        )
        return False


@contextmanager
def log_phase(
    logger: logging.Logger,
    phase: str,
    level: int = logging.DEBUG,
    **context: Any,
):
    """
    Context manager for timing a phase.

    Example:
        with log_phase(logger, "create_container"):
            await store.create_container(...)
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    start = time.perf_counter()
    try:
        yield
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        log_with_context(
            logger,
            level,
            f"Phase complete: {phase}",
            duration_ms=round(duration_ms, 2),
            **context,
        )
