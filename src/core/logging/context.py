"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_run_id: ContextVar[str] = ContextVar("run_id", default="")
_operation: ContextVar[str] = ContextVar("operation", default="")
_database: ContextVar[str] = ContextVar("database", default="")
_container: ContextVar[str] = ContextVar("container", default="")


def set_log_context(
    run_id: Optional[str] = None,
    operation: Optional[str] = None,
    database: Optional[str] = None,
    container: Optional[str] = None,
) -> None:
    if run_id is not None:
        _run_id.set(run_id)
    if operation is not None:
        _operation.set(operation)
    if database is not None:
        _database.set(database)
    if container is not None:
        _container.set(container)


def get_log_context() -> Dict[str, str]:
    return {
        "run_id": _run_id.get(),
        "operation": _operation.get(),
        "database": _database.get(),
        "container": _container.get(),
    }


def clear_log_context() -> None:
    _run_id.set("")
    _operation.set("")
    _database.set("")
    _container.set("")
