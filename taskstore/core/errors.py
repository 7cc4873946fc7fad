"""
Error taxonomy for taskstore.

Every failure surfaced by the pool manager or the task repository is a
TaskStoreError subclass. Statement-level failures carry an ErrorInfo
classification so callers can tell a constraint violation from a dropped
connection without brittle string matching:

    try:
        await repo.save(task)
    except PersistenceError as e:
        if e.info.retryable:
            ...
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Standardized error categories."""

    DB_CONNECTION = "db_connection" # Connection refused, lost mid-statement
    DB_CONSTRAINT = "db_constraint" # Unique constraint, not-null, check
    DB_DEADLOCK = "db_deadlock"     # Serialization failure, deadlock
    DB_TIMEOUT = "db_timeout"       # Statement or pool timeout
    SCHEMA = "schema"               # Row could not be decoded into a Task
    NOT_FOUND = "not_found"         # Single-row query matched 0 or >1 rows

    UNKNOWN = "unknown"


class ErrorInfo(BaseModel):
    """Standardized description of a backend failure."""

    kind: ErrorKind = Field(
        default=ErrorKind.UNKNOWN,
        description="Error category"
    )
    retryable: bool = Field(
        default=False,
        description="Whether a caller-side retry could succeed"
    )
    code: str = Field(
        default="UNKNOWN",
        description="Error code (PG_23505, POOL_TIMEOUT, ...)"
    )
    message: str = Field(
        default="Unknown error",
        description="Human-readable error message"
    )
    pg_code: Optional[str] = Field(
        None, description="PostgreSQL SQLSTATE (e.g., 40001, 40P01, 23505)"
    )
    exception_type: Optional[str] = Field(
        None, description="Python exception class name"
    )

    def to_dict(self) -> dict[str, Any]:
        d = {
            "kind": self.kind.value,
            "retryable": self.retryable,
            "code": self.code,
            "message": self.message,
        }
        if self.pg_code is not None:
            d["pg_code"] = self.pg_code
        if self.exception_type is not None:
            d["exception_type"] = self.exception_type
        return d


def classify_postgres_error(
    error: Exception,
    error_code: Optional[str] = None,
) -> ErrorInfo:
    """Classify PostgreSQL errors."""
    error_str = str(error).lower()

    pg_code = error_code or getattr(error, "sqlstate", None)
    code = f"PG_{pg_code}" if pg_code else "PG_UNKNOWN"
    common = dict(
        code=code,
        message=str(error),
        pg_code=pg_code,
        exception_type=type(error).__name__,
    )

    if pg_code:
        if pg_code in ("40001", "40P01"):
            return ErrorInfo(kind=ErrorKind.DB_DEADLOCK, retryable=True, **common)
        if pg_code.startswith("23"):
            return ErrorInfo(kind=ErrorKind.DB_CONSTRAINT, retryable=False, **common)
        if pg_code.startswith("08"):
            return ErrorInfo(kind=ErrorKind.DB_CONNECTION, retryable=True, **common)
        if pg_code == "57014":
            return ErrorInfo(kind=ErrorKind.DB_TIMEOUT, retryable=True, **common)
        return ErrorInfo(kind=ErrorKind.UNKNOWN, retryable=False, **common)

    # no SQLSTATE: client-side failures, fall back to the message text
    if "deadlock" in error_str:
        return ErrorInfo(kind=ErrorKind.DB_DEADLOCK, retryable=True, **common)

    if "connection" in error_str:
        return ErrorInfo(kind=ErrorKind.DB_CONNECTION, retryable=True, **common)

    if "timeout" in error_str:
        return ErrorInfo(kind=ErrorKind.DB_TIMEOUT, retryable=True, **common)

    return ErrorInfo(kind=ErrorKind.UNKNOWN, retryable=False, **common)


class TaskStoreError(Exception):
    """Base class for every error raised by taskstore."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, info: Optional[ErrorInfo] = None):
        super().__init__(message)
        self.message = message
        self.info = info or ErrorInfo(kind=self.kind, message=message)


class PoolNotInitializedError(TaskStoreError, RuntimeError):
    """The shared pool was read before init_pool() completed."""


class PoolAlreadyInitializedError(TaskStoreError, RuntimeError):
    """init_pool() was called while a pool is installed or being built."""


class ConnectionBuildError(TaskStoreError):
    """The pool could not be built or opened from its options."""

    kind = ErrorKind.DB_CONNECTION


class DBConnectionError(TaskStoreError):
    """A connection could not be checked out of an already built pool."""

    kind = ErrorKind.DB_CONNECTION


class PersistenceError(TaskStoreError):
    """The backend rejected a statement."""

    def __init__(self, message: str, info: Optional[ErrorInfo] = None, statement: Optional[str] = None):
        super().__init__(message, info)
        self.statement = statement


class NotFoundOrAmbiguousError(TaskStoreError):
    """A single-row query returned zero or more than one row."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str, row_count: int):
        super().__init__(message)
        self.row_count = row_count


class MappingError(TaskStoreError):
    """A result row could not be converted into the entity; `field` names the culprit."""

    kind = ErrorKind.SCHEMA

    def __init__(self, field: str, reason: str):
        super().__init__(f"cannot map column for field '{field}': {reason}")
        self.field = field
        self.reason = reason


__all__ = [
    "ErrorKind",
    "ErrorInfo",
    "classify_postgres_error",
    "TaskStoreError",
    "PoolNotInitializedError",
    "PoolAlreadyInitializedError",
    "ConnectionBuildError",
    "DBConnectionError",
    "PersistenceError",
    "NotFoundOrAmbiguousError",
    "MappingError",
]
