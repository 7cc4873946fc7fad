# db/pool.py
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Sequence, Union

import psycopg
from psycopg import AsyncConnection
from psycopg.rows import dict_row, DictRow
from psycopg_pool import AsyncConnectionPool, PoolTimeout
from pydantic import ValidationError

from taskstore.core.config import DBOptions
from taskstore.core.errors import (
    ConnectionBuildError,
    DBConnectionError,
    ErrorInfo,
    ErrorKind,
    NotFoundOrAmbiguousError,
    PersistenceError,
    PoolAlreadyInitializedError,
    PoolNotInitializedError,
    classify_postgres_error,
)
from taskstore.core.logger import mask_conninfo, setup_logger

logger = setup_logger(__name__, include_location=True)

Params = Optional[Union[Sequence[Any], Mapping[str, Any]]]


class PoolManager:
    """
    Owner of the connection pool shared by every data operation.

    Each call borrows one connection for one statement and hands it back
    to the pool on every exit path.
    """

    def __init__(self, pool: AsyncConnectionPool, options: DBOptions):
        self._pool = pool
        self.options = options

    @classmethod
    async def create(cls, options: DBOptions) -> "PoolManager":
        """
        Build and open a pool, then probe the backend once.

        Raises:
            ConnectionBuildError: invalid connection parameters or unreachable backend
        """
        logger.info(
            f"Creating Postgres pool: {options.pool_name} | "
            f"Config: min={options.pool_min_size}, max={options.pool_max_size}, "
            f"timeout={options.pool_timeout}s, conninfo={mask_conninfo(options.pg_params)}"
        )
        pool = None
        try:
            pool = AsyncConnectionPool(
                options.pg_params,
                min_size=options.pool_min_size,
                max_size=options.pool_max_size,
                timeout=options.pool_timeout,
                kwargs={"row_factory": dict_row},
                check=AsyncConnectionPool.check_connection,
                name=options.pool_name,
                open=False,
            )
            await pool.open(wait=True, timeout=options.pool_timeout)
            async with pool.connection() as conn:
                await conn.execute("SELECT 1")
        except Exception as e:
            logger.error(f"Failed to create Postgres pool {options.pool_name}: {e}")
            if pool is not None:
                await pool.close()
            raise ConnectionBuildError(
                f"unable to build connection pool '{options.pool_name}': {e}",
                info=ErrorInfo(
                    kind=ErrorKind.DB_CONNECTION,
                    code="POOL_BUILD",
                    message=str(e),
                    exception_type=type(e).__name__,
                ),
            ) from e

        logger.success(f"Postgres pool created successfully: {options.pool_name}")
        return cls(pool, options)

    @property
    def name(self) -> str:
        return self.options.pool_name

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[AsyncConnection[DictRow]]:
        """
        Check out one connection wrapped in a transaction.

        The transaction commits when the block exits normally and rolls back
        when it raises; the connection goes back to the pool either way.

        Raises:
            DBConnectionError: pool exhausted, timed out, closed, or backend unhealthy
        """
        try:
            conn = await self._pool.getconn()
        except PoolTimeout as e:
            logger.error(f"Timed out after {self.options.pool_timeout}s waiting for a connection from {self.name}")
            raise DBConnectionError(
                f"no connection available from pool '{self.name}' within {self.options.pool_timeout}s",
                info=ErrorInfo(
                    kind=ErrorKind.DB_TIMEOUT,
                    retryable=True,
                    code="POOL_TIMEOUT",
                    message=str(e),
                    exception_type=type(e).__name__,
                ),
            ) from e
        except psycopg.OperationalError as e:
            logger.error(f"Failed to acquire connection from {self.name}: {e}")
            raise DBConnectionError(
                f"unable to acquire connection from pool '{self.name}': {e}",
                info=classify_postgres_error(e),
            ) from e

        try:
            async with conn.transaction():
                yield conn
        finally:
            await self._pool.putconn(conn)

    async def query(self, statement: str, params: Params = None) -> List[Dict[str, Any]]:
        """
        Run one parameterized statement and return every result row.
        Statements without a result set (DELETE, upserts) return [].

        Raises:
            DBConnectionError: no connection could be checked out
            PersistenceError: the backend rejected the statement
        """
        try:
            async with self.connection() as conn:
                cursor = await conn.execute(statement, params)
                if cursor.description is None:
                    return []
                return await cursor.fetchall()
        except psycopg.Error as e:
            info = classify_postgres_error(e)
            logger.error(
                f"Statement failed on {self.name}: {e}",
                extra={"error_kind": info.kind.value, "pg_code": info.pg_code},
            )
            raise PersistenceError(
                f"statement rejected by backend: {e}", info=info, statement=statement
            ) from e

    async def query_one(self, statement: str, params: Params = None) -> Dict[str, Any]:
        """
        Run one parameterized statement that must yield exactly one row.

        Raises:
            NotFoundOrAmbiguousError: zero or more than one row came back
        """
        rows = await self.query(statement, params)
        if len(rows) != 1:
            raise NotFoundOrAmbiguousError(
                f"expected exactly one row, got {len(rows)}", row_count=len(rows)
            )
        return rows[0]

    def stats(self) -> Dict[str, int]:
        return self._pool.get_stats()

    async def close(self) -> None:
        logger.info(f"Closing Postgres pool: {self.name}")
        await self._pool.close()


_pool: Optional[PoolManager] = None
_initializing = False


async def init_pool(options: Union[DBOptions, Mapping[str, Any]]) -> PoolManager:
    """
    Build the process-wide pool and install it.

    Must run once at startup, before any repository work is spawned.
    A second call, including one racing an in-flight initialization,
    raises PoolAlreadyInitializedError.
    """
    global _pool, _initializing
    if not isinstance(options, DBOptions):
        try:
            options = DBOptions.model_validate(options)
        except ValidationError as e:
            raise ConnectionBuildError(
                f"invalid pool options: {e}",
                info=ErrorInfo(
                    kind=ErrorKind.DB_CONNECTION,
                    code="POOL_OPTIONS",
                    message=str(e),
                    exception_type=type(e).__name__,
                ),
            ) from e
    if _pool is not None or _initializing:
        raise PoolAlreadyInitializedError(
            "Database pool is already initialized. Call close_pool() before initializing again."
        )
    _initializing = True
    try:
        _pool = await PoolManager.create(options)
    finally:
        _initializing = False
    return _pool


def get_pool() -> PoolManager:
    """Return the process-wide PoolManager."""
    if _pool is None:
        raise PoolNotInitializedError("Database pool is not initialized. Call init_pool() first.")
    return _pool


def is_initialized() -> bool:
    return _pool is not None


async def close_pool() -> None:
    """Close and reset the global connection pool."""
    global _pool
    if _pool is not None:
        pool, _pool = _pool, None
        await pool.close()
