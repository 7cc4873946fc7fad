import psycopg
import pytest
from psycopg_pool import PoolTimeout

from taskstore.core.db import pool as pool_module
from taskstore.core.db.pool import PoolManager, close_pool, get_pool, init_pool, is_initialized
from taskstore.core.errors import (
    ConnectionBuildError,
    DBConnectionError,
    ErrorKind,
    NotFoundOrAmbiguousError,
    PersistenceError,
    PoolAlreadyInitializedError,
    PoolNotInitializedError,
)


@pytest.mark.asyncio
async def test_init_pool_installs_single_instance(fake_pool_class, db_options):
    manager = await init_pool(db_options)

    assert get_pool() is manager
    assert is_initialized()
    assert len(fake_pool_class.instances) == 1
    built = fake_pool_class.instances[0]
    assert built.opened
    assert built.conninfo == db_options.pg_params
    assert built.kwargs["max_size"] == 8
    assert built.kwargs["timeout"] == db_options.pool_timeout
    assert built.kwargs["open"] is False
    # backend probed once, connection handed back
    assert built.connections[0].statements == [("SELECT 1", None)]
    assert built.checked_out == 0


@pytest.mark.asyncio
async def test_init_pool_accepts_plain_mapping(fake_pool_class):
    manager = await init_pool({"pg_params": "dbname=test", "pool_max_size": 2})

    assert manager.options.pool_max_size == 2
    assert fake_pool_class.instances[0].kwargs["max_size"] == 2


@pytest.mark.asyncio
async def test_invalid_options_raise_connection_build_error(fake_pool_class):
    with pytest.raises(ConnectionBuildError) as exc_info:
        await init_pool({"pg_params": "dbname=x", "pool_max_size": 0})

    assert exc_info.value.info.code == "POOL_OPTIONS"
    assert "pool_max_size" in str(exc_info.value)
    assert fake_pool_class.instances == []
    assert not is_initialized()


@pytest.mark.asyncio
async def test_second_init_fails_loudly(fake_pool_class, db_options):
    first = await init_pool(db_options)

    with pytest.raises(PoolAlreadyInitializedError):
        await init_pool(db_options)

    assert get_pool() is first
    assert len(fake_pool_class.instances) == 1


@pytest.mark.asyncio
async def test_init_racing_in_flight_initialization_fails(fake_pool_class, db_options):
    pool_module._initializing = True

    with pytest.raises(PoolAlreadyInitializedError):
        await init_pool(db_options)

    assert fake_pool_class.instances == []


def test_get_pool_before_init_is_a_runtime_error():
    with pytest.raises(PoolNotInitializedError) as exc_info:
        get_pool()

    assert isinstance(exc_info.value, RuntimeError)
    assert "init_pool" in str(exc_info.value)


@pytest.mark.asyncio
async def test_unreachable_backend_raises_connection_build_error(fake_pool_class, db_options):
    fake_pool_class.open_error = PoolTimeout("pool initialization incomplete after 10.0 sec")

    with pytest.raises(ConnectionBuildError) as exc_info:
        await init_pool(db_options)

    assert exc_info.value.info.kind == ErrorKind.DB_CONNECTION
    assert fake_pool_class.instances[0].closed
    assert not is_initialized()
    # a failed attempt leaves the slot free for a retry by the caller
    fake_pool_class.open_error = None
    assert await init_pool(db_options) is get_pool()


@pytest.mark.asyncio
async def test_close_pool_resets_instance(fake_pool_class, db_options):
    await init_pool(db_options)
    built = fake_pool_class.instances[0]

    await close_pool()

    assert built.closed
    assert not is_initialized()
    await close_pool()


@pytest.mark.asyncio
async def test_query_returns_rows_and_releases_connection(fake_pool, db_options):
    fake_pool.handler = lambda statement, params: [{"n": 1}, {"n": 2}]
    manager = PoolManager(fake_pool, db_options)

    rows = await manager.query("SELECT n FROM t WHERE a = %s", [1])

    assert rows == [{"n": 1}, {"n": 2}]
    assert fake_pool.checked_out == 0
    assert fake_pool.connections[0].statements == [("SELECT n FROM t WHERE a = %s", [1])]
    assert fake_pool.connections[0].transactions == ["begin", "commit"]


@pytest.mark.asyncio
async def test_query_without_result_set_returns_empty_list(fake_pool, db_options):
    fake_pool.handler = lambda statement, params: None
    manager = PoolManager(fake_pool, db_options)

    assert await manager.query("DELETE FROM t") == []


@pytest.mark.asyncio
async def test_statement_failure_raises_persistence_error_and_releases(fake_pool, db_options):
    def reject(statement, params):
        raise psycopg.errors.UniqueViolation("duplicate key value violates unique constraint")

    fake_pool.handler = reject
    manager = PoolManager(fake_pool, db_options)

    with pytest.raises(PersistenceError) as exc_info:
        await manager.query("INSERT INTO t VALUES (1)")

    error = exc_info.value
    assert error.info.kind == ErrorKind.DB_CONSTRAINT
    assert error.info.pg_code == "23505"
    assert error.statement == "INSERT INTO t VALUES (1)"
    assert isinstance(error.__cause__, psycopg.errors.UniqueViolation)
    assert fake_pool.checked_out == 0
    assert fake_pool.connections[0].transactions == ["begin", "rollback"]


@pytest.mark.asyncio
async def test_acquire_timeout_raises_connection_error(fake_pool, db_options):
    FakePool = type(fake_pool)
    FakePool.getconn_error = PoolTimeout("couldn't get a connection after 10.00 sec")
    manager = PoolManager(fake_pool, db_options)

    with pytest.raises(DBConnectionError) as exc_info:
        await manager.query("SELECT 1")

    assert exc_info.value.info.kind == ErrorKind.DB_TIMEOUT
    assert exc_info.value.info.retryable
    assert fake_pool.checked_out == 0


@pytest.mark.asyncio
async def test_unhealthy_backend_raises_connection_error(fake_pool, db_options):
    type(fake_pool).getconn_error = psycopg.OperationalError("connection refused")
    manager = PoolManager(fake_pool, db_options)

    with pytest.raises(DBConnectionError) as exc_info:
        await manager.query("SELECT 1")

    assert exc_info.value.info.kind == ErrorKind.DB_CONNECTION


@pytest.mark.asyncio
async def test_query_one_requires_exactly_one_row(fake_pool, db_options):
    results = {"none": [], "one": [{"id": 1}], "two": [{"id": 1}, {"id": 2}]}
    fake_pool.handler = lambda statement, params: results[params["case"]]
    manager = PoolManager(fake_pool, db_options)

    assert await manager.query_one("SELECT", {"case": "one"}) == {"id": 1}

    with pytest.raises(NotFoundOrAmbiguousError) as none_info:
        await manager.query_one("SELECT", {"case": "none"})
    assert none_info.value.row_count == 0

    with pytest.raises(NotFoundOrAmbiguousError) as two_info:
        await manager.query_one("SELECT", {"case": "two"})
    assert two_info.value.row_count == 2

    assert fake_pool.checked_out == 0


def test_stats_passthrough(pool_manager):
    assert pool_manager.stats()["pool_size"] == 1
    assert pool_manager.name == "taskstore"
