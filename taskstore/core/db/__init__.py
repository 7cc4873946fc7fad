"""
taskstore.core.db
=================

Connection pool shared by every taskstore data operation.

Initialize once at startup, then hand the PoolManager to repositories
(or let them resolve it through get_pool()):

    pool = await init_pool(DBOptions(pg_params=dsn, pool_max_size=8))
    repo = TaskRepository(pool)
    ...
    await close_pool()
"""

from taskstore.core.db.pool import (
    PoolManager,
    close_pool,
    get_pool,
    init_pool,
    is_initialized,
)

__all__ = ["PoolManager", "close_pool", "get_pool", "init_pool", "is_initialized"]
