"""
DDL for the `todo` table.

ensure_schema() only creates what is missing; it never alters an existing
type or table.
"""

from taskstore.core.db.pool import PoolManager
from taskstore.core.logger import setup_logger

logger = setup_logger(__name__, include_location=True)


CREATE_PRIORITY_LEVEL = """
    DO $$
    BEGIN
        IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = 'priority_level') THEN
            CREATE TYPE priority_level AS ENUM ('Low', 'Medium', 'High');
        END IF;
    END
    $$;
"""

CREATE_TODO_TABLE = """
    CREATE TABLE IF NOT EXISTS todo (
        id uuid PRIMARY KEY,
        task text NOT NULL,
        priority priority_level NOT NULL,
        created_at timestamptz NOT NULL,
        expired_at timestamptz,
        completed_at timestamptz
    );
"""


async def ensure_schema(pool: PoolManager) -> None:
    await pool.query(CREATE_PRIORITY_LEVEL)
    await pool.query(CREATE_TODO_TABLE)
    logger.info("todo schema is present")
