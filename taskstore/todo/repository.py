import uuid
from typing import List, Optional, Union

from taskstore.core.db.pool import PoolManager, get_pool
from taskstore.core.errors import NotFoundOrAmbiguousError
from taskstore.core.logger import setup_logger
from taskstore.todo.models import Task

logger = setup_logger(__name__, include_location=True)


SELECT_TODO = """
    SELECT
        id AS todo_id,
        task AS todo_task,
        priority::text AS todo_priority,
        created_at AS todo_created_at,
        expired_at AS todo_expired_at,
        completed_at AS todo_completed_at
    FROM todo
"""

SELECT_ALL_TODO = SELECT_TODO + ";"

SELECT_TODO_BY_ID = SELECT_TODO + "WHERE id = %(id)s;"

UPSERT_TODO = """
    INSERT INTO todo (id, task, priority, created_at, expired_at, completed_at)
    VALUES (
        %(id)s, %(task)s, %(priority)s::priority_level,
        %(created_at)s, %(expired_at)s, %(completed_at)s
    )
    ON CONFLICT (id)
    DO UPDATE SET
        task = EXCLUDED.task,
        priority = EXCLUDED.priority,
        created_at = EXCLUDED.created_at,
        expired_at = EXCLUDED.expired_at,
        completed_at = EXCLUDED.completed_at;
"""

DELETE_TODO = "DELETE FROM todo WHERE id = %(id)s;"


class TaskRepository:
    """
    Persistence for Task values through a PoolManager.

    The pool can be injected; without one the process-wide pool is looked up
    on first use, so the repository may be built before init_pool() runs.
    """

    def __init__(self, pool: Optional[PoolManager] = None):
        self._pool = pool

    @property
    def pool(self) -> PoolManager:
        if self._pool is None:
            self._pool = get_pool()
        return self._pool

    async def list_all(self) -> List[Task]:
        """Every stored task, in whatever order the backend returns them."""
        rows = await self.pool.query(SELECT_ALL_TODO)
        tasks = [Task.from_row(row) for row in rows]
        logger.debug(f"Loaded {len(tasks)} task(s)")
        return tasks

    async def get_by_id(self, task_id: Union[uuid.UUID, str]) -> Task:
        if not isinstance(task_id, uuid.UUID):
            try:
                task_id = uuid.UUID(str(task_id))
            except ValueError as e:
                # a malformed id can never match a stored row
                raise NotFoundOrAmbiguousError(f"not a valid task id: {task_id!r}", row_count=0) from e
        row = await self.pool.query_one(SELECT_TODO_BY_ID, {"id": task_id})
        return Task.from_row(row)

    async def save(self, task: Task) -> Task:
        """
        Insert the task, or overwrite every column of the row with the same id.
        Last write wins; there is no version check.
        """
        await self.pool.query(UPSERT_TODO, task.to_params())
        logger.debug(f"Saved task {task.id}", extra={"completed": task.is_completed})
        return task

    async def delete(self, task: Task) -> Task:
        """
        Hard-delete the stored row. Deleting an id that is not stored is not an error.
        The in-memory task stays usable and can be saved again.
        """
        await self.delete_by_id(task.id)
        return task

    async def delete_by_id(self, task_id: uuid.UUID) -> None:
        await self.pool.query(DELETE_TODO, {"id": task_id})
        logger.debug(f"Deleted task {task_id}")
