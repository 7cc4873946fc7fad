from taskstore.todo.models import PriorityLevel, Task
from taskstore.todo.repository import TaskRepository
from taskstore.todo.schema import ensure_schema

__all__ = ["PriorityLevel", "Task", "TaskRepository", "ensure_schema"]
