__version__ = "0.1.0"

from taskstore.core.config import DBOptions
from taskstore.core.db import PoolManager, close_pool, get_pool, init_pool
from taskstore.todo import PriorityLevel, Task, TaskRepository
