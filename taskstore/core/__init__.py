from taskstore.core.config import DBOptions, Settings, get_settings
from taskstore.core.errors import (
    ConnectionBuildError,
    DBConnectionError,
    ErrorInfo,
    ErrorKind,
    MappingError,
    NotFoundOrAmbiguousError,
    PersistenceError,
    PoolAlreadyInitializedError,
    PoolNotInitializedError,
    TaskStoreError,
)
from taskstore.core.logger import setup_logger
