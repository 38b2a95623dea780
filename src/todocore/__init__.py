"""todo-core -- 带持久化的 Todo 生命周期管理核心

公共 API 从此入口导入。
"""

from .config import TodoServiceConfig, load_service_config
from .exceptions import (
    DuplicateContentError,
    InvalidTransitionError,
    ReopenWindowExpiredError,
    ReorderValidationError,
    StorageLockError,
    TodoError,
    TodoNotFoundError,
    is_domain_error,
)
from .models import Metrics, Todo, TodoEvent, TodoEventType, TodoStatus
from .repository import TodoRepository
from .service import TodoService, create_todo_service
from .store import FileStorageAdapter, MemoryStorageAdapter, StorageAdapter

__all__ = [
    # Service
    "TodoService",
    "TodoServiceConfig",
    "create_todo_service",
    "load_service_config",
    "TodoRepository",
    # Store
    "StorageAdapter",
    "FileStorageAdapter",
    "MemoryStorageAdapter",
    # Models
    "Todo",
    "TodoStatus",
    "TodoEvent",
    "TodoEventType",
    "Metrics",
    # Errors
    "TodoError",
    "DuplicateContentError",
    "InvalidTransitionError",
    "ReopenWindowExpiredError",
    "ReorderValidationError",
    "TodoNotFoundError",
    "StorageLockError",
    "is_domain_error",
]
