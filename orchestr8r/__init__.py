"""orchestr8r working-context library exports."""

from .config import ContextConfig
from .errors import (
    ContextError,
    ContextLockError,
    ContextPersistenceError,
    ContextValidationError,
)
from .locking import ContextLock, ProcessFileLock
from .models import (
    ContextSerializer,
    TaskState,
    WorkingContext,
    create_default_context,
    generate_session_id,
    is_working_context,
    validate_update,
)
from .persistence import PersistenceManager
from .store import ContextStore, create_store

__all__ = [
    "ContextConfig",
    "ContextError",
    "ContextLockError",
    "ContextPersistenceError",
    "ContextValidationError",
    "ContextLock",
    "ProcessFileLock",
    "ContextSerializer",
    "TaskState",
    "WorkingContext",
    "create_default_context",
    "generate_session_id",
    "is_working_context",
    "validate_update",
    "PersistenceManager",
    "ContextStore",
    "create_store",
]
