"""
Issue Management

Issue records, the lifecycle state machine, storage backends and the
classification-assisted submission flow.
"""

from .models import (
    CATEGORY_DISPLAY_NAMES,
    Issue,
    Category,
    IssueStatus,
    Priority,
    StatusHistoryEntry,
)
from .errors import (
    IssueError,
    ValidationError,
    NotFoundError,
    InvalidTransitionError,
    InvalidAssignmentError,
    PermissionDeniedError,
)
from .access import Actor, Role
from .storage import StorageBackend, InMemoryStorage, SQLiteStorage
from .store import IssueStore

__all__ = [
    "CATEGORY_DISPLAY_NAMES",
    "Issue",
    "Category",
    "IssueStatus",
    "Priority",
    "StatusHistoryEntry",
    "IssueError",
    "ValidationError",
    "NotFoundError",
    "InvalidTransitionError",
    "InvalidAssignmentError",
    "PermissionDeniedError",
    "Actor",
    "Role",
    "StorageBackend",
    "InMemoryStorage",
    "SQLiteStorage",
    "IssueStore",
]
