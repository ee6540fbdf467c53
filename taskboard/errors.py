"""
Error taxonomy for the task board.

    BoardError
    ├── Unauthenticated   no resolved actor, raised before any network call
    ├── RemoteError       non-2xx / transport failure from Remote Sync
    │   └── RemoteNotFound    scoped query returned no data
    ├── StoreError        Task Store contract violations
    │   ├── DuplicateId
    │   └── TaskNotFound
    └── ConfigError       invalid configuration
"""
from typing import Optional


class BoardError(Exception):
    """Base class for every error raised by taskboard."""
    pass


class Unauthenticated(BoardError):
    """Raised when a board operation runs without a resolved actor."""
    pass


class RemoteError(BoardError):
    """Raised when a Remote Sync call fails."""

    def __init__(self, message: str, status: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.status = status
        self.retryable = retryable


class RemoteNotFound(RemoteError):
    """Raised when the remote reports no data for a scoped query."""

    def __init__(self, message: str = "No tasks found", status: Optional[int] = 404):
        super().__init__(message, status=status)


class StoreError(BoardError):
    """Raised on Task Store contract violations."""
    pass


class DuplicateId(StoreError):
    """Raised when inserting a task whose id is already in the store."""

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} already exists")
        self.task_id = task_id


class TaskNotFound(StoreError):
    """Raised when replacing or removing an unknown task id."""

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class ConfigError(BoardError):
    """Raised when configuration is invalid or incomplete."""
    pass
