"""
Task Store: the canonical in-memory task list for one board session.

Mutated only through load / insert / replace / remove. Every mutation
bumps `version` and notifies `on_change` listeners so views can refresh.
Inside `batch()` listeners are notified once, after the last mutation.
"""
import logging
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

from .errors import DuplicateId, TaskNotFound
from .schema import Task

logger = logging.getLogger(__name__)


def _order_key(task: Task):
    return (task.order is None, task.order if task.order is not None else 0)


class TaskStore:
    """Ordered, id-unique collection of tasks."""

    def __init__(self, tasks: Optional[Iterable[Task]] = None):
        self._tasks: List[Task] = []
        self.version = 0
        self._listeners: List[Callable[["TaskStore"], None]] = []
        self._batch_depth = 0
        self._pending = False
        if tasks is not None:
            self.load(tasks)

    # ── Listeners ────────────────────────────────────────────────────────────

    def on_change(self, callback: Callable[["TaskStore"], None]) -> None:
        """Register a callback invoked after every mutation."""
        self._listeners.append(callback)

    @contextmanager
    def batch(self):
        """Group mutations so listeners never observe a half-applied change."""
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
            if self._batch_depth == 0 and self._pending:
                self._pending = False
                self._changed()

    def _changed(self) -> None:
        if self._batch_depth:
            self._pending = True
            return
        self.version += 1
        for callback in self._listeners:
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Store listener failed: {e}")

    # ── Mutations ────────────────────────────────────────────────────────────

    def load(self, tasks: Iterable[Task]) -> None:
        """Replace the whole contents. Tasks with `order` are sorted by it."""
        incoming = list(tasks)
        seen = set()
        for task in incoming:
            if task.is_draft:
                raise ValueError(f"Cannot load draft task '{task.title}'")
            if task.id in seen:
                raise DuplicateId(task.id)
            seen.add(task.id)
        # sorted() is stable, so unordered tasks keep arrival order
        self._tasks = sorted(incoming, key=_order_key)
        self._changed()

    def insert(self, task: Task, index: Optional[int] = None) -> None:
        """Insert a persisted task, appended or at an absolute position."""
        if task.is_draft:
            raise ValueError(f"Cannot insert draft task '{task.title}'")
        if self.index_of(task.id) is not None:
            raise DuplicateId(task.id)
        if index is None or index >= len(self._tasks):
            self._tasks.append(task)
        else:
            self._tasks.insert(max(index, 0), task)
        self._changed()

    def replace(self, task: Task) -> Task:
        """Swap in a new version of a task, keeping its position. Returns the old one."""
        idx = self.index_of(task.id)
        if idx is None:
            raise TaskNotFound(task.id)
        previous = self._tasks[idx]
        self._tasks[idx] = task
        self._changed()
        return previous

    def remove(self, task_id: str) -> Task:
        """Remove a task by id and return it."""
        idx = self.index_of(task_id)
        if idx is None:
            raise TaskNotFound(task_id)
        removed = self._tasks.pop(idx)
        self._changed()
        return removed

    # ── Reads ────────────────────────────────────────────────────────────────

    def get(self, task_id: str) -> Optional[Task]:
        idx = self.index_of(task_id)
        return self._tasks[idx] if idx is not None else None

    def index_of(self, task_id: str) -> Optional[int]:
        for idx, task in enumerate(self._tasks):
            if task.id == task_id:
                return idx
        return None

    def snapshot(self) -> Tuple[Task, ...]:
        """Immutable view of the current sequence."""
        return tuple(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return isinstance(task_id, str) and self.index_of(task_id) is not None

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[Task]:
        return iter(tuple(self._tasks))
