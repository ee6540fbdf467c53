"""
View Filter: derives the visible, column-partitioned board from the store.

Everything here is pure. Calling build_board_view twice with the same
inputs gives equal results; nothing in the store is touched.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Sequence, Tuple, Union

from .schema import Effort, Status, Task

ALL_EFFORTS = "all"

EffortFilter = Union[str, Effort]

# Progress bar value shown on each card
STATUS_PROGRESS = {
    Status.BACKLOG: 0,
    Status.TODO: 25,
    Status.IN_PROGRESS: 50,
    Status.DONE: 100,
}


def status_progress(status: Status) -> int:
    return STATUS_PROGRESS.get(status, 0)


def normalize_effort_filter(effort: EffortFilter) -> Union[str, Effort]:
    """`all` (or empty) stays `all`; anything else must name an Effort."""
    if isinstance(effort, Effort):
        return effort
    if not effort or str(effort).lower() == ALL_EFFORTS:
        return ALL_EFFORTS
    compact = str(effort).replace(" ", "").lower()
    for candidate in Effort:
        if candidate.value.replace(" ", "") == compact:
            return candidate
    raise ValueError(f"Unknown effort filter: {effort}")


def task_matches(task: Task, search_term: str = "", effort: EffortFilter = ALL_EFFORTS) -> bool:
    term = (search_term or "").lower()
    if term not in (task.title or "").lower():
        return False
    wanted = normalize_effort_filter(effort)
    return wanted == ALL_EFFORTS or task.efforts == wanted


def filter_tasks(tasks: Iterable[Task], search_term: str = "", effort: EffortFilter = ALL_EFFORTS) -> List[Task]:
    """Visible tasks in store order."""
    wanted = normalize_effort_filter(effort)
    return [t for t in tasks if task_matches(t, search_term, wanted)]


@dataclass(frozen=True)
class BoardView:
    """Column id → ordered visible tasks. Derived; never mutate."""
    columns: Tuple[Tuple[Status, Tuple[Task, ...]], ...]
    total: int = 0

    def column(self, status: Union[Status, str]) -> Tuple[Task, ...]:
        status = Status.from_str(status)
        for column_status, tasks in self.columns:
            if column_status == status:
                return tasks
        return ()

    @property
    def visible_count(self) -> int:
        return sum(len(tasks) for _, tasks in self.columns)

    def as_dict(self) -> Dict[str, List[Task]]:
        return {status.value: list(tasks) for status, tasks in self.columns}

    def position_of(self, task_id: str) -> Tuple[Status, int]:
        """(column, index) of a visible task; raises KeyError if hidden."""
        for status, tasks in self.columns:
            for idx, task in enumerate(tasks):
                if task.id == task_id:
                    return status, idx
        raise KeyError(task_id)


def partition(tasks: Sequence[Task]) -> Tuple[Tuple[Status, Tuple[Task, ...]], ...]:
    buckets: Dict[Status, List[Task]] = {s: [] for s in Status}
    for task in tasks:
        buckets[task.status].append(task)
    return tuple((s, tuple(buckets[s])) for s in Status)


def build_board_view(tasks: Sequence[Task], search_term: str = "", effort: EffortFilter = ALL_EFFORTS) -> BoardView:
    tasks = list(tasks)
    visible = filter_tasks(tasks, search_term, effort)
    return BoardView(columns=partition(visible), total=len(tasks))


@dataclass
class FilterState:
    """Session-local search term and effort selector."""
    search_term: str = ""
    effort: EffortFilter = ALL_EFFORTS

    def __post_init__(self):
        self.effort = normalize_effort_filter(self.effort)

    def key(self) -> Tuple[str, str]:
        effort = self.effort.value if isinstance(self.effort, Effort) else self.effort
        return (self.search_term, effort)

    def apply(self, tasks: Sequence[Task]) -> BoardView:
        return build_board_view(tasks, self.search_term, self.effort)


def board_stats(tasks: Iterable[Task]) -> Dict[str, Any]:
    """Counts by status and effort."""
    stats: Dict[str, Any] = {
        "by_status": {s.value: 0 for s in Status},
        "by_effort": {e.value: 0 for e in Effort},
        "total": 0,
    }
    for task in tasks:
        stats["by_status"][task.status.value] += 1
        stats["by_effort"][task.efforts.value] += 1
        stats["total"] += 1
    return stats
