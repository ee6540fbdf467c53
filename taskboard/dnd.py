"""
Drag-and-Drop Engine.

Turns "pick up task T at (source column, index), drop at (dest column,
index)" into a deterministic reordering of the Task Store. Indexes are
positions in the *filtered* column the user saw; plan_move translates
them back to absolute store positions.

Planning is pure (plan_move); applying a plan goes through the store's
own operations (apply_move).
"""
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

from .schema import Status, Task
from .store import TaskStore
from .view import ALL_EFFORTS, EffortFilter, normalize_effort_filter, task_matches

logger = logging.getLogger(__name__)

TransitionTable = Mapping[Status, FrozenSet[Status]]


@dataclass(frozen=True)
class DropLocation:
    column: str
    index: int


@dataclass(frozen=True)
class DragEvent:
    """A finished drag gesture. destination is None when dropped outside a column."""
    task_id: str
    source: DropLocation
    destination: Optional[DropLocation] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DragEvent":
        """Accept a drop result: {draggableId, source:{droppableId,index}, destination}."""
        def location(raw: Optional[Dict[str, Any]]) -> Optional[DropLocation]:
            if not raw:
                return None
            column = raw.get("droppableId", raw.get("column"))
            return DropLocation(column=str(column), index=int(raw.get("index", 0)))

        source = location(data.get("source"))
        if source is None:
            raise ValueError("Drag event has no source")
        return cls(
            task_id=str(data.get("draggableId", data.get("task_id", ""))),
            source=source,
            destination=location(data.get("destination")),
        )

    def is_self_drop(self) -> bool:
        return (
            self.destination is not None
            and self.destination.column == self.source.column
            and self.destination.index == self.source.index
        )


@dataclass(frozen=True)
class MovePlan:
    """Result of planning a move: the moved task and where it lands."""
    task_id: str
    previous: Task
    moved: Task
    position: int                       # absolute store index after removal
    reindexed: Tuple[Task, ...] = ()    # neighbours whose `order` changed

    @property
    def crosses_columns(self) -> bool:
        return self.previous.status != self.moved.status


# ── Workflow transitions ─────────────────────────────────────────────────────

def parse_transitions(raw: Optional[Mapping[str, Iterable[str]]]) -> Optional[TransitionTable]:
    """Build a transition table from {status: [next statuses]}. Empty means unrestricted."""
    if not raw:
        return None
    table: Dict[Status, FrozenSet[Status]] = {}
    for source, targets in raw.items():
        if not Status.is_valid(source):
            raise ValueError(f"Unknown status in transition table: {source}")
        allowed = set()
        for target in targets or []:
            if not Status.is_valid(target):
                raise ValueError(f"Unknown status in transition table: {target}")
            allowed.add(Status(target))
        table[Status(source)] = frozenset(allowed)
    return table


def transition_allowed(table: Optional[TransitionTable], current: Status, target: Status) -> bool:
    if table is None or current == target:
        return True
    return target in table.get(current, frozenset())


# ── Planning ─────────────────────────────────────────────────────────────────

def _index_by_id(tasks: Sequence[Task], task_id: str) -> Optional[int]:
    for idx, task in enumerate(tasks):
        if task.id == task_id:
            return idx
    return None


def _insert_position(remaining: List[Task], dest: Status, dest_index: int,
                     search_term: str, effort: EffortFilter) -> int:
    visible = [
        (idx, t) for idx, t in enumerate(remaining)
        if t.status == dest and task_matches(t, search_term, effort)
    ]
    if 0 <= dest_index < len(visible):
        return visible[dest_index][0]
    if dest_index < 0 and visible:
        return visible[0][0]
    if visible:
        return visible[-1][0] + 1
    column = [idx for idx, t in enumerate(remaining) if t.status == dest]
    if column:
        return column[-1] + 1
    return len(remaining)


def reindex_columns(sequence: List[Task], columns: Iterable[Status], skip_id: str = "") -> Tuple[List[Task], Tuple[Task, ...]]:
    """Renumber `order` 0..n-1 in each column; return new sequence and changed neighbours."""
    counters = {status: 0 for status in columns}
    result: List[Task] = []
    changed: List[Task] = []
    for task in sequence:
        if task.status in counters:
            position = counters[task.status]
            counters[task.status] += 1
            if task.order != position:
                task = replace(task, order=position)
                if task.id != skip_id:
                    changed.append(task)
        result.append(task)
    return result, tuple(changed)


def plan_move(
    tasks: Sequence[Task],
    event: DragEvent,
    search_term: str = "",
    effort: EffortFilter = ALL_EFFORTS,
    now: Optional[datetime] = None,
    transitions: Optional[TransitionTable] = None,
) -> Optional[MovePlan]:
    """Plan a drag-and-drop move. None means the gesture is a no-op."""
    dest = event.destination
    if dest is None:
        return None
    if not Status.is_valid(dest.column):
        logger.warning(f"Ignoring drop on unknown column {dest.column!r}")
        return None
    if event.is_self_drop():
        return None

    tasks = list(tasks)
    idx = _index_by_id(tasks, event.task_id)
    if idx is None:
        logger.warning(f"Ignoring drop of unknown task {event.task_id}")
        return None

    original = tasks[idx]
    target = Status(dest.column)
    if event.source.column != original.status.value:
        logger.debug(
            f"Drag source {event.source.column} disagrees with task {original.id} "
            f"status {original.status.value}; using the store"
        )
    if not transition_allowed(transitions, original.status, target):
        logger.info(f"Transition {original.status.value} → {target.value} not allowed for {original.id}")
        return None

    moved = original.with_status(target, now).bumped()
    remaining = tasks[:idx] + tasks[idx + 1:]
    position = _insert_position(
        remaining, target, dest.index, search_term, normalize_effort_filter(effort)
    )

    sequence = remaining[:position] + [moved] + remaining[position:]
    sequence, reindexed = reindex_columns(sequence, {original.status, target}, moved.id)
    moved = sequence[position]

    return MovePlan(
        task_id=original.id,
        previous=original,
        moved=moved,
        position=position,
        reindexed=reindexed,
    )


def apply_move(store: TaskStore, plan: MovePlan) -> None:
    """Apply a plan through the store's own operations, as one change."""
    with store.batch():
        store.remove(plan.task_id)
        store.insert(plan.moved, plan.position)
        for task in plan.reindexed:
            store.replace(task)
