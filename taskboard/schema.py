"""
Task board schema.

Workflow columns:
  backlog → todo → inProgress → done

Transitions are not restricted to adjacent columns unless a transition
table is configured (see dnd.py). `completed_at` is stamped on entry to
`done` and cleared on exit.

Wire format follows the project-management API: camelCase keys,
ISO-8601 timestamps.
"""
from enum import Enum
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
import logging
import re

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Status(Enum):
    """Workflow columns, in board order."""
    BACKLOG = "backlog"
    TODO = "todo"
    IN_PROGRESS = "inProgress"
    DONE = "done"

    @classmethod
    def from_str(cls, value: Any) -> "Status":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return cls[str(value).upper()]
        except KeyError:
            pass
        if value not in (None, ""):
            logger.warning(f"Unknown status {value!r}, treating as {cls.BACKLOG.value}")
        return cls.BACKLOG

    @classmethod
    def is_valid(cls, value: Any) -> bool:
        return isinstance(value, cls) or value in {s.value for s in cls}


class Effort(Enum):
    """Effort category, also the board's effort filter values."""
    BACKEND = "backend"
    FRONTEND = "frontend"
    FULLSTACK = "backend + frontend"

    @classmethod
    def from_str(cls, value: Any) -> "Effort":
        if isinstance(value, cls):
            return value
        compact = str(value or "").replace(" ", "").lower()
        for effort in cls:
            if effort.value.replace(" ", "") == compact:
                return effort
        return cls.BACKEND


class Priority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
    CRITICAL = "critical"
    NONE = "null"

    @classmethod
    def from_str(cls, value: Any) -> "Priority":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.NONE


class TaskType(Enum):
    BUG = "bug"
    FEATURE = "feature"
    DOCUMENTATION = "documentation"
    TASK = "task"
    CHANGE_REQUEST = "changeRequest"
    OTHER = "other"

    @classmethod
    def from_str(cls, value: Any) -> "TaskType":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.OTHER


class Complexity(Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


# ── Timestamp helpers ────────────────────────────────────────────────────────

def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO string, epoch-seconds dict, or datetime. None passes through."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, dict):
        # Firestore-style {"seconds": ..., "nanoseconds": ...}
        seconds = value.get("seconds", value.get("_seconds"))
        if seconds is None:
            return None
        return datetime.fromtimestamp(float(seconds), tz=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# ── People, comments, dependencies ───────────────────────────────────────────

@dataclass
class PersonSummary:
    """Lightweight reference to an employee."""
    id: str
    name: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_value(cls, value: Any) -> Optional["PersonSummary"]:
        if not value:
            return None
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            return cls(id=str(value.get("id", "")), name=value.get("name", ""))
        return cls(id=str(value), name=str(value))


MENTION_RE = re.compile(r"@([\w.\-]+)")


def extract_mentions(text: str) -> List[str]:
    """Return @-mentions in order of first appearance, without duplicates."""
    seen: List[str] = []
    for name in MENTION_RE.findall(text or ""):
        if name not in seen:
            seen.append(name)
    return seen


@dataclass
class Comment:
    id: str
    content: str
    author: str
    task_id: str = ""
    created_at: datetime = field(default_factory=utc_now)
    reactions: Dict[str, List[str]] = field(default_factory=dict)
    mentions: List[str] = field(default_factory=list)

    def toggle_reaction(self, emoji: str, reactor_id: str) -> "Comment":
        """Return a copy with reactor_id added to or removed from emoji."""
        reactions = {k: list(v) for k, v in self.reactions.items()}
        reactors = reactions.setdefault(emoji, [])
        if reactor_id in reactors:
            reactors.remove(reactor_id)
        else:
            reactors.append(reactor_id)
        if not reactors:
            del reactions[emoji]
        return replace(self, reactions=reactions)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "content": self.content,
            "author": self.author,
            "createdAt": format_datetime(self.created_at),
            "taskId": self.task_id,
            "reactions": {k: list(v) for k, v in self.reactions.items()},
        }
        if self.mentions:
            data["mentions"] = list(self.mentions)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Comment":
        reactions = {}
        for emoji, reactors in (data.get("reactions") or {}).items():
            # Reactor lists are sets on the wire; drop repeats, keep order
            reactions[emoji] = list(dict.fromkeys(str(r) for r in reactors or []))
        return cls(
            id=str(data.get("id", "")),
            content=data.get("content", ""),
            author=data.get("author", ""),
            task_id=data.get("taskId", ""),
            created_at=parse_datetime(data.get("createdAt")) or utc_now(),
            reactions=reactions,
            mentions=list(data.get("mentions") or []),
        )


@dataclass
class Dependencies:
    """Ids of tasks that should reach done first. Advisory only."""
    task_ids: List[str] = field(default_factory=list)

    def without(self, task_id: str) -> "Dependencies":
        return Dependencies(task_ids=[t for t in self.task_ids if t and t != task_id])


# ── Task ─────────────────────────────────────────────────────────────────────

@dataclass
class Task:
    """A unit of work on the board. An empty id marks a draft."""

    title: str
    id: str = ""
    description: str = ""
    time: float = 0.0                      # estimated hours
    efforts: Effort = Effort.BACKEND
    status: Status = Status.BACKLOG
    priority: Priority = Priority.NONE
    type: TaskType = TaskType.TASK

    assignee: Optional[PersonSummary] = None
    reporter: Optional[PersonSummary] = None

    created_at: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None

    project_id: Optional[str] = None
    stage_id: Optional[str] = None
    complexity: Optional[Complexity] = None
    quality_rating: Optional[float] = None
    order: Optional[int] = None
    dependencies: Optional[Dependencies] = None
    comments: List[Comment] = field(default_factory=list)

    # Local-only; bumped on every client-side change, never serialized
    revision: int = field(default=0, compare=False)

    def __post_init__(self):
        if self.dependencies is not None and self.id:
            self.dependencies = self.dependencies.without(self.id)

    @property
    def is_draft(self) -> bool:
        return not self.id

    def validate(self) -> None:
        """Raise ValueError if the task breaks a field constraint."""
        if self.time is None or self.time < 0:
            raise ValueError(f"Estimated time must be non-negative, got {self.time}")
        if not (self.title or "").strip():
            raise ValueError("Task title is required")

    def with_status(self, new_status: Status, now: Optional[datetime] = None) -> "Task":
        """Copy with new status; stamps or clears completed_at on done transitions."""
        now = now or utc_now()
        completed_at = self.completed_at
        if new_status == Status.DONE:
            if self.status != Status.DONE or completed_at is None:
                completed_at = now
        else:
            completed_at = None
        return replace(self, status=new_status, completed_at=completed_at, last_updated=now)

    def bumped(self, **changes) -> "Task":
        """Copy with changes applied and the local revision advanced."""
        return replace(self, revision=self.revision + 1, **changes)

    def normalized(self, now: Optional[datetime] = None) -> "Task":
        """Copy whose completed_at agrees with status."""
        if self.status == Status.DONE and self.completed_at is None:
            return replace(self, completed_at=self.last_updated or self.created_at or now or utc_now())
        if self.status != Status.DONE and self.completed_at is not None:
            return replace(self, completed_at=None)
        return self

    def to_dict(self, include_id: bool = True, include_comments: bool = True) -> Dict[str, Any]:
        """Serialize to the API's wire shape. Drafts omit the id."""
        data: Dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "time": self.time,
            "efforts": self.efforts.value,
            "status": self.status.value,
            "priority": self.priority.value,
            "type": self.type.value,
            "assignee": self.assignee.to_dict() if self.assignee else None,
            "reporter": self.reporter.to_dict() if self.reporter else None,
            "createdAt": format_datetime(self.created_at),
            "lastUpdated": format_datetime(self.last_updated),
            "completedAt": format_datetime(self.completed_at),
        }
        if include_id and self.id:
            data["id"] = self.id
        optional = {
            "dueDate": format_datetime(self.due_date),
            "startDate": format_datetime(self.start_date),
            "projectId": self.project_id,
            "stageId": self.stage_id,
            "complexity": self.complexity.value if self.complexity else None,
            "qualityRating": self.quality_rating,
            "order": self.order,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        if self.dependencies is not None:
            data["dependencies"] = {"taskIds": list(self.dependencies.task_ids)}
        if include_comments and self.comments:
            data["comments"] = [c.to_dict() for c in self.comments]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        """Deserialize from the wire shape, normalizing the completion stamp."""
        deps = data.get("dependencies")
        dependencies = None
        if isinstance(deps, dict):
            dependencies = Dependencies(task_ids=[str(t) for t in deps.get("taskIds") or []])

        complexity = None
        if data.get("complexity"):
            try:
                complexity = Complexity(data["complexity"])
            except ValueError:
                complexity = None

        order = data.get("order")
        task = cls(
            id=str(data.get("id") or ""),
            title=data.get("title") or "",
            description=data.get("description") or "",
            time=float(data.get("time") or 0),
            efforts=Effort.from_str(data.get("efforts")),
            status=Status.from_str(data.get("status")),
            priority=Priority.from_str(data.get("priority")),
            type=TaskType.from_str(data.get("type")),
            assignee=PersonSummary.from_value(data.get("assignee")),
            reporter=PersonSummary.from_value(data.get("reporter")),
            created_at=parse_datetime(data.get("createdAt")),
            last_updated=parse_datetime(data.get("lastUpdated")),
            completed_at=parse_datetime(data.get("completedAt")),
            due_date=parse_datetime(data.get("dueDate")),
            start_date=parse_datetime(data.get("startDate")),
            project_id=data.get("projectId"),
            stage_id=data.get("stageId"),
            complexity=complexity,
            quality_rating=data.get("qualityRating"),
            order=int(order) if order is not None else None,
            dependencies=dependencies,
            comments=[Comment.from_dict(c) for c in data.get("comments") or []],
        )
        return task.normalized()


@dataclass
class Actor:
    """The authenticated identity board operations run on behalf of."""
    email: str
    role: str = ""
    id: str = ""
    name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any], email: str = "") -> "Actor":
        return cls(
            email=data.get("email") or email,
            role=data.get("role", ""),
            id=str(data.get("id", "")),
            name=data.get("name", ""),
        )
