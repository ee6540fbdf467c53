# Task board: board state synchronization for a kanban UI
#
# Components:
#   schema.py     - Data model (Task, Status, Effort, Comment, Actor)
#   store.py      - In-memory Task Store
#   view.py       - View Filter (search + effort → columns)
#   dnd.py        - Drag-and-drop move planning
#   remote.py     - Remote Sync boundary (HTTP + in-memory)
#   notify.py     - User-facing notification feed
#   controller.py - Board Controller (optimistic moves, pessimistic deletes)
#   config.py     - YAML configuration and logging setup
#   app.py        - build_board() wiring

from .controller import BoardController
from .dnd import DragEvent, DropLocation
from .errors import (
    BoardError,
    ConfigError,
    DuplicateId,
    RemoteError,
    RemoteNotFound,
    TaskNotFound,
    Unauthenticated,
)
from .schema import Actor, Comment, Effort, PersonSummary, Priority, Status, Task, TaskType
from .store import TaskStore
from .view import BoardView, FilterState, build_board_view

__all__ = [
    "Actor",
    "BoardController",
    "BoardError",
    "BoardView",
    "Comment",
    "ConfigError",
    "DragEvent",
    "DropLocation",
    "DuplicateId",
    "Effort",
    "FilterState",
    "PersonSummary",
    "Priority",
    "RemoteError",
    "RemoteNotFound",
    "Status",
    "Task",
    "TaskNotFound",
    "TaskStore",
    "TaskType",
    "Unauthenticated",
    "build_board_view",
]
