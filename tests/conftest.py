"""Shared test fixtures for the task board tests."""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Ensure the package root is importable without installing
sys.path.insert(0, str(Path(__file__).parent.parent))

from taskboard.controller import BoardController
from taskboard.remote import InMemoryRemoteSync
from taskboard.schema import Actor, Effort, Status, Task

FIXED_NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_task(task_id: str, title: str = "", status: Status = Status.TODO,
              efforts: Effort = Effort.BACKEND, order=None, **kwargs) -> Task:
    return Task(
        id=task_id,
        title=title or f"Task {task_id}",
        status=status,
        efforts=efforts,
        order=order,
        completed_at=FIXED_NOW if status == Status.DONE else None,
        **kwargs,
    )


@pytest.fixture
def actor():
    return Actor(email="dev@example.com", role="developer", id="emp-1", name="Dev")


@pytest.fixture
def remote(actor):
    return InMemoryRemoteSync(actors={actor.email: actor})


@pytest.fixture
def controller(remote):
    return BoardController(remote, clock=lambda: FIXED_NOW)


@pytest.fixture
def seeded(remote, controller, actor):
    """Controller loaded with A, B in todo, C in inProgress, D in done."""
    import asyncio

    for task in [
        make_task("A", "Write API", Status.TODO, Effort.BACKEND, order=0),
        make_task("B", "Build form", Status.TODO, Effort.FRONTEND, order=1),
        make_task("C", "Wire login", Status.IN_PROGRESS, Effort.FULLSTACK, order=0),
        make_task("D", "Ship docs", Status.DONE, Effort.FRONTEND, order=0),
    ]:
        remote.tasks[task.id] = task
    asyncio.run(controller.load_board(actor))
    return controller
