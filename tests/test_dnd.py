"""
Tests for the drag-and-drop engine: planning, no-ops, filtered indexes,
reindexing and workflow transition tables.
"""
from datetime import datetime, timezone

import pytest

from conftest import make_task
from taskboard.dnd import (
    DragEvent,
    DropLocation,
    apply_move,
    parse_transitions,
    plan_move,
    transition_allowed,
)
from taskboard.schema import Effort, Status
from taskboard.store import TaskStore
from taskboard.view import build_board_view

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def drag(task_id, src_col, src_idx, dst_col=None, dst_idx=0):
    dest = DropLocation(dst_col, dst_idx) if dst_col is not None else None
    return DragEvent(task_id=task_id, source=DropLocation(src_col, src_idx), destination=dest)


def column_ids(store, status, search="", effort="all"):
    return [t.id for t in build_board_view(store.snapshot(), search, effort).column(status)]


def move(store, event, **kwargs):
    plan = plan_move(store.snapshot(), event, now=NOW, **kwargs)
    if plan is not None:
        apply_move(store, plan)
    return plan


@pytest.fixture
def store():
    return TaskStore([
        make_task("A", "Alpha", Status.TODO, order=0),
        make_task("B", "Bravo", Status.TODO, order=1),
        make_task("C", "Charlie", Status.IN_PROGRESS, order=0),
        make_task("D", "Delta", Status.DONE, order=0),
    ])


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Moves
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestMoveAcrossColumns:

    def test_move_to_other_column_head(self, store):
        plan = move(store, drag("A", "todo", 0, "inProgress", 0))
        assert plan.crosses_columns
        assert store.get("A").status == Status.IN_PROGRESS
        assert column_ids(store, Status.TODO) == ["B"]
        assert column_ids(store, Status.IN_PROGRESS) == ["A", "C"]

    def test_move_to_column_tail(self, store):
        move(store, drag("A", "todo", 0, "inProgress", 1))
        assert column_ids(store, Status.IN_PROGRESS) == ["C", "A"]

    def test_index_past_end_appends_to_column(self, store):
        move(store, drag("A", "todo", 0, "inProgress", 99))
        assert column_ids(store, Status.IN_PROGRESS) == ["C", "A"]

    def test_drop_on_empty_column(self, store):
        move(store, drag("C", "inProgress", 0, "backlog", 0))
        assert column_ids(store, Status.BACKLOG) == ["C"]
        assert column_ids(store, Status.IN_PROGRESS) == []

    def test_moving_last_item_leaves_column_empty(self, store):
        move(store, drag("D", "done", 0, "todo", 0))
        assert column_ids(store, Status.DONE) == []
        assert column_ids(store, Status.TODO) == ["D", "A", "B"]

    def test_moving_into_done_stamps_completion(self, store):
        move(store, drag("C", "inProgress", 0, "done", 0))
        assert store.get("C").completed_at == NOW

    def test_moving_out_of_done_clears_completion(self, store):
        assert store.get("D").completed_at is not None
        move(store, drag("D", "done", 0, "backlog", 0))
        assert store.get("D").completed_at is None

    def test_any_status_to_any_status(self, store):
        move(store, drag("A", "todo", 0, "done", 0))
        assert store.get("A").status == Status.DONE
        move(store, drag("A", "done", 0, "backlog", 0))
        assert store.get("A").status == Status.BACKLOG

    def test_moved_task_revision_bumped(self, store):
        before = store.get("A").revision
        move(store, drag("A", "todo", 0, "inProgress", 0))
        assert store.get("A").revision == before + 1

    def test_orders_reindexed_in_both_columns(self, store):
        plan = move(store, drag("A", "todo", 0, "inProgress", 0))
        assert store.get("A").order == 0
        assert store.get("C").order == 1
        assert store.get("B").order == 0
        assert {t.id for t in plan.reindexed} == {"B", "C"}

    def test_unaffected_columns_untouched(self, store):
        d_before = store.get("D")
        move(store, drag("A", "todo", 0, "inProgress", 0))
        assert store.get("D") is d_before


class TestReorderWithinColumn:

    def test_same_column_reorder(self, store):
        plan = move(store, drag("A", "todo", 0, "todo", 1))
        assert not plan.crosses_columns
        assert column_ids(store, Status.TODO) == ["B", "A"]
        assert store.get("B").order == 0
        assert store.get("A").order == 1

    def test_status_reassigned_even_when_unchanged(self, store):
        plan = move(store, drag("B", "todo", 1, "todo", 0))
        assert plan.moved.status == Status.TODO
        assert column_ids(store, Status.TODO) == ["B", "A"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# No-ops
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestNoOps:

    def test_no_destination(self, store):
        before = store.snapshot()
        assert move(store, drag("A", "todo", 0)) is None
        assert all(a is b for a, b in zip(store.snapshot(), before))

    def test_self_drop(self, store):
        before = store.snapshot()
        version = store.version
        assert move(store, drag("A", "todo", 0, "todo", 0)) is None
        assert store.version == version
        assert all(a is b for a, b in zip(store.snapshot(), before))

    def test_unknown_column(self, store):
        assert move(store, drag("A", "todo", 0, "review", 0)) is None
        assert store.get("A").status == Status.TODO

    def test_unknown_task(self, store):
        assert move(store, drag("Z", "todo", 0, "done", 0)) is None


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Filtered indexes
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestFilteredDrop:

    @pytest.fixture
    def mixed(self):
        return TaskStore([
            make_task("f1", "Form", Status.TODO, Effort.FRONTEND),
            make_task("b1", "Backend job", Status.TODO, Effort.BACKEND),
            make_task("f2", "Footer", Status.TODO, Effort.FRONTEND),
            make_task("b2", "Backend queue", Status.BACKLOG, Effort.BACKEND),
            make_task("b3", "Backend cache", Status.TODO, Effort.BACKEND),
        ])

    def test_index_refers_to_visible_tasks(self, mixed):
        # With the backend filter the todo column shows [b1, b3]
        assert column_ids(mixed, Status.TODO, effort="backend") == ["b1", "b3"]
        move(mixed, drag("b2", "backlog", 0, "todo", 1), effort="backend")
        assert column_ids(mixed, Status.TODO, effort="backend") == ["b1", "b2", "b3"]
        # Hidden frontend tasks keep their relative order
        assert column_ids(mixed, Status.TODO) == ["f1", "b1", "f2", "b2", "b3"]

    def test_drop_at_visible_head(self, mixed):
        move(mixed, drag("b2", "backlog", 0, "todo", 0), search_term="backend")
        assert column_ids(mixed, Status.TODO, search="backend") == ["b2", "b1", "b3"]

    def test_drop_past_visible_end_goes_after_last_visible(self, mixed):
        move(mixed, drag("b2", "backlog", 0, "todo", 2), effort="backend")
        assert column_ids(mixed, Status.TODO, effort="backend") == ["b1", "b3", "b2"]

    def test_drop_into_column_with_only_hidden_tasks(self, mixed):
        move(mixed, drag("b2", "backlog", 0, "todo", 0), effort="backend", search_term="queue")
        assert column_ids(mixed, Status.TODO) == ["f1", "b1", "f2", "b3", "b2"]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Transition tables & events
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestTransitions:

    def test_parse_empty_is_unrestricted(self):
        assert parse_transitions({}) is None
        assert transition_allowed(None, Status.BACKLOG, Status.DONE)

    def test_parse_rejects_unknown_status(self):
        with pytest.raises(ValueError):
            parse_transitions({"todo": ["review"]})

    def test_disallowed_move_is_noop(self, store):
        table = parse_transitions({"todo": ["inProgress"], "inProgress": ["done"]})
        assert move(store, drag("A", "todo", 0, "done", 0), transitions=table) is None
        assert store.get("A").status == Status.TODO

    def test_allowed_move_applies(self, store):
        table = parse_transitions({"todo": ["inProgress"]})
        assert move(store, drag("A", "todo", 0, "inProgress", 0), transitions=table) is not None
        assert store.get("A").status == Status.IN_PROGRESS

    def test_same_column_reorder_always_allowed(self, store):
        table = parse_transitions({"todo": []})
        assert move(store, drag("A", "todo", 0, "todo", 1), transitions=table) is not None


class TestDragEvent:

    def test_from_drop_result(self):
        event = DragEvent.from_dict({
            "draggableId": "A",
            "source": {"droppableId": "todo", "index": 0},
            "destination": {"droppableId": "done", "index": 2},
        })
        assert event.task_id == "A"
        assert event.source == DropLocation("todo", 0)
        assert event.destination == DropLocation("done", 2)

    def test_from_drop_result_without_destination(self):
        event = DragEvent.from_dict({
            "draggableId": "A",
            "source": {"droppableId": "todo", "index": 0},
            "destination": None,
        })
        assert event.destination is None

    def test_missing_source_rejected(self):
        with pytest.raises(ValueError):
            DragEvent.from_dict({"draggableId": "A"})
