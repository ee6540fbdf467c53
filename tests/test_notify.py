"""Tests for the notification feed."""
from taskboard.notify import ERROR, SUCCESS, Notifier


def test_subscribers_receive_notifications():
    notifier = Notifier()
    seen = []
    notifier.subscribe(seen.append)
    notifier.success("Task added successfully.")
    notifier.error("Failed to delete task. Please try again.")
    assert [(n.level, n.title) for n in seen] == [(SUCCESS, "Success"), (ERROR, "Error")]


def test_history_is_bounded():
    notifier = Notifier(history_size=2)
    for i in range(3):
        notifier.success(f"n{i}")
    assert [n.message for n in notifier.history] == ["n1", "n2"]


def test_broken_subscriber_does_not_stop_others():
    notifier = Notifier()
    seen = []

    def boom(_):
        raise RuntimeError("ui gone")

    notifier.subscribe(boom)
    notifier.subscribe(seen.append)
    notifier.error("x")
    assert len(seen) == 1
