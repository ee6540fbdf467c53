"""
User-facing notification feed.

The controller reports one notification per finished mutating operation
(success or error). UI shells subscribe and render them as toasts.
"""
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Deque, List

from .schema import utc_now

logger = logging.getLogger(__name__)

SUCCESS = "success"
ERROR = "error"


@dataclass(frozen=True)
class Notification:
    level: str
    title: str
    message: str
    created_at: datetime = field(default_factory=utc_now)


class Notifier:
    """Fans notifications out to subscribers and keeps a bounded history."""

    def __init__(self, history_size: int = 50):
        self.subscribers: List[Callable[[Notification], None]] = []
        self.history: Deque[Notification] = deque(maxlen=history_size)

    def subscribe(self, callback: Callable[[Notification], None]) -> None:
        self.subscribers.append(callback)

    def _emit(self, notification: Notification) -> None:
        self.history.append(notification)
        for callback in self.subscribers:
            try:
                callback(notification)
            except Exception as e:
                logger.error(f"Notification subscriber failed: {e}")

    def success(self, message: str) -> Notification:
        notification = Notification(level=SUCCESS, title="Success", message=message)
        self._emit(notification)
        return notification

    def error(self, message: str) -> Notification:
        notification = Notification(level=ERROR, title="Error", message=message)
        self._emit(notification)
        return notification
