from datetime import datetime
from typing import List
from enum import Enum
from pydantic import BaseModel, Field

from app.utils.helpers import get_current_timestamp


class NotificationLevel(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class Notification(BaseModel):
    """A transient, user-visible message (rendered as a toast by clients)."""
    level: NotificationLevel
    message: str
    created_at: datetime = Field(default_factory=get_current_timestamp)


class Notifier:
    """Buffers notifications until the HTTP layer drains them into a response."""

    def __init__(self):
        self._pending: List[Notification] = []

    def success(self, message: str):
        self._pending.append(Notification(level=NotificationLevel.SUCCESS, message=message))

    def error(self, message: str):
        self._pending.append(Notification(level=NotificationLevel.ERROR, message=message))

    @property
    def pending(self) -> List[Notification]:
        return list(self._pending)

    def drain(self) -> List[Notification]:
        """Return and forget every buffered notification."""
        drained, self._pending = self._pending, []
        return drained
