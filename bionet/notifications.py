"""
Notification Queue

System and teacher messages produced inside the tick (region created,
training started/completed, correction applied, utterances, sleep reports,
delegate failures) are queued here. The host drains the queue once per
external frame.
"""

from collections import deque
from dataclasses import dataclass
from enum import Enum, auto
from typing import Deque, List, Optional


class Sender(Enum):
    """Who a message is attributed to."""
    USER = "USER"
    SYSTEM = "SYSTEM"
    SELF = "SELF"
    TEACHER = "TEACHER"


class NotificationKind(Enum):
    """What happened."""
    UTTERANCE = auto()
    REGION_CREATED = auto()
    TRAINING_STARTED = auto()
    LESSON = auto()
    TRAINING_COMPLETED = auto()
    TRAINING_STOPPED = auto()
    CORRECTION_APPLIED = auto()
    REINFORCEMENT = auto()
    SLEEP_STARTED = auto()
    SLEEP_FINISHED = auto()
    PRUNED = auto()
    DELEGATE_FAILED = auto()
    SNAPSHOT_LOADED = auto()
    SNAPSHOT_FAILED = auto()
    INFO = auto()


@dataclass
class Notification:
    """A single drainable message."""
    kind: NotificationKind
    text: str
    timestamp: float
    sender: Sender = Sender.SYSTEM


class NotificationQueue:
    """
    Bounded FIFO of notifications.

    The oldest messages are dropped once capacity is reached so an
    unattended engine cannot grow the queue without bound.
    """

    def __init__(self, capacity: int = 256):
        self._items: Deque[Notification] = deque(maxlen=capacity)
        self.latest: Optional[Notification] = None

    def push(
        self,
        kind: NotificationKind,
        text: str,
        timestamp: float,
        sender: Sender = Sender.SYSTEM,
    ) -> Notification:
        note = Notification(kind=kind, text=text, timestamp=timestamp, sender=sender)
        self._items.append(note)
        self.latest = note
        return note

    def drain(self) -> List[Notification]:
        """Remove and return every queued notification, oldest first."""
        items = list(self._items)
        self._items.clear()
        return items

    def peek(self) -> List[Notification]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)
