"""Sync engine and its collaborators."""

from .engine import SyncStateEngine
from .debounce import Debouncer, DecryptionDebouncer
from .dispatcher import EventDispatcher
from .read_tracker import ReadTracker
from .room_waiter import RoomCreationWaiter
from .timeline import TimelineProjector, summarize_rooms
from .typing_notifier import TypingNotifier

__all__ = [
    'SyncStateEngine',
    'Debouncer',
    'DecryptionDebouncer',
    'EventDispatcher',
    'ReadTracker',
    'RoomCreationWaiter',
    'TimelineProjector',
    'TypingNotifier',
    'summarize_rooms',
]
