"""Data models for chatsync."""

from .state import (
    MessageRecord,
    MessageType,
    RoomSummary,
    StateSnapshot,
    SyncStatus,
    RECOGNIZED_EVENT_TYPES,
)

__all__ = [
    'MessageRecord',
    'MessageType',
    'RoomSummary',
    'StateSnapshot',
    'SyncStatus',
    'RECOGNIZED_EVENT_TYPES',
]
