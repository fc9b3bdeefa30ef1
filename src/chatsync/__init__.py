"""
chatsync - client-side synchronization and state projection for chat clients.

This package sits between a session transport and a rendering layer and
provides:
- A sorted room list, kept current from sync/timeline/room events
- Per-room message projections with atomic replacement
- Incremental typing sets
- Debounced re-projection after decryption bursts
- Read receipts and typing notifications dispatched best-effort
"""

__version__ = "0.1.0"
__author__ = "chatsync contributors"

from .sync.engine import SyncStateEngine
from .models.state import (
    MessageRecord,
    MessageType,
    RoomSummary,
    StateSnapshot,
    SyncStatus,
)

__all__ = [
    'SyncStateEngine',
    'MessageRecord',
    'MessageType',
    'RoomSummary',
    'StateSnapshot',
    'SyncStatus',
]
