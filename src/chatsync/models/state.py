"""
Derived, render-ready state owned by the sync engine.

Every type here is immutable: consumers receive references they can hold
without observing later mutation.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple


class SyncStatus(Enum):
    """Connection health as reported by the session's sync loop."""
    STOPPED = "STOPPED"
    PREPARED = "PREPARED"
    SYNCING = "SYNCING"
    CATCHUP = "CATCHUP"
    RECONNECTING = "RECONNECTING"
    ERROR = "ERROR"

    @property
    def is_live(self) -> bool:
        """Whether the room list should be refreshed on entering this state."""
        return self in (SyncStatus.PREPARED, SyncStatus.SYNCING)


class MessageType(Enum):
    """Timeline entry types that are projected into messages."""
    TEXT = "m.room.message"
    MEMBERSHIP = "m.room.member"
    ENCRYPTED = "m.room.encrypted"


RECOGNIZED_EVENT_TYPES = frozenset(t.value for t in MessageType)


@dataclass(frozen=True)
class RoomSummary:
    """One row of the room list."""
    room_id: str
    display_name: Optional[str]
    last_active_timestamp: int
    is_encrypted: bool = False
    is_direct: bool = False

    @property
    def label(self) -> str:
        return self.display_name or self.room_id


@dataclass(frozen=True)
class MessageRecord:
    """A renderable message projected from one timeline entry."""
    id: str
    type: MessageType
    sender: str
    content: Mapping[str, Any]
    timestamp: int
    is_local: bool = False
    is_decryption_failure: bool = False

    @property
    def msgtype(self) -> Optional[str]:
        return self.content.get("msgtype")

    @property
    def body(self) -> str:
        return self.content.get("body") or ""


@dataclass(frozen=True)
class StateSnapshot:
    """Point-in-time view of everything the engine derives."""
    sync_status: SyncStatus = SyncStatus.STOPPED
    rooms: Tuple[RoomSummary, ...] = ()
    active_room_id: Optional[str] = None
    messages: Mapping[str, Tuple[MessageRecord, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    typing: Mapping[str, FrozenSet[str]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    last_error: Optional[str] = None
    user_id: Optional[str] = None
    logged_in: bool = False

    def room(self, room_id: str) -> Optional[RoomSummary]:
        for summary in self.rooms:
            if summary.room_id == room_id:
                return summary
        return None

    def messages_for(self, room_id: str) -> Tuple[MessageRecord, ...]:
        return self.messages.get(room_id, ())

    def typing_in(self, room_id: str) -> FrozenSet[str]:
        return self.typing.get(room_id, frozenset())

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data form, handy for debugging dumps."""
        return {
            "sync_status": self.sync_status.value,
            "rooms": [summary.room_id for summary in self.rooms],
            "active_room_id": self.active_room_id,
            "messages": {room_id: len(records) for room_id, records in self.messages.items()},
            "typing": {room_id: sorted(users) for room_id, users in self.typing.items()},
            "last_error": self.last_error,
            "user_id": self.user_id,
            "logged_in": self.logged_in,
        }
