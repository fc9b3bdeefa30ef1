"""
The session transport surface chatsync consumes.

The transport itself lives outside this package; these protocols describe
what the engine calls on it and what it hands to event handlers.
"""

from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)


# Event names a session emits.
SYNC = "sync"
TIMELINE = "timeline"
ROOM_ADDED = "room-added"
TYPING = "typing"
DECRYPTION_COMPLETED = "decryption-completed"

EVENT_NAMES = (SYNC, TIMELINE, ROOM_ADDED, TYPING, DECRYPTION_COMPLETED)


@dataclass(frozen=True)
class SessionConfig:
    """Arguments for creating a session handle.

    An unauthenticated handle only carries ``base_url``.
    """
    base_url: str
    user_id: Optional[str] = None
    access_token: Optional[str] = None
    device_id: Optional[str] = None

    @property
    def authenticated(self) -> bool:
        return self.access_token is not None


@runtime_checkable
class TimelineEvent(Protocol):
    event_id: str
    event_type: str
    sender: str
    content: Mapping[str, Any]
    timestamp: int
    # Set while a local echo is still being sent, None once the server has it.
    status: Optional[str]
    room_id: Optional[str]

    def is_decryption_failure(self) -> bool: ...


@runtime_checkable
class TypingMember(Protocol):
    room_id: str
    user_id: str
    typing: bool


@runtime_checkable
class Room(Protocol):
    room_id: str
    display_name: Optional[str]

    def last_active_timestamp(self) -> Optional[int]: ...

    def live_timeline_events(self) -> Sequence[TimelineEvent]: ...

    def unread_notification_count(self) -> Optional[int]: ...

    def is_direct_message(self) -> bool: ...


EventHandler = Callable[..., None]


@runtime_checkable
class Session(Protocol):
    async def exchange_credentials(self, user_id: str, password: str) -> Mapping[str, Any]:
        """Return a mapping with ``user_id``, ``access_token`` and ``device_id``."""
        ...

    async def init_crypto(self) -> None: ...

    async def start_session(self, **options: Any) -> None: ...

    def stop_session(self) -> None: ...

    async def logout_remote(self) -> None: ...

    def list_rooms(self) -> List[Room]: ...

    def get_room(self, room_id: str) -> Optional[Room]: ...

    def is_room_encrypted(self, room_id: str) -> bool: ...

    async def send_text(self, room_id: str, text: str) -> Any: ...

    async def send_emote(self, room_id: str, text: str) -> Any: ...

    async def send_typing(self, room_id: str, is_typing: bool, ttl_ms: int) -> Any: ...

    async def send_read_receipt(self, event: TimelineEvent) -> Any: ...

    async def join_room(self, room_id_or_alias: str) -> Any: ...

    async def leave_room(self, room_id: str) -> Any: ...

    async def create_room(self, options: Dict[str, Any]) -> Mapping[str, Any]:
        """Return a mapping carrying the new ``room_id``."""
        ...

    def on(self, event_name: str, handler: EventHandler) -> None: ...

    def off(self, event_name: str, handler: EventHandler) -> None: ...


SessionFactory = Callable[[SessionConfig], Session]


__all__ = [
    'SYNC',
    'TIMELINE',
    'ROOM_ADDED',
    'TYPING',
    'DECRYPTION_COMPLETED',
    'EVENT_NAMES',
    'SessionConfig',
    'TimelineEvent',
    'TypingMember',
    'Room',
    'Session',
    'SessionFactory',
    'EventHandler',
]
