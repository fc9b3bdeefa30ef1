"""
Timeline projection: raw room timelines into renderable message records.
"""

from typing import Iterable, List, Optional, Sequence, Tuple

from ..facade import Room, Session, TimelineEvent
from ..models.state import MessageRecord, MessageType, RECOGNIZED_EVENT_TYPES, RoomSummary
from ..utils.logging import get_logger


logger = get_logger("chatsync.timeline")


def to_record(event: TimelineEvent) -> MessageRecord:
    """Map one recognized timeline entry to a MessageRecord."""
    is_failure = getattr(event, "is_decryption_failure", None)
    return MessageRecord(
        id=event.event_id,
        type=MessageType(event.event_type),
        sender=event.sender,
        content=dict(event.content or {}),
        timestamp=event.timestamp,
        is_local=event.status is not None,
        is_decryption_failure=bool(is_failure()) if callable(is_failure) else False,
    )


def project_events(events: Iterable[TimelineEvent]) -> Tuple[MessageRecord, ...]:
    """Filter to recognized types and map, keeping protocol order."""
    return tuple(
        to_record(event)
        for event in events
        if event.event_type in RECOGNIZED_EVENT_TYPES
    )


class TimelineProjector:
    """Builds per-room message projections from a session."""

    def project_room(self, session: Session, room_id: str) -> Optional[Tuple[MessageRecord, ...]]:
        """Project the live timeline of ``room_id``; None when the room is unknown."""
        room = session.get_room(room_id)
        if room is None:
            logger.debug("project_room_missing", room_id=room_id)
            return None
        records = project_events(room.live_timeline_events())
        logger.debug("room_projected", room_id=room_id, count=len(records))
        return records


def summarize_rooms(session: Session) -> Tuple[RoomSummary, ...]:
    """Build the room list, newest activity first.

    Rooms without a timestamp sort as 0. ``sorted`` is stable under
    ``reverse=True``, so equal timestamps keep the session's order.
    """
    rooms: Sequence[Room] = session.list_rooms() or []
    summaries: List[RoomSummary] = [
        RoomSummary(
            room_id=room.room_id,
            display_name=room.display_name,
            last_active_timestamp=room.last_active_timestamp() or 0,
            is_encrypted=bool(session.is_room_encrypted(room.room_id)),
            is_direct=bool(room.is_direct_message()),
        )
        for room in rooms
    ]
    summaries.sort(key=lambda s: s.last_active_timestamp, reverse=True)
    return tuple(summaries)
