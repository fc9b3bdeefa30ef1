"""
Display helpers for renderers.

These turn projected state into plain strings; styling is left to whatever
draws them.
"""

import re
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from ..models.state import MessageRecord, MessageType, RoomSummary, SyncStatus


USER_COLORS = (
    '#89b4fa',  # blue
    '#a6e3a1',  # green
    '#fab387',  # peach
    '#f38ba8',  # red
    '#cba6f7',  # mauve
    '#f9e2af',  # yellow
    '#94e2d5',  # teal
    '#89dceb',  # sky
    '#b4befe',  # lavender
    '#eba0ac',  # maroon
)

MAX_ROOM_NAME_LENGTH = 22

REPLY_FALLBACK_PATTERN = re.compile(r'^>.*\n\n', re.DOTALL)


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value >= 0x80000000 else value


def _utf16_units(text: str) -> Iterable[int]:
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        yield int.from_bytes(data[i:i + 2], "little")


def user_color(user_id: str) -> str:
    """Stable palette colour for a user id."""
    h = 0
    for unit in _utf16_units(user_id or ""):
        h = _to_int32(unit + (_to_int32(h << 5) - h))
    return USER_COLORS[abs(h) % len(USER_COLORS)]


def format_timestamp(ts_ms: int) -> str:
    """Local ``HH:MM`` for a millisecond epoch timestamp."""
    return datetime.fromtimestamp(ts_ms / 1000.0).strftime("%H:%M")


def localpart(user_id: Optional[str]) -> str:
    """``@alice:example.org`` -> ``alice``."""
    if not user_id:
        return "unknown"
    return user_id.split(":", 1)[0].replace("@", "", 1)


def room_label(summary: RoomSummary, max_length: int = MAX_ROOM_NAME_LENGTH) -> str:
    """Room name (or id) truncated to ``max_length`` characters."""
    name = summary.display_name or summary.room_id
    if len(name) > max_length:
        return name[:max_length - 1] + "…"
    return name


def membership_action(content) -> str:
    membership = content.get("membership")
    if membership == "join":
        return "joined the room"
    if membership == "leave":
        if content.get("prev_membership") == "invite":
            return "rejected invite"
        return "left the room"
    if membership == "invite":
        return "was invited"
    if membership == "ban":
        return "was banned"
    return ""


def strip_reply_fallback(record: MessageRecord) -> str:
    body = record.body
    relates_to = record.content.get("m.relates_to") or {}
    if relates_to.get("m.in_reply_to"):
        return REPLY_FALLBACK_PATTERN.sub("", body, count=1)
    return body


def describe_message(record: MessageRecord) -> str:
    """One-line plain-text rendering of a message record."""
    sender = localpart(record.sender)

    if record.type is MessageType.MEMBERSHIP:
        return f"-- {sender} {membership_action(record.content)}".rstrip()

    if record.is_decryption_failure:
        return f"{sender}: [unable to decrypt]"

    if record.msgtype == "m.emote":
        return f"* {sender} {record.body}"

    if record.msgtype == "m.image":
        return f"{sender}: [image: {record.body}]"

    if record.type is MessageType.ENCRYPTED:
        return f"{sender}: [encrypted]"

    return f"{sender}: {strip_reply_fallback(record)}"


def typing_summary(user_ids: Iterable[str], own_user_id: Optional[str] = None) -> str:
    """``"alice is typing"`` / ``"alice, bob are typing"``; empty when nobody is."""
    names = [localpart(uid) for uid in sorted(user_ids) if uid != own_user_id]
    if not names:
        return ""
    verb = "is" if len(names) == 1 else "are"
    return f"{', '.join(names)} {verb} typing"


def filter_rooms(rooms: Sequence[RoomSummary], query: str) -> List[RoomSummary]:
    """Rooms whose name or room-id localpart contains ``query`` (case-insensitive)."""
    q = (query or "").lower()
    matches = []
    for room in rooms:
        name = (room.display_name or "").lower()
        id_localpart = room.room_id.split(":", 1)[0].lower()
        if q in name or q in id_localpart:
            matches.append(room)
    return matches


def sync_indicator(status: SyncStatus) -> str:
    """Filled dot while connected, hollow otherwise."""
    if status in (SyncStatus.PREPARED, SyncStatus.SYNCING, SyncStatus.ERROR):
        return "●"
    return "○"
