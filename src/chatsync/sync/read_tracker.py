"""
Fire-and-forget outbound dispatch: read receipts and typing notifications.
"""

import asyncio
from typing import Coroutine, Optional, Set

from ..facade import Room, Session
from ..utils.errors import best_effort
from ..utils.logging import get_logger


logger = get_logger("chatsync.read_tracker")


class BackgroundDispatcher:
    """Runs best-effort coroutines as tracked tasks."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def spawn(self, awaitable: Coroutine, event: str, **log_context) -> Optional[asyncio.Task]:
        """Run ``awaitable`` in the background; None when no loop is running."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            awaitable.close()
            logger.warning(event, error=str(e), error_type=type(e).__name__, **log_context)
            return None
        task = loop.create_task(best_effort(awaitable, event, **log_context))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    async def drain(self) -> None:
        """Wait for every in-flight task (used by tests and shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class ReadTracker(BackgroundDispatcher):
    """Sends a read receipt for the newest entry of a selected room."""

    def mark_read(self, session: Session, room: Optional[Room]) -> Optional[asyncio.Task]:
        if room is None:
            return None
        events = room.live_timeline_events()
        if not events:
            return None
        latest = events[-1]
        logger.debug("read_receipt_dispatched", room_id=room.room_id, event_id=latest.event_id)
        return self.spawn(
            session.send_read_receipt(latest),
            "read_receipt_failed",
            room_id=room.room_id,
            event_id=latest.event_id,
        )
