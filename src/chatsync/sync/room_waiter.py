"""
Waiting for a freshly created room to show up locally.

Creating a room returns its id before the sync loop has delivered the room
itself. RoomCreationWaiter polls the session's room lookup on a fixed
interval until the room appears or the deadline passes.
"""

import asyncio
from typing import Callable, Optional

from ..facade import Room
from ..utils.errors import TimeoutError, ErrorContext
from ..utils.logging import get_logger


logger = get_logger("chatsync.room_waiter")


class RoomCreationWaiter:
    """Bounded polling for room materialization."""

    def __init__(self, timeout_ms: int = 5000, interval_ms: int = 100):
        self.timeout_ms = timeout_ms
        self.interval_ms = interval_ms

    async def wait_for_room(
        self,
        lookup: Callable[[str], Optional[Room]],
        room_id: str,
        timeout_ms: Optional[int] = None,
        interval_ms: Optional[int] = None,
        is_current: Optional[Callable[[], bool]] = None,
    ) -> Optional[Room]:
        """
        Poll ``lookup(room_id)`` until it returns a room.

        Args:
            lookup: Room lookup, normally ``session.get_room``
            room_id: Id returned by room creation
            timeout_ms: Deadline, defaults to the waiter's
            interval_ms: Poll interval, defaults to the waiter's
            is_current: Returns False once the owning session is gone; the
                wait then stops and returns None

        Raises:
            TimeoutError: the room did not appear before the deadline
        """
        timeout = (timeout_ms if timeout_ms is not None else self.timeout_ms) / 1000.0
        interval = (interval_ms if interval_ms is not None else self.interval_ms) / 1000.0
        loop = asyncio.get_running_loop()
        start = loop.time()

        while True:
            if is_current is not None and not is_current():
                logger.debug("room_wait_cancelled", room_id=room_id)
                return None

            room = lookup(room_id)
            if room is not None:
                logger.debug(
                    "room_materialized",
                    room_id=room_id,
                    waited_ms=int((loop.time() - start) * 1000)
                )
                return room

            if loop.time() - start >= timeout:
                raise TimeoutError(
                    f"Timed out waiting for room {room_id}",
                    context=ErrorContext(
                        room_id=room_id,
                        component="room_waiter",
                        operation="wait_for_room",
                        metadata={"timeout_ms": int(timeout * 1000)},
                    ),
                )

            await asyncio.sleep(interval)
