"""
Keyed debouncing on the running event loop.

Each key holds at most one pending timer. Scheduling again for a key that
is already pending cancels the old timer and starts a new one, so a burst
of triggers results in exactly one call once the burst goes quiet.
"""

import asyncio
from typing import Callable, Dict, Hashable, Optional

from ..utils.logging import get_logger


logger = get_logger("chatsync.debounce")


class Debouncer:
    """Arena of per-key cancellable timers."""

    def __init__(self, delay_ms: int, name: str = "debounce"):
        self.delay = delay_ms / 1000.0
        self.name = name
        self._timers: Dict[Hashable, asyncio.TimerHandle] = {}

    @property
    def pending(self) -> int:
        return len(self._timers)

    def is_pending(self, key: Hashable) -> bool:
        return key in self._timers

    def schedule(
        self,
        key: Hashable,
        callback: Callable[[], None],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        """Start (or restart) the timer for ``key``."""
        replaced = self.cancel(key)
        loop = loop or asyncio.get_running_loop()
        self._timers[key] = loop.call_later(self.delay, self._fire, key, callback)
        logger.debug("debounce_scheduled", debouncer=self.name, key=key, replaced=replaced)

    def cancel(self, key: Hashable) -> bool:
        """Cancel the pending timer for ``key``; True when one was pending."""
        handle = self._timers.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> int:
        """Cancel every pending timer and return how many there were."""
        count = len(self._timers)
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        if count:
            logger.debug("debounce_cancelled_all", debouncer=self.name, count=count)
        return count

    def _fire(self, key: Hashable, callback: Callable[[], None]) -> None:
        self._timers.pop(key, None)
        try:
            callback()
        except Exception as e:
            logger.error(
                "debounce_callback_failed",
                debouncer=self.name,
                key=key,
                error=str(e),
                exc_info=True
            )


class DecryptionDebouncer(Debouncer):
    """Coalesces decrypt-completion bursts into one re-projection per room.

    Per room: idle -> pending (timer running) -> idle (re-projection ran).
    """

    def __init__(self, delay_ms: int = 100):
        super().__init__(delay_ms, name="decryption")

    def event_completed(
        self,
        room_id: str,
        reproject: Callable[[str], None],
    ) -> None:
        self.schedule(room_id, lambda: reproject(room_id))
