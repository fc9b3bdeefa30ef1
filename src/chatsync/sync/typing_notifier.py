"""
Outbound typing state with idle detection.

Typing is announced once at the start of a burst of input and withdrawn
when input has been idle for ``idle_ms`` or when the composed text is sent
or discarded.
"""

from typing import Optional, Set, TYPE_CHECKING

from ..utils.logging import get_logger
from .debounce import Debouncer

if TYPE_CHECKING:
    from .engine import SyncStateEngine


logger = get_logger("chatsync.typing")


class TypingNotifier:
    """Drives ``engine.send_typing`` from raw input activity."""

    def __init__(self, engine: "SyncStateEngine", idle_ms: Optional[int] = None):
        self.engine = engine
        idle_ms = idle_ms if idle_ms is not None else engine.config.sync.typing_idle_ms
        self._idle = Debouncer(idle_ms, name="typing_idle")
        self._typing_in: Set[str] = set()

    def is_typing(self, room_id: str) -> bool:
        return room_id in self._typing_in

    def notify_input(self, room_id: str) -> None:
        """Record input activity in ``room_id``."""
        if room_id not in self._typing_in:
            self._typing_in.add(room_id)
            self.engine.send_typing(room_id, True)
        self._idle.schedule(room_id, lambda: self._went_idle(room_id))

    def stop(self, room_id: str) -> None:
        """Withdraw typing now (message sent or input cleared)."""
        self._idle.cancel(room_id)
        if room_id in self._typing_in:
            self._typing_in.discard(room_id)
            self.engine.send_typing(room_id, False)

    def stop_all(self) -> None:
        for room_id in list(self._typing_in):
            self.stop(room_id)
        self._idle.cancel_all()

    def _went_idle(self, room_id: str) -> None:
        logger.debug("typing_idle", room_id=room_id)
        if room_id in self._typing_in:
            self._typing_in.discard(room_id)
            self.engine.send_typing(room_id, False)
