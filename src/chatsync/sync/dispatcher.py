"""
Binding session events to engine state transitions.

The dispatcher owns the session subscriptions for one login. Every handler
it registers is tagged with the generation that was current at login; once
the engine moves to a new generation (logout, re-login) the handlers drop
their events instead of touching state that belongs to another session.
"""

from typing import Callable, Dict, List, Optional, Tuple

from ..facade import EventHandler, Session
from ..utils.logging import get_logger


logger = get_logger("chatsync.dispatcher")


class EventDispatcher:
    """Explicit event-name -> transition table with generation guarding."""

    def __init__(self, current_generation: Callable[[], int]):
        self._current_generation = current_generation
        self._transitions: Dict[str, Callable[..., None]] = {}
        self._bound: List[Tuple[str, EventHandler]] = []
        self._session: Optional[Session] = None
        self._generation: Optional[int] = None

    def register(self, event_name: str, transition: Callable[..., None]) -> None:
        """Map ``event_name`` to ``transition(session, *event_args)``."""
        self._transitions[event_name] = transition

    @property
    def event_names(self) -> List[str]:
        return list(self._transitions)

    @property
    def attached(self) -> bool:
        return self._session is not None

    def attach(self, session: Session, generation: int) -> None:
        """Subscribe every registered transition on ``session``."""
        self.detach()
        self._session = session
        self._generation = generation
        for event_name, transition in self._transitions.items():
            handler = self._bind(event_name, transition, session, generation)
            session.on(event_name, handler)
            self._bound.append((event_name, handler))
        logger.debug("dispatcher_attached", generation=generation, events=self.event_names)

    def detach(self) -> None:
        """Unsubscribe from the attached session, if any."""
        session = self._session
        if session is None:
            return
        for event_name, handler in self._bound:
            try:
                session.off(event_name, handler)
            except Exception as e:
                logger.warning("unsubscribe_failed", event_type=event_name, error=str(e))
        logger.debug("dispatcher_detached", generation=self._generation)
        self._bound.clear()
        self._session = None
        self._generation = None

    def _bind(
        self,
        event_name: str,
        transition: Callable[..., None],
        session: Session,
        generation: int,
    ) -> EventHandler:
        def handler(*args) -> None:
            if self._current_generation() != generation:
                logger.debug("stale_event_dropped", event_type=event_name, generation=generation)
                return
            try:
                transition(session, *args)
            except Exception as e:
                logger.error(
                    "event_handler_error",
                    event_type=event_name,
                    error=str(e),
                    exc_info=True
                )

        handler.__name__ = f"on_{event_name.replace('-', '_')}"
        return handler
