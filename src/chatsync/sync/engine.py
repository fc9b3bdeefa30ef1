"""
Sync state engine for chatsync.

This module owns everything derived from a session:
- The room list, sorted by last activity
- The active-room pointer
- Per-room message projections
- Per-room typing sets
- Sync status and the last login error

Session events and UI commands both run on the event loop thread, one at a
time, so state is mutated without locks. Asynchronous commands capture the
engine generation before they suspend and only touch state afterwards if
that generation is still current; logout and re-login advance it.
"""

import asyncio
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

from .. import facade
from ..facade import Room, Session, SessionConfig, SessionFactory
from ..models.state import MessageRecord, RoomSummary, StateSnapshot, SyncStatus
from ..utils.config import ChatSyncConfig, CreateRoomOptions, LoginConfig
from ..utils.errors import (
    AuthError,
    ChatSyncError,
    ErrorContext,
    NotConnectedError,
    TimeoutError,
    best_effort,
    error_context,
)
from ..utils.logging import get_logger
from .debounce import DecryptionDebouncer
from .dispatcher import EventDispatcher
from .read_tracker import BackgroundDispatcher, ReadTracker
from .room_waiter import RoomCreationWaiter
from .timeline import TimelineProjector, summarize_rooms


logger = get_logger("chatsync.engine")

StateListener = Callable[[str, StateSnapshot], None]


class SyncStateEngine:
    """
    Projects an asynchronous session event stream into render-ready state.

    Consumers read state through ``snapshot()`` or the read-only properties
    and may register listeners to hear about changes. Commands (send, join,
    leave, create, select, typing) are delegated to the session.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        config: Optional[ChatSyncConfig] = None,
    ):
        self.config = config or ChatSyncConfig()
        self._session_factory = session_factory
        self._session: Optional[Session] = None
        self._published = False
        self._generation = 0
        self._listeners: List[StateListener] = []

        self._sync_status = SyncStatus.STOPPED
        self._rooms: Tuple[RoomSummary, ...] = ()
        self._active_room_id: Optional[str] = None
        self._messages: Dict[str, Tuple[MessageRecord, ...]] = {}
        self._typing: Dict[str, FrozenSet[str]] = {}
        self._last_error: Optional[str] = None
        self._user_id: Optional[str] = None

        sync_config = self.config.sync
        self.projector = TimelineProjector()
        self.decryption = DecryptionDebouncer(sync_config.decryption_debounce_ms)
        self.room_waiter = RoomCreationWaiter(
            timeout_ms=sync_config.room_wait_timeout_ms,
            interval_ms=sync_config.room_wait_interval_ms,
        )
        self.read_tracker = ReadTracker()
        self._outbound = BackgroundDispatcher()

        self.dispatcher = EventDispatcher(lambda: self._generation)
        self.dispatcher.register(facade.SYNC, self._on_sync)
        self.dispatcher.register(facade.TIMELINE, self._on_timeline)
        self.dispatcher.register(facade.ROOM_ADDED, self._on_room)
        self.dispatcher.register(facade.TYPING, self._on_typing)
        self.dispatcher.register(facade.DECRYPTION_COMPLETED, self._on_decryption_completed)

    # Read-only state

    @property
    def session(self) -> Optional[Session]:
        """The published session handle; None until login has completed."""
        return self._session if self._published else None

    @property
    def is_logged_in(self) -> bool:
        return self._published and self._session is not None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def sync_status(self) -> SyncStatus:
        return self._sync_status

    @property
    def rooms(self) -> Tuple[RoomSummary, ...]:
        return self._rooms

    @property
    def active_room_id(self) -> Optional[str]:
        return self._active_room_id

    @property
    def messages(self) -> Mapping[str, Tuple[MessageRecord, ...]]:
        return MappingProxyType(self._messages)

    @property
    def typing_users(self) -> Mapping[str, FrozenSet[str]]:
        return MappingProxyType(self._typing)

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    def snapshot(self) -> StateSnapshot:
        """Immutable view of the current derived state."""
        return StateSnapshot(
            sync_status=self._sync_status,
            rooms=self._rooms,
            active_room_id=self._active_room_id,
            messages=MappingProxyType(self._messages),
            typing=MappingProxyType(self._typing),
            last_error=self._last_error,
            user_id=self._user_id,
            logged_in=self.is_logged_in,
        )

    def add_listener(self, listener: StateListener) -> None:
        """Register ``listener(change, snapshot)`` to run after each mutation."""
        self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # Session lifecycle

    async def login(
        self,
        credentials: Union[LoginConfig, Mapping[str, Any], None] = None,
        **kwargs: Any
    ) -> Optional[Session]:
        """
        Establish a session and start syncing.

        Accepts a LoginConfig, a mapping, or keyword arguments with
        ``base_url``, ``user_id`` and one of ``password``/``access_token``.

        Returns:
            The started session, or None when a logout (or another login)
            overtook this one while it was in flight.

        Raises:
            ValidationError: malformed login parameters
            AuthError: credential exchange or session start failed
        """
        config = LoginConfig.parse(credentials if credentials is not None else dict(kwargs))

        self._set_error(None)
        if self._session is not None:
            self._retire_session()
        generation = self._advance_generation()
        logger.info(
            "login_started",
            user_id=config.user_id,
            method="token" if config.access_token else "password",
            generation=generation,
        )

        try:
            session, user_id = await self._open_session(config, generation)
            if session is None:
                return None

            init_crypto = getattr(session, "init_crypto", None)
            if init_crypto is not None:
                await best_effort(init_crypto(), "crypto_init_failed", user_id=user_id)
            if not self._is_current(generation):
                logger.info("login_cancelled", user_id=user_id, stage="crypto")
                session.stop_session()
                return None

            self._session = session
            self._user_id = user_id
            self.dispatcher.attach(session, generation)
            await session.start_session(initial_sync_limit=self.config.sync.initial_sync_limit)

        except Exception as e:
            if not self._is_current(generation):
                logger.info("login_cancelled", user_id=config.user_id, error=str(e))
                return None
            self._discard_failed_session()
            error = e if isinstance(e, AuthError) else AuthError(
                str(e) or AuthError.default_message,
                context=ErrorContext(
                    user_id=config.user_id,
                    component="engine",
                    operation="login",
                ),
                cause=e,
            )
            self._set_error(error.message)
            logger.error("login_failed", user_id=config.user_id, error=error.message)
            if error is e:
                raise
            raise error from e

        if not self._is_current(generation):
            logger.info("login_cancelled", user_id=user_id, stage="start")
            return None

        self._published = True
        logger.info("login_completed", user_id=user_id, generation=generation)
        self._notify("session")
        return session

    async def _open_session(
        self,
        config: LoginConfig,
        generation: int,
    ) -> Tuple[Optional[Session], Optional[str]]:
        if config.access_token:
            session = self._session_factory(SessionConfig(
                base_url=config.base_url,
                user_id=config.user_id,
                access_token=config.access_token,
                device_id=config.resolved_device_id(),
            ))
            return session, config.user_id

        bootstrap = self._session_factory(SessionConfig(base_url=config.base_url))
        response = await bootstrap.exchange_credentials(config.user_id, config.password)
        if not self._is_current(generation):
            logger.info("login_cancelled", user_id=config.user_id, stage="exchange")
            return None, None

        user_id = response["user_id"]
        session = self._session_factory(SessionConfig(
            base_url=config.base_url,
            user_id=user_id,
            access_token=response["access_token"],
            device_id=response.get("device_id"),
        ))
        return session, user_id

    async def logout(self) -> None:
        """
        Tear down the session and reset all derived state.

        Safe to call repeatedly. Remote logout is best-effort.
        """
        session = self._session
        self._session = None
        self._published = False
        self._advance_generation()
        self._cancel_pending()
        self.dispatcher.detach()
        self._reset_state()
        self._notify("session")

        if session is None:
            return

        logger.info("logout_started", generation=self._generation)
        await best_effort(session.logout_remote(), "remote_logout_failed")
        try:
            session.stop_session()
        except Exception as e:
            logger.warning("stop_session_failed", error=str(e))
        logger.info("logout_completed")

    def _retire_session(self) -> None:
        """Drop a live session without remote logout (re-login)."""
        session = self._session
        self._session = None
        self._published = False
        self._advance_generation()
        self._cancel_pending()
        self.dispatcher.detach()
        self._reset_state()
        if session is not None:
            try:
                session.stop_session()
            except Exception as e:
                logger.warning("stop_session_failed", error=str(e))
            logger.info("session_replaced")

    def _discard_failed_session(self) -> None:
        session = self._session
        self._session = None
        self._published = False
        self.dispatcher.detach()
        self._cancel_pending()
        self._reset_state()
        if session is not None:
            try:
                session.stop_session()
            except Exception as e:
                logger.warning("stop_session_failed", error=str(e))

    def _cancel_pending(self) -> None:
        self.decryption.cancel_all()
        self.read_tracker.cancel_all()
        self._outbound.cancel_all()

    def _reset_state(self) -> None:
        self._sync_status = SyncStatus.STOPPED
        self._rooms = ()
        self._active_room_id = None
        self._messages = {}
        self._typing = {}
        self._last_error = None
        self._user_id = None

    def _advance_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return self._generation == generation

    # Commands

    def select_room(self, room_id: str) -> None:
        """Make ``room_id`` active, re-project it and mark it read."""
        self._active_room_id = room_id
        self._notify("active_room")

        session = self._session
        if session is None:
            return
        self._reproject(session, room_id)
        self.read_tracker.mark_read(session, session.get_room(room_id))

    async def send_message(self, room_id: str, text: str) -> None:
        """Send a text message; blank text or no session is a no-op."""
        await self._send(room_id, text, emote=False)

    async def send_emote(self, room_id: str, text: str) -> None:
        """Send an emote; blank text or no session is a no-op."""
        await self._send(room_id, text, emote=True)

    async def _send(self, room_id: str, text: str, emote: bool) -> None:
        session = self._session
        if session is None or not text or not text.strip():
            return
        operation = "send_emote" if emote else "send_message"
        with error_context("engine", operation, room_id=room_id):
            if emote:
                await session.send_emote(room_id, text)
            else:
                await session.send_text(room_id, text)
        logger.debug("message_sent", room_id=room_id, emote=emote)

    async def join_room(self, room_id_or_alias: str) -> None:
        session = self._session
        if session is None:
            return
        generation = self._generation
        with error_context("engine", "join_room", room_id=room_id_or_alias):
            await session.join_room(room_id_or_alias)
        if self._is_current(generation):
            self._refresh_rooms(session)

    async def leave_room(self, room_id: str) -> None:
        session = self._session
        if session is None:
            return
        generation = self._generation
        with error_context("engine", "leave_room", room_id=room_id):
            await session.leave_room(room_id)
        if not self._is_current(generation):
            return
        self._refresh_rooms(session)
        if self._active_room_id == room_id:
            self._active_room_id = None
            self._notify("active_room")

    async def create_room(
        self,
        name: Optional[str] = None,
        *,
        is_direct: bool = False,
        invite_user_id: Optional[str] = None,
    ) -> str:
        """
        Create a named room or a direct message and wait for it locally.

        Returns:
            The new room id; returned even when the room did not show up
            locally before the wait timed out.

        Raises:
            ValidationError: neither (or both) of a name and a DM target
            NotConnectedError: no session
            TransportError: the session rejected the creation
        """
        options = CreateRoomOptions.parse(
            name=name,
            is_direct=is_direct,
            invite_user_id=invite_user_id,
        )
        session = self._session
        if session is None:
            raise NotConnectedError(
                context=ErrorContext(component="engine", operation="create_room")
            )

        generation = self._generation
        with error_context("engine", "create_room", user_id=options.invite_user_id):
            result = await session.create_room(options.to_request())
            room_id = result["room_id"]
        logger.info("room_created", room_id=room_id, direct=options.is_dm)

        try:
            await self.room_waiter.wait_for_room(
                session.get_room,
                room_id,
                is_current=lambda: self._is_current(generation),
            )
        except TimeoutError as e:
            logger.warning("room_wait_timed_out", room_id=room_id, error=e.message)

        if self._is_current(generation):
            self._refresh_rooms(session)
        return room_id

    async def create_and_select_room(
        self,
        name: Optional[str] = None,
        *,
        is_direct: bool = False,
        invite_user_id: Optional[str] = None,
    ) -> str:
        """Create a room, wait for it, then make it the active room."""
        generation = self._generation
        room_id = await self.create_room(
            name,
            is_direct=is_direct,
            invite_user_id=invite_user_id,
        )
        if room_id and self._is_current(generation):
            self.select_room(room_id)
        return room_id

    def send_typing(self, room_id: str, is_typing: bool) -> Optional[asyncio.Task]:
        """Dispatch a typing notification; failures are only logged."""
        session = self._session
        if session is None:
            return None
        return self._outbound.spawn(
            session.send_typing(room_id, is_typing, self.config.sync.typing_ttl_ms),
            "typing_dispatch_failed",
            room_id=room_id,
            typing=is_typing,
        )

    def get_unread_count(self, room: Union[Room, RoomSummary, None]) -> int:
        if isinstance(room, RoomSummary):
            room = self._session.get_room(room.room_id) if self._session else None
        if room is None:
            return 0
        return room.unread_notification_count() or 0

    async def drain(self) -> None:
        """Wait for outstanding read-receipt and typing dispatches."""
        await self.read_tracker.drain()
        await self._outbound.drain()

    # Event transitions (invoked through the dispatcher)

    def _on_sync(self, session: Session, state: Any, *_: Any) -> None:
        value = getattr(state, "value", state)
        try:
            status = SyncStatus(value)
        except ValueError:
            logger.warning("unknown_sync_state", state=value)
            return

        if status != self._sync_status:
            logger.info("sync_state_changed", previous=self._sync_status.value, current=status.value)
        self._sync_status = status
        self._notify("sync")
        if status.is_live:
            self._refresh_rooms(session)

    def _on_timeline(self, session: Session, event: Any = None, room: Optional[Room] = None, *_: Any) -> None:
        self._refresh_rooms(session)
        if room is not None:
            self._reproject(session, room.room_id)

    def _on_room(self, session: Session, *_: Any) -> None:
        self._refresh_rooms(session)

    def _on_typing(self, session: Session, event: Any, member: Any, *_: Any) -> None:
        room_id = member.room_id
        current = self._typing.get(room_id, frozenset())
        if member.typing:
            updated = current | {member.user_id}
        else:
            updated = current - {member.user_id}
        self._typing = {**self._typing, room_id: updated}
        self._notify("typing")

    def _on_decryption_completed(self, session: Session, event: Any, *_: Any) -> None:
        room_id = getattr(event, "room_id", None)
        if not room_id:
            return
        generation = self._generation
        self.decryption.event_completed(
            room_id,
            lambda rid: self._reproject_if_current(session, generation, rid),
        )

    # Projections

    def _reproject_if_current(self, session: Session, generation: int, room_id: str) -> None:
        if not self._is_current(generation):
            logger.debug("stale_reprojection_skipped", room_id=room_id)
            return
        self._reproject(session, room_id)

    def _reproject(self, session: Session, room_id: str) -> None:
        records = self.projector.project_room(session, room_id)
        if records is None:
            return
        if self._messages.get(room_id) == records:
            return
        self._messages = {**self._messages, room_id: records}
        self._notify("messages")

    def _refresh_rooms(self, session: Session) -> None:
        self._rooms = summarize_rooms(session)
        self._notify("rooms")

    def _set_error(self, message: Optional[str]) -> None:
        if self._last_error == message:
            return
        self._last_error = message
        self._notify("error")

    def _notify(self, change: str) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(change, snapshot)
            except Exception as e:
                logger.error(
                    "state_listener_error",
                    change=change,
                    listener=getattr(listener, "__name__", repr(listener)),
                    error=str(e)
                )


__all__ = [
    'SyncStateEngine',
    'StateListener',
]
