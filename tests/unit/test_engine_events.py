"""
Tests for SyncStateEngine reactions to session events.
"""

import asyncio

import pytest
import pytest_asyncio

from chatsync.models.state import MessageType, SyncStatus
from chatsync.sync.engine import SyncStateEngine
from chatsync.utils.config import ChatSyncConfig

from tests.fixtures import FakeEvent, FakeMember, FakeRoom, FakeTransport


@pytest_asyncio.fixture
async def session(engine, token_login):
    """Logged-in fake session."""
    return await engine.login(token_login)


class TestSyncEvents:
    """Test sync state transitions."""

    @pytest.mark.asyncio
    async def test_prepared_populates_rooms(self, engine, session):
        session.add_room(FakeRoom("!a:example.org", name="A", ts=100))

        session.emit("sync", "PREPARED")

        assert engine.sync_status is SyncStatus.PREPARED
        assert [r.room_id for r in engine.rooms] == ["!a:example.org"]
        assert engine.rooms[0].display_name == "A"
        assert engine.rooms[0].last_active_timestamp == 100

    @pytest.mark.asyncio
    async def test_syncing_recomputes_rooms(self, engine, session):
        session.emit("sync", "PREPARED")
        assert engine.rooms == ()

        session.add_room(FakeRoom("!a:example.org", ts=1))
        session.emit("sync", "SYNCING")

        assert engine.sync_status is SyncStatus.SYNCING
        assert len(engine.rooms) == 1

    @pytest.mark.asyncio
    async def test_error_keeps_room_list(self, engine, session):
        session.add_room(FakeRoom("!a:example.org", ts=1))
        session.emit("sync", "SYNCING")
        session.add_room(FakeRoom("!b:example.org", ts=2))

        session.emit("sync", "ERROR")

        assert engine.sync_status is SyncStatus.ERROR
        assert [r.room_id for r in engine.rooms] == ["!a:example.org"]

    @pytest.mark.asyncio
    async def test_reconnecting_and_catchup_are_tracked(self, engine, session):
        session.emit("sync", "RECONNECTING")
        assert engine.sync_status is SyncStatus.RECONNECTING

        session.emit("sync", "CATCHUP")
        assert engine.sync_status is SyncStatus.CATCHUP

    @pytest.mark.asyncio
    async def test_unknown_state_is_ignored(self, engine, session):
        session.emit("sync", "SYNCING")

        session.emit("sync", "WARP_SPEED")

        assert engine.sync_status is SyncStatus.SYNCING

    @pytest.mark.asyncio
    async def test_sync_handler_accepts_previous_state(self, engine, session):
        session.emit("sync", "SYNCING", "PREPARED", {"nextSyncToken": "s1"})

        assert engine.sync_status is SyncStatus.SYNCING


class TestRoomOrdering:
    """Test room list ordering."""

    @pytest.mark.asyncio
    async def test_sorted_by_activity_descending(self, engine, session):
        session.add_room(FakeRoom("!old:example.org", ts=10))
        session.add_room(FakeRoom("!new:example.org", ts=30))
        session.add_room(FakeRoom("!mid:example.org", ts=20))

        session.emit("sync", "PREPARED")

        assert [r.room_id for r in engine.rooms] == [
            "!new:example.org",
            "!mid:example.org",
            "!old:example.org",
        ]

    @pytest.mark.asyncio
    async def test_missing_timestamp_sorts_last(self, engine, session):
        session.add_room(FakeRoom("!quiet:example.org", ts=None))
        session.add_room(FakeRoom("!busy:example.org", ts=5))

        session.emit("sync", "PREPARED")

        assert [r.room_id for r in engine.rooms] == ["!busy:example.org", "!quiet:example.org"]
        assert engine.rooms[1].last_active_timestamp == 0

    @pytest.mark.asyncio
    async def test_ties_keep_session_order(self, engine, session):
        for name in ("first", "second", "third"):
            session.add_room(FakeRoom(f"!{name}:example.org", ts=7))

        session.emit("sync", "PREPARED")

        assert [r.room_id for r in engine.rooms] == [
            "!first:example.org",
            "!second:example.org",
            "!third:example.org",
        ]

    @pytest.mark.asyncio
    async def test_encryption_and_direct_flags(self, engine, session):
        session.add_room(FakeRoom("!dm:example.org", ts=2, direct=True))
        session.add_room(FakeRoom("!plain:example.org", ts=1))
        session.encrypted.add("!dm:example.org")

        session.emit("sync", "PREPARED")

        dm, plain = engine.rooms
        assert dm.is_encrypted and dm.is_direct
        assert not plain.is_encrypted and not plain.is_direct


class TestTimelineEvents:
    """Test timeline and room-added events."""

    @pytest.mark.asyncio
    async def test_timeline_reprojects_room(self, engine, session):
        room = session.add_room(FakeRoom("!a:example.org", ts=1))
        event = room.add_event(FakeEvent(timestamp=50, content={"msgtype": "m.text", "body": "hi"}))

        session.emit("timeline", event, room)

        records = engine.messages["!a:example.org"]
        assert len(records) == 1
        assert records[0].id == event.event_id
        assert records[0].type is MessageType.TEXT
        assert records[0].body == "hi"
        assert engine.rooms[0].last_active_timestamp == 50

    @pytest.mark.asyncio
    async def test_timeline_reorders_rooms(self, engine, session):
        quiet = session.add_room(FakeRoom("!quiet:example.org", ts=1))
        session.add_room(FakeRoom("!busy:example.org", ts=5))
        session.emit("sync", "PREPARED")

        event = quiet.add_event(FakeEvent(timestamp=10))
        session.emit("timeline", event, quiet)

        assert engine.rooms[0].room_id == "!quiet:example.org"

    @pytest.mark.asyncio
    async def test_timeline_without_room_only_refreshes_list(self, engine, session):
        session.add_room(FakeRoom("!a:example.org", ts=1))

        session.emit("timeline", FakeEvent())

        assert len(engine.rooms) == 1
        assert dict(engine.messages) == {}

    @pytest.mark.asyncio
    async def test_room_added(self, engine, session):
        room = session.add_room(FakeRoom("!invite:example.org", name="Invite", ts=3))

        session.emit("room-added", room)

        assert [r.room_id for r in engine.rooms] == ["!invite:example.org"]

    @pytest.mark.asyncio
    async def test_identical_reprojection_does_not_notify(self, engine, session):
        room = session.add_room(FakeRoom("!a:example.org", ts=1))
        event = room.add_event(FakeEvent(timestamp=1))
        session.emit("timeline", event, room)
        first = engine.messages["!a:example.org"]

        changes = []
        engine.add_listener(lambda change, snapshot: changes.append(change))
        session.emit("timeline", event, room)

        assert "messages" not in changes
        assert engine.messages["!a:example.org"] is first


class TestTypingEvents:
    """Test typing indicator tracking."""

    @pytest.mark.asyncio
    async def test_typing_start_and_stop(self, engine, session):
        session.emit("typing", None, FakeMember("!r:example.org", "@bob:example.org", True))
        session.emit("typing", None, FakeMember("!r:example.org", "@bob:example.org", True))

        assert engine.typing_users["!r:example.org"] == frozenset({"@bob:example.org"})

        session.emit("typing", None, FakeMember("!r:example.org", "@bob:example.org", False))

        assert engine.typing_users["!r:example.org"] == frozenset()

    @pytest.mark.asyncio
    async def test_typing_sets_are_per_room(self, engine, session):
        session.emit("typing", None, FakeMember("!r:example.org", "@bob:example.org", True))
        session.emit("typing", None, FakeMember("!s:example.org", "@carol:example.org", True))

        assert engine.typing_users["!r:example.org"] == frozenset({"@bob:example.org"})
        assert engine.typing_users["!s:example.org"] == frozenset({"@carol:example.org"})

    @pytest.mark.asyncio
    async def test_snapshot_is_not_mutated_later(self, engine, session):
        session.emit("typing", None, FakeMember("!r:example.org", "@bob:example.org", True))
        before = engine.snapshot()

        session.emit("typing", None, FakeMember("!r:example.org", "@carol:example.org", True))

        assert before.typing_in("!r:example.org") == frozenset({"@bob:example.org"})
        assert engine.snapshot().typing_in("!r:example.org") == frozenset(
            {"@bob:example.org", "@carol:example.org"}
        )

    @pytest.mark.asyncio
    async def test_stop_for_unknown_user_is_noop(self, engine, session):
        session.emit("typing", None, FakeMember("!r:example.org", "@ghost:example.org", False))

        assert engine.typing_users["!r:example.org"] == frozenset()


class TestDecryptionEvents:
    """Test debounced re-projection after decryption."""

    @pytest.mark.asyncio
    async def test_burst_reprojects_once(self, engine, session):
        room = session.add_room(FakeRoom("!a:example.org", ts=1))
        room.add_event(FakeEvent(event_type="m.room.encrypted", content={}))

        projected = []
        original = engine.projector.project_room

        def counting(s, room_id):
            projected.append(room_id)
            return original(s, room_id)

        engine.projector.project_room = counting

        for _ in range(3):
            session.emit("decryption-completed", FakeEvent(room_id="!a:example.org"))

        assert projected == []
        await asyncio.sleep(0.1)
        assert projected == ["!a:example.org"]
        assert engine.decryption.pending == 0

    @pytest.mark.asyncio
    async def test_default_window_coalesces(self, transport, token_login):
        engine = SyncStateEngine(transport, config=ChatSyncConfig())
        session = await engine.login(token_login)
        room = session.add_room(FakeRoom("!a:example.org", ts=1))
        room.add_event(FakeEvent(content={"msgtype": "m.text", "body": "decrypted"}))

        handles = []
        for _ in range(3):
            session.emit("decryption-completed", FakeEvent(room_id="!a:example.org"))
            handles.append(engine.decryption._timers["!a:example.org"])
            await asyncio.sleep(0)

        assert [h.cancelled() for h in handles] == [True, True, False]
        assert engine.decryption.pending == 1
        await asyncio.sleep(0.3)
        assert engine.messages["!a:example.org"][0].body == "decrypted"
        assert engine.decryption.pending == 0

    @pytest.mark.asyncio
    async def test_rooms_debounce_independently(self, engine, session):
        for room_id in ("!a:example.org", "!b:example.org"):
            session.add_room(FakeRoom(room_id, ts=1)).add_event(FakeEvent())

        session.emit("decryption-completed", FakeEvent(room_id="!a:example.org"))
        session.emit("decryption-completed", FakeEvent(room_id="!b:example.org"))

        assert engine.decryption.pending == 2
        await asyncio.sleep(0.1)
        assert set(engine.messages) == {"!a:example.org", "!b:example.org"}

    @pytest.mark.asyncio
    async def test_event_without_room_is_ignored(self, engine, session):
        session.emit("decryption-completed", FakeEvent(room_id=None))

        assert engine.decryption.pending == 0

    @pytest.mark.asyncio
    async def test_decryption_failure_is_flagged(self, engine, session):
        room = session.add_room(FakeRoom("!a:example.org", ts=1))
        room.add_event(FakeEvent(event_type="m.room.encrypted", content={}, decryption_failure=True))

        session.emit("decryption-completed", FakeEvent(room_id="!a:example.org"))
        await asyncio.sleep(0.1)

        record = engine.messages["!a:example.org"][0]
        assert record.type is MessageType.ENCRYPTED
        assert record.is_decryption_failure


class TestHandlerIsolation:
    """A failing transition must not take down the session's emitter."""

    @pytest.mark.asyncio
    async def test_handler_error_is_logged(self, test_config, token_login):
        transport = FakeTransport()
        engine = SyncStateEngine(transport, config=test_config)
        session = await engine.login(token_login)

        def explode():
            raise RuntimeError("list_rooms failed")

        session.list_rooms = explode
        session.emit("room-added", None)

        assert engine.rooms == ()
