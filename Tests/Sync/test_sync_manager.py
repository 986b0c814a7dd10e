# test_sync_manager.py
#
#
# Imports
import asyncio
import pytest
#
# Local Imports
from field_notes.DB.Notes_Cache_DB import NotesCacheDBError
from field_notes.DB.note_models import MutationKind, NoteFields, NoteUpdate, SyncStatus
from field_notes.Sync.conflict_resolver import CONFLICT_NOTICE_TITLE
from field_notes.Sync.sync_manager import SyncManager, SyncState
from field_notes.notes_api.exceptions import APIConnectionError, APIResponseError
#
#######################################################################################################################
#
# Functions:

pytestmark = pytest.mark.asyncio


def local_note(db, title="Draft", body="text", tags=None, note_id=None):
    return db.insert_local_note(NoteFields.parse(title, body, tags), note_id=note_id)


def gate_method(server, name):
    """Makes `server.<name>` wait until the returned event is set."""
    gate = asyncio.Event()
    original = getattr(server, name)

    async def gated(*args, **kwargs):
        await gate.wait()
        return await original(*args, **kwargs)

    setattr(server, name, gated)
    return gate


# --- State machine ---

async def test_empty_pass_goes_syncing_then_idle(sync_manager, server):
    states = []
    sync_manager.subscribe(states.append)

    result = await sync_manager.sync_pending_changes()

    assert states == [SyncState.SYNCING, SyncState.IDLE]
    assert result.drain.processed == 0
    assert result.pushed == []
    assert server.mutating_calls == []


async def test_unsubscribed_observer_sees_nothing(sync_manager):
    states = []
    sync_manager.subscribe(states.append)
    sync_manager.unsubscribe(states.append)
    await sync_manager.sync_pending_changes()
    assert states == []


async def test_failing_observer_does_not_break_the_pass(sync_manager):
    def broken(_state):
        raise RuntimeError("observer bug")

    sync_manager.subscribe(broken)
    assert await sync_manager.sync_pending_changes() is not None
    assert sync_manager.state == SyncState.IDLE


async def test_offline_triggers_are_no_ops(sync_manager, server, connectivity, db):
    local_note(db)
    connectivity.go_offline()
    states = []
    sync_manager.subscribe(states.append)

    assert await sync_manager.sync_pending_changes() is None
    assert await sync_manager.retry_failed_syncs() is None
    assert await sync_manager.pull_from_server() is False
    assert await sync_manager.sync_note("anything") is None

    assert server.calls == []
    assert states == []
    assert sync_manager.state == SyncState.IDLE


async def test_second_trigger_during_a_pass_is_dropped(sync_manager, server):
    server.seed("Remote")
    gate = gate_method(server, "list_notes")

    running = asyncio.create_task(sync_manager.pull_from_server())
    await asyncio.sleep(0)
    assert sync_manager.is_syncing
    assert sync_manager.state == SyncState.SYNCING

    assert await sync_manager.sync_pending_changes() is None
    assert await sync_manager.pull_from_server() is False
    assert await sync_manager.retry_failed_syncs() is None

    gate.set()
    assert await running is True
    assert not sync_manager.is_syncing
    assert len(server.calls_to("list_notes")) == 1


async def test_local_store_failure_moves_to_error_and_propagates(sync_manager, monkeypatch):
    def broken():
        raise NotesCacheDBError("disk I/O error")

    monkeypatch.setattr(sync_manager.queue, "peek_all_in_order", broken)

    with pytest.raises(NotesCacheDBError):
        await sync_manager.sync_pending_changes()
    assert sync_manager.state == SyncState.ERROR
    assert not sync_manager.is_syncing
    assert isinstance(sync_manager.last_error, NotesCacheDBError)


async def test_error_clears_on_next_successful_pass(sync_manager, server):
    server.fail_next("list_notes", APIConnectionError("timeout"))
    assert await sync_manager.pull_from_server() is False
    assert sync_manager.state == SyncState.ERROR

    assert await sync_manager.pull_from_server() is True
    assert sync_manager.state == SyncState.IDLE


# --- Pull ---

async def test_pull_mirrors_server_notes(sync_manager, server, db):
    first = server.seed("One", tags=["a"])
    second = server.seed("Two")

    assert await sync_manager.pull_from_server() is True

    notes = {note.id: note for note in db.get_all_notes()}
    assert set(notes) == {first.id, second.id}
    assert all(note.sync_status == SyncStatus.SYNCED for note in notes.values())
    assert notes[first.id].tags == ["a"]


async def test_pull_twice_is_idempotent(sync_manager, server, db):
    server.seed("One")
    server.seed("Two")
    await sync_manager.pull_from_server()
    snapshot = db.get_all_notes()

    await sync_manager.pull_from_server()

    assert db.get_all_notes() == snapshot


async def test_pull_takes_remote_edits(sync_manager, server, db):
    note = server.seed("Before")
    await sync_manager.pull_from_server()
    server.edit_remotely(note.id, title="After")

    await sync_manager.pull_from_server()

    assert db.get_note_by_id(note.id).title == "After"


async def test_pull_removes_notes_deleted_on_server(sync_manager, server, db):
    kept = server.seed("Kept")
    gone = server.seed("Gone")
    await sync_manager.pull_from_server()
    del server.notes[gone.id]

    await sync_manager.pull_from_server()

    assert [note.id for note in db.get_all_notes()] == [kept.id]
    assert db.get_note_for_sync(gone.id) is None


async def test_pull_keeps_unsynced_local_changes(sync_manager, server, db):
    note = server.seed("Server title")
    await sync_manager.pull_from_server()
    db.update_local_note(note.id, NoteUpdate.parse(title="Offline edit"))
    draft = local_note(db, title="Never pushed")
    server.edit_remotely(note.id, title="Newer server title")

    await sync_manager.pull_from_server()

    edited = db.get_note_by_id(note.id)
    assert edited.title == "Offline edit"
    assert edited.sync_status == SyncStatus.PENDING
    assert db.get_note_by_id(draft.id).sync_status == SyncStatus.PENDING


async def test_pull_keeps_failed_notes_missing_from_server(sync_manager, server, db):
    note = server.seed("Server")
    await sync_manager.pull_from_server()
    db.update_local_note(note.id, NoteUpdate.parse(body="local"))
    db.update_sync_status(note.id, SyncStatus.FAILED, "boom")
    del server.notes[note.id]

    await sync_manager.pull_from_server()

    assert db.get_note_by_id(note.id).body == "local"


async def test_initial_sync_failure_goes_idle_and_reraises(sync_manager, server):
    server.fail_next("list_notes", APIConnectionError("server down"))
    states = []
    sync_manager.subscribe(states.append)

    with pytest.raises(APIConnectionError):
        await sync_manager.pull_from_server(is_initial_sync=True)

    assert states == [SyncState.SYNCING, SyncState.IDLE]
    assert not sync_manager.is_syncing


async def test_regular_pull_failure_goes_to_error(sync_manager, server):
    server.fail_next("list_notes", APIResponseError(500, "boom"))
    assert await sync_manager.pull_from_server() is False
    assert sync_manager.state == SyncState.ERROR
    assert isinstance(sync_manager.last_error, APIResponseError)


# --- Single-note push ---

async def test_sync_note_creates_and_swaps_to_server_id(sync_manager, server, db):
    draft = local_note(db, title="New idea", tags=["x"])

    final_id = await sync_manager.sync_note(draft.id)

    assert final_id.startswith("srv-")
    assert db.get_note_for_sync(draft.id) is None
    synced = db.get_note_by_id(final_id)
    assert synced.title == "New idea"
    assert synced.sync_status == SyncStatus.SYNCED
    assert server.notes[final_id].tags == ["x"]
    assert db.resolve_note_id(draft.id) == final_id


async def test_sync_note_updates_existing_remote_note(sync_manager, server, db):
    note = server.seed("Old")
    await sync_manager.pull_from_server()
    db.update_local_note(note.id, NoteUpdate.parse(title="New"))

    assert await sync_manager.sync_note(note.id) == note.id

    assert server.notes[note.id].title == "New"
    assert db.get_note_by_id(note.id).sync_status == SyncStatus.SYNCED
    assert len(server.calls_to("create_note")) == 0


async def test_sync_note_deletes_soft_deleted_note(sync_manager, server, db):
    note = server.seed("Doomed")
    await sync_manager.pull_from_server()
    db.soft_delete_note(note.id)

    await sync_manager.sync_note(note.id)

    assert note.id not in server.notes
    assert db.get_note_for_sync(note.id) is None


async def test_sync_note_delete_already_gone_on_server(sync_manager, server, db):
    note = server.seed("Doomed")
    await sync_manager.pull_from_server()
    db.soft_delete_note(note.id)
    del server.notes[note.id]

    await sync_manager.sync_note(note.id)

    assert db.get_note_for_sync(note.id) is None


async def test_sync_note_skips_synced_missing_or_queued(sync_manager, server, db, queue):
    synced = server.seed("Synced")
    await sync_manager.pull_from_server()
    queued = local_note(db, note_id="tmp-q")
    queue.enqueue(MutationKind.CREATE, None, {"local_id": queued.id, **NoteFields.parse("Draft", "text").model_dump()})
    server.calls.clear()

    assert await sync_manager.sync_note(synced.id) is None
    assert await sync_manager.sync_note("missing") is None
    assert await sync_manager.sync_note(queued.id) is None
    assert server.calls == []


async def test_sync_note_remote_failure_marks_failed_not_error(sync_manager, server, db):
    draft = local_note(db)
    server.fail_next("create_note", APIConnectionError("timeout"))

    assert await sync_manager.sync_note(draft.id) == draft.id

    failed = db.get_note_by_id(draft.id)
    assert failed.sync_status == SyncStatus.FAILED
    assert "timeout" in failed.last_sync_error
    assert sync_manager.state == SyncState.IDLE
    assert sync_manager.failed_count() == 1


async def test_edit_during_push_stays_pending(sync_manager, server, db):
    note = server.seed("Original")
    await sync_manager.pull_from_server()
    db.update_local_note(note.id, NoteUpdate.parse(title="First edit"))
    gate = gate_method(server, "update_note")

    push = asyncio.create_task(sync_manager.sync_note(note.id))
    await asyncio.sleep(0)
    with db.transaction() as conn:
        conn.execute("UPDATE notes_cache SET title = 'Second edit', "
                     "local_updated_at = '2999-01-01T00:00:00.000000Z' WHERE id = ?", (note.id,))
    gate.set()
    await push

    current = db.get_note_by_id(note.id)
    assert current.title == "Second edit"
    assert current.sync_status == SyncStatus.PENDING
    assert server.notes[note.id].title == "First edit"


# --- Conflicts ---

async def test_conflict_adopts_server_version_and_notifies(sync_manager, server, db, notifications):
    note = server.seed("Shared", body="v1")
    await sync_manager.pull_from_server()
    db.update_local_note(note.id, NoteUpdate.parse(body="my edit"))
    server.conflict_on_update(note.id, title="Shared", body="their edit")

    assert await sync_manager.sync_note(note.id) == note.id

    adopted = db.get_note_by_id(note.id)
    assert adopted.body == "their edit"
    assert adopted.sync_status == SyncStatus.SYNCED
    assert notifications.messages == [(CONFLICT_NOTICE_TITLE, '"Shared" was synced from server')]
    assert sync_manager.state == SyncState.IDLE


# --- Pending-changes pass ---

async def test_sweep_pushes_pending_notes_oldest_first(sync_manager, server, db):
    first = local_note(db, title="First")
    second = local_note(db, title="Second")

    result = await sync_manager.sync_pending_changes()

    created_titles = [call[1]["title"] for call in server.calls_to("create_note")]
    assert created_titles == ["First", "Second"]
    assert len(result.pushed) == 2
    assert db.count_notes_by_status(SyncStatus.PENDING) == 0
    assert db.get_note_for_sync(first.id) is None
    assert db.get_note_for_sync(second.id) is None


async def test_sweep_failure_is_isolated_per_note(sync_manager, server, db):
    local_note(db, title="Fails")
    local_note(db, title="Succeeds")
    server.fail_next("create_note", APIResponseError(500, "boom"))

    result = await sync_manager.sync_pending_changes()

    assert len(result.failed) == 1
    assert len(result.pushed) == 1
    assert sync_manager.state == SyncState.IDLE
    assert sync_manager.failed_count() == 1
    assert [note.title for note in db.list_notes_by_status(SyncStatus.FAILED)] == ["Fails"]


async def test_retry_resets_failed_and_calls_server_at_most_once_per_note(sync_manager, server, db):
    for i in range(3):
        local_note(db, title=f"Note {i}")
    server.unreachable = True
    await sync_manager.sync_pending_changes()
    assert sync_manager.failed_count() == 3
    server.unreachable = False
    server.calls.clear()

    result = await sync_manager.retry_failed_syncs()

    assert len(server.mutating_calls) <= 3
    assert len(result.pushed) == 3
    assert sync_manager.failed_count() == 0
    assert db.count_notes_by_status(SyncStatus.SYNCED) == 3


async def test_retry_with_nothing_failed_still_pushes_pending(sync_manager, server, db):
    local_note(db, title="Pending")
    result = await sync_manager.retry_failed_syncs()
    assert len(result.pushed) == 1


async def test_queue_is_drained_before_sweep(sync_manager, server, db, queue):
    sweep_note = local_note(db, title="Sweep me")
    queued = local_note(db, title="Queued", note_id="tmp-q")
    queue.enqueue(MutationKind.CREATE, None, {"local_id": queued.id, "title": "Queued", "body": "text", "tags": []})
    # make the sweep note the older edit
    with db.transaction() as conn:
        conn.execute("UPDATE notes_cache SET local_updated_at = '2000-01-01T00:00:00.000000Z' WHERE id = ?",
                     (sweep_note.id,))

    result = await sync_manager.sync_pending_changes()

    created_titles = [call[1]["title"] for call in server.calls_to("create_note")]
    assert created_titles == ["Queued", "Sweep me"]
    assert result.drain.processed == 1
    assert queue.is_empty()


async def test_queue_head_failure_halts_drain_and_blocks_queued_notes(sync_manager, server, db, queue):
    for local_id in ("tmp-1", "tmp-2"):
        local_note(db, title=local_id, note_id=local_id)
        queue.enqueue(MutationKind.CREATE, None, {"local_id": local_id, "title": local_id, "body": "text", "tags": []})
    server.fail_next("create_note", APIConnectionError("timeout"))

    result = await sync_manager.sync_pending_changes()

    assert not result.drain.completed
    assert result.drain.halted_on.target_id == "tmp-1"
    assert len(server.calls_to("create_note")) == 1
    assert queue.count() == 2
    assert db.get_note_by_id("tmp-1").sync_status == SyncStatus.FAILED
    assert db.get_note_by_id("tmp-2").sync_status == SyncStatus.PENDING
    assert sync_manager.state == SyncState.IDLE

    await sync_manager.retry_failed_syncs()

    assert queue.is_empty()
    assert sorted(note.title for note in db.get_all_notes()) == ["tmp-1", "tmp-2"]
    assert all(note.sync_status == SyncStatus.SYNCED for note in db.get_all_notes())


async def test_custom_resolver_is_used(db, queue, server, network):
    class RecordingResolver:
        def __init__(self):
            self.calls = []

        def resolve(self, local_note, error):
            self.calls.append(local_note.id)
            return error.server_version

    resolver = RecordingResolver()
    manager = SyncManager(db, queue, server, network, resolver=resolver)
    note = server.seed("Shared")
    await manager.pull_from_server()
    db.update_local_note(note.id, NoteUpdate.parse(body="mine"))
    server.conflict_on_update(note.id, body="theirs")

    await manager.sync_note(note.id)

    assert resolver.calls == [note.id]
    assert manager.processor.resolver is resolver

#
# End of test_sync_manager.py
#######################################################################################################################
