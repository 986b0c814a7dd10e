# Tests/conftest.py
#
#
# Imports
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple
import pytest
import pytest_asyncio
#
# Third-party imports
#
# Local imports
from field_notes.DB.Notes_Cache_DB import NotesCacheDB
from field_notes.DB.Pending_Mutations import PendingMutationQueue
from field_notes.DB.note_models import format_utc_timestamp
from field_notes.Notes.Notes_Library import NotesService
from field_notes.Sync.network_monitor import ConnectivityState, NetworkMonitor
from field_notes.Sync.sync_manager import SyncManager
from field_notes.notes_api.exceptions import APIConnectionError, NoteConflictError, NoteNotFoundError
from field_notes.notes_api.schemas import CreateNoteRequest, RemoteNote, UpdateNoteRequest
#
############################################################################################################################
#
# Functions:

ONLINE = ConnectivityState(is_connected=True, is_internet_reachable=True, connection_type="wifi")
OFFLINE = ConnectivityState(is_connected=False, is_internet_reachable=False, connection_type="none")


class FakeConnectivitySource:
    """ConnectivitySource the tests drive by hand."""

    def __init__(self, state: ConnectivityState = ONLINE, fail_fetch: bool = False):
        self.state = state
        self.fail_fetch = fail_fetch
        self.listeners: List[Callable] = []

    async def fetch(self) -> ConnectivityState:
        if self.fail_fetch:
            raise OSError("platform connectivity query failed")
        return self.state

    def add_listener(self, listener):
        self.listeners.append(listener)

        def remove():
            if listener in self.listeners:
                self.listeners.remove(listener)
        return remove

    def emit(self, state: ConnectivityState) -> None:
        self.state = state
        for listener in list(self.listeners):
            listener(state)

    def go_offline(self) -> None:
        self.emit(OFFLINE)

    def go_online(self) -> None:
        self.emit(ONLINE)


class FakeNotesServer:
    """In-memory NotesRemotePort that records every call."""

    MUTATING = ("create_note", "update_note", "delete_note")

    def __init__(self):
        self.notes: Dict[str, RemoteNote] = {}
        self.calls: List[Tuple] = []
        self._next_id = 1
        self._clock = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)
        self._failures: Dict[str, List[Exception]] = {}
        self.conflicts: Dict[str, RemoteNote] = {}
        self.unreachable = False

    def _tick(self) -> str:
        self._clock += timedelta(seconds=1)
        return format_utc_timestamp(self._clock)

    def _check(self, method: str) -> None:
        if self.unreachable:
            raise APIConnectionError("Connection error: server unreachable")
        queued = self._failures.get(method)
        if queued:
            raise queued.pop(0)

    # --- test helpers ---
    def seed(self, title: str, body: str = "body", tags: Optional[List[str]] = None) -> RemoteNote:
        note = RemoteNote(id=f"srv-{self._next_id}", title=title, body=body, tags=tags or [],
                          updated_at=self._tick())
        self._next_id += 1
        self.notes[note.id] = note
        return note

    def edit_remotely(self, note_id: str, **fields) -> RemoteNote:
        current = self.notes[note_id]
        updated = current.model_copy(update={**fields, "updated_at": self._tick()})
        self.notes[note_id] = updated
        return updated

    def fail_next(self, method: str, error: Exception, times: int = 1) -> None:
        self._failures.setdefault(method, []).extend([error] * times)

    def conflict_on_update(self, note_id: str, **server_fields) -> RemoteNote:
        server_version = self.edit_remotely(note_id, **server_fields)
        self.conflicts[note_id] = server_version
        return server_version

    def calls_to(self, method: str) -> List[Tuple]:
        return [c for c in self.calls if c[0] == method]

    @property
    def mutating_calls(self) -> List[Tuple]:
        return [c for c in self.calls if c[0] in self.MUTATING]

    # --- NotesRemotePort ---
    async def list_notes(self) -> List[RemoteNote]:
        self.calls.append(("list_notes",))
        self._check("list_notes")
        return list(self.notes.values())

    async def get_note(self, note_id: str) -> Optional[RemoteNote]:
        self.calls.append(("get_note", note_id))
        self._check("get_note")
        return self.notes.get(note_id)

    async def create_note(self, request: CreateNoteRequest) -> RemoteNote:
        self.calls.append(("create_note", request.model_dump()))
        self._check("create_note")
        return self.seed(request.title, request.body, list(request.tags))

    async def update_note(self, note_id: str, request: UpdateNoteRequest) -> Optional[RemoteNote]:
        self.calls.append(("update_note", note_id, request.to_wire()))
        self._check("update_note")
        if note_id in self.conflicts:
            raise NoteConflictError(self.conflicts.pop(note_id))
        if note_id not in self.notes:
            raise NoteNotFoundError(note_id)
        changes = {k: v for k, v in request.model_dump(exclude={"updated_at"}).items() if v is not None}
        return self.edit_remotely(note_id, **changes)

    async def delete_note(self, note_id: str) -> None:
        self.calls.append(("delete_note", note_id))
        self._check("delete_note")
        if note_id not in self.notes:
            raise NoteNotFoundError(note_id)
        del self.notes[note_id]


class NotificationRecorder:
    def __init__(self):
        self.messages: List[Tuple[str, str]] = []

    def __call__(self, title: str, message: str) -> None:
        self.messages.append((title, message))


# --- Fixtures ---

@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "notes_cache.sqlite"


@pytest.fixture
def db(db_path):
    instance = NotesCacheDB(db_path)
    yield instance
    instance.close_connection()


@pytest.fixture
def mem_db():
    instance = NotesCacheDB(":memory:")
    yield instance
    instance.close_connection()


@pytest.fixture
def queue(db):
    return PendingMutationQueue(db)


@pytest.fixture
def server():
    return FakeNotesServer()


@pytest.fixture
def connectivity():
    return FakeConnectivitySource()


@pytest.fixture
def notifications():
    return NotificationRecorder()


@pytest_asyncio.fixture
async def network(connectivity):
    monitor = NetworkMonitor(connectivity)
    await monitor.initialize()
    yield monitor
    await monitor.wait_for_callbacks()
    monitor.reset()


@pytest.fixture
def sync_manager(db, queue, server, network, notifications):
    return SyncManager(db, queue, server, network, notify=notifications)


@pytest.fixture
def service(db, queue, sync_manager, network):
    return NotesService(db, queue, sync_manager, network)

#
# End of conftest.py
########################################################################################################################
