# sync_manager.py
# Description: Sync state machine: pushes local changes, pulls the server's notes, and broadcasts its state.
#
"""
sync_manager.py
---------------

`SyncManager` coordinates the notes cache, the pending-mutation queue and the
notes server. States are `idle`, `syncing` and `error`:

- idle -> syncing when a per-note sync, a pending-changes pass or a pull starts.
  Every one of them requires the network monitor to report online, and only one
  pass runs at a time; a trigger that arrives during a pass is dropped.
- syncing -> idle when the pass finishes (including "nothing to do").
- syncing -> error when a pull or bulk pass fails as a whole. A single note that
  fails to push is marked `failed` and does not move the machine to `error`.
- error -> idle on the next successful pass.

Push order for a pending-changes pass: first the queue (strict id order, halting
at the first failure), then a sweep over notes still `pending` without queued
mutations, oldest local edit first, each note independent of the others.
"""
# Imports
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Set
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from ..DB.Notes_Cache_DB import NotesCacheDB, NotesCacheDBError
from ..DB.Pending_Mutations import PendingMutationQueue
from ..DB.note_models import Note, SyncStatus
from ..notes_api.exceptions import NoteNotFoundError as RemoteNoteNotFoundError
from ..notes_api.port import NotesRemotePort
from ..notes_api.schemas import CreateNoteRequest, UpdateNoteRequest
from .conflict_resolver import ConflictNotifier, ConflictResolver, is_conflict_error
from .network_monitor import NetworkMonitor
from .offline_sync import DrainResult, PendingMutationProcessor, describe_error
#
########################################################################################################################
#
# Functions:

class SyncState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    ERROR = "error"


SyncObserver = Callable[[SyncState], Any]


@dataclass
class SyncPassResult:
    drain: DrainResult = field(default_factory=DrainResult)
    pushed: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class SyncManager:
    def __init__(self, db: NotesCacheDB, queue: PendingMutationQueue, remote: NotesRemotePort,
                 network: NetworkMonitor, resolver: Optional[ConflictResolver] = None,
                 notify: Optional[ConflictNotifier] = None):
        self.db = db
        self.queue = queue
        self.remote = remote
        self.network = network
        self.resolver = resolver or ConflictResolver(db, notify)
        self.processor = PendingMutationProcessor(db, queue, remote, self.resolver)
        self._state = SyncState.IDLE
        self._is_syncing = False
        self._database_ready = False
        self._observers: Set[SyncObserver] = set()
        self.last_error: Optional[BaseException] = None

    # --- Observers ---
    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_syncing(self) -> bool:
        return self._is_syncing

    def subscribe(self, observer: SyncObserver) -> None:
        self._observers.add(observer)

    def unsubscribe(self, observer: SyncObserver) -> None:
        self._observers.discard(observer)

    def _set_state(self, state: SyncState) -> None:
        self._state = state
        for observer in list(self._observers):
            try:
                observer(state)
            except Exception as e:
                logger.opt(exception=True).error(f"Sync observer {observer!r} raised: {e}")

    # --- Lifecycle ---
    @property
    def database_ready(self) -> bool:
        return self._database_ready

    def set_database_ready(self) -> None:
        """Called once migrations have run; automatic triggers are ignored before that."""
        self._database_ready = True

    def failed_count(self) -> int:
        return self.db.count_notes_by_status(SyncStatus.FAILED)

    def _can_start_pass(self, operation: str) -> bool:
        if not self.network.is_online():
            logger.debug(f"{operation} skipped: offline")
            return False
        if self._is_syncing:
            logger.debug(f"{operation} skipped: a sync pass is already running")
            return False
        return True

    # --- Push ---
    async def sync_note(self, note_id: str) -> Optional[str]:
        """
        Pushes one note. Returns the note's id after the push (a created note gets the
        server's id), or None when nothing was pushed.

        Raises:
            NotesCacheDBError: If the local store fails (the machine moves to `error`).
        """
        if not self._can_start_pass("sync_note"):
            return None
        self._is_syncing = True
        self._set_state(SyncState.SYNCING)
        try:
            note = self.db.get_note_for_sync(note_id)
            if note is None or note.sync_status == SyncStatus.SYNCED or self.queue.has_operations_for(note_id):
                logger.debug(f"sync_note({note_id}): nothing to push")
                final_id = None
            else:
                final_id = await self._sync_single_note(note)
            self._set_state(SyncState.IDLE)
            return final_id
        except Exception as e:
            self.last_error = e
            logger.opt(exception=True).error(f"Failed to sync note {note_id}: {e}")
            self._set_state(SyncState.ERROR)
            raise
        finally:
            self._is_syncing = False

    async def sync_pending_changes(self) -> Optional[SyncPassResult]:
        """Drains the queue, then sweeps remaining pending notes. Returns None if the pass did not start."""
        if not self._can_start_pass("sync_pending_changes"):
            return None
        self._is_syncing = True
        self._set_state(SyncState.SYNCING)
        try:
            result = SyncPassResult()
            result.drain = await self.processor.process()
            await self._sweep_pending(result)
            logger.info(f"Sync pass done: {result.drain.processed} queued mutation(s) replayed, "
                        f"{len(result.pushed)} note(s) pushed, {len(result.failed)} failed.")
            self._set_state(SyncState.IDLE)
            return result
        except Exception as e:
            self.last_error = e
            logger.opt(exception=True).error(f"Sync failed: {e}")
            self._set_state(SyncState.ERROR)
            raise
        finally:
            self._is_syncing = False

    async def _sweep_pending(self, result: SyncPassResult) -> None:
        candidates = [note.id for note in self.db.list_notes_by_status(SyncStatus.PENDING)]
        for note_id in candidates:
            # re-read: the note may have been edited or pushed since the listing
            note = self.db.get_note_for_sync(note_id)
            if note is None or note.sync_status != SyncStatus.PENDING or self.queue.has_operations_for(note_id):
                result.skipped.append(note_id)
                continue
            final_id = await self._sync_single_note(note)
            refreshed = self.db.get_note_for_sync(final_id)
            if refreshed is not None and refreshed.sync_status == SyncStatus.FAILED:
                result.failed.append(final_id)
            else:
                result.pushed.append(final_id)

    async def _sync_single_note(self, note: Note) -> str:
        """
        Pushes the current local state of one note. Remote failures mark the note
        `failed`; conflicts are resolved server-wins. Local store errors propagate.
        """
        expected = note.local_updated_at
        try:
            if note.is_deleted:
                await self._remote_delete(note.id)
                self.db.hard_delete_note(note.id)
                return note.id

            remote_ids = {remote_note.id for remote_note in await self.remote.list_notes()}
            if note.id in remote_ids:
                await self.remote.update_note(note.id, UpdateNoteRequest(
                    title=note.title, body=note.body, tags=note.tags, updated_at=note.updated_at))
                self.db.update_sync_status(note.id, SyncStatus.SYNCED, expected_local_updated_at=expected)
                return note.id

            created = await self.remote.create_note(CreateNoteRequest(
                title=note.title, body=note.body, tags=note.tags))
            self.db.replace_local_id(note.id, created, expected_local_updated_at=expected)
            return created.id
        except NotesCacheDBError:
            raise
        except Exception as e:
            if is_conflict_error(e):
                return self.resolver.resolve(note, e).id
            message = describe_error(e)
            logger.warning(f"Push of note {note.id} failed: {message}")
            self.db.update_sync_status(note.id, SyncStatus.FAILED, message)
            return note.id

    async def _remote_delete(self, note_id: str) -> None:
        try:
            await self.remote.delete_note(note_id)
        except RemoteNoteNotFoundError:
            logger.info(f"Note {note_id} already absent on server; treating delete as done")

    # --- Pull ---
    async def pull_from_server(self, is_initial_sync: bool = False) -> bool:
        """
        Mirrors the server's notes into the cache and hard-deletes synced notes the
        server no longer lists. Notes with unacknowledged local changes (pending or
        failed) are left alone. Returns True if a pull ran and succeeded.

        On an initial sync a failure leaves the machine `idle` and the error is
        re-raised for the caller to log. Otherwise a server failure moves the machine
        to `error` and returns False; a local store failure moves it to `error` and
        is re-raised.
        """
        if not self._can_start_pass("pull_from_server"):
            return False
        self._is_syncing = True
        self._set_state(SyncState.SYNCING)
        try:
            server_notes = await self.remote.list_notes()
            server_ids = {remote_note.id for remote_note in server_notes}
            kept_local = 0
            for remote_note in server_notes:
                local = self.db.get_note_for_sync(remote_note.id)
                if local is not None and local.sync_status != SyncStatus.SYNCED:
                    kept_local += 1
                    continue
                self.db.upsert_note_from_server(remote_note)

            removed = 0
            for local_id in self.db.get_synced_note_ids():
                if local_id not in server_ids:
                    logger.info(f"[sync] removing remotely deleted note: {local_id}")
                    self.db.hard_delete_note(local_id)
                    removed += 1

            logger.info(f"Pulled {len(server_notes)} note(s) from server; {removed} removed locally, "
                        f"{kept_local} kept with unsynced local changes.")
            self._set_state(SyncState.IDLE)
            return True
        except Exception as e:
            self.last_error = e
            logger.opt(exception=not is_initial_sync).error(f"Pull from server failed: {e}")
            self._set_state(SyncState.IDLE if is_initial_sync else SyncState.ERROR)
            if is_initial_sync or isinstance(e, NotesCacheDBError):
                raise
            return False
        finally:
            self._is_syncing = False

    # --- Recovery ---
    async def retry_failed_syncs(self) -> Optional[SyncPassResult]:
        """Resets failed notes to pending and runs a pending-changes pass."""
        if not self._can_start_pass("retry_failed_syncs"):
            return None
        reset = self.db.reset_failed_to_pending()
        if reset:
            logger.info(f"Retrying {reset} failed note(s)")
        return await self.sync_pending_changes()

#
# End of sync_manager.py
#######################################################################################################################
