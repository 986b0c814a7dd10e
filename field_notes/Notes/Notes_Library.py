# Notes_Library.py
# Description: Service layer the UI uses to read and write notes; routes writes to the server or the offline queue.
#
# Imports
from typing import Any, List, Optional
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from ..DB.Notes_Cache_DB import NotesCacheDB
from ..DB.Pending_Mutations import PendingMutationQueue
from ..DB.note_models import MutationKind, Note, NoteFields, NoteUpdate
from ..Sync.network_monitor import NetworkMonitor
from ..Sync.sync_manager import SyncManager
#
#######################################################################################################################
#
# Functions:

class NotesService:
    """
    Every write lands in the local cache first. When online, and nothing for that
    note is still waiting in the queue, the write is pushed right away; otherwise
    it is queued in the same transaction as the local write.
    """

    def __init__(self, db: NotesCacheDB, queue: PendingMutationQueue, sync_manager: SyncManager,
                 network: NetworkMonitor):
        self.db = db
        self.queue = queue
        self.sync_manager = sync_manager
        self.network = network

    def _push_directly(self, note_id: Optional[str] = None) -> bool:
        if not self.network.is_online():
            return False
        return note_id is None or not self.queue.has_operations_for(note_id)

    async def _push_and_reload(self, note: Note) -> Note:
        final_id = await self.sync_manager.sync_note(note.id)
        return self.db.get_note_for_sync(final_id or note.id) or note

    async def create_note(self, title: str, body: str, tags: Optional[List[str]] = None) -> Note:
        """
        Raises:
            InputError: If the fields are invalid.
            NotesCacheDBError: If the local write fails.
        """
        fields = NoteFields.parse(title, body, tags)
        if self._push_directly():
            note = self.db.insert_local_note(fields)
            return await self._push_and_reload(note)

        with self.db.transaction():
            note = self.db.insert_local_note(fields)
            self.queue.enqueue(MutationKind.CREATE, None, {"local_id": note.id, **fields.model_dump()})
        logger.info(f"Offline: queued creation of note '{note.title}' ({note.id})")
        return note

    async def update_note(self, note_id: str, **changes: Any) -> Note:
        update = NoteUpdate.parse(**changes)
        note_id = self.db.resolve_note_id(note_id)
        if self._push_directly(note_id):
            note = self.db.update_local_note(note_id, update)
            return await self._push_and_reload(note)

        with self.db.transaction():
            note = self.db.update_local_note(note_id, update)
            payload = {**update.present_fields(), "updated_at": note.local_updated_at}
            self.queue.enqueue(MutationKind.UPDATE, note_id, payload)
        logger.info(f"Queued update of note {note_id} (fields: {sorted(update.present_fields())})")
        return note

    async def delete_note(self, note_id: str) -> None:
        note_id = self.db.resolve_note_id(note_id)
        if self._push_directly(note_id):
            self.db.soft_delete_note(note_id)
            await self.sync_manager.sync_note(note_id)
            return

        with self.db.transaction():
            self.db.soft_delete_note(note_id)
            self.queue.enqueue(MutationKind.REMOVE, note_id, {})
        logger.info(f"Queued deletion of note {note_id}")

    def get_note(self, note_id: str) -> Optional[Note]:
        return self.db.get_note_by_id(self.db.resolve_note_id(note_id))

    def list_notes(self) -> List[Note]:
        return self.db.get_all_notes()

    def filter_notes(self, search: str = "", tag: Optional[str] = None) -> List[Note]:
        """Case-insensitive substring match on title or body, plus an exact tag match when `tag` is given."""
        needle = (search or "").strip().casefold()
        matches = []
        for note in self.db.get_all_notes():
            if needle and needle not in note.title.casefold() and needle not in note.body.casefold():
                continue
            if tag and tag not in note.tags:
                continue
            matches.append(note)
        return matches

    def get_all_tags(self) -> List[str]:
        return sorted({tag for note in self.db.get_all_notes() for tag in note.tags}, key=str.casefold)

    def failed_count(self) -> int:
        return self.sync_manager.failed_count()

#
# End of Notes_Library.py
#######################################################################################################################
