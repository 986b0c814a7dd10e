# offline_sync.py
# Description: Replays the pending-mutation queue against the notes server, strictly in order.
#
# Imports
from dataclasses import dataclass
from typing import Any, Optional, Tuple
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from ..DB.Notes_Cache_DB import NotesCacheDB, NotesCacheDBError
from ..DB.Pending_Mutations import PendingMutationQueue
from ..DB.note_models import MutationKind, Note, PendingMutation, SyncStatus
from ..notes_api.exceptions import NoteNotFoundError as RemoteNoteNotFoundError
from ..notes_api.port import NotesRemotePort
from ..notes_api.schemas import CreateNoteRequest, UpdateNoteRequest
from .conflict_resolver import ConflictResolver, is_conflict_error
#
########################################################################################################################
#
# Functions:

@dataclass
class DrainResult:
    processed: int = 0
    conflicts: int = 0
    halted_on: Optional[PendingMutation] = None
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.halted_on is None


def describe_error(error: BaseException) -> str:
    return str(error) or type(error).__name__ or "sync failed"


class PendingMutationProcessor:
    """
    Drains the queue head first. A mutation is dequeued only in the same transaction
    that applies its acknowledged result locally; a crash before that replays it.
    A failed head marks its note `failed` and stops the drain so later mutations
    never overtake it.

    An update or remove the server answers with 404 does not block the queue: a
    remove is already done, and an update of a note that still exists locally
    recreates it on the server from the local copy.
    """

    def __init__(self, db: NotesCacheDB, queue: PendingMutationQueue, remote: NotesRemotePort,
                 resolver: ConflictResolver):
        self.db = db
        self.queue = queue
        self.remote = remote
        self.resolver = resolver

    async def process(self) -> DrainResult:
        result = DrainResult()
        mutations = self.queue.peek_all_in_order()
        if not mutations:
            return result
        logger.info(f"[offline-sync] processing {len(mutations)} pending mutation(s)")

        for mutation in mutations:
            target_id = self.db.resolve_note_id(mutation.target_id) if mutation.target_id else None
            before = self.db.get_note_for_sync(target_id) if target_id else None
            try:
                applied_as, response = await self._send_or_recover(mutation, target_id, before)
            except NotesCacheDBError:
                raise
            except Exception as e:
                if is_conflict_error(e):
                    with self.db.transaction():
                        self.resolver.resolve(before, e)
                        self.queue.dequeue(mutation.id)
                    result.conflicts += 1
                    result.processed += 1
                    continue
                message = describe_error(e)
                logger.error(f"[offline-sync] failed to sync mutation {mutation.id} ({mutation.kind.value}): "
                             f"{message}")
                if target_id:
                    self.db.update_sync_status(target_id, SyncStatus.FAILED, message)
                result.halted_on = mutation
                result.error = message
                break

            self._apply_acknowledged(mutation, applied_as, target_id, before, response)
            result.processed += 1
            logger.info(f"[offline-sync] synced mutation {mutation.id} ({mutation.kind.value})")
        return result

    async def _send(self, mutation: PendingMutation, target_id: Optional[str]) -> Any:
        payload = mutation.payload
        if mutation.kind == MutationKind.CREATE:
            return await self.remote.create_note(CreateNoteRequest(
                title=payload["title"], body=payload["body"], tags=payload.get("tags") or []))
        if mutation.kind == MutationKind.UPDATE:
            return await self.remote.update_note(target_id, UpdateNoteRequest(
                title=payload.get("title"), body=payload.get("body"), tags=payload.get("tags"),
                updated_at=payload.get("updated_at")))
        await self.remote.delete_note(target_id)
        return None

    async def _send_or_recover(self, mutation: PendingMutation, target_id: Optional[str],
                               before: Optional[Note]) -> Tuple[MutationKind, Any]:
        """Returns the kind of change the server actually acknowledged, and its response."""
        try:
            return mutation.kind, await self._send(mutation, target_id)
        except RemoteNoteNotFoundError:
            if mutation.kind == MutationKind.CREATE:
                raise
            if mutation.kind == MutationKind.REMOVE or before is None or before.is_deleted:
                logger.info(f"[offline-sync] note {target_id} already absent on server; dropping local copy")
                return MutationKind.REMOVE, None
            logger.warning(f"[offline-sync] note {target_id} is unknown to the server; recreating it from the local copy")
            created = await self.remote.create_note(CreateNoteRequest(
                title=before.title, body=before.body, tags=before.tags))
            return MutationKind.CREATE, created

    def _apply_acknowledged(self, mutation: PendingMutation, applied_as: MutationKind, target_id: Optional[str],
                            before: Optional[Note], response: Any) -> None:
        expected = before.local_updated_at if before else None
        with self.db.transaction():
            self.queue.dequeue(mutation.id)
            if applied_as == MutationKind.CREATE:
                self.db.replace_local_id(target_id, response, expected_local_updated_at=expected,
                                         keep_local_content=self.queue.has_operations_for(target_id))
            elif applied_as == MutationKind.UPDATE:
                if not self.queue.has_operations_for(target_id):
                    self.db.update_sync_status(target_id, SyncStatus.SYNCED, expected_local_updated_at=expected)
            else:
                self.db.hard_delete_note(target_id)
                if mutation.entity_id and mutation.entity_id != target_id:
                    self.db.hard_delete_note(mutation.entity_id)

#
# End of offline_sync.py
#######################################################################################################################
