# Pending_Mutations.py
# Description: Append-only queue of local note mutations that have not yet been acknowledged by the server.
#
"""
Pending_Mutations.py
--------------------

The queue shares the notes cache database file so that a local write and its
queued mutation can be committed in one transaction:

    with db.transaction():
        note = db.update_local_note(note_id, update)
        queue.enqueue(MutationKind.UPDATE, note_id, update.present_fields())

Mutations are replayed strictly in id order and removed only after the server
has acknowledged them, so a crash mid-drain causes a retry rather than a loss.
"""
# Imports
import json
import logging
import sqlite3
from typing import Any, Dict, List, Optional
#
# Local Imports
from .Notes_Cache_DB import NotesCacheDB, NotesCacheDBError
from .note_models import InputError, MutationKind, PendingMutation, utc_now_iso
#
########################################################################################################################
#
# Functions:

logger = logging.getLogger(__name__)


class PendingMutationQueue:
    def __init__(self, db: NotesCacheDB):
        self.db = db

    def enqueue(self, kind: MutationKind, entity_id: Optional[str], payload: Dict[str, Any]) -> int:
        """
        Appends a mutation and returns its queue id. Creates carry no entity id; their
        payload must hold the temporary `local_id` instead.

        Raises:
            InputError: If the kind/entity id combination is invalid.
            NotesCacheDBError: If the store fails.
        """
        kind = MutationKind(kind)
        if kind == MutationKind.CREATE:
            if entity_id is not None:
                raise InputError("Create mutations must not carry an entity id.")
            if not payload.get("local_id"):
                raise InputError("Create mutations require 'local_id' in their payload.")
        elif not entity_id:
            raise InputError(f"'{kind.value}' mutations require an entity id.")

        try:
            with self.db.transaction() as conn:
                cursor = conn.execute(
                    "INSERT INTO pending_mutations (type, note_id, payload, created_at) VALUES (?, ?, ?, ?)",
                    (kind.value, entity_id, json.dumps(payload), utc_now_iso()))
                mutation_id = cursor.lastrowid
        except sqlite3.Error as e:
            logger.error(f"Failed to enqueue {kind.value} mutation for {entity_id}: {e}", exc_info=True)
            raise NotesCacheDBError(f"Failed to enqueue mutation: {e}") from e
        logger.info(f"Queued {kind.value} mutation #{mutation_id} (note: {entity_id or payload.get('local_id')}).")
        return mutation_id

    def peek_all_in_order(self) -> List[PendingMutation]:
        cursor = self.db.execute_query("SELECT * FROM pending_mutations ORDER BY id ASC")
        return [PendingMutation.from_row(row) for row in cursor.fetchall()]

    def dequeue(self, mutation_id: int) -> bool:
        """Removes a mutation. Removing one that is already gone is not an error."""
        try:
            with self.db.transaction() as conn:
                removed = conn.execute("DELETE FROM pending_mutations WHERE id = ?", (mutation_id,)).rowcount
        except sqlite3.Error as e:
            raise NotesCacheDBError(f"Failed to dequeue mutation #{mutation_id}: {e}") from e
        if removed:
            logger.debug(f"Dequeued mutation #{mutation_id}.")
        return bool(removed)

    def is_empty(self) -> bool:
        return self.count() == 0

    def count(self) -> int:
        row = self.db.execute_query("SELECT COUNT(*) AS n FROM pending_mutations").fetchone()
        return row['n']

    def has_operations_for(self, note_id: str) -> bool:
        """True if any queued mutation targets the note, under its current id or a temporary id it replaced."""
        row = self.db.execute_query(
            """SELECT EXISTS(
                 SELECT 1 FROM pending_mutations
                  WHERE note_id = ?
                     OR note_id IN (SELECT local_id FROM note_id_aliases WHERE server_id = ?)
                     OR (type = 'create' AND json_extract(payload, '$.local_id') = ?)
               ) AS queued""",
            (note_id, note_id, note_id)).fetchone()
        return bool(row['queued'])

#
# End of Pending_Mutations.py
#######################################################################################################################
