# conflict_resolver.py
# Description: Server-wins handling of version clashes reported by the notes server.
#
# Imports
from typing import Any, Callable, Optional
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from ..DB.Notes_Cache_DB import NotesCacheDB
from ..DB.note_models import Note
from ..notes_api.exceptions import NoteConflictError
from ..notes_api.schemas import RemoteNote
#
########################################################################################################################
#
# Functions:

# (title, message) -> shown to the user
ConflictNotifier = Callable[[str, str], Any]

CONFLICT_NOTICE_TITLE = "Note updated on another device"


def is_conflict_error(error: BaseException) -> bool:
    return isinstance(error, NoteConflictError) and error.server_version is not None


def _log_notice(title: str, message: str) -> None:
    logger.info(f"{title}: {message}")


class ConflictResolver:
    """Adopts the server's version wholesale; no field-level merge."""

    def __init__(self, db: NotesCacheDB, notify: Optional[ConflictNotifier] = None):
        self.db = db
        self.notify = notify or _log_notice

    def resolve(self, local_note: Optional[Note], error: NoteConflictError) -> RemoteNote:
        server_note = error.server_version
        if local_note is not None and local_note.id != server_note.id:
            # the conflicting push was a create under a temporary id
            self.db.replace_local_id(local_note.id, server_note)
        else:
            self.db.upsert_note_from_server(server_note)
        logger.info(f"Conflict on note {server_note.id}: local edit discarded, server version adopted.")
        try:
            self.notify(CONFLICT_NOTICE_TITLE, f'"{server_note.title}" was synced from server')
        except Exception as e:
            logger.opt(exception=True).error(f"Conflict notification failed: {e}")
        return server_note

#
# End of conflict_resolver.py
#######################################################################################################################
