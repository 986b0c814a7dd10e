# field_notes/notes_api/port.py
# The interface the sync layer uses to reach the server. NotesAPIClient implements it over HTTP;
# tests substitute an in-memory fake.
from typing import List, Optional, Protocol, runtime_checkable

from .schemas import CreateNoteRequest, RemoteNote, UpdateNoteRequest


@runtime_checkable
class NotesRemotePort(Protocol):
    async def list_notes(self) -> List[RemoteNote]:
        ...

    async def get_note(self, note_id: str) -> Optional[RemoteNote]:
        """Returns None when the server has no such note."""
        ...

    async def create_note(self, request: CreateNoteRequest) -> RemoteNote:
        """The server assigns the id and timestamp."""
        ...

    async def update_note(self, note_id: str, request: UpdateNoteRequest) -> Optional[RemoteNote]:
        """Raises NoteConflictError on a version clash."""
        ...

    async def delete_note(self, note_id: str) -> None:
        ...
