# field_notes/notes_api/__init__.py
from .client import NotesAPIClient
from .exceptions import (
    NotesAPIError, APIConnectionError, APIRequestError,
    APIResponseError, AuthenticationError, NoteNotFoundError, NoteConflictError
)
from .port import NotesRemotePort
from .schemas import RemoteNote, CreateNoteRequest, UpdateNoteRequest

__all__ = [
    "NotesAPIClient", "NotesRemotePort",
    "NotesAPIError", "APIConnectionError", "APIRequestError",
    "APIResponseError", "AuthenticationError", "NoteNotFoundError", "NoteConflictError",
    "RemoteNote", "CreateNoteRequest", "UpdateNoteRequest",
]
