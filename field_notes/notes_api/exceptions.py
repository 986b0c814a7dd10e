# field_notes/notes_api/exceptions.py
#
#
#######################################################################################################################
#
# Functions:

class NotesAPIError(Exception):
    """Base exception for notes_api errors."""
    pass

class APIConnectionError(NotesAPIError):
    """Raised for network or connection issues (including timeouts)."""
    pass

class APIRequestError(NotesAPIError):
    """Raised when the server rejects the request as invalid (400/422)."""
    def __init__(self, message: str, response_data: dict = None):
        super().__init__(message)
        self.response_data = response_data or {}

class APIResponseError(NotesAPIError):
    """Raised for non-2xx responses or issues parsing the response."""
    def __init__(self, status_code: int, message: str, response_data: dict = None):
        super().__init__(f"API Error {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.response_data = response_data or {}

class AuthenticationError(NotesAPIError):
    """Raised for authentication failures."""
    pass

class NoteNotFoundError(APIResponseError):
    """Raised when the server has no note with the requested id (404)."""
    def __init__(self, note_id: str, response_data: dict = None):
        super().__init__(404, f"Note '{note_id}' not found on server", response_data=response_data)
        self.note_id = note_id

class NoteConflictError(APIResponseError):
    """
    Raised when the server detects a version clash (409). `server_version` holds
    the server's current copy of the note so the client can adopt it.
    """
    def __init__(self, server_version, response_data: dict = None):
        super().__init__(409, "conflict", response_data=response_data)
        self.server_version = server_version

#
# End of field_notes/notes_api/exceptions.py
########################################################################################################################
