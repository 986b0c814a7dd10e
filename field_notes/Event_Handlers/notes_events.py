# notes_events.py
# Description: Handlers for the notes screen buttons and inputs.
#
# Imports
from typing import List, TYPE_CHECKING
#
# 3rd-Party Imports
from loguru import logger
from textual.css.query import QueryError
from textual.widgets import Input, TextArea
#
# Local Imports
from ..DB.Notes_Cache_DB import NoteNotFoundError, NotesCacheDBError
from ..DB.note_models import InputError
#
if TYPE_CHECKING:
    from ..app import FieldNotesApp
#
########################################################################################################################
#
# Functions:

def parse_tags_input(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _read_editor(app: 'FieldNotesApp'):
    title = app.query_one("#note-title-input", Input).value
    body = app.query_one("#note-body-editor", TextArea).text
    tags = parse_tags_input(app.query_one("#note-tags-input", Input).value)
    return title, body, tags


async def save_current_note_handler(app: 'FieldNotesApp') -> bool:
    """Creates a new note or updates the selected one from the editor fields."""
    try:
        title, body, tags = _read_editor(app)
    except QueryError as e:
        logger.error(f"Editor widgets not found: {e}")
        app.notify("UI error: editor not found.", severity="error")
        return False

    service = app.core.service
    try:
        if app.selected_note_id is None:
            note = await service.create_note(title, body, tags)
            app.notify(f"Note '{note.title}' created.", severity="information")
        else:
            note = await service.update_note(app.selected_note_id, title=title, body=body, tags=tags)
            app.notify(f"Note '{note.title}' saved.", severity="information")
        app.selected_note_id = note.id
    except InputError as e:
        app.notify(str(e), title="Invalid note", severity="warning")
        return False
    except NoteNotFoundError:
        app.notify("This note no longer exists.", severity="warning")
        app.selected_note_id = None
        await app.refresh_notes()
        return False
    except NotesCacheDBError as e:
        logger.opt(exception=True).error(f"Saving note failed: {e}")
        app.notify(f"Could not save note: {e}", severity="error")
        return False
    await app.refresh_notes()
    return True


async def delete_current_note_handler(app: 'FieldNotesApp') -> bool:
    if app.selected_note_id is None:
        app.notify("No note selected.", severity="warning")
        return False
    try:
        await app.core.service.delete_note(app.selected_note_id)
    except NoteNotFoundError:
        app.notify("This note no longer exists.", severity="warning")
    except NotesCacheDBError as e:
        logger.opt(exception=True).error(f"Deleting note {app.selected_note_id} failed: {e}")
        app.notify(f"Could not delete note: {e}", severity="error")
        return False
    else:
        app.notify("Note deleted.", severity="information")
    app.clear_editor()
    await app.refresh_notes()
    return True


async def load_note_into_editor(app: 'FieldNotesApp', note_id: str) -> None:
    note = app.core.service.get_note(note_id)
    if note is None:
        app.notify("This note no longer exists.", severity="warning")
        await app.refresh_notes()
        return
    app.selected_note_id = note.id
    app.query_one("#note-title-input", Input).value = note.title
    app.query_one("#note-body-editor", TextArea).load_text(note.body)
    app.query_one("#note-tags-input", Input).value = ", ".join(note.tags)
    if note.last_sync_error:
        app.notify(f"Last sync failed: {note.last_sync_error}", severity="warning")


NOTES_BUTTON_HANDLERS = {
    "note-save-button": save_current_note_handler,
    "note-delete-button": delete_current_note_handler,
}

#
# End of notes_events.py
########################################################################################################################
