# app.py
# Description: Textual front end for field_notes; also the composition root that builds and starts the sync core.
#
# Imports
from typing import Any, Dict, Optional
#
# 3rd-Party Libraries
from loguru import logger
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Button, Footer, Header, Input, Label, ListItem, ListView, TextArea
#
# Local Imports
from .Event_Handlers.app_lifecycle import (
    SyncCore, build_sync_core, handle_app_foreground, handle_manual_retry, shutdown_sync_core,
    start_sync_core,
)
from .Event_Handlers.notes_events import NOTES_BUTTON_HANDLERS, load_note_into_editor
from .Logging_Config import configure_logging
from .Sync.sync_manager import SyncState
from .Widgets.sync_status_bar import SyncStatusBar
from .config import load_settings
#
########################################################################################################################
#
# Functions:

SYNC_BADGES = {"synced": "", "pending": " (pending)", "failed": " (failed)"}


class FieldNotesApp(App[None]):
    TITLE = "Field Notes"
    CSS = """
    #notes-list-pane { width: 40%; }
    #note-editor-pane { width: 60%; }
    #note-body-editor { height: 1fr; }
    SyncStatusBar { height: 3; layout: horizontal; }
    #sync-status-text { width: 1fr; padding: 1 1; }
    """
    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit"),
        Binding("ctrl+n", "new_note", "New note"),
        Binding("ctrl+r", "retry_sync", "Retry sync"),
    ]

    def __init__(self, app_config: Optional[Dict[str, Any]] = None, core: Optional[SyncCore] = None, **kwargs):
        super().__init__(**kwargs)
        self.app_config = app_config if app_config is not None else load_settings()
        self.core = core
        self.selected_note_id: Optional[str] = None
        self._configure_logging = core is None

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal():
            with Vertical(id="notes-list-pane"):
                yield Input(placeholder="Search notes...", id="notes-search-input")
                yield Input(placeholder="Filter by tag", id="notes-tag-filter-input")
                yield ListView(id="notes-list")
            with Vertical(id="note-editor-pane"):
                yield Input(placeholder="Title", id="note-title-input")
                yield TextArea(id="note-body-editor")
                yield Input(placeholder="tags, comma separated", id="note-tags-input")
                with Horizontal():
                    yield Button("Save", id="note-save-button", variant="primary")
                    yield Button("New", id="note-new-button")
                    yield Button("Delete", id="note-delete-button", variant="error")
        yield SyncStatusBar(id="sync-status-bar")
        yield Footer()

    async def on_mount(self) -> None:
        if self._configure_logging:
            configure_logging(self.app_config, use_textual_handler=True)
        if self.core is None:
            self.core = build_sync_core(self.app_config, notify=self._notify_conflict)
        self.core.sync_manager.subscribe(self._on_sync_state)
        self.core.network.subscribe(self._on_online_changed)
        await self.refresh_notes()
        self.run_worker(self._start_core(), name="sync-startup")

    async def _start_core(self) -> None:
        await start_sync_core(self.core, self.app_config)
        self._update_status_bar()
        await self.refresh_notes()

    async def on_unmount(self) -> None:
        if self.core is not None:
            self.core.sync_manager.unsubscribe(self._on_sync_state)
            self.core.network.unsubscribe(self._on_online_changed)
            await shutdown_sync_core(self.core)

    # --- Sync signals ---
    def _notify_conflict(self, title: str, message: str) -> None:
        self.notify(message, title=title, severity="information")

    def _on_sync_state(self, state: SyncState) -> None:
        self._update_status_bar(state)
        if state != SyncState.SYNCING:
            self.call_later(self.refresh_notes)

    def _on_online_changed(self, is_online: bool) -> None:
        self._update_status_bar()

    def _update_status_bar(self, state: Optional[SyncState] = None) -> None:
        self.query_one(SyncStatusBar).update_status(
            state=state or self.core.sync_manager.state,
            is_online=self.core.network.is_online(),
            failed_count=self.core.service.failed_count())

    async def on_app_focus(self, event: events.AppFocus) -> None:
        if self.core is not None:
            self.run_worker(handle_app_foreground(self.core), name="sync-foreground")

    # --- Notes list ---
    async def refresh_notes(self) -> None:
        search = self.query_one("#notes-search-input", Input).value
        tag = self.query_one("#notes-tag-filter-input", Input).value.strip() or None
        notes = self.core.service.filter_notes(search, tag) if self.core else []
        list_view = self.query_one("#notes-list", ListView)
        await list_view.clear()
        await list_view.extend(
            ListItem(Label(f"{note.title}{SYNC_BADGES.get(note.sync_status.value, '')}", markup=False),
                     name=note.id)
            for note in notes)

    def clear_editor(self) -> None:
        self.selected_note_id = None
        self.query_one("#note-title-input", Input).value = ""
        self.query_one("#note-body-editor", TextArea).load_text("")
        self.query_one("#note-tags-input", Input).value = ""

    async def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id in ("notes-search-input", "notes-tag-filter-input"):
            await self.refresh_notes()

    async def on_list_view_selected(self, event: ListView.Selected) -> None:
        if event.item is not None and event.item.name:
            await load_note_into_editor(self, event.item.name)

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        button_id = event.button.id
        if button_id == "note-new-button":
            self.action_new_note()
        elif button_id == "sync-retry-button":
            await self.action_retry_sync()
        elif button_id in NOTES_BUTTON_HANDLERS:
            await NOTES_BUTTON_HANDLERS[button_id](self)
        else:
            logger.warning(f"Unhandled button press: {button_id}")

    def action_new_note(self) -> None:
        self.clear_editor()
        self.query_one("#note-title-input", Input).focus()

    async def action_retry_sync(self) -> None:
        if not self.core.network.is_online():
            self.notify("You are offline. Changes will sync when the connection returns.", severity="warning")
            return
        self.run_worker(handle_manual_retry(self.core), name="sync-retry")


def main() -> None:
    FieldNotesApp(app_config=load_settings()).run()

#
# End of app.py
#######################################################################################################################
