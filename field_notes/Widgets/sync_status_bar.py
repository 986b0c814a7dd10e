# field_notes/Widgets/sync_status_bar.py
#
# Imports
#
# 3rd-party Libraries
from textual.app import ComposeResult
from textual.widget import Widget
from textual.widgets import Button, Static
#
# Local Imports
from ..Sync.sync_manager import SyncState
#
########################################################################################################################
#
# SyncStatusBar

def format_sync_status(state: SyncState, is_online: bool, failed_count: int) -> str:
    if not is_online:
        text = "Offline - changes are saved on this device"
    elif state == SyncState.SYNCING:
        text = "Syncing..."
    elif state == SyncState.ERROR:
        text = "Sync error"
    else:
        text = "All changes synced" if failed_count == 0 else ""
    if failed_count:
        noun = "note" if failed_count == 1 else "notes"
        failed_text = f"{failed_count} {noun} failed to sync"
        text = f"{text} | {failed_text}" if text else failed_text
    return text


class SyncStatusBar(Widget):
    """Sync state, online flag and failed count, with a retry button shown when retrying can help."""

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._status_display = Static("", id="sync-status-text")
        self._retry_button = Button("Retry", id="sync-retry-button", variant="warning")
        self.state = SyncState.IDLE
        self.is_online = True
        self.failed_count = 0

    def compose(self) -> ComposeResult:
        yield self._status_display
        yield self._retry_button

    def on_mount(self) -> None:
        self.refresh_status()

    def update_status(self, state: SyncState = None, is_online: bool = None, failed_count: int = None) -> None:
        if state is not None:
            self.state = state
        if is_online is not None:
            self.is_online = is_online
        if failed_count is not None:
            self.failed_count = failed_count
        self.refresh_status()

    def refresh_status(self) -> None:
        self._status_display.update(format_sync_status(self.state, self.is_online, self.failed_count))
        self._retry_button.display = self.is_online and (self.failed_count > 0 or self.state == SyncState.ERROR)

#
# End of sync_status_bar.py
########################################################################################################################
