# app_lifecycle.py
# Description: Builds the sync core and handles the app-level triggers (startup, foreground, reconnect, shutdown).
#
# Imports
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union
#
# 3rd-Party Imports
from loguru import logger
#
# Local Imports
from ..DB.Notes_Cache_DB import NotesCacheDB
from ..DB.Pending_Mutations import PendingMutationQueue
from ..Notes.Notes_Library import NotesService
from ..Sync.conflict_resolver import ConflictNotifier
from ..Sync.connectivity_sources import ProbingConnectivitySource
from ..Sync.network_monitor import ConnectivitySource, NetworkMonitor
from ..Sync.sync_manager import SyncManager
from ..config import get_notes_db_path, get_probe_url
from ..notes_api.client import NotesAPIClient
from ..notes_api.port import NotesRemotePort
#
########################################################################################################################
#
# Functions:

@dataclass
class SyncCore:
    db: NotesCacheDB
    queue: PendingMutationQueue
    remote: NotesRemotePort
    network: NetworkMonitor
    sync_manager: SyncManager
    service: NotesService
    poller: Optional[ProbingConnectivitySource] = None
    sync_on_foreground: bool = True


def build_sync_core(app_config: Dict[str, Any], db_path: Optional[Union[str, Path]] = None,
                    remote: Optional[NotesRemotePort] = None, source: Optional[ConnectivitySource] = None,
                    notify: Optional[ConflictNotifier] = None) -> SyncCore:
    """Wires the store, queue, server client, network monitor, sync manager and notes service together."""
    api_section = app_config.get("api", {})
    network_section = app_config.get("network", {})
    sync_section = app_config.get("sync", {})

    db = NotesCacheDB(db_path or get_notes_db_path())
    queue = PendingMutationQueue(db)
    if remote is None:
        remote = NotesAPIClient(api_section.get("base_url", ""), token=api_section.get("token") or None,
                                timeout=float(api_section.get("timeout", 10.0)))
    poller = None
    if source is None:
        poller = ProbingConnectivitySource(
            get_probe_url(app_config),
            poll_interval=float(network_section.get("poll_interval", 5.0)),
            probe_timeout=float(network_section.get("probe_timeout", 3.0)))
        source = poller
    network = NetworkMonitor(source)
    sync_manager = SyncManager(db, queue, remote, network, notify=notify)
    service = NotesService(db, queue, sync_manager, network)
    return SyncCore(db=db, queue=queue, remote=remote, network=network, sync_manager=sync_manager,
                    service=service, poller=poller,
                    sync_on_foreground=bool(sync_section.get("sync_on_foreground", True)))


async def start_sync_core(core: SyncCore, app_config: Dict[str, Any]) -> None:
    """Runs once the app is up: starts network monitoring, wires reconnect retries and runs the startup sync."""
    sync_section = app_config.get("sync", {})
    await core.network.initialize()
    logger.info("[app] network monitoring initialized")
    if core.poller is not None:
        core.poller.start()

    # migrations ran in the NotesCacheDB constructor
    core.sync_manager.set_database_ready()

    if sync_section.get("sync_on_reconnect", True):
        core.network.set_on_connectivity_restored(lambda: handle_connectivity_restored(core))

    await handle_startup_sync(core, initial_pull=sync_section.get("initial_pull", True))


async def handle_startup_sync(core: SyncCore, initial_pull: bool = True) -> None:
    """First launch pulls everything; otherwise anything left over from the previous run is pushed."""
    if not core.network.is_online():
        logger.info("[app] starting offline; sync deferred until connectivity returns")
        return
    if initial_pull and core.db.is_empty():
        try:
            await core.sync_manager.pull_from_server(is_initial_sync=True)
        except Exception as e:
            logger.warning(f"[app] initial sync failed, continuing with an empty local cache: {e}")
        return
    await _retry(core, "startup")


async def handle_app_foreground(core: SyncCore) -> None:
    if not core.sync_manager.database_ready or not core.sync_on_foreground:
        return
    await _retry(core, "app foreground")


async def handle_connectivity_restored(core: SyncCore) -> None:
    if not core.sync_manager.database_ready:
        return
    await _retry(core, "connectivity restored")


async def handle_manual_retry(core: SyncCore) -> None:
    await _retry(core, "manual retry")


async def _retry(core: SyncCore, trigger: str) -> None:
    logger.debug(f"[app] {trigger}: retrying failed and pending syncs")
    try:
        await core.sync_manager.retry_failed_syncs()
    except Exception as e:
        logger.opt(exception=True).error(f"[app] sync after {trigger} failed: {e}")


async def shutdown_sync_core(core: SyncCore) -> None:
    if core.poller is not None:
        await core.poller.stop()
    if isinstance(core.remote, NotesAPIClient):
        await core.remote.close()
    core.network.reset()
    core.db.close_connection()
    logger.info("[app] sync core shut down")

#
# End of app_lifecycle.py
########################################################################################################################
