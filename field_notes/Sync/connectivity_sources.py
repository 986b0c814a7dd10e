# connectivity_sources.py
# Description: ConnectivitySource backed by the OS interface table (psutil) and an HTTP probe of the notes server.
#
# Imports
import asyncio
from typing import Callable, List, Optional
#
# Third-Party Imports
import httpx
import psutil
from loguru import logger
#
# Local Imports
from .network_monitor import ConnectivityListener, ConnectivityState
#
########################################################################################################################
#
# Functions:

def any_interface_up() -> Optional[bool]:
    """True if a non-loopback interface is up; None if the OS cannot be asked."""
    try:
        stats = psutil.net_if_stats()
    except (OSError, psutil.Error) as e:
        logger.debug(f"psutil.net_if_stats() failed: {e}")
        return None
    return any(nic.isup for name, nic in stats.items() if not name.lower().startswith("lo"))


class ProbingConnectivitySource:
    """
    Coarse signal: any non-loopback interface up.
    Fine signal: an HTTP request to `probe_url` gets any response (True), is refused (False)
    or times out (None, undecided).

    `start()` polls every `poll_interval` seconds and calls listeners when the reading changes.
    """

    def __init__(self, probe_url: str, poll_interval: float = 5.0, probe_timeout: float = 3.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.probe_url = probe_url
        self.poll_interval = poll_interval
        self.probe_timeout = probe_timeout
        self._transport = transport
        self._listeners: List[ConnectivityListener] = []
        self._last_state: Optional[ConnectivityState] = None
        self._poll_task: Optional[asyncio.Task] = None

    async def _probe(self) -> Optional[bool]:
        try:
            async with httpx.AsyncClient(timeout=self.probe_timeout, transport=self._transport) as client:
                await client.head(self.probe_url)
            return True
        except httpx.TimeoutException:
            return None
        except httpx.HTTPError as e:
            logger.debug(f"Connectivity probe to {self.probe_url} failed: {e}")
            return False

    async def fetch(self) -> ConnectivityState:
        attached = any_interface_up()
        if attached is False:
            return ConnectivityState(is_connected=False, is_internet_reachable=False, connection_type="none")
        reachable = await self._probe()
        return ConnectivityState(is_connected=attached, is_internet_reachable=reachable,
                                 connection_type="other" if attached else "unknown")

    def add_listener(self, listener: ConnectivityListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return remove

    def _emit(self, state: ConnectivityState) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.opt(exception=True).error(f"Connectivity listener {listener!r} raised: {e}")

    async def poll_once(self) -> ConnectivityState:
        state = await self.fetch()
        if state != self._last_state:
            self._last_state = state
            self._emit(state)
        return state

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.poll_once()
            except Exception as e:
                logger.warning(f"Connectivity poll failed: {e}")
            await asyncio.sleep(self.poll_interval)

    def start(self) -> None:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())
            logger.debug(f"Started connectivity polling of {self.probe_url} every {self.poll_interval}s")

    async def stop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

#
# End of connectivity_sources.py
#######################################################################################################################
