# network_monitor.py
# Description: Cached "is the server reachable" flag, fed by a platform connectivity source.
#
# Imports
import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol, Set, Union
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
#
########################################################################################################################
#
# Functions:

@dataclass(frozen=True)
class ConnectivityState:
    """
    A platform connectivity reading. Either signal may be None while the platform
    has not decided yet.

    is_connected: attached to some network (coarse).
    is_internet_reachable: the internet/server actually answers (fine).
    """
    is_connected: Optional[bool]
    is_internet_reachable: Optional[bool]
    connection_type: str = "unknown"


def resolve_is_online(state: ConnectivityState) -> bool:
    """The fine signal wins when known; otherwise fall back to the coarse one; unknown on both is offline."""
    if state.is_internet_reachable is not None:
        return state.is_internet_reachable
    return bool(state.is_connected)


ConnectivityListener = Callable[[ConnectivityState], None]
OnlineObserver = Callable[[bool], Any]
RestoredCallback = Callable[[], Union[None, Awaitable[None]]]


class ConnectivitySource(Protocol):
    async def fetch(self) -> ConnectivityState:
        ...

    def add_listener(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Registers a listener for state changes and returns a function that removes it."""
        ...


class NetworkMonitor:
    """
    Two states: reachable / unreachable. `is_online()` only reads the cached flag,
    it never performs I/O.

    Both transitions are broadcast to subscribed observers. Only the
    unreachable -> reachable edge invokes the connectivity-restored callback (one
    callback; registering again replaces it). A coroutine callback is scheduled on
    the running event loop.
    """

    def __init__(self, source: ConnectivitySource):
        self._source = source
        self._is_online = True
        self._initialized = False
        self._observers: Set[OnlineObserver] = set()
        self._on_connectivity_restored: Optional[RestoredCallback] = None
        self._remove_source_listener: Optional[Callable[[], None]] = None
        self._callback_tasks: Set[asyncio.Task] = set()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> bool:
        """Reads the initial state and starts listening. An unreadable platform state counts as online."""
        if self._initialized:
            return self._is_online
        try:
            state = await self._source.fetch()
            self._is_online = resolve_is_online(state)
            logger.info(f"[network] initial state: type={state.connection_type}, connected={state.is_connected}, "
                        f"internet_reachable={state.is_internet_reachable}, resolved={self._is_online}")
        except Exception as e:
            self._is_online = True
            logger.warning(f"[network] could not read initial connectivity ({e}); assuming online.")
        self._remove_source_listener = self._source.add_listener(self.handle_state_change)
        self._initialized = True
        return self._is_online

    def is_online(self) -> bool:
        return self._is_online

    def set_on_connectivity_restored(self, callback: Optional[RestoredCallback]) -> None:
        self._on_connectivity_restored = callback

    def subscribe(self, observer: OnlineObserver) -> None:
        self._observers.add(observer)

    def unsubscribe(self, observer: OnlineObserver) -> None:
        self._observers.discard(observer)

    def handle_state_change(self, state: ConnectivityState) -> None:
        was_online = self._is_online
        now_online = resolve_is_online(state)
        if was_online == now_online:
            return
        self._is_online = now_online
        logger.info(f"[network] state changed: type={state.connection_type}, connected={state.is_connected}, "
                    f"internet_reachable={state.is_internet_reachable}, resolved={now_online}")

        for observer in list(self._observers):
            try:
                observer(now_online)
            except Exception as e:
                logger.opt(exception=True).error(f"[network] online observer {observer!r} raised: {e}")

        if not was_online and now_online and self._on_connectivity_restored is not None:
            logger.info("[network] connectivity restored - triggering callback")
            self._invoke_restored_callback(self._on_connectivity_restored)

    def _invoke_restored_callback(self, callback: RestoredCallback) -> None:
        try:
            result = callback()
        except Exception as e:
            logger.opt(exception=True).error(f"[network] connectivity-restored callback raised: {e}")
            return
        if not inspect.isawaitable(result):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error("[network] connectivity-restored callback is async but no event loop is running.")
            if inspect.iscoroutine(result):
                result.close()
            return
        task = loop.create_task(result) if inspect.iscoroutine(result) else asyncio.ensure_future(result)
        self._callback_tasks.add(task)
        task.add_done_callback(self._on_callback_done)

    def _on_callback_done(self, task: asyncio.Task) -> None:
        self._callback_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error("[network] connectivity-restored callback failed")

    async def wait_for_callbacks(self) -> None:
        """Waits for scheduled connectivity-restored callbacks to finish."""
        while self._callback_tasks:
            await asyncio.gather(*list(self._callback_tasks), return_exceptions=True)

    def reset(self) -> None:
        """Back to the pre-initialize state: online, no observers, no callback, detached from the source."""
        if self._remove_source_listener is not None:
            self._remove_source_listener()
            self._remove_source_listener = None
        for task in list(self._callback_tasks):
            task.cancel()
        self._callback_tasks.clear()
        self._observers.clear()
        self._on_connectivity_restored = None
        self._is_online = True
        self._initialized = False

#
# End of network_monitor.py
#######################################################################################################################
