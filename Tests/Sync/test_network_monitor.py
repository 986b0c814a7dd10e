# test_network_monitor.py
#
#
# Imports
import asyncio
import pytest
#
# Third-Party Imports
import httpx
#
# Local Imports
from field_notes.Sync import connectivity_sources
from field_notes.Sync.connectivity_sources import ProbingConnectivitySource
from field_notes.Sync.network_monitor import ConnectivityState, NetworkMonitor, resolve_is_online
#
#######################################################################################################################
#
# Functions:

pytestmark = pytest.mark.asyncio


@pytest.mark.parametrize("connected, reachable, expected", [
    (True, True, True),
    (True, False, False),
    (False, True, True),
    (True, None, True),
    (False, None, False),
    (None, None, False),
])
async def test_reachability_wins_over_connection(connected, reachable, expected):
    assert resolve_is_online(ConnectivityState(connected, reachable)) is expected


async def test_initial_state_comes_from_source(connectivity):
    connectivity.state = ConnectivityState(is_connected=True, is_internet_reachable=False)
    monitor = NetworkMonitor(connectivity)

    assert await monitor.initialize() is False
    assert monitor.is_online() is False
    assert monitor.initialized


async def test_unreadable_initial_state_counts_as_online(connectivity):
    connectivity.fail_fetch = True
    connectivity.state = ConnectivityState(is_connected=False, is_internet_reachable=False)
    monitor = NetworkMonitor(connectivity)

    assert await monitor.initialize() is True
    assert monitor.is_online()


async def test_is_online_before_initialize_defaults_to_true(connectivity):
    assert NetworkMonitor(connectivity).is_online()


async def test_initialize_twice_registers_one_listener(connectivity):
    monitor = NetworkMonitor(connectivity)
    await monitor.initialize()
    await monitor.initialize()
    assert len(connectivity.listeners) == 1


async def test_observers_see_both_transitions(network, connectivity):
    seen = []
    network.subscribe(seen.append)

    connectivity.go_offline()
    connectivity.go_offline()
    connectivity.go_online()

    assert seen == [False, True]


async def test_unsubscribed_observer_is_not_called(network, connectivity):
    seen = []
    network.subscribe(seen.append)
    network.unsubscribe(seen.append)
    connectivity.go_offline()
    assert seen == []


async def test_failing_observer_does_not_block_others(network, connectivity):
    seen = []

    def broken(_online):
        raise RuntimeError("observer bug")

    network.subscribe(broken)
    network.subscribe(seen.append)
    connectivity.go_offline()

    assert seen == [False]
    assert not network.is_online()


async def test_restored_callback_fires_only_on_offline_to_online(network, connectivity):
    calls = []
    network.set_on_connectivity_restored(lambda: calls.append("restored"))

    connectivity.go_online()
    assert calls == []

    connectivity.go_offline()
    assert calls == []

    connectivity.go_online()
    assert calls == ["restored"]


async def test_registering_again_replaces_the_callback(network, connectivity):
    calls = []
    network.set_on_connectivity_restored(lambda: calls.append("first"))
    network.set_on_connectivity_restored(lambda: calls.append("second"))

    connectivity.go_offline()
    connectivity.go_online()

    assert calls == ["second"]


async def test_async_restored_callback_is_scheduled(network, connectivity):
    calls = []

    async def on_restored():
        await asyncio.sleep(0)
        calls.append("restored")

    network.set_on_connectivity_restored(on_restored)
    connectivity.go_offline()
    connectivity.go_online()
    await network.wait_for_callbacks()

    assert calls == ["restored"]


async def test_failing_async_callback_is_contained(network, connectivity):
    async def on_restored():
        raise RuntimeError("sync exploded")

    network.set_on_connectivity_restored(on_restored)
    connectivity.go_offline()
    connectivity.go_online()
    await network.wait_for_callbacks()

    assert network.is_online()


async def test_unknown_reading_counts_as_offline(network, connectivity):
    connectivity.emit(ConnectivityState(is_connected=None, is_internet_reachable=None))
    assert not network.is_online()


async def test_reset_detaches_and_forgets(network, connectivity):
    calls = []
    network.set_on_connectivity_restored(lambda: calls.append("restored"))
    connectivity.go_offline()

    network.reset()

    assert connectivity.listeners == []
    assert network.is_online()
    assert not network.initialized
    connectivity.go_online()
    assert calls == []


# --- ProbingConnectivitySource ---

def probe_transport(status=200, error=None):
    def handler(request):
        if error is not None:
            raise error(f"{error.__name__}", request=request)
        return httpx.Response(status)
    return httpx.MockTransport(handler)


async def test_probe_any_response_is_reachable(monkeypatch):
    monkeypatch.setattr(connectivity_sources, "any_interface_up", lambda: True)
    source = ProbingConnectivitySource("http://notes.test/health", transport=probe_transport(status=503))

    state = await source.fetch()

    assert state.is_connected is True
    assert state.is_internet_reachable is True
    assert resolve_is_online(state)


async def test_probe_refused_is_unreachable(monkeypatch):
    monkeypatch.setattr(connectivity_sources, "any_interface_up", lambda: True)
    source = ProbingConnectivitySource("http://notes.test/health",
                                       transport=probe_transport(error=httpx.ConnectError))

    state = await source.fetch()

    assert state.is_internet_reachable is False
    assert not resolve_is_online(state)


async def test_probe_timeout_is_undecided(monkeypatch):
    monkeypatch.setattr(connectivity_sources, "any_interface_up", lambda: True)
    source = ProbingConnectivitySource("http://notes.test/health",
                                       transport=probe_transport(error=httpx.ConnectTimeout))

    state = await source.fetch()

    assert state.is_internet_reachable is None
    assert resolve_is_online(state)


async def test_no_interface_skips_the_probe(monkeypatch):
    monkeypatch.setattr(connectivity_sources, "any_interface_up", lambda: False)

    def handler(request):
        raise AssertionError("probe must not run without an interface")

    source = ProbingConnectivitySource("http://notes.test/health", transport=httpx.MockTransport(handler))

    state = await source.fetch()

    assert state == ConnectivityState(is_connected=False, is_internet_reachable=False, connection_type="none")


async def test_poll_once_emits_only_changes(monkeypatch):
    monkeypatch.setattr(connectivity_sources, "any_interface_up", lambda: True)
    source = ProbingConnectivitySource("http://notes.test/health", transport=probe_transport())
    seen = []
    remove = source.add_listener(seen.append)

    await source.poll_once()
    await source.poll_once()
    monkeypatch.setattr(connectivity_sources, "any_interface_up", lambda: False)
    await source.poll_once()
    remove()
    monkeypatch.setattr(connectivity_sources, "any_interface_up", lambda: True)
    await source.poll_once()

    assert [resolve_is_online(state) for state in seen] == [True, False]


async def test_monitor_follows_polling_source(monkeypatch):
    monkeypatch.setattr(connectivity_sources, "any_interface_up", lambda: False)
    source = ProbingConnectivitySource("http://notes.test/health", transport=probe_transport())
    monitor = NetworkMonitor(source)
    restored = []
    monitor.set_on_connectivity_restored(lambda: restored.append(True))

    assert await monitor.initialize() is False
    monkeypatch.setattr(connectivity_sources, "any_interface_up", lambda: True)
    await source.poll_once()

    assert monitor.is_online()
    assert restored == [True]
    monitor.reset()


async def test_start_and_stop_polling(monkeypatch):
    monkeypatch.setattr(connectivity_sources, "any_interface_up", lambda: True)
    source = ProbingConnectivitySource("http://notes.test/health", poll_interval=0.01, transport=probe_transport())
    seen = []
    source.add_listener(seen.append)

    source.start()
    await asyncio.sleep(0.05)
    await source.stop()

    assert len(seen) == 1

#
# End of test_network_monitor.py
#######################################################################################################################
