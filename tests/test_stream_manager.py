import asyncio
import json

import pytest

from wallet_stream.key_rotator import KeyRotator
from wallet_stream.models import WatchedAddressSet
from wallet_stream.stream_manager import StreamManager, StreamState

from .helpers import API_KEYS, OTHER_WALLET, WALLET, logs_notification, wait_until


class StubQueue:
    def __init__(self):
        self.cleared = 0

    def clear(self, kind=None):
        self.cleared += 1
        return 0

    def sizes(self):
        return {'enhanced': 0, 'assetBatch': 0}


def make_manager(connector, clock, config=None):
    seen = []

    async def on_signature(signature):
        seen.append(signature)

    manager = StreamManager(
        KeyRotator(API_KEYS),
        StubQueue(),
        on_signature,
        WatchedAddressSet(),
        config or {'network': 'mainnet'},
        ws_connect=connector,
        sleep=clock.sleep,
    )
    return manager, seen


async def subscribed(manager, connector, sockets=1):
    await wait_until(lambda: len(connector.sockets) == sockets and manager.state is StreamState.SUBSCRIBED)
    return connector.last


@pytest.mark.asyncio
async def test_idle_without_wallets(connector, clock):
    manager, _ = make_manager(connector, clock)
    assert manager.state is StreamState.IDLE
    assert connector.urls == []
    assert manager.get_status()['connected'] is False


@pytest.mark.asyncio
async def test_first_wallet_connects_and_subscribes(connector, clock):
    manager, _ = make_manager(connector, clock)

    assert await manager.add_address(WALLET)
    ws = await subscribed(manager, connector)

    assert connector.urls == [f"wss://mainnet.helius-rpc.com/?api-key={API_KEYS[0]}"]
    assert ws.sent == [{
        'jsonrpc': '2.0',
        'id': 1,
        'method': 'logsSubscribe',
        'params': [{'mentions': [WALLET]}, {'commitment': 'finalized'}],
    }]


@pytest.mark.asyncio
async def test_invalid_and_duplicate_addresses(connector, clock):
    manager, _ = make_manager(connector, clock)

    assert not await manager.add_address("not-a-wallet")
    assert not await manager.add_address("0" * 44)
    assert connector.urls == []

    assert await manager.add_address(WALLET)
    ws = await subscribed(manager, connector)
    assert await manager.add_address(WALLET)

    assert ws.subscribed_wallets() == [WALLET]
    assert len(manager.watched) == 1


@pytest.mark.asyncio
async def test_second_wallet_subscribes_on_open_socket(connector, clock):
    manager, _ = make_manager(connector, clock)
    await manager.add_address(WALLET)
    ws = await subscribed(manager, connector)

    await manager.add_address(OTHER_WALLET)

    assert ws.subscribed_wallets() == [WALLET, OTHER_WALLET]
    assert len(connector.sockets) == 1


@pytest.mark.asyncio
async def test_removing_a_wallet_resubscribes_the_rest(connector, clock):
    manager, _ = make_manager(connector, clock)
    await manager.add_address(WALLET)
    await manager.add_address(OTHER_WALLET)
    first = await subscribed(manager, connector)

    assert await manager.remove_address(WALLET)
    second = await subscribed(manager, connector, sockets=2)

    assert first.closed
    assert second.subscribed_wallets() == [OTHER_WALLET]
    assert 1.0 in clock.sleeps


@pytest.mark.asyncio
async def test_removing_last_wallet_goes_idle(connector, clock):
    manager, _ = make_manager(connector, clock)
    await manager.add_address(WALLET)
    ws = await subscribed(manager, connector)

    assert not await manager.remove_address(OTHER_WALLET)
    assert await manager.remove_address(WALLET)

    assert manager.state is StreamState.IDLE
    assert ws.closed
    assert manager.queue.cleared == 1
    assert len(connector.sockets) == 1
    assert manager.get_status()['watchedCount'] == 0


@pytest.mark.asyncio
async def test_unclean_close_reconnects(connector, clock):
    manager, _ = make_manager(connector, clock)
    await manager.add_address(WALLET)
    ws = await subscribed(manager, connector)

    ws.drop(1006)
    second = await subscribed(manager, connector, sockets=2)

    assert clock.sleeps == [1.0]
    assert manager.reconnect_attempts == 0
    assert second.subscribed_wallets() == [WALLET]


@pytest.mark.asyncio
async def test_backoff_doubles_caps_and_gives_up(connector, clock):
    manager, _ = make_manager(connector, clock, {'reconnect': {'max_attempts': 7}})
    connector.failures = 100

    await manager.add_address(WALLET)
    await wait_until(lambda: manager.exhausted)

    assert clock.sleeps == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]
    assert len(connector.urls) == 8
    assert manager.state is StreamState.IDLE
    assert manager.get_status()['exhausted'] is True

    connector.failures = 0
    assert await manager.retry()
    await subscribed(manager, connector)
    assert not manager.exhausted


@pytest.mark.asyncio
async def test_clean_upstream_close_does_not_reconnect(connector, clock):
    manager, _ = make_manager(connector, clock)
    await manager.add_address(WALLET)
    ws = await subscribed(manager, connector)

    ws.drop(1000)
    await wait_until(lambda: manager.state is StreamState.IDLE)

    assert len(connector.sockets) == 1
    assert clock.sleeps == []
    assert await manager.retry()
    await subscribed(manager, connector, sockets=2)


@pytest.mark.asyncio
async def test_key_rotation_reconnects_with_new_key(connector, clock):
    manager, _ = make_manager(connector, clock)
    await manager.add_address(WALLET)
    first = await subscribed(manager, connector)

    manager.rotator.rotate()
    await subscribed(manager, connector, sockets=2)

    assert first.closed
    assert connector.urls[-1].endswith(f"api-key={API_KEYS[1]}")
    assert manager.get_status()['currentKey'] == API_KEYS[1][:8] + "..."


@pytest.mark.asyncio
async def test_frames_are_dispatched(connector, clock):
    manager, seen = make_manager(connector, clock)
    await manager.add_address(WALLET)
    ws = await subscribed(manager, connector)

    ws.push({'jsonrpc': '2.0', 'result': 42, 'id': 1})
    ws.push("definitely not json")
    ws.push({'jsonrpc': '2.0', 'method': 'logsNotification', 'params': {'result': {'value': {}}}})
    ws.push(logs_notification("sig-1"))
    ws.push(logs_notification("sig-2"))

    await wait_until(lambda: seen == ["sig-1", "sig-2"])
    assert manager.subscription_ids == [42]
    assert manager.get_status()['subscriptions'] == [42]
    assert manager.state is StreamState.SUBSCRIBED


@pytest.mark.asyncio
async def test_notifications_ignored_without_wallets(connector, clock):
    manager, seen = make_manager(connector, clock)
    manager._handle_frame(json.dumps(logs_notification("sig-x")))
    await asyncio.sleep(0)
    assert seen == []
    assert manager.get_status()['processing'] == 0


@pytest.mark.asyncio
async def test_stop_closes_everything(connector, clock):
    manager, _ = make_manager(connector, clock)
    await manager.add_address(WALLET)
    ws = await subscribed(manager, connector)

    await manager.stop()

    assert ws.closed
    assert manager.state is StreamState.IDLE
    status = manager.get_status()
    assert set(status) >= {
        'connected', 'state', 'watchedCount', 'watchedWallets', 'currentKey',
        'reconnectAttempts', 'exhausted', 'subscriptions', 'queueSizes',
    }


@pytest.mark.asyncio
async def test_start_after_stop_reconnects_watched_wallets(connector, clock):
    manager, _ = make_manager(connector, clock)
    await manager.add_address(WALLET)
    await subscribed(manager, connector)
    await manager.stop()

    manager.start()
    ws = await subscribed(manager, connector, sockets=2)
    assert ws.subscribed_wallets() == [WALLET]

    assert await manager.add_address(OTHER_WALLET)
    assert ws.subscribed_wallets() == [WALLET, OTHER_WALLET]
    await manager.stop()
