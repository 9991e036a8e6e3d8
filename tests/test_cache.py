import asyncio

import pytest

from wallet_stream.cache import TokenMetadataCache

from .helpers import BAR_MINT, BAZ_MINT, FOO_MINT, FakeClock


@pytest.fixture
def cache():
    clock = FakeClock()
    cache = TokenMetadataCache({'ttl_seconds': 300}, clock=clock, sleep=clock.sleep)
    cache.test_clock = clock
    return cache


def test_hit_before_expiry(cache):
    entry = cache.put(FOO_MINT, "FOO", "https://img/foo.png")
    assert entry.expires_at == cache.test_clock.now + 300

    cache.test_clock.advance(299)
    hit = cache.get(FOO_MINT)
    assert hit.symbol == "FOO"
    assert hit.image_url == "https://img/foo.png"


def test_expired_entry_is_a_miss_and_removed(cache):
    cache.put(FOO_MINT, "FOO")
    cache.test_clock.advance(300)
    assert cache.get(FOO_MINT) is None
    assert len(cache) == 0
    assert cache.get_stats()['misses'] == 1


def test_partition_keeps_order_and_dedupes(cache):
    cache.put(BAR_MINT, "BAR")
    hits, missing = cache.partition([FOO_MINT, BAR_MINT, BAZ_MINT, FOO_MINT])
    assert list(hits) == [BAR_MINT]
    assert missing == [FOO_MINT, BAZ_MINT]


def test_purge_expired_only_drops_stale_entries(cache):
    cache.put(FOO_MINT, "FOO", ttl=10)
    cache.put(BAR_MINT, "BAR", ttl=1000)
    cache.test_clock.advance(60)

    assert cache.purge_expired() == 1
    assert len(cache) == 1
    assert cache.get(BAR_MINT).symbol == "BAR"


@pytest.mark.asyncio
async def test_sweep_task_purges_periodically():
    clock = FakeClock()
    cache = TokenMetadataCache({'ttl_seconds': 1, 'sweep_interval_seconds': 5}, clock=clock, sleep=clock.sleep)
    cache.put(FOO_MINT, "FOO")
    cache.start()
    for _ in range(3):
        await asyncio.sleep(0)
    await cache.stop()

    assert len(cache) == 0
    assert 5 in clock.sleeps
