"""
TOKEN METADATA CACHE

In-memory cache of asset metadata (symbol, image) keyed by mint address.
Avoids re-fetching the same mints through the rate-limited batch endpoint.

- TTL-based expiration (a hit is only returned while now < expires_at)
- Periodic sweep removing expired entries
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from .models import AssetMetadata

logger = logging.getLogger(__name__)


class TokenMetadataCache:
    """
    TTL cache for AssetMetadata.

    Only touched from the event loop, so no locking.
    """

    def __init__(self, config: Dict = None,
                 clock: Callable[[], float] = time.time,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """
        Args:
            config: `cache` config section
            clock: Wall-clock source for expiry timestamps
            sleep: Sleep coroutine driving the sweep task
        """
        self.config = config or {}

        self.ttl_seconds = self.config.get('ttl_seconds', 300)  # 5 minutes default
        self.sweep_interval = self.config.get('sweep_interval_seconds', 300)

        self._cache: Dict[str, AssetMetadata] = {}
        self._clock = clock
        self._sleep = sleep
        self._sweep_task: Optional[asyncio.Task] = None

        # Stats
        self.hits = 0
        self.misses = 0
        self.purged = 0

    def get(self, asset_id: str) -> Optional[AssetMetadata]:
        """
        Get cached metadata if present and not expired.

        Args:
            asset_id: Mint address

        Returns:
            Cached metadata or None
        """
        entry = self._cache.get(asset_id)
        if entry is None:
            self.misses += 1
            return None

        if not entry.is_fresh(self._clock()):
            del self._cache[asset_id]
            self.misses += 1
            return None

        self.hits += 1
        return entry

    def put(self, asset_id: str, symbol: str, image_url: Optional[str] = None,
            ttl: Optional[float] = None) -> AssetMetadata:
        """
        Store metadata with an expiry of now + ttl.

        Returns:
            The stored entry
        """
        ttl = self.ttl_seconds if ttl is None else ttl
        entry = AssetMetadata(
            symbol=symbol,
            image_url=image_url,
            expires_at=self._clock() + ttl,
        )
        self._cache[asset_id] = entry
        return entry

    def partition(self, asset_ids: Iterable[str]) -> Tuple[Dict[str, AssetMetadata], List[str]]:
        """
        Split requested ids into cached hits and ids still to fetch.

        Returns:
            (hits by id, uncached ids in request order without duplicates)
        """
        hits: Dict[str, AssetMetadata] = {}
        missing: List[str] = []
        for asset_id in asset_ids:
            if asset_id in hits or asset_id in missing:
                continue
            entry = self.get(asset_id)
            if entry is None:
                missing.append(asset_id)
            else:
                hits[asset_id] = entry
        return hits, missing

    def purge_expired(self) -> int:
        """Remove all expired entries."""
        now = self._clock()
        expired = [k for k, v in self._cache.items() if not v.is_fresh(now)]
        for key in expired:
            del self._cache[key]

        self.purged += len(expired)
        if expired:
            logger.debug(f"[CACHE] Purged {len(expired)} expired token(s)")
        return len(expired)

    def clear(self):
        self._cache.clear()

    # ========== SWEEP TASK ==========

    def start(self):
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.ensure_future(self._run_sweep())

    async def stop(self):
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

    async def _run_sweep(self):
        while True:
            await self._sleep(self.sweep_interval)
            self.purge_expired()

    def __len__(self) -> int:
        return len(self._cache)

    def get_stats(self) -> Dict:
        total_requests = self.hits + self.misses
        hit_rate = (self.hits / total_requests * 100) if total_requests > 0 else 0

        return {
            'size': len(self._cache),
            'hits': self.hits,
            'misses': self.misses,
            'hit_rate_pct': hit_rate,
            'purged': self.purged,
            'ttl_seconds': self.ttl_seconds,
        }
