"""
HELIUS ENRICHMENT CLIENT

Fetches what the push feed does not carry:
- Enhanced transaction detail (`/v0/transactions`)
- Batched asset metadata (`getAssetBatch` JSON-RPC)

Every call goes through the RateLimitedQueue and consumes one call slot on
the KeyRotator. Failures never raise: transactions come back as None and
asset lookups come back as "N/A" placeholders.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from .cache import TokenMetadataCache
from .exceptions import PayloadError
from .key_rotator import KeyRotator
from .models import AssetMetadata, DetailedTransaction
from .request_queue import ASSET_BATCH, ENHANCED_TX, UNAVAILABLE, RateLimitedQueue
from .stream_utils import UNKNOWN_SYMBOL, shorten

logger = logging.getLogger(__name__)


class HeliusClient:
    """
    Helius API client (enhanced transactions + DAS asset batch).

    Uses one shared aiohttp session; the session is created lazily when
    none is injected and closed by close() only if this client owns it.
    """

    TRANSACTIONS_URL = "https://api.helius.xyz/v0/transactions"
    RPC_URL = "https://{network}.helius-rpc.com/"

    def __init__(self, rotator: KeyRotator, queue: RateLimitedQueue,
                 cache: TokenMetadataCache, config: Dict = None,
                 session: Optional[aiohttp.ClientSession] = None):
        """
        Args:
            rotator: Supplies the current API key
            queue: Per-kind rate limiter
            cache: Read-through metadata cache
            config: Full stream config (uses `network`, `endpoints`, `http`)
            session: Optional shared aiohttp session
        """
        self.rotator = rotator
        self.queue = queue
        self.cache = cache
        self.config = config or {}

        network = self.config.get('network', 'mainnet')
        endpoints = self.config.get('endpoints', {})
        self.transactions_url = endpoints.get('transactions', self.TRANSACTIONS_URL)
        self.rpc_url = endpoints.get('rpc', self.RPC_URL).format(network=network)
        self.timeout_seconds = self.config.get('http', {}).get('timeout_seconds', 10)

        self.session = session
        self._own_session = False

        self.request_count = 0
        self.last_request_time: Optional[datetime] = None
        self.api_calls = {ENHANCED_TX: 0, ASSET_BATCH: 0}

    async def _ensure_session(self):
        """Ensure aiohttp session exists."""
        if self.session is None:
            self.session = aiohttp.ClientSession()
            self._own_session = True

    async def close(self):
        """Close aiohttp session if we created it."""
        if self.session and self._own_session:
            await self.session.close()
            self.session = None
            self._own_session = False

    # ========== ENHANCED TRANSACTIONS ==========

    async def fetch_detailed_transaction(self, signature: str) -> Optional[DetailedTransaction]:
        """
        Fetch the enhanced transaction for a signature.

        Args:
            signature: Transaction signature from the push feed

        Returns:
            DetailedTransaction, or None on transport error, timeout,
            empty result or malformed payload
        """
        result = await self.queue.enqueue(
            ENHANCED_TX, lambda: self._fetch_transaction_direct(signature)
        )
        if result is UNAVAILABLE:
            return None
        return result

    async def _fetch_transaction_direct(self, signature: str) -> Optional[DetailedTransaction]:
        self.rotator.note_call()
        self.api_calls[ENHANCED_TX] += 1

        started = asyncio.get_running_loop().time()
        data = await self._post_json(
            self.transactions_url,
            {'transactions': [signature]},
            params={'api-key': self.rotator.current_key()},
        )
        elapsed_ms = (asyncio.get_running_loop().time() - started) * 1000

        if not isinstance(data, list) or not data:
            logger.debug(f"[HELIUS] No enhanced data for {shorten(signature)}")
            return None

        try:
            tx = DetailedTransaction.from_helius(data[0], signature)
        except PayloadError as e:
            logger.warning(f"[HELIUS] Malformed enhanced transaction {shorten(signature)}: {e}")
            return None

        logger.debug(f"[HELIUS] Enhanced TX fetched: {shorten(signature)} ({elapsed_ms:.0f}ms)")
        return tx

    # ========== ASSET BATCH ==========

    async def fetch_asset_batch(self, asset_ids: Sequence[str]) -> List[AssetMetadata]:
        """
        Resolve metadata for a batch of mints, cache first.

        Only mints missing from the cache are sent upstream. The result has
        the same length and order as the input; unresolved entries are
        "N/A" placeholders.

        Args:
            asset_ids: Mint addresses (ordered)

        Returns:
            List of AssetMetadata aligned with asset_ids
        """
        asset_ids = list(asset_ids)
        if not asset_ids:
            return []

        hits, missing = self.cache.partition(asset_ids)
        fetched: Dict[str, AssetMetadata] = {}

        if missing:
            result = await self.queue.enqueue(
                ASSET_BATCH, lambda: self._fetch_assets_direct(missing)
            )
            if result is not UNAVAILABLE and result:
                fetched = result
        else:
            logger.debug(f"[HELIUS] Using cached token info for {len(asset_ids)} token(s)")

        placeholder = AssetMetadata(symbol=UNKNOWN_SYMBOL)
        return [hits.get(a) or fetched.get(a) or placeholder for a in asset_ids]

    async def _fetch_assets_direct(self, asset_ids: List[str]) -> Dict[str, AssetMetadata]:
        self.rotator.note_call()
        self.api_calls[ASSET_BATCH] += 1

        body = {
            'jsonrpc': '2.0',
            'id': 'asset-batch',
            'method': 'getAssetBatch',
            'params': {
                'ids': asset_ids,
                'displayOptions': {'showFungible': True},
            },
        }
        data = await self._post_json(
            self.rpc_url, body, params={'api-key': self.rotator.current_key()}
        )

        if not isinstance(data, dict) or not isinstance(data.get('result'), list):
            logger.warning(f"[HELIUS] Asset batch unavailable for {len(asset_ids)} token(s)")
            return {}

        resolved: Dict[str, AssetMetadata] = {}
        for asset in data['result']:
            parsed = self._parse_asset(asset)
            if parsed is None:
                continue
            asset_id, symbol, image_url = parsed
            resolved[asset_id] = self.cache.put(asset_id, symbol, image_url)

        logger.debug(f"[HELIUS] Asset batch resolved {len(resolved)}/{len(asset_ids)} token(s)")
        return resolved

    @staticmethod
    def _parse_asset(asset: Any):
        """Return (id, symbol, image) for a usable DAS asset, else None."""
        if not isinstance(asset, dict) or not asset.get('id'):
            return None
        content = asset.get('content')
        if not isinstance(content, dict):
            return None

        symbol = ((content.get('metadata') or {}).get('symbol') or '').strip()
        if not symbol:
            return None
        image_url = (content.get('links') or {}).get('image')
        return asset['id'], symbol, image_url

    # ========== TRANSPORT ==========

    async def _post_json(self, url: str, body: Dict, params: Dict = None) -> Optional[Any]:
        """
        POST a JSON body and decode the JSON response.

        Returns:
            Decoded JSON or None on any transport / HTTP / decode error
        """
        await self._ensure_session()

        self.request_count += 1
        self.last_request_time = datetime.now()

        try:
            async with self.session.post(
                url,
                json=body,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                if response.status == 200:
                    return await response.json(content_type=None)
                elif response.status == 429:
                    logger.warning("[HELIUS] Rate limited (HTTP 429)")
                    return None
                else:
                    logger.warning(f"[HELIUS] HTTP {response.status} from {url}")
                    return None

        except asyncio.TimeoutError:
            logger.warning(f"[HELIUS] Timeout: {url}")
            return None
        except aiohttp.ClientError as e:
            logger.warning(f"[HELIUS] Request error: {e}")
            return None
        except ValueError as e:
            logger.warning(f"[HELIUS] Invalid JSON from {url}: {e}")
            return None

    def get_stats(self) -> Dict:
        return {
            'request_count': self.request_count,
            'last_request': self.last_request_time.isoformat() if self.last_request_time else None,
            'api_calls': dict(self.api_calls),
        }
