"""
WALLET STREAM SERVICE

Wires the components together and owns their lifecycle:

  StreamManager ──signature──▶ TransactionProcessor ──event──▶ EventChannel
        │                             │
   KeyRotator ◀── note_call ── HeliusClient ── RateLimitedQueue
                                      │
                               TokenMetadataCache

One aiohttp session is shared by the client and the push socket.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional

import aiohttp

from .cache import TokenMetadataCache
from .classifier import TransactionClassifier
from .config import load_stream_config, validate_config
from .filters import TransactionFilter
from .handoff import EventChannel, EventHandler
from .helius_client import HeliusClient
from .key_rotator import KeyRotator
from .models import WatchedAddressSet
from .processor import TransactionProcessor
from .request_queue import RateLimitedQueue
from .stream_manager import StreamManager, WebSocketConnector
from .transfer_extractor import TransferExtractor

logger = logging.getLogger(__name__)


class WalletStream:
    """
    Real-time buy/sell notifications for a set of Solana wallets.

    Usage:
        stream = WalletStream(config, handler=on_event)
        await stream.start()
        await stream.add_address("7xKX...")
        ...
        await stream.stop()
    """

    def __init__(self, config: Dict = None, handler: Optional[EventHandler] = None,
                 session: Optional[aiohttp.ClientSession] = None,
                 ws_connect: Optional[WebSocketConnector] = None,
                 clock: Callable[[], float] = time.monotonic,
                 wall_clock: Callable[[], float] = time.time,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """
        Args:
            config: Effective config (load_stream_config() when omitted)
            handler: Downstream consumer of ClassifiedEvent
            session: Shared aiohttp session (created on start() when omitted)
            ws_connect: Optional push socket connector, mainly for tests
            clock: Monotonic clock for rate limiting
            wall_clock: Wall clock for cache expiry
            sleep: Sleep coroutine for every timer
        """
        self.config = config if config is not None else load_stream_config()
        validate_config(self.config)

        self._sleep = sleep
        self.session = session
        self._own_session = False

        self.watched = WatchedAddressSet()
        self.channel = EventChannel(handler)

        self.rotator = KeyRotator(self.config['api_keys'], self.config.get('key_rotation'), sleep=sleep)
        self.queue = RateLimitedQueue(self.config.get('rate_limit'), clock=clock, sleep=sleep)
        self.cache = TokenMetadataCache(self.config.get('cache'), clock=wall_clock, sleep=sleep)
        self.client = HeliusClient(self.rotator, self.queue, self.cache, self.config, session=session)

        self.classifier = TransactionClassifier(self.watched, self.config.get('classifier'))
        self.extractor = TransferExtractor(self.classifier)
        self.filter = TransactionFilter(self.config.get('filter'))
        self.processor = TransactionProcessor(
            self.client, self.extractor, self.classifier, self.filter,
            self.channel, self.watched, self.config,
        )
        self.manager = StreamManager(
            self.rotator, self.queue, self.processor.process, self.watched,
            self.config, session=session, ws_connect=ws_connect, sleep=sleep,
        )

        self.stats_interval = self.config.get('stats_interval_seconds', 60)
        self._stats_task: Optional[asyncio.Task] = None
        self.running = False

    def register_handler(self, handler: EventHandler):
        """Register the single downstream consumer."""
        self.channel.register(handler)

    # ========== LIFECYCLE ==========

    async def start(self):
        """
        Validate wiring and start the background timers.

        The push socket opens when the first wallet is added.

        Raises:
            ConfigurationError: no handler registered or invalid config
        """
        if self.running:
            return

        validate_config(self.config)
        self.channel.validate()

        if self.session is None:
            self.session = aiohttp.ClientSession()
            self._own_session = True
            self.client.session = self.session
            self.manager.session = self.session

        self.rotator.start()
        self.cache.start()
        self.manager.start()
        self._stats_task = asyncio.ensure_future(self._run_stats())
        self.running = True

        logger.info(
            f"🚀 Wallet stream started ({len(self.rotator.keys)} API key(s), "
            f"network {self.config.get('network', 'mainnet')})"
        )

    async def stop(self):
        """Stop timers, close the socket, drain pending work, close the session."""
        if self._stats_task:
            self._stats_task.cancel()
            try:
                await self._stats_task
            except asyncio.CancelledError:
                pass
            self._stats_task = None

        await self.rotator.stop()
        await self.cache.stop()
        await self.manager.stop()
        await self.queue.close()
        await self.channel.drain()

        if self.session and self._own_session:
            await self.session.close()
            self.session = None
            self._own_session = False
            self.client.session = None
            self.manager.session = None

        self.running = False
        logger.info("🛑 Wallet stream stopped")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    # ========== WALLETS ==========

    async def add_address(self, address: str) -> bool:
        return await self.manager.add_address(address)

    async def remove_address(self, address: str) -> bool:
        return await self.manager.remove_address(address)

    async def retry(self) -> bool:
        return await self.manager.retry()

    # ========== STATUS ==========

    def get_status(self) -> Dict:
        status = self.manager.get_status()
        status['cacheSize'] = len(self.cache)
        status['stats'] = {
            'processor': self.processor.get_stats(),
            'rotator': self.rotator.get_stats(),
            'cache': self.cache.get_stats(),
            'client': self.client.get_stats(),
            'queue': self.queue.get_stats(),
            'published': self.channel.published,
            'handlerFailures': self.channel.failures,
        }
        return status

    async def _run_stats(self):
        while True:
            await self._sleep(self.stats_interval)
            self.log_summary()

    def log_summary(self):
        """Log the processing counters of the last interval, then reset them."""
        stats = self.processor.get_stats()
        dropped = ', '.join(f"{k}={v}" for k, v in sorted(stats['dropped'].items())) or 'none'
        logger.info(
            f"📊 [SUMMARY] received={stats['received']} processed={stats['processed']} "
            f"emitted={stats['emitted']} fallbacks={stats['fallbacks']} "
            f"errors={stats['errors']} dropped: {dropped} | "
            f"wallets={len(self.watched)} cache={len(self.cache)} "
            f"queue={self.queue.sizes()}"
        )
        self.processor.reset_stats()
