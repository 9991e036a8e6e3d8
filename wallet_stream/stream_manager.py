"""
STREAM CONNECTION MANAGER

Owns the Helius push socket (logsSubscribe per watched wallet).

States:
  IDLE         no watched wallets (or gave up), no connection
  CONNECTING   handshake in progress
  SUBSCRIBED   socket open, every watched wallet subscribed
  RECONNECTING backoff / restart delay pending

Transitions:
  IDLE → CONNECTING            first wallet added, or retry()
  CONNECTING → SUBSCRIBED      handshake ok, subscribe sent per wallet
  SUBSCRIBED → IDLE            last wallet removed (close + discard queued calls)
  SUBSCRIBED → RECONNECTING    unclean close / transport error (exponential
                               backoff, bounded attempts, then IDLE+exhausted)
  SUBSCRIBED → RECONNECTING    wallet removed or API key rotated: the feed has
                               no per-address unsubscribe and binds the key at
                               handshake, so close and reopen
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import aiohttp

from .key_rotator import KeyRotator
from .models import WatchedAddressSet
from .request_queue import RateLimitedQueue
from .stream_utils import is_valid_solana_address, mask_key, shorten

logger = logging.getLogger(__name__)

SignatureHandler = Callable[[str], Awaitable[Any]]
WebSocketConnector = Callable[[str], Awaitable[Any]]


class StreamState(Enum):
    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    SUBSCRIBED = "SUBSCRIBED"
    RECONNECTING = "RECONNECTING"


class StreamManager:
    """
    Long-lived push connection with subscribe / reconnect logic.

    Every logsNotification signature is handed to `on_signature` in its own
    task, so processing of one transaction never blocks the socket reader
    or another transaction.
    """

    WS_URL = "wss://{network}.helius-rpc.com/"

    def __init__(self, rotator: KeyRotator, queue: RateLimitedQueue,
                 on_signature: SignatureHandler, watched: WatchedAddressSet,
                 config: Dict = None, session: Optional[aiohttp.ClientSession] = None,
                 ws_connect: Optional[WebSocketConnector] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """
        Args:
            rotator: API key source; rotations force a reconnect
            queue: Enrichment queue, cleared when the last wallet goes away
            on_signature: Coroutine function run per notified signature
            watched: Shared watched-address set (owned here)
            config: Full stream config (uses `network`, `endpoints`, `reconnect`)
            session: Shared aiohttp session for the default connector
            ws_connect: Optional connector coroutine (url -> websocket)
            sleep: Sleep coroutine for backoff and restart delays
        """
        self.rotator = rotator
        self.queue = queue
        self.on_signature = on_signature
        self.watched = watched
        self.config = config or {}

        network = self.config.get('network', 'mainnet')
        self.ws_url = self.config.get('endpoints', {}).get('websocket', self.WS_URL).format(network=network)

        reconnect = self.config.get('reconnect', {})
        self.initial_delay = reconnect.get('initial_delay_seconds', 1.0)
        self.max_delay = reconnect.get('max_delay_seconds', 30.0)
        self.max_attempts = reconnect.get('max_attempts', 5)
        self.restart_delay = reconnect.get('restart_delay_seconds', 1.0)
        self.heartbeat = reconnect.get('heartbeat_seconds', 30.0)

        self.session = session
        self._own_session = False
        self._ws_connect = ws_connect or self._default_ws_connect
        self._sleep = sleep

        self.state = StreamState.IDLE
        self.reconnect_attempts = 0
        self.reconnect_delay = self.initial_delay
        self.exhausted = False
        self.subscription_ids: List[int] = []

        self._ws = None
        self._conn_task: Optional[asyncio.Task] = None
        self._restart_task: Optional[asyncio.Task] = None
        self._processing: Set[asyncio.Task] = set()
        self._request_id = 0
        self._closed = False
        self._closing = False

        self.rotator.add_listener(self._on_key_rotated)

    # ========== PROPERTIES ==========

    @property
    def is_connected(self) -> bool:
        return self.state is StreamState.SUBSCRIBED

    def _set_state(self, state: StreamState):
        if state is not self.state:
            logger.debug(f"[STREAM] {self.state.value} → {state.value}")
            self.state = state

    # ========== WALLET MANAGEMENT ==========

    async def add_address(self, address: str) -> bool:
        """
        Start watching a wallet.

        Returns:
            False for an invalid address, True otherwise
        """
        address = (address or '').strip()
        if not is_valid_solana_address(address):
            logger.warning(f"⚠️ Invalid wallet address rejected: {shorten(address)}")
            return False

        was_empty = len(self.watched) == 0
        if not self.watched.add(address):
            return True

        logger.info(f"✅ Wallet added: {address} (total {len(self.watched)})")

        if self.state is StreamState.SUBSCRIBED:
            await self._subscribe(address)
        elif was_empty and not self._connection_active():
            logger.info("🔌 First wallet added - connecting to push feed")
            self._start_connection()

        return True

    async def remove_address(self, address: str) -> bool:
        """
        Stop watching a wallet.

        Removing the last wallet tears the connection down; removing any
        other re-subscribes from the reduced set through a reconnect.

        Returns:
            False when the wallet was not watched
        """
        address = (address or '').strip()
        if not self.watched.discard(address):
            logger.info(f"⚠️ Wallet {shorten(address)} not found in tracked list")
            return False

        logger.info(f"🗑️ Wallet {shorten(address)} removed ({len(self.watched)} remaining)")

        if len(self.watched) == 0:
            await self._teardown('No wallets to track')
        elif self.state in (StreamState.SUBSCRIBED, StreamState.CONNECTING):
            self._schedule_restart('Updating subscriptions')

        return True

    # ========== CONNECTION LIFECYCLE ==========

    def _connection_active(self) -> bool:
        if self._conn_task is not None and not self._conn_task.done():
            return True
        return self._restart_task is not None and not self._restart_task.done()

    def _start_connection(self):
        if self._closed:
            return
        self._conn_task = asyncio.ensure_future(self._run())

    async def _run(self):
        """Connect, read until the socket ends, back off and retry."""
        while True:
            if len(self.watched) == 0 or self._closed:
                self._set_state(StreamState.IDLE)
                return

            self._set_state(StreamState.CONNECTING)
            clean = await self._connect_once()
            if self._closing:
                return

            if len(self.watched) == 0 or self._closed:
                self._set_state(StreamState.IDLE)
                return

            if clean:
                logger.info("🔌 Push feed closed cleanly by upstream")
                self._set_state(StreamState.IDLE)
                return

            if self.reconnect_attempts >= self.max_attempts:
                logger.error("❌ Max reconnect attempts reached. Giving up.")
                self.exhausted = True
                self._set_state(StreamState.IDLE)
                return

            self.reconnect_attempts += 1
            delay = self.reconnect_delay
            self.reconnect_delay = min(self.reconnect_delay * 2, self.max_delay)
            self._set_state(StreamState.RECONNECTING)
            logger.info(
                f"🔄 Reconnecting in {delay:.1f}s "
                f"({self.reconnect_attempts}/{self.max_attempts})"
            )
            await self._sleep(delay)

    async def _connect_once(self) -> bool:
        """
        One connection lifetime.

        Returns:
            True when the socket closed cleanly, False on failure
        """
        key = self.rotator.current_key()
        url = f"{self.ws_url}?api-key={key}"
        logger.info(f"🔌 Connecting to push feed with {len(self.watched)} wallet(s), key {mask_key(key)}")

        try:
            ws = await self._ws_connect(url)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.error(f"❌ Push feed connection failed: {e!r}")
            return False

        self._ws = ws
        self.reconnect_attempts = 0
        self.reconnect_delay = self.initial_delay
        self.exhausted = False
        self.subscription_ids.clear()
        self._set_state(StreamState.SUBSCRIBED)
        logger.info("✅ Push feed connected")

        errored = False
        try:
            for address in self.watched:
                await self._subscribe(address)

            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    logger.error(f"❌ Push feed error: {ws.exception()!r}")
                    errored = True
                    break
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.error(f"❌ Push feed transport error: {e!r}")
            errored = True
        finally:
            self._ws = None
            if not ws.closed:
                await ws.close()

        clean = not errored and ws.close_code == aiohttp.WSCloseCode.OK
        logger.info(f"🔌 Push feed closed (code={ws.close_code}, clean={clean})")
        return clean

    async def _close_connection(self, reason: str):
        """Close the socket and stop the connection task."""
        self._closing = True
        try:
            ws = self._ws
            if ws is not None and not ws.closed:
                await ws.close(code=aiohttp.WSCloseCode.OK, message=reason.encode())

            task = self._conn_task
            self._conn_task = None
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        finally:
            self._closing = False

    def _schedule_restart(self, reason: str):
        if self._closed:
            return
        if self._restart_task is not None and not self._restart_task.done():
            return
        self._restart_task = asyncio.ensure_future(self._restart(reason))

    async def _restart(self, reason: str):
        """Close, wait briefly, reopen with the current key and wallets."""
        logger.info(f"🔄 Reconnecting push feed: {reason}")
        await self._close_connection(reason)
        if len(self.watched) == 0 or self._closed:
            self._set_state(StreamState.IDLE)
            return

        self._set_state(StreamState.RECONNECTING)
        await self._sleep(self.restart_delay)

        if len(self.watched) == 0 or self._closed or self._conn_task is not None:
            return
        self._start_connection()
        logger.info(f"✅ Reconnecting with {len(self.watched)} active wallet(s)")

    async def _teardown(self, reason: str):
        logger.info(f"⚠️ {reason} - disconnecting push feed completely")
        restart = self._restart_task
        self._restart_task = None
        if restart is not None and not restart.done() and restart is not asyncio.current_task():
            restart.cancel()
            try:
                await restart
            except asyncio.CancelledError:
                pass

        await self._close_connection(reason)
        self.queue.clear()
        self.subscription_ids.clear()
        self._set_state(StreamState.IDLE)
        logger.info("💤 Standby mode - no API calls will be made")

    def _on_key_rotated(self, old_key: str, new_key: str):
        if self.state is StreamState.SUBSCRIBED:
            self._schedule_restart('API key rotation')

    async def retry(self) -> bool:
        """
        Manually reconnect after the retry budget ran out.

        Returns:
            True when a new connection attempt was started
        """
        if len(self.watched) == 0 or self._connection_active() or self._closed:
            return False
        self.reconnect_attempts = 0
        self.reconnect_delay = self.initial_delay
        self.exhausted = False
        self._start_connection()
        return True

    def start(self):
        """Re-arm after stop(); wallets still watched are reconnected."""
        self._closed = False
        if len(self.watched) and not self._connection_active():
            logger.info(f"🔌 Resuming push feed for {len(self.watched)} wallet(s)")
            self._start_connection()

    async def stop(self):
        """Close everything; in-flight processing tasks are cancelled."""
        self._closed = True
        await self._teardown('Shutting down')

        tasks = list(self._processing)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self.session and self._own_session:
            await self.session.close()
            self.session = None
            self._own_session = False

    # ========== SUBSCRIPTIONS ==========

    async def _subscribe(self, address: str):
        ws = self._ws
        if ws is None or ws.closed:
            return

        self._request_id += 1
        message = {
            'jsonrpc': '2.0',
            'id': self._request_id,
            'method': 'logsSubscribe',
            'params': [
                {'mentions': [address]},
                {'commitment': 'finalized'},
            ],
        }
        try:
            await ws.send_str(json.dumps(message))
        except (aiohttp.ClientError, ConnectionError) as e:
            logger.warning(f"⚠️ Subscribe failed for {shorten(address)}: {e!r}")
            return
        logger.info(f"📤 Subscribed to wallet logs: {address}")

    # ========== FRAME DISPATCH ==========

    def _handle_frame(self, raw: str):
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning(f"❌ Unparseable push frame: {shorten(raw, 40)}")
            return
        if not isinstance(data, dict):
            return

        if data.get('method') == 'logsNotification':
            self._handle_notification(data)
            return

        result = data.get('result')
        if isinstance(result, int) and not isinstance(result, bool):
            self.subscription_ids.append(result)
            logger.info(f"✅ Subscription confirmed with ID: {result}")
        elif 'error' in data:
            logger.warning(f"⚠️ Push feed error response: {data['error']}")

    def _handle_notification(self, data: Dict):
        if len(self.watched) == 0:
            logger.debug("🚫 No wallets tracked - ignoring notification")
            return

        params = data.get('params')
        result = params.get('result') if isinstance(params, dict) else None
        value = result.get('value') if isinstance(result, dict) else None
        signature = value.get('signature') if isinstance(value, dict) else None
        if not signature:
            logger.debug("⚠️ Notification without signature")
            return

        task = asyncio.ensure_future(self.on_signature(signature))
        self._processing.add(task)
        task.add_done_callback(self._processing.discard)

    # ========== TRANSPORT ==========

    async def _default_ws_connect(self, url: str):
        if self.session is None:
            self.session = aiohttp.ClientSession()
            self._own_session = True
        return await self.session.ws_connect(url, heartbeat=self.heartbeat)

    def get_status(self) -> Dict:
        return {
            'connected': self.is_connected,
            'state': self.state.value,
            'watchedCount': len(self.watched),
            'watchedWallets': self.watched.snapshot(),
            'currentKey': mask_key(self.rotator.current_key()),
            'reconnectAttempts': self.reconnect_attempts,
            'exhausted': self.exhausted,
            'subscriptions': list(self.subscription_ids),
            'queueSizes': self.queue.sizes(),
            'processing': len(self._processing),
        }
