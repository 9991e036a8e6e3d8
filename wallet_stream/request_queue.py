"""
RATE-LIMITED REQUEST QUEUE

Serializes outbound enrichment calls per call kind:
- FIFO order within a kind, no ordering across kinds
- at most one issuance per kind per minimum interval (default 1.2s)
- a failed call resolves its future with UNAVAILABLE instead of raising,
  so one bad request never stalls the queue

Clock and sleep are injectable for deterministic tests.
"""

import asyncio
import logging
import time
from collections import defaultdict, deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

ENHANCED_TX = 'enhanced'
ASSET_BATCH = 'assetBatch'


class _Unavailable:
    """Sentinel result for a request that could not be served."""

    def __repr__(self):
        return 'UNAVAILABLE'

    def __bool__(self):
        return False


UNAVAILABLE = _Unavailable()

RequestCall = Callable[[], Awaitable[Any]]


class RateLimitedQueue:
    """
    Per-kind leaky bucket with one worker task per kind.

    enqueue() never blocks; the returned future resolves exactly once with
    the call's result or UNAVAILABLE.
    """

    def __init__(self, config: Dict = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.config = config or {}
        self.min_interval = self.config.get('min_interval_seconds', 1.2)

        self._clock = clock
        self._sleep = sleep

        self._pending: Dict[str, Deque[Tuple[RequestCall, asyncio.Future]]] = defaultdict(deque)
        self._last_call: Dict[str, float] = {}
        self._workers: Dict[str, asyncio.Task] = {}

        # Stats
        self.issued: Dict[str, int] = defaultdict(int)
        self.failed: Dict[str, int] = defaultdict(int)
        self.discarded = 0

    def enqueue(self, kind: str, call: RequestCall) -> asyncio.Future:
        """
        Queue a request of the given kind.

        Args:
            kind: Call kind (ENHANCED_TX or ASSET_BATCH)
            call: Zero-argument coroutine function performing the request

        Returns:
            Future resolved with the response or UNAVAILABLE
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending[kind].append((call, future))

        worker = self._workers.get(kind)
        if worker is None or worker.done():
            self._workers[kind] = loop.create_task(self._drain(kind))

        return future

    async def _drain(self, kind: str):
        queue = self._pending[kind]

        while queue:
            last = self._last_call.get(kind)
            if last is not None:
                wait = last + self.min_interval - self._clock()
                if wait > 0:
                    await self._sleep(wait)
                    continue

            call, future = queue.popleft()
            if future.done():
                # Caller gave up while waiting
                continue

            self._last_call[kind] = self._clock()
            self.issued[kind] += 1

            try:
                result = await call()
            except asyncio.CancelledError:
                if not future.done():
                    future.set_result(UNAVAILABLE)
                raise
            except Exception as e:
                self.failed[kind] += 1
                logger.warning(f"[QUEUE] {kind} request failed: {e}")
                result = UNAVAILABLE

            if not future.done():
                future.set_result(result)

    def clear(self, kind: Optional[str] = None) -> int:
        """
        Discard pending (not yet issued) requests.

        Their futures resolve with UNAVAILABLE so no caller is left waiting.

        Returns:
            Number of discarded requests
        """
        kinds = [kind] if kind else list(self._pending)
        count = 0
        for k in kinds:
            queue = self._pending.get(k)
            while queue:
                _, future = queue.popleft()
                if not future.done():
                    future.set_result(UNAVAILABLE)
                count += 1

        self.discarded += count
        if count:
            logger.info(f"[QUEUE] Discarded {count} pending request(s)")
        return count

    async def close(self):
        """Discard pending requests and stop the workers."""
        self.clear()
        workers = [w for w in self._workers.values() if not w.done()]
        for worker in workers:
            worker.cancel()
        for worker in workers:
            try:
                await worker
            except asyncio.CancelledError:
                pass
        self._workers.clear()

    def depth(self, kind: str) -> int:
        return len(self._pending.get(kind, ()))

    def sizes(self) -> Dict[str, int]:
        return {
            ENHANCED_TX: self.depth(ENHANCED_TX),
            ASSET_BATCH: self.depth(ASSET_BATCH),
        }

    def get_stats(self) -> Dict:
        return {
            'pending': self.sizes(),
            'issued': dict(self.issued),
            'failed': dict(self.failed),
            'discarded': self.discarded,
            'min_interval_seconds': self.min_interval,
        }
