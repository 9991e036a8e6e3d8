"""
API KEY ROTATOR

Cycles through a pool of Helius API keys:
- on a fixed wall-clock interval (background task)
- after a configured number of outbound calls on the current key

The push socket binds the key at handshake time, so every rotation is
announced to listeners (the stream manager reconnects with the new key).
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from .exceptions import ConfigurationError
from .stream_utils import mask_key

logger = logging.getLogger(__name__)

RotationListener = Callable[[str, str], None]


class KeyRotator:
    """
    Round-robin API key pool.

    Rotation is pure local state mutation plus listener callbacks; it
    cannot fail.
    """

    def __init__(self, keys: Sequence[str], config: Dict = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """
        Args:
            keys: Ordered key pool (must not be empty)
            config: `key_rotation` config section
            sleep: Sleep coroutine driving the rotation timer
        """
        self.keys: List[str] = [k for k in keys if k]
        if not self.keys:
            raise ConfigurationError("API key pool is empty")

        self.config = config or {}
        self.interval_seconds = self.config.get('interval_seconds', 15 * 60)
        self.max_calls_per_key = self.config.get('max_calls_per_key', 100)

        self.current_index = 0
        self.calls_since_rotation = 0

        self._sleep = sleep
        self._listeners: List[RotationListener] = []
        self._timer_task: Optional[asyncio.Task] = None

        self.rotations = {'time': 0, 'usage': 0}

    def current_key(self) -> str:
        return self.keys[self.current_index]

    def add_listener(self, listener: RotationListener):
        """Register a callback invoked as listener(old_key, new_key)."""
        self._listeners.append(listener)

    def note_call(self):
        """Count one outbound call; rotate once the per-key budget is used up."""
        self.calls_since_rotation += 1
        if self.calls_since_rotation >= self.max_calls_per_key:
            self.rotate('usage')

    def rotate(self, reason: str = 'time') -> str:
        """
        Advance to the next key (wrapping) and reset the usage counter.

        Returns:
            The newly selected key
        """
        old_key = self.current_key()
        self.current_index = (self.current_index + 1) % len(self.keys)
        self.calls_since_rotation = 0
        self.rotations[reason] = self.rotations.get(reason, 0) + 1

        new_key = self.current_key()
        logger.info(f"🔑 API key rotated ({reason}): {mask_key(old_key)} → {mask_key(new_key)}")

        for listener in list(self._listeners):
            try:
                listener(old_key, new_key)
            except Exception:
                logger.exception("Key rotation listener failed")

        return new_key

    # ========== TIMER ==========

    def start(self):
        """Start the wall-clock rotation timer on the running loop."""
        if self._timer_task is None or self._timer_task.done():
            self._timer_task = asyncio.ensure_future(self._run_timer())

    async def stop(self):
        if self._timer_task:
            self._timer_task.cancel()
            try:
                await self._timer_task
            except asyncio.CancelledError:
                pass
            self._timer_task = None

    async def _run_timer(self):
        while True:
            await self._sleep(self.interval_seconds)
            self.rotate('time')

    def get_stats(self) -> Dict:
        return {
            'current_key': mask_key(self.current_key()),
            'pool_size': len(self.keys),
            'calls_since_rotation': self.calls_since_rotation,
            'rotations': dict(self.rotations),
        }
