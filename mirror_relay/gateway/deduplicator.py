"""
Relayed Message Deduplicator

After a resume the gateway replays missed events; a message id that was
already relayed within the TTL is never relayed a second time.

File: mirror_relay/gateway/deduplicator.py
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Callable

logger = logging.getLogger("mirror.gateway.deduplicator")


class MessageDeduplicator:
    """Message id deduplicator (thread-safe)"""

    def __init__(
        self,
        ttl_seconds: float = 600,
        max_size: int = 5000,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize deduplicator

        Args:
            ttl_seconds: How long a relayed message id is remembered
            max_size: Maximum remembered ids, oldest evicted first
            clock: Monotonic time source
        """
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._seen: "OrderedDict[str, float]" = OrderedDict()
        self._lock = threading.Lock()

    def is_duplicate(self, message_id: str, channel_id: str) -> bool:
        """
        Record a message and report whether it was seen before

        Returns:
            True if the same message id was recorded within the TTL
        """
        key = f"{channel_id}:{message_id}"
        now = self._clock()

        with self._lock:
            self._evict(now)

            if key in self._seen:
                logger.debug(f"Duplicate message detected: {key}")
                return True

            self._seen[key] = now
            return False

    def _evict(self, now: float):
        """Drop expired and overflow entries (must be called within lock)"""
        cutoff = now - self.ttl_seconds
        while self._seen:
            oldest = next(iter(self._seen.values()))
            if oldest >= cutoff:
                break
            self._seen.popitem(last=False)

        while len(self._seen) >= self.max_size:
            self._seen.popitem(last=False)

    def clear(self):
        with self._lock:
            self._seen.clear()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._seen)
