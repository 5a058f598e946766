"""
Rate Limiting Utilities

Token bucket pacing for RPC endpoints.
"""
from __future__ import annotations

import asyncio
import logging
import time

logger = logging.getLogger("whale_consensus.rate_limiter")


class TokenBucket:
    """
    Token bucket rate limiter.

    Allows burst traffic while enforcing average rate.

    Usage:
        limiter = TokenBucket(rate=5.0, capacity=10)
        await limiter.acquire()
    """

    def __init__(self, rate: float = 10.0, capacity: int = 20):
        self.rate = rate
        self.capacity = capacity
        self.tokens = float(capacity)
        self.last_update = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self, tokens: int = 1) -> float:
        """Acquire tokens, waiting if necessary. Returns seconds waited."""
        async with self._lock:
            self._refill()
            if self.tokens >= tokens:
                self.tokens -= tokens
                return 0.0

            wait_time = (tokens - self.tokens) / self.rate
            logger.debug("Rate limited, waiting %.2fs", wait_time)
            await asyncio.sleep(wait_time)
            self._refill()
            self.tokens = max(0.0, self.tokens - tokens)
            return wait_time

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_update
        self.tokens = min(self.capacity, self.tokens + elapsed * self.rate)
        self.last_update = now

    def get_status(self) -> dict:
        return {
            "tokens": round(self.tokens, 2),
            "capacity": self.capacity,
            "rate": self.rate,
        }
