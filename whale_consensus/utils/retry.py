"""
Retry decorator and circuit breaker for outbound calls.

Used by the RPC client and the HTTP enrichment clients.
"""
from __future__ import annotations

import asyncio
import logging
import time
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger("whale_consensus.retry")

T = TypeVar("T")


def async_retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple = (Exception,),
):
    """
    Retry async function with exponential backoff.

    Example:
        @async_retry(max_attempts=3, delay=0.5, exceptions=(NetworkException,))
        async def fetch_data():
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts - 1:
                        logger.error(
                            "%s failed after %d attempts: %s", func.__name__, max_attempts, e,
                            extra={"function": func.__name__, "attempts": max_attempts},
                        )
                        raise
                    current_delay = delay * (backoff ** attempt)
                    logger.warning(
                        "%s failed (%s), retrying in %.1fs", func.__name__, e, current_delay,
                        extra={"function": func.__name__, "attempt": attempt + 1},
                    )
                    await asyncio.sleep(current_delay)
            raise RuntimeError("unreachable")

        return wrapper
    return decorator


class CircuitBreaker:
    """
    Circuit breaker to stop hammering a failing endpoint.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: Failures exceeded threshold, requests blocked
    - HALF_OPEN: Testing if service recovered

    Usage:
        cb = CircuitBreaker(name="RPC", failure_threshold=5)
        if cb.can_execute():
            try:
                result = await rpc_call()
                cb.record_success()
            except NetworkException:
                cb.record_failure()
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        name: str = "default",
        clock: Callable[[], float] = time.time,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name
        self._clock = clock

        self.failures = 0
        self.last_failure_time = 0.0
        self.state = "CLOSED"

    def record_success(self) -> None:
        self.failures = 0
        self.state = "CLOSED"

    def record_failure(self) -> None:
        self.failures += 1
        self.last_failure_time = self._clock()
        if self.failures >= self.failure_threshold and self.state != "OPEN":
            self.state = "OPEN"
            logger.warning("Circuit breaker '%s' OPENED after %d failures", self.name, self.failures)

    def can_execute(self) -> bool:
        if self.state == "CLOSED":
            return True
        if self.state == "OPEN":
            elapsed = self._clock() - self.last_failure_time
            if elapsed >= self.recovery_timeout:
                self.state = "HALF_OPEN"
                logger.info("Circuit breaker '%s' entering HALF_OPEN state", self.name)
                return True
            return False
        # HALF_OPEN: allow a probe
        return True

    def get_status(self) -> dict:
        return {
            "name": self.name,
            "state": self.state,
            "failures": self.failures,
            "threshold": self.failure_threshold,
        }
