"""
RPC Client with Fallback Support

JSON-RPC over aiohttp with automatic failover between endpoints.
Each endpoint gets its own token bucket and circuit breaker.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from whale_consensus.config import Settings
from whale_consensus.exceptions import NetworkException, RpcException
from whale_consensus.utils.rate_limiter import TokenBucket
from whale_consensus.utils.retry import CircuitBreaker

logger = logging.getLogger("whale_consensus.rpc")


@dataclass
class RPCEndpoint:
    url: str
    name: str
    priority: int = 0  # Lower = higher priority
    rate_limit: float = 5.0

    latency_ms: float = 0.0
    total_requests: int = 0
    failed_requests: int = 0


class RPCClientWithFallback:
    """
    Usage:
        client = RPCClientWithFallback.from_settings(settings)
        async with client:
            sigs = await client.get_signatures_for_address(addr, limit=15)
    """

    def __init__(
        self,
        endpoints: List[RPCEndpoint],
        timeout: float = 8.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        if not endpoints:
            raise ValueError("At least one endpoint required")
        self.endpoints = sorted(endpoints, key=lambda e: e.priority)
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._circuit_breakers: Dict[str, CircuitBreaker] = {
            ep.url: CircuitBreaker(failure_threshold=3, recovery_timeout=30.0, name=ep.name)
            for ep in self.endpoints
        }
        self._rate_limiters: Dict[str, TokenBucket] = {
            ep.url: TokenBucket(rate=ep.rate_limit, capacity=max(1, int(ep.rate_limit * 2)))
            for ep in self.endpoints
        }
        self._request_id = 0

    @classmethod
    def from_settings(cls, settings: Settings) -> "RPCClientWithFallback":
        endpoints = [
            RPCEndpoint(
                url=url,
                name=f"RPC_{i + 1}",
                priority=i,
                rate_limit=settings.RPC_RATE_LIMIT_PER_SEC,
            )
            for i, url in enumerate(settings.RPC_URLS)
        ]
        return cls(endpoints, timeout=settings.FETCH_TIMEOUT_SEC)

    async def __aenter__(self) -> "RPCClientWithFallback":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self._owns_session = True
        return self._session

    async def _post(self, endpoint: RPCEndpoint, method: str, params: list) -> Any:
        self._request_id += 1
        payload = {"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params}
        session = self._get_session()
        async with session.post(endpoint.url, json=payload) as resp:
            if resp.status == 429:
                raise NetworkException("RPC rate limited", endpoint=endpoint.name, status=429)
            if resp.status != 200:
                raise NetworkException("RPC HTTP error", endpoint=endpoint.name, status=resp.status)
            data = await resp.json(content_type=None)
        if data.get("error"):
            raise NetworkException(
                "RPC error response", endpoint=endpoint.name, error=data["error"]
            )
        return data.get("result")

    async def call(self, method: str, params: list) -> Any:
        """Execute a JSON-RPC method, falling through endpoints on failure."""
        last_error: Optional[Exception] = None

        for endpoint in self.endpoints:
            cb = self._circuit_breakers[endpoint.url]
            if not cb.can_execute():
                logger.debug("Skipping %s: circuit breaker open", endpoint.name)
                continue

            try:
                await self._rate_limiters[endpoint.url].acquire()
                endpoint.total_requests += 1
                start = time.monotonic()
                result = await self._post(endpoint, method, params)
                latency = (time.monotonic() - start) * 1000
                endpoint.latency_ms = (endpoint.latency_ms + latency) / 2
                cb.record_success()
                return result
            except (aiohttp.ClientError, asyncio.TimeoutError, NetworkException, ValueError) as e:
                last_error = e
                endpoint.failed_requests += 1
                cb.record_failure()
                logger.warning("RPC %s failed on %s: %s", method, endpoint.name, e)

        raise RpcException(f"All RPC endpoints failed for {method}", error=last_error)

    async def get_signatures_for_address(self, address: str, limit: int = 15) -> List[dict]:
        result = await self.call(
            "getSignaturesForAddress",
            [address, {"limit": limit, "commitment": "confirmed"}],
        )
        return result if isinstance(result, list) else []

    async def get_transaction(self, signature: str) -> Optional[dict]:
        return await self.call(
            "getTransaction",
            [signature, {"encoding": "json", "maxSupportedTransactionVersion": 0}],
        )

    def get_status(self) -> Dict[str, Any]:
        return {
            "endpoints": [
                {
                    "name": ep.name,
                    "url": ep.url[:30] + "...",
                    "latency_ms": round(ep.latency_ms, 1),
                    "total_requests": ep.total_requests,
                    "failed_requests": ep.failed_requests,
                    "circuit_breaker": self._circuit_breakers[ep.url].state,
                }
                for ep in self.endpoints
            ]
        }

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
