"""
SOL Price Service

Keeps a recent SOL/USD quote for pricing whale purchases.

Sources (tried in order):
- CoinGecko
- Binance
- Coinbase
- Kraken

``current_price()`` never blocks: it returns the last good quote, or the
fallback when no source has answered yet.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Callable

import httpx

from whale_consensus.config import Settings
from whale_consensus.constants import (
    BINANCE_SOL_PRICE_URL,
    COINBASE_SOL_RATES_URL,
    COINGECKO_SOL_PRICE_URL,
    DEFAULT_SOL_PRICE_USD,
    KRAKEN_SOL_TICKER_URL,
)
from whale_consensus.core.http_client import JsonApiClient
from whale_consensus.utils.time import format_age

# Quotes outside this band are treated as garbage
MIN_SANE_PRICE = 1.0
MAX_SANE_PRICE = 100_000.0


def _to_float(value: Any) -> float | None:
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    return price if MIN_SANE_PRICE <= price <= MAX_SANE_PRICE else None


def parse_coingecko(data: Any) -> float | None:
    if not isinstance(data, dict):
        return None
    return _to_float((data.get("solana") or {}).get("usd"))


def parse_binance(data: Any) -> float | None:
    if not isinstance(data, dict):
        return None
    return _to_float(data.get("price"))


def parse_coinbase(data: Any) -> float | None:
    # /exchange-rates?currency=SOL returns USD per 1 SOL
    if not isinstance(data, dict):
        return None
    rates = (data.get("data") or {}).get("rates") or {}
    return _to_float(rates.get("USD"))


def parse_kraken(data: Any) -> float | None:
    if not isinstance(data, dict):
        return None
    result = data.get("result") or {}
    for ticker in result.values():
        closes = ticker.get("c") if isinstance(ticker, dict) else None
        if closes:
            return _to_float(closes[0])
    return None


PRICE_SOURCES: list[tuple[str, str, dict[str, str], Callable[[Any], float | None]]] = [
    ("CoinGecko", COINGECKO_SOL_PRICE_URL, {"ids": "solana", "vs_currencies": "usd"}, parse_coingecko),
    ("Binance", BINANCE_SOL_PRICE_URL, {"symbol": "SOLUSDT"}, parse_binance),
    ("Coinbase", COINBASE_SOL_RATES_URL, {"currency": "SOL"}, parse_coinbase),
    ("Kraken", KRAKEN_SOL_TICKER_URL, {"pair": "SOLUSD"}, parse_kraken),
]


class SolPriceService(JsonApiClient):
    name = "sol_price"

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
        fallback_price: float = DEFAULT_SOL_PRICE_USD,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(settings, client)
        self._price = fallback_price
        self._source = "fallback"
        self._updated_at = 0.0
        self._clock = clock
        self._refresh_lock = asyncio.Lock()

    def current_price(self) -> float:
        return self._price

    @property
    def source(self) -> str:
        return self._source

    def price_age(self) -> str:
        if not self._updated_at:
            return "never"
        return format_age(self._clock() - self._updated_at)

    async def refresh(self) -> float:
        """Try every source in order; keep the previous quote if all fail."""
        if self._refresh_lock.locked():
            return self._price
        async with self._refresh_lock:
            for source_name, url, params, parser in PRICE_SOURCES:
                data = await self._request(url, params=params)
                price = parser(data) if data is not None else None
                if price is None:
                    self.logger.warning("SOL price from %s unavailable, trying next source", source_name)
                    continue
                self._price = price
                self._source = source_name
                self._updated_at = self._clock()
                self.logger.info("SOL price updated: $%.2f (%s)", price, source_name)
                return price
            self.logger.warning(
                "All SOL price sources failed, keeping $%.2f (%s)", self._price, self._source
            )
            return self._price

    async def run(self, stop_event: asyncio.Event) -> None:
        """Refresh on a fixed cadence until ``stop_event`` is set."""
        interval = max(5.0, self.settings.SOL_PRICE_REFRESH_SEC)
        self.logger.info("SOL price service started, refreshing every %.0fs", interval)
        while not stop_event.is_set():
            await self.refresh()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
