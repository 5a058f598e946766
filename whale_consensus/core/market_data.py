"""
Market Data Client

DexScreener first (highest-liquidity pair), CoinGecko as fallback.
The raw DexScreener pair list is kept for a minute so token metadata,
market data and social discovery share one request per token.
"""
from __future__ import annotations

from typing import Any

import httpx

from whale_consensus.config import Settings
from whale_consensus.constants import COINGECKO_API_BASE, DEXSCREENER_API_BASE
from whale_consensus.core.http_client import JsonApiClient
from whale_consensus.core.models import MarketData, TokenMetadata
from whale_consensus.core.ttl_cache import TTLCache
from whale_consensus.exceptions import EnrichmentException

PAIRS_CACHE_TTL_SEC = 60.0


def _num(value: Any) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number or None


def best_pair(pairs: list[dict[str, Any]]) -> dict[str, Any] | None:
    if not pairs:
        return None
    return max(pairs, key=lambda p: _num((p.get("liquidity") or {}).get("usd")) or 0.0)


def market_data_from_pairs(pairs: list[dict[str, Any]]) -> MarketData | None:
    pair = best_pair(pairs)
    if pair is None:
        return None
    data = MarketData(
        market_cap=_num(pair.get("marketCap")),
        price=_num(pair.get("priceUsd")),
        volume_24h=_num((pair.get("volume") or {}).get("h24")),
        price_change_24h=_num((pair.get("priceChange") or {}).get("h24")),
        liquidity=_num((pair.get("liquidity") or {}).get("usd")),
        fdv=_num(pair.get("fdv")),
        source="DexScreener",
    )
    return data if data.has_data else None


def token_metadata_from_pairs(pairs: list[dict[str, Any]], token_mint: str) -> TokenMetadata | None:
    for pair in pairs:
        for side in ("baseToken", "quoteToken"):
            token = pair.get(side) or {}
            if token.get("address") == token_mint and token.get("symbol"):
                return TokenMetadata(symbol=token["symbol"], name=token.get("name") or token["symbol"])
    # Some responses omit addresses; fall back to the first base token
    base = (pairs[0].get("baseToken") or {}) if pairs else {}
    if base.get("symbol"):
        return TokenMetadata(symbol=base["symbol"], name=base.get("name") or base["symbol"])
    return None


def market_data_from_coingecko(payload: Any) -> MarketData | None:
    if not isinstance(payload, dict) or not payload.get("market_data"):
        return None
    md = payload["market_data"]
    data = MarketData(
        market_cap=_num((md.get("market_cap") or {}).get("usd")),
        price=_num((md.get("current_price") or {}).get("usd")),
        volume_24h=_num((md.get("total_volume") or {}).get("usd")),
        price_change_24h=_num(md.get("price_change_percentage_24h")),
        fdv=_num((md.get("fully_diluted_valuation") or {}).get("usd")),
        source="CoinGecko",
    )
    return data if data.has_data else None


class MarketDataClient(JsonApiClient):
    name = "market_data"

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        headers = {}
        if settings.COINGECKO_API_KEY:
            headers["x-cg-demo-api-key"] = settings.COINGECKO_API_KEY
        super().__init__(settings, client, headers=headers)
        self.dexscreener_base = DEXSCREENER_API_BASE.rstrip("/")
        self.coingecko_base = COINGECKO_API_BASE.rstrip("/")
        self._pairs_cache = TTLCache(PAIRS_CACHE_TTL_SEC, settings.CACHE_MAX_ENTRIES, name="pairs")

    async def get_token_pairs(self, token_mint: str) -> list[dict[str, Any]]:
        cached = self._pairs_cache.get(token_mint)
        if cached is not None:
            return cached
        payload = await self._request(f"{self.dexscreener_base}/latest/dex/tokens/{token_mint}")
        if payload is None:
            return []
        pairs = payload.get("pairs") if isinstance(payload, dict) else payload
        if pairs is not None and not isinstance(pairs, list):
            raise EnrichmentException("Unexpected DexScreener response", token=token_mint[:8])
        pairs = [
            p for p in (pairs or [])
            if isinstance(p, dict) and (p.get("chainId") or "solana") == "solana"
        ]
        self._pairs_cache.set(token_mint, pairs)
        return pairs

    async def get_market_data(self, token_mint: str) -> MarketData | None:
        data = market_data_from_pairs(await self.get_token_pairs(token_mint))
        if data is None:
            payload = await self._request(f"{self.coingecko_base}/coins/solana/contract/{token_mint}")
            data = market_data_from_coingecko(payload)
        if data is None:
            self.logger.info("No market data found for %s", token_mint[:8])
        else:
            self.logger.debug(
                "Market data from %s for %s: MC %s", data.source, token_mint[:8], data.market_cap
            )
        return data

    async def get_token_metadata(self, token_mint: str) -> TokenMetadata | None:
        meta = token_metadata_from_pairs(await self.get_token_pairs(token_mint), token_mint)
        if meta is not None:
            return meta
        payload = await self._request(f"{self.coingecko_base}/coins/solana/contract/{token_mint}")
        if isinstance(payload, dict) and payload.get("symbol"):
            return TokenMetadata(
                symbol=str(payload["symbol"]).upper(),
                name=payload.get("name") or str(payload["symbol"]),
                verified=True,
            )
        return None
