"""
Token Enricher

Best-effort token metadata, market data and social data behind bounded
TTL caches. Misses are not cached so a token that had no data is looked
up again next time it shows up.
"""
from __future__ import annotations

import logging

import httpx

from whale_consensus.config import Settings
from whale_consensus.core.market_data import MarketDataClient
from whale_consensus.core.models import MarketData, SocialData, TokenMetadata
from whale_consensus.core.social_analyzer import SocialAnalyzer
from whale_consensus.core.ttl_cache import TTLCache
from whale_consensus.exceptions import EnrichmentException


class TokenEnricher:
    def __init__(
        self,
        settings: Settings,
        market: MarketDataClient,
        social: SocialAnalyzer | None = None,
    ) -> None:
        self.settings = settings
        self.market = market
        self.social = social if settings.SOCIAL_ANALYSIS_ENABLED else None
        self.logger = logging.getLogger("whale_consensus.enrichment")
        max_entries = settings.CACHE_MAX_ENTRIES
        self.token_cache = TTLCache(settings.TOKEN_INFO_CACHE_TTL_SEC, max_entries, name="token_info")
        self.market_cache = TTLCache(settings.MARKET_CACHE_TTL_SEC, max_entries, name="market")
        self.social_cache = TTLCache(settings.SOCIAL_CACHE_TTL_SEC, max_entries, name="social")

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenEnricher":
        market = MarketDataClient(settings)
        social = None
        if settings.SOCIAL_ANALYSIS_ENABLED:
            social = SocialAnalyzer(settings, pairs_provider=market.get_token_pairs)
        return cls(settings, market, social)

    async def get_token_metadata(self, token_mint: str) -> TokenMetadata | None:
        cached = self.token_cache.get(token_mint)
        if cached is not None:
            return cached
        try:
            meta = await self.market.get_token_metadata(token_mint)
        except (httpx.HTTPError, EnrichmentException) as exc:
            self.logger.warning("Token info lookup failed for %s: %s", token_mint[:8], exc)
            return None
        if meta is not None:
            self.token_cache.set(token_mint, meta)
        return meta

    async def get_market_data(self, token_mint: str) -> MarketData | None:
        cached = self.market_cache.get(token_mint)
        if cached is not None:
            return cached
        try:
            data = await self.market.get_market_data(token_mint)
        except (httpx.HTTPError, EnrichmentException) as exc:
            self.logger.warning("Market data lookup failed for %s: %s", token_mint[:8], exc)
            return None
        if data is not None:
            self.market_cache.set(token_mint, data)
        return data

    async def get_social_data(self, token_mint: str, symbol: str | None = None) -> SocialData | None:
        if self.social is None:
            return None
        cached = self.social_cache.get(token_mint)
        if cached is not None:
            return cached
        try:
            data = await self.social.analyze(token_mint, symbol)
        except (httpx.HTTPError, EnrichmentException) as exc:
            self.logger.warning("Social analysis failed for %s: %s", symbol or token_mint[:8], exc)
            return None
        self.social_cache.set(token_mint, data)
        return data

    def sweep(self) -> int:
        """Drop expired entries from every cache. Returns how many went."""
        return sum(
            cache.cleanup_expired()
            for cache in (self.token_cache, self.market_cache, self.social_cache)
        )

    def cache_stats(self) -> list[dict]:
        return [c.get_stats() for c in (self.token_cache, self.market_cache, self.social_cache)]

    async def close(self) -> None:
        await self.market.close()
        if self.social is not None:
            await self.social.close()
