"""
Unit tests for MarketDataClient, SolPriceService and TokenEnricher

HTTP is served by httpx.MockTransport handlers.
"""
import asyncio

import httpx

from whale_consensus.config import Settings
from whale_consensus.core.enrichment import TokenEnricher
from whale_consensus.core.market_data import (
    MarketDataClient,
    best_pair,
    market_data_from_coingecko,
    market_data_from_pairs,
)
from whale_consensus.core.price_feed import (
    SolPriceService,
    parse_binance,
    parse_coinbase,
    parse_coingecko,
    parse_kraken,
)

MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"
SETTINGS = Settings(API_MAX_RETRIES=2, API_RETRY_BACKOFF_SEC=0.1, SOCIAL_ANALYSIS_ENABLED=False)

PAIRS = [
    {
        "chainId": "solana",
        "baseToken": {"address": MINT, "symbol": "BONK", "name": "Bonk"},
        "priceUsd": "0.00002",
        "marketCap": 1_500_000,
        "liquidity": {"usd": 40_000},
        "volume": {"h24": 90_000},
    },
    {
        "chainId": "solana",
        "baseToken": {"address": MINT, "symbol": "BONK", "name": "Bonk"},
        "priceUsd": "0.000021",
        "marketCap": 1_600_000,
        "liquidity": {"usd": 250_000},
        "volume": {"h24": 400_000},
        "priceChange": {"h24": -12.5},
    },
    {"chainId": "ethereum", "baseToken": {"address": "0xabc", "symbol": "ETHX"}},
]

COINGECKO_TOKEN = {
    "symbol": "bonk",
    "name": "Bonk",
    "market_data": {
        "market_cap": {"usd": 3_000_000},
        "current_price": {"usd": 0.00003},
        "total_volume": {"usd": 1_000},
    },
}


def mock_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def run(coro):
    return asyncio.run(coro)


class TestPairParsing:
    def test_best_pair_is_deepest(self):
        assert best_pair(PAIRS[:2])["liquidity"]["usd"] == 250_000

    def test_market_data_from_pairs(self):
        data = market_data_from_pairs(PAIRS[:2])
        assert data.market_cap == 1_600_000
        assert data.liquidity == 250_000
        assert data.price_change_24h == -12.5
        assert data.source == "DexScreener"

    def test_no_pairs(self):
        assert market_data_from_pairs([]) is None

    def test_coingecko_payload(self):
        data = market_data_from_coingecko(COINGECKO_TOKEN)
        assert data.market_cap == 3_000_000
        assert data.source == "CoinGecko"
        assert market_data_from_coingecko({"error": "not found"}) is None


class TestMarketDataClient:
    def test_dexscreener_first(self):
        requests = []

        def handler(request):
            requests.append(request.url.host)
            return httpx.Response(200, json={"pairs": PAIRS})

        async def scenario():
            client = MarketDataClient(SETTINGS, client=mock_client(handler))
            try:
                market = await client.get_market_data(MINT)
                meta = await client.get_token_metadata(MINT)
            finally:
                await client.close()
            return market, meta

        market, meta = run(scenario())
        assert market.market_cap == 1_600_000
        assert meta.symbol == "BONK"
        # Pairs are shared between lookups
        assert requests == ["api.dexscreener.com"]

    def test_coingecko_fallback(self):
        def handler(request):
            if request.url.host == "api.dexscreener.com":
                return httpx.Response(200, json={"pairs": None})
            return httpx.Response(200, json=COINGECKO_TOKEN)

        async def scenario():
            client = MarketDataClient(SETTINGS, client=mock_client(handler))
            try:
                return await client.get_market_data(MINT), await client.get_token_metadata(MINT)
            finally:
                await client.close()

        market, meta = run(scenario())
        assert market.source == "CoinGecko"
        assert meta.symbol == "BONK"

    def test_rate_limit_is_retried(self):
        responses = [httpx.Response(429, headers={"Retry-After": "0"}), httpx.Response(200, json={"pairs": PAIRS})]

        def handler(request):
            return responses.pop(0)

        async def scenario():
            client = MarketDataClient(SETTINGS, client=mock_client(handler))
            try:
                return await client.get_token_pairs(MINT)
            finally:
                await client.close()

        assert len(run(scenario())) == 2

    def test_server_errors_give_none(self):
        def handler(request):
            return httpx.Response(500)

        async def scenario():
            client = MarketDataClient(SETTINGS, client=mock_client(handler))
            try:
                return await client.get_market_data(MINT)
            finally:
                await client.close()

        assert run(scenario()) is None


class TestTokenEnricher:
    def test_hits_are_cached_and_misses_are_not(self):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            if request.url.host == "api.dexscreener.com":
                return httpx.Response(200, json={"pairs": []})
            return httpx.Response(404)

        async def scenario():
            market = MarketDataClient(SETTINGS, client=mock_client(handler))
            enricher = TokenEnricher(SETTINGS, market)
            try:
                first = await enricher.get_market_data(MINT)
                second = await enricher.get_market_data(MINT)
                social = await enricher.get_social_data(MINT)
            finally:
                await enricher.close()
            return first, second, social

        first, second, social = run(scenario())
        assert first is None and second is None
        assert social is None
        # Two lookups, each trying DexScreener then CoinGecko (404)
        assert len([c for c in calls if "coingecko" in c]) == 2

    def test_market_hit_cached(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(200, json={"pairs": PAIRS})

        async def scenario():
            enricher = TokenEnricher(SETTINGS, MarketDataClient(SETTINGS, client=mock_client(handler)))
            try:
                await enricher.get_market_data(MINT)
                enricher.market._pairs_cache.clear()
                data = await enricher.get_market_data(MINT)
            finally:
                await enricher.close()
            return data, enricher.cache_stats()

        data, stats = run(scenario())
        assert data.market_cap == 1_600_000
        assert len(calls) == 1
        market_stats = next(s for s in stats if s["name"] == "market")
        assert market_stats["hits"] == 1


    def test_malformed_pairs_payload_degrades_to_none(self):
        def handler(request):
            return httpx.Response(200, json={"pairs": "rate limited"})

        async def scenario():
            enricher = TokenEnricher(SETTINGS, MarketDataClient(SETTINGS, client=mock_client(handler)))
            try:
                return await enricher.get_market_data(MINT), await enricher.get_token_metadata(MINT)
            finally:
                await enricher.close()

        assert run(scenario()) == (None, None)


class TestPriceParsers:
    def test_coingecko(self):
        assert parse_coingecko({"solana": {"usd": 187.5}}) == 187.5

    def test_binance(self):
        assert parse_binance({"symbol": "SOLUSDT", "price": "190.10"}) == 190.10

    def test_coinbase_is_usd_per_sol(self):
        assert parse_coinbase({"data": {"currency": "SOL", "rates": {"USD": "185.2"}}}) == 185.2

    def test_kraken(self):
        assert parse_kraken({"result": {"SOLUSD": {"c": ["183.4", "1.0"]}}}) == 183.4

    def test_insane_quotes_rejected(self):
        assert parse_binance({"price": "0.0001"}) is None
        assert parse_coingecko({"solana": {"usd": 10_000_000}}) is None
        assert parse_coingecko(["unexpected"]) is None


class TestSolPriceService:
    def test_falls_through_sources(self, clock):
        def handler(request):
            if request.url.host == "api.coingecko.com":
                return httpx.Response(500)
            return httpx.Response(200, json={"price": "191.25"})

        async def scenario():
            service = SolPriceService(
                Settings(API_MAX_RETRIES=1), client=mock_client(handler), clock=clock
            )
            try:
                price = await service.refresh()
            finally:
                await service.close()
            return service, price

        service, price = run(scenario())
        assert price == 191.25
        assert service.current_price() == 191.25
        assert service.source == "Binance"
        clock.advance(12)
        assert service.price_age() == "12s ago"

    def test_keeps_fallback_when_all_fail(self):
        def handler(request):
            return httpx.Response(503)

        async def scenario():
            service = SolPriceService(Settings(API_MAX_RETRIES=1), client=mock_client(handler))
            try:
                return await service.refresh(), service
            finally:
                await service.close()

        price, service = run(scenario())
        assert price == 200.0
        assert service.source == "fallback"
        assert service.price_age() == "never"
