"""Shared factories and fakes for the whale consensus tests."""
import asyncio

import pytest

from whale_consensus.core.models import (
    MarketData,
    PurchaseEvent,
    TokenMetadata,
)

WALLET_A = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
WALLET_B = "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1"


def make_purchase(
    wallet="WALLET_1",
    mint="MINT_A",
    usd=100.0,
    ts=0.0,
    base=None,
    signature=None,
    name=None,
    symbol=None,
):
    return PurchaseEvent(
        wallet_address=wallet,
        token_mint=mint,
        amount_base=usd / 100.0 if base is None else base,
        amount_usd=usd,
        signature=signature or f"sig_{wallet}_{mint}_{ts}",
        timestamp=ts,
        wallet_name=name,
        token_symbol=symbol,
    )


class FakeSource:
    """Purchase source returning canned events (or raising) per wallet."""

    def __init__(self, events=None, errors=None, delay=0.0):
        self.events = events or {}
        self.errors = errors or {}
        self.delay = delay
        self.calls = []

    async def fetch_new_purchases(self, wallet_address, since, wallet_name=None):
        self.calls.append((wallet_address, since))
        if self.delay:
            await asyncio.sleep(self.delay)
        if wallet_address in self.errors:
            raise self.errors[wallet_address]
        return list(self.events.get(wallet_address, []))


class RecordingSink:
    def __init__(self):
        self.alerts = []
        self.purchases = []

    async def on_consensus_alert(self, alert):
        self.alerts.append(alert)

    async def on_individual_purchase(self, event, enrichment):
        self.purchases.append((event, enrichment))


class FailingSink:
    async def on_consensus_alert(self, alert):
        raise RuntimeError("sink down")

    async def on_individual_purchase(self, event, enrichment):
        raise RuntimeError("sink down")


class StaticEnricher:
    def __init__(self, token=None, market=None, social=None, fail=False, delay=0.0):
        self.token = token
        self.market = market
        self.social = social
        self.fail = fail
        self.delay = delay

    async def _answer(self, value):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("lookup exploded")
        return value

    async def get_token_metadata(self, token_mint):
        return await self._answer(self.token)

    async def get_market_data(self, token_mint):
        return await self._answer(self.market)

    async def get_social_data(self, token_mint, symbol=None):
        return await self._answer(self.social)


class CountingEnricher(StaticEnricher):
    """Tracks how many lookups are in flight at once."""

    def __init__(self, delay=0.01, **kwargs):
        super().__init__(delay=delay, **kwargs)
        self.active = 0
        self.peak = 0
        self.mints = []

    async def _answer(self, value):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            return await super()._answer(value)
        finally:
            self.active -= 1

    async def get_market_data(self, token_mint):
        self.mints.append(token_mint)
        return await super().get_market_data(token_mint)


class ManualClock:
    def __init__(self, now=1_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def purchase():
    return make_purchase


@pytest.fixture
def recording_sink():
    return RecordingSink()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def rich_enricher():
    return StaticEnricher(
        token=TokenMetadata(symbol="BONK", name="Bonk"),
        market=MarketData(market_cap=2_500_000, price=0.00002, liquidity=150_000, source="DexScreener"),
    )
