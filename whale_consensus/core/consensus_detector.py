"""
Whale Consensus Detector

Drives one polling cycle:
1. Fetch new purchases per tracked wallet (batched, bounded, isolated)
2. Re-price and filter them, insert into per-token windows
3. Evaluate every window, strongest first
4. Emit each (token, whale count) signal at most once per process

State (windows, fired signals, wallet cursors) is owned by one detector
instance and only mutated between awaits of the single cycle task.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Protocol, Sequence, TypeVar

from whale_consensus.config import Settings
from whale_consensus.core.alert_sinks import AlertSink
from whale_consensus.core.consensus_scorer import ConsensusScorer
from whale_consensus.core.consensus_window import ConsensusWindow
from whale_consensus.core.models import (
    ConsensusAggregate,
    ConsensusAlert,
    ConsensusSignal,
    Enrichment,
    MarketData,
    PurchaseEvent,
    SocialData,
    TokenMetadata,
    TrackedWallet,
)
from whale_consensus.utils.time import utc_ts

T = TypeVar("T")


class PurchaseSource(Protocol):
    async def fetch_new_purchases(
        self, wallet_address: str, since: float, wallet_name: str | None = None
    ) -> Sequence[PurchaseEvent]: ...


class Enricher(Protocol):
    async def get_token_metadata(self, token_mint: str) -> TokenMetadata | None: ...

    async def get_market_data(self, token_mint: str) -> MarketData | None: ...

    async def get_social_data(self, token_mint: str, symbol: str | None = None) -> SocialData | None: ...


@dataclass
class CycleReport:
    started_at: float
    wallets_checked: int = 0
    wallets_failed: int = 0
    purchases_found: int = 0
    purchases_accepted: int = 0
    alerts: list[ConsensusAlert] = field(default_factory=list)
    duration_sec: float = 0.0


def chunked(items: Sequence[T], size: int) -> list[Sequence[T]]:
    size = max(1, size)
    return [items[i:i + size] for i in range(0, len(items), size)]


class ConsensusDetector:
    """
    Sliding-window whale consensus detection.

    Usage:
        detector = ConsensusDetector(min_whales=2, window_sec=900, sinks=[console])
        report = await detector.run_cycle(wallets, source)
    """

    def __init__(
        self,
        min_whales: int,
        window_sec: float,
        min_purchase_usd: float = 0.0,
        scorer: ConsensusScorer | None = None,
        enricher: Enricher | None = None,
        sinks: Iterable[AlertSink] = (),
        price_provider: Callable[[], float] | None = None,
        enrichment_timeout: float = 5.0,
        fetch_timeout: float = 8.0,
        batch_size: int = 5,
        batch_delay: float = 0.0,
    ) -> None:
        if min_whales < 1:
            raise ValueError("min_whales must be >= 1")
        if window_sec <= 0:
            raise ValueError("window_sec must be > 0")
        self.min_whales = min_whales
        self.window_sec = window_sec
        self.min_purchase_usd = min_purchase_usd
        self.scorer = scorer or ConsensusScorer()
        self.enricher = enricher
        self.sinks: list[AlertSink] = list(sinks)
        self.price_provider = price_provider
        self.enrichment_timeout = enrichment_timeout
        self.fetch_timeout = fetch_timeout
        self.batch_size = max(1, batch_size)
        self.batch_delay = batch_delay
        self.logger = logging.getLogger("whale_consensus.detector")

        self.windows: dict[str, ConsensusWindow] = {}
        self.fired_signals: set[ConsensusSignal] = set()
        self.last_checked: dict[str, float] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        enricher: Enricher | None = None,
        sinks: Iterable[AlertSink] = (),
        price_provider: Callable[[], float] | None = None,
    ) -> "ConsensusDetector":
        return cls(
            min_whales=settings.MIN_WHALES_FOR_CONSENSUS,
            window_sec=settings.window_sec,
            min_purchase_usd=settings.MIN_PURCHASE_USD,
            enricher=enricher,
            sinks=sinks,
            price_provider=price_provider,
            enrichment_timeout=settings.ENRICHMENT_TIMEOUT_SEC,
            fetch_timeout=settings.FETCH_TIMEOUT_SEC,
            batch_size=settings.WALLET_BATCH_SIZE,
            batch_delay=settings.BATCH_DELAY_SEC,
        )

    # ------------------------------------------------------------------
    # Ingest
    # ------------------------------------------------------------------

    def ingest(self, events: Iterable[PurchaseEvent], now: float | None = None) -> list[PurchaseEvent]:
        """
        Insert purchases into their token windows.

        Malformed events, events already older than the window and events
        under the USD floor are dropped. USD amounts are recomputed from the
        current price quote when a price provider is set. Returns the
        accepted (re-priced) events.
        """
        now = utc_ts() if now is None else now
        price = self._current_price()
        accepted: list[PurchaseEvent] = []
        touched: set[str] = set()

        for event in events:
            if not event.is_well_formed:
                self.logger.debug("Dropping malformed purchase %s", event.signature[:16])
                continue
            if now - event.timestamp > self.window_sec:
                self.logger.debug("Dropping purchase outside the window %s", event.signature[:16])
                continue
            if price is not None and event.amount_base > 0:
                event = event.with_price(price)
            if event.amount_usd < self.min_purchase_usd:
                self.logger.debug(
                    "Purchase below floor: $%.2f < $%.2f (%s)",
                    event.amount_usd, self.min_purchase_usd, event.signature[:16],
                )
                continue

            window = self.windows.get(event.token_mint)
            if window is None:
                window = ConsensusWindow(event.token_mint, self.window_sec)
                self.windows[event.token_mint] = window
            window.add(event)
            touched.add(event.token_mint)
            accepted.append(event)

        for mint in touched:
            self.windows[mint].purge_expired(now)
        self._drop_empty_windows()
        return accepted

    def _current_price(self) -> float | None:
        if self.price_provider is None:
            return None
        try:
            price = self.price_provider()
        except Exception as exc:
            self.logger.warning("Price provider failed, keeping source USD amounts: %s", exc)
            return None
        return price if price and price > 0 else None

    def _drop_empty_windows(self) -> None:
        for mint in [m for m, w in self.windows.items() if w.is_empty()]:
            del self.windows[mint]

    # ------------------------------------------------------------------
    # Evaluate
    # ------------------------------------------------------------------

    async def evaluate(self, now: float | None = None) -> list[ConsensusAlert]:
        """Emit alerts for every newly qualifying (token, whale count) signal."""
        now = utc_ts() if now is None else now
        for window in self.windows.values():
            window.purge_expired(now)
        self._drop_empty_windows()

        candidates: list[tuple[str, list[PurchaseEvent], ConsensusAggregate]] = []
        for mint, window in self.windows.items():
            if window.unique_whale_count() < self.min_whales:
                continue
            whales = window.unique_whales()
            candidates.append((mint, whales, ConsensusAggregate.from_whales(whales)))

        # Strongest first so sinks see them first
        candidates.sort(key=lambda c: c[2].provisional_strength, reverse=True)

        fresh: list[tuple[str, list[PurchaseEvent], ConsensusAggregate]] = []
        for mint, whales, aggregate in candidates:
            signal = ConsensusSignal(mint, len(whales))
            if signal in self.fired_signals:
                self.logger.debug("Consensus %s already alerted", signal.key)
                continue
            self.fired_signals.add(signal)
            fresh.append((mint, whales, aggregate))

        if candidates:
            self.logger.info(
                "WHALE CONSENSUS: %d qualifying tokens, %d new signals",
                len(candidates), len(fresh),
            )
        else:
            self.logger.debug("No whale consensus detected in current cycle")

        enrichments = await self._enrich_many(
            [(mint, whales[0].token_symbol) for mint, whales, _ in fresh]
        )

        alerts: list[ConsensusAlert] = []
        for mint, whales, aggregate in fresh:
            alert = self._build_alert(mint, whales, aggregate, enrichments[mint])
            alerts.append(alert)
            await self._emit(alert)
        return alerts

    def _build_alert(
        self,
        mint: str,
        whales: list[PurchaseEvent],
        aggregate: ConsensusAggregate,
        enrichment: Enrichment,
    ) -> ConsensusAlert:
        aggregate = ConsensusAggregate.from_whales(
            whales, market_data=enrichment.market_data, social_data=enrichment.social_data
        )
        risk, signal = self.scorer.score(aggregate)
        community, overall, warnings = self.scorer.supplemental(aggregate)

        first = whales[0]
        token = enrichment.token
        symbol = (token.symbol if token else None) or first.token_symbol or "UNKNOWN"
        name = (token.name if token else None) or first.token_name or "Unknown Token"

        return ConsensusAlert(
            token_mint=mint,
            token_symbol=symbol,
            token_name=name,
            whales=tuple(whales),
            total_whales=aggregate.total_whales,
            total_amount_usd=aggregate.total_amount_usd,
            total_amount_base=aggregate.total_amount_base,
            first_purchase_time=aggregate.first_purchase_time,
            last_purchase_time=aggregate.last_purchase_time,
            consensus_strength=aggregate.provisional_strength,
            risk_assessment=risk,
            trading_signal=signal,
            market_data=enrichment.market_data,
            social_data=enrichment.social_data,
            community_strength=community,
            overall_risk_score=overall,
            warnings=tuple(warnings),
        )

    # ------------------------------------------------------------------
    # Enrichment & sinks
    # ------------------------------------------------------------------

    async def _enrich(self, mint: str, symbol_hint: str | None = None) -> Enrichment:
        if self.enricher is None:
            return Enrichment()
        token, market, social = await asyncio.gather(
            self._bounded(self.enricher.get_token_metadata(mint), "token metadata", mint),
            self._bounded(self.enricher.get_market_data(mint), "market data", mint),
            self._bounded(self.enricher.get_social_data(mint, symbol_hint), "social data", mint),
        )
        return Enrichment(token=token, market_data=market, social_data=social)

    async def _bounded(self, coro: Awaitable[T], what: str, mint: str) -> T | None:
        try:
            return await asyncio.wait_for(coro, timeout=self.enrichment_timeout)
        except asyncio.TimeoutError:
            self.logger.warning("%s lookup timed out for %s", what, mint[:8])
        except Exception as exc:
            self.logger.warning("%s lookup failed for %s: %s", what, mint[:8], exc)
        return None

    async def _emit(self, alert: ConsensusAlert) -> None:
        self.logger.info(
            "CONSENSUS ALERT %s: %d whales, $%.2f, %s (%d%%)",
            alert.token_symbol, alert.total_whales, alert.total_amount_usd,
            alert.trading_signal.type.value, alert.trading_signal.confidence,
            extra={"alert_event": True, "extra_data": alert.to_dict()},
        )
        for sink in self.sinks:
            try:
                await sink.on_consensus_alert(alert)
            except Exception as exc:
                self.logger.error("Alert sink %s failed: %s", type(sink).__name__, exc)

    async def _enrich_many(self, tokens: Sequence[tuple[str, str | None]]) -> dict[str, Enrichment]:
        """Enrich each mint once, at most ``batch_size`` tokens at a time."""
        results: dict[str, Enrichment] = {}
        for batch in chunked(tokens, self.batch_size):
            enrichments = await asyncio.gather(*(self._enrich(mint, symbol) for mint, symbol in batch))
            results.update(zip((mint for mint, _ in batch), enrichments))
        return results

    async def _notify_individual(self, events: Sequence[PurchaseEvent]) -> None:
        listeners = [s for s in self.sinks if getattr(s, "wants_purchases", True)]
        if not listeners or not events:
            return
        symbols: dict[str, str | None] = {}
        for event in events:
            symbols.setdefault(event.token_mint, event.token_symbol)
        enrichments = await self._enrich_many(list(symbols.items()))
        for event in events:
            for sink in listeners:
                try:
                    await sink.on_individual_purchase(event, enrichments[event.token_mint])
                except Exception as exc:
                    self.logger.error("Purchase sink %s failed: %s", type(sink).__name__, exc)

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    async def run_cycle(
        self,
        wallets: Sequence[TrackedWallet],
        source: PurchaseSource,
        now: float | None = None,
    ) -> CycleReport:
        """
        One full polling cycle. A failing wallet never aborts the others.

        ``now`` pins the evaluation clock (tests, replays); by default the
        wall clock is read when each phase runs.
        """
        started = utc_ts() if now is None else now
        report = CycleReport(started_at=started)
        active = [w for w in wallets if w.enabled and w.address]
        batches = chunked(active, self.batch_size)

        self.logger.info("WHALE scan: %d wallets in %d batches", len(active), len(batches))

        fetched: list[tuple[TrackedWallet, Sequence[PurchaseEvent]]] = []
        for index, batch in enumerate(batches):
            results = await asyncio.gather(
                *(self._fetch_wallet(wallet, source, started) for wallet in batch)
            )
            for wallet, events in zip(batch, results):
                if events is None:
                    report.wallets_failed += 1
                    continue
                report.wallets_checked += 1
                fetched.append((wallet, events))
            if self.batch_delay > 0 and index < len(batches) - 1:
                await asyncio.sleep(self.batch_delay)

        # Single mutation phase
        ingest_now = now if now is not None else utc_ts()
        accepted: list[PurchaseEvent] = []
        for wallet, events in fetched:
            report.purchases_found += len(events)
            if events:
                newest = max(e.timestamp for e in events)
                self.last_checked[wallet.address] = max(
                    self.last_checked.get(wallet.address, 0.0), newest
                )
                self.logger.info("WHALE %s: %d purchases", wallet.label, len(events))
            accepted.extend(self.ingest(events, ingest_now))
        report.purchases_accepted = len(accepted)

        report.alerts = await self.evaluate(now)
        await self._notify_individual(accepted)
        report.duration_sec = max(0.0, utc_ts() - started) if now is None else 0.0
        self.logger.info(
            "Consensus cycle done: %d ok, %d failed, %d purchases, %d alerts",
            report.wallets_checked, report.wallets_failed,
            report.purchases_accepted, len(report.alerts),
        )
        return report

    async def _fetch_wallet(
        self, wallet: TrackedWallet, source: PurchaseSource, now: float
    ) -> Sequence[PurchaseEvent] | None:
        since = self.last_checked.get(wallet.address)
        if since is None:
            since = now - self.window_sec
            self.last_checked[wallet.address] = since
        try:
            events = await asyncio.wait_for(
                source.fetch_new_purchases(wallet.address, since, wallet.name),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError:
            self.logger.warning("Wallet %s timed out after %.1fs", wallet.label, self.fetch_timeout)
            return None
        except Exception as exc:
            self.logger.warning("Failed to check wallet %s: %s", wallet.label, exc)
            return None
        return list(events or [])

    def status(self) -> dict:
        return {
            "tracked_tokens": len(self.windows),
            "fired_signals": len(self.fired_signals),
            "tracked_wallets": len(self.last_checked),
            "min_whales_for_consensus": self.min_whales,
            "window_sec": self.window_sec,
            "min_purchase_usd": self.min_purchase_usd,
        }
