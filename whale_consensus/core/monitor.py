"""
Whale Consensus Monitor

Wires the collaborators together and drives the detector on a fixed
interval. Ticks never overlap: a tick that finds the previous cycle still
running is skipped.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Optional

from whale_consensus.config import Settings
from whale_consensus.config.wallets import WalletConfigManager
from whale_consensus.core.alert_sinks import AlertSink, ConsoleAlertSink
from whale_consensus.core.consensus_detector import ConsensusDetector, CycleReport, PurchaseSource
from whale_consensus.core.enrichment import TokenEnricher
from whale_consensus.core.models import TrackedWallet
from whale_consensus.core.price_feed import SolPriceService
from whale_consensus.core.purchase_source import RpcPurchaseSource
from whale_consensus.core.rpc_client import RPCClientWithFallback
from whale_consensus.core.telegram_notifier import TelegramNotifier
from whale_consensus.utils.time import format_ts, utc_ts

logger = logging.getLogger("whale_consensus.monitor")

# Expired cache keys are swept every N cycles
SWEEP_EVERY_CYCLES = 10


class WhaleConsensusMonitor:
    """
    Usage:
        monitor = WhaleConsensusMonitor.from_settings(settings, wallets)
        task = asyncio.create_task(monitor.start())
        ...
        monitor.stop()
        await task
    """

    def __init__(
        self,
        settings: Settings,
        wallets: WalletConfigManager,
        detector: ConsensusDetector,
        source: PurchaseSource,
        price_service: Optional[SolPriceService] = None,
        enricher: Optional[TokenEnricher] = None,
        telegram: Optional[TelegramNotifier] = None,
        rpc: Optional[RPCClientWithFallback] = None,
    ):
        self.settings = settings
        self.wallets = wallets
        self.detector = detector
        self.source = source
        self.price_service = price_service
        self.enricher = enricher
        self.telegram = telegram
        self.rpc = rpc

        self.is_running = False
        self.cycles_run = 0
        self.ticks_skipped = 0
        self.last_report: Optional[CycleReport] = None
        self._cycle_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        wallets: WalletConfigManager,
        extra_sinks: tuple[AlertSink, ...] = (),
    ) -> "WhaleConsensusMonitor":
        rpc = RPCClientWithFallback.from_settings(settings)
        price_service = SolPriceService(settings)
        source = RpcPurchaseSource.from_settings(settings, rpc, price_service.current_price)
        enricher = TokenEnricher.from_settings(settings)

        sinks: list[AlertSink] = [ConsoleAlertSink(), *extra_sinks]
        telegram = None
        if settings.TELEGRAM_ENABLED:
            telegram = TelegramNotifier(settings, wallet_lookup=wallets.get)
            sinks.append(telegram)

        detector = ConsensusDetector.from_settings(
            settings,
            enricher=enricher,
            sinks=sinks,
            price_provider=price_service.current_price,
        )
        return cls(
            settings,
            wallets,
            detector,
            source,
            price_service=price_service,
            enricher=enricher,
            telegram=telegram,
            rpc=rpc,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Run until stop() is called. Resources are closed on exit."""
        if self.is_running:
            logger.warning("Monitor already running")
            return
        self.is_running = True
        self._stop_event.clear()
        interval = self.settings.CHECK_INTERVAL_SECONDS

        logger.info(
            "WHALE monitor starting: %d wallets, >=%d whales in %.0f min, floor $%.0f, every %ss",
            len(self.wallets.enabled_wallets()),
            self.detector.min_whales,
            self.detector.window_sec / 60,
            self.detector.min_purchase_usd,
            interval,
        )

        try:
            if self.price_service is not None:
                await self.price_service.refresh()
                self._spawn(self.price_service.run(self._stop_event))
            if self.telegram is not None:
                await self.telegram.check_connection()

            if await self._wait_stopped(self.settings.INITIAL_DELAY_SEC):
                return
            while not self._stop_event.is_set():
                self._spawn(self._tick())
                if await self._wait_stopped(interval):
                    break
        finally:
            self.is_running = False
            await self._drain()
            await self.close()
            logger.info("Monitor stopped after %d cycles", self.cycles_run)

    def stop(self) -> None:
        if not self._stop_event.is_set():
            logger.info("Stopping monitor...")
        self._stop_event.set()

    async def _wait_stopped(self, timeout: float) -> bool:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=max(0.0, timeout))
        except asyncio.TimeoutError:
            return False
        return True

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _drain(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        closers: list[Callable[[], Awaitable[None]]] = []
        for resource in (self.rpc, self.price_service, self.enricher, self.telegram):
            if resource is not None:
                closers.append(resource.close)
        for close in closers:
            try:
                await close()
            except Exception as exc:
                logger.debug("Error while closing %s: %s", close, exc)

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def _tick(self) -> None:
        if self._cycle_lock.locked():
            self.ticks_skipped += 1
            logger.warning("Previous cycle still running, skipping tick")
            return
        try:
            await self.run_once()
        except Exception:
            logger.exception("Consensus cycle crashed")

    async def run_once(self, now: Optional[float] = None) -> CycleReport:
        """One cycle over every enabled wallet."""
        async with self._cycle_lock:
            report = await self.detector.run_cycle(self.wallets.enabled_wallets(), self.source, now)
            self.cycles_run += 1
            self.last_report = report
            if self.enricher is not None and self.cycles_run % SWEEP_EVERY_CYCLES == 0:
                removed = self.enricher.sweep()
                if removed:
                    logger.debug("Swept %d expired cache entries", removed)
            return report

    async def test_wallet(self, address: str) -> CycleReport:
        """Run a single wallet through fetch, ingest and evaluate."""
        wallet = self.wallets.get(address) or TrackedWallet(address=address, name="test")
        if not wallet.enabled:
            wallet = replace(wallet, enabled=True)
        async with self._cycle_lock:
            logger.info("WHALE test: checking %s", wallet.label)
            return await self.detector.run_cycle([wallet], self.source)

    def status(self) -> dict[str, Any]:
        status: dict[str, Any] = {
            "is_running": self.is_running,
            "cycles_run": self.cycles_run,
            "ticks_skipped": self.ticks_skipped,
            "check_interval_sec": self.settings.CHECK_INTERVAL_SECONDS,
            "wallets_total": len(self.wallets.wallets),
            "wallets_enabled": len(self.wallets.enabled_wallets()),
            **self.detector.status(),
        }
        if self.price_service is not None:
            status["sol_price_usd"] = self.price_service.current_price()
            status["sol_price_source"] = self.price_service.source
            status["sol_price_age"] = self.price_service.price_age()
        if self.last_report is not None:
            status["last_cycle"] = {
                "started_at": format_ts(self.last_report.started_at),
                "wallets_checked": self.last_report.wallets_checked,
                "wallets_failed": self.last_report.wallets_failed,
                "purchases_accepted": self.last_report.purchases_accepted,
                "alerts": len(self.last_report.alerts),
            }
        if self.rpc is not None:
            status["rpc"] = self.rpc.get_status()
        if self.enricher is not None:
            status["caches"] = self.enricher.cache_stats()
        status["generated_at"] = format_ts(utc_ts())
        return status
