"""
Unit tests for WhaleConsensusMonitor and the CLI parser
"""
import asyncio

from conftest import WALLET_A, WALLET_B, FakeSource, RecordingSink, make_purchase
from whale_consensus.config import Settings
from whale_consensus.config.wallets import WalletConfigManager
from whale_consensus.core.consensus_detector import ConsensusDetector
from whale_consensus.core.monitor import WhaleConsensusMonitor
from whale_consensus.main import build_parser


def build_monitor(tmp_path, source, sink=None, **settings_overrides):
    settings = Settings(INITIAL_DELAY_SEC=0, CHECK_INTERVAL_SECONDS=10, **settings_overrides)
    wallets = WalletConfigManager(tmp_path / "wallets.json")
    wallets.add_wallet(WALLET_A, name="Whale A")
    wallets.add_wallet(WALLET_B, name="Whale B")
    detector = ConsensusDetector(
        min_whales=2, window_sec=900, sinks=[sink] if sink else []
    )
    return WhaleConsensusMonitor(settings, wallets, detector, source)


def both_whales_buy(ts=100):
    return FakeSource(
        events={
            WALLET_A: [make_purchase(wallet=WALLET_A, mint="X", ts=ts)],
            WALLET_B: [make_purchase(wallet=WALLET_B, mint="X", ts=ts + 30)],
        }
    )


class TestRunOnce:
    def test_cycle_emits_alert(self, tmp_path):
        sink = RecordingSink()
        monitor = build_monitor(tmp_path, both_whales_buy(), sink)
        report = asyncio.run(monitor.run_once(now=200))
        assert len(report.alerts) == 1
        assert sink.alerts[0].token_mint == "X"
        assert monitor.cycles_run == 1
        assert monitor.status()["last_cycle"]["alerts"] == 1

    def test_disabled_wallet_not_polled(self, tmp_path):
        source = both_whales_buy()
        monitor = build_monitor(tmp_path, source)
        monitor.wallets.set_enabled(WALLET_B, False)
        asyncio.run(monitor.run_once(now=200))
        assert [call[0] for call in source.calls] == [WALLET_A]


class TestTicks:
    def test_tick_skipped_while_cycle_running(self, tmp_path):
        monitor = build_monitor(tmp_path, both_whales_buy())

        async def scenario():
            async with monitor._cycle_lock:
                await monitor._tick()

        asyncio.run(scenario())
        assert monitor.ticks_skipped == 1
        assert monitor.cycles_run == 0

    def test_crashing_cycle_does_not_escape_tick(self, tmp_path):
        monitor = build_monitor(tmp_path, both_whales_buy())

        async def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monitor.detector.run_cycle = explode
        asyncio.run(monitor._tick())
        assert monitor.cycles_run == 0


class TestLifecycle:
    def test_start_and_stop(self, tmp_path):
        sink = RecordingSink()
        monitor = build_monitor(tmp_path, both_whales_buy(ts=0), sink)

        async def scenario():
            task = asyncio.create_task(monitor.start())
            for _ in range(50):
                await asyncio.sleep(0.01)
                if monitor.cycles_run:
                    break
            monitor.stop()
            await asyncio.wait_for(task, timeout=2)

        asyncio.run(scenario())
        assert monitor.cycles_run == 1
        assert not monitor.is_running

    def test_test_wallet_runs_untracked_address(self, tmp_path):
        source = FakeSource()
        monitor = build_monitor(tmp_path, source)
        report = asyncio.run(monitor.test_wallet("SomeOtherWallet111"))
        assert report.wallets_checked == 1
        assert source.calls[0][0] == "SomeOtherWallet111"

    def test_test_wallet_runs_disabled_wallet(self, tmp_path):
        source = FakeSource()
        monitor = build_monitor(tmp_path, source)
        monitor.wallets.set_enabled(WALLET_A, False)
        asyncio.run(monitor.test_wallet(WALLET_A))
        assert source.calls[0][0] == WALLET_A


class TestCli:
    def test_default_command_is_run(self):
        args = build_parser().parse_args([])
        assert args.command is None

    def test_add_wallet_arguments(self):
        args = build_parser().parse_args(["add-wallet", WALLET_A, "--name", "Whale A", "--win-rate", "70%"])
        assert args.command == "add-wallet"
        assert args.address == WALLET_A
        assert args.name == "Whale A"
        assert args.win_rate == "70%"
