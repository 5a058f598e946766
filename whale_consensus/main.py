"""
Whale Consensus Monitor - command line entry point

    whale-consensus run                   # default
    whale-consensus status
    whale-consensus add-wallet ADDRESS --name "Whale A" --description "..."
    whale-consensus remove-wallet ADDRESS
    whale-consensus test-wallet ADDRESS
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import platform
import signal
import sys
from typing import Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from whale_consensus.config import Settings, get_settings
from whale_consensus.config.wallets import WalletConfigManager, is_valid_address
from whale_consensus.core.monitor import WhaleConsensusMonitor
from whale_consensus.exceptions import ConfigurationException
from whale_consensus.utils.logging import setup_logging

logger = logging.getLogger("whale_consensus.main")
console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="whale-consensus",
        description="Alert when several tracked whale wallets buy the same token.",
    )
    parser.add_argument("--wallets-file", help="Wallets file (JSON or YAML), overrides WALLETS_FILE")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("run", help="Start the monitor (default)")
    sub.add_parser("status", help="Show configuration and tracked wallets")

    add = sub.add_parser("add-wallet", help="Track a new wallet")
    add.add_argument("address")
    add.add_argument("--name")
    add.add_argument("--description", default="")
    add.add_argument("--win-rate", help='Display only, e.g. "72%%"')

    remove = sub.add_parser("remove-wallet", help="Stop tracking a wallet")
    remove.add_argument("address")

    test = sub.add_parser("test-wallet", help="Run one wallet through a single cycle")
    test.add_argument("address")
    return parser


def load_config(args: argparse.Namespace) -> tuple[Settings, WalletConfigManager]:
    settings = get_settings()
    wallets = WalletConfigManager(args.wallets_file or settings.WALLETS_FILE)
    return wallets.apply_to(settings).validate(), wallets


# ============================================
# COMMANDS
# ============================================

async def run_monitor(settings: Settings, wallets: WalletConfigManager) -> None:
    if not wallets.enabled_wallets():
        logger.warning("No enabled wallets in %s - add one with 'add-wallet'", wallets.config_path)

    monitor = WhaleConsensusMonitor.from_settings(settings, wallets)
    loop = asyncio.get_running_loop()

    def handle_shutdown(sig: int) -> None:
        print(f"\n🛑 [SHUTDOWN] Received signal {sig}...")
        monitor.stop()

    if platform.system() != "Windows":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, handle_shutdown, sig)
    else:
        signal.signal(signal.SIGINT, lambda s, f: loop.call_soon_threadsafe(handle_shutdown, s))

    await monitor.start()


async def test_wallet(settings: Settings, wallets: WalletConfigManager, address: str) -> int:
    if not is_valid_address(address):
        raise ConfigurationException("Invalid Solana address", address=address)
    monitor = WhaleConsensusMonitor.from_settings(settings, wallets)
    try:
        if monitor.price_service is not None:
            await monitor.price_service.refresh()
        report = await monitor.test_wallet(address)
    finally:
        await monitor.close()

    table = Table(title=f"Test {address[:8]}...", show_header=False)
    table.add_row("Fetched OK", "yes" if report.wallets_checked else "no")
    table.add_row("Purchases found", str(report.purchases_found))
    table.add_row("Purchases accepted", str(report.purchases_accepted))
    table.add_row("Consensus alerts", str(len(report.alerts)))
    console.print(table)
    return 0 if report.wallets_checked else 1


def show_status(settings: Settings, wallets: WalletConfigManager) -> int:
    params = Table(title="Consensus settings", show_header=False)
    params.add_row("Min whales", str(settings.MIN_WHALES_FOR_CONSENSUS))
    params.add_row("Window", f"{settings.CONSENSUS_WINDOW_MINUTES:g} min")
    params.add_row("Min purchase", f"${settings.MIN_PURCHASE_USD:,.0f}")
    params.add_row("Check interval", f"{settings.CHECK_INTERVAL_SECONDS}s")
    params.add_row("RPC endpoints", str(len(settings.RPC_URLS)))
    params.add_row("Telegram", "on" if settings.TELEGRAM_ENABLED and settings.TELEGRAM_BOT_TOKEN else "off")
    params.add_row("Social analysis", "on" if settings.SOCIAL_ANALYSIS_ENABLED else "off")
    console.print(params)

    table = Table(title=f"Wallets ({wallets.config_path})")
    table.add_column("Name", style="cyan")
    table.add_column("Address")
    table.add_column("Win rate", justify="right")
    table.add_column("Enabled", justify="center")
    for wallet in wallets.wallets:
        table.add_row(
            escape(wallet.name or "-"),
            wallet.address,
            escape(wallet.win_rate or "N/A"),
            "[green]yes[/green]" if wallet.enabled else "[red]no[/red]",
        )
    console.print(table)
    return 0


def dispatch(args: argparse.Namespace) -> int:
    settings, wallets = load_config(args)
    setup_logging(settings)
    command = args.command or "run"

    if command == "run":
        asyncio.run(run_monitor(settings, wallets))
        return 0
    if command == "status":
        return show_status(settings, wallets)
    if command == "add-wallet":
        added = wallets.add_wallet(args.address, args.name, args.description, args.win_rate)
        console.print("Wallet added" if added else "[yellow]Wallet already tracked[/yellow]")
        return 0 if added else 1
    if command == "remove-wallet":
        removed = wallets.remove_wallet(args.address)
        console.print("Wallet removed" if removed else "[yellow]Wallet not found[/yellow]")
        return 0 if removed else 1
    if command == "test-wallet":
        return asyncio.run(test_wallet(settings, wallets, args.address))
    raise ConfigurationException("Unknown command", command=command)


def main(argv: Optional[Sequence[str]] = None) -> int:
    # Windows UTF-8 fix
    if platform.system() == "Windows":
        sys.stdout.reconfigure(encoding="utf-8")
        sys.stderr.reconfigure(encoding="utf-8")

    args = build_parser().parse_args(argv)
    try:
        return dispatch(args)
    except ConfigurationException as e:
        console.print(f"[bold red]Configuration error:[/bold red] {escape(str(e))}")
        return 2
    except KeyboardInterrupt:
        print("👋 Monitor stopped by user.")
        return 0


if __name__ == "__main__":
    sys.exit(main())
