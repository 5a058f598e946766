"""
Alert sinks

Anything that consumes ConsensusAlerts. Sinks never feed back into
detection state; the detector logs and swallows their errors.
"""
from __future__ import annotations

from typing import Protocol

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from whale_consensus.constants import LINK_DEXSCREENER, LINK_SOLSCAN_TX
from whale_consensus.core.consensus_scorer import format_time_span
from whale_consensus.core.models import (
    ConsensusAlert,
    Enrichment,
    PurchaseEvent,
    RiskLevel,
    SignalType,
)
from whale_consensus.utils.time import format_ts


class AlertSink(Protocol):
    """
    Consumer of detector output. A sink may expose ``wants_purchases``;
    when it is False the detector skips individual purchases for it.
    """

    async def on_consensus_alert(self, alert: ConsensusAlert) -> None: ...

    async def on_individual_purchase(self, event: PurchaseEvent, enrichment: Enrichment) -> None: ...


SIGNAL_STYLE = {
    SignalType.STRONG_BUY: "bold green",
    SignalType.BUY: "green",
    SignalType.WEAK_BUY: "yellow",
    SignalType.HOLD: "dim",
}

# Strength polarity: high = strong consensus = good
STRENGTH_STYLE = {
    RiskLevel.VERY_HIGH: "bold green",
    RiskLevel.HIGH: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.LOW: "red",
}


def build_whale_table(alert: ConsensusAlert) -> Table:
    table = Table(box=box.ROUNDED, expand=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Whale", style="cyan", no_wrap=True)
    table.add_column("SOL", justify="right")
    table.add_column("USD", justify="right")
    table.add_column("Time (UTC)", justify="right")
    table.add_column("TX", style="dim", no_wrap=True)
    for index, whale in enumerate(alert.whales, start=1):
        table.add_row(
            str(index),
            escape(whale.display_name),
            f"{whale.amount_base:.3f}",
            f"${whale.amount_usd:,.0f}",
            format_ts(whale.timestamp, "%H:%M:%S"),
            whale.signature[:12] + "...",
        )
    return table


def build_alert_panel(alert: ConsensusAlert) -> Panel:
    signal = alert.trading_signal
    risk = alert.risk_assessment
    lines = [
        f"[bold]{escape(alert.token_name)}[/bold] ({escape(alert.token_symbol)})  [dim]{alert.token_mint}[/dim]",
        f"Total: {alert.total_amount_base:.2f} SOL (~${alert.total_amount_usd:,.0f}) | "
        f"Avg: ${alert.avg_per_whale_usd:,.0f} | "
        f"Span: {format_time_span(alert.last_purchase_time - alert.first_purchase_time)}",
        f"Signal: [{SIGNAL_STYLE[signal.type]}]{signal.type.value} ({signal.confidence}%)"
        f"[/{SIGNAL_STYLE[signal.type]}] | "
        f"Strength: [{STRENGTH_STYLE[risk.level]}]{risk.level.value} ({risk.score}/100)"
        f"[/{STRENGTH_STYLE[risk.level]}]",
        f"{signal.recommendation}",
    ]
    md = alert.market_data
    if md:
        lines.append(
            f"Market ({md.source}): MC {md.market_cap or 'N/A'} | "
            f"Liq {md.liquidity or 'N/A'} | Vol24h {md.volume_24h or 'N/A'}"
        )
    social = alert.social_data
    if social:
        lines.append(
            f"Social: {social.social_rating}/5 | {social.risk_level.value} risk | {escape(social.summary)}"
        )
    if alert.overall_risk_score is not None:
        lines.append(f"Safety score: {alert.overall_risk_score}/100")
    for warning in alert.warnings:
        lines.append(f"[bold red]! {escape(warning)}[/bold red]")
    lines.append(f"[dim]{LINK_DEXSCREENER.format(mint=alert.token_mint)}[/dim]")

    table = build_whale_table(alert)
    body = Table.grid()
    body.add_row("\n".join(lines))
    body.add_row(table)
    return Panel(
        body,
        title=f"WHALE CONSENSUS: {alert.total_whales} whales buying {escape(alert.token_symbol)}",
        border_style="green",
    )


class ConsoleAlertSink:
    """Renders alerts to the terminal with rich."""

    def __init__(self, console: Console | None = None, show_purchases: bool = True) -> None:
        self.console = console or Console()
        self.show_purchases = show_purchases

    @property
    def wants_purchases(self) -> bool:
        return self.show_purchases

    async def on_consensus_alert(self, alert: ConsensusAlert) -> None:
        self.console.print(build_alert_panel(alert))

    async def on_individual_purchase(self, event: PurchaseEvent, enrichment: Enrichment) -> None:
        if not self.show_purchases:
            return
        token = enrichment.token
        symbol = (token.symbol if token else None) or event.token_symbol or event.token_mint[:8]
        mc = enrichment.market_data.market_cap if enrichment.market_data else None
        self.console.print(
            f"[cyan]WHALE BUY[/cyan] {escape(event.display_name)} bought [bold]{escape(symbol)}[/bold] "
            f"for {event.amount_base:.3f} SOL (${event.amount_usd:,.0f})"
            + (f" | MC ${mc:,.0f}" if mc else "")
            + f" [dim]{LINK_SOLSCAN_TX.format(signature=event.signature)}[/dim]"
        )
