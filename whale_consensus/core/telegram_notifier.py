from __future__ import annotations

import logging
from html import escape
from typing import Any, Callable, Optional

import httpx

from whale_consensus.config import Settings
from whale_consensus.constants import (
    LINK_DEXSCREENER,
    LINK_PUMPFUN,
    LINK_SOLSCAN_TOKEN,
    LINK_SOLSCAN_TX,
)
from whale_consensus.core.consensus_scorer import format_time_span
from whale_consensus.core.models import (
    ConsensusAlert,
    Enrichment,
    MarketData,
    PurchaseEvent,
    RiskLevel,
    SocialData,
    TrackedWallet,
)
from whale_consensus.utils.retry import async_retry

MAX_MESSAGE_CHARS = 4000

RISK_EMOJI = {
    RiskLevel.LOW: "🟢",
    RiskLevel.MEDIUM: "🟡",
    RiskLevel.HIGH: "🟠",
    RiskLevel.VERY_HIGH: "🔴",
}

WalletLookup = Callable[[str], Optional[TrackedWallet]]


class TelegramNotifier:
    """Alert sink posting HTML messages through the Telegram Bot API."""

    def __init__(
        self,
        settings: Settings,
        client: httpx.AsyncClient | None = None,
        wallet_lookup: WalletLookup | None = None,
    ) -> None:
        self.settings = settings
        self.token = settings.TELEGRAM_BOT_TOKEN
        self.chat_id = settings.TELEGRAM_CHAT_ID
        self.enabled = settings.TELEGRAM_ENABLED and bool(self.token and self.chat_id)
        self.individual_alerts = settings.TELEGRAM_INDIVIDUAL_ALERTS
        self.client = client or httpx.AsyncClient(timeout=settings.API_TIMEOUT_SEC)
        self.wallet_lookup = wallet_lookup or (lambda address: None)
        self.logger = logging.getLogger("whale_consensus.telegram")

    @property
    def wants_purchases(self) -> bool:
        return self.enabled and self.individual_alerts

    async def close(self) -> None:
        await self.client.aclose()

    async def check_connection(self) -> bool:
        if not self.enabled:
            return False
        data = await self._post("getMe", {})
        if isinstance(data, dict) and data.get("ok"):
            username = (data.get("result") or {}).get("username")
            self.logger.info("Telegram connected: @%s", username)
            return True
        self.logger.error("Telegram connection failed - continuing without alerts")
        return False

    async def send_message(self, text: str) -> bool:
        if not self.enabled:
            return False
        payload: dict[str, Any] = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        data = await self._post("sendMessage", payload)
        return bool(isinstance(data, dict) and data.get("ok"))

    async def on_consensus_alert(self, alert: ConsensusAlert) -> None:
        if not self.enabled:
            return
        for part in build_consensus_messages(alert, self.wallet_lookup):
            await self.send_message(part)

    async def on_individual_purchase(self, event: PurchaseEvent, enrichment: Enrichment) -> None:
        if not self.enabled or not self.individual_alerts:
            return
        wallet = self.wallet_lookup(event.wallet_address)
        await self.send_message(build_purchase_message(event, enrichment, wallet))

    @async_retry(max_attempts=3, delay=1.0, exceptions=(httpx.TransportError,))
    async def _call_api(self, method: str, payload: dict[str, Any]) -> Any:
        url = f"https://api.telegram.org/bot{self.token}/{method}"
        response = await self.client.post(url, json=payload)
        response.raise_for_status()
        return response.json()

    async def _post(self, method: str, payload: dict[str, Any]) -> Any:
        if not self.enabled:
            return {}
        try:
            return await self._call_api(method, payload)
        except (httpx.HTTPError, ValueError) as exc:
            self.logger.warning("Telegram %s failed: %s", method, exc)
            return {}


def build_purchase_message(
    event: PurchaseEvent,
    enrichment: Enrichment,
    wallet: TrackedWallet | None = None,
) -> str:
    token = enrichment.token
    symbol = escape((token.symbol if token else None) or event.token_symbol or "Token")
    win_rate = escape((wallet.win_rate if wallet else None) or "N/A")
    label = escape(event.wallet_name or f"#{event.wallet_address[:3]}")

    parts = []
    md = enrichment.market_data
    if md and md.market_cap:
        parts.append(f"{_mc_emoji(md.market_cap)} MC: ${format_number(md.market_cap)}")
    social = enrichment.social_data
    if social:
        parts.append(f"{RISK_EMOJI[social.risk_level]} Social: {social.social_rating}/5")

    lines = [
        "🚨 <b>WHALE BUY</b> 🚨",
        f"🐋 {label} | 🏆 {win_rate}",
        f"🪙 {symbol}: ${event.amount_usd:.0f} ({event.amount_base:.2f} SOL)",
    ]
    if parts:
        lines.append("📊 " + " | ".join(parts))
    lines.append(
        f'🔗 <a href="{LINK_DEXSCREENER.format(mint=event.token_mint)}">Chart</a>'
        f' | <a href="{LINK_SOLSCAN_TX.format(signature=event.signature)}">TX</a>'
    )
    return "\n".join(lines)


def build_consensus_messages(
    alert: ConsensusAlert,
    wallet_lookup: WalletLookup | None = None,
) -> list[str]:
    """One message, or summary + whale list when over the Telegram limit."""
    lookup = wallet_lookup or (lambda address: None)
    header = _consensus_header(alert, lookup)
    whales = _whale_lines(alert, lookup)
    links = (
        f'🔗 <a href="{LINK_DEXSCREENER.format(mint=alert.token_mint)}">Chart</a>'
        f' | <a href="{LINK_PUMPFUN.format(mint=alert.token_mint)}">Pump</a>'
        f' | <a href="{LINK_SOLSCAN_TOKEN.format(mint=alert.token_mint)}">Token</a>'
    )
    full = "\n".join([header, "", "🐋 <b>Whales:</b>", *whales, "", links])
    if len(full) <= MAX_MESSAGE_CHARS:
        return [full]

    summary = "\n".join([header, "", links])
    detail_lines = [f"🐋 <b>Whales for {escape(alert.token_symbol)}:</b>"]
    chunks = []
    for line in whales:
        if len("\n".join(detail_lines + [line])) > MAX_MESSAGE_CHARS:
            chunks.append("\n".join(detail_lines))
            detail_lines = []
        detail_lines.append(line)
    chunks.append("\n".join(detail_lines))
    return [summary, *chunks]


def _consensus_header(alert: ConsensusAlert, lookup: WalletLookup) -> str:
    risk = alert.risk_assessment
    signal = alert.trading_signal
    lines = [
        "🐋 <b>WHALE CONSENSUS ALERT!</b> 🚨",
        f"<b>{alert.total_whales} WHALES BUYING SAME TOKEN</b>",
        "",
        f"🪙 <b>Token:</b> {escape(alert.token_name)} ({escape(alert.token_symbol)})",
        f"<code>{escape(alert.token_mint)}</code>",
        f"💰 <b>Total:</b> {alert.total_amount_base:.2f} SOL (~${alert.total_amount_usd:.0f})"
        f" | <b>Avg:</b> ${alert.avg_per_whale_usd:.0f}",
        f"⏱ <b>Time span:</b> {format_time_span(alert.last_purchase_time - alert.first_purchase_time)}",
        "",
        f"📶 <b>Signal:</b> {signal.type.value} ({signal.confidence}%) | "
        f"<b>Strength:</b> {risk.level.value} ({risk.score}/100)",
        f"💡 {escape(signal.recommendation)}",
        "",
        "📊 <b>MARKET:</b>",
        market_line(alert.market_data) or "No market data",
        "",
        social_line(alert.social_data),
    ]
    if alert.overall_risk_score is not None:
        lines.append(f"🛡 <b>Safety score:</b> {alert.overall_risk_score}/100")

    quality = _win_rate_quality(alert, lookup)
    if quality:
        lines.extend(["", quality])

    lines.append("")
    if alert.warnings:
        lines.append("⚠️ <b>Risks:</b> " + ", ".join(escape(w) for w in alert.warnings))
    else:
        lines.append("✅ <b>Risk Check:</b> No major flags")
    return "\n".join(lines)


def _whale_lines(alert: ConsensusAlert, lookup: WalletLookup) -> list[str]:
    lines = []
    for index, whale in enumerate(alert.whales, start=1):
        wallet = lookup(whale.wallet_address)
        win_rate = escape((wallet.win_rate if wallet else None) or "N/A")
        label = escape(whale.wallet_name or f"#{whale.wallet_address[:3]}")
        lines.append(f"{index}. 🐋 <b>{label}</b> - ${whale.amount_usd:.0f} | 🏆 {win_rate}")
    return lines


def _win_rate_quality(alert: ConsensusAlert, lookup: WalletLookup) -> str:
    rates = []
    for whale in alert.whales:
        wallet = lookup(whale.wallet_address)
        raw = (wallet.win_rate if wallet else None) or ""
        if raw.endswith("%"):
            try:
                rates.append(float(raw.rstrip("%")))
            except ValueError:
                continue
    if not rates:
        return ""
    avg = sum(rates) / len(rates)
    emoji = "🏆" if avg >= 75 else "🥇" if avg >= 65 else "🥈" if avg >= 50 else "🥉"
    return (
        f"🏆 <b>Quality:</b> {emoji} {avg:.1f}% avg "
        f"({len(rates)}/{alert.total_whales} whales)"
    )


def market_line(md: MarketData | None) -> str:
    if not md:
        return ""
    parts = []
    if md.price:
        parts.append(f"💰 ${md.price:.8f}")
    if md.market_cap:
        parts.append(f"📊 MC: ${format_number(md.market_cap)} ({market_cap_risk(md.market_cap)} Risk)")
    if md.liquidity:
        parts.append(f"💧 Liq: ${format_number(md.liquidity)}")
    return " | ".join(parts)


def social_line(social: SocialData | None) -> str:
    if not social:
        return "📱 Social: N/A"
    stars = "⭐" * int(social.social_rating)
    followers = social.overall.total_followers
    return (
        f"📱 Rating: {social.social_rating}/5 {stars} | "
        f"Community: {format_number(followers) if followers else '0'} | "
        f"Social Risk: {RISK_EMOJI[social.risk_level]} {social.risk_level.value}"
    )


def market_cap_risk(market_cap: float) -> str:
    if market_cap >= 1_000_000:
        return "VERY LOW"
    if market_cap >= 100_000:
        return "LOW"
    if market_cap >= 10_000:
        return "MEDIUM"
    if market_cap >= 1_000:
        return "HIGH"
    return "VERY HIGH"


def _mc_emoji(market_cap: float) -> str:
    risk = market_cap_risk(market_cap)
    return {"VERY LOW": "🟢", "LOW": "🟡", "MEDIUM": "🟠"}.get(risk, "🔴")


def format_number(value: float) -> str:
    if value >= 1_000_000_000:
        return f"{value / 1_000_000_000:.2f}B"
    if value >= 1_000_000:
        return f"{value / 1_000_000:.2f}M"
    if value >= 1_000:
        return f"{value / 1_000:.2f}K"
    return f"{value:.2f}"
