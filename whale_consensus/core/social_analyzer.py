"""
Social Analyzer

Rates a token's social presence (1-5 stars) from the links its DexScreener
listing advertises:

1. Discover twitter / telegram handles from pair ``info.socials``
2. Check the twitter profile exists
3. Read the public t.me preview page for member counts
4. Compile rating, engagement and social risk level
"""
from __future__ import annotations

import math
import re
from typing import Any, Awaitable, Callable

import httpx

from whale_consensus.config import Settings
from whale_consensus.core.http_client import JsonApiClient
from whale_consensus.core.models import (
    Engagement,
    RiskLevel,
    SocialData,
    SocialOverview,
    TelegramProfile,
    TwitterProfile,
)

TWITTER_PATTERNS = (
    re.compile(r"twitter\.com/([A-Za-z0-9_]+)"),
    re.compile(r"x\.com/([A-Za-z0-9_]+)"),
    re.compile(r"@([A-Za-z0-9_]+)"),
)
TELEGRAM_PATTERNS = (
    re.compile(r"t\.me/([A-Za-z0-9_]+)"),
    re.compile(r"telegram\.me/([A-Za-z0-9_]+)"),
    re.compile(r"@([A-Za-z0-9_]+)"),
)
BARE_HANDLE = re.compile(r"^[A-Za-z0-9_]+$")
TELEGRAM_MEMBERS = re.compile(r"([\d][\d,\s]*)\s*(members|subscribers)", re.IGNORECASE)

# twitter.com/<reserved> paths are not profiles
RESERVED_TWITTER_PATHS = {"home", "intent", "search", "share", "i", "hashtag"}


def _extract(url: str | None, patterns: tuple[re.Pattern, ...]) -> str | None:
    if not url:
        return None
    for pattern in patterns:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return url if BARE_HANDLE.match(url) else None


def extract_twitter_handle(url: str | None) -> str | None:
    handle = _extract(url, TWITTER_PATTERNS)
    if handle and handle.lower() in RESERVED_TWITTER_PATHS:
        return None
    return handle


def extract_telegram_handle(url: str | None) -> str | None:
    return _extract(url, TELEGRAM_PATTERNS)


def discover_handles(pairs: list[dict[str, Any]]) -> tuple[str | None, str | None]:
    """First twitter and telegram handles advertised by any pair."""
    twitter = telegram = None
    for pair in pairs:
        info = pair.get("info") or {}
        socials = info.get("socials") or []
        if isinstance(socials, dict):
            socials = [socials]
        for social in socials:
            kind = social.get("type") or social.get("platform")
            if kind == "twitter" and not twitter:
                twitter = extract_twitter_handle(social.get("url"))
            elif kind == "telegram" and not telegram:
                telegram = extract_telegram_handle(social.get("url"))
        if not twitter:
            twitter = extract_twitter_handle(info.get("twitter"))
        if not telegram:
            telegram = extract_telegram_handle(info.get("telegram"))
        if twitter and telegram:
            break
    return twitter, telegram


def engagement_from_followers(followers: int | None) -> Engagement:
    if not followers:
        return Engagement.LOW
    if followers >= 50_000:
        return Engagement.HIGH
    if followers >= 5_000:
        return Engagement.MEDIUM
    return Engagement.LOW


def overall_engagement(twitter: TwitterProfile | None, telegram: TelegramProfile | None) -> Engagement:
    score = 0
    platforms = 0
    if twitter and twitter.profile_exists:
        platforms += 1
        score += {Engagement.HIGH: 3, Engagement.MEDIUM: 2}.get(twitter.engagement, 1)
    if telegram and telegram.profile_exists:
        platforms += 1
        members = telegram.members or 0
        score += 3 if members >= 10_000 else 2 if members >= 1_000 else 1
    if platforms == 0:
        return Engagement.LOW
    average = score / platforms
    if average >= 2.5:
        return Engagement.HIGH
    if average >= 1.5:
        return Engagement.MEDIUM
    return Engagement.LOW


def social_rating(
    platform_count: int,
    total_followers: int,
    verified_accounts: int,
    active_accounts: int,
    engagement: Engagement,
) -> float:
    rating = 1.0
    rating += platform_count * 0.8

    if total_followers >= 100_000:
        rating += 1.5
    elif total_followers >= 50_000:
        rating += 1.2
    elif total_followers >= 10_000:
        rating += 1.0
    elif total_followers >= 1_000:
        rating += 0.6
    elif total_followers >= 100:
        rating += 0.3

    rating += verified_accounts * 0.8
    rating += (active_accounts / max(platform_count, 1)) * 0.6

    if engagement == Engagement.HIGH:
        rating += 1.2
    elif engagement == Engagement.MEDIUM:
        rating += 0.6

    # Half-up rounding to one decimal
    return min(5.0, math.floor(rating * 10 + 0.5) / 10)


def social_risk_level(rating: float, platform_count: int, verified_accounts: int) -> RiskLevel:
    if rating >= 4 and verified_accounts > 0:
        return RiskLevel.LOW
    if rating >= 3.5 and platform_count >= 2:
        return RiskLevel.LOW
    if rating >= 2:
        return RiskLevel.MEDIUM
    if rating >= 1.5:
        return RiskLevel.HIGH
    return RiskLevel.VERY_HIGH


def social_summary(rating: float, platforms: list[str], verified_accounts: int) -> str:
    stars = "⭐" * int(rating)
    names = ", ".join(platforms)
    check = " ✓" if verified_accounts > 0 else ""
    if rating >= 4:
        return f"Strong social presence with {stars} rating. Active on: {names}{check}"
    if rating >= 3:
        return f"Good social engagement {stars}. Found on: {names}{check}"
    if rating >= 2:
        return f"Limited social presence {stars}. Platforms: {names or 'None'}"
    return f"Minimal social engagement {stars}. Very limited online presence"


def empty_social_data() -> SocialData:
    return SocialData(
        social_rating=1.0,
        risk_level=RiskLevel.VERY_HIGH,
        summary="No social media presence found",
    )


def compile_social_data(twitter: TwitterProfile | None, telegram: TelegramProfile | None) -> SocialData:
    platforms: list[str] = []
    followers = verified = active = 0

    if twitter and twitter.profile_exists:
        platforms.append("Twitter")
        followers += twitter.followers or 0
        verified += int(twitter.verified)
        active += int(twitter.active)
    else:
        twitter = None

    if telegram and telegram.profile_exists:
        platforms.append("Telegram")
        followers += telegram.members or 0
        active += int(telegram.active)
    else:
        telegram = None

    if not platforms:
        return empty_social_data()

    engagement = overall_engagement(twitter, telegram)
    rating = social_rating(len(platforms), followers, verified, active, engagement)
    return SocialData(
        social_rating=rating,
        risk_level=social_risk_level(rating, len(platforms), verified),
        active_platforms=tuple(platforms),
        overall=SocialOverview(
            total_followers=followers,
            platform_count=len(platforms),
            verified_accounts=verified,
            active_accounts=active,
            engagement=engagement,
        ),
        twitter=twitter,
        telegram=telegram,
        summary=social_summary(rating, platforms, verified),
    )


def parse_telegram_page(handle: str, html: str) -> TelegramProfile | None:
    # t.me serves a generic landing page for unknown handles
    if "tgme_page_title" not in html:
        return None
    members = 0
    kind = "GROUP"
    match = TELEGRAM_MEMBERS.search(html)
    if match:
        members = int(re.sub(r"[,\s]", "", match.group(1)) or 0)
        if match.group(2).lower() == "subscribers":
            kind = "CHANNEL"
    if handle.lower().endswith("bot"):
        kind = "BOT"
    return TelegramProfile(
        handle=handle,
        profile_exists=True,
        members=members,
        active=members > 0,
        kind=kind,
    )


class SocialAnalyzer(JsonApiClient):
    """
    Usage:
        analyzer = SocialAnalyzer(settings, pairs_provider=market.get_token_pairs)
        social = await analyzer.analyze(mint, "BONK")
    """

    name = "social"

    def __init__(
        self,
        settings: Settings,
        pairs_provider: Callable[[str], Awaitable[list[dict[str, Any]]]],
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(settings, client)
        self.pairs_provider = pairs_provider

    async def analyze(self, token_mint: str, token_symbol: str | None = None) -> SocialData:
        label = token_symbol or token_mint[:8]
        pairs = await self.pairs_provider(token_mint)
        twitter_handle, telegram_handle = discover_handles(pairs)
        if not twitter_handle and not telegram_handle:
            self.logger.info("No social links found for %s", label)
            return empty_social_data()

        twitter = await self.check_twitter(twitter_handle) if twitter_handle else None
        telegram = await self.check_telegram(telegram_handle) if telegram_handle else None
        data = compile_social_data(twitter, telegram)
        self.logger.info(
            "Social analysis for %s: %.1f/5, %s risk", label, data.social_rating, data.risk_level.value
        )
        return data

    async def check_twitter(self, handle: str) -> TwitterProfile | None:
        try:
            response = await self.client.head(f"https://x.com/{handle}")
        except httpx.HTTPError as exc:
            self.logger.debug("Twitter check failed for @%s: %s", handle, exc)
            return None
        if response.status_code == 404:
            return None
        # Profile pages need a login to scrape; existence is all we get
        return TwitterProfile(
            handle=handle,
            profile_exists=True,
            active=True,
            engagement=Engagement.MEDIUM,
        )

    async def check_telegram(self, handle: str) -> TelegramProfile | None:
        try:
            response = await self.client.get(f"https://t.me/{handle}")
        except httpx.HTTPError as exc:
            self.logger.debug("Telegram check failed for @%s: %s", handle, exc)
            return None
        if response.status_code != 200:
            return None
        return parse_telegram_page(handle, response.text)
