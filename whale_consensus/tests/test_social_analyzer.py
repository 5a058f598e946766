"""
Unit tests for the social analyzer

Tests core functionality:
1. Handle extraction from DexScreener socials
2. Rating, engagement and risk mapping
3. Telegram preview page parsing
4. End-to-end analysis over a mocked transport
"""
import asyncio

import httpx

from whale_consensus.config import Settings
from whale_consensus.core.models import Engagement, RiskLevel, TelegramProfile, TwitterProfile
from whale_consensus.core.social_analyzer import (
    SocialAnalyzer,
    compile_social_data,
    discover_handles,
    engagement_from_followers,
    extract_telegram_handle,
    extract_twitter_handle,
    parse_telegram_page,
    social_rating,
    social_risk_level,
)

TG_GROUP_PAGE = """
<div class="tgme_page_title"><span dir="auto">Bonk Community</span></div>
<div class="tgme_page_extra">2 500 members, 140 online</div>
"""
TG_CHANNEL_PAGE = """
<div class="tgme_page_title"><span dir="auto">Bonk News</span></div>
<div class="tgme_page_extra">12,345 subscribers</div>
"""
TG_LANDING_PAGE = "<html><title>Telegram Messenger</title></html>"

PAIRS = [
    {
        "info": {
            "socials": [
                {"type": "twitter", "url": "https://twitter.com/bonk_inu"},
                {"type": "telegram", "url": "https://t.me/bonkcommunity"},
            ]
        }
    }
]


class TestHandleExtraction:
    def test_twitter_urls(self):
        assert extract_twitter_handle("https://twitter.com/bonk_inu") == "bonk_inu"
        assert extract_twitter_handle("https://x.com/bonk_inu?s=20") == "bonk_inu"
        assert extract_twitter_handle("@bonk_inu") == "bonk_inu"
        assert extract_twitter_handle("bonk_inu") == "bonk_inu"

    def test_reserved_twitter_paths(self):
        assert extract_twitter_handle("https://x.com/home") is None
        assert extract_twitter_handle("https://twitter.com/intent/tweet") is None

    def test_telegram_urls(self):
        assert extract_telegram_handle("https://t.me/bonkcommunity") == "bonkcommunity"
        assert extract_telegram_handle("https://telegram.me/bonk_chat") == "bonk_chat"
        assert extract_telegram_handle(None) is None

    def test_discover_handles(self):
        assert discover_handles(PAIRS) == ("bonk_inu", "bonkcommunity")

    def test_discover_handles_legacy_info_fields(self):
        pairs = [{"info": {"twitter": "https://x.com/wif", "telegram": "https://t.me/wifsol"}}]
        assert discover_handles(pairs) == ("wif", "wifsol")

    def test_no_socials(self):
        assert discover_handles([{"info": {}}, {}]) == (None, None)


class TestRating:
    def test_engagement_tiers(self):
        assert engagement_from_followers(None) == Engagement.LOW
        assert engagement_from_followers(5_000) == Engagement.MEDIUM
        assert engagement_from_followers(50_000) == Engagement.HIGH

    def test_rating_capped_at_five(self):
        assert social_rating(2, 500_000, 2, 2, Engagement.HIGH) == 5.0

    def test_rating_rounded_to_tenth(self):
        # 1 + 0.8 + 0.3 + 0.6 = 2.7
        assert social_rating(1, 200, 0, 1, Engagement.LOW) == 2.7

    def test_risk_levels(self):
        assert social_risk_level(4.2, 1, 1) == RiskLevel.LOW
        assert social_risk_level(3.6, 2, 0) == RiskLevel.LOW
        assert social_risk_level(2.5, 1, 0) == RiskLevel.MEDIUM
        assert social_risk_level(1.6, 1, 0) == RiskLevel.HIGH
        assert social_risk_level(1.0, 0, 0) == RiskLevel.VERY_HIGH

    def test_compile_two_platforms(self):
        twitter = TwitterProfile("bonk_inu", profile_exists=True, active=True, engagement=Engagement.MEDIUM)
        telegram = TelegramProfile("bonkcommunity", profile_exists=True, members=2_500, active=True)
        data = compile_social_data(twitter, telegram)
        assert data.active_platforms == ("Twitter", "Telegram")
        assert data.overall.total_followers == 2_500
        assert data.overall.engagement == Engagement.MEDIUM
        assert data.social_rating == 4.4
        assert data.risk_level == RiskLevel.LOW
        assert data.summary.startswith("Strong social presence")

    def test_compile_nothing(self):
        data = compile_social_data(None, TelegramProfile("gone", profile_exists=False))
        assert data.social_rating == 1.0
        assert data.risk_level == RiskLevel.VERY_HIGH


class TestTelegramPage:
    def test_group_members(self):
        profile = parse_telegram_page("bonkcommunity", TG_GROUP_PAGE)
        assert profile.members == 2_500
        assert profile.kind == "GROUP"
        assert profile.active

    def test_channel_subscribers(self):
        profile = parse_telegram_page("bonknews", TG_CHANNEL_PAGE)
        assert profile.members == 12_345
        assert profile.kind == "CHANNEL"

    def test_unknown_handle_landing_page(self):
        assert parse_telegram_page("nobody", TG_LANDING_PAGE) is None


class TestSocialAnalyzer:
    def test_analyze(self):
        def handler(request):
            if request.url.host == "x.com":
                return httpx.Response(200)
            if request.url.host == "t.me":
                return httpx.Response(200, text=TG_GROUP_PAGE)
            return httpx.Response(404)

        async def pairs_provider(mint):
            return PAIRS

        async def scenario():
            analyzer = SocialAnalyzer(
                Settings(),
                pairs_provider=pairs_provider,
                client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            )
            try:
                return await analyzer.analyze("MINT", "BONK")
            finally:
                await analyzer.close()

        data = asyncio.run(scenario())
        assert data.social_rating == 4.4
        assert data.twitter.handle == "bonk_inu"
        assert data.telegram.members == 2_500

    def test_missing_profiles(self):
        def handler(request):
            return httpx.Response(404)

        async def pairs_provider(mint):
            return PAIRS

        async def scenario():
            analyzer = SocialAnalyzer(
                Settings(),
                pairs_provider=pairs_provider,
                client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
            )
            try:
                return await analyzer.analyze("MINT")
            finally:
                await analyzer.close()

        data = asyncio.run(scenario())
        assert data.risk_level == RiskLevel.VERY_HIGH
        assert data.active_platforms == ()
