"""
Consensus Scoring

Pure scoring for whale consensus aggregates.

Components:
- Risk assessment (0-100): whale count, total USD, time clustering,
  average size and market depth. Measures SIGNAL STRENGTH: a high score
  is a strong consensus and is shown as a positive indicator.
- Trading signal (0-95 confidence): STRONG_BUY / BUY / WEAK_BUY / HOLD.
- Community strength and overall risk score from market + social data.
"""
from __future__ import annotations

from whale_consensus.core.models import (
    ConsensusAggregate,
    Engagement,
    MarketData,
    RiskAssessment,
    RiskLevel,
    SignalType,
    SocialData,
    TradingSignal,
)

FIVE_MINUTES = 5 * 60
FIFTEEN_MINUTES = 15 * 60

RISK_ASSESSMENTS = {
    RiskLevel.VERY_HIGH: "Extremely strong whale consensus - High conviction buy signal",
    RiskLevel.HIGH: "Strong whale consensus - Consider buying",
    RiskLevel.MEDIUM: "Moderate whale interest - Monitor closely",
    RiskLevel.LOW: "Weak whale consensus - Exercise caution",
}

SIGNAL_RECOMMENDATIONS = {
    SignalType.STRONG_BUY: "Consider immediate purchase - Multiple whales showing strong conviction",
    SignalType.BUY: "Good buying opportunity - Whale consensus detected",
    SignalType.WEAK_BUY: "Monitor closely - Some whale interest detected",
    SignalType.HOLD: "Monitor position",
}


def risk_score(aggregate: ConsensusAggregate) -> RiskAssessment:
    score = 0

    # More whales = stronger signal
    if aggregate.total_whales >= 5:
        score += 30
    elif aggregate.total_whales >= 3:
        score += 20
    else:
        score += 10

    if aggregate.total_amount_usd >= 10000:
        score += 30
    elif aggregate.total_amount_usd >= 5000:
        score += 20
    else:
        score += 10

    # Time proximity
    span = aggregate.time_span_sec
    if span <= FIVE_MINUTES:
        score += 30
    elif span <= FIFTEEN_MINUTES:
        score += 20
    else:
        score += 10

    avg = aggregate.avg_per_whale_usd
    if avg >= 2000:
        score += 10
    elif avg >= 1000:
        score += 5

    md = aggregate.market_data
    if md:
        if md.market_cap and md.market_cap >= 10_000_000:
            score += 10
        if md.liquidity and md.liquidity >= 100_000:
            score += 10
        if md.volume_24h and md.volume_24h >= 100_000:
            score += 5

    score = max(0, min(100, score))

    if score >= 80:
        level = RiskLevel.VERY_HIGH
    elif score >= 60:
        level = RiskLevel.HIGH
    elif score >= 40:
        level = RiskLevel.MEDIUM
    else:
        level = RiskLevel.LOW

    return RiskAssessment(level=level, score=score, assessment=RISK_ASSESSMENTS[level])


def trading_signal(aggregate: ConsensusAggregate) -> TradingSignal:
    confidence = 50
    confidence += aggregate.total_whales * 10

    avg = aggregate.avg_per_whale_usd
    if avg >= 2000:
        confidence += 20
    elif avg >= 1000:
        confidence += 10

    span = aggregate.time_span_sec
    if span <= FIVE_MINUTES:
        confidence += 15
    elif span <= FIFTEEN_MINUTES:
        confidence += 10

    confidence = min(confidence, 95)

    if confidence >= 80:
        signal_type = SignalType.STRONG_BUY
    elif confidence >= 70:
        signal_type = SignalType.BUY
    elif confidence >= 60:
        signal_type = SignalType.WEAK_BUY
    else:
        signal_type = SignalType.HOLD

    return TradingSignal(
        type=signal_type,
        confidence=confidence,
        recommendation=SIGNAL_RECOMMENDATIONS[signal_type],
    )


def community_strength(social: SocialData) -> int:
    strength = social.social_rating * 15
    strength += social.overall.platform_count * 10

    followers = social.overall.total_followers
    if followers >= 100_000:
        strength += 25
    elif followers >= 50_000:
        strength += 20
    elif followers >= 10_000:
        strength += 15
    elif followers >= 1_000:
        strength += 10
    elif followers >= 100:
        strength += 5

    strength += social.overall.verified_accounts * 15

    if social.overall.engagement == Engagement.HIGH:
        strength += 15
    elif social.overall.engagement == Engagement.MEDIUM:
        strength += 8

    strength += social.overall.active_accounts * 5
    return int(round(min(100, strength)))


SOCIAL_RISK_ADJUSTMENT = {
    RiskLevel.LOW: 10,
    RiskLevel.MEDIUM: 5,
    RiskLevel.HIGH: -5,
    RiskLevel.VERY_HIGH: -15,
}


def overall_risk_score(
    market: MarketData | None,
    social: SocialData | None,
    whale_count: int,
) -> int:
    """Combined market + social + whale score, 0-100, higher is safer."""
    score = 50.0

    if market:
        if market.market_cap:
            if market.market_cap >= 10_000_000:
                score += 15
            elif market.market_cap >= 1_000_000:
                score += 10
            elif market.market_cap >= 100_000:
                score += 5
            else:
                score -= 10
        if market.liquidity:
            if market.liquidity >= 500_000:
                score += 10
            elif market.liquidity >= 100_000:
                score += 5
            else:
                score -= 5
        if market.volume_24h:
            if market.volume_24h >= 1_000_000:
                score += 10
            elif market.volume_24h >= 100_000:
                score += 5

    if social:
        score += (social.social_rating - 2.5) * 8
        score += SOCIAL_RISK_ADJUSTMENT[social.risk_level]
        score += social.overall.platform_count * 3
        score += social.overall.verified_accounts * 8
        followers = social.overall.total_followers
        if followers >= 50_000:
            score += 8
        elif followers >= 10_000:
            score += 5
        elif followers >= 1_000:
            score += 3

    score += whale_count * 5
    return int(round(min(100, max(0, score))))


def safety_warnings(aggregate: ConsensusAggregate, overall_risk: int | None = None) -> list[str]:
    warnings: list[str] = []
    md = aggregate.market_data
    if md and md.market_cap and md.market_cap < 1_000_000:
        warnings.append("Very low market cap - high volatility risk")
    if md and md.liquidity and md.liquidity < 100_000:
        warnings.append("Low liquidity - price manipulation risk")
    if aggregate.social_data and aggregate.social_data.risk_level == RiskLevel.VERY_HIGH:
        warnings.append("No verified social presence - possible scam")
    if md and md.price_change_24h is not None and md.price_change_24h < -50:
        warnings.append("Massive price dump in last 24h")
    if overall_risk is not None and overall_risk < 30:
        warnings.append("VERY HIGH RISK - Multiple red flags detected")
    return warnings


def format_time_span(seconds: float) -> str:
    seconds = max(0, int(seconds))
    minutes, secs = divmod(seconds, 60)
    if minutes == 0:
        return f"{secs}s"
    if minutes < 60:
        return f"{minutes}m {secs}s"
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m"


class ConsensusScorer:
    """
    Bundles the scoring functions for the detector.

    Usage:
        scorer = ConsensusScorer()
        risk, signal = scorer.score(aggregate)
    """

    def score(self, aggregate: ConsensusAggregate) -> tuple[RiskAssessment, TradingSignal]:
        return risk_score(aggregate), trading_signal(aggregate)

    def supplemental(self, aggregate: ConsensusAggregate) -> tuple[int | None, int | None, list[str]]:
        """Community strength, overall risk score and warnings (None when no data)."""
        social = aggregate.social_data
        market = aggregate.market_data
        community = community_strength(social) if social else None
        overall = (
            overall_risk_score(market, social, aggregate.total_whales)
            if (market or social)
            else None
        )
        return community, overall, safety_warnings(aggregate, overall)
