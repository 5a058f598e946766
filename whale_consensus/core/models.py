from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    VERY_HIGH = "VERY_HIGH"


class SignalType(str, Enum):
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    WEAK_BUY = "WEAK_BUY"
    HOLD = "HOLD"


class Engagement(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True)
class PurchaseEvent:
    """One observed token purchase by a tracked wallet. Never mutated."""
    wallet_address: str
    token_mint: str
    amount_base: float  # native SOL spent
    amount_usd: float  # amount_base x price at ingest
    signature: str
    timestamp: float
    wallet_name: str | None = None
    token_symbol: str | None = None
    token_name: str | None = None

    @property
    def is_well_formed(self) -> bool:
        if not self.token_mint or not self.wallet_address:
            return False
        return self.amount_base > 0 or self.amount_usd > 0

    def with_price(self, price_usd: float) -> "PurchaseEvent":
        return replace(self, amount_usd=self.amount_base * price_usd)

    @property
    def display_name(self) -> str:
        return self.wallet_name or f"Whale {self.wallet_address[:8]}..."


@dataclass(frozen=True)
class ConsensusSignal:
    """Alert identity: one alert per (mint, unique whale count) per process."""
    token_mint: str
    whale_count: int

    @property
    def key(self) -> str:
        return f"{self.token_mint}_{self.whale_count}"


@dataclass(frozen=True)
class TokenMetadata:
    symbol: str
    name: str
    verified: bool = False


@dataclass(frozen=True)
class MarketData:
    market_cap: float | None = None
    price: float | None = None
    volume_24h: float | None = None
    price_change_24h: float | None = None
    liquidity: float | None = None
    fdv: float | None = None
    source: str = ""

    @property
    def has_data(self) -> bool:
        return bool(self.market_cap or self.price)


@dataclass(frozen=True)
class TwitterProfile:
    handle: str
    profile_exists: bool = False
    followers: int | None = None
    verified: bool = False
    active: bool = False
    engagement: Engagement = Engagement.LOW


@dataclass(frozen=True)
class TelegramProfile:
    handle: str
    profile_exists: bool = False
    members: int | None = None
    active: bool = False
    kind: str | None = None  # GROUP / CHANNEL / BOT


@dataclass(frozen=True)
class SocialOverview:
    total_followers: int = 0
    platform_count: int = 0
    verified_accounts: int = 0
    active_accounts: int = 0
    engagement: Engagement = Engagement.LOW


@dataclass(frozen=True)
class SocialData:
    social_rating: float  # 1..5
    risk_level: RiskLevel
    active_platforms: tuple[str, ...] = ()
    overall: SocialOverview = field(default_factory=SocialOverview)
    twitter: TwitterProfile | None = None
    telegram: TelegramProfile | None = None
    summary: str = ""


@dataclass(frozen=True)
class RiskAssessment:
    """Signal-strength score: high means strong consensus, not danger."""
    level: RiskLevel
    score: int
    assessment: str = ""


@dataclass(frozen=True)
class TradingSignal:
    type: SignalType
    confidence: int
    recommendation: str = ""


@dataclass(frozen=True)
class Enrichment:
    """Best-effort lookups joined before an alert is built."""
    token: TokenMetadata | None = None
    market_data: MarketData | None = None
    social_data: SocialData | None = None


@dataclass(frozen=True)
class ConsensusAggregate:
    total_whales: int
    total_amount_usd: float
    total_amount_base: float
    first_purchase_time: float
    last_purchase_time: float
    market_data: MarketData | None = None
    social_data: SocialData | None = None

    @classmethod
    def from_whales(
        cls,
        whales: list[PurchaseEvent],
        market_data: MarketData | None = None,
        social_data: SocialData | None = None,
    ) -> "ConsensusAggregate":
        if not whales:
            raise ValueError("aggregate needs at least one purchase")
        timestamps = [w.timestamp for w in whales]
        return cls(
            total_whales=len(whales),
            total_amount_usd=sum(w.amount_usd for w in whales),
            total_amount_base=sum(w.amount_base for w in whales),
            first_purchase_time=min(timestamps),
            last_purchase_time=max(timestamps),
            market_data=market_data,
            social_data=social_data,
        )

    @property
    def avg_per_whale_usd(self) -> float:
        return self.total_amount_usd / self.total_whales if self.total_whales else 0.0

    @property
    def time_span_sec(self) -> float:
        return self.last_purchase_time - self.first_purchase_time

    @property
    def provisional_strength(self) -> float:
        return self.total_whales * 100 + self.total_amount_usd


@dataclass(frozen=True)
class ConsensusAlert:
    token_mint: str
    token_symbol: str
    token_name: str
    whales: tuple[PurchaseEvent, ...]
    total_whales: int
    total_amount_usd: float
    total_amount_base: float
    first_purchase_time: float
    last_purchase_time: float
    consensus_strength: float
    risk_assessment: RiskAssessment
    trading_signal: TradingSignal
    market_data: MarketData | None = None
    social_data: SocialData | None = None
    community_strength: int | None = None
    overall_risk_score: int | None = None
    warnings: tuple[str, ...] = ()

    @property
    def signal(self) -> ConsensusSignal:
        return ConsensusSignal(self.token_mint, self.total_whales)

    @property
    def avg_per_whale_usd(self) -> float:
        return self.total_amount_usd / self.total_whales if self.total_whales else 0.0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["whales"] = [asdict(w) for w in self.whales]
        data["risk_assessment"]["level"] = self.risk_assessment.level.value
        data["trading_signal"]["type"] = self.trading_signal.type.value
        if self.social_data:
            data["social_data"]["risk_level"] = self.social_data.risk_level.value
        return data


@dataclass
class TrackedWallet:
    """Wallet entry from the wallets file."""
    address: str
    name: str | None = None
    description: str = ""
    enabled: bool = True
    win_rate: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TrackedWallet":
        return cls(
            address=data.get("address", ""),
            name=data.get("name") or data.get("alias"),
            description=data.get("description", ""),
            enabled=data.get("enabled", True),
            win_rate=data.get("win_rate") or data.get("winRate") or data.get("winrate"),
        )

    @property
    def label(self) -> str:
        return self.name or f"Whale {self.address[:8]}..."
