"""Config package"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from functools import lru_cache
from typing import Any

from dotenv import load_dotenv

from ..constants import DEFAULT_RPC_URLS, HELIUS_RPC_TEMPLATE
from ..exceptions import ConfigurationException

# Load environment variables
load_dotenv()

logger = logging.getLogger("whale_consensus.config")

# Cycles faster than this hammer public RPCs for no gain
MIN_CHECK_INTERVAL_SEC = 10
MAX_WALLET_BATCH_SIZE = 20


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() == "true"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationException(f"{name} must be a number", value=raw) from exc


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, float(default)))


def _rpc_urls_from_env() -> tuple[str, ...]:
    urls = [u.strip() for u in os.getenv("RPC_URLS", "").split(",") if u.strip()]
    helius_key = os.getenv("HELIUS_API_KEY", "")
    if helius_key:
        urls.insert(0, HELIUS_RPC_TEMPLATE.format(api_key=helius_key))
    return tuple(urls) or DEFAULT_RPC_URLS


@dataclass(frozen=True)
class Settings:
    # ============================================
    # CREDENTIALS & ENDPOINTS
    # ============================================
    RPC_URLS: tuple[str, ...] = DEFAULT_RPC_URLS
    RPC_SIGNATURE_LIMIT: int = 15
    RPC_RATE_LIMIT_PER_SEC: float = 5.0
    TELEGRAM_BOT_TOKEN: str = ""
    TELEGRAM_CHAT_ID: str = ""
    TELEGRAM_ENABLED: bool = True
    TELEGRAM_INDIVIDUAL_ALERTS: bool = True
    COINGECKO_API_KEY: str = ""

    # ============================================
    # CONSENSUS PARAMETERS
    # ============================================
    MIN_PURCHASE_USD: float = 50.0
    MIN_WHALES_FOR_CONSENSUS: int = 2
    CHECK_INTERVAL_SECONDS: int = 30
    CONSENSUS_WINDOW_MINUTES: float = 15.0
    INITIAL_DELAY_SEC: float = 5.0

    # ============================================
    # FAN-OUT & TIMEOUTS
    # ============================================
    WALLET_BATCH_SIZE: int = 5
    BATCH_DELAY_SEC: float = 1.0
    FETCH_TIMEOUT_SEC: float = 8.0
    ENRICHMENT_TIMEOUT_SEC: float = 5.0
    API_TIMEOUT_SEC: float = 5.0
    API_MAX_RETRIES: int = 2
    API_RETRY_BACKOFF_SEC: float = 1.0

    # ============================================
    # ENRICHMENT CACHES
    # ============================================
    MARKET_CACHE_TTL_SEC: float = 900.0      # 15 min
    SOCIAL_CACHE_TTL_SEC: float = 1800.0     # 30 min
    TOKEN_INFO_CACHE_TTL_SEC: float = 86400.0
    CACHE_MAX_ENTRIES: int = 2000
    SOL_PRICE_REFRESH_SEC: float = 30.0
    SOCIAL_ANALYSIS_ENABLED: bool = True

    # ============================================
    # FILES & LOGGING
    # ============================================
    WALLETS_FILE: str = "wallets.json"
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def window_sec(self) -> float:
        return self.CONSENSUS_WINDOW_MINUTES * 60.0

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            RPC_URLS=_rpc_urls_from_env(),
            RPC_SIGNATURE_LIMIT=_env_int("RPC_SIGNATURE_LIMIT", 15),
            RPC_RATE_LIMIT_PER_SEC=_env_float("RPC_RATE_LIMIT_PER_SEC", 5.0),
            TELEGRAM_BOT_TOKEN=os.getenv("TELEGRAM_BOT_TOKEN", ""),
            TELEGRAM_CHAT_ID=os.getenv("TELEGRAM_CHAT_ID", ""),
            TELEGRAM_ENABLED=_env_bool("TELEGRAM_ENABLED", True),
            TELEGRAM_INDIVIDUAL_ALERTS=_env_bool("TELEGRAM_INDIVIDUAL_ALERTS", True),
            COINGECKO_API_KEY=os.getenv("COINGECKO_API_KEY", ""),
            MIN_PURCHASE_USD=_env_float("MIN_PURCHASE_USD", 50.0),
            MIN_WHALES_FOR_CONSENSUS=_env_int("MIN_WHALES_FOR_CONSENSUS", 2),
            CHECK_INTERVAL_SECONDS=_env_int("CHECK_INTERVAL_SECONDS", 30),
            CONSENSUS_WINDOW_MINUTES=_env_float("CONSENSUS_WINDOW_MINUTES", 15.0),
            INITIAL_DELAY_SEC=_env_float("INITIAL_DELAY_SEC", 5.0),
            WALLET_BATCH_SIZE=_env_int("WALLET_BATCH_SIZE", 5),
            BATCH_DELAY_SEC=_env_float("BATCH_DELAY_SEC", 1.0),
            FETCH_TIMEOUT_SEC=_env_float("FETCH_TIMEOUT_SEC", 8.0),
            ENRICHMENT_TIMEOUT_SEC=_env_float("ENRICHMENT_TIMEOUT_SEC", 5.0),
            API_TIMEOUT_SEC=_env_float("API_TIMEOUT_SEC", 5.0),
            MARKET_CACHE_TTL_SEC=_env_float("MARKET_CACHE_TTL_SEC", 900.0),
            SOCIAL_CACHE_TTL_SEC=_env_float("SOCIAL_CACHE_TTL_SEC", 1800.0),
            CACHE_MAX_ENTRIES=_env_int("CACHE_MAX_ENTRIES", 2000),
            SOL_PRICE_REFRESH_SEC=_env_float("SOL_PRICE_REFRESH_SEC", 30.0),
            SOCIAL_ANALYSIS_ENABLED=_env_bool("SOCIAL_ANALYSIS_ENABLED", True),
            WALLETS_FILE=os.getenv("WALLETS_FILE", "wallets.json"),
            LOG_DIR=os.getenv("LOG_DIR", "logs"),
            LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

    def with_overrides(self, overrides: dict[str, Any]) -> "Settings":
        """
        Apply a wallets-file ``settings`` block.

        Accepts both the field names and the camelCase keys used by the
        wallets file (``minPurchaseUsd``, ``checkIntervalSeconds``...).
        Unknown keys are kept in ``extra``.
        """
        known = {f.name for f in fields(self)}
        changes: dict[str, Any] = {}
        extra = dict(self.extra)
        for key, value in (overrides or {}).items():
            name = FILE_SETTING_ALIASES.get(key, key)
            if name in known and name != "extra":
                changes[name] = value
            else:
                extra[key] = value
        return replace(self, extra=extra, **changes)

    def validate(self) -> "Settings":
        """
        Reject impossible values and clamp the merely aggressive ones.

        Returns the (possibly clamped) settings. Runs once at startup.
        """
        if int(self.MIN_WHALES_FOR_CONSENSUS) < 1:
            raise ConfigurationException(
                "MIN_WHALES_FOR_CONSENSUS must be >= 1",
                value=self.MIN_WHALES_FOR_CONSENSUS,
            )
        if self.MIN_PURCHASE_USD < 0:
            raise ConfigurationException(
                "MIN_PURCHASE_USD must be >= 0", value=self.MIN_PURCHASE_USD
            )
        if self.CONSENSUS_WINDOW_MINUTES <= 0:
            raise ConfigurationException(
                "CONSENSUS_WINDOW_MINUTES must be > 0",
                value=self.CONSENSUS_WINDOW_MINUTES,
            )
        if not self.RPC_URLS:
            raise ConfigurationException("At least one RPC URL is required")

        changes: dict[str, Any] = {}
        if self.CHECK_INTERVAL_SECONDS < MIN_CHECK_INTERVAL_SEC:
            logger.warning(
                "CHECK_INTERVAL_SECONDS=%s below floor, clamped to %ss",
                self.CHECK_INTERVAL_SECONDS, MIN_CHECK_INTERVAL_SEC,
            )
            changes["CHECK_INTERVAL_SECONDS"] = MIN_CHECK_INTERVAL_SEC
        batch = int(self.WALLET_BATCH_SIZE)
        if batch < 1 or batch > MAX_WALLET_BATCH_SIZE:
            clamped = min(max(batch, 1), MAX_WALLET_BATCH_SIZE)
            logger.warning("WALLET_BATCH_SIZE=%s clamped to %s", batch, clamped)
            changes["WALLET_BATCH_SIZE"] = clamped
        changes["MIN_WHALES_FOR_CONSENSUS"] = int(self.MIN_WHALES_FOR_CONSENSUS)
        return replace(self, **changes)


# camelCase keys accepted in the wallets file "settings" block
FILE_SETTING_ALIASES = {
    "minPurchaseUsd": "MIN_PURCHASE_USD",
    "minWhalesForConsensus": "MIN_WHALES_FOR_CONSENSUS",
    "checkIntervalSeconds": "CHECK_INTERVAL_SECONDS",
    "consensusTimeWindowMinutes": "CONSENSUS_WINDOW_MINUTES",
    "enableSocialAnalysis": "SOCIAL_ANALYSIS_ENABLED",
}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
