"""
Wallet Configuration Manager

Tracked whale wallets plus consensus setting overrides, stored as JSON or
YAML (picked by file suffix):

    {
      "wallets": [{"address": "...", "name": "Whale A", "enabled": true,
                   "description": "", "win_rate": "72%"}],
      "settings": {"minPurchaseUsd": 50, "minWhalesForConsensus": 2, ...}
    }

A default file is created when missing.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from solders.pubkey import Pubkey

from whale_consensus.config import Settings
from whale_consensus.core.models import TrackedWallet
from whale_consensus.exceptions import ConfigurationException

logger = logging.getLogger("whale_consensus.wallets")

DEFAULT_FILE_SETTINGS: Dict[str, Any] = {
    "minPurchaseUsd": 50,
    "minWhalesForConsensus": 2,
    "checkIntervalSeconds": 30,
    "consensusTimeWindowMinutes": 15,
}


def is_valid_address(address: str) -> bool:
    """True when ``address`` decodes to a 32-byte public key."""
    try:
        Pubkey.from_string(address or "")
    except ValueError:
        return False
    return True


class WalletConfigManager:
    """
    Usage:
        manager = WalletConfigManager("wallets.json")
        settings = manager.apply_to(get_settings())
        wallets = manager.enabled_wallets()
    """

    def __init__(self, config_path: str | Path, create_if_missing: bool = True):
        self.config_path = Path(config_path)
        self._wallets: List[TrackedWallet] = []
        self._settings: Dict[str, Any] = {}
        if self.config_path.exists():
            self.load()
        elif create_if_missing:
            self._settings = dict(DEFAULT_FILE_SETTINGS)
            self.save()
            logger.info("Created %s with default consensus settings", self.config_path)
        else:
            raise ConfigurationException("Wallets file not found", path=str(self.config_path))

    @property
    def is_yaml(self) -> bool:
        return self.config_path.suffix in (".yaml", ".yml")

    @property
    def wallets(self) -> List[TrackedWallet]:
        return list(self._wallets)

    @property
    def settings_overrides(self) -> Dict[str, Any]:
        return dict(self._settings)

    def load(self) -> List[TrackedWallet]:
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) if self.is_yaml else json.load(f)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            raise ConfigurationException(
                f"Cannot read wallets file: {exc}", path=str(self.config_path)
            ) from exc

        data = data or {}
        if not isinstance(data, dict):
            raise ConfigurationException("Wallets file must be a mapping", path=str(self.config_path))

        # manualWallets: older files
        entries = data.get("wallets", data.get("manualWallets")) or []
        wallets: List[TrackedWallet] = []
        seen: set[str] = set()
        for entry in entries:
            if not isinstance(entry, dict):
                logger.warning("Skipping malformed wallet entry: %r", entry)
                continue
            wallet = TrackedWallet.from_dict(entry)
            if not wallet.address:
                logger.warning("Skipping wallet entry without address")
                continue
            if not is_valid_address(wallet.address):
                logger.warning("Skipping invalid wallet address %r", wallet.address)
                continue
            if wallet.address in seen:
                logger.warning("Duplicate wallet %s ignored", wallet.address[:8])
                continue
            seen.add(wallet.address)
            wallets.append(wallet)

        self._wallets = wallets
        self._settings = dict(data.get("settings") or {})
        logger.info(
            "Loaded %d wallets (%d enabled) from %s",
            len(wallets), len(self.enabled_wallets()), self.config_path,
        )
        return self.wallets

    def save(self) -> None:
        data = {
            "wallets": [w.to_dict() for w in self._wallets],
            "settings": self._settings,
        }
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, "w", encoding="utf-8") as f:
            if self.is_yaml:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
            else:
                json.dump(data, f, indent=2, ensure_ascii=False)

    def enabled_wallets(self) -> List[TrackedWallet]:
        return [w for w in self._wallets if w.enabled]

    def get(self, address: str) -> Optional[TrackedWallet]:
        return next((w for w in self._wallets if w.address == address), None)

    def add_wallet(
        self,
        address: str,
        name: Optional[str] = None,
        description: str = "",
        win_rate: Optional[str] = None,
    ) -> bool:
        """Add and persist a wallet. Returns False if it is already tracked."""
        address = address.strip()
        if not is_valid_address(address):
            raise ConfigurationException("Invalid Solana address", address=address)
        if self.get(address) is not None:
            logger.warning("Wallet %s already exists", address)
            return False
        self._wallets.append(
            TrackedWallet(address=address, name=name, description=description, win_rate=win_rate)
        )
        self.save()
        logger.info("Added wallet %s (%s)", name or "unnamed", address[:8])
        return True

    def remove_wallet(self, address: str) -> bool:
        before = len(self._wallets)
        self._wallets = [w for w in self._wallets if w.address != address]
        if len(self._wallets) == before:
            return False
        self.save()
        logger.info("Removed wallet %s", address[:8])
        return True

    def set_enabled(self, address: str, enabled: bool) -> bool:
        wallet = self.get(address)
        if wallet is None:
            return False
        wallet.enabled = enabled
        self.save()
        return True

    def apply_to(self, settings: Settings) -> Settings:
        """Settings with this file's overrides applied (not yet validated)."""
        if not self._settings:
            return settings
        return settings.with_overrides(self._settings)
