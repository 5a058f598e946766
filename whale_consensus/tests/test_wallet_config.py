"""
Unit tests for WalletConfigManager
"""
import json

import pytest
import yaml

from conftest import WALLET_A, WALLET_B
from whale_consensus.config import Settings
from whale_consensus.config.wallets import WalletConfigManager, is_valid_address
from whale_consensus.exceptions import ConfigurationException


class TestLoadAndCreate:
    def test_creates_default_file(self, tmp_path):
        path = tmp_path / "data" / "wallets.json"
        manager = WalletConfigManager(path)
        assert path.exists()
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["wallets"] == []
        assert data["settings"]["minWhalesForConsensus"] == 2
        assert manager.wallets == []

    def test_missing_file_without_create_raises(self, tmp_path):
        with pytest.raises(ConfigurationException):
            WalletConfigManager(tmp_path / "nope.json", create_if_missing=False)

    def test_legacy_manual_wallets_key(self, tmp_path):
        path = tmp_path / "wallets.json"
        path.write_text(json.dumps({
            "manualWallets": [
                {"address": WALLET_A, "alias": "Whale A", "winrate": "71%"},
                {"address": WALLET_B, "enabled": False},
            ],
        }))
        manager = WalletConfigManager(path)
        assert manager.get(WALLET_A).name == "Whale A"
        assert manager.get(WALLET_A).win_rate == "71%"
        assert [w.address for w in manager.enabled_wallets()] == [WALLET_A]

    def test_duplicate_entries_keep_first(self, tmp_path):
        path = tmp_path / "wallets.json"
        path.write_text(json.dumps({
            "wallets": [
                {"address": WALLET_A, "name": "first"},
                {"address": WALLET_A, "name": "second"},
                {"name": "no address"},
                "garbage",
            ],
        }))
        manager = WalletConfigManager(path)
        assert len(manager.wallets) == 1
        assert manager.get(WALLET_A).name == "first"

    def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "wallets.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationException):
            WalletConfigManager(path)

    def test_non_mapping_file_raises(self, tmp_path):
        path = tmp_path / "wallets.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationException):
            WalletConfigManager(path)


class TestEditing:
    def test_add_wallet_persists(self, tmp_path):
        path = tmp_path / "wallets.json"
        manager = WalletConfigManager(path)
        assert manager.add_wallet(WALLET_A, name="Whale A", description="early buyer")

        reloaded = WalletConfigManager(path)
        wallet = reloaded.get(WALLET_A)
        assert wallet.name == "Whale A"
        assert wallet.description == "early buyer"
        assert wallet.enabled

    def test_duplicate_add_rejected(self, tmp_path):
        manager = WalletConfigManager(tmp_path / "wallets.json")
        assert manager.add_wallet(WALLET_A)
        assert not manager.add_wallet(WALLET_A, name="again")
        assert len(manager.wallets) == 1

    def test_invalid_address_rejected(self, tmp_path):
        manager = WalletConfigManager(tmp_path / "wallets.json")
        with pytest.raises(ConfigurationException):
            manager.add_wallet("not-a-solana-address")

    def test_remove_wallet(self, tmp_path):
        manager = WalletConfigManager(tmp_path / "wallets.json")
        manager.add_wallet(WALLET_A)
        assert manager.remove_wallet(WALLET_A)
        assert not manager.remove_wallet(WALLET_A)
        assert manager.wallets == []

    def test_set_enabled(self, tmp_path):
        path = tmp_path / "wallets.json"
        manager = WalletConfigManager(path)
        manager.add_wallet(WALLET_A)
        assert manager.set_enabled(WALLET_A, False)
        assert WalletConfigManager(path).enabled_wallets() == []
        assert not manager.set_enabled(WALLET_B, True)

    def test_yaml_round_trip(self, tmp_path):
        path = tmp_path / "wallets.yaml"
        manager = WalletConfigManager(path)
        manager.add_wallet(WALLET_B, name="Whale B", win_rate="64%")
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert data["wallets"][0]["address"] == WALLET_B
        assert WalletConfigManager(path).get(WALLET_B).win_rate == "64%"


class TestSettingsOverrides:
    def test_apply_to_maps_camel_case_keys(self, tmp_path):
        path = tmp_path / "wallets.json"
        path.write_text(json.dumps({
            "wallets": [],
            "settings": {
                "minPurchaseUsd": 250,
                "minWhalesForConsensus": 3,
                "consensusTimeWindowMinutes": 30,
                "enableQualifiedWallets": True,
            },
        }))
        settings = WalletConfigManager(path).apply_to(Settings())
        assert settings.MIN_PURCHASE_USD == 250
        assert settings.MIN_WHALES_FOR_CONSENSUS == 3
        assert settings.window_sec == 1800
        assert settings.extra == {"enableQualifiedWallets": True}

    def test_no_overrides_returns_same_settings(self, tmp_path):
        path = tmp_path / "wallets.json"
        path.write_text(json.dumps({"wallets": []}))
        base = Settings()
        assert WalletConfigManager(path).apply_to(base) is base


class TestAddressValidation:
    def test_valid(self):
        assert is_valid_address(WALLET_A)

    def test_invalid_characters(self):
        assert not is_valid_address("0OIl" * 10)

    def test_too_short(self):
        assert not is_valid_address("abc")

    def test_base58_that_is_not_32_bytes(self):
        assert not is_valid_address("z" * 44)

    def test_invalid_file_entries_skipped(self, tmp_path):
        path = tmp_path / "wallets.json"
        path.write_text(json.dumps({
            "wallets": [{"address": "z" * 44, "name": "broken"}, {"address": WALLET_B}],
        }))
        manager = WalletConfigManager(path)
        assert [w.address for w in manager.wallets] == [WALLET_B]
