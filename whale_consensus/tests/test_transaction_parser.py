"""
Unit tests for the transaction parser

A purchase = token balance owned by the wallet went up AND the wallet's
SOL balance went down.
"""
import pytest

from whale_consensus.constants import WSOL_MINT
from whale_consensus.core.transaction_parser import (
    find_bought_mint,
    parse_token_purchase,
    sol_spent,
)
from whale_consensus.exceptions import ParseException

WALLET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
MINT = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"


def token_balance(amount, mint=MINT, owner=WALLET, index=3):
    return {
        "accountIndex": index,
        "mint": mint,
        "owner": owner,
        "uiTokenAmount": {"uiAmountString": str(amount)},
    }


def make_tx(pre_sol=3.0, post_sol=0.5, pre_tokens=0, post_tokens=1_000_000,
            mint=MINT, err=None, block_time=1_700_000_000, keys=None):
    return {
        "blockTime": block_time,
        "transaction": {"message": {"accountKeys": keys or [WALLET, "Router111", "Pool111"]}},
        "meta": {
            "err": err,
            "preBalances": [int(pre_sol * 1e9), 0, 0],
            "postBalances": [int(post_sol * 1e9), 0, 0],
            "preTokenBalances": [token_balance(pre_tokens, mint=mint)] if pre_tokens is not None else [],
            "postTokenBalances": [token_balance(post_tokens, mint=mint)],
        },
    }


class TestParseTokenPurchase:
    def test_buy(self):
        event = parse_token_purchase(make_tx(), WALLET, "sig1", sol_price_usd=100.0, wallet_name="Whale")
        assert event is not None
        assert event.token_mint == MINT
        assert event.amount_base == pytest.approx(2.5)
        assert event.amount_usd == pytest.approx(250.0)
        assert event.timestamp == 1_700_000_000
        assert event.wallet_name == "Whale"

    def test_first_buy_without_pre_balance(self):
        event = parse_token_purchase(make_tx(pre_tokens=None), WALLET, "sig1", 100.0)
        assert event is not None

    def test_sell_is_ignored(self):
        tx = make_tx(pre_sol=1.0, post_sol=3.0, pre_tokens=500, post_tokens=0)
        assert parse_token_purchase(tx, WALLET, "sig1", 100.0) is None

    def test_failed_transaction_is_ignored(self):
        tx = make_tx(err={"InstructionError": [0, "Custom"]})
        assert parse_token_purchase(tx, WALLET, "sig1", 100.0) is None

    def test_token_airdrop_without_sol_outflow(self):
        tx = make_tx(pre_sol=1.0, post_sol=1.0)
        assert parse_token_purchase(tx, WALLET, "sig1", 100.0) is None

    def test_wrapped_sol_is_not_a_purchase(self):
        tx = make_tx(mint=WSOL_MINT)
        assert parse_token_purchase(tx, WALLET, "sig1", 100.0) is None

    def test_missing_block_time_uses_fallback(self):
        tx = make_tx(block_time=None)
        assert parse_token_purchase(tx, WALLET, "sig1", 100.0) is None
        event = parse_token_purchase(tx, WALLET, "sig1", 100.0, fallback_time=42.0)
        assert event.timestamp == 42.0

    def test_empty_payload(self):
        assert parse_token_purchase(None, WALLET, "sig1", 100.0) is None

    def test_garbage_payload_raises(self):
        with pytest.raises(ParseException):
            parse_token_purchase(["not", "a", "tx"], WALLET, "sig1", 100.0)

    def test_json_parsed_account_keys(self):
        keys = [{"pubkey": WALLET, "signer": True}, {"pubkey": "Router111"}, {"pubkey": "Pool111"}]
        event = parse_token_purchase(make_tx(keys=keys), WALLET, "sig1", 100.0)
        assert event.amount_base == pytest.approx(2.5)


class TestHelpers:
    def test_sol_spent_wallet_not_in_keys(self):
        assert sol_spent(make_tx()["meta"], "Someone", [WALLET]) == 0.0

    def test_find_bought_mint_other_owner(self):
        meta = make_tx()["meta"]
        assert find_bought_mint(meta, "SomeoneElse") is None
