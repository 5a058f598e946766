"""
Transaction Parser for whale token purchases

Reads a confirmed ``getTransaction`` (json encoding) result and decides
whether the tracked wallet bought a token in it:

- the wallet owns a token account whose balance went up, and
- the wallet's native SOL balance went down.

The SOL spent (fees included) is the purchase amount.
"""
import logging
from typing import Any, Optional

from whale_consensus.constants import LAMPORTS_PER_SOL, WSOL_MINT
from whale_consensus.core.models import PurchaseEvent
from whale_consensus.exceptions import ParseException

logger = logging.getLogger("whale_consensus.parser")


def _ui_amount(balance: Optional[dict]) -> float:
    if not balance:
        return 0.0
    ui = balance.get("uiTokenAmount") or {}
    raw = ui.get("uiAmountString")
    if raw is None:
        raw = ui.get("uiAmount")
    try:
        return float(raw or 0)
    except (TypeError, ValueError):
        return 0.0


def _account_keys(transaction: dict) -> list[str]:
    message = (transaction.get("transaction") or {}).get("message") or {}
    keys = []
    for key in message.get("accountKeys") or []:
        # jsonParsed encoding returns objects
        keys.append(key.get("pubkey", "") if isinstance(key, dict) else str(key))
    return keys


def sol_spent(meta: dict, wallet_address: str, account_keys: list[str]) -> float:
    """Native SOL that left the wallet in this transaction (0 if none)."""
    try:
        index = account_keys.index(wallet_address)
    except ValueError:
        return 0.0
    pre = meta.get("preBalances") or []
    post = meta.get("postBalances") or []
    pre_lamports = pre[index] if index < len(pre) else 0
    post_lamports = post[index] if index < len(post) else 0
    return max(0.0, (pre_lamports - post_lamports) / LAMPORTS_PER_SOL)


def find_bought_mint(meta: dict, wallet_address: str) -> Optional[str]:
    """First non-WSOL mint whose balance owned by the wallet increased."""
    pre_balances = meta.get("preTokenBalances") or []
    for post in meta.get("postTokenBalances") or []:
        if post.get("owner") != wallet_address:
            continue
        mint = post.get("mint")
        if not mint or mint == WSOL_MINT:
            continue
        pre = next(
            (b for b in pre_balances if b.get("accountIndex") == post.get("accountIndex")),
            None,
        )
        if _ui_amount(post) > _ui_amount(pre):
            return mint
    return None


def parse_token_purchase(
    transaction: Optional[dict[str, Any]],
    wallet_address: str,
    signature: str,
    sol_price_usd: float,
    wallet_name: Optional[str] = None,
    fallback_time: Optional[float] = None,
) -> Optional[PurchaseEvent]:
    """
    Build a PurchaseEvent from a getTransaction result.

    Returns None for failed transactions, sells, transfers and anything
    that does not look like a SOL -> token swap by ``wallet_address``.
    Raises ParseException when the payload is not a transaction object.
    """
    if not transaction:
        return None
    if not isinstance(transaction, dict):
        raise ParseException("Unexpected transaction payload", signature=signature)
    meta = transaction.get("meta")
    if meta is not None and not isinstance(meta, dict):
        raise ParseException("Unexpected transaction meta", signature=signature)
    if not meta or meta.get("err"):
        return None

    mint = find_bought_mint(meta, wallet_address)
    if not mint:
        return None

    spent = sol_spent(meta, wallet_address, _account_keys(transaction))
    if spent <= 0:
        logger.debug("Token increase without SOL outflow in %s", signature[:16])
        return None

    block_time = transaction.get("blockTime")
    timestamp = float(block_time) if block_time else fallback_time
    if timestamp is None:
        logger.debug("Transaction %s has no blockTime", signature[:16])
        return None

    return PurchaseEvent(
        wallet_address=wallet_address,
        token_mint=mint,
        amount_base=spent,
        amount_usd=spent * sol_price_usd,
        signature=signature,
        timestamp=timestamp,
        wallet_name=wallet_name,
    )
