"""
RPC Purchase Source

Turns a wallet's recent signatures into PurchaseEvents:
getSignaturesForAddress -> getTransaction -> parse_token_purchase.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Set

from whale_consensus.config import Settings
from whale_consensus.core.models import PurchaseEvent
from whale_consensus.core.rpc_client import RPCClientWithFallback
from whale_consensus.core.transaction_parser import parse_token_purchase
from whale_consensus.exceptions import NetworkException, ParseException

logger = logging.getLogger("whale_consensus.source")


class RpcPurchaseSource:
    """
    Fetches new purchases for one wallet at a time.

    The cursor is inclusive, so signatures already fetched are remembered
    per wallet. A signature is forgotten once it drops out of the wallet's
    newest ``signature_limit`` signatures: it can never be returned again.
    """

    def __init__(
        self,
        rpc: RPCClientWithFallback,
        price_provider: Callable[[], float],
        signature_limit: int = 15,
    ):
        self.rpc = rpc
        self.price_provider = price_provider
        self.signature_limit = signature_limit
        self._seen_signatures: Dict[str, Set[str]] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        rpc: RPCClientWithFallback,
        price_provider: Callable[[], float],
    ) -> "RpcPurchaseSource":
        return cls(
            rpc,
            price_provider,
            signature_limit=settings.RPC_SIGNATURE_LIMIT,
        )

    async def fetch_new_purchases(
        self,
        wallet_address: str,
        since: float,
        wallet_name: Optional[str] = None,
    ) -> List[PurchaseEvent]:
        signatures = await self.rpc.get_signatures_for_address(
            wallet_address, limit=self.signature_limit
        )
        listed = {info.get("signature") for info in signatures if info.get("signature")}
        seen = self._seen_signatures.setdefault(wallet_address, set())
        seen &= listed

        candidates = []
        for info in signatures:
            if info.get("err") is not None:
                continue
            block_time = info.get("blockTime")
            if not block_time or block_time < since:
                continue
            signature = info.get("signature", "")
            if not signature or signature in seen:
                continue
            candidates.append((signature, float(block_time)))

        if not candidates:
            return []

        price = self.price_provider()
        results = await asyncio.gather(
            *(
                self._fetch_one(sig, block_time, wallet_address, wallet_name, price, seen)
                for sig, block_time in candidates
            )
        )
        purchases = [p for p in results if p is not None]
        if purchases:
            logger.debug(
                "%s: %d/%d signatures were purchases",
                wallet_name or wallet_address[:8], len(purchases), len(candidates),
            )
        return purchases

    async def _fetch_one(
        self,
        signature: str,
        block_time: float,
        wallet_address: str,
        wallet_name: Optional[str],
        price: float,
        seen: Set[str],
    ) -> Optional[PurchaseEvent]:
        try:
            tx = await self.rpc.get_transaction(signature)
        except NetworkException as e:
            # Not marked as seen: retried next cycle
            logger.debug("getTransaction %s failed: %s", signature[:16], e)
            return None
        if tx is None:
            return None
        seen.add(signature)
        try:
            return parse_token_purchase(
                tx, wallet_address, signature, price, wallet_name, fallback_time=block_time
            )
        except ParseException as e:
            logger.warning("Skipping unparseable transaction: %s", e)
            return None
