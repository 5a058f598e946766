"""
Consensus Window

Per-token sliding window of whale purchases.

Events are expired by their own timestamp, not by arrival order: wallets
are polled in parallel, so a purchase made earlier can arrive later.
"""
from __future__ import annotations

from whale_consensus.core.models import PurchaseEvent


class ConsensusWindow:
    """Purchases of one token that are still inside ``window_sec``."""

    def __init__(self, token_mint: str, window_sec: float) -> None:
        self.token_mint = token_mint
        self.window_sec = window_sec
        self._events: list[PurchaseEvent] = []

    def __len__(self) -> int:
        return len(self._events)

    @property
    def events(self) -> tuple[PurchaseEvent, ...]:
        return tuple(self._events)

    def is_empty(self) -> bool:
        return not self._events

    def add(self, event: PurchaseEvent) -> None:
        if event.token_mint != self.token_mint:
            raise ValueError(
                f"event for {event.token_mint} added to window {self.token_mint}"
            )
        self._events.append(event)

    def purge_expired(self, now: float) -> int:
        """
        Drop events older than the window. Returns how many were removed.

        Expiry is strict: an event exactly ``window_sec`` old is kept.
        """
        before = len(self._events)
        self._events = [e for e in self._events if now - e.timestamp <= self.window_sec]
        return before - len(self._events)

    def unique_whales(self) -> list[PurchaseEvent]:
        """
        One event per wallet, first inserted wins, in insertion order.

        Later buys of the same token by the same wallet do not add to the
        aggregate.
        """
        seen: dict[str, PurchaseEvent] = {}
        for event in self._events:
            if event.wallet_address not in seen:
                seen[event.wallet_address] = event
        return list(seen.values())

    def unique_whale_count(self) -> int:
        return len({e.wallet_address for e in self._events})
