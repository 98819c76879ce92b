"""
Payout indexer.

Rebuilds deposit and payout history purely from emitted events, the way an
off-process indexer would.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from .bus import (
    EVENT_FUNDS_DEPOSITED,
    EVENT_FUNDS_WITHDRAWN,
    EVENT_REWARD_CLAIMED,
    EVENT_SCORES_LOADED,
    Event,
    EventBus,
)


@dataclass
class IndexerSnapshot:
    """Point-in-time view of indexed settlement activity."""

    total_deposited: int = 0
    total_paid: int = 0
    total_withdrawn: int = 0
    rounds_scored: int = 0
    paid_by_participant: dict[str, int] = field(default_factory=dict)
    paid_by_round: dict[int, int] = field(default_factory=dict)
    events_by_type: dict[str, int] = field(default_factory=dict)


class PayoutIndexer:
    """Subscribes to all events and aggregates deposits and payouts.

    Args:
        bus: The event bus to subscribe to.
    """

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self._deposited = 0
        self._withdrawn = 0
        self._rounds_scored = 0
        self._by_participant: dict[str, int] = defaultdict(int)
        self._by_round: dict[int, int] = defaultdict(int)
        self._events_by_type: dict[str, int] = defaultdict(int)
        self._bus.subscribe("*", self._handle_event)

    def _handle_event(self, event: Event) -> None:
        self._events_by_type[event.event_type] += 1
        payload = event.payload

        if event.event_type == EVENT_REWARD_CLAIMED:
            self._by_participant[payload["participant"]] += payload["amount"]
            self._by_round[payload["round_id"]] += payload["amount"]
        elif event.event_type == EVENT_FUNDS_DEPOSITED:
            self._deposited += payload["amount"]
        elif event.event_type == EVENT_FUNDS_WITHDRAWN:
            self._withdrawn += payload["amount"]
        elif event.event_type == EVENT_SCORES_LOADED:
            self._rounds_scored += 1

    def paid_to(self, participant: str) -> int:
        return self._by_participant.get(participant, 0)

    def close(self) -> None:
        """Stop receiving events."""
        self._bus.unsubscribe(self._handle_event)

    def get_stats(self) -> IndexerSnapshot:
        return IndexerSnapshot(
            total_deposited=self._deposited,
            total_paid=sum(self._by_participant.values()),
            total_withdrawn=self._withdrawn,
            rounds_scored=self._rounds_scored,
            paid_by_participant=dict(self._by_participant),
            paid_by_round=dict(self._by_round),
            events_by_type=dict(self._events_by_type),
        )
