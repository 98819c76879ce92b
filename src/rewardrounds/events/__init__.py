"""Event bus and payout indexer for RewardRounds."""

from .bus import (
    ALL_EVENT_TYPES,
    EVENT_FUNDS_DEPOSITED,
    EVENT_FUNDS_WITHDRAWN,
    EVENT_PARTICIPANT_REGISTERED,
    EVENT_PHASE_CHANGED,
    EVENT_REWARD_CLAIMED,
    EVENT_ROUND_STARTED,
    EVENT_SCORES_LOADED,
    Event,
    EventBus,
    EventHandler,
    InMemoryEventBus,
)
from .indexer import IndexerSnapshot, PayoutIndexer

__all__ = [
    "Event",
    "EventBus",
    "EventHandler",
    "InMemoryEventBus",
    "PayoutIndexer",
    "IndexerSnapshot",
    "EVENT_PARTICIPANT_REGISTERED",
    "EVENT_SCORES_LOADED",
    "EVENT_REWARD_CLAIMED",
    "EVENT_PHASE_CHANGED",
    "EVENT_ROUND_STARTED",
    "EVENT_FUNDS_DEPOSITED",
    "EVENT_FUNDS_WITHDRAWN",
    "ALL_EVENT_TYPES",
]
