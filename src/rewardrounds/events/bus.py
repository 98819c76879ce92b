"""
Settlement event bus.

The engine publishes an :class:`Event` once an operation has committed.
Events describe what already happened; nothing inside the engine reads
them back, and a subscriber that raises is logged and skipped so it can
neither undo the operation nor starve the subscribers after it.
"""

from __future__ import annotations

import fnmatch
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

logger = logging.getLogger(__name__)


EVENT_PARTICIPANT_REGISTERED = "participant.registered"
EVENT_SCORES_LOADED = "scores.loaded"
EVENT_REWARD_CLAIMED = "reward.claimed"
EVENT_PHASE_CHANGED = "phase.changed"
EVENT_ROUND_STARTED = "round.started"
EVENT_FUNDS_DEPOSITED = "funds.deposited"
EVENT_FUNDS_WITHDRAWN = "funds.withdrawn"

ALL_EVENT_TYPES = (
    EVENT_PARTICIPANT_REGISTERED,
    EVENT_SCORES_LOADED,
    EVENT_REWARD_CLAIMED,
    EVENT_PHASE_CHANGED,
    EVENT_ROUND_STARTED,
    EVENT_FUNDS_DEPOSITED,
    EVENT_FUNDS_WITHDRAWN,
)

_sequence = itertools.count(1)


@dataclass(frozen=True)
class Event:
    """A committed change in a settlement engine.

    ``source`` is the principal that caused the change (participant,
    administrator or depositor). ``sequence`` orders events emitted by
    one process.
    """

    event_type: str
    source: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sequence: int = field(default_factory=lambda: next(_sequence))

    @property
    def event_id(self) -> str:
        return f"evt-{self.sequence}"


EventHandler = Callable[[Event], Any]


class EventBus(ABC):
    """Where a settlement engine publishes its events."""

    @abstractmethod
    def emit(self, event: Event) -> None:
        """Deliver *event* to every matching subscriber."""

    @abstractmethod
    def subscribe(self, pattern: str, handler: EventHandler) -> None:
        """Call *handler* for events whose type matches a glob *pattern*.

        Args:
            pattern: Glob-style pattern such as ``reward.*`` or ``*``.
            handler: Callable invoked with each matching Event.
        """

    @abstractmethod
    def unsubscribe(self, handler: EventHandler) -> None:
        """Drop every subscription held by *handler*."""


@dataclass
class _Subscription:
    pattern: str
    handler: EventHandler

    def matches(self, event_type: str) -> bool:
        return fnmatch.fnmatchcase(event_type, self.pattern)


class InMemoryEventBus(EventBus):
    """Synchronous in-process bus.

    Handlers run on the emitting thread in subscription order. A handler
    that raises is logged and counted in :attr:`failed_deliveries`; the
    remaining handlers still receive the event.
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []
        self.failed_deliveries = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def emit(self, event: Event) -> None:
        # Handlers may (un)subscribe while an event is being delivered
        for subscription in tuple(self._subscriptions):
            if not subscription.matches(event.event_type):
                continue
            try:
                subscription.handler(event)
            except Exception:
                self.failed_deliveries += 1
                logger.exception(
                    "Handler for %r failed on %s", subscription.pattern, event.event_type
                )

    def subscribe(self, pattern: str, handler: EventHandler) -> None:
        self._subscriptions.append(_Subscription(pattern, handler))

    def unsubscribe(self, handler: EventHandler) -> None:
        self._subscriptions = [s for s in self._subscriptions if s.handler != handler]
