"""
Settlement Engine

Multi-round, score-weighted reward settlement:

1. Participants register for the current round.
2. The administrator funds the round and opens the active phase.
3. The administrator loads scores, which seals the round's pool and opens
   claiming.
4. Participants claim whenever they like; one claim settles every unpaid
   round at once.
5. The administrator starts a new round. Earlier rounds stay claimable.

Every operation is all-or-nothing. Claim settlement records all state
before the single outbound transfer and undoes it if the transfer fails.
"""

from __future__ import annotations

import logging
import threading
from bisect import bisect_left
from collections import defaultdict
from typing import Optional, Sequence

from pydantic import BaseModel

from rewardrounds.config import EngineConfig, FundingMode
from rewardrounds.events.bus import (
    EVENT_FUNDS_DEPOSITED,
    EVENT_FUNDS_WITHDRAWN,
    EVENT_PARTICIPANT_REGISTERED,
    EVENT_PHASE_CHANGED,
    EVENT_REWARD_CLAIMED,
    EVENT_ROUND_STARTED,
    EVENT_SCORES_LOADED,
    Event,
    EventBus,
)
from rewardrounds.exceptions import (
    InputValidationError,
    InsufficientBalanceError,
    NothingToClaimError,
    NotRegisteredError,
    ReentrantClaimError,
    TransferFailureError,
)
from rewardrounds.ledger.arena import RoundLedger
from rewardrounds.ledger.phase import Phase, PhaseMachine
from rewardrounds.ledger.round import RoundRecord, RoundStats
from rewardrounds.observability.metrics import SettlementMetrics
from rewardrounds.settlement.auth import Authorizer, OwnerAuthorizer, require_admin
from rewardrounds.settlement.pool import pool_accounting_for
from rewardrounds.settlement.treasury import InMemoryTreasury, Treasury
from rewardrounds.settlement.snapshot import EngineSnapshot

logger = logging.getLogger(__name__)


class RoundPayout(BaseModel):
    """Amount paid to a participant out of one round."""

    round_id: int
    amount: int


class ClaimReceipt(BaseModel):
    """Result of a successful claim."""

    participant: str
    total: int
    payouts: list[RoundPayout]


def _check_principal(value: str, what: str) -> None:
    if not isinstance(value, str) or not value:
        raise InputValidationError(f"{what} must be a non-empty string")


def _check_amount(value: int, what: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InputValidationError(f"{what} must be an integer, got {value!r}")
    if value <= 0:
        raise InputValidationError(f"{what} must be positive, got {value}")


class SettlementEngine:
    """Round ledger, phase machine and claim settlement behind one API.

    Args:
        authorizer: Decides who may run administrator operations.
        treasury: Holder of the engine's funds. Defaults to an empty
            :class:`InMemoryTreasury`.
        config: Engine configuration (funding mode, pagination bound).
        bus: Optional event bus for external observers.
        metrics: Optional Prometheus metrics.

    Example:
        >>> engine = SettlementEngine(OwnerAuthorizer("admin"))
        >>> engine.register("alice")
        >>> engine.deposit(10, sender="sponsor")
        >>> engine.start_active_phase("admin")
        >>> engine.set_scores("admin", ["alice"], [700])
        >>> engine.claim("alice").total
        10
    """

    def __init__(
        self,
        authorizer: Authorizer,
        treasury: Optional[Treasury] = None,
        config: Optional[EngineConfig] = None,
        bus: Optional[EventBus] = None,
        metrics: Optional[SettlementMetrics] = None,
    ) -> None:
        self._authorizer = authorizer
        self._treasury = treasury if treasury is not None else InMemoryTreasury()
        self._config = config or EngineConfig()
        self._accounting = pool_accounting_for(self._config.funding_mode)
        self._bus = bus
        self._metrics = metrics

        self._phase = PhaseMachine()
        self._ledger = RoundLedger()
        self._ledger.touch(1)

        # Rounds each participant registered in, ascending
        self._participations: dict[str, list[int]] = defaultdict(list)
        # Next round id a claim has to look at, per participant
        self._cursors: dict[str, int] = {}
        self._in_flight: set[str] = set()
        self._lock = threading.RLock()

        if self._metrics is not None:
            self._metrics.set_round(self._phase.current_round)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def funding_mode(self) -> FundingMode:
        return self._accounting.mode

    @property
    def authorizer(self) -> Authorizer:
        return self._authorizer

    @property
    def treasury(self) -> Treasury:
        return self._treasury

    @property
    def current_round(self) -> int:
        return self._phase.current_round

    @property
    def current_phase(self) -> Phase:
        return self._phase.phase

    # ------------------------------------------------------------------
    # Registration and phases
    # ------------------------------------------------------------------

    def register(self, participant: str) -> None:
        """Register *participant* for the current round.

        Raises:
            PhaseViolationError: Outside the registration phase.
            DuplicateRegistrationError: Already registered this round.
        """
        _check_principal(participant, "Participant")
        with self._lock:
            self._phase.require(Phase.REGISTRATION, "register")
            round_id = self._phase.current_round
            self._ledger.touch(round_id).register(participant)
            self._participations[participant].append(round_id)

            logger.info("Registered %s for round %d", participant, round_id)
            if self._metrics is not None:
                self._metrics.record_registration()
            self._emit(EVENT_PARTICIPANT_REGISTERED, participant, round_id=round_id)

    def start_active_phase(self, caller: str) -> None:
        """Close registration for the current round."""
        with self._lock:
            require_admin(self._authorizer, caller, "start the active phase")
            self._phase.require(Phase.REGISTRATION, "start the active phase")
            changed = self._advance()
            self._emit(EVENT_PHASE_CHANGED, caller, **changed)

    def start_new_round(self, caller: str) -> int:
        """Open the next round for registration and return its id."""
        with self._lock:
            require_admin(self._authorizer, caller, "start a new round")
            self._phase.require(Phase.DISTRIBUTION, "start a new round")
            changed = self._advance()
            round_id = self._phase.current_round
            self._ledger.touch(round_id)

            logger.info("Started round %d", round_id)
            if self._metrics is not None:
                self._metrics.set_round(round_id)
            self._emit(EVENT_PHASE_CHANGED, caller, **changed)
            self._emit(EVENT_ROUND_STARTED, caller, round_id=round_id)
            return round_id

    def _advance(self) -> dict[str, object]:
        """Move the phase machine on and return the phase.changed payload."""
        previous = self._phase.phase
        current = self._phase.advance()
        return {
            "round_id": self._phase.current_round,
            "previous": previous.value,
            "phase": current.value,
        }

    # ------------------------------------------------------------------
    # Funding
    # ------------------------------------------------------------------

    def deposit(self, amount: int, sender: Optional[str] = None) -> None:
        """Accept inbound funds.

        Direct funding credits the current round's pool, which is only
        possible until its scores are loaded. Carry-over funding only raises
        the held balance.

        Raises:
            InputValidationError: If *amount* is not a positive integer.
            PhaseViolationError: Direct funding into a sealed round.
        """
        _check_amount(amount, "Deposit amount")
        with self._lock:
            round_id = self._phase.current_round
            self._accounting.on_deposit(self._ledger.touch(round_id), amount)
            self._treasury.receive(amount, sender)

            held = self._treasury.balance()
            logger.info("Deposit of %d from %s during round %d", amount, sender or "unknown", round_id)
            if self._metrics is not None:
                self._metrics.record_deposit(amount, held)
            self._emit(
                EVENT_FUNDS_DEPOSITED,
                sender or "unknown",
                round_id=round_id,
                amount=amount,
            )

    # ------------------------------------------------------------------
    # Score loading
    # ------------------------------------------------------------------

    def set_scores(
        self,
        caller: str,
        participants: Sequence[str],
        scores: Sequence[int],
    ) -> RoundStats:
        """Load the round's scores, seal its pool and open claiming.

        A participant listed twice keeps the later score; the total only
        counts final scores.

        Raises:
            UnauthorizedAccessError: Caller is not an administrator.
            PhaseViolationError: Outside the active phase.
            InputValidationError: Empty batch, length mismatch, or a score
                that is not a positive integer.
            NotRegisteredError: A participant did not register this round.
            InsufficientBalanceError: Carry-over funding found no new funds.
        """
        with self._lock:
            require_admin(self._authorizer, caller, "load scores")
            self._phase.require(Phase.ACTIVE, "load scores")

            if len(participants) == 0:
                raise InputValidationError("Score batch is empty")
            if len(participants) != len(scores):
                raise InputValidationError(
                    f"Got {len(participants)} participants but {len(scores)} scores"
                )

            round_id = self._phase.current_round
            record = self._ledger.touch(round_id)
            for participant, score in zip(participants, scores):
                _check_amount(score, f"Score for {participant}")
                if not record.is_registered(participant):
                    raise NotRegisteredError(
                        f"{participant} is not registered in round {round_id}"
                    )

            pool = self._accounting.pool_for(self._ledger, record, self._treasury.balance())

            for participant, score in zip(participants, scores):
                record.assign_score(participant, score)
            record.seal_pool(pool)
            changed = self._advance()

            logger.info(
                "Loaded %d scores for round %d (total %d, pool %d)",
                len(set(participants)), round_id, record.total_score, pool,
            )
            self._emit(
                EVENT_SCORES_LOADED,
                caller,
                round_id=round_id,
                participant_count=len(set(participants)),
                total_score=record.total_score,
                reward_pool=pool,
            )
            self._emit(EVENT_PHASE_CHANGED, caller, **changed)
            return record.stats()

    # ------------------------------------------------------------------
    # Claim settlement
    # ------------------------------------------------------------------

    def claim(self, participant: str, max_rounds: Optional[int] = None) -> ClaimReceipt:
        """Pay *participant* everything owed across all unclaimed rounds.

        Args:
            participant: Who is claiming.
            max_rounds: Bound on the rounds examined in this call. Defaults
                to ``config.max_rounds_per_claim``.

        Raises:
            NothingToClaimError: Nothing is owed (also raised for a nested
                claim while this participant's payout is in flight).
            TransferFailureError: The payout failed; no state was changed.
        """
        _check_principal(participant, "Participant")
        with self._lock:
            if participant in self._in_flight:
                raise ReentrantClaimError(
                    f"A claim for {participant} is already being settled"
                )

            payable, next_cursor = self._scan(participant, self._limit(max_rounds))
            previous_cursor = self._cursors.get(participant)
            # Skipping final rounds never changes what is owed
            self._cursors[participant] = next_cursor

            total = sum(amount for _, amount in payable)
            if total == 0:
                if self._metrics is not None:
                    self._metrics.record_claim("nothing")
                raise NothingToClaimError(f"Nothing to claim for {participant}")

            for record, amount in payable:
                record.record_claim(participant, amount)
                logger.debug(
                    "Settled %d for %s from round %d", amount, participant, record.round_id
                )

            self._in_flight.add(participant)
            try:
                sent = self._treasury.send(participant, total)
            except Exception as exc:
                self._rollback_claim(participant, payable, previous_cursor)
                raise TransferFailureError(
                    f"Transfer of {total} to {participant} raised {exc!r}"
                ) from exc
            finally:
                self._in_flight.discard(participant)

            if not sent:
                self._rollback_claim(participant, payable, previous_cursor)
                raise TransferFailureError(f"Transfer of {total} to {participant} failed")

            logger.info(
                "Paid %d to %s across %d round(s)", total, participant, len(payable)
            )
            if self._metrics is not None:
                self._metrics.record_claim("paid", total, self._treasury.balance())
            for record, amount in payable:
                self._emit(
                    EVENT_REWARD_CLAIMED,
                    participant,
                    participant=participant,
                    round_id=record.round_id,
                    amount=amount,
                )

            return ClaimReceipt(
                participant=participant,
                total=total,
                payouts=[RoundPayout(round_id=r.round_id, amount=a) for r, a in payable],
            )

    def _rollback_claim(
        self,
        participant: str,
        payable: list[tuple[RoundRecord, int]],
        previous_cursor: Optional[int],
    ) -> None:
        for record, _ in payable:
            record.revert_claim(participant)
        if previous_cursor is None:
            self._cursors.pop(participant, None)
        else:
            self._cursors[participant] = previous_cursor
        logger.warning("Rolled back claim for %s after failed transfer", participant)
        if self._metrics is not None:
            self._metrics.record_claim("failed")

    def _limit(self, max_rounds: Optional[int]) -> Optional[int]:
        limit = max_rounds if max_rounds is not None else self._config.max_rounds_per_claim
        if limit is not None and limit < 1:
            raise InputValidationError(f"max_rounds must be at least 1, got {limit}")
        return limit

    def _is_final(self, round_id: int) -> bool:
        return round_id < self._phase.current_round or self._phase.phase is Phase.DISTRIBUTION

    def _scan(
        self, participant: str, limit: Optional[int]
    ) -> tuple[list[tuple[RoundRecord, int]], int]:
        """Find payable rounds from the participant's cursor onward.

        Returns the payable ``(record, amount)`` pairs and the cursor to
        store: one past the leading run of rounds that are final.
        """
        cursor = self._cursors.get(participant, 1)
        rounds = self._participations.get(participant, [])
        start = bisect_left(rounds, cursor)
        window = rounds[start:] if limit is None else rounds[start:start + limit]

        payable: list[tuple[RoundRecord, int]] = []
        next_cursor = cursor
        contiguous = True
        for round_id in window:
            record = self._ledger.peek(round_id)
            amount = record.claimable_by(participant)
            if amount > 0:
                payable.append((record, amount))
            if contiguous and self._is_final(round_id):
                next_cursor = round_id + 1
            else:
                contiguous = False
        return payable, next_cursor

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def emergency_withdraw(self, caller: str, amount: int, recipient: str) -> None:
        """Move held funds to *recipient*, bypassing round accounting.

        Raises:
            UnauthorizedAccessError: Caller is not an administrator.
            InputValidationError: Non-positive amount or empty recipient.
            InsufficientBalanceError: More than is held.
            TransferFailureError: The transfer failed.
        """
        with self._lock:
            require_admin(self._authorizer, caller, "withdraw funds")
            _check_amount(amount, "Withdrawal amount")
            _check_principal(recipient, "Recipient")
            held = self._treasury.balance()
            if amount > held:
                raise InsufficientBalanceError(
                    f"Cannot withdraw {amount}; only {held} is held"
                )
            if not self._treasury.send(recipient, amount):
                raise TransferFailureError(f"Withdrawal of {amount} to {recipient} failed")

            logger.warning("Emergency withdrawal of %d to %s by %s", amount, recipient, caller)
            if self._metrics is not None:
                self._metrics.record_withdrawal(amount, self._treasury.balance())
            self._emit(EVENT_FUNDS_WITHDRAWN, caller, amount=amount, recipient=recipient)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def held_balance(self) -> int:
        return self._treasury.balance()

    def outstanding_allocations(self) -> int:
        """Funds committed to rounds and not yet paid out.

        Covers sealed pools and, under direct funding, deposits already
        credited to the open round.
        """
        with self._lock:
            return self._ledger.outstanding(before_round=len(self._ledger) + 1)

    def get_claimable_amount(self, participant: str) -> int:
        """Amount *participant* could claim from the current round alone."""
        with self._lock:
            return self._ledger.peek(self._phase.current_round).claimable_by(participant)

    def get_total_claimable_amount(self, participant: str, max_rounds: Optional[int] = None) -> int:
        """Amount a claim by *participant* would pay right now."""
        with self._lock:
            payable, _ = self._scan(participant, self._limit(max_rounds))
            return sum(amount for _, amount in payable)

    def get_unclaimed_rounds(self, participant: str, max_rounds: Optional[int] = None) -> list[int]:
        """Ids of rounds that would pay *participant* on the next claim."""
        with self._lock:
            payable, _ = self._scan(participant, self._limit(max_rounds))
            return [record.round_id for record, _ in payable]

    def claim_cursor(self, participant: str) -> int:
        """Lowest round id the next claim by *participant* will examine."""
        return self._cursors.get(participant, 1)

    def get_registrants(self, round_id: Optional[int] = None) -> list[str]:
        with self._lock:
            return list(self._round(round_id).registrants)

    def get_registrant_count(self, round_id: Optional[int] = None) -> int:
        with self._lock:
            return len(self._round(round_id).registrants)

    def get_round_stats(self, round_id: Optional[int] = None) -> RoundStats:
        with self._lock:
            return self._round(round_id).stats()

    def get_score(self, participant: str, round_id: Optional[int] = None) -> int:
        with self._lock:
            return self._round(round_id).score_of(participant)

    def is_registered(self, participant: str, round_id: Optional[int] = None) -> bool:
        with self._lock:
            return self._round(round_id).is_registered(participant)

    def has_claimed(self, participant: str, round_id: Optional[int] = None) -> bool:
        with self._lock:
            return self._round(round_id).has_claimed(participant)

    def _round(self, round_id: Optional[int]) -> RoundRecord:
        return self._ledger.peek(round_id if round_id is not None else self._phase.current_round)

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> EngineSnapshot:
        """Capture the engine's full state.

        Only an :class:`OwnerAuthorizer` is recorded. Any other authorizer is
        flagged as external and must be passed back to :meth:`from_snapshot`.
        """
        external = not isinstance(self._authorizer, OwnerAuthorizer)
        owner = None if external else self._authorizer.owner
        with self._lock:
            return EngineSnapshot(
                config=self._config,
                owner=owner,
                external_authorizer=external,
                current_round=self._phase.current_round,
                phase=self._phase.phase,
                held_balance=self._treasury.balance(),
                rounds=[record.model_copy(deep=True) for record in self._ledger],
                cursors=dict(self._cursors),
            )

    @classmethod
    def from_snapshot(
        cls,
        snapshot: EngineSnapshot,
        authorizer: Optional[Authorizer] = None,
        treasury: Optional[Treasury] = None,
        bus: Optional[EventBus] = None,
        metrics: Optional[SettlementMetrics] = None,
    ) -> "SettlementEngine":
        """Rebuild an engine from a snapshot.

        The owner and held balance recorded in the snapshot are used unless
        an authorizer or treasury is supplied.

        Raises:
            InputValidationError: The snapshot was taken with an external
                authorizer and none is supplied.
        """
        if snapshot.external_authorizer and authorizer is None:
            raise InputValidationError(
                "Snapshot was taken with an external authorizer; pass one to restore it"
            )
        engine = cls(
            authorizer if authorizer is not None else OwnerAuthorizer(snapshot.owner),
            treasury if treasury is not None else InMemoryTreasury(snapshot.held_balance),
            config=snapshot.config,
            bus=bus,
            metrics=metrics,
        )
        engine._phase = PhaseMachine(snapshot.current_round, snapshot.phase)
        engine._ledger = RoundLedger(record.model_copy(deep=True) for record in snapshot.rounds)
        engine._ledger.touch(snapshot.current_round)
        for record in engine._ledger:
            for participant in record.registrants:
                engine._participations[participant].append(record.round_id)
        engine._cursors = dict(snapshot.cursors)
        if metrics is not None:
            metrics.set_round(snapshot.current_round)
        return engine

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit(self, event_type: str, source: str, **payload: object) -> None:
        """Publish an event after the operation has committed.

        Observers cannot undo or split an operation, so a failing bus is
        logged and the caller still sees the committed result.
        """
        if self._bus is None:
            return
        try:
            self._bus.emit(Event(event_type=event_type, source=source, payload=dict(payload)))
        except Exception:
            logger.exception("Event bus failed to deliver %s", event_type)
