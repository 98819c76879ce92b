"""Tests for round records, the round arena and the phase machine."""

import pytest

from rewardrounds.exceptions import (
    DuplicateRegistrationError,
    InputValidationError,
    PhaseViolationError,
)
from rewardrounds.ledger import Phase, PhaseMachine, RoundLedger, RoundRecord


# ---------------------------------------------------------------------------
# RoundRecord
# ---------------------------------------------------------------------------

class TestRoundRecord:
    def test_register(self):
        record = RoundRecord(round_id=1)
        record.register("alice")
        assert record.is_registered("alice")
        assert not record.is_registered("bob")
        with pytest.raises(DuplicateRegistrationError):
            record.register("alice")

    def test_membership_restored_from_registrants(self):
        record = RoundRecord(round_id=3, registrants=["alice", "bob"])
        assert record.is_registered("bob")

    def test_reassigning_score_replaces_total(self):
        record = RoundRecord(round_id=1)
        record.register("alice")
        record.register("bob")
        record.assign_score("alice", 10)
        record.assign_score("bob", 5)
        record.assign_score("alice", 3)
        assert record.total_score == 8
        assert record.score_of("alice") == 3

    def test_share_requires_sealed_pool(self):
        record = RoundRecord(round_id=1, registrants=["alice"])
        record.assign_score("alice", 1)
        record.add_to_pool(10)
        assert record.share_of("alice") == 0
        record.seal_pool(10)
        assert record.share_of("alice") == 10

    def test_sealed_pool_is_immutable(self):
        record = RoundRecord(round_id=1)
        record.seal_pool(5)
        with pytest.raises(PhaseViolationError):
            record.seal_pool(6)
        with pytest.raises(PhaseViolationError):
            record.add_to_pool(1)
        assert record.reward_pool == 5

    def test_unregistered_scores_pay_nothing(self):
        record = RoundRecord(round_id=1, scores={"ghost": 5}, total_score=5)
        record.seal_pool(10)
        assert record.share_of("ghost") == 0

    def test_share_rounds_down(self):
        record = RoundRecord(round_id=1, registrants=["a", "b", "c"])
        for p in ("a", "b", "c"):
            record.assign_score(p, 1)
        record.seal_pool(10)
        assert [record.share_of(p) for p in ("a", "b", "c")] == [3, 3, 3]

    def test_record_and_revert_claim(self):
        record = RoundRecord(round_id=1, registrants=["alice"])
        record.assign_score("alice", 1)
        record.seal_pool(10)

        record.record_claim("alice", 10)
        assert record.has_claimed("alice")
        assert record.claimable_by("alice") == 0
        assert record.unclaimed == 0

        record.revert_claim("alice")
        assert not record.has_claimed("alice")
        assert record.claimable_by("alice") == 10
        assert record.unclaimed == 10

    def test_stats(self):
        record = RoundRecord(round_id=2, registrants=["a", "b"])
        record.assign_score("a", 4)
        record.seal_pool(8)
        record.record_claim("a", 8)
        stats = record.stats()
        assert stats.round_id == 2
        assert stats.participant_count == 2
        assert stats.scored_count == 1
        assert stats.claimed_amount == 8
        assert stats.unclaimed == 0
        assert stats.sealed


# ---------------------------------------------------------------------------
# RoundLedger
# ---------------------------------------------------------------------------

class TestRoundLedger:
    def test_touch_creates_lazily(self):
        ledger = RoundLedger()
        assert len(ledger) == 0
        record = ledger.touch(3)
        assert record.round_id == 3
        assert [r.round_id for r in ledger] == [1, 2, 3]
        assert ledger.touch(3) is record

    def test_peek_does_not_create(self):
        ledger = RoundLedger()
        record = ledger.peek(5)
        assert record.round_id == 5
        assert len(ledger) == 0

    def test_invalid_round_id(self):
        with pytest.raises(InputValidationError):
            RoundLedger().touch(0)

    def test_rounds_must_be_contiguous(self):
        with pytest.raises(ValueError):
            RoundLedger([RoundRecord(round_id=2)])

    def test_span_clamps_to_existing(self):
        ledger = RoundLedger()
        ledger.touch(2)
        assert [r.round_id for r in ledger.span(0, 9)] == [1, 2]

    def test_outstanding(self):
        ledger = RoundLedger()
        for round_id, pool in ((1, 10), (2, 20), (3, 30)):
            ledger.touch(round_id).seal_pool(pool)
        ledger.touch(2).record_claim("y", 5)
        assert ledger.outstanding(before_round=3) == 10 + 15
        assert ledger.outstanding(before_round=1) == 0


# ---------------------------------------------------------------------------
# PhaseMachine
# ---------------------------------------------------------------------------

class TestPhaseMachine:
    def test_cycle(self):
        machine = PhaseMachine()
        assert machine.advance() is Phase.ACTIVE
        assert machine.advance() is Phase.DISTRIBUTION
        assert machine.current_round == 1
        assert machine.advance() is Phase.REGISTRATION
        assert machine.current_round == 2

    def test_require(self):
        machine = PhaseMachine()
        machine.require(Phase.REGISTRATION, "register")
        with pytest.raises(PhaseViolationError, match="requires active"):
            machine.require(Phase.ACTIVE, "load scores")

    def test_restore(self):
        machine = PhaseMachine(current_round=7, phase=Phase.DISTRIBUTION)
        assert machine.current_round == 7
        assert machine.phase is Phase.DISTRIBUTION

    def test_invalid_round(self):
        with pytest.raises(ValueError):
            PhaseMachine(current_round=0)
