"""Tests for the multi-round settlement engine."""

import pytest

from rewardrounds import (
    DuplicateRegistrationError,
    EngineConfig,
    InMemoryTreasury,
    InputValidationError,
    InsufficientBalanceError,
    NothingToClaimError,
    NotRegisteredError,
    OwnerAuthorizer,
    Phase,
    PhaseViolationError,
    SettlementEngine,
    UnauthorizedAccessError,
)


OWNER = "admin"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _engine(**kwargs) -> SettlementEngine:
    return SettlementEngine(OwnerAuthorizer(OWNER), **kwargs)


def _run_round(
    engine: SettlementEngine,
    scores: dict[str, int],
    funds: int = 0,
    unscored: tuple[str, ...] = (),
) -> None:
    """Register, fund, activate and score the current round."""
    for participant in list(scores) + list(unscored):
        engine.register(participant)
    if funds:
        engine.deposit(funds, sender="sponsor")
    engine.start_active_phase(OWNER)
    engine.set_scores(OWNER, list(scores), list(scores.values()))


# ---------------------------------------------------------------------------
# Phase gating
# ---------------------------------------------------------------------------

class TestPhaseGating:
    def test_fresh_engine_starts_in_registration(self):
        engine = _engine()
        assert engine.current_round == 1
        assert engine.current_phase is Phase.REGISTRATION

    def test_full_cycle(self):
        engine = _engine()
        _run_round(engine, {"alice": 1}, funds=5)
        assert engine.current_phase is Phase.DISTRIBUTION
        assert engine.start_new_round(OWNER) == 2
        assert engine.current_round == 2
        assert engine.current_phase is Phase.REGISTRATION

    def test_register_outside_registration(self):
        engine = _engine()
        engine.start_active_phase(OWNER)
        with pytest.raises(PhaseViolationError):
            engine.register("alice")

    def test_set_scores_outside_active(self):
        engine = _engine()
        engine.register("alice")
        with pytest.raises(PhaseViolationError):
            engine.set_scores(OWNER, ["alice"], [1])

    def test_set_scores_only_once_per_round(self):
        engine = _engine()
        _run_round(engine, {"alice": 1}, funds=5)
        with pytest.raises(PhaseViolationError):
            engine.set_scores(OWNER, ["alice"], [2])

    def test_new_round_outside_distribution(self):
        engine = _engine()
        with pytest.raises(PhaseViolationError):
            engine.start_new_round(OWNER)
        engine.start_active_phase(OWNER)
        with pytest.raises(PhaseViolationError):
            engine.start_new_round(OWNER)

    def test_activate_twice(self):
        engine = _engine()
        engine.start_active_phase(OWNER)
        with pytest.raises(PhaseViolationError):
            engine.start_active_phase(OWNER)

    def test_claim_allowed_in_every_phase(self):
        engine = _engine()
        _run_round(engine, {"alice": 1, "bob": 1, "carol": 1}, funds=30)
        assert engine.claim("alice").total == 10
        engine.start_new_round(OWNER)
        assert engine.claim("bob").total == 10
        engine.start_active_phase(OWNER)
        assert engine.claim("carol").total == 10


# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------

class TestAccessControl:
    @pytest.mark.parametrize(
        "call",
        [
            lambda e: e.start_active_phase("mallory"),
            lambda e: e.start_new_round("mallory"),
            lambda e: e.set_scores("mallory", ["alice"], [1]),
            lambda e: e.emergency_withdraw("mallory", 1, "mallory"),
        ],
    )
    def test_non_owner_rejected(self, call):
        engine = _engine(treasury=InMemoryTreasury(10))
        engine.register("alice")
        with pytest.raises(UnauthorizedAccessError):
            call(engine)

    def test_transferred_ownership_applies(self):
        authorizer = OwnerAuthorizer(OWNER)
        engine = SettlementEngine(authorizer)
        authorizer.transfer_ownership(OWNER, "ops")
        with pytest.raises(UnauthorizedAccessError):
            engine.start_active_phase(OWNER)
        engine.start_active_phase("ops")
        assert engine.current_phase is Phase.ACTIVE

    def test_renounced_ownership_locks_admin_operations(self):
        authorizer = OwnerAuthorizer(OWNER)
        engine = SettlementEngine(authorizer)
        authorizer.renounce_ownership(OWNER)
        assert authorizer.owner is None
        with pytest.raises(UnauthorizedAccessError):
            engine.start_active_phase(OWNER)
        with pytest.raises(UnauthorizedAccessError):
            authorizer.transfer_ownership(OWNER, "ops")


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------

class TestRegistration:
    def test_registrants_in_order(self):
        engine = _engine()
        for p in ("carol", "alice", "bob"):
            engine.register(p)
        assert engine.get_registrants() == ["carol", "alice", "bob"]
        assert engine.get_registrant_count() == 3
        assert engine.is_registered("alice")

    def test_duplicate_registration(self):
        engine = _engine()
        engine.register("alice")
        with pytest.raises(DuplicateRegistrationError):
            engine.register("alice")
        assert engine.get_registrant_count() == 1

    def test_registration_is_per_round(self):
        engine = _engine()
        _run_round(engine, {"alice": 1}, funds=5)
        engine.start_new_round(OWNER)
        assert not engine.is_registered("alice")
        engine.register("alice")
        assert engine.is_registered("alice", round_id=1)
        assert engine.is_registered("alice", round_id=2)

    def test_empty_participant_rejected(self):
        with pytest.raises(InputValidationError):
            _engine().register("")


# ---------------------------------------------------------------------------
# Score loading
# ---------------------------------------------------------------------------

class TestScoreLoading:
    def _active(self, *participants: str) -> SettlementEngine:
        engine = _engine()
        for p in participants:
            engine.register(p)
        engine.deposit(100)
        engine.start_active_phase(OWNER)
        return engine

    def test_empty_batch(self):
        engine = self._active("alice")
        with pytest.raises(InputValidationError):
            engine.set_scores(OWNER, [], [])

    def test_length_mismatch(self):
        engine = self._active("alice", "bob")
        with pytest.raises(InputValidationError):
            engine.set_scores(OWNER, ["alice", "bob"], [1])

    @pytest.mark.parametrize("bad_score", [0, -5, 1.5, True, "10"])
    def test_invalid_scores(self, bad_score):
        engine = self._active("alice")
        with pytest.raises(InputValidationError):
            engine.set_scores(OWNER, ["alice"], [bad_score])

    def test_unregistered_participant(self):
        engine = self._active("alice")
        with pytest.raises(NotRegisteredError):
            engine.set_scores(OWNER, ["alice", "bob"], [1, 1])

    def test_failure_leaves_no_trace(self):
        engine = self._active("alice", "bob")
        with pytest.raises(InputValidationError):
            engine.set_scores(OWNER, ["alice", "bob"], [5, 0])
        assert engine.get_score("alice") == 0
        assert engine.get_round_stats().total_score == 0
        assert engine.current_phase is Phase.ACTIVE
        engine.set_scores(OWNER, ["alice", "bob"], [5, 5])
        assert engine.get_round_stats().total_score == 10

    def test_duplicate_entry_keeps_final_score(self):
        engine = self._active("alice", "bob")
        stats = engine.set_scores(OWNER, ["alice", "bob", "alice"], [100, 200, 300])
        assert stats.total_score == 500
        assert engine.get_score("alice") == 300
        # 100 * 300 // 500
        assert engine.claim("alice").total == 60
        assert engine.claim("bob").total == 40

    def test_stats_after_loading(self):
        engine = self._active("alice", "bob", "carol")
        stats = engine.set_scores(OWNER, ["alice", "bob"], [3, 1])
        assert stats.round_id == 1
        assert stats.participant_count == 3
        assert stats.scored_count == 2
        assert stats.reward_pool == 100
        assert stats.sealed


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------

class TestClaims:
    def test_scenario_proportional_split(self):
        engine = _engine()
        _run_round(engine, {"alice": 700, "bob": 300}, funds=10)
        assert engine.get_round_stats().total_score == 1000
        assert engine.claim("alice").total == 7
        assert engine.claim("bob").total == 3
        assert engine.held_balance() == 0

    def test_second_claim_pays_nothing(self):
        engine = _engine()
        _run_round(engine, {"alice": 1, "bob": 1}, funds=10)
        engine.claim("alice")
        with pytest.raises(NothingToClaimError):
            engine.claim("alice")
        assert engine.held_balance() == 5

    def test_multi_round_claim_in_one_call(self):
        engine = _engine()
        _run_round(engine, {"alice": 1, "bob": 1}, funds=100)
        engine.start_new_round(OWNER)
        _run_round(engine, {"alice": 1, "bob": 2}, funds=60)
        engine.start_new_round(OWNER)
        _run_round(engine, {"alice": 1}, funds=90)

        assert engine.get_unclaimed_rounds("alice") == [1, 2, 3]
        receipt = engine.claim("alice")
        assert receipt.total == 50 + 20 + 90
        assert [(p.round_id, p.amount) for p in receipt.payouts] == [(1, 50), (2, 20), (3, 90)]

    def test_old_round_unaffected_by_later_rounds(self):
        engine = _engine()
        _run_round(engine, {"alice": 1, "bob": 3}, funds=40)
        for _ in range(3):
            engine.start_new_round(OWNER)
            _run_round(engine, {"bob": 1}, funds=7)

        stats = engine.get_round_stats(1)
        assert stats.reward_pool == 40
        assert stats.total_score == 4
        assert engine.get_unclaimed_rounds("alice") == [1]
        assert engine.claim("alice").total == 10

    def test_registered_without_score_gets_nothing(self):
        engine = _engine()
        _run_round(engine, {"alice": 5}, funds=50, unscored=("bob",))
        assert engine.get_round_stats().total_score == 5
        assert engine.get_claimable_amount("bob") == 0
        with pytest.raises(NothingToClaimError):
            engine.claim("bob")
        assert not engine.has_claimed("bob")
        assert engine.claim("alice").total == 50

    def test_unknown_participant(self):
        engine = _engine()
        _run_round(engine, {"alice": 1}, funds=5)
        with pytest.raises(NothingToClaimError):
            engine.claim("nobody")

    def test_zero_share_is_not_marked_claimed(self):
        engine = _engine()
        _run_round(engine, {"alice": 1, "bob": 100}, funds=10)
        # 10 * 1 // 101 rounds down to nothing
        with pytest.raises(NothingToClaimError):
            engine.claim("alice")
        assert not engine.has_claimed("alice")
        assert engine.claim("bob").total == 9

    def test_unscored_current_round_not_claimable(self):
        engine = _engine()
        engine.register("alice")
        engine.deposit(10)
        with pytest.raises(NothingToClaimError):
            engine.claim("alice")
        engine.start_active_phase(OWNER)
        engine.set_scores(OWNER, ["alice"], [1])
        assert engine.claim("alice").total == 10

    def test_conservation_with_rounding(self):
        engine = _engine()
        rounds = [
            ({"a": 1, "b": 1, "c": 1}, 10),
            ({"a": 7, "b": 11, "c": 13}, 100),
            ({"a": 333, "b": 667}, 1001),
            ({"b": 2, "c": 3}, 7),
        ]
        for i, (scores, funds) in enumerate(rounds):
            if i:
                engine.start_new_round(OWNER)
            _run_round(engine, scores, funds=funds)

        for participant in ("a", "b", "c"):
            engine.claim(participant)

        for round_id, (scores, funds) in enumerate(rounds, start=1):
            stats = engine.get_round_stats(round_id)
            assert stats.claimed_amount <= stats.reward_pool == funds
            assert stats.reward_pool - stats.claimed_amount < stats.total_score
        assert engine.held_balance() == engine.outstanding_allocations()


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

class TestViews:
    def test_current_round_vs_all_rounds(self):
        engine = _engine()
        _run_round(engine, {"alice": 1}, funds=10)
        assert engine.get_claimable_amount("alice") == 10
        engine.start_new_round(OWNER)
        assert engine.get_claimable_amount("alice") == 0
        assert engine.get_total_claimable_amount("alice") == 10

    def test_claimed_rounds_drop_out(self):
        engine = _engine()
        _run_round(engine, {"alice": 1}, funds=10)
        engine.claim("alice")
        assert engine.get_total_claimable_amount("alice") == 0
        assert engine.get_unclaimed_rounds("alice") == []
        assert engine.has_claimed("alice", round_id=1)

    def test_untouched_round_reads_empty(self):
        engine = _engine()
        stats = engine.get_round_stats(9)
        assert stats.participant_count == 0
        assert stats.reward_pool == 0
        assert engine.get_registrants(9) == []

    def test_round_id_must_be_positive(self):
        with pytest.raises(InputValidationError):
            _engine().get_round_stats(0)

    def test_outstanding_includes_open_direct_round(self):
        engine = _engine()
        engine.register("alice")
        engine.deposit(6)
        # credited to round 1 before its scores are loaded
        assert engine.get_round_stats().sealed is False
        assert engine.outstanding_allocations() == 6

    def test_outstanding_allocations(self):
        engine = _engine()
        _run_round(engine, {"alice": 1, "bob": 1}, funds=10)
        assert engine.outstanding_allocations() == 10
        engine.claim("alice")
        assert engine.outstanding_allocations() == 5


# ---------------------------------------------------------------------------
# Cursor and pagination
# ---------------------------------------------------------------------------

class TestClaimCursor:
    def _three_rounds(self, **kwargs) -> SettlementEngine:
        engine = _engine(**kwargs)
        for i in range(3):
            if i:
                engine.start_new_round(OWNER)
            _run_round(engine, {"alice": 1}, funds=10)
        return engine

    def test_cursor_advances_past_claimed_rounds(self):
        engine = self._three_rounds()
        assert engine.claim_cursor("alice") == 1
        engine.claim("alice")
        assert engine.claim_cursor("alice") == 4

    def test_cursor_waits_on_open_round(self):
        engine = _engine()
        _run_round(engine, {"alice": 1}, funds=10)
        engine.claim("alice")
        engine.start_new_round(OWNER)
        engine.register("alice")
        with pytest.raises(NothingToClaimError):
            engine.claim("alice")
        assert engine.claim_cursor("alice") == 2

        engine.deposit(4)
        engine.start_active_phase(OWNER)
        engine.set_scores(OWNER, ["alice"], [1])
        assert engine.claim("alice").total == 4

    def test_max_rounds_per_call(self):
        engine = self._three_rounds()
        first = engine.claim("alice", max_rounds=2)
        assert [p.round_id for p in first.payouts] == [1, 2]
        assert engine.claim_cursor("alice") == 3
        second = engine.claim("alice", max_rounds=2)
        assert [p.round_id for p in second.payouts] == [3]

    def test_configured_bound(self):
        engine = self._three_rounds(config=EngineConfig(max_rounds_per_claim=1))
        assert engine.get_unclaimed_rounds("alice") == [1]
        assert engine.get_total_claimable_amount("alice") == 10
        assert engine.get_unclaimed_rounds("alice", max_rounds=3) == [1, 2, 3]
        assert engine.claim("alice").total == 10

    def test_invalid_bound(self):
        engine = self._three_rounds()
        with pytest.raises(InputValidationError):
            engine.claim("alice", max_rounds=0)

    def test_cursor_skips_rounds_without_payout(self):
        engine = _engine()
        # alice is registered but never scored in rounds 1 and 2
        _run_round(engine, {"bob": 1}, funds=10, unscored=("alice",))
        engine.start_new_round(OWNER)
        _run_round(engine, {"bob": 1}, funds=10, unscored=("alice",))
        engine.start_new_round(OWNER)
        _run_round(engine, {"alice": 1}, funds=10)

        with pytest.raises(NothingToClaimError):
            engine.claim("alice", max_rounds=2)
        assert engine.claim_cursor("alice") == 3
        assert engine.claim("alice", max_rounds=2).total == 10


# ---------------------------------------------------------------------------
# Funding and emergency withdrawal
# ---------------------------------------------------------------------------

class TestFunding:
    def test_deposits_accumulate(self):
        engine = _engine()
        engine.register("alice")
        engine.deposit(3)
        engine.deposit(4, sender="sponsor")
        assert engine.get_round_stats().reward_pool == 7
        assert engine.held_balance() == 7

    @pytest.mark.parametrize("amount", [0, -1, 2.5])
    def test_invalid_deposit(self, amount):
        engine = _engine()
        with pytest.raises(InputValidationError):
            engine.deposit(amount)
        assert engine.held_balance() == 0

    def test_direct_deposit_into_sealed_round(self):
        engine = _engine()
        _run_round(engine, {"alice": 1}, funds=10)
        with pytest.raises(PhaseViolationError):
            engine.deposit(5)
        assert engine.held_balance() == 10
        assert engine.get_round_stats().reward_pool == 10

    def test_unfunded_direct_round(self):
        engine = _engine()
        _run_round(engine, {"alice": 1})
        assert engine.get_round_stats().reward_pool == 0
        with pytest.raises(NothingToClaimError):
            engine.claim("alice")

    def test_emergency_withdraw(self):
        engine = _engine()
        _run_round(engine, {"alice": 1}, funds=10)
        engine.emergency_withdraw(OWNER, 4, "vault")
        assert engine.held_balance() == 6
        # round accounting is untouched
        assert engine.outstanding_allocations() == 10

    def test_emergency_withdraw_validation(self):
        engine = _engine(treasury=InMemoryTreasury(10))
        with pytest.raises(InputValidationError):
            engine.emergency_withdraw(OWNER, 0, "vault")
        with pytest.raises(InputValidationError):
            engine.emergency_withdraw(OWNER, 1, "")
        with pytest.raises(InsufficientBalanceError):
            engine.emergency_withdraw(OWNER, 11, "vault")
        assert engine.held_balance() == 10
