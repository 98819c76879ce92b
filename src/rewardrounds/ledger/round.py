"""
Round Records

One record per distribution round: who registered, what they scored,
how large the pool is and who has already been paid out of it.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, PrivateAttr

from rewardrounds.exceptions import DuplicateRegistrationError, PhaseViolationError


class RoundStats(BaseModel):
    """Aggregate statistics for a single round."""

    round_id: int
    participant_count: int
    scored_count: int
    total_score: int
    reward_pool: int
    claimed_amount: int
    unclaimed: int
    sealed: bool


class RoundRecord(BaseModel):
    """Ledger entry for one round.

    ``reward_pool`` may grow while the round is open (direct funding) and is
    frozen by :meth:`seal_pool` when scores are loaded. ``total_score`` is
    always the sum of the non-zero values in ``scores``.
    """

    round_id: int = Field(ge=1)
    registrants: list[str] = Field(default_factory=list)
    scores: dict[str, int] = Field(default_factory=dict)
    total_score: int = Field(default=0, ge=0)
    reward_pool: int = Field(default=0, ge=0)
    sealed: bool = False
    claimed_amount: int = Field(default=0, ge=0)
    claimed: set[str] = Field(default_factory=set)
    payouts: dict[str, int] = Field(default_factory=dict)

    _registered: set[str] = PrivateAttr(default_factory=set)

    def model_post_init(self, __context: Any) -> None:
        self._registered = set(self.registrants)

    # ------------------------------------------------------------------
    # Registration and scores
    # ------------------------------------------------------------------

    def is_registered(self, participant: str) -> bool:
        return participant in self._registered

    def register(self, participant: str) -> None:
        if participant in self._registered:
            raise DuplicateRegistrationError(
                f"{participant} is already registered in round {self.round_id}"
            )
        self.registrants.append(participant)
        self._registered.add(participant)

    def score_of(self, participant: str) -> int:
        return self.scores.get(participant, 0)

    def assign_score(self, participant: str, score: int) -> None:
        """Set a participant's score, replacing any earlier value in the total."""
        self.total_score -= self.scores.get(participant, 0)
        self.scores[participant] = score
        self.total_score += score

    # ------------------------------------------------------------------
    # Pool
    # ------------------------------------------------------------------

    def add_to_pool(self, amount: int) -> None:
        if self.sealed:
            raise PhaseViolationError(f"Reward pool of round {self.round_id} is sealed")
        self.reward_pool += amount

    def seal_pool(self, amount: int) -> None:
        if self.sealed:
            raise PhaseViolationError(f"Reward pool of round {self.round_id} is sealed")
        self.reward_pool = amount
        self.sealed = True

    @property
    def unclaimed(self) -> int:
        """Allocated funds not yet paid out of this round."""
        return self.reward_pool - self.claimed_amount

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def share_of(self, participant: str) -> int:
        """Proportional share of the pool, rounded down; 0 until the pool is sealed."""
        score = self.scores.get(participant, 0)
        if not self.sealed or score == 0 or self.total_score == 0:
            return 0
        if participant not in self._registered:
            return 0
        return self.reward_pool * score // self.total_score

    def has_claimed(self, participant: str) -> bool:
        return participant in self.claimed

    def claimable_by(self, participant: str) -> int:
        if participant in self.claimed:
            return 0
        return self.share_of(participant)

    def record_claim(self, participant: str, amount: int) -> None:
        self.claimed.add(participant)
        self.payouts[participant] = amount
        self.claimed_amount += amount

    def revert_claim(self, participant: str) -> None:
        amount = self.payouts.pop(participant)
        self.claimed.discard(participant)
        self.claimed_amount -= amount

    def stats(self) -> RoundStats:
        return RoundStats(
            round_id=self.round_id,
            participant_count=len(self.registrants),
            scored_count=sum(1 for s in self.scores.values() if s > 0),
            total_score=self.total_score,
            reward_pool=self.reward_pool,
            claimed_amount=self.claimed_amount,
            unclaimed=self.unclaimed,
            sealed=self.sealed,
        )
