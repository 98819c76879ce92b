"""
Round Ledger

Indexed arena of round records: round id ``n`` lives at slot ``n - 1``.
Records are appended lazily the first time a round is touched and are
never removed, so every historical round stays queryable and claimable.
"""

from __future__ import annotations

from typing import Iterable, Iterator, Optional

from rewardrounds.exceptions import InputValidationError
from rewardrounds.ledger.round import RoundRecord


class RoundLedger:
    """Append-only collection of :class:`RoundRecord` keyed by round id."""

    def __init__(self, rounds: Optional[Iterable[RoundRecord]] = None) -> None:
        self._rounds: list[RoundRecord] = []
        for record in rounds or ():
            if record.round_id != len(self._rounds) + 1:
                raise ValueError(
                    f"Round records must be contiguous from 1; got round {record.round_id} "
                    f"at slot {len(self._rounds) + 1}"
                )
            self._rounds.append(record)

    def __len__(self) -> int:
        return len(self._rounds)

    def __iter__(self) -> Iterator[RoundRecord]:
        return iter(self._rounds)

    @staticmethod
    def _check_id(round_id: int) -> None:
        if round_id < 1:
            raise InputValidationError(f"Round ids start at 1, got {round_id}")

    def touch(self, round_id: int) -> RoundRecord:
        """Return the record for *round_id*, creating it (and any gap before it)."""
        self._check_id(round_id)
        while len(self._rounds) < round_id:
            self._rounds.append(RoundRecord(round_id=len(self._rounds) + 1))
        return self._rounds[round_id - 1]

    def peek(self, round_id: int) -> RoundRecord:
        """Return the record for *round_id* without creating it.

        Untouched rounds read as an empty, detached record.
        """
        self._check_id(round_id)
        if round_id <= len(self._rounds):
            return self._rounds[round_id - 1]
        return RoundRecord(round_id=round_id)

    def span(self, first: int, last: int) -> Iterator[RoundRecord]:
        """Yield existing records with ids in ``[first, last]``."""
        first = max(first, 1)
        last = min(last, len(self._rounds))
        for round_id in range(first, last + 1):
            yield self._rounds[round_id - 1]

    def outstanding(self, before_round: int) -> int:
        """Sum of allocated-but-unpaid funds across rounds older than *before_round*."""
        return sum(record.unclaimed for record in self.span(1, before_round - 1))
