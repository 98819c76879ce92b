"""
Pool Accounting Strategies.

Pluggable strategies deciding how much a round's reward pool holds when
its scores are loaded.

- ``direct``: inbound deposits are credited to the current round as they
  arrive; the accumulated amount is sealed at score loading.
- ``carry_over``: deposits only raise the held balance; the new pool is
  inferred as held balance minus everything earlier rounds allocated but
  have not yet paid out.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from rewardrounds.config import FundingMode
from rewardrounds.exceptions import InsufficientBalanceError
from rewardrounds.ledger.arena import RoundLedger
from rewardrounds.ledger.round import RoundRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class PoolAccounting(Protocol):
    """Protocol for pluggable pool accounting variants."""

    mode: FundingMode

    def on_deposit(self, record: RoundRecord, amount: int) -> None: ...

    def pool_for(self, ledger: RoundLedger, record: RoundRecord, held_balance: int) -> int: ...


class DirectPoolAccounting:
    """Credit each deposit straight to the current round's pool."""

    mode = FundingMode.DIRECT

    def on_deposit(self, record: RoundRecord, amount: int) -> None:
        record.add_to_pool(amount)

    def pool_for(self, ledger: RoundLedger, record: RoundRecord, held_balance: int) -> int:
        return record.reward_pool


class CarryOverPoolAccounting:
    """Infer the pool from held balance minus outstanding earlier allocations.

    The balance must strictly exceed what is still owed, so a round with no
    net new funds cannot be closed.
    """

    mode = FundingMode.CARRY_OVER

    def on_deposit(self, record: RoundRecord, amount: int) -> None:
        pass

    def pool_for(self, ledger: RoundLedger, record: RoundRecord, held_balance: int) -> int:
        owed = ledger.outstanding(before_round=record.round_id)
        if held_balance <= owed:
            raise InsufficientBalanceError(
                f"Held balance {held_balance} does not exceed {owed} still owed "
                f"to rounds before {record.round_id}"
            )
        pool = held_balance - owed
        logger.debug(
            "Inferred pool %d for round %d (held %d, owed %d)",
            pool, record.round_id, held_balance, owed,
        )
        return pool


_ACCOUNTING: dict[FundingMode, type] = {
    FundingMode.DIRECT: DirectPoolAccounting,
    FundingMode.CARRY_OVER: CarryOverPoolAccounting,
}


def pool_accounting_for(mode: FundingMode) -> PoolAccounting:
    """Return a fresh accounting strategy for *mode*."""
    return _ACCOUNTING[FundingMode(mode)]()
