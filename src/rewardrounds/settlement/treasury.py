# Copyright (c) RewardRounds Contributors. All rights reserved.
# Licensed under the MIT License.
"""Treasury interface for held settlement funds.

Defines the contract the settlement engine uses to read its held balance,
accept inflows and push payouts to recipients.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from rewardrounds.exceptions import InputValidationError

logger = logging.getLogger(__name__)

ReceiveHook = Callable[[str, int], Any]


class Treasury(ABC):
    """Abstract holder of the engine's funds.

    ``send`` reports failure by returning ``False``; it must leave the
    balance untouched in that case.
    """

    @abstractmethod
    def balance(self) -> int:
        """Total funds currently held."""

    @abstractmethod
    def receive(self, amount: int, sender: Optional[str] = None) -> None:
        """Record an inbound transfer of *amount*."""

    @abstractmethod
    def send(self, recipient: str, amount: int) -> bool:
        """Transfer *amount* to *recipient*. Returns True on success."""


class InMemoryTreasury(Treasury):
    """Integer balance held in process.

    Recipients may attach a receive hook which runs after the funds leave
    the treasury, mirroring arbitrary receiving logic. A hook that returns
    ``False`` or raises refuses the transfer and the balance is restored.

    Args:
        initial_balance: Funds held at construction time.
    """

    def __init__(self, initial_balance: int = 0) -> None:
        if initial_balance < 0:
            raise InputValidationError("Initial balance cannot be negative")
        self._balance = initial_balance
        self._hooks: dict[str, ReceiveHook] = {}

    def balance(self) -> int:
        return self._balance

    def receive(self, amount: int, sender: Optional[str] = None) -> None:
        if amount <= 0:
            raise InputValidationError(f"Inbound amount must be positive, got {amount}")
        self._balance += amount
        logger.debug("Treasury received %d from %s", amount, sender or "unknown")

    def set_receive_hook(self, recipient: str, hook: Optional[ReceiveHook]) -> None:
        """Attach (or with ``None`` detach) receiving logic for *recipient*."""
        if hook is None:
            self._hooks.pop(recipient, None)
        else:
            self._hooks[recipient] = hook

    def send(self, recipient: str, amount: int) -> bool:
        if amount <= 0 or amount > self._balance:
            logger.warning(
                "Treasury cannot send %d to %s (held %d)", amount, recipient, self._balance
            )
            return False

        self._balance -= amount
        hook = self._hooks.get(recipient)
        if hook is None:
            return True

        try:
            accepted = hook(recipient, amount)
        except Exception:
            logger.warning("Recipient %s rejected transfer of %d", recipient, amount, exc_info=True)
            accepted = False

        if accepted is False:
            self._balance += amount
            return False
        return True
