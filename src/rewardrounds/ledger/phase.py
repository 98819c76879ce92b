"""
Phase State Machine

Governs when registration, score loading and round rollover are permitted.

    Registration -> Active -> Distribution -> (new round) -> Registration

Claiming is not gated by phase.
"""

from __future__ import annotations

import enum
import logging

from rewardrounds.exceptions import PhaseViolationError

logger = logging.getLogger(__name__)


class Phase(str, enum.Enum):
    """Lifecycle phase of the current round."""

    REGISTRATION = "registration"
    ACTIVE = "active"
    DISTRIBUTION = "distribution"


_TRANSITIONS: dict[Phase, Phase] = {
    Phase.REGISTRATION: Phase.ACTIVE,
    Phase.ACTIVE: Phase.DISTRIBUTION,
    Phase.DISTRIBUTION: Phase.REGISTRATION,
}


class PhaseMachine:
    """Tracks the current round id and its phase.

    Args:
        current_round: Round id to start at (1 for a fresh engine).
        phase: Phase to start in.
    """

    def __init__(self, current_round: int = 1, phase: Phase = Phase.REGISTRATION) -> None:
        if current_round < 1:
            raise ValueError(f"Round ids start at 1, got {current_round}")
        self._round = current_round
        self._phase = Phase(phase)

    @property
    def current_round(self) -> int:
        return self._round

    @property
    def phase(self) -> Phase:
        return self._phase

    def require(self, phase: Phase, action: str) -> None:
        """Raise PhaseViolationError unless the machine is in *phase*."""
        if self._phase is not phase:
            raise PhaseViolationError(
                f"Cannot {action} during {self._phase.value} phase "
                f"of round {self._round} (requires {phase.value})"
            )

    def advance(self) -> Phase:
        """Move to the next phase; rolling over from Distribution opens a new round."""
        previous = self._phase
        self._phase = _TRANSITIONS[previous]
        if previous is Phase.DISTRIBUTION:
            self._round += 1
        logger.info(
            "Round %d phase %s -> %s", self._round, previous.value, self._phase.value
        )
        return self._phase
