# Copyright (c) RewardRounds Contributors. All rights reserved.
# Licensed under the MIT License.
"""Centralized exception hierarchy for RewardRounds.

All RewardRounds exceptions inherit from RewardRoundsError. Every failure
is raised synchronously and aborts the whole operation; nothing is retried
internally.
"""


class RewardRoundsError(Exception):
    """Base exception for all RewardRounds errors."""


class PhaseViolationError(RewardRoundsError):
    """Operation attempted outside the phase it requires."""


class DuplicateRegistrationError(RewardRoundsError):
    """Participant is already registered in the current round."""


class InputValidationError(RewardRoundsError, ValueError):
    """Malformed input: empty batch, length mismatch, zero score or amount, bad recipient."""


class UnauthorizedAccessError(RewardRoundsError):
    """Administrator-only operation attempted by another principal."""


class NotRegisteredError(RewardRoundsError):
    """Score assigned to a participant not registered in the current round."""


class NothingToClaimError(RewardRoundsError):
    """No unclaimed, scored, registered rounds were found for the participant."""


class ReentrantClaimError(NothingToClaimError):
    """Nested claim for a participant whose payout is still in flight."""


class InsufficientBalanceError(RewardRoundsError):
    """Requested amount exceeds the held balance."""


class TransferFailureError(RewardRoundsError):
    """Outbound transfer did not succeed; the operation was rolled back."""


class StateFileError(RewardRoundsError):
    """Errors reading or writing a persisted engine state file."""


__all__ = [
    "RewardRoundsError",
    "PhaseViolationError",
    "DuplicateRegistrationError",
    "InputValidationError",
    "UnauthorizedAccessError",
    "NotRegisteredError",
    "NothingToClaimError",
    "ReentrantClaimError",
    "InsufficientBalanceError",
    "TransferFailureError",
    "StateFileError",
]
