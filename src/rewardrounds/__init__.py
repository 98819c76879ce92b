"""
RewardRounds - Multi-round, score-weighted reward settlement

Register · Fund · Score · Claim

Participants register per round, an administrator funds the round and loads
externally computed contribution scores, and every participant can later
withdraw a proportional share of each round's pool in a single claim.

Version: 0.3.0
"""

__version__ = "0.3.0"

from .config import EngineConfig, FundingMode

# Ledger
from .ledger import (
    Phase,
    PhaseMachine,
    RoundRecord,
    RoundStats,
    RoundLedger,
)

# Settlement
from .settlement import (
    Authorizer,
    OwnerAuthorizer,
    SettlementEngine,
    ClaimReceipt,
    RoundPayout,
    EngineSnapshot,
    DirectPoolAccounting,
    CarryOverPoolAccounting,
    Treasury,
    InMemoryTreasury,
)

# Exceptions
from .exceptions import (
    RewardRoundsError,
    PhaseViolationError,
    DuplicateRegistrationError,
    InputValidationError,
    UnauthorizedAccessError,
    NotRegisteredError,
    NothingToClaimError,
    ReentrantClaimError,
    InsufficientBalanceError,
    TransferFailureError,
    StateFileError,
)

__all__ = [
    # Version
    "__version__",

    # Config
    "EngineConfig",
    "FundingMode",

    # Ledger
    "Phase",
    "PhaseMachine",
    "RoundRecord",
    "RoundStats",
    "RoundLedger",

    # Settlement
    "Authorizer",
    "OwnerAuthorizer",
    "SettlementEngine",
    "ClaimReceipt",
    "RoundPayout",
    "EngineSnapshot",
    "DirectPoolAccounting",
    "CarryOverPoolAccounting",
    "Treasury",
    "InMemoryTreasury",

    # Exceptions
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
