"""
Round ledger: phase state machine, per-round records and the round arena.
"""

from .phase import Phase, PhaseMachine
from .round import RoundRecord, RoundStats
from .arena import RoundLedger

__all__ = [
    "Phase",
    "PhaseMachine",
    "RoundRecord",
    "RoundStats",
    "RoundLedger",
]
