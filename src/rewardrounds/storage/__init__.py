"""
Persistence for RewardRounds engines.
"""

from .state_file import StateFile

__all__ = [
    "StateFile",
]
