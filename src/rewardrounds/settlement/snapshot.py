"""
Engine Snapshot

Serializable image of a settlement engine's complete state.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from rewardrounds.config import EngineConfig
from rewardrounds.ledger.phase import Phase
from rewardrounds.ledger.round import RoundRecord

SNAPSHOT_VERSION = 1


class EngineSnapshot(BaseModel):
    """Full engine state: config, owner, phase, round arena, cursors, balance.

    ``external_authorizer`` marks a snapshot whose administrator rights came
    from something other than a single owner; ``owner`` is then ``None``.
    """

    version: int = SNAPSHOT_VERSION
    config: EngineConfig = Field(default_factory=EngineConfig)
    owner: Optional[str] = None
    external_authorizer: bool = False
    current_round: int = Field(default=1, ge=1)
    phase: Phase = Phase.REGISTRATION
    held_balance: int = Field(default=0, ge=0)
    rounds: list[RoundRecord] = Field(default_factory=list)
    cursors: dict[str, int] = Field(default_factory=dict)
