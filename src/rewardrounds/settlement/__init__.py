"""
Claim Settlement

Settlement engine, pool accounting variants, treasury and administrator
authorization.
"""

from .auth import Authorizer, OwnerAuthorizer, require_admin
from .engine import ClaimReceipt, RoundPayout, SettlementEngine
from .snapshot import SNAPSHOT_VERSION, EngineSnapshot
from .pool import (
    CarryOverPoolAccounting,
    DirectPoolAccounting,
    PoolAccounting,
    pool_accounting_for,
)
from .treasury import InMemoryTreasury, Treasury

__all__ = [
    "Authorizer",
    "OwnerAuthorizer",
    "require_admin",
    "ClaimReceipt",
    "RoundPayout",
    "EngineSnapshot",
    "SNAPSHOT_VERSION",
    "SettlementEngine",
    "CarryOverPoolAccounting",
    "DirectPoolAccounting",
    "PoolAccounting",
    "pool_accounting_for",
    "InMemoryTreasury",
    "Treasury",
]
