"""
Administrator Authorization

Administrative gating is an injectable capability so tests and future
multi-admin setups can swap it out. The default is a single owner.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, runtime_checkable

from rewardrounds.exceptions import InputValidationError, UnauthorizedAccessError

logger = logging.getLogger(__name__)


@runtime_checkable
class Authorizer(Protocol):
    """Decides whether a principal may perform administrator operations."""

    def is_admin(self, principal: str) -> bool: ...


def require_admin(authorizer: Authorizer, principal: str, action: str) -> None:
    """Raise UnauthorizedAccessError unless *principal* is an administrator."""
    if not authorizer.is_admin(principal):
        raise UnauthorizedAccessError(f"{principal} is not permitted to {action}")


class OwnerAuthorizer:
    """Ownership-style access control: exactly one privileged principal.

    Args:
        owner: Initial owner. ``None`` means ownership was renounced.
    """

    def __init__(self, owner: Optional[str]) -> None:
        self._owner = owner

    @property
    def owner(self) -> Optional[str]:
        return self._owner

    def is_admin(self, principal: str) -> bool:
        return self._owner is not None and principal == self._owner

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        require_admin(self, caller, "transfer ownership")
        if not new_owner:
            raise InputValidationError("New owner must be a non-empty principal")
        logger.info("Ownership transferred from %s to %s", self._owner, new_owner)
        self._owner = new_owner

    def renounce_ownership(self, caller: str) -> None:
        """Drop the owner; administrator operations become unavailable."""
        require_admin(self, caller, "renounce ownership")
        logger.info("Ownership renounced by %s", caller)
        self._owner = None
