"""Capability checks: owner gating and pausing.

These are explicit checks the funds call at the top of each operation,
not base classes the funds inherit from.
"""

from __future__ import annotations

from crowdledger.errors import FundPaused, Unauthorized


class AccessControl:
    """Owner identity plus a pause switch for one fund."""

    def __init__(self, owner: str) -> None:
        self._owner = owner
        self._paused = False

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def paused(self) -> bool:
        return self._paused

    def require_owner(self, caller: str) -> None:
        if caller != self._owner:
            raise Unauthorized(f"{caller} is not the fund owner")

    def require_not_paused(self) -> None:
        if self._paused:
            raise FundPaused("Fund is paused")

    def pause(self, caller: str) -> None:
        self.require_owner(caller)
        self._paused = True

    def unpause(self, caller: str) -> None:
        self.require_owner(caller)
        self._paused = False

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self.require_owner(caller)
        if not new_owner:
            raise ValueError("New owner must be a non-empty address")
        self._owner = new_owner
