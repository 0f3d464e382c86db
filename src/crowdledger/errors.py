"""Ledger errors: every violation aborts the whole call.

Funds never recover locally from these. The caller corrects its
arguments, or waits for a state transition (e.g. the deadline passing),
and calls again.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all fund and ledger rule violations."""


class PositionDoesNotExist(LedgerError):
    """Index out of range, or the slot has been tombstoned."""

    def __init__(self, owner: str, index: int) -> None:
        super().__init__(f"Position does not exist: {owner}[{index}]")
        self.owner = owner
        self.index = index


class AmbiguousPosition(LedgerError):
    """An explicit index is required when an owner holds several positions."""

    def __init__(self, owner: str, count: int) -> None:
        super().__init__(
            f"{owner} holds {count} positions; a position index is required"
        )
        self.owner = owner
        self.count = count


class SplitAmountExceedsPosition(LedgerError):
    """num_splits * amount_per_split is larger than the position."""


class InvalidAmount(LedgerError):
    """Zero, negative, or otherwise unusable token amount."""


class GoalNotReached(LedgerError):
    """Operation requires the funding goal to have been reached."""


class GoalFailed(LedgerError):
    """Operation is not allowed once the funding goal has failed."""


class GoalNotFailed(LedgerError):
    """Operation requires the funding goal to have failed."""


class AlreadyRefunded(LedgerError):
    """The position has already been refunded."""


class GoalMustIncrease(LedgerError):
    """A new funding goal must be strictly larger than the current one."""


class DeadlineMustBeFuture(LedgerError):
    """A new deadline must lie strictly in the future."""


class WithdrawExceedsAvailable(LedgerError):
    """Requested amount is larger than what is available to withdraw."""


class Unauthorized(LedgerError):
    """Owner-gated operation called by a non-owner."""


class FundPaused(LedgerError):
    """State-changing operation called while the fund is paused."""


class CannotAirdropInFirstCycle(LedgerError):
    """Airdrops cannot land in the ledger's opening cycle."""


class TokenTransferFailed(LedgerError):
    """The token ledger reported a failed transfer."""
