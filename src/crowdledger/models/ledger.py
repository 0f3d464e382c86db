"""Ledger models: cycles, positions, and fund parameters.

All token amounts are plain ints in the token's smallest unit. Rates are
fixed-point ints over ``percent_scale`` (1_000_000 == 100%). No floats.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional


class GoalState(str, enum.Enum):
    """Funding status of a goal-bearing fund.

    Derived from the clock and totals on every read; never stored.
    """
    FUNDING = "funding"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class Cycle:
    """Accrual snapshot at a cycle boundary.

    ``shares`` is cumulative across the ledger. ``fees`` is the fee pool
    assessed while this cycle was the latest one.
    """
    number: int
    shares: int
    fees: int
    has_contributions: bool

    def copy(self, **changes: object) -> Cycle:
        return replace(self, **changes)

    def as_tuple(self) -> tuple[int, int, int, bool]:
        return (self.number, self.shares, self.fees, self.has_contributions)


@dataclass
class Position:
    """One contribution record owned by an address.

    Mutable: principal moves out on split, indices move on fee collection.
    A consumed position is tombstoned in place so that every index ever
    handed out stays a valid reference.
    """
    contribution: int
    start_cycle_index: int
    last_collected_cycle_index: int
    refunded: bool = False
    live: bool = True

    def tombstone(self) -> None:
        """Zero the slot in place. ``refunded`` survives the tombstone."""
        self.contribution = 0
        self.start_cycle_index = 0
        self.last_collected_cycle_index = 0
        self.live = False

    def copy(self) -> Position:
        return replace(self)


@dataclass(frozen=True)
class LedgerParameters:
    """Immutable accrual parameters shared by every fund kind."""
    cycle_length: int
    accrual_rate: int
    percent_scale: int
    contributor_fee: int

    @property
    def cycle_length_delta(self) -> timedelta:
        return timedelta(seconds=self.cycle_length)

    def validate(self) -> list[str]:
        """Return a list of parameter errors. Empty list means valid."""
        errors: list[str] = []
        if self.cycle_length <= 0:
            errors.append(f"cycle_length must be > 0, got {self.cycle_length}")
        if self.percent_scale <= 0:
            errors.append(f"percent_scale must be > 0, got {self.percent_scale}")
        if self.accrual_rate < 0:
            errors.append(f"accrual_rate must be >= 0, got {self.accrual_rate}")
        if not 0 <= self.contributor_fee <= self.percent_scale:
            errors.append(
                f"contributor_fee must be within [0, {self.percent_scale}], "
                f"got {self.contributor_fee}"
            )
        return errors


@dataclass(frozen=True)
class SolutionParameters:
    """Goal-bearing fund terms fixed at creation."""
    ledger: LedgerParameters
    funding_goal: int
    deadline: datetime
    initial_stake: int = 0

    def validate(self) -> list[str]:
        errors = self.ledger.validate()
        if self.funding_goal <= 0:
            errors.append(f"funding_goal must be > 0, got {self.funding_goal}")
        if self.initial_stake < 0:
            errors.append(f"initial_stake must be >= 0, got {self.initial_stake}")
        return errors


@dataclass(frozen=True)
class IdeaParameters:
    """Idea fund terms: the anti-spam fee on top of ledger parameters."""
    ledger: LedgerParameters
    percent_fee: int
    min_fee: int
    fee_recipient: Optional[str] = None

    def validate(self) -> list[str]:
        errors = self.ledger.validate()
        if not 0 <= self.percent_fee <= self.ledger.percent_scale:
            errors.append(
                f"percent_fee must be within [0, {self.ledger.percent_scale}], "
                f"got {self.percent_fee}"
            )
        if self.min_fee < 0:
            errors.append(f"min_fee must be >= 0, got {self.min_fee}")
        return errors
