"""Fee distributor: proportional attribution of per-cycle fee pools.

A position receives each cycle's fee pool in the exact proportion its
shares represented of that cycle's total shares at that boundary:

    fees_earned += cycle.fees * position_shares_at(cycle) // cycle.shares

Only the position's uncollected range is walked, so the cost is
O(uncollected cycles) and never depends on how many contributions the
fund has seen.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from crowdledger.accrual.calculator import accrued_shares
from crowdledger.accrual.cycles import CycleLedger
from crowdledger.models.ledger import LedgerParameters, Position


@dataclass(frozen=True)
class FeeStatement:
    """Result of walking one position against the cycle ledger."""
    fees_earned: int
    shares: int
    stored_shares: int


class FeeDistributor:
    """Computes shares and owed fees for a single position."""

    def __init__(self, params: LedgerParameters) -> None:
        self._params = params

    def shares_through(
        self, ledger: CycleLedger, position: Position, index: int
    ) -> int:
        """Shares the position had accrued at the boundary of entry ``index``."""
        p = self._params
        start_number = ledger.cycle(position.start_cycle_index).number
        elapsed = ledger.cycle(index).number - start_number
        return accrued_shares(
            p.accrual_rate, elapsed, position.contribution, p.percent_scale
        )

    def fees_earned(
        self,
        ledger: CycleLedger,
        position: Position,
        through_index: Optional[int] = None,
    ) -> int:
        """Fees owed for entries ``last_collected + 1 .. through_index``.

        ``through_index`` defaults to the last stored entry.
        """
        last = ledger.last_index if through_index is None else through_index
        return sum(
            self.fee_share(ledger, position, i)
            for i in range(position.last_collected_cycle_index + 1, last + 1)
        )

    def fee_share(self, ledger: CycleLedger, position: Position, index: int) -> int:
        """The position's cut of entry ``index``'s fee pool."""
        cycle = ledger.cycle(index)
        if cycle.fees == 0 or cycle.shares == 0:
            return 0
        running = self.shares_through(ledger, position, index)
        return cycle.fees * running // cycle.shares

    def statement(
        self,
        ledger: CycleLedger,
        position: Position,
        cycle_number: int,
        through_index: Optional[int] = None,
    ) -> FeeStatement:
        """Fees owed plus shares projected to ``cycle_number`` (read-only)."""
        stored = self.shares_through(ledger, position, ledger.last_index)
        pending = ledger.pending_shares(cycle_number, position.contribution)
        return FeeStatement(
            fees_earned=self.fees_earned(ledger, position, through_index),
            shares=stored + pending,
            stored_shares=stored,
        )
