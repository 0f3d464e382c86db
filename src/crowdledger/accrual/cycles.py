"""Cycle ledger: the compressed time series of accrual snapshots.

The ledger is the single source of truth for "shares so far" and "fees
assessed per cycle". It is advanced lazily: every state-changing fund
call invokes ``advance`` first, and nothing else ever writes to it.

Advance rules:
    1. Empty ledger → open entry 0 (shares 0, fees 0). Entry 0 never
       carries a contributor fee.
    2. Same cycle as the last entry → coalesce into the last entry.
    3. Cycle moved on → compute cumulative shares, then either append a
       new entry or overwrite a last entry that recorded no contributions.

Steps 2 and 3 are delegated to a pure coalesce policy so the
append-vs-overwrite rule can be swapped without touching anything else.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from crowdledger.accrual.calculator import accrued_shares, pending_shares
from crowdledger.models.ledger import Cycle, LedgerParameters

logger = logging.getLogger(__name__)

# (last, is_opening, cycle_number, new_shares, amount, fee) -> (new_last, appended)
CoalescePolicy = Callable[
    [Cycle, bool, int, int, int, int], tuple[Cycle, Optional[Cycle]]
]


def overwrite_empty_cycles(
    last: Cycle,
    is_opening: bool,
    cycle_number: int,
    new_shares: int,
    amount: int,
    fee: int,
) -> tuple[Cycle, Optional[Cycle]]:
    """Literal rule: same-cycle fees accumulate, empty entries are overwritten.

    A same-cycle fee does not mark the entry as having contributions, so a
    later overwrite can discard fees already recorded in it.
    """
    if cycle_number == last.number:
        if is_opening:
            return last, None
        return last.copy(fees=last.fees + fee), None

    entry = Cycle(
        number=cycle_number,
        shares=new_shares,
        fees=fee,
        has_contributions=amount > 0,
    )
    if last.has_contributions:
        return last, entry
    return entry, None


def preserve_fee_cycles(
    last: Cycle,
    is_opening: bool,
    cycle_number: int,
    new_shares: int,
    amount: int,
    fee: int,
) -> tuple[Cycle, Optional[Cycle]]:
    """Default rule: an entry that holds fees is never overwritten.

    Same-cycle activity carrying an amount or a fee flips
    ``has_contributions``. An empty entry is only overwritten when the
    incoming activity is fee-free too, so holders that already collected
    through that entry cannot miss the incoming fee.
    """
    if cycle_number == last.number:
        if is_opening:
            return last, None
        return last.copy(
            fees=last.fees + fee,
            has_contributions=last.has_contributions or amount > 0 or fee > 0,
        ), None

    entry = Cycle(
        number=cycle_number,
        shares=new_shares,
        fees=fee,
        has_contributions=amount > 0 or fee > 0,
    )
    if last.has_contributions or last.fees > 0 or fee > 0:
        return last, entry
    return entry, None


class CycleLedger:
    """Ordered sequence of cycle snapshots with a single mutator.

    Usage:
        ledger = CycleLedger(params)
        ledger.advance(cycle_number=0, tokens=0, amount=10, fee=0)
        ledger.total_shares(cycle_number=3, tokens=10)
    """

    def __init__(
        self,
        params: LedgerParameters,
        policy: CoalescePolicy = preserve_fee_cycles,
    ) -> None:
        self._params = params
        self._policy = policy
        self._cycles: list[Cycle] = []

    def __len__(self) -> int:
        return len(self._cycles)

    @property
    def is_empty(self) -> bool:
        return not self._cycles

    @property
    def last_index(self) -> int:
        """Index of the last stored entry. Raises on an empty ledger."""
        if not self._cycles:
            raise IndexError("Cycle ledger is empty")
        return len(self._cycles) - 1

    @property
    def last(self) -> Cycle:
        return self._cycles[self.last_index]

    def cycle(self, index: int) -> Cycle:
        if not 0 <= index < len(self._cycles):
            raise IndexError(f"No cycle at index {index}")
        return self._cycles[index]

    def cycles(self) -> list[Cycle]:
        return [c.copy() for c in self._cycles]

    def is_opening_cycle(self, cycle_number: int) -> bool:
        """True when activity at ``cycle_number`` lands in the ledger's first cycle."""
        return not self._cycles or cycle_number == self._cycles[0].number

    def pending_shares(self, cycle_number: int, tokens: int) -> int:
        """Shares ``tokens`` would have accrued since the last stored entry."""
        if not self._cycles:
            return 0
        p = self._params
        return pending_shares(
            p.accrual_rate, cycle_number, self.last.number, tokens, p.percent_scale
        )

    def total_shares(self, cycle_number: int, tokens: int) -> int:
        """Cumulative shares projected to ``cycle_number``. Zero when empty."""
        if not self._cycles:
            return 0
        return self.last.shares + self.pending_shares(cycle_number, tokens)

    def advance(self, cycle_number: int, tokens: int, amount: int, fee: int) -> Cycle:
        """Bring the ledger up to ``cycle_number`` and record ``fee``.

        Args:
            cycle_number: The caller's current cycle.
            tokens: Principal accruing shares since the last entry.
            amount: Principal arriving with this call (0 for payouts).
            fee: Fee assessed by this call.

        Returns:
            The last entry after the update.
        """
        if not self._cycles:
            self._cycles.append(
                Cycle(number=cycle_number, shares=0, fees=0, has_contributions=True)
            )
            logger.debug("Opened cycle ledger at cycle %d", cycle_number)
            return self._cycles[0]

        last = self._cycles[-1]
        if cycle_number < last.number:
            raise ValueError(
                f"Cycle number went backwards: {cycle_number} < {last.number}"
            )

        p = self._params
        new_shares = last.shares + accrued_shares(
            p.accrual_rate, cycle_number - last.number, tokens, p.percent_scale
        )
        new_last, appended = self._policy(
            last, len(self._cycles) == 1, cycle_number, new_shares, amount, fee
        )
        self._cycles[-1] = new_last
        if appended is not None:
            self._cycles.append(appended)
            logger.debug(
                "Appended cycle %d at index %d (shares=%d, fees=%d)",
                appended.number, len(self._cycles) - 1, appended.shares, appended.fees,
            )
        elif new_last.number != last.number:
            logger.debug(
                "Overwrote empty cycle %d with cycle %d", last.number, new_last.number
            )
        return self._cycles[-1]

    def remove_shares(self, shares: int, fees: int = 0) -> None:
        """Drop a withdrawn position from the last entry.

        ``fees`` is what the position was paid out of that entry. Removing
        both keeps the entry's fees-per-share unchanged for the holders
        that remain, including for fees that arrive later in the cycle.
        """
        last = self.last
        last.shares = max(0, last.shares - shares)
        last.fees = max(0, last.fees - fees)

    def checkpoint(self) -> tuple[int, Optional[Cycle]]:
        """Length plus a copy of the last entry.

        A fund call only rewrites the last entry or appends after it, so
        this is enough to undo the call.
        """
        last = self._cycles[-1].copy() if self._cycles else None
        return len(self._cycles), last

    def restore(self, checkpoint: tuple[int, Optional[Cycle]]) -> None:
        length, last = checkpoint
        del self._cycles[length:]
        if last is not None:
            self._cycles[-1] = last
