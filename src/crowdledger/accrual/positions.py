"""Position store: per-owner, index-stable arena of contribution records.

Callers hold position indices as long-lived handles, so lists only ever
grow. Deleting a position tombstones the slot in place (``live=False``)
instead of removing it.

While a journal is open the store remembers a copy of every slot it hands
out and the original length of every list it grows. ``rollback`` puts
exactly those back, so undoing a call costs O(slots touched) no matter
how many positions the fund holds.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Tuple

from crowdledger.errors import (
    AmbiguousPosition,
    InvalidAmount,
    PositionDoesNotExist,
    SplitAmountExceedsPosition,
)
from crowdledger.models.ledger import Position


class PositionStore:
    """Owner-scoped position lists with tombstone-on-delete.

    Usage:
        store = PositionStore()
        index = store.append("alice", Position(100, 0, 0))
        store.split("alice", index, num_splits=2, amount_per_split=25)
        store.transfer("alice", "bob", index)
    """

    def __init__(self) -> None:
        self._positions: Dict[str, List[Position]] = {}
        # (owner, index) -> slot as it was before the open call touched it
        self._journal: Optional[Dict[Tuple[str, int], Position]] = None
        self._lengths: Dict[str, int] = {}

    def begin_journal(self) -> None:
        self._journal = {}
        self._lengths = {}

    def commit(self) -> None:
        self._journal = None
        self._lengths = {}

    def rollback(self) -> None:
        """Undo every change made since ``begin_journal``."""
        if self._journal is None:
            return
        for owner, length in self._lengths.items():
            del self._positions[owner][length:]
            if length == 0:
                del self._positions[owner]
        for (owner, index), saved in self._journal.items():
            positions = self._positions.get(owner, [])
            if index < len(positions):
                positions[index] = saved
        self.commit()

    def append(self, owner: str, position: Position) -> int:
        """Append a position for ``owner`` and return its index."""
        positions = self._positions.setdefault(owner, [])
        if self._journal is not None:
            self._lengths.setdefault(owner, len(positions))
        positions.append(position)
        return len(positions) - 1

    def length(self, owner: str) -> int:
        """Number of slots ever issued to ``owner``, tombstones included."""
        return len(self._positions.get(owner, []))

    def slot(self, owner: str, index: int) -> Position:
        """Return the raw slot, tombstoned or not."""
        positions = self._positions.get(owner, [])
        if not 0 <= index < len(positions):
            raise PositionDoesNotExist(owner, index)
        position = positions[index]
        if self._journal is not None and (owner, index) not in self._journal:
            self._journal[(owner, index)] = position.copy()
        return position

    def get(self, owner: str, index: int) -> Position:
        """Return a live position or raise PositionDoesNotExist."""
        position = self.slot(owner, index)
        if not position.live:
            raise PositionDoesNotExist(owner, index)
        return position

    def resolve_index(self, owner: str, index: Optional[int]) -> int:
        """Turn an optional index into an explicit one.

        ``None`` is accepted only while the owner holds exactly one slot.
        """
        if index is not None:
            return index
        count = self.length(owner)
        if count == 0:
            raise PositionDoesNotExist(owner, 0)
        if count > 1:
            raise AmbiguousPosition(owner, count)
        return 0

    def live_positions(self) -> Iterator[Tuple[str, int, Position]]:
        """Yield (owner, index, position) for every live position."""
        for owner, positions in self._positions.items():
            for index, position in enumerate(positions):
                if position.live:
                    yield owner, index, position

    def total_contribution(self) -> int:
        return sum(p.contribution for _, _, p in self.live_positions())

    def split(
        self,
        owner: str,
        index: int,
        num_splits: int,
        amount_per_split: int,
    ) -> List[int]:
        """Carve ``num_splits`` positions of ``amount_per_split`` off a position.

        New positions inherit both cycle indices. Principal across the
        source and the new positions is conserved exactly.

        Returns:
            Indices of the new positions, in order.
        """
        if num_splits <= 0:
            raise InvalidAmount(f"num_splits must be positive, got {num_splits}")
        if amount_per_split <= 0:
            raise InvalidAmount(
                f"amount_per_split must be positive, got {amount_per_split}"
            )
        source = self.get(owner, index)
        total = num_splits * amount_per_split
        if total > source.contribution:
            raise SplitAmountExceedsPosition(
                f"{num_splits} x {amount_per_split} = {total} exceeds "
                f"position {owner}[{index}] ({source.contribution})"
            )

        source.contribution -= total
        return [
            self.append(
                owner,
                Position(
                    contribution=amount_per_split,
                    start_cycle_index=source.start_cycle_index,
                    last_collected_cycle_index=source.last_collected_cycle_index,
                ),
            )
            for _ in range(num_splits)
        ]

    def transfer(self, owner: str, to: str, index: int) -> int:
        """Move a position to ``to``: append a full copy, then tombstone the source.

        Self-transfer is legal and observable: it appends a new trailing
        slot and tombstones the original.
        """
        source = self.get(owner, index)
        new_index = self.append(to, source.copy())
        source.tombstone()
        return new_index
