"""Fund base: state shared by Solution and Idea funds.

Composes the accrual engine (cycle ledger, position store, fee
distributor) with capability checks, a token ledger and an optional
audit log. Subclasses add the contribution and payout rules of their
fund kind.

Every public write runs inside ``_transaction``: the state a call can
touch is snapshotted on entry and restored if anything raises, including
a failed token transfer. Audit events are buffered and only reach the
event log once the whole call has succeeded.
"""

from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Sequence

from crowdledger.accrual.calculator import current_cycle_number
from crowdledger.accrual.cycles import CoalescePolicy, CycleLedger, preserve_fee_cycles
from crowdledger.accrual.distributor import FeeDistributor
from crowdledger.accrual.positions import PositionStore
from crowdledger.errors import InvalidAmount, TokenTransferFailed
from crowdledger.funding.access import AccessControl
from crowdledger.funding.token import TokenLedger
from crowdledger.models.ledger import Cycle, LedgerParameters, Position
from crowdledger.persistence.event_log import EventKind, EventLog, EventRecord

logger = logging.getLogger(__name__)


class FundBase:
    """Cycle ledger, positions, access control and token plumbing."""

    # Attributes restored when a call aborts. Subclasses extend this with
    # counters; the ledger and position store undo themselves.
    _STATE_FIELDS: tuple[str, ...] = ("_access",)

    def __init__(
        self,
        fund_id: str,
        owner: str,
        ledger_params: LedgerParameters,
        token: TokenLedger,
        start: Optional[datetime] = None,
        event_log: Optional[EventLog] = None,
        policy: CoalescePolicy = preserve_fee_cycles,
        address: Optional[str] = None,
    ) -> None:
        errors = ledger_params.validate()
        if errors:
            raise ValueError("Invalid ledger parameters: " + "; ".join(errors))
        self.fund_id = fund_id
        self.address = address or fund_id
        self.start = start or datetime.now(timezone.utc)
        self._params = ledger_params
        self._token = token
        self._event_log = event_log
        self._ledger = CycleLedger(ledger_params, policy)
        self._positions = PositionStore()
        self._distributor = FeeDistributor(ledger_params)
        self._access = AccessControl(owner)
        self._pending_events: list[tuple[EventKind, str, dict[str, Any], datetime]] = []
        self._event_seq = event_log.count_for_fund(fund_id) if event_log else 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def params(self) -> LedgerParameters:
        return self._params

    @property
    def owner(self) -> str:
        return self._access.owner

    @property
    def paused(self) -> bool:
        return self._access.paused

    def current_cycle_number(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        return current_cycle_number(self.start, now, self._params.cycle_length_delta)

    def total_shares(self, now: Optional[datetime] = None) -> int:
        """Cumulative shares projected to the current cycle."""
        return self._ledger.total_shares(
            self.current_cycle_number(now), self._share_basis()
        )

    def positions_length(self, owner: str) -> int:
        return self._positions.length(owner)

    def position(self, owner: str, index: int) -> Position:
        """Copy of a slot, tombstoned or not."""
        return self._positions.slot(owner, index).copy()

    def cycle(self, index: int) -> Cycle:
        return self._ledger.cycle(index).copy()

    def cycles(self) -> list[Cycle]:
        return self._ledger.cycles()

    def cycles_length(self) -> int:
        return len(self._ledger)

    def summary(self) -> dict[str, Any]:
        """Plain-dict view of the fund for reports and the CLI."""
        return {
            "fund_id": self.fund_id,
            "owner": self.owner,
            "paused": self.paused,
            "cycles": [c.as_tuple() for c in self._ledger.cycles()],
            "positions": [
                {
                    "owner": owner,
                    "index": index,
                    "contribution": p.contribution,
                    "start_cycle_index": p.start_cycle_index,
                    "last_collected_cycle_index": p.last_collected_cycle_index,
                }
                for owner, index, p in self._positions.live_positions()
            ],
        }

    # ------------------------------------------------------------------
    # Position lifecycle
    # ------------------------------------------------------------------

    def split(
        self,
        caller: str,
        index: Optional[int],
        num_splits: int,
        amount_per_split: int,
        now: Optional[datetime] = None,
    ) -> list[int]:
        """Carve ``num_splits`` positions of ``amount_per_split`` off a position.

        Only principal moves. Cycle indices are inherited, so total
        shares are unchanged.
        """
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.require_not_paused()
            index = self._positions.resolve_index(caller, index)
            new_indices = self._positions.split(
                caller, index, num_splits, amount_per_split
            )
            self._record(EventKind.POSITION_SPLIT, caller, {
                "index": index,
                "num_splits": num_splits,
                "amount_per_split": amount_per_split,
                "new_indices": new_indices,
            }, now)
        return new_indices

    def split_evenly(
        self,
        caller: str,
        index: Optional[int],
        parts: int,
        now: Optional[datetime] = None,
    ) -> list[int]:
        """Divide a position into ``parts`` positions; the source keeps the remainder."""
        if parts < 2:
            raise InvalidAmount(f"parts must be at least 2, got {parts}")
        resolved = self._positions.resolve_index(caller, index)
        contribution = self._positions.get(caller, resolved).contribution
        return self.split(caller, resolved, parts - 1, contribution // parts, now=now)

    def transfer_position(
        self,
        caller: str,
        to: str,
        index: Optional[int],
        now: Optional[datetime] = None,
    ) -> int:
        """Move a position to ``to``. Returns its index in ``to``'s list."""
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.require_not_paused()
            new_index = self._transfer_one(caller, to, index, now)
        return new_index

    def transfer_positions(
        self,
        caller: str,
        to: str,
        indices: Sequence[int],
        now: Optional[datetime] = None,
    ) -> list[int]:
        """Move several positions at once; all or none are transferred."""
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.require_not_paused()
            new_indices = [self._transfer_one(caller, to, i, now) for i in indices]
        return new_indices

    def _transfer_one(
        self, caller: str, to: str, index: Optional[int], now: datetime
    ) -> int:
        index = self._positions.resolve_index(caller, index)
        new_index = self._positions.transfer(caller, to, index)
        self._record(EventKind.POSITION_TRANSFERRED, caller, {
            "index": index,
            "to": to,
            "new_index": new_index,
        }, now)
        return new_index

    # ------------------------------------------------------------------
    # Owner controls
    # ------------------------------------------------------------------

    def pause(self, caller: str, now: Optional[datetime] = None) -> None:
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.pause(caller)
            self._record(EventKind.FUND_PAUSED, caller, {}, now)

    def unpause(self, caller: str, now: Optional[datetime] = None) -> None:
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.unpause(caller)
            self._record(EventKind.FUND_UNPAUSED, caller, {}, now)

    def transfer_ownership(
        self, caller: str, new_owner: str, now: Optional[datetime] = None
    ) -> None:
        """Hand owner rights to ``new_owner``. Stakes stay where they are."""
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.transfer_ownership(caller, new_owner)
            self._record(EventKind.OWNERSHIP_TRANSFERRED, caller, {
                "new_owner": new_owner,
            }, now)
        logger.info("Fund %s: ownership passed from %s to %s", self.fund_id, caller, new_owner)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _share_basis(self) -> int:
        """Principal currently accruing shares."""
        raise NotImplementedError

    def _advance(self, cycle_number: int, amount: int, fee: int) -> Cycle:
        return self._ledger.advance(cycle_number, self._share_basis(), amount, fee)

    def _require_positive(self, amount: int) -> None:
        if amount <= 0:
            raise InvalidAmount(f"Amount must be positive, got {amount}")

    def _pull(self, sender: str, amount: int) -> None:
        """Move ``amount`` from ``sender`` into the fund."""
        if not self._token.transfer_from(self.address, sender, self.address, amount):
            raise TokenTransferFailed(
                f"Could not pull {amount} from {sender} into {self.address}"
            )

    def _pay(self, to: str, amount: int) -> None:
        """Move ``amount`` from the fund to ``to``. Zero is a no-op."""
        if amount == 0:
            return
        if not self._token.transfer(self.address, to, amount):
            raise TokenTransferFailed(
                f"Could not pay {amount} from {self.address} to {to}"
            )
        logger.info("Fund %s paid %d to %s", self.fund_id, amount, to)

    def _record(
        self,
        kind: EventKind,
        actor: str,
        payload: dict[str, Any],
        now: datetime,
    ) -> None:
        self._pending_events.append((kind, actor, payload, now))

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Run a write atomically.

        Only what a call can touch is saved: the fields in
        ``_STATE_FIELDS`` (shallow), the ledger's length and last entry,
        and the position slots handed out during the call. Nested use is
        not supported; public writes never call each other.
        """
        snapshot = {name: copy.copy(getattr(self, name)) for name in self._STATE_FIELDS}
        cycles = self._ledger.checkpoint()
        self._positions.begin_journal()
        self._pending_events = []

        def _rollback() -> None:
            for name, value in snapshot.items():
                setattr(self, name, value)
            self._ledger.restore(cycles)
            self._positions.rollback()
            self._pending_events = []

        try:
            yield
        except Exception:
            _rollback()
            raise
        self._positions.commit()
        pending, self._pending_events = self._pending_events, []
        if self._event_log is None:
            return
        for kind, actor, payload, ts in pending:
            self._event_seq += 1
            self._event_log.append(EventRecord.create(
                event_id=f"{self.fund_id}:{self._event_seq}",
                event_kind=kind,
                fund_id=self.fund_id,
                actor_id=actor,
                payload=payload,
                timestamp_utc=ts,
            ))
