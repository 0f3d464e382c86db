"""Solution fund: goal-bearing crowdfunding with fee sharing and refunds.

Contributors fund a goal before a deadline. Each contribution outside the
opening cycle pays a contributor fee, which is shared among earlier
contributors in proportion to their time-weighted shares. If the goal
fails, contributors get their principal back along with uncollected fees
and a proportional slice of the creator's stake. If it succeeds, the
owner may withdraw the contributed principal.

Money flow per contribution:
    amount = credited principal + contributor fee
    credited principal → tokens_contributed (owner-withdrawable once funded)
    contributor fee    → contributor_fees (paid out via collect_fees/refund)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from crowdledger.accrual.calculator import percent_of
from crowdledger.accrual.cycles import CoalescePolicy, preserve_fee_cycles
from crowdledger.errors import (
    AlreadyRefunded,
    PositionDoesNotExist,
    WithdrawExceedsAvailable,
)
from crowdledger.funding.base import FundBase
from crowdledger.funding.goal import GoalStateMachine
from crowdledger.funding.token import TokenLedger
from crowdledger.models.ledger import GoalState, Position, SolutionParameters
from crowdledger.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)


class SolutionFund(FundBase):
    """A goal-bearing fund.

    Usage:
        fund = SolutionFund("sol-1", "creator", params, token, start=start)
        index = fund.contribute("alice", 1_000, now=now)
        fees, shares = fund.check_position("alice", index, now=later)
        fund.collect_fees("alice", index, now=later)
    """

    _STATE_FIELDS = FundBase._STATE_FIELDS + (
        "tokens_contributed",
        "tokens_withdrawn",
        "contributor_fees",
        "stake",
        "_stakes",
        "_refund_stake_pool",
        "_goal",
    )

    def __init__(
        self,
        fund_id: str,
        owner: str,
        params: SolutionParameters,
        token: TokenLedger,
        start: Optional[datetime] = None,
        event_log: Optional[EventLog] = None,
        policy: CoalescePolicy = preserve_fee_cycles,
        address: Optional[str] = None,
    ) -> None:
        errors = params.validate()
        if errors:
            raise ValueError("Invalid solution parameters: " + "; ".join(errors))
        super().__init__(
            fund_id, owner, params.ledger, token,
            start=start, event_log=event_log, policy=policy, address=address,
        )
        self.tokens_contributed = 0
        self.tokens_withdrawn = 0
        self.contributor_fees = 0
        # The initial stake is deposited by whoever creates the fund.
        self.stake = params.initial_stake
        self._stakes: Dict[str, int] = (
            {owner: params.initial_stake} if params.initial_stake else {}
        )
        self._goal = GoalStateMachine(params.funding_goal, params.deadline)
        # Stake as it stood at the first refund; slices are taken from this.
        self._refund_stake_pool: Optional[int] = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def total_tokens(self) -> int:
        """Principal still held by the fund."""
        return self.tokens_contributed - self.tokens_withdrawn

    @property
    def funding_goal(self) -> int:
        return self._goal.funding_goal

    @property
    def deadline(self) -> datetime:
        return self._goal.deadline

    def goal_state(self, now: Optional[datetime] = None) -> GoalState:
        now = now or datetime.now(timezone.utc)
        return self._goal.state(self.tokens_contributed, now)

    def goal_reached(self) -> bool:
        return self._goal.reached(self.tokens_contributed)

    def goal_failed(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self._goal.failed(self.tokens_contributed, now)

    def stakes(self, address: str) -> int:
        return self._stakes.get(address, 0)

    def check_position(
        self,
        owner: str,
        index: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> tuple[int, int]:
        """Return ``(fees_earned, shares)`` for a live position, read-only."""
        index = self._positions.resolve_index(owner, index)
        position = self._positions.get(owner, index)
        statement = self._distributor.statement(
            self._ledger, position, self.current_cycle_number(now)
        )
        return statement.fees_earned, statement.shares

    def unaccounted_principal(self) -> int:
        """``tokens_contributed - tokens_withdrawn - Σ live principal``.

        Zero while only contributions, fee collections and refunds have
        happened; owner withdrawals lower it by the amount withdrawn.
        """
        return (
            self.tokens_contributed
            - self.tokens_withdrawn
            - self._positions.total_contribution()
        )

    def summary(self) -> dict[str, Any]:
        data = super().summary()
        data.update({
            "kind": "solution",
            "funding_goal": self.funding_goal,
            "deadline": self.deadline.isoformat(),
            "tokens_contributed": self.tokens_contributed,
            "tokens_withdrawn": self.tokens_withdrawn,
            "contributor_fees": self.contributor_fees,
            "stake": self.stake,
        })
        return data

    # ------------------------------------------------------------------
    # Contributions and payouts
    # ------------------------------------------------------------------

    def contribute(
        self,
        caller: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> int:
        """Contribute ``amount`` and open a new position.

        Returns:
            The new position's index in the caller's list.
        """
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.require_not_paused()
            self._require_positive(amount)
            self._goal.require_not_failed(self.tokens_contributed, now)

            cycle_number = self.current_cycle_number(now)
            fee = 0
            if not self._ledger.is_opening_cycle(cycle_number):
                fee = percent_of(amount, self._params.contributor_fee, self._params.percent_scale)
            credited = amount - fee

            self._advance(cycle_number, credited, fee)
            last = self._ledger.last_index
            index = self._positions.append(caller, Position(credited, last, last))
            self.tokens_contributed += credited
            self.contributor_fees += fee

            self._record(EventKind.CONTRIBUTED, caller, {
                "index": index,
                "amount": amount,
                "credited": credited,
                "fee": fee,
                "cycle_number": cycle_number,
            }, now)
            self._pull(caller, amount)
        logger.info(
            "Fund %s: %s contributed %d (fee %d) at cycle %d",
            self.fund_id, caller, amount, fee, cycle_number,
        )
        return index

    def collect_fees(
        self,
        caller: str,
        index: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Pay out fees earned by a position. Returns the amount paid."""
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.require_not_paused()
            index = self._positions.resolve_index(caller, index)
            position = self._positions.get(caller, index)

            self._advance(self.current_cycle_number(now), 0, 0)
            fees = min(
                self._distributor.fees_earned(self._ledger, position),
                self.contributor_fees,
            )
            position.last_collected_cycle_index = self._ledger.last_index
            self.contributor_fees -= fees

            self._record(EventKind.FEES_COLLECTED, caller, {
                "index": index,
                "fees": fees,
                "through_cycle_index": position.last_collected_cycle_index,
            }, now)
            self._pay(caller, fees)
        return fees

    def refund(
        self,
        caller: str,
        index: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Refund a position of a failed fund. Returns the amount paid.

        Pays principal, uncollected fees and a share of the stake
        proportional to the position's shares. The share is taken from the
        stake as it stood at the first refund, not the remaining stake, so
        refund order does not change anyone's slice.
        """
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.require_not_paused()
            index = self._positions.resolve_index(caller, index)
            slot = self._positions.slot(caller, index)
            if slot.refunded:
                raise AlreadyRefunded(f"Position {caller}[{index}] already refunded")
            if not slot.live:
                raise PositionDoesNotExist(caller, index)
            self._goal.require_failed(self.tokens_contributed, now)

            cycle_number = self.current_cycle_number(now)
            self._advance(cycle_number, 0, 0)
            statement = self._distributor.statement(self._ledger, slot, cycle_number)
            fees = min(statement.fees_earned, self.contributor_fees)

            total_shares = self._ledger.total_shares(cycle_number, self._share_basis())
            if self._refund_stake_pool is None:
                self._refund_stake_pool = self.stake
            stake_award = 0
            if total_shares > 0:
                stake_award = min(
                    self._refund_stake_pool * statement.shares // total_shares,
                    self.stake,
                )

            principal = slot.contribution
            payout = principal + fees + stake_award
            self.contributor_fees -= fees
            self.stake -= stake_award
            self.tokens_withdrawn += principal
            slot.tombstone()
            slot.refunded = True

            self._record(EventKind.REFUNDED, caller, {
                "index": index,
                "principal": principal,
                "fees": fees,
                "stake_award": stake_award,
            }, now)
            self._pay(caller, payout)
        logger.info(
            "Fund %s: refunded %s[%d] (principal %d, fees %d, stake %d)",
            self.fund_id, caller, index, principal, fees, stake_award,
        )
        return payout

    # ------------------------------------------------------------------
    # Owner operations
    # ------------------------------------------------------------------

    def withdraw_funds(
        self,
        caller: str,
        to: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> None:
        """Owner withdrawal of contributed principal once the goal is reached."""
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.require_owner(caller)
            self._require_positive(amount)
            self._goal.require_reached(self.tokens_contributed)
            available = self.tokens_contributed - self.tokens_withdrawn
            if amount > available:
                raise WithdrawExceedsAvailable(
                    f"Requested {amount}, only {available} available"
                )
            self.tokens_withdrawn += amount
            self._record(EventKind.FUNDS_WITHDRAWN, caller, {
                "to": to,
                "amount": amount,
            }, now)
            self._pay(to, amount)

    def extend_goal(
        self,
        caller: str,
        goal: int,
        deadline: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> None:
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.require_owner(caller)
            self._goal.require_not_failed(self.tokens_contributed, now)
            self._goal.extend(goal, now, deadline)
            self._record(EventKind.GOAL_EXTENDED, caller, {
                "goal": goal,
                "deadline": self._goal.deadline.isoformat(),
            }, now)

    # ------------------------------------------------------------------
    # Stake
    # ------------------------------------------------------------------

    def add_stake(
        self,
        caller: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> None:
        """Add collateral that is shared among contributors if the goal fails."""
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.require_not_paused()
            self._require_positive(amount)
            self._goal.require_not_failed(self.tokens_contributed, now)
            self.stake += amount
            self._stakes[caller] = self._stakes.get(caller, 0) + amount
            self._record(EventKind.STAKE_ADDED, caller, {"amount": amount}, now)
            self._pull(caller, amount)

    def remove_stake(
        self,
        caller: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> None:
        """Withdraw own collateral once the goal has been reached."""
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.require_not_paused()
            self._require_positive(amount)
            self._goal.require_reached(self.tokens_contributed)
            own = self._stakes.get(caller, 0)
            if amount > own:
                raise WithdrawExceedsAvailable(
                    f"{caller} has staked {own}, cannot remove {amount}"
                )
            self.stake -= amount
            self._stakes[caller] = own - amount
            self._record(EventKind.STAKE_REMOVED, caller, {"amount": amount}, now)
            self._pay(caller, amount)

    def transfer_stake(
        self,
        caller: str,
        to: str,
        now: Optional[datetime] = None,
    ) -> int:
        """Move the caller's entire stake to ``to``. Returns the amount moved."""
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.require_not_paused()
            amount = self._stakes.pop(caller, 0)
            self._require_positive(amount)
            self._stakes[to] = self._stakes.get(to, 0) + amount
            self._record(EventKind.STAKE_TRANSFERRED, caller, {
                "to": to,
                "amount": amount,
            }, now)
        return amount

    def _share_basis(self) -> int:
        return self.tokens_contributed
