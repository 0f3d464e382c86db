"""Idea fund: goal-less sibling of the Solution fund.

There is no goal, no deadline and no stake. Contributors may withdraw
at any time. Every contribution and airdrop pays an anti-spam fee to the
fee recipient first:

    anti_spam = max(amount * percent_fee // percent_scale, min_fee)

The remainder is held by the fund. Outside the opening cycle a
contributor fee is taken from it and shared among earlier contributors;
an airdrop turns the entire remainder into such a fee.

Withdrawals pay principal plus all uncollected fees and remove the
position's shares from the ledger, so later fees are shared only among
positions that are still in the fund. Once every holder has withdrawn,
only rounding dust is left in the fee pool.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from crowdledger.accrual.calculator import percent_of
from crowdledger.accrual.cycles import CoalescePolicy, preserve_fee_cycles
from crowdledger.errors import CannotAirdropInFirstCycle, InvalidAmount
from crowdledger.funding.base import FundBase
from crowdledger.funding.token import TokenLedger
from crowdledger.models.ledger import IdeaParameters, Position
from crowdledger.persistence.event_log import EventKind, EventLog

logger = logging.getLogger(__name__)


class IdeaFund(FundBase):
    """A goal-less fund with withdraw-at-any-time positions.

    Usage:
        fund = IdeaFund("idea-1", "creator", params, token, start=start)
        index = fund.contribute("alice", 1_000, now=now)
        fund.airdrop("sponsor", 500, now=later)
        fund.withdraw("alice", index, now=much_later)
    """

    _STATE_FIELDS = FundBase._STATE_FIELDS + ("tokens", "contributor_fees")

    def __init__(
        self,
        fund_id: str,
        owner: str,
        params: IdeaParameters,
        token: TokenLedger,
        start: Optional[datetime] = None,
        event_log: Optional[EventLog] = None,
        policy: CoalescePolicy = preserve_fee_cycles,
        address: Optional[str] = None,
    ) -> None:
        errors = params.validate()
        if errors:
            raise ValueError("Invalid idea parameters: " + "; ".join(errors))
        super().__init__(
            fund_id, owner, params.ledger, token,
            start=start, event_log=event_log, policy=policy, address=address,
        )
        self.idea_params = params
        self.fee_recipient = params.fee_recipient or owner
        self.tokens = 0
        self.contributor_fees = 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def anti_spam_fee(self, amount: int) -> int:
        p = self.idea_params
        return max(percent_of(amount, p.percent_fee, p.ledger.percent_scale), p.min_fee)

    def check_position(
        self,
        owner: str,
        index: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> tuple[int, int]:
        """Return ``(position_tokens, shares)``: what a withdrawal would pay now."""
        index = self._positions.resolve_index(owner, index)
        position = self._positions.get(owner, index)
        cycle_number = self.current_cycle_number(now)
        statement = self._distributor.statement(self._ledger, position, cycle_number)
        fees = min(statement.fees_earned, self.contributor_fees)
        return position.contribution + fees, statement.shares

    def summary(self) -> dict[str, Any]:
        data = super().summary()
        data.update({
            "kind": "idea",
            "tokens": self.tokens,
            "contributor_fees": self.contributor_fees,
            "fee_recipient": self.fee_recipient,
        })
        return data

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def contribute(
        self,
        caller: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> int:
        """Contribute ``amount`` and open a new position. Returns its index."""
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.require_not_paused()
            anti_spam, remainder = self._split_anti_spam(amount)

            cycle_number = self.current_cycle_number(now)
            fee = 0
            if not self._ledger.is_opening_cycle(cycle_number):
                fee = percent_of(
                    remainder, self._params.contributor_fee, self._params.percent_scale
                )
            principal = remainder - fee

            self._advance(cycle_number, principal, fee)
            last = self._ledger.last_index
            index = self._positions.append(caller, Position(principal, last, last))
            self.tokens += remainder
            self.contributor_fees += fee

            self._record(EventKind.CONTRIBUTED, caller, {
                "index": index,
                "amount": amount,
                "anti_spam_fee": anti_spam,
                "credited": principal,
                "fee": fee,
                "cycle_number": cycle_number,
            }, now)
            self._pull(caller, amount)
            self._pay(self.fee_recipient, anti_spam)
        logger.info(
            "Fund %s: %s contributed %d (fee %d, anti-spam %d) at cycle %d",
            self.fund_id, caller, amount, fee, anti_spam, cycle_number,
        )
        return index

    def airdrop(
        self,
        caller: str,
        amount: int,
        now: Optional[datetime] = None,
    ) -> int:
        """Donate ``amount`` to current holders as fees. Returns the fee added."""
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.require_not_paused()
            anti_spam, remainder = self._split_anti_spam(amount)
            cycle_number = self.current_cycle_number(now)
            if self._ledger.is_opening_cycle(cycle_number):
                raise CannotAirdropInFirstCycle(
                    f"Cycle {cycle_number} is the fund's opening cycle"
                )

            self._advance(cycle_number, 0, remainder)
            self.tokens += remainder
            self.contributor_fees += remainder

            self._record(EventKind.AIRDROPPED, caller, {
                "amount": amount,
                "anti_spam_fee": anti_spam,
                "fee": remainder,
                "cycle_number": cycle_number,
            }, now)
            self._pull(caller, amount)
            self._pay(self.fee_recipient, anti_spam)
        return remainder

    def withdraw(
        self,
        caller: str,
        index: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Close a position. Returns the amount paid.

        Pays principal plus every uncollected fee, the latest entry's
        included. The position's shares and its cut of the latest entry
        leave the ledger, so the holders that remain split the rest.
        """
        now = now or datetime.now(timezone.utc)
        with self._transaction():
            self._access.require_not_paused()
            index = self._positions.resolve_index(caller, index)
            position = self._positions.get(caller, index)

            self._advance(self.current_cycle_number(now), 0, 0)
            last = self._ledger.last_index
            current = 0
            if position.last_collected_cycle_index < last:
                current = self._distributor.fee_share(self._ledger, position, last)
            fees = min(
                self._distributor.fees_earned(
                    self._ledger, position, through_index=last - 1
                ) + current,
                self.contributor_fees,
            )
            self._ledger.remove_shares(
                self._distributor.shares_through(self._ledger, position, last),
                fees=current,
            )

            principal = position.contribution
            payout = principal + fees
            self.tokens -= payout
            self.contributor_fees -= fees
            position.tombstone()

            self._record(EventKind.WITHDRAWN, caller, {
                "index": index,
                "principal": principal,
                "fees": fees,
            }, now)
            self._pay(caller, payout)
        logger.info(
            "Fund %s: %s withdrew position %d (principal %d, fees %d)",
            self.fund_id, caller, index, principal, fees,
        )
        return payout

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _split_anti_spam(self, amount: int) -> tuple[int, int]:
        self._require_positive(amount)
        anti_spam = self.anti_spam_fee(amount)
        if amount <= anti_spam:
            raise InvalidAmount(
                f"Amount {amount} does not cover the anti-spam fee {anti_spam}"
            )
        return anti_spam, amount - anti_spam

    def _share_basis(self) -> int:
        return self.tokens - self.contributor_fees
