"""Tests for the Idea fund: proves anti-spam fees, airdrops and withdrawals
settle exactly, including airdrops that land right after a withdrawal."""

import pytest
from datetime import datetime, timedelta, timezone

from crowdledger.accrual.cycles import overwrite_empty_cycles, preserve_fee_cycles
from crowdledger.errors import (
    CannotAirdropInFirstCycle,
    InvalidAmount,
    PositionDoesNotExist,
    TokenTransferFailed,
)
from crowdledger.funding.idea import IdeaFund
from crowdledger.funding.token import InMemoryToken
from crowdledger.models.ledger import IdeaParameters, LedgerParameters


FUND = "idea-1"
LEDGER = LedgerParameters(
    cycle_length=3600,
    accrual_rate=1_000_000,
    percent_scale=1_000_000,
    contributor_fee=100_000,
)
START_BALANCE = 100_000


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


def _at(cycle: int, seconds: int = 0) -> datetime:
    return _now() + timedelta(hours=cycle, seconds=seconds)


def _fund(
    percent_fee: int = 0,
    min_fee: int = 0,
    policy=preserve_fee_cycles,
) -> tuple[IdeaFund, InMemoryToken]:
    token = InMemoryToken()
    for holder in ("alice", "bob", "creator", "sponsor"):
        token.mint(holder, START_BALANCE)
        token.approve(holder, FUND, START_BALANCE)
    params = IdeaParameters(
        ledger=LEDGER,
        percent_fee=percent_fee,
        min_fee=min_fee,
        fee_recipient="treasury",
    )
    fund = IdeaFund(FUND, "creator", params, token, start=_now(), policy=policy)
    return fund, token


class TestAntiSpamFee:
    def test_min_fee_applies_to_small_amounts(self) -> None:
        fund, token = _fund(percent_fee=10_000, min_fee=5)
        fund.contribute("alice", 100, now=_at(0))
        assert token.balance_of("treasury") == 5
        assert fund.position("alice", 0).contribution == 95
        assert fund.tokens == 95
        assert token.balance_of(FUND) == 95

    def test_percent_fee_applies_to_large_amounts(self) -> None:
        fund, token = _fund(percent_fee=10_000, min_fee=5)
        fund.contribute("alice", 10_000, now=_at(0))
        assert token.balance_of("treasury") == 100
        assert fund.tokens == 9_900

    def test_amount_must_exceed_anti_spam_fee(self) -> None:
        fund, token = _fund(percent_fee=10_000, min_fee=5)
        with pytest.raises(InvalidAmount, match="anti-spam"):
            fund.contribute("alice", 5, now=_at(0))
        assert token.balance_of("treasury") == 0
        assert fund.positions_length("alice") == 0

    def test_fee_recipient_defaults_to_owner(self) -> None:
        params = IdeaParameters(ledger=LEDGER, percent_fee=0, min_fee=1)
        fund = IdeaFund(FUND, "creator", params, InMemoryToken(), start=_now())
        assert fund.fee_recipient == "creator"

    def test_contributor_fee_outside_opening_cycle(self) -> None:
        fund, _ = _fund(percent_fee=10_000, min_fee=5)
        fund.contribute("alice", 1_000, now=_at(0))
        fund.contribute("bob", 1_000, now=_at(1))
        # 1_000 - 10 anti-spam = 990, of which 99 is the contributor fee.
        assert fund.position("bob", 0).contribution == 891
        assert fund.contributor_fees == 99
        assert fund.tokens == 990 + 990


class TestWithdraw:
    def test_withdraw_in_opening_cycle_returns_principal(self) -> None:
        fund, token = _fund()
        fund.contribute("alice", 100, now=_at(0))
        assert fund.withdraw("alice", now=_at(0, 60)) == 100
        assert token.balance_of("alice") == START_BALANCE
        assert fund.tokens == 0
        assert not fund.position("alice", 0).live

    def test_withdraw_pays_uncollected_fees(self) -> None:
        fund, token = _fund()
        fund.contribute("alice", 100, now=_at(0))
        fund.contribute("bob", 100, now=_at(1))
        assert fund.check_position("alice", now=_at(1)) == (110, 100)
        assert fund.check_position("alice", now=_at(2)) == (110, 200)

        assert fund.withdraw("alice", now=_at(2)) == 110
        assert fund.check_position("bob", now=_at(2)) == (90, 90)
        assert fund.withdraw("bob", now=_at(3)) == 90
        assert token.balance_of(FUND) == 0
        assert fund.tokens == 0
        assert fund.contributor_fees == 0

    def test_withdraw_twice_rejected(self) -> None:
        fund, _ = _fund()
        fund.contribute("alice", 100, now=_at(0))
        fund.withdraw("alice", now=_at(1))
        with pytest.raises(PositionDoesNotExist):
            fund.withdraw("alice", 0, now=_at(2))

    def test_split_then_withdraw_all(self) -> None:
        fund, token = _fund()
        fund.contribute("alice", 30, now=_at(0))
        assert fund.split("alice", 0, 2, 10, now=_at(0)) == [1, 2]
        total = sum(fund.withdraw("alice", i, now=_at(2)) for i in range(3))
        assert total == 30
        assert token.balance_of("alice") == START_BALANCE
        assert token.balance_of(FUND) == 0

    def test_last_holders_withdraw_in_fee_cycle(self) -> None:
        fund, token = _fund()
        fund.contribute("alice", 100, now=_at(0))
        fund.contribute("bob", 100, now=_at(1))
        assert fund.withdraw("alice", now=_at(1, 60)) == 110
        assert fund.withdraw("bob", now=_at(1, 120)) == 90
        assert fund.contributor_fees == 0
        assert fund.tokens == 0
        assert token.balance_of(FUND) == 0

    def test_fee_after_same_cycle_withdrawal_goes_to_remaining_holder(self) -> None:
        fund, token = _fund()
        fund.contribute("alice", 100, now=_at(0))
        fund.contribute("creator", 100, now=_at(0))
        fund.contribute("bob", 100, now=_at(1))
        # alice takes half of bob's fee and leaves.
        assert fund.withdraw("alice", now=_at(1, 60)) == 105
        fund.contribute("sponsor", 100, now=_at(1, 120))
        # The other half plus all of sponsor's fee.
        assert fund.withdraw("creator", now=_at(2)) == 115
        assert fund.withdraw("bob", now=_at(2)) == 90
        assert fund.withdraw("sponsor", now=_at(2)) == 90
        assert fund.contributor_fees == 0
        assert token.balance_of(FUND) == 0

    def test_failed_payout_restores_ledger_and_position(self) -> None:
        fund, token = _fund()
        fund.contribute("alice", 100, now=_at(0))
        fund.contribute("bob", 100, now=_at(1))
        token.transfer(FUND, "elsewhere", token.balance_of(FUND))
        with pytest.raises(TokenTransferFailed):
            fund.withdraw("alice", now=_at(1, 60))
        assert fund.cycle(1).as_tuple() == (1, 100, 10, True)
        assert fund.position("alice", 0).live
        assert fund.tokens == 200
        assert fund.contributor_fees == 10

    def test_transferred_position_withdraws_to_new_owner(self) -> None:
        fund, token = _fund()
        fund.contribute("alice", 100, now=_at(0))
        fund.transfer_position("alice", "carol", 0, now=_at(1))
        assert fund.withdraw("carol", now=_at(2)) == 100
        assert token.balance_of("carol") == 100


class TestAirdrop:
    def test_airdrop_rejected_in_opening_cycle(self) -> None:
        fund, _ = _fund()
        with pytest.raises(CannotAirdropInFirstCycle):
            fund.airdrop("sponsor", 100, now=_at(0))
        fund.contribute("alice", 100, now=_at(0))
        with pytest.raises(CannotAirdropInFirstCycle):
            fund.airdrop("sponsor", 100, now=_at(0, 600))

    def test_airdrop_becomes_fee_for_holders(self) -> None:
        fund, token = _fund(percent_fee=10_000, min_fee=1)
        fund.contribute("alice", 1_000, now=_at(0))
        assert fund.airdrop("sponsor", 500, now=_at(1)) == 495
        assert token.balance_of("treasury") == 10 + 5
        assert fund.contributor_fees == 495
        assert fund.positions_length("sponsor") == 0
        assert fund.withdraw("alice", now=_at(2)) == 990 + 495
        assert token.balance_of(FUND) == 0

    def test_airdrop_shared_by_shares(self) -> None:
        fund, _ = _fund()
        fund.contribute("alice", 100, now=_at(0))
        fund.contribute("bob", 300, now=_at(0))
        fund.airdrop("sponsor", 400, now=_at(1))
        assert fund.withdraw("alice", 0, now=_at(2)) == 200
        assert fund.withdraw("bob", 0, now=_at(2)) == 600


class TestFeePoolDrains:
    def test_everyone_withdrawing_empties_the_fund(self) -> None:
        fund, token = _fund(min_fee=1)
        fund.contribute("alice", 21, now=_at(0))
        fund.contribute("bob", 11, now=_at(0))
        fund.contribute("creator", 101, now=_at(1))
        fund.airdrop("sponsor", 51, now=_at(1, 60))
        fund.contribute("creator", 151, now=_at(2))
        assert fund.tokens == 330
        assert fund.contributor_fees == 75

        paid = [
            fund.withdraw("creator", 0, now=_at(2, 60)),
            fund.withdraw("alice", now=_at(2, 60)),
            fund.withdraw("bob", now=_at(2, 60)),
            fund.withdraw("creator", 1, now=_at(2, 60)),
        ]
        assert paid == [99, 64, 32, 135]
        assert fund.contributor_fees == 0
        assert fund.tokens == 0
        assert token.balance_of(FUND) == 0
        assert token.balance_of("treasury") == 5


class TestAirdropAfterWithdrawal:
    def _replay(self, policy) -> tuple[IdeaFund, InMemoryToken, int]:
        fund, token = _fund(policy=policy)
        fund.contribute("creator", 100, now=_at(0))
        fund.contribute("alice", 100, now=_at(1))
        assert fund.withdraw("creator", now=_at(2)) == 110
        fund.airdrop("sponsor", 50, now=_at(2, 60))
        fund.contribute("bob", 100, now=_at(3))
        paid = fund.withdraw("alice", now=_at(4))
        return fund, token, paid

    def test_airdrop_fees_reach_remaining_holder(self) -> None:
        fund, token, paid = self._replay(preserve_fee_cycles)
        # principal 90 + airdrop 50 + bob's contributor fee 10
        assert paid == 150
        assert fund.withdraw("bob", now=_at(5)) == 90
        assert token.balance_of(FUND) == 0

    def test_check_position_sees_airdrop(self) -> None:
        fund, _ = _fund()
        fund.contribute("creator", 100, now=_at(0))
        fund.contribute("alice", 100, now=_at(1))
        fund.withdraw("creator", now=_at(2))
        fund.airdrop("sponsor", 50, now=_at(2, 60))
        fund.contribute("bob", 100, now=_at(3))
        assert fund.check_position("alice", now=_at(3)) == (150, 180)

    def test_overwrite_policy_loses_airdrop(self) -> None:
        fund, token, paid = self._replay(overwrite_empty_cycles)
        assert paid == 100
        # The lost airdrop stays stranded in the fund.
        fund.withdraw("bob", now=_at(5))
        assert token.balance_of(FUND) == 50
