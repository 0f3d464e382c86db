"""Tests for token ledgers: proves the in-memory token enforces balances and
allowances, and that the web3 adapter signs, sends and reports receipts."""

import pytest
from datetime import datetime, timezone
from types import SimpleNamespace

from crowdledger.errors import TokenTransferFailed
from crowdledger.funding.solution import SolutionFund
from crowdledger.funding.token import InMemoryToken, TokenLedger, Web3Token
from crowdledger.models.ledger import LedgerParameters, SolutionParameters


FUND_ADDRESS = "0xFund"


class _FakeCall:
    def __init__(self, name: str, args: tuple, sent: list) -> None:
        self.name = name
        self.args = args
        self.sent = sent

    def call(self) -> int:
        return 42

    def build_transaction(self, tx: dict) -> dict:
        self.sent.append((self.name, self.args, tx))
        return dict(tx, data=self.name)


class _FakeFunctions:
    def __init__(self, sent: list) -> None:
        self.sent = sent

    def balanceOf(self, account: str) -> _FakeCall:
        return _FakeCall("balanceOf", (account,), self.sent)

    def transfer(self, to: str, amount: int) -> _FakeCall:
        return _FakeCall("transfer", (to, amount), self.sent)

    def transferFrom(self, owner: str, to: str, amount: int) -> _FakeCall:
        return _FakeCall("transferFrom", (owner, to, amount), self.sent)


class _FakeEth:
    chain_id = 8453

    def __init__(self, status: int) -> None:
        self.status = status
        self.raw: list = []

    def get_transaction_count(self, address: str) -> int:
        return 7

    def send_raw_transaction(self, raw: bytes) -> bytes:
        self.raw.append(raw)
        return b"\x01" * 32

    def wait_for_transaction_receipt(self, tx_hash: bytes, timeout: int = 120) -> SimpleNamespace:
        return SimpleNamespace(status=self.status, blockNumber=1)


class _FakeWeb3:
    def __init__(self, status: int = 1) -> None:
        self.eth = _FakeEth(status)

    def to_checksum_address(self, address: str) -> str:
        return address


def _web3_token(status: int = 1, with_account: bool = True) -> tuple[Web3Token, list, _FakeWeb3]:
    sent: list = []
    w3 = _FakeWeb3(status)
    contract = SimpleNamespace(functions=_FakeFunctions(sent))
    account = None
    if with_account:
        account = SimpleNamespace(
            address=FUND_ADDRESS,
            sign_transaction=lambda tx: SimpleNamespace(raw_transaction=b"signed"),
        )
    return Web3Token(w3, contract, account), sent, w3


class TestInMemoryToken:
    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryToken(), TokenLedger)

    def test_transfer(self) -> None:
        token = InMemoryToken()
        token.mint("alice", 100)
        assert token.transfer("alice", "bob", 60)
        assert token.balance_of("alice") == 40
        assert token.balance_of("bob") == 60
        assert not token.transfer("alice", "bob", 41)
        assert token.balance_of("alice") == 40
        assert token.total_supply == 100

    def test_transfer_from_consumes_allowance(self) -> None:
        token = InMemoryToken()
        token.mint("alice", 100)
        token.approve("alice", "fund", 50)
        assert token.transfer_from("fund", "alice", "fund", 30)
        assert token.allowance("alice", "fund") == 20
        assert not token.transfer_from("fund", "alice", "fund", 30)
        assert token.balance_of("fund") == 30

    def test_allowance_does_not_exceed_balance(self) -> None:
        token = InMemoryToken()
        token.mint("alice", 10)
        token.approve("alice", "fund", 50)
        assert not token.transfer_from("fund", "alice", "fund", 20)

    def test_negative_amounts_rejected(self) -> None:
        token = InMemoryToken()
        with pytest.raises(ValueError):
            token.mint("alice", -1)
        with pytest.raises(ValueError):
            token.approve("alice", "fund", -1)
        assert not token.transfer("alice", "bob", -1)


class TestWeb3Token:
    def test_satisfies_protocol(self) -> None:
        token, _, _ = _web3_token()
        assert isinstance(token, TokenLedger)
        assert token.address == FUND_ADDRESS

    def test_balance_of_reads_contract(self) -> None:
        token, _, _ = _web3_token()
        assert token.balance_of("0xAlice") == 42

    def test_transfer_builds_signed_transaction(self) -> None:
        token, sent, w3 = _web3_token()
        assert token.transfer(FUND_ADDRESS, "0xBob", 500)
        name, args, tx = sent[0]
        assert name == "transfer"
        assert args == ("0xBob", 500)
        assert tx["from"] == FUND_ADDRESS
        assert tx["nonce"] == 7
        assert tx["chainId"] == 8453
        assert w3.eth.raw == [b"signed"]

    def test_transfer_from_uses_owner_and_recipient(self) -> None:
        token, sent, _ = _web3_token()
        assert token.transfer_from(FUND_ADDRESS, "0xAlice", FUND_ADDRESS, 10)
        assert sent[0][:2] == ("transferFrom", ("0xAlice", FUND_ADDRESS, 10))

    def test_reverted_receipt_reports_failure(self) -> None:
        token, _, _ = _web3_token(status=0)
        assert token.transfer(FUND_ADDRESS, "0xBob", 500) is False

    def test_signer_must_match(self) -> None:
        token, _, _ = _web3_token()
        with pytest.raises(ValueError, match="Cannot sign"):
            token.transfer("0xSomeoneElse", "0xBob", 1)

    def test_write_without_account(self) -> None:
        token, _, _ = _web3_token(with_account=False)
        assert token.address is None
        with pytest.raises(ValueError, match="no signing account"):
            token.transfer(FUND_ADDRESS, "0xBob", 1)

    def test_reverted_pull_aborts_contribution(self) -> None:
        token, _, _ = _web3_token(status=0)
        start = datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)
        params = SolutionParameters(
            ledger=LedgerParameters(3600, 1_000_000, 1_000_000, 100_000),
            funding_goal=1_000,
            deadline=start.replace(day=20),
        )
        fund = SolutionFund("sol-1", "creator", params, token, start=start, address=FUND_ADDRESS)
        with pytest.raises(TokenTransferFailed):
            fund.contribute("0xAlice", 100, now=start)
        assert fund.tokens_contributed == 0
        assert fund.positions_length("0xAlice") == 0
