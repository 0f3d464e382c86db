"""Token ledgers: the fungible payment/staking token funds settle through.

Funds never hold balances themselves; they call a TokenLedger. Adding a
new token backend means implementing this Protocol. Nothing in the
accrual engine or the funds changes.

Failure signalling is boolean-or-raise: a transfer either returns False
or raises, and the calling fund turns either into an aborted call.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable


@runtime_checkable
class TokenLedger(Protocol):
    """Minimal fungible-token interface consumed by funds."""

    def balance_of(self, address: str) -> int:
        ...

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        """Move ``amount`` from ``sender`` to ``to``."""
        ...

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        """Move ``amount`` from ``owner`` to ``to`` using ``spender``'s allowance."""
        ...


class InMemoryToken:
    """Balance ledger held in memory, with ERC-20 style allowances.

    Used by the simulator and tests. Transfers that would overdraw a
    balance or an allowance return False and change nothing.

    Usage:
        token = InMemoryToken()
        token.mint("alice", 1_000)
        token.approve("alice", fund.address, 1_000)
    """

    def __init__(self, symbol: str = "TKN") -> None:
        self.symbol = symbol
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}

    def mint(self, address: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Cannot mint a negative amount: {amount}")
        self._balances[address] = self._balances.get(address, 0) + amount

    def approve(self, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"Allowance must be >= 0, got {amount}")
        self._allowances[(owner, spender)] = amount

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    def holders(self) -> list[str]:
        return sorted(self._balances)

    @property
    def total_supply(self) -> int:
        return sum(self._balances.values())

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        if amount < 0 or self.balance_of(sender) < amount:
            return False
        self._move(sender, to, amount)
        return True

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        allowed = self.allowance(owner, spender)
        if amount < 0 or allowed < amount or self.balance_of(owner) < amount:
            return False
        self._allowances[(owner, spender)] = allowed - amount
        self._move(owner, to, amount)
        return True

    def _move(self, sender: str, to: str, amount: int) -> None:
        self._balances[sender] = self._balances.get(sender, 0) - amount
        self._balances[to] = self._balances.get(to, 0) + amount


ERC20_ABI: list[dict[str, Any]] = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "transfer",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "transferFrom",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "from", "type": "address"},
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
]


class Web3Token:
    """ERC-20 token on an Ethereum-compatible chain, driven through web3.

    Reads go straight to the contract. Writes are signed locally with an
    eth_account key and wait for one confirmation; a reverted receipt
    is reported as a failed transfer.

    Usage:
        token = Web3Token.connect(rpc_url, token_address, private_key)
        token.balance_of("0x...")
    """

    def __init__(
        self,
        w3: Any,
        contract: Any,
        account: Optional[Any] = None,
        gas: int = 100_000,
        receipt_timeout: int = 300,
    ) -> None:
        self._w3 = w3
        self._contract = contract
        self._account = account
        self._gas = gas
        self._receipt_timeout = receipt_timeout

    @classmethod
    def connect(
        cls,
        rpc_url: str,
        token_address: str,
        private_key: Optional[str] = None,
        **kwargs: Any,
    ) -> Web3Token:
        """Build a token bound to ``token_address`` over an HTTP RPC endpoint."""
        from web3 import Web3, HTTPProvider
        from eth_account import Account

        w3 = Web3(HTTPProvider(rpc_url))
        contract = w3.eth.contract(
            address=Web3.to_checksum_address(token_address), abi=ERC20_ABI
        )
        account = Account.from_key(private_key) if private_key else None
        return cls(w3, contract, account, **kwargs)

    @property
    def address(self) -> Optional[str]:
        """Address of the signing account, if one is configured."""
        return self._account.address if self._account is not None else None

    def balance_of(self, address: str) -> int:
        checksum = self._w3.to_checksum_address(address)
        return int(self._contract.functions.balanceOf(checksum).call())

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        self._require_signer(sender)
        call = self._contract.functions.transfer(
            self._w3.to_checksum_address(to), amount
        )
        return self._send(call)

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        self._require_signer(spender)
        call = self._contract.functions.transferFrom(
            self._w3.to_checksum_address(owner),
            self._w3.to_checksum_address(to),
            amount,
        )
        return self._send(call)

    def _require_signer(self, address: str) -> None:
        if self._account is None:
            raise ValueError("Web3Token has no signing account configured")
        if address.lower() != self._account.address.lower():
            raise ValueError(
                f"Cannot sign for {address}: configured account is {self._account.address}"
            )

    def _send(self, call: Any) -> bool:
        sender = self._account.address
        tx = call.build_transaction({
            "from": sender,
            "nonce": self._w3.eth.get_transaction_count(sender),
            "chainId": self._w3.eth.chain_id,
            "gas": self._gas,
        })
        signed = self._account.sign_transaction(tx)
        tx_hash = self._w3.eth.send_raw_transaction(signed.raw_transaction)
        receipt = self._w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self._receipt_timeout
        )
        return receipt.status == 1
