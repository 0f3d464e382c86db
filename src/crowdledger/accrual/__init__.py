"""Accrual engine: calculator, cycle ledger, position store, fee distributor.

Everything in this package is free of token transfers and clocks: callers
pass in the current cycle number and the principal accruing shares.
"""

from crowdledger.accrual.cycles import (
    CycleLedger,
    overwrite_empty_cycles,
    preserve_fee_cycles,
)
from crowdledger.accrual.distributor import FeeDistributor, FeeStatement
from crowdledger.accrual.positions import PositionStore

__all__ = [
    "CycleLedger",
    "FeeDistributor",
    "FeeStatement",
    "PositionStore",
    "overwrite_empty_cycles",
    "preserve_fee_cycles",
]
