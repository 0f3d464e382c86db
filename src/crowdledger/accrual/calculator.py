"""Accrual calculator: pure share arithmetic, no stored state.

Shares are a time-weighted measure of principal:

    shares = accrual_rate * elapsed_cycles * tokens // percent_scale

Multiplication always happens before the single floor division, so the
same inputs give the same answer however the elapsed range was reached.
"""

from __future__ import annotations

from datetime import datetime, timedelta


def current_cycle_number(
    start: datetime,
    now: datetime,
    cycle_length: timedelta,
) -> int:
    """Whole cycles elapsed since ``start``. Deterministic and monotonic in ``now``."""
    if now < start:
        raise ValueError(f"now ({now.isoformat()}) precedes fund start ({start.isoformat()})")
    return (now - start) // cycle_length


def accrued_shares(
    accrual_rate: int,
    elapsed_cycles: int,
    tokens: int,
    percent_scale: int,
) -> int:
    """Shares that ``tokens`` accrue over ``elapsed_cycles``."""
    if elapsed_cycles <= 0 or tokens <= 0:
        return 0
    return accrual_rate * elapsed_cycles * tokens // percent_scale


def pending_shares(
    accrual_rate: int,
    cycle_number: int,
    last_stored_number: int,
    tokens: int,
    percent_scale: int,
) -> int:
    """Shares accrued since the last stored snapshot, without writing anything.

    Used by read-only queries so they stay current between writes.
    """
    return accrued_shares(
        accrual_rate, cycle_number - last_stored_number, tokens, percent_scale
    )


def percent_of(amount: int, rate: int, percent_scale: int) -> int:
    """``amount * rate / percent_scale``, floored."""
    return amount * rate // percent_scale
