"""
normalize.py - Decimal normalization between native and ledger precision

Every stored balance uses LEDGER_DECIMALS, whatever precision the asset uses
natively, so totals can be summed and compared without rescaling.

Scaling down to ledger precision truncates (floor). An 18-decimal asset loses
its 12 lowest digits on the way in:

    to_ledger(18, 1_234_567_890_123_456_789)  ->  1_234_567
    from_ledger(18, 1_234_567)                ->  1_234_567_000_000_000_000

The loss is part of the accounting: balances are what was credited, not what
was sent. Assets with LEDGER_DECIMALS or fewer round-trip exactly.
"""

from __future__ import annotations

from .core import LEDGER_DECIMALS


def _check(asset_decimals: int, amount: int) -> None:
    if asset_decimals < 0:
        raise ValueError(f"asset_decimals must be non-negative, got {asset_decimals}")
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")


def to_ledger(asset_decimals: int, amount: int, round_up: bool = False) -> int:
    """
    Scale a native amount to ledger precision.

    Args:
        asset_decimals: Native precision of the asset
        amount: Amount in native precision
        round_up: Round the dropped digits up instead of truncating. Used when
                  debiting for a withdrawal, so custody never pays out more
                  than was credited.

    Returns:
        Amount in ledger precision. Truncated (or rounded up) when the asset
        has more decimals than the ledger.
    """
    _check(asset_decimals, amount)
    if asset_decimals > LEDGER_DECIMALS:
        scale = 10 ** (asset_decimals - LEDGER_DECIMALS)
        if round_up:
            return -(-amount // scale)
        return amount // scale
    if asset_decimals < LEDGER_DECIMALS:
        return amount * 10 ** (LEDGER_DECIMALS - asset_decimals)
    return amount


def from_ledger(asset_decimals: int, normalized: int) -> int:
    """
    Scale a ledger-precision amount back to native precision.

    Exact inverse of to_ledger() for values to_ledger() can produce.
    """
    _check(asset_decimals, normalized)
    if asset_decimals > LEDGER_DECIMALS:
        return normalized * 10 ** (asset_decimals - LEDGER_DECIMALS)
    if asset_decimals < LEDGER_DECIMALS:
        return normalized // 10 ** (LEDGER_DECIMALS - asset_decimals)
    return normalized


def truncated_digits(asset_decimals: int, amount: int) -> int:
    """Return the part of amount that to_ledger() drops (0 for low-precision assets)."""
    _check(asset_decimals, amount)
    if asset_decimals <= LEDGER_DECIMALS:
        return 0
    return amount % 10 ** (asset_decimals - LEDGER_DECIMALS)
