"""
invariants.py - Global capacity and per-withdrawal ceiling

The enforcer only reads. It must run before the Ledger is touched, so a
rejected operation leaves no trace.

The global valuation is recomputed on every call: each listed asset with a
non-zero total is converted back to native precision and revalued at the
current price. There is no running total to fall out of step with prices.
The cost is one price-source read per listed asset per check.
"""

from __future__ import annotations
from typing import Mapping

from .core import (
    AssetListing, LedgerView,
    BankCapExceeded, WithdrawalThresholdExceeded,
)
from .normalize import from_ledger
from .valuation import ValuationEngine


class InvariantEnforcer:
    """
    Validates operations against the two configured limits.

    Args:
        view: Read-only ledger access
        listings: The bank's asset listings (shared, not copied)
        valuation: Engine used for every valuation
        global_capacity: Maximum total value, reference precision
        withdrawal_threshold: Maximum single-withdrawal value, reference precision
    """

    def __init__(
        self,
        view: LedgerView,
        listings: Mapping[str, AssetListing],
        valuation: ValuationEngine,
        global_capacity: int,
        withdrawal_threshold: int,
    ):
        self.view = view
        self._listings = listings
        self.valuation = valuation
        self._global_capacity = global_capacity
        self._withdrawal_threshold = withdrawal_threshold

    @property
    def global_capacity(self) -> int:
        return self._global_capacity

    @property
    def withdrawal_threshold(self) -> int:
        return self._withdrawal_threshold

    def global_valuation(self) -> int:
        """Current value of everything held, in reference precision."""
        total_value = 0
        for asset in sorted(self._listings):
            stored = self.view.total_of(asset)
            if stored == 0:
                continue
            listing = self._listings[asset]
            native_amount = from_ledger(listing.decimals, stored)
            total_value += self.valuation.value_of(asset, native_amount)
        return total_value

    def available_capacity(self) -> int:
        """Value that can still be deposited before reaching capacity (never negative)."""
        return max(self._global_capacity - self.global_valuation(), 0)

    def check_capacity(self, asset: str, amount: int) -> int:
        """
        Check that depositing amount keeps the global valuation within capacity.

        Returns:
            The reference value of the deposit.

        Raises:
            BankCapExceeded: If current valuation + deposit value > capacity
            InvalidPriceData: If any price needed for the check is invalid
        """
        current = self.global_valuation()
        deposit_value = self.valuation.value_of(asset, amount)
        if current + deposit_value > self._global_capacity:
            raise BankCapExceeded(
                requested=deposit_value,
                available=max(self._global_capacity - current, 0),
            )
        return deposit_value

    def check_withdrawal_ceiling(self, asset: str, amount: int) -> int:
        """
        Check a withdrawal against the per-withdrawal ceiling (inclusive).

        Returns:
            The reference value of the withdrawal.

        Raises:
            WithdrawalThresholdExceeded: If the value is strictly above the ceiling
        """
        withdrawal_value = self.valuation.value_of(asset, amount)
        if withdrawal_value > self._withdrawal_threshold:
            raise WithdrawalThresholdExceeded(
                requested=withdrawal_value,
                threshold=self._withdrawal_threshold,
            )
        return withdrawal_value
