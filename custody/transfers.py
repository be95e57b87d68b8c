"""
transfers.py - In-memory asset transfer service

InMemoryTransferService implements the TransferService protocol for tests,
simulations and the demo. It keeps holdings per account per asset in native
precision and moves them on pull()/push().

Two hooks support failure and reentrancy scenarios:
    - fail_next(): the next pull or push returns False without moving funds
    - on_push: callable(asset, dest, amount) invoked after a push has moved
      funds, standing in for a recipient that runs code on receipt
"""

from __future__ import annotations
from collections import defaultdict
from typing import Callable, Dict, Optional

from .core import NATIVE_ASSET, NATIVE_DECIMALS, CUSTODY_ACCOUNT

PushHook = Callable[[str, str, int], None]


class InMemoryTransferService:
    """
    Holdings-based transfer service.

    Example:
        transfers = InMemoryTransferService({'USDC': 6})
        transfers.mint('USDC', 'alice', 1_000_000)
        transfers.pull('USDC', 'alice', CUSTODY_ACCOUNT, 400_000)   # True
        transfers.holdings_of('USDC', CUSTODY_ACCOUNT)              # 400_000
    """

    def __init__(
        self,
        decimals: Optional[Dict[str, int]] = None,
        custody_account: str = CUSTODY_ACCOUNT,
        on_push: Optional[PushHook] = None,
    ):
        self.custody_account = custody_account
        self._decimals: Dict[str, int] = {NATIVE_ASSET: NATIVE_DECIMALS}
        self._decimals.update(decimals or {})
        self.holdings: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.on_push = on_push
        self._fail_next = 0
        self.pull_count = 0
        self.push_count = 0

    def set_decimals(self, asset: str, decimals: int) -> None:
        """Declare an asset's native precision."""
        self._decimals[asset] = decimals

    def decimals(self, asset: str) -> int:
        """
        Return the precision asset declares.

        Raises:
            KeyError: If the asset never declared a precision
        """
        if asset not in self._decimals:
            raise KeyError(f"asset {asset} declares no decimals")
        return self._decimals[asset]

    def mint(self, asset: str, account: str, amount: int) -> None:
        """Create amount of asset in account (test funding)."""
        if amount < 0:
            raise ValueError(f"mint amount must be non-negative, got {amount}")
        self.holdings[asset][account] += amount

    def holdings_of(self, asset: str, account: str) -> int:
        return self.holdings.get(asset, {}).get(account, 0)

    def fail_next(self, count: int = 1) -> None:
        """Make the next count transfers fail."""
        self._fail_next = count

    def _should_fail(self) -> bool:
        if self._fail_next > 0:
            self._fail_next -= 1
            return True
        return False

    def pull(self, asset: str, source: str, dest: str, amount: int) -> bool:
        """Move amount from source to dest; False if injected failure or short funds."""
        if self._should_fail():
            return False
        if self.holdings_of(asset, source) < amount:
            return False
        self.holdings[asset][source] -= amount
        self.holdings[asset][dest] += amount
        self.pull_count += 1
        return True

    def push(self, asset: str, dest: str, amount: int) -> bool:
        """Move amount out of custody to dest, then run the on_push hook."""
        if self._should_fail():
            return False
        if self.holdings_of(asset, self.custody_account) < amount:
            return False
        self.holdings[asset][self.custody_account] -= amount
        self.holdings[asset][dest] += amount
        self.push_count += 1
        if self.on_push is not None:
            try:
                self.on_push(asset, dest, amount)
            except Exception:
                # A failing recipient undoes the movement
                self.holdings[asset][dest] -= amount
                self.holdings[asset][self.custody_account] += amount
                self.push_count -= 1
                raise
        return True

    def __repr__(self):
        return f"InMemoryTransferService({len(self.holdings)} assets, custody={self.custody_account})"
