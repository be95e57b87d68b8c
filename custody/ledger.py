"""
ledger.py - Per-user, per-asset normalized balances

The Ledger is the only place balances and totals are mutated. It performs no
valuation and no limit checks; the Bank validates first and then applies
credit()/debit() as the effects phase of an operation.

Key responsibilities:
    - Implements the LedgerView protocol for read-only access
    - Keeps balance[user][asset] and total[asset] in step
    - Verifies conservation: sum of balances == total, for every asset
    - clone() for snapshot/rollback of a whole operation
"""

from __future__ import annotations
from collections import defaultdict
from typing import Any, Dict, List, Set

from .core import (
    Positions, BalanceMap,
    InsufficientBalance,
)


class Ledger:
    """
    Normalized balances and totals at ledger precision.

    Entries are created implicitly at zero on first reference and are never
    deleted; a zeroed balance is only dropped from the position index.

    Thread Safety:
        Not thread-safe. The Bank serializes all access.

    Example:
        ledger = Ledger()
        ledger.credit("alice", "native", 1_000_000)
        ledger.debit("alice", "native", 250_000)
        ledger.balance_of("alice", "native")   # 750_000
        ledger.total_of("native")              # 750_000
    """

    def __init__(self):
        self.balances: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.totals: Dict[str, int] = defaultdict(int)
        # Inverted index asset -> {user -> balance} for non-zero balances
        self._positions_by_asset: Dict[str, Dict[str, int]] = defaultdict(dict)

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    def balance_of(self, user: str, asset: str) -> int:
        """Return user's normalized balance of asset (0 if never referenced)."""
        user_balances = self.balances.get(user)
        if user_balances is None:
            return 0
        return user_balances.get(asset, 0)

    def total_of(self, asset: str) -> int:
        """Return the normalized total held for asset (0 if never referenced)."""
        return self.totals.get(asset, 0)

    def get_positions(self, asset: str) -> Positions:
        """Return all non-zero balances for asset, keyed by user."""
        return dict(self._positions_by_asset.get(asset, {}))

    def get_user_balances(self, user: str) -> BalanceMap:
        """Return all non-zero balances held by user, keyed by asset."""
        return {a: b for a, b in self.balances.get(user, {}).items() if b}

    def list_users(self) -> Set[str]:
        """Return every user that has ever been credited."""
        return set(self.balances.keys())

    def list_assets(self) -> List[str]:
        """Return every asset that has ever been credited, sorted."""
        return sorted(self.totals.keys())

    # ========================================================================
    # MUTATION
    # ========================================================================

    def credit(self, user: str, asset: str, normalized: int) -> None:
        """
        Increase user's balance and the asset total.

        The caller is responsible for every business check; the only
        rejection here is a negative amount, which is a programming error.
        """
        if normalized < 0:
            raise ValueError(f"credit amount must be non-negative, got {normalized}")
        new_balance = self.balances[user][asset] + normalized
        self.balances[user][asset] = new_balance
        self.totals[asset] += normalized
        self._update_position_index(user, asset, new_balance)

    def debit(self, user: str, asset: str, normalized: int) -> None:
        """
        Decrease user's balance and the asset total.

        Raises:
            InsufficientBalance: If normalized exceeds the user's balance
        """
        if normalized < 0:
            raise ValueError(f"debit amount must be non-negative, got {normalized}")
        current = self.balance_of(user, asset)
        if normalized > current:
            raise InsufficientBalance(
                f"{user} {asset}: balance {current} < requested {normalized}"
            )
        new_balance = current - normalized
        self.balances[user][asset] = new_balance
        self.totals[asset] -= normalized
        self._update_position_index(user, asset, new_balance)

    def _update_position_index(self, user: str, asset: str, balance: int) -> None:
        if balance:
            self._positions_by_asset[asset][user] = balance
        else:
            self._positions_by_asset[asset].pop(user, None)

    # ========================================================================
    # VERIFICATION
    # ========================================================================

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify that stored totals match the sum of user balances.

        Users are summed in sorted order so the check is deterministic.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every asset conserves and nothing is negative
            - 'totals': Dict[str, int] - stored total per asset
            - 'discrepancies': List[Dict] - one entry per violation, each with
              asset, expected (stored total), actual (sum of balances), and
              for negative entries the offending user

        Example:
            result = ledger.verify_conservation()
            assert result['valid'], f"Conservation violated: {result['discrepancies']}"
        """
        totals = dict(self.totals)
        discrepancies = []

        for asset in sorted(totals):
            stored = totals[asset]
            summed = sum(self.balances[u].get(asset, 0) for u in sorted(self.balances))
            if summed != stored:
                discrepancies.append({
                    'asset': asset,
                    'expected': stored,
                    'actual': summed,
                    'difference': summed - stored,
                })
            if stored < 0:
                discrepancies.append({
                    'asset': asset,
                    'expected': 0,
                    'actual': stored,
                    'error': 'negative total',
                })

        for user in sorted(self.balances):
            for asset, balance in self.balances[user].items():
                if balance < 0:
                    discrepancies.append({
                        'asset': asset,
                        'user': user,
                        'expected': 0,
                        'actual': balance,
                        'error': 'negative balance',
                    })

        return {
            'valid': len(discrepancies) == 0,
            'totals': totals,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # SNAPSHOTS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create an independent copy of this ledger.

        Modifications to the clone do not affect the original and vice versa.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.balances = defaultdict(lambda: defaultdict(int))
        for user, bals in self.balances.items():
            cloned.balances[user] = defaultdict(int, bals)
        cloned.totals = defaultdict(int, self.totals)
        cloned._positions_by_asset = defaultdict(dict)
        for asset, positions in self._positions_by_asset.items():
            cloned._positions_by_asset[asset] = dict(positions)
        return cloned

    def restore(self, snapshot: Ledger) -> None:
        """
        Replace this ledger's state with a copy of snapshot's.

        Objects holding a reference to this ledger see the restored state.
        """
        source = snapshot.clone()
        self.balances = source.balances
        self.totals = source.totals
        self._positions_by_asset = source._positions_by_asset

    def __repr__(self):
        return f"Ledger({len(self.balances)} users, {len(self.totals)} assets)"
