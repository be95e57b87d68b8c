"""
bank.py - Custodial bank: asset registry and operation orchestrator

The Bank is the entry point for every state change. It owns the Ledger, the
asset listings and the record log, and sequences each operation as

    check  ->  effects  ->  interaction

Deposit:
    reject zero -> reject unlisted asset -> capacity check
    -> pull into custody -> credit -> record
Withdraw:
    reject zero -> reject unlisted asset -> balance check -> ceiling check
    -> debit -> push out of custody -> record

All deposit checks run before the pull, so a rejected deposit never moves
funds. The pull is the only interaction that precedes effects; nothing has
been written yet, so a callback during the pull has nothing to corrupt. The
outgoing push runs only after the debit is committed, so any code it triggers
sees the reduced balance.

Every mutating entry point is guarded by an OperationState tag: a call made
while another operation is running raises ReentrantCall. Failed operations
leave no effects: a failed check raises before funds or the ledger are
touched, and a failed push restores the pre-operation ledger snapshot.
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from .core import (
    # Types
    AssetListing, AssetRecord, BankConfig, OperationRecord,
    PriceSource, TransferService,
    OperationState, RecordKind,
    # Constants
    NATIVE_ASSET, NATIVE_DECIMALS, REFERENCE_DECIMALS, ASSET_ADMIN_ROLE,
    CUSTODY_ACCOUNT,
    # Exceptions
    BankError, ZeroAmount, AssetAlreadySupported, AssetHasBalance,
    InsufficientBalance, TransferFailed, ReentrantCall,
    # Helpers
    format_units,
)
from .access import AccessControl
from .invariants import InvariantEnforcer
from .ledger import Ledger
from .normalize import to_ledger, from_ledger, truncated_digits
from .valuation import ValuationEngine

Record = Union[OperationRecord, AssetRecord]


class Bank:
    """
    Multi-asset custodial ledger bounded by a global capacity and a
    per-withdrawal ceiling, both in reference currency (18 decimals).

    Thread Safety:
        Not thread-safe. Operations are expected to be serialized by the host.

    Example:
        feed = StaticPriceSource({'native': 2_000_00000000})
        transfers = InMemoryTransferService()
        bank = Bank(
            global_capacity=50_000 * 10**18,
            withdrawal_threshold=5_000 * 10**18,
            native_price_source=feed,
            admin="admin",
            transfers=transfers,
        )
        transfers.mint('native', 'alice', 10**18)
        bank.deposit('alice', 'native', 10**18)
        bank.balance_of('alice', 'native')   # 1_000_000
    """

    def __init__(
        self,
        global_capacity: int,
        withdrawal_threshold: int,
        native_price_source: PriceSource,
        admin: str,
        transfers: TransferService,
        verbose: bool = True,
        initial_time: Optional[datetime] = None,
    ):
        """
        Create a bank.

        Args:
            global_capacity: Maximum total value held, reference precision
            withdrawal_threshold: Maximum value of one withdrawal, reference precision
            native_price_source: Price source bound to the native asset
            admin: Account granted the admin roles
            transfers: Service moving assets in and out of custody
            verbose: Print operation results (default: True)
            initial_time: Starting logical time for records (default: 1970-01-01)
        """
        self._config = BankConfig(
            global_capacity=global_capacity,
            withdrawal_threshold=withdrawal_threshold,
            native_price_source=native_price_source,
        )
        self.transfers = transfers
        self.custody_account = getattr(transfers, 'custody_account', CUSTODY_ACCOUNT)
        self.access = AccessControl(admin)
        self.verbose = verbose

        self._listings: Dict[str, AssetListing] = {
            NATIVE_ASSET: AssetListing(NATIVE_ASSET, native_price_source, NATIVE_DECIMALS),
        }
        self.ledger = Ledger()
        self.valuation = ValuationEngine(self._listings)
        self.enforcer = InvariantEnforcer(
            view=self.ledger,
            listings=self._listings,
            valuation=self.valuation,
            global_capacity=global_capacity,
            withdrawal_threshold=withdrawal_threshold,
        )

        self._state = OperationState.IDLE
        self._records: List[Record] = []
        self._next_sequence = 0
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self.deposit_count = 0
        self.withdrawal_count = 0

    @classmethod
    def from_config(
        cls,
        config: BankConfig,
        admin: str,
        transfers: TransferService,
        verbose: bool = True,
    ) -> Bank:
        """Create a bank from a validated BankConfig."""
        return cls(
            global_capacity=config.global_capacity,
            withdrawal_threshold=config.withdrawal_threshold,
            native_price_source=config.native_price_source,
            admin=admin,
            transfers=transfers,
            verbose=verbose,
        )

    # ========================================================================
    # CONFIGURATION (read-only)
    # ========================================================================

    @property
    def config(self) -> BankConfig:
        return self._config

    @property
    def global_capacity(self) -> int:
        return self._config.global_capacity

    @property
    def withdrawal_threshold(self) -> int:
        return self._config.withdrawal_threshold

    @property
    def state(self) -> OperationState:
        return self._state

    @property
    def current_time(self) -> datetime:
        """Current logical time, stamped on every record."""
        return self._current_time

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the logical clock. Time can only move forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # VIEWS
    # ========================================================================

    def balance_of(self, user: str, asset: str) -> int:
        """User's balance at ledger precision."""
        return self.ledger.balance_of(user, asset)

    def native_balance_of(self, user: str, asset: str) -> int:
        """User's balance converted back to the asset's native precision."""
        listing = self.valuation.listing(asset)
        return from_ledger(listing.decimals, self.ledger.balance_of(user, asset))

    def total_of(self, asset: str) -> int:
        """Asset total at ledger precision."""
        return self.ledger.total_of(asset)

    def is_supported(self, asset: str) -> bool:
        return asset in self._listings

    def supported_assets(self) -> List[str]:
        return sorted(self._listings)

    def listing(self, asset: str) -> AssetListing:
        return self.valuation.listing(asset)

    def value_of(self, asset: str, amount: int) -> int:
        """Reference value of a native-precision amount of asset."""
        return self.valuation.value_of(asset, amount)

    def global_valuation(self) -> int:
        """Revalued worth of everything in custody, reference precision."""
        return self.enforcer.global_valuation()

    def available_capacity(self) -> int:
        return self.enforcer.available_capacity()

    def user_valuation(self, user: str) -> int:
        """Revalued worth of everything user holds, reference precision."""
        total_value = 0
        for asset in sorted(self._listings):
            balance = self.ledger.balance_of(user, asset)
            if balance == 0:
                continue
            listing = self._listings[asset]
            total_value += self.valuation.value_of(asset, from_ledger(listing.decimals, balance))
        return total_value

    @property
    def records(self) -> Tuple[Record, ...]:
        """Every record emitted so far, in order."""
        return tuple(self._records)

    def verify_conservation(self) -> Dict:
        return self.ledger.verify_conservation()

    # ========================================================================
    # OPERATION GUARD
    # ========================================================================

    @contextmanager
    def _operation(self, name: str):
        """
        Hold the IN_OPERATION tag for the duration of one operation.

        Raises:
            ReentrantCall: If another operation is already in progress
        """
        if self._state is not OperationState.IDLE:
            raise ReentrantCall(f"{name} entered while an operation is in progress")
        self._state = OperationState.IN_OPERATION
        try:
            yield
        except BankError as e:
            if self.verbose:
                print(f"✗ REJECTED {name}: {type(e).__name__}: {e}")
            raise
        finally:
            self._state = OperationState.IDLE

    @staticmethod
    def _check_amount(amount: int) -> None:
        if amount < 0:
            raise ValueError(f"amount must be non-negative, got {amount}")
        if amount == 0:
            raise ZeroAmount("amount must be greater than zero")

    @staticmethod
    def _check_account(account: str, label: str = "user") -> None:
        if not account or not account.strip():
            raise ValueError(f"{label} cannot be empty")

    def _append(self, record_factory, **fields) -> Record:
        sequence = self._next_sequence
        self._next_sequence += 1
        record = record_factory(sequence_number=sequence, timestamp=self._current_time, **fields)
        self._records.append(record)
        return record

    # ========================================================================
    # INTERACTIONS
    # ========================================================================

    def _pull(self, asset: str, user: str, amount: int) -> None:
        try:
            ok = self.transfers.pull(asset, user, self.custody_account, amount)
        except Exception as exc:
            raise TransferFailed(f"pull of {amount} {asset} from {user} failed: {exc}") from exc
        if not ok:
            raise TransferFailed(f"pull of {amount} {asset} from {user} failed")

    def _push(self, asset: str, user: str, amount: int) -> None:
        try:
            ok = self.transfers.push(asset, user, amount)
        except Exception as exc:
            raise TransferFailed(f"push of {amount} {asset} to {user} failed: {exc}") from exc
        if not ok:
            raise TransferFailed(f"push of {amount} {asset} to {user} failed")

    # ========================================================================
    # DEPOSIT / WITHDRAW
    # ========================================================================

    def deposit(self, user: str, asset: str, amount: int) -> OperationRecord:
        """
        Deposit amount (native precision) of asset for user.

        The native asset travels with the call; it is captured with the same
        pull as any fungible asset, before accounting. The credit is the
        amount truncated to ledger precision, so digits below it stay in
        custody uncredited (possibly the whole amount).

        Returns:
            The deposit record.

        Raises:
            ZeroAmount: If amount is zero
            AssetNotSupported: If asset is not listed
            BankCapExceeded: If the deposit would exceed global capacity
            InvalidPriceData: If any price needed for the capacity check is invalid
            TransferFailed: If the pull into custody fails
        """
        with self._operation("deposit"):
            self._check_account(user)
            self._check_amount(amount)
            listing = self.valuation.listing(asset)
            value = self.enforcer.check_capacity(asset, amount)

            self._pull(asset, user, amount)
            self.ledger.credit(user, asset, to_ledger(listing.decimals, amount))

            self.deposit_count += 1
            record = self._append(
                OperationRecord,
                kind=RecordKind.DEPOSIT, user=user, asset=asset, amount=amount, value=value,
            )
            if self.verbose:
                dust = truncated_digits(listing.decimals, amount)
                dust_str = f", {dust} truncated" if dust else ""
                print(
                    f"✓ DEPOSIT {user}: {format_units(amount, listing.decimals)} {asset} "
                    f"(value {format_units(value, REFERENCE_DECIMALS)}{dust_str})"
                )
            return record

    def withdraw(self, user: str, asset: str, amount: int) -> OperationRecord:
        """
        Withdraw amount (native precision) of asset to user.

        The debit is computed at ledger precision rounding up, so the amount
        pushed out is always covered by what was credited.

        Returns:
            The withdrawal record.

        Raises:
            ZeroAmount: If amount is zero
            AssetNotSupported: If asset is not listed
            InsufficientBalance: If user's balance does not cover amount
            WithdrawalThresholdExceeded: If amount is worth more than the ceiling
            InvalidPriceData: If the asset's price is invalid
            TransferFailed: If the push out of custody fails (ledger restored)
        """
        with self._operation("withdraw"):
            self._check_account(user)
            self._check_amount(amount)
            listing = self.valuation.listing(asset)
            normalized = to_ledger(listing.decimals, amount, round_up=True)

            balance = self.ledger.balance_of(user, asset)
            if normalized > balance:
                raise InsufficientBalance(
                    f"{user} {asset}: balance {balance} < requested {normalized}"
                )
            value = self.enforcer.check_withdrawal_ceiling(asset, amount)

            snapshot = self.ledger.clone()
            self.ledger.debit(user, asset, normalized)
            try:
                self._push(asset, user, amount)
            except TransferFailed:
                self.ledger.restore(snapshot)
                raise

            self.withdrawal_count += 1
            record = self._append(
                OperationRecord,
                kind=RecordKind.WITHDRAWAL, user=user, asset=asset, amount=amount, value=value,
            )
            if self.verbose:
                print(
                    f"✓ WITHDRAW {user}: {format_units(amount, listing.decimals)} {asset} "
                    f"(value {format_units(value, REFERENCE_DECIMALS)})"
                )
            return record

    # ========================================================================
    # REGISTRY (admin)
    # ========================================================================

    def register_asset(self, caller: str, asset: str, price_source: PriceSource) -> AssetRecord:
        """
        List a fungible asset and bind it to a price source.

        The asset's precision is read from the transfer service.

        Raises:
            Unauthorized: If caller lacks ASSET_ADMIN_ROLE
            AssetAlreadySupported: If asset is already listed (the native asset always is)
        """
        with self._operation("register_asset"):
            self.access.require_role(ASSET_ADMIN_ROLE, caller)
            self._check_account(asset, "asset")
            if price_source is None:
                raise ValueError("price_source is required")
            if asset in self._listings:
                raise AssetAlreadySupported(f"asset {asset} is already supported")

            listing = AssetListing(asset, price_source, self.transfers.decimals(asset))
            self._listings[asset] = listing

            record = self._append(
                AssetRecord,
                kind=RecordKind.ASSET_REGISTERED, asset=asset,
                price_source=price_source, decimals=listing.decimals,
            )
            if self.verbose:
                print(f"📝 Registered: {asset} [{listing.decimals} decimals] source={price_source!r}")
            return record

    def deregister_asset(self, caller: str, asset: str) -> AssetRecord:
        """
        Delist an asset. Only possible while its total is exactly zero.

        Raises:
            Unauthorized: If caller lacks ASSET_ADMIN_ROLE
            AssetNotSupported: If asset is not listed
            AssetHasBalance: If any balance of asset is still held
            ValueError: If asset is the native asset
        """
        with self._operation("deregister_asset"):
            self.access.require_role(ASSET_ADMIN_ROLE, caller)
            if asset == NATIVE_ASSET:
                raise ValueError("the native asset cannot be deregistered")
            listing = self.valuation.listing(asset)
            total = self.ledger.total_of(asset)
            if total != 0:
                raise AssetHasBalance(f"asset {asset} still holds {total}")

            del self._listings[asset]

            record = self._append(
                AssetRecord,
                kind=RecordKind.ASSET_DEREGISTERED, asset=asset,
                price_source=listing.price_source, decimals=listing.decimals,
            )
            if self.verbose:
                print(f"🗑  Deregistered: {asset}")
            return record

    def __repr__(self):
        return (
            f"Bank({len(self._listings)} assets, {len(self.ledger.list_users())} users, "
            f"capacity={format_units(self.global_capacity, REFERENCE_DECIMALS)})"
        )
