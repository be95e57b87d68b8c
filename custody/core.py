"""
Core types for the custodial ledger.

This module provides the foundational definitions shared by every other module:
1. Constants: reserved native asset, precisions, role names
2. Type aliases: Positions, BalanceMap
3. Protocols: PriceSource, TransferService, LedgerView
4. Enums: RecordKind, OperationState
5. Exceptions: BankError and the operation error kinds
6. Immutable data structures: PriceQuote, AssetListing, BankConfig, records

All amounts are integers expressed in a fixed precision:
    - native precision   (per asset, e.g. 18 for the native asset)
    - ledger precision   (LEDGER_DECIMALS, used for every stored balance)
    - reference precision (REFERENCE_DECIMALS, used for valuations and limits)
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_DOWN, getcontext
from enum import Enum
from typing import Dict, Optional, Protocol, Set, runtime_checkable


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Decimal is only used for display (format_units). Integer arithmetic is used
# for every balance and valuation. prec=50 covers 18-decimal amounts with
# plenty of integer digits.
#
_CUSTODY_DECIMAL_CONTEXT = getcontext()
_CUSTODY_DECIMAL_CONTEXT.prec = 50


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved identifier for the native asset. Always listed, never removable.
NATIVE_ASSET = "native"

# Native asset precision.
NATIVE_DECIMALS = 18

# Fixed precision of every stored balance and total.
LEDGER_DECIMALS = 6

# Precision of valuations and of the configured limits.
REFERENCE_DECIMALS = 18

# Account that holds deposited funds on the transfer service.
CUSTODY_ACCOUNT = "custody"

# Access control roles
DEFAULT_ADMIN_ROLE = "DEFAULT_ADMIN"
ASSET_ADMIN_ROLE = "ASSET_ADMIN"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from user to normalized balance for a single asset.
Positions = Dict[str, int]

# Mapping from asset to normalized balance for a single user.
BalanceMap = Dict[str, int]


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class PriceQuote:
    """
    A price reported by a price source.

    Attributes:
        price: Price of one whole unit of the asset in the reference currency,
               scaled by 10**decimals.
        decimals: Precision the source reports the price in.
    """
    price: int
    decimals: int

    def __post_init__(self):
        if self.decimals < 0:
            raise ValueError(f"Quote decimals must be non-negative, got {self.decimals}")


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class PriceSource(Protocol):
    """
    External price feed bound to an asset.

    latest_price() returns None when the source has no data. A quote with a
    non-positive price is treated as invalid by the valuation engine.
    Staleness is the source's own contract; it is not checked here.
    """

    def latest_price(self, asset: str) -> Optional[PriceQuote]:
        ...


@runtime_checkable
class TransferService(Protocol):
    """
    Moves assets in and out of custody.

    pull() and push() return True on success. A False result or a raised
    exception is treated as a failed transfer by the bank.
    """

    def decimals(self, asset: str) -> int:
        """Return the precision the asset declares."""
        ...

    def pull(self, asset: str, source: str, dest: str, amount: int) -> bool:
        """Move amount (native precision) from source into dest."""
        ...

    def push(self, asset: str, dest: str, amount: int) -> bool:
        """Move amount (native precision) out of custody to dest."""
        ...


@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Functions accepting a LedgerView declare that they never mutate balances.
    """

    def balance_of(self, user: str, asset: str) -> int:
        """Return the normalized balance, 0 if never referenced."""
        ...

    def total_of(self, asset: str) -> int:
        """Return the normalized total for an asset, 0 if never referenced."""
        ...

    def get_positions(self, asset: str) -> Positions:
        """Return all non-zero balances for an asset."""
        ...

    def list_users(self) -> Set[str]:
        ...


# ============================================================================
# ENUMS
# ============================================================================

class RecordKind(Enum):
    """Kind of observable record appended to the bank's record log."""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    ASSET_REGISTERED = "asset_registered"
    ASSET_DEREGISTERED = "asset_deregistered"


class OperationState(Enum):
    """
    Entry guard for mutating bank operations.

    IDLE: No operation in progress, a new one may start.
    IN_OPERATION: An operation is running; any nested entry is a reentrant call.
    """
    IDLE = "idle"
    IN_OPERATION = "in_operation"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class BankError(Exception):
    """Base exception for all custody errors."""
    pass


class ZeroAmount(BankError):
    """Raised when an operation is requested for an amount of zero."""
    pass


class AssetNotSupported(BankError):
    """Raised when an asset has no price source binding."""
    pass


class AssetAlreadySupported(BankError):
    """Raised when registering an asset that is already listed."""
    pass


class AssetHasBalance(BankError):
    """Raised when deregistering an asset whose total is not zero."""
    pass


class InvalidPriceData(BankError):
    """Raised when a price source returns no data or a non-positive price."""
    pass


class InsufficientBalance(BankError):
    """Raised when a debit exceeds the stored balance."""
    pass


class BankCapExceeded(BankError):
    """Raised when a deposit would push the global valuation over capacity."""

    def __init__(self, requested: int, available: int):
        self.requested = requested
        self.available = available
        super().__init__(
            f"deposit value {requested} exceeds available capacity {available}"
        )


class WithdrawalThresholdExceeded(BankError):
    """Raised when a withdrawal is worth more than the per-withdrawal ceiling."""

    def __init__(self, requested: int, threshold: int):
        self.requested = requested
        self.threshold = threshold
        super().__init__(
            f"withdrawal value {requested} exceeds threshold {threshold}"
        )


class TransferFailed(BankError):
    """Raised when an incoming or outgoing asset movement fails."""
    pass


class Unauthorized(BankError):
    """Raised when a caller lacks the role an admin operation requires."""
    pass


class ReentrantCall(BankError):
    """Raised when a mutating operation is entered while another is running."""
    pass


# ============================================================================
# CONFIGURATION AND LISTINGS
# ============================================================================

@dataclass(frozen=True, slots=True)
class AssetListing:
    """
    Binding of an asset to its price source.

    Attributes:
        asset: Asset identifier.
        price_source: Feed queried on every valuation of this asset.
        decimals: Native precision, read from the asset when it was listed.
    """
    asset: str
    price_source: PriceSource
    decimals: int

    def __post_init__(self):
        if not self.asset or not self.asset.strip():
            raise ValueError("Listing asset cannot be empty")
        if self.decimals < 0:
            raise ValueError(f"Asset decimals must be non-negative, got {self.decimals}")


@dataclass(frozen=True, slots=True)
class BankConfig:
    """
    Construction-time configuration. Never mutated after the bank is built.

    Attributes:
        global_capacity: Maximum total value held, reference precision.
        withdrawal_threshold: Maximum value of a single withdrawal, reference precision.
        native_price_source: Price feed for the native asset.
    """
    global_capacity: int
    withdrawal_threshold: int
    native_price_source: PriceSource

    def __post_init__(self):
        if not isinstance(self.global_capacity, int) or self.global_capacity <= 0:
            raise ValueError(f"global_capacity must be a positive int, got {self.global_capacity!r}")
        if not isinstance(self.withdrawal_threshold, int) or self.withdrawal_threshold <= 0:
            raise ValueError(
                f"withdrawal_threshold must be a positive int, got {self.withdrawal_threshold!r}"
            )
        if self.native_price_source is None:
            raise ValueError("native_price_source is required")


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class OperationRecord:
    """
    Observable record of a successful deposit or withdrawal.

    Attributes:
        kind: RecordKind.DEPOSIT or RecordKind.WITHDRAWAL
        user: Depositing or withdrawing user
        asset: Asset identifier
        amount: Amount in the asset's native precision
        value: Value of amount in the reference currency
        sequence_number: Monotonic position in the bank's record log
        timestamp: Logical bank time when the record was created
    """
    kind: RecordKind
    user: str
    asset: str
    amount: int
    value: int
    sequence_number: int
    timestamp: datetime

    def __repr__(self) -> str:
        return (
            f"OperationRecord(#{self.sequence_number} {self.kind.value} "
            f"{self.user} {self.amount} {self.asset} = {format_units(self.value, REFERENCE_DECIMALS)})"
        )


@dataclass(frozen=True, slots=True)
class AssetRecord:
    """Observable record of an asset registration or deregistration."""
    kind: RecordKind
    asset: str
    price_source: PriceSource
    decimals: int
    sequence_number: int
    timestamp: datetime

    def __repr__(self) -> str:
        return f"AssetRecord(#{self.sequence_number} {self.kind.value} {self.asset})"


# ============================================================================
# FORMATTING
# ============================================================================

def format_units(amount: int, decimals: int) -> Decimal:
    """
    Convert an integer amount at a given precision into a Decimal for display.

    Example:
        format_units(1_500_000, 6)  ->  Decimal("1.500000")
    """
    quantizer = Decimal(10) ** -decimals
    return (Decimal(amount) / (Decimal(10) ** decimals)).quantize(quantizer, rounding=ROUND_DOWN)
