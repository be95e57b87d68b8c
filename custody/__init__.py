"""
custody - Multi-Asset Custodial Ledger

Users deposit the native asset and admin-listed fungible assets, and withdraw
against their own balances. All value is bounded by a global capacity and a
per-withdrawal ceiling expressed in a reference currency (18 decimals).

Usage:
    from custody import Bank, StaticPriceSource, InMemoryTransferService

    feed = StaticPriceSource({'native': 2_000_00000000, 'USDC': 1_00000000})
    transfers = InMemoryTransferService({'USDC': 6})
    bank = Bank(
        global_capacity=50_000 * 10**18,
        withdrawal_threshold=5_000 * 10**18,
        native_price_source=feed,
        admin="admin",
        transfers=transfers,
    )
    bank.register_asset("admin", "USDC", feed)

    transfers.mint("USDC", "alice", 1_000_000_000)
    bank.deposit("alice", "USDC", 250_000_000)      # 250 USDC
    bank.withdraw("alice", "USDC", 100_000_000)     # 100 USDC
    bank.balance_of("alice", "USDC")                # 150_000_000 (ledger precision)
"""

# Core types
from .core import (
    PriceSource,
    TransferService,
    LedgerView,
    PriceQuote,
    AssetListing,
    BankConfig,
    OperationRecord,
    AssetRecord,
    RecordKind,
    OperationState,
    BankError,
    ZeroAmount,
    AssetNotSupported,
    AssetAlreadySupported,
    AssetHasBalance,
    InvalidPriceData,
    InsufficientBalance,
    BankCapExceeded,
    WithdrawalThresholdExceeded,
    TransferFailed,
    Unauthorized,
    ReentrantCall,
    format_units,
    NATIVE_ASSET,
    NATIVE_DECIMALS,
    LEDGER_DECIMALS,
    REFERENCE_DECIMALS,
    CUSTODY_ACCOUNT,
    DEFAULT_ADMIN_ROLE,
    ASSET_ADMIN_ROLE,
)

# Normalization
from .normalize import to_ledger, from_ledger, truncated_digits

# Valuation
from .valuation import value_of, validate_quote, ValuationEngine

# Ledger
from .ledger import Ledger

# Invariants
from .invariants import InvariantEnforcer

# Access control
from .access import AccessControl

# Bank
from .bank import Bank

# Price sources
from .pricing_source import (
    StaticPriceSource,
    TimeSeriesPriceSource,
    DEFAULT_PRICE_DECIMALS,
)

# Transfers
from .transfers import InMemoryTransferService

__all__ = [
    # Core
    'PriceSource', 'TransferService', 'LedgerView',
    'PriceQuote', 'AssetListing', 'BankConfig', 'OperationRecord', 'AssetRecord',
    'RecordKind', 'OperationState',
    'BankError', 'ZeroAmount', 'AssetNotSupported', 'AssetAlreadySupported',
    'AssetHasBalance', 'InvalidPriceData', 'InsufficientBalance', 'BankCapExceeded',
    'WithdrawalThresholdExceeded', 'TransferFailed', 'Unauthorized', 'ReentrantCall',
    'format_units',
    'NATIVE_ASSET', 'NATIVE_DECIMALS', 'LEDGER_DECIMALS', 'REFERENCE_DECIMALS',
    'CUSTODY_ACCOUNT', 'DEFAULT_ADMIN_ROLE', 'ASSET_ADMIN_ROLE',
    # Normalization
    'to_ledger', 'from_ledger', 'truncated_digits',
    # Valuation
    'value_of', 'validate_quote', 'ValuationEngine',
    # Ledger
    'Ledger',
    # Invariants
    'InvariantEnforcer',
    # Access control
    'AccessControl',
    # Bank
    'Bank',
    # Pricing
    'StaticPriceSource', 'TimeSeriesPriceSource', 'DEFAULT_PRICE_DECIMALS',
    # Transfers
    'InMemoryTransferService',
]

__version__ = '1.0.0'
