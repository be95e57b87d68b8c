"""
conftest.py - Shared pytest fixtures for custody tests

Provides common fixtures used across unit, component and conformance tests:
- Price sources and transfer services
- Banks (empty, with listed assets, funded)
- Helper functions for price and amount scaling
"""

import pytest

from custody import (
    Bank,
    StaticPriceSource,
    InMemoryTransferService,
    NATIVE_ASSET,
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

# One unit of reference currency at REFERENCE_DECIMALS
USD = 10 ** 18

GLOBAL_CAPACITY = 50_000 * USD
WITHDRAWAL_THRESHOLD = 5_000 * USD

ADMIN = "admin"


def usd_price(dollars, decimals: int = 8) -> int:
    """Scale a dollar price to an integer feed price."""
    return int(dollars * 10 ** decimals)


def units(amount, decimals: int) -> int:
    """Scale a whole-unit amount to native precision."""
    return int(amount * 10 ** decimals)


def make_bank(
    prices=None,
    decimals=None,
    global_capacity: int = GLOBAL_CAPACITY,
    withdrawal_threshold: int = WITHDRAWAL_THRESHOLD,
    listed=("USDC", "WBTC"),
):
    """Build a quiet bank with a shared static feed and listed assets."""
    feed = StaticPriceSource(prices or {
        NATIVE_ASSET: usd_price(2_000),
        "USDC": usd_price(1),
        "WBTC": usd_price(30_000),
        "DAI": usd_price(1),
        "GUSD": usd_price(1),
    })
    transfers = InMemoryTransferService(decimals or {
        "USDC": 6,
        "WBTC": 8,
        "DAI": 18,
        "GUSD": 2,
    })
    bank = Bank(
        global_capacity=global_capacity,
        withdrawal_threshold=withdrawal_threshold,
        native_price_source=feed,
        admin=ADMIN,
        transfers=transfers,
        verbose=False,
    )
    for asset in listed:
        bank.register_asset(ADMIN, asset, feed)
    return bank, feed, transfers


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def price_feed():
    """Static feed: native $2,000, USDC $1, WBTC $30,000, DAI $1, GUSD $1."""
    return StaticPriceSource({
        NATIVE_ASSET: usd_price(2_000),
        "USDC": usd_price(1),
        "WBTC": usd_price(30_000),
        "DAI": usd_price(1),
        "GUSD": usd_price(1),
    })


@pytest.fixture
def transfers():
    """Transfer service declaring USDC(6), WBTC(8), DAI(18), GUSD(2)."""
    return InMemoryTransferService({"USDC": 6, "WBTC": 8, "DAI": 18, "GUSD": 2})


@pytest.fixture
def empty_bank(price_feed, transfers):
    """Bank with only the native asset listed."""
    return Bank(
        global_capacity=GLOBAL_CAPACITY,
        withdrawal_threshold=WITHDRAWAL_THRESHOLD,
        native_price_source=price_feed,
        admin=ADMIN,
        transfers=transfers,
        verbose=False,
    )


@pytest.fixture
def bank(empty_bank, price_feed):
    """Bank with native, USDC and WBTC listed."""
    empty_bank.register_asset(ADMIN, "USDC", price_feed)
    empty_bank.register_asset(ADMIN, "WBTC", price_feed)
    return empty_bank


@pytest.fixture
def funded_bank(bank, transfers):
    """Listed bank where alice and bob hold assets outside custody."""
    for user in ("alice", "bob"):
        transfers.mint(NATIVE_ASSET, user, units(20, 18))
        transfers.mint("USDC", user, units(100_000, 6))
        transfers.mint("WBTC", user, units(2, 8))
    return bank
