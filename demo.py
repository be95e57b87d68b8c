#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Custodial Bank Step by Step

A walk through the multi-asset custodial bank. Each step builds on the
previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation    - The empty bank, listing assets, first deposit
  4-6:  Limits        - Valuation, global capacity, withdrawal ceiling
  7-8:  Safety        - Atomic rollback, reentrancy guard
  9-10: Operations    - Price outages, delisting, conservation proof

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys

from custody import (
    Bank, StaticPriceSource, TimeSeriesPriceSource, InMemoryTransferService,
    NATIVE_ASSET, REFERENCE_DECIMALS,
    BankError,
    format_units, from_ledger,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    # Limits, in reference currency (18 decimals)
    global_capacity: int = 50_000 * 10 ** 18
    withdrawal_threshold: int = 5_000 * 10 ** 18

    # Feed prices, 8 decimals
    native_price: int = 2_000 * 10 ** 8
    usdc_price: int = 1 * 10 ** 8
    wbtc_price: int = 30_000 * 10 ** 8

    # Outside funding per user, whole units
    native_funding: int = 20
    usdc_funding: int = 100_000
    wbtc_funding: int = 2


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv

ADMIN = "admin"


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def usd(value: int) -> str:
    return f"${format_units(value, REFERENCE_DECIMALS):,.2f}"


def attempt(label: str, fn, *args):
    """Run a bank call and report a rejection instead of raising."""
    print(f">>> {label}")
    try:
        return fn(*args)
    except BankError as e:
        print(f"    -> {type(e).__name__}: {e}")
        return None


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_empty_bank():
    """Create a bank and inspect its initial state."""
    step_header(1, "The Empty Bank",
        "A bank starts with only the native asset listed and nothing held.")

    print("""
    The bank keeps three things:

    1. LISTINGS - Which assets it accepts, each bound to a price source
    2. LEDGER   - Per-user balances and per-asset totals, 6 decimals
    3. LIMITS   - A global capacity and a per-withdrawal ceiling, in USD

    Assets enter and leave through a transfer service. Here it is in memory.
    """)

    feed = StaticPriceSource({
        NATIVE_ASSET: CONFIG.native_price,
        "USDC": CONFIG.usdc_price,
        "WBTC": CONFIG.wbtc_price,
    })
    transfers = InMemoryTransferService({"USDC": 6, "WBTC": 8})

    print(">>> bank = Bank(50_000e18, 5_000e18, feed, 'admin', transfers)")
    bank = Bank(
        global_capacity=CONFIG.global_capacity,
        withdrawal_threshold=CONFIG.withdrawal_threshold,
        native_price_source=feed,
        admin=ADMIN,
        transfers=transfers,
        verbose=True,
        initial_time=CONFIG.start_time,
    )

    section_header("Initial State")
    print(f"Bank:                 {bank}")
    print(f"Supported assets:     {bank.supported_assets()}")
    print(f"Global capacity:      {usd(bank.global_capacity)}")
    print(f"Withdrawal threshold: {usd(bank.withdrawal_threshold)}")
    print(f"Records:              {len(bank.records)}")

    for user in ("alice", "bob"):
        transfers.mint(NATIVE_ASSET, user, CONFIG.native_funding * 10 ** 18)
        transfers.mint("USDC", user, CONFIG.usdc_funding * 10 ** 6)
        transfers.mint("WBTC", user, CONFIG.wbtc_funding * 10 ** 8)

    return bank, feed, transfers


def step_02_register_assets(bank: Bank, feed: StaticPriceSource):
    """List fungible assets."""
    step_header(2, "Listing Assets",
        "Only an asset admin can list assets; precision is read from the asset.")

    attempt("bank.register_asset('alice', 'USDC', feed)",
            bank.register_asset, "alice", "USDC", feed)

    print(">>> bank.register_asset('admin', 'USDC', feed)")
    bank.register_asset(ADMIN, "USDC", feed)
    print(">>> bank.register_asset('admin', 'WBTC', feed)")
    bank.register_asset(ADMIN, "WBTC", feed)

    attempt("bank.register_asset('admin', 'USDC', feed)",
            bank.register_asset, ADMIN, "USDC", feed)

    section_header("Listings")
    for asset in bank.supported_assets():
        print(f"  {asset:8} {bank.listing(asset).decimals:>2} decimals")

    return bank


def step_03_first_deposit(bank: Bank, transfers: InMemoryTransferService):
    """Deposit and see normalization to ledger precision."""
    step_header(3, "First Deposit",
        "Every balance is stored at 6 decimals, whatever the asset uses natively.")

    print(">>> bank.deposit('alice', 'WBTC', 100_000_000)   # 1 WBTC")
    bank.deposit("alice", "WBTC", 100_000_000)
    print(f"\nStored balance:      {bank.balance_of('alice', 'WBTC'):,} (6 decimals)")
    print(f"Native equivalent:   {bank.native_balance_of('alice', 'WBTC'):,} (8 decimals)")

    section_header("Truncation")
    amount = 10 ** 18 + 123_456
    print(f">>> bank.deposit('bob', 'native', {amount})")
    bank.deposit("bob", NATIVE_ASSET, amount)
    print(f"\nStored balance:  {bank.balance_of('bob', NATIVE_ASSET):,}")
    print(f"Custody holds:   {transfers.holdings_of(NATIVE_ASSET, bank.custody_account):,} wei")

    section_header("Key Insight")
    print("""
    Scaling down truncates. Digits below ledger precision stay in custody and
    are never credited, so custody always covers every balance.
    """)

    return bank


# ============================================================================
# PHASE 2: LIMITS (Steps 4-6)
# ============================================================================

def step_04_valuation(bank: Bank, feed: StaticPriceSource):
    """Value holdings at current prices."""
    step_header(4, "Valuation",
        "Total held value is recomputed from totals and live prices on demand.")

    print(f"Global valuation:    {usd(bank.global_valuation())}")
    print(f"Available capacity:  {usd(bank.available_capacity())}")
    print(f"alice holds:         {usd(bank.user_valuation('alice'))}")
    print(f"bob holds:           {usd(bank.user_valuation('bob'))}")

    section_header("Prices Move")
    print(">>> feed.update_price('WBTC', 33_000 * 10**8)")
    feed.update_price("WBTC", 33_000 * 10 ** 8)
    print(f"Global valuation:    {usd(bank.global_valuation())}")
    feed.update_price("WBTC", CONFIG.wbtc_price)

    return bank


def step_05_capacity(bank: Bank, transfers: InMemoryTransferService):
    """Hit the global capacity."""
    step_header(5, "Global Capacity",
        "A deposit that would push held value past the capacity is refused.")

    attempt("bank.deposit('bob', 'WBTC', 100_000_000)   # another $30,000",
            bank.deposit, "bob", "WBTC", 100_000_000)
    print(f"\nbob's WBTC outside custody: {transfers.holdings_of('WBTC', 'bob'):,} (never pulled)")

    fill = bank.available_capacity() // 10 ** 12
    print(f"\n>>> bank.deposit('bob', 'USDC', {fill:,})   # exactly the remaining capacity")
    bank.deposit("bob", "USDC", fill)
    print(f"Available capacity:  {usd(bank.available_capacity())}")

    attempt("bank.deposit('alice', 'USDC', 1)", bank.deposit, "alice", "USDC", 1)

    return bank


def step_06_withdrawal_ceiling(bank: Bank):
    """Withdraw within and beyond the ceiling."""
    step_header(6, "Withdrawal Ceiling",
        "No single withdrawal may be worth more than the threshold.")

    attempt("bank.withdraw('alice', 'WBTC', 20_000_000)   # 0.2 WBTC = $6,000",
            bank.withdraw, "alice", "WBTC", 20_000_000)

    print(">>> bank.withdraw('alice', 'WBTC', 10_000_000)   # 0.1 WBTC = $3,000")
    bank.withdraw("alice", "WBTC", 10_000_000)

    attempt("bank.withdraw('bob', 'WBTC', 1)   # bob holds none",
            bank.withdraw, "bob", "WBTC", 1)

    print(f"\nalice WBTC balance: {bank.balance_of('alice', 'WBTC'):,}")

    return bank


# ============================================================================
# PHASE 3: SAFETY (Steps 7-8)
# ============================================================================

def step_07_atomicity(bank: Bank, transfers: InMemoryTransferService):
    """A failed outgoing transfer rolls the ledger back."""
    step_header(7, "Atomic Rollback",
        "If the outgoing transfer fails, the debit is undone.")

    before = bank.balance_of("alice", "WBTC")
    print(">>> transfers.fail_next()")
    transfers.fail_next()
    attempt("bank.withdraw('alice', 'WBTC', 5_000_000)",
            bank.withdraw, "alice", "WBTC", 5_000_000)
    print(f"\nalice WBTC balance before: {before:,}")
    print(f"alice WBTC balance after:  {bank.balance_of('alice', 'WBTC'):,} (unchanged)")

    return bank


def step_08_reentrancy(bank: Bank, transfers: InMemoryTransferService):
    """A recipient that calls back into the bank is refused."""
    step_header(8, "Reentrancy Guard",
        "Code triggered by a transfer cannot start another bank operation.")

    def greedy_recipient(asset, dest, amount):
        print(f"    [recipient] received {amount:,} {asset}; "
              f"bank shows balance {bank.balance_of(dest, asset):,}")
        try:
            bank.withdraw(dest, asset, amount)
        except BankError as e:
            print(f"    [recipient] nested withdraw -> {type(e).__name__}")

    transfers.on_push = greedy_recipient
    print(">>> bank.withdraw('alice', 'WBTC', 5_000_000)")
    bank.withdraw("alice", "WBTC", 5_000_000)
    transfers.on_push = None

    section_header("Key Insight")
    print("""
    The debit is committed before funds leave custody, and the operation
    tag stays held until the call returns. A re-entering recipient sees the
    reduced balance and cannot withdraw twice.
    """)

    return bank


# ============================================================================
# PHASE 4: OPERATIONS (Steps 9-10)
# ============================================================================

def step_09_price_outage(bank: Bank, feed: StaticPriceSource):
    """Invalid price data halts valued operations."""
    step_header(9, "Price Outage",
        "Without a valid price the bank refuses to guess.")

    print(">>> feed.update_price('USDC', 0)")
    feed.update_price("USDC", 0)
    attempt("bank.withdraw('bob', 'USDC', 1_000_000)",
            bank.withdraw, "bob", "USDC", 1_000_000)
    attempt("bank.global_valuation()", bank.global_valuation)
    feed.update_price("USDC", CONFIG.usdc_price)

    section_header("Time-Series Feeds")
    t0 = CONFIG.start_time
    series = TimeSeriesPriceSource(
        {"native": [(t0, 2_000 * 10 ** 8), (t0 + timedelta(days=1), 1_800 * 10 ** 8)]},
        start_time=t0,
    )
    print(f"Day 0 price: {series.latest_price('native').price:,}")
    series.advance_to(t0 + timedelta(days=1))
    print(f"Day 1 price: {series.latest_price('native').price:,}")

    return bank


def step_10_conservation_finale(bank: Bank, transfers: InMemoryTransferService):
    """Drain, delist and verify."""
    step_header(10, "Conservation Finale",
        "Totals equal the sum of balances, and custody covers every balance.")

    bank.advance_time(CONFIG.start_time + timedelta(hours=1))
    attempt("bank.deregister_asset('admin', 'WBTC')",
            bank.deregister_asset, ADMIN, "WBTC")

    # Drain in steps that stay under the ceiling ($4,500 each)
    remaining = bank.native_balance_of("alice", "WBTC")
    while remaining:
        chunk = min(remaining, 15_000_000)
        print(f">>> bank.withdraw('alice', 'WBTC', {chunk:,})")
        bank.withdraw("alice", "WBTC", chunk)
        remaining -= chunk
    print(">>> bank.deregister_asset('admin', 'WBTC')")
    bank.deregister_asset(ADMIN, "WBTC")

    result = bank.verify_conservation()
    section_header("Verification")
    print(f"Totals match balances: {result['valid']}")
    for asset in bank.supported_assets():
        owed = from_ledger(bank.listing(asset).decimals, bank.total_of(asset))
        held = transfers.holdings_of(asset, bank.custody_account)
        print(f"  {asset:8} owed {owed:>28,}  held {held:>28,}")

    section_header("Record Log")
    for record in bank.records:
        print(f"  {record}")

    return bank


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       CUSTODY - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    bank, feed, transfers = step_01_empty_bank()
    wait_for_enter()

    bank = step_02_register_assets(bank, feed)
    wait_for_enter()

    bank = step_03_first_deposit(bank, transfers)
    wait_for_enter()

    bank = step_04_valuation(bank, feed)
    wait_for_enter()

    bank = step_05_capacity(bank, transfers)
    wait_for_enter()

    bank = step_06_withdrawal_ceiling(bank)
    wait_for_enter()

    bank = step_07_atomicity(bank, transfers)
    wait_for_enter()

    bank = step_08_reentrancy(bank, transfers)
    wait_for_enter()

    bank = step_09_price_outage(bank, feed)
    wait_for_enter()

    step_10_conservation_finale(bank, transfers)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    You've learned:
      - Balances live at 6 decimals; truncation favours custody
      - Value is recomputed from live prices, never cached
      - Capacity and the withdrawal ceiling bound every operation
      - Failed operations leave no trace; nested calls are refused

    Next steps:
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
