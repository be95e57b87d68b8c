"""
test_bank.py - Component tests for bank.py

Tests:
- Bank creation and configuration
- Asset registration / deregistration and access control
- Deposits (native and fungible), dust truncation, rejections
- Withdrawals, rejections, rollback on failed push
- Views: valuations, counters, records
"""

from datetime import datetime

import pytest

from custody import (
    Bank, BankConfig, InMemoryTransferService,
    OperationState, RecordKind, OperationRecord, AssetRecord,
    ZeroAmount, AssetNotSupported, AssetAlreadySupported, AssetHasBalance,
    InvalidPriceData, InsufficientBalance, BankCapExceeded,
    WithdrawalThresholdExceeded, TransferFailed, Unauthorized,
    NATIVE_ASSET, CUSTODY_ACCOUNT, ASSET_ADMIN_ROLE,
)
from tests.conftest import ADMIN, USD, GLOBAL_CAPACITY, WITHDRAWAL_THRESHOLD, units, usd_price
from tests.fakes import RaisingPriceSource, RaisingTransferService


class TestBankCreation:
    """Tests for Bank initialization."""

    def test_native_asset_listed_from_construction(self, empty_bank, price_feed):
        assert empty_bank.supported_assets() == [NATIVE_ASSET]
        listing = empty_bank.listing(NATIVE_ASSET)
        assert listing.decimals == 18
        assert listing.price_source is price_feed

    def test_limits_exposed(self, empty_bank):
        assert empty_bank.global_capacity == GLOBAL_CAPACITY
        assert empty_bank.withdrawal_threshold == WITHDRAWAL_THRESHOLD

    def test_limits_cannot_be_reassigned(self, empty_bank):
        with pytest.raises(AttributeError):
            empty_bank.global_capacity = 1
        with pytest.raises(AttributeError):
            empty_bank.withdrawal_threshold = 1
        with pytest.raises(AttributeError):
            empty_bank.config.global_capacity = 1

    def test_starts_idle(self, empty_bank):
        assert empty_bank.state is OperationState.IDLE

    def test_invalid_limits_rejected(self, price_feed, transfers):
        with pytest.raises(ValueError):
            Bank(0, 1, price_feed, ADMIN, transfers, verbose=False)

    def test_from_config(self, price_feed, transfers):
        config = BankConfig(10 * USD, 1 * USD, price_feed)
        bank = Bank.from_config(config, ADMIN, transfers, verbose=False)
        assert bank.config == config
        assert bank.global_capacity == 10 * USD

    def test_custody_account_taken_from_transfer_service(self, price_feed):
        transfers = InMemoryTransferService(custody_account="vault")
        bank = Bank(10 * USD, USD, price_feed, ADMIN, transfers, verbose=False)
        assert bank.custody_account == "vault"

    def test_advance_time(self, empty_bank):
        t = datetime(2025, 6, 1)
        empty_bank.advance_time(t)
        assert empty_bank.current_time == t
        with pytest.raises(ValueError, match="backwards"):
            empty_bank.advance_time(datetime(2025, 1, 1))


class TestRegistration:
    """Tests for register_asset / deregister_asset."""

    def test_register_reads_decimals_from_asset(self, empty_bank, price_feed):
        record = empty_bank.register_asset(ADMIN, "WBTC", price_feed)
        assert empty_bank.is_supported("WBTC")
        assert empty_bank.listing("WBTC").decimals == 8
        assert record.kind is RecordKind.ASSET_REGISTERED
        assert record.asset == "WBTC"
        assert record.price_source is price_feed

    def test_register_requires_role(self, empty_bank, price_feed):
        with pytest.raises(Unauthorized):
            empty_bank.register_asset("alice", "USDC", price_feed)
        assert not empty_bank.is_supported("USDC")

    def test_granted_role_can_register(self, empty_bank, price_feed):
        empty_bank.access.grant_role(ADMIN, ASSET_ADMIN_ROLE, "ops")
        empty_bank.register_asset("ops", "USDC", price_feed)
        assert empty_bank.is_supported("USDC")

    def test_register_twice_raises(self, bank, price_feed):
        with pytest.raises(AssetAlreadySupported):
            bank.register_asset(ADMIN, "USDC", price_feed)

    def test_register_native_raises(self, bank, price_feed):
        with pytest.raises(AssetAlreadySupported):
            bank.register_asset(ADMIN, NATIVE_ASSET, price_feed)

    def test_register_without_declared_decimals_fails(self, empty_bank, price_feed):
        with pytest.raises(KeyError):
            empty_bank.register_asset(ADMIN, "MYSTERY", price_feed)
        assert not empty_bank.is_supported("MYSTERY")

    def test_register_requires_price_source(self, empty_bank):
        with pytest.raises(ValueError):
            empty_bank.register_asset(ADMIN, "USDC", None)

    def test_deregister_empty_asset(self, bank):
        record = bank.deregister_asset(ADMIN, "WBTC")
        assert not bank.is_supported("WBTC")
        assert record.kind is RecordKind.ASSET_DEREGISTERED

    def test_deregister_with_balance_raises(self, funded_bank):
        funded_bank.deposit("alice", "USDC", units(10, 6))
        with pytest.raises(AssetHasBalance):
            funded_bank.deregister_asset(ADMIN, "USDC")
        assert funded_bank.is_supported("USDC")

    def test_deregister_after_full_withdrawal(self, funded_bank):
        funded_bank.deposit("alice", "USDC", units(10, 6))
        funded_bank.withdraw("alice", "USDC", units(10, 6))
        funded_bank.deregister_asset(ADMIN, "USDC")
        assert not funded_bank.is_supported("USDC")

    def test_deregister_native_raises(self, bank):
        with pytest.raises(ValueError, match="native"):
            bank.deregister_asset(ADMIN, NATIVE_ASSET)

    def test_deregister_unknown_raises(self, bank):
        with pytest.raises(AssetNotSupported):
            bank.deregister_asset(ADMIN, "DOGE")

    def test_deregister_requires_role(self, bank):
        with pytest.raises(Unauthorized):
            bank.deregister_asset("alice", "WBTC")

    def test_reregister_after_deregister(self, bank, price_feed):
        bank.deregister_asset(ADMIN, "WBTC")
        bank.register_asset(ADMIN, "WBTC", price_feed)
        assert bank.is_supported("WBTC")


class TestDeposit:
    """Tests for deposit."""

    def test_native_deposit(self, funded_bank, transfers):
        record = funded_bank.deposit("alice", NATIVE_ASSET, units(1, 18))
        assert funded_bank.balance_of("alice", NATIVE_ASSET) == 1_000_000
        assert funded_bank.total_of(NATIVE_ASSET) == 1_000_000
        assert record.value == 2_000 * USD
        assert transfers.holdings_of(NATIVE_ASSET, CUSTODY_ACCOUNT) == units(1, 18)

    def test_fungible_deposit_pulls_into_custody(self, funded_bank, transfers):
        funded_bank.deposit("alice", "USDC", units(250, 6))
        assert transfers.holdings_of("USDC", "alice") == units(99_750, 6)
        assert transfers.holdings_of("USDC", CUSTODY_ACCOUNT) == units(250, 6)
        assert funded_bank.balance_of("alice", "USDC") == 250_000_000

    def test_deposit_record(self, funded_bank):
        record = funded_bank.deposit("bob", "WBTC", 50_000_000)
        assert isinstance(record, OperationRecord)
        assert record.kind is RecordKind.DEPOSIT
        assert record.user == "bob"
        assert record.asset == "WBTC"
        assert record.amount == 50_000_000
        assert record.value == 15_000 * USD
        assert funded_bank.records[-1] == record

    def test_zero_amount_raises(self, funded_bank, transfers):
        with pytest.raises(ZeroAmount):
            funded_bank.deposit("alice", "USDC", 0)
        assert transfers.pull_count == 0

    def test_negative_amount_raises(self, funded_bank):
        with pytest.raises(ValueError):
            funded_bank.deposit("alice", "USDC", -1)

    def test_empty_user_raises(self, funded_bank):
        with pytest.raises(ValueError):
            funded_bank.deposit("", "USDC", 1)

    def test_dust_deposit_credits_truncated_amount(self, funded_bank, transfers):
        dust = 10 ** 12 - 1
        record = funded_bank.deposit("alice", NATIVE_ASSET, dust)
        assert record.amount == dust
        assert funded_bank.balance_of("alice", NATIVE_ASSET) == 0
        assert funded_bank.total_of(NATIVE_ASSET) == 0
        assert transfers.holdings_of(NATIVE_ASSET, CUSTODY_ACCOUNT) == dust
        assert funded_bank.deposit_count == 1
        assert funded_bank.verify_conservation()['valid']

    def test_truncated_digits_are_not_credited(self, funded_bank, transfers):
        funded_bank.deposit("alice", NATIVE_ASSET, 10 ** 18 + 999)
        assert funded_bank.balance_of("alice", NATIVE_ASSET) == 1_000_000
        assert transfers.holdings_of(NATIVE_ASSET, CUSTODY_ACCOUNT) == 10 ** 18 + 999

    def test_unsupported_asset_raises(self, funded_bank, transfers):
        transfers.mint("DAI", "alice", units(10, 18))
        with pytest.raises(AssetNotSupported):
            funded_bank.deposit("alice", "DAI", units(10, 18))
        assert transfers.holdings_of("DAI", "alice") == units(10, 18)

    def test_pull_failure_raises(self, funded_bank, transfers):
        transfers.fail_next()
        with pytest.raises(TransferFailed):
            funded_bank.deposit("alice", "USDC", units(1, 6))
        assert funded_bank.balance_of("alice", "USDC") == 0

    def test_insufficient_external_funds(self, funded_bank):
        with pytest.raises(TransferFailed):
            funded_bank.deposit("carol", "USDC", units(1, 6))

    def test_raising_transfer_service(self, price_feed):
        bank = Bank(GLOBAL_CAPACITY, WITHDRAWAL_THRESHOLD, price_feed, ADMIN,
                    RaisingTransferService({"USDC": 6}), verbose=False)
        with pytest.raises(TransferFailed, match="unavailable") as exc_info:
            bank.deposit("alice", NATIVE_ASSET, units(1, 18))
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert bank.state is OperationState.IDLE

    def test_capacity_exceeded_pulls_nothing(self, funded_bank, transfers):
        # 2 WBTC = $60,000 > $50,000 capacity
        with pytest.raises(BankCapExceeded) as exc_info:
            funded_bank.deposit("alice", "WBTC", units(2, 8))
        assert exc_info.value.available == GLOBAL_CAPACITY
        assert transfers.pull_count == 0
        assert transfers.holdings_of("WBTC", "alice") == units(2, 8)
        assert transfers.holdings_of("WBTC", CUSTODY_ACCOUNT) == 0
        assert funded_bank.total_of("WBTC") == 0
        assert funded_bank.deposit_count == 0

    def test_invalid_price_pulls_nothing(self, funded_bank, transfers, price_feed):
        price_feed.update_price("USDC", 0)
        with pytest.raises(InvalidPriceData):
            funded_bank.deposit("alice", "USDC", units(5, 6))
        assert transfers.pull_count == 0
        assert transfers.holdings_of("USDC", "alice") == units(100_000, 6)

    def test_failing_price_source_leaves_funds_with_user(self, funded_bank, transfers):
        funded_bank.register_asset(ADMIN, "GUSD", RaisingPriceSource())
        transfers.mint("GUSD", "alice", units(10, 2))
        with pytest.raises(InvalidPriceData, match="unavailable") as exc_info:
            funded_bank.deposit("alice", "GUSD", units(10, 2))
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert transfers.holdings_of("GUSD", "alice") == units(10, 2)
        assert transfers.holdings_of("GUSD", CUSTODY_ACCOUNT) == 0
        assert funded_bank.total_of("GUSD") == 0
        assert funded_bank.state is OperationState.IDLE

    def test_broken_push_does_not_strand_rejected_deposit(self, funded_bank, transfers):
        real_push = transfers.push
        transfers.push = lambda asset, dest, amount: False
        try:
            with pytest.raises(BankCapExceeded):
                funded_bank.deposit("alice", "WBTC", units(2, 8))
        finally:
            transfers.push = real_push
        assert transfers.holdings_of("WBTC", "alice") == units(2, 8)
        assert transfers.holdings_of("WBTC", CUSTODY_ACCOUNT) == 0
        assert funded_bank.total_of("WBTC") == 0

    def test_deposit_count(self, funded_bank):
        funded_bank.deposit("alice", "USDC", units(1, 6))
        funded_bank.deposit("bob", "USDC", units(1, 6))
        assert funded_bank.deposit_count == 2
        assert funded_bank.withdrawal_count == 0


class TestWithdraw:
    """Tests for withdraw."""

    @pytest.fixture
    def deposited_bank(self, funded_bank):
        funded_bank.deposit("alice", "USDC", units(3_000, 6))
        funded_bank.deposit("alice", NATIVE_ASSET, units(2, 18))
        return funded_bank

    def test_withdraw_fungible(self, deposited_bank, transfers):
        record = deposited_bank.withdraw("alice", "USDC", units(1_000, 6))
        assert deposited_bank.balance_of("alice", "USDC") == 2_000_000_000
        assert deposited_bank.total_of("USDC") == 2_000_000_000
        assert transfers.holdings_of("USDC", "alice") == units(98_000, 6)
        assert record.kind is RecordKind.WITHDRAWAL
        assert record.value == 1_000 * USD

    def test_withdraw_native(self, deposited_bank, transfers):
        deposited_bank.withdraw("alice", NATIVE_ASSET, 5 * 10 ** 17)
        assert deposited_bank.balance_of("alice", NATIVE_ASSET) == 1_500_000
        assert transfers.holdings_of(NATIVE_ASSET, "alice") == 185 * 10 ** 17

    def test_zero_amount_raises(self, deposited_bank):
        with pytest.raises(ZeroAmount):
            deposited_bank.withdraw("alice", "USDC", 0)

    def test_unsupported_asset_raises(self, deposited_bank):
        with pytest.raises(AssetNotSupported):
            deposited_bank.withdraw("alice", "DAI", 1)

    def test_insufficient_balance(self, deposited_bank, transfers):
        with pytest.raises(InsufficientBalance):
            deposited_bank.withdraw("alice", "USDC", units(3_001, 6))
        assert transfers.push_count == 0

    def test_other_user_cannot_withdraw(self, deposited_bank):
        with pytest.raises(InsufficientBalance):
            deposited_bank.withdraw("bob", "USDC", 1)

    def test_withdraw_rounds_debit_up(self, deposited_bank):
        # 1 wei more than 0.5 native costs one extra ledger unit
        deposited_bank.withdraw("alice", NATIVE_ASSET, 5 * 10 ** 17 + 1)
        assert deposited_bank.balance_of("alice", NATIVE_ASSET) == 1_499_999

    def test_tiny_withdrawal_still_debits(self, deposited_bank):
        deposited_bank.withdraw("alice", NATIVE_ASSET, 1)
        assert deposited_bank.balance_of("alice", NATIVE_ASSET) == 1_999_999

    def test_threshold_exceeded(self, funded_bank, transfers):
        funded_bank.deposit("alice", NATIVE_ASSET, units(5, 18))  # $10,000
        with pytest.raises(WithdrawalThresholdExceeded):
            funded_bank.withdraw("alice", NATIVE_ASSET, units(3, 18))  # $6,000
        assert funded_bank.balance_of("alice", NATIVE_ASSET) == 5_000_000
        assert transfers.push_count == 0

    def test_invalid_price_blocks_withdrawal(self, deposited_bank, price_feed):
        price_feed.clear_price("USDC")
        with pytest.raises(InvalidPriceData):
            deposited_bank.withdraw("alice", "USDC", units(1, 6))
        assert deposited_bank.balance_of("alice", "USDC") == 3_000_000_000

    def test_failed_push_rolls_back(self, deposited_bank, transfers):
        transfers.fail_next()
        with pytest.raises(TransferFailed):
            deposited_bank.withdraw("alice", "USDC", units(1_000, 6))
        assert deposited_bank.balance_of("alice", "USDC") == 3_000_000_000
        assert deposited_bank.total_of("USDC") == 3_000_000_000
        assert transfers.holdings_of("USDC", CUSTODY_ACCOUNT) == units(3_000, 6)
        assert deposited_bank.withdrawal_count == 0
        assert deposited_bank.records[-1].kind is RecordKind.DEPOSIT

    def test_raising_push_rolls_back(self, deposited_bank, transfers):
        def explode(asset, dest, amount):
            raise RuntimeError("recipient rejected funds")
        transfers.on_push = explode
        with pytest.raises(TransferFailed, match="recipient rejected") as exc_info:
            deposited_bank.withdraw("alice", "USDC", units(1_000, 6))
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert deposited_bank.balance_of("alice", "USDC") == 3_000_000_000
        assert transfers.holdings_of("USDC", "alice") == units(97_000, 6)
        assert deposited_bank.state is OperationState.IDLE

    def test_withdraw_everything(self, deposited_bank):
        deposited_bank.withdraw("alice", "USDC", units(3_000, 6))
        assert deposited_bank.balance_of("alice", "USDC") == 0
        assert deposited_bank.ledger.get_positions("USDC") == {}


class TestViews:
    """Tests for read-only views."""

    def test_native_balance_of(self, funded_bank):
        funded_bank.deposit("alice", "WBTC", 25_000_000)
        assert funded_bank.native_balance_of("alice", "WBTC") == 25_000_000

    def test_global_valuation(self, funded_bank):
        funded_bank.deposit("alice", NATIVE_ASSET, units(1, 18))     # $2,000
        funded_bank.deposit("bob", "USDC", units(500, 6))            # $500
        funded_bank.deposit("bob", "WBTC", 10_000_000)            # $3,000
        assert funded_bank.global_valuation() == 5_500 * USD
        assert funded_bank.available_capacity() == 44_500 * USD

    def test_user_valuation(self, funded_bank):
        funded_bank.deposit("alice", NATIVE_ASSET, units(1, 18))
        funded_bank.deposit("alice", "USDC", units(500, 6))
        funded_bank.deposit("bob", "USDC", units(700, 6))
        assert funded_bank.user_valuation("alice") == 2_500 * USD
        assert funded_bank.user_valuation("bob") == 700 * USD
        assert funded_bank.user_valuation("nobody") == 0

    def test_valuation_follows_price(self, funded_bank, price_feed):
        funded_bank.deposit("alice", NATIVE_ASSET, units(1, 18))
        price_feed.update_price(NATIVE_ASSET, usd_price(2_500))
        assert funded_bank.global_valuation() == 2_500 * USD

    def test_value_of(self, bank):
        assert bank.value_of("WBTC", units(1, 8)) == 30_000 * USD

    def test_records_in_order(self, funded_bank):
        funded_bank.deposit("alice", "USDC", units(10, 6))
        funded_bank.withdraw("alice", "USDC", units(4, 6))
        records = funded_bank.records
        kinds = [r.kind for r in records]
        assert kinds == [
            RecordKind.ASSET_REGISTERED, RecordKind.ASSET_REGISTERED,
            RecordKind.DEPOSIT, RecordKind.WITHDRAWAL,
        ]
        assert [r.sequence_number for r in records] == [0, 1, 2, 3]
        assert isinstance(records[0], AssetRecord)

    def test_records_stamped_with_logical_time(self, funded_bank):
        t = datetime(2025, 3, 1)
        funded_bank.advance_time(t)
        record = funded_bank.deposit("alice", "USDC", units(1, 6))
        assert record.timestamp == t

    def test_records_is_a_snapshot(self, funded_bank):
        before = funded_bank.records
        funded_bank.deposit("alice", "USDC", units(1, 6))
        assert len(funded_bank.records) == len(before) + 1

    def test_verify_conservation(self, funded_bank):
        funded_bank.deposit("alice", "USDC", units(10, 6))
        funded_bank.deposit("bob", "USDC", units(20, 6))
        funded_bank.withdraw("alice", "USDC", units(5, 6))
        assert funded_bank.verify_conservation()['valid']


class TestVerboseOutput:
    """Tests for verbose printing."""

    def test_prints_results(self, price_feed, capsys):
        transfers = InMemoryTransferService({"USDC": 6})
        bank = Bank(GLOBAL_CAPACITY, WITHDRAWAL_THRESHOLD, price_feed, ADMIN, transfers)
        bank.register_asset(ADMIN, "USDC", price_feed)
        transfers.mint("USDC", "alice", units(10, 6))
        bank.deposit("alice", "USDC", units(10, 6))
        with pytest.raises(InsufficientBalance):
            bank.withdraw("alice", "USDC", units(11, 6))
        out = capsys.readouterr().out
        assert "Registered: USDC" in out
        assert "✓ DEPOSIT alice" in out
        assert "✗ REJECTED withdraw: InsufficientBalance" in out

    def test_quiet_when_not_verbose(self, funded_bank, capsys):
        funded_bank.deposit("alice", "USDC", units(1, 6))
        assert capsys.readouterr().out == ""
