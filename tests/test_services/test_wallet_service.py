"""Tests for wallet balance mutation and the ledger."""

import asyncio
from decimal import Decimal

import pytest

from paperbroker.config.settings import Settings
from paperbroker.events import WalletBalanceChangedEvent
from paperbroker.ormdb.database import session_scope
from paperbroker.ormdb.models import TransactionType, WalletStatus
from paperbroker.ormdb.repositories import WalletRepository
from paperbroker.services.ledger import LedgerService


class TestCreateWallet:
    """Test wallet creation."""

    @pytest.mark.asyncio
    async def test_opening_balance_is_a_system_deposit(self, ledger, user_id):
        wallet = await ledger.wallets.create_wallet(user_id, Decimal("1000"))

        assert wallet.balance == Decimal("1000.00")
        assert wallet.available_balance == Decimal("1000.00")
        assert wallet.pending_balance == Decimal("0.00")
        assert wallet.currency == "USD"
        assert wallet.status == WalletStatus.ACTIVE.value

        transactions = await ledger.wallets.list_transactions(wallet.id)
        assert len(transactions) == 1
        assert transactions[0].type == TransactionType.DEPOSIT.value
        assert transactions[0].created_by == "system"
        assert transactions[0].sequence == 1

    @pytest.mark.asyncio
    async def test_empty_wallet_has_no_ledger_entries(self, ledger, user_id):
        wallet = await ledger.wallets.create_wallet(user_id)

        assert wallet.balance == Decimal("0.00")
        assert await ledger.wallets.list_transactions(wallet.id) == []

    @pytest.mark.asyncio
    async def test_negative_opening_balance_rejected(self, ledger, user_id):
        from paperbroker.core.errors import InvalidAmountError

        with pytest.raises(InvalidAmountError):
            await ledger.wallets.create_wallet(user_id, Decimal("-5"))

        assert await ledger.wallets.get_wallet(user_id) is None

    @pytest.mark.asyncio
    async def test_get_wallet_for_user_without_one(self, ledger, user_id):
        assert await ledger.wallets.get_wallet(user_id) is None


class TestUpdateBalance:
    """Test applying signed amounts to a wallet."""

    @pytest.mark.asyncio
    async def test_deposit_and_withdrawal(self, ledger, funded_user):
        user_id = await funded_user()

        deposit = await ledger.wallets.update_balance(
            user_id, Decimal("250.10"), TransactionType.DEPOSIT, "Top up"
        )
        withdrawal = await ledger.wallets.update_balance(
            user_id, Decimal("-50.10"), "withdrawal", "Cash out", created_by=user_id
        )

        assert deposit.success
        assert deposit.new_balance == Decimal("1250.10")
        assert withdrawal.success
        assert withdrawal.new_balance == Decimal("1200.00")

        wallet = await ledger.wallets.get_wallet(user_id)
        assert wallet.balance == Decimal("1200.00")

        transactions = await ledger.wallets.list_transactions(wallet.id)
        assert [t.sequence for t in transactions] == [3, 2, 1]
        assert transactions[0].balance_before == Decimal("1250.10")
        assert transactions[0].balance_after == Decimal("1200.00")
        assert transactions[0].created_by == user_id

    @pytest.mark.asyncio
    async def test_overdrawing_withdrawal_changes_nothing(self, ledger, funded_user):
        user_id = await funded_user(Decimal("1000.00"))

        result = await ledger.wallets.update_balance(
            user_id, Decimal("-1500"), TransactionType.WITHDRAWAL, "Too much"
        )

        assert not result.success
        assert result.error_code == "insufficient_funds"

        wallet = await ledger.wallets.get_wallet(user_id)
        assert wallet.balance == Decimal("1000.00")
        assert len(await ledger.wallets.list_transactions(wallet.id)) == 1

    @pytest.mark.asyncio
    async def test_withdrawal_to_exactly_zero(self, ledger, funded_user):
        user_id = await funded_user(Decimal("100.00"))

        result = await ledger.wallets.update_balance(
            user_id, Decimal("-100.00"), TransactionType.WITHDRAWAL, "Everything"
        )

        assert result.success
        assert result.new_balance == Decimal("0.00")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "amount,tx_type,code",
        [
            (Decimal("0"), TransactionType.DEPOSIT, "invalid_amount"),
            (Decimal("10"), TransactionType.WITHDRAWAL, "invalid_amount"),
            (Decimal("10"), TransactionType.FEE, "invalid_amount"),
            (Decimal("-10"), TransactionType.DEPOSIT, "invalid_amount"),
            (Decimal("-10"), TransactionType.TRADE_SELL, "invalid_amount"),
            (Decimal("10"), "dividend", "invalid_transaction_type"),
            ("abc", TransactionType.DEPOSIT, "invalid_amount"),
            ("NaN", TransactionType.DEPOSIT, "invalid_amount"),
        ],
    )
    async def test_rejects_invalid_input(self, ledger, funded_user, amount, tx_type, code):
        user_id = await funded_user()

        result = await ledger.wallets.update_balance(user_id, amount, tx_type, "bad")

        assert not result.success
        assert result.error_code == code

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tx_type", [TransactionType.DEPOSIT, TransactionType.TRADE_SELL])
    async def test_negative_credit_cannot_overdraw(self, ledger, funded_user, tx_type):
        user_id = await funded_user(Decimal("100.00"))

        result = await ledger.wallets.update_balance(
            user_id, Decimal("-500"), tx_type, "Reversal", allow_overdraft=True
        )

        assert result.error_code == "invalid_amount"
        wallet = await ledger.wallets.get_wallet(user_id)
        assert wallet.balance == Decimal("100.00")
        assert len(await ledger.wallets.list_transactions(wallet.id)) == 1

    @pytest.mark.asyncio
    async def test_amounts_round_half_up_to_cents(self, ledger, funded_user):
        user_id = await funded_user(Decimal("0"))

        result = await ledger.wallets.update_balance(
            user_id, Decimal("10.005"), TransactionType.DEPOSIT, "Rounding"
        )

        assert result.new_balance == Decimal("10.01")

    @pytest.mark.asyncio
    async def test_creates_wallet_on_first_update(self, ledger, user_id):
        result = await ledger.wallets.update_balance(
            user_id, Decimal("75"), TransactionType.DEPOSIT, "First"
        )

        assert result.success
        wallet = await ledger.wallets.get_wallet(user_id)
        assert wallet.balance == Decimal("75.00")

    @pytest.mark.asyncio
    async def test_unknown_user(self, ledger):
        result = await ledger.wallets.update_balance(
            "nobody", Decimal("75"), TransactionType.DEPOSIT, "First"
        )

        assert result.error_code == "user_not_found"

    @pytest.mark.asyncio
    async def test_publishes_change_event(self, ledger, funded_user, event_bus):
        user_id = await funded_user()
        seen = []
        event_bus.subscribe(WalletBalanceChangedEvent, seen.append)

        result = await ledger.wallets.update_balance(
            user_id, Decimal("5"), TransactionType.DEPOSIT, "Event"
        )

        assert len(seen) == 1
        assert seen[0].transaction_id == result.transaction_id
        assert seen[0].balance_after == "1005.00"

    @pytest.mark.asyncio
    async def test_rejection_publishes_nothing(self, ledger, funded_user, event_bus):
        user_id = await funded_user()
        seen = []
        event_bus.subscribe(WalletBalanceChangedEvent, seen.append)

        await ledger.wallets.update_balance(
            user_id, Decimal("-5000"), TransactionType.WITHDRAWAL, "Nope"
        )

        assert seen == []


class TestAdjustments:
    """Test the overdraft rules for manual adjustments."""

    @pytest.mark.asyncio
    async def test_negative_adjustment_is_floored_by_default(self, ledger, funded_user):
        user_id = await funded_user(Decimal("10.00"))

        result = await ledger.wallets.update_balance(
            user_id,
            Decimal("-20"),
            TransactionType.ADJUSTMENT,
            "Correction",
            allow_overdraft=True,
        )

        assert result.error_code == "insufficient_funds"

    @pytest.mark.asyncio
    async def test_overdraft_needs_setting_and_flag(
        self, mock_db_session, user_id, quote_service, event_bus, tmp_path
    ):
        settings = Settings(
            data_directory=str(tmp_path),
            log_file_enabled=False,
            allow_adjustment_overdraft=True,
        )
        ledger = LedgerService(settings, quote_service, event_bus)
        await ledger.wallets.create_wallet(user_id, Decimal("10.00"))

        without_flag = await ledger.wallets.update_balance(
            user_id, Decimal("-20"), TransactionType.ADJUSTMENT, "Correction"
        )
        with_flag = await ledger.wallets.update_balance(
            user_id,
            Decimal("-20"),
            TransactionType.ADJUSTMENT,
            "Correction",
            allow_overdraft=True,
        )
        withdrawal = await ledger.wallets.update_balance(
            user_id,
            Decimal("-1"),
            TransactionType.WITHDRAWAL,
            "Still floored",
            allow_overdraft=True,
        )

        assert without_flag.error_code == "insufficient_funds"
        assert with_flag.success
        assert with_flag.new_balance == Decimal("-10.00")
        assert withdrawal.error_code == "insufficient_funds"

    @pytest.mark.asyncio
    async def test_positive_adjustment(self, ledger, funded_user):
        user_id = await funded_user(Decimal("10.00"))

        result = await ledger.wallets.update_balance(
            user_id, Decimal("2.50"), TransactionType.ADJUSTMENT, "Goodwill"
        )

        assert result.new_balance == Decimal("12.50")


class TestWalletStatus:
    """Test suspended and frozen wallets."""

    @pytest.mark.asyncio
    async def test_suspended_wallet_accepts_credits_only(self, ledger, funded_user, admin_id):
        user_id = await funded_user()

        status = await ledger.wallets.set_wallet_status(
            user_id, WalletStatus.SUSPENDED, admin_id
        )
        debit = await ledger.wallets.update_balance(
            user_id, Decimal("-1"), TransactionType.WITHDRAWAL, "Blocked"
        )
        credit = await ledger.wallets.update_balance(
            user_id, Decimal("1"), TransactionType.DEPOSIT, "Allowed"
        )

        assert status.success
        assert status.data["status"] == "suspended"
        assert debit.error_code == "wallet_inactive"
        assert credit.success

    @pytest.mark.asyncio
    async def test_frozen_wallet_rejects_everything(self, ledger, funded_user, admin_id):
        user_id = await funded_user()
        await ledger.wallets.set_wallet_status(user_id, "frozen", admin_id)

        credit = await ledger.wallets.update_balance(
            user_id, Decimal("1"), TransactionType.DEPOSIT, "Blocked"
        )

        assert credit.error_code == "wallet_inactive"

        await ledger.wallets.set_wallet_status(user_id, "active", admin_id)
        credit = await ledger.wallets.update_balance(
            user_id, Decimal("1"), TransactionType.DEPOSIT, "Allowed again"
        )
        assert credit.success

    @pytest.mark.asyncio
    async def test_status_change_requires_admin(self, ledger, funded_user):
        user_id = await funded_user()

        result = await ledger.wallets.set_wallet_status(user_id, "frozen", user_id)

        assert result.error_code == "permission_denied"

    @pytest.mark.asyncio
    async def test_unknown_status(self, ledger, funded_user, admin_id):
        user_id = await funded_user()

        result = await ledger.wallets.set_wallet_status(user_id, "closed", admin_id)

        assert result.error_code == "invalid_status"


class TestFundsCheck:
    """Test the read-only funds check."""

    @pytest.mark.asyncio
    async def test_check_sufficient_funds(self, ledger, funded_user, make_user):
        user_id = await funded_user(Decimal("100.00"))

        assert await ledger.wallets.check_sufficient_funds(user_id, Decimal("100.00"))
        assert not await ledger.wallets.check_sufficient_funds(user_id, Decimal("100.01"))
        assert not await ledger.wallets.check_sufficient_funds(
            make_user("walletless@example.com"), Decimal("1")
        )


class TestReconciliation:
    """Test replaying the ledger against the stored balance."""

    @pytest.mark.asyncio
    async def test_consistent_ledger(self, ledger, funded_user):
        user_id = await funded_user()
        await ledger.wallets.update_balance(
            user_id, Decimal("-300"), TransactionType.WITHDRAWAL, "Out"
        )
        await ledger.wallets.update_balance(
            user_id, Decimal("45.55"), TransactionType.ADJUSTMENT, "In"
        )
        wallet = await ledger.wallets.get_wallet(user_id)

        report = await ledger.wallets.reconcile_wallet(wallet.id)

        assert report.consistent
        assert report.ledger_total == Decimal("745.55")
        assert report.transaction_count == 3

    @pytest.mark.asyncio
    async def test_detects_tampered_balance(self, ledger, funded_user):
        user_id = await funded_user()
        wallet = await ledger.wallets.get_wallet(user_id)

        with session_scope() as session:
            wallets = WalletRepository(session)
            wallets.set_balance(wallets.get(wallet.id), Decimal("5000.00"))

        report = await ledger.wallets.reconcile_wallet(wallet.id)

        assert not report.consistent
        assert report.balance == Decimal("5000.00")
        assert report.ledger_total == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_unknown_wallet(self, ledger):
        from paperbroker.core.errors import WalletNotFoundError

        with pytest.raises(WalletNotFoundError):
            await ledger.wallets.reconcile_wallet("missing")


class TestConcurrency:
    """Test per-user serialisation of balance changes."""

    @pytest.mark.asyncio
    async def test_concurrent_withdrawals_cannot_overdraw(self, ledger, funded_user):
        user_id = await funded_user(Decimal("100.00"))

        results = await asyncio.gather(
            *[
                ledger.wallets.update_balance(
                    user_id, Decimal("-30"), TransactionType.WITHDRAWAL, f"Out {i}"
                )
                for i in range(5)
            ]
        )

        assert sum(1 for r in results if r.success) == 3
        wallet = await ledger.wallets.get_wallet(user_id)
        assert wallet.balance == Decimal("10.00")

        report = await ledger.wallets.reconcile_wallet(wallet.id)
        assert report.consistent
