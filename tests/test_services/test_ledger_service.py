"""Tests for ledger service wiring and whole-ledger invariants."""

import asyncio
from decimal import Decimal
from unittest.mock import patch

import pytest

from paperbroker.ormdb.database import session_scope
from paperbroker.ormdb.models import TransactionType
from paperbroker.ormdb.repositories import WalletRepository
from paperbroker.services.ledger import (
    LedgerService,
    PortfolioService,
    TradeOrder,
    UserLockRegistry,
    WalletService,
    get_ledger_service,
    set_ledger_service,
)


class TestWiring:
    """Test how the ledger components are put together."""

    def test_components_share_one_lock_registry(self, ledger):
        assert ledger.wallets.locks is ledger.locks
        assert ledger.portfolio.locks is ledger.locks
        assert ledger.trades.locks is ledger.locks
        assert ledger.funding.locks is ledger.locks

    def test_empty_registry_passed_in_is_kept(self, test_settings, quote_service, event_bus):
        locks = UserLockRegistry()

        wallets = WalletService(test_settings, locks, event_bus)
        portfolio = PortfolioService(quote_service, test_settings, locks)

        assert len(locks) == 0
        assert wallets.locks is locks
        assert wallets.event_bus is event_bus
        assert portfolio.locks is locks

    def test_lock_per_user(self, ledger):
        first = ledger.locks.lock_for("a")

        assert ledger.locks.lock_for("a") is first
        assert ledger.locks.lock_for("b") is not first
        assert len(ledger.locks) == 2

    def test_process_wide_service_can_be_replaced(self, ledger):
        set_ledger_service(ledger)
        try:
            assert get_ledger_service() is ledger
        finally:
            set_ledger_service(None)

    def test_default_service_is_built_lazily(self, mock_db_session, test_settings):
        set_ledger_service(None)
        with patch(
            "paperbroker.services.ledger.service.get_settings", return_value=test_settings
        ):
            service = get_ledger_service()
        try:
            assert isinstance(service, LedgerService)
            assert get_ledger_service() is service
        finally:
            set_ledger_service(None)


@pytest.mark.integration
class TestLedgerInvariants:
    """Exercise several services together and check the ledger still adds up."""

    @pytest.mark.asyncio
    async def test_mixed_activity_reconciles(self, ledger, funded_user, admin_id, quote_prices):
        user_id = await funded_user(Decimal("1000.00"))

        await ledger.execute_trade(
            user_id, TradeOrder(symbol="ABC", side="buy", quantity=Decimal("7"))
        )
        quote_prices["ABC"] = 23.17
        await ledger.execute_trade(
            user_id, TradeOrder(symbol="ABC", side="sell", quantity=Decimal("3.5"))
        )
        await ledger.admin.adjust_user_wallet(
            user_id, Decimal("12.34"), "adjustment", "Goodwill", admin_id
        )
        request = await ledger.funding.submit(user_id, "trader@example.com", Decimal("99.99"))
        await ledger.funding.approve(request.request.id, admin_id)
        await ledger.funding.complete(request.request.id, Decimal("99.99"), admin_id)
        await ledger.execute_trade(
            user_id, TradeOrder(symbol="MSFT", side="buy", quantity=Decimal("10"))
        )

        wallet = await ledger.wallets.get_wallet(user_id)
        report = await ledger.wallets.reconcile_wallet(wallet.id)

        assert report.consistent
        assert report.broken_links == []
        # 1000 - 140 + 81.10 (3.5 * 23.17 rounded) + 12.34 + 99.99; the MSFT buy is refused
        assert wallet.balance == Decimal("1053.43")
        assert wallet.balance >= 0

        with session_scope() as session:
            entries = WalletRepository(session).replay_transactions(wallet.id)
        assert [e.sequence for e in entries] == list(range(1, len(entries) + 1))
        assert entries[-1].type == TransactionType.DEPOSIT.value

    @pytest.mark.asyncio
    async def test_concurrent_buys_never_overspend(self, ledger, funded_user):
        user_id = await funded_user(Decimal("100.00"))
        order = dict(symbol="ABC", side="buy", quantity=Decimal("2"))

        results = await asyncio.gather(
            *[ledger.execute_trade(user_id, TradeOrder(**order)) for _ in range(5)]
        )

        # Each buy costs 40.00; only two fit in 100.00
        assert sum(1 for r in results if r.success) == 2
        assert all(r.requires_funding for r in results if not r.success)

        wallet = await ledger.wallets.get_wallet(user_id)
        assert wallet.balance == Decimal("20.00")
        report = await ledger.wallets.reconcile_wallet(wallet.id)
        assert report.consistent
