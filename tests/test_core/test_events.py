"""Tests for the event bus and audit handlers."""

from unittest.mock import patch

import pytest

from paperbroker.events import (
    EventBus,
    TradeExecutedEvent,
    WalletBalanceChangedEvent,
    register_audit_handlers,
)


class TestEventBus:
    """Test publishing and subscribing."""

    @pytest.mark.asyncio
    async def test_sync_and_async_handlers(self):
        bus = EventBus("test")
        seen = []

        async def async_handler(event):
            seen.append(("async", event.trade_id))

        bus.subscribe(TradeExecutedEvent, seen.append)
        bus.subscribe(TradeExecutedEvent, async_handler)

        result = await bus.publish(TradeExecutedEvent(trade_id="t1"))

        assert result["successful_handlers"] == 2
        assert seen[1] == ("async", "t1")

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_propagate(self):
        bus = EventBus("test")

        def broken(event):
            raise ValueError("boom")

        bus.subscribe(TradeExecutedEvent, broken)

        result = await bus.publish(TradeExecutedEvent(trade_id="t1"))

        assert result["failed_handlers"] == 1
        assert bus.get_statistics()["errors_count"] == 1

    def test_duplicate_subscription_ignored(self):
        bus = EventBus("test")
        handler = lambda event: None  # noqa: E731

        bus.subscribe(TradeExecutedEvent, handler)
        bus.subscribe(TradeExecutedEvent, handler)

        assert bus.get_statistics()["total_handlers"] == 1
        assert bus.unsubscribe(TradeExecutedEvent, handler)
        assert not bus.unsubscribe(TradeExecutedEvent, handler)

    def test_event_to_dict(self):
        event = WalletBalanceChangedEvent(user_id="u1", amount="-10.00")

        data = event.to_dict()

        assert data["event_type"] == "WalletBalanceChangedEvent"
        assert data["amount"] == "-10.00"
        assert "timestamp" in data


class TestAuditHandlers:
    """Test that ledger events reach the audit log."""

    @pytest.mark.asyncio
    @patch("paperbroker.events.event_handlers.log_audit_event")
    async def test_wallet_change_is_audited(self, mock_audit):
        bus = EventBus("test")
        register_audit_handlers(bus)

        await bus.publish(
            WalletBalanceChangedEvent(
                user_id="u1",
                transaction_id="tx1",
                transaction_type="deposit",
                amount="10.00",
                balance_after="10.00",
            )
        )

        mock_audit.assert_called_once()
        args, kwargs = mock_audit.call_args
        assert args == ("wallet_balance_changed",)
        assert kwargs["user_id"] == "u1"
        assert kwargs["transaction_id"] == "tx1"

    def test_registers_every_ledger_event(self):
        bus = EventBus("test")

        register_audit_handlers(bus)

        assert bus.get_statistics()["registered_event_types"] == 4
