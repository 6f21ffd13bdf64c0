"""Event handlers that write the ledger audit trail."""

from ..config.logging import log_audit_event
from .event_bus import EventBus
from .events import (
    FundingRequestStatusChangedEvent,
    TradeCancelledEvent,
    TradeExecutedEvent,
    WalletBalanceChangedEvent,
)


def audit_wallet_change(event: WalletBalanceChangedEvent) -> None:
    log_audit_event(
        "wallet_balance_changed",
        user_id=event.user_id,
        wallet_id=event.wallet_id,
        transaction_id=event.transaction_id,
        transaction_type=event.transaction_type,
        amount=event.amount,
        balance_after=event.balance_after,
        created_by=event.created_by,
        reference_id=event.reference_id,
    )


def audit_trade_executed(event: TradeExecutedEvent) -> None:
    log_audit_event(
        "trade_executed",
        user_id=event.user_id,
        trade_id=event.trade_id,
        symbol=event.symbol,
        side=event.side,
        quantity=event.quantity,
        price=event.price,
        filled_by=event.filled_by,
    )


def audit_trade_cancelled(event: TradeCancelledEvent) -> None:
    log_audit_event(
        "trade_cancelled",
        user_id=event.user_id,
        trade_id=event.trade_id,
        symbol=event.symbol,
    )


def audit_funding_transition(event: FundingRequestStatusChangedEvent) -> None:
    log_audit_event(
        "funding_request_transition",
        user_id=event.user_id,
        request_id=event.request_id,
        previous_status=event.previous_status,
        new_status=event.new_status,
        amount=event.amount,
        admin_id=event.admin_id,
    )


def register_audit_handlers(event_bus: EventBus) -> None:
    """Subscribe the audit trail handlers to every ledger event."""
    event_bus.subscribe(WalletBalanceChangedEvent, audit_wallet_change)
    event_bus.subscribe(TradeExecutedEvent, audit_trade_executed)
    event_bus.subscribe(TradeCancelledEvent, audit_trade_cancelled)
    event_bus.subscribe(FundingRequestStatusChangedEvent, audit_funding_transition)
