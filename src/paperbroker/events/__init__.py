"""Event-driven architecture components."""

from .event_bus import EventBus, get_event_bus, set_event_bus
from .event_handlers import register_audit_handlers
from .events import (
    DomainEvent,
    FundingRequestStatusChangedEvent,
    TradeCancelledEvent,
    TradeExecutedEvent,
    WalletBalanceChangedEvent,
)

__all__ = [
    # Events
    "DomainEvent",
    "FundingRequestStatusChangedEvent",
    "TradeCancelledEvent",
    "TradeExecutedEvent",
    "WalletBalanceChangedEvent",
    # Event Bus
    "EventBus",
    "get_event_bus",
    "set_event_bus",
    "register_audit_handlers",
]
