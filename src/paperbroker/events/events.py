"""Domain events for the brokerage ledger."""

from abc import ABC
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4


@dataclass
class DomainEvent(ABC):
    """Base class for all domain events."""

    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_version: str = "1.0"
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert event to dictionary for serialization."""
        result = {
            "event_type": self.__class__.__name__,
            "event_id": self.event_id,
            "timestamp": self.timestamp.isoformat(),
            "event_version": self.event_version,
            "metadata": self.metadata,
        }

        for field_name, field_value in self.__dict__.items():
            if field_name not in ["event_id", "timestamp", "event_version", "metadata"]:
                if isinstance(field_value, datetime):
                    result[field_name] = field_value.isoformat()
                else:
                    result[field_name] = field_value

        return result


@dataclass
class WalletBalanceChangedEvent(DomainEvent):
    """Event triggered after a ledger entry has been committed."""

    user_id: str = ""
    wallet_id: str = ""
    transaction_id: str = ""
    transaction_type: str = ""
    amount: str = "0"
    balance_before: str = "0"
    balance_after: str = "0"
    created_by: str = "system"
    reference_id: Optional[str] = None


@dataclass
class TradeExecutedEvent(DomainEvent):
    """Event triggered when a trade settles."""

    trade_id: str = ""
    user_id: str = ""
    symbol: str = ""
    side: str = ""
    order_type: str = ""
    quantity: str = "0"
    price: str = "0"
    total: str = "0"
    filled_by: Optional[str] = None


@dataclass
class TradeCancelledEvent(DomainEvent):
    """Event triggered when a pending order is cancelled."""

    trade_id: str = ""
    user_id: str = ""
    symbol: str = ""


@dataclass
class FundingRequestStatusChangedEvent(DomainEvent):
    """Event triggered on every funding request transition."""

    request_id: str = ""
    user_id: str = ""
    previous_status: Optional[str] = None
    new_status: str = ""
    amount: Optional[str] = None
    admin_id: Optional[str] = None
