"""Data models for ledger operations and their results."""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from ...core.errors import InvalidAmountError, LedgerError
from ...ormdb.models import (
    FundingRequest,
    Trade,
    UserAccount,
    Wallet,
    WalletTransaction,
)

CENT = Decimal("0.01")
SHARE_PRECISION = Decimal("0.000001")


def to_money(value: Any, field_name: str = "amount") -> Decimal:
    """Convert to a cent-quantised Decimal, rejecting NaN and infinities."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountError(f"{field_name} must be a number")
    if not amount.is_finite():
        raise InvalidAmountError(f"{field_name} must be finite")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_quantity(value: Any, field_name: str = "quantity") -> Decimal:
    """Convert share counts and per-share prices to six decimal places."""
    try:
        quantity = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountError(f"{field_name} must be a number")
    if not quantity.is_finite():
        raise InvalidAmountError(f"{field_name} must be finite")
    return quantity.quantize(SHARE_PRECISION, rounding=ROUND_HALF_UP)


@dataclass
class OperationResult:
    """Outcome of a ledger operation with no richer payload."""

    success: bool
    error: Optional[str] = None
    error_code: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **data: Any) -> "OperationResult":
        return cls(success=True, data=data)

    @classmethod
    def from_error(cls, error: LedgerError) -> "OperationResult":
        return cls(success=False, error=error.message, error_code=error.code)


@dataclass
class BalanceUpdateResult:
    """Outcome of a wallet balance update."""

    success: bool
    new_balance: Optional[Decimal] = None
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def from_error(cls, error: LedgerError) -> "BalanceUpdateResult":
        return cls(success=False, error=error.message, error_code=error.code)


@dataclass
class TradeOrder:
    """Order as submitted by a user or an admin on a user's behalf."""

    symbol: str
    side: str  # "buy" or "sell"
    quantity: Decimal
    order_type: str = "market"  # "market", "limit" or "stop"
    name: str = ""
    price: Optional[Decimal] = None
    sector: Optional[str] = None


@dataclass
class TradeResult:
    """Outcome of placing, filling or cancelling a trade."""

    success: bool
    trade: Optional[Trade] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    # Set on a buy rejected for lack of cash so the caller can offer funding
    requires_funding: bool = False

    @classmethod
    def from_error(cls, error: LedgerError) -> "TradeResult":
        return cls(
            success=False,
            error=error.message,
            error_code=error.code,
            requires_funding=error.code == "insufficient_funds",
        )


@dataclass
class FundingResult:
    """Outcome of a funding request operation."""

    success: bool
    request: Optional[FundingRequest] = None
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    @classmethod
    def from_error(cls, error: LedgerError) -> "FundingResult":
        return cls(success=False, error=error.message, error_code=error.code)


@dataclass
class HoldingView:
    """A holding valued at the latest known price."""

    id: str
    symbol: str
    name: str
    sector: Optional[str]
    shares: Decimal
    average_price: Decimal
    price: Optional[Decimal]
    change: Decimal
    change_percent: Decimal
    value: Decimal
    cost_basis: Decimal
    unrealized_gain: Decimal
    unrealized_gain_percent: Decimal
    allocation: Decimal
    price_source: str  # "live", "synthetic", "cached" or "unavailable"

    @property
    def price_unavailable(self) -> bool:
        return self.price_source == "unavailable"


@dataclass
class PortfolioStats:
    """Aggregate portfolio performance."""

    total_value: Decimal
    total_cost: Decimal
    total_gain: Decimal
    total_gain_percent: Decimal
    day_change: Decimal
    day_change_percent: Decimal
    num_positions: int


@dataclass
class ReconciliationReport:
    """Result of replaying a wallet's ledger against its balance."""

    wallet_id: str
    balance: Decimal
    ledger_total: Decimal
    transaction_count: int
    broken_links: List[int] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return self.balance == self.ledger_total and not self.broken_links


@dataclass
class AdminStats:
    """Platform-wide back-office figures."""

    total_users: int
    total_wallet_balance: Decimal
    total_trades_today: int
    total_volume_today: Decimal
    pending_orders: int
    pending_funding_requests: int


@dataclass
class UserStats:
    """Per-user back-office figures."""

    total_portfolio_value: Decimal
    total_trades: int
    total_deposits: Decimal
    total_withdrawals: Decimal
    profit_loss: Decimal
    profit_loss_percent: Decimal


def _str(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def account_to_dict(account: UserAccount) -> Dict[str, Any]:
    return {
        "id": account.id,
        "email": account.email,
        "role": account.role,
        "created_at": _iso(account.created_at),
    }


def wallet_to_dict(wallet: Wallet) -> Dict[str, Any]:
    return {
        "id": wallet.id,
        "user_id": wallet.user_id,
        "balance": _str(wallet.balance),
        "available_balance": _str(wallet.available_balance),
        "pending_balance": _str(wallet.pending_balance),
        "currency": wallet.currency,
        "status": wallet.status,
        "updated_at": _iso(wallet.updated_at),
    }


def transaction_to_dict(transaction: WalletTransaction) -> Dict[str, Any]:
    return {
        "id": transaction.id,
        "wallet_id": transaction.wallet_id,
        "sequence": transaction.sequence,
        "type": transaction.type,
        "amount": _str(transaction.amount),
        "balance_before": _str(transaction.balance_before),
        "balance_after": _str(transaction.balance_after),
        "description": transaction.description,
        "reference_id": transaction.reference_id,
        "status": transaction.status,
        "created_at": _iso(transaction.created_at),
        "created_by": transaction.created_by,
    }


def trade_to_dict(trade: Trade) -> Dict[str, Any]:
    return {
        "id": trade.id,
        "user_id": trade.user_id,
        "symbol": trade.symbol,
        "name": trade.name,
        "type": trade.type,
        "order_type": trade.order_type,
        "quantity": _str(trade.quantity),
        "price": _str(trade.price),
        "total": _str(trade.total),
        "status": trade.status,
        "created_by": trade.created_by,
        "created_at": _iso(trade.created_at),
        "updated_at": _iso(trade.updated_at),
        "filled_at": _iso(trade.filled_at),
    }


def funding_request_to_dict(request: FundingRequest) -> Dict[str, Any]:
    return {
        "id": request.id,
        "user_id": request.user_id,
        "user_email": request.user_email,
        "requested_amount": _str(request.requested_amount),
        "status": request.status,
        "message": request.message,
        "admin_notes": request.admin_notes,
        "created_at": _iso(request.created_at),
        "updated_at": _iso(request.updated_at),
    }


def holding_view_to_dict(view: HoldingView) -> Dict[str, Any]:
    return {
        "id": view.id,
        "symbol": view.symbol,
        "name": view.name,
        "sector": view.sector,
        "shares": str(view.shares),
        "average_price": str(view.average_price),
        "price": _str(view.price),
        "change": str(view.change),
        "change_percent": str(view.change_percent),
        "value": str(view.value),
        "cost_basis": str(view.cost_basis),
        "unrealized_gain": str(view.unrealized_gain),
        "unrealized_gain_percent": str(view.unrealized_gain_percent),
        "allocation": str(view.allocation),
        "price_source": view.price_source,
        "price_unavailable": view.price_unavailable,
    }
