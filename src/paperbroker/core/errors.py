"""Ledger error taxonomy.

Services raise these inside a unit of work and convert them to result
values at their public boundary; ``code`` is stable and safe to show to
API clients.
"""

from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for every expected ledger failure."""

    code = "ledger_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InsufficientFundsError(LedgerError):
    code = "insufficient_funds"

    def __init__(self, required, available):
        super().__init__(
            f"Insufficient funds: required {required}, available {available}",
            details={"required": str(required), "available": str(available)},
        )


class InsufficientSharesError(LedgerError):
    code = "insufficient_shares"

    def __init__(self, symbol: str, requested, held):
        super().__init__(
            f"Insufficient shares of {symbol} (have {held}, want to sell {requested})",
            details={"symbol": symbol, "requested": str(requested), "held": str(held)},
        )


class PositionNotFoundError(LedgerError):
    code = "position_not_found"

    def __init__(self, symbol: str):
        super().__init__(f"No position found for {symbol}", details={"symbol": symbol})


class OrderNotPendingError(LedgerError):
    code = "order_not_pending"

    def __init__(self, trade_id: str, status: str):
        super().__init__(
            f"Order {trade_id} is not pending (status: {status})",
            details={"trade_id": trade_id, "status": status},
        )


class WalletNotFoundError(LedgerError):
    code = "wallet_not_found"

    def __init__(self, identifier: str):
        super().__init__(
            f"Wallet not found for '{identifier}'", details={"identifier": identifier}
        )


class WalletInactiveError(LedgerError):
    code = "wallet_inactive"

    def __init__(self, wallet_id: str, status: str):
        super().__init__(
            f"Wallet {wallet_id} is {status}",
            details={"wallet_id": wallet_id, "status": status},
        )


class QuoteUnavailableError(LedgerError):
    code = "price_unavailable"

    def __init__(self, symbol: str):
        super().__init__(
            f"Price unavailable for {symbol}", details={"symbol": symbol}
        )


class InvalidTransitionError(LedgerError):
    code = "invalid_transition"

    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            f"Cannot move {entity} from '{current}' to '{target}'",
            details={"entity": entity, "current": current, "target": target},
        )


class InvalidAmountError(LedgerError):
    code = "invalid_amount"


class TradeNotFoundError(LedgerError):
    code = "trade_not_found"

    def __init__(self, trade_id: str):
        super().__init__(f"Trade {trade_id} not found", details={"trade_id": trade_id})


class FundingRequestNotFoundError(LedgerError):
    code = "funding_request_not_found"

    def __init__(self, request_id: str):
        super().__init__(
            f"Funding request {request_id} not found",
            details={"request_id": request_id},
        )


class UserNotFoundError(LedgerError):
    code = "user_not_found"

    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} not found", details={"user_id": user_id})


class PermissionDeniedError(LedgerError):
    code = "permission_denied"


class InvalidTransactionTypeError(LedgerError):
    code = "invalid_transaction_type"

    def __init__(self, tx_type: str):
        super().__init__(
            f"Unknown transaction type '{tx_type}'", details={"type": tx_type}
        )


class InvalidOrderError(LedgerError):
    code = "invalid_order"


class DuplicateUserError(LedgerError):
    code = "duplicate_user"

    def __init__(self, email: str):
        super().__init__(f"User {email} already exists", details={"email": email})
