"""Database module for SQLAlchemy ORM integration."""

from .database import (
    Base,
    check_database_health,
    create_tables,
    get_engine,
    get_session_factory,
    session_scope,
)
from .models import (
    FundingRequest,
    FundingRequestStatus,
    OrderType,
    PortfolioHolding,
    Role,
    Trade,
    TradeSide,
    TradeStatus,
    TransactionStatus,
    TransactionType,
    UserAccount,
    Wallet,
    WalletStatus,
    WalletTransaction,
)
from .repositories import (
    BaseRepository,
    FundingRequestRepository,
    PortfolioRepository,
    TradeRepository,
    UserAccountRepository,
    WalletRepository,
)

__all__ = [
    # Database components
    "Base",
    "check_database_health",
    "create_tables",
    "get_engine",
    "get_session_factory",
    "session_scope",
    # Models
    "FundingRequest",
    "FundingRequestStatus",
    "OrderType",
    "PortfolioHolding",
    "Role",
    "Trade",
    "TradeSide",
    "TradeStatus",
    "TransactionStatus",
    "TransactionType",
    "UserAccount",
    "Wallet",
    "WalletStatus",
    "WalletTransaction",
    # Repositories
    "BaseRepository",
    "FundingRequestRepository",
    "PortfolioRepository",
    "TradeRepository",
    "UserAccountRepository",
    "WalletRepository",
]
