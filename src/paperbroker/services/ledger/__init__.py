"""Wallet ledger and trade settlement module."""

from .admin_service import AdminService
from .funding_workflow import FundingWorkflow
from .locks import UserLockRegistry
from .models import (
    AdminStats,
    BalanceUpdateResult,
    FundingResult,
    HoldingView,
    OperationResult,
    PortfolioStats,
    ReconciliationReport,
    TradeOrder,
    TradeResult,
    UserStats,
)
from .portfolio_service import PortfolioService
from .service import LedgerService, get_ledger_service, set_ledger_service
from .trade_settlement import TradeSettlement
from .wallet_service import WalletService

__all__ = [
    "LedgerService",
    "get_ledger_service",
    "set_ledger_service",
    "WalletService",
    "PortfolioService",
    "TradeSettlement",
    "FundingWorkflow",
    "AdminService",
    "UserLockRegistry",
    "AdminStats",
    "BalanceUpdateResult",
    "FundingResult",
    "HoldingView",
    "OperationResult",
    "PortfolioStats",
    "ReconciliationReport",
    "TradeOrder",
    "TradeResult",
    "UserStats",
]
