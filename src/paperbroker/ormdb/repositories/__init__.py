"""Repository classes for database operations using SQLAlchemy ORM."""

from .base import BaseRepository
from .funding_request import FundingRequestRepository
from .portfolio import PortfolioRepository
from .trade import TradeRepository
from .user_account import UserAccountRepository
from .wallet import WalletRepository

__all__ = [
    "BaseRepository",
    "FundingRequestRepository",
    "PortfolioRepository",
    "TradeRepository",
    "UserAccountRepository",
    "WalletRepository",
]
