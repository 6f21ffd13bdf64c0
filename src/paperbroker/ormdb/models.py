"""SQLAlchemy ORM models for the brokerage ledger."""

import datetime
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


# Money is held to the cent; shares and per-share prices carry more precision
Money = Numeric(18, 2)
Quantity = Numeric(18, 6)


class Role(str, Enum):
    """Account role used by the access policy."""

    USER = "user"
    ADMIN = "admin"


class WalletStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    FROZEN = "frozen"


class TransactionType(str, Enum):
    """Kinds of balance-changing events recorded in the ledger."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRADE_BUY = "trade_buy"
    TRADE_SELL = "trade_sell"
    FEE = "fee"
    ADJUSTMENT = "adjustment"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TradeSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP = "stop"


class TradeStatus(str, Enum):
    PENDING = "pending"
    EXECUTED = "executed"
    CANCELLED = "cancelled"


class FundingRequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class UserAccount(Base):
    """Brokerage account holder."""

    __tablename__ = "user_accounts"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String, unique=True, nullable=False, index=True)
    role = Column(String, default=Role.USER.value, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    wallet = relationship("Wallet", back_populates="user", uselist=False)

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    def __repr__(self):
        return f"<UserAccount(email='{self.email}', role='{self.role}')>"


class Wallet(Base):
    """A user's cash account. Mutated only through the wallet service."""

    __tablename__ = "wallets"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(
        String(36), ForeignKey("user_accounts.id"), unique=True, nullable=False
    )
    balance = Column(Money, nullable=False, default=0)
    # Mirrors balance until order holds exist
    available_balance = Column(Money, nullable=False, default=0)
    pending_balance = Column(Money, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String, nullable=False, default=WalletStatus.ACTIVE.value)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, nullable=False)

    user = relationship("UserAccount", back_populates="wallet")
    transactions = relationship(
        "WalletTransaction",
        back_populates="wallet",
        order_by="WalletTransaction.sequence",
    )

    def __repr__(self):
        return f"<Wallet(user_id='{self.user_id}', balance={self.balance})>"


class WalletTransaction(Base):
    """Append-only ledger entry. Never updated once written."""

    __tablename__ = "wallet_transactions"
    __table_args__ = (
        UniqueConstraint("wallet_id", "sequence", name="uq_wallet_tx_sequence"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    wallet_id = Column(
        String(36), ForeignKey("wallets.id"), nullable=False, index=True
    )
    sequence = Column(Integer, nullable=False)
    type = Column(String, nullable=False)
    amount = Column(Money, nullable=False)
    balance_before = Column(Money, nullable=False)
    balance_after = Column(Money, nullable=False)
    description = Column(Text, nullable=False, default="")
    reference_id = Column(String(36), nullable=True, index=True)
    status = Column(String, nullable=False, default=TransactionStatus.COMPLETED.value)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    created_by = Column(String, nullable=False, default="system")

    wallet = relationship("Wallet", back_populates="transactions")

    def __repr__(self):
        return (
            f"<WalletTransaction(wallet_id='{self.wallet_id}', seq={self.sequence}, "
            f"type='{self.type}', amount={self.amount})>"
        )


class PortfolioHolding(Base):
    """Open position in one symbol. Rows with zero shares are deleted."""

    __tablename__ = "portfolio_holdings"
    __table_args__ = (
        UniqueConstraint("user_id", "symbol", name="uq_holding_user_symbol"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(
        String(36), ForeignKey("user_accounts.id"), nullable=False, index=True
    )
    symbol = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False, default="")
    shares = Column(Quantity, nullable=False)
    average_price = Column(Quantity, nullable=False)
    current_price = Column(Quantity, nullable=True)
    sector = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, nullable=False)

    def __repr__(self):
        return (
            f"<PortfolioHolding(symbol='{self.symbol}', shares={self.shares}, "
            f"avg={self.average_price})>"
        )


class Trade(Base):
    """Buy or sell order. Only ``status`` changes after creation."""

    __tablename__ = "trades"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(
        String(36), ForeignKey("user_accounts.id"), nullable=False, index=True
    )
    symbol = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False, default="")
    type = Column(String, nullable=False)  # "buy" or "sell"
    order_type = Column(String, nullable=False)  # "market", "limit" or "stop"
    quantity = Column(Quantity, nullable=False)
    price = Column(Quantity, nullable=False)
    total = Column(Money, nullable=False)
    status = Column(String, nullable=False, index=True)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=_utcnow, nullable=False)
    filled_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return (
            f"<Trade(symbol='{self.symbol}', type='{self.type}', "
            f"qty={self.quantity}, status='{self.status}')>"
        )


class FundingRequest(Base):
    """Off-system deposit request fulfilled by an admin."""

    __tablename__ = "funding_requests"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(
        String(36), ForeignKey("user_accounts.id"), nullable=False, index=True
    )
    user_email = Column(String, nullable=False)
    requested_amount = Column(Money, nullable=False)
    status = Column(
        String, nullable=False, default=FundingRequestStatus.PENDING.value, index=True
    )
    message = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, nullable=False)

    def __repr__(self):
        return (
            f"<FundingRequest(user_id='{self.user_id}', "
            f"amount={self.requested_amount}, status='{self.status}')>"
        )
