"""Request models for the brokerage API."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...ormdb.models import (
    OrderType,
    Role,
    TradeSide,
    TransactionType,
    WalletStatus,
)


def _clean_symbol(value: str) -> str:
    symbol = value.strip().upper()
    if not symbol.replace(".", "").replace("-", "").isalnum():
        raise ValueError("Symbol must contain only letters, digits, '.' or '-'")
    return symbol


class TradeCreateRequest(BaseModel):
    """Request model for placing an order."""

    symbol: str = Field(..., description="Ticker symbol", min_length=1, max_length=10)
    name: Optional[str] = Field(None, description="Company name", max_length=200)
    type: TradeSide = Field(..., description="buy or sell")
    order_type: OrderType = Field(OrderType.MARKET, description="market, limit or stop")
    quantity: Decimal = Field(..., gt=0, description="Number of shares")
    price: Optional[Decimal] = Field(
        None, gt=0, description="Limit or stop price; ignored for market orders"
    )
    sector: Optional[str] = Field(None, max_length=100)

    @field_validator("symbol")
    @classmethod
    def validate_symbol(cls, v):
        return _clean_symbol(v)


class AdminOrderRequest(TradeCreateRequest):
    """Request model for an order an admin places on a user's behalf."""

    user_id: str = Field(..., description="Account the order belongs to")


class FundingRequestCreate(BaseModel):
    """Request model for asking an admin to add funds."""

    requested_amount: Decimal = Field(..., gt=0, description="Amount to deposit")
    message: Optional[str] = Field(None, max_length=1000)


class FundingDecisionRequest(BaseModel):
    """Request model for approving or rejecting a funding request."""

    admin_notes: Optional[str] = Field(None, max_length=1000)


class FundingCompleteRequest(BaseModel):
    """Request model for recording the deposit that completes a request."""

    deposit_amount: Decimal = Field(..., gt=0, description="Amount actually received")
    admin_notes: Optional[str] = Field(None, max_length=1000)


class UserCreateRequest(BaseModel):
    """Request model for creating an account."""

    email: str = Field(..., min_length=3, max_length=320)
    role: Role = Field(Role.USER)
    initial_balance: Decimal = Field(Decimal("0"), ge=0)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        if "@" not in v:
            raise ValueError("Email must contain '@'")
        return v.strip().lower()


class WalletAdjustmentRequest(BaseModel):
    """Request model for a manual wallet change."""

    amount: Decimal = Field(..., description="Signed amount; negative debits")
    type: TransactionType = Field(TransactionType.ADJUSTMENT)
    description: str = Field("", max_length=500)
    allow_overdraft: bool = Field(
        False, description="Let a negative adjustment take the balance below zero"
    )

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v):
        if v == 0:
            raise ValueError("Amount must be non-zero")
        return v


class WalletStatusRequest(BaseModel):
    """Request model for suspending, freezing or reactivating a wallet."""

    status: WalletStatus
