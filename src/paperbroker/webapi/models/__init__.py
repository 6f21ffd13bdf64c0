"""API Models package for request/response schemas."""

from .requests import (
    AdminOrderRequest,
    FundingCompleteRequest,
    FundingDecisionRequest,
    FundingRequestCreate,
    TradeCreateRequest,
    UserCreateRequest,
    WalletAdjustmentRequest,
    WalletStatusRequest,
)
from .responses import (
    BaseResponse,
    ErrorResponse,
    HealthResponse,
    HealthStatus,
    StatusResponse,
    SuccessResponse,
)

__all__ = [
    # Response models
    "BaseResponse",
    "SuccessResponse",
    "ErrorResponse",
    "HealthResponse",
    "HealthStatus",
    "StatusResponse",
    # Request models
    "TradeCreateRequest",
    "AdminOrderRequest",
    "FundingRequestCreate",
    "FundingDecisionRequest",
    "FundingCompleteRequest",
    "UserCreateRequest",
    "WalletAdjustmentRequest",
    "WalletStatusRequest",
]
