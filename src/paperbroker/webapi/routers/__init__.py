"""API routers for the paper brokerage."""

from .admin import router as admin_router
from .funding import router as funding_router
from .portfolio import router as portfolio_router
from .trades import router as trades_router
from .wallet import router as wallet_router

__all__ = [
    "admin_router",
    "funding_router",
    "portfolio_router",
    "trades_router",
    "wallet_router",
]
