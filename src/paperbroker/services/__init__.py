"""Service layer for business logic encapsulation."""

from .ledger import LedgerService, get_ledger_service

__all__ = [
    "LedgerService",
    "get_ledger_service",
]
