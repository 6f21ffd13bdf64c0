"""Core building blocks: error taxonomy, quote providers and access policy."""

from .errors import LedgerError, QuoteUnavailableError
from .policy import authorize_admin, has_role, require_admin, require_self_or_admin
from .quotes import QuoteData, QuoteProvider, QuoteService, get_quote_service

__all__ = [
    "LedgerError",
    "QuoteUnavailableError",
    "QuoteData",
    "QuoteProvider",
    "QuoteService",
    "get_quote_service",
    "authorize_admin",
    "has_role",
    "require_admin",
    "require_self_or_admin",
]
