"""Paper brokerage wallet ledger and trade settlement service."""

__version__ = "0.1.0"
