"""Application start-up helpers."""

from .config import initialize_application, validate_environment

__all__ = ["initialize_application", "validate_environment"]
