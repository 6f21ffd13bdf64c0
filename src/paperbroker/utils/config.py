"""Configuration and environment utilities."""

from pathlib import Path

from ..config.logging import get_logger, setup_logging
from ..config.settings import get_settings, validate_required_settings


def ensure_data_directory() -> None:
    """Ensure the data directory exists and the ledger tables are created."""
    logger = get_logger(__name__)

    settings = get_settings()
    data_path = Path(settings.data_directory)
    data_path.mkdir(parents=True, exist_ok=True)

    logger.info("Ensured data directory exists", path=str(data_path))

    from ..ormdb.database import create_tables

    create_tables()
    logger.info("Ensured database tables exist")


def initialize_application() -> None:
    """Initialize logging and storage from the configured settings."""
    settings = get_settings()

    setup_logging(
        level=settings.log_level,
        format_type=settings.log_format,
        file_enabled=settings.log_file_enabled,
        file_path=settings.log_file_path,
        max_file_size=settings.log_max_file_size,
        backup_count=settings.log_backup_count,
    )

    ensure_data_directory()

    logger = get_logger(__name__)
    logger.info(
        "Application initialized successfully",
        environment=settings.environment,
        debug=settings.debug,
        data_dir=settings.data_directory,
        wallet_currency=settings.wallet_currency,
        allow_adjustment_overdraft=settings.allow_adjustment_overdraft,
    )


def validate_environment() -> bool:
    """
    Validate that all required environment variables are set.

    Returns:
        True if all required variables are set, False otherwise
    """
    return validate_required_settings()
