"""Application settings and configuration management using Pydantic."""

from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

KNOWN_QUOTE_PROVIDERS = ("finnhub", "alpha_vantage", "yfinance", "synthetic")


class Settings(BaseSettings):
    """Main application settings combining all configuration sections."""

    # Environment and deployment
    environment: str = "development"
    debug: bool = False

    # API settings
    endpoint_host: str = "0.0.0.0"
    endpoint_port: int = 8000
    endpoint_auth_token: Optional[str] = None
    api_reload: bool = False
    api_log_level: str = "INFO"

    # Database settings
    database_url: Optional[str] = None
    data_directory: str = "data"
    database_echo_sql: bool = False
    database_pool_pre_ping: bool = True
    database_pool_recycle: int = 3600

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "structured"  # 'structured' or 'plain'
    log_file_enabled: bool = True
    log_file_path: str = "data/paperbroker.log"
    log_max_file_size: str = "10MB"
    log_backup_count: int = 5

    # Ledger settings
    wallet_currency: str = "USD"
    allow_adjustment_overdraft: bool = False
    trade_fee: Decimal = Decimal("0.00")
    default_sector: str = "Technology"
    transaction_history_limit: int = 50

    # Market data settings
    quote_providers: str = "finnhub,alpha_vantage,yfinance,synthetic"
    finnhub_api_key: Optional[str] = None
    alpha_vantage_api_key: Optional[str] = None
    quote_timeout_seconds: float = 10.0
    quote_cache_seconds: int = 60
    quote_rate_limit_cooldown_seconds: int = 60

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment setting."""
        valid_environments = ["development", "testing", "production"]
        if v.lower() not in valid_environments:
            raise ValueError(f"Environment must be one of: {valid_environments}")
        return v.lower()

    @field_validator("endpoint_port")
    @classmethod
    def validate_port(cls, v):
        """Validate port number is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @field_validator("log_level", "api_log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log format."""
        valid_formats = ["structured", "plain"]
        if v.lower() not in valid_formats:
            raise ValueError(f"Log format must be one of: {valid_formats}")
        return v.lower()

    @field_validator("wallet_currency")
    @classmethod
    def validate_currency(cls, v):
        """Only USD settlement is supported."""
        if v.upper() != "USD":
            raise ValueError("Only USD wallets are supported")
        return v.upper()

    @field_validator("trade_fee")
    @classmethod
    def validate_trade_fee(cls, v):
        """Validate the flat trade fee."""
        if v < 0:
            raise ValueError("Trade fee cannot be negative")
        return v

    @field_validator("transaction_history_limit")
    @classmethod
    def validate_history_limit(cls, v):
        """Validate default transaction page size."""
        if v < 1 or v > 1000:
            raise ValueError("Transaction history limit must be between 1 and 1000")
        return v

    @field_validator("quote_providers")
    @classmethod
    def validate_quote_providers(cls, v):
        """Validate the ordered quote provider chain."""
        names = [name.strip().lower() for name in v.split(",") if name.strip()]
        if not names:
            raise ValueError("At least one quote provider must be configured")
        unknown = [name for name in names if name not in KNOWN_QUOTE_PROVIDERS]
        if unknown:
            raise ValueError(
                f"Unknown quote providers {unknown}; "
                f"must be among: {list(KNOWN_QUOTE_PROVIDERS)}"
            )
        return ",".join(names)

    @field_validator("quote_timeout_seconds")
    @classmethod
    def validate_quote_timeout(cls, v):
        """Quote lookups must always be bounded."""
        if v <= 0 or v > 60:
            raise ValueError("Quote timeout must be between 0 and 60 seconds")
        return v

    def get_database_url(self) -> str:
        """Get the complete database URL."""
        if self.database_url:
            return self.database_url

        # Default to SQLite in data directory
        from pathlib import Path

        db_dir = Path(self.data_directory)
        db_dir.mkdir(exist_ok=True)
        db_path = db_dir / "paperbroker.db"
        return f"sqlite:///{db_path}"

    def get_quote_provider_names(self) -> List[str]:
        """Get the configured quote providers in fallback order."""
        return self.quote_providers.split(",")

    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == "testing"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application configuration instance
    """
    return Settings()


def get_required_env_vars() -> list[str]:
    """
    Get list of required environment variables.

    Returns:
        list: List of required environment variable names
    """
    return ["ENDPOINT_AUTH_TOKEN"]


def validate_required_settings() -> bool:
    """
    Validate that all required settings are properly configured.

    Returns:
        bool: True if all required settings are valid, False otherwise
    """
    try:
        settings = get_settings()
    except ValueError as e:
        print(f"Configuration validation failed: {e}")
        return False

    if not settings.endpoint_auth_token:
        print("Configuration validation failed: ENDPOINT_AUTH_TOKEN is not set")
        return False

    return True
