"""
Paper brokerage - main application entry point.

Serves the wallet ledger and trade settlement API, or runs one-off
administration commands.
"""

import asyncio
import sys

import uvicorn
from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

from paperbroker.config.logging import get_logger
from paperbroker.config.settings import get_required_env_vars, get_settings
from paperbroker.services.ledger import get_ledger_service
from paperbroker.utils.config import initialize_application, validate_environment


def create_admin(email: str) -> None:
    """Create the first administrator so the admin API can be used."""
    logger = get_logger(__name__)

    result = asyncio.run(get_ledger_service().admin.bootstrap_admin(email))
    if not result.success:
        logger.error("Failed to create administrator", error=result.error)
        print(f"Error: {result.error}")
        sys.exit(1)

    account = result.data["account"]
    logger.info("Administrator ready", user_id=account.id)
    print(f"Administrator {account.email} has id {account.id}")


def main() -> None:
    """Main application entry point."""
    # Initialize application (logging, config, database)
    initialize_application()

    logger = get_logger(__name__)
    logger.info("Starting paper brokerage")

    settings = get_settings()

    if "-init-db" in sys.argv:
        logger.info("Database initialised, exiting")
        print("Database tables created.")
        return

    if "-create-admin" in sys.argv:
        try:
            email = sys.argv[sys.argv.index("-create-admin") + 1]
        except IndexError:
            print("Error: Please provide an e-mail address after -create-admin.")
            sys.exit(1)
        create_admin(email)
        return

    if not validate_environment():
        logger.error("Environment validation failed")
        print(
            "Please set the required environment variables before running the application."
        )
        print(f"Required variables: {', '.join(get_required_env_vars())}")
        sys.exit(1)

    logger.info(
        "Starting API server",
        host=settings.endpoint_host,
        port=settings.endpoint_port,
        environment=settings.environment,
    )

    try:
        uvicorn.run(
            "paperbroker.webapi.app:app",
            host=settings.endpoint_host,
            port=settings.endpoint_port,
            reload=settings.api_reload,
            log_level=settings.api_log_level.lower(),
        )
    except KeyboardInterrupt:
        logger.info("Received interrupt signal")
        print("\nShutting down...")


if __name__ == "__main__":
    main()
