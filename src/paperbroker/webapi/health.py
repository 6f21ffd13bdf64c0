"""Health check endpoints for the brokerage API."""

import time
from typing import Any, Dict

from fastapi import APIRouter

from .. import __version__
from ..config.logging import get_logger
from ..config.settings import get_settings
from ..core.quotes import get_quote_service
from ..ormdb.database import check_database_health
from .models.responses import HealthResponse, HealthStatus

logger = get_logger(__name__)
router = APIRouter()

# Track application start time for uptime calculation
_app_start_time = time.time()


def check_configuration_health() -> Dict[str, Any]:
    """Check application configuration health."""
    try:
        settings = get_settings()

        checks = {
            "auth_token_configured": bool(settings.endpoint_auth_token),
            "database_url_configured": bool(settings.get_database_url()),
        }
        optional_checks = {
            "finnhub_configured": bool(settings.finnhub_api_key),
            "alpha_vantage_configured": bool(settings.alpha_vantage_api_key),
        }

        return {
            "status": "healthy" if all(checks.values()) else "degraded",
            "checks": {**checks, **optional_checks},
            "required_checks_passed": all(checks.values()),
        }

    except Exception as e:
        logger.error("Configuration health check failed", error=str(e), exc_info=True)
        return {"status": "unhealthy", "error": str(e)}


def check_quote_providers() -> Dict[str, Any]:
    """Report the configured quote provider chain without calling it."""
    providers = [provider.name for provider in get_quote_service().providers]
    return {
        "status": "healthy" if providers else "degraded",
        "providers": providers,
    }


@router.get("/health", response_model=HealthResponse, summary="Health Check")
async def health_check():
    """
    Report database, configuration and quote provider status.

    Always answers 200; the overall status is ``healthy``, ``degraded`` or
    ``unhealthy``.
    """
    try:
        services = {
            "database": check_database_health(),
            "configuration": check_configuration_health(),
            "quotes": check_quote_providers(),
        }

        statuses = [service.get("status", "unknown") for service in services.values()]
        if "unhealthy" in statuses:
            overall_status = "unhealthy"
        elif "degraded" in statuses:
            overall_status = "degraded"
        else:
            overall_status = "healthy"

        health_status = HealthStatus(
            status=overall_status,
            services=services,
            uptime_seconds=time.time() - _app_start_time,
            version=__version__,
        )

        logger.debug("Health check completed", status=overall_status)
        return HealthResponse(success=True, health=health_status)

    except Exception as e:
        logger.error("Health check failed", error=str(e), exc_info=True)

        health_status = HealthStatus(
            status="unhealthy",
            services={"error": {"status": "unhealthy", "error": str(e)}},
            uptime_seconds=time.time() - _app_start_time,
        )

        return HealthResponse(success=True, health=health_status)
