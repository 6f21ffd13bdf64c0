"""Request dependencies: API token, acting account and services."""

from fastapi import Depends, Header, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config.logging import get_logger
from ..config.settings import get_settings
from ..core.policy import has_role
from ..ormdb.database import session_scope
from ..ormdb.models import Role, UserAccount
from ..ormdb.repositories import UserAccountRepository
from ..services.ledger import LedgerService, get_ledger_service

logger = get_logger(__name__)

# Security scheme for Bearer token authentication
security = HTTPBearer()


def verify_auth_token(
    credentials: HTTPAuthorizationCredentials = Security(security),
) -> str:
    """
    Verify the authentication token.

    Args:
        credentials: The HTTP authorization credentials

    Returns:
        The token if valid

    Raises:
        HTTPException: If token is invalid
    """
    expected_token = get_settings().endpoint_auth_token
    if not expected_token:
        logger.error("Endpoint auth token not configured")
        raise HTTPException(detail="ENDPOINT_AUTH_TOKEN not configured", status_code=500)

    if credentials.credentials != expected_token:
        logger.warning(
            "Invalid authentication attempt",
            provided_token_length=len(credentials.credentials),
        )
        raise HTTPException(status_code=401, detail="Invalid authentication token")

    return credentials.credentials


def get_current_account(
    x_user_id: str = Header(..., description="Acting account id"),
    token: str = Depends(verify_auth_token),
) -> UserAccount:
    """Load the account named by the ``X-User-Id`` header."""
    with session_scope() as session:
        account = UserAccountRepository(session).get(x_user_id)

    if account is None:
        logger.warning("Request for unknown account", user_id=x_user_id)
        raise HTTPException(status_code=401, detail="Unknown user")
    return account


def get_admin_account(account: UserAccount = Depends(get_current_account)) -> UserAccount:
    """Require the acting account to be an administrator."""
    if not has_role(account, Role.ADMIN):
        logger.warning("Admin route denied", user_id=account.id)
        raise HTTPException(status_code=403, detail="Administrator role required")
    return account


def get_ledger() -> LedgerService:
    """Dependency to get the ledger service instance."""
    return get_ledger_service()
