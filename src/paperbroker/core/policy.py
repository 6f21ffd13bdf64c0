"""Role based access checks for ledger operations."""

from typing import Optional

from sqlalchemy.orm import Session

from ..ormdb.models import Role, UserAccount
from ..ormdb.repositories import UserAccountRepository
from .errors import PermissionDeniedError, UserNotFoundError


def has_role(account: Optional[UserAccount], role: Role) -> bool:
    """Check whether an account holds a role. Admins hold every role."""
    if account is None:
        return False
    if account.role == Role.ADMIN.value:
        return True
    return account.role == role.value


def require_admin(account: Optional[UserAccount]) -> UserAccount:
    """
    Ensure the acting account is an administrator.

    Raises:
        UserNotFoundError: If there is no acting account
        PermissionDeniedError: If the account is not an admin
    """
    if account is None:
        raise UserNotFoundError("unknown")
    if not has_role(account, Role.ADMIN):
        raise PermissionDeniedError(
            "Administrator role required", details={"user_id": account.id}
        )
    return account


def require_self_or_admin(account: Optional[UserAccount], user_id: str) -> UserAccount:
    """Ensure the acting account is the target user or an administrator."""
    if account is None:
        raise UserNotFoundError(user_id)
    if account.id != user_id and not has_role(account, Role.ADMIN):
        raise PermissionDeniedError(
            "Cannot act on another user's account",
            details={"user_id": account.id, "target_user_id": user_id},
        )
    return account


def authorize_admin(session: Session, admin_id: str) -> UserAccount:
    """Load the acting account in ``session`` and require the admin role."""
    account = UserAccountRepository(session).get(admin_id)
    if account is None:
        raise UserNotFoundError(admin_id)
    return require_admin(account)
