"""Tests for role checks and the ledger error taxonomy."""

import pytest

from paperbroker.core.errors import (
    InsufficientFundsError,
    PermissionDeniedError,
    UserNotFoundError,
)
from paperbroker.core.policy import (
    authorize_admin,
    has_role,
    require_admin,
    require_self_or_admin,
)
from paperbroker.ormdb.database import session_scope
from paperbroker.ormdb.models import Role, UserAccount


def _account(user_id: str, role: Role) -> UserAccount:
    return UserAccount(id=user_id, email=f"{user_id}@example.com", role=role.value)


class TestRoleChecks:
    """Test the pure role predicates."""

    def test_has_role(self):
        user = _account("u1", Role.USER)
        admin = _account("a1", Role.ADMIN)

        assert has_role(user, Role.USER)
        assert not has_role(user, Role.ADMIN)
        assert has_role(admin, Role.ADMIN)
        assert has_role(admin, Role.USER)
        assert not has_role(None, Role.USER)

    def test_require_admin(self):
        admin = _account("a1", Role.ADMIN)
        assert require_admin(admin) is admin

        with pytest.raises(PermissionDeniedError):
            require_admin(_account("u1", Role.USER))

        with pytest.raises(UserNotFoundError):
            require_admin(None)

    def test_require_self_or_admin(self):
        user = _account("u1", Role.USER)

        assert require_self_or_admin(user, "u1") is user
        assert require_self_or_admin(_account("a1", Role.ADMIN), "u1").id == "a1"

        with pytest.raises(PermissionDeniedError) as exc_info:
            require_self_or_admin(user, "u2")
        assert exc_info.value.details["target_user_id"] == "u2"


class TestAuthorizeAdmin:
    """Test loading and checking the acting admin from the database."""

    def test_admin_passes(self, admin_id):
        with session_scope() as session:
            account = authorize_admin(session, admin_id)
            assert account.id == admin_id

    def test_regular_user_denied(self, user_id):
        with pytest.raises(PermissionDeniedError):
            with session_scope() as session:
                authorize_admin(session, user_id)

    def test_unknown_account(self, mock_db_session):
        with pytest.raises(UserNotFoundError):
            with session_scope() as session:
                authorize_admin(session, "missing")


class TestErrors:
    """Test error codes and details."""

    def test_insufficient_funds_details(self):
        error = InsufficientFundsError(required="1500.00", available="1000.00")

        assert error.code == "insufficient_funds"
        assert error.details == {"required": "1500.00", "available": "1000.00"}
        assert "1500.00" in error.message
