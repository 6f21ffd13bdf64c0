"""Repository for user account operations."""

from typing import List, Optional

from ..models import Role, UserAccount
from .base import BaseRepository


class UserAccountRepository(BaseRepository):
    """Repository for user account operations."""

    def create(self, email: str, role: Role = Role.USER) -> UserAccount:
        """Create a new account."""
        account = UserAccount(email=email.strip().lower(), role=role.value)
        self.session.add(account)
        self.session.flush()
        return account

    def get(self, user_id: str) -> Optional[UserAccount]:
        """Get an account by id."""
        return self.session.get(UserAccount, user_id)

    def get_by_email(self, email: str) -> Optional[UserAccount]:
        """Get an account by e-mail address."""
        return (
            self.session.query(UserAccount)
            .filter(UserAccount.email == email.strip().lower())
            .first()
        )

    def list(self, limit: int = 50, offset: int = 0) -> List[UserAccount]:
        """List accounts, newest first."""
        return (
            self.session.query(UserAccount)
            .order_by(UserAccount.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def count(self) -> int:
        return self.session.query(UserAccount).count()
