"""Base repository class with common functionality."""

from typing import Optional

from sqlalchemy.orm import Session

from .. import database


class BaseRepository:
    """
    Base repository class providing common session management.

    Repositories only ``flush``; committing is left to whoever owns the
    session so that several repository calls can form one transaction.
    """

    def __init__(self, session: Optional[Session] = None):
        self.session = session or database.get_session_factory()()
        self._external_session = session is not None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if not self._external_session:
            if exc_type is None:
                self.session.commit()
            else:
                self.session.rollback()
            self.session.close()
