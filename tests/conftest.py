"""Shared test configuration and fixtures."""

import os
import tempfile
from decimal import Decimal
from typing import Dict, Optional
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from paperbroker.config.settings import Settings, get_settings
from paperbroker.core.quotes import QuoteData, QuoteProvider, QuoteService
from paperbroker.events import EventBus
from paperbroker.ormdb.database import session_scope
from paperbroker.ormdb.models import Role
from paperbroker.ormdb.repositories import UserAccountRepository
from paperbroker.services.ledger import LedgerService


class FixedQuoteProvider(QuoteProvider):
    """Quote provider backed by a dict the test can change."""

    name = "fixed"

    def __init__(self, prices: Dict[str, float]):
        self.prices = prices

    async def fetch_quote(self, symbol: str) -> Optional[QuoteData]:
        price = self.prices.get(symbol)
        if price is None:
            return None
        return QuoteData(symbol=symbol, price=price, change=1.0, change_percent=0.5, source=self.name)


@pytest.fixture
def isolated_db():
    """Create an isolated database for testing."""
    # Create a temporary database file
    temp_fd, temp_path = tempfile.mkstemp(suffix=".db")
    db_url = f"sqlite:///{temp_path}"

    try:
        engine = create_engine(db_url, connect_args={"check_same_thread": False})
        SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
        )

        from paperbroker.ormdb import models  # noqa: F401
        from paperbroker.ormdb.database import Base

        Base.metadata.create_all(bind=engine)

        yield {
            "engine": engine,
            "session_factory": SessionLocal,
            "db_url": db_url,
            "db_path": temp_path,
        }

        engine.dispose()

    finally:
        os.close(temp_fd)
        os.unlink(temp_path)


@pytest.fixture
def mock_db_session(isolated_db):
    """Point every session and engine lookup at the isolated test database."""
    with patch(
        "paperbroker.ormdb.database.get_session_factory",
        lambda: isolated_db["session_factory"],
    ):
        with patch("paperbroker.ormdb.database.get_engine", lambda: isolated_db["engine"]):
            yield isolated_db["session_factory"]


@pytest.fixture
def test_settings(tmp_path):
    """Settings isolated from the developer's environment."""
    return Settings(
        environment="testing",
        endpoint_auth_token="test_endpoint_token",
        data_directory=str(tmp_path),
        log_file_enabled=False,
        quote_providers="synthetic",
        quote_timeout_seconds=1.0,
        quote_cache_seconds=0,
    )


@pytest.fixture
def quote_prices():
    """Mutable symbol -> price map served by the test quote service."""
    return {"ABC": 20.0, "AAPL": 150.0, "MSFT": 300.0}


@pytest.fixture
def quote_service(quote_prices):
    return QuoteService(
        [FixedQuoteProvider(quote_prices)], timeout_seconds=1.0, cache_seconds=0
    )


@pytest.fixture
def event_bus():
    return EventBus("test")


@pytest.fixture
def ledger(mock_db_session, test_settings, quote_service, event_bus):
    """Ledger service wired to the isolated database and fake quotes."""
    return LedgerService(
        settings=test_settings, quote_service=quote_service, event_bus=event_bus
    )


@pytest.fixture
def make_user(mock_db_session):
    """Factory creating accounts without wallets."""

    def _make_user(email: str, role: Role = Role.USER) -> str:
        with session_scope() as session:
            return UserAccountRepository(session).create(email, role).id

    return _make_user


@pytest.fixture
def user_id(make_user):
    return make_user("trader@example.com")


@pytest.fixture
def admin_id(make_user):
    return make_user("ops@example.com", Role.ADMIN)


@pytest.fixture
def funded_user(ledger, user_id):
    """A user whose wallet opens at 1000.00."""

    async def _fund(amount: Decimal = Decimal("1000.00")) -> str:
        await ledger.wallets.create_wallet(user_id, amount)
        return user_id

    return _fund


@pytest.fixture(autouse=True)
def clean_lru_cache():
    """Clear cached settings between tests to avoid state pollution."""
    yield
    get_settings.cache_clear()
