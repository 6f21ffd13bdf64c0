"""Repository for portfolio holding operations."""

import datetime
from decimal import Decimal
from typing import List, Optional

from ..models import PortfolioHolding
from .base import BaseRepository


class PortfolioRepository(BaseRepository):
    """Repository for portfolio holding operations."""

    def get_holding(
        self, user_id: str, symbol: str, for_update: bool = False
    ) -> Optional[PortfolioHolding]:
        """Get the holding for a (user, symbol) pair."""
        query = self.session.query(PortfolioHolding).filter(
            PortfolioHolding.user_id == user_id,
            PortfolioHolding.symbol == symbol.upper(),
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def list_holdings(self, user_id: str) -> List[PortfolioHolding]:
        """Get every holding for a user ordered by symbol."""
        return (
            self.session.query(PortfolioHolding)
            .filter(PortfolioHolding.user_id == user_id)
            .order_by(PortfolioHolding.symbol)
            .all()
        )

    def create_holding(
        self,
        user_id: str,
        symbol: str,
        name: str,
        shares: Decimal,
        price: Decimal,
        sector: Optional[str],
    ) -> PortfolioHolding:
        holding = PortfolioHolding(
            user_id=user_id,
            symbol=symbol.upper(),
            name=name,
            shares=shares,
            average_price=price,
            current_price=price,
            sector=sector,
        )
        self.session.add(holding)
        self.session.flush()
        return holding

    def update_position(
        self,
        holding: PortfolioHolding,
        shares: Decimal,
        average_price: Optional[Decimal] = None,
        current_price: Optional[Decimal] = None,
    ) -> None:
        """Write new share count and, optionally, cost basis and last price."""
        holding.shares = shares
        if average_price is not None:
            holding.average_price = average_price
        if current_price is not None:
            holding.current_price = current_price
        holding.updated_at = datetime.datetime.now(datetime.UTC)
        self.session.flush()

    def update_current_price(self, holding: PortfolioHolding, price: Decimal) -> None:
        holding.current_price = price
        holding.updated_at = datetime.datetime.now(datetime.UTC)
        self.session.flush()

    def delete_holding(self, holding: PortfolioHolding) -> None:
        self.session.delete(holding)
        self.session.flush()
