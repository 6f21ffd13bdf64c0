"""Repository for trade record operations."""

import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func

from ..models import Trade, TradeStatus
from .base import BaseRepository


class TradeRepository(BaseRepository):
    """Repository for trade record operations."""

    def create(
        self,
        user_id: str,
        symbol: str,
        name: str,
        side: str,
        order_type: str,
        quantity: Decimal,
        price: Decimal,
        total: Decimal,
        status: TradeStatus,
        created_by: Optional[str] = None,
    ) -> Trade:
        now = datetime.datetime.now(datetime.UTC)
        trade = Trade(
            user_id=user_id,
            symbol=symbol.upper(),
            name=name,
            type=side,
            order_type=order_type,
            quantity=quantity,
            price=price,
            total=total,
            status=status.value,
            created_by=created_by,
            created_at=now,
            updated_at=now,
            filled_at=now if status == TradeStatus.EXECUTED else None,
        )
        self.session.add(trade)
        self.session.flush()
        return trade

    def get(self, trade_id: str, for_update: bool = False) -> Optional[Trade]:
        query = self.session.query(Trade).filter(Trade.id == trade_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def set_status(self, trade: Trade, status: TradeStatus) -> None:
        """Move a trade to a new status."""
        now = datetime.datetime.now(datetime.UTC)
        trade.status = status.value
        trade.updated_at = now
        if status == TradeStatus.EXECUTED:
            trade.filled_at = now
        self.session.flush()

    def list_for_user(self, user_id: str, limit: Optional[int] = None) -> List[Trade]:
        """Get a user's trades, newest first."""
        query = (
            self.session.query(Trade)
            .filter(Trade.user_id == user_id)
            .order_by(Trade.created_at.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def list_by_status(self, status: TradeStatus) -> List[Trade]:
        return (
            self.session.query(Trade)
            .filter(Trade.status == status.value)
            .order_by(Trade.created_at.asc())
            .all()
        )

    def count_by_status(self, status: TradeStatus) -> int:
        return self.session.query(Trade).filter(Trade.status == status.value).count()

    def count_for_user(self, user_id: str) -> int:
        return self.session.query(Trade).filter(Trade.user_id == user_id).count()

    def last_executed_price(self, symbol: str) -> Optional[Decimal]:
        """Most recent execution price recorded for a symbol."""
        trade = (
            self.session.query(Trade)
            .filter(
                Trade.symbol == symbol.upper(),
                Trade.status == TradeStatus.EXECUTED.value,
            )
            .order_by(Trade.updated_at.desc())
            .first()
        )
        return trade.price if trade else None

    def executed_since(self, since: datetime.datetime) -> List[Trade]:
        """Executed trades created at or after ``since``."""
        return (
            self.session.query(Trade)
            .filter(
                Trade.created_at >= since,
                Trade.status == TradeStatus.EXECUTED.value,
            )
            .all()
        )

    def volume_since(self, since: datetime.datetime) -> Decimal:
        total = (
            self.session.query(func.sum(Trade.total))
            .filter(
                Trade.created_at >= since,
                Trade.status == TradeStatus.EXECUTED.value,
            )
            .scalar()
        )
        return Decimal(str(total)) if total is not None else Decimal("0")
