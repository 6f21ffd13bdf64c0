"""Holding aggregation, cost basis updates and portfolio valuation."""

from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ...config.logging import get_logger
from ...config.settings import Settings, get_settings
from ...core.errors import (
    InsufficientSharesError,
    InvalidAmountError,
    LedgerError,
    PositionNotFoundError,
)
from ...core.quotes import QuoteData, QuoteService, get_quote_service
from ...ormdb.database import session_scope
from ...ormdb.models import PortfolioHolding
from ...ormdb.repositories import PortfolioRepository
from .locks import UserLockRegistry
from .models import (
    CENT,
    HoldingView,
    OperationResult,
    PortfolioStats,
    SHARE_PRECISION,
    to_quantity,
)

logger = get_logger(__name__)

ZERO = Decimal("0")


def _pct(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return Decimal("0.00")
    return (part / whole * 100).quantize(CENT)


class PortfolioService:
    """Keeps holdings in step with executed trades and values them."""

    def __init__(
        self,
        quote_service: Optional[QuoteService] = None,
        settings: Optional[Settings] = None,
        locks: Optional[UserLockRegistry] = None,
    ):
        self.logger = logger.bind(component="portfolio_service")
        self.settings = settings or get_settings()
        self.quote_service = quote_service or get_quote_service()
        self.locks = locks if locks is not None else UserLockRegistry()

    async def get_holdings(self, user_id: str) -> List[HoldingView]:
        """
        Get a user's holdings valued at live prices.

        A holding whose quote cannot be fetched is valued at its stored
        price with zero change; one with no stored price either is reported
        as ``unavailable`` and contributes nothing to the total. Allocation
        percentages are computed once every holding has been valued.
        """
        with session_scope() as session:
            holdings = PortfolioRepository(session).list_holdings(user_id)

        quotes = await self._fetch_quotes([holding.symbol for holding in holdings])

        views = [self._value_holding(h, quotes.get(h.symbol)) for h in holdings]

        total_value = sum((view.value for view in views), ZERO)
        for view in views:
            view.allocation = _pct(view.value, total_value)

        return views

    async def get_portfolio_stats(self, user_id: str) -> PortfolioStats:
        """Aggregate value, cost basis, gain and day change for a user."""
        views = await self.get_holdings(user_id)

        total_value = sum((view.value for view in views), ZERO)
        total_cost = sum((view.cost_basis for view in views), ZERO)
        total_gain = total_value - total_cost
        day_change = sum((view.change * view.shares for view in views), ZERO).quantize(
            CENT
        )

        return PortfolioStats(
            total_value=total_value,
            total_cost=total_cost,
            total_gain=total_gain,
            total_gain_percent=_pct(total_gain, total_cost),
            day_change=day_change,
            day_change_percent=_pct(day_change, total_value),
            num_positions=len(views),
        )

    async def refresh_prices(self, user_id: str) -> OperationResult:
        """Store the latest quote for each holding as its cached price."""
        with session_scope() as session:
            symbols = [h.symbol for h in PortfolioRepository(session).list_holdings(user_id)]

        quotes = await self._fetch_quotes(symbols)

        async with self.locks.lock_for(user_id):
            with session_scope() as session:
                portfolio = PortfolioRepository(session)
                updated = 0
                for holding in portfolio.list_holdings(user_id):
                    quote = quotes.get(holding.symbol)
                    if quote is None:
                        continue
                    portfolio.update_current_price(holding, to_quantity(quote.price))
                    updated += 1

        self.logger.info(
            "Refreshed portfolio prices",
            user_id=user_id,
            updated=updated,
            total=len(symbols),
        )
        return OperationResult.ok(updated=updated, total=len(symbols))

    async def add_to_portfolio(
        self,
        user_id: str,
        symbol: str,
        name: str,
        shares,
        price,
        sector: Optional[str] = None,
    ) -> OperationResult:
        """Add shares bought at ``price`` to a holding in its own unit of work."""
        try:
            async with self.locks.lock_for(user_id):
                with session_scope() as session:
                    holding = self.apply_buy(session, user_id, symbol, name, shares, price, sector)
        except LedgerError as e:
            return OperationResult.from_error(e)
        except Exception as e:
            self.logger.error(
                "Failed to add to portfolio",
                user_id=user_id,
                symbol=symbol,
                error=str(e),
            )
            return OperationResult(success=False, error=str(e), error_code="internal_error")

        return OperationResult.ok(
            symbol=holding.symbol,
            shares=str(holding.shares),
            average_price=str(holding.average_price),
        )

    async def remove_from_portfolio(self, user_id: str, symbol: str, shares) -> OperationResult:
        """Remove sold shares from a holding in its own unit of work."""
        try:
            async with self.locks.lock_for(user_id):
                with session_scope() as session:
                    remaining = self.apply_sell(session, user_id, symbol, shares)
        except LedgerError as e:
            return OperationResult.from_error(e)
        except Exception as e:
            self.logger.error(
                "Failed to remove from portfolio",
                user_id=user_id,
                symbol=symbol,
                error=str(e),
            )
            return OperationResult(success=False, error=str(e), error_code="internal_error")

        return OperationResult.ok(symbol=symbol.upper(), remaining_shares=str(remaining))

    def apply_buy(
        self,
        session: Session,
        user_id: str,
        symbol: str,
        name: str,
        shares,
        price,
        sector: Optional[str] = None,
    ) -> PortfolioHolding:
        """
        Record a buy against the user's holding inside a unit of work.

        The cost basis becomes the shares-weighted average of the existing
        position and the new lot.
        """
        quantity = to_quantity(shares, "shares")
        unit_price = to_quantity(price, "price")
        if quantity <= 0:
            raise InvalidAmountError("Shares must be positive")
        if unit_price <= 0:
            raise InvalidAmountError("Price must be positive")

        portfolio = PortfolioRepository(session)
        holding = portfolio.get_holding(user_id, symbol, for_update=True)

        if holding is None:
            return portfolio.create_holding(
                user_id,
                symbol,
                name,
                quantity,
                unit_price,
                sector or self.settings.default_sector,
            )

        new_shares = holding.shares + quantity
        new_average = (
            (holding.shares * holding.average_price + quantity * unit_price) / new_shares
        ).quantize(SHARE_PRECISION)

        portfolio.update_position(
            holding, new_shares, average_price=new_average, current_price=unit_price
        )
        return holding

    def apply_sell(self, session: Session, user_id: str, symbol: str, shares) -> Decimal:
        """
        Remove sold shares inside a unit of work and return what is left.

        Cost basis is untouched by a sell. A holding sold down to zero is
        deleted.

        Raises:
            PositionNotFoundError: If the user holds no shares of ``symbol``
            InsufficientSharesError: If more shares are sold than are held
        """
        quantity = to_quantity(shares, "shares")
        if quantity <= 0:
            raise InvalidAmountError("Shares must be positive")

        portfolio = PortfolioRepository(session)
        holding = portfolio.get_holding(user_id, symbol, for_update=True)

        if holding is None:
            raise PositionNotFoundError(symbol.upper())
        if quantity > holding.shares:
            raise InsufficientSharesError(holding.symbol, quantity, holding.shares)

        if quantity == holding.shares:
            portfolio.delete_holding(holding)
            return ZERO

        remaining = holding.shares - quantity
        portfolio.update_position(holding, remaining)
        return remaining

    async def _fetch_quotes(self, symbols: List[str]) -> Dict[str, QuoteData]:
        quotes: Dict[str, QuoteData] = {}
        for symbol in symbols:
            try:
                quotes[symbol] = await self.quote_service.get_quote(symbol)
            except Exception as e:
                self.logger.warning(
                    "Falling back to stored price", symbol=symbol, error=str(e)
                )
        return quotes

    @staticmethod
    def _value_holding(
        holding: PortfolioHolding, quote: Optional[QuoteData]
    ) -> HoldingView:
        if quote is not None:
            price = to_quantity(quote.price)
            change = Decimal(str(quote.change)).quantize(CENT)
            change_percent = Decimal(str(quote.change_percent)).quantize(CENT)
            source = "synthetic" if quote.source == "synthetic" else "live"
        elif holding.current_price is not None:
            price = holding.current_price
            change = change_percent = Decimal("0.00")
            source = "cached"
        else:
            price = None
            change = change_percent = Decimal("0.00")
            source = "unavailable"

        cost_basis = (holding.shares * holding.average_price).quantize(CENT)
        value = (holding.shares * price).quantize(CENT) if price is not None else Decimal("0.00")
        gain = value - cost_basis if price is not None else Decimal("0.00")

        return HoldingView(
            id=holding.id,
            symbol=holding.symbol,
            name=holding.name,
            sector=holding.sector,
            shares=holding.shares,
            average_price=holding.average_price,
            price=price,
            change=change,
            change_percent=change_percent,
            value=value,
            cost_basis=cost_basis,
            unrealized_gain=gain,
            unrealized_gain_percent=_pct(gain, cost_basis) if price is not None else Decimal("0.00"),
            allocation=Decimal("0.00"),
            price_source=source,
        )
