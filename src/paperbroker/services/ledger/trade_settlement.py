"""Trade placement, settlement, fills and cancellation."""

from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ...config.logging import get_logger
from ...config.settings import Settings, get_settings
from ...core.errors import (
    InsufficientFundsError,
    InsufficientSharesError,
    InvalidOrderError,
    LedgerError,
    OrderNotPendingError,
    PermissionDeniedError,
    PositionNotFoundError,
    QuoteUnavailableError,
    TradeNotFoundError,
)
from ...core.policy import authorize_admin
from ...core.quotes import QuoteService, get_quote_service
from ...events import EventBus, TradeCancelledEvent, TradeExecutedEvent, get_event_bus
from ...ormdb.database import session_scope
from ...ormdb.models import (
    OrderType,
    Trade,
    TradeSide,
    TradeStatus,
    TransactionType,
    WalletTransaction,
)
from ...ormdb.repositories import (
    PortfolioRepository,
    TradeRepository,
    WalletRepository,
)
from .locks import UserLockRegistry
from .models import TradeOrder, TradeResult, to_money, to_quantity
from .portfolio_service import PortfolioService
from .wallet_service import WalletService

logger = get_logger(__name__)


class TradeSettlement:
    """
    Turns orders into trades and settles them.

    Settlement of one trade (trade record, cash movement, position
    movement and optional fee) is a single unit of work: either all of it
    commits or none of it does.
    """

    def __init__(
        self,
        wallet_service: WalletService,
        portfolio_service: PortfolioService,
        quote_service: Optional[QuoteService] = None,
        settings: Optional[Settings] = None,
        locks: Optional[UserLockRegistry] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.logger = logger.bind(component="trade_settlement")
        self.wallet_service = wallet_service
        self.portfolio_service = portfolio_service
        self.quote_service = quote_service or get_quote_service()
        self.settings = settings or get_settings()
        self.locks = locks if locks is not None else wallet_service.locks
        self.event_bus = event_bus if event_bus is not None else get_event_bus()

    async def execute_trade(
        self,
        user_id: str,
        order: TradeOrder,
        created_by: Optional[str] = None,
        defer_execution: bool = False,
    ) -> TradeResult:
        """
        Place an order for a user.

        Market orders execute immediately. Limit and stop orders, and any
        order placed with ``defer_execution``, are recorded as pending and
        wait for an admin fill. No trade is recorded when the order fails
        its funds or shares check.

        Args:
            user_id: Account the trade belongs to
            order: Order details
            created_by: Acting account, defaults to ``user_id``
            defer_execution: Record a market order as pending

        Returns:
            TradeResult with the persisted trade, or the failure reason.
            A buy rejected for lack of cash sets ``requires_funding``.
        """
        try:
            side, order_type, quantity = self._validate_order(order)
            price = await self._resolve_price(user_id, order, order_type)
        except LedgerError as e:
            self.logger.info(
                "Order rejected", user_id=user_id, symbol=order.symbol, reason=e.code
            )
            return TradeResult.from_error(e)

        total = to_money(quantity * price, "total")
        executes_now = order_type == OrderType.MARKET and not defer_execution
        status = TradeStatus.EXECUTED if executes_now else TradeStatus.PENDING

        try:
            async with self.locks.lock_for(user_id):
                with session_scope() as session:
                    self._check_feasible(session, user_id, side, order.symbol, quantity, total)

                    trade = TradeRepository(session).create(
                        user_id=user_id,
                        symbol=order.symbol,
                        name=order.name or order.symbol.upper(),
                        side=side.value,
                        order_type=order_type.value,
                        quantity=quantity,
                        price=price,
                        total=total,
                        status=status,
                        created_by=created_by or user_id,
                    )

                    transactions: List[WalletTransaction] = []
                    if executes_now:
                        transactions = self._settle(
                            session, trade, created_by or user_id, order.sector
                        )
        except LedgerError as e:
            self.logger.info(
                "Order rejected",
                user_id=user_id,
                symbol=order.symbol,
                side=side.value,
                reason=e.code,
            )
            return TradeResult.from_error(e)
        except Exception as e:
            self.logger.error(
                "Failed to execute trade",
                user_id=user_id,
                symbol=order.symbol,
                error=str(e),
                exc_info=True,
            )
            return TradeResult(success=False, error=str(e), error_code="internal_error")

        self.logger.info(
            "Placed order",
            trade_id=trade.id,
            user_id=user_id,
            symbol=trade.symbol,
            side=trade.type,
            order_type=trade.order_type,
            quantity=str(quantity),
            price=str(price),
            status=trade.status,
        )

        if executes_now:
            await self.wallet_service.publish_committed(user_id, transactions)
            await self._publish_executed(trade, created_by or user_id)

        return TradeResult(success=True, trade=trade)

    async def fill_order(self, trade_id: str, admin_id: str) -> TradeResult:
        """
        Execute a pending order at its recorded price (admin only).

        Funds or shares are checked again at fill time. A fill that fails
        leaves the order pending.
        """
        try:
            with session_scope() as session:
                existing = TradeRepository(session).get(trade_id)
                if existing is None:
                    raise TradeNotFoundError(trade_id)
                user_id = existing.user_id

            async with self.locks.lock_for(user_id):
                with session_scope() as session:
                    authorize_admin(session, admin_id)

                    trades = TradeRepository(session)
                    trade = trades.get(trade_id, for_update=True)
                    if trade is None:
                        raise TradeNotFoundError(trade_id)
                    if trade.status != TradeStatus.PENDING.value:
                        raise OrderNotPendingError(trade_id, trade.status)

                    transactions = self._settle(session, trade, admin_id)
                    trades.set_status(trade, TradeStatus.EXECUTED)
        except LedgerError as e:
            self.logger.info("Fill rejected", trade_id=trade_id, reason=e.code)
            return TradeResult.from_error(e)
        except Exception as e:
            self.logger.error(
                "Failed to fill order", trade_id=trade_id, error=str(e), exc_info=True
            )
            return TradeResult(success=False, error=str(e), error_code="internal_error")

        self.logger.info("Filled order", trade_id=trade_id, admin_id=admin_id)

        await self.wallet_service.publish_committed(user_id, transactions)
        await self._publish_executed(trade, admin_id)

        return TradeResult(success=True, trade=trade)

    async def cancel_trade(self, user_id: str, trade_id: str) -> TradeResult:
        """Cancel one of the user's own pending orders. No money moves."""
        try:
            async with self.locks.lock_for(user_id):
                with session_scope() as session:
                    trades = TradeRepository(session)
                    trade = trades.get(trade_id, for_update=True)
                    if trade is None:
                        raise TradeNotFoundError(trade_id)
                    if trade.user_id != user_id:
                        raise PermissionDeniedError(
                            "Cannot cancel another user's order",
                            details={"trade_id": trade_id},
                        )
                    if trade.status != TradeStatus.PENDING.value:
                        raise OrderNotPendingError(trade_id, trade.status)

                    trades.set_status(trade, TradeStatus.CANCELLED)
        except LedgerError as e:
            return TradeResult.from_error(e)
        except Exception as e:
            self.logger.error(
                "Failed to cancel trade", trade_id=trade_id, error=str(e), exc_info=True
            )
            return TradeResult(success=False, error=str(e), error_code="internal_error")

        self.logger.info("Cancelled order", trade_id=trade_id, user_id=user_id)
        await self.event_bus.publish(
            TradeCancelledEvent(trade_id=trade.id, user_id=user_id, symbol=trade.symbol)
        )
        return TradeResult(success=True, trade=trade)

    async def list_trades(self, user_id: str, limit: Optional[int] = None) -> List[Trade]:
        """Get a user's trades, newest first."""
        with session_scope() as session:
            return TradeRepository(session).list_for_user(user_id, limit)

    async def list_pending_orders(self) -> List[Trade]:
        """Get every pending order, oldest first."""
        with session_scope() as session:
            return TradeRepository(session).list_by_status(TradeStatus.PENDING)

    def _validate_order(self, order: TradeOrder) -> Tuple[TradeSide, OrderType, Decimal]:
        if not order.symbol or not order.symbol.strip():
            raise InvalidOrderError("Symbol is required")

        try:
            side = TradeSide(str(order.side).lower())
        except ValueError:
            raise InvalidOrderError(f"Invalid trade type '{order.side}'")

        try:
            order_type = OrderType(str(order.order_type).lower())
        except ValueError:
            raise InvalidOrderError(f"Invalid order type '{order.order_type}'")

        quantity = to_quantity(order.quantity, "quantity")
        if quantity <= 0:
            raise InvalidOrderError("Quantity must be positive")

        if order.price is not None and to_quantity(order.price, "price") <= 0:
            raise InvalidOrderError("Price must be positive")

        order.symbol = order.symbol.strip().upper()
        return side, order_type, quantity

    async def _resolve_price(
        self, user_id: str, order: TradeOrder, order_type: OrderType
    ) -> Decimal:
        """
        Work out the execution price.

        Limit and stop orders use the price they were placed with. Market
        orders, and limit or stop orders placed without one, use the live
        quote, then the user's stored price for the symbol, then the last
        executed price for the symbol.

        Raises:
            QuoteUnavailableError: If no price can be found at all
        """
        if order_type != OrderType.MARKET and order.price is not None:
            return to_quantity(order.price, "price")

        try:
            quote = await self.quote_service.get_quote(order.symbol)
            return to_quantity(quote.price, "price")
        except Exception as e:
            self.logger.warning(
                "Live quote unavailable, using stored price",
                symbol=order.symbol,
                error=str(e),
            )

        with session_scope() as session:
            holding = PortfolioRepository(session).get_holding(user_id, order.symbol)
            if holding is not None and holding.current_price:
                return holding.current_price

            last_price = TradeRepository(session).last_executed_price(order.symbol)
            if last_price:
                return last_price

        raise QuoteUnavailableError(order.symbol)

    def _check_feasible(
        self,
        session: Session,
        user_id: str,
        side: TradeSide,
        symbol: str,
        quantity: Decimal,
        total: Decimal,
    ) -> None:
        if side == TradeSide.BUY:
            required = total + to_money(self.settings.trade_fee)
            wallet = WalletRepository(session).get_by_user(user_id, for_update=True)
            available = wallet.available_balance if wallet is not None else Decimal("0.00")
            if available < required:
                raise InsufficientFundsError(required=required, available=available)
            return

        holding = PortfolioRepository(session).get_holding(user_id, symbol)
        if holding is None:
            raise PositionNotFoundError(symbol)
        if quantity > holding.shares:
            raise InsufficientSharesError(symbol, quantity, holding.shares)

    def _settle(
        self,
        session: Session,
        trade: Trade,
        created_by: str,
        sector: Optional[str] = None,
    ) -> List[WalletTransaction]:
        """Move cash and shares for an executed trade inside the caller's unit of work."""
        transactions: List[WalletTransaction] = []
        description = (
            f"{trade.type.capitalize()} {trade.quantity.normalize():f} "
            f"{trade.symbol} @ {trade.price}"
        )

        if trade.type == TradeSide.BUY.value:
            transactions.append(
                self.wallet_service.apply_balance_change(
                    session,
                    trade.user_id,
                    -trade.total,
                    TransactionType.TRADE_BUY,
                    description,
                    created_by=created_by,
                    reference_id=trade.id,
                )
            )
            self.portfolio_service.apply_buy(
                session,
                trade.user_id,
                trade.symbol,
                trade.name,
                trade.quantity,
                trade.price,
                sector,
            )
        else:
            self.portfolio_service.apply_sell(
                session, trade.user_id, trade.symbol, trade.quantity
            )
            transactions.append(
                self.wallet_service.apply_balance_change(
                    session,
                    trade.user_id,
                    trade.total,
                    TransactionType.TRADE_SELL,
                    description,
                    created_by=created_by,
                    reference_id=trade.id,
                )
            )

        fee = to_money(self.settings.trade_fee)
        if fee > 0:
            transactions.append(
                self.wallet_service.apply_balance_change(
                    session,
                    trade.user_id,
                    -fee,
                    TransactionType.FEE,
                    f"Trade fee for {trade.symbol}",
                    created_by="system",
                    reference_id=trade.id,
                )
            )

        return transactions

    async def _publish_executed(self, trade: Trade, filled_by: str) -> None:
        await self.event_bus.publish(
            TradeExecutedEvent(
                trade_id=trade.id,
                user_id=trade.user_id,
                symbol=trade.symbol,
                side=trade.type,
                order_type=trade.order_type,
                quantity=str(trade.quantity),
                price=str(trade.price),
                total=str(trade.total),
                filled_by=filled_by,
            )
        )
