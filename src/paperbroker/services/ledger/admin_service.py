"""Back-office operations for administrators."""

import datetime
from decimal import Decimal
from typing import Union

from ...config.logging import get_logger
from ...core.errors import (
    DuplicateUserError,
    InvalidTransactionTypeError,
    LedgerError,
    UserNotFoundError,
)
from ...core.policy import authorize_admin
from ...ormdb.database import session_scope
from ...ormdb.models import (
    FundingRequestStatus,
    Role,
    TradeStatus,
    TransactionType,
)
from ...ormdb.repositories import (
    FundingRequestRepository,
    PortfolioRepository,
    TradeRepository,
    UserAccountRepository,
    WalletRepository,
)
from .models import (
    CENT,
    AdminStats,
    BalanceUpdateResult,
    OperationResult,
    TradeOrder,
    TradeResult,
    UserStats,
)
from .trade_settlement import TradeSettlement
from .wallet_service import WalletService

logger = get_logger(__name__)

# Admins may not book trade entries or fees by hand
ADJUSTABLE_TYPES = frozenset(
    {TransactionType.DEPOSIT, TransactionType.WITHDRAWAL, TransactionType.ADJUSTMENT}
)


class AdminService:
    """Account management, manual wallet changes and platform statistics."""

    def __init__(self, wallet_service: WalletService, trade_settlement: TradeSettlement):
        self.logger = logger.bind(component="admin_service")
        self.wallet_service = wallet_service
        self.trade_settlement = trade_settlement

    async def create_user(
        self,
        email: str,
        admin_id: str,
        role: Union[Role, str] = Role.USER,
        initial_balance=0,
    ) -> OperationResult:
        """Create an account together with its wallet."""
        try:
            with session_scope() as session:
                authorize_admin(session, admin_id)
                account, wallet = self._create_account(session, email, role, initial_balance)
        except LedgerError as e:
            return OperationResult.from_error(e)
        except ValueError:
            return OperationResult(
                success=False, error=f"Unknown role '{role}'", error_code="invalid_role"
            )

        self.logger.info(
            "Created user", user_id=account.id, role=account.role, admin_id=admin_id
        )
        transactions = await self.wallet_service.list_transactions(wallet.id)
        await self.wallet_service.publish_committed(account.id, transactions)

        return OperationResult.ok(account=account, wallet=wallet)

    async def bootstrap_admin(self, email: str) -> OperationResult:
        """
        Create the first administrator, or return the existing account.

        Used from the command line when no admin exists yet, so it does
        not itself require an admin.
        """
        try:
            with session_scope() as session:
                existing = UserAccountRepository(session).get_by_email(email)
                if existing is not None:
                    if existing.role != Role.ADMIN.value:
                        existing.role = Role.ADMIN.value
                    wallet = WalletRepository(session).get_by_user(existing.id)
                    return OperationResult.ok(account=existing, wallet=wallet)
                account, wallet = self._create_account(session, email, Role.ADMIN, 0)
        except LedgerError as e:
            return OperationResult.from_error(e)

        self.logger.info("Bootstrapped administrator", user_id=account.id)
        return OperationResult.ok(account=account, wallet=wallet)

    def _create_account(self, session, email: str, role, initial_balance):
        accounts = UserAccountRepository(session)
        if accounts.get_by_email(email) is not None:
            raise DuplicateUserError(email.strip().lower())

        account = accounts.create(email, Role(role))
        wallet = self.wallet_service.create_wallet_in_session(
            session, account.id, initial_balance
        )
        return account, wallet

    async def get_user(self, user_id: str, admin_id: str) -> OperationResult:
        try:
            with session_scope() as session:
                authorize_admin(session, admin_id)
                account = UserAccountRepository(session).get(user_id)
                if account is None:
                    raise UserNotFoundError(user_id)
                wallet = WalletRepository(session).get_by_user(user_id)
        except LedgerError as e:
            return OperationResult.from_error(e)

        return OperationResult.ok(account=account, wallet=wallet)

    async def list_users(
        self, admin_id: str, limit: int = 50, offset: int = 0
    ) -> OperationResult:
        """List accounts with their wallets, newest first."""
        try:
            with session_scope() as session:
                authorize_admin(session, admin_id)
                accounts = UserAccountRepository(session)
                wallets = WalletRepository(session)
                users = [
                    {"account": account, "wallet": wallets.get_by_user(account.id)}
                    for account in accounts.list(limit=limit, offset=offset)
                ]
                total = accounts.count()
        except LedgerError as e:
            return OperationResult.from_error(e)

        return OperationResult.ok(users=users, total=total)

    async def adjust_user_wallet(
        self,
        user_id: str,
        amount,
        tx_type: Union[TransactionType, str],
        description: str,
        admin_id: str,
        allow_overdraft: bool = False,
    ) -> BalanceUpdateResult:
        """
        Book a manual deposit, withdrawal or adjustment on a user's wallet.

        The ledger entry records the admin as its creator.
        """
        try:
            kind = TransactionType(tx_type)
        except ValueError:
            return BalanceUpdateResult.from_error(InvalidTransactionTypeError(str(tx_type)))
        if kind not in ADJUSTABLE_TYPES:
            return BalanceUpdateResult.from_error(InvalidTransactionTypeError(kind.value))

        try:
            with session_scope() as session:
                authorize_admin(session, admin_id)
        except LedgerError as e:
            return BalanceUpdateResult.from_error(e)

        result = await self.wallet_service.update_balance(
            user_id,
            amount,
            kind,
            description or f"Admin {kind.value}",
            created_by=admin_id,
            allow_overdraft=allow_overdraft,
        )

        if result.success:
            self.logger.info(
                "Admin wallet change",
                user_id=user_id,
                type=kind.value,
                amount=str(amount),
                admin_id=admin_id,
            )
        return result

    async def create_order_for_user(
        self, user_id: str, order: TradeOrder, admin_id: str
    ) -> TradeResult:
        """Place a pending order on a user's behalf; it settles when filled."""
        try:
            with session_scope() as session:
                authorize_admin(session, admin_id)
                if UserAccountRepository(session).get(user_id) is None:
                    raise UserNotFoundError(user_id)
        except LedgerError as e:
            return TradeResult.from_error(e)

        return await self.trade_settlement.execute_trade(
            user_id, order, created_by=admin_id, defer_execution=True
        )

    async def list_pending_orders(self, admin_id: str) -> OperationResult:
        try:
            with session_scope() as session:
                authorize_admin(session, admin_id)
        except LedgerError as e:
            return OperationResult.from_error(e)

        orders = await self.trade_settlement.list_pending_orders()
        return OperationResult.ok(orders=orders)

    async def get_admin_stats(self, admin_id: str) -> OperationResult:
        """Platform totals; "today" starts at midnight UTC."""
        start_of_day = datetime.datetime.now(datetime.UTC).replace(
            hour=0, minute=0, second=0, microsecond=0
        )

        try:
            with session_scope() as session:
                authorize_admin(session, admin_id)
                trades = TradeRepository(session)

                stats = AdminStats(
                    total_users=UserAccountRepository(session).count(),
                    total_wallet_balance=WalletRepository(session).total_balance().quantize(CENT),
                    total_trades_today=len(trades.executed_since(start_of_day)),
                    total_volume_today=trades.volume_since(start_of_day).quantize(CENT),
                    pending_orders=trades.count_by_status(TradeStatus.PENDING),
                    pending_funding_requests=FundingRequestRepository(
                        session
                    ).count_by_status(FundingRequestStatus.PENDING),
                )
        except LedgerError as e:
            return OperationResult.from_error(e)

        return OperationResult.ok(stats=stats)

    async def get_user_stats(self, user_id: str, admin_id: str) -> OperationResult:
        """
        Per-user figures valued at each holding's stored price.

        Profit and loss is unrealised, relative to cost basis.
        """
        try:
            with session_scope() as session:
                authorize_admin(session, admin_id)
                if UserAccountRepository(session).get(user_id) is None:
                    raise UserNotFoundError(user_id)

                total_value = Decimal("0")
                total_cost = Decimal("0")
                for holding in PortfolioRepository(session).list_holdings(user_id):
                    price = holding.current_price or holding.average_price
                    total_value += holding.shares * price
                    total_cost += holding.shares * holding.average_price

                deposits = withdrawals = Decimal("0")
                wallets = WalletRepository(session)
                wallet = wallets.get_by_user(user_id)
                if wallet is not None:
                    deposits = wallets.sum_by_type(wallet.id, TransactionType.DEPOSIT)
                    withdrawals = -wallets.sum_by_type(wallet.id, TransactionType.WITHDRAWAL)

                total_trades = TradeRepository(session).count_for_user(user_id)
        except LedgerError as e:
            return OperationResult.from_error(e)

        profit_loss = (total_value - total_cost).quantize(CENT)
        profit_loss_percent = (
            (profit_loss / total_cost * 100).quantize(CENT)
            if total_cost > 0
            else Decimal("0.00")
        )

        return OperationResult.ok(
            stats=UserStats(
                total_portfolio_value=total_value.quantize(CENT),
                total_trades=total_trades,
                total_deposits=deposits.quantize(CENT),
                total_withdrawals=withdrawals.quantize(CENT),
                profit_loss=profit_loss,
                profit_loss_percent=profit_loss_percent,
            )
        )
