"""Wallet balance mutation, ledger logging and funds checks."""

from decimal import Decimal
from typing import List, Optional, Union

from sqlalchemy.orm import Session

from ...config.logging import get_logger
from ...config.settings import Settings, get_settings
from ...core.errors import (
    InsufficientFundsError,
    InvalidAmountError,
    InvalidTransactionTypeError,
    LedgerError,
    UserNotFoundError,
    WalletInactiveError,
    WalletNotFoundError,
)
from ...core.policy import authorize_admin
from ...events import EventBus, WalletBalanceChangedEvent, get_event_bus
from ...ormdb.database import session_scope
from ...ormdb.models import (
    TransactionType,
    Wallet,
    WalletStatus,
    WalletTransaction,
)
from ...ormdb.repositories import UserAccountRepository, WalletRepository
from .locks import UserLockRegistry
from .models import (
    BalanceUpdateResult,
    OperationResult,
    ReconciliationReport,
    to_money,
)

logger = get_logger(__name__)

# Transaction types that may never take a balance below zero
DEBIT_TYPES = frozenset(
    {TransactionType.WITHDRAWAL, TransactionType.TRADE_BUY, TransactionType.FEE}
)
CREDIT_TYPES = frozenset({TransactionType.DEPOSIT, TransactionType.TRADE_SELL})


class WalletService:
    """Owns every change to a wallet balance and its ledger."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        locks: Optional[UserLockRegistry] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.logger = logger.bind(component="wallet_service")
        self.settings = settings or get_settings()
        self.locks = locks if locks is not None else UserLockRegistry()
        self.event_bus = event_bus if event_bus is not None else get_event_bus()

    async def get_wallet(self, user_id: str) -> Optional[Wallet]:
        """Get a user's wallet, or None if it has not been created yet."""
        with session_scope() as session:
            return WalletRepository(session).get_by_user(user_id)

    async def create_wallet(
        self, user_id: str, initial_balance: Union[Decimal, int, str] = 0
    ) -> Wallet:
        """
        Create a wallet for a user.

        A positive initial balance is booked as a ``deposit`` made by
        ``system`` so the ledger replays to the opening balance.

        Raises:
            InvalidAmountError: If the initial balance is negative
            UserNotFoundError: If the user does not exist
        """
        async with self.locks.lock_for(user_id):
            with session_scope() as session:
                wallet = self.create_wallet_in_session(session, user_id, initial_balance)
                transactions = WalletRepository(session).replay_transactions(wallet.id)

        for transaction in transactions:
            await self._publish(user_id, transaction)

        self.logger.info(
            "Created wallet", user_id=user_id, initial_balance=str(wallet.balance)
        )
        return wallet

    def create_wallet_in_session(
        self, session: Session, user_id: str, initial_balance=0
    ) -> Wallet:
        """Create a wallet inside an existing unit of work."""
        opening = to_money(initial_balance, "initial_balance")
        if opening < 0:
            raise InvalidAmountError("Initial balance cannot be negative")

        if UserAccountRepository(session).get(user_id) is None:
            raise UserNotFoundError(user_id)

        wallets = WalletRepository(session)
        wallet = wallets.create(user_id, currency=self.settings.wallet_currency)

        if opening > 0:
            self.apply_balance_change(
                session,
                user_id,
                opening,
                TransactionType.DEPOSIT,
                "Initial wallet funding",
                created_by="system",
            )

        return wallet

    async def check_sufficient_funds(
        self, user_id: str, amount: Union[Decimal, int, str]
    ) -> bool:
        """Check available balance covers ``amount``. False when there is no wallet."""
        try:
            required = to_money(amount)
            with session_scope() as session:
                wallet = WalletRepository(session).get_by_user(user_id)
                if wallet is None:
                    return False
                return wallet.available_balance >= required
        except Exception as e:
            self.logger.error("Failed to check funds", user_id=user_id, error=str(e))
            return False

    async def update_balance(
        self,
        user_id: str,
        amount: Union[Decimal, int, str],
        tx_type: Union[TransactionType, str],
        description: str,
        created_by: str = "system",
        reference_id: Optional[str] = None,
        allow_overdraft: bool = False,
    ) -> BalanceUpdateResult:
        """
        Apply a signed amount to a user's wallet and record it in the ledger.

        The balance write and the ledger entry commit together. A wallet is
        created with a zero balance if the user has none yet.

        Args:
            user_id: Wallet owner
            amount: Signed amount; positive credits, negative debits
            tx_type: One of the six transaction types
            description: Human readable ledger description
            created_by: User id, admin id or "system"
            reference_id: Trade or funding request that caused the change
            allow_overdraft: Let a negative adjustment go below zero, only
                honoured when ``allow_adjustment_overdraft`` is enabled

        Returns:
            BalanceUpdateResult with the new balance or the failure reason
        """
        try:
            async with self.locks.lock_for(user_id):
                with session_scope() as session:
                    transaction = self.apply_balance_change(
                        session,
                        user_id,
                        amount,
                        tx_type,
                        description,
                        created_by=created_by,
                        reference_id=reference_id,
                        allow_overdraft=allow_overdraft,
                    )
        except LedgerError as e:
            self.logger.info(
                "Balance update rejected",
                user_id=user_id,
                amount=str(amount),
                type=str(tx_type),
                reason=e.code,
            )
            return BalanceUpdateResult.from_error(e)
        except Exception as e:
            self.logger.error(
                "Failed to update balance", user_id=user_id, error=str(e), exc_info=True
            )
            return BalanceUpdateResult(
                success=False, error=str(e), error_code="internal_error"
            )

        await self._publish(user_id, transaction)

        return BalanceUpdateResult(
            success=True,
            new_balance=transaction.balance_after,
            transaction_id=transaction.id,
        )

    def apply_balance_change(
        self,
        session: Session,
        user_id: str,
        amount,
        tx_type: Union[TransactionType, str],
        description: str,
        created_by: str = "system",
        reference_id: Optional[str] = None,
        allow_overdraft: bool = False,
    ) -> WalletTransaction:
        """
        Apply a balance change inside an existing unit of work.

        Nothing is written when a check fails; the caller's transaction
        decides whether the write is committed.

        Raises:
            LedgerError: On invalid input, inactive wallet or insufficient funds
        """
        try:
            kind = TransactionType(tx_type)
        except ValueError:
            raise InvalidTransactionTypeError(str(tx_type))

        change = to_money(amount)
        if change == 0:
            raise InvalidAmountError("Amount must be non-zero")
        if kind in DEBIT_TYPES and change > 0:
            raise InvalidAmountError(f"{kind.value} amounts must be negative")
        if kind in CREDIT_TYPES and change < 0:
            raise InvalidAmountError(f"{kind.value} amounts must be positive")

        wallets = WalletRepository(session)
        wallet = wallets.get_by_user(user_id, for_update=True)
        if wallet is None:
            if UserAccountRepository(session).get(user_id) is None:
                raise UserNotFoundError(user_id)
            wallet = wallets.create(user_id, currency=self.settings.wallet_currency)

        self._check_status(wallet, kind)

        balance_before = wallet.balance
        balance_after = balance_before + change

        if change < 0 and balance_after < 0 and self._is_floored(kind, allow_overdraft):
            raise InsufficientFundsError(required=-change, available=balance_before)

        wallets.set_balance(wallet, balance_after)
        return wallets.append_transaction(
            wallet,
            kind,
            change,
            balance_before,
            balance_after,
            description,
            created_by=created_by,
            reference_id=reference_id,
        )

    def _is_floored(self, kind: TransactionType, allow_overdraft: bool) -> bool:
        if kind in DEBIT_TYPES:
            return True
        if kind == TransactionType.ADJUSTMENT:
            return not (allow_overdraft and self.settings.allow_adjustment_overdraft)
        return False

    @staticmethod
    def _check_status(wallet: Wallet, kind: TransactionType) -> None:
        if wallet.status == WalletStatus.FROZEN.value:
            raise WalletInactiveError(wallet.id, wallet.status)
        if wallet.status == WalletStatus.SUSPENDED.value and kind in DEBIT_TYPES:
            raise WalletInactiveError(wallet.id, wallet.status)

    async def list_transactions(
        self, wallet_id: str, limit: Optional[int] = None
    ) -> List[WalletTransaction]:
        """Get a wallet's most recent ledger entries, newest first."""
        limit = limit or self.settings.transaction_history_limit
        try:
            with session_scope() as session:
                return WalletRepository(session).list_transactions(wallet_id, limit)
        except Exception as e:
            self.logger.error(
                "Failed to list transactions", wallet_id=wallet_id, error=str(e)
            )
            return []

    async def reconcile_wallet(self, wallet_id: str) -> ReconciliationReport:
        """
        Replay a wallet's ledger and compare it with the stored balance.

        Raises:
            WalletNotFoundError: If the wallet does not exist
        """
        with session_scope() as session:
            wallets = WalletRepository(session)
            wallet = wallets.get(wallet_id)
            if wallet is None:
                raise WalletNotFoundError(wallet_id)

            total = Decimal("0.00")
            broken_links = []
            transactions = wallets.replay_transactions(wallet_id)
            for transaction in transactions:
                if (
                    transaction.balance_before != total
                    or transaction.balance_after
                    != transaction.balance_before + transaction.amount
                ):
                    broken_links.append(transaction.sequence)
                total = total + transaction.amount

            report = ReconciliationReport(
                wallet_id=wallet_id,
                balance=wallet.balance,
                ledger_total=total,
                transaction_count=len(transactions),
                broken_links=broken_links,
            )

        if not report.consistent:
            self.logger.error(
                "Ledger does not reconcile",
                wallet_id=wallet_id,
                balance=str(report.balance),
                ledger_total=str(report.ledger_total),
                broken_links=broken_links,
            )

        return report

    async def set_wallet_status(
        self, user_id: str, status: Union[WalletStatus, str], admin_id: str
    ) -> OperationResult:
        """Suspend, freeze or reactivate a wallet (admin only)."""
        try:
            new_status = WalletStatus(status)
        except ValueError:
            return OperationResult(
                success=False,
                error=f"Unknown wallet status '{status}'",
                error_code="invalid_status",
            )

        try:
            async with self.locks.lock_for(user_id):
                with session_scope() as session:
                    authorize_admin(session, admin_id)
                    wallets = WalletRepository(session)
                    wallet = wallets.get_by_user(user_id, for_update=True)
                    if wallet is None:
                        raise WalletNotFoundError(user_id)
                    previous = wallet.status
                    wallets.set_status(wallet, new_status)
        except LedgerError as e:
            return OperationResult.from_error(e)
        except Exception as e:
            self.logger.error(
                "Failed to set wallet status", user_id=user_id, error=str(e), exc_info=True
            )
            return OperationResult(success=False, error=str(e), error_code="internal_error")

        self.logger.info(
            "Wallet status changed",
            user_id=user_id,
            previous_status=previous,
            new_status=new_status.value,
            admin_id=admin_id,
        )
        return OperationResult.ok(wallet_id=wallet.id, status=new_status.value)

    async def _publish(self, user_id: str, transaction: WalletTransaction) -> None:
        await self.event_bus.publish(
            WalletBalanceChangedEvent(
                user_id=user_id,
                wallet_id=transaction.wallet_id,
                transaction_id=transaction.id,
                transaction_type=transaction.type,
                amount=str(transaction.amount),
                balance_before=str(transaction.balance_before),
                balance_after=str(transaction.balance_after),
                created_by=transaction.created_by,
                reference_id=transaction.reference_id,
            )
        )

    async def publish_committed(
        self, user_id: str, transactions: List[WalletTransaction]
    ) -> None:
        """Publish change events for entries written in someone else's unit of work."""
        for transaction in transactions:
            await self._publish(user_id, transaction)
