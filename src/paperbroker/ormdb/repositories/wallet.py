"""Repository for wallets and their ledger entries."""

import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func

from ..models import (
    TransactionStatus,
    TransactionType,
    Wallet,
    WalletStatus,
    WalletTransaction,
)
from .base import BaseRepository


class WalletRepository(BaseRepository):
    """Repository for wallet and wallet transaction operations."""

    def get(self, wallet_id: str, for_update: bool = False) -> Optional[Wallet]:
        """Get a wallet by id."""
        query = self.session.query(Wallet).filter(Wallet.id == wallet_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_by_user(self, user_id: str, for_update: bool = False) -> Optional[Wallet]:
        """Get the wallet owned by a user."""
        query = self.session.query(Wallet).filter(Wallet.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def create(self, user_id: str, currency: str = "USD") -> Wallet:
        """Create an empty active wallet."""
        wallet = Wallet(
            user_id=user_id,
            balance=Decimal("0.00"),
            available_balance=Decimal("0.00"),
            pending_balance=Decimal("0.00"),
            currency=currency,
            status=WalletStatus.ACTIVE.value,
        )
        self.session.add(wallet)
        self.session.flush()
        return wallet

    def set_balance(self, wallet: Wallet, new_balance: Decimal) -> None:
        """Write a new balance snapshot onto the wallet row."""
        wallet.balance = new_balance
        wallet.available_balance = new_balance
        wallet.updated_at = datetime.datetime.now(datetime.UTC)
        self.session.flush()

    def set_status(self, wallet: Wallet, status: WalletStatus) -> None:
        wallet.status = status.value
        wallet.updated_at = datetime.datetime.now(datetime.UTC)
        self.session.flush()

    def append_transaction(
        self,
        wallet: Wallet,
        tx_type: TransactionType,
        amount: Decimal,
        balance_before: Decimal,
        balance_after: Decimal,
        description: str,
        created_by: str,
        reference_id: Optional[str] = None,
    ) -> WalletTransaction:
        """Append a completed ledger entry with the next sequence number."""
        last_sequence = (
            self.session.query(func.max(WalletTransaction.sequence))
            .filter(WalletTransaction.wallet_id == wallet.id)
            .scalar()
        )

        transaction = WalletTransaction(
            wallet_id=wallet.id,
            sequence=(last_sequence or 0) + 1,
            type=tx_type.value,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            description=description,
            reference_id=reference_id,
            status=TransactionStatus.COMPLETED.value,
            created_by=created_by,
        )
        self.session.add(transaction)
        self.session.flush()
        return transaction

    def list_transactions(
        self, wallet_id: str, limit: int = 50
    ) -> List[WalletTransaction]:
        """Get the most recent ledger entries, newest first."""
        return (
            self.session.query(WalletTransaction)
            .filter(WalletTransaction.wallet_id == wallet_id)
            .order_by(WalletTransaction.sequence.desc())
            .limit(limit)
            .all()
        )

    def replay_transactions(self, wallet_id: str) -> List[WalletTransaction]:
        """Get every ledger entry for a wallet in the order it was written."""
        return (
            self.session.query(WalletTransaction)
            .filter(WalletTransaction.wallet_id == wallet_id)
            .order_by(WalletTransaction.sequence.asc())
            .all()
        )

    def get_transactions_by_reference(
        self, reference_id: str
    ) -> List[WalletTransaction]:
        return (
            self.session.query(WalletTransaction)
            .filter(WalletTransaction.reference_id == reference_id)
            .order_by(WalletTransaction.sequence.asc())
            .all()
        )

    def sum_by_type(self, wallet_id: str, tx_type: TransactionType) -> Decimal:
        """Sum completed amounts of one transaction type."""
        total = (
            self.session.query(func.sum(WalletTransaction.amount))
            .filter(
                WalletTransaction.wallet_id == wallet_id,
                WalletTransaction.type == tx_type.value,
                WalletTransaction.status == TransactionStatus.COMPLETED.value,
            )
            .scalar()
        )
        return Decimal(str(total)) if total is not None else Decimal("0")

    def total_balance(self) -> Decimal:
        """Sum of every wallet balance on the platform."""
        total = self.session.query(func.sum(Wallet.balance)).scalar()
        return Decimal(str(total)) if total is not None else Decimal("0")
