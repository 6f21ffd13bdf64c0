"""Wallet balance and ledger endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ...config.logging import get_logger
from ...core.errors import LedgerError
from ...ormdb.models import UserAccount
from ...services.ledger import LedgerService
from ...services.ledger.models import transaction_to_dict, wallet_to_dict
from ..dependencies import get_current_account, get_ledger
from ..exceptions import NotFoundError
from ..models.responses import StatusResponse

logger = get_logger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=StatusResponse,
    summary="Get Wallet",
    description="Get the acting user's wallet, or null if none exists yet",
)
async def get_wallet(
    request: Request,
    account: UserAccount = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    wallet = await ledger.wallets.get_wallet(account.id)

    return StatusResponse.create(
        data={"wallet": wallet_to_dict(wallet) if wallet else None},
        request_id=request_id,
    )


@router.get(
    "/transactions",
    response_model=StatusResponse,
    summary="List Wallet Transactions",
    description="Most recent ledger entries, newest first",
)
async def list_transactions(
    request: Request,
    limit: Optional[int] = Query(None, ge=1, le=500),
    account: UserAccount = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    wallet = await ledger.wallets.get_wallet(account.id)
    transactions = (
        await ledger.wallets.list_transactions(wallet.id, limit) if wallet else []
    )

    return StatusResponse.create(
        data={
            "transactions": [transaction_to_dict(t) for t in transactions],
            "count": len(transactions),
        },
        request_id=request_id,
    )


@router.get(
    "/reconciliation",
    response_model=StatusResponse,
    summary="Reconcile Wallet",
    description="Replay the ledger and compare it with the stored balance",
)
async def reconcile_wallet(
    request: Request,
    account: UserAccount = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    wallet = await ledger.wallets.get_wallet(account.id)
    if wallet is None:
        raise NotFoundError(
            f"No wallet for user {account.id}",
            error_code="wallet_not_found",
            request_id=request_id,
        )

    try:
        report = await ledger.wallets.reconcile_wallet(wallet.id)
    except LedgerError as e:
        raise NotFoundError(e.message, error_code=e.code, request_id=request_id)

    return StatusResponse.create(
        data={
            "wallet_id": report.wallet_id,
            "balance": str(report.balance),
            "ledger_total": str(report.ledger_total),
            "transaction_count": report.transaction_count,
            "broken_links": report.broken_links,
            "consistent": report.consistent,
        },
        request_id=request_id,
    )
