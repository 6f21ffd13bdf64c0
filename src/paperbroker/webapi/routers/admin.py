"""Back-office endpoints. Every route requires the admin role."""

from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request

from ...config.logging import get_logger
from ...ormdb.models import FundingRequestStatus, UserAccount
from ...services.ledger import LedgerService
from ...services.ledger.models import (
    account_to_dict,
    funding_request_to_dict,
    trade_to_dict,
    wallet_to_dict,
)
from ..dependencies import get_admin_account, get_ledger
from ..exceptions import raise_for_result
from ..models.requests import (
    AdminOrderRequest,
    FundingCompleteRequest,
    FundingDecisionRequest,
    UserCreateRequest,
    WalletAdjustmentRequest,
    WalletStatusRequest,
)
from ..models.responses import StatusResponse
from .trades import order_from_request

logger = get_logger(__name__)

router = APIRouter()


def _user_entry(account, wallet) -> Dict[str, Any]:
    entry = account_to_dict(account)
    entry["wallet"] = wallet_to_dict(wallet) if wallet else None
    return entry


def _stringify(values: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value if isinstance(value, (int, str)) else str(value)
        for key, value in values.items()
    }


# Users


@router.get("/users", response_model=StatusResponse, summary="List Users")
async def list_users(
    request: Request,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    admin: UserAccount = Depends(get_admin_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    result = await ledger.admin.list_users(admin.id, limit=limit, offset=offset)
    raise_for_result(result, request_id)

    return StatusResponse.create(
        data={
            "users": [
                _user_entry(user["account"], user["wallet"])
                for user in result.data["users"]
            ],
            "total": result.data["total"],
        },
        request_id=request_id,
    )


@router.post("/users", response_model=StatusResponse, summary="Create User")
async def create_user(
    request: Request,
    user_request: UserCreateRequest,
    admin: UserAccount = Depends(get_admin_account),
    ledger: LedgerService = Depends(get_ledger),
):
    """Create an account and its wallet, optionally with an opening balance."""
    request_id = getattr(request.state, "request_id", None)

    result = await ledger.admin.create_user(
        user_request.email,
        admin.id,
        role=user_request.role,
        initial_balance=user_request.initial_balance,
    )
    raise_for_result(result, request_id)

    return StatusResponse.create(
        data={"user": _user_entry(result.data["account"], result.data["wallet"])},
        message="User created",
        request_id=request_id,
    )


@router.get("/users/{user_id}", response_model=StatusResponse, summary="Get User")
async def get_user(
    request: Request,
    user_id: str,
    admin: UserAccount = Depends(get_admin_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    result = await ledger.admin.get_user(user_id, admin.id)
    raise_for_result(result, request_id)

    return StatusResponse.create(
        data={"user": _user_entry(result.data["account"], result.data["wallet"])},
        request_id=request_id,
    )


@router.post(
    "/users/{user_id}/wallet",
    response_model=StatusResponse,
    summary="Adjust User Wallet",
    description="Book a manual deposit, withdrawal or adjustment",
)
async def adjust_user_wallet(
    request: Request,
    user_id: str,
    adjustment: WalletAdjustmentRequest,
    admin: UserAccount = Depends(get_admin_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    result = await ledger.admin.adjust_user_wallet(
        user_id,
        adjustment.amount,
        adjustment.type,
        adjustment.description,
        admin.id,
        allow_overdraft=adjustment.allow_overdraft,
    )
    raise_for_result(result, request_id)

    return StatusResponse.create(
        data={
            "new_balance": str(result.new_balance),
            "transaction_id": result.transaction_id,
        },
        message="Wallet updated",
        request_id=request_id,
    )


@router.put(
    "/users/{user_id}/wallet/status",
    response_model=StatusResponse,
    summary="Set Wallet Status",
)
async def set_wallet_status(
    request: Request,
    user_id: str,
    status_request: WalletStatusRequest,
    admin: UserAccount = Depends(get_admin_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    result = await ledger.wallets.set_wallet_status(
        user_id, status_request.status, admin.id
    )
    raise_for_result(result, request_id)

    return StatusResponse.create(data=result.data, request_id=request_id)


@router.get(
    "/users/{user_id}/stats", response_model=StatusResponse, summary="Get User Stats"
)
async def get_user_stats(
    request: Request,
    user_id: str,
    admin: UserAccount = Depends(get_admin_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    result = await ledger.admin.get_user_stats(user_id, admin.id)
    raise_for_result(result, request_id)

    return StatusResponse.create(
        data=_stringify(asdict(result.data["stats"])), request_id=request_id
    )


# Orders


@router.post(
    "/orders",
    response_model=StatusResponse,
    summary="Create Order For User",
    description="Place a pending order on a user's behalf",
)
async def create_order_for_user(
    request: Request,
    order_request: AdminOrderRequest,
    admin: UserAccount = Depends(get_admin_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    result = await ledger.admin.create_order_for_user(
        order_request.user_id, order_from_request(order_request), admin.id
    )
    raise_for_result(result, request_id)

    return StatusResponse.create(
        data={"trade": trade_to_dict(result.trade)},
        message="Order created",
        request_id=request_id,
    )


@router.get("/orders/pending", response_model=StatusResponse, summary="Pending Orders")
async def list_pending_orders(
    request: Request,
    admin: UserAccount = Depends(get_admin_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    result = await ledger.admin.list_pending_orders(admin.id)
    raise_for_result(result, request_id)

    orders = result.data["orders"]
    return StatusResponse.create(
        data={"orders": [trade_to_dict(o) for o in orders], "count": len(orders)},
        request_id=request_id,
    )


@router.post(
    "/orders/{trade_id}/fill",
    response_model=StatusResponse,
    summary="Fill Order",
    description="Execute a pending order at its recorded price",
)
async def fill_order(
    request: Request,
    trade_id: str,
    admin: UserAccount = Depends(get_admin_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    result = await ledger.fill_order(trade_id, admin.id)
    raise_for_result(result, request_id)

    return StatusResponse.create(
        data={"trade": trade_to_dict(result.trade)},
        message="Order filled",
        request_id=request_id,
    )


# Funding requests


@router.get(
    "/funding-requests", response_model=StatusResponse, summary="List Funding Requests"
)
async def list_funding_requests(
    request: Request,
    status: Optional[FundingRequestStatus] = Query(None),
    admin: UserAccount = Depends(get_admin_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    requests = await ledger.funding.list_requests(status)

    return StatusResponse.create(
        data={
            "funding_requests": [funding_request_to_dict(r) for r in requests],
            "count": len(requests),
        },
        request_id=request_id,
    )


@router.post(
    "/funding-requests/{request_id}/approve",
    response_model=StatusResponse,
    summary="Approve Funding Request",
)
async def approve_funding_request(
    request: Request,
    request_id: str,
    decision: Optional[FundingDecisionRequest] = None,
    admin: UserAccount = Depends(get_admin_account),
    ledger: LedgerService = Depends(get_ledger),
):
    tracking_id = getattr(request.state, "request_id", None)

    result = await ledger.funding.approve(
        request_id, admin.id, decision.admin_notes if decision else None
    )
    raise_for_result(result, tracking_id)

    return StatusResponse.create(
        data={"funding_request": funding_request_to_dict(result.request)},
        message="Funding request approved",
        request_id=tracking_id,
    )


@router.post(
    "/funding-requests/{request_id}/reject",
    response_model=StatusResponse,
    summary="Reject Funding Request",
)
async def reject_funding_request(
    request: Request,
    request_id: str,
    decision: Optional[FundingDecisionRequest] = None,
    admin: UserAccount = Depends(get_admin_account),
    ledger: LedgerService = Depends(get_ledger),
):
    tracking_id = getattr(request.state, "request_id", None)

    result = await ledger.funding.reject(
        request_id, admin.id, decision.admin_notes if decision else None
    )
    raise_for_result(result, tracking_id)

    return StatusResponse.create(
        data={"funding_request": funding_request_to_dict(result.request)},
        message="Funding request rejected",
        request_id=tracking_id,
    )


@router.post(
    "/funding-requests/{request_id}/complete",
    response_model=StatusResponse,
    summary="Complete Funding Request",
    description="Deposit the amount received and complete an approved request",
)
async def complete_funding_request(
    request: Request,
    request_id: str,
    completion: FundingCompleteRequest,
    admin: UserAccount = Depends(get_admin_account),
    ledger: LedgerService = Depends(get_ledger),
):
    tracking_id = getattr(request.state, "request_id", None)

    result = await ledger.funding.complete(
        request_id, completion.deposit_amount, admin.id, completion.admin_notes
    )
    raise_for_result(result, tracking_id)

    return StatusResponse.create(
        data={
            "funding_request": funding_request_to_dict(result.request),
            "transaction_id": result.transaction_id,
        },
        message="Funding request completed",
        request_id=tracking_id,
    )


# Platform


@router.get("/stats", response_model=StatusResponse, summary="Platform Stats")
async def get_admin_stats(
    request: Request,
    admin: UserAccount = Depends(get_admin_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    result = await ledger.admin.get_admin_stats(admin.id)
    raise_for_result(result, request_id)

    return StatusResponse.create(
        data=_stringify(asdict(result.data["stats"])), request_id=request_id
    )
