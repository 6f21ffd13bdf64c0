"""Funding request endpoints for account holders."""

from fastapi import APIRouter, Depends, Request

from ...config.logging import get_logger
from ...ormdb.models import UserAccount
from ...services.ledger import LedgerService
from ...services.ledger.models import funding_request_to_dict
from ..dependencies import get_current_account, get_ledger
from ..exceptions import raise_for_result
from ..models.requests import FundingRequestCreate
from ..models.responses import StatusResponse

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=StatusResponse,
    summary="Request Funding",
    description="Ask an administrator to add funds to your wallet",
)
async def submit_funding_request(
    request: Request,
    funding_request: FundingRequestCreate,
    account: UserAccount = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    result = await ledger.funding.submit(
        account.id,
        account.email,
        funding_request.requested_amount,
        funding_request.message,
    )
    raise_for_result(result, request_id)

    return StatusResponse.create(
        data={"funding_request": funding_request_to_dict(result.request)},
        message="Funding request submitted",
        request_id=request_id,
    )


@router.get(
    "",
    response_model=StatusResponse,
    summary="List Funding Requests",
    description="Your own funding requests, newest first",
)
async def list_funding_requests(
    request: Request,
    account: UserAccount = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    requests = await ledger.funding.list_user_requests(account.id)

    return StatusResponse.create(
        data={
            "funding_requests": [funding_request_to_dict(r) for r in requests],
            "count": len(requests),
        },
        request_id=request_id,
    )
