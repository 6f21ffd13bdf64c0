"""Portfolio holdings and valuation endpoints."""

from decimal import Decimal

from fastapi import APIRouter, Depends, Request

from ...config.logging import get_logger
from ...ormdb.models import UserAccount
from ...services.ledger import LedgerService
from ...services.ledger.models import holding_view_to_dict
from ..dependencies import get_current_account, get_ledger
from ..exceptions import raise_for_result
from ..models.responses import StatusResponse

logger = get_logger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=StatusResponse,
    summary="Get Holdings",
    description="Holdings valued at live prices, with allocation percentages",
)
async def get_holdings(
    request: Request,
    account: UserAccount = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    """
    Get the acting user's holdings.

    A holding whose quote could not be fetched is valued at its last stored
    price; one with no price at all is flagged ``price_unavailable``.
    """
    request_id = getattr(request.state, "request_id", None)

    holdings = await ledger.portfolio.get_holdings(account.id)

    return StatusResponse.create(
        data={
            "holdings": [holding_view_to_dict(h) for h in holdings],
            "total_value": str(sum((h.value for h in holdings), Decimal("0.00"))),
            "count": len(holdings),
        },
        request_id=request_id,
    )


@router.get(
    "/stats",
    response_model=StatusResponse,
    summary="Get Portfolio Stats",
    description="Total value, cost basis, gain and day change",
)
async def get_portfolio_stats(
    request: Request,
    account: UserAccount = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    stats = await ledger.portfolio.get_portfolio_stats(account.id)

    return StatusResponse.create(
        data={
            "total_value": str(stats.total_value),
            "total_cost": str(stats.total_cost),
            "total_gain": str(stats.total_gain),
            "total_gain_percent": str(stats.total_gain_percent),
            "day_change": str(stats.day_change),
            "day_change_percent": str(stats.day_change_percent),
            "num_positions": stats.num_positions,
        },
        request_id=request_id,
    )


@router.post(
    "/refresh",
    response_model=StatusResponse,
    summary="Refresh Prices",
    description="Store the latest quote for each holding",
)
async def refresh_prices(
    request: Request,
    account: UserAccount = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    result = await ledger.portfolio.refresh_prices(account.id)
    raise_for_result(result, request_id)

    logger.info("Portfolio prices refreshed", user_id=account.id, request_id=request_id)
    return StatusResponse.create(data=result.data, request_id=request_id)
