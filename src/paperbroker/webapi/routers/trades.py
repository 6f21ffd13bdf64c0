"""Order placement and trade history endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ...config.logging import get_logger
from ...ormdb.models import UserAccount
from ...services.ledger import LedgerService, TradeOrder
from ...services.ledger.models import trade_to_dict
from ..dependencies import get_current_account, get_ledger
from ..exceptions import raise_for_result
from ..models.requests import TradeCreateRequest
from ..models.responses import StatusResponse

logger = get_logger(__name__)

router = APIRouter()


def order_from_request(trade_request: TradeCreateRequest) -> TradeOrder:
    """Build a ledger order from an API request body."""
    return TradeOrder(
        symbol=trade_request.symbol,
        side=trade_request.type.value,
        quantity=trade_request.quantity,
        order_type=trade_request.order_type.value,
        name=trade_request.name or "",
        price=trade_request.price,
        sector=trade_request.sector,
    )


@router.post(
    "",
    response_model=StatusResponse,
    summary="Place Order",
    description="Market orders execute immediately; limit and stop orders wait for a fill",
)
async def place_order(
    request: Request,
    trade_request: TradeCreateRequest,
    account: UserAccount = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    """
    Place an order for the acting user.

    A buy the wallet cannot cover fails with 409 and
    ``details.requires_funding`` set, so the client can offer a funding
    request instead.
    """
    request_id = getattr(request.state, "request_id", None)

    logger.info(
        "Order requested",
        user_id=account.id,
        symbol=trade_request.symbol,
        side=trade_request.type.value,
        order_type=trade_request.order_type.value,
        request_id=request_id,
    )

    result = await ledger.execute_trade(account.id, order_from_request(trade_request))
    raise_for_result(result, request_id)

    return StatusResponse.create(
        data={"trade": trade_to_dict(result.trade)},
        message=f"Order {result.trade.status}",
        request_id=request_id,
    )


@router.get(
    "",
    response_model=StatusResponse,
    summary="List Trades",
    description="The acting user's trades, newest first",
)
async def list_trades(
    request: Request,
    limit: Optional[int] = Query(None, ge=1, le=500),
    account: UserAccount = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    trades = await ledger.trades.list_trades(account.id, limit)

    return StatusResponse.create(
        data={"trades": [trade_to_dict(t) for t in trades], "count": len(trades)},
        request_id=request_id,
    )


@router.post(
    "/{trade_id}/cancel",
    response_model=StatusResponse,
    summary="Cancel Order",
    description="Cancel one of your own pending orders",
)
async def cancel_trade(
    request: Request,
    trade_id: str,
    account: UserAccount = Depends(get_current_account),
    ledger: LedgerService = Depends(get_ledger),
):
    request_id = getattr(request.state, "request_id", None)

    result = await ledger.cancel_trade(account.id, trade_id)
    raise_for_result(result, request_id)

    return StatusResponse.create(
        data={"trade": trade_to_dict(result.trade)},
        message="Order cancelled",
        request_id=request_id,
    )
