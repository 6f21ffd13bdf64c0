"""Ledger service orchestration."""

from typing import Optional

from ...config.logging import get_logger
from ...config.settings import Settings, get_settings
from ...core.quotes import QuoteService, get_quote_service
from ...events import EventBus, get_event_bus
from .admin_service import AdminService
from .funding_workflow import FundingWorkflow
from .locks import UserLockRegistry
from .models import TradeOrder, TradeResult
from .portfolio_service import PortfolioService
from .trade_settlement import TradeSettlement
from .wallet_service import WalletService

logger = get_logger(__name__)


class LedgerService:
    """
    Wires the wallet, portfolio, trade, funding and admin components together.

    Every component shares one lock registry, so an operation on a user
    in any of them is serialised against the others.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        quote_service: Optional[QuoteService] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.logger = logger.bind(component="ledger_service")
        self.settings = settings or get_settings()
        self.quote_service = quote_service or get_quote_service()
        self.event_bus = event_bus if event_bus is not None else get_event_bus()
        self.locks = UserLockRegistry()

        self.wallets = WalletService(self.settings, self.locks, self.event_bus)
        self.portfolio = PortfolioService(self.quote_service, self.settings, self.locks)
        self.trades = TradeSettlement(
            self.wallets,
            self.portfolio,
            quote_service=self.quote_service,
            settings=self.settings,
            locks=self.locks,
            event_bus=self.event_bus,
        )
        self.funding = FundingWorkflow(self.wallets, self.locks, self.event_bus)
        self.admin = AdminService(self.wallets, self.trades)

    async def execute_trade(self, user_id: str, order: TradeOrder) -> TradeResult:
        """
        Place an order for a user.

        Args:
            user_id: Account placing the order
            order: Order details

        Returns:
            TradeResult with the trade, or the reason it was rejected
        """
        return await self.trades.execute_trade(user_id, order)

    async def fill_order(self, trade_id: str, admin_id: str) -> TradeResult:
        return await self.trades.fill_order(trade_id, admin_id)

    async def cancel_trade(self, user_id: str, trade_id: str) -> TradeResult:
        return await self.trades.cancel_trade(user_id, trade_id)


_ledger_service: Optional[LedgerService] = None


def get_ledger_service() -> LedgerService:
    """Get the process-wide ledger service."""
    global _ledger_service
    if _ledger_service is None:
        _ledger_service = LedgerService()
    return _ledger_service


def set_ledger_service(service: Optional[LedgerService]) -> None:
    """Replace the process-wide ledger service; ``None`` resets it."""
    global _ledger_service
    _ledger_service = service
