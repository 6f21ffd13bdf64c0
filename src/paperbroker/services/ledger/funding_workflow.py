"""Admin-mediated funding requests."""

from typing import Dict, FrozenSet, List, Optional, Union

from ...config.logging import get_logger
from ...core.errors import (
    FundingRequestNotFoundError,
    InvalidAmountError,
    InvalidTransitionError,
    LedgerError,
    UserNotFoundError,
)
from ...core.policy import authorize_admin
from ...events import EventBus, FundingRequestStatusChangedEvent, get_event_bus
from ...ormdb.database import session_scope
from ...ormdb.models import FundingRequest, FundingRequestStatus, TransactionType
from ...ormdb.repositories import FundingRequestRepository, UserAccountRepository
from .locks import UserLockRegistry
from .models import FundingResult, to_money
from .wallet_service import WalletService

logger = get_logger(__name__)

# Legal moves; anything else is an invalid transition
TRANSITIONS: Dict[FundingRequestStatus, FrozenSet[FundingRequestStatus]] = {
    FundingRequestStatus.PENDING: frozenset(
        {FundingRequestStatus.APPROVED, FundingRequestStatus.REJECTED}
    ),
    FundingRequestStatus.APPROVED: frozenset({FundingRequestStatus.COMPLETED}),
    FundingRequestStatus.REJECTED: frozenset(),
    FundingRequestStatus.COMPLETED: frozenset(),
}


class FundingWorkflow:
    """
    Moves funding requests through pending, approved, rejected and completed.

    Only completion moves money: the deposit and the status change commit
    together, so a request is never completed without its deposit.
    """

    def __init__(
        self,
        wallet_service: WalletService,
        locks: Optional[UserLockRegistry] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.logger = logger.bind(component="funding_workflow")
        self.wallet_service = wallet_service
        self.locks = locks if locks is not None else wallet_service.locks
        self.event_bus = event_bus if event_bus is not None else get_event_bus()

    async def submit(
        self,
        user_id: str,
        user_email: str,
        requested_amount,
        message: Optional[str] = None,
    ) -> FundingResult:
        """Open a pending request for the user. No money moves yet."""
        try:
            amount = to_money(requested_amount, "requested_amount")
            if amount <= 0:
                raise InvalidAmountError("Requested amount must be positive")

            with session_scope() as session:
                if UserAccountRepository(session).get(user_id) is None:
                    raise UserNotFoundError(user_id)
                request = FundingRequestRepository(session).create(
                    user_id, user_email, amount, message
                )
        except LedgerError as e:
            return FundingResult.from_error(e)
        except Exception as e:
            self.logger.error(
                "Failed to submit funding request",
                user_id=user_id,
                error=str(e),
                exc_info=True,
            )
            return FundingResult(success=False, error=str(e), error_code="internal_error")

        self.logger.info(
            "Funding request submitted",
            request_id=request.id,
            user_id=user_id,
            amount=str(amount),
        )
        await self._publish(request, None, admin_id=None)
        return FundingResult(success=True, request=request)

    async def approve(
        self, request_id: str, admin_id: str, admin_notes: Optional[str] = None
    ) -> FundingResult:
        """Approve a pending request; the admin then arranges payment off-system."""
        return await self._transition(
            request_id, FundingRequestStatus.APPROVED, admin_id, admin_notes
        )

    async def reject(
        self, request_id: str, admin_id: str, admin_notes: Optional[str] = None
    ) -> FundingResult:
        """Reject a pending request. Terminal."""
        return await self._transition(
            request_id, FundingRequestStatus.REJECTED, admin_id, admin_notes
        )

    async def complete(
        self,
        request_id: str,
        deposit_amount,
        admin_id: str,
        admin_notes: Optional[str] = None,
    ) -> FundingResult:
        """
        Deposit the amount actually received and complete an approved request.

        ``deposit_amount`` may differ from the amount requested. If the
        deposit cannot be made the request stays ``approved``.
        """
        try:
            amount = to_money(deposit_amount, "deposit_amount")
            if amount <= 0:
                raise InvalidAmountError("Deposit amount must be positive")

            with session_scope() as session:
                request = FundingRequestRepository(session).get(request_id)
                if request is None:
                    raise FundingRequestNotFoundError(request_id)
                user_id = request.user_id

            async with self.locks.lock_for(user_id):
                with session_scope() as session:
                    authorize_admin(session, admin_id)
                    requests = FundingRequestRepository(session)
                    request = self._load_for_transition(
                        requests, request_id, FundingRequestStatus.COMPLETED
                    )

                    transaction = self.wallet_service.apply_balance_change(
                        session,
                        user_id,
                        amount,
                        TransactionType.DEPOSIT,
                        f"Funding request deposit ({request_id})",
                        created_by=admin_id,
                        reference_id=request_id,
                    )
                    requests.set_status(
                        request, FundingRequestStatus.COMPLETED, admin_notes
                    )
        except LedgerError as e:
            self.logger.info(
                "Funding completion rejected", request_id=request_id, reason=e.code
            )
            return FundingResult.from_error(e)
        except Exception as e:
            self.logger.error(
                "Failed to complete funding request",
                request_id=request_id,
                error=str(e),
                exc_info=True,
            )
            return FundingResult(success=False, error=str(e), error_code="internal_error")

        self.logger.info(
            "Funding request completed",
            request_id=request_id,
            user_id=user_id,
            amount=str(amount),
            admin_id=admin_id,
        )

        await self.wallet_service.publish_committed(user_id, [transaction])
        await self._publish(
            request, FundingRequestStatus.APPROVED.value, admin_id=admin_id, amount=amount
        )

        return FundingResult(success=True, request=request, transaction_id=transaction.id)

    async def get_request(self, request_id: str) -> Optional[FundingRequest]:
        with session_scope() as session:
            return FundingRequestRepository(session).get(request_id)

    async def list_requests(
        self, status: Optional[Union[FundingRequestStatus, str]] = None
    ) -> List[FundingRequest]:
        """List requests oldest first, optionally only those in ``status``."""
        status_filter = FundingRequestStatus(status) if status is not None else None
        with session_scope() as session:
            return FundingRequestRepository(session).list(status_filter)

    async def list_user_requests(self, user_id: str) -> List[FundingRequest]:
        with session_scope() as session:
            return FundingRequestRepository(session).list_for_user(user_id)

    async def _transition(
        self,
        request_id: str,
        target: FundingRequestStatus,
        admin_id: str,
        admin_notes: Optional[str],
    ) -> FundingResult:
        try:
            with session_scope() as session:
                authorize_admin(session, admin_id)
                requests = FundingRequestRepository(session)
                request = self._load_for_transition(requests, request_id, target)
                previous = request.status
                requests.set_status(request, target, admin_notes)
        except LedgerError as e:
            self.logger.info(
                "Funding transition rejected",
                request_id=request_id,
                target=target.value,
                reason=e.code,
            )
            return FundingResult.from_error(e)
        except Exception as e:
            self.logger.error(
                "Failed to update funding request",
                request_id=request_id,
                error=str(e),
                exc_info=True,
            )
            return FundingResult(success=False, error=str(e), error_code="internal_error")

        self.logger.info(
            "Funding request status changed",
            request_id=request_id,
            previous_status=previous,
            new_status=target.value,
            admin_id=admin_id,
        )
        await self._publish(request, previous, admin_id=admin_id)
        return FundingResult(success=True, request=request)

    @staticmethod
    def _load_for_transition(
        requests: FundingRequestRepository,
        request_id: str,
        target: FundingRequestStatus,
    ) -> FundingRequest:
        request = requests.get(request_id, for_update=True)
        if request is None:
            raise FundingRequestNotFoundError(request_id)

        current = FundingRequestStatus(request.status)
        if target not in TRANSITIONS[current]:
            raise InvalidTransitionError("funding request", current.value, target.value)
        return request

    async def _publish(
        self,
        request: FundingRequest,
        previous_status: Optional[str],
        admin_id: Optional[str],
        amount=None,
    ) -> None:
        await self.event_bus.publish(
            FundingRequestStatusChangedEvent(
                request_id=request.id,
                user_id=request.user_id,
                previous_status=previous_status,
                new_status=request.status,
                amount=str(amount if amount is not None else request.requested_amount),
                admin_id=admin_id,
            )
        )
