"""Repository for funding request operations."""

import datetime
from decimal import Decimal
from typing import List, Optional

from ..models import FundingRequest, FundingRequestStatus
from .base import BaseRepository


class FundingRequestRepository(BaseRepository):
    """Repository for funding request operations."""

    def create(
        self,
        user_id: str,
        user_email: str,
        requested_amount: Decimal,
        message: Optional[str] = None,
    ) -> FundingRequest:
        request = FundingRequest(
            user_id=user_id,
            user_email=user_email,
            requested_amount=requested_amount,
            status=FundingRequestStatus.PENDING.value,
            message=message,
        )
        self.session.add(request)
        self.session.flush()
        return request

    def get(self, request_id: str, for_update: bool = False) -> Optional[FundingRequest]:
        query = self.session.query(FundingRequest).filter(
            FundingRequest.id == request_id
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def set_status(
        self,
        request: FundingRequest,
        status: FundingRequestStatus,
        admin_notes: Optional[str] = None,
    ) -> None:
        request.status = status.value
        if admin_notes is not None:
            request.admin_notes = admin_notes
        request.updated_at = datetime.datetime.now(datetime.UTC)
        self.session.flush()

    def list(self, status: Optional[FundingRequestStatus] = None) -> List[FundingRequest]:
        """List requests, oldest first, optionally filtered by status."""
        query = self.session.query(FundingRequest)
        if status is not None:
            query = query.filter(FundingRequest.status == status.value)
        return query.order_by(FundingRequest.created_at.asc()).all()

    def list_for_user(self, user_id: str) -> List[FundingRequest]:
        return (
            self.session.query(FundingRequest)
            .filter(FundingRequest.user_id == user_id)
            .order_by(FundingRequest.created_at.desc())
            .all()
        )

    def count_by_status(self, status: FundingRequestStatus) -> int:
        return (
            self.session.query(FundingRequest)
            .filter(FundingRequest.status == status.value)
            .count()
        )
