"""GET /v1/payouts - Browse user payouts"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from payout_gateway.api.v1.schemas import PayoutListResponse, PayoutSchema
from payout_gateway.api.dependencies import require_payout_admin
from payout_gateway.infrastructure.database.models import AdminUser
from payout_gateway.infrastructure.database.repositories import PayoutRepository
from payout_gateway.infrastructure.database.session import get_db
from payout_gateway.utils.date_utils import end_of_day_utc, start_of_day_utc

router = APIRouter()


@router.get("/payouts", response_model=PayoutListResponse)
def list_payouts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None, description="Payout status, e.g. REQUESTED"),
    date_from: Optional[date] = Query(None, alias="from", description="Created on or after (YYYY-MM-DD, UTC)"),
    date_to: Optional[date] = Query(None, alias="to", description="Created on or before (YYYY-MM-DD, UTC)"),
    db: Session = Depends(get_db),
    admin: AdminUser = Depends(require_payout_admin),
):
    """
    Retrieve payouts newest first.

    Returns:
        Page of payouts with amounts as decimal strings
    """
    payouts, total = PayoutRepository(db).list_payouts(
        page,
        limit,
        status=status,
        created_from=start_of_day_utc(date_from) if date_from else None,
        created_to=end_of_day_utc(date_to) if date_to else None,
    )

    return PayoutListResponse(
        page=page,
        limit=limit,
        total=total,
        items=[PayoutSchema.from_model(p) for p in payouts],
    )
