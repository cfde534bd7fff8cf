"""POST /v1/payouts/transfers - weekly transfer generation"""

import logging
from datetime import datetime
from typing import Callable
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from payout_gateway.api.v1.schemas import GroupErrorSchema, TransferRunResponse, TransferSchema
from payout_gateway.api.dependencies import get_clock, get_request_id, require_payout_admin
from payout_gateway.infrastructure.database.models import AdminUser
from payout_gateway.infrastructure.database.session import get_db
from payout_gateway.domain.exceptions import NoEligiblePayoutsError, NoTransfersCreatedError
from payout_gateway.services.transfers import TransferGenerator

router = APIRouter()


@router.post("/payouts/transfers", response_model=TransferRunResponse, status_code=201)
def create_transfers(
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    admin: AdminUser = Depends(require_payout_admin),
):
    """
    Generate one transfer per (user, bank account) for the last closed week.

    Re-running for the same week refreshes the existing transfers instead of
    creating duplicates. Groups that fail are listed in `errors`; the request
    still succeeds when at least one transfer was written.
    """
    request_id = get_request_id(request)

    try:
        result = TransferGenerator(db, clock=clock, request_id=request_id).run()

    except NoEligiblePayoutsError as e:
        logging.info(f"Nothing to transfer: {e}", extra={"request_id": request_id, "cycle_key": e.cycle_key})
        raise HTTPException(status_code=400, detail={"error": str(e), "cycle_key": e.cycle_key})

    except NoTransfersCreatedError as e:
        logging.error(f"Transfer generation failed: {e}", extra={"request_id": request_id})
        raise HTTPException(
            status_code=500,
            detail={
                "error": str(e),
                "errors": [GroupErrorSchema.from_failure(f).model_dump() for f in e.failures],
            },
        )

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to create payout transfers")

    return TransferRunResponse(
        cycle_key=result.window.cycle_key,
        cycle_start=result.window.cycle_start.isoformat(),
        cycle_end=result.window.cycle_end.isoformat(),
        transfer_count=len(result.transfers),
        transfers=[TransferSchema.from_model(t) for t in result.transfers],
        errors=[GroupErrorSchema.from_failure(f) for f in result.failures],
    )
