"""Payout batch endpoints

POST /v1/payouts/batch              - batch unbatched transfers
POST /v1/payouts/batch/create-batch - batch straight from eligible payouts
GET  /v1/payouts/batch              - list batches
"""

import logging
from datetime import datetime
from typing import Callable, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from payout_gateway.api.v1.schemas import (
    BatchListItem,
    BatchListResponse,
    BatchSchema,
    CreateBatchRequest,
    CreateBatchResponse,
    GroupErrorSchema,
    RawBatchResponse,
    TransferSchema,
)
from payout_gateway.api.dependencies import get_clock, get_request_id, require_payout_admin
from payout_gateway.config import settings
from payout_gateway.infrastructure.database.models import AdminUser
from payout_gateway.infrastructure.database.repositories import BatchRepository
from payout_gateway.infrastructure.database.session import get_db
from payout_gateway.domain.exceptions import (
    ConcurrencyConflictError,
    NoEligiblePayoutsError,
    NoEligibleTransfersError,
    NoTransfersCreatedError,
    PersistenceFailureError,
)
from payout_gateway.services.batches import BatchAssembler

router = APIRouter()


@router.post("/payouts/batch", response_model=CreateBatchResponse, status_code=201)
def create_batch(
    request: Request,
    body: Optional[CreateBatchRequest] = None,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    admin: AdminUser = Depends(require_payout_admin),
):
    """
    Create a DRAFT batch from REQUESTED transfers that have no batch yet.

    Body is optional: `cycle_key` filters transfers by weekly cycle, `limit`
    caps the batch size, `name` overrides the generated label.
    """
    request_id = get_request_id(request)
    body = body or CreateBatchRequest()

    try:
        result = BatchAssembler(db, clock=clock, request_id=request_id).assemble(
            created_by_id=admin.id,
            cycle_key=body.cycle_key,
            limit=body.limit,
            name=body.name,
        )

    except NoEligibleTransfersError as e:
        logging.info(f"Nothing to batch: {e}", extra={"request_id": request_id, "cycle_key": e.cycle_key})
        raise HTTPException(status_code=400, detail={"error": str(e), "cycle_key": e.cycle_key})

    except ConcurrencyConflictError as e:
        logging.warning(f"Batch attach conflict: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail={"error": str(e)})

    except PersistenceFailureError as e:
        logging.error(f"Batch persistence failure: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to create payout batch")

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to create payout batch")

    return CreateBatchResponse(
        batch=BatchSchema.from_model(result.batch),
        transfer_count=len(result.transfers),
        transfers=[TransferSchema.from_model(t) for t in result.transfers],
    )


@router.post("/payouts/batch/create-batch", response_model=RawBatchResponse, status_code=201)
def create_batch_from_payouts(
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
    admin: AdminUser = Depends(require_payout_admin),
):
    """
    Create a batch and its transfers directly from eligible payouts.

    Each (user, bank account) group is written independently; failed groups
    are returned in `errors`. If no group succeeds the batch is cancelled.
    """
    request_id = get_request_id(request)

    try:
        result = BatchAssembler(db, clock=clock, request_id=request_id).assemble_from_payouts(
            created_by_id=admin.id,
        )

    except NoEligiblePayoutsError as e:
        logging.info(f"Nothing to batch: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=400, detail={"error": str(e)})

    except NoTransfersCreatedError as e:
        raise HTTPException(
            status_code=500,
            detail={
                "error": str(e),
                "errors": [GroupErrorSchema.from_failure(f).model_dump() for f in e.failures],
            },
        )

    except PersistenceFailureError as e:
        logging.error(f"Batch persistence failure: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to create payout batch & transfers")

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to create payout batch & transfers")

    return RawBatchResponse(
        batch=BatchSchema.from_model(result.batch),
        transfers=[TransferSchema.from_model(t) for t in result.transfers],
        errors=[GroupErrorSchema.from_failure(f) for f in result.failures],
    )


@router.get("/payouts/batch", response_model=BatchListResponse)
def list_batches(
    page: int = Query(1),
    limit: int = Query(20),
    status: Optional[str] = Query(None, description="Batch status, e.g. DRAFT"),
    q: Optional[str] = Query(None, description="Case-insensitive name search"),
    db: Session = Depends(get_db),
    admin: AdminUser = Depends(require_payout_admin),
):
    """List batches newest first with their transfer counts"""
    page = max(page, 1)
    limit = min(max(limit, 1), settings.batch_list_max_limit)

    batch_repo = BatchRepository(db)
    batches, total = batch_repo.list_batches(page, limit, status=status, name_query=q)
    counts = batch_repo.transfer_counts([b.id for b in batches])

    items = [
        BatchListItem(
            **BatchSchema.from_model(b).model_dump(),
            transfer_count=counts.get(b.id, 0),
        )
        for b in batches
    ]

    return BatchListResponse(page=page, limit=limit, total=total, items=items)
