"""Pydantic schemas for API request/response validation

Monetary fields are decimal strings so minor-unit totals survive JSON
clients that parse numbers as doubles.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from payout_gateway.domain.models import GroupFailure
from payout_gateway.infrastructure.database.models import Batch, Payout, Transfer
from payout_gateway.utils.date_utils import isoformat_utc


def money(value: Optional[int]) -> Optional[str]:
    return None if value is None else str(value)


class CreateBatchRequest(BaseModel):
    """Optional body for POST /v1/payouts/batch"""

    cycle_key: Optional[str] = Field(None, description="Only transfers from this weekly cycle (YYYY-MM-DD)")
    name: Optional[str] = Field(None, description="Custom batch name")
    limit: Optional[int] = Field(None, description="Max transfers in the batch; non-positive means no limit")


class TransferSchema(BaseModel):
    id: str
    idempotency_key: Optional[str] = None
    user_id: str
    bank_account_id: str
    amount: str
    status: str
    cycle_key: Optional[str] = None
    cycle_start: Optional[str] = None
    cycle_end: Optional[str] = None
    batch_id: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_model(cls, transfer: Transfer) -> "TransferSchema":
        return cls(
            id=transfer.id,
            idempotency_key=transfer.idempotency_key,
            user_id=transfer.user_id,
            bank_account_id=transfer.bank_account_id,
            amount=money(transfer.amount),
            status=transfer.status,
            cycle_key=transfer.cycle_key,
            cycle_start=isoformat_utc(transfer.cycle_start),
            cycle_end=isoformat_utc(transfer.cycle_end),
            batch_id=transfer.batch_id,
            created_at=isoformat_utc(transfer.created_at),
        )


class GroupErrorSchema(BaseModel):
    """A (user, bank account) group that was rolled back"""

    user_id: str
    bank_account_id: str
    payout_ids: List[str]
    code: str
    error: str

    @classmethod
    def from_failure(cls, failure: GroupFailure) -> "GroupErrorSchema":
        return cls(
            user_id=failure.user_id,
            bank_account_id=failure.bank_account_id,
            payout_ids=failure.payout_ids,
            code=failure.code,
            error=failure.message,
        )


class BatchSchema(BaseModel):
    id: str
    name: str
    status: str
    total_amount: str
    currency: str
    created_by_id: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None

    @classmethod
    def from_model(cls, batch: Batch) -> "BatchSchema":
        return cls(
            id=batch.id,
            name=batch.name,
            status=batch.status,
            total_amount=money(batch.total_amount),
            currency=batch.currency,
            created_by_id=batch.created_by_id,
            metadata=batch.batch_metadata,
            created_at=isoformat_utc(batch.created_at),
        )


class TransferRunResponse(BaseModel):
    """Response for POST /v1/payouts/transfers"""

    cycle_key: str
    cycle_start: str
    cycle_end: str
    transfer_count: int
    transfers: List[TransferSchema]
    errors: List[GroupErrorSchema]


class CreateBatchResponse(BaseModel):
    """Response for POST /v1/payouts/batch"""

    batch: BatchSchema
    transfer_count: int
    transfers: List[TransferSchema]


class RawBatchResponse(BaseModel):
    """Response for POST /v1/payouts/batch/create-batch"""

    batch: BatchSchema
    transfers: List[TransferSchema]
    errors: List[GroupErrorSchema]


class BatchListItem(BatchSchema):
    transfer_count: int = 0


class BatchListResponse(BaseModel):
    """Response for GET /v1/payouts/batch"""

    page: int
    limit: int
    total: int
    items: List[BatchListItem]


class PayoutSchema(BaseModel):
    id: str
    user_id: str
    bank_account_id: Optional[str] = None
    requested_amount: Optional[str] = None
    approved_amount: Optional[str] = None
    currency: str
    status: str
    transfer_reference: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_model(cls, payout: Payout) -> "PayoutSchema":
        return cls(
            id=payout.id,
            user_id=payout.user_id,
            bank_account_id=payout.bank_account_id,
            requested_amount=money(payout.requested_amount),
            approved_amount=money(payout.approved_amount),
            currency=payout.currency,
            status=payout.status,
            transfer_reference=payout.transfer_reference,
            created_at=isoformat_utc(payout.created_at),
        )


class PayoutListResponse(BaseModel):
    """Response for GET /v1/payouts"""

    page: int
    limit: int
    total: int
    items: List[PayoutSchema]
