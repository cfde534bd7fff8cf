"""Disbursement batch assembly from transfers or directly from payouts"""

import logging
import time
from datetime import datetime
from typing import Callable, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payout_gateway.config import settings
from payout_gateway.domain.exceptions import (
    ConcurrencyConflictError,
    NoEligiblePayoutsError,
    NoEligibleTransfersError,
    NoTransfersCreatedError,
    PersistenceFailureError,
)
from payout_gateway.domain.grouping import group_payouts
from payout_gateway.domain.models import BatchResult, BatchStatus, PayoutGroup, RawBatchResult
from payout_gateway.infrastructure.database.models import Transfer
from payout_gateway.infrastructure.database.repositories import BatchRepository, PayoutRepository, TransferRepository
from payout_gateway.infrastructure.observability.logging import log_stage_complete
from payout_gateway.infrastructure.observability.metrics import record_batch, transfers_written_counter
from payout_gateway.services.group_claims import process_groups
from payout_gateway.utils.date_utils import utc_now

TRANSFER_VARIANT = "transfers"
RAW_VARIANT = "raw_payouts"


class BatchAssembler:
    """Creates DRAFT batches for disbursement"""

    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utc_now,
        request_id: Optional[str] = None,
    ):
        self.db = db
        self.clock = clock
        self.request_id = request_id

    def assemble(
        self,
        created_by_id: str,
        cycle_key: Optional[str] = None,
        limit: Optional[int] = None,
        name: Optional[str] = None,
    ) -> BatchResult:
        """
        Batch up REQUESTED transfers that are not in a batch yet.

        The batch row and the transfer attachment share one unit of work.
        Attachment only touches transfers that are still unbatched, so a
        concurrent assembly that grabbed some of them first makes this one
        roll back instead of double-batching.

        Args:
            created_by_id: Admin creating the batch
            cycle_key: Only transfers from this weekly cycle
            limit: Max transfers; non-positive means no limit
            name: Batch label (default: "Batch-<now ISO>[-<cycle_key>]")

        Raises:
            NoEligibleTransfersError: Nothing to batch
            ConcurrencyConflictError: Some transfers were batched concurrently
            PersistenceFailureError: Database rejected the unit of work
        """
        start_time = time.time()
        effective_limit = limit if limit and limit > 0 else None

        transfer_repo = TransferRepository(self.db)
        transfers = transfer_repo.find_unbatched(cycle_key=cycle_key, limit=effective_limit)
        if not transfers:
            raise NoEligibleTransfersError(
                "No eligible payout transfers found to create a batch.", cycle_key=cycle_key
            )

        total_amount = 0
        for transfer in transfers:
            total_amount += transfer.amount
        transfer_ids = [transfer.id for transfer in transfers]

        if not name:
            name = f"Batch-{self.clock().isoformat()}" + (f"-{cycle_key}" if cycle_key else "")

        try:
            batch = BatchRepository(self.db).create(
                name=name,
                created_by_id=created_by_id,
                currency=settings.payout_currency,
                total_amount=total_amount,
                metadata={"cycle_key": cycle_key} if cycle_key else None,
            )
            attached = transfer_repo.attach_to_batch(transfer_ids, batch.id)
            if attached < len(transfer_ids):
                raise ConcurrencyConflictError(
                    f"Attached {attached} of {len(transfer_ids)} transfers; "
                    "the rest were batched by another request"
                )
            self.db.commit()

        except ConcurrencyConflictError:
            self.db.rollback()
            record_batch(TRANSFER_VARIANT, "conflict")
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailureError(f"Failed to create batch: {e}") from e

        record_batch(TRANSFER_VARIANT, "created", len(transfers))
        log_stage_complete(
            "batch_assembly",
            self.request_id,
            succeeded=len(transfers),
            failed=0,
            total_amount=total_amount,
            duration_ms=(time.time() - start_time) * 1000,
            batch_id=batch.id,
            cycle_key=cycle_key,
        )
        return BatchResult(batch=batch, transfers=transfers)

    def assemble_from_payouts(self, created_by_id: str) -> RawBatchResult:
        """
        Build a batch straight from eligible payouts, skipping weekly cycles.

        Flow:
        1. Select all unclaimed, bank-linked, REQUESTED payouts and group them
        2. Create and commit the DRAFT batch with a zero total
        3. Per group, in its own unit of work: create a transfer attached to
           the batch and claim the payouts
        4. All groups failed -> batch CANCELLED; otherwise store the total

        Raises:
            NoEligiblePayoutsError: Nothing to batch (no batch row is written)
            NoTransfersCreatedError: Every group failed
            PersistenceFailureError: Batch row could not be written
        """
        start_time = time.time()

        payouts = PayoutRepository(self.db).find_eligible()
        if not payouts:
            raise NoEligiblePayoutsError("No eligible payouts found to create a batch.")

        groups = group_payouts(payouts)
        if not groups:
            raise NoEligiblePayoutsError("No payout groups created from eligible payouts.")

        batch_repo = BatchRepository(self.db)
        try:
            batch = batch_repo.create(
                name=self.clock().isoformat(),
                created_by_id=created_by_id,
                currency=settings.payout_currency,
            )
            batch_id = batch.id
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailureError(f"Failed to create batch: {e}") from e

        transfer_repo = TransferRepository(self.db)
        batch_total = 0

        def make_transfer(group: PayoutGroup) -> Transfer:
            return transfer_repo.create_in_batch(group, batch_id)

        def add_total(group: PayoutGroup, transfer: Transfer) -> None:
            nonlocal batch_total
            batch_total += group.total

        transfers, failures = process_groups(
            self.db, groups, make_transfer, RAW_VARIANT, self.request_id, on_success=add_total
        )

        try:
            if transfers:
                batch.total_amount = batch_total
            else:
                batch.status = BatchStatus.CANCELLED.value
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailureError(f"Failed to finalize batch {batch_id}: {e}") from e

        if not transfers:
            record_batch(RAW_VARIANT, "cancelled")
            logging.error(
                f"Batch {batch_id} cancelled: no transfers created",
                extra={"request_id": self.request_id, "batch_id": batch_id, "failed": len(failures)},
            )
            raise NoTransfersCreatedError(
                "No transfers created. Likely no valid bank details for any group.", failures=failures
            )

        transfers_written_counter.labels(stage=RAW_VARIANT).inc(len(transfers))
        record_batch(RAW_VARIANT, "created", len(transfers))
        log_stage_complete(
            "raw_batch_assembly",
            self.request_id,
            succeeded=len(transfers),
            failed=len(failures),
            total_amount=batch_total,
            duration_ms=(time.time() - start_time) * 1000,
            batch_id=batch_id,
        )
        return RawBatchResult(batch=batch, transfers=transfers, failures=failures)
