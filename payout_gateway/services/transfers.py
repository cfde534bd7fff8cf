"""Weekly transfer generation: eligible payouts -> one transfer per (user, bank account)"""

import logging
import time
from datetime import datetime
from typing import Callable, List, Optional
from sqlalchemy.orm import Session

from payout_gateway.config import settings
from payout_gateway.domain.cycle import build_idempotency_key, offset_from_minutes, week_window
from payout_gateway.domain.exceptions import NoEligiblePayoutsError, NoTransfersCreatedError
from payout_gateway.domain.grouping import group_payouts
from payout_gateway.domain.models import CycleWindow, PayoutGroup, TransferRunResult
from payout_gateway.infrastructure.database.models import Transfer
from payout_gateway.infrastructure.database.repositories import PayoutRepository, TransferRepository
from payout_gateway.infrastructure.observability.logging import log_stage_complete
from payout_gateway.infrastructure.observability.metrics import transfers_written_counter
from payout_gateway.services.group_claims import process_groups
from payout_gateway.utils.date_utils import utc_now

STAGE = "weekly_transfers"


class TransferGenerator:
    """Creates or refreshes the weekly transfers for the last closed cycle"""

    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utc_now,
        request_id: Optional[str] = None,
    ):
        self.db = db
        self.clock = clock
        self.request_id = request_id
        self.utc_offset = offset_from_minutes(settings.cycle_utc_offset_minutes)

    def current_window(self) -> CycleWindow:
        return week_window(self.clock(), self.utc_offset)

    def run(self) -> TransferRunResult:
        """
        Generate transfers for the cycle that closed most recently.

        Flow:
        1. Compute the weekly window from the injected clock
        2. Select eligible payouts created before the window end
        3. Group by (user, bank account)
        4. Upsert one transfer per group, each in its own unit of work

        Raises:
            NoEligiblePayoutsError: Nothing to do for this cycle
            NoTransfersCreatedError: Every group failed
        """
        window = self.current_window()
        logging.info(
            f"Creating payout transfers for weekly cycle {window.cycle_key}: "
            f"{window.cycle_start.isoformat()} -> {window.cycle_end.isoformat()}",
            extra={"request_id": self.request_id, "cycle_key": window.cycle_key},
        )

        payouts = PayoutRepository(self.db).find_eligible(created_before=window.cycle_end)
        if not payouts:
            raise NoEligiblePayoutsError("No eligible payouts found for this weekly cycle.", cycle_key=window.cycle_key)

        groups = group_payouts(payouts)
        if not groups:
            raise NoEligiblePayoutsError("No payout groups created from eligible payouts.", cycle_key=window.cycle_key)

        logging.info(
            f"Created {len(groups)} payout groups from {len(payouts)} eligible payouts",
            extra={"request_id": self.request_id, "cycle_key": window.cycle_key},
        )
        return self.upsert_transfers(groups, window)

    def upsert_transfers(self, groups: List[PayoutGroup], window: CycleWindow) -> TransferRunResult:
        """Upsert transfers for pre-built groups; failures are collected per group"""
        start_time = time.time()
        repo = TransferRepository(self.db)

        def make_transfer(group: PayoutGroup) -> Transfer:
            key = build_idempotency_key(window.cycle_key, group.user_id, group.bank_account_id)
            transfer = repo.upsert_weekly(key, group, window)
            if transfer.batch_id is not None:
                # Batch totals are not resynced
                logging.warning(
                    f"Refreshing transfer {transfer.id} already held by batch {transfer.batch_id}",
                    extra={
                        "request_id": self.request_id,
                        "cycle_key": window.cycle_key,
                        "batch_id": transfer.batch_id,
                        "payout_ids": group.payout_ids,
                    },
                )
            return transfer

        written_total = 0

        def add_total(group: PayoutGroup, transfer: Transfer) -> None:
            nonlocal written_total
            written_total += group.total

        transfers, failures = process_groups(
            self.db, groups, make_transfer, STAGE, self.request_id, on_success=add_total
        )

        duration_ms = (time.time() - start_time) * 1000
        log_stage_complete(
            STAGE,
            self.request_id,
            succeeded=len(transfers),
            failed=len(failures),
            total_amount=written_total,
            duration_ms=duration_ms,
            cycle_key=window.cycle_key,
        )

        if not transfers:
            raise NoTransfersCreatedError("No transfers created; every payout group failed.", failures=failures)

        transfers_written_counter.labels(stage=STAGE).inc(len(transfers))
        return TransferRunResult(window=window, transfers=transfers, failures=failures)
