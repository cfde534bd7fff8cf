"""Data access layer for payout entities"""

from datetime import datetime
from typing import Dict, List, Optional, Tuple
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from payout_gateway.infrastructure.database.models import AdminUser, BankAccount, Batch, Payout, Transfer
from payout_gateway.domain.models import (
    BatchStatus,
    CycleWindow,
    EligiblePayout,
    PayoutGroup,
    PayoutStatus,
)


class AdminRepository:
    """Repository for operator accounts"""

    def __init__(self, db: Session):
        self.db = db

    def get_active_by_api_key(self, api_key: str) -> Optional[AdminUser]:
        return (
            self.db.query(AdminUser)
            .filter(AdminUser.api_key == api_key, AdminUser.is_active.is_(True))
            .first()
        )


class BankAccountRepository:
    """Repository for beneficiary bank details"""

    def __init__(self, db: Session):
        self.db = db

    def exists(self, bank_account_id: str) -> bool:
        return (
            self.db.query(BankAccount.id)
            .filter(BankAccount.id == bank_account_id)
            .first()
            is not None
        )


class PayoutRepository:
    """Repository for user payouts"""

    def __init__(self, db: Session):
        self.db = db

    def find_eligible(self, created_before: Optional[datetime] = None) -> List[EligiblePayout]:
        """
        Select unclaimed, bank-linked, REQUESTED payouts.

        Args:
            created_before: Exclusive upper bound on created_at (cycle end)

        Returns:
            Payout projections oldest first; empty when nothing is eligible
        """
        query = self.db.query(
            Payout.id,
            Payout.user_id,
            Payout.bank_account_id,
            Payout.requested_amount,
            Payout.approved_amount,
        ).filter(
            Payout.bank_account_id.isnot(None),
            Payout.transfer_reference.is_(None),
            Payout.status == PayoutStatus.REQUESTED.value,
        )
        if created_before is not None:
            query = query.filter(Payout.created_at < created_before)

        rows = query.order_by(Payout.created_at, Payout.id).all()
        return [
            EligiblePayout(
                id=row.id,
                user_id=row.user_id,
                bank_account_id=row.bank_account_id,
                requested_amount=row.requested_amount,
                approved_amount=row.approved_amount,
            )
            for row in rows
        ]

    def claim_for_transfer(self, payout_ids: List[str], transfer_id: str) -> int:
        """
        Link payouts to a transfer, only where they are still unclaimed.

        Returns:
            Number of rows actually updated; lower than len(payout_ids) means
            another run claimed some of them first
        """
        if not payout_ids:
            return 0
        return (
            self.db.query(Payout)
            .filter(
                Payout.id.in_(payout_ids),
                Payout.transfer_reference.is_(None),
                Payout.status == PayoutStatus.REQUESTED.value,
            )
            .update(
                {
                    Payout.transfer_reference: transfer_id,
                    Payout.status: PayoutStatus.APPROVED.value,
                },
                synchronize_session=False,
            )
        )

    def list_payouts(
        self,
        page: int,
        limit: int,
        status: Optional[str] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
    ) -> Tuple[List[Payout], int]:
        """Page through payouts newest first"""
        query = self.db.query(Payout)
        if status:
            query = query.filter(Payout.status == status)
        if created_from is not None:
            query = query.filter(Payout.created_at >= created_from)
        if created_to is not None:
            query = query.filter(Payout.created_at <= created_to)

        total = query.count()
        items = (
            query.order_by(Payout.created_at.desc(), Payout.id)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total


class TransferRepository:
    """Repository for aggregated transfers"""

    def __init__(self, db: Session):
        self.db = db

    def upsert_weekly(self, idempotency_key: str, group: PayoutGroup, window: CycleWindow) -> Transfer:
        """
        Create the cycle transfer for a group, or lock and refresh the existing one.

        The row lock is held until the caller commits, so overlapping runs for
        the same cycle refresh one after the other. The amount of a refreshed
        transfer is left to sync_amount once its payouts are claimed.
        """
        transfer = (
            self.db.query(Transfer)
            .filter(Transfer.idempotency_key == idempotency_key)
            .with_for_update()
            .first()
        )
        if transfer is None:
            transfer = Transfer(
                idempotency_key=idempotency_key,
                user_id=group.user_id,
                bank_account_id=group.bank_account_id,
                amount=group.total,
                status=PayoutStatus.REQUESTED.value,
                cycle_key=window.cycle_key,
                cycle_start=window.cycle_start,
                cycle_end=window.cycle_end,
            )
            self.db.add(transfer)
        else:
            transfer.cycle_start = window.cycle_start
            transfer.cycle_end = window.cycle_end

        self.db.flush()  # Get ID / surface unique violations without committing
        return transfer

    def create_in_batch(self, group: PayoutGroup, batch_id: str) -> Transfer:
        """Create an ad hoc transfer already attached to a batch"""
        transfer = Transfer(
            user_id=group.user_id,
            bank_account_id=group.bank_account_id,
            amount=group.total,
            status=PayoutStatus.REQUESTED.value,
            batch_id=batch_id,
        )
        self.db.add(transfer)
        self.db.flush()
        return transfer

    def sync_amount(self, transfer: Transfer) -> None:
        """Set amount to the sum of every payout linked to the transfer, in SQL"""
        linked = (
            select(
                func.coalesce(
                    func.sum(func.coalesce(Payout.approved_amount, Payout.requested_amount, 0)),
                    0,
                )
            )
            .where(Payout.transfer_reference == transfer.id)
            .scalar_subquery()
        )
        self.db.query(Transfer).filter(Transfer.id == transfer.id).update(
            {Transfer.amount: linked}, synchronize_session=False
        )
        self.db.expire(transfer, ["amount"])

    def find_unbatched(self, cycle_key: Optional[str] = None, limit: Optional[int] = None) -> List[Transfer]:
        """REQUESTED transfers with no batch yet, oldest first"""
        query = self.db.query(Transfer).filter(
            Transfer.batch_id.is_(None),
            Transfer.status == PayoutStatus.REQUESTED.value,
        )
        if cycle_key:
            query = query.filter(Transfer.cycle_key == cycle_key)

        query = query.order_by(Transfer.created_at, Transfer.id)
        if limit:
            query = query.limit(limit)
        return query.all()

    def attach_to_batch(self, transfer_ids: List[str], batch_id: str) -> int:
        """Attach transfers that are still unbatched; returns rows updated"""
        if not transfer_ids:
            return 0
        return (
            self.db.query(Transfer)
            .filter(Transfer.id.in_(transfer_ids), Transfer.batch_id.is_(None))
            .update({Transfer.batch_id: batch_id}, synchronize_session=False)
        )


class BatchRepository:
    """Repository for disbursement batches"""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        name: str,
        created_by_id: str,
        currency: str,
        total_amount: int = 0,
        metadata: Optional[dict] = None,
    ) -> Batch:
        batch = Batch(
            name=name,
            status=BatchStatus.DRAFT.value,
            total_amount=total_amount,
            currency=currency,
            created_by_id=created_by_id,
            batch_metadata=metadata,
        )
        self.db.add(batch)
        self.db.flush()
        return batch

    def list_batches(
        self,
        page: int,
        limit: int,
        status: Optional[str] = None,
        name_query: Optional[str] = None,
    ) -> Tuple[List[Batch], int]:
        """Page through batches newest first"""
        query = self.db.query(Batch)
        if status:
            query = query.filter(Batch.status == status)
        if name_query:
            query = query.filter(Batch.name.ilike(f"%{name_query}%"))

        total = query.count()
        items = (
            query.order_by(Batch.created_at.desc(), Batch.id)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def transfer_counts(self, batch_ids: List[str]) -> Dict[str, int]:
        if not batch_ids:
            return {}
        rows = (
            self.db.query(Transfer.batch_id, func.count(Transfer.id))
            .filter(Transfer.batch_id.in_(batch_ids))
            .group_by(Transfer.batch_id)
            .all()
        )
        return {batch_id: count for batch_id, count in rows}
