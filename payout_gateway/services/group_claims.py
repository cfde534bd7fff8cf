"""Per-group unit of work shared by the weekly and ad hoc transfer stages"""

from typing import Callable, List, Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payout_gateway.domain.exceptions import (
    BankAccountNotFoundError,
    ConcurrencyConflictError,
    GroupError,
    PersistenceFailureError,
)
from payout_gateway.domain.models import GroupFailure, PayoutGroup
from payout_gateway.infrastructure.database.models import Transfer
from payout_gateway.infrastructure.database.repositories import (
    BankAccountRepository,
    PayoutRepository,
    TransferRepository,
)
from payout_gateway.infrastructure.observability.logging import log_group_failure
from payout_gateway.infrastructure.observability.metrics import record_group_failure

TransferFactory = Callable[[PayoutGroup], Transfer]


def commit_group(db: Session, group: PayoutGroup, make_transfer: TransferFactory) -> Transfer:
    """
    Write one group's transfer and claim its payouts, all or nothing.

    Steps:
    1. Bank account must still exist
    2. make_transfer creates (or refreshes) the transfer row
    3. Payouts are claimed only where still unclaimed and REQUESTED;
       any shortfall means another run got there first
    4. The transfer amount is recomputed from every payout now linked to it

    The session is committed on success and rolled back on any failure.

    Raises:
        BankAccountNotFoundError, ConcurrencyConflictError, PersistenceFailureError
    """
    try:
        if not BankAccountRepository(db).exists(group.bank_account_id):
            raise BankAccountNotFoundError(
                f"Bank account not found for id={group.bank_account_id} (user={group.user_id})"
            )

        transfer = make_transfer(group)

        claimed = PayoutRepository(db).claim_for_transfer(group.payout_ids, transfer.id)
        if claimed < len(group.payout_ids):
            raise ConcurrencyConflictError(
                f"Claimed {claimed} of {len(group.payout_ids)} payouts for group {group.key}; "
                "the rest were linked by another run"
            )

        TransferRepository(db).sync_amount(transfer)
        db.commit()
        return transfer

    except GroupError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        raise PersistenceFailureError(f"Database error for group {group.key}: {e}") from e


def process_groups(
    db: Session,
    groups: List[PayoutGroup],
    make_transfer: TransferFactory,
    stage: str,
    request_id: Optional[str] = None,
    on_success: Optional[Callable[[PayoutGroup, Transfer], None]] = None,
) -> Tuple[List[Transfer], List[GroupFailure]]:
    """
    Run commit_group for every group, collecting successes and failures.

    A failed group never stops the loop; it is returned as a GroupFailure.
    """
    transfers: List[Transfer] = []
    failures: List[GroupFailure] = []

    for group in groups:
        try:
            transfer = commit_group(db, group, make_transfer)
        except GroupError as e:
            failure = GroupFailure(
                user_id=group.user_id,
                bank_account_id=group.bank_account_id,
                payout_ids=list(group.payout_ids),
                code=e.code,
                message=str(e),
            )
            failures.append(failure)
            record_group_failure(stage, e.code)
            log_group_failure(stage, failure, request_id)
            continue

        transfers.append(transfer)
        if on_success is not None:
            on_success(group, transfer)

    return transfers, failures
