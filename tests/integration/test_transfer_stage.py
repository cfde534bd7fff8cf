"""Integration tests for weekly transfer generation against the test database"""

import logging
import pytest
from datetime import datetime, timezone
from sqlalchemy.orm import Session

from payout_gateway.domain.exceptions import NoEligiblePayoutsError, NoTransfersCreatedError
from payout_gateway.domain.grouping import group_payouts
from payout_gateway.domain.cycle import week_window
from payout_gateway.domain.models import PayoutGroup
from payout_gateway.infrastructure.database.models import BankAccount, Batch, Payout, Transfer
from payout_gateway.infrastructure.database.repositories import PayoutRepository
from payout_gateway.services.batches import BatchAssembler
from payout_gateway.services.transfers import TransferGenerator
from tests.constants import AFTER_CYCLE, CYCLE_KEY, FIXED_NOW


def test_run_creates_one_transfer_per_user_and_bank(db: Session, clock, make_bank_account, make_payout):
    bank_a = make_bank_account("user_a")
    bank_b = make_bank_account("user_b")
    make_payout("user_a", bank_a.id, requested_amount=10000)
    make_payout("user_a", bank_a.id, requested_amount=5000, approved_amount=4000)
    make_payout("user_b", bank_b.id, requested_amount=2500)

    result = TransferGenerator(db, clock=clock).run()

    assert result.window.cycle_key == CYCLE_KEY
    assert result.failures == []
    amounts = {t.user_id: t.amount for t in result.transfers}
    assert amounts == {"user_a": 14000, "user_b": 2500}

    transfer_a = db.query(Transfer).filter(Transfer.user_id == "user_a").one()
    assert transfer_a.idempotency_key == f"payout-transfer:{CYCLE_KEY}:user_a:{bank_a.id}"
    assert transfer_a.cycle_key == CYCLE_KEY
    assert transfer_a.batch_id is None

    payouts = db.query(Payout).filter(Payout.user_id == "user_a").all()
    assert all(p.transfer_reference == transfer_a.id for p in payouts)
    assert all(p.status == "APPROVED" for p in payouts)


def test_run_excludes_payouts_outside_eligibility(db: Session, clock, make_bank_account, make_payout):
    bank = make_bank_account("user_a")
    included = make_payout("user_a", bank.id)
    late = make_payout("user_a", bank.id, created_at=AFTER_CYCLE)
    unbanked = make_payout("user_a", None)
    rejected = make_payout("user_a", bank.id, status="REJECTED")

    result = TransferGenerator(db, clock=clock).run()

    assert len(result.transfers) == 1
    transfer_id = result.transfers[0].id
    assert db.get(Payout, included.id).transfer_reference == transfer_id
    for payout_id in (late.id, unbanked.id, rejected.id):
        assert db.get(Payout, payout_id).transfer_reference is None


def test_no_eligible_payouts_writes_nothing(db: Session, clock, make_bank_account, make_payout):
    bank = make_bank_account("user_a")
    make_payout("user_a", bank.id, created_at=AFTER_CYCLE)

    with pytest.raises(NoEligiblePayoutsError) as exc_info:
        TransferGenerator(db, clock=clock).run()

    assert exc_info.value.cycle_key == CYCLE_KEY
    assert db.query(Transfer).count() == 0


def test_missing_bank_account_fails_only_its_group(db: Session, clock, make_bank_account, make_payout):
    """Partial failure: the valid group is written, the broken one is reported"""
    bank_a_id = make_bank_account("user_a").id
    bank_b = make_bank_account("user_b")
    payout_a_id = make_payout("user_a", bank_a_id).id
    make_payout("user_b", bank_b.id, requested_amount=7000)

    db.query(BankAccount).filter(BankAccount.id == bank_a_id).delete(synchronize_session=False)
    db.commit()

    result = TransferGenerator(db, clock=clock).run()

    assert [t.user_id for t in result.transfers] == ["user_b"]
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert (failure.user_id, failure.bank_account_id) == ("user_a", bank_a_id)
    assert failure.code == "bank_account_not_found"
    assert failure.payout_ids == [payout_a_id]
    assert db.get(Payout, payout_a_id).transfer_reference is None


def test_every_group_failing_raises(db: Session, clock, make_bank_account, make_payout):
    bank = make_bank_account("user_a")
    make_payout("user_a", bank.id)
    db.query(BankAccount).delete(synchronize_session=False)
    db.commit()

    with pytest.raises(NoTransfersCreatedError) as exc_info:
        TransferGenerator(db, clock=clock).run()

    assert [f.code for f in exc_info.value.failures] == ["bank_account_not_found"]
    assert db.query(Transfer).count() == 0


def test_rerun_same_cycle_updates_existing_transfer(db: Session, clock, make_bank_account, make_payout):
    """Idempotency: a second run in the same cycle refreshes, never duplicates"""
    bank = make_bank_account("user_a")
    make_payout("user_a", bank.id, requested_amount=10000)
    first = TransferGenerator(db, clock=clock).run()
    transfer_id = first.transfers[0].id

    # Backdated payout surfaces after the first run
    make_payout("user_a", bank.id, requested_amount=3000)
    later_clock = lambda: datetime(2024, 5, 18, 9, 0, tzinfo=timezone.utc)
    second = TransferGenerator(db, clock=later_clock).run()

    assert second.window.cycle_key == CYCLE_KEY
    assert [t.id for t in second.transfers] == [transfer_id]
    assert db.query(Transfer).count() == 1
    assert db.get(Transfer, transfer_id).amount == 13000
    assert all(p.transfer_reference == transfer_id for p in db.query(Payout).all())


def test_next_cycle_creates_new_transfer(db: Session, clock, make_bank_account, make_payout):
    bank = make_bank_account("user_a")
    make_payout("user_a", bank.id)
    TransferGenerator(db, clock=clock).run()

    make_payout("user_a", bank.id, created_at=AFTER_CYCLE)
    next_week = lambda: datetime(2024, 5, 22, 4, 30, tzinfo=timezone.utc)
    result = TransferGenerator(db, clock=next_week).run()

    assert result.window.cycle_key == "2024-05-19"
    assert db.query(Transfer).count() == 2


def test_stale_concurrent_run_cannot_double_claim(db: Session, clock, make_bank_account, make_payout):
    """At most one claim: a run working from a stale selection fails cleanly"""
    bank = make_bank_account("user_a")
    make_payout("user_a", bank.id, requested_amount=10000)
    make_payout("user_a", bank.id, requested_amount=20000)

    window = week_window(FIXED_NOW)
    stale_groups = group_payouts(PayoutRepository(db).find_eligible(created_before=window.cycle_end))

    winner = TransferGenerator(db, clock=clock).run()
    transfer_id = winner.transfers[0].id

    with pytest.raises(NoTransfersCreatedError) as exc_info:
        TransferGenerator(db, clock=clock).upsert_transfers(stale_groups, window)

    assert [f.code for f in exc_info.value.failures] == ["concurrency_conflict"]
    assert db.query(Transfer).count() == 1
    assert db.get(Transfer, transfer_id).amount == 30000
    linked = [p.transfer_reference for p in db.query(Payout).all()]
    assert linked == [transfer_id, transfer_id]


def test_stale_run_for_other_cycle_leaves_no_transfer(db: Session, clock, make_bank_account, make_payout):
    """A conflicting group rolls back the transfer it just created"""
    bank = make_bank_account("user_a")
    make_payout("user_a", bank.id)

    window = week_window(FIXED_NOW)
    stale_groups = group_payouts(PayoutRepository(db).find_eligible(created_before=window.cycle_end))
    TransferGenerator(db, clock=clock).run()

    other_window = week_window(datetime(2024, 5, 22, 4, 30, tzinfo=timezone.utc))
    with pytest.raises(NoTransfersCreatedError):
        TransferGenerator(db, clock=clock).upsert_transfers(stale_groups, other_window)

    assert db.query(Transfer).count() == 1
    assert db.query(Transfer).filter(Transfer.cycle_key == other_window.cycle_key).count() == 0


def test_amounts_past_float_precision_persist_exactly(db: Session, clock, make_bank_account, make_payout):
    bank = make_bank_account("user_a")
    make_payout("user_a", bank.id, requested_amount=2**53 - 1)
    make_payout("user_a", bank.id, requested_amount=2)

    result = TransferGenerator(db, clock=clock).run()

    assert db.get(Transfer, result.transfers[0].id).amount == 2**53 + 1


def test_overlapping_refreshes_keep_amount_equal_to_linked_payouts(
    db: Session, other_db: Session, clock, make_bank_account, make_payout
):
    """Two runs refresh one transfer with different new payouts; neither run's amount is lost"""
    bank = make_bank_account("user_a")
    make_payout("user_a", bank.id, requested_amount=100)
    transfer_id = TransferGenerator(db, clock=clock).run().transfers[0].id

    payout_a_id = make_payout("user_a", bank.id, requested_amount=20).id
    payout_b_id = make_payout("user_a", bank.id, requested_amount=3).id
    window = week_window(FIXED_NOW)

    # The slower run has already loaded the transfer at its old amount
    assert db.get(Transfer, transfer_id).amount == 100

    group_a = PayoutGroup(user_id="user_a", bank_account_id=bank.id, payout_ids=[payout_a_id], total=20)
    TransferGenerator(other_db, clock=clock).upsert_transfers([group_a], window)

    group_b = PayoutGroup(user_id="user_a", bank_account_id=bank.id, payout_ids=[payout_b_id], total=3)
    TransferGenerator(db, clock=clock).upsert_transfers([group_b], window)

    db.expire_all()
    linked = db.query(Payout).filter(Payout.transfer_reference == transfer_id).all()
    assert len(linked) == 3
    assert db.get(Transfer, transfer_id).amount == sum(p.requested_amount for p in linked) == 123


def test_refreshing_batched_transfer_logs_warning(
    db: Session, clock, super_admin, make_bank_account, make_payout, caplog
):
    """A batched transfer still absorbs late payouts, but its batch total is left alone"""
    bank = make_bank_account("user_a")
    make_payout("user_a", bank.id, requested_amount=100)
    TransferGenerator(db, clock=clock).run()
    batch_id = BatchAssembler(db, clock=clock).assemble(created_by_id=super_admin.id).batch.id

    make_payout("user_a", bank.id, requested_amount=20)
    with caplog.at_level(logging.WARNING):
        result = TransferGenerator(db, clock=clock).run()

    transfer = result.transfers[0]
    assert transfer.batch_id == batch_id
    assert transfer.amount == 120
    assert db.get(Batch, batch_id).total_amount == 100
    assert any(
        record.levelno == logging.WARNING and batch_id in record.getMessage()
        for record in caplog.records
    )
