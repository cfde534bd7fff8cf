"""SQLAlchemy ORM models for payouts, transfers and disbursement batches"""

import uuid
from sqlalchemy import Column, String, BigInteger, Boolean, DateTime, ForeignKey, Text, JSON, Index
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

from payout_gateway.domain.models import BatchStatus, PayoutStatus

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class AdminUser(Base):
    """Operator allowed to trigger payout runs, identified by API key"""

    __tablename__ = "admin_user"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(Text, nullable=False, unique=True)
    fullname = Column(Text, nullable=True)
    api_key = Column(Text, nullable=False, unique=True, index=True)
    role = Column(Text, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class BankAccount(Base):
    """Beneficiary bank details owned by the onboarding flow"""

    __tablename__ = "bank_account"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    account_holder = Column(Text, nullable=True)
    account_number = Column(Text, nullable=True)
    ifsc = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Payout(Base):
    """
    A single payout obligation to a user.

    Created by the payout-request flow; this service only links it to a
    transfer and advances its status. Amounts are minor units (paise).
    bank_account_id is a plain reference so a deleted bank account surfaces
    as a group failure instead of a constraint error.
    """

    __tablename__ = "payout"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    bank_account_id = Column(String(36), nullable=True)
    requested_amount = Column(BigInteger, nullable=True)
    approved_amount = Column(BigInteger, nullable=True)
    currency = Column(Text, nullable=False, default="INR")
    status = Column(Text, nullable=False, default=PayoutStatus.REQUESTED.value)
    transfer_reference = Column(String(36), ForeignKey("transfer.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    transfer = relationship("Transfer", back_populates="payouts")

    __table_args__ = (Index("ix_payout_eligibility", "status", "transfer_reference", "created_at"),)


class Transfer(Base):
    """Aggregated disbursement for one (user, bank account), weekly or ad hoc"""

    __tablename__ = "transfer"

    id = Column(String(36), primary_key=True, default=new_id)
    idempotency_key = Column(Text, nullable=True, unique=True)
    user_id = Column(Text, nullable=False, index=True)
    bank_account_id = Column(String(36), nullable=False)
    amount = Column(BigInteger, nullable=False)
    status = Column(Text, nullable=False, default=PayoutStatus.REQUESTED.value)
    cycle_key = Column(Text, nullable=True, index=True)
    cycle_start = Column(DateTime(timezone=True), nullable=True)
    cycle_end = Column(DateTime(timezone=True), nullable=True)
    batch_id = Column(String(36), ForeignKey("batch.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    batch = relationship("Batch", back_populates="transfers")
    payouts = relationship("Payout", back_populates="transfer")


class Batch(Base):
    """Collection of transfers submitted together for disbursement"""

    __tablename__ = "batch"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default=BatchStatus.DRAFT.value)
    total_amount = Column(BigInteger, nullable=False, default=0)
    currency = Column(Text, nullable=False, default="INR")
    created_by_id = Column(String(36), ForeignKey("admin_user.id"), nullable=False)
    batch_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    created_by = relationship("AdminUser")
    transfers = relationship("Transfer", back_populates="batch")
