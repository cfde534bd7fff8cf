"""Pytest fixtures for testing"""

import pytest
from datetime import datetime
from typing import Callable, Dict, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from payout_gateway.api.main import create_app
from payout_gateway.api.dependencies import get_clock
from payout_gateway.infrastructure.database.models import AdminUser, BankAccount, Base, Payout
from payout_gateway.infrastructure.database.session import get_db
from payout_gateway.domain.models import PayoutStatus
from tests.constants import ADMIN_KEY, FIXED_NOW, IN_CYCLE, SUPER_KEY


# Test database
TEST_DATABASE_URL = "sqlite:///./test_payouts.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def other_db(db: Session) -> Generator[Session, None, None]:
    """Second session on the same database, for runs that overlap"""
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def client(db: Session, clock: Callable[[], datetime]) -> TestClient:
    """Create FastAPI test client with test database and a pinned clock"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    return TestClient(app)


@pytest.fixture
def super_admin(db: Session) -> AdminUser:
    admin = AdminUser(email="super@example.com", fullname="Super Admin", api_key=SUPER_KEY, role="SUPER")
    db.add(admin)
    db.commit()
    return admin


@pytest.fixture
def plain_admin(db: Session) -> AdminUser:
    admin = AdminUser(email="ops@example.com", fullname="Ops Admin", api_key=ADMIN_KEY, role="ADMIN")
    db.add(admin)
    db.commit()
    return admin


@pytest.fixture
def auth_headers(super_admin: AdminUser) -> Dict[str, str]:
    return {"Authorization": f"Bearer {SUPER_KEY}"}


@pytest.fixture
def make_bank_account(db: Session) -> Callable[..., BankAccount]:
    """Factory for bank accounts"""

    def _make(user_id: str) -> BankAccount:
        account = BankAccount(
            user_id=user_id,
            account_holder=f"Holder {user_id}",
            account_number="000123456789",
            ifsc="SBIN0000001",
        )
        db.add(account)
        db.commit()
        return account

    return _make


@pytest.fixture
def make_payout(db: Session) -> Callable[..., Payout]:
    """Factory for payouts; defaults to a REQUESTED payout inside the fixed cycle"""

    def _make(
        user_id: str,
        bank_account_id: str | None,
        requested_amount: int | None = 10000,
        approved_amount: int | None = None,
        status: str = PayoutStatus.REQUESTED.value,
        created_at: datetime = IN_CYCLE,
    ) -> Payout:
        payout = Payout(
            user_id=user_id,
            bank_account_id=bank_account_id,
            requested_amount=requested_amount,
            approved_amount=approved_amount,
            status=status,
            created_at=created_at,
        )
        db.add(payout)
        db.commit()
        return payout

    return _make
