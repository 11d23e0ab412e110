"""
Test configuration and fixtures for TransferGuard backend tests.
"""
import os

# Set test environment BEFORE any imports
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-key-for-testing-only-0123456789")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BUSINESS_TIMEZONE"] = "UTC"
os.environ.pop("POSTGRES_URI", None)

import itertools
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import get_db
from app.main import app
from app.models import Base, User, KycStatus, Transaction, TransactionStatus, TransactionType, TransferType
from app.services.notifications import ConnectionRegistry
from app.services.token_service import create_token_for_user
from app.services.transfer_service import TransferService


class AsyncSessionWrapper:
    """Async facade over a sync Session so services can run against SQLite."""

    def __init__(self, sync_session):
        self.sync_session = sync_session

    async def execute(self, *args, **kwargs):
        return self.sync_session.execute(*args, **kwargs)

    async def commit(self):
        self.sync_session.commit()

    async def rollback(self):
        self.sync_session.rollback()

    async def flush(self, *args, **kwargs):
        self.sync_session.flush(*args, **kwargs)

    async def close(self):
        self.sync_session.close()

    async def refresh(self, *args, **kwargs):
        return self.sync_session.refresh(*args, **kwargs)

    def add(self, *args, **kwargs):
        self.sync_session.add(*args, **kwargs)

    def __getattr__(self, name):
        return getattr(self.sync_session, name)


# Midday keeps the unusual-hour rule out of scores unless a test wants it
NOON = datetime.now(timezone.utc).replace(hour=12, minute=0, second=0, microsecond=0)

_emails = itertools.count(1)


@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine using SQLite."""
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def test_db_session(test_engine):
    """Create a test database session."""
    SessionLocal = sessionmaker(bind=test_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def db(test_db_session):
    return AsyncSessionWrapper(test_db_session)


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def service(registry) -> TransferService:
    return TransferService(registry)


@pytest.fixture
def make_user(test_db_session):
    """Factory for persisted users; KYC-approved LOW-risk with a healthy balance by default."""
    def _make(**overrides) -> User:
        fields: Dict[str, Any] = {
            "name": "Test User",
            "email": f"user{next(_emails)}@example.com",
            "role": "user",
            "balance": Decimal("50000.00"),
            "is_active": True,
            "kyc_status": KycStatus.approved,
            "risk_level": "LOW",
        }
        fields.update(overrides)
        user = User(**fields)
        test_db_session.add(user)
        test_db_session.commit()
        test_db_session.refresh(user)
        return user
    return _make


@pytest.fixture
def add_transaction(test_db_session):
    """Insert a historical transaction row directly."""
    def _add(
        user: User,
        amount,
        created_at: datetime,
        status: str = TransactionStatus.completed.value,
        transfer_type: str = TransferType.external_bank.value,
        bank_name: str | None = "Chase Bank",
    ) -> Transaction:
        at = created_at.astimezone(timezone.utc).replace(tzinfo=None)
        txn = Transaction(
            user_id=user.id,
            type=TransactionType.debit.value,
            amount=Decimal(str(amount)),
            description="Seeded transfer",
            status=status,
            transfer_type=transfer_type,
            bank_name=bank_name,
            meta={},
            created_at=at,
            updated_at=at,
        )
        test_db_session.add(txn)
        test_db_session.commit()
        test_db_session.refresh(txn)
        return txn
    return _add


@pytest.fixture
def established_user(make_user, add_transaction):
    """User with a month of Chase Bank history; a 15k transfer scores MEDIUM."""
    user = make_user()
    add_transaction(user, "10000.00", NOON - timedelta(days=3))
    add_transaction(user, "14000.00", NOON - timedelta(days=4))
    return user


def auth_headers(user: User) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_token_for_user(user)}"}


@pytest.fixture
def client(test_db_session):
    """TestClient bound to the SQLite session with a fresh registry and service."""
    async def override_get_db():
        yield AsyncSessionWrapper(test_db_session)

    app.dependency_overrides[get_db] = override_get_db
    app.state.connection_registry = ConnectionRegistry()
    app.state.transfer_service = TransferService(app.state.connection_registry)
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def sample_transfer() -> Dict[str, Any]:
    return {
        "amount": "500.00",
        "recipientInfo": "123456789012",
        "transferType": "external_bank",
        "bankName": "Chase Bank",
    }
