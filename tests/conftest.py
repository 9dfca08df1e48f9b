"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Generator, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from finboard.api.main import create_app
from finboard.api.dependencies import get_clock, get_identity_client
from finboard.domain.models import Principal
from finboard.infrastructure.database.models import Base, SubscriptionPlan
from finboard.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

FIXED_NOW = datetime(2024, 3, 15, 10, 30, tzinfo=timezone.utc)

PRINCIPALS = {
    "user-token": Principal(user_id="user-1", role="user"),
    "other-token": Principal(user_id="user-2", role="user"),
    "admin-token": Principal(user_id="admin-1", role="admin"),
}


class FakeIdentityClient:
    """Resolves a fixed set of tokens without calling the identity provider"""

    def __init__(self, principals: Dict[str, Principal]):
        self.principals = principals

    async def get_principal(self, access_token: str) -> Optional[Principal]:
        return self.principals.get(access_token)


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
def now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def client(db: Session, now: datetime) -> TestClient:
    """Create FastAPI test client with test database, fake identity and pinned clock"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_identity_client] = lambda: FakeIdentityClient(PRINCIPALS)
    app.dependency_overrides[get_clock] = lambda: (lambda: now)
    return TestClient(app)


@pytest.fixture
def user_headers() -> Dict[str, str]:
    return {"Authorization": "Bearer user-token"}


@pytest.fixture
def other_user_headers() -> Dict[str, str]:
    return {"Authorization": "Bearer other-token"}


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"Authorization": "Bearer admin-token"}


@pytest.fixture
def premium_plan(db: Session) -> SubscriptionPlan:
    """Active plan priced at 299.00/month or 2990.00/year"""
    plan = SubscriptionPlan(
        plan_name="premium",
        price_monthly=Decimal("299.00"),
        price_yearly=Decimal("2990.00"),
        is_active=True,
    )
    db.add(plan)
    db.commit()
    return plan
