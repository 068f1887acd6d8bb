import os
import uuid

import pytest
from fastapi.testclient import TestClient

# Configure the app through its environment BEFORE any app imports.
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["STRIPE_PRICE_ID"] = "price_default"
os.environ["STRIPE_TRIAL_DAYS"] = "14"
os.environ["SITE_URL"] = "https://example.test"
os.environ["AUTH_JWT_SECRET"] = "test-secret"
os.environ["AUTH_JWT_ALGORITHM"] = "HS256"
os.environ["RECONCILE_ENABLED"] = "false"

from app.db import Base, SessionLocal, engine  # noqa: E402
from app.models.billing import (  # noqa: E402
    CustomerMapping,
    LegacyCustomerMapping,
    Profile,
)
from app.services.billing.store import BillingStore  # noqa: E402
from tests.mocks import FakeProvider  # noqa: E402
from tests.payloads import create_access_token  # noqa: E402

# Create all tables
Base.metadata.create_all(engine)


@pytest.fixture()
def db_session():
    """Session on the shared StaticPool connection; tables are emptied after."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        with engine.begin() as conn:
            for table in reversed(Base.metadata.sorted_tables):
                conn.execute(table.delete())


@pytest.fixture()
def store(db_session):
    return BillingStore(db_session)


@pytest.fixture()
def provider():
    return FakeProvider()


@pytest.fixture()
def user_id():
    return uuid.uuid4()


@pytest.fixture()
def mapped_user(db_session, user_id):
    """A user with a profile and a current customer mapping to ``cus_1``."""
    db_session.add(Profile(id=user_id, email="member@example.com"))
    db_session.add(CustomerMapping(user_id=user_id, external_customer_id="cus_1"))
    db_session.commit()
    return user_id


@pytest.fixture()
def legacy_user(db_session, user_id):
    """A user known only through the legacy mapping table."""
    db_session.add(Profile(id=user_id, email="legacy@example.com"))
    db_session.add(
        LegacyCustomerMapping(user_id=user_id, external_customer_id="cus_legacy")
    )
    db_session.commit()
    return user_id


# ============ FastAPI Test Client Fixtures ============


@pytest.fixture()
def client(db_session, provider):
    """Create a test client with database and provider overrides."""
    from app.api.deps import get_db, get_provider
    from app.main import app

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_provider] = lambda: provider

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers(user_id):
    token = create_access_token(user_id, "member@example.com")
    return {"Authorization": f"Bearer {token}"}
