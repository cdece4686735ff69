# tests/conftest.py

import os

# Settings are read once at import time; point them at test values first.
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["APP_URL"] = "http://localhost:3000"

import pytest
from starlette.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from inklink.main import app
from inklink.db.session import get_db
from inklink.db.base_class import Base
from inklink.core.config import Settings
from inklink.core.limiter import limiter
from inklink.services.payment import PaymentProviderFactory
import inklink.models  # noqa: F401

from tests.utils.payments import FakeProvider


# --- Test Database Setup ---
# One in-memory database shared by every session of a test
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def test_settings():
    return Settings(
        DATABASE_URL="sqlite://",
        JWT_SECRET="test-secret",
        PAYMENT_MIN_AMOUNT=50,
        PAYMENT_PROVIDER_TIMEOUT_SECONDS=0.5,
    )


@pytest.fixture(scope="function")
def stripe_fake():
    return FakeProvider(code="stripe", signature_header="Stripe-Signature")


@pytest.fixture(scope="function")
def paypal_fake():
    return FakeProvider(code="paypal", signature_header="PAYPAL-TRANSMISSION-SIG")


@pytest.fixture(scope="function")
def providers(stripe_fake):
    """Only the card processor is configured unless a test registers more."""
    return PaymentProviderFactory({"stripe": stripe_fake})


# --- Test Client Fixtures ---
@pytest.fixture(scope="function")
def test_client(db, providers):
    """
    Provides a TestClient that uses the in-memory test database and the fake
    payment processors. Authentication is real: send headers from
    tests.utils.auth.
    """

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.state.payment_providers = providers
    limiter.enabled = False

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
    limiter.enabled = True
