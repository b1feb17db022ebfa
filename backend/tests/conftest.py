"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.consents import get_consent_service, get_ingestion_service
from api.webhooks import get_signature_verifier, get_webhook_service
from database import Base, get_db
from main import app
from services.consent_service import ConsentService
from services.ingestion_service import IngestionService
from services.signature_verifier import WebhookSignatureVerifier
from services.webhook_service import WebhookService
# Pytest fixtures - imported to make them available to tests
from tests.fixtures import (  # noqa: F401
    active_consent,
    consent,
    linked_account,
    ready_batch,
)
from tests.fixtures.mocks import FakeAAClient, generate_ec_key, generate_rsa_key


@pytest.fixture(name="db")
def db_fixture():
    """Create an in-memory SQLite database for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="session")
def rsa_key():
    """RSA signing key standing in for the provider's webhook key."""
    return generate_rsa_key()


@pytest.fixture(scope="session")
def ec_key():
    return generate_ec_key()


@pytest.fixture(name="fake_aa_client")
def fake_aa_client_fixture():
    """Fake AA client whose FI fetch returns nothing unless a test sets it."""
    return FakeAAClient()


@pytest.fixture(name="verifier")
def verifier_fixture(rsa_key):
    """Verifier trusting only ``rsa_key``."""
    return WebhookSignatureVerifier(
        public_key=rsa_key.public_key(),
        allowed_algorithms=["RS256", "ES256"],
        verification="enabled",
        environment="test",
    )


@pytest.fixture(name="client")
def client_fixture(db, fake_aa_client, verifier):
    """Create a test client with the test database, fake AA client and test verifier."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    ingestion_service = IngestionService(client=fake_aa_client)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_consent_service] = lambda: ConsentService(client=fake_aa_client)
    app.dependency_overrides[get_ingestion_service] = lambda: ingestion_service
    app.dependency_overrides[get_webhook_service] = lambda: WebhookService(ingestion_service)
    app.dependency_overrides[get_signature_verifier] = lambda: verifier
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture(name="failing_client")
def failing_client_fixture(db, verifier, request):
    """Test client whose AA client fails; parametrize indirectly with a failure type."""
    failing = FakeAAClient(should_fail=True, failure_type=getattr(request, "param", "generic"))

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_consent_service] = lambda: ConsentService(client=failing)
    app.dependency_overrides[get_ingestion_service] = lambda: IngestionService(client=failing)
    app.dependency_overrides[get_signature_verifier] = lambda: verifier
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
