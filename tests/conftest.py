"""
IP Platform - Test Configuration

Pytest fixtures for authentication testing.
Provides test database, service, client, and principal fixtures.
"""

import os

# Must be set before ipplatform.config is imported
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ADMIN_DEFAULT_PASSWORD"] = ""
os.environ["TOKEN_CLEANUP_ENABLED"] = "false"

import re
from datetime import datetime, timedelta
from typing import Generator, Optional

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

from ipplatform.app import create_app
from ipplatform.auth.accounts import ensure_default_admin
from ipplatform.auth.database import get_engine, init_db
from ipplatform.auth.models import AccountStatus, Admin, Role, User
from ipplatform.auth.password import hash_password
from ipplatform.auth.service import AuthService
from ipplatform.auth.tokens import CredentialSigner


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite:///:memory:"

ADMIN_PASSWORD = "AdminPass123"
USER_PASSWORD = "UserPass123"
PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\n"


class RecordingNotifier:
    """Notification sink that keeps every message in memory."""

    def __init__(self):
        self.sent = []

    def send(self, to_address: str, subject: str, body: str) -> None:
        self.sent.append({"to": to_address, "subject": subject, "body": body})

    def to(self, address: str) -> list:
        return [m for m in self.sent if m["to"] == address]


class FailingNotifier:
    """Notification sink whose transport is always down."""

    def send(self, to_address: str, subject: str, body: str) -> None:
        raise ConnectionError("SMTP relay unreachable")


@pytest.fixture(scope="function")
def test_engine():
    """Create a fresh test database engine for each test."""
    engine = get_engine(TEST_DATABASE_URL)
    init_db(engine)

    yield engine

    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(test_engine) -> Generator[Session, None, None]:
    """Create a database session for testing."""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(scope="function")
def signer() -> CredentialSigner:
    return CredentialSigner("test-signing-key", access_token_ttl=timedelta(minutes=15))


@pytest.fixture(scope="function")
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(scope="function")
def service(db_session, signer, notifier) -> AuthService:
    """Auth service bound to the test database session."""
    return AuthService(db_session, signer, notifier)


@pytest.fixture(scope="function")
def client(test_engine, signer, notifier) -> Generator[TestClient, None, None]:
    """Create a test client with fresh database."""
    app = create_app(
        engine=test_engine,
        signer=signer,
        notifier=notifier,
        cleanup_enabled=False,
    )

    with TestClient(app) as c:
        yield c


@pytest.fixture(scope="function")
def test_admin(db_session) -> Admin:
    """Create a test admin."""
    return ensure_default_admin(
        db_session,
        username="root",
        password=ADMIN_PASSWORD,
        email="root@test.com",
        name="Root Admin",
    )


@pytest.fixture(scope="function")
def test_user(db_session) -> User:
    """Create an active test user."""
    return create_user(db_session, "bob", "bob@test.com", USER_PASSWORD)


def create_user(
    db: Session,
    username: str,
    email: str,
    password: Optional[str],
    status: AccountStatus = AccountStatus.ACTIVE,
) -> User:
    """Insert a user row directly."""
    now = datetime.utcnow()
    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password) if password else None,
        name=username.title(),
        role=Role.USER,
        account_status=status,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def login_user(client: TestClient, username: str, password: str, remember_me: bool = False) -> Optional[dict]:
    """Helper function to login and return tokens."""
    response = client.post(
        "/api/v1/auth/login",
        json={"username": username, "password": password, "remember_me": remember_me},
    )
    return response.json() if response.status_code == 200 else None


def auth_headers(access_token: str) -> dict:
    """Create authorization headers for authenticated requests."""
    return {"Authorization": f"Bearer {access_token}"}


def reset_token_from(notifier: RecordingNotifier, address: str) -> str:
    """Pull the reset token out of the last reset mail sent to address."""
    body = [m for m in notifier.to(address) if "reset" in m["subject"].lower()][-1]["body"]
    return re.search(r"token=([\w-]+)", body).group(1)
