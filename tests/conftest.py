import os

# settings are read at import time, so the test environment must be in place first
os.environ["ENCODE_KEY"] = "test-encode-key-with-enough-length-for-hs256"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ["NONCE_REPLAY_GUARD"] = "false"
os.environ["MIN_CLAIM_INTERVAL_HOURS"] = "24"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone
from typing import Dict, Generator

import base58
import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from app.core.dependencies import get_clock
from app.db.base import Base
from app.db.session import get_db
from app.models.account import Account  # noqa: F401
from app.models.claim import ClaimTransaction  # noqa: F401
from app.models.session import WalletSession  # noqa: F401


# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite://"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

START = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable time source, injected in place of utc_now"""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class Wallet:
    """Real ED25519 key pair with a base58 address, like a browser wallet"""

    def __init__(self):
        self.private_key = Ed25519PrivateKey.generate()
        public_bytes = self.private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
        self.public_key = public_bytes
        self.address = base58.b58encode(public_bytes).decode()

    def sign_bytes(self, message: str) -> bytes:
        return self.private_key.sign(message.encode("utf-8"))

    def sign(self, message: str) -> str:
        return base58.b58encode(self.sign_bytes(message)).decode()


def login(client: TestClient, wallet: Wallet) -> Dict:
    """Full challenge -> sign -> connect round, returns the connect response body"""
    challenge = client.get("/auth/nonce", params={"address": wallet.address}).json()
    response = client.post(
        "/auth/connect",
        json={
            "address": wallet.address,
            "message": challenge["message"],
            "signature": wallet.sign(challenge["message"]),
        },
    )
    assert response.status_code == 200, response.text
    return response.json()


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db_engine():
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(db_engine) -> Generator[Session, None, None]:
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


def override_get_db() -> Generator:
    """Override database dependency for testing"""
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


@pytest.fixture
def client(db_engine, clock: FakeClock) -> TestClient:
    """Create a test client for the FastAPI application"""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def wallet() -> Wallet:
    return Wallet()


@pytest.fixture
def other_wallet() -> Wallet:
    return Wallet()


@pytest.fixture
def session_token(client: TestClient, wallet: Wallet) -> str:
    return login(client, wallet)["sessionToken"]


@pytest.fixture
def auth_headers(session_token: str) -> Dict[str, str]:
    return bearer(session_token)
