"""Pytest fixtures for testing"""

import os

# Settings are read at import time; provide them before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("MPESA_BASE_URL", "http://mock-daraja")
os.environ.setdefault("MPESA_CONSUMER_KEY", "test-key")
os.environ.setdefault("MPESA_CONSUMER_SECRET", "test-secret")
os.environ.setdefault("MPESA_SHORTCODE", "174379")
os.environ.setdefault("MPESA_PASSKEY", "test-passkey")
os.environ.setdefault("MPESA_CALLBACK_URL", "https://chama.example.com/v1/payments/callback")

import pytest
from datetime import datetime
from typing import Any, Dict, Generator
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from chama_gateway.api.main import create_app
from chama_gateway.infrastructure.database.models import Base, Member
from chama_gateway.infrastructure.database.session import get_db
from chama_gateway.infrastructure.database.repositories import MemberRepository
from chama_gateway.utils.date_utils import EAT


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

PROCESSING_TIME = datetime(2026, 10, 19, 9, 30, tzinfo=EAT)


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
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def member(db: Session) -> Member:
    """Active member whose local phone is 0712345678"""
    db_member = MemberRepository(db).create_member(full_name="Wanjiku Kamau", phone="0712345678")
    db.commit()
    return db_member


@pytest.fixture
def clock():
    return lambda: PROCESSING_TIME


def make_callback(
    receipt: str = "QHJ12345",
    amount: Any = 2000,
    phone: Any = 254712345678,
    checkout_request_id: str = "ws_CO_191020261230001",
) -> Dict[str, Any]:
    """Successful Daraja STK callback payload"""
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": checkout_request_id,
                "ResultCode": 0,
                "ResultDesc": "The service request is processed successfully.",
                "CallbackMetadata": {
                    "Item": [
                        {"Name": "Amount", "Value": amount},
                        {"Name": "MpesaReceiptNumber", "Value": receipt},
                        {"Name": "Balance"},
                        {"Name": "TransactionDate", "Value": 20261019093000},
                        {"Name": "PhoneNumber", "Value": phone},
                    ]
                },
            }
        }
    }


def make_failed_callback(result_code: int = 1, desc: str = "cancelled", checkout_request_id: str = "ws_CO_191020261230001"):
    return {
        "Body": {
            "stkCallback": {
                "MerchantRequestID": "29115-34620561-1",
                "CheckoutRequestID": checkout_request_id,
                "ResultCode": result_code,
                "ResultDesc": desc,
            }
        }
    }


@pytest.fixture
def callback_payload():
    """Factory for successful callback payloads"""
    return make_callback


@pytest.fixture
def failed_callback_payload():
    """Factory for failed callback payloads"""
    return make_failed_callback
