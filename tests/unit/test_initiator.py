"""Unit tests for payment initiation"""

import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy.exc import OperationalError
from chama_gateway.services.initiator import PaymentInitiator, build_reference
from chama_gateway.domain.models import PaymentPurpose, PushAcknowledgement
from chama_gateway.domain.exceptions import GatewayRequestError, ValidationError
from chama_gateway.infrastructure.database.repositories import PaymentIntentRepository

MEMBER_ID = "3f6c1b2a-9d4e-4c1f-8a77-2b1e0c9d5f10"

ACK = PushAcknowledgement(
    checkout_request_id="ws_CO_191020261230001",
    merchant_request_id="29115-34620561-1",
    customer_message="Success. Request accepted for processing",
)


@pytest.fixture
def gateway():
    client = MagicMock()
    client.request_push = AsyncMock(return_value=ACK)
    return client


def make_initiator(gateway, intents=None) -> PaymentInitiator:
    return PaymentInitiator(
        gateway=gateway,
        short_code="174379",
        callback_url="https://chama.example.com/cb",
        intents=intents,
    )


def test_build_reference_uses_member_id_prefix():
    assert build_reference(MEMBER_ID) == "CHAMA-3F6C1B2A"


def test_build_reference_short_member_id():
    assert build_reference("m1") == "CHAMA-M1"


async def test_initiate_returns_correlation_id(gateway):
    result = await make_initiator(gateway).initiate("0712345678", 2000, MEMBER_ID)

    assert result.correlation_id == "ws_CO_191020261230001"
    assert result.reference == "CHAMA-3F6C1B2A"
    assert "PIN" in result.message

    kwargs = gateway.request_push.await_args.kwargs
    assert kwargs["phone"] == "254712345678"
    assert kwargs["amount"] == Decimal("2000")
    assert kwargs["short_code"] == "174379"
    assert kwargs["reference"] == "CHAMA-3F6C1B2A"
    assert kwargs["description"] == "Chama Contribution"


async def test_initiate_accepts_international_phone(gateway):
    await make_initiator(gateway).initiate("254712345678", "500", MEMBER_ID, "loan_repayment")

    kwargs = gateway.request_push.await_args.kwargs
    assert kwargs["phone"] == "254712345678"
    assert kwargs["description"] == "Chama Loan Repayment"


@pytest.mark.parametrize(
    "phone,amount,member_id,purpose",
    [
        ("12345", 100, MEMBER_ID, "contribution"),
        ("0712345678", 0, MEMBER_ID, "contribution"),
        ("0712345678", -50, MEMBER_ID, "contribution"),
        ("0712345678", "10.50", MEMBER_ID, "contribution"),
        ("0712345678", "abc", MEMBER_ID, "contribution"),
        ("0712345678", 100, "", "contribution"),
        ("0712345678", 100, "   ", "contribution"),
        ("0712345678", 100, MEMBER_ID, "school_fees"),
    ],
)
async def test_initiate_validation(gateway, phone, amount, member_id, purpose):
    with pytest.raises(ValidationError):
        await make_initiator(gateway).initiate(phone, amount, member_id, purpose)
    gateway.request_push.assert_not_awaited()


async def test_gateway_errors_propagate(gateway):
    gateway.request_push.side_effect = GatewayRequestError("Bad Request - Invalid PhoneNumber")

    with pytest.raises(GatewayRequestError):
        await make_initiator(gateway).initiate("0712345678", 100, MEMBER_ID)


async def test_initiate_records_intent_not_contribution(gateway, db, member):
    intents = PaymentIntentRepository(db)
    await make_initiator(gateway, intents).initiate("0712345678", 2000, member.id, PaymentPurpose.CONTRIBUTION)
    db.commit()

    intent = intents.get_by_checkout_id("ws_CO_191020261230001")
    assert intent is not None
    assert intent.member_id == member.id
    assert intent.phone == "0712345678"
    assert intent.status == "pending"
    assert member.contributions == []


async def test_intent_storage_failure_does_not_fail_initiation(gateway):
    intents = MagicMock()
    intents.record_intent.side_effect = OperationalError("INSERT", {}, Exception("db down"))

    result = await make_initiator(gateway, intents).initiate("0712345678", 2000, MEMBER_ID)

    assert result.correlation_id == "ws_CO_191020261230001"
    intents.db.rollback.assert_called_once()
