"""
E2E tests for the push-then-callback flow.

The mock Daraja server (mocks/daraja_server) runs in-process through
httpx.ASGITransport, so no network or running container is needed.

Scenarios:
- member pays: push accepted, callback matched through the payment intent
- gateway refuses the phone number: error surfaced, nothing recorded
- wrong credentials: auth failure surfaced without credential material
"""

import httpx
import pytest
from fastapi.testclient import TestClient
from chama_gateway.api.dependencies import get_daraja_client
from chama_gateway.infrastructure.clients.daraja import DarajaClient
from chama_gateway.infrastructure.database.models import Contribution, PaymentIntent
from mocks.daraja_server.main import app as mock_daraja_app


def use_mock_daraja(client: TestClient, consumer_secret: str = "test-secret") -> None:
    client.app.dependency_overrides[get_daraja_client] = lambda: DarajaClient(
        base_url="http://mock-daraja",
        consumer_key="test-key",
        consumer_secret=consumer_secret,
        passkey="test-passkey",
        transport=httpx.ASGITransport(app=mock_daraja_app),
    )


@pytest.mark.integration
def test_member_pays_contribution(client: TestClient, db, member, callback_payload):
    """Push accepted, then the callback for that push records one contribution"""
    use_mock_daraja(client)

    push = client.post(
        "/v1/payments/stk-push",
        json={"phone": member.phone, "amount": 2000, "memberId": member.id},
    )
    assert push.status_code == 200
    checkout_id = push.json()["correlationId"]
    assert checkout_id.startswith("ws_CO_")
    assert db.query(Contribution).count() == 0

    callback = client.post(
        "/v1/payments/callback",
        json=callback_payload(receipt="QHJ99999", checkout_request_id=checkout_id),
    )
    assert callback.json()["success"] is True

    contribution = db.query(Contribution).one()
    assert contribution.member_id == member.id
    assert contribution.mpesa_code == "QHJ99999"

    intent = db.query(PaymentIntent).filter(PaymentIntent.checkout_request_id == checkout_id).one()
    assert intent.status == "completed"


@pytest.mark.integration
def test_gateway_rejects_phone(client: TestClient, db, member):
    use_mock_daraja(client)

    response = client.post(
        "/v1/payments/stk-push",
        json={"phone": "0712345000", "amount": 100, "memberId": member.id},
    )

    assert response.status_code == 502
    assert response.json()["error"] == "Bad Request - Invalid PhoneNumber"
    assert db.query(PaymentIntent).count() == 0


@pytest.mark.integration
def test_wrong_credentials(client: TestClient, member):
    use_mock_daraja(client, consumer_secret="wrong-secret")

    response = client.post(
        "/v1/payments/stk-push",
        json={"phone": member.phone, "amount": 100, "memberId": member.id},
    )

    assert response.status_code == 502
    assert "wrong-secret" not in response.text
