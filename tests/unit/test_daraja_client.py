"""Unit tests for the Daraja client using httpx.MockTransport"""

import base64
import json
import httpx
import pytest
from datetime import datetime
from decimal import Decimal
from chama_gateway.infrastructure.clients.daraja import DarajaClient
from chama_gateway.domain.exceptions import GatewayAuthError, GatewayRequestError, GatewayUnavailable
from chama_gateway.utils.date_utils import EAT

FIXED_TIME = datetime(2026, 10, 19, 9, 30, 5, tzinfo=EAT)

ACCEPTED = {
    "MerchantRequestID": "29115-34620561-1",
    "CheckoutRequestID": "ws_CO_191220191020363925",
    "ResponseCode": "0",
    "ResponseDescription": "Success. Request accepted for processing",
    "CustomerMessage": "Success. Request accepted for processing",
}


def make_client(handler) -> DarajaClient:
    return DarajaClient(
        base_url="http://mock-daraja",
        consumer_key="key",
        consumer_secret="secret",
        passkey="passkey",
        timeout=2.0,
        transport=httpx.MockTransport(handler),
        clock=lambda: FIXED_TIME,
    )


def token_ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"access_token": "tok", "expires_in": "3599"})


async def push(client: DarajaClient):
    return await client.request_push(
        phone="254712345678",
        amount=Decimal("2000"),
        short_code="174379",
        reference="CHAMA-ABCDEF12",
        callback_url="https://chama.example.com/cb",
    )


async def test_authenticate_uses_basic_auth():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["grant"] = request.url.params["grant_type"]
        return token_ok(request)

    token = await make_client(handler).authenticate()

    assert token == "tok"
    assert seen["auth"] == "Basic " + base64.b64encode(b"key:secret").decode()
    assert seen["grant"] == "client_credentials"


async def test_authenticate_rejected():
    client = make_client(lambda request: httpx.Response(400, json={"errorMessage": "Invalid credentials"}))
    with pytest.raises(GatewayAuthError):
        await client.authenticate()


async def test_authenticate_without_token():
    client = make_client(lambda request: httpx.Response(200, json={"expires_in": "3599"}))
    with pytest.raises(GatewayAuthError):
        await client.authenticate()


async def test_authenticate_timeout():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(GatewayUnavailable):
        await make_client(handler).authenticate()


async def test_request_push_builds_payload():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/oauth/v1/generate":
            return token_ok(request)
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=ACCEPTED)

    ack = await push(make_client(handler))

    assert ack.checkout_request_id == "ws_CO_191220191020363925"
    assert ack.merchant_request_id == "29115-34620561-1"

    body = captured["body"]
    assert captured["headers"]["Authorization"] == "Bearer tok"
    assert body["Timestamp"] == "20261019093005"
    assert body["Password"] == base64.b64encode(b"174379passkey20261019093005").decode()
    assert body["Amount"] == 2000
    assert body["PartyA"] == body["PhoneNumber"] == "254712345678"
    assert body["PartyB"] == body["BusinessShortCode"] == "174379"
    assert body["TransactionType"] == "CustomerPayBillOnline"
    assert body["AccountReference"] == "CHAMA-ABCDEF12"
    assert body["CallBackURL"] == "https://chama.example.com/cb"


async def test_request_push_rejected_carries_gateway_description():
    def handler(request):
        if request.url.path == "/oauth/v1/generate":
            return token_ok(request)
        return httpx.Response(400, json={"errorCode": "400.002.02", "errorMessage": "Bad Request - Invalid PhoneNumber"})

    with pytest.raises(GatewayRequestError, match="Invalid PhoneNumber"):
        await push(make_client(handler))


async def test_request_push_nonzero_response_code():
    def handler(request):
        if request.url.path == "/oauth/v1/generate":
            return token_ok(request)
        return httpx.Response(200, json={"ResponseCode": "1", "ResponseDescription": "Rejected"})

    with pytest.raises(GatewayRequestError, match="Rejected"):
        await push(make_client(handler))


async def test_request_push_timeout_is_unavailable():
    def handler(request):
        if request.url.path == "/oauth/v1/generate":
            return token_ok(request)
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(GatewayUnavailable):
        await push(make_client(handler))


async def test_request_push_server_error_without_json():
    def handler(request):
        if request.url.path == "/oauth/v1/generate":
            return token_ok(request)
        return httpx.Response(503, text="Service Unavailable")

    with pytest.raises(GatewayUnavailable):
        await push(make_client(handler))


async def test_errors_do_not_leak_credentials():
    client = make_client(lambda request: httpx.Response(401, text="nope"))
    with pytest.raises(GatewayAuthError) as exc_info:
        await push(client)
    assert "secret" not in str(exc_info.value)
    assert "passkey" not in str(exc_info.value)
