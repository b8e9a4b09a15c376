"""Unit tests for callback payload parsing"""

import pytest
from decimal import Decimal
from chama_gateway.domain.callbacks import parse_callback
from chama_gateway.domain.models import PaymentFailed, PaymentSucceeded
from chama_gateway.domain.exceptions import MalformedCallback


def test_parse_success(callback_payload):
    event = parse_callback(callback_payload())

    assert isinstance(event, PaymentSucceeded)
    assert event.amount == Decimal("2000")
    assert event.receipt_code == "QHJ12345"
    assert event.phone == "254712345678"
    assert event.checkout_request_id == "ws_CO_191020261230001"
    assert event.transaction_date == "20261019093000"


def test_parse_success_with_string_values(callback_payload):
    event = parse_callback(callback_payload(amount="1500.00", phone="254712345678"))

    assert event.amount == Decimal("1500.00")
    assert event.phone == "254712345678"


def test_parse_failure(failed_callback_payload):
    event = parse_callback(failed_callback_payload(1, "cancelled"))

    assert isinstance(event, PaymentFailed)
    assert event.result_code == 1
    assert event.result_desc == "cancelled"


def test_failure_needs_no_metadata(failed_callback_payload):
    event = parse_callback(failed_callback_payload(1032, "Request cancelled by user"))
    assert isinstance(event, PaymentFailed)


@pytest.mark.parametrize("missing", ["Amount", "MpesaReceiptNumber", "PhoneNumber"])
def test_missing_required_item(callback_payload, missing):
    payload = callback_payload()
    items = payload["Body"]["stkCallback"]["CallbackMetadata"]["Item"]
    payload["Body"]["stkCallback"]["CallbackMetadata"]["Item"] = [i for i in items if i["Name"] != missing]

    with pytest.raises(MalformedCallback, match=missing):
        parse_callback(payload)


def test_success_without_metadata(failed_callback_payload):
    payload = failed_callback_payload(0, "ok")
    with pytest.raises(MalformedCallback):
        parse_callback(payload)


@pytest.mark.parametrize(
    "payload",
    [
        None,
        [],
        {},
        {"Body": {}},
        {"Body": {"stkCallback": {"ResultDesc": "no code"}}},
        {"Body": {"stkCallback": {"ResultCode": "abc"}}},
    ],
)
def test_invalid_structure(payload):
    with pytest.raises(MalformedCallback):
        parse_callback(payload)


@pytest.mark.parametrize("amount", [0, -10, "NaN", "lots"])
def test_invalid_amount(callback_payload, amount):
    with pytest.raises(MalformedCallback):
        parse_callback(callback_payload(amount=amount))
