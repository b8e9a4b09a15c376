"""Validation of Daraja STK callback payloads into PaymentSucceeded / PaymentFailed"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, ValidationError as SchemaError

from chama_gateway.domain.models import CallbackEvent, PaymentFailed, PaymentSucceeded
from chama_gateway.domain.exceptions import MalformedCallback

REQUIRED_ITEMS = ("Amount", "MpesaReceiptNumber", "PhoneNumber")


class CallbackItemSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    Name: str
    Value: Optional[Union[int, float, str]] = None


class CallbackMetadataSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    Item: List[CallbackItemSchema]


class StkCallback(BaseModel):
    model_config = ConfigDict(extra="ignore")

    MerchantRequestID: Optional[str] = None
    CheckoutRequestID: Optional[str] = None
    ResultCode: int
    ResultDesc: str = ""
    CallbackMetadata: Optional[CallbackMetadataSchema] = None


class CallbackBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    stkCallback: StkCallback


class CallbackEnvelope(BaseModel):
    """{"Body": {"stkCallback": {...}}} as posted by Daraja"""

    model_config = ConfigDict(extra="ignore")

    Body: CallbackBody


def parse_callback(payload: Any) -> CallbackEvent:
    """
    Turn a raw webhook payload into a typed callback event.

    Raises:
        MalformedCallback: structure invalid, or a success callback lacks
            Amount, MpesaReceiptNumber or PhoneNumber
    """
    try:
        envelope = CallbackEnvelope.model_validate(payload)
    except SchemaError as e:
        raise MalformedCallback(f"Invalid callback structure: {e.error_count()} error(s)") from e

    stk = envelope.Body.stkCallback
    if stk.ResultCode != 0:
        return PaymentFailed(
            result_code=stk.ResultCode,
            result_desc=stk.ResultDesc,
            checkout_request_id=stk.CheckoutRequestID,
            merchant_request_id=stk.MerchantRequestID,
        )

    if stk.CallbackMetadata is None:
        raise MalformedCallback("Successful callback without CallbackMetadata")

    items: Dict[str, Any] = {item.Name: item.Value for item in stk.CallbackMetadata.Item}
    missing = [name for name in REQUIRED_ITEMS if items.get(name) in (None, "")]
    if missing:
        raise MalformedCallback(f"Callback missing required items: {', '.join(missing)}")

    try:
        amount = Decimal(str(items["Amount"]))
    except InvalidOperation as e:
        raise MalformedCallback(f"Invalid Amount: {items['Amount']!r}") from e
    if not amount.is_finite() or amount <= 0:
        raise MalformedCallback(f"Invalid Amount: {items['Amount']!r}")

    transaction_date = items.get("TransactionDate")

    return PaymentSucceeded(
        amount=amount,
        receipt_code=str(items["MpesaReceiptNumber"]).strip(),
        phone=str(items["PhoneNumber"]).strip(),
        checkout_request_id=stk.CheckoutRequestID,
        merchant_request_id=stk.MerchantRequestID,
        transaction_date=str(transaction_date) if transaction_date is not None else None,
    )
