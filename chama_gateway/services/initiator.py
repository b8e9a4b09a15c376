"""Payment initiation: validate, build the account reference, push the STK prompt"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError

from chama_gateway.domain.models import InitiationResult, PaymentPurpose, PushAcknowledgement
from chama_gateway.domain.exceptions import InvalidPhoneFormat, ValidationError
from chama_gateway.domain.phone import normalize_international, to_local
from chama_gateway.infrastructure.clients.daraja import DarajaClient
from chama_gateway.infrastructure.database.repositories import PaymentIntentRepository

logger = logging.getLogger(__name__)

REFERENCE_PREFIX = "CHAMA-"
REFERENCE_ID_LENGTH = 8

DESCRIPTIONS = {
    PaymentPurpose.CONTRIBUTION: "Chama Contribution",
    PaymentPurpose.LOAN_REPAYMENT: "Chama Loan Repayment",
}


def build_reference(member_id: str) -> str:
    """
    Account reference shown on the payer's statement.

    Members whose ids share the first 8 characters get the same reference.
    """
    return REFERENCE_PREFIX + member_id[:REFERENCE_ID_LENGTH].upper()


def validate_amount(amount) -> Decimal:
    """M-Pesa only moves whole shillings"""
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError("Amount must be a number") from e

    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be greater than zero")
    if value != value.to_integral_value():
        raise ValidationError("Amount must be a whole number of shillings")
    return value


class PaymentInitiator:
    """Starts an STK push; the contribution itself is only written by the callback"""

    def __init__(
        self,
        gateway: DarajaClient,
        short_code: str,
        callback_url: str,
        intents: Optional[PaymentIntentRepository] = None,
    ):
        self.gateway = gateway
        self.short_code = short_code
        self.callback_url = callback_url
        self.intents = intents

    async def initiate(
        self,
        phone: str,
        amount,
        member_id: str,
        purpose: PaymentPurpose | str = PaymentPurpose.CONTRIBUTION,
    ) -> InitiationResult:
        """
        Validate the request and push the payment prompt.

        Raises:
            ValidationError: bad phone, amount, member id or purpose
            GatewayAuthError / GatewayRequestError / GatewayUnavailable:
                propagated from the gateway client
        """
        if not member_id or not str(member_id).strip():
            raise ValidationError("Member id is required")
        member_id = str(member_id).strip()

        try:
            international_phone = normalize_international(phone)
        except InvalidPhoneFormat as e:
            raise ValidationError("Phone must look like 0712345678 or 254712345678") from e

        value = validate_amount(amount)

        try:
            purpose = PaymentPurpose(purpose)
        except ValueError as e:
            raise ValidationError(f"Unknown payment purpose: {purpose}") from e

        reference = build_reference(member_id)

        ack = await self.gateway.request_push(
            phone=international_phone,
            amount=value,
            short_code=self.short_code,
            reference=reference,
            callback_url=self.callback_url,
            description=DESCRIPTIONS[purpose],
        )

        self._remember_intent(ack, member_id, to_local(international_phone), value, purpose, reference)

        return InitiationResult(
            correlation_id=ack.checkout_request_id,
            message="STK push sent. Ask member to enter M-Pesa PIN.",
            reference=reference,
        )

    def _remember_intent(
        self,
        ack: PushAcknowledgement,
        member_id: str,
        local_phone: str,
        amount: Decimal,
        purpose: PaymentPurpose,
        reference: str,
    ) -> None:
        """Record the push for callback matching; storage failures are logged, not raised"""
        if self.intents is None:
            return
        try:
            self.intents.record_intent(ack, member_id, local_phone, amount, purpose.value, reference)
        except SQLAlchemyError as e:
            self.intents.db.rollback()
            logger.warning(
                "Could not record payment intent",
                extra={"checkout_request_id": ack.checkout_request_id, "error": type(e).__name__},
            )
