"""Callback reconciliation: record each confirmed M-Pesa payment exactly once"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional
from sqlalchemy.exc import SQLAlchemyError

from chama_gateway.domain.callbacks import parse_callback
from chama_gateway.domain.models import IntentStatus, PaymentFailed, PaymentSucceeded, ReconciliationOutcome
from chama_gateway.domain.exceptions import (
    InvalidPhoneFormat,
    MalformedCallback,
    MemberNotFound,
    MemberResolutionError,
    StorageError,
    UnmatchedPaymentNotFound,
)
from chama_gateway.domain.phone import to_local
from chama_gateway.infrastructure.database.models import Contribution, PaymentIntent
from chama_gateway.infrastructure.database.repositories import (
    ContributionRepository,
    MemberRepository,
    PaymentIntentRepository,
    UnmatchedPaymentRepository,
)
from chama_gateway.utils.date_utils import month_label, now_eat

logger = logging.getLogger(__name__)


class CallbackReconciler:
    """
    Handles one Daraja callback delivery.

    Outcomes:
    - payment_failed: ResultCode != 0, nothing written to the ledger
    - malformed: payload unusable, acknowledged so the gateway stops retrying
    - member_not_found: money received but unattributed, kept as an
      UnmatchedPayment for manual reconciliation
    - recorded / duplicate: contribution present exactly once

    Storage failures raise StorageError so the webhook can answer 5xx and
    the gateway redelivers.
    """

    def __init__(
        self,
        members: MemberRepository,
        contributions: ContributionRepository,
        intents: PaymentIntentRepository,
        unmatched: UnmatchedPaymentRepository,
        clock: Callable[[], datetime] = now_eat,
    ):
        self.members = members
        self.contributions = contributions
        self.intents = intents
        self.unmatched = unmatched
        self.clock = clock

    def reconcile(self, payload: Any) -> ReconciliationOutcome:
        try:
            event = parse_callback(payload)
        except MalformedCallback as e:
            return ReconciliationOutcome(kind="malformed", success=False, error=str(e))

        try:
            if isinstance(event, PaymentFailed):
                return self._handle_failure(event)
            return self._handle_success(event)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not persist callback: {type(e).__name__}") from e

    def _handle_failure(self, event: PaymentFailed) -> ReconciliationOutcome:
        logger.info(
            "Payment failed",
            extra={
                "result_code": event.result_code,
                "result_desc": event.result_desc,
                "checkout_request_id": event.checkout_request_id,
            },
        )
        intent = self._find_intent(event.checkout_request_id)
        if intent is not None:
            self.intents.mark(intent, IntentStatus.FAILED, event.result_desc)

        return ReconciliationOutcome(kind="payment_failed", success=False, error=event.result_desc or None)

    def _handle_success(self, event: PaymentSucceeded) -> ReconciliationOutcome:
        intent = self._find_intent(event.checkout_request_id)

        try:
            member_id = self._resolve_member(event, intent)
        except MemberResolutionError as e:
            self.unmatched.record_if_absent(
                mpesa_code=event.receipt_code,
                phone=event.phone,
                amount=event.amount,
                reason=str(e),
                checkout_request_id=event.checkout_request_id,
            )
            return ReconciliationOutcome(
                kind="member_not_found", success=False, error="Member not found", receipt_code=event.receipt_code
            )

        if intent is not None and intent.amount is not None and intent.amount != event.amount:
            logger.warning(
                "Paid amount differs from requested amount",
                extra={
                    "checkout_request_id": event.checkout_request_id,
                    "requested": str(intent.amount),
                    "paid": str(event.amount),
                },
            )

        # Period is the month the callback is processed, not the gateway's transaction date
        processed_at = self.clock()
        contribution, created = self.contributions.insert_confirmed(
            member_id=member_id,
            amount=event.amount,
            mpesa_code=event.receipt_code,
            month=month_label(processed_at),
            payment_date=processed_at,
        )

        if intent is not None and intent.status != IntentStatus.COMPLETED.value:
            self.intents.mark(intent, IntentStatus.COMPLETED, None)

        return ReconciliationOutcome(
            kind="recorded" if created else "duplicate",
            success=True,
            contribution_id=contribution.id if contribution is not None else None,
            receipt_code=event.receipt_code,
        )

    def _find_intent(self, checkout_request_id: Optional[str]) -> Optional[PaymentIntent]:
        if not checkout_request_id:
            return None
        return self.intents.get_by_checkout_id(checkout_request_id)

    def _resolve_member(self, event: PaymentSucceeded, intent: Optional[PaymentIntent]) -> str:
        """Intent recorded at initiation wins; otherwise match the payer's phone"""
        if intent is not None:
            return intent.member_id

        try:
            local_phone = to_local(event.phone)
        except InvalidPhoneFormat as e:
            raise MemberResolutionError(str(e)) from e

        member = self.members.find_active_by_phone(local_phone)
        if member is None:
            raise MemberResolutionError(f"No active member with phone {local_phone}")
        return member.id

    def attribute_unmatched(self, unmatched_id: str, member_id: str) -> Contribution:
        """
        Operator action: book an unmatched payment against a member.

        Repeating the call returns the contribution created the first time.

        Raises:
            UnmatchedPaymentNotFound, MemberNotFound, StorageError
        """
        try:
            payment = self.unmatched.get_unmatched(unmatched_id)
            if payment is None:
                raise UnmatchedPaymentNotFound(f"Unmatched payment {unmatched_id} not found")

            if payment.resolved_contribution_id is not None:
                return self.contributions.get_by_receipt(payment.mpesa_code)

            member = self.members.get_member(member_id)
            if member is None:
                raise MemberNotFound(f"Member {member_id} not found")

            processed_at = self.clock()
            contribution, _ = self.contributions.insert_confirmed(
                member_id=member.id,
                amount=payment.amount,
                mpesa_code=payment.mpesa_code,
                month=month_label(processed_at),
                payment_date=processed_at,
            )
            self.unmatched.mark_resolved(payment.id, contribution.id)
            return contribution

        except SQLAlchemyError as e:
            raise StorageError(f"Could not attribute payment: {type(e).__name__}") from e
