"""STK push initiation, the Daraja callback webhook and unmatched-payment follow-up"""

import json
import time
import logging
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chama_gateway.api.v1.schemas import (
    AttributeRequest,
    CallbackAck,
    ContributionSchema,
    ErrorResponse,
    PushRequest,
    PushResponse,
    UnmatchedPaymentList,
    UnmatchedPaymentSchema,
)
from chama_gateway.api.dependencies import get_initiator, get_reconciler, get_request_id
from chama_gateway.infrastructure.database.session import get_db
from chama_gateway.infrastructure.database.repositories import UnmatchedPaymentRepository
from chama_gateway.services.initiator import PaymentInitiator
from chama_gateway.services.reconciler import CallbackReconciler
from chama_gateway.domain.exceptions import (
    GatewayAuthError,
    GatewayRequestError,
    GatewayUnavailable,
    MemberNotFound,
    StorageError,
    UnmatchedPaymentNotFound,
    ValidationError,
)
from chama_gateway.infrastructure.observability.metrics import record_callback, stk_push_counter
from chama_gateway.infrastructure.observability.logging import log_callback, log_push

router = APIRouter()


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post(
    "/payments/stk-push",
    response_model=PushResponse,
    responses={400: {"model": ErrorResponse}, 502: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def initiate_push(
    request_body: PushRequest,
    request: Request,
    db: Session = Depends(get_db),
    initiator: PaymentInitiator = Depends(get_initiator),
):
    """
    Send an STK push prompt to a member's phone.

    No contribution is written here: the callback is the only source of
    truth for money received.
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        result = await initiator.initiate(
            phone=request_body.phone,
            amount=request_body.amount,
            member_id=request_body.member_id,
            purpose=request_body.purpose,
        )

    except ValidationError as e:
        stk_push_counter.labels(outcome="invalid").inc()
        return _error(400, str(e))

    except GatewayAuthError as e:
        stk_push_counter.labels(outcome="auth_failed").inc()
        logging.error(f"M-Pesa auth error: {e}", extra={"request_id": request_id})
        return _error(502, "Payment service authentication failed")

    except GatewayRequestError as e:
        stk_push_counter.labels(outcome="rejected").inc()
        logging.warning(f"M-Pesa rejected push: {e}", extra={"request_id": request_id})
        return _error(502, str(e))

    except GatewayUnavailable as e:
        stk_push_counter.labels(outcome="unavailable").inc()
        logging.error(f"M-Pesa unavailable: {e}", extra={"request_id": request_id})
        return _error(503, "Payment service unavailable, the prompt may still arrive; check before retrying")

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logging.warning(f"Payment intent not saved: {e}", extra={"request_id": request_id})

    stk_push_counter.labels(outcome="accepted").inc()
    duration_ms = (time.time() - start_time) * 1000
    log_push(request_id, request_body.member_id, request_body.amount, "accepted", result.correlation_id, duration_ms)

    return PushResponse(correlation_id=result.correlation_id, message=result.message, reference=result.reference)


@router.post("/payments/callback", response_model=CallbackAck)
async def payment_callback(
    request: Request,
    db: Session = Depends(get_db),
    reconciler: CallbackReconciler = Depends(get_reconciler),
):
    """
    Daraja STK callback webhook.

    Answers 200 for every handled outcome so the gateway does not redeliver
    unusable data; answers 500 only when storage failed, which asks the
    gateway to redeliver.
    """
    request_id = get_request_id(request)

    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None

    try:
        outcome = reconciler.reconcile(payload)
        db.commit()

    except (StorageError, SQLAlchemyError) as e:
        db.rollback()
        record_callback("storage_error")
        log_callback(request_id, "storage_error", error=str(e))
        return JSONResponse(status_code=500, content={"success": False, "error": "Storage failure"})

    record_callback(outcome.kind)
    log_callback(request_id, outcome.kind, receipt_code=outcome.receipt_code, error=outcome.error)

    return CallbackAck(success=outcome.success, error=outcome.error if not outcome.success else None)


@router.get("/payments/unmatched", response_model=UnmatchedPaymentList)
def list_unmatched_payments(
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Payments received but not yet attributed to a member"""
    payments = UnmatchedPaymentRepository(db).list_unresolved(limit=limit)

    return UnmatchedPaymentList(
        payments=[
            UnmatchedPaymentSchema(
                unmatched_id=p.id,
                mpesa_code=p.mpesa_code,
                phone=p.phone,
                amount=p.amount,
                checkout_request_id=p.checkout_request_id,
                reason=p.reason,
                created_at=p.created_at,
            )
            for p in payments
        ]
    )


@router.post("/payments/unmatched/{unmatched_id}/attribute", response_model=ContributionSchema)
def attribute_unmatched_payment(
    unmatched_id: str,
    request_body: AttributeRequest,
    request: Request,
    db: Session = Depends(get_db),
    reconciler: CallbackReconciler = Depends(get_reconciler),
):
    """Book an unmatched payment against a member"""
    request_id = get_request_id(request)

    try:
        contribution = reconciler.attribute_unmatched(unmatched_id, request_body.member_id)
        db.commit()

    except (UnmatchedPaymentNotFound, MemberNotFound) as e:
        db.rollback()
        return _error(404, str(e))

    except (StorageError, SQLAlchemyError) as e:
        db.rollback()
        logging.error(f"Attribution failed: {e}", extra={"request_id": request_id})
        return _error(500, "Storage failure")

    logging.info(
        "Unmatched payment attributed",
        extra={"request_id": request_id, "unmatched_id": unmatched_id, "member_id": request_body.member_id},
    )

    return ContributionSchema(
        contribution_id=contribution.id,
        member_id=contribution.member_id,
        amount=contribution.amount,
        mpesa_code=contribution.mpesa_code,
        month=contribution.month,
        status=contribution.status,
        payment_date=contribution.payment_date,
    )
