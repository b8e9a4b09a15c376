"""Loan ledger endpoints: open, view, approve, reject, repay"""

import logging
from typing import Callable
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chama_gateway.api.v1.schemas import ErrorResponse, LoanResponse, OpenLoanRequest, RepaymentRequest
from chama_gateway.api.dependencies import get_ledger, get_request_id
from chama_gateway.infrastructure.database.session import get_db
from chama_gateway.services.ledger import LoanLedger
from chama_gateway.domain.models import LoanView
from chama_gateway.domain.exceptions import InvalidLoanState, RecordNotFound, StorageError, ValidationError
from chama_gateway.infrastructure.observability.logging import log_loan_transition

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _run(db: Session, request_id: str, transition: str, operation: Callable[[], LoanView]):
    """Execute a ledger operation in one transaction and map domain errors to HTTP"""
    try:
        view = operation()
        db.commit()

    except ValidationError as e:
        db.rollback()
        return JSONResponse(status_code=400, content={"error": str(e)})

    except RecordNotFound as e:
        db.rollback()
        return JSONResponse(status_code=404, content={"error": str(e)})

    except InvalidLoanState as e:
        db.rollback()
        return JSONResponse(status_code=409, content={"error": str(e)})

    except (StorageError, SQLAlchemyError) as e:
        db.rollback()
        logging.error(f"Loan storage error: {e}", extra={"request_id": request_id})
        return JSONResponse(status_code=503, content={"error": "Loan could not be updated, try again"})

    log_loan_transition(request_id, view.loan_id, transition, view.status.value)
    return LoanResponse.from_view(view)


@router.post("/loans", response_model=LoanResponse, status_code=201, responses=ERROR_RESPONSES)
def open_loan(
    request_body: OpenLoanRequest,
    request: Request,
    db: Session = Depends(get_db),
    ledger: LoanLedger = Depends(get_ledger),
):
    """Create a pending loan application"""
    return _run(
        db,
        get_request_id(request),
        "opened",
        lambda: ledger.open_loan(
            member_id=request_body.member_id,
            principal=request_body.principal,
            interest_rate=request_body.interest_rate,
            due_date=request_body.due_date,
        ),
    )


@router.get("/loans/{loan_id}", response_model=LoanResponse, responses=ERROR_RESPONSES)
def get_loan(loan_id: str, ledger: LoanLedger = Depends(get_ledger)):
    """
    Current loan view.

    Returns:
        totalDue, repaidToDate and balance derived from the stored principal,
        rate and repayments
    """
    try:
        view = ledger.view(loan_id)
    except RecordNotFound as e:
        return JSONResponse(status_code=404, content={"error": str(e)})
    except StorageError as e:
        logging.error(f"Loan storage error: {e}")
        return JSONResponse(status_code=503, content={"error": "Loan could not be read, try again"})
    return LoanResponse.from_view(view)


@router.post("/loans/{loan_id}/approve", response_model=LoanResponse, responses=ERROR_RESPONSES)
def approve_loan(
    loan_id: str,
    request: Request,
    db: Session = Depends(get_db),
    ledger: LoanLedger = Depends(get_ledger),
):
    return _run(db, get_request_id(request), "approved", lambda: ledger.approve(loan_id))


@router.post("/loans/{loan_id}/reject", response_model=LoanResponse, responses=ERROR_RESPONSES)
def reject_loan(
    loan_id: str,
    request: Request,
    db: Session = Depends(get_db),
    ledger: LoanLedger = Depends(get_ledger),
):
    return _run(db, get_request_id(request), "rejected", lambda: ledger.reject(loan_id))


@router.post("/loans/{loan_id}/repayments", response_model=LoanResponse, responses=ERROR_RESPONSES)
def repay_loan(
    loan_id: str,
    request_body: RepaymentRequest,
    request: Request,
    db: Session = Depends(get_db),
    ledger: LoanLedger = Depends(get_ledger),
):
    """Apply a repayment; the loan completes once repaid reaches the total due"""
    return _run(db, get_request_id(request), "repaid", lambda: ledger.apply(loan_id, request_body.amount))
