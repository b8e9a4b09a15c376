"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from chama_gateway.config import settings
from chama_gateway.infrastructure.clients.daraja import DarajaClient
from chama_gateway.infrastructure.database.session import get_db
from chama_gateway.infrastructure.database.repositories import (
    ContributionRepository,
    LoanRepository,
    MemberRepository,
    PaymentIntentRepository,
    UnmatchedPaymentRepository,
)
from chama_gateway.services.initiator import PaymentInitiator
from chama_gateway.services.reconciler import CallbackReconciler
from chama_gateway.services.ledger import LoanLedger


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_daraja_client() -> DarajaClient:
    """Provide M-Pesa Daraja client instance"""
    return DarajaClient()


def get_initiator(
    db: Session = Depends(get_db),
    gateway: DarajaClient = Depends(get_daraja_client),
) -> PaymentInitiator:
    return PaymentInitiator(
        gateway=gateway,
        short_code=settings.mpesa_shortcode,
        callback_url=settings.mpesa_callback_url,
        intents=PaymentIntentRepository(db),
    )


def get_reconciler(db: Session = Depends(get_db)) -> CallbackReconciler:
    return CallbackReconciler(
        members=MemberRepository(db),
        contributions=ContributionRepository(db),
        intents=PaymentIntentRepository(db),
        unmatched=UnmatchedPaymentRepository(db),
    )


def get_ledger(db: Session = Depends(get_db)) -> LoanLedger:
    return LoanLedger(loans=LoanRepository(db), members=MemberRepository(db))
