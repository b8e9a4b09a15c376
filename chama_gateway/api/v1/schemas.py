"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, List, Optional
from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from chama_gateway.domain.models import LoanView, PaymentPurpose

# Amounts go over the wire as JSON numbers, not strings
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys (memberId, correlationId, ...)"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PushRequest(CamelModel):
    """Request body for POST /v1/payments/stk-push"""

    phone: str = Field(..., description="0712345678 or 254712345678")
    amount: Decimal = Field(..., description="Whole shillings")
    member_id: str = Field(..., description="Member identifier")
    purpose: PaymentPurpose = PaymentPurpose.CONTRIBUTION


class PushResponse(CamelModel):
    """Response for POST /v1/payments/stk-push"""

    correlation_id: str
    message: str
    reference: str


class CallbackAck(BaseModel):
    """Response to the Daraja webhook"""

    success: bool
    error: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str


class ContributionSchema(CamelModel):
    contribution_id: str
    member_id: str
    amount: Money
    mpesa_code: Optional[str]
    month: str
    status: str
    payment_date: datetime


class UnmatchedPaymentSchema(CamelModel):
    unmatched_id: str
    mpesa_code: str
    phone: str
    amount: Money
    checkout_request_id: Optional[str]
    reason: str
    created_at: datetime


class UnmatchedPaymentList(CamelModel):
    payments: List[UnmatchedPaymentSchema]


class AttributeRequest(CamelModel):
    """Request body for POST /v1/payments/unmatched/{id}/attribute"""

    member_id: str = Field(..., min_length=1)


class OpenLoanRequest(CamelModel):
    """Request body for POST /v1/loans"""

    member_id: str = Field(..., min_length=1)
    principal: Decimal = Field(..., gt=0)
    interest_rate: Optional[Decimal] = Field(None, ge=0, le=Decimal("999.99"))
    due_date: Optional[date] = None


class RepaymentRequest(CamelModel):
    """Request body for POST /v1/loans/{loan_id}/repayments"""

    amount: Decimal = Field(..., gt=0)


class LoanResponse(CamelModel):
    """Derived loan view returned by every loan operation"""

    loan_id: str
    member_id: str
    principal: Money
    interest_rate: Money
    total_due: Money
    repaid_to_date: Money
    balance: Money
    status: str
    approved_at: Optional[datetime] = None
    due_date: Optional[date] = None

    @classmethod
    def from_view(cls, view: LoanView) -> "LoanResponse":
        return cls(
            loan_id=view.loan_id,
            member_id=view.member_id,
            principal=view.principal,
            interest_rate=view.interest_rate,
            total_due=view.total_due,
            repaid_to_date=view.repaid_to_date,
            balance=view.balance,
            status=view.status.value,
            approved_at=view.approved_at,
            due_date=view.due_date,
        )
