"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Union


class PaymentPurpose(str, Enum):
    CONTRIBUTION = "contribution"
    LOAN_REPAYMENT = "loan_repayment"


class LoanStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class IntentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


CONTRIBUTION_CONFIRMED = "confirmed"


@dataclass
class PushAcknowledgement:
    """Synchronous answer from the gateway: the prompt was sent, nothing more"""

    checkout_request_id: str
    merchant_request_id: Optional[str]
    customer_message: str


@dataclass
class InitiationResult:
    """Returned to the caller of a push initiation"""

    correlation_id: str
    message: str
    reference: str


@dataclass
class PaymentSucceeded:
    """Callback for a completed payment (ResultCode 0)"""

    amount: Decimal
    receipt_code: str
    phone: str  # international format, as sent by the gateway
    checkout_request_id: Optional[str] = None
    merchant_request_id: Optional[str] = None
    transaction_date: Optional[str] = None


@dataclass
class PaymentFailed:
    """Callback for a cancelled or failed payment (ResultCode != 0)"""

    result_code: int
    result_desc: str
    checkout_request_id: Optional[str] = None
    merchant_request_id: Optional[str] = None


CallbackEvent = Union[PaymentSucceeded, PaymentFailed]


@dataclass
class ReconciliationOutcome:
    """How a callback delivery was handled"""

    kind: str  # recorded | duplicate | payment_failed | malformed | member_not_found
    success: bool
    error: Optional[str] = None
    contribution_id: Optional[str] = None
    receipt_code: Optional[str] = None


@dataclass
class LoanView:
    """Derived loan state; total_due and balance are never persisted"""

    loan_id: str
    member_id: str
    principal: Decimal
    interest_rate: Decimal
    total_due: Decimal
    repaid_to_date: Decimal
    balance: Decimal
    status: LoanStatus
    approved_at: Optional[datetime]
    due_date: Optional[date]
