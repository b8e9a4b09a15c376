"""Loan ledger: opening, approval, rejection and repayment with compare-and-swap writes"""

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional
from sqlalchemy.exc import SQLAlchemyError

from chama_gateway.config import settings
from chama_gateway.domain import loans as rules
from chama_gateway.domain.models import LoanStatus, LoanView
from chama_gateway.domain.exceptions import LoanNotFound, MemberNotFound, StorageError, ValidationError
from chama_gateway.infrastructure.database.models import Loan
from chama_gateway.infrastructure.database.repositories import LoanRepository, MemberRepository
from chama_gateway.infrastructure.observability.metrics import loan_transition_counter, loan_update_conflict_counter
from chama_gateway.utils.date_utils import now_eat

logger = logging.getLogger(__name__)


def to_view(loan: Loan) -> LoanView:
    principal = Decimal(loan.amount)
    rate = Decimal(loan.interest_rate)
    repaid = Decimal(loan.repaid_amount)
    return LoanView(
        loan_id=loan.id,
        member_id=loan.member_id,
        principal=principal,
        interest_rate=rate,
        total_due=rules.total_due(principal, rate),
        repaid_to_date=repaid,
        balance=rules.balance(principal, rate, repaid),
        status=LoanStatus(loan.status),
        approved_at=loan.approved_at,
        due_date=loan.due_date,
    )


def _as_decimal(value: Any, field: str) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(f"{field} must be a number") from e
    if not result.is_finite():
        raise ValidationError(f"{field} must be a number")
    return result


class LoanLedger:
    """
    Drives loan state: pending -> approved -> completed, or pending -> rejected.

    Every write re-reads the loan and issues a conditional UPDATE on its
    version. Losing a race re-runs the transition on fresh data, so two
    concurrent repayments are applied one after the other.
    """

    def __init__(
        self,
        loans: LoanRepository,
        members: Optional[MemberRepository] = None,
        max_attempts: Optional[int] = None,
        clock: Callable[[], datetime] = now_eat,
    ):
        self.loans = loans
        self.members = members
        self.max_attempts = max_attempts or settings.loan_update_max_attempts
        self.clock = clock

    def open_loan(
        self,
        member_id: str,
        principal: Any,
        interest_rate: Any = None,
        due_date: Optional[date] = None,
    ) -> LoanView:
        principal = _as_decimal(principal, "Principal")
        rate = _as_decimal(settings.default_interest_rate if interest_rate is None else interest_rate, "Interest rate")
        if principal <= 0:
            raise ValidationError("Principal must be greater than zero")
        if rate < 0:
            raise ValidationError("Interest rate cannot be negative")

        try:
            if self.members is not None and self.members.get_member(member_id) is None:
                raise MemberNotFound(f"Member {member_id} not found")
            loan = self.loans.create_loan(member_id, principal, rate, due_date)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not open loan: {type(e).__name__}") from e

        loan_transition_counter.labels(transition="opened").inc()
        return to_view(loan)

    def view(self, loan_id: str) -> LoanView:
        try:
            loan = self.loans.get_loan(loan_id, refresh=True)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not read loan: {type(e).__name__}") from e
        if loan is None:
            raise LoanNotFound(f"Loan {loan_id} not found")
        return to_view(loan)

    def approve(self, loan_id: str) -> LoanView:
        def transition(loan: Loan) -> Dict[str, Any]:
            return {"status": rules.approve(loan.status).value, "approved_at": self.clock()}

        view = self._update(loan_id, transition)
        loan_transition_counter.labels(transition="approved").inc()
        return view

    def reject(self, loan_id: str) -> LoanView:
        def transition(loan: Loan) -> Dict[str, Any]:
            return {"status": rules.reject(loan.status).value}

        view = self._update(loan_id, transition)
        loan_transition_counter.labels(transition="rejected").inc()
        return view

    def apply(self, loan_id: str, amount: Any) -> LoanView:
        """
        Apply a repayment.

        Raises:
            ValidationError: amount not positive
            InvalidLoanState: loan not approved
            LoanNotFound, StorageError
        """
        payment = _as_decimal(amount, "Amount")

        def transition(loan: Loan) -> Dict[str, Any]:
            repaid, status = rules.apply_repayment(
                loan.status, loan.amount, loan.interest_rate, loan.repaid_amount, payment
            )
            return {"repaid_amount": repaid, "status": status.value}

        view = self._update(loan_id, transition)
        loan_transition_counter.labels(transition="repaid").inc()
        if view.status == LoanStatus.COMPLETED:
            loan_transition_counter.labels(transition="completed").inc()
        return view

    def _update(self, loan_id: str, transition: Callable[[Loan], Dict[str, Any]]) -> LoanView:
        try:
            for attempt in range(1, self.max_attempts + 1):
                loan = self.loans.get_loan(loan_id, refresh=True)
                if loan is None:
                    raise LoanNotFound(f"Loan {loan_id} not found")

                values = transition(loan)
                if self.loans.compare_and_set(loan.id, loan.version, loan.status, values):
                    return self.view(loan_id)

                loan_update_conflict_counter.inc()
                logger.info("Loan changed concurrently, retrying", extra={"loan_id": loan_id, "attempt": attempt})

        except SQLAlchemyError as e:
            raise StorageError(f"Could not update loan: {type(e).__name__}") from e

        raise StorageError(f"Loan {loan_id} kept changing; gave up after {self.max_attempts} attempts")
