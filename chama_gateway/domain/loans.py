"""Loan ledger rules: simple interest totals, derived balances and status transitions"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Tuple
from chama_gateway.domain.models import LoanStatus
from chama_gateway.domain.exceptions import InvalidLoanState, ValidationError

CENT = Decimal("0.01")


def total_due(principal: Decimal, rate_percent: Decimal) -> Decimal:
    """
    Principal plus simple (non-compounding) interest.

    Example:
        10000 at 10% -> 11000.00
    """
    principal = Decimal(principal)
    interest = principal * Decimal(rate_percent) / Decimal(100)
    return (principal + interest).quantize(CENT, rounding=ROUND_HALF_UP)


def balance(principal: Decimal, rate_percent: Decimal, repaid: Decimal) -> Decimal:
    """Outstanding amount, floored at zero when the loan was over-paid"""
    outstanding = total_due(principal, rate_percent) - Decimal(repaid)
    return max(Decimal("0.00"), outstanding).quantize(CENT)


def apply_repayment(
    status: LoanStatus,
    principal: Decimal,
    rate_percent: Decimal,
    repaid: Decimal,
    payment: Decimal,
) -> Tuple[Decimal, LoanStatus]:
    """
    Compute the new (repaid_to_date, status) pair after a repayment.

    Raises:
        ValidationError: payment is not positive
        InvalidLoanState: loan is not approved
    """
    payment = Decimal(payment)
    if payment <= 0:
        raise ValidationError("Repayment amount must be greater than zero")
    if LoanStatus(status) != LoanStatus.APPROVED:
        raise InvalidLoanState(f"Cannot repay a loan that is {LoanStatus(status).value}")

    new_repaid = (Decimal(repaid) + payment).quantize(CENT)
    if new_repaid >= total_due(principal, rate_percent):
        return new_repaid, LoanStatus.COMPLETED
    return new_repaid, LoanStatus.APPROVED


def approve(status: LoanStatus) -> LoanStatus:
    if LoanStatus(status) != LoanStatus.PENDING:
        raise InvalidLoanState(f"Only pending loans can be approved, loan is {LoanStatus(status).value}")
    return LoanStatus.APPROVED


def reject(status: LoanStatus) -> LoanStatus:
    if LoanStatus(status) != LoanStatus.PENDING:
        raise InvalidLoanState(f"Only pending loans can be rejected, loan is {LoanStatus(status).value}")
    return LoanStatus.REJECTED
