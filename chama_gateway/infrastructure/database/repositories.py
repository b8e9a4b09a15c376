"""Data access layer for chama entities"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Type
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from chama_gateway.infrastructure.database.models import (
    Base,
    Contribution,
    Loan,
    Member,
    PaymentIntent,
    UnmatchedPayment,
    new_id,
)
from chama_gateway.domain.models import CONTRIBUTION_CONFIRMED, IntentStatus, LoanStatus, PushAcknowledgement


def insert_ignoring_duplicate(db: Session, model: Type[Base], values: Dict[str, Any], unique_column: str) -> bool:
    """
    Insert a row unless one with the same unique_column value exists.

    Uses INSERT .. ON CONFLICT DO NOTHING where the dialect supports it, so
    concurrent deliveries cannot both insert. Other dialects fall back to a
    savepoint and the unique-violation error.

    Returns:
        True when a row was inserted, False when it already existed
    """
    dialect = db.get_bind().dialect.name
    if dialect in ("postgresql", "sqlite"):
        insert_fn = pg_insert if dialect == "postgresql" else sqlite_insert
        stmt = insert_fn(model).values(**values).on_conflict_do_nothing(index_elements=[unique_column])
        result = db.execute(stmt)
        return result.rowcount == 1

    try:
        with db.begin_nested():
            db.add(model(**values))
        return True
    except IntegrityError:
        return False


class MemberRepository:
    """Repository for members"""

    def __init__(self, db: Session):
        self.db = db

    def create_member(self, full_name: str, phone: str, email: Optional[str] = None, is_active: bool = True) -> Member:
        db_member = Member(full_name=full_name, phone=phone, email=email, is_active=is_active)
        self.db.add(db_member)
        self.db.flush()
        return db_member

    def get_member(self, member_id: str) -> Optional[Member]:
        return self.db.query(Member).filter(Member.id == member_id).first()

    def find_active_by_phone(self, local_phone: str) -> Optional[Member]:
        """Exact match on the local-format phone of an active member"""
        return (
            self.db.query(Member)
            .filter(Member.phone == local_phone, Member.is_active.is_(True))
            .first()
        )


class ContributionRepository:
    """Repository for contributions"""

    def __init__(self, db: Session):
        self.db = db

    def insert_confirmed(
        self,
        member_id: str,
        amount: Decimal,
        mpesa_code: str,
        month: str,
        payment_date: datetime,
    ) -> tuple[Contribution, bool]:
        """
        Record a confirmed contribution exactly once per receipt code.

        Returns:
            (contribution, created) where created is False for a redelivery
        """
        created = insert_ignoring_duplicate(
            self.db,
            Contribution,
            {
                "id": new_id(),
                "member_id": member_id,
                "amount": amount,
                "mpesa_code": mpesa_code,
                "month": month,
                "status": CONTRIBUTION_CONFIRMED,
                "payment_date": payment_date,
            },
            unique_column="mpesa_code",
        )
        return self.get_by_receipt(mpesa_code), created

    def get_by_receipt(self, mpesa_code: str) -> Optional[Contribution]:
        return self.db.query(Contribution).filter(Contribution.mpesa_code == mpesa_code).first()


class LoanRepository:
    """Repository for loans; all status/balance writes are compare-and-swap"""

    def __init__(self, db: Session):
        self.db = db

    def create_loan(
        self,
        member_id: str,
        principal: Decimal,
        interest_rate: Decimal,
        due_date: Optional[date] = None,
    ) -> Loan:
        db_loan = Loan(
            member_id=member_id,
            amount=principal,
            interest_rate=interest_rate,
            due_date=due_date,
            status=LoanStatus.PENDING.value,
            repaid_amount=Decimal("0"),
            version=0,
        )
        self.db.add(db_loan)
        self.db.flush()
        return db_loan

    def get_loan(self, loan_id: str, refresh: bool = False) -> Optional[Loan]:
        """Fetch a loan; refresh bypasses the session's cached copy"""
        query = self.db.query(Loan).filter(Loan.id == loan_id)
        if refresh:
            query = query.populate_existing()
        return query.first()

    def compare_and_set(
        self,
        loan_id: str,
        expected_version: int,
        expected_status: str,
        values: Dict[str, Any],
    ) -> bool:
        """
        Conditionally update a loan.

        The UPDATE only matches when version and status are unchanged since
        the caller read them, so two writers can never both succeed from the
        same snapshot.

        Returns:
            True if the row was updated
        """
        updated = (
            self.db.query(Loan)
            .filter(
                Loan.id == loan_id,
                Loan.version == expected_version,
                Loan.status == expected_status,
            )
            .update({**values, "version": expected_version + 1}, synchronize_session=False)
        )
        return updated == 1


class PaymentIntentRepository:
    """Repository for STK pushes awaiting their callback"""

    def __init__(self, db: Session):
        self.db = db

    def record_intent(
        self,
        ack: PushAcknowledgement,
        member_id: str,
        phone: str,
        amount: Decimal,
        purpose: str,
        reference: str,
    ) -> PaymentIntent:
        db_intent = PaymentIntent(
            checkout_request_id=ack.checkout_request_id,
            merchant_request_id=ack.merchant_request_id,
            member_id=member_id,
            phone=phone,
            amount=amount,
            purpose=purpose,
            reference=reference,
            status=IntentStatus.PENDING.value,
        )
        self.db.add(db_intent)
        self.db.flush()
        return db_intent

    def get_by_checkout_id(self, checkout_request_id: str) -> Optional[PaymentIntent]:
        return (
            self.db.query(PaymentIntent)
            .filter(PaymentIntent.checkout_request_id == checkout_request_id)
            .first()
        )

    def mark(self, intent: PaymentIntent, status: IntentStatus, result_desc: Optional[str] = None) -> None:
        intent.status = status.value
        intent.result_desc = result_desc
        self.db.flush()


class UnmatchedPaymentRepository:
    """Repository for payments awaiting manual attribution"""

    def __init__(self, db: Session):
        self.db = db

    def record_if_absent(
        self,
        mpesa_code: str,
        phone: str,
        amount: Decimal,
        reason: str,
        checkout_request_id: Optional[str] = None,
    ) -> bool:
        return insert_ignoring_duplicate(
            self.db,
            UnmatchedPayment,
            {
                "id": new_id(),
                "mpesa_code": mpesa_code,
                "phone": phone,
                "amount": amount,
                "reason": reason,
                "checkout_request_id": checkout_request_id,
            },
            unique_column="mpesa_code",
        )

    def get_unmatched(self, unmatched_id: str) -> Optional[UnmatchedPayment]:
        return self.db.query(UnmatchedPayment).filter(UnmatchedPayment.id == unmatched_id).first()

    def get_by_receipt(self, mpesa_code: str) -> Optional[UnmatchedPayment]:
        return self.db.query(UnmatchedPayment).filter(UnmatchedPayment.mpesa_code == mpesa_code).first()

    def list_unresolved(self, limit: int = 100) -> List[UnmatchedPayment]:
        return (
            self.db.query(UnmatchedPayment)
            .filter(UnmatchedPayment.resolved_contribution_id.is_(None))
            .order_by(UnmatchedPayment.created_at.desc())
            .limit(limit)
            .all()
        )

    def mark_resolved(self, unmatched_id: str, contribution_id: str) -> bool:
        """Set the resolution once; False if another operator got there first"""
        updated = (
            self.db.query(UnmatchedPayment)
            .filter(
                UnmatchedPayment.id == unmatched_id,
                UnmatchedPayment.resolved_contribution_id.is_(None),
            )
            .update({"resolved_contribution_id": contribution_id}, synchronize_session=False)
        )
        return updated == 1
