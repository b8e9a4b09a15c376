"""SQLAlchemy ORM models for members, contributions, loans and payment tracking"""

import uuid
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, Date, Integer, ForeignKey, Text
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

Money = Numeric(12, 2)


def new_id() -> str:
    return str(uuid.uuid4())


class Member(Base):
    """Chama member; phone is stored in local format (07XXXXXXXX)"""

    __tablename__ = "members"

    id = Column(Text, primary_key=True, default=new_id)
    full_name = Column(Text, nullable=False)
    phone = Column(String(10), nullable=False, unique=True, index=True)
    email = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    contributions = relationship("Contribution", back_populates="member")
    loans = relationship("Loan", back_populates="member")


class Contribution(Base):
    """Confirmed money received from a member; never mutated after insert"""

    __tablename__ = "contributions"

    id = Column(Text, primary_key=True, default=new_id)
    member_id = Column(Text, ForeignKey("members.id"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    # One row per gateway receipt; redelivered callbacks hit this constraint
    mpesa_code = Column(Text, nullable=True, unique=True)
    month = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="confirmed")
    payment_date = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    member = relationship("Member", back_populates="contributions")


class Loan(Base):
    """Member loan; total due and balance are derived, never stored"""

    __tablename__ = "loans"

    id = Column(Text, primary_key=True, default=new_id)
    member_id = Column(Text, ForeignKey("members.id"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    interest_rate = Column(Numeric(5, 2), nullable=False)
    status = Column(Text, nullable=False, default="pending")
    approved_at = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(Date, nullable=True)
    repaid_amount = Column(Money, nullable=False, default=0)
    # Bumped on every write; guards compare-and-swap updates
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    member = relationship("Member", back_populates="loans")


class PaymentIntent(Base):
    """STK push accepted by the gateway, awaiting its callback"""

    __tablename__ = "payment_intents"

    id = Column(Text, primary_key=True, default=new_id)
    checkout_request_id = Column(Text, nullable=False, unique=True)
    merchant_request_id = Column(Text, nullable=True)
    member_id = Column(Text, ForeignKey("members.id"), nullable=False)
    phone = Column(String(10), nullable=False)
    amount = Column(Money, nullable=False)
    purpose = Column(Text, nullable=False, default="contribution")
    reference = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    result_desc = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())


class UnmatchedPayment(Base):
    """Money received that could not be attributed to a member"""

    __tablename__ = "unmatched_payments"

    id = Column(Text, primary_key=True, default=new_id)
    mpesa_code = Column(Text, nullable=False, unique=True)
    phone = Column(Text, nullable=False)
    amount = Column(Money, nullable=False)
    checkout_request_id = Column(Text, nullable=True)
    reason = Column(Text, nullable=False)
    resolved_contribution_id = Column(Text, ForeignKey("contributions.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
