"""SQLAlchemy ORM models for plans, subscriptions, the ledger and loans"""

import uuid
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, Date, Integer, ForeignKey, Text, JSON
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

# Naira amounts, two decimal places
Money = Numeric(14, 2, asdecimal=True)


def new_id() -> str:
    return str(uuid.uuid4())


class PlanRecord(Base):
    """Savings product definition"""

    __tablename__ = "plans"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    type = Column(String(32), nullable=False, default="standard")
    contribution_type = Column(String(16), nullable=False, default="flexible")
    min_amount = Column(Money, nullable=False, default=0)
    fixed_amount = Column(Money, nullable=False, default=0)
    duration_weeks = Column(Integer, nullable=False, default=0)
    duration_months = Column(Integer, nullable=False, default=0)
    service_charge = Column(Money, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    config = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    subscriptions = relationship("SubscriptionRecord", back_populates="plan")


class SubscriptionRecord(Base):
    """A user's membership in a plan; plan_metadata holds the archetype's cycle state"""

    __tablename__ = "user_plans"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    plan_id = Column(String(36), ForeignKey("plans.id"), nullable=False)
    current_balance = Column(Money, nullable=False, default=0)
    status = Column(String(32), nullable=False, default="active")
    start_date = Column(Date, nullable=False)
    plan_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    plan = relationship("PlanRecord", back_populates="subscriptions", lazy="joined")


class LedgerEntryRecord(Base):
    """Money movement; user_plan_id NULL means the general wallet"""

    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    user_plan_id = Column(String(36), ForeignKey("user_plans.id"), nullable=True, index=True)
    type = Column(String(32), nullable=False)
    amount = Column(Money, nullable=False)
    charges = Column(Money, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="pending")
    description = Column(Text, nullable=True)
    receipt_url = Column(Text, nullable=True)
    loan_id = Column(String(36), ForeignKey("loans.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class LoanRecord(Base):
    """Wallet-backed loan"""

    __tablename__ = "loans"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    amount = Column(Money, nullable=False)
    interest_rate = Column(Numeric(5, 2), nullable=False)
    total_payable = Column(Money, nullable=False)
    duration_months = Column(Integer, nullable=False)
    status = Column(String(16), nullable=False, default="pending")
    loan_number = Column(String(16), nullable=False, unique=True)
    flagged_for_review = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ProfileRecord(Base):
    """Account profile; created_at is the account age anchor"""

    __tablename__ = "profiles"

    id = Column(Text, primary_key=True)
    full_name = Column(Text, nullable=True)
    gov_id_status = Column(String(16), nullable=False, default="not_uploaded")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ActivityLogRecord(Base):
    """User-facing activity feed"""

    __tablename__ = "activity_logs"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    action = Column(String(32), nullable=False)
    details = Column(JSON, nullable=True)
    is_public = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ReconciliationRecord(Base):
    """Wallet debits whose plan credit never committed, awaiting manual resolution"""

    __tablename__ = "reconciliation_queue"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(Text, nullable=False, index=True)
    user_plan_id = Column(String(36), nullable=False)
    debit_transaction_id = Column(String(36), nullable=True)
    amount = Column(Money, nullable=False)
    reason = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="open")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    resolved_at = Column(DateTime(timezone=True), nullable=True)


class WalletLockRecord(Base):
    """One row per wallet owner; locked to serialize general-wallet debits"""

    __tablename__ = "wallet_locks"

    user_id = Column(Text, primary_key=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
