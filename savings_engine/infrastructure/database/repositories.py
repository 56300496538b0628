"""Data access layer: ORM records <-> domain models"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy.orm import Session

from savings_engine.domain.exceptions import NotFound
from savings_engine.domain.metadata import CycleMetadata, parse_metadata
from savings_engine.domain.models import (
    ContributionMode,
    EntryKind,
    EntryStatus,
    GovIdStatus,
    LedgerEntry,
    Loan,
    LoanStatus,
    Plan,
    PlanSubscription,
    PlanType,
    Profile,
    SubscriptionStatus,
)
from savings_engine.infrastructure.database.models import (
    ActivityLogRecord,
    LedgerEntryRecord,
    LoanRecord,
    PlanRecord,
    ProfileRecord,
    ReconciliationRecord,
    SubscriptionRecord,
    WalletLockRecord,
)
from savings_engine.utils.money import to_money


def to_plan(record: PlanRecord) -> Plan:
    return Plan(
        plan_id=record.id,
        name=record.name,
        type=PlanType(record.type),
        contribution_mode=ContributionMode(record.contribution_type),
        min_amount=to_money(record.min_amount),
        fixed_amount=to_money(record.fixed_amount),
        duration_weeks=record.duration_weeks or 0,
        duration_months=record.duration_months or 0,
        service_charge=to_money(record.service_charge),
        is_active=record.is_active,
        config=dict(record.config or {}),
    )


def to_subscription(record: SubscriptionRecord) -> PlanSubscription:
    """Metadata is validated here; a bag that does not fit the plan raises ArchetypeMismatch"""
    plan = to_plan(record.plan)
    return PlanSubscription(
        subscription_id=record.id,
        user_id=record.user_id,
        plan=plan,
        status=SubscriptionStatus(record.status),
        start_date=record.start_date,
        current_balance=to_money(record.current_balance),
        metadata=parse_metadata(plan.type, record.plan_metadata),
    )


def to_entry(record: LedgerEntryRecord) -> LedgerEntry:
    return LedgerEntry(
        owner_id=record.user_id,
        kind=EntryKind(record.type),
        amount=to_money(record.amount),
        status=EntryStatus(record.status),
        scope=record.user_plan_id,
        fee=to_money(record.charges),
        description=record.description or "",
        created_at=record.created_at,
        loan_id=record.loan_id,
        receipt_url=record.receipt_url,
        entry_id=record.id,
    )


def to_loan(record: LoanRecord) -> Loan:
    return Loan(
        loan_id=record.id,
        user_id=record.user_id,
        amount=to_money(record.amount),
        interest_rate=Decimal(str(record.interest_rate)),
        total_payable=to_money(record.total_payable),
        duration_months=record.duration_months,
        status=LoanStatus(record.status),
        loan_number=record.loan_number,
        flagged_for_review=record.flagged_for_review,
        created_at=record.created_at,
    )


def metadata_bag(metadata: Optional[CycleMetadata]) -> Optional[Dict[str, Any]]:
    return metadata.to_bag() if metadata is not None else None


class PlanRepository:
    """Repository for plan definitions"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, plan_id: str) -> PlanRecord:
        record = self.db.get(PlanRecord, plan_id)
        if record is None:
            raise NotFound(f"Plan {plan_id} not found")
        return record

    def create(self, plan: Plan) -> PlanRecord:
        record = PlanRecord(
            name=plan.name,
            type=plan.type.value,
            contribution_type=plan.contribution_mode.value,
            min_amount=plan.min_amount,
            fixed_amount=plan.fixed_amount,
            duration_weeks=plan.duration_weeks,
            duration_months=plan.duration_months,
            service_charge=plan.service_charge,
            is_active=plan.is_active,
            config=plan.config,
        )
        if plan.plan_id:
            record.id = plan.plan_id
        self.db.add(record)
        self.db.flush()
        return record

    def list_active(self) -> List[PlanRecord]:
        return self.db.query(PlanRecord).filter(PlanRecord.is_active.is_(True)).order_by(PlanRecord.name).all()


class SubscriptionRepository:
    """Repository for user plan subscriptions"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, subscription_id: str, for_update: bool = False) -> SubscriptionRecord:
        query = self.db.query(SubscriptionRecord).filter(SubscriptionRecord.id == subscription_id)
        if for_update:
            # Serializes read-modify-write of cycle counters per subscription
            query = query.with_for_update(of=SubscriptionRecord)
        record = query.first()
        if record is None:
            raise NotFound(f"Subscription {subscription_id} not found")
        return record

    def list_by_user(self, user_id: str, statuses: Optional[Set[SubscriptionStatus]] = None) -> List[SubscriptionRecord]:
        query = self.db.query(SubscriptionRecord).filter(SubscriptionRecord.user_id == user_id)
        if statuses:
            query = query.filter(SubscriptionRecord.status.in_([s.value for s in statuses]))
        return query.order_by(SubscriptionRecord.created_at).all()

    def create(self, subscription: PlanSubscription) -> SubscriptionRecord:
        record = SubscriptionRecord(
            user_id=subscription.user_id,
            plan_id=subscription.plan.plan_id,
            current_balance=subscription.current_balance,
            status=subscription.status.value,
            start_date=subscription.start_date,
            plan_metadata=metadata_bag(subscription.metadata),
        )
        if subscription.subscription_id:
            record.id = subscription.subscription_id
        self.db.add(record)
        self.db.flush()
        return record

    def set_status_if(self, subscription_id: str, expected: SubscriptionStatus, new: SubscriptionStatus) -> bool:
        """Conditional update; True only when this call changed the row"""
        updated = (
            self.db.query(SubscriptionRecord)
            .filter(SubscriptionRecord.id == subscription_id, SubscriptionRecord.status == expected.value)
            .update({SubscriptionRecord.status: new.value}, synchronize_session=False)
        )
        return updated == 1


class LedgerRepository:
    """Repository for ledger entries"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, entry: LedgerEntry) -> LedgerEntryRecord:
        record = LedgerEntryRecord(
            user_id=entry.owner_id,
            user_plan_id=entry.scope,
            type=entry.kind.value,
            amount=entry.amount,
            charges=entry.fee,
            status=entry.status.value,
            description=entry.description,
            receipt_url=entry.receipt_url,
            loan_id=entry.loan_id,
        )
        if entry.created_at is not None:
            record.created_at = entry.created_at
        self.db.add(record)
        self.db.flush()
        return record

    def add_all(self, entries: Iterable[LedgerEntry]) -> List[LedgerEntryRecord]:
        return [self.add(entry) for entry in entries]

    def get(self, entry_id: str) -> LedgerEntryRecord:
        record = self.db.get(LedgerEntryRecord, entry_id)
        if record is None:
            raise NotFound(f"Transaction {entry_id} not found")
        return record

    def list_by_user(self, user_id: str) -> List[LedgerEntryRecord]:
        return (
            self.db.query(LedgerEntryRecord)
            .filter(LedgerEntryRecord.user_id == user_id)
            .order_by(LedgerEntryRecord.created_at)
            .all()
        )

    def list_by_scope(self, scope: str) -> List[LedgerEntryRecord]:
        return (
            self.db.query(LedgerEntryRecord)
            .filter(LedgerEntryRecord.user_plan_id == scope)
            .order_by(LedgerEntryRecord.created_at)
            .all()
        )

    def lock_wallet(self, user_id: str) -> WalletLockRecord:
        """Row-lock the owner's wallet, creating the lock row on first use"""
        record = (
            self.db.query(WalletLockRecord)
            .filter(WalletLockRecord.user_id == user_id)
            .with_for_update()
            .first()
        )
        if record is None:
            record = WalletLockRecord(user_id=user_id)
            self.db.add(record)
            self.db.flush()
        return record


class LoanRepository:
    """Repository for loans"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, loan_id: str, for_update: bool = False) -> LoanRecord:
        query = self.db.query(LoanRecord).filter(LoanRecord.id == loan_id)
        if for_update:
            query = query.with_for_update()
        record = query.first()
        if record is None:
            raise NotFound(f"Loan {loan_id} not found")
        return record

    def list_by_user(self, user_id: str) -> List[LoanRecord]:
        return self.db.query(LoanRecord).filter(LoanRecord.user_id == user_id).order_by(LoanRecord.created_at).all()

    def upsert(self, loan: Loan) -> LoanRecord:
        record = self.db.get(LoanRecord, loan.loan_id)
        if record is None:
            record = LoanRecord(id=loan.loan_id, user_id=loan.user_id, loan_number=loan.loan_number)
            if loan.created_at is not None:
                record.created_at = loan.created_at
            self.db.add(record)

        record.amount = loan.amount
        record.interest_rate = loan.interest_rate
        record.total_payable = loan.total_payable
        record.duration_months = loan.duration_months
        record.status = loan.status.value
        record.flagged_for_review = loan.flagged_for_review
        self.db.flush()
        return record


class ProfileRepository:
    """Repository for account profiles"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Profile:
        record = self.db.get(ProfileRecord, user_id)
        if record is None:
            raise NotFound(f"Profile {user_id} not found")
        return Profile(
            user_id=record.id,
            created_at=record.created_at,
            gov_id_status=GovIdStatus(record.gov_id_status),
        )

    def create(self, profile: Profile, full_name: Optional[str] = None) -> ProfileRecord:
        record = ProfileRecord(
            id=profile.user_id,
            full_name=full_name,
            gov_id_status=profile.gov_id_status.value,
            created_at=profile.created_at,
        )
        self.db.add(record)
        self.db.flush()
        return record


class ActivityRepository:
    """Repository for the activity feed"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, user_id: str, action: str, details: Dict[str, Any], is_public: bool = False) -> ActivityLogRecord:
        record = ActivityLogRecord(user_id=user_id, action=action, details=details, is_public=is_public)
        self.db.add(record)
        self.db.flush()
        return record

    def list_by_user(self, user_id: str, limit: int = 20) -> List[ActivityLogRecord]:
        """Fetch recent activity for a user"""
        return (
            self.db.query(ActivityLogRecord)
            .filter(ActivityLogRecord.user_id == user_id)
            .order_by(ActivityLogRecord.created_at.desc())
            .limit(limit)
            .all()
        )


class ReconciliationRepository:
    """Repository for the plan-credit reconciliation queue"""

    def __init__(self, db: Session):
        self.db = db

    def add(
        self,
        user_id: str,
        subscription_id: str,
        debit_entry_id: Optional[str],
        amount: Decimal,
        reason: str,
        now: datetime,
    ) -> ReconciliationRecord:
        record = ReconciliationRecord(
            user_id=user_id,
            user_plan_id=subscription_id,
            debit_transaction_id=debit_entry_id,
            amount=amount,
            reason=reason,
            created_at=now,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def list_open(self) -> List[ReconciliationRecord]:
        return (
            self.db.query(ReconciliationRecord)
            .filter(ReconciliationRecord.status == "open")
            .order_by(ReconciliationRecord.created_at)
            .all()
        )
