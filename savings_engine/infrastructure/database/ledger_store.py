"""
SQL implementation of the LedgerStore port.

Each write method is one database transaction. Subscription writes lock the
row first (SELECT ... FOR UPDATE) so concurrent deposits, settlements and
exits against the same subscription serialize. Writes that spend from the
general wallet lock the owner's wallet_locks row and re-check the balance
before appending.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from savings_engine.domain.balance import general_wallet_balance, standard_plan_balance
from savings_engine.domain.exceptions import NotFound, StoreFailure, ValidationError
from savings_engine.domain.metadata import ensure_metadata
from savings_engine.domain.models import (
    ActivityAction,
    EntryKind,
    EntryStatus,
    LedgerEntry,
    Loan,
    Plan,
    PlanCreditRequest,
    PlanCreditResult,
    PlanSubscription,
    PlanType,
    Profile,
    SubscriptionStatus,
)
from savings_engine.domain.plan_credit import apply_contribution
from savings_engine.domain.ports import ChangeFn
from savings_engine.domain.rules import rules_for
from savings_engine.infrastructure.database.models import LedgerEntryRecord
from savings_engine.infrastructure.database.repositories import (
    ActivityRepository,
    LedgerRepository,
    LoanRepository,
    PlanRepository,
    ProfileRepository,
    ReconciliationRepository,
    SubscriptionRepository,
    metadata_bag,
    to_entry,
    to_loan,
    to_plan,
    to_subscription,
)
from savings_engine.utils.money import to_money


class SqlLedgerStore:
    """LedgerStore backed by a SQLAlchemy session"""

    def __init__(self, db: Session):
        self.db = db
        self.plans = PlanRepository(db)
        self.subscriptions = SubscriptionRepository(db)
        self.ledger = LedgerRepository(db)
        self.loans = LoanRepository(db)
        self.profiles = ProfileRepository(db)
        self.activity = ActivityRepository(db)
        self.reconciliation = ReconciliationRepository(db)

    @contextmanager
    def _reading(self):
        try:
            yield
        except SQLAlchemyError as e:
            logging.error(f"Database read failed: {e}")
            raise StoreFailure("Storage temporarily unavailable") from e

    @contextmanager
    def _transaction(self):
        """Commit on success; roll back on any error, surfacing database errors as StoreFailure"""
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logging.error(f"Database write failed: {e}")
            raise StoreFailure("Storage temporarily unavailable") from e
        except Exception:
            self.db.rollback()
            raise

    # Ledger entries

    def list_entries(self, owner_id: str) -> List[LedgerEntry]:
        with self._reading():
            return [to_entry(r) for r in self.ledger.list_by_user(owner_id)]

    def list_scope_entries(self, scope: str) -> List[LedgerEntry]:
        with self._reading():
            return [to_entry(r) for r in self.ledger.list_by_scope(scope)]

    def get_entry(self, entry_id: str) -> LedgerEntry:
        with self._reading():
            return to_entry(self.ledger.get(entry_id))

    def _ensure_wallet_covers(self, owner_id: str, spend: Optional[Decimal]) -> None:
        """Lock the owner's wallet and check it covers `spend`; call inside a transaction"""
        if spend is None:
            return
        self.ledger.lock_wallet(owner_id)
        available = general_wallet_balance([to_entry(r) for r in self.ledger.list_by_user(owner_id)])
        if to_money(spend) > available:
            raise ValidationError(f"Insufficient wallet balance: ₦{available} available, ₦{to_money(spend)} required")

    def append_entries(self, entries: Sequence[LedgerEntry], spend: Optional[Decimal] = None) -> List[LedgerEntry]:
        with self._transaction():
            if entries:
                self._ensure_wallet_covers(entries[0].owner_id, spend)
            records = self.ledger.add_all(entries)
            saved = [to_entry(r) for r in records]
        return saved

    def update_entry_status(self, entry_id: str, expected: EntryStatus, new: EntryStatus) -> LedgerEntry:
        """Single allowed mutation of an entry: pending -> completed | failed"""
        if expected != EntryStatus.PENDING or new == EntryStatus.PENDING:
            raise ValidationError(f"Transition {expected.value} -> {new.value} is not allowed")

        with self._transaction():
            updated = (
                self.db.query(LedgerEntryRecord)
                .filter(LedgerEntryRecord.id == entry_id, LedgerEntryRecord.status == expected.value)
                .update({LedgerEntryRecord.status: new.value}, synchronize_session=False)
            )
            if updated != 1:
                current = self.ledger.get(entry_id)
                raise ValidationError(f"Transaction {entry_id} is {current.status}, not {expected.value}")
            record = self.ledger.get(entry_id)
            self.db.refresh(record)
            saved = to_entry(record)
        return saved

    # Plans and subscriptions

    def get_plan(self, plan_id: str) -> Plan:
        with self._reading():
            return to_plan(self.plans.get(plan_id))

    def list_plans(self) -> List[Plan]:
        with self._reading():
            return [to_plan(r) for r in self.plans.list_active()]

    def create_plan(self, plan: Plan) -> Plan:
        with self._transaction():
            saved = to_plan(self.plans.create(plan))
        return saved

    def get_subscription(self, subscription_id: str) -> PlanSubscription:
        with self._reading():
            return to_subscription(self.subscriptions.get(subscription_id))

    def list_subscriptions(
        self, user_id: str, statuses: Optional[Set[SubscriptionStatus]] = None
    ) -> List[PlanSubscription]:
        with self._reading():
            return [to_subscription(r) for r in self.subscriptions.list_by_user(user_id, statuses)]

    def create_subscription(self, subscription: PlanSubscription) -> PlanSubscription:
        ensure_metadata(subscription.plan.type, subscription.metadata)
        with self._transaction():
            record = self.subscriptions.create(subscription)
            saved = to_subscription(record)
        return saved

    def apply_plan_credit(self, request: PlanCreditRequest) -> PlanCreditResult:
        """
        Atomic plan credit: one transfer-in entry of (amount, fee), any cleared
        penalty as a service charge, new cycle metadata and balance.
        """
        amount = to_money(request.amount)
        fee = to_money(request.fee)
        contribution = amount - fee
        if contribution <= 0:
            raise ValidationError("Plan credit must exceed its fee")

        with self._transaction():
            record = self.subscriptions.get(request.subscription_id, for_update=True)
            subscription = to_subscription(record)
            if subscription.user_id != request.user_id:
                raise NotFound(f"Subscription {request.subscription_id} not found")
            rules_for(subscription.plan.type).ensure_accepts_deposits(subscription)

            outcome = apply_contribution(subscription, contribution, request.now)

            entries = [
                LedgerEntry(
                    owner_id=request.user_id,
                    kind=EntryKind.TRANSFER,
                    amount=amount,
                    fee=fee,
                    status=EntryStatus.COMPLETED,
                    scope=subscription.subscription_id,
                    description=f"Deposit to {subscription.plan.name}",
                    created_at=request.now,
                )
            ]
            if outcome.penalty_cleared > 0:
                label = "One-time service fee" if subscription.plan.type == PlanType.DAILY_DROP else "Missed week penalty"
                entries.append(
                    LedgerEntry(
                        owner_id=request.user_id,
                        kind=EntryKind.SERVICE_CHARGE,
                        amount=outcome.penalty_cleared,
                        status=EntryStatus.COMPLETED,
                        scope=subscription.subscription_id,
                        description=label,
                        created_at=request.now,
                    )
                )
            self.ledger.add_all(entries)

            new_balance = to_money(subscription.current_balance) + contribution - outcome.penalty_cleared
            record.current_balance = new_balance
            record.plan_metadata = metadata_bag(outcome.metadata)
            if outcome.activated:
                record.status = SubscriptionStatus.ACTIVE.value

        return PlanCreditResult(
            subscription_id=subscription.subscription_id,
            credited_amount=contribution,
            unit=outcome.unit,
            units_satisfied=outcome.units_satisfied,
            penalty_cleared=outcome.penalty_cleared,
            new_balance=new_balance,
            activated=outcome.activated,
            message=outcome.message,
        )

    def record_standard_transfer(
        self, debit: LedgerEntry, credit: LedgerEntry, spend: Optional[Decimal] = None
    ) -> Tuple[List[LedgerEntry], Decimal]:
        """Wallet debit, plan credit and the recomputed standard balance in one transaction"""
        with self._transaction():
            self._ensure_wallet_covers(debit.owner_id, spend)
            record = self.subscriptions.get(credit.scope, for_update=True)
            saved = [to_entry(r) for r in self.ledger.add_all([debit, credit])]
            scope_entries = [to_entry(r) for r in self.ledger.list_by_scope(record.id)]
            new_balance = standard_plan_balance(scope_entries, record.id)
            record.current_balance = new_balance
        return saved, new_balance

    def transition_status(self, subscription_id: str, expected: SubscriptionStatus, new: SubscriptionStatus) -> bool:
        with self._transaction():
            changed = self.subscriptions.set_status_if(subscription_id, expected, new)
        return changed

    def update_subscription(self, subscription_id: str, change: ChangeFn) -> Tuple[PlanSubscription, List[LedgerEntry]]:
        with self._transaction():
            record = self.subscriptions.get(subscription_id, for_update=True)
            subscription = to_subscription(record)
            result = change(subscription)

            saved: List[LedgerEntry] = []
            if result is not None:
                if result.metadata is not None:
                    ensure_metadata(subscription.plan.type, result.metadata)
                    record.plan_metadata = metadata_bag(result.metadata)
                if result.status is not None:
                    record.status = result.status.value
                if result.balance is not None:
                    record.current_balance = to_money(result.balance)
                saved = [to_entry(r) for r in self.ledger.add_all(result.entries)]
                self.db.flush()
            updated = to_subscription(record)
        return updated, saved

    # Users and loans

    def get_profile(self, user_id: str) -> Profile:
        with self._reading():
            return self.profiles.get(user_id)

    def create_profile(self, profile: Profile) -> Profile:
        with self._transaction():
            self.profiles.create(profile)
        return profile

    def list_loans(self, user_id: str) -> List[Loan]:
        with self._reading():
            return [to_loan(r) for r in self.loans.list_by_user(user_id)]

    def get_loan(self, loan_id: str) -> Loan:
        with self._reading():
            return to_loan(self.loans.get(loan_id))

    def save_loan(
        self, loan: Loan, entries: Iterable[LedgerEntry] = (), spend: Optional[Decimal] = None
    ) -> Tuple[Loan, List[LedgerEntry]]:
        with self._transaction():
            self._ensure_wallet_covers(loan.user_id, spend)
            record = self.loans.upsert(loan)
            saved_entries = [to_entry(r) for r in self.ledger.add_all(entries)]
            saved = to_loan(record)
        return saved, saved_entries

    # Side records

    def record_activity(
        self, user_id: str, action: ActivityAction, details: Dict[str, Any], is_public: bool = False
    ) -> None:
        with self._transaction():
            self.activity.add(user_id, action.value, details, is_public)

    def list_activity(self, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        with self._reading():
            return [
                {
                    "action": r.action,
                    "details": r.details or {},
                    "is_public": r.is_public,
                    "created_at": r.created_at,
                }
                for r in self.activity.list_by_user(user_id, limit)
            ]

    def enqueue_reconciliation(
        self,
        user_id: str,
        subscription_id: str,
        debit_entry_id: Optional[str],
        amount: Decimal,
        reason: str,
        now: datetime,
    ) -> str:
        with self._transaction():
            record = self.reconciliation.add(user_id, subscription_id, debit_entry_id, amount, reason, now)
            reconciliation_id = record.id
        return reconciliation_id

    def list_open_reconciliations(self) -> List[Dict[str, Any]]:
        with self._reading():
            return [
                {
                    "reconciliation_id": r.id,
                    "user_id": r.user_id,
                    "subscription_id": r.user_plan_id,
                    "debit_entry_id": r.debit_transaction_id,
                    "amount": to_money(r.amount),
                    "reason": r.reason,
                    "created_at": r.created_at,
                }
                for r in self.reconciliation.list_open()
            ]
