"""In-memory LedgerStore and builders shared by the unit and integration tests"""

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from savings_engine.domain.balance import general_wallet_balance, standard_plan_balance
from savings_engine.domain.exceptions import NotFound, StoreFailure, ValidationError
from savings_engine.domain.metadata import ensure_metadata
from savings_engine.domain.models import (
    ContributionMode,
    EntryKind,
    EntryStatus,
    GovIdStatus,
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
from savings_engine.domain.rules import rules_for
from savings_engine.utils.money import to_money

# Monday; tests pin the clock so week and month boundaries are predictable
NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
USER = "user_1"


class InMemoryLedgerStore:
    """LedgerStore kept in dicts, with the same write rules as SqlLedgerStore"""

    def __init__(self):
        self.entries: Dict[str, LedgerEntry] = {}
        self.plans: Dict[str, Plan] = {}
        self.subscriptions: Dict[str, PlanSubscription] = {}
        self.profiles: Dict[str, Profile] = {}
        self.loans: Dict[str, Loan] = {}
        self.activity: List[Dict[str, Any]] = []
        self.reconciliation: List[Dict[str, Any]] = []
        self.fail_plan_credit = False

    # Ledger entries

    def list_entries(self, owner_id: str) -> List[LedgerEntry]:
        return [e for e in self.entries.values() if e.owner_id == owner_id]

    def list_scope_entries(self, scope: str) -> List[LedgerEntry]:
        return [e for e in self.entries.values() if e.scope == scope]

    def get_entry(self, entry_id: str) -> LedgerEntry:
        if entry_id not in self.entries:
            raise NotFound(f"Transaction {entry_id} not found")
        return self.entries[entry_id]

    def _ensure_wallet_covers(self, owner_id: str, spend) -> None:
        if spend is None:
            return
        available = general_wallet_balance(self.list_entries(owner_id))
        if to_money(spend) > available:
            raise ValidationError(f"Insufficient wallet balance: ₦{available} available, ₦{to_money(spend)} required")

    def append_entries(self, entries, spend=None) -> List[LedgerEntry]:
        entries = list(entries)
        if entries:
            self._ensure_wallet_covers(entries[0].owner_id, spend)
        saved = [replace(e, entry_id=str(uuid.uuid4()), amount=to_money(e.amount), fee=to_money(e.fee)) for e in entries]
        for entry in saved:
            self.entries[entry.entry_id] = entry
        return saved

    def update_entry_status(self, entry_id: str, expected: EntryStatus, new: EntryStatus) -> LedgerEntry:
        entry = self.get_entry(entry_id)
        if entry.status != expected:
            raise ValidationError(f"Transaction {entry_id} is {entry.status.value}, not {expected.value}")
        self.entries[entry_id] = replace(entry, status=new)
        return self.entries[entry_id]

    # Plans and subscriptions

    def get_plan(self, plan_id: str) -> Plan:
        if plan_id not in self.plans:
            raise NotFound(f"Plan {plan_id} not found")
        return self.plans[plan_id]

    def get_subscription(self, subscription_id: str) -> PlanSubscription:
        if subscription_id not in self.subscriptions:
            raise NotFound(f"Subscription {subscription_id} not found")
        return self.subscriptions[subscription_id]

    def list_subscriptions(self, user_id: str, statuses=None) -> List[PlanSubscription]:
        return [
            s
            for s in self.subscriptions.values()
            if s.user_id == user_id and (not statuses or s.status in statuses)
        ]

    def create_subscription(self, subscription: PlanSubscription) -> PlanSubscription:
        ensure_metadata(subscription.plan.type, subscription.metadata)
        saved = replace(subscription, subscription_id=subscription.subscription_id or str(uuid.uuid4()))
        self.subscriptions[saved.subscription_id] = saved
        return saved

    def apply_plan_credit(self, request: PlanCreditRequest) -> PlanCreditResult:
        if self.fail_plan_credit:
            raise StoreFailure("Storage temporarily unavailable")

        amount = to_money(request.amount)
        fee = to_money(request.fee)
        contribution = amount - fee
        if contribution <= 0:
            raise ValidationError("Plan credit must exceed its fee")

        subscription = self.get_subscription(request.subscription_id)
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
                created_at=request.now,
            )
        ]
        if outcome.penalty_cleared > 0:
            entries.append(
                LedgerEntry(
                    owner_id=request.user_id,
                    kind=EntryKind.SERVICE_CHARGE,
                    amount=outcome.penalty_cleared,
                    status=EntryStatus.COMPLETED,
                    scope=subscription.subscription_id,
                    created_at=request.now,
                )
            )
        self.append_entries(entries)

        new_balance = to_money(subscription.current_balance) + contribution - outcome.penalty_cleared
        self.subscriptions[subscription.subscription_id] = replace(
            subscription,
            current_balance=new_balance,
            metadata=outcome.metadata,
            status=SubscriptionStatus.ACTIVE if outcome.activated else subscription.status,
        )
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

    def record_standard_transfer(self, debit: LedgerEntry, credit: LedgerEntry, spend=None):
        subscription = self.get_subscription(credit.scope)
        self._ensure_wallet_covers(debit.owner_id, spend)
        saved = self.append_entries([debit, credit])
        balance = standard_plan_balance(self.list_scope_entries(credit.scope), credit.scope)
        self.subscriptions[credit.scope] = replace(subscription, current_balance=balance)
        return saved, balance

    def transition_status(self, subscription_id: str, expected: SubscriptionStatus, new: SubscriptionStatus) -> bool:
        subscription = self.get_subscription(subscription_id)
        if subscription.status != expected:
            return False
        self.subscriptions[subscription_id] = replace(subscription, status=new)
        return True

    def update_subscription(self, subscription_id: str, change):
        subscription = self.get_subscription(subscription_id)
        result = change(subscription)
        if result is None:
            return subscription, []

        if result.metadata is not None:
            ensure_metadata(subscription.plan.type, result.metadata)
        updated = replace(
            subscription,
            metadata=result.metadata if result.metadata is not None else subscription.metadata,
            status=result.status or subscription.status,
            current_balance=to_money(result.balance) if result.balance is not None else subscription.current_balance,
        )
        saved = self.append_entries(result.entries)
        self.subscriptions[subscription_id] = updated
        return updated, saved

    # Users and loans

    def get_profile(self, user_id: str) -> Profile:
        if user_id not in self.profiles:
            raise NotFound(f"Profile {user_id} not found")
        return self.profiles[user_id]

    def list_loans(self, user_id: str) -> List[Loan]:
        return [loan for loan in self.loans.values() if loan.user_id == user_id]

    def get_loan(self, loan_id: str) -> Loan:
        if loan_id not in self.loans:
            raise NotFound(f"Loan {loan_id} not found")
        return self.loans[loan_id]

    def save_loan(self, loan: Loan, entries=(), spend=None):
        self._ensure_wallet_covers(loan.user_id, spend)
        self.loans[loan.loan_id] = loan
        return loan, self.append_entries(list(entries))

    # Side records

    def record_activity(self, user_id: str, action, details: Dict[str, Any], is_public: bool = False) -> None:
        self.activity.append({"user_id": user_id, "action": action, "details": details, "is_public": is_public})

    def enqueue_reconciliation(self, user_id, subscription_id, debit_entry_id, amount, reason, now) -> str:
        reconciliation_id = str(uuid.uuid4())
        self.reconciliation.append(
            {
                "reconciliation_id": reconciliation_id,
                "user_id": user_id,
                "subscription_id": subscription_id,
                "debit_entry_id": debit_entry_id,
                "amount": amount,
                "reason": reason,
            }
        )
        return reconciliation_id

    # Test helpers

    def actions(self, user_id: str = USER) -> List[str]:
        return [a["action"] for a in self.activity if a["user_id"] == user_id]



def make_plan(plan_type: PlanType, **overrides) -> Plan:
    """Plan with the product defaults for its type"""
    defaults: Dict[str, Any] = {
        "plan_id": f"plan_{plan_type.value}",
        "name": plan_type.value.replace("_", " ").title(),
        "type": plan_type,
    }
    if plan_type in (PlanType.STEP_UP, PlanType.DAILY_DROP, PlanType.AJO_CIRCLE):
        defaults["contribution_mode"] = ContributionMode.FIXED
    defaults.update(overrides)
    return Plan(**defaults)


def make_subscription(
    store: InMemoryLedgerStore,
    plan: Plan,
    metadata=None,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    balance=0,
    user_id: str = USER,
    start_date=None,
    subscription_id: Optional[str] = None,
) -> PlanSubscription:
    store.plans[plan.plan_id] = plan
    return store.create_subscription(
        PlanSubscription(
            subscription_id=subscription_id or "",
            user_id=user_id,
            plan=plan,
            status=status,
            start_date=start_date or NOW.date(),
            current_balance=to_money(balance),
            metadata=metadata,
        )
    )


def fund_wallet(store: InMemoryLedgerStore, amount, user_id: str = USER) -> LedgerEntry:
    """Completed external deposit into the general wallet"""
    [entry] = store.append_entries(
        [
            LedgerEntry(
                owner_id=user_id,
                kind=EntryKind.DEPOSIT,
                amount=Decimal(str(amount)),
                status=EntryStatus.COMPLETED,
                created_at=NOW,
            )
        ]
    )
    return entry


def add_profile(
    store: InMemoryLedgerStore,
    created_at: datetime,
    gov_id_status: GovIdStatus = GovIdStatus.VERIFIED,
    user_id: str = USER,
) -> Profile:
    profile = Profile(user_id=user_id, created_at=created_at, gov_id_status=gov_id_status)
    store.profiles[user_id] = profile
    return profile
