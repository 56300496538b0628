"""
Leaving a plan: early break, matured withdrawal, circle payouts and cycle restarts.

All subscription writes go through LedgerStore.update_subscription so the
status check and the ledger entries commit under the same row lock.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from savings_engine.domain.exceptions import NotFound, ValidationError
from savings_engine.domain.loans import OUTSTANDING_STATUSES, LoanEligibilityEngine
from savings_engine.domain.metadata import CircleMetadata, FixedDailyMetadata, FixedWeeklyMetadata
from savings_engine.domain.models import (
    ActivityAction,
    EntryKind,
    EntryStatus,
    LedgerEntry,
    LoanDecision,
    PlanSubscription,
    SubscriptionChange,
    SubscriptionStatus,
)
from savings_engine.domain.ports import LedgerStore
from savings_engine.domain.rules import CircleRules, rules_for
from savings_engine.utils.date_utils import as_date
from savings_engine.utils.money import ZERO, percentage_of, to_money

BREAK_PENALTY_RATE = Decimal("0.05")


@dataclass
class ExitResult:
    subscription: PlanSubscription
    amount: Decimal  # credited to the general wallet
    penalty: Decimal = ZERO
    entries: List[LedgerEntry] = field(default_factory=list)
    loan_repayments: List[LoanDecision] = field(default_factory=list)


def owned_subscription(store: LedgerStore, user_id: str, subscription_id: str) -> PlanSubscription:
    subscription = store.get_subscription(subscription_id)
    if subscription.user_id != user_id:
        raise NotFound(f"Subscription {subscription_id} not found")
    return subscription


def _entry(subscription: PlanSubscription, kind: EntryKind, amount, now: datetime, scope=None, description=""):
    return LedgerEntry(
        owner_id=subscription.user_id,
        kind=kind,
        amount=amount,
        status=EntryStatus.COMPLETED,
        scope=scope,
        description=description,
        created_at=now,
    )


def break_subscription(store: LedgerStore, user_id: str, subscription_id: str, now: datetime) -> ExitResult:
    """
    Cancel an active plan before maturity.

    A 5% penalty is charged on the current balance and the remaining 95%
    returns to the general wallet. Anchor and Ajo Circle plans cannot be broken.
    """
    subscription = owned_subscription(store, user_id, subscription_id)
    rules_for(subscription.plan.type).ensure_cancellable(subscription)

    def change(locked: PlanSubscription) -> SubscriptionChange:
        if locked.status != SubscriptionStatus.ACTIVE:
            raise ValidationError(f"Only active plans can be broken; this plan is {locked.status.value}")

        balance = to_money(locked.current_balance)
        penalty = percentage_of(balance, BREAK_PENALTY_RATE)
        refund = balance - penalty
        name = locked.plan.name
        sub_id = locked.subscription_id

        entries = []
        if refund > 0:
            entries.append(_entry(locked, EntryKind.WITHDRAWAL, refund, now, sub_id, f"Early exit from {name}"))
        if penalty > 0:
            entries.append(_entry(locked, EntryKind.SERVICE_CHARGE, penalty, now, sub_id, "Early exit penalty (5%)"))
        if refund > 0:
            entries.append(_entry(locked, EntryKind.DEPOSIT, refund, now, None, f"Refund from {name}"))

        return SubscriptionChange(status=SubscriptionStatus.CANCELLED, balance=ZERO, entries=entries)

    updated, entries = store.update_subscription(subscription_id, change)
    credited = sum((e.amount for e in entries if e.kind == EntryKind.DEPOSIT), ZERO)
    penalty = sum((e.amount for e in entries if e.kind == EntryKind.SERVICE_CHARGE), ZERO)

    store.record_activity(
        user_id,
        ActivityAction.PLAN_BROKEN,
        {"subscription_id": subscription_id, "plan": updated.plan.name, "refund": str(credited), "penalty": str(penalty)},
    )
    return ExitResult(subscription=updated, amount=credited, penalty=penalty, entries=entries)


def withdraw_matured(
    store: LedgerStore, user_id: str, subscription_id: str, now: datetime, loans: Optional[LoanEligibilityEngine] = None
) -> ExitResult:
    """
    Pay out a matured plan to the general wallet and mark it completed.

    Outstanding loans are settled from the payout before the user can spend it.
    A circle member who already collected a payout gets nothing back: the
    balance is what they owe the pot, and it leaves the plan as pooled.
    """
    owned_subscription(store, user_id, subscription_id)

    def change(locked: PlanSubscription) -> SubscriptionChange:
        if locked.status == SubscriptionStatus.COMPLETED:
            raise ValidationError(f"{locked.plan.name} has already been paid out")
        if locked.status != SubscriptionStatus.MATURED:
            raise ValidationError(f"{locked.plan.name} has not matured yet")

        balance = to_money(locked.current_balance)
        name = locked.plan.name
        sub_id = locked.subscription_id
        pooled = isinstance(locked.metadata, CircleMetadata) and bool(locked.metadata.payout_history)
        entries = []
        if balance > 0 and pooled:
            entries.append(
                _entry(locked, EntryKind.WITHDRAWAL, balance, now, sub_id, f"Contributions pooled into {name} payouts")
            )
        elif balance > 0:
            entries.append(_entry(locked, EntryKind.WITHDRAWAL, balance, now, sub_id, f"Payout from {name}"))
            entries.append(_entry(locked, EntryKind.DEPOSIT, balance, now, None, f"Matured payout from {name}"))

        metadata = None
        if isinstance(locked.metadata, FixedDailyMetadata):
            metadata = locked.metadata.model_copy(update={"withdrawn": True, "withdrawn_amount": balance})

        return SubscriptionChange(
            metadata=metadata, status=SubscriptionStatus.COMPLETED, balance=ZERO, entries=entries
        )

    updated, entries = store.update_subscription(subscription_id, change)
    payout = sum((e.amount for e in entries if e.kind == EntryKind.DEPOSIT), ZERO)
    store.record_activity(
        user_id,
        ActivityAction.WITHDRAWAL,
        {"subscription_id": subscription_id, "plan": updated.plan.name, "amount": str(payout)},
    )

    loans = loans or LoanEligibilityEngine(store)
    repayments = []
    remaining = payout
    outstanding = [loan for loan in store.list_loans(user_id) if loan.status in OUTSTANDING_STATUSES]
    for loan in sorted(outstanding, key=lambda l: l.created_at or now):
        if remaining <= 0:
            break
        amount = min(remaining, to_money(loan.total_payable))
        decision = loans.repay_loan(user_id, loan.loan_id, amount, now)
        repayments.append(decision)
        remaining -= amount

    return ExitResult(subscription=updated, amount=payout, entries=entries, loan_repayments=repayments)


def collect_circle_payout(store: LedgerStore, user_id: str, subscription_id: str, now: datetime) -> ExitResult:
    """
    Credit the pot when the current week is one of the member's picking turns.

    The member's contributions so far are part of the pot, so the plan balance
    leaves the subscription with the payout. Once every turn is collected and
    the cycle has run its course the membership is completed.
    """
    subscription = owned_subscription(store, user_id, subscription_id)
    rules = rules_for(subscription.plan.type)
    if not isinstance(rules, CircleRules):
        raise ValidationError(f"{subscription.plan.name} is not an Ajo circle")

    def change(locked: PlanSubscription) -> SubscriptionChange:
        if locked.status not in (SubscriptionStatus.ACTIVE, SubscriptionStatus.MATURED):
            raise ValidationError(f"Circle membership is {locked.status.value}")
        if not rules.payout_due(locked):
            raise ValidationError("No payout is due for you this week")

        meta: CircleMetadata = locked.metadata
        week = meta.current_week
        name = locked.plan.name
        stake = to_money(locked.current_balance)
        history = meta.payout_history + (week,)
        sub_id = locked.subscription_id

        entries = []
        if stake > 0:
            label = f"Contributions pooled into week {week} payout"
            entries.append(_entry(locked, EntryKind.WITHDRAWAL, stake, now, sub_id, label))
        pot = rules.payout_amount(locked)
        entries.append(_entry(locked, EntryKind.DEPOSIT, pot, now, None, f"{name} payout, week {week}"))

        status = None
        if len(history) >= len(meta.picking_turns) and rules.maturity(locked, now).matured:
            status = SubscriptionStatus.COMPLETED
        return SubscriptionChange(
            metadata=meta.model_copy(update={"payout_history": history}),
            status=status,
            balance=ZERO,
            entries=entries,
        )

    updated, entries = store.update_subscription(subscription_id, change)
    amount = sum((e.amount for e in entries if e.kind == EntryKind.DEPOSIT), ZERO)
    store.record_activity(
        user_id,
        ActivityAction.PAYOUT,
        {"subscription_id": subscription_id, "plan": updated.plan.name, "amount": str(amount)},
        is_public=True,
    )
    return ExitResult(subscription=updated, amount=amount, entries=entries)


def start_new_cycle(store: LedgerStore, user_id: str, subscription_id: str, now: datetime) -> PlanSubscription:
    """Re-enroll in a completed Daily Drop or Step-Up plan with the same settings and fresh counters"""
    previous = owned_subscription(store, user_id, subscription_id)
    rules = rules_for(previous.plan.type)
    if not rules.resets_after_payout:
        raise ValidationError(f"{previous.plan.name} does not start new cycles")
    if previous.status != SubscriptionStatus.COMPLETED:
        raise ValidationError("Withdraw the matured balance before starting a new cycle")

    meta = previous.metadata
    if isinstance(meta, FixedDailyMetadata):
        fresh = FixedDailyMetadata(
            fixed_amount=meta.fixed_amount, selected_duration=meta.selected_duration, total_days_paid=0
        )
    elif isinstance(meta, FixedWeeklyMetadata):
        fresh = FixedWeeklyMetadata(
            selected_duration=meta.selected_duration,
            weeks_completed=0,
            week_paid_so_far=ZERO,
            fixed_amount=meta.fixed_amount,
            arrears_amount=ZERO,
        )
    else:
        raise ValidationError(f"{previous.plan.name} does not start new cycles")

    created = store.create_subscription(
        PlanSubscription(
            subscription_id="",
            user_id=user_id,
            plan=previous.plan,
            status=SubscriptionStatus.ACTIVE,
            start_date=as_date(now),
            metadata=fresh,
        )
    )
    store.record_activity(
        user_id, ActivityAction.PLAN_JOIN, {"subscription_id": created.subscription_id, "plan": created.plan.name}
    )
    return created
