"""
Period settlement and auto-save.

Settlement closes the period containing `now` exactly once per subscription,
guarded by last_settlement_date:
- weekly goal / step-up: a missed week adds a ₦500 penalty to arrears
- Ajo circle: an unpaid week is owed in full and the circle advances
- monthly bloom: a month that ended short moves its shortfall to arrears
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from savings_engine.domain.exceptions import PlanCreditFailure, ValidationError
from savings_engine.domain.metadata import (
    CircleMetadata,
    CycleMetadata,
    FixedWeeklyMetadata,
    GoalWeeklyMetadata,
    MonthlyGoalMetadata,
)
from savings_engine.domain.models import (
    DepositChannel,
    DepositRequest,
    PlanSubscription,
    SubscriptionChange,
    SubscriptionStatus,
)
from savings_engine.domain.ports import LedgerStore
from savings_engine.domain.rules import WEEKLY_FLOOR, rules_for
from savings_engine.utils.date_utils import as_date, months_between, same_month, same_week
from savings_engine.utils.money import ZERO, to_money

MISSED_WEEK_PENALTY = Decimal("500")


@dataclass
class AutoSaveReport:
    covered: List[str] = field(default_factory=list)
    failed: List[Tuple[str, str]] = field(default_factory=list)  # (subscription_id, reason)


def _already_settled(last, now, monthly=False) -> bool:
    if last is None:
        return False
    return same_month(last, now) if monthly else same_week(last, now)


def settle(subscription: PlanSubscription, now: datetime) -> Optional[CycleMetadata]:
    """
    New metadata after closing the current period, or None when there is
    nothing to settle (already settled, matured, or an archetype without periods).
    """
    rules = rules_for(subscription.plan.type)
    meta = rules.metadata(subscription)
    if meta is None or rules.maturity(subscription, now).matured:
        return None

    today = as_date(now)

    if isinstance(meta, GoalWeeklyMetadata):
        if _already_settled(meta.last_settlement_date, now):
            return None
        if meta.current_week_total >= WEEKLY_FLOOR:
            return meta.model_copy(
                update={
                    "weeks_completed": meta.weeks_completed + 1,
                    "current_week_total": ZERO,
                    "last_settlement_date": today,
                }
            )
        return meta.model_copy(
            update={
                "arrears_amount": to_money(meta.arrears_amount + MISSED_WEEK_PENALTY),
                "current_week_total": ZERO,
                "last_settlement_date": today,
            }
        )

    if isinstance(meta, FixedWeeklyMetadata):
        if _already_settled(meta.last_settlement_date, now):
            return None
        fixed = to_money(meta.fixed_amount)
        if meta.week_paid_so_far >= fixed:
            # Surplus rolls into next week
            return meta.model_copy(
                update={
                    "weeks_completed": meta.weeks_completed + 1,
                    "week_paid_so_far": to_money(meta.week_paid_so_far - fixed),
                    "last_settlement_date": today,
                }
            )
        return meta.model_copy(
            update={
                "arrears_amount": to_money(meta.arrears_amount + MISSED_WEEK_PENALTY),
                "last_settlement_date": today,
            }
        )

    if isinstance(meta, CircleMetadata):
        if _already_settled(meta.last_settlement_date, now):
            return None
        missed = meta.missed_weeks
        arrears = to_money(meta.arrears_amount)
        if not meta.week_paid:
            missed += 1
            arrears += to_money(meta.fixed_amount)

        prepaid = meta.weeks_prepaid
        week_paid = prepaid > 0
        if week_paid:
            prepaid -= 1

        return meta.model_copy(
            update={
                "current_week": meta.current_week + 1,
                "week_paid": week_paid,
                "weeks_prepaid": prepaid,
                "missed_weeks": missed,
                "arrears_amount": arrears,
                "last_settlement_date": today,
            }
        )

    if isinstance(meta, MonthlyGoalMetadata):
        if _already_settled(meta.last_settlement_date, now, monthly=True):
            return None
        expected = min(months_between(subscription.start_date, now) + 1, meta.selected_duration)
        if meta.months_completed >= expected:
            return meta.model_copy(update={"last_settlement_date": today})

        shortfall = max(ZERO, to_money(meta.target_amount - meta.month_paid_so_far))
        return meta.model_copy(
            update={
                "arrears": to_money(meta.arrears + shortfall),
                "months_completed": meta.months_completed + 1,
                "month_paid_so_far": ZERO,
                "last_settlement_date": today,
            }
        )

    return None


def settle_subscription(store: LedgerStore, subscription_id: str, now: datetime) -> Tuple[PlanSubscription, bool]:
    """Settle one subscription under the row lock; returns (subscription, whether anything changed)"""

    def change(locked: PlanSubscription) -> Optional[SubscriptionChange]:
        if locked.status != SubscriptionStatus.ACTIVE:
            return None
        metadata = settle(locked, now)
        if metadata is None:
            return None
        return SubscriptionChange(metadata=metadata)

    before = store.get_subscription(subscription_id)
    updated, _ = store.update_subscription(subscription_id, change)
    return updated, updated.metadata != before.metadata


def settle_user(store: LedgerStore, user_id: str, now: datetime) -> List[str]:
    settled = []
    for subscription in store.list_subscriptions(user_id, {SubscriptionStatus.ACTIVE}):
        _, changed = settle_subscription(store, subscription.subscription_id, now)
        if changed:
            settled.append(subscription.subscription_id)
    return settled


def run_auto_save(router, store: LedgerStore, user_id: str, now: datetime) -> AutoSaveReport:
    """
    Pay each active plan's mandated amount from the general wallet.

    Subscriptions the wallet cannot cover, or whose plan credit fails, are
    reported as failed; the rest of the run continues.
    """
    report = AutoSaveReport()
    for subscription in store.list_subscriptions(user_id, {SubscriptionStatus.ACTIVE}):
        mandated = rules_for(subscription.plan.type).mandated_amount(subscription, now)
        if mandated <= 0:
            continue

        request = DepositRequest(
            user_id=user_id,
            amount=mandated,
            channel=DepositChannel.WALLET,
            subscription_id=subscription.subscription_id,
        )
        try:
            router.deposit(request, now)
        except (ValidationError, PlanCreditFailure) as e:
            logging.warning(
                f"Auto-save skipped: {e}",
                extra={"user_id": user_id, "subscription_id": subscription.subscription_id},
            )
            report.failed.append((subscription.subscription_id, str(e)))
            continue
        report.covered.append(subscription.subscription_id)
    return report
