"""
Plan credit - how a contribution advances a subscription's cycle state.

Pure function half of the atomic plan-credit operation. A store calls
apply_contribution() inside its transaction, then writes the returned metadata
together with the credit entry and the new balance.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from savings_engine.domain.metadata import (
    CircleMetadata,
    CycleMetadata,
    FixedDailyMetadata,
    FixedWeeklyMetadata,
    GoalWeeklyMetadata,
    MonthlyGoalMetadata,
)
from savings_engine.domain.models import PlanSubscription, SubscriptionStatus
from savings_engine.domain.rules import WEEKLY_FLOOR, rules_for
from savings_engine.utils.date_utils import as_date
from savings_engine.utils.money import ZERO, to_money, whole_periods


@dataclass
class ContributionOutcome:
    """New cycle state after a contribution; penalty_cleared leaves the plan as a service charge"""

    metadata: Optional[CycleMetadata]
    unit: str
    units_satisfied: int
    penalty_cleared: Decimal
    activated: bool
    message: str


def _goal_weekly(meta: GoalWeeklyMetadata, contribution: Decimal):
    penalty = min(to_money(meta.arrears_amount), contribution)
    rest = contribution - penalty
    before = to_money(meta.current_week_total)
    after = before + rest

    week = meta.weeks_completed + 1
    crossed = before < WEEKLY_FLOOR <= after
    if after >= WEEKLY_FLOOR:
        message = f"Week {week} goal met" if crossed else f"Week {week} topped up"
    else:
        message = f"₦{to_money(WEEKLY_FLOOR - after)} left for week {week}"

    new_meta = meta.model_copy(
        update={"arrears_amount": to_money(meta.arrears_amount) - penalty, "current_week_total": after}
    )
    return new_meta, (1 if after >= WEEKLY_FLOOR else 0), penalty, message


def _fixed_weekly(meta: FixedWeeklyMetadata, contribution: Decimal):
    penalty = min(to_money(meta.arrears_amount), contribution)
    rest = contribution - penalty
    paid = to_money(meta.week_paid_so_far) + rest
    fixed = to_money(meta.fixed_amount)

    week = meta.weeks_completed + 1
    if paid >= fixed:
        message = f"Week {week} of {meta.selected_duration} covered"
    else:
        message = f"₦{to_money(fixed - paid)} left for week {week}"

    new_meta = meta.model_copy(
        update={"arrears_amount": to_money(meta.arrears_amount) - penalty, "week_paid_so_far": paid}
    )
    return new_meta, whole_periods(paid, fixed), penalty, message


def _monthly_goal(meta: MonthlyGoalMetadata, contribution: Decimal):
    # Arrears are missed savings, not a penalty: clearing them keeps the money in the plan
    arrears = to_money(meta.arrears)
    cleared = min(arrears, contribution)
    paid = to_money(meta.month_paid_so_far) + contribution - cleared
    target = to_money(meta.target_amount)

    months_done = meta.months_completed
    added = 0
    while paid >= target and months_done < meta.selected_duration:
        months_done += 1
        paid -= target
        added += 1

    if added:
        message = f"{added} month(s) completed, {months_done} of {meta.selected_duration}"
    else:
        message = f"₦{to_money(target - paid)} left for this month"

    new_meta = meta.model_copy(
        update={"arrears": arrears - cleared, "month_paid_so_far": paid, "months_completed": months_done}
    )
    return new_meta, added, ZERO, message


def _fixed_daily(meta: FixedDailyMetadata, contribution: Decimal, now: datetime):
    fixed = to_money(meta.fixed_amount)
    service_fee = ZERO
    if not meta.service_fee_paid:
        service_fee = min(fixed, contribution)
    rest = contribution - service_fee

    days = whole_periods(rest, fixed)
    total_days = meta.total_days_paid + days
    if meta.continuous:
        message = f"{days} day(s) saved, {total_days} so far"
    else:
        message = f"{days} day(s) saved, {total_days} of {meta.selected_duration}"
    if service_fee:
        message = f"One-time service fee of ₦{service_fee} applied; {message}"

    new_meta = meta.model_copy(
        update={
            "total_days_paid": total_days,
            "last_payment_date": as_date(now),
            "service_fee_paid": True,
        }
    )
    return new_meta, days, service_fee, message


def _circle(meta: CircleMetadata, contribution: Decimal):
    arrears = to_money(meta.arrears_amount)
    cleared = min(arrears, contribution)
    units = whole_periods(contribution - cleared, meta.fixed_amount)

    week_paid = meta.week_paid
    prepaid = meta.weeks_prepaid
    remaining = units
    if remaining and not week_paid:
        week_paid = True
        remaining -= 1
    prepaid += remaining

    if units == 0:
        message = "Contribution applied to arrears" if cleared else "No full week covered"
    elif prepaid > meta.weeks_prepaid:
        message = f"Week {meta.current_week} paid, {prepaid} week(s) prepaid"
    else:
        message = f"Week {meta.current_week} paid"

    new_meta = meta.model_copy(
        update={"arrears_amount": arrears - cleared, "week_paid": week_paid, "weeks_prepaid": prepaid}
    )
    return new_meta, units, ZERO, message


def apply_contribution(subscription: PlanSubscription, contribution, now: datetime) -> ContributionOutcome:
    """
    Advance the cycle state of a subscription by a contribution.

    Args:
        subscription: Snapshot loaded inside the store transaction
        contribution: Amount credited to the plan (deposit amount minus fee)
        now: Clock of the calling operation

    Returns:
        ContributionOutcome with the metadata to persist. penalty_cleared is the
        part of the contribution the store books as a service_charge.
    """
    rules = rules_for(subscription.plan.type)
    meta = rules.metadata(subscription)
    contribution = to_money(contribution)
    activated = subscription.status == SubscriptionStatus.PENDING_ACTIVATION

    if isinstance(meta, GoalWeeklyMetadata):
        new_meta, units, penalty, message = _goal_weekly(meta, contribution)
    elif isinstance(meta, FixedWeeklyMetadata):
        new_meta, units, penalty, message = _fixed_weekly(meta, contribution)
    elif isinstance(meta, MonthlyGoalMetadata):
        new_meta, units, penalty, message = _monthly_goal(meta, contribution)
    elif isinstance(meta, FixedDailyMetadata):
        new_meta, units, penalty, message = _fixed_daily(meta, contribution, now)
    elif isinstance(meta, CircleMetadata):
        new_meta, units, penalty, message = _circle(meta, contribution)
    else:
        new_meta, units, penalty, message = None, 0, ZERO, f"₦{contribution} saved"

    if penalty and not isinstance(meta, FixedDailyMetadata):
        message = f"₦{penalty} penalty cleared; {message}"

    return ContributionOutcome(
        metadata=new_meta,
        unit=rules.unit,
        units_satisfied=units,
        penalty_cleared=penalty,
        activated=activated,
        message=message,
    )
