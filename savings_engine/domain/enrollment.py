"""Joining plans and reconfiguring a running subscription"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence, Tuple

from savings_engine.domain.exceptions import ValidationError
from savings_engine.domain.exits import owned_subscription
from savings_engine.domain.metadata import (
    CONTINUOUS,
    CircleMetadata,
    FixedDailyMetadata,
    FixedWeeklyMetadata,
    GoalWeeklyMetadata,
    MonthlyGoalMetadata,
)
from savings_engine.domain.models import (
    ActivityAction,
    Plan,
    PlanSubscription,
    PlanType,
    SubscriptionChange,
    SubscriptionStatus,
)
from savings_engine.domain.ports import LedgerStore
from savings_engine.domain.rules import (
    ANCHOR_WEEKS,
    MARATHON_DEFAULT_WEEKS,
    SPRINT_WEEKS,
    CircleRules,
    FixedDailyRules,
    rules_for,
)
from savings_engine.utils.date_utils import as_date
from savings_engine.utils.money import ZERO, to_money

MARATHON_DURATIONS = (SPRINT_WEEKS, MARATHON_DEFAULT_WEEKS)
MONTHLY_MIN_TARGET = Decimal("20000")
STEP_UP_AMOUNTS = tuple(Decimal(a) for a in (5000, 10000, 15000, 20000, 25000, 30000, 40000, 50000))
STEP_UP_DURATIONS = (10, 15, 20)
DAILY_MIN_AMOUNT = Decimal("500")
DAILY_DURATIONS = (31, 62, 93, CONTINUOUS)
CIRCLE_AMOUNTS = (10000, 15000, 20000, 25000, 30000, 50000, 100000)


@dataclass
class JoinOptions:
    """User choices when joining; which fields apply depends on the plan type"""

    amount: Optional[Decimal] = None  # fixed amount or monthly target
    duration: Optional[int] = None
    picking_turns: Sequence[int] = ()


def _require_amount(options: JoinOptions, label: str) -> Decimal:
    if options.amount is None:
        raise ValidationError(f"Select a {label}")
    return to_money(options.amount)


def _require_duration(options: JoinOptions, allowed: Tuple[int, ...], label: str) -> int:
    if options.duration not in allowed:
        choices = ", ".join("continuous" if d == CONTINUOUS else str(d) for d in allowed)
        raise ValidationError(f"{label} must be one of: {choices}")
    return options.duration


def initial_state(plan: Plan, options: JoinOptions, now: datetime):
    """
    Validate join options and build (status, metadata) for a new subscription.

    Raises:
        ValidationError: inactive plan or an option outside the plan's allowed values
    """
    if not plan.is_active:
        raise ValidationError(f"{plan.name} is not open for new members")

    today = as_date(now)
    status = SubscriptionStatus.ACTIVE

    if plan.type == PlanType.STANDARD:
        return status, None

    if plan.type == PlanType.MARATHON:
        allowed = tuple(int(d) for d in plan.config.get("durations") or MARATHON_DURATIONS)
        duration = _require_duration(options, allowed, "Marathon duration (weeks)")
        return status, GoalWeeklyMetadata(
            weeks_completed=0,
            current_week_total=ZERO,
            arrears_amount=ZERO,
            selected_duration=duration,
            start_date=today,
        )

    if plan.type in (PlanType.SPRINT, PlanType.ANCHOR):
        return status, GoalWeeklyMetadata(
            weeks_completed=0,
            current_week_total=ZERO,
            arrears_amount=ZERO,
            start_date=today,
        )

    if plan.type == PlanType.MONTHLY_BLOOM:
        target = _require_amount(options, "monthly target")
        if target < MONTHLY_MIN_TARGET:
            raise ValidationError(f"Monthly target must be at least ₦{to_money(MONTHLY_MIN_TARGET)}")
        if not options.duration or options.duration <= 0:
            raise ValidationError("Select how many months to save for")
        return status, MonthlyGoalMetadata(
            months_completed=0,
            month_paid_so_far=ZERO,
            target_amount=target,
            selected_duration=options.duration,
            arrears=ZERO,
        )

    if plan.type == PlanType.STEP_UP:
        amount = _require_amount(options, "weekly amount")
        if amount not in STEP_UP_AMOUNTS:
            raise ValidationError("Weekly amount must be one of: " + ", ".join(f"₦{a}" for a in STEP_UP_AMOUNTS))
        duration = _require_duration(options, STEP_UP_DURATIONS, "Step-Up duration (weeks)")
        return status, FixedWeeklyMetadata(
            selected_duration=duration,
            weeks_completed=0,
            week_paid_so_far=ZERO,
            fixed_amount=amount,
            arrears_amount=ZERO,
        )

    if plan.type == PlanType.DAILY_DROP:
        amount = _require_amount(options, "daily amount")
        if amount < DAILY_MIN_AMOUNT:
            raise ValidationError(f"Daily amount must be at least ₦{to_money(DAILY_MIN_AMOUNT)}")
        duration = _require_duration(options, DAILY_DURATIONS, "Daily Drop duration (days)")
        return status, FixedDailyMetadata(fixed_amount=amount, selected_duration=duration, total_days_paid=0)

    if plan.type == PlanType.AJO_CIRCLE:
        amount = _require_amount(options, "circle amount")
        allowed = [to_money(a) for a in plan.config.get("amounts") or CIRCLE_AMOUNTS]
        if amount not in allowed:
            raise ValidationError("Circle amount must be one of: " + ", ".join(f"₦{a}" for a in allowed))
        turns = tuple(int(t) for t in options.picking_turns)
        weeks = CircleRules.plan_weeks(plan)
        if len(turns) > 2 or any(t < 1 or t > weeks for t in turns):
            raise ValidationError(f"Pick at most 2 payout weeks, numbered 1 to {weeks}")
        # Activated by the first contribution
        return SubscriptionStatus.PENDING_ACTIVATION, CircleMetadata(
            fixed_amount=amount,
            picking_turns=turns,
            current_week=1,
            week_paid=False,
            missed_weeks=0,
        )

    raise ValidationError(f"Unsupported plan type {plan.type.value}")


def join_plan(store: LedgerStore, plan_id: str, user_id: str, options: JoinOptions, now: datetime) -> PlanSubscription:
    plan = store.get_plan(plan_id)
    status, metadata = initial_state(plan, options, now)

    created = store.create_subscription(
        PlanSubscription(
            subscription_id="",
            user_id=user_id,
            plan=plan,
            status=status,
            start_date=as_date(now),
            metadata=metadata,
        )
    )
    store.record_activity(
        user_id,
        ActivityAction.PLAN_JOIN,
        {"subscription_id": created.subscription_id, "plan": plan.name},
        is_public=True,
    )
    return created


def extend_marathon(store: LedgerStore, user_id: str, subscription_id: str) -> PlanSubscription:
    """Raise a 30-week marathon to the full 48 weeks"""
    subscription = owned_subscription(store, user_id, subscription_id)
    if subscription.plan.type != PlanType.MARATHON:
        raise ValidationError("Only Marathon plans can be extended")

    def change(locked: PlanSubscription) -> SubscriptionChange:
        meta: GoalWeeklyMetadata = locked.metadata
        if locked.status != SubscriptionStatus.ACTIVE:
            raise ValidationError(f"Plan is {locked.status.value} and cannot be extended")
        if (meta.selected_duration or MARATHON_DEFAULT_WEEKS) >= ANCHOR_WEEKS:
            raise ValidationError(f"Plan already runs for {ANCHOR_WEEKS} weeks")
        return SubscriptionChange(metadata=meta.model_copy(update={"selected_duration": ANCHOR_WEEKS}))

    updated, _ = store.update_subscription(subscription_id, change)
    return updated


def change_daily_amount(store: LedgerStore, user_id: str, subscription_id: str, amount, now: datetime) -> PlanSubscription:
    """Pick a new Daily Drop amount; only allowed once the amount is unlocked"""
    subscription = owned_subscription(store, user_id, subscription_id)
    rules = rules_for(subscription.plan.type)
    if not isinstance(rules, FixedDailyRules):
        raise ValidationError("Only Daily Drop plans have a daily amount")

    amount = to_money(amount)
    if amount < DAILY_MIN_AMOUNT:
        raise ValidationError(f"Daily amount must be at least ₦{to_money(DAILY_MIN_AMOUNT)}")

    def change(locked: PlanSubscription) -> SubscriptionChange:
        if locked.status != SubscriptionStatus.ACTIVE:
            raise ValidationError(f"Plan is {locked.status.value}")
        if not rules.amount_unlocked(locked, now):
            raise ValidationError(f"Daily amount is locked until {rules.unlock_date(locked).isoformat()}")
        return SubscriptionChange(metadata=locked.metadata.model_copy(update={"fixed_amount": amount}))

    updated, _ = store.update_subscription(subscription_id, change)
    return updated
