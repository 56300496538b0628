"""Unit tests for joining plans and reconfiguring subscriptions"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from savings_engine.domain.enrollment import (
    JoinOptions,
    change_daily_amount,
    extend_marathon,
    initial_state,
    join_plan,
)
from savings_engine.domain.exceptions import NotFound, ValidationError
from savings_engine.domain.metadata import (
    CircleMetadata,
    FixedDailyMetadata,
    GoalWeeklyMetadata,
    MonthlyGoalMetadata,
)
from savings_engine.domain.models import ActivityAction, PlanType, SubscriptionStatus
from factories import NOW, USER, make_plan, make_subscription


def join(store, plan, **options):
    store.plans[plan.plan_id] = plan
    return join_plan(store, plan.plan_id, USER, JoinOptions(**options), NOW)


def test_join_sprint(store):
    sub = join(store, make_plan(PlanType.SPRINT))

    assert sub.status == SubscriptionStatus.ACTIVE
    assert isinstance(sub.metadata, GoalWeeklyMetadata)
    assert sub.metadata.start_date == NOW.date()
    assert ActivityAction.PLAN_JOIN in store.actions()


def test_join_marathon_duration_choices(store):
    plan = make_plan(PlanType.MARATHON)
    assert join(store, plan, duration=30).metadata.selected_duration == 30
    with pytest.raises(ValidationError, match="30, 48"):
        join(store, plan, duration=20)


def test_join_monthly_target_floor(store):
    plan = make_plan(PlanType.MONTHLY_BLOOM)
    sub = join(store, plan, amount=Decimal("25000"), duration=6)
    assert isinstance(sub.metadata, MonthlyGoalMetadata)
    assert sub.metadata.target_amount == Decimal("25000.00")

    with pytest.raises(ValidationError, match="at least"):
        join(store, plan, amount=Decimal("19999"), duration=6)
    with pytest.raises(ValidationError, match="how many months"):
        join(store, plan, amount=Decimal("20000"))


def test_join_step_up_amounts(store):
    plan = make_plan(PlanType.STEP_UP)
    sub = join(store, plan, amount=Decimal("10000"), duration=15)
    assert sub.metadata.fixed_amount == Decimal("10000.00")

    with pytest.raises(ValidationError, match="Weekly amount"):
        join(store, plan, amount=Decimal("7000"), duration=15)
    with pytest.raises(ValidationError, match="duration"):
        join(store, plan, amount=Decimal("10000"), duration=12)


def test_join_daily_drop_continuous(store):
    sub = join(store, make_plan(PlanType.DAILY_DROP), amount=Decimal("500"), duration=-1)
    assert isinstance(sub.metadata, FixedDailyMetadata)
    assert sub.metadata.continuous

    with pytest.raises(ValidationError, match="at least"):
        join(store, make_plan(PlanType.DAILY_DROP), amount=Decimal("400"), duration=31)


def test_join_circle_pending_until_first_contribution(store):
    sub = join(store, make_plan(PlanType.AJO_CIRCLE), amount=Decimal("20000"), picking_turns=[4, 1])

    assert sub.status == SubscriptionStatus.PENDING_ACTIVATION
    assert isinstance(sub.metadata, CircleMetadata)
    assert sub.metadata.picking_turns == (1, 4)


def test_join_circle_validation(store):
    plan = make_plan(PlanType.AJO_CIRCLE, config={"amounts": [50000]})
    with pytest.raises(ValidationError, match="Circle amount"):
        join(store, plan, amount=Decimal("20000"))
    with pytest.raises(ValidationError, match="at most 2"):
        join(store, plan, amount=Decimal("50000"), picking_turns=[1, 2, 3])
    with pytest.raises(ValidationError):
        join(store, plan, amount=Decimal("50000"), picking_turns=[0])
    with pytest.raises(ValidationError, match="numbered 1 to 10"):
        join(store, plan, amount=Decimal("50000"), picking_turns=[15])


def test_inactive_plan_closed():
    with pytest.raises(ValidationError, match="not open"):
        initial_state(make_plan(PlanType.SPRINT, is_active=False), JoinOptions(), NOW)


def test_standard_plan_has_no_metadata():
    status, metadata = initial_state(make_plan(PlanType.STANDARD), JoinOptions(), NOW)
    assert status == SubscriptionStatus.ACTIVE
    assert metadata is None


def test_unknown_plan(store):
    with pytest.raises(NotFound):
        join_plan(store, "missing", USER, JoinOptions(), NOW)


# Reconfiguration


def test_extend_marathon_to_48_weeks(store):
    sub = join(store, make_plan(PlanType.MARATHON), duration=30)
    extended = extend_marathon(store, USER, sub.subscription_id)

    assert extended.metadata.selected_duration == 48
    with pytest.raises(ValidationError, match="already runs"):
        extend_marathon(store, USER, sub.subscription_id)


def test_only_marathon_extends(store):
    sub = join(store, make_plan(PlanType.SPRINT))
    with pytest.raises(ValidationError, match="Only Marathon"):
        extend_marathon(store, USER, sub.subscription_id)


def test_change_daily_amount_after_unlock(store):
    meta = FixedDailyMetadata(fixed_amount=Decimal("500"), selected_duration=31, total_days_paid=10)
    sub = make_subscription(store, make_plan(PlanType.DAILY_DROP), meta, start_date=date(2026, 2, 1))

    updated = change_daily_amount(store, USER, sub.subscription_id, Decimal("1000"), NOW)
    assert updated.metadata.fixed_amount == Decimal("1000.00")
    assert updated.metadata.total_days_paid == 10


def test_change_daily_amount_while_locked(store):
    meta = FixedDailyMetadata(fixed_amount=Decimal("500"), selected_duration=31, total_days_paid=0)
    sub = make_subscription(store, make_plan(PlanType.DAILY_DROP), meta, start_date=NOW.date() - timedelta(days=5))

    with pytest.raises(ValidationError, match="locked until"):
        change_daily_amount(store, USER, sub.subscription_id, Decimal("1000"), NOW)
