"""Unit tests for the maturity monitor"""

from decimal import Decimal
from savings_engine.domain.maturity import MaturityMonitor
from savings_engine.domain.metadata import FixedDailyMetadata, GoalWeeklyMetadata
from savings_engine.domain.models import ActivityAction, PlanType, SubscriptionStatus
from factories import NOW, make_plan, make_subscription


def sprint(store, weeks_completed):
    meta = GoalWeeklyMetadata(
        weeks_completed=weeks_completed, current_week_total=Decimal("0"), arrears_amount=Decimal("0")
    )
    return make_subscription(store, make_plan(PlanType.SPRINT), meta)


def test_matured_subscription_transitions_once(store):
    sub = sprint(store, 30)
    monitor = MaturityMonitor(store)

    [transition] = monitor.refresh("user_1", NOW)
    assert transition.subscription_id == sub.subscription_id
    assert transition.to_status == SubscriptionStatus.MATURED
    assert store.get_subscription(sub.subscription_id).status == SubscriptionStatus.MATURED

    assert monitor.refresh("user_1", NOW) == []
    assert store.actions().count(ActivityAction.PLAN_MATURED) == 1


def test_unmatured_subscription_untouched(store):
    sub = sprint(store, 12)
    assert MaturityMonitor(store).refresh("user_1", NOW) == []
    assert store.get_subscription(sub.subscription_id).status == SubscriptionStatus.ACTIVE


def test_lost_race_records_nothing(store):
    """Another refresh moved the row first; the conditional update reports no change"""
    sprint(store, 30)
    store.transition_status = lambda subscription_id, expected, new: False

    assert MaturityMonitor(store).refresh("user_1", NOW) == []
    assert ActivityAction.PLAN_MATURED not in store.actions()


def test_continuous_daily_stays_active(store):
    meta = FixedDailyMetadata(fixed_amount=Decimal("500"), selected_duration=-1, total_days_paid=400)
    sub = make_subscription(store, make_plan(PlanType.DAILY_DROP), meta, balance=200000)

    assert MaturityMonitor(store).refresh("user_1", NOW) == []
    assert store.get_subscription(sub.subscription_id).status == SubscriptionStatus.ACTIVE


def test_only_active_subscriptions_considered(store):
    meta = GoalWeeklyMetadata(weeks_completed=30, current_week_total=Decimal("0"), arrears_amount=Decimal("0"))
    make_subscription(store, make_plan(PlanType.SPRINT), meta, status=SubscriptionStatus.COMPLETED)

    assert MaturityMonitor(store).refresh("user_1", NOW) == []
