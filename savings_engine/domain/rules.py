"""
Plan rule engine - per-archetype decisions for a subscription snapshot.

Every rules object is stateless: it reads the subscription (plan, cycle
metadata, cached balance, start date) and an explicit `now`, and returns
values. Nothing here writes.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, Optional, Set, Type

from savings_engine.domain.exceptions import ValidationError
from savings_engine.domain.fees import circle_fee
from savings_engine.domain.metadata import (
    CircleMetadata,
    CycleMetadata,
    FixedDailyMetadata,
    FixedWeeklyMetadata,
    GoalWeeklyMetadata,
    MonthlyGoalMetadata,
    ensure_metadata,
)
from savings_engine.domain.models import (
    ContributionMode,
    MaturityStatus,
    MaturityVerdict,
    Plan,
    PlanSubscription,
    PlanType,
    RuleEvaluation,
    SubscriptionStatus,
)
from savings_engine.utils.date_utils import add_months, as_date, weeks_between
from savings_engine.utils.money import ZERO, to_money, whole_periods

WEEKLY_FLOOR = Decimal("3000")
SPRINT_WEEKS = 30
ANCHOR_WEEKS = 48
MARATHON_DEFAULT_WEEKS = 48
CIRCLE_DEFAULT_WEEKS = 10
DUE_SOON_DAYS = 3


def calculate_maturity(start_date: date | datetime, duration_weeks: int, now: date | datetime) -> MaturityStatus:
    """
    Date rule for plans that mature by elapsed time.

    Maturity falls on start + duration + 1 day; "due soon" is the last
    DUE_SOON_DAYS days before that.
    """
    maturity_date = as_date(start_date) + timedelta(days=duration_weeks * 7 + 1)
    today = as_date(now)

    days_remaining = max(0, (maturity_date - today).days)
    is_matured = today >= maturity_date

    return MaturityStatus(
        is_matured=is_matured,
        is_due_soon=not is_matured and days_remaining <= DUE_SOON_DAYS,
        maturity_date=maturity_date,
        days_remaining=days_remaining,
    )


class PlanRules:
    """Defaults shared by all archetypes; subclasses override what differs"""

    metadata_type: Optional[Type[CycleMetadata]] = None
    unit = "period"
    cancellable = True
    resets_after_payout = False
    deposit_statuses: Set[SubscriptionStatus] = {SubscriptionStatus.ACTIVE}

    def __init__(self, plan_type: PlanType):
        self.plan_type = plan_type

    def metadata(self, subscription: PlanSubscription):
        return ensure_metadata(self.plan_type, subscription.metadata)

    def mandated_amount(self, subscription: PlanSubscription, now: datetime) -> Decimal:
        return ZERO

    def input_locked(self, subscription: PlanSubscription, now: datetime) -> bool:
        return self.mandated_amount(subscription, now) > 0

    def fee(self, subscription: PlanSubscription, amount) -> Decimal:
        return ZERO

    def period_amount(self, subscription: PlanSubscription) -> Decimal:
        return ZERO

    def periods_covered(self, subscription: PlanSubscription, amount) -> int:
        return whole_periods(amount, self.period_amount(subscription))

    def minimum_amount(self, subscription: PlanSubscription, now: datetime) -> Decimal:
        """Mandated amount when there is one, else the plan's floor"""
        mandated = self.mandated_amount(subscription, now)
        if mandated > 0:
            return mandated
        return to_money(subscription.plan.min_amount)

    def maturity(self, subscription: PlanSubscription, now: datetime) -> MaturityVerdict:
        raise NotImplementedError

    def is_completed(self, subscription: PlanSubscription) -> bool:
        return subscription.status == SubscriptionStatus.COMPLETED

    def ensure_accepts_deposits(self, subscription: PlanSubscription) -> None:
        if subscription.status not in self.deposit_statuses:
            raise ValidationError(
                f"{subscription.plan.name} is {subscription.status.value} and cannot receive deposits"
            )

    def ensure_cancellable(self, subscription: PlanSubscription) -> None:
        if not self.cancellable:
            raise ValidationError(f"{subscription.plan.name} does not allow breaking before maturity")

    def evaluate(self, subscription: PlanSubscription, now: datetime, amount=None) -> RuleEvaluation:
        """
        Full decision for one subscription.

        `amount` is the contribution the caller intends to make; fee and periods
        covered are computed for it. Without it they are computed for the
        mandated amount.
        """
        self.metadata(subscription)
        mandated = self.mandated_amount(subscription, now)
        requested = to_money(amount) if amount is not None else mandated

        return RuleEvaluation(
            mandated_amount=mandated,
            input_locked=self.input_locked(subscription, now),
            fee=self.fee(subscription, requested),
            periods_covered=self.periods_covered(subscription, requested),
            maturity=self.maturity(subscription, now),
        )


class StandardRules(PlanRules):
    """Free-amount savings; matures by calendar once the plan has a duration"""

    unit = "week"

    def maturity(self, subscription: PlanSubscription, now: datetime) -> MaturityVerdict:
        weeks = subscription.plan.duration_weeks
        if weeks <= 0:
            return MaturityVerdict(
                matured=False,
                completed=self.is_completed(subscription),
                units_done=weeks_between(subscription.start_date, now),
                units_required=None,
                unit=self.unit,
            )

        status = calculate_maturity(subscription.start_date, weeks, now)
        return MaturityVerdict(
            matured=status.is_matured,
            completed=self.is_completed(subscription),
            units_done=min(weeks_between(subscription.start_date, now), weeks),
            units_required=weeks,
            unit=self.unit,
        )


class GoalWeeklyRules(PlanRules):
    """
    Weekly goal plans (marathon, sprint, anchor).

    Each week needs at least WEEKLY_FLOOR; anything above is welcome. The week
    is closed by settlement, not by the deposit that crosses the floor.
    """

    metadata_type = GoalWeeklyMetadata
    unit = "week"

    def __init__(self, plan_type: PlanType, fixed_weeks: Optional[int] = None, cancellable: bool = True):
        super().__init__(plan_type)
        self.fixed_weeks = fixed_weeks
        self.cancellable = cancellable

    def required_weeks(self, subscription: PlanSubscription) -> int:
        if self.fixed_weeks:
            return self.fixed_weeks
        meta: GoalWeeklyMetadata = self.metadata(subscription)
        return meta.selected_duration or MARATHON_DEFAULT_WEEKS

    def mandated_amount(self, subscription: PlanSubscription, now: datetime) -> Decimal:
        meta: GoalWeeklyMetadata = self.metadata(subscription)
        return max(ZERO, to_money(WEEKLY_FLOOR - meta.current_week_total))

    def period_amount(self, subscription: PlanSubscription) -> Decimal:
        return to_money(WEEKLY_FLOOR)

    def maturity(self, subscription: PlanSubscription, now: datetime) -> MaturityVerdict:
        meta: GoalWeeklyMetadata = self.metadata(subscription)
        required = self.required_weeks(subscription)
        return MaturityVerdict(
            matured=meta.weeks_completed >= required,
            completed=self.is_completed(subscription),
            units_done=meta.weeks_completed,
            units_required=required,
            unit=self.unit,
        )


class MonthlyGoalRules(PlanRules):
    """Monthly target; the user may always type any amount at or above what is left"""

    metadata_type = MonthlyGoalMetadata
    unit = "month"

    def mandated_amount(self, subscription: PlanSubscription, now: datetime) -> Decimal:
        meta: MonthlyGoalMetadata = self.metadata(subscription)
        return max(ZERO, to_money(meta.target_amount - meta.month_paid_so_far))

    def input_locked(self, subscription: PlanSubscription, now: datetime) -> bool:
        return False

    def period_amount(self, subscription: PlanSubscription) -> Decimal:
        meta: MonthlyGoalMetadata = self.metadata(subscription)
        return to_money(meta.target_amount)

    def maturity(self, subscription: PlanSubscription, now: datetime) -> MaturityVerdict:
        """Settled short months count toward the duration but must be paid up before maturity"""
        meta: MonthlyGoalMetadata = self.metadata(subscription)
        return MaturityVerdict(
            matured=meta.months_completed >= meta.selected_duration and to_money(meta.arrears) <= 0,
            completed=self.is_completed(subscription),
            units_done=meta.months_completed,
            units_required=meta.selected_duration,
            unit=self.unit,
        )


class FixedWeeklyRules(PlanRules):
    """Step-up: the same fixed amount every week for the selected number of weeks"""

    metadata_type = FixedWeeklyMetadata
    unit = "week"
    resets_after_payout = True

    def mandated_amount(self, subscription: PlanSubscription, now: datetime) -> Decimal:
        meta: FixedWeeklyMetadata = self.metadata(subscription)
        if subscription.plan.contribution_mode != ContributionMode.FIXED:
            return ZERO
        return to_money(meta.fixed_amount)

    def period_amount(self, subscription: PlanSubscription) -> Decimal:
        meta: FixedWeeklyMetadata = self.metadata(subscription)
        return to_money(meta.fixed_amount)

    def maturity(self, subscription: PlanSubscription, now: datetime) -> MaturityVerdict:
        meta: FixedWeeklyMetadata = self.metadata(subscription)
        return MaturityVerdict(
            matured=meta.weeks_completed >= meta.selected_duration,
            completed=self.is_completed(subscription),
            units_done=meta.weeks_completed,
            units_required=meta.selected_duration,
            unit=self.unit,
        )


class FixedDailyRules(PlanRules):
    """
    Daily drop: a fixed amount per day.

    The amount is locked until one full duration window or one calendar month
    has passed since the start date, whichever comes first; after that the
    user may pick a new daily amount.
    """

    metadata_type = FixedDailyMetadata
    unit = "day"
    resets_after_payout = True

    def mandated_amount(self, subscription: PlanSubscription, now: datetime) -> Decimal:
        meta: FixedDailyMetadata = self.metadata(subscription)
        if subscription.plan.contribution_mode != ContributionMode.FIXED:
            return ZERO
        return to_money(meta.fixed_amount)

    def unlock_date(self, subscription: PlanSubscription) -> date:
        meta: FixedDailyMetadata = self.metadata(subscription)
        start = as_date(subscription.start_date)
        month_mark = add_months(start, 1)
        if meta.continuous:
            return month_mark
        return min(start + timedelta(days=meta.selected_duration), month_mark)

    def amount_unlocked(self, subscription: PlanSubscription, now: datetime) -> bool:
        return as_date(now) >= self.unlock_date(subscription)

    def input_locked(self, subscription: PlanSubscription, now: datetime) -> bool:
        if self.mandated_amount(subscription, now) <= 0:
            return False
        return not self.amount_unlocked(subscription, now)

    def period_amount(self, subscription: PlanSubscription) -> Decimal:
        meta: FixedDailyMetadata = self.metadata(subscription)
        return to_money(meta.fixed_amount)

    def effective_days_paid(self, subscription: PlanSubscription) -> int:
        meta: FixedDailyMetadata = self.metadata(subscription)
        from_balance = whole_periods(subscription.current_balance, meta.fixed_amount)
        return max(meta.total_days_paid, from_balance)

    def is_completed(self, subscription: PlanSubscription) -> bool:
        meta: FixedDailyMetadata = self.metadata(subscription)
        return subscription.status == SubscriptionStatus.COMPLETED or meta.withdrawn

    def maturity(self, subscription: PlanSubscription, now: datetime) -> MaturityVerdict:
        meta: FixedDailyMetadata = self.metadata(subscription)
        days = self.effective_days_paid(subscription)
        if meta.continuous:
            return MaturityVerdict(
                matured=False,
                completed=self.is_completed(subscription),
                units_done=days,
                units_required=None,
                unit=self.unit,
            )
        return MaturityVerdict(
            matured=days >= meta.selected_duration,
            completed=self.is_completed(subscription),
            units_done=days,
            units_required=meta.selected_duration,
            unit=self.unit,
        )


class CircleRules(PlanRules):
    """Ajo circle: fixed weekly contribution, tiered fee, payout on picking turns"""

    metadata_type = CircleMetadata
    unit = "week"
    cancellable = False
    deposit_statuses = {SubscriptionStatus.ACTIVE, SubscriptionStatus.PENDING_ACTIVATION}

    @staticmethod
    def plan_weeks(plan: Plan) -> int:
        return int(plan.config.get("duration_weeks") or plan.duration_weeks or CIRCLE_DEFAULT_WEEKS)

    def cycle_weeks(self, subscription: PlanSubscription) -> int:
        return self.plan_weeks(subscription.plan)

    def weeks_elapsed(self, subscription: PlanSubscription) -> int:
        meta: CircleMetadata = self.metadata(subscription)
        return meta.current_week - 1 + (1 if meta.week_paid else 0)

    def mandated_amount(self, subscription: PlanSubscription, now: datetime) -> Decimal:
        meta: CircleMetadata = self.metadata(subscription)
        return to_money(meta.fixed_amount)

    def fee(self, subscription: PlanSubscription, amount) -> Decimal:
        return circle_fee(amount, subscription.plan.config)

    def period_amount(self, subscription: PlanSubscription) -> Decimal:
        meta: CircleMetadata = self.metadata(subscription)
        return to_money(meta.fixed_amount)

    def payout_due(self, subscription: PlanSubscription) -> bool:
        """Current week is one of the member's picking turns and not yet collected"""
        meta: CircleMetadata = self.metadata(subscription)
        turns = meta.picking_turns.count(meta.current_week)
        collected = meta.payout_history.count(meta.current_week)
        return turns > collected

    def payout_amount(self, subscription: PlanSubscription) -> Decimal:
        meta: CircleMetadata = self.metadata(subscription)
        return to_money(meta.fixed_amount * self.cycle_weeks(subscription))

    def maturity(self, subscription: PlanSubscription, now: datetime) -> MaturityVerdict:
        required = self.cycle_weeks(subscription)
        elapsed = self.weeks_elapsed(subscription)
        return MaturityVerdict(
            matured=elapsed >= required,
            completed=self.is_completed(subscription),
            units_done=elapsed,
            units_required=required,
            unit=self.unit,
        )


RULES: Dict[PlanType, PlanRules] = {
    PlanType.STANDARD: StandardRules(PlanType.STANDARD),
    PlanType.MARATHON: GoalWeeklyRules(PlanType.MARATHON),
    PlanType.SPRINT: GoalWeeklyRules(PlanType.SPRINT, fixed_weeks=SPRINT_WEEKS),
    PlanType.ANCHOR: GoalWeeklyRules(PlanType.ANCHOR, fixed_weeks=ANCHOR_WEEKS, cancellable=False),
    PlanType.MONTHLY_BLOOM: MonthlyGoalRules(PlanType.MONTHLY_BLOOM),
    PlanType.STEP_UP: FixedWeeklyRules(PlanType.STEP_UP),
    PlanType.DAILY_DROP: FixedDailyRules(PlanType.DAILY_DROP),
    PlanType.AJO_CIRCLE: CircleRules(PlanType.AJO_CIRCLE),
}


def rules_for(plan_type: PlanType) -> PlanRules:
    return RULES[plan_type]


def evaluate(subscription: PlanSubscription, now: datetime, amount=None) -> RuleEvaluation:
    """Main entry point: rule evaluation for a subscription snapshot"""
    return rules_for(subscription.plan.type).evaluate(subscription, now, amount)
