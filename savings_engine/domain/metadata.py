"""
Cycle metadata variants.

Each plan archetype stores its progress in a differently shaped bag. The bag is
validated into exactly one of the models below when a subscription is loaded;
a bag that does not fit its plan type raises ArchetypeMismatch instead of being
patched up with zeroed fields.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, Literal, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from savings_engine.domain.exceptions import ArchetypeMismatch
from savings_engine.domain.models import PlanType

CONTINUOUS = -1


class CycleMetadata(BaseModel):
    """Base for all metadata variants"""

    model_config = ConfigDict(extra="forbid", frozen=True)

    def to_bag(self) -> Dict[str, Any]:
        """JSON-safe dict for storage (Decimals become strings)"""
        return self.model_dump(mode="json")


class GoalWeeklyMetadata(CycleMetadata):
    """Marathon, sprint and anchor: ₦3,000 weekly floor, flexible above it"""

    archetype: Literal["goal_weekly"] = "goal_weekly"
    weeks_completed: int = Field(ge=0)
    current_week_total: Decimal = Field(ge=0)
    arrears_amount: Decimal = Field(ge=0)
    last_settlement_date: Optional[date] = None
    selected_duration: Optional[int] = Field(default=None, gt=0)  # marathon only
    start_date: Optional[date] = None


class MonthlyGoalMetadata(CycleMetadata):
    archetype: Literal["monthly_goal"] = "monthly_goal"
    months_completed: int = Field(ge=0)
    month_paid_so_far: Decimal = Field(ge=0)
    target_amount: Decimal = Field(gt=0)
    selected_duration: int = Field(gt=0)
    arrears: Decimal = Field(ge=0)
    last_settlement_date: Optional[date] = None


class FixedWeeklyMetadata(CycleMetadata):
    archetype: Literal["fixed_weekly"] = "fixed_weekly"
    selected_duration: int = Field(gt=0)
    weeks_completed: int = Field(ge=0)
    week_paid_so_far: Decimal = Field(ge=0)
    fixed_amount: Decimal = Field(gt=0)
    arrears_amount: Decimal = Field(ge=0)
    last_settlement_date: Optional[date] = None


class FixedDailyMetadata(CycleMetadata):
    archetype: Literal["fixed_daily"] = "fixed_daily"
    fixed_amount: Decimal = Field(gt=0)
    selected_duration: int  # days, or -1 for continuous
    total_days_paid: int = Field(ge=0)
    last_payment_date: Optional[date] = None
    withdrawn: bool = False
    withdrawn_amount: Decimal = Field(default=Decimal("0"), ge=0)
    service_fee_paid: bool = False

    @field_validator("selected_duration")
    @classmethod
    def _duration_positive_or_continuous(cls, value: int) -> int:
        if value != CONTINUOUS and value <= 0:
            raise ValueError("selected_duration must be positive or -1 (continuous)")
        return value

    @property
    def continuous(self) -> bool:
        return self.selected_duration == CONTINUOUS


class CircleMetadata(CycleMetadata):
    """Ajo circle: fixed weekly contribution, pooled payout on picking turns"""

    archetype: Literal["circle"] = "circle"
    fixed_amount: Decimal = Field(gt=0)
    picking_turns: Tuple[int, ...]
    current_week: int = Field(ge=1)
    week_paid: bool
    missed_weeks: int = Field(ge=0)
    weeks_prepaid: int = Field(default=0, ge=0)
    arrears_amount: Decimal = Field(default=Decimal("0"), ge=0)
    payout_history: Tuple[int, ...] = ()
    last_settlement_date: Optional[date] = None

    @field_validator("picking_turns")
    @classmethod
    def _valid_turns(cls, value: Tuple[int, ...]) -> Tuple[int, ...]:
        if any(turn < 1 for turn in value):
            raise ValueError("picking turns are 1-based week numbers")
        if len(value) > 2:
            raise ValueError("at most 2 picking turns per member")
        return tuple(sorted(value))


METADATA_TYPES: Dict[PlanType, Type[CycleMetadata]] = {
    PlanType.MARATHON: GoalWeeklyMetadata,
    PlanType.SPRINT: GoalWeeklyMetadata,
    PlanType.ANCHOR: GoalWeeklyMetadata,
    PlanType.MONTHLY_BLOOM: MonthlyGoalMetadata,
    PlanType.STEP_UP: FixedWeeklyMetadata,
    PlanType.DAILY_DROP: FixedDailyMetadata,
    PlanType.AJO_CIRCLE: CircleMetadata,
}


def metadata_type_for(plan_type: PlanType) -> Optional[Type[CycleMetadata]]:
    return METADATA_TYPES.get(plan_type)


def parse_metadata(plan_type: PlanType, bag: Optional[Dict[str, Any]]) -> Optional[CycleMetadata]:
    """
    Validate a stored metadata bag against the plan's archetype.

    Raises:
        ArchetypeMismatch: bag missing, shaped for another archetype, or invalid
    """
    expected = metadata_type_for(plan_type)

    if expected is None:
        if bag:
            raise ArchetypeMismatch(
                f"{plan_type.value} plans carry no cycle metadata, found keys {sorted(bag)}"
            )
        return None

    if not bag:
        raise ArchetypeMismatch(f"{plan_type.value} subscription has no cycle metadata")

    try:
        return expected.model_validate(bag)
    except PydanticValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ArchetypeMismatch(
            f"Cycle metadata does not match {plan_type.value} ({fields})"
        ) from e


def ensure_metadata(plan_type: PlanType, metadata: Optional[CycleMetadata]) -> Optional[CycleMetadata]:
    """Type check for metadata that is already parsed"""
    expected = metadata_type_for(plan_type)
    if expected is None:
        if metadata is not None:
            raise ArchetypeMismatch(
                f"{plan_type.value} plans carry no cycle metadata, got {type(metadata).__name__}"
            )
        return None
    if not isinstance(metadata, expected):
        raise ArchetypeMismatch(
            f"{plan_type.value} expects {expected.__name__}, got {type(metadata).__name__}"
        )
    return metadata
