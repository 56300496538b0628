"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from savings_engine.utils.money import ZERO

if TYPE_CHECKING:
    from savings_engine.domain.metadata import CycleMetadata


class EntryKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"
    SERVICE_CHARGE = "service_charge"
    LOAN_DISBURSEMENT = "loan_disbursement"
    LOAN_REPAYMENT = "loan_repayment"


class EntryStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PlanType(str, Enum):
    STANDARD = "standard"
    MARATHON = "marathon"  # strict-duration weekly goal
    SPRINT = "sprint"  # rolling weekly goal
    ANCHOR = "anchor"  # discipline-locked weekly goal
    MONTHLY_BLOOM = "monthly_bloom"
    STEP_UP = "step_up"  # fixed weekly
    DAILY_DROP = "daily_drop"  # fixed daily
    AJO_CIRCLE = "ajo_circle"


class ContributionMode(str, Enum):
    FIXED = "fixed"
    FLEXIBLE = "flexible"


class SubscriptionStatus(str, Enum):
    PENDING_ACTIVATION = "pending_activation"
    ACTIVE = "active"
    MATURED = "matured"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class LoanStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    PAID = "paid"
    DEFAULTED = "defaulted"
    REJECTED = "rejected"


class GovIdStatus(str, Enum):
    NOT_UPLOADED = "not_uploaded"
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class DepositChannel(str, Enum):
    EXTERNAL = "external"  # bank transfer + receipt, held for manual review
    WALLET = "wallet"  # general wallet -> plan


class ActivityAction(str, Enum):
    PLAN_JOIN = "PLAN_JOIN"
    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    PLAN_MATURED = "PLAN_MATURED"
    PLAN_BROKEN = "PLAN_BROKEN"
    PAYOUT = "PAYOUT"
    LOAN_REQUEST = "LOAN_REQUEST"
    LOAN_REPAYMENT = "LOAN_REPAYMENT"


@dataclass
class LedgerEntry:
    """Money movement; amount is positive, the effect sign comes from kind and scope"""

    owner_id: str
    kind: EntryKind
    amount: Decimal
    status: EntryStatus
    scope: Optional[str] = None  # None = general wallet, else subscription id
    fee: Decimal = ZERO
    description: str = ""
    created_at: Optional[datetime] = None
    loan_id: Optional[str] = None
    receipt_url: Optional[str] = None
    entry_id: Optional[str] = None


@dataclass
class Plan:
    """Product definition, edited by an administrator"""

    plan_id: str
    name: str
    type: PlanType
    contribution_mode: ContributionMode = ContributionMode.FLEXIBLE
    min_amount: Decimal = ZERO
    fixed_amount: Decimal = ZERO
    duration_weeks: int = 0
    duration_months: int = 0
    service_charge: Decimal = ZERO
    is_active: bool = True
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass
class PlanSubscription:
    """One user's membership in one plan"""

    subscription_id: str
    user_id: str
    plan: Plan
    status: SubscriptionStatus
    start_date: date
    current_balance: Decimal = ZERO
    metadata: Optional["CycleMetadata"] = None  # None only for standard plans


@dataclass
class Profile:
    user_id: str
    created_at: datetime
    gov_id_status: GovIdStatus = GovIdStatus.NOT_UPLOADED


@dataclass
class Loan:
    loan_id: str
    user_id: str
    amount: Decimal
    interest_rate: Decimal
    total_payable: Decimal
    duration_months: int
    status: LoanStatus
    loan_number: str
    flagged_for_review: bool = False
    created_at: Optional[datetime] = None


@dataclass
class MaturityVerdict:
    """Whether a subscription has met its duration condition"""

    matured: bool
    completed: bool
    units_done: int
    units_required: Optional[int]  # None = open-ended (continuous)
    unit: str


@dataclass
class RuleEvaluation:
    """Output of the rule engine for one subscription at one instant"""

    mandated_amount: Decimal
    input_locked: bool
    fee: Decimal
    periods_covered: int
    maturity: MaturityVerdict


@dataclass
class PlanCreditRequest:
    """Input of the atomic plan-credit operation; amount includes the fee"""

    user_id: str
    subscription_id: str
    amount: Decimal
    fee: Decimal
    now: datetime


@dataclass
class PlanCreditResult:
    """What the plan-credit operation did, for caller messaging"""

    subscription_id: str
    credited_amount: Decimal
    unit: str
    units_satisfied: int
    penalty_cleared: Decimal
    new_balance: Decimal
    activated: bool
    message: str


@dataclass
class DepositRequest:
    user_id: str
    amount: Decimal
    channel: DepositChannel
    subscription_id: Optional[str] = None
    receipt_url: Optional[str] = None


@dataclass
class DepositOutcome:
    status: str  # "pending_review" | "credited"
    amount: Decimal
    fee: Decimal
    total_deduction: Decimal
    periods_covered: int
    entries: List[LedgerEntry]
    plan_credit: Optional[PlanCreditResult] = None
    message: str = ""


@dataclass
class MaturityStatus:
    """Date-based maturity for plans without cycle counters"""

    is_matured: bool
    is_due_soon: bool
    maturity_date: date
    days_remaining: int


@dataclass
class MaturityTransition:
    subscription_id: str
    plan_type: PlanType
    from_status: SubscriptionStatus
    to_status: SubscriptionStatus


@dataclass
class LoanEligibility:
    eligible: bool
    reason: str
    account_age_months: int
    limit_percentage: Decimal
    wallet_balance: Decimal
    maximum_amount: Decimal
    outstanding_amount: Decimal
    available_amount: Decimal
    max_duration_months: int


@dataclass
class LoanDecision:
    loan: Loan
    auto_approved: bool
    entries: List[LedgerEntry] = field(default_factory=list)


@dataclass
class SubscriptionChange:
    """Writes for one locked subscription; None fields are left unchanged"""

    metadata: Optional["CycleMetadata"] = None
    status: Optional[SubscriptionStatus] = None
    balance: Optional[Decimal] = None
    entries: List[LedgerEntry] = field(default_factory=list)
