"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from savings_engine.domain.models import (
    ContributionMode,
    DepositChannel,
    EntryKind,
    EntryStatus,
    GovIdStatus,
    LoanStatus,
    PlanType,
    SubscriptionStatus,
)


class UserAction(BaseModel):
    """Body for subscription actions performed by the owner"""

    user_id: str = Field(..., min_length=1, description="User identifier")


# Plans


class PlanCreate(BaseModel):
    """Request body for POST /v1/plans"""

    name: str = Field(..., min_length=1)
    type: PlanType = PlanType.STANDARD
    contribution_mode: ContributionMode = ContributionMode.FLEXIBLE
    min_amount: Decimal = Field(Decimal("0"), ge=0)
    fixed_amount: Decimal = Field(Decimal("0"), ge=0)
    duration_weeks: int = Field(0, ge=0)
    duration_months: int = Field(0, ge=0)
    service_charge: Decimal = Field(Decimal("0"), ge=0)
    is_active: bool = True
    config: Dict[str, Any] = Field(default_factory=dict)


class PlanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    plan_id: str
    name: str
    type: PlanType
    contribution_mode: ContributionMode
    min_amount: Decimal
    fixed_amount: Decimal
    duration_weeks: int
    duration_months: int
    is_active: bool
    config: Dict[str, Any]


# Ledger


class EntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entry_id: str
    kind: EntryKind
    amount: Decimal
    fee: Decimal
    status: EntryStatus
    scope: Optional[str] = None
    description: str = ""
    loan_id: Optional[str] = None
    receipt_url: Optional[str] = None
    created_at: Optional[datetime] = None


class BalanceResponse(BaseModel):
    """Response for GET /v1/users/{user_id}/balance"""

    user_id: str
    wallet_balance: Decimal
    subscriptions: Dict[str, Decimal]


class ActivityItem(BaseModel):
    action: str
    details: Dict[str, Any]
    is_public: bool
    created_at: Optional[datetime] = None


class ActivityResponse(BaseModel):
    user_id: str
    activity: List[ActivityItem]


# Subscriptions


class JoinRequest(BaseModel):
    """Request body for POST /v1/subscriptions"""

    user_id: str = Field(..., min_length=1)
    plan_id: str = Field(..., min_length=1)
    amount: Optional[Decimal] = Field(None, gt=0, description="Fixed amount or monthly target")
    duration: Optional[int] = Field(None, description="Weeks, months or days depending on the plan; -1 = continuous")
    picking_turns: List[int] = Field(default_factory=list)


class MaturityVerdictSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    matured: bool
    completed: bool
    units_done: int
    units_required: Optional[int] = None
    unit: str


class EvaluationResponse(BaseModel):
    """Rule engine output for one subscription"""

    subscription_id: str
    mandated_amount: Decimal
    input_locked: bool
    fee: Decimal
    periods_covered: int
    maturity: MaturityVerdictSchema


class SubscriptionResponse(BaseModel):
    subscription_id: str
    user_id: str
    plan_id: str
    plan_name: str
    plan_type: PlanType
    status: SubscriptionStatus
    start_date: date
    current_balance: Decimal
    metadata: Optional[Dict[str, Any]] = None
    evaluation: Optional[EvaluationResponse] = None


class SubscriptionListResponse(BaseModel):
    """Response for GET /v1/users/{user_id}/subscriptions"""

    user_id: str
    matured_now: List[str]
    subscriptions: List[SubscriptionResponse]


class DailyAmountRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)


class ExitResponse(BaseModel):
    """Response for break, matured withdrawal and circle payout"""

    subscription: SubscriptionResponse
    amount: Decimal
    penalty: Decimal
    entries: List[EntryResponse]
    loans_repaid: List[str] = Field(default_factory=list)


class SettleResponse(BaseModel):
    subscription: SubscriptionResponse
    settled: bool


# Deposits and withdrawals


class DepositCreate(BaseModel):
    """Request body for POST /v1/deposits"""

    user_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., description="Contribution in naira, before fees")
    channel: DepositChannel
    subscription_id: Optional[str] = None
    receipt_url: Optional[str] = None


class PlanCreditSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    subscription_id: str
    credited_amount: Decimal
    unit: str
    units_satisfied: int
    penalty_cleared: Decimal
    new_balance: Decimal
    activated: bool
    message: str


class DepositResponse(BaseModel):
    status: str
    amount: Decimal
    fee: Decimal
    total_deduction: Decimal
    periods_covered: int
    entries: List[EntryResponse]
    plan_credit: Optional[PlanCreditSchema] = None
    message: str


class AutoSaveResponse(BaseModel):
    user_id: str
    covered: List[str]
    failed: Dict[str, str]


class WithdrawalCreate(BaseModel):
    user_id: str = Field(..., min_length=1)
    amount: Decimal


class ReconciliationItem(BaseModel):
    reconciliation_id: str
    user_id: str
    subscription_id: str
    debit_entry_id: Optional[str] = None
    amount: Decimal
    reason: str
    created_at: Optional[datetime] = None


# Loans


class ProfileCreate(BaseModel):
    """Request body for POST /v1/profiles"""

    user_id: str = Field(..., min_length=1)
    gov_id_status: GovIdStatus = GovIdStatus.NOT_UPLOADED
    created_at: Optional[datetime] = Field(None, description="Account creation time; defaults to now")


class EligibilityResponse(BaseModel):
    """Response for GET /v1/users/{user_id}/loans/eligibility"""

    user_id: str
    eligible: bool
    reason: str
    account_age_months: int
    limit_percentage: Decimal
    wallet_balance: Decimal
    maximum_amount: Decimal
    outstanding_amount: Decimal
    available_amount: Decimal
    max_duration_months: int


class LoanCreate(BaseModel):
    """Request body for POST /v1/loans"""

    user_id: str = Field(..., min_length=1)
    amount: Decimal
    duration_months: int = Field(..., ge=1)


class LoanRepay(BaseModel):
    user_id: str = Field(..., min_length=1)
    amount: Decimal


class LoanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    loan_id: str
    loan_number: str
    user_id: str
    amount: Decimal
    interest_rate: Decimal
    total_payable: Decimal
    duration_months: int
    status: LoanStatus
    flagged_for_review: bool
    auto_approved: bool = False
    entries: List[EntryResponse] = Field(default_factory=list)
