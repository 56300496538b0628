"""
Loan eligibility and lifecycle.

Borrowing power is a share of the general wallet balance:
- account age >= 12 months: 70%
- younger accounts: 50%

less what the user still owes on active or defaulted loans.
"""

import uuid
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List

from savings_engine.domain.balance import general_wallet_balance
from savings_engine.domain.exceptions import NotFound, ValidationError
from savings_engine.domain.models import (
    ActivityAction,
    EntryKind,
    EntryStatus,
    GovIdStatus,
    LedgerEntry,
    Loan,
    LoanDecision,
    LoanEligibility,
    LoanStatus,
    PlanSubscription,
    Profile,
    SubscriptionStatus,
)
from savings_engine.domain.ports import LedgerStore
from savings_engine.utils.date_utils import months_between
from savings_engine.utils.money import ZERO, to_money

DEFAULT_INTEREST_RATE = Decimal("10")
SENIOR_ACCOUNT_MONTHS = 12
SENIOR_LIMIT = Decimal("0.70")
STANDARD_LIMIT = Decimal("0.50")

OUTSTANDING_STATUSES = {LoanStatus.ACTIVE, LoanStatus.DEFAULTED}
HISTORY_STATUSES = {LoanStatus.PAID, LoanStatus.ACTIVE}


def limit_percentage(account_age_months: int) -> Decimal:
    return SENIOR_LIMIT if account_age_months >= SENIOR_ACCOUNT_MONTHS else STANDARD_LIMIT


def max_duration_months(loans: Iterable[Loan]) -> int:
    """Longer terms unlock with loan history: 0-1 loans -> 1 month, 2-4 -> 3, 5+ -> 6"""
    history = sum(1 for loan in loans if loan.status in HISTORY_STATUSES)
    if history >= 5:
        return 6
    if history >= 2:
        return 3
    return 1


def total_payable(principal, interest_rate_percent) -> Decimal:
    """Flat interest: principal * (1 + rate / 100)"""
    rate = Decimal(str(interest_rate_percent))
    return to_money(to_money(principal) * (1 + rate / 100))


def outstanding_amount(loans: Iterable[Loan]) -> Decimal:
    return sum((to_money(loan.total_payable) for loan in loans if loan.status in OUTSTANDING_STATUSES), ZERO)


def assess_eligibility(
    profile: Profile,
    subscriptions: Iterable[PlanSubscription],
    entries: Iterable[LedgerEntry],
    loans: List[Loan],
    now: datetime,
) -> LoanEligibility:
    """
    Eligibility and limits from a ledger snapshot.

    Eligible when the user has at least one active savings plan and a verified
    government ID. Limits are reported either way.
    """
    has_active_plan = any(s.status == SubscriptionStatus.ACTIVE for s in subscriptions)
    verified = profile.gov_id_status == GovIdStatus.VERIFIED

    if not has_active_plan:
        reason = "You need at least one active savings plan to borrow"
    elif not verified:
        reason = "Your government ID must be verified before you can borrow"
    else:
        reason = "Eligible"

    age = months_between(profile.created_at, now)
    pct = limit_percentage(age)
    wallet = general_wallet_balance(entries)
    maximum = max(ZERO, to_money(wallet * pct))
    outstanding = outstanding_amount(loans)

    return LoanEligibility(
        eligible=has_active_plan and verified,
        reason=reason,
        account_age_months=age,
        limit_percentage=pct,
        wallet_balance=wallet,
        maximum_amount=maximum,
        outstanding_amount=outstanding,
        available_amount=max(ZERO, maximum - outstanding),
        max_duration_months=max_duration_months(loans),
    )


def new_loan_number() -> str:
    return f"LN-{uuid.uuid4().hex[:8].upper()}"


class LoanEligibilityEngine:
    """Eligibility, requests, review and repayment of wallet-backed loans"""

    def __init__(self, store: LedgerStore, interest_rate_percent=None):
        self.store = store
        self.interest_rate = Decimal(str(interest_rate_percent)) if interest_rate_percent is not None else DEFAULT_INTEREST_RATE

    def eligibility(self, user_id: str, now: datetime) -> LoanEligibility:
        return assess_eligibility(
            self.store.get_profile(user_id),
            self.store.list_subscriptions(user_id),
            self.store.list_entries(user_id),
            self.store.list_loans(user_id),
            now,
        )

    def request_loan(self, user_id: str, amount, duration_months: int, now: datetime) -> LoanDecision:
        """
        Amounts within the available limit are approved and disbursed at once;
        larger amounts are held as pending and flagged for manual review.
        """
        eligibility = self.eligibility(user_id, now)
        if not eligibility.eligible:
            raise ValidationError(eligibility.reason)

        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Loan amount must be greater than zero")
        if duration_months < 1 or duration_months > eligibility.max_duration_months:
            raise ValidationError(
                f"Loan duration must be between 1 and {eligibility.max_duration_months} month(s)"
            )

        within_limit = amount <= eligibility.available_amount
        loan = Loan(
            loan_id=str(uuid.uuid4()),
            user_id=user_id,
            amount=amount,
            interest_rate=self.interest_rate,
            total_payable=total_payable(amount, self.interest_rate),
            duration_months=duration_months,
            status=LoanStatus.ACTIVE if within_limit else LoanStatus.PENDING,
            loan_number=new_loan_number(),
            flagged_for_review=not within_limit,
            created_at=now,
        )

        entries = [self._disbursement(loan, now)] if within_limit else []
        saved, saved_entries = self.store.save_loan(loan, entries)
        self.store.record_activity(
            user_id,
            ActivityAction.LOAN_REQUEST,
            {"loan_number": saved.loan_number, "amount": str(amount), "status": saved.status.value},
        )
        return LoanDecision(loan=saved, auto_approved=within_limit, entries=saved_entries)

    def approve_loan(self, loan_id: str, now: datetime) -> LoanDecision:
        loan = self._pending(loan_id)
        approved = replace(loan, status=LoanStatus.ACTIVE, flagged_for_review=False)
        saved, entries = self.store.save_loan(approved, [self._disbursement(approved, now)])
        return LoanDecision(loan=saved, auto_approved=False, entries=entries)

    def reject_loan(self, loan_id: str) -> LoanDecision:
        loan = self._pending(loan_id)
        saved, _ = self.store.save_loan(replace(loan, status=LoanStatus.REJECTED))
        return LoanDecision(loan=saved, auto_approved=False)

    def repay_loan(self, user_id: str, loan_id: str, amount, now: datetime) -> LoanDecision:
        """
        Repay from the general wallet.

        Amounts above what is still owed are capped; the loan is marked paid
        once nothing remains.
        """
        loan = self._owned(user_id, loan_id)
        if loan.status not in OUTSTANDING_STATUSES:
            raise ValidationError(f"Loan {loan.loan_number} is {loan.status.value} and cannot be repaid")

        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("Repayment amount must be greater than zero")

        applied = min(amount, to_money(loan.total_payable))
        available = general_wallet_balance(self.store.list_entries(user_id))
        if applied > available:
            raise ValidationError(f"Insufficient wallet balance: ₦{available} available")

        remaining = to_money(loan.total_payable) - applied
        updated = replace(
            loan,
            total_payable=max(ZERO, remaining),
            status=LoanStatus.PAID if remaining <= 0 else loan.status,
        )
        entry = LedgerEntry(
            owner_id=user_id,
            kind=EntryKind.LOAN_REPAYMENT,
            amount=applied,
            status=EntryStatus.COMPLETED,
            description=f"Repayment for {loan.loan_number}",
            created_at=now,
            loan_id=loan.loan_id,
        )
        saved, entries = self.store.save_loan(updated, [entry], spend=applied)
        self.store.record_activity(
            user_id,
            ActivityAction.LOAN_REPAYMENT,
            {"loan_number": loan.loan_number, "amount": str(applied), "remaining": str(saved.total_payable)},
        )
        return LoanDecision(loan=saved, auto_approved=False, entries=entries)

    def _disbursement(self, loan: Loan, now: datetime) -> LedgerEntry:
        return LedgerEntry(
            owner_id=loan.user_id,
            kind=EntryKind.LOAN_DISBURSEMENT,
            amount=to_money(loan.amount),
            status=EntryStatus.COMPLETED,
            description=f"Loan disbursement {loan.loan_number}",
            created_at=now,
            loan_id=loan.loan_id,
        )

    def _pending(self, loan_id: str) -> Loan:
        loan = self.store.get_loan(loan_id)
        if loan.status != LoanStatus.PENDING:
            raise ValidationError(f"Loan {loan.loan_number} is {loan.status.value}, not pending")
        return loan

    def _owned(self, user_id: str, loan_id: str) -> Loan:
        loan = self.store.get_loan(loan_id)
        if loan.user_id != user_id:
            raise NotFound(f"Loan {loan_id} not found")
        return loan
