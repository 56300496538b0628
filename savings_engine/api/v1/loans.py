"""/v1/loans - eligibility, requests, review and repayment"""

from datetime import datetime
from fastapi import APIRouter, Depends, Request

from savings_engine.api.dependencies import get_now, get_request_id, get_store, http_error
from savings_engine.api.v1.schemas import (
    EligibilityResponse,
    EntryResponse,
    LoanCreate,
    LoanRepay,
    LoanResponse,
    ProfileCreate,
)
from savings_engine.config import settings
from savings_engine.domain.exceptions import DomainException
from savings_engine.domain.loans import LoanEligibilityEngine
from savings_engine.domain.models import LoanDecision, Profile
from savings_engine.infrastructure.database.ledger_store import SqlLedgerStore
from savings_engine.infrastructure.observability.logging import log_loan_decision
from savings_engine.infrastructure.observability.metrics import record_loan_decision

router = APIRouter()


def loan_engine(store: SqlLedgerStore) -> LoanEligibilityEngine:
    return LoanEligibilityEngine(store, settings.loan_interest_rate_percent)


def loan_response(decision: LoanDecision) -> LoanResponse:
    response = LoanResponse.model_validate(decision.loan)
    response.auto_approved = decision.auto_approved
    response.entries = [EntryResponse.model_validate(e) for e in decision.entries]
    return response


@router.post("/profiles", status_code=201)
def create_profile(
    body: ProfileCreate,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """Register an account profile (account age and ID verification drive loan limits)"""
    try:
        profile = store.create_profile(
            Profile(user_id=body.user_id, created_at=body.created_at or now, gov_id_status=body.gov_id_status)
        )
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return {"user_id": profile.user_id, "gov_id_status": profile.gov_id_status.value}


@router.get("/users/{user_id}/loans/eligibility", response_model=EligibilityResponse)
def get_eligibility(
    user_id: str,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    try:
        eligibility = loan_engine(store).eligibility(user_id, now)
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return EligibilityResponse(user_id=user_id, **eligibility.__dict__)


@router.post("/loans", response_model=LoanResponse, status_code=201)
def request_loan(
    body: LoanCreate,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """
    Request a loan against the general wallet.

    Within the available limit the loan is approved and disbursed at once;
    above it the loan waits for manual review.
    """
    request_id = get_request_id(request)
    try:
        decision = loan_engine(store).request_loan(body.user_id, body.amount, body.duration_months, now)
    except DomainException as e:
        record_loan_decision("rejected")
        raise http_error(e, request_id)

    outcome = "approved" if decision.auto_approved else "pending_review"
    record_loan_decision(outcome)
    log_loan_decision(request_id, body.user_id, decision.loan.loan_number, decision.loan.status.value, decision.loan.amount)
    return loan_response(decision)


@router.post("/loans/{loan_id}/approve", response_model=LoanResponse)
def approve_loan(
    loan_id: str,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    try:
        return loan_response(loan_engine(store).approve_loan(loan_id, now))
    except DomainException as e:
        raise http_error(e, get_request_id(request))


@router.post("/loans/{loan_id}/reject", response_model=LoanResponse)
def reject_loan(loan_id: str, request: Request, store: SqlLedgerStore = Depends(get_store)):
    try:
        return loan_response(loan_engine(store).reject_loan(loan_id))
    except DomainException as e:
        raise http_error(e, get_request_id(request))


@router.post("/loans/{loan_id}/repay", response_model=LoanResponse)
def repay_loan(
    loan_id: str,
    body: LoanRepay,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    try:
        return loan_response(loan_engine(store).repay_loan(body.user_id, loan_id, body.amount, now))
    except DomainException as e:
        raise http_error(e, get_request_id(request))
