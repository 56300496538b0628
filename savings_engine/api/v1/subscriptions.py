"""/v1/subscriptions - joining, evaluating, settling and leaving plans"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request

from savings_engine.api.dependencies import get_now, get_request_id, get_store, http_error
from savings_engine.api.v1.schemas import (
    DailyAmountRequest,
    EntryResponse,
    EvaluationResponse,
    ExitResponse,
    JoinRequest,
    MaturityVerdictSchema,
    SettleResponse,
    SubscriptionListResponse,
    SubscriptionResponse,
    UserAction,
)
from savings_engine.config import settings
from savings_engine.domain.enrollment import JoinOptions, change_daily_amount, extend_marathon, join_plan
from savings_engine.domain.exceptions import DomainException
from savings_engine.domain.exits import (
    ExitResult,
    break_subscription,
    collect_circle_payout,
    owned_subscription,
    start_new_cycle,
    withdraw_matured,
)
from savings_engine.domain.loans import LoanEligibilityEngine
from savings_engine.domain.maturity import MaturityMonitor
from savings_engine.domain.models import PlanSubscription
from savings_engine.domain.rules import evaluate
from savings_engine.domain.settlement import settle_subscription, settle_user
from savings_engine.infrastructure.database.ledger_store import SqlLedgerStore
from savings_engine.infrastructure.observability.logging import log_maturity_transition
from savings_engine.infrastructure.observability.metrics import record_maturity

router = APIRouter()


def evaluation_response(subscription: PlanSubscription, now: datetime, amount=None) -> EvaluationResponse:
    result = evaluate(subscription, now, amount)
    return EvaluationResponse(
        subscription_id=subscription.subscription_id,
        mandated_amount=result.mandated_amount,
        input_locked=result.input_locked,
        fee=result.fee,
        periods_covered=result.periods_covered,
        maturity=MaturityVerdictSchema.model_validate(result.maturity),
    )


def subscription_response(subscription: PlanSubscription, now: datetime) -> SubscriptionResponse:
    return SubscriptionResponse(
        subscription_id=subscription.subscription_id,
        user_id=subscription.user_id,
        plan_id=subscription.plan.plan_id,
        plan_name=subscription.plan.name,
        plan_type=subscription.plan.type,
        status=subscription.status,
        start_date=subscription.start_date,
        current_balance=subscription.current_balance,
        metadata=subscription.metadata.to_bag() if subscription.metadata is not None else None,
        evaluation=evaluation_response(subscription, now),
    )


def exit_response(result: ExitResult, now: datetime) -> ExitResponse:
    return ExitResponse(
        subscription=subscription_response(result.subscription, now),
        amount=result.amount,
        penalty=result.penalty,
        entries=[EntryResponse.model_validate(e) for e in result.entries],
        loans_repaid=[d.loan.loan_number for d in result.loan_repayments],
    )


@router.get("/users/{user_id}/subscriptions", response_model=SubscriptionListResponse)
def list_subscriptions(
    user_id: str,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """
    List a user's subscriptions.

    Active subscriptions whose maturity rule is satisfied are moved to
    matured first, so the listing never shows a stale status.
    """
    try:
        transitions = MaturityMonitor(store).refresh(user_id, now)
        subscriptions = store.list_subscriptions(user_id)
    except DomainException as e:
        raise http_error(e, get_request_id(request))

    for transition in transitions:
        record_maturity(transition.plan_type.value)
        log_maturity_transition(user_id, transition.subscription_id, transition.plan_type.value)

    return SubscriptionListResponse(
        user_id=user_id,
        matured_now=[t.subscription_id for t in transitions],
        subscriptions=[subscription_response(s, now) for s in subscriptions],
    )


@router.post("/subscriptions", response_model=SubscriptionResponse, status_code=201)
def join(
    body: JoinRequest,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    try:
        options = JoinOptions(amount=body.amount, duration=body.duration, picking_turns=body.picking_turns)
        subscription = join_plan(store, body.plan_id, body.user_id, options, now)
        return subscription_response(subscription, now)
    except DomainException as e:
        raise http_error(e, get_request_id(request))


@router.get("/subscriptions/{subscription_id}/evaluation", response_model=EvaluationResponse)
def get_evaluation(
    subscription_id: str,
    request: Request,
    amount: Optional[Decimal] = Query(None, gt=0, description="Intended contribution; defaults to the mandated amount"),
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """Mandated amount, input lock, fee, periods covered and maturity verdict"""
    try:
        return evaluation_response(store.get_subscription(subscription_id), now, amount)
    except DomainException as e:
        raise http_error(e, get_request_id(request))


@router.post("/subscriptions/{subscription_id}/break", response_model=ExitResponse)
def break_plan(
    subscription_id: str,
    body: UserAction,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """Early exit: 5% penalty, 95% back to the wallet"""
    try:
        return exit_response(break_subscription(store, body.user_id, subscription_id, now), now)
    except DomainException as e:
        raise http_error(e, get_request_id(request))


@router.post("/subscriptions/{subscription_id}/withdraw", response_model=ExitResponse)
def withdraw(
    subscription_id: str,
    body: UserAction,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """Pay out a matured plan; outstanding loans are repaid from the payout"""
    try:
        loans = LoanEligibilityEngine(store, settings.loan_interest_rate_percent)
        return exit_response(withdraw_matured(store, body.user_id, subscription_id, now, loans), now)
    except DomainException as e:
        raise http_error(e, get_request_id(request))


@router.post("/subscriptions/{subscription_id}/payout", response_model=ExitResponse)
def circle_payout(
    subscription_id: str,
    body: UserAction,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    try:
        return exit_response(collect_circle_payout(store, body.user_id, subscription_id, now), now)
    except DomainException as e:
        raise http_error(e, get_request_id(request))


@router.post("/subscriptions/{subscription_id}/new-cycle", response_model=SubscriptionResponse, status_code=201)
def new_cycle(
    subscription_id: str,
    body: UserAction,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    try:
        return subscription_response(start_new_cycle(store, body.user_id, subscription_id, now), now)
    except DomainException as e:
        raise http_error(e, get_request_id(request))


@router.post("/subscriptions/{subscription_id}/extend", response_model=SubscriptionResponse)
def extend(
    subscription_id: str,
    body: UserAction,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    try:
        return subscription_response(extend_marathon(store, body.user_id, subscription_id), now)
    except DomainException as e:
        raise http_error(e, get_request_id(request))


@router.post("/subscriptions/{subscription_id}/daily-amount", response_model=SubscriptionResponse)
def daily_amount(
    subscription_id: str,
    body: DailyAmountRequest,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    try:
        updated = change_daily_amount(store, body.user_id, subscription_id, body.amount, now)
        return subscription_response(updated, now)
    except DomainException as e:
        raise http_error(e, get_request_id(request))


@router.post("/subscriptions/{subscription_id}/settle", response_model=SettleResponse)
def settle(
    subscription_id: str,
    body: UserAction,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """Close the current week or month; a second call in the same period is a no-op"""
    try:
        owned_subscription(store, body.user_id, subscription_id)
        updated, settled = settle_subscription(store, subscription_id, now)
        return SettleResponse(subscription=subscription_response(updated, now), settled=settled)
    except DomainException as e:
        raise http_error(e, get_request_id(request))


@router.post("/users/{user_id}/settle")
def settle_all(
    user_id: str,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """Scheduler hook: settle every active subscription of a user"""
    try:
        return {"user_id": user_id, "settled": settle_user(store, user_id, now)}
    except DomainException as e:
        raise http_error(e, get_request_id(request))
