"""POST /v1/deposits - deposit routing, manual review and auto-save"""

import time
import logging
from datetime import datetime
from typing import List
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.background import BackgroundTask

from savings_engine.api.dependencies import (
    get_now,
    get_reconciliation_client,
    get_request_id,
    get_store,
    http_error,
)
from savings_engine.api.v1.schemas import (
    AutoSaveResponse,
    DepositCreate,
    DepositResponse,
    EntryResponse,
    PlanCreditSchema,
    ReconciliationItem,
)
from savings_engine.domain.deposits import DepositRouter
from savings_engine.domain.exceptions import DomainException, PlanCreditFailure
from savings_engine.domain.models import DepositRequest
from savings_engine.domain.settlement import run_auto_save
from savings_engine.infrastructure.clients.reconciliation import ReconciliationClient
from savings_engine.infrastructure.database.ledger_store import SqlLedgerStore
from savings_engine.infrastructure.observability.logging import log_deposit, log_plan_credit_failure
from savings_engine.infrastructure.observability.metrics import plan_credit_failure_counter, record_deposit

router = APIRouter()


@router.post("/deposits", response_model=DepositResponse, status_code=201)
def create_deposit(
    body: DepositCreate,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    reconciliation_client: ReconciliationClient = Depends(get_reconciliation_client),
    now: datetime = Depends(get_now),
):
    """
    Deposit into the general wallet (external) or from the wallet into a plan.

    Flow:
    1. Validate amount against the plan's mandated amount / minimum
    2. Check the wallet covers amount + fee (wallet transfers)
    3. External: record a pending deposit awaiting review
    4. Wallet: debit the wallet, then apply the atomic plan credit
    5. On plan-credit failure: 502 with a reconciliation reference and an ops webhook
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        outcome = DepositRouter(store).deposit(
            DepositRequest(
                user_id=body.user_id,
                amount=body.amount,
                channel=body.channel,
                subscription_id=body.subscription_id,
                receipt_url=body.receipt_url,
            ),
            now,
        )

    except PlanCreditFailure as e:
        plan_credit_failure_counter.inc()
        record_deposit(body.channel.value, "plan_credit_failed")
        log_plan_credit_failure(
            request_id, body.user_id, e.subscription_id, e.debit_entry_id, e.reconciliation_id, e.amount
        )
        event = {
            "event": "PLAN_CREDIT_FAILED",
            "reconciliation_id": e.reconciliation_id,
            "user_id": body.user_id,
            "subscription_id": e.subscription_id,
            "debit_entry_id": e.debit_entry_id,
            "amount": str(e.amount),
        }
        # Background tasks only run on a returned response
        return JSONResponse(
            status_code=502,
            content={
                "detail": {
                    "error": "plan_credit_failed",
                    "message": str(e),
                    "subscription_id": e.subscription_id,
                    "debit_entry_id": e.debit_entry_id,
                    "reconciliation_id": e.reconciliation_id,
                }
            },
            background=BackgroundTask(reconciliation_client.send_failure_event, event),
        )

    except DomainException as e:
        record_deposit(body.channel.value, "rejected")
        raise http_error(e, request_id)

    duration_ms = (time.time() - start_time) * 1000
    record_deposit(body.channel.value, outcome.status)
    log_deposit(
        request_id, body.user_id, body.channel.value, outcome.status, outcome.amount, outcome.fee, body.subscription_id, duration_ms
    )

    return DepositResponse(
        status=outcome.status,
        amount=outcome.amount,
        fee=outcome.fee,
        total_deduction=outcome.total_deduction,
        periods_covered=outcome.periods_covered,
        entries=[EntryResponse.model_validate(e) for e in outcome.entries],
        plan_credit=PlanCreditSchema.model_validate(outcome.plan_credit) if outcome.plan_credit else None,
        message=outcome.message,
    )


@router.post("/deposits/{entry_id}/approve", response_model=EntryResponse)
def approve_deposit(entry_id: str, request: Request, store: SqlLedgerStore = Depends(get_store)):
    """Administrator: confirm an external deposit after checking the receipt"""
    try:
        entry = DepositRouter(store).approve_external_deposit(entry_id)
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    logging.info("External deposit approved", extra={"entry_id": entry_id, "user_id": entry.owner_id})
    return EntryResponse.model_validate(entry)


@router.post("/deposits/{entry_id}/reject", response_model=EntryResponse)
def reject_deposit(entry_id: str, request: Request, store: SqlLedgerStore = Depends(get_store)):
    try:
        entry = DepositRouter(store).reject_external_deposit(entry_id)
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    logging.info("External deposit rejected", extra={"entry_id": entry_id, "user_id": entry.owner_id})
    return EntryResponse.model_validate(entry)


@router.post("/users/{user_id}/auto-save", response_model=AutoSaveResponse)
def auto_save(
    user_id: str,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    """Pay every active plan's mandated amount from the wallet where it can be covered"""
    try:
        report = run_auto_save(DepositRouter(store), store, user_id, now)
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return AutoSaveResponse(user_id=user_id, covered=report.covered, failed=dict(report.failed))


@router.get("/reconciliation", response_model=List[ReconciliationItem])
def list_reconciliation(request: Request, store: SqlLedgerStore = Depends(get_store)):
    """Operations: wallet debits still waiting for their plan credit"""
    try:
        return [ReconciliationItem(**item) for item in store.list_open_reconciliations()]
    except DomainException as e:
        raise http_error(e, get_request_id(request))
