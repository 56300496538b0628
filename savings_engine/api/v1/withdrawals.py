"""POST /v1/withdrawals - general wallet withdrawals and their review"""

from datetime import datetime
from fastapi import APIRouter, Depends, Request

from savings_engine.api.dependencies import get_now, get_request_id, get_store, http_error
from savings_engine.api.v1.schemas import EntryResponse, WithdrawalCreate
from savings_engine.domain.exceptions import DomainException
from savings_engine.domain.withdrawals import approve_withdrawal, reject_withdrawal, request_withdrawal
from savings_engine.infrastructure.database.ledger_store import SqlLedgerStore

router = APIRouter()


@router.post("/withdrawals", response_model=EntryResponse, status_code=201)
def create_withdrawal(
    body: WithdrawalCreate,
    request: Request,
    store: SqlLedgerStore = Depends(get_store),
    now: datetime = Depends(get_now),
):
    try:
        return EntryResponse.model_validate(request_withdrawal(store, body.user_id, body.amount, now))
    except DomainException as e:
        raise http_error(e, get_request_id(request))


@router.post("/withdrawals/{entry_id}/approve", response_model=EntryResponse)
def approve(entry_id: str, request: Request, store: SqlLedgerStore = Depends(get_store)):
    try:
        return EntryResponse.model_validate(approve_withdrawal(store, entry_id))
    except DomainException as e:
        raise http_error(e, get_request_id(request))


@router.post("/withdrawals/{entry_id}/reject", response_model=EntryResponse)
def reject(entry_id: str, request: Request, store: SqlLedgerStore = Depends(get_store)):
    try:
        return EntryResponse.model_validate(reject_withdrawal(store, entry_id))
    except DomainException as e:
        raise http_error(e, get_request_id(request))
