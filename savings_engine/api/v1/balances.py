"""GET /v1/users/{user_id}/balance and activity feed"""

from fastapi import APIRouter, Depends, Query, Request

from savings_engine.api.dependencies import get_request_id, get_store, http_error
from savings_engine.api.v1.schemas import ActivityItem, ActivityResponse, BalanceResponse
from savings_engine.domain.balance import calculate_balance, general_wallet_balance
from savings_engine.domain.exceptions import DomainException
from savings_engine.infrastructure.database.ledger_store import SqlLedgerStore

router = APIRouter()


@router.get("/users/{user_id}/balance", response_model=BalanceResponse)
def get_balance(user_id: str, request: Request, store: SqlLedgerStore = Depends(get_store)):
    """
    General wallet balance derived from the ledger, plus each subscription's
    cached balance.
    """
    try:
        entries = store.list_entries(user_id)
        subscriptions = store.list_subscriptions(user_id)
    except DomainException as e:
        raise http_error(e, get_request_id(request))

    return BalanceResponse(
        user_id=user_id,
        wallet_balance=general_wallet_balance(entries),
        subscriptions={s.subscription_id: s.current_balance for s in subscriptions},
    )


@router.get("/users/{user_id}/ledger-balance")
def get_scope_balance(
    user_id: str,
    request: Request,
    scope: str | None = Query(None, description="Subscription id; omit for the general wallet"),
    store: SqlLedgerStore = Depends(get_store),
):
    """Balance of any scope recomputed from entries"""
    try:
        entries = store.list_entries(user_id)
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return {"user_id": user_id, "scope": scope, "balance": calculate_balance(entries, scope=scope)}


@router.get("/users/{user_id}/activity", response_model=ActivityResponse)
def get_activity(
    user_id: str,
    request: Request,
    limit: int = Query(20, ge=1, le=100),
    store: SqlLedgerStore = Depends(get_store),
):
    try:
        items = store.list_activity(user_id, limit)
    except DomainException as e:
        raise http_error(e, get_request_id(request))
    return ActivityResponse(user_id=user_id, activity=[ActivityItem(**item) for item in items])
