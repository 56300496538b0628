"""/v1/plans - savings product catalogue"""

from typing import List
from fastapi import APIRouter, Depends, Request

from savings_engine.api.dependencies import get_request_id, get_store, http_error
from savings_engine.api.v1.schemas import PlanCreate, PlanResponse
from savings_engine.domain.exceptions import DomainException
from savings_engine.domain.models import Plan
from savings_engine.infrastructure.database.ledger_store import SqlLedgerStore

router = APIRouter()


@router.get("/plans", response_model=List[PlanResponse])
def list_plans(request: Request, store: SqlLedgerStore = Depends(get_store)):
    """Active plans open for new members"""
    try:
        return [PlanResponse.model_validate(plan) for plan in store.list_plans()]
    except DomainException as e:
        raise http_error(e, get_request_id(request))


@router.post("/plans", response_model=PlanResponse, status_code=201)
def create_plan(body: PlanCreate, request: Request, store: SqlLedgerStore = Depends(get_store)):
    """Administrator: define a new plan"""
    try:
        plan = store.create_plan(
            Plan(
                plan_id="",
                name=body.name,
                type=body.type,
                contribution_mode=body.contribution_mode,
                min_amount=body.min_amount,
                fixed_amount=body.fixed_amount,
                duration_weeks=body.duration_weeks,
                duration_months=body.duration_months,
                service_charge=body.service_charge,
                is_active=body.is_active,
                config=body.config,
            )
        )
        return PlanResponse.model_validate(plan)
    except DomainException as e:
        raise http_error(e, get_request_id(request))


@router.get("/plans/{plan_id}", response_model=PlanResponse)
def get_plan(plan_id: str, request: Request, store: SqlLedgerStore = Depends(get_store)):
    try:
        return PlanResponse.model_validate(store.get_plan(plan_id))
    except DomainException as e:
        raise http_error(e, get_request_id(request))
