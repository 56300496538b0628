"""Dependency injection for FastAPI endpoints"""

import logging
from datetime import datetime

from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from savings_engine.domain.exceptions import (
    ArchetypeMismatch,
    DomainException,
    NotFound,
    StoreFailure,
    ValidationError,
)
from savings_engine.infrastructure.clients.reconciliation import ReconciliationClient
from savings_engine.infrastructure.database.ledger_store import SqlLedgerStore
from savings_engine.infrastructure.database.session import get_db
from savings_engine.utils.date_utils import utc_now


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_store(db: Session = Depends(get_db)) -> SqlLedgerStore:
    """Provide the SQL-backed ledger store for this request's session"""
    return SqlLedgerStore(db)


def get_reconciliation_client() -> ReconciliationClient:
    """Provide ops reconciliation webhook client instance"""
    return ReconciliationClient()


def get_now() -> datetime:
    """Request clock; overridden in tests to pin dates"""
    return utc_now()


def http_error(error: DomainException, request_id: str) -> HTTPException:
    """Map a domain exception to its HTTP status"""
    if isinstance(error, ValidationError):
        logging.warning(f"Validation failed: {error}", extra={"request_id": request_id})
        return HTTPException(status_code=422, detail=str(error))

    if isinstance(error, NotFound):
        return HTTPException(status_code=404, detail=str(error))

    if isinstance(error, StoreFailure):
        logging.error(f"Store failure: {error}", extra={"request_id": request_id})
        return HTTPException(status_code=503, detail="Storage temporarily unavailable, please retry")

    if isinstance(error, ArchetypeMismatch):
        logging.error(f"Archetype mismatch: {error}", extra={"request_id": request_id})
        return HTTPException(status_code=500, detail="Subscription data is inconsistent")

    logging.error(f"Unexpected domain error: {error}", extra={"request_id": request_id})
    return HTTPException(status_code=500, detail="Internal server error")
