"""FastAPI dependencies for the journal services attached at startup."""
from fastapi import HTTPException, Request

from app.services.content import is_valid_date_key
from app.services.reconciliation import ReconciliationEngine
from app.services.record_store import RecordStore


def get_engine(request: Request) -> ReconciliationEngine:
    return request.app.state.engine


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_generator(request: Request):
    return request.app.state.generator


def require_date(date: str) -> str:
    """Path date must be YYYY-MM-DD."""
    if not is_valid_date_key(date):
        raise HTTPException(status_code=400, detail=f"Invalid date '{date}', expected YYYY-MM-DD")
    return date


def require_month(month: int) -> int:
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail=f"Invalid month {month}")
    return month
