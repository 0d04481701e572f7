"""
Record Routes

JSON API behind the calendar and editor. All reads and writes go through the
reconciliation engine so its month cache stays in step with the store.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.auth.utils import get_current_owner
from app.dependencies import get_engine, require_date, require_month
from app.services.reconciliation import ReconciliationEngine
from app.time_utils import today_local

router = APIRouter(prefix="/api", tags=["records"])


class SaveRecordRequest(BaseModel):
    content: str


class UpdateSummaryRequest(BaseModel):
    summary: Optional[str] = None


@router.get("/today")
async def today():
    """The app-timezone date the editor opens on."""
    return {"date": today_local().isoformat()}


@router.get("/records/{date}")
async def get_record(
    date: str = Depends(require_date),
    owner=Depends(get_current_owner),
    engine: ReconciliationEngine = Depends(get_engine),
):
    """Authoritative read of one day's entry. `record` is null when none exists."""
    record = await engine.get_record(owner, date)
    state = engine.poll_state(owner, date)
    return {
        "record": record.to_dict() if record else None,
        "summary_status": state.value if state else None,
    }


@router.put("/records/{date}")
async def save_record(
    data: SaveRecordRequest,
    date: str = Depends(require_date),
    owner=Depends(get_current_owner),
    engine: ReconciliationEngine = Depends(get_engine),
):
    """Save an entry. Returns once stored; the summary arrives later.

    Saving empty or punctuation-only content deletes the day's entry.
    """
    result = await engine.save(owner, date, data.content)
    state = engine.poll_state(owner, date) if result.record else None
    return {
        "record": result.record.to_dict() if result.record else None,
        "deleted": result.record is None,
        "summary_status": state.value if state else None,
    }


@router.delete("/records/{date}")
async def delete_record(
    date: str = Depends(require_date),
    owner=Depends(get_current_owner),
    engine: ReconciliationEngine = Depends(get_engine),
):
    await engine.delete(owner, date)
    return {"ok": True}


@router.put("/records/{date}/summary")
async def update_summary(
    data: UpdateSummaryRequest,
    date: str = Depends(require_date),
    owner=Depends(get_current_owner),
    engine: ReconciliationEngine = Depends(get_engine),
):
    """Manual summary edit; cancels any summary still being generated."""
    record = await engine.update_summary(owner, date, data.summary)
    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return {"record": record.to_dict()}


@router.get("/records/{date}/status")
async def summary_status(
    date: str = Depends(require_date),
    owner=Depends(get_current_owner),
    engine: ReconciliationEngine = Depends(get_engine),
):
    """Cheap poll target for the editor: cached record plus summary job state."""
    record = engine.peek(owner, date)
    state = engine.poll_state(owner, date)
    return {
        "record": record.to_dict() if record else None,
        "summary_status": state.value if state else None,
    }


@router.get("/months/{year}/{month}")
async def list_month(
    year: int,
    month: int = Depends(require_month),
    max_age: Optional[float] = None,
    owner=Depends(get_current_owner),
    engine: ReconciliationEngine = Depends(get_engine),
):
    """Calendar view: entries with content or a summary, ordered by date."""
    cache = await engine.list_month(owner, year, month, max_age=max_age)
    return {
        "month": cache.key,
        "freshness": cache.freshness.isoformat() if cache.freshness else None,
        "records": [r.to_dict() for r in cache.ordered()],
    }
