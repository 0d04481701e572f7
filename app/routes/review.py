"""
Review Routes

Monthly review (overview, takeaways, themes, keywords) and the year calendar.
"""

from fastapi import APIRouter, Depends

from app.auth.utils import get_current_owner
from app.dependencies import get_generator, get_store, require_month
from app.services.content import month_range
from app.services.monthly_review import (
    extract_month_keywords,
    get_cached_monthly_summary,
    get_or_generate_monthly_summary,
    year_overview,
)
from app.services.record_store import RecordStore

router = APIRouter(prefix="/api/review", tags=["review"])


@router.get("/{year}")
async def review_year(
    year: int,
    owner=Depends(get_current_owner),
    store: RecordStore = Depends(get_store),
):
    return year_overview(store, owner, year)


@router.get("/{year}/{month}")
async def review_month(
    year: int,
    month: int = Depends(require_month),
    owner=Depends(get_current_owner),
    store: RecordStore = Depends(get_store),
):
    """Month's entries plus the cached review if it is still valid. Never generates."""
    start, end = month_range(year, month)
    records = store.list_range(owner, start, end)
    review = get_cached_monthly_summary(store, owner, year, month)
    return {
        "records": [r.to_dict() for r in records],
        "summary": review.to_dict() if review else None,
    }


@router.post("/{year}/{month}/generate")
async def generate_review(
    year: int,
    month: int = Depends(require_month),
    owner=Depends(get_current_owner),
    store: RecordStore = Depends(get_store),
    generator=Depends(get_generator),
):
    """Return the month's review, generating it when records changed since the last one."""
    review = await get_or_generate_monthly_summary(store, generator, owner, year, month)
    return review.to_dict()


@router.get("/{year}/{month}/keywords")
async def review_keywords(
    year: int,
    month: int = Depends(require_month),
    owner=Depends(get_current_owner),
    store: RecordStore = Depends(get_store),
    generator=Depends(get_generator),
):
    start, end = month_range(year, month)
    records = store.list_range(owner, start, end)
    return {"keywords": await extract_month_keywords(generator, records)}
