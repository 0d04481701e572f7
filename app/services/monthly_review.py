"""
Monthly Review Service

Builds the month overview (overview, takeaways, themes, keywords) from a
month of entries and caches it per (owner, YYYY-MM). A cached review is
reused until any record in the month is updated after it.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from app.services.summary_format import normalize_monthly_summary
from app.services.content import has_meaningful_content, merge_contents, month_key, month_range
from app.services.errors import GenerationFailed, NoData
from app.services.record_store import Owner, Record, RecordStore

logger = logging.getLogger(__name__)

MAX_KEYWORDS = 20

# Words that say nothing about what the month was about
STOP_WORDS = {
    "今天", "今日", "明天", "昨天", "晚上", "上午", "下午", "早上", "中午", "傍晚", "深夜",
    "学习", "完成", "解决", "复习", "开始", "继续", "进行", "一个", "一些", "这个", "那个",
    "我们", "自己", "因为", "所以", "但是", "然后", "还是", "已经", "可以", "没有", "什么",
    "the", "and", "for", "with", "that", "this", "was", "were", "are", "have", "has",
    "had", "today", "tonight", "then", "from", "into", "about", "just", "also", "some",
}
CJK_WORD = re.compile(r"[\u4e00-\u9fa5]{2,4}")
LATIN_WORD = re.compile(r"[a-zA-Z]{3,}")
TIME_WORD = re.compile(r"(今天|今日|昨天|明天|晚上|上午|下午|早上|中午|傍晚|深夜)")


@dataclass(frozen=True)
class MonthlyReview:
    month: str
    summary: Dict[str, Any]
    updated_at: Optional[datetime]
    cached: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "cached": self.cached,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            **self.summary,
        }


def latest_update(records: Iterable[Record]) -> Optional[datetime]:
    stamps = [r.updated_at for r in records if r.updated_at is not None]
    return max(stamps) if stamps else None


def _valid_cache(store: RecordStore, owner: Owner, key: str, records: List[Record]) -> Optional[MonthlyReview]:
    cached = store.get_monthly_summary(owner, key)
    if cached is None or cached.updated_at is None:
        return None
    latest = latest_update(records)
    if latest is not None and cached.updated_at < latest:
        return None
    try:
        summary = normalize_monthly_summary(cached.data)
    except (AttributeError, TypeError) as e:
        logger.error(f"Failed to parse cached summary {key}: {e}")
        return None
    return MonthlyReview(month=key, summary=summary, updated_at=cached.updated_at, cached=True)


async def get_or_generate_monthly_summary(
    store: RecordStore,
    generator,
    owner: Owner,
    year: int,
    month: int,
) -> MonthlyReview:
    """
    Return the month's review, generating it only when the cache is stale.

    Raises:
        NoData: the month has no meaningful entries
        GenerationFailed: the generator failed; nothing is cached
    """
    start, end = month_range(year, month)
    key = month_key(year, month)
    records = store.list_range(owner, start, end)

    if not any(has_meaningful_content(r.content) for r in records):
        raise NoData(f"No entries for {key}, cannot generate a summary")

    review = _valid_cache(store, owner, key, records)
    if review is not None:
        logger.debug(f"Monthly summary cache hit for {owner}/{key}")
        return review

    merged = merge_contents(records)
    summary = await generator.generate_monthly_summary(merged, year, month)
    summary = normalize_monthly_summary(summary)

    cached = store.save_monthly_summary(owner, key, summary)
    logger.info(f"Generated monthly summary for {owner}/{key} from {len(records)} records")
    return MonthlyReview(month=key, summary=summary, updated_at=cached.updated_at, cached=False)


def get_cached_monthly_summary(store: RecordStore, owner: Owner, year: int, month: int) -> Optional[MonthlyReview]:
    """Cached review if still valid; never generates."""
    start, end = month_range(year, month)
    records = store.list_range(owner, start, end)
    if not records:
        return None
    return _valid_cache(store, owner, month_key(year, month), records)


def count_keywords(records: Iterable[Record], limit: int = MAX_KEYWORDS) -> List[Dict[str, Any]]:
    """Local keyword frequencies over summaries (or content when unsummarized)."""
    counts: Counter = Counter()
    for record in records:
        text = record.summary or record.content or ""
        text = TIME_WORD.sub(" ", text)
        words = CJK_WORD.findall(text) + [w.lower() for w in LATIN_WORD.findall(text)]
        counts.update(w for w in words if w.lower() not in STOP_WORDS)
    return [{"word": word, "count": count} for word, count in counts.most_common(limit)]


async def extract_month_keywords(generator, records: List[Record]) -> List[Dict[str, Any]]:
    """Keywords for the review charts.

    Asks the generator first; falls back to local counting when it fails or
    has nothing to say.
    """
    summaries = [r.summary for r in records if r.summary]
    if summaries:
        try:
            keywords = await generator.extract_keywords(summaries)
            if keywords:
                return keywords
        except GenerationFailed as e:
            logger.warning(f"Keyword extraction failed, counting locally: {e}")
    return count_keywords(records)


def year_overview(store: RecordStore, owner: Owner, year: int) -> Dict[str, Any]:
    """Days written per month and the dates with entries, for the year calendar."""
    records = store.list_range(owner, f"{year}-01-01", f"{year}-12-31")
    dates = [r.date for r in records if has_meaningful_content(r.content)]
    months = {month_key(year, m): 0 for m in range(1, 13)}
    for d in dates:
        months[d[:7]] += 1
    return {"year": year, "total_days": len(dates), "months": months, "dates": dates}
