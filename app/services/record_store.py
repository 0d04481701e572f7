"""
Record Store

Durable mapping from (owner, date) to a journal Record, plus the monthly
review cache. Two interchangeable backends implement `RecordStore`:

- SqlRecordStore: per-user rows in Postgres/SQLite through SQLAlchemy
- LocalRecordStore (app.services.local_store): one JSON file on disk

Every operation is synchronous and returns detached `Record` values, so the
engine never holds ORM objects across an await.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict, replace as dc_replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from app.models import DailyRecord, MonthlySummary
from app.services.errors import StoreUnavailable, Unauthenticated
from app.time_utils import isoformat, next_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

Owner = Union[int, str]


@dataclass(frozen=True)
class Record:
    """A day's journal entry plus its derived summary."""
    owner: Owner
    date: str
    content: str
    summary: Optional[str] = None
    id: Optional[Any] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def with_changes(self, **changes) -> "Record":
        return dc_replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = isoformat(self.created_at)
        data["updated_at"] = isoformat(self.updated_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any], owner: Optional[Owner] = None) -> "Record":
        return cls(
            owner=owner if owner is not None else data.get("owner"),
            date=data["date"],
            content=data["content"],
            summary=data.get("summary") or None,
            id=data.get("id"),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


@dataclass(frozen=True)
class CachedMonthlySummary:
    """A stored monthly review document and when it was written."""
    owner: Owner
    month: str
    data: Dict[str, Any] = field(default_factory=dict)
    updated_at: Optional[datetime] = None


def clean_summary(summary: Optional[str]) -> Optional[str]:
    """Empty or whitespace-only summaries are stored as None."""
    if summary is None:
        return None
    summary = summary.strip()
    return summary or None


def require_owner(owner: Optional[Owner]) -> Owner:
    if owner is None or owner == "":
        raise Unauthenticated()
    return owner


class RecordStore(ABC):
    """Operation contract shared by every persistence backend."""

    @abstractmethod
    def get(self, owner: Owner, date: str) -> Optional[Record]:
        """Point lookup; None when no record exists."""

    @abstractmethod
    def upsert(self, owner: Owner, date: str, content: str) -> Record:
        """Create or replace content. Leaves summary untouched, refreshes updated_at."""

    @abstractmethod
    def update_summary(self, owner: Owner, date: str, summary: Optional[str]) -> Optional[Record]:
        """Set or clear the summary; None when the record no longer exists."""

    @abstractmethod
    def delete(self, owner: Owner, date: str) -> None:
        """Remove the record for a date. Deleting a missing record is a no-op."""

    @abstractmethod
    def list_range(self, owner: Owner, start: str, end: str) -> List[Record]:
        """Records with start <= date <= end, ascending by date."""

    @abstractmethod
    def list_all(self, owner: Owner) -> List[Record]:
        """Every record for an owner, ascending by date."""

    @abstractmethod
    def replace(self, owner: Owner, record: Record) -> Record:
        """Write a whole record (content and summary) for its date, as on import."""

    @abstractmethod
    def get_monthly_summary(self, owner: Owner, month: str) -> Optional[CachedMonthlySummary]:
        """Cached monthly review for YYYY-MM, if any."""

    @abstractmethod
    def save_monthly_summary(self, owner: Owner, month: str, data: Dict[str, Any]) -> CachedMonthlySummary:
        """Store a monthly review with a fresh updated_at."""

    @abstractmethod
    def list_monthly_summaries(self, owner: Owner) -> Dict[str, Dict[str, Any]]:
        """All cached monthly reviews keyed by YYYY-MM."""

    @abstractmethod
    def clear(self, owner: Owner) -> None:
        """Remove every record and cached review for an owner."""


class SqlRecordStore(RecordStore):
    """Record store over the daily_records/monthly_summaries tables.

    Opens one short-lived session per operation. Ownership is enforced by
    filtering every query on user_id.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _session(self) -> Session:
        try:
            return self.session_factory()
        except (OperationalError, DBAPIError) as e:
            raise StoreUnavailable(f"Database unavailable: {e}") from e

    def _run(self, operation, owner: Owner, *args):
        owner = require_owner(owner)
        db = self._session()
        try:
            result = operation(db, owner, *args)
            db.commit()
            return result
        except (OperationalError, DBAPIError) as e:
            db.rollback()
            logger.error(f"Record store operation {operation.__name__} failed: {e}")
            raise StoreUnavailable(f"Database unavailable: {e}") from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    @staticmethod
    def _to_record(row: DailyRecord) -> Record:
        return Record(
            owner=row.user_id,
            date=row.date,
            content=row.content,
            summary=row.summary,
            id=row.id,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _find(db: Session, owner: Owner, date: str) -> Optional[DailyRecord]:
        return (
            db.query(DailyRecord)
            .filter(DailyRecord.user_id == owner, DailyRecord.date == date)
            .first()
        )

    # --- records ---

    def get(self, owner, date):
        def _get(db, owner, date):
            row = self._find(db, owner, date)
            return self._to_record(row) if row else None
        return self._run(_get, owner, date)

    def upsert(self, owner, date, content):
        def _upsert(db, owner, date, content):
            row = self._find(db, owner, date)
            if row:
                row.content = content
                row.updated_at = next_timestamp(row.updated_at)
            else:
                now = next_timestamp()
                row = DailyRecord(
                    user_id=owner, date=date, content=content,
                    created_at=now, updated_at=now,
                )
                db.add(row)
            db.flush()
            return self._to_record(row)
        return self._run(_upsert, owner, date, content)

    def update_summary(self, owner, date, summary):
        def _update_summary(db, owner, date, summary):
            row = self._find(db, owner, date)
            if not row:
                return None
            row.summary = clean_summary(summary)
            row.updated_at = next_timestamp(row.updated_at)
            db.flush()
            return self._to_record(row)
        return self._run(_update_summary, owner, date, summary)

    def delete(self, owner, date):
        def _delete(db, owner, date):
            (
                db.query(DailyRecord)
                .filter(DailyRecord.user_id == owner, DailyRecord.date == date)
                .delete(synchronize_session=False)
            )
        self._run(_delete, owner, date)

    def list_range(self, owner, start, end):
        def _list_range(db, owner, start, end):
            rows = (
                db.query(DailyRecord)
                .filter(
                    DailyRecord.user_id == owner,
                    DailyRecord.date >= start,
                    DailyRecord.date <= end,
                )
                .order_by(DailyRecord.date)
                .all()
            )
            return [self._to_record(r) for r in rows]
        return self._run(_list_range, owner, start, end)

    def list_all(self, owner):
        def _list_all(db, owner):
            rows = (
                db.query(DailyRecord)
                .filter(DailyRecord.user_id == owner)
                .order_by(DailyRecord.date)
                .all()
            )
            return [self._to_record(r) for r in rows]
        return self._run(_list_all, owner)

    def replace(self, owner, record):
        def _replace(db, owner, record):
            row = self._find(db, owner, record.date)
            if row:
                row.content = record.content
                row.summary = clean_summary(record.summary)
                row.updated_at = next_timestamp(row.updated_at)
            else:
                now = next_timestamp()
                row = DailyRecord(
                    user_id=owner,
                    date=record.date,
                    content=record.content,
                    summary=clean_summary(record.summary),
                    created_at=record.created_at or now,
                    updated_at=now,
                )
                db.add(row)
            db.flush()
            return self._to_record(row)
        return self._run(_replace, owner, record)

    # --- monthly review cache ---

    def get_monthly_summary(self, owner, month):
        def _get_monthly(db, owner, month):
            row = (
                db.query(MonthlySummary)
                .filter(MonthlySummary.user_id == owner, MonthlySummary.month == month)
                .first()
            )
            if not row:
                return None
            try:
                data = json.loads(row.summary)
            except (TypeError, ValueError):
                logger.warning(f"Discarding unreadable monthly summary {owner}/{month}")
                return None
            return CachedMonthlySummary(owner=owner, month=month, data=data, updated_at=row.updated_at)
        return self._run(_get_monthly, owner, month)

    def save_monthly_summary(self, owner, month, data):
        def _save_monthly(db, owner, month, data):
            row = (
                db.query(MonthlySummary)
                .filter(MonthlySummary.user_id == owner, MonthlySummary.month == month)
                .first()
            )
            payload = json.dumps(data, ensure_ascii=False)
            if row:
                row.summary = payload
                row.updated_at = next_timestamp(row.updated_at)
            else:
                now = next_timestamp()
                row = MonthlySummary(
                    user_id=owner, month=month, summary=payload,
                    created_at=now, updated_at=now,
                )
                db.add(row)
            db.flush()
            return CachedMonthlySummary(owner=owner, month=month, data=data, updated_at=row.updated_at)
        return self._run(_save_monthly, owner, month, data)

    def list_monthly_summaries(self, owner):
        def _list_monthly(db, owner):
            rows = (
                db.query(MonthlySummary)
                .filter(MonthlySummary.user_id == owner)
                .order_by(MonthlySummary.month)
                .all()
            )
            summaries = {}
            for row in rows:
                try:
                    summaries[row.month] = json.loads(row.summary)
                except (TypeError, ValueError):
                    logger.warning(f"Skipping unreadable monthly summary {owner}/{row.month}")
            return summaries
        return self._run(_list_monthly, owner)

    def clear(self, owner):
        def _clear(db, owner):
            db.query(DailyRecord).filter(DailyRecord.user_id == owner).delete(synchronize_session=False)
            db.query(MonthlySummary).filter(MonthlySummary.user_id == owner).delete(synchronize_session=False)
        self._run(_clear, owner)
