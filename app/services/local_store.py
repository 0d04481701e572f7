"""
Local Record Store

Keeps every record and cached monthly review in one JSON file, the local
key-value area used when the app runs without a database:

    {"daily_records": [...], "monthly_summaries": {"2024-03": {...}}}

Monthly reviews are stored as {"summary": {...}, "updated_at": "..."} so the
cache freshness rule works the same as with the SQL store.
"""

import json
import logging
import os
import tempfile
import threading
import uuid
from typing import Any, Dict, List

from app.services.errors import StoreUnavailable
from app.services.record_store import (
    CachedMonthlySummary,
    Record,
    RecordStore,
    clean_summary,
    require_owner,
)
from app.time_utils import isoformat, next_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

LOCAL_OWNER = "local_user"

STORAGE_KEY_RECORDS = "daily_records"
STORAGE_KEY_SUMMARIES = "monthly_summaries"


class LocalRecordStore(RecordStore):
    """JSON-file record store. Every write rewrites the file atomically."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    # --- file access ---

    def _load(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {STORAGE_KEY_RECORDS: [], STORAGE_KEY_SUMMARIES: {}}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise StoreUnavailable(f"Failed to read {self.path}: {e}") from e
        except ValueError as e:
            # Refuse to continue: the next write would wipe whatever is there
            logger.error(f"Local store {self.path} is not valid JSON: {e}")
            raise StoreUnavailable(f"Local store {self.path} is corrupt") from e
        if not isinstance(data, dict):
            logger.error(f"Local store {self.path} does not hold a JSON object")
            raise StoreUnavailable(f"Local store {self.path} is corrupt")
        data.setdefault(STORAGE_KEY_RECORDS, [])
        data.setdefault(STORAGE_KEY_SUMMARIES, {})
        return data

    def _save(self, data: Dict[str, Any]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".journal-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to write local store {self.path}: {e}")
            self._discard(tmp_path)
            raise StoreUnavailable(f"Save failed, storage may be full: {e}") from e
        except (TypeError, ValueError):
            self._discard(tmp_path)
            raise

    @staticmethod
    def _discard(tmp_path) -> None:
        if tmp_path and os.path.exists(tmp_path):
            try:
                os.unlink(tmp_path)
            except OSError as e:
                logger.warning(f"Could not remove temp file {tmp_path}: {e}")

    @staticmethod
    def _owned(data, owner) -> List[Dict[str, Any]]:
        return [r for r in data[STORAGE_KEY_RECORDS] if r.get("owner", LOCAL_OWNER) == owner]

    @staticmethod
    def _index(data, owner, date) -> int:
        for i, r in enumerate(data[STORAGE_KEY_RECORDS]):
            if r.get("owner", LOCAL_OWNER) == owner and r.get("date") == date:
                return i
        return -1

    @staticmethod
    def _summaries(data, owner) -> Dict[str, Any]:
        return data[STORAGE_KEY_SUMMARIES].setdefault(str(owner), {})

    # --- records ---

    def get(self, owner, date):
        owner = require_owner(owner)
        with self._lock:
            data = self._load()
            index = self._index(data, owner, date)
            if index < 0:
                return None
            return Record.from_dict(data[STORAGE_KEY_RECORDS][index], owner=owner)

    def upsert(self, owner, date, content):
        owner = require_owner(owner)
        with self._lock:
            data = self._load()
            index = self._index(data, owner, date)
            if index >= 0:
                existing = Record.from_dict(data[STORAGE_KEY_RECORDS][index], owner=owner)
                record = existing.with_changes(
                    content=content,
                    updated_at=next_timestamp(existing.updated_at),
                )
                data[STORAGE_KEY_RECORDS][index] = record.to_dict()
            else:
                now = next_timestamp()
                record = Record(
                    owner=owner, date=date, content=content, summary=None,
                    id=uuid.uuid4().hex, created_at=now, updated_at=now,
                )
                data[STORAGE_KEY_RECORDS].append(record.to_dict())
            self._save(data)
            return record

    def update_summary(self, owner, date, summary):
        owner = require_owner(owner)
        with self._lock:
            data = self._load()
            index = self._index(data, owner, date)
            if index < 0:
                return None
            existing = Record.from_dict(data[STORAGE_KEY_RECORDS][index], owner=owner)
            record = existing.with_changes(
                summary=clean_summary(summary),
                updated_at=next_timestamp(existing.updated_at),
            )
            data[STORAGE_KEY_RECORDS][index] = record.to_dict()
            self._save(data)
            return record

    def delete(self, owner, date):
        owner = require_owner(owner)
        with self._lock:
            data = self._load()
            index = self._index(data, owner, date)
            if index < 0:
                return
            del data[STORAGE_KEY_RECORDS][index]
            self._save(data)

    def list_range(self, owner, start, end):
        owner = require_owner(owner)
        with self._lock:
            data = self._load()
        records = [
            Record.from_dict(r, owner=owner)
            for r in self._owned(data, owner)
            if start <= r["date"] <= end
        ]
        return sorted(records, key=lambda r: r.date)

    def list_all(self, owner):
        owner = require_owner(owner)
        with self._lock:
            data = self._load()
        records = [Record.from_dict(r, owner=owner) for r in self._owned(data, owner)]
        return sorted(records, key=lambda r: r.date)

    def replace(self, owner, record):
        owner = require_owner(owner)
        with self._lock:
            data = self._load()
            index = self._index(data, owner, record.date)
            previous = None
            if index >= 0:
                previous = Record.from_dict(data[STORAGE_KEY_RECORDS][index], owner=owner)
            now = next_timestamp(previous.updated_at if previous else None)
            stored = record.with_changes(
                owner=owner,
                summary=clean_summary(record.summary),
                id=record.id or (previous.id if previous else None) or uuid.uuid4().hex,
                created_at=record.created_at or (previous.created_at if previous else None) or now,
                updated_at=now,
            )
            if index >= 0:
                data[STORAGE_KEY_RECORDS][index] = stored.to_dict()
            else:
                data[STORAGE_KEY_RECORDS].append(stored.to_dict())
            self._save(data)
            return stored

    # --- monthly review cache ---

    def get_monthly_summary(self, owner, month):
        owner = require_owner(owner)
        with self._lock:
            data = self._load()
        entry = self._summaries(data, owner).get(month)
        if not isinstance(entry, dict) or not isinstance(entry.get("summary"), dict):
            return None
        return CachedMonthlySummary(
            owner=owner,
            month=month,
            data=entry["summary"],
            updated_at=parse_timestamp(entry.get("updated_at")),
        )

    def save_monthly_summary(self, owner, month, data):
        owner = require_owner(owner)
        with self._lock:
            stored = self._load()
            summaries = self._summaries(stored, owner)
            previous = summaries.get(month) or {}
            updated_at = next_timestamp(parse_timestamp(previous.get("updated_at")))
            summaries[month] = {"summary": data, "updated_at": isoformat(updated_at)}
            self._save(stored)
        return CachedMonthlySummary(owner=owner, month=month, data=data, updated_at=updated_at)

    def list_monthly_summaries(self, owner):
        owner = require_owner(owner)
        with self._lock:
            data = self._load()
        return {
            month: entry["summary"]
            for month, entry in sorted(self._summaries(data, owner).items())
            if isinstance(entry, dict) and isinstance(entry.get("summary"), dict)
        }

    def clear(self, owner):
        owner = require_owner(owner)
        with self._lock:
            data = self._load()
            data[STORAGE_KEY_RECORDS] = [
                r for r in data[STORAGE_KEY_RECORDS] if r.get("owner", LOCAL_OWNER) != owner
            ]
            data[STORAGE_KEY_SUMMARIES].pop(str(owner), None)
            self._save(data)
