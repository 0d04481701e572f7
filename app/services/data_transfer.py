"""
Export / Import

Moves a user's journal in and out as one JSON document:

    {"records": [...], "summaries": {"YYYY-MM": {...}}, "exportDate": "...", "version": "1.0.0"}

Import merges by date with imported records winning. Invalid records are
rejected individually; the rest still go in. When a date appears more than
once the last row wins. A row with no meaningful content is treated like
saving an empty entry: whatever was stored for that date is removed.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

from app.services.content import has_meaningful_content
from app.services.summary_format import normalize_monthly_summary
from app.services.errors import InvalidImport
from app.services.record_store import Owner, Record, RecordStore
from app.services.validators import (
    ValidationResult,
    summarize_errors,
    validate_import_record,
    validate_import_summary,
)
from app.time_utils import isoformat, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0.0"


@dataclass
class ImportReport:
    imported: int = 0
    rejected: int = 0
    removed: int = 0
    summaries: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        text = f"Imported {self.imported} records and {self.summaries} monthly summaries"
        if self.rejected:
            text += f", rejected {self.rejected} records"
        if self.removed:
            text += f", removed {self.removed} empty records"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": self.imported,
            "rejected": self.rejected,
            "removed": self.removed,
            "summaries": self.summaries,
            "message": self.message,
            "errors": self.errors,
            "warnings": self.warnings,
        }


def export_data(store: RecordStore, owner: Owner) -> Dict[str, Any]:
    """Everything the owner has, in the import/export document shape."""
    records = [r.to_dict() for r in store.list_all(owner)]
    return {
        "records": records,
        "summaries": store.list_monthly_summaries(owner),
        "exportDate": isoformat(utc_now()) + "Z",
        "version": EXPORT_VERSION,
    }


def import_data(store: RecordStore, owner: Owner, payload: Any) -> ImportReport:
    """
    Merge an export document into the owner's store.

    Raises:
        InvalidImport: payload is not an object, or records/summaries have
            the wrong container type
    """
    if not isinstance(payload, dict):
        raise InvalidImport("Import file must contain a JSON object")

    raw_records = payload.get("records")
    raw_summaries = payload.get("summaries")
    if raw_records is None:
        raw_records = []
    if raw_summaries is None:
        raw_summaries = {}
    if not isinstance(raw_records, list):
        raise InvalidImport("'records' must be a list")
    if not isinstance(raw_summaries, dict):
        raise InvalidImport("'summaries' must be an object")

    report = ImportReport()
    failures: Dict[int, ValidationResult] = {}

    rows: Dict[str, Dict[str, Any]] = {}
    for position, raw in enumerate(raw_records):
        result = validate_import_record(raw, position)
        report.warnings.extend(result.warnings)
        if not result.is_valid:
            failures[position] = result
            report.rejected += 1
            continue
        if raw["date"] in rows:
            report.warnings.append(f"Record #{position + 1}: duplicate date {raw['date']}, keeping this one")
        rows[raw["date"]] = raw

    for date, raw in rows.items():
        if not has_meaningful_content(raw["content"]):
            store.delete(owner, date)
            report.removed += 1
            continue

        summary = raw.get("summary")
        record = Record(
            owner=owner,
            date=date,
            content=raw["content"],
            summary=summary if isinstance(summary, str) else None,
            id=raw.get("id"),
            created_at=_safe_timestamp(raw.get("created_at")),
        )
        store.replace(owner, record)
        report.imported += 1

    for month, data in raw_summaries.items():
        result = validate_import_summary(month, data)
        if not result.is_valid:
            report.errors.extend(result.errors)
            continue
        store.save_monthly_summary(owner, month, normalize_monthly_summary(data))
        report.summaries += 1

    report.errors = summarize_errors(failures) + report.errors
    logger.info(f"Import for {owner}: {report.message}")
    return report


def _safe_timestamp(value):
    try:
        return parse_timestamp(value)
    except (TypeError, ValueError):
        return None


def clear_data(store: RecordStore, owner: Owner) -> None:
    store.clear(owner)
    logger.info(f"Cleared all journal data for {owner}")
