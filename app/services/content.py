"""
Entry content and calendar helpers.

Shared by the reconciliation engine, the monthly review and the import
validator so every layer agrees on what "meaningful" and "this month" mean.
"""

import calendar
import re
from datetime import date, datetime
from typing import Iterable, List, Tuple

# At least one CJK ideograph, Latin letter or digit
MEANINGFUL_PATTERN = re.compile(r"[\u4e00-\u9fa5a-zA-Z0-9]")
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def has_meaningful_content(content) -> bool:
    """True when trimmed content is non-empty and has an alphanumeric/CJK char."""
    if not isinstance(content, str):
        return False
    trimmed = content.strip()
    if not trimmed:
        return False
    return MEANINGFUL_PATTERN.search(trimmed) is not None


def is_valid_date_key(value) -> bool:
    """Check a YYYY-MM-DD string names a real calendar day."""
    if not isinstance(value, str) or not DATE_PATTERN.match(value):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def parse_date_key(value: str) -> date:
    """Parse a YYYY-MM-DD key, raising ValueError with a readable message."""
    if not is_valid_date_key(value):
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")
    return datetime.strptime(value, "%Y-%m-%d").date()


def month_key(year: int, month: int) -> str:
    """Month identifier, e.g. 2024-03."""
    return f"{year}-{month:02d}"


def month_range(year: int, month: int) -> Tuple[str, str]:
    """First and last calendar day of a month as YYYY-MM-DD strings."""
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month {month}")
    last_day = calendar.monthrange(year, month)[1]
    return f"{year}-{month:02d}-01", f"{year}-{month:02d}-{last_day:02d}"


def month_of(date_key: str) -> Tuple[int, int]:
    """(year, month) for a YYYY-MM-DD key."""
    return int(date_key[:4]), int(date_key[5:7])


def is_displayable(record) -> bool:
    """Calendar rule: show a record only if it has meaningful content or a summary."""
    return has_meaningful_content(record.content) or bool(record.summary)


def merge_contents(records: Iterable) -> str:
    """Merge meaningful entries, ordered by date, into one review document."""
    blocks: List[str] = []
    for record in sorted(records, key=lambda r: r.date):
        if not has_meaningful_content(record.content):
            continue
        day = parse_date_key(record.date)
        blocks.append(f"[{day.month}/{day.day}]\n{record.content.strip()}")
    return "\n\n".join(blocks)
