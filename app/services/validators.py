"""
Journal Data Validators

Centralized validation for imported records and monthly reviews.
Blocking problems are collected as errors; callers decide whether to raise.
"""

from typing import Any, Dict, List

from app.services.content import is_valid_date_key


class ValidationResult:
    """Container for validation results including warnings."""
    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def add_error(self, msg: str):
        self.errors.append(msg)

    def add_warning(self, msg: str):
        self.warnings.append(msg)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0


def _is_empty(value: Any) -> bool:
    """Check if value is None or empty string."""
    if value is None:
        return True
    if isinstance(value, str) and value.strip() == "":
        return True
    return False


# ============================================================
# IMPORTED RECORD VALIDATION
# ============================================================

def validate_import_record(data: Any, position: int = 0) -> ValidationResult:
    """
    Validate one record from an import document.

    Required: `date` as YYYY-MM-DD naming a real day, `content` as text.
    A non-text `summary` is dropped with a warning rather than rejecting
    the record.

    Args:
        data: The raw record from the import document
        position: Index in the records array, for messages

    Returns:
        ValidationResult with errors and warnings
    """
    result = ValidationResult()
    label = f"Record #{position + 1}"

    if not isinstance(data, dict):
        result.add_error(f"{label} is not an object")
        return result

    date = data.get("date")
    if _is_empty(date):
        result.add_error(f"{label}: date is required")
    elif not is_valid_date_key(date):
        result.add_error(f"{label}: date '{date}' must be YYYY-MM-DD")

    if not isinstance(data.get("content"), str):
        result.add_error(f"{label}: content must be text")

    summary = data.get("summary")
    if summary is not None and not isinstance(summary, str):
        result.add_warning(f"{label}: summary is not text and was ignored")

    return result


def validate_import_summary(month: Any, data: Any) -> ValidationResult:
    """A cached monthly review must be keyed YYYY-MM and be an object."""
    result = ValidationResult()
    if not isinstance(month, str) or not is_valid_date_key(f"{month}-01"):
        result.add_error(f"Summary key '{month}' must be YYYY-MM")
    if not isinstance(data, dict):
        result.add_error(f"Summary {month} is not an object")
    return result


def summarize_errors(results: Dict[int, ValidationResult]) -> List[str]:
    """Flatten per-record errors for an import report."""
    messages: List[str] = []
    for _, result in sorted(results.items()):
        messages.extend(result.errors)
    return messages
