from app.services.content import (
    has_meaningful_content,
    month_range,
    month_key,
)
from app.services.errors import (
    Unauthenticated,
    StoreUnavailable,
    GenerationFailed,
    NoData,
    InvalidImport,
)
from app.services.record_store import Record, RecordStore, SqlRecordStore
from app.services.local_store import LocalRecordStore
from app.services.reconciliation import ReconciliationEngine, PollState, MonthCache
from app.services.monthly_review import get_or_generate_monthly_summary
from app.services.data_transfer import export_data, import_data

__all__ = [
    'has_meaningful_content',
    'month_range',
    'month_key',
    'Unauthenticated',
    'StoreUnavailable',
    'GenerationFailed',
    'NoData',
    'InvalidImport',
    'Record',
    'RecordStore',
    'SqlRecordStore',
    'LocalRecordStore',
    'ReconciliationEngine',
    'PollState',
    'MonthCache',
    'get_or_generate_monthly_summary',
    'export_data',
    'import_data',
]
