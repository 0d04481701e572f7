"""
Unit tests for export / import.
"""

import pytest
from app.services.data_transfer import EXPORT_VERSION, clear_data, export_data, import_data
from app.services.errors import InvalidImport
from app.services.local_store import LOCAL_OWNER

OWNER = LOCAL_OWNER


class TestExport:
    """export_data document shape."""

    def test_export_document(self, local_store):
        local_store.upsert(OWNER, "2024-03-15", "went running")
        local_store.update_summary(OWNER, "2024-03-15", "ran")
        local_store.save_monthly_summary(OWNER, "2024-03", {"overview": "ok"})

        exported = export_data(local_store, OWNER)

        assert exported["version"] == EXPORT_VERSION
        assert exported["exportDate"].endswith("Z")
        assert exported["summaries"] == {"2024-03": {"overview": "ok"}}
        record = exported["records"][0]
        assert record["date"] == "2024-03-15"
        assert record["content"] == "went running"
        assert record["summary"] == "ran"
        assert isinstance(record["updated_at"], str)

    def test_export_then_import_elsewhere(self, local_store, sql_store):
        local_store.upsert(OWNER, "2024-03-15", "went running")
        local_store.upsert(OWNER, "2024-03-16", "read a book")

        report = import_data(sql_store, 1, export_data(local_store, OWNER))

        assert report.imported == 2
        assert [r.content for r in sql_store.list_all(1)] == ["went running", "read a book"]


class TestImport:
    """import_data merge rules."""

    def test_import_over_existing_date(self, local_store):
        """Importing one record over an existing date leaves exactly one record."""
        original = local_store.upsert(OWNER, "2024-03-15", "old text")

        report = import_data(local_store, OWNER, {
            "records": [{"date": "2024-03-15", "content": "imported text", "summary": "imported summary"}],
        })

        assert report.imported == 1
        assert report.rejected == 0
        records = local_store.list_all(OWNER)
        assert len(records) == 1
        assert records[0].content == "imported text"
        assert records[0].summary == "imported summary"
        assert records[0].updated_at > original.updated_at

    def test_invalid_records_rejected_individually(self, local_store):
        report = import_data(local_store, OWNER, {
            "records": [
                {"date": "2024-03-15", "content": "good"},
                {"date": "15/03/2024", "content": "bad date"},
                {"date": "2024-03-16", "content": 42},
                "not a record",
                {"date": "2024-03-17", "content": "odd summary", "summary": ["x"]},
            ],
        })

        assert report.imported == 2
        assert report.rejected == 3
        assert len(report.errors) == 3
        assert len(report.warnings) == 1
        assert local_store.get(OWNER, "2024-03-17").summary is None
        assert "rejected 3 records" in report.message

    def test_empty_content_is_not_stored(self, local_store):
        """Rows without meaningful content never persist and clear the date."""
        local_store.upsert(OWNER, "2024-01-02", "written before the import")

        report = import_data(local_store, OWNER, {
            "records": [
                {"date": "2024-01-02", "content": ""},
                {"date": "2024-01-03", "content": "!!! ...", "summary": "left over"},
            ],
        })

        assert report.imported == 0
        assert report.removed == 2
        assert report.rejected == 0
        assert local_store.list_all(OWNER) == []
        assert "removed 2 empty records" in report.message

    def test_duplicate_dates_last_row_wins(self, local_store):
        report = import_data(local_store, OWNER, {
            "records": [
                {"date": "2024-03-15", "content": "first draft"},
                {"date": "2024-03-16", "content": "another day"},
                {"date": "2024-03-15", "content": "final text"},
            ],
        })

        assert report.imported == 2
        assert len(report.warnings) == 1
        assert "duplicate date 2024-03-15" in report.warnings[0]
        assert [(r.date, r.content) for r in local_store.list_all(OWNER)] == [
            ("2024-03-15", "final text"),
            ("2024-03-16", "another day"),
        ]

    def test_summaries_imported_and_normalized(self, local_store):
        report = import_data(local_store, OWNER, {
            "records": [],
            "summaries": {
                "2024-03": {"overview": "imported", "keywords": [{"name": "SQL"}]},
                "March": {"overview": "bad key"},
            },
        })

        assert report.summaries == 1
        cached = local_store.get_monthly_summary(OWNER, "2024-03")
        assert cached.data["overview"] == "imported"
        assert cached.data["keywords"] == [{"word": "SQL", "count": 1}]

    @pytest.mark.parametrize("payload", [
        [],
        "records",
        {"records": {"date": "2024-03-15"}},
        {"records": [], "summaries": []},
    ])
    def test_unusable_payload(self, local_store, payload):
        with pytest.raises(InvalidImport):
            import_data(local_store, OWNER, payload)

    def test_empty_document(self, local_store):
        report = import_data(local_store, OWNER, {})
        assert report.imported == 0
        assert report.summaries == 0


class TestClear:
    """clear_data."""

    def test_clear_removes_everything(self, local_store):
        local_store.upsert(OWNER, "2024-03-15", "x")
        local_store.save_monthly_summary(OWNER, "2024-03", {"overview": "ok"})

        clear_data(local_store, OWNER)

        assert export_data(local_store, OWNER)["records"] == []
        assert export_data(local_store, OWNER)["summaries"] == {}
