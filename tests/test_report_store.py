"""Tests for the JSON-file report store."""

import json
from pathlib import Path

import pytest

from report_store import ReportNotFoundError, ReportStore, ReportValidationError


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


class TestCreate:
    def test_create_persists_record(self, report_store: ReportStore, reports_path: Path) -> None:
        report = report_store.create_report("Active courses", "SELECT id FROM course", "Visible only")

        assert set(report) == {"id", "name", "description", "sql", "createdAt", "updatedAt"}
        assert report["name"] == "Active courses"
        assert report["description"] == "Visible only"
        assert report["createdAt"] == report["updatedAt"]

        on_disk = json.loads(reports_path.read_text(encoding="utf-8"))
        assert on_disk == [report]

    def test_fields_are_trimmed(self, report_store: ReportStore) -> None:
        report = report_store.create_report("  Name  ", "  SELECT 1  ", None)
        assert report["name"] == "Name"
        assert report["sql"] == "SELECT 1"
        assert report["description"] == ""

    @pytest.mark.parametrize("name,sql", [("", "SELECT 1"), ("Name", ""), (None, None), ("   ", "SELECT 1")])
    def test_name_and_sql_required(self, report_store: ReportStore, name, sql) -> None:
        with pytest.raises(ReportValidationError, match="Report name and SQL are required"):
            report_store.create_report(name, sql)
        assert report_store.list_reports() == []

    def test_rejects_write_sql(self, report_store: ReportStore, reports_path: Path) -> None:
        with pytest.raises(ReportValidationError, match="forbidden keyword: DROP"):
            report_store.create_report("Bad", "SELECT 1; DROP TABLE course")
        assert not reports_path.exists()

    def test_ids_are_unique(self, report_store: ReportStore) -> None:
        ids = {report_store.create_report(f"r{i}", "SELECT 1")["id"] for i in range(25)}
        assert len(ids) == 25

    def test_second_store_sees_records(self, report_store: ReportStore, reports_path: Path) -> None:
        created = report_store.create_report("Shared", "SELECT 1")
        assert ReportStore(reports_path).get_report(created["id"]) == created

    def test_no_temp_files_left(self, report_store: ReportStore, reports_path: Path) -> None:
        report_store.create_report("One", "SELECT 1")
        report_store.create_report("Two", "SELECT 2")
        assert [p.name for p in reports_path.parent.iterdir()] == [reports_path.name]


class TestRead:
    def test_missing_file_is_empty(self, report_store: ReportStore) -> None:
        assert report_store.list_reports() == []

    def test_corrupt_file_is_empty(self, report_store: ReportStore, reports_path: Path) -> None:
        reports_path.parent.mkdir(parents=True)
        reports_path.write_text("{not json", encoding="utf-8")
        assert report_store.list_reports() == []

    def test_non_list_file_is_empty(self, report_store: ReportStore, reports_path: Path) -> None:
        reports_path.parent.mkdir(parents=True)
        reports_path.write_text('{"id": "x"}', encoding="utf-8")
        assert report_store.list_reports() == []

    def test_get_unknown(self, report_store: ReportStore) -> None:
        with pytest.raises(ReportNotFoundError) as exc_info:
            report_store.get_report("missing")
        assert exc_info.value.report_id == "missing"
        assert isinstance(exc_info.value, LookupError)


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------


class TestUpdate:
    def test_partial_update(self, report_store: ReportStore) -> None:
        original = report_store.create_report("Old", "SELECT 1", "desc")
        updated = report_store.update_report(original["id"], name="New")

        assert updated["name"] == "New"
        assert updated["sql"] == "SELECT 1"
        assert updated["description"] == "desc"
        assert updated["createdAt"] == original["createdAt"]
        assert report_store.get_report(original["id"]) == updated

    def test_description_can_be_cleared(self, report_store: ReportStore) -> None:
        original = report_store.create_report("R", "SELECT 1", "desc")
        assert report_store.update_report(original["id"], description="")["description"] == ""

    def test_empty_sql_keeps_existing(self, report_store: ReportStore) -> None:
        original = report_store.create_report("R", "SELECT 1")
        assert report_store.update_report(original["id"], sql="  ")["sql"] == "SELECT 1"

    def test_new_sql_is_validated(self, report_store: ReportStore) -> None:
        original = report_store.create_report("R", "SELECT 1")
        with pytest.raises(ReportValidationError, match="Only SELECT queries are allowed"):
            report_store.update_report(original["id"], sql="SHOW TABLES")
        assert report_store.get_report(original["id"])["sql"] == "SELECT 1"

    def test_blank_name_rejected(self, report_store: ReportStore) -> None:
        original = report_store.create_report("R", "SELECT 1")
        with pytest.raises(ReportValidationError):
            report_store.update_report(original["id"], name=" ")

    def test_update_unknown(self, report_store: ReportStore) -> None:
        with pytest.raises(ReportNotFoundError):
            report_store.update_report("missing", name="x")


class TestDelete:
    def test_delete_removes_only_target(self, report_store: ReportStore) -> None:
        keep = report_store.create_report("Keep", "SELECT 1")
        drop = report_store.create_report("Drop", "SELECT 2")

        removed = report_store.delete_report(drop["id"])

        assert removed == drop
        assert report_store.list_reports() == [keep]

    def test_delete_twice(self, report_store: ReportStore) -> None:
        report = report_store.create_report("R", "SELECT 1")
        report_store.delete_report(report["id"])
        with pytest.raises(ReportNotFoundError):
            report_store.delete_report(report["id"])
