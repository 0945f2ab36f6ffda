"""
Tests for report persistence.
"""
import csv
import pytest
import xml.etree.ElementTree as ET
from datetime import datetime, timezone
from unittest.mock import MagicMock

from qdsclean.core.constants import QueryCategory
from qdsclean.core.exceptions import QueryExecutionError, ReportError
from qdsclean.database.connection import DatabaseConnection
from qdsclean.models.cleanup_models import CleanupOptions, ReportRow, QueryDetailRow
from qdsclean.services.report_sinks import (
    ReportContext,
    SqlTableReportSink,
    CsvReportSink,
    build_cleanup_parameters_xml,
)
from qdsclean.services.size_estimator import compress_query_text


RUN_TIME = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def context():
    return ReportContext(
        execution_time=RUN_TIME,
        server_name="SQL01",
        database_name="Db01",
        cleanup_parameters=build_cleanup_parameters_xml(CleanupOptions(database_name="Db01")),
    )


@pytest.fixture
def connection():
    return MagicMock(spec=DatabaseConnection)


def summary_rows():
    return [
        ReportRow(QueryCategory.STALE, 1, 1, 0, 0, 0, 0),
        ReportRow(QueryCategory.INTERNAL, 2, 2, 1, 1, 1, 1),
    ]


def detail_rows():
    return [
        QueryDetailRow(QueryCategory.STALE, "*** adhoc query ***", 9, None, 1, compress_query_text("SELECT 9")),
        QueryDetailRow(QueryCategory.STALE, "*** adhoc query ***", 4, None, 1, compress_query_text("SELECT 4")),
    ]


class TestCleanupParametersXml:
    """Configuration snapshot stored with each row."""

    def test_structure(self):
        options = CleanupOptions(database_name="Db01", clean_adhoc_stale=True, retention_hours=24)
        root = ET.fromstring(build_cleanup_parameters_xml(options))

        assert root.tag == "Root"
        params = root.find("CleanupParameters")
        assert [child.tag for child in params] == [
            "CleanAdhocStale", "CleanStale", "Retention",
            "MinExecutionCount", "CleanOrphan", "CleanInternal",
        ]
        assert params.findtext("CleanAdhocStale") == "1"
        assert params.findtext("Retention") == "24"


class TestSqlTableSink:
    """Inserts into a caller named table."""

    def test_summary_rows_in_category_order(self, connection, context):
        written = SqlTableReportSink(connection, "dbo.QDSCacheCleanupIndex").write_summary(context, summary_rows())

        assert written == 2
        calls = connection.execute_non_query.call_args_list
        sql = calls[0].args[0]
        assert "INSERT INTO [dbo].[QDSCacheCleanupIndex]" in sql
        assert [c.args[1]["query_type"] for c in calls] == ["Internal", "Stale"]
        assert calls[0].args[1]["server_name"] == "SQL01"
        assert calls[0].args[1]["execution_time"] == RUN_TIME

    def test_detail_rows_ordered_by_query_id(self, connection, context):
        SqlTableReportSink(connection, "dbo.QDSCacheCleanupDetails").write_details(context, detail_rows())

        params = [c.args[1] for c in connection.execute_non_query.call_args_list]
        assert [p["query_id"] for p in params] == [4, 9]
        assert isinstance(params[0]["query_text"], bytes)

    def test_bad_table_name(self, connection, context):
        with pytest.raises(ReportError):
            SqlTableReportSink(connection, "dbo.x; DROP TABLE y").write_summary(context, summary_rows())
        connection.execute_non_query.assert_not_called()

    def test_insert_failure(self, connection, context):
        connection.execute_non_query.side_effect = QueryExecutionError("Invalid column name")
        with pytest.raises(ReportError) as exc_info:
            SqlTableReportSink(connection, "dbo.T").write_summary(context, summary_rows())
        assert exc_info.value.details["target"] == "dbo.T"


class TestCsvSink:
    """CSV files with the same columns."""

    def test_summary(self, tmp_path, context):
        path = tmp_path / "out" / "summary.csv"

        CsvReportSink(path).write_summary(context, summary_rows())

        with open(path, encoding="utf-8-sig", newline="") as f:
            rows = list(csv.DictReader(f))
        assert [r["QueryType"] for r in rows] == ["Internal", "Stale"]
        assert rows[0]["DatabaseName"] == "Db01"
        assert rows[0]["CleanupParameters"].startswith("<Root>")

    def test_details_text_decompressed(self, tmp_path, context):
        path = tmp_path / "details.csv"

        CsvReportSink(path).write_details(context, detail_rows())

        with open(path, encoding="utf-8-sig", newline="") as f:
            rows = list(csv.DictReader(f))
        assert [r["QueryText"] for r in rows] == ["SELECT 4", "SELECT 9"]
        assert rows[0]["LastExecutionTime"] == ""
