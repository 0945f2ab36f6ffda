"""
Tests for console report rendering.
"""
from datetime import datetime

from qdsclean.core.constants import QueryCategory
from qdsclean.models.cleanup_models import ReportRow, QueryDetailRow
from qdsclean.services.report_output import (
    BANNER_RULE,
    format_summary_text,
    format_summary_table,
    format_details_table,
    format_table,
)
from qdsclean.services.size_estimator import compress_query_text


def summary_rows():
    return [
        ReportRow(QueryCategory.ORPHAN, 2, 3, 4, 50, 6, 7),
        ReportRow(QueryCategory.STALE, 10, 12, 1, 2, 3, 4),
    ]


class TestSummaryText:
    """Banner per category."""

    def test_banner_layout(self):
        lines = format_summary_text(summary_rows()[:1]).splitlines()

        assert lines[1] == BANNER_RULE
        assert lines[2] == "*      Orphan queries found      *"
        assert lines[3] == BANNER_RULE
        assert lines[4:10] == [
            "# of Queries : 2",
            "# of Plans : 3",
            "KBs of query texts : 4",
            "KBs of execution plans : 50",
            "KBs of runtime stats : 6",
            "KBs of wait stats : 7",
        ]

    def test_one_block_per_category(self):
        text = format_summary_text(summary_rows())
        assert text.count(BANNER_RULE) == 4
        assert "Stale queries found" in text

    def test_empty(self):
        assert format_summary_text([]) == ""


class TestTables:
    """Fixed width grids."""

    def test_summary_table(self):
        lines = format_summary_table(summary_rows()).splitlines()

        assert lines[0].split() == [
            "QueryType", "QueryCount", "PlanCount", "QueryTextKBs",
            "PlanXMLKBs", "RunStatsKBs", "WaitStatsKBs",
        ]
        assert lines[2].split() == ["Orphan", "2", "3", "4", "50", "6", "7"]
        assert lines[-1] == "(2 rows affected)"

    def test_columns_align(self):
        text = format_table(["A", "B"], [("long value", 1), ("x", 22)])
        lines = text.splitlines()
        assert lines[0].index("B") == lines[2].index("1") == lines[3].index("22")

    def test_details_table_decompresses_text(self):
        rows = [QueryDetailRow(
            category=QueryCategory.STALE,
            object_name="*** adhoc query ***",
            query_id=1,
            last_execution_time=datetime(2026, 9, 1, 8, 30),
            execution_count=1,
            query_text=compress_query_text("SELECT *\n  FROM dbo.Orders"),
        )]

        text = format_details_table(rows)

        assert "SELECT * FROM dbo.Orders" in text
        assert "2026-09-01 08:30:00" in text
        assert "(1 row affected)" in text

    def test_long_text_truncated(self):
        rows = [QueryDetailRow(QueryCategory.STALE, "x", 1, None, 0, compress_query_text("y" * 500))]
        text = format_details_table(rows)
        assert "y" * 77 + "..." in text
        assert "y" * 78 not in text
        assert "NULL" in text
