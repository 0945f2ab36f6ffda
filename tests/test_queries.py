"""
Tests for identifier quoting and SQL template rendering.
"""
import pytest

from qdsclean.core.constants import QueryCategory
from qdsclean.database.queries.cleanup_queries import (
    QDSCleanupQueries,
    quote_identifier,
    split_multipart_name,
    quote_multipart_name,
)


class TestQuoteIdentifier:
    """QUOTENAME semantics."""

    def test_plain(self):
        assert quote_identifier("Db01") == "[Db01]"

    def test_closing_bracket_escaped(self):
        assert quote_identifier("Db]; DROP DATABASE x; --") == "[Db]]; DROP DATABASE x; --]"

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            quote_identifier("  ")

    def test_too_long_rejected(self):
        with pytest.raises(ValueError):
            quote_identifier("x" * 129)


class TestMultipartNames:
    """Output table names."""

    @pytest.mark.parametrize("name,expected", [
        ("QDSCacheCleanupIndex", "[QDSCacheCleanupIndex]"),
        ("dbo.QDSCacheCleanupIndex", "[dbo].[QDSCacheCleanupIndex]"),
        ("[DBA].[dbo].[QDS Cleanup]", "[DBA].[dbo].[QDS Cleanup]"),
        ("[Srv1].DBA.dbo.[Odd]]Name]", "[Srv1].[DBA].[dbo].[Odd]]Name]"),
    ])
    def test_quoting(self, name, expected):
        assert quote_multipart_name(name) == expected

    def test_split_unquotes(self):
        assert split_multipart_name("[a b].[c]]d]") == ["a b", "c]d"]

    @pytest.mark.parametrize("name", [
        "dbo.Table; DROP TABLE x",
        "a.b.c.d.e",
        "dbo.",
        "",
    ])
    def test_invalid(self, name):
        with pytest.raises(ValueError):
            split_multipart_name(name)


class TestTemplates:
    """Rendering of the Query Store templates."""

    def test_database_is_quoted(self):
        sql = QDSCleanupQueries.render(QDSCleanupQueries.TOTAL_QUERIES, "My]Db")
        assert "[My]]Db].[sys].[query_store_query]" in sql

    @pytest.mark.parametrize("category", list(QueryCategory))
    def test_selection_sql_per_category(self, category):
        sql = QDSCleanupQueries.get_selection_sql(category, "Db01")
        assert "[Db01].[sys].[query_store_plan]" in sql
        assert "{db}" not in sql

    def test_threshold_parameters_only_in_stale_queries(self):
        assert ":retention_hours" in QDSCleanupQueries.SELECT_STALE
        assert ":min_execution_count" in QDSCleanupQueries.SELECT_ADHOC_STALE
        assert ":retention_hours" not in QDSCleanupQueries.SELECT_INTERNAL

    def test_insert_names_columns(self):
        sql = QDSCleanupQueries.get_insert_sql(QDSCleanupQueries.INSERT_SUMMARY, "dbo.Summary")
        assert "INSERT INTO [dbo].[Summary] (" in sql
        assert "[CleanupParameters]" in sql
