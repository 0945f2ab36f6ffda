"""
Query Store SQL Templates for the Cleanup Module

Catalog lookups, candidate selection per category, report aggregates and the
Query Store administrative procedures.

The target database can't be bound as a parameter in a three-part name, so
templates carry a {db} placeholder that is only ever filled with a
QUOTENAME()-style bracketed identifier. Every value is a bound parameter.
"""

import re
from typing import List

from qdsclean.core.constants import QueryCategory


_BRACKETED_PART = r"\[(?:[^\]]|\]\])+\]"
_PLAIN_PART = r"[A-Za-z_#@][A-Za-z0-9_#@$]*"
_NAME_PART = re.compile(rf"\s*({_BRACKETED_PART}|{_PLAIN_PART})\s*")


def quote_identifier(name: str) -> str:
    """QUOTENAME(name): bracket-delimit and escape closing brackets"""
    if name is None or not str(name).strip():
        raise ValueError("Identifier must not be empty")
    if len(name) > 128:
        raise ValueError(f"Identifier is longer than 128 characters: {name[:32]}...")
    return "[" + name.replace("]", "]]") + "]"


def split_multipart_name(name: str) -> List[str]:
    """
    Split a [server].[database].[schema].[table] style name into unquoted parts

    Raises:
        ValueError: If the name is not a well-formed one to four part name
    """
    parts: List[str] = []
    position = 0
    name = name or ""
    while True:
        match = _NAME_PART.match(name, position)
        if not match:
            raise ValueError(f"Invalid object name: {name!r}")
        part = match.group(1)
        if part.startswith("["):
            part = part[1:-1].replace("]]", "]")
        parts.append(part)
        position = match.end()
        if position == len(name):
            break
        if name[position] != ".":
            raise ValueError(f"Invalid object name: {name!r}")
        position += 1

    if len(parts) > 4:
        raise ValueError(f"Object name has more than four parts: {name!r}")
    return parts


def quote_multipart_name(name: str) -> str:
    """Re-quote every part of a multi-part object name"""
    return ".".join(quote_identifier(part) for part in split_multipart_name(name))


class QDSCleanupQueries:
    """
    SQL templates used by SqlServerTelemetryStore and SqlTableReportSink.

    Principles:
    - {db} is filled with quote_identifier(database_name) only
    - all values are bound parameters (:name)
    - id lists are bound as expanding IN parameters
    """

    # ==========================================================================
    # PRECONDITION / IDENTITY
    # ==========================================================================

    DATABASE_STATE = """
    SELECT CAST([state_desc] AS NVARCHAR(60)) AS state_desc
    FROM [sys].[databases]
    WHERE [name] = :database_name
    """

    SERVER_NAME = """
    SELECT CAST(@@SERVERNAME AS NVARCHAR(255)) AS server_name
    """

    TOTAL_QUERIES = """
    SELECT COUNT_BIG(1) AS total_queries
    FROM {db}.[sys].[query_store_query]
    """

    # ==========================================================================
    # CANDIDATE SELECTION
    # ==========================================================================

    # Ad-hoc queries only, below the execution threshold and idle past retention
    SELECT_ADHOC_STALE = """
    SELECT
        [qsq].[query_id],
        [qsp].[plan_id],
        CAST([qsp].[is_forced_plan] AS INT) AS is_forced
    FROM {db}.[sys].[query_store_query] AS [qsq]
    JOIN {db}.[sys].[query_store_plan] AS [qsp]
        ON [qsp].[query_id] = [qsq].[query_id]
    JOIN {db}.[sys].[query_store_runtime_stats] AS [qsrs]
        ON [qsrs].[plan_id] = [qsp].[plan_id]
    WHERE [qsq].[object_id] = 0
    GROUP BY [qsq].[query_id], [qsp].[plan_id], [qsp].[is_forced_plan]
    HAVING SUM([qsrs].[count_executions]) < :min_execution_count
        AND MAX([qsq].[last_execution_time]) < DATEADD(HOUR, -1 * :retention_hours, GETUTCDATE())
    ORDER BY [qsq].[query_id], [qsp].[plan_id]
    """

    # Same thresholds, owned and ad-hoc queries alike
    SELECT_STALE = """
    SELECT
        [qsq].[query_id],
        [qsp].[plan_id],
        CAST([qsp].[is_forced_plan] AS INT) AS is_forced
    FROM {db}.[sys].[query_store_query] AS [qsq]
    JOIN {db}.[sys].[query_store_plan] AS [qsp]
        ON [qsp].[query_id] = [qsq].[query_id]
    JOIN {db}.[sys].[query_store_runtime_stats] AS [qsrs]
        ON [qsrs].[plan_id] = [qsp].[plan_id]
    GROUP BY [qsq].[query_id], [qsp].[plan_id], [qsp].[is_forced_plan]
    HAVING SUM([qsrs].[count_executions]) < :min_execution_count
        AND MAX([qsq].[last_execution_time]) < DATEADD(HOUR, -1 * :retention_hours, GETUTCDATE())
    ORDER BY [qsq].[query_id], [qsp].[plan_id]
    """

    # Engine generated queries (UPDATE STATISTICS, index rebuilds...)
    SELECT_INTERNAL = """
    SELECT
        [qsq].[query_id],
        [qsp].[plan_id],
        CAST([qsp].[is_forced_plan] AS INT) AS is_forced
    FROM {db}.[sys].[query_store_query] AS [qsq]
    JOIN {db}.[sys].[query_store_plan] AS [qsp]
        ON [qsp].[query_id] = [qsq].[query_id]
    WHERE [qsq].[is_internal_query] = 1
    ORDER BY [qsq].[query_id], [qsp].[plan_id]
    """

    # Queries whose owning object has been dropped
    SELECT_ORPHAN = """
    SELECT
        [qsq].[query_id],
        [qsp].[plan_id],
        CAST([qsp].[is_forced_plan] AS INT) AS is_forced
    FROM {db}.[sys].[query_store_query] AS [qsq]
    JOIN {db}.[sys].[query_store_plan] AS [qsp]
        ON [qsp].[query_id] = [qsq].[query_id]
    WHERE [qsq].[object_id] <> 0
        AND NOT EXISTS (
            SELECT 1 FROM {db}.[sys].[objects] AS [o]
            WHERE [o].[object_id] = [qsq].[object_id]
        )
    ORDER BY [qsq].[query_id], [qsp].[plan_id]
    """

    # ==========================================================================
    # REPORT AGGREGATES
    # ==========================================================================

    FETCH_QUERIES = """
    SELECT
        [qsq].[query_id],
        [qsq].[object_id],
        [qsq].[last_execution_time],
        CAST([qsqt].[query_sql_text] AS NVARCHAR(MAX)) AS query_sql_text
    FROM {db}.[sys].[query_store_query] AS [qsq]
    LEFT JOIN {db}.[sys].[query_store_query_text] AS [qsqt]
        ON [qsqt].[query_text_id] = [qsq].[query_text_id]
    WHERE [qsq].[query_id] IN :query_ids
    """

    FETCH_PLAN_SIZES = """
    SELECT
        [qsp].[plan_id],
        ISNULL(DATALENGTH([qsp].[query_plan]), 0) AS plan_bytes
    FROM {db}.[sys].[query_store_plan] AS [qsp]
    WHERE [qsp].[plan_id] IN :plan_ids
    """

    COUNT_RUNTIME_STATS = """
    SELECT
        [qsrs].[plan_id],
        COUNT_BIG([qsrs].[runtime_stats_id]) AS row_count,
        ISNULL(SUM([qsrs].[count_executions]), 0) AS count_executions
    FROM {db}.[sys].[query_store_runtime_stats] AS [qsrs]
    WHERE [qsrs].[plan_id] IN :plan_ids
    GROUP BY [qsrs].[plan_id]
    """

    COUNT_WAIT_STATS = """
    SELECT
        [qsws].[plan_id],
        COUNT_BIG([qsws].[wait_stats_id]) AS row_count
    FROM {db}.[sys].[query_store_wait_stats] AS [qsws]
    WHERE [qsws].[plan_id] IN :plan_ids
    GROUP BY [qsws].[plan_id]
    """

    RESOLVE_OBJECTS = """
    SELECT
        [o].[object_id],
        CAST([s].[name] AS NVARCHAR(128)) AS schema_name,
        CAST([o].[name] AS NVARCHAR(128)) AS object_name
    FROM {db}.[sys].[objects] AS [o]
    JOIN {db}.[sys].[schemas] AS [s]
        ON [s].[schema_id] = [o].[schema_id]
    WHERE [o].[object_id] IN :object_ids
    """

    # ==========================================================================
    # ADMINISTRATIVE PROCEDURES
    # ==========================================================================

    UNFORCE_PLAN = """
    EXECUTE {db}.[sys].[sp_query_store_unforce_plan] @query_id = :query_id, @plan_id = :plan_id
    """

    REMOVE_QUERY = """
    EXECUTE {db}.[sys].[sp_query_store_remove_query] @query_id = :query_id
    """

    # ==========================================================================
    # REPORT PERSISTENCE (named columns only)
    # ==========================================================================

    INSERT_SUMMARY = """
    INSERT INTO {table} (
        [ExecutionTime], [ServerName], [DatabaseName], [QueryType],
        [QueryCount], [PlanCount], [QueryTextKBs], [PlanXMLKBs],
        [RunStatsKBs], [WaitStatsKBs], [CleanupParameters]
    )
    VALUES (
        :execution_time, :server_name, :database_name, :query_type,
        :query_count, :plan_count, :query_text_kb, :plan_xml_kb,
        :runtime_stats_kb, :wait_stats_kb, CAST(:cleanup_parameters AS XML)
    )
    """

    INSERT_DETAIL = """
    INSERT INTO {table} (
        [ExecutionTime], [ServerName], [DatabaseName], [QueryType],
        [ObjectName], [QueryID], [LastExecutionTime], [ExecutionCount],
        [QueryText], [CleanupParameters]
    )
    VALUES (
        :execution_time, :server_name, :database_name, :query_type,
        :object_name, :query_id, :last_execution_time, :execution_count,
        :query_text, CAST(:cleanup_parameters AS XML)
    )
    """

    _CATEGORY_SQL = {
        QueryCategory.ADHOC_STALE: "SELECT_ADHOC_STALE",
        QueryCategory.STALE: "SELECT_STALE",
        QueryCategory.INTERNAL: "SELECT_INTERNAL",
        QueryCategory.ORPHAN: "SELECT_ORPHAN",
    }

    @classmethod
    def render(cls, template: str, database_name: str) -> str:
        """Fill the {db} placeholder with the quoted database name"""
        return template.format(db=quote_identifier(database_name))

    @classmethod
    def get_selection_sql(cls, category: QueryCategory, database_name: str) -> str:
        """Candidate selection query for a category"""
        return cls.render(getattr(cls, cls._CATEGORY_SQL[category]), database_name)

    @classmethod
    def get_insert_sql(cls, template: str, table_name: str) -> str:
        """Insert statement against a caller-named output table"""
        return template.format(table=quote_multipart_name(table_name))
