"""
Report Sinks

Persist the summary and detail reports outside the run: a caller-named SQL
Server table or a CSV file. Rows carry the run identity (execution time,
server, database) and an XML snapshot of the cleanup parameters.
"""

import csv
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List

from qdsclean.core.exceptions import DatabaseError, ReportError
from qdsclean.core.logger import get_logger
from qdsclean.database.connection import DatabaseConnection
from qdsclean.database.queries.cleanup_queries import QDSCleanupQueries
from qdsclean.models.cleanup_models import CleanupOptions, ReportRow, QueryDetailRow
from qdsclean.services.size_estimator import decompress_query_text

logger = get_logger('services.report_sinks')


SUMMARY_FIELDS = [
    "ExecutionTime", "ServerName", "DatabaseName", "QueryType",
    "QueryCount", "PlanCount", "QueryTextKBs", "PlanXMLKBs",
    "RunStatsKBs", "WaitStatsKBs", "CleanupParameters",
]

DETAIL_FIELDS = [
    "ExecutionTime", "ServerName", "DatabaseName", "QueryType",
    "ObjectName", "QueryID", "LastExecutionTime", "ExecutionCount",
    "QueryText", "CleanupParameters",
]


def build_cleanup_parameters_xml(options: CleanupOptions) -> str:
    """<Root><CleanupParameters><CleanAdhocStale>0</CleanAdhocStale>...</Root>"""
    root = ET.Element("Root")
    params = ET.SubElement(root, "CleanupParameters")
    for name, value in options.cleanup_parameters().items():
        ET.SubElement(params, name).text = str(value)
    return ET.tostring(root, encoding="unicode")


@dataclass
class ReportContext:
    """Identity columns shared by every persisted row of one run"""
    execution_time: datetime
    server_name: str
    database_name: str
    cleanup_parameters: str


class ReportSink(ABC):
    """Destination for persisted reports"""

    target: str = ""

    @abstractmethod
    def write_summary(self, context: ReportContext, rows: List[ReportRow]) -> int:
        """Persist summary rows, returns rows written"""

    @abstractmethod
    def write_details(self, context: ReportContext, rows: List[QueryDetailRow]) -> int:
        """Persist detail rows, returns rows written"""


class SqlTableReportSink(ReportSink):
    """
    Inserts report rows into an existing table.

    Only named columns are inserted, so the table may carry extra columns
    (identity keys, defaults). The table name may be one to four part.
    """

    def __init__(self, connection: DatabaseConnection, table_name: str, debug: bool = False):
        self._connection = connection
        self.target = table_name
        self.debug = debug

    def _insert(self, template: str, rows: List[dict]) -> int:
        try:
            sql = QDSCleanupQueries.get_insert_sql(template, self.target)
        except ValueError as e:
            raise ReportError(f"Invalid output table name: {self.target}", target=self.target) from e

        if self.debug:
            logger.debug(f"SQL:\n{sql}")
        try:
            for params in rows:
                self._connection.execute_non_query(sql, params)
        except DatabaseError as e:
            logger.error(f"Insert into {self.target} failed: {e}")
            raise ReportError(f"Cannot write report to {self.target}: {e.message}", target=self.target) from e
        return len(rows)

    def write_summary(self, context: ReportContext, rows: List[ReportRow]) -> int:
        params = [
            {
                "execution_time": context.execution_time,
                "server_name": context.server_name,
                "database_name": context.database_name,
                "query_type": r.category.value,
                "query_count": r.query_count,
                "plan_count": r.plan_count,
                "query_text_kb": r.query_text_kb,
                "plan_xml_kb": r.plan_xml_kb,
                "runtime_stats_kb": r.runtime_stats_kb,
                "wait_stats_kb": r.wait_stats_kb,
                "cleanup_parameters": context.cleanup_parameters,
            }
            for r in sorted(rows, key=lambda r: r.category.value)
        ]
        written = self._insert(QDSCleanupQueries.INSERT_SUMMARY, params)
        logger.info(f"{written} summary rows written to {self.target}")
        return written

    def write_details(self, context: ReportContext, rows: List[QueryDetailRow]) -> int:
        params = [
            {
                "execution_time": context.execution_time,
                "server_name": context.server_name,
                "database_name": context.database_name,
                "query_type": r.category.value,
                "object_name": r.object_name,
                "query_id": r.query_id,
                "last_execution_time": r.last_execution_time,
                "execution_count": r.execution_count,
                "query_text": r.query_text,
                "cleanup_parameters": context.cleanup_parameters,
            }
            for r in sorted(rows, key=lambda r: (r.category.value, r.query_id))
        ]
        written = self._insert(QDSCleanupQueries.INSERT_DETAIL, params)
        logger.info(f"{written} query detail rows written to {self.target}")
        return written


class CsvReportSink(ReportSink):
    """
    Writes report rows to a CSV file (UTF-8 with BOM, Excel friendly).

    QueryText is written decompressed.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.target = str(self.path)

    def _write(self, fieldnames: List[str], rows: List[dict]) -> int:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8-sig", newline="") as handle:
                writer = csv.DictWriter(handle, fieldnames=fieldnames)
                writer.writeheader()
                writer.writerows(rows)
        except OSError as e:
            logger.error(f"Cannot write {self.path}: {e}")
            raise ReportError(f"Cannot write report to {self.path}: {e}", target=self.target) from e
        logger.info(f"{len(rows)} rows written to {self.path}")
        return len(rows)

    @staticmethod
    def _identity(context: ReportContext) -> dict:
        return {
            "ExecutionTime": context.execution_time.isoformat(),
            "ServerName": context.server_name,
            "DatabaseName": context.database_name,
            "CleanupParameters": context.cleanup_parameters,
        }

    def write_summary(self, context: ReportContext, rows: List[ReportRow]) -> int:
        return self._write(SUMMARY_FIELDS, [
            {
                **self._identity(context),
                "QueryType": r.category.value,
                "QueryCount": r.query_count,
                "PlanCount": r.plan_count,
                "QueryTextKBs": r.query_text_kb,
                "PlanXMLKBs": r.plan_xml_kb,
                "RunStatsKBs": r.runtime_stats_kb,
                "WaitStatsKBs": r.wait_stats_kb,
            }
            for r in sorted(rows, key=lambda r: r.category.value)
        ])

    def write_details(self, context: ReportContext, rows: List[QueryDetailRow]) -> int:
        return self._write(DETAIL_FIELDS, [
            {
                **self._identity(context),
                "QueryType": r.category.value,
                "ObjectName": r.object_name,
                "QueryID": r.query_id,
                "LastExecutionTime": r.last_execution_time.isoformat() if r.last_execution_time else "",
                "ExecutionCount": r.execution_count,
                "QueryText": decompress_query_text(r.query_text) or "",
            }
            for r in sorted(rows, key=lambda r: (r.category.value, r.query_id))
        ])
