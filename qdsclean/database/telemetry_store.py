"""
Telemetry store repositories

TelemetryStore is the data-access seam of the cleanup: every read the
selector and reporter need, plus the two Query Store administrative calls.
One implementation per binding:

- SqlServerTelemetryStore: live Query Store through DatabaseConnection
- InMemoryTelemetryStore (memory_store.py): records in memory / JSON snapshot
"""

from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Iterable, Iterator, Sequence, TypeVar

from qdsclean.core.constants import QueryCategory
from qdsclean.core.config import get_settings
from qdsclean.core.logger import get_logger
from qdsclean.database.connection import DatabaseConnection
from qdsclean.database.queries.cleanup_queries import QDSCleanupQueries
from qdsclean.models.cleanup_models import DeletionCandidate
from qdsclean.models.telemetry_models import (
    CatalogObject,
    QuerySummary,
    RuntimeStatsSummary,
)

logger = get_logger('database.telemetry_store')

T = TypeVar("T")


def batched(values: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive chunks of at most `size` values"""
    values = list(values)
    for start in range(0, len(values), size):
        yield values[start:start + size]


class TelemetryStore(ABC):
    """
    Query Store of one database, as seen by the cleanup.

    Read methods never mutate. unforce_plan / remove_query are the only
    mutating calls and are issued by the deletion engine alone.
    """

    def __init__(self, database_name: str):
        self.database_name = database_name

    # -- catalog --------------------------------------------------------------

    @abstractmethod
    def get_database_state(self) -> Optional[str]:
        """state_desc of the target database, None if it does not exist"""

    @abstractmethod
    def get_server_name(self) -> str:
        """Server identity recorded with persisted reports"""

    @abstractmethod
    def count_queries(self) -> int:
        """Total number of queries in the store"""

    # -- selection ------------------------------------------------------------

    @abstractmethod
    def select_candidates(
        self,
        category: QueryCategory,
        retention_hours: int,
        min_execution_count: int,
    ) -> List[DeletionCandidate]:
        """One candidate per distinct (query, plan) pair matching the category"""

    # -- report reads ---------------------------------------------------------

    @abstractmethod
    def fetch_queries(self, query_ids: Iterable[int]) -> Dict[int, QuerySummary]:
        """Owner, last execution time and text per query"""

    @abstractmethod
    def fetch_plan_sizes(self, plan_ids: Iterable[int]) -> Dict[int, int]:
        """Plan payload size in bytes per plan"""

    @abstractmethod
    def fetch_runtime_stats(self, plan_ids: Iterable[int]) -> Dict[int, RuntimeStatsSummary]:
        """Runtime stats row count and execution sum per plan"""

    @abstractmethod
    def count_wait_stats(self, plan_ids: Iterable[int]) -> Dict[int, int]:
        """Wait stats row count per plan"""

    @abstractmethod
    def resolve_objects(self, object_ids: Iterable[int]) -> Dict[int, CatalogObject]:
        """Catalog entries for the object ids that still exist"""

    # -- administrative calls -------------------------------------------------

    @abstractmethod
    def unforce_plan(self, query_id: int, plan_id: int) -> None:
        """sp_query_store_unforce_plan"""

    @abstractmethod
    def remove_query(self, query_id: int) -> None:
        """sp_query_store_remove_query (cascades plans and stats)"""


class SqlServerTelemetryStore(TelemetryStore):
    """
    Query Store of a SQL Server database, read cross-database through an
    existing connection (the connection database need not be the target).
    """

    def __init__(
        self,
        connection: DatabaseConnection,
        database_name: str,
        debug: bool = False,
        batch_size: Optional[int] = None,
    ):
        super().__init__(database_name)
        self._connection = connection
        self._queries = QDSCleanupQueries
        self.debug = debug
        self._batch_size = batch_size or get_settings().cleanup.id_batch_size

    def _sql(self, template: str) -> str:
        return self._queries.render(template, self.database_name)

    def _log_sql(self, sql: str, params: Optional[dict] = None) -> None:
        if self.debug:
            logger.debug(f"{sql.strip()} -- params: {params or {}}")

    def _query(self, sql: str, params: Optional[dict] = None) -> List[dict]:
        self._log_sql(sql, params)
        return self._connection.execute_query(sql, params)

    def _query_batched(self, template: str, name: str, ids: Iterable[int]) -> List[dict]:
        """Run an IN (:ids) query over id batches and concatenate the rows"""
        unique_ids = sorted({int(i) for i in ids})
        rows: List[dict] = []
        if not unique_ids:
            return rows
        sql = self._sql(template)
        for chunk in batched(unique_ids, self._batch_size):
            rows.extend(self._query(sql, {name: chunk}))
        return rows

    def get_database_state(self) -> Optional[str]:
        rows = self._query(self._queries.DATABASE_STATE, {"database_name": self.database_name})
        if not rows:
            return None
        return str(rows[0]["state_desc"])

    def get_server_name(self) -> str:
        info = self._connection.info
        if info and info.server_name:
            return info.server_name
        rows = self._query(self._queries.SERVER_NAME)
        return str(rows[0]["server_name"]) if rows else self._connection.profile.server

    def count_queries(self) -> int:
        rows = self._query(self._sql(self._queries.TOTAL_QUERIES))
        return int(rows[0]["total_queries"]) if rows else 0

    def select_candidates(
        self,
        category: QueryCategory,
        retention_hours: int,
        min_execution_count: int,
    ) -> List[DeletionCandidate]:
        sql = self._queries.get_selection_sql(category, self.database_name)
        params = {}
        if category in (QueryCategory.ADHOC_STALE, QueryCategory.STALE):
            params = {
                "retention_hours": int(retention_hours),
                "min_execution_count": int(min_execution_count),
            }
        rows = self._query(sql, params)
        return [
            DeletionCandidate(
                category=category,
                query_id=int(row["query_id"]),
                plan_id=int(row["plan_id"]),
                is_forced=bool(row["is_forced"]),
            )
            for row in rows
        ]

    def fetch_queries(self, query_ids: Iterable[int]) -> Dict[int, QuerySummary]:
        rows = self._query_batched(self._queries.FETCH_QUERIES, "query_ids", query_ids)
        return {
            int(row["query_id"]): QuerySummary(
                query_id=int(row["query_id"]),
                object_id=int(row["object_id"] or 0),
                last_execution_time=row["last_execution_time"],
                query_text=row["query_sql_text"],
            )
            for row in rows
        }

    def fetch_plan_sizes(self, plan_ids: Iterable[int]) -> Dict[int, int]:
        rows = self._query_batched(self._queries.FETCH_PLAN_SIZES, "plan_ids", plan_ids)
        return {int(row["plan_id"]): int(row["plan_bytes"] or 0) for row in rows}

    def fetch_runtime_stats(self, plan_ids: Iterable[int]) -> Dict[int, RuntimeStatsSummary]:
        rows = self._query_batched(self._queries.COUNT_RUNTIME_STATS, "plan_ids", plan_ids)
        return {
            int(row["plan_id"]): RuntimeStatsSummary(
                plan_id=int(row["plan_id"]),
                row_count=int(row["row_count"] or 0),
                count_executions=int(row["count_executions"] or 0),
            )
            for row in rows
        }

    def count_wait_stats(self, plan_ids: Iterable[int]) -> Dict[int, int]:
        rows = self._query_batched(self._queries.COUNT_WAIT_STATS, "plan_ids", plan_ids)
        return {int(row["plan_id"]): int(row["row_count"] or 0) for row in rows}

    def resolve_objects(self, object_ids: Iterable[int]) -> Dict[int, CatalogObject]:
        ids = [i for i in object_ids if i]
        rows = self._query_batched(self._queries.RESOLVE_OBJECTS, "object_ids", ids)
        return {
            int(row["object_id"]): CatalogObject(
                object_id=int(row["object_id"]),
                schema_name=str(row["schema_name"]),
                object_name=str(row["object_name"]),
            )
            for row in rows
        }

    def unforce_plan(self, query_id: int, plan_id: int) -> None:
        sql = self._sql(self._queries.UNFORCE_PLAN)
        params = {"query_id": int(query_id), "plan_id": int(plan_id)}
        self._log_sql(sql, params)
        self._connection.execute_non_query(sql, params)

    def remove_query(self, query_id: int) -> None:
        sql = self._sql(self._queries.REMOVE_QUERY)
        params = {"query_id": int(query_id)}
        self._log_sql(sql, params)
        self._connection.execute_non_query(sql, params)
