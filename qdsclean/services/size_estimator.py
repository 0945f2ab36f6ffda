"""
Size Estimator / Reporter

Summary: per category counts and estimated storage (KB) that removing the
candidates would release.
Detail: one row per (category, query) with the owning object, execution
figures and the compressed query text.

Both are read-only against the candidate set and the store.
"""

import gzip
from typing import List, Dict, Optional

from qdsclean.core.constants import (
    QueryCategory,
    ADHOC_QUERY_LABEL,
    DELETED_OBJECT_LABEL,
    NVARCHAR_ENCODING,
    RUNTIME_STATS_ROW_BYTES,
    WAIT_STATS_ROW_BYTES,
)
from qdsclean.core.exceptions import DatabaseError, ReportError
from qdsclean.core.logger import get_logger
from qdsclean.database.telemetry_store import TelemetryStore
from qdsclean.models.cleanup_models import CandidateSet, ReportRow, QueryDetailRow
from qdsclean.models.telemetry_models import CatalogObject

logger = get_logger('services.size_estimator')


def compress_query_text(text: Optional[str]) -> Optional[bytes]:
    """Same payload as T-SQL COMPRESS() over NVARCHAR: gzip of UTF-16LE"""
    if text is None:
        return None
    return gzip.compress(text.encode(NVARCHAR_ENCODING))


def decompress_query_text(payload: Optional[bytes]) -> Optional[str]:
    """CAST(DECOMPRESS(payload) AS NVARCHAR(MAX))"""
    if payload is None:
        return None
    return gzip.decompress(payload).decode(NVARCHAR_ENCODING)


def resolve_object_name(object_id: int, catalog: Dict[int, CatalogObject]) -> str:
    """[schema].[object], or the ad-hoc / deleted object label"""
    if object_id == 0:
        return ADHOC_QUERY_LABEL
    obj = catalog.get(object_id)
    if obj is None:
        return DELETED_OBJECT_LABEL
    return obj.qualified_name


class SizeEstimator:
    """
    Builds the summary and detail reports for a candidate set.

    Sizes are sums over distinct queries / plans of a category, so a plan
    selected twice under the same category is counted once. Stats tables
    are sized by row count times a fixed row width.
    """

    def __init__(
        self,
        store: TelemetryStore,
        runtime_stats_row_bytes: int = RUNTIME_STATS_ROW_BYTES,
        wait_stats_row_bytes: int = WAIT_STATS_ROW_BYTES,
    ):
        self._store = store
        self.runtime_stats_row_bytes = runtime_stats_row_bytes
        self.wait_stats_row_bytes = wait_stats_row_bytes

    def summarize(self, candidates: CandidateSet) -> List[ReportRow]:
        """Summary rows, one per category with candidates, ordered by category name"""
        if not candidates:
            return []

        try:
            queries = self._store.fetch_queries(candidates.query_ids())
            plan_sizes = self._store.fetch_plan_sizes(candidates.plan_ids())
            runtime = self._store.fetch_runtime_stats(candidates.plan_ids())
            waits = self._store.count_wait_stats(candidates.plan_ids())
        except DatabaseError as e:
            raise ReportError(f"Summary report failed: {e.message}", target=self._store.database_name) from e

        rows: List[ReportRow] = []
        for category in sorted(candidates.categories(), key=lambda c: c.value):
            members = candidates.for_category(category)
            query_ids = {c.query_id for c in members}
            plan_ids = {c.plan_id for c in members}

            text_bytes = sum(queries[q].text_bytes for q in query_ids if q in queries)
            plan_bytes = sum(plan_sizes.get(p, 0) for p in plan_ids)
            runtime_rows = sum(runtime[p].row_count for p in plan_ids if p in runtime)
            wait_rows = sum(waits.get(p, 0) for p in plan_ids)

            rows.append(ReportRow(
                category=category,
                query_count=len(query_ids),
                plan_count=len(plan_ids),
                query_text_kb=text_bytes // 1024,
                plan_xml_kb=plan_bytes // 1024,
                runtime_stats_kb=(runtime_rows * self.runtime_stats_row_bytes) // 1024,
                wait_stats_kb=(wait_rows * self.wait_stats_row_bytes) // 1024,
            ))
        return rows

    def details(self, candidates: CandidateSet) -> List[QueryDetailRow]:
        """Detail rows ordered by category, object name and query id"""
        if not candidates:
            return []

        try:
            queries = self._store.fetch_queries(candidates.query_ids())
            runtime = self._store.fetch_runtime_stats(candidates.plan_ids())
            catalog = self._store.resolve_objects(
                {q.object_id for q in queries.values() if q.object_id}
            )
        except DatabaseError as e:
            raise ReportError(f"Query details report failed: {e.message}", target=self._store.database_name) from e

        # (category, query_id) -> candidate plan ids
        grouped: Dict[tuple, set] = {}
        for candidate in candidates:
            grouped.setdefault((candidate.category, candidate.query_id), set()).add(candidate.plan_id)

        rows: List[QueryDetailRow] = []
        for (category, query_id), plan_ids in grouped.items():
            query = queries.get(query_id)
            if query is None:
                logger.warning(f"Query {query_id} vanished from the store before reporting")
                continue
            rows.append(QueryDetailRow(
                category=category,
                object_name=resolve_object_name(query.object_id, catalog),
                query_id=query_id,
                last_execution_time=query.last_execution_time,
                execution_count=sum(runtime[p].count_executions for p in plan_ids if p in runtime),
                query_text=compress_query_text(query.query_text),
            ))

        rows.sort(key=lambda r: (r.category.value, r.object_name, r.query_id))
        return rows
