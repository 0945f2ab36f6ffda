"""
In-memory telemetry store

Holds Query Store records in dictionaries and evaluates the retention
predicates in Python. Loadable from a JSON snapshot so a cleanup can be
rehearsed offline against an exported Query Store.
"""

import json
from pathlib import Path
from typing import Optional, List, Dict, Iterable, Callable, Any
from datetime import datetime, timezone

from qdsclean.core.constants import QueryCategory, DATABASE_STATE_ONLINE
from qdsclean.core.exceptions import PlanUnforceError, QueryRemovalError, SnapshotError
from qdsclean.core.logger import get_logger
from qdsclean.database.telemetry_store import TelemetryStore
from qdsclean.models.cleanup_models import DeletionCandidate
from qdsclean.models.telemetry_models import (
    QueryText,
    QueryRecord,
    PlanRecord,
    RuntimeStatsEntry,
    WaitStatsEntry,
    CatalogObject,
    QuerySummary,
    RuntimeStatsSummary,
    nvarchar_length,
)
from qdsclean.services import predicates

logger = get_logger('database.memory_store')


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryTelemetryStore(TelemetryStore):
    """
    Query Store held in memory.

    Behaves like the engine where the cleanup depends on it:
    - removing a query cascades its plans, stats and unreferenced text
    - a query with a forced plan can't be removed until it is unforced
    """

    def __init__(
        self,
        database_name: str,
        server_name: str = "localhost",
        state: Optional[str] = DATABASE_STATE_ONLINE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        super().__init__(database_name)
        self.server_name = server_name
        self.state = state
        self._clock = clock or _utcnow
        self.texts: Dict[int, QueryText] = {}
        self.queries: Dict[int, QueryRecord] = {}
        self.plans: Dict[int, PlanRecord] = {}
        self.runtime_stats: Dict[int, RuntimeStatsEntry] = {}
        self.wait_stats: Dict[int, WaitStatsEntry] = {}
        self.objects: Dict[int, CatalogObject] = {}
        self.admin_calls: List[tuple] = []

    # -- population -----------------------------------------------------------

    def add_text(self, text: QueryText) -> QueryText:
        self.texts[text.query_text_id] = text
        return text

    def add_query(self, query: QueryRecord) -> QueryRecord:
        self.queries[query.query_id] = query
        return query

    def add_plan(self, plan: PlanRecord) -> PlanRecord:
        self.plans[plan.plan_id] = plan
        return plan

    def add_runtime_stats(self, entry: RuntimeStatsEntry) -> RuntimeStatsEntry:
        self.runtime_stats[entry.runtime_stats_id] = entry
        return entry

    def add_wait_stats(self, entry: WaitStatsEntry) -> WaitStatsEntry:
        self.wait_stats[entry.wait_stats_id] = entry
        return entry

    def add_object(self, obj: CatalogObject) -> CatalogObject:
        self.objects[obj.object_id] = obj
        return obj

    def drop_object(self, object_id: int) -> None:
        """DROP of the owning object; Query Store keeps the query"""
        self.objects.pop(object_id, None)

    # -- snapshot -------------------------------------------------------------

    @classmethod
    def from_snapshot(cls, path: Path, database_name: Optional[str] = None) -> 'InMemoryTelemetryStore':
        """
        Load a JSON snapshot:

        {"database": "Db01", "server": "SQL01", "state": "ONLINE",
         "query_texts": [...], "queries": [...], "plans": [...],
         "runtime_stats": [...], "wait_stats": [...], "objects": [...]}

        List items use the field names of the record models; datetimes are
        ISO-8601 strings.
        """
        path = Path(path)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SnapshotError(f"Cannot read snapshot {path}: {e}") from e

        store = cls(
            database_name=database_name or data.get("database", ""),
            server_name=data.get("server", "localhost"),
            state=data.get("state", DATABASE_STATE_ONLINE),
        )
        try:
            for item in data.get("query_texts", []):
                store.add_text(QueryText(**item))
            for item in data.get("queries", []):
                item = dict(item)
                if item.get("last_execution_time"):
                    item["last_execution_time"] = datetime.fromisoformat(item["last_execution_time"])
                store.add_query(QueryRecord(**item))
            for item in data.get("plans", []):
                store.add_plan(PlanRecord(**item))
            for item in data.get("runtime_stats", []):
                store.add_runtime_stats(RuntimeStatsEntry(**item))
            for item in data.get("wait_stats", []):
                store.add_wait_stats(WaitStatsEntry(**item))
            for item in data.get("objects", []):
                store.add_object(CatalogObject(**item))
        except (TypeError, ValueError) as e:
            raise SnapshotError(f"Malformed snapshot {path}: {e}") from e

        logger.info(
            f"Loaded snapshot {path.name}: {len(store.queries)} queries, {len(store.plans)} plans"
        )
        return store

    # -- catalog --------------------------------------------------------------

    def get_database_state(self) -> Optional[str]:
        return self.state

    def get_server_name(self) -> str:
        return self.server_name

    def count_queries(self) -> int:
        return len(self.queries)

    # -- selection ------------------------------------------------------------

    def _plan_executions(self) -> Dict[int, int]:
        totals: Dict[int, int] = {}
        for entry in self.runtime_stats.values():
            totals[entry.plan_id] = totals.get(entry.plan_id, 0) + entry.count_executions
        return totals

    def select_candidates(
        self,
        category: QueryCategory,
        retention_hours: int,
        min_execution_count: int,
    ) -> List[DeletionCandidate]:
        now = self._clock()
        executions = self._plan_executions()
        catalog_ids = set(self.objects)
        candidates: List[DeletionCandidate] = []

        for plan in sorted(self.plans.values(), key=lambda p: (p.query_id, p.plan_id)):
            query = self.queries.get(plan.query_id)
            if query is None:
                continue
            if predicates.matches(
                category,
                query,
                executions.get(plan.plan_id),
                catalog_ids,
                now,
                retention_hours,
                min_execution_count,
            ):
                candidates.append(DeletionCandidate(
                    category=category,
                    query_id=query.query_id,
                    plan_id=plan.plan_id,
                    is_forced=plan.is_forced,
                ))
        return candidates

    # -- report reads ---------------------------------------------------------

    def fetch_queries(self, query_ids: Iterable[int]) -> Dict[int, QuerySummary]:
        result: Dict[int, QuerySummary] = {}
        for query_id in set(query_ids):
            query = self.queries.get(query_id)
            if query is None:
                continue
            text = self.texts.get(query.query_text_id)
            result[query_id] = QuerySummary(
                query_id=query_id,
                object_id=query.object_id,
                last_execution_time=query.last_execution_time,
                query_text=text.query_sql_text if text else None,
            )
        return result

    def fetch_plan_sizes(self, plan_ids: Iterable[int]) -> Dict[int, int]:
        return {
            plan_id: nvarchar_length(self.plans[plan_id].query_plan)
            for plan_id in set(plan_ids)
            if plan_id in self.plans
        }

    def fetch_runtime_stats(self, plan_ids: Iterable[int]) -> Dict[int, RuntimeStatsSummary]:
        wanted = set(plan_ids)
        result: Dict[int, RuntimeStatsSummary] = {}
        for entry in self.runtime_stats.values():
            if entry.plan_id not in wanted:
                continue
            summary = result.setdefault(entry.plan_id, RuntimeStatsSummary(plan_id=entry.plan_id))
            summary.row_count += 1
            summary.count_executions += entry.count_executions
        return result

    def count_wait_stats(self, plan_ids: Iterable[int]) -> Dict[int, int]:
        wanted = set(plan_ids)
        result: Dict[int, int] = {}
        for entry in self.wait_stats.values():
            if entry.plan_id in wanted:
                result[entry.plan_id] = result.get(entry.plan_id, 0) + 1
        return result

    def resolve_objects(self, object_ids: Iterable[int]) -> Dict[int, CatalogObject]:
        return {i: self.objects[i] for i in set(object_ids) if i in self.objects}

    # -- administrative calls -------------------------------------------------

    def unforce_plan(self, query_id: int, plan_id: int) -> None:
        self.admin_calls.append(("unforce_plan", query_id, plan_id))
        plan = self.plans.get(plan_id)
        if plan is None or plan.query_id != query_id:
            raise PlanUnforceError(
                f"Plan {plan_id} does not belong to query {query_id}",
                query_id=query_id,
                plan_id=plan_id,
                database=self.database_name,
            )
        plan.is_forced = False

    def remove_query(self, query_id: int) -> None:
        self.admin_calls.append(("remove_query", query_id))
        query = self.queries.get(query_id)
        if query is None:
            logger.debug(f"Query {query_id} already removed")
            return

        plan_ids = {p.plan_id for p in self.plans.values() if p.query_id == query_id}
        forced = sorted(p for p in plan_ids if self.plans[p].is_forced)
        if forced:
            raise QueryRemovalError(
                f"Query {query_id} has a forced plan and can't be removed",
                query_id=query_id,
                plan_id=forced[0],
                database=self.database_name,
            )

        for plan_id in plan_ids:
            del self.plans[plan_id]
        self.runtime_stats = {k: v for k, v in self.runtime_stats.items() if v.plan_id not in plan_ids}
        self.wait_stats = {k: v for k, v in self.wait_stats.items() if v.plan_id not in plan_ids}
        del self.queries[query_id]

        if not any(q.query_text_id == query.query_text_id for q in self.queries.values()):
            self.texts.pop(query.query_text_id, None)

    def to_dict(self) -> Dict[str, Any]:
        """Plain snapshot of the store contents (comparison, export)"""
        def _query(q: QueryRecord) -> dict:
            return {
                "query_id": q.query_id,
                "query_text_id": q.query_text_id,
                "object_id": q.object_id,
                "last_execution_time": q.last_execution_time.isoformat() if q.last_execution_time else None,
                "is_internal": q.is_internal,
            }

        return {
            "database": self.database_name,
            "server": self.server_name,
            "state": self.state,
            "query_texts": [vars(t).copy() for t in self.texts.values()],
            "queries": [_query(q) for q in self.queries.values()],
            "plans": [vars(p).copy() for p in self.plans.values()],
            "runtime_stats": [vars(r).copy() for r in self.runtime_stats.values()],
            "wait_stats": [vars(w).copy() for w in self.wait_stats.values()],
            "objects": [vars(o).copy() for o in self.objects.values()],
        }
