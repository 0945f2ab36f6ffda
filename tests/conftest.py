"""
Shared fixtures: in-memory Query Stores with a fixed clock.
"""
import pytest
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence, Tuple

from qdsclean.core.config import Settings, set_settings
from qdsclean.database.memory_store import InMemoryTelemetryStore
from qdsclean.models.telemetry_models import (
    QueryText,
    QueryRecord,
    PlanRecord,
    RuntimeStatsEntry,
    WaitStatsEntry,
    CatalogObject,
)


# Snapshot-loaded stores use the real clock, so keep NOW current
NOW = datetime.now(timezone.utc).replace(microsecond=0)
PROC_OBJECT_ID = 1001
APP_LOGGER = "QDSCleanup"
DROPPED_OBJECT_ID = 2002


def add_query(
    store: InMemoryTelemetryStore,
    query_id: int,
    *,
    text: str = "SELECT 1",
    object_id: int = 0,
    hours_ago: Optional[float] = 1,
    is_internal: bool = False,
    plans: Sequence[Tuple[int, Optional[int], bool]] = (),
    wait_rows: int = 0,
    plan_xml: str = "<ShowPlanXML/>",
) -> QueryRecord:
    """
    Add a query with its text, plans and stats.

    plans: (plan_id, executions, is_forced); executions=None adds no runtime
    stats rows for the plan. Each plan gets one runtime stats row per
    execution bucket of 1 plus `wait_rows` wait stats rows.
    """
    store.add_text(QueryText(query_text_id=query_id, query_sql_text=text))
    last = NOW - timedelta(hours=hours_ago) if hours_ago is not None else None
    query = store.add_query(QueryRecord(
        query_id=query_id,
        query_text_id=query_id,
        object_id=object_id,
        last_execution_time=last,
        is_internal=is_internal,
    ))
    for plan_id, executions, forced in plans:
        store.add_plan(PlanRecord(plan_id=plan_id, query_id=query_id, is_forced=forced, query_plan=plan_xml))
        if executions is not None:
            store.add_runtime_stats(RuntimeStatsEntry(
                runtime_stats_id=max(store.runtime_stats, default=0) + 1,
                plan_id=plan_id,
                count_executions=executions,
            ))
        for _ in range(wait_rows):
            store.add_wait_stats(WaitStatsEntry(
                wait_stats_id=max(store.wait_stats, default=0) + 1,
                plan_id=plan_id,
            ))
    return query


@pytest.fixture(autouse=True)
def default_settings(tmp_path, monkeypatch):
    """Settings isolated from the user's settings file and environment"""
    monkeypatch.setenv("QDSCLEAN_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("QDSCLEAN_PASSWORD", raising=False)
    return set_settings(Settings())


@pytest.fixture
def empty_store():
    return InMemoryTelemetryStore("Db01", server_name="SQL01", clock=lambda: NOW)


@pytest.fixture
def store(empty_store):
    """
    Q1: ad-hoc, 1 execution, idle 200h           -> Stale (and AdhocStale)
    Q2: owned by a dropped procedure, busy       -> Orphan
    Q3: internal, forced plan 30, busy           -> Internal
    Q4: owned by a live procedure, busy          -> kept
    """
    s = empty_store
    s.add_object(CatalogObject(object_id=PROC_OBJECT_ID, schema_name="dbo", object_name="usp_Orders"))

    add_query(s, 1, text="SELECT * FROM dbo.Orders WHERE Id = 42", hours_ago=200,
              plans=[(10, 1, False)], wait_rows=2)
    add_query(s, 2, text="SELECT Name FROM dbo.Customers", object_id=DROPPED_OBJECT_ID,
              hours_ago=1, plans=[(20, 50, False)])
    add_query(s, 3, text="SELECT @@SPID", is_internal=True, hours_ago=1,
              plans=[(30, 100, True)])
    add_query(s, 4, text="UPDATE dbo.Orders SET Status = 1", object_id=PROC_OBJECT_ID,
              hours_ago=1, plans=[(40, 500, False)])
    return s
