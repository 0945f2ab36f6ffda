"""
Query Store record models

Mirrors the shape of the sys.query_store_* catalog views the cleanup reads.
Only the columns the cleanup needs are modelled.
"""

from typing import Optional
from dataclasses import dataclass
from datetime import datetime

from qdsclean.core.constants import NVARCHAR_ENCODING


def nvarchar_length(value: Optional[str]) -> int:
    """DATALENGTH() of an NVARCHAR value"""
    if value is None:
        return 0
    return len(value.encode(NVARCHAR_ENCODING))


@dataclass
class QueryText:
    """sys.query_store_query_text"""
    query_text_id: int
    query_sql_text: str = ""


@dataclass
class QueryRecord:
    """sys.query_store_query"""
    query_id: int
    query_text_id: int
    object_id: int = 0  # 0 = ad-hoc
    last_execution_time: Optional[datetime] = None
    is_internal: bool = False

    @property
    def is_adhoc(self) -> bool:
        return self.object_id == 0


@dataclass
class PlanRecord:
    """sys.query_store_plan"""
    plan_id: int
    query_id: int
    is_forced: bool = False
    query_plan: Optional[str] = None


@dataclass
class RuntimeStatsEntry:
    """sys.query_store_runtime_stats (one row per interval)"""
    runtime_stats_id: int
    plan_id: int
    count_executions: int = 0


@dataclass
class WaitStatsEntry:
    """sys.query_store_wait_stats (one row per interval and wait category)"""
    wait_stats_id: int
    plan_id: int


@dataclass
class CatalogObject:
    """sys.objects joined to sys.schemas"""
    object_id: int
    schema_name: str
    object_name: str

    @property
    def qualified_name(self) -> str:
        return f"{quote_name(self.schema_name)}.{quote_name(self.object_name)}"


def quote_name(name: str) -> str:
    """QUOTENAME() with the default bracket delimiter"""
    return "[" + str(name).replace("]", "]]") + "]"


@dataclass
class QuerySummary:
    """Per-query facts fetched for reporting"""
    query_id: int
    object_id: int = 0
    last_execution_time: Optional[datetime] = None
    query_text: Optional[str] = None

    @property
    def text_bytes(self) -> int:
        return nvarchar_length(self.query_text)


@dataclass
class RuntimeStatsSummary:
    """Per-plan runtime stats aggregate"""
    plan_id: int
    row_count: int = 0
    count_executions: int = 0
