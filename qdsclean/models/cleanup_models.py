"""
Cleanup Data Models

Candidate set, report rows and the options of a cleanup run.
"""

import heapq
from typing import Optional, List, Dict, Iterable, Iterator, Tuple
from dataclasses import dataclass, field
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from qdsclean.core.constants import (
    QueryCategory,
    DEFAULT_RETENTION_HOURS,
    DEFAULT_MIN_EXECUTION_COUNT,
)


@dataclass(frozen=True)
class DeletionCandidate:
    """
    One (query, plan) pair selected for removal under a category.

    The same query may appear under several categories.
    """
    category: QueryCategory
    query_id: int
    plan_id: int
    is_forced: bool = False


class CandidateSet:
    """
    Working list of deletion candidates, kept in arrival order.

    Reporting only reads it; the deletion engine drains it. Rows are indexed
    by query and kept in a max-heap on plan_id, so draining a whole set is
    O(n log n).
    """

    def __init__(self, candidates: Optional[Iterable[DeletionCandidate]] = None):
        self._items: List[Tuple[int, DeletionCandidate]] = []
        self._by_query: Dict[int, Dict[int, DeletionCandidate]] = {}
        self._heap: List[Tuple[int, int, int]] = []
        self._remaining = 0
        self._selected_counts: Dict[QueryCategory, int] = {}
        if candidates:
            self.extend(candidates)

    def extend(self, candidates: Iterable[DeletionCandidate]) -> int:
        """Append candidates and return how many were added"""
        added = 0
        for candidate in candidates:
            seq = len(self._items)
            self._items.append((seq, candidate))
            self._by_query.setdefault(candidate.query_id, {})[seq] = candidate
            # seq breaks plan_id ties in arrival order
            heapq.heappush(self._heap, (-candidate.plan_id, seq, candidate.query_id))
            self._selected_counts[candidate.category] = self._selected_counts.get(candidate.category, 0) + 1
            added += 1
        self._remaining += added
        return added

    def _is_live(self, seq: int, query_id: int) -> bool:
        return seq in self._by_query.get(query_id, ())

    def _live(self) -> List[DeletionCandidate]:
        return [c for seq, c in self._items if self._is_live(seq, c.query_id)]

    def __len__(self) -> int:
        return self._remaining

    def __bool__(self) -> bool:
        return self._remaining > 0

    def __iter__(self) -> Iterator[DeletionCandidate]:
        return iter(self._live())

    @property
    def selected_counts(self) -> Dict[QueryCategory, int]:
        """Rows added per category, unaffected by draining"""
        return dict(self._selected_counts)

    def categories(self) -> List[QueryCategory]:
        """Categories present, in order of first arrival"""
        return list(dict.fromkeys(c.category for c in self._live()))

    def for_category(self, category: QueryCategory) -> List[DeletionCandidate]:
        return [c for c in self._live() if c.category == category]

    def query_ids(self) -> List[int]:
        """Distinct query ids in arrival order"""
        return list(dict.fromkeys(c.query_id for c in self._live()))

    def plan_ids(self) -> List[int]:
        """Distinct plan ids in arrival order"""
        return list(dict.fromkeys(c.plan_id for c in self._live()))

    def rows_for_query(self, query_id: int) -> List[DeletionCandidate]:
        """Remaining rows of one query, in arrival order"""
        return list(self._by_query.get(query_id, {}).values())

    def peek_next(self) -> DeletionCandidate:
        """Candidate with the highest plan_id, left in the set"""
        while self._heap:
            _, seq, query_id = self._heap[0]
            if self._is_live(seq, query_id):
                return self._by_query[query_id][seq]
            heapq.heappop(self._heap)
        raise IndexError("candidate set is empty")

    def drain_query(self, query_id: int) -> int:
        """Drop every remaining candidate of a query, returns rows dropped"""
        dropped = len(self._by_query.pop(query_id, {}))
        self._remaining -= dropped
        return dropped


@dataclass
class ReportRow:
    """Summary report row for one category (sizes in KB)"""
    category: QueryCategory
    query_count: int = 0
    plan_count: int = 0
    query_text_kb: int = 0
    plan_xml_kb: int = 0
    runtime_stats_kb: int = 0
    wait_stats_kb: int = 0


@dataclass
class QueryDetailRow:
    """Detail report row for one (category, query)"""
    category: QueryCategory
    object_name: str
    query_id: int
    last_execution_time: Optional[datetime] = None
    execution_count: int = 0
    query_text: Optional[bytes] = None  # gzip-compressed NVARCHAR


class CleanupOptions(BaseModel):
    """Parameters of a cleanup run"""

    database_name: str = Field(min_length=1, max_length=128)

    # Category toggles
    clean_adhoc_stale: bool = False
    clean_stale: bool = True
    clean_internal: bool = True
    clean_orphan: bool = True

    # Thresholds
    retention_hours: int = Field(default=DEFAULT_RETENTION_HOURS, ge=0)
    min_execution_count: int = Field(default=DEFAULT_MIN_EXECUTION_COUNT, ge=0)

    # Summary report outputs
    report_as_text: bool = False
    report_as_table: bool = False
    report_output_table: Optional[str] = None

    # Detail report outputs
    query_details_as_table: bool = False
    query_details_output_table: Optional[str] = None

    test: bool = False  # dry-run
    verbose: bool = False
    debug: bool = False

    @field_validator('database_name')
    @classmethod
    def validate_database_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Database name is required")
        return v

    @field_validator('report_output_table', 'query_details_output_table')
    @classmethod
    def validate_output_table(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def wants_summary(self) -> bool:
        return self.report_as_text or self.report_as_table or self.report_output_table is not None

    @property
    def wants_details(self) -> bool:
        return self.query_details_as_table or self.query_details_output_table is not None

    def cleanup_parameters(self) -> Dict[str, int]:
        """Snapshot of the selection parameters stored with persisted reports"""
        return {
            "CleanAdhocStale": int(self.clean_adhoc_stale),
            "CleanStale": int(self.clean_stale),
            "Retention": self.retention_hours,
            "MinExecutionCount": self.min_execution_count,
            "CleanOrphan": int(self.clean_orphan),
            "CleanInternal": int(self.clean_internal),
        }


@dataclass
class CleanupResult:
    """Outcome of a cleanup run"""
    execution_time: datetime
    server_name: str
    database_name: str
    dry_run: bool = False
    total_queries: Optional[int] = None
    selected_counts: Dict[QueryCategory, int] = field(default_factory=dict)
    summary: List[ReportRow] = field(default_factory=list)
    details: List[QueryDetailRow] = field(default_factory=list)
    removed_query_ids: List[int] = field(default_factory=list)
    unforced_plans: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def removed_count(self) -> int:
        return len(self.removed_query_ids)
