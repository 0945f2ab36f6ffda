"""
Retention predicates

Pure functions deciding which retention categories a query/plan pair falls
into. The SQL Server binding expresses the same rules in T-SQL
(see QDSCleanupQueries.SELECT_*); the in-memory binding calls these directly.
"""

from typing import Container, List, Optional
from datetime import datetime, timedelta, timezone

from qdsclean.core.constants import QueryCategory, CATEGORY_ORDER
from qdsclean.models.cleanup_models import CleanupOptions
from qdsclean.models.telemetry_models import QueryRecord


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken as UTC"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def retention_cutoff(now: datetime, retention_hours: int) -> datetime:
    """Queries last executed before this instant are past retention"""
    return as_utc(now) - timedelta(hours=retention_hours)


def is_below_threshold(
    query: QueryRecord,
    executions: int,
    now: datetime,
    retention_hours: int,
    min_execution_count: int,
) -> bool:
    """Executed fewer than min_execution_count times and idle past retention"""
    last_execution = as_utc(query.last_execution_time)
    if last_execution is None:
        return False
    return executions < min_execution_count and last_execution < retention_cutoff(now, retention_hours)


def is_adhoc_stale(
    query: QueryRecord,
    executions: int,
    now: datetime,
    retention_hours: int,
    min_execution_count: int,
) -> bool:
    return query.is_adhoc and is_below_threshold(
        query, executions, now, retention_hours, min_execution_count
    )


def is_stale(
    query: QueryRecord,
    executions: int,
    now: datetime,
    retention_hours: int,
    min_execution_count: int,
) -> bool:
    return is_below_threshold(query, executions, now, retention_hours, min_execution_count)


def is_internal(query: QueryRecord) -> bool:
    return bool(query.is_internal)


def is_orphan(query: QueryRecord, catalog_object_ids: Container[int]) -> bool:
    return not query.is_adhoc and query.object_id not in catalog_object_ids


def matches(
    category: QueryCategory,
    query: QueryRecord,
    executions: Optional[int],
    catalog_object_ids: Container[int],
    now: datetime,
    retention_hours: int,
    min_execution_count: int,
) -> bool:
    """
    Evaluate one category for a (query, plan) pair.

    `executions` is the plan's summed count_executions, None when the plan
    has no runtime stats rows; such plans never match the threshold
    categories.
    """
    if category == QueryCategory.INTERNAL:
        return is_internal(query)
    if category == QueryCategory.ORPHAN:
        return is_orphan(query, catalog_object_ids)
    if executions is None:
        return False
    if category == QueryCategory.ADHOC_STALE:
        return is_adhoc_stale(query, executions, now, retention_hours, min_execution_count)
    if category == QueryCategory.STALE:
        return is_stale(query, executions, now, retention_hours, min_execution_count)
    raise ValueError(f"Unknown category: {category}")


def classify(
    query: QueryRecord,
    executions: Optional[int],
    catalog_object_ids: Container[int],
    now: datetime,
    retention_hours: int,
    min_execution_count: int,
    categories: Optional[List[QueryCategory]] = None,
) -> List[QueryCategory]:
    """All categories (in evaluation order) a (query, plan) pair matches"""
    return [
        category
        for category in (categories or list(CATEGORY_ORDER))
        if matches(category, query, executions, catalog_object_ids, now, retention_hours, min_execution_count)
    ]


def enabled_categories(options: CleanupOptions) -> List[QueryCategory]:
    """
    Categories to select, in evaluation order.

    A full stale pass already covers the ad-hoc stale queries, so the
    ad-hoc pass only runs when the full one is off.
    """
    categories: List[QueryCategory] = []
    if options.clean_adhoc_stale and not options.clean_stale:
        categories.append(QueryCategory.ADHOC_STALE)
    if options.clean_stale:
        categories.append(QueryCategory.STALE)
    if options.clean_internal:
        categories.append(QueryCategory.INTERNAL)
    if options.clean_orphan:
        categories.append(QueryCategory.ORPHAN)
    return categories
