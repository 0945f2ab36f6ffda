"""
Unit tests for the retention predicates.
"""
import pytest
from datetime import datetime, timedelta, timezone

from qdsclean.core.constants import QueryCategory
from qdsclean.models.cleanup_models import CleanupOptions
from qdsclean.models.telemetry_models import QueryRecord
from qdsclean.services import predicates

from tests.conftest import NOW


def make_query(object_id=0, hours_ago=200, is_internal=False):
    last = NOW - timedelta(hours=hours_ago) if hours_ago is not None else None
    return QueryRecord(
        query_id=1, query_text_id=1, object_id=object_id,
        last_execution_time=last, is_internal=is_internal,
    )


class TestThreshold:
    """Executed fewer than N times and idle past retention."""

    def test_rare_and_idle_matches(self):
        assert predicates.is_below_threshold(make_query(), 1, NOW, 168, 2)

    def test_execution_count_equal_to_minimum_does_not_match(self):
        assert not predicates.is_below_threshold(make_query(), 2, NOW, 168, 2)

    def test_recent_query_does_not_match(self):
        assert not predicates.is_below_threshold(make_query(hours_ago=10), 1, NOW, 168, 2)

    def test_exactly_at_cutoff_does_not_match(self):
        assert not predicates.is_below_threshold(make_query(hours_ago=168), 1, NOW, 168, 2)

    def test_never_executed_does_not_match(self):
        assert not predicates.is_below_threshold(make_query(hours_ago=None), 0, NOW, 168, 2)

    def test_naive_datetimes_are_utc(self):
        query = make_query()
        query.last_execution_time = query.last_execution_time.replace(tzinfo=None)
        assert predicates.is_below_threshold(query, 1, NOW, 168, 2)

    def test_retention_cutoff(self):
        assert predicates.retention_cutoff(NOW, 24) == NOW - timedelta(hours=24)


class TestCategoryPredicates:
    """Per category rules."""

    def test_adhoc_stale_requires_adhoc(self):
        assert predicates.is_adhoc_stale(make_query(object_id=0), 1, NOW, 168, 2)
        assert not predicates.is_adhoc_stale(make_query(object_id=5), 1, NOW, 168, 2)

    def test_stale_ignores_ownership(self):
        assert predicates.is_stale(make_query(object_id=5), 1, NOW, 168, 2)

    def test_internal(self):
        assert predicates.is_internal(make_query(is_internal=True))
        assert not predicates.is_internal(make_query())

    def test_orphan_needs_missing_owner(self):
        assert predicates.is_orphan(make_query(object_id=5), {6, 7})
        assert not predicates.is_orphan(make_query(object_id=5), {5})

    def test_adhoc_query_is_never_orphan(self):
        assert not predicates.is_orphan(make_query(object_id=0), set())


class TestMatches:
    """Dispatch on category."""

    def test_plan_without_runtime_stats_never_stale(self):
        query = make_query()
        assert not predicates.matches(QueryCategory.STALE, query, None, set(), NOW, 168, 2)
        assert not predicates.matches(QueryCategory.ADHOC_STALE, query, None, set(), NOW, 168, 2)

    def test_plan_without_runtime_stats_can_be_internal(self):
        query = make_query(is_internal=True, hours_ago=1)
        assert predicates.matches(QueryCategory.INTERNAL, query, None, set(), NOW, 168, 2)

    def test_classify_returns_every_match_in_order(self):
        query = make_query(object_id=9, is_internal=True)
        assert predicates.classify(query, 1, set(), NOW, 168, 2) == [
            QueryCategory.STALE,
            QueryCategory.INTERNAL,
            QueryCategory.ORPHAN,
        ]

    def test_unknown_category_raises(self):
        with pytest.raises(ValueError):
            predicates.matches("Bogus", make_query(), 1, set(), NOW, 168, 2)


class TestEnabledCategories:
    """Which selection passes run."""

    def test_defaults(self):
        options = CleanupOptions(database_name="Db01")
        assert predicates.enabled_categories(options) == [
            QueryCategory.STALE, QueryCategory.INTERNAL, QueryCategory.ORPHAN,
        ]

    def test_stale_supersedes_adhoc_stale(self):
        options = CleanupOptions(database_name="Db01", clean_adhoc_stale=True, clean_stale=True)
        assert QueryCategory.ADHOC_STALE not in predicates.enabled_categories(options)

    def test_adhoc_stale_alone(self):
        options = CleanupOptions(
            database_name="Db01", clean_adhoc_stale=True, clean_stale=False,
            clean_internal=False, clean_orphan=False,
        )
        assert predicates.enabled_categories(options) == [QueryCategory.ADHOC_STALE]

    def test_everything_off(self):
        options = CleanupOptions(
            database_name="Db01", clean_stale=False, clean_internal=False, clean_orphan=False,
        )
        assert predicates.enabled_categories(options) == []
