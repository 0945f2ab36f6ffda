"""
Unit tests for the candidate set.
"""
import pytest

from qdsclean.core.constants import QueryCategory
from qdsclean.models.cleanup_models import CandidateSet, DeletionCandidate


STALE, ORPHAN = QueryCategory.STALE, QueryCategory.ORPHAN


@pytest.fixture
def work():
    return CandidateSet([
        DeletionCandidate(STALE, 1, 10),
        DeletionCandidate(ORPHAN, 2, 30),
        DeletionCandidate(STALE, 2, 30),
        DeletionCandidate(STALE, 3, 20),
    ])


class TestNextCandidate:
    """Highest plan id first, arrival order among equals."""

    def test_peek_does_not_remove(self, work):
        assert work.peek_next() == DeletionCandidate(ORPHAN, 2, 30)
        assert work.peek_next() == DeletionCandidate(ORPHAN, 2, 30)
        assert len(work) == 4

    def test_peek_skips_drained_queries(self, work):
        work.drain_query(2)
        assert work.peek_next().query_id == 3

    def test_empty(self):
        with pytest.raises(IndexError):
            CandidateSet().peek_next()


class TestDrain:
    """Draining drops every row of a query."""

    def test_drain_counts_rows(self, work):
        assert work.drain_query(2) == 2
        assert work.drain_query(2) == 0
        assert len(work) == 2
        assert work.query_ids() == [1, 3]
        assert work.for_category(ORPHAN) == []

    def test_selected_counts_survive_drain(self, work):
        work.drain_query(2)
        assert work.selected_counts == {STALE: 3, ORPHAN: 1}

    def test_rows_for_query(self, work):
        assert work.rows_for_query(2) == [DeletionCandidate(ORPHAN, 2, 30), DeletionCandidate(STALE, 2, 30)]
        assert work.rows_for_query(99) == []

    def test_query_added_again_after_drain(self, work):
        work.drain_query(1)
        work.extend([DeletionCandidate(ORPHAN, 1, 5)])

        assert work.rows_for_query(1) == [DeletionCandidate(ORPHAN, 1, 5)]
        assert len(work) == 4

    def test_full_drain_order(self, work):
        order = []
        while work:
            query_id = work.peek_next().query_id
            order.append(query_id)
            work.drain_query(query_id)
        assert order == [2, 3, 1]
