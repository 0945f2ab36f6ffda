"""
Candidate Selector

Runs the enabled category predicates against the telemetry store and
collects the results into one CandidateSet.
"""

import logging
from typing import List, Dict

from qdsclean.core.constants import QueryCategory
from qdsclean.core.exceptions import DatabaseError, CandidateSelectionError
from qdsclean.core.logger import get_logger
from qdsclean.database.telemetry_store import TelemetryStore
from qdsclean.models.cleanup_models import CandidateSet, CleanupOptions
from qdsclean.services.predicates import enabled_categories

logger = get_logger('services.candidate_selector')


class CandidateSelector:
    """
    Builds the candidate set for a cleanup run.

    Categories are selected independently, so a query matching two
    categories appears once under each. Any store failure aborts the whole
    selection; a partial set is never returned.
    """

    def __init__(self, store: TelemetryStore, verbose: bool = False):
        self._store = store
        self._level = logging.INFO if verbose else logging.DEBUG
        self.category_counts: Dict[QueryCategory, int] = {}

    def select(self, options: CleanupOptions) -> CandidateSet:
        candidates = CandidateSet()
        self.category_counts = {}

        categories = enabled_categories(options)
        if options.clean_adhoc_stale and options.clean_stale:
            logger.log(self._level, "Adhoc stale pass skipped: covered by the stale pass")

        for category in categories:
            rows = self._select_category(category, options)
            self.category_counts[category] = candidates.extend(rows)
            self._log_category(category, options, self.category_counts[category])

        return candidates

    def _select_category(self, category: QueryCategory, options: CleanupOptions) -> List:
        try:
            return self._store.select_candidates(
                category,
                retention_hours=options.retention_hours,
                min_execution_count=options.min_execution_count,
            )
        except DatabaseError as e:
            logger.error(f"{category.value} selection failed on [{self._store.database_name}]: {e}")
            raise CandidateSelectionError(
                f"{category.value} candidate selection failed: {e.message}",
                category=category.value,
                database=self._store.database_name,
            ) from e

    def _log_category(self, category: QueryCategory, options: CleanupOptions, count: int) -> None:
        if category in (QueryCategory.ADHOC_STALE, QueryCategory.STALE):
            logger.log(
                self._level,
                f"{category.value} queries criteria: executed less than {options.min_execution_count} times, "
                f"and not executed for the last {options.retention_hours} hours"
            )
        logger.log(self._level, f"{category.value} queries found: {count}")
