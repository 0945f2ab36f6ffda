"""
Deletion Engine

Drains a candidate set against the Query Store administrative procedures:
highest plan_id first, unforce every plan of that query, remove the query,
then drop every other candidate row of it.
"""

import logging
from typing import List, Tuple, Optional
from dataclasses import dataclass, field

from qdsclean.core.exceptions import (
    AdministrativeCallError,
    DatabaseError,
    PlanUnforceError,
    QueryRemovalError,
)
from qdsclean.core.logger import get_logger
from qdsclean.database.telemetry_store import TelemetryStore
from qdsclean.models.cleanup_models import CandidateSet

logger = get_logger('services.deletion')


@dataclass
class DeletionOutcome:
    """Administrative calls issued (or, in test mode, planned) by a run"""
    dry_run: bool = False
    removed_query_ids: List[int] = field(default_factory=list)
    unforced_plans: List[Tuple[int, int]] = field(default_factory=list)


class DeletionEngine:
    """
    Removes the selected queries from Query Store.

    Each query is removed once even when it was selected under several
    categories. On failure the error propagates and the candidates not yet
    processed stay in the set.
    """

    def __init__(
        self,
        store: TelemetryStore,
        dry_run: bool = False,
        verbose: bool = False,
    ):
        self._store = store
        self.dry_run = dry_run
        self._level = logging.INFO if verbose else logging.DEBUG

    def run(self, candidates: CandidateSet, outcome: Optional[DeletionOutcome] = None) -> DeletionOutcome:
        outcome = outcome or DeletionOutcome(dry_run=self.dry_run)

        while candidates:
            candidate = candidates.peek_next()
            query_id = candidate.query_id

            # Any forced plan blocks sp_query_store_remove_query
            for plan_id in self._plans_to_unforce(candidates, query_id):
                logger.log(self._level, f"Unforce plan : {plan_id} for query :{query_id}")
                if not self.dry_run:
                    self._unforce(query_id, plan_id)
                outcome.unforced_plans.append((query_id, plan_id))

            logger.log(self._level, f"Remove query : {query_id}")
            if not self.dry_run:
                self._remove(query_id, candidate.plan_id)
            outcome.removed_query_ids.append(query_id)

            candidates.drain_query(query_id)

        return outcome

    @staticmethod
    def _plans_to_unforce(candidates: CandidateSet, query_id: int) -> List[int]:
        """Distinct non-zero plan ids of the query, highest first"""
        plan_ids = {c.plan_id for c in candidates.rows_for_query(query_id) if c.plan_id != 0}
        return sorted(plan_ids, reverse=True)

    def _unforce(self, query_id: int, plan_id: int) -> None:
        try:
            self._store.unforce_plan(query_id, plan_id)
        except AdministrativeCallError:
            raise
        except DatabaseError as e:
            logger.error(f"Unforce plan {plan_id} failed for query {query_id} on [{self._store.database_name}]: {e}")
            raise PlanUnforceError(
                f"Unforce plan {plan_id} failed for query {query_id}: {e.message}",
                query_id=query_id,
                plan_id=plan_id,
                database=self._store.database_name,
            ) from e

    def _remove(self, query_id: int, plan_id: int) -> None:
        try:
            self._store.remove_query(query_id)
        except AdministrativeCallError:
            raise
        except DatabaseError as e:
            logger.error(f"Remove query {query_id} failed on [{self._store.database_name}]: {e}")
            raise QueryRemovalError(
                f"Remove query {query_id} failed: {e.message}",
                query_id=query_id,
                plan_id=plan_id,
                database=self._store.database_name,
            ) from e
