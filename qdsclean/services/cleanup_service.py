"""
Cleanup Service

Runs one Query Store cleanup against a database:
precondition check -> candidate selection -> reports -> deletion.

Each phase completes before the next one starts. Dry-run (``test``) runs
every read and report step and skips only the administrative calls.
"""

import sys
import logging
from typing import Optional, Union, Dict, Any, TextIO, Callable
from datetime import datetime, timezone

from pydantic import ValidationError

from qdsclean.core.config import Settings, get_settings
from qdsclean.core.constants import DATABASE_STATE_ONLINE
from qdsclean.core.exceptions import (
    DatabaseError,
    DatabaseNotFoundError,
    DatabaseOfflineError,
    InvalidOptionsError,
    PreconditionError,
)
from qdsclean.core.logger import get_logger, set_log_database, LogContext
from qdsclean.database.telemetry_store import TelemetryStore
from qdsclean.models.cleanup_models import CleanupOptions, CleanupResult
from qdsclean.services.candidate_selector import CandidateSelector
from qdsclean.services.deletion_engine import DeletionEngine, DeletionOutcome
from qdsclean.services.report_output import (
    format_summary_table,
    format_summary_text,
    format_details_table,
)
from qdsclean.services.report_sinks import (
    ReportSink,
    ReportContext,
    build_cleanup_parameters_xml,
)
from qdsclean.services.size_estimator import SizeEstimator

logger = get_logger('services.cleanup')


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CleanupService:
    """
    Orchestrates a cleanup run.

    Usage:
        service = CleanupService(store, summary_sink=SqlTableReportSink(conn, "dbo.QDSCacheCleanupIndex"))
        result = service.run(CleanupOptions(database_name="Db01", test=True))
    """

    def __init__(
        self,
        store: TelemetryStore,
        settings: Optional[Settings] = None,
        stdout: Optional[TextIO] = None,
        summary_sink: Optional[ReportSink] = None,
        details_sink: Optional[ReportSink] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._settings = settings or get_settings()
        self._stdout = stdout
        self._summary_sink = summary_sink
        self._details_sink = details_sink
        self._clock = clock or _utcnow

    @property
    def stdout(self) -> TextIO:
        return self._stdout or sys.stdout

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    @staticmethod
    def validate_options(options: Union[CleanupOptions, Dict[str, Any]]) -> CleanupOptions:
        if isinstance(options, CleanupOptions):
            return options
        try:
            return CleanupOptions.model_validate(options)
        except ValidationError as e:
            raise InvalidOptionsError(f"Invalid cleanup options: {e.error_count()} error(s)",
                                      {"errors": e.errors(include_url=False)}) from e

    def check_preconditions(self, database_name: str) -> None:
        """Target database must exist and be ONLINE"""
        try:
            state = self._store.get_database_state()
        except DatabaseError as e:
            raise PreconditionError(
                f"Cannot read the state of database [{database_name}]: {e.message}",
                database=database_name,
            ) from e

        if state is None:
            raise DatabaseNotFoundError(database_name)
        if state.upper() != DATABASE_STATE_ONLINE:
            raise DatabaseOfflineError(database_name, state)

    def _check_sinks(self, options: CleanupOptions) -> None:
        if options.report_output_table and self._summary_sink is None:
            raise InvalidOptionsError(
                "No report sink configured for report_output_table",
                {"report_output_table": options.report_output_table},
            )
        if options.query_details_output_table and self._details_sink is None:
            raise InvalidOptionsError(
                "No report sink configured for query_details_output_table",
                {"query_details_output_table": options.query_details_output_table},
            )

    def _emit(self, text: str) -> None:
        self.stdout.write(text + "\n")
        self.stdout.flush()

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def run(self, options: Union[CleanupOptions, Dict[str, Any]]) -> CleanupResult:
        options = self.validate_options(options)
        self._check_sinks(options)

        set_log_database(options.database_name)
        try:
            return self._run(options)
        finally:
            set_log_database(None)

    def _run(self, options: CleanupOptions) -> CleanupResult:
        level = logging.INFO if options.verbose else logging.DEBUG
        database = options.database_name

        self.check_preconditions(database)

        execution_time = self._clock()
        result = CleanupResult(
            execution_time=execution_time,
            server_name=self._store.get_server_name(),
            database_name=database,
            dry_run=options.test,
        )
        if options.test:
            logger.info(f"Test mode: no query will be removed from [{database}]")

        if options.verbose:
            result.total_queries = self._store.count_queries()
            logger.info(f"Total queries: {result.total_queries}")

        with LogContext(logger, f"Selecting cleanup candidates in [{database}]", level):
            candidates = CandidateSelector(self._store, verbose=options.verbose).select(options)
        result.selected_counts = candidates.selected_counts

        cleanup = self._settings.cleanup
        estimator = SizeEstimator(
            self._store,
            runtime_stats_row_bytes=cleanup.runtime_stats_row_bytes,
            wait_stats_row_bytes=cleanup.wait_stats_row_bytes,
        )
        context = ReportContext(
            execution_time=execution_time,
            server_name=result.server_name,
            database_name=database,
            cleanup_parameters=build_cleanup_parameters_xml(options),
        )

        if options.wants_summary:
            with LogContext(logger, "Building summary report", level):
                result.summary = estimator.summarize(candidates)
            if options.report_as_table:
                self._emit(format_summary_table(result.summary))
            if options.report_as_text:
                self._emit(format_summary_text(result.summary))
            if options.report_output_table:
                self._summary_sink.write_summary(context, result.summary)

        if options.wants_details:
            with LogContext(logger, "Building query details report", level):
                result.details = estimator.details(candidates)
            if options.query_details_as_table:
                self._emit(format_details_table(result.details))
            if options.query_details_output_table:
                self._details_sink.write_details(context, result.details)

        outcome = DeletionOutcome(dry_run=options.test)
        result.removed_query_ids = outcome.removed_query_ids
        result.unforced_plans = outcome.unforced_plans
        with LogContext(logger, f"Removing {len(candidates.query_ids())} queries from [{database}]", level):
            DeletionEngine(self._store, dry_run=options.test, verbose=options.verbose).run(candidates, outcome)

        logger.info(
            f"Cleanup of [{database}] finished: {result.removed_count} queries "
            f"{'would be ' if options.test else ''}removed, {len(result.unforced_plans)} plans unforced"
        )
        return result
