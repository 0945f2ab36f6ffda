"""
Data models module
"""

from qdsclean.models.connection_profile import ConnectionProfile, ConnectionProfileValidator
from qdsclean.models.telemetry_models import (
    QueryText,
    QueryRecord,
    PlanRecord,
    RuntimeStatsEntry,
    WaitStatsEntry,
    CatalogObject,
    QuerySummary,
    RuntimeStatsSummary,
)
from qdsclean.models.cleanup_models import (
    DeletionCandidate,
    CandidateSet,
    ReportRow,
    QueryDetailRow,
    CleanupOptions,
    CleanupResult,
)

__all__ = [
    "ConnectionProfile",
    "ConnectionProfileValidator",
    "QueryText",
    "QueryRecord",
    "PlanRecord",
    "RuntimeStatsEntry",
    "WaitStatsEntry",
    "CatalogObject",
    "QuerySummary",
    "RuntimeStatsSummary",
    "DeletionCandidate",
    "CandidateSet",
    "ReportRow",
    "QueryDetailRow",
    "CleanupOptions",
    "CleanupResult",
]
