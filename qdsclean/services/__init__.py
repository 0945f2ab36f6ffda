"""
Services module - Cleanup workflow and supporting services
"""

from qdsclean.services.credential_store import CredentialStore, get_credential_store
from qdsclean.services.candidate_selector import CandidateSelector
from qdsclean.services.size_estimator import (
    SizeEstimator,
    compress_query_text,
    decompress_query_text,
)
from qdsclean.services.deletion_engine import DeletionEngine, DeletionOutcome
from qdsclean.services.report_sinks import (
    ReportSink,
    ReportContext,
    SqlTableReportSink,
    CsvReportSink,
    build_cleanup_parameters_xml,
)
from qdsclean.services.cleanup_service import CleanupService

__all__ = [
    "CredentialStore",
    "get_credential_store",
    "CandidateSelector",
    "SizeEstimator",
    "compress_query_text",
    "decompress_query_text",
    "DeletionEngine",
    "DeletionOutcome",
    "ReportSink",
    "ReportContext",
    "SqlTableReportSink",
    "CsvReportSink",
    "build_cleanup_parameters_xml",
    "CleanupService",
]
