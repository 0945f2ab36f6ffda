"""
Custom exceptions for QDS Cleanup
"""

from typing import Optional, Any


class QDSCleanError(Exception):
    """Base exception for all application errors"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        details = {k: v for k, v in self.details.items() if v is not None}
        if details:
            return f"{self.message} | Details: {details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(QDSCleanError):
    """Configuration related errors"""
    pass


class InvalidOptionsError(ConfigurationError):
    """Cleanup options failed validation"""
    pass


# =============================================================================
# Database Errors
# =============================================================================


class DatabaseError(QDSCleanError):
    """Base database error"""
    pass


class ConnectionError(DatabaseError):
    """Database connection failed"""

    def __init__(self, message: str, server: Optional[str] = None,
                 database: Optional[str] = None, **kwargs):
        details = {"server": server, "database": database, **kwargs}
        super().__init__(message, details)


class ConnectionTimeoutError(ConnectionError):
    """Connection timed out"""
    pass


class AuthenticationError(DatabaseError):
    """Authentication failed"""
    pass


class QueryExecutionError(DatabaseError):
    """Query execution failed"""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        details = {"query": query[:500] if query else None, **kwargs}
        super().__init__(message, details)


class QueryTimeoutError(QueryExecutionError):
    """Query execution timed out"""
    pass


# =============================================================================
# Precondition Errors
# =============================================================================


class PreconditionError(QDSCleanError):
    """Target database cannot be cleaned"""

    def __init__(self, message: str, database: Optional[str] = None, **kwargs):
        details = {"database": database, **kwargs}
        super().__init__(message, details)
        self.database = database


class DatabaseNotFoundError(PreconditionError):
    """Target database does not exist"""

    def __init__(self, database: str):
        super().__init__(f"The database [{database}] does not exist", database=database)


class DatabaseOfflineError(PreconditionError):
    """Target database is not online"""

    def __init__(self, database: str, state: Optional[str] = None):
        super().__init__(f"The database [{database}] is not online", database=database, state=state)
        self.state = state


# =============================================================================
# Cleanup Errors
# =============================================================================


class CleanupError(QDSCleanError):
    """Base error for the cleanup pipeline"""
    pass


class CandidateSelectionError(CleanupError):
    """A category query failed while building the candidate set"""

    def __init__(self, message: str, category: Optional[str] = None,
                 database: Optional[str] = None, **kwargs):
        details = {"category": category, "database": database, **kwargs}
        super().__init__(message, details)
        self.category = category


class ReportError(CleanupError):
    """Report could not be built or persisted"""

    def __init__(self, message: str, target: Optional[str] = None, **kwargs):
        details = {"target": target, **kwargs}
        super().__init__(message, details)


class AdministrativeCallError(CleanupError):
    """A Query Store administrative procedure failed"""

    def __init__(
        self,
        message: str,
        query_id: Optional[int] = None,
        plan_id: Optional[int] = None,
        database: Optional[str] = None,
        **kwargs
    ):
        details = {"query_id": query_id, "plan_id": plan_id, "database": database, **kwargs}
        super().__init__(message, details)
        self.query_id = query_id
        self.plan_id = plan_id


class PlanUnforceError(AdministrativeCallError):
    """sp_query_store_unforce_plan failed"""
    pass


class QueryRemovalError(AdministrativeCallError):
    """sp_query_store_remove_query failed"""
    pass


# =============================================================================
# Service Errors
# =============================================================================


class ServiceError(QDSCleanError):
    """Service layer errors"""
    pass


class CredentialStoreError(ServiceError):
    """Credential storage errors"""
    pass


class SnapshotError(ServiceError):
    """Telemetry snapshot file could not be loaded"""
    pass
