"""
Application constants and enumerations
"""

from enum import Enum
from typing import Final

# =============================================================================
# Application Info
# =============================================================================

APP_NAME: Final[str] = "QDS Cleanup"
APP_VERSION: Final[str] = "1.0.0"

# =============================================================================
# File Paths
# =============================================================================

CONFIG_FILE: Final[str] = "settings.json"
LOG_FILE: Final[str] = "qdsclean.log"

# =============================================================================
# Database Constants
# =============================================================================

DEFAULT_QUERY_TIMEOUT: Final[int] = 300  # seconds
DEFAULT_CONNECTION_TIMEOUT: Final[int] = 15  # seconds

# ODBC Driver preferences (newest to oldest)
ODBC_DRIVER_PREFERENCES: Final[list[str]] = [
    "ODBC Driver 18 for SQL Server",
    "ODBC Driver 17 for SQL Server",
    "ODBC Driver 13 for SQL Server",
    "SQL Server Native Client 11.0",
    "SQL Server",
]

DATABASE_STATE_ONLINE: Final[str] = "ONLINE"

# SQL Server caps a single request at 2100 parameters
DEFAULT_ID_BATCH_SIZE: Final[int] = 1000

# =============================================================================
# Cleanup Defaults
# =============================================================================

DEFAULT_RETENTION_HOURS: Final[int] = 168  # one week
DEFAULT_MIN_EXECUTION_COUNT: Final[int] = 2

# Query Store ships with SQL Server 2016 (13.x)
MIN_QUERY_STORE_MAJOR_VERSION: Final[int] = 13

# Approximate fixed-width row sizes of the Query Store stats tables (bytes)
RUNTIME_STATS_ROW_BYTES: Final[int] = 653
WAIT_STATS_ROW_BYTES: Final[int] = 315

# Object name labels for queries that cannot be resolved through sys.objects
ADHOC_QUERY_LABEL: Final[str] = "*** adhoc query ***"
DELETED_OBJECT_LABEL: Final[str] = "*** deleted object ***"

# Encoding of NVARCHAR payloads (query text, plan XML)
NVARCHAR_ENCODING: Final[str] = "utf-16-le"

# =============================================================================
# Enumerations
# =============================================================================


class QueryCategory(str, Enum):
    """Retention category a query was selected under"""
    ADHOC_STALE = "AdhocStale"
    STALE = "Stale"
    INTERNAL = "Internal"
    ORPHAN = "Orphan"

    @property
    def title(self) -> str:
        """Heading used by the text report"""
        return {
            "AdhocStale": "Adhoc Stale queries found",
            "Stale": "Stale queries found",
            "Internal": "Internal queries found",
            "Orphan": "Orphan queries found",
        }[self.value]


# Evaluation order of the category predicates
CATEGORY_ORDER: Final[tuple[QueryCategory, ...]] = (
    QueryCategory.ADHOC_STALE,
    QueryCategory.STALE,
    QueryCategory.INTERNAL,
    QueryCategory.ORPHAN,
)


class AuthMethod(str, Enum):
    """Authentication methods"""
    SQL_SERVER = "sql_server"
    WINDOWS = "windows"


class ConnectionStatus(str, Enum):
    """Database connection status"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"
