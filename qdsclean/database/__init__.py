"""
Database module - SQL Server connection, SQL templates and telemetry stores
"""

from qdsclean.database.connection import (
    DatabaseConnection,
    get_available_odbc_drivers,
    get_best_odbc_driver,
)
from qdsclean.database.queries import QDSCleanupQueries
from qdsclean.database.telemetry_store import TelemetryStore, SqlServerTelemetryStore
from qdsclean.database.memory_store import InMemoryTelemetryStore

__all__ = [
    "DatabaseConnection",
    "get_available_odbc_drivers",
    "get_best_odbc_driver",
    "QDSCleanupQueries",
    "TelemetryStore",
    "SqlServerTelemetryStore",
    "InMemoryTelemetryStore",
]
