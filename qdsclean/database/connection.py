"""
Database connection management for SQL Server
"""

from typing import Optional, List, Dict, Any
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import create_engine, text, bindparam
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.pool import QueuePool

from qdsclean.models.connection_profile import ConnectionProfile
from qdsclean.core.constants import (
    ODBC_DRIVER_PREFERENCES,
    MIN_QUERY_STORE_MAJOR_VERSION,
    ConnectionStatus,
    AuthMethod,
)
from qdsclean.core.config import get_settings
from qdsclean.core.logger import get_logger
from qdsclean.core.exceptions import (
    ConnectionError,
    ConnectionTimeoutError,
    AuthenticationError,
    QueryExecutionError,
    QueryTimeoutError,
)

logger = get_logger('database.connection')


def get_available_odbc_drivers() -> List[str]:
    """Get list of available SQL Server ODBC drivers"""
    import pyodbc

    try:
        drivers = pyodbc.drivers()
    except pyodbc.Error as e:
        logger.error(f"Failed to get ODBC drivers: {e}")
        return []
    return [d for d in drivers if 'SQL Server' in d]


def get_best_odbc_driver() -> Optional[str]:
    """Get the best available ODBC driver"""
    available = get_available_odbc_drivers()

    for preferred in ODBC_DRIVER_PREFERENCES:
        if preferred in available:
            return preferred

    return available[0] if available else None


def _is_timeout(exc: Exception) -> bool:
    message = str(exc).lower()
    return "timeout" in message or "hyt00" in message


@dataclass
class ConnectionInfo:
    """Connection metadata"""
    server_name: str = ""
    database_name: str = ""
    product_version: str = ""
    connected_at: Optional[datetime] = None

    @property
    def major_version(self) -> int:
        """13 for "13.0.7029.3", 0 when unknown"""
        head = self.product_version.split(".", 1)[0]
        return int(head) if head.isdigit() else 0

    @property
    def supports_query_store(self) -> bool:
        return self.major_version >= MIN_QUERY_STORE_MAJOR_VERSION


class DatabaseConnection:
    """
    SQL Server database connection

    Handles connection lifecycle and query execution.
    """

    def __init__(self, profile: ConnectionProfile, password: Optional[str] = None):
        self.profile = profile
        self._password = password
        self._engine: Optional[Engine] = None
        self._status: ConnectionStatus = ConnectionStatus.DISCONNECTED
        self._info: Optional[ConnectionInfo] = None
        self._settings = get_settings()

    @property
    def info(self) -> Optional[ConnectionInfo]:
        return self._info

    @property
    def is_connected(self) -> bool:
        return self._status == ConnectionStatus.CONNECTED

    def _resolve_password(self) -> Optional[str]:
        if self._password:
            return self._password
        from qdsclean.services.credential_store import get_credential_store
        return get_credential_store().get_password(self.profile.credential_key())

    def _build_connection_string(self) -> str:
        """Build full connection string with password"""
        driver = self.profile.driver or get_best_odbc_driver()
        if not driver:
            raise ConnectionError("No SQL Server ODBC driver found", server=self.profile.server)

        parts = [
            f"DRIVER={{{driver}}}",
            f"SERVER={self.profile.server_value}",
            f"DATABASE={self.profile.database}",
            f"APP={{{self.profile.application_name}}}",
            f"Connect Timeout={self.profile.connection_timeout}",
        ]

        if self.profile.auth_method == AuthMethod.SQL_SERVER:
            password = self._resolve_password()
            if not password:
                raise AuthenticationError(
                    "No password found for this connection",
                    {"server": self.profile.server, "username": self.profile.username},
                )
            parts.append(f"UID={self.profile.username}")
            parts.append(f"PWD={{{password.replace('}', '}}')}}}")
        else:
            parts.append("Trusted_Connection=yes")

        parts.append("Encrypt=yes" if self.profile.encrypt else "Encrypt=no")

        if self.profile.trust_server_certificate:
            parts.append("TrustServerCertificate=yes")

        return ";".join(parts)

    def connect(self) -> bool:
        """
        Establish database connection

        Returns:
            True if connection successful

        Raises:
            ConnectionError: If connection fails
            AuthenticationError: If authentication fails
        """
        if self.is_connected:
            return True

        self._status = ConnectionStatus.CONNECTING

        connection_string = self._build_connection_string()

        try:
            self._engine = create_engine(
                "mssql+pyodbc://",
                connect_args={"odbc_connect": connection_string},
                poolclass=QueuePool,
                pool_size=self._settings.database.max_pool_size,
                pool_recycle=self._settings.database.pool_recycle,
                pool_pre_ping=True,
                echo=self._settings.database.echo_sql,
            )

            self._fetch_server_info()

        except InterfaceError as e:
            self._handle_connection_error(f"Connection interface error: {e}")
        except OperationalError as e:
            error_msg = str(e)
            if "Login failed" in error_msg:
                self._handle_connection_error(f"Authentication failed: {e}", AuthenticationError)
            elif _is_timeout(e):
                self._handle_connection_error(f"Connection timed out: {e}", ConnectionTimeoutError)
            else:
                self._handle_connection_error(f"Connection failed: {e}")
        except DBAPIError as e:
            self._handle_connection_error(f"Unexpected connection error: {e}")

        if not self._info.supports_query_store:
            self._handle_connection_error(
                f"{self._info.server_name} runs SQL Server {self._info.product_version}; "
                f"Query Store needs major version {MIN_QUERY_STORE_MAJOR_VERSION} or later"
            )

        self._status = ConnectionStatus.CONNECTED
        logger.info(f"Connected to {self._info.server_name} (SQL Server {self._info.product_version})")
        return True

    def _handle_connection_error(self, message: str, exc_class=ConnectionError) -> None:
        """Handle connection errors"""
        self._status = ConnectionStatus.ERROR
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        logger.error(message)
        if exc_class is AuthenticationError:
            raise exc_class(message, {"server": self.profile.server, "username": self.profile.username})
        raise exc_class(message, server=self.profile.server, database=self.profile.database)

    def _fetch_server_info(self) -> None:
        """Fetch server identity"""
        query = """
        SELECT
            CAST(@@SERVERNAME AS NVARCHAR(255)) AS ServerName,
            CAST(DB_NAME() AS NVARCHAR(128)) AS DatabaseName,
            CAST(SERVERPROPERTY('ProductVersion') AS NVARCHAR(128)) AS ProductVersion
        """

        with self._engine.connect() as conn:
            result = conn.execute(text(query)).fetchone()

            self._info = ConnectionInfo(
                server_name=result[0] or self.profile.server,
                database_name=result[1] or "",
                product_version=result[2] or "",
                connected_at=datetime.now(),
            )

    def disconnect(self) -> None:
        """Close database connection"""
        if self._engine:
            self._engine.dispose()
            self._engine = None

        self._status = ConnectionStatus.DISCONNECTED
        self._info = None
        logger.info(f"Disconnected from {self.profile.server}")

    @staticmethod
    def _prepare(query: str, params: Optional[Dict[str, Any]]):
        """Build a text() clause; list values become expanding IN parameters"""
        clause = text(query)
        if params:
            expanding = [
                bindparam(name, expanding=True)
                for name, value in params.items()
                if isinstance(value, (list, tuple))
            ]
            if expanding:
                clause = clause.bindparams(*expanding)
        return clause

    def execute_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Execute a SQL query and return results

        Args:
            query: SQL query string
            params: Query parameters (lists are bound as IN (...) lists)
            timeout: Lock timeout in seconds

        Returns:
            List of dictionaries with column names as keys

        Raises:
            QueryExecutionError: If query fails
            QueryTimeoutError: If query times out
        """
        if not self.is_connected:
            raise QueryExecutionError("Not connected to database", query=query)

        timeout = timeout or self._settings.database.query_timeout

        try:
            with self._engine.connect() as conn:
                conn.execute(text(f"SET LOCK_TIMEOUT {int(timeout) * 1000}"))

                result = conn.execute(self._prepare(query, params), params or {})

                if result.returns_rows:
                    columns = list(result.keys())
                    rows = result.fetchall()
                    return [dict(zip(columns, row)) for row in rows]

                return []

        except DBAPIError as e:
            if _is_timeout(e):
                raise QueryTimeoutError(f"Query timed out after {timeout}s", query=query) from e
            raise QueryExecutionError(f"Query failed: {e.orig or e}", query=query) from e

    def execute_non_query(
        self,
        query: str,
        params: Optional[Dict[str, Any]] = None
    ) -> int:
        """
        Execute a statement in its own transaction and return affected rows

        Used for the Query Store administrative procedures and report inserts.
        """
        if not self.is_connected:
            raise QueryExecutionError("Not connected to database", query=query)

        try:
            with self._engine.connect() as conn:
                result = conn.execute(self._prepare(query, params), params or {})
                conn.commit()
                return result.rowcount
        except DBAPIError as e:
            if _is_timeout(e):
                raise QueryTimeoutError("Statement timed out", query=query) from e
            raise QueryExecutionError(f"Non-query execution error: {e.orig or e}", query=query) from e

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
        return False
