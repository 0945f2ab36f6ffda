"""
QDS Cleanup - Entry Point

Command line front end: builds the telemetry store (live SQL Server or a
JSON snapshot), the report sinks and runs one cleanup.
"""

import sys
import os
import json
import argparse
import getpass
from pathlib import Path
from typing import Optional, List

from pydantic import ValidationError

from qdsclean import __version__, __app_name__
from qdsclean.core.config import Settings, get_settings, set_settings, ensure_app_dirs
from qdsclean.core.constants import AuthMethod
from qdsclean.core.exceptions import QDSCleanError, ConfigurationError
from qdsclean.core.logger import setup_logging, get_logger
from qdsclean.database.connection import DatabaseConnection
from qdsclean.database.memory_store import InMemoryTelemetryStore
from qdsclean.database.telemetry_store import SqlServerTelemetryStore
from qdsclean.models.cleanup_models import CleanupOptions
from qdsclean.models.connection_profile import ConnectionProfile, ConnectionProfileValidator
from qdsclean.services.cleanup_service import CleanupService
from qdsclean.services.credential_store import get_credential_store
from qdsclean.services.report_sinks import ReportSink, SqlTableReportSink, CsvReportSink

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_UNEXPECTED = 2


def setup_environment() -> None:
    """Setup environment variables and paths"""
    # Windows: Enable ANSI colors in console
    if sys.platform == 'win32':
        os.system('')  # Enable VT100 escape sequences


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='qdsclean',
        description='Remove stale, internal and orphan queries from a SQL Server Query Store',
    )
    parser.add_argument('--version', action='version', version=f'{__app_name__} {__version__}')
    parser.add_argument('--config', type=Path, help='Settings JSON file')
    parser.add_argument('--log-level', help='Override the configured log level')

    conn = parser.add_argument_group('connection')
    conn.add_argument('--server', help='SQL Server instance (host or host\\instance)')
    conn.add_argument('--port', type=int, default=1433)
    conn.add_argument('--user', default='', help='SQL authentication login')
    conn.add_argument('--windows-auth', action='store_true', help='Use Windows authentication')
    conn.add_argument('--driver', help='ODBC driver name (default: best installed)')
    conn.add_argument('--no-encrypt', action='store_true', help='Disable connection encryption')
    conn.add_argument('--trust-server-certificate', action='store_true')
    conn.add_argument('--save-password', action='store_true',
                      help='Prompt for the SQL login password and store it in the OS keyring')
    conn.add_argument('--snapshot', type=Path,
                      help='Run against a JSON Query Store snapshot instead of a server')
    conn.add_argument('--write-snapshot', type=Path,
                      help='With --snapshot: write the store contents after the run')

    cleanup = parser.add_argument_group('cleanup')
    cleanup.add_argument('--database', '-d', required=True, dest='database_name',
                         help='Database whose Query Store is cleaned')
    cleanup.add_argument('--clean-adhoc-stale', action=argparse.BooleanOptionalAction, default=False)
    cleanup.add_argument('--clean-stale', action=argparse.BooleanOptionalAction, default=True)
    cleanup.add_argument('--clean-internal', action=argparse.BooleanOptionalAction, default=True)
    cleanup.add_argument('--clean-orphan', action=argparse.BooleanOptionalAction, default=True)
    cleanup.add_argument('--retention-hours', type=int,
                         help='Stale threshold: not executed for this many hours')
    cleanup.add_argument('--min-execution-count', type=int,
                         help='Stale threshold: executed fewer times than this')
    cleanup.add_argument('--test', action='store_true',
                         help='Dry run: report only, remove nothing')
    cleanup.add_argument('--verbose', '-v', action='store_true')
    cleanup.add_argument('--debug', action='store_true', help='Log every SQL statement')

    report = parser.add_argument_group('reports')
    report.add_argument('--report-as-text', action='store_true')
    report.add_argument('--report-as-table', action='store_true')
    report.add_argument('--report-output-table',
                        help='Table (or .csv file) receiving the summary report')
    report.add_argument('--query-details-as-table', action='store_true')
    report.add_argument('--query-details-output-table',
                        help='Table (or .csv file) receiving the query details report')
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    try:
        settings = Settings.load(args.config) if args.config else get_settings()
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Cannot load settings: {e}") from e
    if args.log_level:
        settings.logging.level = args.log_level.upper()
    if args.debug:
        settings.logging.level = "DEBUG"
    return set_settings(settings)


def build_options(args: argparse.Namespace, settings: Settings) -> CleanupOptions:
    return CleanupService.validate_options({
        "database_name": args.database_name,
        "clean_adhoc_stale": args.clean_adhoc_stale,
        "clean_stale": args.clean_stale,
        "clean_internal": args.clean_internal,
        "clean_orphan": args.clean_orphan,
        "retention_hours": (
            args.retention_hours if args.retention_hours is not None
            else settings.cleanup.retention_hours
        ),
        "min_execution_count": (
            args.min_execution_count if args.min_execution_count is not None
            else settings.cleanup.min_execution_count
        ),
        "report_as_text": args.report_as_text,
        "report_as_table": args.report_as_table,
        "report_output_table": args.report_output_table,
        "query_details_as_table": args.query_details_as_table,
        "query_details_output_table": args.query_details_output_table,
        "test": args.test,
        "verbose": args.verbose,
        "debug": args.debug,
    })


def build_profile(args: argparse.Namespace, settings: Settings) -> ConnectionProfile:
    if not args.server:
        raise ConfigurationError("Either --server or --snapshot is required")
    try:
        checked = ConnectionProfileValidator(server=args.server, port=args.port, username=args.user)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid connection arguments: {e.error_count()} error(s)",
                                 {"errors": e.errors(include_url=False)}) from e

    windows_auth = args.windows_auth or not checked.username
    return ConnectionProfile(
        server=checked.server,
        port=checked.port,
        auth_method=AuthMethod.WINDOWS if windows_auth else AuthMethod.SQL_SERVER,
        username='' if windows_auth else checked.username,
        driver=args.driver,
        encrypt=not args.no_encrypt,
        trust_server_certificate=args.trust_server_certificate,
        connection_timeout=settings.database.connection_timeout,
    )


def save_password(profile: ConnectionProfile) -> None:
    if profile.auth_method != AuthMethod.SQL_SERVER:
        raise ConfigurationError("--save-password needs --user")
    password = getpass.getpass(f"Password for {profile.username}@{profile.server}: ")
    get_credential_store().set_password(profile.credential_key(), password)


def build_sink(target: Optional[str], connection: Optional[DatabaseConnection],
               debug: bool = False) -> Optional[ReportSink]:
    """CSV file for *.csv targets, otherwise a table on the connected server"""
    if not target:
        return None
    if target.lower().endswith('.csv'):
        return CsvReportSink(Path(target))
    if connection is None:
        raise ConfigurationError(f"Output table {target} needs a server connection (use a .csv file with --snapshot)")
    return SqlTableReportSink(connection, target, debug=debug)


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point"""
    setup_environment()
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args)
    except QDSCleanError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    ensure_app_dirs()
    setup_logging(
        level=settings.logging.level,
        log_dir=settings.logs_dir,
        file_enabled=settings.logging.file_enabled,
        retention_days=settings.logging.retention_days,
    )
    logger = get_logger('main')
    logger.debug(f"Starting {__app_name__} v{__version__}")

    connection: Optional[DatabaseConnection] = None
    try:
        options = build_options(args, settings)

        if args.snapshot:
            store = InMemoryTelemetryStore.from_snapshot(args.snapshot, database_name=options.database_name)
        else:
            profile = build_profile(args, settings)
            if args.save_password:
                save_password(profile)
            connection = DatabaseConnection(profile)
            connection.connect()
            store = SqlServerTelemetryStore(connection, options.database_name, debug=options.debug)

        service = CleanupService(
            store,
            settings=settings,
            summary_sink=build_sink(options.report_output_table, connection, options.debug),
            details_sink=build_sink(options.query_details_output_table, connection, options.debug),
        )
        result = service.run(options)

        if args.write_snapshot and isinstance(store, InMemoryTelemetryStore):
            with open(args.write_snapshot, 'w', encoding='utf-8') as f:
                json.dump(store.to_dict(), f, indent=2)
            logger.info(f"Snapshot written to {args.write_snapshot}")

        logger.debug(f"{result.removed_count} queries processed")
        return EXIT_OK

    except QDSCleanError as e:
        logger.error(str(e))
        return EXIT_ERROR
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        return EXIT_UNEXPECTED
    finally:
        if connection is not None:
            connection.disconnect()


def run() -> None:
    """Console script entry"""
    sys.exit(main())


if __name__ == "__main__":
    run()
