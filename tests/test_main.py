"""
Tests for the command line entry point.
"""
import json
import pytest
from unittest.mock import MagicMock

from qdsclean import main as cli
from qdsclean.core.config import get_settings
from qdsclean.core.exceptions import ConfigurationError
from qdsclean.core.logger import QDSCleanLogger
from qdsclean.services.report_sinks import CsvReportSink, SqlTableReportSink


@pytest.fixture(autouse=True)
def reset_handlers():
    yield
    app_logger = QDSCleanLogger().logger
    for handler in list(app_logger.handlers):
        handler.close()
        app_logger.removeHandler(handler)


@pytest.fixture
def snapshot(tmp_path, store):
    path = tmp_path / "qds.json"
    path.write_text(json.dumps(store.to_dict()), encoding="utf-8")
    return path


class TestParser:
    """Argument parsing into cleanup options."""

    def test_defaults(self):
        args = cli.build_parser().parse_args(["-d", "Db01"])
        options = cli.build_options(args, get_settings())

        assert options.database_name == "Db01"
        assert options.clean_stale and options.clean_internal and options.clean_orphan
        assert not options.clean_adhoc_stale
        assert options.retention_hours == 168
        assert options.min_execution_count == 2
        assert not options.test

    def test_negated_flags_and_thresholds(self):
        args = cli.build_parser().parse_args([
            "-d", "Db01", "--no-clean-stale", "--clean-adhoc-stale",
            "--retention-hours", "24", "--min-execution-count", "5", "--test",
        ])
        options = cli.build_options(args, get_settings())

        assert not options.clean_stale
        assert options.clean_adhoc_stale
        assert options.retention_hours == 24
        assert options.min_execution_count == 5
        assert options.test

    def test_threshold_defaults_come_from_settings(self):
        settings = get_settings()
        settings.cleanup.retention_hours = 72
        args = cli.build_parser().parse_args(["-d", "Db01"])

        assert cli.build_options(args, settings).retention_hours == 72

    def test_profile_auth(self):
        args = cli.build_parser().parse_args(["-d", "Db01", "--server", "SQL01", "--user", "sa"])
        profile = cli.build_profile(args, get_settings())

        assert profile.auth_method.name == "SQL_SERVER"
        assert profile.username == "sa"
        assert profile.encrypt

    def test_profile_requires_server(self):
        args = cli.build_parser().parse_args(["-d", "Db01"])
        with pytest.raises(ConfigurationError):
            cli.build_profile(args, get_settings())

    def test_profile_rejects_bad_port(self):
        args = cli.build_parser().parse_args(["-d", "Db01", "--server", "SQL01", "--port", "70000"])
        with pytest.raises(ConfigurationError) as exc:
            cli.build_profile(args, get_settings())
        assert exc.value.details["errors"][0]["loc"] == ("port",)


class TestBuildSink:
    def test_none(self):
        assert cli.build_sink(None, None) is None

    def test_csv(self, tmp_path):
        sink = cli.build_sink(str(tmp_path / "r.CSV"), None)
        assert isinstance(sink, CsvReportSink)

    def test_table_needs_connection(self):
        with pytest.raises(ConfigurationError):
            cli.build_sink("dbo.Summary", None)

    def test_table(self):
        assert isinstance(cli.build_sink("dbo.Summary", MagicMock()), SqlTableReportSink)


class TestMain:
    """End to end against a snapshot."""

    def test_dry_run_prints_report(self, snapshot, capsys):
        code = cli.main(["-d", "Db01", "--snapshot", str(snapshot), "--test", "--report-as-table"])

        assert code == cli.EXIT_OK
        out = capsys.readouterr().out
        assert "QueryType" in out
        assert "Orphan" in out

    def test_cleanup_writes_snapshot(self, snapshot, tmp_path):
        result_path = tmp_path / "after.json"

        code = cli.main(["-d", "Db01", "--snapshot", str(snapshot), "--write-snapshot", str(result_path)])

        assert code == cli.EXIT_OK
        after = json.loads(result_path.read_text(encoding="utf-8"))
        assert [q["query_id"] for q in after["queries"]] == [4]

    def test_offline_database_exit_code(self, snapshot):
        data = json.loads(snapshot.read_text(encoding="utf-8"))
        data["state"] = "OFFLINE"
        snapshot.write_text(json.dumps(data), encoding="utf-8")

        assert cli.main(["-d", "Db01", "--snapshot", str(snapshot)]) == cli.EXIT_ERROR

    def test_missing_snapshot(self, tmp_path):
        assert cli.main(["-d", "Db01", "--snapshot", str(tmp_path / "nope.json")]) == cli.EXIT_ERROR

    def test_output_table_without_server(self, snapshot):
        assert cli.main([
            "-d", "Db01", "--snapshot", str(snapshot), "--report-output-table", "dbo.Summary",
        ]) == cli.EXIT_ERROR
