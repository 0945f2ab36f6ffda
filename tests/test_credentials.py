"""
Tests for password resolution and the connection string.
"""
import pytest
from unittest.mock import patch

from keyring.errors import KeyringError, PasswordDeleteError

from qdsclean.core.constants import AuthMethod
from qdsclean.core.exceptions import AuthenticationError, CredentialStoreError
from qdsclean.database.connection import DatabaseConnection
from qdsclean.models.connection_profile import ConnectionProfile
from qdsclean.services.credential_store import get_credential_store, PASSWORD_ENV_VAR


class TestCredentialStore:
    """Keyring access with environment override."""

    def test_environment_wins(self, monkeypatch):
        monkeypatch.setenv(PASSWORD_ENV_VAR, "from-env")
        with patch("qdsclean.services.credential_store.keyring") as mock_keyring:
            assert get_credential_store().get_password("SQL01:1433:sa") == "from-env"
            mock_keyring.get_password.assert_not_called()

    def test_keyring_lookup(self):
        with patch("qdsclean.services.credential_store.keyring") as mock_keyring:
            mock_keyring.get_password.return_value = "secret"
            assert get_credential_store().get_password("SQL01:1433:sa") == "secret"
            mock_keyring.get_password.assert_called_once_with("QDSCleanup", "SQL01:1433:sa")

    def test_keyring_failure_returns_none(self):
        with patch("qdsclean.services.credential_store.keyring") as mock_keyring:
            mock_keyring.get_password.side_effect = KeyringError("locked")
            assert get_credential_store().get_password("k") is None

    def test_store_failure_raises(self):
        with patch("qdsclean.services.credential_store.keyring") as mock_keyring:
            mock_keyring.set_password.side_effect = KeyringError("no backend")
            with pytest.raises(CredentialStoreError):
                get_credential_store().set_password("k", "pw")

    def test_delete_missing_is_ok(self):
        with patch("qdsclean.services.credential_store.keyring") as mock_keyring:
            mock_keyring.delete_password.side_effect = PasswordDeleteError("not found")
            assert get_credential_store().delete_password("k")


class TestConnectionString:
    """ODBC connection string assembly."""

    def test_windows_auth(self):
        profile = ConnectionProfile(server="SQL01", driver="ODBC Driver 18 for SQL Server")
        conn_str = DatabaseConnection(profile)._build_connection_string()

        assert "DRIVER={ODBC Driver 18 for SQL Server}" in conn_str
        assert "SERVER=SQL01,1433" in conn_str
        assert "Trusted_Connection=yes" in conn_str
        assert "Encrypt=yes" in conn_str

    def test_sql_auth_escapes_password(self):
        profile = ConnectionProfile(
            server="SQL01", auth_method=AuthMethod.SQL_SERVER, username="sa",
            driver="ODBC Driver 18 for SQL Server", encrypt=False, trust_server_certificate=True,
        )
        conn_str = DatabaseConnection(profile, password="p}w;d")._build_connection_string()

        assert "UID=sa" in conn_str
        assert "PWD={p}}w;d}" in conn_str
        assert "Encrypt=no" in conn_str
        assert "TrustServerCertificate=yes" in conn_str

    def test_sql_auth_without_password(self):
        profile = ConnectionProfile(
            server="SQL01", auth_method=AuthMethod.SQL_SERVER, username="sa",
            driver="ODBC Driver 18 for SQL Server",
        )
        with patch("qdsclean.services.credential_store.keyring") as mock_keyring:
            mock_keyring.get_password.return_value = None
            with pytest.raises(AuthenticationError):
                DatabaseConnection(profile)._build_connection_string()

    def test_named_instance_keeps_default_port_implicit(self):
        assert ConnectionProfile(server="SQL01\\PROD").server_value == "SQL01\\PROD"
        assert ConnectionProfile(server="SQL01\\PROD", port=50000).server_value == "SQL01\\PROD,50000"
