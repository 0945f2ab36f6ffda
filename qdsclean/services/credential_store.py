"""
Secure credential storage using OS keyring
"""

import os
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from qdsclean.core.constants import APP_NAME
from qdsclean.core.logger import get_logger
from qdsclean.core.exceptions import CredentialStoreError

logger = get_logger('services.credential_store')

PASSWORD_ENV_VAR = "QDSCLEAN_PASSWORD"


class CredentialStore:
    """
    SQL authentication passwords in the OS keyring

    Uses the operating system's secure credential storage:
    - Windows: Windows Credential Manager
    - macOS: Keychain
    - Linux: Secret Service (GNOME Keyring, KWallet)

    The QDSCLEAN_PASSWORD environment variable takes precedence, for
    unattended runs (SQL Agent jobs, schedulers).
    """

    SERVICE_NAME = APP_NAME.replace(' ', '')  # "QDSCleanup"

    _instance: Optional['CredentialStore'] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def set_password(self, key: str, password: str) -> bool:
        """
        Store password for a connection key

        Args:
            key: Credential key (see ConnectionProfile.credential_key)
            password: Password to store

        Returns:
            True if successful
        """
        try:
            keyring.set_password(self.SERVICE_NAME, key, password)
            logger.debug(f"Password stored for: {key}")
            return True
        except KeyringError as e:
            logger.error(f"Failed to store password: {e}")
            raise CredentialStoreError(f"Failed to store password: {e}")

    def get_password(self, key: str) -> Optional[str]:
        """
        Retrieve password for a connection key

        Returns:
            Password string or None if not found
        """
        env_password = os.environ.get(PASSWORD_ENV_VAR)
        if env_password:
            return env_password

        try:
            return keyring.get_password(self.SERVICE_NAME, key)
        except KeyringError as e:
            logger.error(f"Failed to retrieve password: {e}")
            return None

    def delete_password(self, key: str) -> bool:
        """Delete password; True if deleted or it did not exist"""
        try:
            keyring.delete_password(self.SERVICE_NAME, key)
            logger.debug(f"Password deleted for: {key}")
            return True
        except PasswordDeleteError:
            return True
        except KeyringError as e:
            logger.error(f"Failed to delete password: {e}")
            return False


def get_credential_store() -> CredentialStore:
    """Get the global CredentialStore instance"""
    return CredentialStore()
