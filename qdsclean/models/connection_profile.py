"""
Connection profile model for SQL Server connections
"""

from typing import Optional
from dataclasses import dataclass

from pydantic import BaseModel, Field, field_validator

from qdsclean.core.constants import AuthMethod, APP_NAME


@dataclass
class ConnectionProfile:
    """
    SQL Server connection profile

    Contains all information needed to connect to a SQL Server instance.
    Passwords are resolved separately through the credential store.
    """

    server: str = ""
    port: int = 1433
    database: str = "master"  # Connection database, not the cleanup target

    # Authentication
    auth_method: AuthMethod = AuthMethod.WINDOWS
    username: str = ""

    # Connection options
    driver: Optional[str] = None  # Specific driver like "ODBC Driver 18 for SQL Server"
    encrypt: bool = True
    trust_server_certificate: bool = False
    connection_timeout: int = 15
    application_name: str = APP_NAME

    @property
    def server_value(self) -> str:
        """SERVER= value; named instances keep the default port implicit"""
        server = self.server
        if "\\" in server:
            return server if self.port == 1433 else f"{server},{self.port}"
        return f"{server},{self.port}"

    @property
    def display_name(self) -> str:
        return f"{self.server}/{self.database}"

    def credential_key(self) -> str:
        """Keyring user key for SQL authentication"""
        return f"{self.server}:{self.port}:{self.username}"


class ConnectionProfileValidator(BaseModel):
    """Pydantic validator for connection profile"""

    server: str = Field(min_length=1, max_length=255)
    port: int = Field(ge=1, le=65535, default=1433)
    database: str = Field(min_length=1, max_length=128, default="master")
    username: str = Field(default="", max_length=128)

    @field_validator('server')
    @classmethod
    def validate_server(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Server name is required")
        return v
