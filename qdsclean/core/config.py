"""
Application configuration management using Pydantic Settings
"""

import sys
import os
import json
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from qdsclean.core.constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_QUERY_TIMEOUT,
    DEFAULT_CONNECTION_TIMEOUT,
    DEFAULT_RETENTION_HOURS,
    DEFAULT_MIN_EXECUTION_COUNT,
    DEFAULT_ID_BATCH_SIZE,
    RUNTIME_STATS_ROW_BYTES,
    WAIT_STATS_ROW_BYTES,
)


def get_app_dir() -> Path:
    """
    Get application data directory (OS-specific user data folder).
    Can be overridden with QDSCLEAN_HOME.
    """
    override = os.environ.get('QDSCLEAN_HOME')
    if override:
        return Path(override)

    if sys.platform == 'win32':
        base = Path(os.environ.get('LOCALAPPDATA', Path.home() / 'AppData' / 'Local'))
    elif sys.platform == 'darwin':
        base = Path.home() / 'Library' / 'Application Support'
    else:
        base = Path.home() / '.config'

    return base / APP_NAME.replace(' ', '')


def ensure_app_dirs() -> Path:
    """Create necessary application directories"""
    app_dir = get_app_dir()

    (app_dir / 'config').mkdir(parents=True, exist_ok=True)
    (app_dir / 'logs').mkdir(parents=True, exist_ok=True)

    return app_dir


class DatabaseSettings(BaseSettings):
    """Database connection settings"""

    query_timeout: int = Field(default=DEFAULT_QUERY_TIMEOUT, ge=1, le=3600)
    connection_timeout: int = Field(default=DEFAULT_CONNECTION_TIMEOUT, ge=1, le=120)
    max_pool_size: int = Field(default=2, ge=1, le=20)
    pool_recycle: int = Field(default=3600, ge=60)
    echo_sql: bool = Field(default=False)


class CleanupSettings(BaseSettings):
    """Defaults and sizing constants for the cleanup run"""

    retention_hours: int = Field(default=DEFAULT_RETENTION_HOURS, ge=0)
    min_execution_count: int = Field(default=DEFAULT_MIN_EXECUTION_COUNT, ge=0)
    # Engine-specific approximations, may drift across SQL Server versions
    runtime_stats_row_bytes: int = Field(default=RUNTIME_STATS_ROW_BYTES, ge=1)
    wait_stats_row_bytes: int = Field(default=WAIT_STATS_ROW_BYTES, ge=1)
    id_batch_size: int = Field(default=DEFAULT_ID_BATCH_SIZE, ge=1, le=2000)


class LoggingSettings(BaseSettings):
    """Logging settings"""

    level: str = Field(default="INFO")
    file_enabled: bool = Field(default=True)
    retention_days: int = Field(default=7, ge=1, le=30)

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v = v.upper()
        if v not in valid_levels:
            v = 'INFO'
        return v


class Settings(BaseSettings):
    """Main application settings"""

    model_config = SettingsConfigDict(
        env_prefix='QDSCLEAN_',
        env_nested_delimiter='__',
        extra='ignore',
    )

    # Sub-settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    cleanup: CleanupSettings = Field(default_factory=CleanupSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    # App paths
    app_dir: Path = Field(default_factory=get_app_dir)

    @property
    def config_dir(self) -> Path:
        return self.app_dir / 'config'

    @property
    def logs_dir(self) -> Path:
        return self.app_dir / 'logs'

    @property
    def settings_file(self) -> Path:
        return self.config_dir / CONFIG_FILE

    def save(self) -> None:
        """Save settings to JSON file"""
        ensure_app_dirs()

        data = self.model_dump(
            exclude={'app_dir'},
            mode='json'
        )

        with open(self.settings_file, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, default=str)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> 'Settings':
        """Load settings from JSON file, falling back to defaults"""
        settings_file = Path(path) if path else get_app_dir() / 'config' / CONFIG_FILE

        if settings_file.exists():
            with open(settings_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return cls(**data)

        return cls()


# Global settings instance (cached)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get global settings instance (singleton)"""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def set_settings(settings: Settings) -> Settings:
    """Replace the global settings instance (CLI --config, tests)"""
    global _settings
    _settings = settings
    return _settings

