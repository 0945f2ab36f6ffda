"""
Core module - Configuration, constants, exceptions, and logging

Provides:
- Settings/Config management
- Custom exceptions
- Logging
"""

from qdsclean.core.config import Settings, get_settings
from qdsclean.core.constants import *
from qdsclean.core.exceptions import *
from qdsclean.core.logger import get_logger, setup_logging, LogContext

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Logging
    "get_logger",
    "setup_logging",
    "LogContext",
]
