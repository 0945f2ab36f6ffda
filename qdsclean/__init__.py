"""
QDS Cleanup - Query Store retention cleanup for SQL Server
"""

from qdsclean.core.constants import APP_NAME as __app_name__, APP_VERSION as __version__

__all__ = ["__app_name__", "__version__"]
