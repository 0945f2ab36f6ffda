"""
SQL templates
"""

from qdsclean.database.queries.cleanup_queries import (
    QDSCleanupQueries,
    quote_identifier,
    quote_multipart_name,
    split_multipart_name,
)

__all__ = [
    "QDSCleanupQueries",
    "quote_identifier",
    "quote_multipart_name",
    "split_multipart_name",
]
