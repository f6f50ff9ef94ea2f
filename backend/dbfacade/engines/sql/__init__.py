"""
Ad-hoc SQL helpers: safety gate and ``@name`` placeholder rewriting.
"""

from dbfacade.engines.sql.placeholders import rewrite_placeholders
from dbfacade.engines.sql.safety import check_query, validate_query

__all__ = [
    "check_query",
    "rewrite_placeholders",
    "validate_query",
]
