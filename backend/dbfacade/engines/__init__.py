"""
Engines: per-database dialects and the ExecutionFacade that drives them.
"""

from dbfacade.engines.dialects import EngineDialect, get_dialect
from dbfacade.engines.executor import ExecutionFacade, build_facade

__all__ = [
    "EngineDialect",
    "ExecutionFacade",
    "build_facade",
    "get_dialect",
]
