"""
dbfacade: run ad-hoc queries and stored routines on SQL Server, PostgreSQL or
MySQL/MariaDB through one interface.
"""

from dbfacade.engines import ExecutionFacade, build_facade
from dbfacade.models import ProductTypeEnum, TabularResult

__version__ = "0.1.0"

__all__ = [
    "ExecutionFacade",
    "ProductTypeEnum",
    "TabularResult",
    "build_facade",
]
