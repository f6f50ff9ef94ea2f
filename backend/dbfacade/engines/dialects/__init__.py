"""
Engine dialects: SQL Server (pymssql), PostgreSQL (psycopg), MySQL/MariaDB (pymysql).

Exports: EngineDialect, get_dialect, is_json_parameter.
"""

from dbfacade.engines.dialects.base import EngineDialect, split_qualified_name
from dbfacade.engines.dialects.json_detect import is_json_parameter
from dbfacade.engines.dialects.mysql import MysqlDialect
from dbfacade.engines.dialects.postgres import PostgresDialect
from dbfacade.engines.dialects.sqlserver import SqlServerDialect
from dbfacade.models import ProductTypeEnum

_DIALECTS: dict[ProductTypeEnum, type[EngineDialect]] = {
    ProductTypeEnum.SQLSERVER: SqlServerDialect,
    ProductTypeEnum.POSTGRES: PostgresDialect,
    ProductTypeEnum.MYSQL: MysqlDialect,
}


def get_dialect(provider: ProductTypeEnum | str) -> EngineDialect:
    """Return a dialect instance for *provider* (enum member or alias string)."""
    pt = provider if isinstance(provider, ProductTypeEnum) else ProductTypeEnum.from_alias(provider)
    return _DIALECTS[pt]()


__all__ = [
    "EngineDialect",
    "MysqlDialect",
    "PostgresDialect",
    "SqlServerDialect",
    "get_dialect",
    "is_json_parameter",
    "split_qualified_name",
]
