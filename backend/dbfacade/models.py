"""
Execution models shared by every engine.

Enums: ProductTypeEnum, RoutineKindEnum, ParameterDirectionEnum.
Catalog rows: RoutineParameter, RoutineDescriptor (built per call, never cached).
Output: TabularResult (uniform across SQL Server, PostgreSQL and MySQL).
"""

from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ProductTypeEnum(str, Enum):
    """Supported database engines (sqlserver, postgres, mysql)."""

    SQLSERVER = "sqlserver"
    POSTGRES = "postgres"
    MYSQL = "mysql"

    @classmethod
    def from_alias(cls, value: str) -> "ProductTypeEnum":
        """Map configuration spellings (``SqlServer``, ``PostgreSQL``, ``MariaDB``...) to a member."""
        key = value.strip().lower().replace("_", "").replace("-", "")
        aliases = {
            "sqlserver": cls.SQLSERVER,
            "mssql": cls.SQLSERVER,
            "postgres": cls.POSTGRES,
            "postgresql": cls.POSTGRES,
            "mysql": cls.MYSQL,
            "mariadb": cls.MYSQL,
            "mysqlmariadb": cls.MYSQL,
        }
        if key not in aliases:
            raise ValueError(f"Unsupported database provider: {value!r}")
        return aliases[key]


class RoutineKindEnum(str, Enum):
    FUNCTION = "FUNCTION"
    PROCEDURE = "PROCEDURE"


class ParameterDirectionEnum(str, Enum):
    IN = "IN"
    OUT = "OUT"
    INOUT = "INOUT"

    @classmethod
    def from_catalog(cls, mode: str | None) -> "ParameterDirectionEnum":
        """Catalog ``PARAMETER_MODE`` → direction (NULL means IN)."""
        m = (mode or "IN").strip().upper().replace(" ", "")
        if m in ("OUT", "OUTPUT"):
            return cls.OUT
        if m in ("INOUT", "INPUTOUTPUT"):
            return cls.INOUT
        return cls.IN


# ---------------------------------------------------------------------------
# Catalog metadata
# ---------------------------------------------------------------------------


class RoutineParameter(NamedTuple):
    name: str  # without sigil
    direction: ParameterDirectionEnum
    data_type: str  # declared engine type, lower-cased
    max_length: int | None = None  # -1 means MAX on SQL Server
    precision: int | None = None
    scale: int | None = None
    ordinal: int = 0

    @property
    def is_input(self) -> bool:
        return self.direction in (ParameterDirectionEnum.IN, ParameterDirectionEnum.INOUT)

    @property
    def is_output(self) -> bool:
        return self.direction in (ParameterDirectionEnum.OUT, ParameterDirectionEnum.INOUT)


class RoutineDescriptor(NamedTuple):
    schema: str | None
    name: str
    kind: RoutineKindEnum
    parameters: tuple[RoutineParameter, ...] = ()

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name

    @property
    def input_parameters(self) -> list[RoutineParameter]:
        return [p for p in self.parameters if p.is_input]

    @property
    def output_parameters(self) -> list[RoutineParameter]:
        return [p for p in self.parameters if p.is_output]


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


class TabularResult(BaseModel):
    """Named columns plus rows; the only shape returned to callers."""

    columns: list[str] = Field(default_factory=list)
    rows: list[list[Any]] = Field(default_factory=list)

    @classmethod
    def from_cursor(cls, cursor: Any, max_rows: int | None = None) -> "TabularResult":
        """Materialize the cursor's current result set (works for psycopg, pymysql, pymssql)."""
        desc = cursor.description
        if not desc:
            return cls()
        names = [d[0] for d in desc]
        if max_rows is not None and max_rows > 0:
            fetched = cursor.fetchmany(max_rows)
        else:
            fetched = cursor.fetchall()
        return cls(columns=names, rows=[list(r) for r in fetched])

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def merge_output_row(self, values: dict[str, Any]) -> None:
        """Write output-parameter values into row 0, adding columns and the row when missing."""
        if not values:
            return
        for name in values:
            if name not in self.columns:
                self.columns.append(name)
                for row in self.rows:
                    row.append(None)
        if not self.rows:
            self.rows.append([None] * len(self.columns))
        first = self.rows[0]
        for name, value in values.items():
            first[self.columns.index(name)] = value

    def to_dicts(self) -> list[dict[str, Any]]:
        return [dict(zip(self.columns, row, strict=True)) for row in self.rows]
