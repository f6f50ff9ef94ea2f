"""Façade configuration loaded from environment variables (``DBFACADE_`` prefix)."""

from __future__ import annotations

import json
from typing import Annotated, Any

from pydantic import BeforeValidator, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from dbfacade.models import ProductTypeEnum


def parse_table_list(v: Any) -> list[str]:
    """Accept ``"a,b"``, ``'["a","b"]'`` or a list; return stripped, non-empty names."""
    if v is None:
        return []
    if isinstance(v, str):
        s = v.strip()
        if s.startswith("["):
            v = json.loads(s)
        else:
            v = s.split(",")
    if isinstance(v, (list, tuple, set, frozenset)):
        return [str(i).strip() for i in v if str(i).strip()]
    raise ValueError(f"Expected list of table names, got: {type(v).__name__}")


class Settings(BaseSettings):
    """Settings for the execution façade."""

    model_config = SettingsConfigDict(
        env_prefix="DBFACADE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )

    DATABASE_PROVIDER: ProductTypeEnum = ProductTypeEnum.SQLSERVER

    # Connection URLs, one per engine; only the active provider's is used.
    SQLSERVER_URL: str | None = None
    POSTGRES_URL: str | None = None
    MYSQL_URL: str | None = None

    FORBIDDEN_TABLES: Annotated[list[str], NoDecode, BeforeValidator(parse_table_list)] = []

    EXTERNAL_DB_CONNECT_TIMEOUT: int = 10
    # Seconds; 0 or None disables the per-statement timeout.
    EXTERNAL_DB_STATEMENT_TIMEOUT: float | None = 300

    QUERY_MAX_ROWS: int = 10000

    HASH_ROUNDS: int = 12

    @field_validator("DATABASE_PROVIDER", mode="before")
    @classmethod
    def _provider_alias(cls, v: Any) -> Any:
        if isinstance(v, str):
            return ProductTypeEnum.from_alias(v)
        return v

    @field_validator("HASH_ROUNDS")
    @classmethod
    def _rounds_in_range(cls, v: int) -> int:
        if not 4 <= v <= 31:
            raise ValueError("HASH_ROUNDS must be between 4 and 31")
        return v

    def connection_url(self, provider: ProductTypeEnum | None = None) -> str | None:
        pt = provider or self.DATABASE_PROVIDER
        return {
            ProductTypeEnum.SQLSERVER: self.SQLSERVER_URL,
            ProductTypeEnum.POSTGRES: self.POSTGRES_URL,
            ProductTypeEnum.MYSQL: self.MYSQL_URL,
        }[pt]


settings = Settings()
