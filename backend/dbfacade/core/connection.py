"""
Collaborators consumed by the façade: where the connection string comes from
and which tables the safety gate refuses.

Both are Protocols so callers can plug in vault-backed or per-tenant versions;
the Settings-backed implementations are what ``build_facade`` wires by default.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from dbfacade.core.config import Settings
from dbfacade.models import ProductTypeEnum


@runtime_checkable
class ConnectionProvider(Protocol):
    def get_connection_string(self) -> str: ...


@runtime_checkable
class ForbiddenTablePolicy(Protocol):
    def get_forbidden_tables(self) -> set[str]: ...


class SettingsConnectionProvider:
    """Connection URL of the configured provider, read from Settings."""

    def __init__(self, settings: Settings, provider: ProductTypeEnum | None = None) -> None:
        self._settings = settings
        self._provider = provider or settings.DATABASE_PROVIDER

    def get_connection_string(self) -> str:
        url = self._settings.connection_url(self._provider)
        if not url:
            raise ValueError(
                f"No connection string configured for provider '{self._provider.value}' "
                f"(set DBFACADE_{self._provider.name}_URL)"
            )
        return url


class StaticConnectionProvider:
    def __init__(self, connection_string: str) -> None:
        self._connection_string = connection_string

    def get_connection_string(self) -> str:
        return self._connection_string


class SettingsForbiddenTablePolicy:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def get_forbidden_tables(self) -> set[str]:
        return set(self._settings.FORBIDDEN_TABLES)


class StaticForbiddenTablePolicy:
    def __init__(self, tables: set[str] | list[str] | tuple[str, ...] = ()) -> None:
        self._tables = {t.strip() for t in tables if t and t.strip()}

    def get_forbidden_tables(self) -> set[str]:
        return set(self._tables)
