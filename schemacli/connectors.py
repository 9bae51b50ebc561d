"""Database connector contract and the built-in PostgreSQL connector."""

from __future__ import annotations

import logging
from typing import Mapping, Protocol, runtime_checkable

import asyncpg
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from .config import LayeredConfig
from .errors import ConfigError, DatabaseConnectionError
from .options import UserCredentials

LOG = logging.getLogger(__name__)


@runtime_checkable
class DatabaseConnection(Protocol):
    """Open connection handed to the command; closed by the session."""

    async def close(self) -> None: ...


class ConnectionOptions(BaseModel):
    """Everything a connector needs to open one connection."""

    model_config = ConfigDict(frozen=True)

    server_type: str
    dsn: str | None = None
    host: str | None = None
    port: int | None = None
    database: str | None = None
    user: str | None = None
    password: SecretStr | None = None
    connect_timeout: float = 10.0
    url_properties: dict[str, str] = Field(default_factory=dict)

    def connect_kwargs(self) -> dict[str, object]:
        kwargs: dict[str, object] = {}
        if self.dsn:
            kwargs["dsn"] = self.dsn
        else:
            kwargs["host"] = self.host or "localhost"
            if self.port is not None:
                kwargs["port"] = self.port
            if self.database:
                kwargs["database"] = self.database
        if self.user:
            kwargs["user"] = self.user
        if self.password is not None:
            kwargs["password"] = self.password.get_secret_value()
        if self.url_properties:
            kwargs["server_settings"] = dict(self.url_properties)
        kwargs.setdefault("timeout", self.connect_timeout)
        return kwargs

    def describe(self) -> str:
        """Password-free description for logs."""

        if self.dsn:
            return self.dsn.split("@", 1)[-1] if "@" in self.dsn else self.dsn
        return f"{self.host or 'localhost'}:{self.port or ''}/{self.database or ''}"


class RetrievalOptions(BaseModel):
    """Connector-specific metadata retrieval settings."""

    model_config = ConfigDict(frozen=True)

    identifier_quote: str = '"'
    supports_catalogs: bool = True
    supports_schemas: bool = True
    metadata_timeout: float | None = None

    def from_config(self, config: LayeredConfig) -> RetrievalOptions:
        """Return a copy with ``retrieval.*`` keys from ``config`` applied."""

        updates: dict[str, object] = {}
        if config.has_value("retrieval.identifier_quote"):
            updates["identifier_quote"] = config.get_string("retrieval.identifier_quote")
        for name in ("supports_catalogs", "supports_schemas"):
            key = f"retrieval.{name}"
            if config.has_value(key):
                updates[name] = config.get_boolean(key, getattr(self, name))
        if config.has_value("retrieval.metadata_timeout"):
            updates["metadata_timeout"] = _float(config, "retrieval.metadata_timeout")
        if not updates:
            return self
        return self.model_copy(update=updates)


@runtime_checkable
class DatabaseConnector(Protocol):
    """Pluggable adapter for one database product."""

    server_type: str
    description: str
    url_prefixes: tuple[str, ...]

    def bundled_config(self) -> Mapping[str, str]:
        """Lowest-priority config shipped with the connector."""

    def connection_options(self, credentials: UserCredentials, config: LayeredConfig) -> ConnectionOptions:
        """Build connection options; does not touch the network."""

    async def connect(self, options: ConnectionOptions) -> DatabaseConnection:
        """Open a connection described by ``options``."""

    def retrieval_options(self, connection: DatabaseConnection) -> RetrievalOptions:
        """Connector defaults for metadata retrieval."""


def _float(config: LayeredConfig, key: str) -> float:
    value = config.get_string(key, "") or ""
    try:
        return float(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid value '{value}' for '{key}'; expected a number", key=key) from exc


def _url_properties(value: str | None) -> dict[str, str]:
    properties: dict[str, str] = {}
    for chunk in (value or "").split("&"):
        if not chunk.strip():
            continue
        name, _, setting = chunk.partition("=")
        properties[name.strip()] = setting.strip()
    return properties


class PostgreSQLConnector:
    """Connector for PostgreSQL servers, connecting through asyncpg."""

    server_type = "postgresql"
    description = "PostgreSQL"
    url_prefixes: tuple[str, ...] = ("postgresql://", "postgres://")

    _BUNDLED_CONFIG: Mapping[str, str] = {
        "host": "localhost",
        "port": "5432",
        "schemas": r"(?!pg_catalog$|information_schema$|pg_toast$).*",
    }

    def __init__(self, *, connect_timeout: float = 10.0) -> None:
        self._connect_timeout = connect_timeout

    def bundled_config(self) -> Mapping[str, str]:
        return dict(self._BUNDLED_CONFIG)

    def connection_options(self, credentials: UserCredentials, config: LayeredConfig) -> ConnectionOptions:
        timeout = self._connect_timeout
        if config.has_value("connect-timeout"):
            timeout = _float(config, "connect-timeout")
        password = credentials.password
        url = config.get_string("url")
        if url:
            if not url.startswith(self.url_prefixes):
                raise DatabaseConnectionError(
                    f"Connection URL '{url}' is not a PostgreSQL URL", key="url"
                )
            return ConnectionOptions(
                server_type=self.server_type,
                dsn=url,
                user=credentials.user,
                password=password,
                connect_timeout=timeout,
            )
        return ConnectionOptions(
            server_type=self.server_type,
            host=config.get_string("host", "localhost"),
            port=config.get_int("port", 5432),
            database=config.get_string("database"),
            user=credentials.user,
            password=password,
            connect_timeout=timeout,
            url_properties=_url_properties(config.get_string("urlx")),
        )

    async def connect(self, options: ConnectionOptions) -> DatabaseConnection:
        LOG.info("Connecting to PostgreSQL", extra={"target": options.describe()})
        try:
            return await asyncpg.connect(**options.connect_kwargs())
        except Exception as exc:
            raise DatabaseConnectionError(
                f"Failed to connect to '{options.describe()}': {exc}"
            ) from exc

    def retrieval_options(self, connection: DatabaseConnection) -> RetrievalOptions:
        # PostgreSQL catalogs are databases; metadata is only reachable per database
        return RetrievalOptions(supports_catalogs=False, supports_schemas=True)


__all__ = [
    "ConnectionOptions",
    "DatabaseConnection",
    "DatabaseConnector",
    "PostgreSQLConnector",
    "RetrievalOptions",
]
