"""Plugins shipped with schemacli itself."""

from __future__ import annotations

from typing import Sequence

from schemacli import __version__
from schemacli.connectors import PostgreSQLConnector

from .types import Capability, ConnectorCapability, PluginContext


class PostgreSQLPlugin:
    """Registers the asyncpg-backed PostgreSQL connector."""

    name = "postgresql"
    version = __version__
    min_core = "0.1.0"

    def register(self, ctx: PluginContext) -> Sequence[Capability]:
        return [ConnectorCapability(PostgreSQLConnector())]


BUILTIN_PLUGINS = (PostgreSQLPlugin,)
