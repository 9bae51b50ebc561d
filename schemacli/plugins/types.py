"""Plugin contract primitives shared between the loader and extensions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable, NamedTuple, Protocol, Sequence

from schemacli.config import ConfigFile
from schemacli.connectors import DatabaseConnector
from schemacli.errors import SchemaCliError

CommandHandler = Callable[..., Awaitable[None] | None]


class PluginContext(NamedTuple):
    """Runtime dependencies exposed to plugins."""

    config: ConfigFile | None = None


@dataclass(frozen=True, slots=True)
class ConnectorCapability:
    """Contribution of one database connector."""

    connector: DatabaseConnector

    @property
    def name(self) -> str:
        return self.connector.server_type


@dataclass(frozen=True, slots=True)
class CommandCapability:
    """A command the session can run against an open connection."""

    name: str
    description: str
    handler: CommandHandler | None = None


Capability = ConnectorCapability | CommandCapability


class PluginDescriptor(Protocol):
    """A plugin: a name, a version, the minimum core it needs and its capabilities."""

    name: str
    version: str
    min_core: str

    def register(self, ctx: PluginContext) -> Sequence[Capability]: ...


class PluginError(SchemaCliError):
    """Base error for plugin loader failures."""


class PluginCompatibilityError(PluginError):
    """Raised when a plugin does not satisfy the minimum core version."""
