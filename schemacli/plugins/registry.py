"""Registries mapping server types, URLs and command names to plugins."""

from __future__ import annotations

import inspect
import logging
from typing import Iterable

from schemacli.connectors import DatabaseConnector

from .loader import PluginContribution
from .types import CommandCapability

LOG = logging.getLogger(__name__)


class ConnectorRegistry:
    """Known database connectors, looked up by server type or URL."""

    def __init__(self, connectors: Iterable[DatabaseConnector] = ()) -> None:
        self._connectors: dict[str, DatabaseConnector] = {}
        for connector in connectors:
            self.register(connector)

    @classmethod
    def from_plugins(cls, contributions: Iterable[PluginContribution]) -> ConnectorRegistry:
        return cls(connector for contribution in contributions for connector in contribution.connectors)

    def register(self, connector: DatabaseConnector) -> None:
        key = connector.server_type.lower()
        if key in self._connectors:
            LOG.warning("Replacing connector", extra={"server_type": key})
        self._connectors[key] = connector

    @property
    def server_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._connectors))

    def by_server_type(self, server_type: str) -> DatabaseConnector | None:
        return self._connectors.get(server_type.strip().lower())

    def by_url(self, url: str) -> DatabaseConnector | None:
        """Connector whose URL prefix matches ``url``; longest prefix wins."""

        best: tuple[int, DatabaseConnector] | None = None
        lowered = url.strip().lower()
        for connector in self._connectors.values():
            for prefix in connector.url_prefixes:
                if lowered.startswith(prefix.lower()) and (best is None or len(prefix) > best[0]):
                    best = (len(prefix), connector)
        return best[1] if best is not None else None

    def __len__(self) -> int:
        return len(self._connectors)


class CommandRegistry:
    """Collects command capabilities exposed by plugins."""

    def __init__(self) -> None:
        self._commands: dict[str, CommandCapability] = {}

    @classmethod
    def from_plugins(cls, contributions: Iterable[PluginContribution]) -> CommandRegistry:
        registry = cls()
        registry.register_many(command for contribution in contributions for command in contribution.commands)
        return registry

    def register(self, capability: CommandCapability) -> None:
        """Register a command capability."""

        if capability.handler is None:
            raise ValueError(f"Command '{capability.name}' is missing a handler")
        self._commands[capability.name] = capability

    def register_many(self, capabilities: Iterable[CommandCapability]) -> None:
        for capability in capabilities:
            self.register(capability)

    def list_commands(self) -> list[CommandCapability]:
        """Return the known commands."""

        return list(self._commands.values())

    def __contains__(self, name: object) -> bool:
        return name in self._commands

    async def execute(self, name: str, *args: object, **kwargs: object) -> None:
        """Execute a registered command by name; unknown names raise ``KeyError``."""

        capability = self._commands[name]
        handler = capability.handler
        assert handler is not None  # register() guards this
        result = handler(*args, **kwargs)
        if inspect.isawaitable(result):
            await result
