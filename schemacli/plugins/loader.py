"""Collects connectors and commands from built-in and installed plugins."""

from __future__ import annotations

import importlib.metadata as metadata
import inspect
import logging
from dataclasses import dataclass
from typing import Iterable

from schemacli import __version__
from schemacli.config import ConfigFile
from schemacli.connectors import DatabaseConnector

from .types import (
    CommandCapability,
    ConnectorCapability,
    PluginCompatibilityError,
    PluginContext,
    PluginDescriptor,
    PluginError,
)

LOG = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "schemacli.plugins"
BUILTIN = "builtin"

PluginSource = PluginDescriptor | type[PluginDescriptor]


def _version_key(value: str) -> tuple[int, int, int]:
    numbers = [int(part) if part.isdigit() else 0 for part in value.split(".")[:3]]
    numbers.extend([0] * (3 - len(numbers)))
    return numbers[0], numbers[1], numbers[2]


def _instantiate(source: object) -> PluginDescriptor:
    return source() if inspect.isclass(source) else source  # type: ignore[return-value]


@dataclass(frozen=True, slots=True)
class PluginContribution:
    """Connectors and commands one enabled plugin adds to the registries."""

    name: str
    version: str
    origin: str
    connectors: tuple[DatabaseConnector, ...] = ()
    commands: tuple[CommandCapability, ...] = ()


class PluginLoader:
    """Loads plugin contributions for one process.

    Entry points in ``schemacli.plugins`` replace built-ins of the same name.
    The ``[plugins]`` table of the context's config file decides which
    plugins are enabled.
    """

    def __init__(
        self,
        ctx: PluginContext,
        *,
        builtin_plugins: Iterable[PluginSource] = (),
        core_version: str = __version__,
        entry_point_group: str = ENTRY_POINT_GROUP,
    ) -> None:
        self._ctx = ctx
        self._config = ctx.config or ConfigFile()
        self._builtin_plugins = tuple(builtin_plugins)
        self._core_version = core_version
        self._entry_point_group = entry_point_group

    def descriptors(self) -> dict[str, tuple[str, PluginDescriptor]]:
        """Plugin descriptors by name, each with the origin it came from."""

        found: dict[str, tuple[str, PluginDescriptor]] = {}
        for source in self._builtin_plugins:
            descriptor = _instantiate(source)
            found[descriptor.name] = (BUILTIN, descriptor)
        entry_points = metadata.entry_points().select(group=self._entry_point_group)
        for entry_point in sorted(entry_points, key=lambda ep: ep.name):
            try:
                descriptor = _instantiate(entry_point.load())
            except Exception as exc:
                raise PluginError(f"Failed to load plugin entry point '{entry_point.name}': {exc}") from exc
            if descriptor.name in found:
                LOG.info("Installed plugin replaces built-in", extra={"plugin": descriptor.name})
            found[descriptor.name] = (entry_point.value, descriptor)
        return found

    def load(self) -> list[PluginContribution]:
        """Register every enabled, compatible plugin."""

        contributions: list[PluginContribution] = []
        for name, (origin, descriptor) in self.descriptors().items():
            if not self._config.is_plugin_enabled(name):
                LOG.debug("Skipping disabled plugin", extra={"plugin": name})
                continue
            try:
                self._check_core_version(descriptor)
            except PluginCompatibilityError as exc:
                LOG.warning("Skipping plugin: %s", exc, extra={"plugin": name})
                continue
            contributions.append(self._contribution(origin, descriptor))
        return contributions

    def _check_core_version(self, descriptor: PluginDescriptor) -> None:
        min_core = getattr(descriptor, "min_core", "0.0.0")
        if _version_key(self._core_version) < _version_key(min_core):
            raise PluginCompatibilityError(
                f"Plugin '{descriptor.name}' requires schemacli>={min_core}, found {self._core_version}"
            )

    def _contribution(self, origin: str, descriptor: PluginDescriptor) -> PluginContribution:
        try:
            capabilities = tuple(descriptor.register(self._ctx))
        except Exception as exc:
            raise PluginError(f"Failed to register plugin '{descriptor.name}': {exc}") from exc

        connectors: list[DatabaseConnector] = []
        commands: list[CommandCapability] = []
        for capability in capabilities:
            if isinstance(capability, ConnectorCapability):
                connectors.append(capability.connector)
            elif isinstance(capability, CommandCapability):
                commands.append(capability)
            else:
                raise PluginError(f"Plugin '{descriptor.name}' returned an unsupported capability: {capability!r}")
        LOG.debug(
            "Loaded plugin",
            extra={
                "plugin": descriptor.name,
                "origin": origin,
                "connectors": [connector.server_type for connector in connectors],
                "commands": [command.name for command in commands],
            },
        )
        return PluginContribution(
            name=descriptor.name,
            version=descriptor.version,
            origin=origin,
            connectors=tuple(connectors),
            commands=tuple(commands),
        )
