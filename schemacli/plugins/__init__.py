"""Connector and command plugins."""

from .builtin import BUILTIN_PLUGINS, PostgreSQLPlugin
from .loader import PluginContribution, PluginLoader
from .registry import CommandRegistry, ConnectorRegistry
from .types import (
    CommandCapability,
    ConnectorCapability,
    PluginCompatibilityError,
    PluginContext,
    PluginDescriptor,
    PluginError,
)

__all__ = [
    "BUILTIN_PLUGINS",
    "CommandCapability",
    "CommandRegistry",
    "ConnectorCapability",
    "ConnectorRegistry",
    "PluginCompatibilityError",
    "PluginContext",
    "PluginContribution",
    "PluginDescriptor",
    "PluginError",
    "PluginLoader",
    "PostgreSQLPlugin",
]
