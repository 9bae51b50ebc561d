"""Error taxonomy shared by the command-line pipeline.

Every failure is fatal for the session that raised it; nothing here is
retried. ``key`` names the offending option or argument when there is one.
"""

from __future__ import annotations


class SchemaCliError(RuntimeError):
    """Base error for schemacli failures."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class CommandLineError(SchemaCliError):
    """Raised for malformed or missing command-line arguments."""


class NoConnectorFoundError(SchemaCliError):
    """Raised when no connector matches the server type or connection URL."""


class ConfigError(SchemaCliError):
    """Raised for uncompilable patterns, unknown tokens or unreadable config."""


class DatabaseConnectionError(SchemaCliError):
    """Raised when a connector cannot produce a working connection."""


class ExecutionError(SchemaCliError):
    """Raised when the requested command fails against an open connection."""


__all__ = [
    "CommandLineError",
    "ConfigError",
    "DatabaseConnectionError",
    "ExecutionError",
    "NoConnectorFoundError",
    "SchemaCliError",
]
