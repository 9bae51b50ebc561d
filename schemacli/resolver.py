"""Pick the connector plugin for a command line before anything else runs."""

from __future__ import annotations

import logging
from typing import Sequence

from .arguments import ParsedArguments, parse_arguments
from .connectors import DatabaseConnector
from .errors import NoConnectorFoundError
from .plugins.registry import ConnectorRegistry

LOG = logging.getLogger(__name__)

BUNDLED_CONNECTION_KEYS = ("host", "port", "database", "urlx")
URL_CONNECTION_KEYS = ("url",)


class DatabaseConnectorResolver:
    """Resolves a connector from ``-server``, then from a connection URL.

    Only looks at raw arguments and the registry; other flags are ignored.
    """

    def __init__(self, registry: ConnectorRegistry) -> None:
        self._registry = registry
        self.bundled = False
        self.url: str | None = None

    def resolve(self, raw_args: Sequence[str] | ParsedArguments) -> DatabaseConnector:
        parsed = raw_args if isinstance(raw_args, ParsedArguments) else parse_arguments(raw_args)
        self.bundled = False
        self.url = None

        server_type = parsed.get("server")
        if server_type:
            connector = self._registry.by_server_type(server_type)
            if connector is None:
                known = ", ".join(self._registry.server_types) or "none"
                raise NoConnectorFoundError(
                    f"No connector for server type '{server_type}'; known server types: {known}",
                    key="server",
                )
            self.bundled = True
            LOG.info("Using database plugin", extra={"server_type": connector.server_type})
            return connector

        for token in self._url_candidates(parsed):
            connector = self._registry.by_url(token)
            if connector is not None:
                self.url = token
                LOG.info("Using database plugin", extra={"server_type": connector.server_type, "inferred": True})
                return connector

        raise NoConnectorFoundError(
            "Cannot determine the database plugin; provide -server <type> or a recognizable -url",
            key="server",
        )

    @staticmethod
    def _url_candidates(parsed: ParsedArguments) -> tuple[str, ...]:
        explicit = parsed.values("url")
        return explicit + tuple(token for token in parsed.option_values() if token not in explicit)


def parse_connection_config(
    raw_args: Sequence[str] | ParsedArguments,
    *,
    bundled: bool,
    url: str | None = None,
) -> dict[str, str]:
    """Connection keys from the raw arguments, depending on how the connector was chosen."""

    parsed = raw_args if isinstance(raw_args, ParsedArguments) else parse_arguments(raw_args)
    keys = BUNDLED_CONNECTION_KEYS if bundled else URL_CONNECTION_KEYS
    config: dict[str, str] = {}
    for key in keys:
        value = parsed.get(key)
        if value is not None:
            config[key] = value
    if not bundled and "url" not in config and url:
        config["url"] = url
    return config


__all__ = [
    "BUNDLED_CONNECTION_KEYS",
    "DatabaseConnectorResolver",
    "URL_CONNECTION_KEYS",
    "parse_connection_config",
]
