"""Console entry point for ``schemacli``."""

from __future__ import annotations

import logging
import sys
from typing import Sequence

from .arguments import parse_arguments
from .config import load_config_file
from .errors import SchemaCliError
from .plugins import CommandRegistry, ConnectorRegistry, PluginContext, PluginLoader
from .plugins.builtin import BUILTIN_PLUGINS
from .session import CommandLineSession

LOG = logging.getLogger(__name__)

SUCCESS = 0
GENERAL_ERROR = 1
KEYBOARD_INTERRUPT = 130

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def configure_logging(level_name: str | None) -> None:
    """Set the root log level from ``-loglevel``; unknown names fall back to WARNING."""

    name = (level_name or "WARNING").strip().upper()
    if name not in _LOG_LEVELS:
        name = "WARNING"
    logging.basicConfig(
        level=getattr(logging, name),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        stream=sys.stderr,
    )


def build_registries() -> tuple[ConnectorRegistry, CommandRegistry]:
    """Load plugins honouring the ``[plugins]`` table of the user config file."""

    user_config = load_config_file(required=False)
    loader = PluginLoader(PluginContext(config=user_config), builtin_plugins=BUILTIN_PLUGINS)
    contributions = loader.load()
    LOG.debug("Loaded plugins", extra={"plugins": [contribution.name for contribution in contributions]})
    return ConnectorRegistry.from_plugins(contributions), CommandRegistry.from_plugins(contributions)


def main(argv: Sequence[str] | None = None) -> int:
    """Run one command line and return the process exit code."""

    args = list(sys.argv[1:] if argv is None else argv)
    configure_logging(parse_arguments(args).get("loglevel"))
    try:
        connectors, commands = build_registries()
        session = CommandLineSession(args, connectors=connectors, commands=commands)
        session.run()
    except KeyboardInterrupt:
        print("Interrupted.", file=sys.stderr)
        return KEYBOARD_INTERRUPT
    except SchemaCliError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return GENERAL_ERROR
    return SUCCESS


if __name__ == "__main__":
    sys.exit(main())
