"""Command-line session: resolve, configure, connect, run one command, release."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Mapping, Sequence

from .arguments import ParsedArguments, parse_arguments
from .config import BUNDLED, COMMAND_LINE, CONNECTION, LayeredConfig, load_config_file
from .connectors import ConnectionOptions, DatabaseConnection, DatabaseConnector, RetrievalOptions
from .errors import (
    CommandLineError,
    DatabaseConnectionError,
    ExecutionError,
    SchemaCliError,
)
from .options import OptionsBuilder, OptionsSnapshot, OutputOptions, UserCredentials
from .parsers import (
    AdditionalConfigParser,
    FilterOptionsParser,
    NoticeListener,
    OptionGroupParser,
    OutputOptionsParser,
    SchemaCrawlerOptionsParser,
    UserCredentialsParser,
)
from .plugins.registry import CommandRegistry, ConnectorRegistry
from .resolver import (
    BUNDLED_CONNECTION_KEYS,
    URL_CONNECTION_KEYS,
    DatabaseConnectorResolver,
    parse_connection_config,
)

LOG = logging.getLogger(__name__)

SESSION_KEYS = frozenset(
    {"command", "configfile", "server", "loglevel", "connect-timeout"}
    | set(BUNDLED_CONNECTION_KEYS)
    | set(URL_CONNECTION_KEYS)
)

PhaseListener = Callable[["SessionPhase"], None]


class SessionPhase(str, Enum):
    """Steps of the session life cycle, in order."""

    INIT = "init"
    RESOLVE_CONNECTOR = "resolve_connector"
    LOAD_CONFIG = "load_config"
    PARSE_OPTIONS = "parse_options"
    ACQUIRE_CONNECTION = "acquire_connection"
    EXECUTE = "execute"
    RELEASE = "release"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ExecutionContext:
    """Everything a command handler receives."""

    command: str
    connection: DatabaseConnection
    connector: DatabaseConnector
    options: OptionsSnapshot
    output_options: OutputOptions
    retrieval_options: RetrievalOptions
    additional_config: Mapping[str, str | None]


class CommandLineSession:
    """Runs one command for one command line; owns its config and connection."""

    def __init__(
        self,
        args: Sequence[str] | None,
        *,
        connectors: ConnectorRegistry,
        commands: CommandRegistry,
        load_user_config: bool = True,
        environ: Mapping[str, str] | None = None,
        notify: NoticeListener | None = None,
        on_phase: PhaseListener | None = None,
    ) -> None:
        self._args = tuple(args or ())
        self._resolver = DatabaseConnectorResolver(connectors)
        self._commands = commands
        self._load_user_config = load_user_config
        self._environ = environ
        self._notify = notify
        self._on_phase = on_phase
        self._phase = SessionPhase.INIT
        self._history: list[SessionPhase] = [SessionPhase.INIT]
        self._notices: list[str] = []
        self._parsed: ParsedArguments | None = None
        self._connector: DatabaseConnector | None = None
        self._config: LayeredConfig | None = None
        self._command: str | None = None
        self._options: OptionsSnapshot | None = None
        self._output_options: OutputOptions | None = None
        self._credentials: UserCredentials | None = None
        self._additional_config: Mapping[str, str | None] = {}
        self._connection_options: ConnectionOptions | None = None

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def history(self) -> tuple[SessionPhase, ...]:
        """Every phase entered so far, in order."""

        return tuple(self._history)

    @property
    def notices(self) -> tuple[str, ...]:
        return tuple(self._notices)

    @property
    def connector(self) -> DatabaseConnector | None:
        return self._connector

    @property
    def config(self) -> LayeredConfig | None:
        return self._config

    @property
    def command(self) -> str | None:
        return self._command

    @property
    def options(self) -> OptionsSnapshot | None:
        return self._options

    @property
    def output_options(self) -> OutputOptions | None:
        return self._output_options

    @property
    def additional_config(self) -> Mapping[str, str | None]:
        return self._additional_config

    @property
    def connection_options(self) -> ConnectionOptions | None:
        return self._connection_options

    def run(self) -> None:
        """Prepare, then execute the command on a fresh event loop."""

        self.prepare()
        asyncio.run(self.execute())

    def prepare(self) -> None:
        """Run every step up to and including connection acquisition."""

        if self._phase is not SessionPhase.INIT:
            raise SchemaCliError(f"Session cannot be prepared from phase '{self._phase.value}'")
        try:
            self._init()
            self._resolve_connector()
            self._load_config()
            self._parse_options()
            self._acquire_connection()
        except BaseException:
            self._transition(SessionPhase.FAILED)
            raise

    async def execute(self) -> None:
        """Open the connection, run the command and always release the connection."""

        if self._phase is not SessionPhase.ACQUIRE_CONNECTION or self._connection_options is None:
            raise SchemaCliError("No connection options provided; call prepare() first")
        self._transition(SessionPhase.EXECUTE)
        try:
            connection = await self._open()
        except BaseException:
            self._transition(SessionPhase.FAILED)
            raise

        try:
            await self._run_command(connection)
        except BaseException:
            await self._release(connection, failing=True)
            self._transition(SessionPhase.FAILED)
            raise
        try:
            await self._release(connection, failing=False)
        except BaseException:
            self._transition(SessionPhase.FAILED)
            raise
        self._transition(SessionPhase.DONE)

    def _transition(self, phase: SessionPhase) -> None:
        LOG.debug("Session phase", extra={"from": self._phase.value, "to": phase.value})
        self._phase = phase
        self._history.append(phase)
        if self._on_phase is not None:
            self._on_phase(phase)

    def _emit(self, message: str) -> None:
        self._notices.append(message)
        if self._notify is not None:
            self._notify(message)

    def _init(self) -> None:
        if not self._args:
            raise CommandLineError("Please provide command-line arguments")
        self._parsed = parse_arguments(self._args)
        if len(self._parsed.positionals) > 1:
            extra = " ".join(self._parsed.positionals[1:])
            raise CommandLineError(f"Only one command can be run at a time; unexpected arguments: {extra}")

    def _resolve_connector(self) -> None:
        self._transition(SessionPhase.RESOLVE_CONNECTOR)
        assert self._parsed is not None
        self._connector = self._resolver.resolve(self._parsed)

    def _load_config(self) -> None:
        self._transition(SessionPhase.LOAD_CONFIG)
        assert self._parsed is not None and self._connector is not None
        config = LayeredConfig()
        config.merge(self._connector.bundled_config(), name=BUNDLED)
        if self._load_user_config:
            user_config = load_config_file(required=False)
            if user_config.options:
                config.merge(user_config.options, name="user config")
        for path in self._parsed.values("g", "configfile"):
            config_file = load_config_file(Path(path))
            config.merge(config_file.options, name=path)
        inline: dict[str, str | None] = dict(self._parsed.pairs)
        if self._parsed.positionals:
            inline["command"] = self._parsed.positionals[0]
        config.merge(inline, name=COMMAND_LINE)
        config.normalize("command", "c")
        config.normalize("configfile", "g")
        self._config = config

    def _parse_options(self) -> None:
        self._transition(SessionPhase.PARSE_OPTIONS)
        config = self._config
        assert config is not None
        command = (config.get_string("command") or "").strip()
        if not command:
            raise CommandLineError("No command specified; provide a command such as 'schema'", key="command")
        if command not in self._commands:
            available = ", ".join(sorted(capability.name for capability in self._commands.list_commands()))
            raise CommandLineError(
                f"Unknown command '{command}'; available commands: {available or 'none'}",
                key="command",
            )
        self._command = command
        config.consume("command")

        builder = OptionsBuilder()
        groups: list[OptionGroupParser] = [
            FilterOptionsParser(config, builder, notify=self._emit),
            SchemaCrawlerOptionsParser(config, builder, notify=self._emit),
            OutputOptionsParser(config, builder, notify=self._emit),
        ]
        credentials = UserCredentialsParser(config, builder, environ=self._environ)
        reserved = set(SESSION_KEYS) | credentials.owned_keys
        for group in groups:
            reserved |= group.owned_keys
        parsers: list[OptionGroupParser] = [
            *groups,
            AdditionalConfigParser(config, builder, reserved=reserved),
            credentials,
        ]
        for parser in parsers:
            parser.normalize_aliases()
        for parser in parsers:
            parser.apply()

        self._options = builder.to_options()
        self._output_options = builder.output
        self._credentials = builder.credentials
        self._additional_config = builder.to_additional_config()
        LOG.debug("Parsed options", extra={"command": command, "options": self._options})

    def _acquire_connection(self) -> None:
        self._transition(SessionPhase.ACQUIRE_CONNECTION)
        config = self._config
        assert config is not None and self._parsed is not None and self._connector is not None
        assert self._credentials is not None
        config.merge(
            parse_connection_config(self._parsed, bundled=self._resolver.bundled, url=self._resolver.url),
            name=CONNECTION,
        )
        try:
            self._connection_options = self._connector.connection_options(self._credentials, config)
        except SchemaCliError:
            raise
        except Exception as exc:
            raise DatabaseConnectionError(f"Cannot build connection options: {exc}") from exc

    async def _open(self) -> DatabaseConnection:
        assert self._connector is not None and self._connection_options is not None
        try:
            return await self._connector.connect(self._connection_options)
        except SchemaCliError:
            raise
        except Exception as exc:
            raise DatabaseConnectionError(f"Cannot connect: {exc}") from exc

    async def _run_command(self, connection: DatabaseConnection) -> None:
        assert self._connector is not None and self._config is not None and self._command is not None
        assert self._options is not None and self._output_options is not None
        command = self._command
        retrieval_options = self._connector.retrieval_options(connection).from_config(self._config)
        context = ExecutionContext(
            command=command,
            connection=connection,
            connector=self._connector,
            options=self._options,
            output_options=self._output_options,
            retrieval_options=retrieval_options,
            additional_config=self._additional_config,
        )
        LOG.info("Executing command", extra={"command": command})
        try:
            await self._commands.execute(command, context)
        except SchemaCliError:
            raise
        except Exception as exc:
            raise ExecutionError(f"Command '{command}' failed: {exc}", key="command") from exc

    async def _release(self, connection: DatabaseConnection, *, failing: bool) -> None:
        self._transition(SessionPhase.RELEASE)
        try:
            await connection.close()
        except Exception as exc:
            if failing:
                LOG.warning("Failed to close connection after command failure", exc_info=exc)
                return
            raise DatabaseConnectionError(f"Failed to close connection: {exc}") from exc


__all__ = [
    "CommandLineSession",
    "ExecutionContext",
    "SESSION_KEYS",
    "SessionPhase",
]
