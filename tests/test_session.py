"""Tests for the command-line session life cycle."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeConnector
from schemacli.config import COMMAND_LINE
from schemacli.errors import (
    CommandLineError,
    DatabaseConnectionError,
    ExecutionError,
    NoConnectorFoundError,
    SchemaCliError,
)
from schemacli.plugins import CommandCapability, CommandRegistry, ConnectorRegistry
from schemacli.session import CommandLineSession, ExecutionContext, SessionPhase

HAPPY_PATH = (
    SessionPhase.INIT,
    SessionPhase.RESOLVE_CONNECTOR,
    SessionPhase.LOAD_CONFIG,
    SessionPhase.PARSE_OPTIONS,
    SessionPhase.ACQUIRE_CONNECTION,
    SessionPhase.EXECUTE,
    SessionPhase.RELEASE,
    SessionPhase.DONE,
)


def _session(args: list[str], connectors: ConnectorRegistry, commands: CommandRegistry, **kwargs) -> CommandLineSession:
    return CommandLineSession(args, connectors=connectors, commands=commands, **kwargs)


@pytest.mark.anyio
async def test_runs_command_with_snapshot_and_releases(
    connector: FakeConnector,
    connectors: ConnectorRegistry,
    commands: CommandRegistry,
    executed: list[object],
) -> None:
    phases: list[SessionPhase] = []
    session = _session(
        ["schema", "-server", "fakedb", "-schemas", "^PUBLIC$", "-tables", ".*"],
        connectors,
        commands,
        on_phase=phases.append,
    )

    session.prepare()
    await session.execute()

    assert session.phase is SessionPhase.DONE
    assert session.history == HAPPY_PATH
    assert tuple(phases) == HAPPY_PATH[1:]
    assert len(executed) == 1
    context = executed[0]
    assert isinstance(context, ExecutionContext)
    assert context.command == "schema"
    assert context.options.schema_rule.matches("PUBLIC")
    assert not context.options.schema_rule.matches("SALES")
    assert context.options.table_rule.matches("X")
    assert context.retrieval_options.identifier_quote == "`"
    assert context.connection is connector.connections[0]
    assert connector.connections[0].close_calls == 1


@pytest.mark.anyio
async def test_command_line_overrides_config_file_with_notice(
    tmp_path: Path,
    connectors: ConnectorRegistry,
    commands: CommandRegistry,
    executed: list[object],
) -> None:
    config_file = tmp_path / "team.toml"
    config_file.write_text('schemas = "SALES"\ntitle = "Team report"\n')
    notices: list[str] = []
    session = _session(
        ["schema", "-server", "fakedb", "-g", str(config_file), "-schemas", "PUBLIC"],
        connectors,
        commands,
        notify=notices.append,
    )

    session.prepare()
    await session.execute()

    assert session.options is not None
    assert session.options.schema_rule.matches("PUBLIC")
    assert not session.options.schema_rule.matches("SALES")
    assert session.options.title == "Team report"
    assert session.notices == tuple(notices)
    assert len(notices) == 1
    assert "schemas" in notices[0]
    assert session.config is not None
    assert session.config.source_of("schemas") == COMMAND_LINE
    assert session.config.source_of("title") == str(config_file)


def test_user_config_sits_below_command_line(
    isolated_user_config: Path,
    connectors: ConnectorRegistry,
    commands: CommandRegistry,
) -> None:
    isolated_user_config.parent.mkdir(parents=True)
    isolated_user_config.write_text('infolevel = "maximum"\noutputformat = "html"\n')
    session = _session(["schema", "-server", "fakedb", "-i", "minimum"], connectors, commands)

    session.prepare()

    assert session.options is not None
    assert session.options.info_level.level.value == "minimum"
    assert session.output_options is not None
    assert session.output_options.output_format == "html"


def test_user_config_can_be_skipped(
    isolated_user_config: Path,
    connectors: ConnectorRegistry,
    commands: CommandRegistry,
) -> None:
    isolated_user_config.parent.mkdir(parents=True)
    isolated_user_config.write_text('title = "From user"\n')
    session = _session(["schema", "-server", "fakedb"], connectors, commands, load_user_config=False)

    session.prepare()

    assert session.options is not None
    assert session.options.title == ""


def test_missing_config_file_fails_session(
    tmp_path: Path,
    connectors: ConnectorRegistry,
    commands: CommandRegistry,
) -> None:
    session = _session(["schema", "-server", "fakedb", "-g", str(tmp_path / "nope.toml")], connectors, commands)

    with pytest.raises(SchemaCliError):
        session.prepare()

    assert session.phase is SessionPhase.FAILED
    assert SessionPhase.LOAD_CONFIG in session.history


@pytest.mark.anyio
async def test_url_infers_connector_and_reaches_connection(
    connector: FakeConnector,
    connectors: ConnectorRegistry,
    commands: CommandRegistry,
) -> None:
    session = _session(["schema", "-url", "fakedb://db1/sales", "-user", "scott"], connectors, commands)

    session.prepare()

    assert session.connector is connector
    assert session.connection_options is not None
    assert session.connection_options.dsn == "fakedb://db1/sales"
    assert session.connection_options.user == "scott"
    await session.execute()
    assert session.phase is SessionPhase.DONE


def test_unresolvable_connector_stops_before_config(
    connectors: ConnectorRegistry,
    commands: CommandRegistry,
    executed: list[object],
) -> None:
    session = _session(["schema", "-tables", ".*"], connectors, commands)

    with pytest.raises(NoConnectorFoundError):
        session.prepare()

    assert session.phase is SessionPhase.FAILED
    assert session.history == (SessionPhase.INIT, SessionPhase.RESOLVE_CONNECTOR, SessionPhase.FAILED)
    assert session.config is None
    assert executed == []


@pytest.mark.anyio
async def test_failing_command_still_releases_once(
    connector: FakeConnector,
    connectors: ConnectorRegistry,
) -> None:
    commands = CommandRegistry()

    def _boom(context: ExecutionContext) -> None:
        raise RuntimeError("disk full")

    commands.register(CommandCapability(name="schema", description="fails", handler=_boom))
    session = _session(["schema", "-server", "fakedb"], connectors, commands)
    session.prepare()

    with pytest.raises(ExecutionError) as excinfo:
        await session.execute()

    assert "disk full" in str(excinfo.value)
    assert connector.connections[0].close_calls == 1
    assert session.phase is SessionPhase.FAILED
    assert session.history[-2:] == (SessionPhase.RELEASE, SessionPhase.FAILED)


def test_unknown_command_fails_before_connecting(
    connector: FakeConnector,
    connectors: ConnectorRegistry,
    commands: CommandRegistry,
) -> None:
    session = _session(["brochure", "-server", "fakedb"], connectors, commands)

    with pytest.raises(CommandLineError) as excinfo:
        session.prepare()

    assert excinfo.value.key == "command"
    assert "schema" in str(excinfo.value)
    assert connector.connections == []
    assert session.connection_options is None
    assert session.history[-2:] == (SessionPhase.PARSE_OPTIONS, SessionPhase.FAILED)


@pytest.mark.anyio
async def test_connect_failure_is_wrapped(commands: CommandRegistry) -> None:
    connector = FakeConnector(fail_connect=OSError("connection refused"))
    session = _session(["schema", "-server", "fakedb"], ConnectorRegistry([connector]), commands)
    session.prepare()

    with pytest.raises(DatabaseConnectionError):
        await session.execute()

    assert session.phase is SessionPhase.FAILED
    assert SessionPhase.RELEASE not in session.history


def test_missing_command_is_rejected(connectors: ConnectorRegistry, commands: CommandRegistry) -> None:
    session = _session(["-server", "fakedb"], connectors, commands)

    with pytest.raises(CommandLineError):
        session.prepare()

    assert session.history[-2:] == (SessionPhase.PARSE_OPTIONS, SessionPhase.FAILED)


def test_command_option_spelling(connectors: ConnectorRegistry, commands: CommandRegistry) -> None:
    session = _session(["-server", "fakedb", "-c", "schema"], connectors, commands)

    session.prepare()

    assert session.command == "schema"


def test_empty_arguments_are_rejected(connectors: ConnectorRegistry, commands: CommandRegistry) -> None:
    session = _session([], connectors, commands)

    with pytest.raises(CommandLineError):
        session.prepare()

    assert session.history == (SessionPhase.INIT, SessionPhase.FAILED)


def test_two_positional_commands_are_rejected(connectors: ConnectorRegistry, commands: CommandRegistry) -> None:
    with pytest.raises(CommandLineError):
        _session(["schema", "details", "-server", "fakedb"], connectors, commands).prepare()


def test_prepare_runs_once(connectors: ConnectorRegistry, commands: CommandRegistry) -> None:
    session = _session(["schema", "-server", "fakedb"], connectors, commands)
    session.prepare()

    with pytest.raises(SchemaCliError):
        session.prepare()


@pytest.mark.anyio
async def test_execute_requires_prepare(connectors: ConnectorRegistry, commands: CommandRegistry) -> None:
    session = _session(["schema", "-server", "fakedb"], connectors, commands)

    with pytest.raises(SchemaCliError):
        await session.execute()

    assert session.phase is SessionPhase.INIT


def test_same_arguments_give_equal_snapshots(connectors: ConnectorRegistry, commands: CommandRegistry) -> None:
    args = ["schema", "-server", "fakedb", "-schemas", "P.*", "-grep-columns", ".*ID", "-invert-match"]
    first = _session(args, connectors, commands)
    second = _session(args, connectors, commands)

    first.prepare()
    second.prepare()

    assert first.options == second.options
    assert first.options is not None
    assert first.options.grep_columns is not None
    assert first.options.grep_columns.invert_match


def test_unowned_keys_pass_through(connectors: ConnectorRegistry, commands: CommandRegistry) -> None:
    session = _session(
        ["schema", "-server", "fakedb", "-host", "db1", "-portable-names", "true", "-password", "x"],
        connectors,
        commands,
    )

    session.prepare()

    assert dict(session.additional_config) == {"portable-names": "true"}


def test_bundled_config_is_lowest_layer(commands: CommandRegistry) -> None:
    connector = FakeConnector(bundled={"host": "bundled-host", "schemas": "BUNDLED"})
    session = _session(["schema", "-server", "fakedb", "-host", "db1"], ConnectorRegistry([connector]), commands)

    session.prepare()

    assert session.connection_options is not None
    assert session.connection_options.host == "db1"
    assert session.options is not None
    assert session.options.schema_rule.matches("BUNDLED")
    assert session.notices == ()


def test_credentials_reach_connector(connector: FakeConnector, connectors: ConnectorRegistry, commands: CommandRegistry) -> None:
    session = _session(
        ["schema", "-server", "fakedb", "-user", "scott", "-password:env", "PGPASS"],
        connectors,
        commands,
        environ={"PGPASS": "tiger"},
    )

    session.prepare()

    assert connector.seen_credentials is not None
    assert connector.seen_credentials.user == "scott"
    assert connector.seen_credentials.password_value() == "tiger"


def test_run_drives_full_life_cycle(
    connector: FakeConnector,
    connectors: ConnectorRegistry,
    commands: CommandRegistry,
    executed: list[object],
) -> None:
    session = _session(["schema", "-server", "fakedb"], connectors, commands)

    session.run()

    assert session.history == HAPPY_PATH
    assert len(executed) == 1
    assert connector.connections[0].close_calls == 1
