"""Shared fakes for session and resolver tests."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

import pytest

from schemacli import config as config_module
from schemacli.config import LayeredConfig
from schemacli.connectors import ConnectionOptions, RetrievalOptions
from schemacli.options import UserCredentials
from schemacli.plugins import CommandCapability, CommandRegistry, ConnectorRegistry


class FakeConnection:
    def __init__(self) -> None:
        self.close_calls = 0

    async def close(self) -> None:
        self.close_calls += 1


class FakeConnector:
    """In-memory connector recording every interaction."""

    description = "Fake database"

    def __init__(
        self,
        server_type: str = "fakedb",
        *,
        url_prefixes: tuple[str, ...] = ("fakedb://",),
        bundled: Mapping[str, str] | None = None,
        fail_connect: Exception | None = None,
    ) -> None:
        self.server_type = server_type
        self.url_prefixes = url_prefixes
        self._bundled = dict(bundled or {})
        self._fail_connect = fail_connect
        self.connections: list[FakeConnection] = []
        self.seen_credentials: UserCredentials | None = None

    def bundled_config(self) -> Mapping[str, str]:
        return dict(self._bundled)

    def connection_options(self, credentials: UserCredentials, config: LayeredConfig) -> ConnectionOptions:
        self.seen_credentials = credentials
        return ConnectionOptions(
            server_type=self.server_type,
            dsn=config.get_string("url"),
            host=config.get_string("host"),
            database=config.get_string("database"),
            user=credentials.user,
            password=credentials.password,
        )

    async def connect(self, options: ConnectionOptions) -> FakeConnection:
        if self._fail_connect is not None:
            raise self._fail_connect
        connection = FakeConnection()
        self.connections.append(connection)
        return connection

    def retrieval_options(self, connection: FakeConnection) -> RetrievalOptions:
        return RetrievalOptions(identifier_quote="`")


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def isolated_user_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the user config file at an empty temp location."""

    path = tmp_path / "user" / "config.toml"
    monkeypatch.setattr(config_module, "CONFIG_FILE", path)
    return path


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def connectors(connector: FakeConnector) -> ConnectorRegistry:
    return ConnectorRegistry([connector])


@pytest.fixture
def executed() -> list[object]:
    return []


@pytest.fixture
def commands(executed: list[object]) -> CommandRegistry:
    registry = CommandRegistry()

    def _schema(context: object) -> None:
        executed.append(context)

    registry.register(CommandCapability(name="schema", description="Crawl the schema", handler=_schema))
    return registry
