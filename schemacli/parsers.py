"""Option group parsers that turn layered config into crawl options.

Each parser owns a disjoint set of keys. The session builds them as an
ordered list, calls ``normalize_aliases`` on all of them first and then
``apply`` in order; the order only changes the order of log lines.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Iterable, Mapping, Protocol, runtime_checkable

from pydantic import SecretStr

from .config import COMMAND_LINE, LayeredConfig
from .errors import ConfigError
from .inclusion import InclusionRule
from .infolevel import RETRIEVAL_FLAGS, InfoLevel, SchemaInfoLevel
from .options import OptionsBuilder, UserCredentials, split_types

LOG = logging.getLogger(__name__)

NoticeListener = Callable[[str], None]


@runtime_checkable
class OptionGroupParser(Protocol):
    """Contract implemented by every option group."""

    owned_keys: frozenset[str]

    def normalize_aliases(self) -> None:
        """Rename alias spellings to canonical keys in the shared config."""

    def apply(self) -> None:
        """Read owned keys, mutate the shared builder and mark keys consumed."""


def _ignore(_: str) -> None:
    return None


def _normalize(config: LayeredConfig, aliases: Mapping[str, tuple[str, ...]]) -> None:
    for canonical, spellings in aliases.items():
        config.normalize(canonical, *spellings)


def _owned(aliases: Mapping[str, tuple[str, ...]], extra: Iterable[str] = ()) -> frozenset[str]:
    return frozenset(aliases) | frozenset(extra)


def _notify_override(config: LayeredConfig, key: str, value: object, notify: NoticeListener) -> None:
    if config.source_of(key) != COMMAND_LINE or not config.overridden_sources(key):
        return
    message = f"Overriding {key} from command line to {value}"
    LOG.info(message, extra={"option": key})
    notify(message)


class FilterOptionsParser:
    """Related-table depth and empty-table filtering."""

    ALIASES: Mapping[str, tuple[str, ...]] = {
        "parents": (),
        "children": (),
        "noemptytables": ("no-empty-tables",),
    }

    def __init__(self, config: LayeredConfig, builder: OptionsBuilder, *, notify: NoticeListener = _ignore) -> None:
        self._config = config
        self._builder = builder
        self._notify = notify
        self.owned_keys = _owned(self.ALIASES)

    def normalize_aliases(self) -> None:
        _normalize(self._config, self.ALIASES)

    def apply(self) -> None:
        config = self._config
        for key in ("parents", "children"):
            if not config.has_value(key):
                continue
            depth = config.get_int(key, 0)
            if depth < 0:
                raise ConfigError(f"'{key}' must not be negative, got {depth}", key=key)
            _notify_override(config, key, depth, self._notify)
            setattr(self._builder, key, depth)
            config.consume(key)
        if config.has_value("noemptytables"):
            self._builder.no_empty_tables = config.get_boolean("noemptytables", True)
            config.consume("noemptytables")


class SchemaCrawlerOptionsParser:
    """Title, info level, inclusion rules and grep rules."""

    ALIASES: Mapping[str, tuple[str, ...]] = {
        "title": (),
        "infolevel": ("i",),
        "schemas": (),
        "tabletypes": (),
        "tables": (),
        "excludecolumns": (),
        "synonyms": (),
        "sequences": (),
        "routinetypes": (),
        "routines": (),
        "excludeinout": (),
        "grep-columns": (),
        "grep-inout": (),
        "grep-def": (),
        "invert-match": (),
        "only-matching": (),
    }
    FLAG_PREFIX = "infolevel."

    def __init__(self, config: LayeredConfig, builder: OptionsBuilder, *, notify: NoticeListener = _ignore) -> None:
        self._config = config
        self._builder = builder
        self._notify = notify
        self.owned_keys = _owned(self.ALIASES, (self.FLAG_PREFIX + flag for flag in RETRIEVAL_FLAGS))

    def normalize_aliases(self) -> None:
        _normalize(self._config, self.ALIASES)

    def apply(self) -> None:
        config = self._config
        builder = self._builder

        if config.has_value("title"):
            builder.title = config.get_string("title", "") or ""
            config.consume("title")

        builder.info_level = self._info_level()

        if config.has_value("schemas"):
            builder.schema_rule = self._rule("schemas", builder.schema_rule)
        else:
            LOG.warning("Please provide a -schemas option for efficient retrieval of database metadata")

        if config.has_value("tabletypes"):
            # a blank value clears the filter so every table type is returned
            table_types = config.get_string("tabletypes", "") or ""
            builder.table_types = split_types(table_types) if table_types.strip() else None
            config.consume("tabletypes")

        if config.has_value("tables"):
            builder.table_rule = self._rule("tables", builder.table_rule)
        if config.has_value("excludecolumns"):
            builder.column_rule = self._rule("excludecolumns", builder.column_rule, exclude=True)

        if config.has_value("routinetypes"):
            builder.routine_types = split_types(config.get_string("routinetypes", "") or "")
            config.consume("routinetypes")

        if config.has_value("routines"):
            builder.routine_rule = self._rule("routines", builder.routine_rule)
        if config.has_value("excludeinout"):
            builder.routine_column_rule = self._rule("excludeinout", builder.routine_column_rule, exclude=True)

        if config.has_value("synonyms"):
            builder.synonym_rule = self._rule("synonyms", builder.synonym_rule)
        if config.has_value("sequences"):
            builder.sequence_rule = self._rule("sequences", builder.sequence_rule)

        if config.has_value("invert-match"):
            builder.invert_match = config.get_boolean("invert-match", True)
            config.consume("invert-match")
        if config.has_value("only-matching"):
            builder.only_matching = config.get_boolean("only-matching", True)
            config.consume("only-matching")

        builder.grep_column_rule = self._grep("grep-columns")
        builder.grep_routine_column_rule = self._grep("grep-inout")
        builder.grep_definition_rule = self._grep("grep-def")

    def _info_level(self) -> SchemaInfoLevel:
        config = self._config
        level = InfoLevel.STANDARD
        if config.has_value("infolevel"):
            level = config.get_enum("infolevel", InfoLevel, InfoLevel.STANDARD)
            config.consume("infolevel")
        overrides: dict[str, bool] = {}
        for flag in RETRIEVAL_FLAGS:
            key = self.FLAG_PREFIX + flag
            if config.has_value(key):
                overrides[flag] = config.get_boolean(key)
                config.consume(key)
        return SchemaInfoLevel(level=level, overrides=overrides)

    def _rule(self, key: str, current: InclusionRule, *, exclude: bool = False) -> InclusionRule:
        config = self._config
        if exclude:
            rule = config.get_exclusion_rule(key, current)
        else:
            rule = config.get_inclusion_rule(key, current)
        _notify_override(config, key, rule, self._notify)
        config.consume(key)
        return rule

    def _grep(self, key: str) -> InclusionRule | None:
        if not self._config.has_value(key):
            return None
        rule = self._config.get_inclusion_rule(key)
        self._config.consume(key)
        return rule


class OutputOptionsParser:
    """Output format and destination."""

    ALIASES: Mapping[str, tuple[str, ...]] = {
        "outputformat": ("fmt",),
        "outputfile": ("o",),
    }

    def __init__(self, config: LayeredConfig, builder: OptionsBuilder, *, notify: NoticeListener = _ignore) -> None:
        self._config = config
        self._builder = builder
        self._notify = notify
        self.owned_keys = _owned(self.ALIASES)

    def normalize_aliases(self) -> None:
        _normalize(self._config, self.ALIASES)

    def apply(self) -> None:
        config = self._config
        output = self._builder.output
        updates: dict[str, object] = {}
        if config.has_value("outputformat"):
            output_format = (config.get_string("outputformat", "") or "").strip()
            if output_format:
                updates["output_format"] = output_format
            config.consume("outputformat")
        if config.has_value("outputfile"):
            output_file = (config.get_string("outputfile", "") or "").strip()
            updates["output_file"] = Path(output_file) if output_file else None
            config.consume("outputfile")
        if updates:
            self._builder.output = output.model_copy(update=updates)


class AdditionalConfigParser:
    """Folds every key no other parser owns into a pass-through bag."""

    def __init__(self, config: LayeredConfig, builder: OptionsBuilder, *, reserved: Iterable[str] = ()) -> None:
        self._config = config
        self._builder = builder
        self._reserved = frozenset(reserved)
        self.owned_keys: frozenset[str] = frozenset()

    def normalize_aliases(self) -> None:
        return None

    def apply(self) -> None:
        bag = {
            key: value
            for key, value in self._config.as_dict().items()
            if key not in self._reserved
        }
        if bag:
            LOG.debug("Passing through additional config", extra={"keys": sorted(bag)})
        self._builder.additional_config = bag


class UserCredentialsParser:
    """User name and password, from the command line, environment or a file."""

    ALIASES: Mapping[str, tuple[str, ...]] = {
        "user": (),
        "password": (),
        "password:env": (),
        "password:file": (),
    }

    def __init__(
        self,
        config: LayeredConfig,
        builder: OptionsBuilder,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._config = config
        self._builder = builder
        self._environ = environ if environ is not None else os.environ
        self.owned_keys = _owned(self.ALIASES)

    def normalize_aliases(self) -> None:
        _normalize(self._config, self.ALIASES)

    def apply(self) -> None:
        config = self._config
        user = config.get_string("user")
        if user is not None:
            config.consume("user")
        password = self._password()
        self._builder.credentials = UserCredentials(
            user=user,
            password=SecretStr(password) if password is not None else None,
        )

    def _password(self) -> str | None:
        config = self._config
        if config.has_value("password"):
            config.consume("password")
            return config.get_string("password")
        if config.has_value("password:env"):
            variable = config.get_string("password:env") or ""
            config.consume("password:env")
            try:
                return self._environ[variable]
            except KeyError as exc:
                raise ConfigError(
                    f"Environment variable '{variable}' for the password is not set",
                    key="password:env",
                ) from exc
        if config.has_value("password:file"):
            path = Path(config.get_string("password:file") or "")
            config.consume("password:file")
            try:
                lines = path.read_text().splitlines()
            except OSError as exc:
                raise ConfigError(f"Cannot read password file '{path}': {exc}", key="password:file") from exc
            return lines[0] if lines else ""
        return None


__all__ = [
    "AdditionalConfigParser",
    "FilterOptionsParser",
    "NoticeListener",
    "OptionGroupParser",
    "OutputOptionsParser",
    "SchemaCrawlerOptionsParser",
    "UserCredentialsParser",
]
