"""Options assembled while parsing, and the immutable snapshots they produce."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from pydantic import BaseModel, ConfigDict, SecretStr

from .inclusion import INCLUDE_ALL, GrepRule, InclusionRule
from .infolevel import SchemaInfoLevel

DEFAULT_TABLE_TYPES: tuple[str, ...] = ("TABLE", "VIEW")
DEFAULT_ROUTINE_TYPES: tuple[str, ...] = ("PROCEDURE", "FUNCTION")


def split_types(value: str) -> tuple[str, ...]:
    """Turn ``"TABLE, VIEW"`` into ``("TABLE", "VIEW")``."""

    return tuple(token.strip() for token in value.split(",") if token.strip())


@dataclass(frozen=True, slots=True)
class OptionsSnapshot:
    """Frozen crawl options handed to command execution."""

    title: str = ""
    info_level: SchemaInfoLevel = field(default_factory=SchemaInfoLevel)
    schema_rule: InclusionRule = INCLUDE_ALL
    table_rule: InclusionRule = INCLUDE_ALL
    column_rule: InclusionRule = INCLUDE_ALL
    routine_rule: InclusionRule = INCLUDE_ALL
    routine_column_rule: InclusionRule = INCLUDE_ALL
    synonym_rule: InclusionRule = INCLUDE_ALL
    sequence_rule: InclusionRule = INCLUDE_ALL
    table_types: tuple[str, ...] | None = DEFAULT_TABLE_TYPES
    routine_types: tuple[str, ...] = DEFAULT_ROUTINE_TYPES
    grep_columns: GrepRule | None = None
    grep_routine_columns: GrepRule | None = None
    grep_definitions: GrepRule | None = None
    invert_match: bool = False
    only_matching: bool = False
    parents: int = 0
    children: int = 0
    no_empty_tables: bool = False

    @property
    def is_grep_enabled(self) -> bool:
        return any(
            rule is not None
            for rule in (self.grep_columns, self.grep_routine_columns, self.grep_definitions)
        )


class OutputOptions(BaseModel):
    """Where and how the command writes its report."""

    model_config = ConfigDict(frozen=True)

    output_format: str = "text"
    output_file: Path | None = None


class UserCredentials(BaseModel):
    """Database login; the password never appears in reprs or logs."""

    model_config = ConfigDict(frozen=True)

    user: str | None = None
    password: SecretStr | None = None

    def password_value(self) -> str | None:
        return self.password.get_secret_value() if self.password is not None else None


@dataclass(slots=True)
class OptionsBuilder:
    """Mutable accumulator shared by the option group parsers."""

    title: str = ""
    info_level: SchemaInfoLevel = field(default_factory=SchemaInfoLevel)
    schema_rule: InclusionRule = INCLUDE_ALL
    table_rule: InclusionRule = INCLUDE_ALL
    column_rule: InclusionRule = INCLUDE_ALL
    routine_rule: InclusionRule = INCLUDE_ALL
    routine_column_rule: InclusionRule = INCLUDE_ALL
    synonym_rule: InclusionRule = INCLUDE_ALL
    sequence_rule: InclusionRule = INCLUDE_ALL
    table_types: tuple[str, ...] | None = DEFAULT_TABLE_TYPES
    routine_types: tuple[str, ...] = DEFAULT_ROUTINE_TYPES
    grep_column_rule: InclusionRule | None = None
    grep_routine_column_rule: InclusionRule | None = None
    grep_definition_rule: InclusionRule | None = None
    invert_match: bool = False
    only_matching: bool = False
    parents: int = 0
    children: int = 0
    no_empty_tables: bool = False
    output: OutputOptions = field(default_factory=OutputOptions)
    credentials: UserCredentials = field(default_factory=UserCredentials)
    additional_config: dict[str, str | None] = field(default_factory=dict)

    def _grep(self, rule: InclusionRule | None) -> GrepRule | None:
        if rule is None:
            return None
        return GrepRule(rule=rule, invert_match=self.invert_match, only_matching=self.only_matching)

    def to_options(self) -> OptionsSnapshot:
        return OptionsSnapshot(
            title=self.title,
            info_level=self.info_level,
            schema_rule=self.schema_rule,
            table_rule=self.table_rule,
            column_rule=self.column_rule,
            routine_rule=self.routine_rule,
            routine_column_rule=self.routine_column_rule,
            synonym_rule=self.synonym_rule,
            sequence_rule=self.sequence_rule,
            table_types=self.table_types,
            routine_types=self.routine_types,
            grep_columns=self._grep(self.grep_column_rule),
            grep_routine_columns=self._grep(self.grep_routine_column_rule),
            grep_definitions=self._grep(self.grep_definition_rule),
            invert_match=self.invert_match,
            only_matching=self.only_matching,
            parents=self.parents,
            children=self.children,
            no_empty_tables=self.no_empty_tables,
        )

    def to_additional_config(self) -> Mapping[str, str | None]:
        return MappingProxyType(dict(self.additional_config))


__all__ = [
    "DEFAULT_ROUTINE_TYPES",
    "DEFAULT_TABLE_TYPES",
    "OptionsBuilder",
    "OptionsSnapshot",
    "OutputOptions",
    "UserCredentials",
    "split_types",
]
