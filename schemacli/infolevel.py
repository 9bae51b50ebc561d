"""Schema info levels and the retrieval flags they expand to."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Mapping


class InfoLevel(str, Enum):
    """Named bundles of retrieval flags, ordered by depth."""

    MINIMUM = "minimum"
    STANDARD = "standard"
    DETAILED = "detailed"
    MAXIMUM = "maximum"
    CUSTOM = "custom"


RETRIEVAL_FLAGS: tuple[str, ...] = (
    "retrieve_database_info",
    "retrieve_tables",
    "retrieve_routines",
    "retrieve_table_columns",
    "retrieve_routine_columns",
    "retrieve_primary_keys",
    "retrieve_foreign_keys",
    "retrieve_indexes",
    "retrieve_table_constraints",
    "retrieve_view_information",
    "retrieve_routine_information",
    "retrieve_triggers",
    "retrieve_sequences",
    "retrieve_synonyms",
    "retrieve_additional_table_attributes",
    "retrieve_additional_column_attributes",
)

_LEVEL_ADDS: dict[InfoLevel, tuple[str, ...]] = {
    InfoLevel.MINIMUM: (
        "retrieve_database_info",
        "retrieve_tables",
        "retrieve_routines",
    ),
    InfoLevel.STANDARD: (
        "retrieve_table_columns",
        "retrieve_routine_columns",
        "retrieve_primary_keys",
        "retrieve_foreign_keys",
        "retrieve_indexes",
    ),
    InfoLevel.DETAILED: (
        "retrieve_table_constraints",
        "retrieve_view_information",
        "retrieve_routine_information",
        "retrieve_triggers",
    ),
    InfoLevel.MAXIMUM: (
        "retrieve_sequences",
        "retrieve_synonyms",
        "retrieve_additional_table_attributes",
        "retrieve_additional_column_attributes",
    ),
}

_ORDER = (InfoLevel.MINIMUM, InfoLevel.STANDARD, InfoLevel.DETAILED, InfoLevel.MAXIMUM)


def level_flags(level: InfoLevel) -> frozenset[str]:
    """Flags switched on by ``level``; ``custom`` switches on nothing."""

    if level is InfoLevel.CUSTOM:
        return frozenset()
    enabled: set[str] = set()
    for step in _ORDER:
        enabled.update(_LEVEL_ADDS[step])
        if step is level:
            break
    return frozenset(enabled)


@dataclass(frozen=True, slots=True)
class SchemaInfoLevel:
    """Resolved info level: the named level plus every flag's final value."""

    level: InfoLevel = InfoLevel.STANDARD
    overrides: Mapping[str, bool] = field(default_factory=dict)

    def __post_init__(self) -> None:
        unknown = set(self.overrides) - set(RETRIEVAL_FLAGS)
        if unknown:
            raise ValueError(f"Unknown retrieval flags: {', '.join(sorted(unknown))}")
        object.__setattr__(self, "overrides", MappingProxyType(dict(sorted(self.overrides.items()))))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SchemaInfoLevel):
            return NotImplemented
        return self.level is other.level and dict(self.overrides) == dict(other.overrides)

    def __hash__(self) -> int:
        return hash((self.level, tuple(self.overrides.items())))

    def is_enabled(self, flag: str) -> bool:
        if flag not in RETRIEVAL_FLAGS:
            raise KeyError(flag)
        if flag in self.overrides:
            return self.overrides[flag]
        return flag in level_flags(self.level)

    @property
    def flags(self) -> dict[str, bool]:
        return {flag: self.is_enabled(flag) for flag in RETRIEVAL_FLAGS}

    def __str__(self) -> str:
        if not self.overrides:
            return self.level.value
        changed = ", ".join(f"{flag}={value}" for flag, value in self.overrides.items())
        return f"{self.level.value} ({changed})"


__all__ = ["InfoLevel", "RETRIEVAL_FLAGS", "SchemaInfoLevel", "level_flags"]
