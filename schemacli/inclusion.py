"""Inclusion and grep rules used to filter crawled schema objects."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Iterable, Pattern


def _compile(pattern: str | Pattern[str] | None) -> Pattern[str] | None:
    if pattern is None:
        return None
    if isinstance(pattern, re.Pattern):
        return pattern
    if not pattern:
        return None
    return re.compile(pattern)


@dataclass(frozen=True, slots=True)
class InclusionRule:
    """Include/exclude pattern pair matched against whole names."""

    include: Pattern[str] | None = None
    exclude: Pattern[str] | None = None

    def matches(self, name: str) -> bool:
        if self.include is not None and self.include.fullmatch(name) is None:
            return False
        if self.exclude is not None and self.exclude.fullmatch(name) is not None:
            return False
        return True

    __call__ = matches

    @property
    def is_match_all(self) -> bool:
        return self.include is None and self.exclude is None

    def with_include(self, pattern: str | None) -> InclusionRule:
        """Return a copy with the include half replaced."""

        return replace(self, include=_compile(pattern))

    def with_exclude(self, pattern: str | None) -> InclusionRule:
        """Return a copy with the exclude half replaced."""

        return replace(self, exclude=_compile(pattern))

    def __str__(self) -> str:
        include = self.include.pattern if self.include is not None else "<all>"
        exclude = self.exclude.pattern if self.exclude is not None else "<none>"
        return f"include={include} exclude={exclude}"


INCLUDE_ALL = InclusionRule()


def build_inclusion(
    include_pattern: str | Pattern[str] | None = None,
    exclude_pattern: str | Pattern[str] | None = None,
) -> InclusionRule:
    """Compile a rule from textual patterns; empty patterns count as absent.

    Raises ``re.error`` if either pattern does not compile.
    """

    return InclusionRule(include=_compile(include_pattern), exclude=_compile(exclude_pattern))


@dataclass(frozen=True, slots=True)
class GrepRule:
    """Content match over the sub-elements of a schema object.

    An object matches when any of its sub-elements matches the rule.
    ``invert_match`` flips that accept/reject decision for the whole object.
    ``only_matching`` narrows what gets displayed of an accepted object to
    the sub-elements matching the rule.
    """

    rule: InclusionRule = field(default=INCLUDE_ALL)
    invert_match: bool = False
    only_matching: bool = False

    def accepts(self, values: Iterable[str]) -> bool:
        matched = any(self.rule.matches(value) for value in values)
        return matched != self.invert_match

    def displayed(self, values: Iterable[str]) -> tuple[str, ...]:
        items = tuple(values)
        if not self.only_matching:
            return items
        return tuple(value for value in items if self.rule.matches(value))


__all__ = ["GrepRule", "INCLUDE_ALL", "InclusionRule", "build_inclusion"]
