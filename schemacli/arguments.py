"""Tokenize raw command-line arguments into option pairs and positionals."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

BOOLEAN_FLAGS = frozenset({"invert-match", "only-matching", "noemptytables"})

_BOOLEAN_TOKENS = frozenset({"true", "false", "yes", "no", "on", "off"})


@dataclass(frozen=True, slots=True)
class ParsedArguments:
    """Option pairs in command-line order plus bare positional tokens."""

    pairs: tuple[tuple[str, str | None], ...] = ()
    positionals: tuple[str, ...] = ()

    @property
    def options(self) -> dict[str, str | None]:
        """Options keyed by name; a repeated option keeps its last value."""

        return dict(self.pairs)

    def get(self, *keys: str) -> str | None:
        """Last value supplied under any of ``keys``."""

        found: str | None = None
        for key, value in self.pairs:
            if key in keys:
                found = value
        return found

    def values(self, *keys: str) -> tuple[str, ...]:
        """Every non-empty value supplied under any of ``keys``, in order."""

        return tuple(value for key, value in self.pairs if key in keys and value)

    def option_values(self) -> tuple[str, ...]:
        return tuple(value for _, value in self.pairs if value)


def _is_flag(token: str) -> bool:
    if len(token) < 2 or not token.startswith("-"):
        return False
    return not token[1:].replace(".", "", 1).isdigit()


def parse_arguments(
    args: Sequence[str],
    *,
    boolean_flags: frozenset[str] = BOOLEAN_FLAGS,
) -> ParsedArguments:
    """Split ``-key value``, ``-key=value`` and bare flags from positionals.

    Boolean flags only swallow a following ``true``/``false`` style token;
    other flags take the next token unless it is itself a flag.
    """

    pairs: list[tuple[str, str | None]] = []
    positionals: list[str] = []
    index = 0
    while index < len(args):
        token = args[index]
        index += 1
        if token == "--":
            positionals.extend(args[index:])
            break
        if not _is_flag(token):
            positionals.append(token)
            continue
        key = token.lstrip("-")
        if "=" in key:
            key, value = key.split("=", 1)
            pairs.append((key, value))
            continue
        following = args[index] if index < len(args) else None
        if key in boolean_flags:
            if following is not None and following.lower() in _BOOLEAN_TOKENS:
                pairs.append((key, following))
                index += 1
            else:
                pairs.append((key, "true"))
            continue
        if following is None or _is_flag(following):
            pairs.append((key, None))
            continue
        pairs.append((key, following))
        index += 1
    return ParsedArguments(pairs=tuple(pairs), positionals=tuple(positionals))


__all__ = ["BOOLEAN_FLAGS", "ParsedArguments", "parse_arguments"]
