"""Layered configuration store and config-file loading helpers."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Mapping, Pattern, TypeVar

import tomllib
from pydantic import BaseModel, Field

from .errors import ConfigError
from .inclusion import InclusionRule, build_inclusion

LOG = logging.getLogger(__name__)

CONFIG_FILE = Path.home() / ".config" / "schemacli" / "config.toml"

BUNDLED = "bundled defaults"
COMMAND_LINE = "command line"
CONNECTION = "connection"

_TRUE = frozenset({"true", "yes", "on", "1"})
_FALSE = frozenset({"false", "no", "off", "0"})

E = TypeVar("E", bound=Enum)


class ConfigFile(BaseModel):
    """Shape of a TOML configuration file."""

    plugins: dict[str, bool] = Field(default_factory=dict)
    options: dict[str, str] = Field(default_factory=dict)

    def is_plugin_enabled(self, name: str) -> bool:
        """Plugins set to ``true`` form an allowlist; otherwise ``false`` entries block."""

        allowed = {plugin for plugin, enabled in self.plugins.items() if enabled}
        if allowed:
            return name in allowed
        return self.plugins.get(name, True)


def load_config_file(path: Path | None = None, *, required: bool = True) -> ConfigFile:
    """Read a TOML config file.

    The user config file is optional; explicitly requested files are not.
    """

    target = path or CONFIG_FILE
    try:
        with target.open("rb") as handle:
            raw = tomllib.load(handle)
    except FileNotFoundError as exc:
        if not required:
            return ConfigFile()
        raise ConfigError(f"Config file '{target}' does not exist", key="configfile") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Config file '{target}' is not valid TOML: {exc}", key="configfile") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read config file '{target}': {exc}", key="configfile") from exc

    plugins: dict[str, bool] = {}
    raw_plugins = raw.pop("plugins", {})
    if isinstance(raw_plugins, dict):
        for name, enabled in raw_plugins.items():
            plugins[str(name)] = bool(enabled)
    options = dict(_flatten(raw))
    LOG.debug("Loaded config file", extra={"path": str(target), "keys": len(options)})
    return ConfigFile(plugins=plugins, options=options)


def _flatten(data: Mapping[str, object], prefix: str = "") -> Iterable[tuple[str, str]]:
    for key, value in data.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            yield from _flatten(value, prefix=f"{name}.")
        elif isinstance(value, list):
            yield name, ",".join(_as_text(item) for item in value)
        else:
            yield name, _as_text(value)


def _as_text(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(slots=True)
class _Layer:
    name: str
    values: dict[str, str | None]


@dataclass(slots=True)
class LayeredConfig:
    """Ordered key/value layers; the most recently merged layer wins.

    Consumption is advisory: consumed keys stay readable and are only
    tracked so leftovers can be reported or passed through.
    """

    _layers: list[_Layer] = field(default_factory=list)
    _consumed: set[str] = field(default_factory=set)

    @classmethod
    def of(cls, *sources: tuple[str, Mapping[str, object | None]]) -> LayeredConfig:
        config = cls()
        for name, values in sources:
            config.merge(values, name=name)
        return config

    def merge(self, source: Mapping[str, object | None], *, name: str = "config") -> None:
        """Push ``source`` on top of the existing layers."""

        values = {
            str(key): (None if value is None else _as_text(value))
            for key, value in source.items()
        }
        self._layers.append(_Layer(name=name, values=values))

    @property
    def layer_names(self) -> tuple[str, ...]:
        return tuple(layer.name for layer in self._layers)

    def normalize(self, canonical: str, *aliases: str) -> None:
        """Rename alias keys to ``canonical`` within each layer."""

        for layer in self._layers:
            for alias in aliases:
                if alias == canonical or alias not in layer.values:
                    continue
                value = layer.values.pop(alias)
                layer.values.setdefault(canonical, value)

    def _lookup(self, key: str) -> tuple[_Layer, str | None] | None:
        for layer in reversed(self._layers):
            if key in layer.values:
                return layer, layer.values[key]
        return None

    def has_value(self, key: str) -> bool:
        found = self._lookup(key)
        return found is not None and found[1] is not None

    def source_of(self, key: str) -> str | None:
        """Name of the layer supplying the effective value of ``key``."""

        found = self._lookup(key)
        return found[0].name if found is not None else None

    def overridden_sources(self, key: str) -> tuple[str, ...]:
        """Names of lower layers whose value for ``key`` is shadowed."""

        winner = self._lookup(key)
        if winner is None:
            return ()
        return tuple(
            layer.name
            for layer in self._layers
            if layer is not winner[0] and layer.values.get(key) is not None
        )

    def get(self, key: str) -> str | None:
        found = self._lookup(key)
        return found[1] if found is not None else None

    def get_string(self, key: str, default: str | None = None) -> str | None:
        value = self.get(key)
        return default if value is None else value

    def get_boolean(self, key: str, default: bool = False) -> bool:
        value = self.get(key)
        if value is None or not value.strip():
            return default
        token = value.strip().lower()
        if token in _TRUE:
            return True
        if token in _FALSE:
            return False
        accepted = ", ".join(sorted(_TRUE | _FALSE))
        raise ConfigError(f"Invalid value '{value}' for '{key}'; expected one of: {accepted}", key=key)

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key)
        if value is None or not value.strip():
            return default
        try:
            return int(value.strip())
        except ValueError as exc:
            raise ConfigError(f"Invalid value '{value}' for '{key}'; expected an integer", key=key) from exc

    def get_enum(self, key: str, enum_type: type[E], default: E) -> E:
        value = self.get(key)
        if value is None or not value.strip():
            return default
        token = value.strip().lower()
        for member in enum_type:
            if str(member.value).lower() == token or member.name.lower() == token:
                return member
        accepted = ", ".join(str(member.value) for member in enum_type)
        raise ConfigError(f"Invalid value '{value}' for '{key}'; expected one of: {accepted}", key=key)

    def get_inclusion_rule(self, key: str, current: InclusionRule | None = None) -> InclusionRule:
        """Read ``key`` as an include pattern, keeping the exclude half of ``current``."""

        base = current or InclusionRule()
        return self._compile_rule(key, include=self.get(key), exclude=base.exclude)

    def get_exclusion_rule(self, key: str, current: InclusionRule | None = None) -> InclusionRule:
        """Read ``key`` as an exclude pattern, keeping the include half of ``current``."""

        base = current or InclusionRule()
        return self._compile_rule(key, include=base.include, exclude=self.get(key))

    def _compile_rule(
        self,
        key: str,
        *,
        include: str | Pattern[str] | None,
        exclude: str | Pattern[str] | None,
    ) -> InclusionRule:
        try:
            return build_inclusion(include, exclude)
        except re.error as exc:
            pattern = self.get(key)
            raise ConfigError(f"Invalid pattern '{pattern}' for '{key}': {exc}", key=key) from exc

    def consume(self, key: str) -> None:
        self._consumed.add(key)

    def is_consumed(self, key: str) -> bool:
        return key in self._consumed

    def unconsumed(self) -> dict[str, str | None]:
        return {key: value for key, value in self.as_dict().items() if key not in self._consumed}

    def as_dict(self) -> dict[str, str | None]:
        """Flattened effective view, in first-seen key order."""

        merged: dict[str, str | None] = {}
        for layer in self._layers:
            merged.update(layer.values)
        return merged

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self._lookup(key) is not None


__all__ = [
    "BUNDLED",
    "COMMAND_LINE",
    "CONFIG_FILE",
    "CONNECTION",
    "ConfigFile",
    "LayeredConfig",
    "load_config_file",
]
