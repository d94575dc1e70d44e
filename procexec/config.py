"""Executor settings and the helpers that load them from configuration files."""
from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

import codecs
import json
import tomllib

try:  # Optional dependency for YAML support
    import yaml
except ModuleNotFoundError:  # pragma: no cover - exercised when PyYAML absent
    yaml = None

from .console import Console

_DECODE_ERRORS: tuple = (tomllib.TOMLDecodeError, json.JSONDecodeError, UnicodeDecodeError) + ((yaml.YAMLError,) if yaml else ())

READ_CHUNK_SIZE = 4096
"""Default number of bytes requested per read from a captured stream."""

SETTINGS_TABLE = "executor"


class ConfigError(ValueError):
    """Raised when executor settings cannot be loaded or are invalid."""


class DrainMode(Enum):
    """How the parent empties the stdout and stderr pipes."""

    SEQUENTIAL = "sequential"
    """Drain stdout to end of stream, then stderr.

    A child that fills the stderr pipe while stdout is still open blocks
    forever, and so does the parent waiting on stdout.
    """

    CONCURRENT = "concurrent"
    """Wait on both pipes at once and read whichever is ready."""


@dataclass(frozen=True, slots=True)
class ExecutorSettings:
    """Tunables for :class:`procexec.engine.ProcessExecutor`."""

    drain: DrainMode = DrainMode.SEQUENTIAL
    chunk_size: int = READ_CHUNK_SIZE
    text: bool = True
    encoding: str = "utf-8"
    log_level: str = "none"

    def __post_init__(self) -> None:
        _coerce_encoding(self.encoding)

    def with_overrides(self, **overrides: Any) -> "ExecutorSettings":
        """Return a copy with every non-``None`` override applied and validated."""

        changes = {key: value for key, value in overrides.items() if value is not None}
        if not changes:
            return self
        return settings_from_mapping(changes, base=self)


ConfigLoader = Callable[[Any], Mapping[str, Any]]


def _raise_yaml_missing() -> Mapping[str, Any]:
    raise ConfigError(
        "PyYAML is required to load YAML configuration files. Install with `pip install PyYAML`."
    )


FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".toml": lambda stream: tomllib.load(stream),
    ".json": lambda stream: json.load(stream),
    ".yaml": lambda stream: yaml.safe_load(stream) if yaml else _raise_yaml_missing(),
    ".yml": lambda stream: yaml.safe_load(stream) if yaml else _raise_yaml_missing(),
}
"""Mapping of file suffixes to loader callables."""


def register_loader(suffix: str, loader: ConfigLoader) -> None:
    """Register ``loader`` for files ending with ``suffix``."""

    normalized = suffix.lower()
    if not normalized.startswith("."):
        raise ValueError("Suffix must start with '.'")
    FILE_LOADERS[normalized] = loader


def load_config_file(path: Path) -> Mapping[str, Any]:
    """Load and decode a configuration mapping from ``path``."""

    suffix = path.suffix.lower()
    loader = FILE_LOADERS.get(suffix)
    if loader is None:
        supported = ", ".join(sorted(FILE_LOADERS)) or "<none>"
        raise ConfigError(
            f"Unsupported configuration file extension: {suffix}. Supported: {supported}"
        )

    mode = "rb" if suffix == ".toml" else "r"
    kwargs: Dict[str, Any] = {}
    if mode == "r":
        kwargs["encoding"] = "utf-8"

    try:
        with path.open(mode, **kwargs) as handle:
            data = loader(handle)
    except OSError as exc:
        raise ConfigError(f"Cannot read configuration file '{path}': {exc}") from exc
    except _DECODE_ERRORS as exc:
        raise ConfigError(f"Malformed configuration file '{path}': {exc}") from exc

    if not isinstance(data, Mapping):
        raise ConfigError(f"Configuration file '{path}' must contain a mapping at the root")

    return data


def _coerce_drain(value: Any) -> DrainMode:
    if isinstance(value, DrainMode):
        return value
    try:
        return DrainMode(str(value).lower())
    except ValueError:
        supported = ", ".join(mode.value for mode in DrainMode)
        raise ConfigError(f"Unknown drain mode: {value!r}. Supported: {supported}") from None


def _coerce_chunk_size(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"chunk_size must be a positive integer, got {value!r}")
    return value


def _coerce_text(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"text must be a boolean, got {value!r}")
    return value


def _coerce_encoding(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"encoding must be a non-empty string, got {value!r}")
    try:
        codecs.lookup(value.strip())
    except LookupError:
        raise ConfigError(f"Unknown encoding: {value!r}") from None
    return value.strip()


def _coerce_log_level(value: Any) -> str:
    level = str(value).lower()
    if level not in Console.LEVELS:
        supported = ", ".join(Console.LEVELS)
        raise ConfigError(f"Unknown log level: {value!r}. Supported: {supported}")
    return level


_COERCERS: Dict[str, Callable[[Any], Any]] = {
    "drain": _coerce_drain,
    "chunk_size": _coerce_chunk_size,
    "text": _coerce_text,
    "encoding": _coerce_encoding,
    "log_level": _coerce_log_level,
}


def settings_from_mapping(
    data: Mapping[str, Any],
    *,
    base: ExecutorSettings | None = None,
) -> ExecutorSettings:
    """Build settings from ``data``, starting from ``base`` (or the defaults)."""

    known = {field.name for field in fields(ExecutorSettings)}
    unknown = sorted(str(key) for key in data if key not in known)
    if unknown:
        raise ConfigError(f"Unknown executor settings: {', '.join(unknown)}")

    values = {key: _COERCERS[key](value) for key, value in data.items()}
    return replace(base or ExecutorSettings(), **values)


def load_settings(path: Path) -> ExecutorSettings:
    """Load settings from the ``[executor]`` table of ``path``.

    Files without that table are read from their root mapping.
    """

    data = load_config_file(path)
    section = data.get(SETTINGS_TABLE, data)
    if not isinstance(section, Mapping):
        raise ConfigError(f"'{SETTINGS_TABLE}' in '{path}' must be a mapping")
    return settings_from_mapping(section)
