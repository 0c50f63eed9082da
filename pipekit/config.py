"""
PipesConfig: Protocol constants and optional project-level configuration.

This module provides:

- Protocol constants (environment variable names, params keys)
- find_config_file: Walk up directories to locate .pipekit.toml
- read_pipes_table: Parse the ``[pipes]`` table of one TOML file
- PipesConfig: Typed configuration with load/from_dict constructors

Configuration is loaded from `.pipekit.toml` with optional `.pipekit.local.toml`
overrides, both read from the ``[pipes]`` table. Missing files mean defaults:
a launched process needs no config file to speak the protocol.

Example:
    >>> config = PipesConfig.load()
    >>> config.context_env_var
    'DAGSTER_PIPES_CONTEXT'
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pipekit.errors import ConfigError

CONFIG_FILENAME = ".pipekit.toml"
LOCAL_CONFIG_FILENAME = ".pipekit.local.toml"

# Environment variables set by the launcher before spawning the process
CONTEXT_ENV_VAR = "DAGSTER_PIPES_CONTEXT"
MESSAGES_ENV_VAR = "DAGSTER_PIPES_MESSAGES"

# Keys understood inside decoded params
CONTEXT_KEY = "context"
PATH_KEY = "path"
ATOMIC_KEY = "atomic"
ATOMIC_PATH_KEY = "atomic_path"
STDIO_KEY = "stdio"

# Typed keys of the [pipes] table
_STR_KEYS = ("context_env_var", "messages_env_var")
_BOOL_KEYS = ("fsync",)


# ---------------------------------------------------------------------------
# File lookup
# ---------------------------------------------------------------------------


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """
    Return the nearest `.pipekit.toml` in *start_dir* (default: cwd) or its
    ancestors, or ``None`` if there is none.
    """
    start = (start_dir or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def read_pipes_table(path: Path) -> dict[str, Any]:
    """
    Parse *path* and return its ``[pipes]`` table (empty if absent).

    Raises:
        ConfigError: If the file cannot be read, is not valid TOML, or its
            ``pipes`` entry is not a table.
    """
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Config file {path} is not valid TOML: {e}") from e

    table = data.get("pipes", {})
    if not isinstance(table, dict):
        raise ConfigError(f"'pipes' in {path} must be a table")
    return table


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PipesConfig:
    """
    Client-side protocol configuration.

    Attributes:
        context_env_var: Name of the env var carrying encoded context params.
        messages_env_var: Name of the env var carrying encoded messages params.
        fsync: Whether file channels call ``os.fsync`` after every message.
            Flushing to the OS happens regardless.
    """

    context_env_var: str = CONTEXT_ENV_VAR
    messages_env_var: str = MESSAGES_ENV_VAR
    fsync: bool = True

    @classmethod
    def load(cls, start_dir: Path | None = None) -> PipesConfig:
        """
        Find and load configuration, falling back to defaults.

        Walks up from *start_dir* (default: cwd) to locate ``.pipekit.toml``.
        Keys in the ``[pipes]`` table of ``.pipekit.local.toml`` from the same
        directory replace those of the base file.

        Args:
            start_dir: Directory to start searching from.

        Returns:
            A :class:`PipesConfig`. Defaults if no config file exists.

        Raises:
            ConfigError: If a config file is unreadable or invalid.
        """
        config_path = find_config_file(start_dir)
        if config_path is None:
            return cls()

        table = read_pipes_table(config_path)
        local_path = config_path.parent / LOCAL_CONFIG_FILENAME
        if local_path.is_file():
            table = {**table, **read_pipes_table(local_path)}

        return cls.from_dict({"pipes": table})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PipesConfig:
        """
        Create a :class:`PipesConfig` from a parsed TOML dict.

        Only the ``[pipes]`` table is read. Unknown keys and mistyped values
        are rejected so that typos do not silently fall back to defaults.

        Raises:
            ConfigError: If the ``[pipes]`` table has unknown keys or a value
                of the wrong type.
        """
        raw = data.get("pipes", {})
        if not isinstance(raw, dict):
            raise ConfigError("'pipes' must be a table")

        known = {*_STR_KEYS, *_BOOL_KEYS}
        unknown = set(raw) - known
        if unknown:
            raise ConfigError(
                f"Unknown key(s) in [pipes]: {', '.join(sorted(unknown))}. "
                f"Valid keys: {', '.join(sorted(known))}"
            )

        for key in _STR_KEYS:
            if key in raw and (not isinstance(raw[key], str) or not raw[key]):
                raise ConfigError(f"[pipes] {key} must be a non-empty string")
        for key in _BOOL_KEYS:
            if key in raw and not isinstance(raw[key], bool):
                raise ConfigError(
                    f"[pipes] {key} must be true or false, got {raw[key]!r}"
                )

        return cls(
            context_env_var=raw.get("context_env_var", CONTEXT_ENV_VAR),
            messages_env_var=raw.get("messages_env_var", MESSAGES_ENV_VAR),
            fsync=raw.get("fsync", True),
        )
