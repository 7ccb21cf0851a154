"""
Configuration Loader (``harvest_config.loader``).

Responsibility
--------------
Reads an optional YAML file, applies environment overrides, and parses the
result into the frozen ``harvest_config.schema`` dataclasses.  Services never
call this directly; they receive values from ``get_active_config()``.

Failure modes
-------------
* Missing YAML file named by ``HARVEST_CONFIG``  -> ``FileNotFoundError``.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or wrongly typed values  -> ``ValueError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from harvest_config.schema import (
    ApiConfig,
    BatchingConfig,
    DatabaseConfig,
    EngineConfig,
    LoggingConfig,
)

CONFIG_PATH_ENV = "HARVEST_CONFIG"

# environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "DATABASE_URL": ("database", "url"),
    "HARVEST_DB_ECHO": ("database", "echo"),
    "HARVEST_MAX_UNITS": ("batching", "max_units_per_batch"),
    "HARVEST_LOG_LEVEL": ("logging", "level"),
    "HARVEST_DEFAULT_ACTOR": ("api", "default_actor_id"),
}

_SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "batching": BatchingConfig,
    "logging": LoggingConfig,
    "api": ApiConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top-level YAML document must be a mapping")
    return data


def _coerce(value: Any, target: Any, where: str) -> Any:
    """Coerce YAML/env scalars to the annotated field type."""
    if target in ("bool", bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in {"1", "true", "yes", "on"}:
            return True
        if isinstance(value, str) and value.lower() in {"0", "false", "no", "off"}:
            return False
        raise ValueError(f"{where}: expected a boolean, got {value!r}")
    if target in ("int", int):
        if isinstance(value, bool):
            raise ValueError(f"{where}: expected an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"{where}: expected an integer, got {value!r}") from None
    if target in ("UUID", UUID):
        try:
            return value if isinstance(value, UUID) else UUID(str(value))
        except ValueError:
            raise ValueError(f"{where}: expected a UUID, got {value!r}") from None
    return str(value)


def parse_section(name: str, data: Mapping[str, Any] | None) -> Any:
    """Parse one top-level section into its dataclass."""
    cls = _SECTIONS[name]
    if data is None:
        return cls()
    if not isinstance(data, Mapping):
        raise ValueError(f"config section '{name}' must be a mapping")

    fields = cls.__dataclass_fields__
    unknown = set(data) - set(fields)
    if unknown:
        raise ValueError(
            f"config section '{name}' has unknown keys: {', '.join(sorted(unknown))}"
        )
    kwargs = {
        key: _coerce(value, fields[key].type, f"{name}.{key}")
        for key, value in data.items()
    }
    return cls(**kwargs)


def apply_env_overrides(
    data: dict[str, Any], environ: Mapping[str, str]
) -> dict[str, Any]:
    """Return a copy of ``data`` with environment overrides applied."""
    merged = {section: dict(values or {}) for section, values in data.items()}
    for env_name, (section, key) in ENV_OVERRIDES.items():
        if environ.get(env_name):
            merged.setdefault(section, {})[key] = environ[env_name]
    return merged


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineConfig:
    """
    Build an ``EngineConfig`` from YAML (optional) plus environment.

    Resolution order, later wins: dataclass defaults, YAML file, environment.
    """
    environ = os.environ if environ is None else environ
    if path is None and environ.get(CONFIG_PATH_ENV):
        path = Path(environ[CONFIG_PATH_ENV])

    raw: dict[str, Any] = load_yaml_file(path) if path is not None else {}
    unknown = set(raw) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"unknown config sections: {', '.join(sorted(unknown))}")

    merged = apply_env_overrides(raw, environ)
    return EngineConfig(
        database=parse_section("database", merged.get("database")),
        batching=parse_section("batching", merged.get("batching")),
        logging=parse_section("logging", merged.get("logging")),
        api=parse_section("api", merged.get("api")),
        source=str(path) if path is not None else "defaults",
    )
