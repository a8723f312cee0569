from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml
from dotenv import load_dotenv

from .schema import (
    DEFAULT_DESCRIPTION_FALLBACK,
    DEFAULT_PROGRAM_ID,
    CatalogEntry,
    build_catalog,
    merge_value_columns,
)

load_dotenv()

CONFIG_ENV_KEY = "DEP_CONFIG"

# Environment variable -> Settings attribute.
ENV_OVERRIDES: Mapping[str, str] = {
    "DEP_DBF_ENCODING": "dbf_encoding",
    "DEP_PROGRAM_ID": "program_id",
    "DEP_CSV_ENCODING": "csv_encoding",
}


class ConfigError(ValueError):
    """Raised when the YAML configuration or an override is invalid."""


@dataclass(frozen=True)
class Settings:
    dbf_encoding: str = "cp1252"
    program_id: int = DEFAULT_PROGRAM_ID
    backup_timestamp_format: str = "%Y%m%d%H%M%S"
    csv_encoding: str = "utf-8-sig"
    csv_delimiter: str = ","
    csv_chunk_size: int = 5000
    series_column: str = "Série"
    registration_column: str = "RGN"
    animal_id_digits: int = 4
    description_fallback: str = DEFAULT_DESCRIPTION_FALLBACK
    descriptions: Dict[str, str] = field(default_factory=dict)
    columns: Dict[str, Tuple[str, str]] = field(default_factory=dict)


_INT_FIELDS = {"program_id", "csv_chunk_size", "animal_id_digits"}


def _parse_int(key: str, value: Any) -> int:
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from exc


def _coerce(key: str, value: Any) -> Any:
    if key in _INT_FIELDS:
        number = _parse_int(key, value)
        if number <= 0:
            raise ConfigError(f"{key} must be positive, got {number}")
        return number
    if key == "descriptions":
        if not isinstance(value, dict):
            raise ConfigError("descriptions must be a mapping of column name to text")
        return {str(k): str(v) for k, v in value.items()}
    if key == "columns":
        if not isinstance(value, dict):
            raise ConfigError("columns must be a mapping of CSV column to [value_name, accuracy_name]")
        try:
            return merge_value_columns(value, base={})
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc
    return str(value)


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML config at {path}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config at {path} must be a mapping")
    return raw


def load_settings(path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build settings from defaults, an optional YAML file and environment overrides.

    The YAML path comes from ``path`` or the ``DEP_CONFIG`` environment variable.
    Unknown YAML keys are rejected so typos do not silently fall back to defaults.
    """

    env = os.environ if env is None else env
    settings = Settings()
    known = {f.name for f in fields(Settings)}

    if path is None and env.get(CONFIG_ENV_KEY):
        path = Path(env[CONFIG_ENV_KEY])

    if path is not None:
        raw = _read_yaml(Path(path))
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ConfigError(f"Unknown settings in {path}: {', '.join(unknown)}")
        settings = replace(settings, **{k: _coerce(k, v) for k, v in raw.items()})

    overrides = {attr: _coerce(attr, env[key]) for key, attr in ENV_OVERRIDES.items() if env.get(key)}
    if overrides:
        settings = replace(settings, **overrides)
    return settings


def catalog_for(settings: Settings) -> List[CatalogEntry]:
    """Catalog built from the static column table plus the configured overrides."""

    return build_catalog(
        merge_value_columns(settings.columns),
        descriptions=settings.descriptions,
        description_fallback=settings.description_fallback,
    )
