"""nutritrack_etl.config

YAML-based pipeline configuration.

Usage:
    from pathlib import Path
    from nutritrack_etl.config import load_config

    config = load_config(Path("config/nutritrack.yml"))
    dsn = config.resolve_dsn()
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from nutritrack_etl.row_parser import MIN_COLUMNS

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

KNOWN_KEYS = frozenset({
    "db_dsn",
    "db_dsn_env",
    "source_path",
    "init_marker_path",
    "rejects_path",
    "reports_dir",
    "min_columns",
})

PATH_KEYS = frozenset({"source_path", "init_marker_path", "rejects_path", "reports_dir"})


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ConfigValidationError(ValueError):
    """Raised when a YAML config file fails schema validation."""


# ---------------------------------------------------------------------------
# PipelineConfig dataclass
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PipelineConfig:
    """Validated settings for the store and the ingestion pipeline."""

    source_path: Path = Path("data/user.csv")
    init_marker_path: Path = Path("artifacts/state/db_initialized.json")
    reports_dir: Path = Path("artifacts/reports")
    rejects_path: Path | None = None
    db_dsn: str | None = None
    db_dsn_env: str = "DB_DSN"
    min_columns: int = MIN_COLUMNS

    def resolve_dsn(self) -> str:
        """Return the explicit DSN, else the one named by db_dsn_env."""
        if self.db_dsn:
            return self.db_dsn
        dsn = os.environ.get(self.db_dsn_env)
        if not dsn:
            raise ConfigValidationError(
                f"no db_dsn configured and ${self.db_dsn_env} is not set"
            )
        return dsn

    def with_overrides(self, **overrides: Any) -> PipelineConfig:
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        applied = {}
        for key, value in overrides.items():
            if value is None:
                continue
            if key not in known:
                raise ConfigValidationError(f"unknown config key: {key!r}")
            applied[key] = Path(value) if key in PATH_KEYS else value
        return replace(self, **applied)


# ---------------------------------------------------------------------------
# Loader + validator
# ---------------------------------------------------------------------------

def load_config(yaml_path: Path) -> PipelineConfig:
    """Load, validate, and return a PipelineConfig from a YAML file.

    Raises:
        ConfigValidationError: If the file holds unknown keys or bad values.
        FileNotFoundError: If the YAML file does not exist.
    """
    raw = yaml_path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    validate_config(data)
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        kwargs[key] = Path(value) if key in PATH_KEYS else value
    return PipelineConfig(**kwargs)


def validate_config(data: Any) -> None:
    """Raise ConfigValidationError if data does not match the config schema."""
    if not isinstance(data, dict):
        raise ConfigValidationError("config root must be a mapping")

    unknown = set(data) - KNOWN_KEYS
    if unknown:
        raise ConfigValidationError(f"unknown config keys: {sorted(unknown)}")

    min_columns = data.get("min_columns")
    if min_columns is not None:
        if isinstance(min_columns, bool) or not isinstance(min_columns, int):
            raise ConfigValidationError("min_columns must be an integer")
        if min_columns < 1:
            raise ConfigValidationError("min_columns must be positive")

    for key in ("db_dsn", "db_dsn_env", *sorted(PATH_KEYS)):
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            raise ConfigValidationError(f"{key} must be a string")
