"""campaign_etl.config

YAML run configuration for campaign CSV ingestion.

Example (config/campaign_import.yml):

    batch_size: 500
    strictness: strict
    has_header: true
    errors_dir: errors
    sink: postgres
    sink_timeout_seconds: 30
    supabase_url_env: SUPABASE_URL
    supabase_key_env: SUPABASE_SERVICE_KEY

Every key is optional.  Credentials never live in this file; only the names
of the environment variables that hold them.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from campaign_etl.validate import Strictness

VALID_SINKS = frozenset({"postgres", "supabase"})


class SettingsValidationError(ValueError):
    """Raised when a config file contains unknown keys or bad values."""


@dataclass(frozen=True)
class Settings:
    batch_size: int = 500
    strictness: Strictness | None = None
    has_header: bool = True
    errors_dir: Path = Path("errors")
    sink: str = "postgres"
    sink_timeout_seconds: float = 30.0
    supabase_url_env: str = "SUPABASE_URL"
    supabase_key_env: str = "SUPABASE_SERVICE_KEY"

    def override(self, **values: Any) -> "Settings":
        """Return a copy with every non-None value applied."""
        return replace(self, **{k: v for k, v in values.items() if v is not None})


def load_settings(yaml_path: Path | None) -> Settings:
    """Load and validate Settings from a YAML file; defaults when path is None.

    Raises:
        SettingsValidationError: unknown key or invalid value.
        FileNotFoundError: the YAML file does not exist.
    """
    if yaml_path is None:
        return Settings()
    data = yaml.safe_load(yaml_path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise SettingsValidationError(f"{yaml_path}: top level must be a mapping")
    return settings_from_dict(data)


def settings_from_dict(data: dict[str, Any]) -> Settings:
    known = {f.name for f in fields(Settings)}
    unknown = set(data) - known
    if unknown:
        raise SettingsValidationError(f"unknown config keys: {sorted(unknown)}")

    values: dict[str, Any] = dict(data)
    if "batch_size" in values:
        try:
            values["batch_size"] = int(values["batch_size"])
        except (TypeError, ValueError):
            raise SettingsValidationError(
                f"batch_size must be an integer, got {data['batch_size']!r}"
            ) from None
        if values["batch_size"] < 1:
            raise SettingsValidationError("batch_size must be >= 1")
    if "strictness" in values and values["strictness"] is not None:
        try:
            values["strictness"] = Strictness(str(values["strictness"]).lower())
        except ValueError:
            raise SettingsValidationError(
                f"strictness must be 'strict' or 'lenient', got {data['strictness']!r}"
            ) from None
    if "sink" in values and values["sink"] not in VALID_SINKS:
        raise SettingsValidationError(
            f"sink must be one of {sorted(VALID_SINKS)}, got {values['sink']!r}"
        )
    if "errors_dir" in values:
        values["errors_dir"] = Path(values["errors_dir"])
    if "sink_timeout_seconds" in values:
        try:
            timeout = float(values["sink_timeout_seconds"])
        except (TypeError, ValueError):
            raise SettingsValidationError(
                f"sink_timeout_seconds must be a number, got {data['sink_timeout_seconds']!r}"
            ) from None
        if timeout <= 0:
            raise SettingsValidationError("sink_timeout_seconds must be > 0")
        values["sink_timeout_seconds"] = timeout
    if "has_header" in values:
        values["has_header"] = bool(values["has_header"])
    return Settings(**values)
