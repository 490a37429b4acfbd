"""kvsheet.settings

YAML settings for the webhook service and the CLI.

Example (config/kvsheet.yml):

    backend: gspread
    spreadsheet_key: "1AbC..."
    credentials_env: GSHEET_JSON
    config_table: kv_config
    timezone: Asia/Tokyo
    host: 0.0.0.0
    port: 8080

Secrets never live in this file: the gspread backend reads the service
account JSON from the environment variable named by ``credentials_env``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from kvsheet.kv_config import DEFAULT_CONFIG_TABLE
from kvsheet.shared import KvSheetError
from kvsheet.store import CsvTableStore, GspreadTableStore, TableStore
from kvsheet.values import resolve_tz

VALID_BACKENDS = frozenset({"gspread", "csv"})


class SettingsValidationError(KvSheetError, ValueError):
    """Raised when a settings file fails validation."""


@dataclass(frozen=True)
class Settings:
    backend: str = "gspread"
    spreadsheet_key: str | None = None
    spreadsheet_title: str | None = None
    credentials_env: str = "GSHEET_JSON"
    csv_dir: str | None = None
    config_table: str = DEFAULT_CONFIG_TABLE
    timezone: str | None = None
    host: str = "127.0.0.1"
    port: int = 8080

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a copy with every non-None override applied, then validate."""
        changed = {k: v for k, v in overrides.items() if v is not None}
        updated = replace(self, **changed)
        validate_settings(updated)
        return updated


def validate_settings(settings: Settings) -> None:
    """Raise SettingsValidationError if the settings cannot build a store."""
    if settings.backend not in VALID_BACKENDS:
        raise SettingsValidationError(
            f"Invalid backend '{settings.backend}'. Must be one of {sorted(VALID_BACKENDS)}."
        )
    if settings.backend == "gspread" and not (settings.spreadsheet_key or settings.spreadsheet_title):
        raise SettingsValidationError(
            "backend 'gspread' requires spreadsheet_key or spreadsheet_title."
        )
    if settings.backend == "csv" and not settings.csv_dir:
        raise SettingsValidationError("backend 'csv' requires csv_dir.")
    if not settings.config_table:
        raise SettingsValidationError("'config_table' must not be empty.")
    if not (0 < settings.port < 65536):
        raise SettingsValidationError(f"'port' value {settings.port} is out of range.")
    try:
        resolve_tz(settings.timezone)
    except ValueError as exc:
        raise SettingsValidationError(str(exc)) from exc


def load_settings(path: Path | None) -> Settings:
    """Load and validate settings; ``path=None`` returns unvalidated defaults.

    Raises:
        SettingsValidationError: Unknown keys or invalid values.
        FileNotFoundError: If the YAML file does not exist.
    """
    if path is None:
        return Settings()
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise SettingsValidationError("YAML root must be a mapping.")
    known = {f.name for f in fields(Settings)}
    unknown = set(data) - known
    if unknown:
        raise SettingsValidationError(f"Unknown settings keys: {sorted(unknown)}")
    if "port" in data:
        try:
            data["port"] = int(data["port"])
        except (TypeError, ValueError):
            raise SettingsValidationError(f"'port' value '{data['port']}' is not an integer.")
    settings = Settings(**data)
    validate_settings(settings)
    return settings


def build_store(settings: Settings) -> TableStore:
    """Open the store described by ``settings``."""
    zone = resolve_tz(settings.timezone) if settings.timezone else None
    if settings.backend == "csv":
        return CsvTableStore(base_dir=Path(settings.csv_dir), zone=zone or resolve_tz(None))
    credentials = os.environ.get(settings.credentials_env, "")
    if not credentials:
        raise SettingsValidationError(
            f"env var {settings.credentials_env} must hold the service account JSON"
        )
    return GspreadTableStore.connect(
        credentials,
        spreadsheet_key=settings.spreadsheet_key,
        spreadsheet_title=settings.spreadsheet_title,
        zone=zone,
    )


def store_zone(store: TableStore, settings: Settings):
    """Time zone to read naive timestamps in: the store's, else the setting."""
    zone = getattr(store, "zone", None)
    return zone if zone is not None else resolve_tz(settings.timezone)
