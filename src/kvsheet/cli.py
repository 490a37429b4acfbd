"""kvsheet.cli

Unified CLI.

Modes:
  serve        Run the webhook under uvicorn.
  apply        Run one request body from a JSON file through the webhook
               handler and print an upsert report.
  show_config  Print the destinations and columns read from the config sheet.
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from datetime import datetime, timezone
from pathlib import Path

import click

from kvsheet.kv_config import ConfigResolver
from kvsheet.settings import (
    Settings,
    SettingsValidationError,
    build_store,
    load_settings,
    store_zone,
)
from kvsheet.shared import KvSheetError, build_upsert_report, write_run_report
from kvsheet.webhook import apply_request, create_app, parse_request


def _fatal(run_id: str, message: str) -> None:
    click.echo(f"[{run_id}] FATAL: {message}", err=True)
    sys.exit(1)


@click.command()
@click.option(
    "--mode",
    default="serve",
    type=click.Choice(["serve", "apply", "show_config"]),
    show_default=True,
    help="What to run",
)
@click.option("--settings", "settings_path", default=None, type=click.Path(exists=True, dir_okay=False), help="YAML settings file")
@click.option("--backend", default=None, type=click.Choice(["gspread", "csv"]), help="Override settings backend")
@click.option("--spreadsheet-key", default=None, help="[gspread] Spreadsheet key")
@click.option("--spreadsheet-title", default=None, help="[gspread] Spreadsheet title")
@click.option("--credentials-env", default=None, help="[gspread] Env var holding the service account JSON")
@click.option("--csv-dir", default=None, type=click.Path(file_okay=False), help="[csv] Directory of <table>.csv files")
@click.option("--config-table", default=None, help="Config sheet name (default kv_config)")
@click.option("--timezone", "tz_name", default=None, help="Time zone for naive timestamps")
@click.option("--host", default=None, help="[serve] Bind host")
@click.option("--port", default=None, type=int, help="[serve] Bind port")
@click.option("--payload", default=None, type=click.Path(exists=True, dir_okay=False), help="[apply] JSON request body file")
@click.option("--report/--no-report", default=False, show_default=True, help="[apply] Write a JSON run report under ./artifacts/reports")
@click.option("--run-id", default=None, help="Override UUID for log correlation")
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    show_default=True,
)
def main(
    mode: str,
    settings_path: str | None,
    backend: str | None,
    spreadsheet_key: str | None,
    spreadsheet_title: str | None,
    credentials_env: str | None,
    csv_dir: str | None,
    config_table: str | None,
    tz_name: str | None,
    host: str | None,
    port: int | None,
    payload: str | None,
    report: bool,
    run_id: str | None,
    log_level: str,
) -> None:
    """Key/value spreadsheet upsert webhook."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()

    try:
        settings = load_settings(Path(settings_path) if settings_path else None)
        settings = settings.with_overrides(
            backend=backend,
            spreadsheet_key=spreadsheet_key,
            spreadsheet_title=spreadsheet_title,
            credentials_env=credentials_env,
            csv_dir=csv_dir,
            config_table=config_table,
            timezone=tz_name,
            host=host,
            port=port,
        )
    except SettingsValidationError as exc:
        _fatal(run_id, str(exc))

    if mode == "apply" and not payload:
        _fatal(run_id, "--payload is required for mode 'apply'")

    click.echo(f"[{run_id}] Starting {mode} (backend={settings.backend})")
    try:
        store = build_store(settings)
    except (KvSheetError, ValueError) as exc:
        _fatal(run_id, str(exc))

    if mode == "serve":
        _serve(store, settings)
    elif mode == "show_config":
        _show_config(store, settings, run_id)
    elif mode == "apply":
        _apply(store, settings, Path(payload), report, run_id, started_at)  # type: ignore[arg-type]


def _serve(store, settings: Settings) -> None:
    import uvicorn

    uvicorn.run(create_app(store, settings), host=settings.host, port=settings.port)


def _show_config(store, settings: Settings, run_id: str) -> None:
    try:
        resolver = ConfigResolver.from_store(store, settings.config_table)
    except KvSheetError as exc:
        _fatal(run_id, str(exc))

    click.echo(f"Destinations ({len(resolver.destinations)}):")
    for dest in resolver.destinations:
        click.echo(f"  {dest.destination_id} -> {dest.physical_name}")
    click.echo(f"Columns ({len(resolver.columns)}):")
    for col in resolver.columns:
        click.echo(f"  {col.destination_id}.{col.column_id} -> {col.physical_name}")


def _apply(
    store,
    settings: Settings,
    payload_path: Path,
    report: bool,
    run_id: str,
    started_at: str,
) -> None:
    try:
        request = parse_request(payload_path.read_bytes())
        table_name, ctrs = apply_request(
            request,
            store,
            settings.config_table,
            zone=store_zone(store, settings),
            run_id=run_id,
        )
    except KvSheetError as exc:
        _fatal(run_id, f"{type(exc).__name__}: {exc}")

    click.echo(build_upsert_report(ctrs, request.destination, table_name))
    click.echo(json.dumps({"result": "success"}))

    if report:
        report_path = write_run_report(
            run_id, started_at, "apply",
            {"payload_path": str(payload_path), "destination": request.destination},
            ctrs,
        )
        click.echo(f"[{run_id}] Run report: {report_path}")


if __name__ == "__main__":
    main()
