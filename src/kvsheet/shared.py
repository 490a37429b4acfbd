"""kvsheet.shared

Shared pieces used by the engine, the config resolver, the webhook and the
CLI: the exception hierarchy, per-batch run counters, and report writing.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class KvSheetError(Exception):
    """Base class for every error raised by kvsheet."""


class NotFoundError(KvSheetError, LookupError):
    """Raised when a table or a logical destination does not exist."""


class ConfigurationError(KvSheetError):
    """Raised when the column map does not fit the destination table."""


class RequestValidationError(KvSheetError, ValueError):
    """Raised when an inbound request body is malformed."""


# ---------------------------------------------------------------------------
# UpsertCounters
# ---------------------------------------------------------------------------

@dataclass
class UpsertCounters:
    records_read: int = 0
    rows_updated: int = 0
    rows_appended: int = 0
    fields_skipped: int = 0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "records_read": self.records_read,
            "rows_updated": self.rows_updated,
            "rows_appended": self.rows_appended,
            "fields_skipped": self.fields_skipped,
            "warnings": self.warnings,
        }


def build_upsert_report(
    ctrs: UpsertCounters,
    destination: str,
    table_name: str,
) -> str:
    lines = [
        "=" * 60,
        "Key/Value Upsert Report",
        f"  destination: {destination} -> {table_name}",
        "=" * 60,
        f"  records read:        {ctrs.records_read}",
        f"    -> rows updated:   {ctrs.rows_updated}",
        f"    -> rows appended:  {ctrs.rows_appended}",
        f"  fields skipped:      {ctrs.fields_skipped}",
    ]
    if ctrs.warnings:
        lines.append(f"\nWarnings ({len(ctrs.warnings)}):")
        for w in ctrs.warnings[:20]:
            lines.append(f"  {w}")
        if len(ctrs.warnings) > 20:
            lines.append(f"  ... and {len(ctrs.warnings) - 20} more")
    lines.append("=" * 60)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Report writer
# ---------------------------------------------------------------------------

def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    source_paths: dict[str, str],
    counters: UpsertCounters,
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.now(timezone.utc).isoformat(),
        **source_paths,
        "counters": counters.to_dict(),
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
