"""Integration test fixtures.

Builds a small CSV workbook on tmp_path: a ``kv_config`` sheet plus the
tables it points at.  Every test gets a fresh copy.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from kvsheet.settings import Settings
from kvsheet.store import CsvTableStore

# ---------------------------------------------------------------------------
# Workbook contents
# ---------------------------------------------------------------------------

KV_CONFIG_CSV = """\
sheet_id,sheet_name,,sheet_id,col_id,col_name
kv1,destination,,kv1,k1,Key 1
kv2,missing_sheet,,kv1,k2,Key 2
kv3,broken,,kv1,v1,Value 1
,,,kv1,v2,Value 2
,,,kv3,x1,Nope
"""

DESTINATION_CSV = """\
Key 1,Key 2,Value 1,Value 2,Note
a,1,old,10,keep
b,2,other,20,
"""

BROKEN_CSV = """\
Key 1,Value 1
"""


@pytest.fixture
def workbook(tmp_path: Path) -> Path:
    """Return a directory holding kv_config.csv, destination.csv and broken.csv."""
    book = tmp_path / "book"
    book.mkdir()
    (book / "kv_config.csv").write_text(KV_CONFIG_CSV, encoding="utf-8")
    (book / "destination.csv").write_text(DESTINATION_CSV, encoding="utf-8")
    (book / "broken.csv").write_text(BROKEN_CSV, encoding="utf-8")
    return book


@pytest.fixture
def csv_store(workbook: Path) -> CsvTableStore:
    return CsvTableStore(base_dir=workbook)


@pytest.fixture
def csv_settings(workbook: Path) -> Settings:
    return Settings(backend="csv", csv_dir=str(workbook))
