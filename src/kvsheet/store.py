"""kvsheet.store

Tabular store backends.  The engine and the config resolver only talk to
the ``TableStore`` protocol; a store is always passed in explicitly.

Backends:
  - GspreadTableStore: a Google Sheets spreadsheet, one worksheet per table.
  - CsvTableStore:     a local directory, one ``<name>.csv`` per table.
  - InMemoryTableStore: plain lists, records every read and write (tests).

Row indices are 0-based and include the header: row 0 is the header row,
row 1 is the first data row.
"""

from __future__ import annotations

import csv
import json
import logging
from dataclasses import dataclass, field
from datetime import tzinfo
from pathlib import Path
from typing import Any, Protocol, Sequence

import gspread
from gspread.utils import DateTimeOption, ValueInputOption, ValueRenderOption

from kvsheet.shared import NotFoundError
from kvsheet.values import UTC, Scalar, decode_cell, encode_cell, resolve_tz

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Table:
    """Handle on one physical table, valid for the duration of a call."""

    name: str
    handle: Any = field(default=None, compare=False, repr=False)


class TableStore(Protocol):
    def get_table(self, name: str) -> Table:
        """Return a handle, raising NotFoundError if the table is missing."""
        ...

    def read_range(self, table: Table, decode: bool = True) -> list[list[Scalar]]:
        """Return header + data rows, each padded to the header width.

        With ``decode=False`` cells come back as the store holds them, with
        blanks as ''.
        """
        ...

    def write_row(self, table: Table, row_index: int, values: Sequence[Scalar]) -> None:
        ...

    def append_row(self, table: Table, values: Sequence[Scalar]) -> None:
        ...

    def get_header_row(self, table: Table) -> list[str]:
        ...


def _pad_rows(rows: list[list[Any]], decode: bool = True) -> list[list[Scalar]]:
    """Pad each row to the header width, decoding cells unless told not to."""
    if not rows:
        return []
    width = len(rows[0])
    out: list[list[Scalar]] = []
    for row in rows:
        if decode:
            cells = [decode_cell(c) for c in row[:width]]
        else:
            cells = ["" if c is None else c for c in row[:width]]
        cells.extend([""] * (width - len(cells)))
        out.append(cells)
    return out


# ---------------------------------------------------------------------------
# Google Sheets
# ---------------------------------------------------------------------------

@dataclass
class GspreadTableStore:
    """Tables are worksheets of one gspread Spreadsheet."""

    spreadsheet: Any
    zone: tzinfo = UTC

    @classmethod
    def connect(
        cls,
        credentials_json: str,
        spreadsheet_key: str | None = None,
        spreadsheet_title: str | None = None,
        zone: tzinfo | None = None,
    ) -> "GspreadTableStore":
        """Authorize with a service-account JSON key and open the spreadsheet.

        When ``zone`` is None the spreadsheet's own time zone is used.
        """
        gc = gspread.service_account_from_dict(json.loads(credentials_json))
        if spreadsheet_key:
            ss = gc.open_by_key(spreadsheet_key)
        elif spreadsheet_title:
            ss = gc.open(spreadsheet_title)
        else:
            raise ValueError("spreadsheet_key or spreadsheet_title is required.")
        if zone is None:
            zone = resolve_tz(ss.timezone)
        log.info("Opened spreadsheet %r (time zone %s)", ss.title, zone)
        return cls(spreadsheet=ss, zone=zone)

    def get_table(self, name: str) -> Table:
        try:
            ws = self.spreadsheet.worksheet(name)
        except gspread.WorksheetNotFound as exc:
            raise NotFoundError(f'Sheet "{name}" not found') from exc
        return Table(name=name, handle=ws)

    def read_range(self, table: Table, decode: bool = True) -> list[list[Scalar]]:
        rows = table.handle.get_all_values(
            value_render_option=ValueRenderOption.unformatted,
            date_time_render_option=DateTimeOption.formatted_string,
        )
        return _pad_rows(rows, decode)

    def write_row(self, table: Table, row_index: int, values: Sequence[Scalar]) -> None:
        table.handle.update(
            range_name=f"A{row_index + 1}",
            values=[[encode_cell(v, self.zone) for v in values]],
            value_input_option=ValueInputOption.user_entered,
        )

    def append_row(self, table: Table, values: Sequence[Scalar]) -> None:
        table.handle.append_row(
            [encode_cell(v, self.zone) for v in values],
            value_input_option=ValueInputOption.user_entered,
        )

    def get_header_row(self, table: Table) -> list[str]:
        return [str(c) for c in table.handle.row_values(1)]


# ---------------------------------------------------------------------------
# CSV directory
# ---------------------------------------------------------------------------

@dataclass
class CsvTableStore:
    """Each table is ``<base_dir>/<name>.csv``; the first line is the header."""

    base_dir: Path
    zone: tzinfo = UTC

    def _path(self, table: Table | str) -> Path:
        name = table.name if isinstance(table, Table) else table
        return self.base_dir / f"{name}.csv"

    def _read_raw(self, table: Table) -> list[list[str]]:
        with open(self._path(table), newline="", encoding="utf-8") as fh:
            return [row for row in csv.reader(fh)]

    def get_table(self, name: str) -> Table:
        if not self._path(name).is_file():
            raise NotFoundError(f'Sheet "{name}" not found')
        return Table(name=name)

    def read_range(self, table: Table, decode: bool = True) -> list[list[Scalar]]:
        return _pad_rows(self._read_raw(table), decode)

    def write_row(self, table: Table, row_index: int, values: Sequence[Scalar]) -> None:
        rows = self._read_raw(table)
        while len(rows) <= row_index:
            rows.append([])
        rows[row_index] = [encode_cell(v, self.zone) for v in values]
        with open(self._path(table), "w", newline="", encoding="utf-8") as fh:
            csv.writer(fh).writerows(rows)

    def append_row(self, table: Table, values: Sequence[Scalar]) -> None:
        with open(self._path(table), "a", newline="", encoding="utf-8") as fh:
            csv.writer(fh).writerow([encode_cell(v, self.zone) for v in values])

    def get_header_row(self, table: Table) -> list[str]:
        rows = self._read_raw(table)
        return list(rows[0]) if rows else []


# ---------------------------------------------------------------------------
# In memory
# ---------------------------------------------------------------------------

@dataclass
class InMemoryTableStore:
    """Tables held as lists of rows.

    ``reads`` and ``writes`` record every data access as
    ``(operation, table_name, ...)`` tuples.
    """

    tables: dict[str, list[list[Any]]] = field(default_factory=dict)
    reads: list[tuple[Any, ...]] = field(default_factory=list)
    writes: list[tuple[Any, ...]] = field(default_factory=list)

    def get_table(self, name: str) -> Table:
        if name not in self.tables:
            raise NotFoundError(f'Sheet "{name}" not found')
        return Table(name=name)

    def read_range(self, table: Table, decode: bool = True) -> list[list[Scalar]]:
        self.reads.append(("read_range", table.name))
        return _pad_rows([list(r) for r in self.tables[table.name]], decode)

    def write_row(self, table: Table, row_index: int, values: Sequence[Scalar]) -> None:
        self.writes.append(("write_row", table.name, row_index, list(values)))
        self.tables[table.name][row_index] = list(values)

    def append_row(self, table: Table, values: Sequence[Scalar]) -> None:
        self.writes.append(("append_row", table.name, list(values)))
        self.tables[table.name].append(list(values))

    def get_header_row(self, table: Table) -> list[str]:
        rows = self.tables[table.name]
        return [str(c) for c in rows[0]] if rows else []
