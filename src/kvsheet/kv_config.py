"""kvsheet.kv_config

Config resolver: turns the config sheet into logical destination and
column tables.

The config sheet holds one or more side-by-side blocks separated by fully
empty columns.  Each block starts with a header row of labels:

  - destination block: ``sheet_id``, ``sheet_name``
  - column block:      ``sheet_id``, ``col_id``, ``col_name``

Extra labels are ignored, label order does not matter, and blocks matching
neither layout are skipped.  A block that matches both layouts is read as a
destination block.

Usage:
    resolver = ConfigResolver.from_store(store, "kv_config")
    table_name = resolver.destination_name("kv1")
    column_names = resolver.column_name_map("kv1")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Sequence

from kvsheet.shared import NotFoundError
from kvsheet.store import TableStore

log = logging.getLogger(__name__)

DEFAULT_CONFIG_TABLE = "kv_config"

DESTINATION_LABELS = ("sheet_id", "sheet_name")
COLUMN_LABELS = ("sheet_id", "col_id", "col_name")


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LogicalDestination:
    destination_id: str
    physical_name: str


@dataclass(frozen=True)
class LogicalColumn:
    destination_id: str
    column_id: str
    physical_name: str


# ---------------------------------------------------------------------------
# Block segmentation
# ---------------------------------------------------------------------------

def _cell_text(value: Any) -> str:
    return "" if value is None else str(value)


def transpose(rows: list[list[str]]) -> list[list[str]]:
    """Swap rows and columns."""
    if not rows:
        return []
    return [list(col) for col in zip(*rows)]


def split_into_blocks(rows: Sequence[Sequence[Any]]) -> list[list[list[str]]]:
    """Split a sheet into blocks of consecutive non-empty columns.

    Each returned block is row-major.  An all-empty column closes the
    current block and is dropped.
    """
    grid = [[_cell_text(c) for c in row] for row in rows]
    if not grid:
        return []
    num_cols = max(len(r) for r in grid)
    for r in grid:
        r.extend([""] * (num_cols - len(r)))

    blocks: list[list[list[str]]] = []
    current: list[list[str]] = []
    for j in range(num_cols):
        column = [r[j] for r in grid]
        if any(column):
            current.append(column)
        elif current:
            blocks.append(transpose(current))
            current = []
    if current:
        blocks.append(transpose(current))
    return blocks


def _has_labels(block: list[list[str]], labels: Sequence[str]) -> bool:
    if not block:
        return False
    header = block[0]
    return all(label in header for label in labels)


def is_destination_block(block: list[list[str]]) -> bool:
    return _has_labels(block, DESTINATION_LABELS)


def is_column_block(block: list[list[str]]) -> bool:
    return _has_labels(block, COLUMN_LABELS)


def _data_rows(block: list[list[str]]):
    """Yield (header, row) for every non-blank row after the header."""
    header = block[0]
    for row in block[1:]:
        if not any(row):
            continue
        yield header, row


def parse_destination_block(block: list[list[str]]) -> list[LogicalDestination]:
    out = []
    for header, row in _data_rows(block):
        out.append(LogicalDestination(
            destination_id=row[header.index("sheet_id")],
            physical_name=row[header.index("sheet_name")],
        ))
    return out


def parse_column_block(block: list[list[str]]) -> list[LogicalColumn]:
    out = []
    for header, row in _data_rows(block):
        out.append(LogicalColumn(
            destination_id=row[header.index("sheet_id")],
            column_id=row[header.index("col_id")],
            physical_name=row[header.index("col_name")],
        ))
    return out


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------

class ConfigResolver:
    """Logical destination and column tables read from a config sheet."""

    def __init__(self, rows: Sequence[Sequence[Any]]) -> None:
        self._rows = rows
        self._destinations: list[LogicalDestination] = []
        self._columns: list[LogicalColumn] = []
        self.resolve()

    @classmethod
    def from_store(
        cls,
        store: TableStore,
        config_table: str = DEFAULT_CONFIG_TABLE,
    ) -> "ConfigResolver":
        table = store.get_table(config_table)
        return cls(store.read_range(table, decode=False))

    def resolve(self) -> None:
        """(Re)parse the rows, replacing any earlier result."""
        destinations: list[LogicalDestination] = []
        columns: list[LogicalColumn] = []
        for block in split_into_blocks(self._rows):
            if is_destination_block(block):
                destinations.extend(parse_destination_block(block))
            elif is_column_block(block):
                columns.extend(parse_column_block(block))
            else:
                log.debug("Ignoring config block with header %s", block[0])
        self._destinations = destinations
        self._columns = columns

    @property
    def destinations(self) -> list[LogicalDestination]:
        return list(self._destinations)

    @property
    def columns(self) -> list[LogicalColumn]:
        return list(self._columns)

    def destination_name(self, destination_id: str) -> str:
        """Physical table name for a destination id (first match wins)."""
        for dest in self._destinations:
            if dest.destination_id == destination_id:
                return dest.physical_name
        raise NotFoundError(f"Destination '{destination_id}' not found in config")

    def column_name_map(self, destination_id: str) -> dict[str, str]:
        """column_id -> physical column name for one destination."""
        names: dict[str, str] = {}
        for col in self._columns:
            if col.destination_id != destination_id:
                continue
            if col.column_id in names:
                log.warning(
                    "Duplicate col_id %r for destination %r; using %r over %r",
                    col.column_id, destination_id,
                    col.physical_name, names[col.column_id],
                )
            names[col.column_id] = col.physical_name
        return names
