"""kvsheet.upsert

Row upsert engine: applies a batch of key/value records to one table.

Processing order per batch:
  1.  Read the header row; every physical name in the column map must be in
      it (ConfigurationError otherwise, before any data row is read).
  2.  Derive the key columns from the first record's ``keys``, in that
      record's order.  All records must use the same key ids.
  3.  For each record, in input order:
      a.  Re-read the full data range and scan it top to bottom for the
          first row whose key cells equal the record's keys.  Cells are
          decoded for matching only; the row written back starts from the
          raw cells so untouched columns keep their stored text.
      b.  Found: overwrite its key and value cells and write the row back.
      c.  Not found: build a blank header-width row, fill key and value
          cells, append it.  Later records in the batch can match it.

No caching across records: every record costs one full read and one
write, so a batch sees rows changed by earlier records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Mapping, Sequence

from kvsheet.shared import ConfigurationError, RequestValidationError, UpsertCounters
from kvsheet.store import Table, TableStore
from kvsheet.values import UTC, Scalar, decode_cell, value_equals

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class UpsertRecord:
    keys: dict[str, Scalar]
    values: dict[str, Scalar] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------

def validate_header(header: Sequence[str], column_names: Mapping[str, str]) -> None:
    """Raise ConfigurationError for the first mapped column missing from header."""
    for column_name in column_names.values():
        if column_name not in header:
            raise ConfigurationError(f"Column {column_name} not found in sheet header row")


def validate_batch(records: Sequence[UpsertRecord]) -> None:
    """Every record needs non-empty keys, and the same key ids as the first."""
    first_ids: set[str] | None = None
    for i, record in enumerate(records):
        if not record.keys:
            raise RequestValidationError(f"data[{i}]: 'keys' must not be empty")
        ids = set(record.keys)
        if first_ids is None:
            first_ids = ids
        elif ids != first_ids:
            raise RequestValidationError(
                f"data[{i}]: key ids {sorted(ids)} differ from data[0] key ids "
                f"{sorted(first_ids)}"
            )


def derive_key_columns(
    header: Sequence[str],
    column_names: Mapping[str, str],
    first_record: UpsertRecord,
    counters: UpsertCounters,
) -> list[tuple[str, int]]:
    """Return [(column_id, header_index), ...] in the first record's key order."""
    key_columns: list[tuple[str, int]] = []
    for column_id in first_record.keys:
        column_name = column_names.get(column_id)
        if column_name is None:
            counters.warnings.append(f"key '{column_id}' has no mapped column; not matched")
            continue
        key_columns.append((column_id, header.index(column_name)))
    if not key_columns:
        raise ConfigurationError(
            f"None of the key ids {sorted(first_record.keys)} map to a column"
        )
    return key_columns


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

def find_row(
    rows: Sequence[Sequence[Scalar]],
    key_columns: Sequence[tuple[str, int]],
    record: UpsertRecord,
    zone: tzinfo = UTC,
) -> int | None:
    """Return the index of the first data row matching the record's keys.

    ``rows[0]`` is the header and is never matched.
    """
    for i in range(1, len(rows)):
        row = rows[i]
        if all(
            idx < len(row) and value_equals(row[idx], record.keys[column_id], zone)
            for column_id, idx in key_columns
        ):
            return i
    return None


def _place_fields(
    row: list[Scalar],
    header: Sequence[str],
    column_names: Mapping[str, str],
    fields: Mapping[str, Scalar],
    counters: UpsertCounters,
) -> None:
    for column_id, value in fields.items():
        column_name = column_names.get(column_id)
        if column_name is None:
            counters.fields_skipped += 1
            continue
        row[header.index(column_name)] = value


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

def upsert_records(
    store: TableStore,
    table: Table,
    column_names: Mapping[str, str],
    records: Sequence[UpsertRecord],
    zone: tzinfo = UTC,
    run_id: str = "-",
) -> UpsertCounters:
    """Update or append one row per record.

    Args:
        store: Store holding ``table``.
        table: Destination table handle.
        column_names: column_id -> physical column name for this destination.
        records: Batch to apply, in order.
        zone: Time zone for naive timestamps in the table or the request.
        run_id: Correlation id for log lines.

    Returns:
        UpsertCounters for the batch.

    Raises:
        ConfigurationError: A mapped column is missing from the header, or
            no key column can be derived.
        RequestValidationError: A record has no keys or a different key shape.
    """
    ctrs = UpsertCounters()
    header = store.get_header_row(table)
    validate_header(header, column_names)
    if not records:
        log.info("[%s] Empty batch for %s; nothing to do", run_id, table.name)
        return ctrs

    validate_batch(records)
    key_columns = derive_key_columns(header, column_names, records[0], ctrs)
    width = len(header)

    for record in records:
        ctrs.records_read += 1
        rows = store.read_range(table, decode=False)
        decoded = [[decode_cell(c) for c in row] for row in rows]
        row_index = find_row(decoded, key_columns, record, zone)

        if row_index is None:
            new_row: list[Scalar] = [""] * width
            _place_fields(new_row, header, column_names, record.keys, ctrs)
            _place_fields(new_row, header, column_names, record.values, ctrs)
            store.append_row(table, new_row)
            ctrs.rows_appended += 1
            log.debug("[%s] %s: appended row for keys %s", run_id, table.name, record.keys)
        else:
            row = list(rows[row_index][:width])
            row.extend([""] * (width - len(row)))
            _place_fields(row, header, column_names, record.keys, ctrs)
            _place_fields(row, header, column_names, record.values, ctrs)
            store.write_row(table, row_index, row)
            ctrs.rows_updated += 1
            log.debug("[%s] %s: updated row %d for keys %s", run_id, table.name, row_index, record.keys)

    for w in ctrs.warnings:
        log.warning("[%s] %s", run_id, w)
    log.info(
        "[%s] %s: %d records, %d updated, %d appended",
        run_id, table.name, ctrs.records_read, ctrs.rows_updated, ctrs.rows_appended,
    )
    return ctrs
