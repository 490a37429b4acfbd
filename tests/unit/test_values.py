"""Unit tests for kvsheet.values."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from dateutil import tz

from kvsheet.values import (
    decode_cell,
    encode_cell,
    loose_equals,
    parse_timestamp,
    resolve_tz,
    to_instant,
    value_equals,
)

UTC = timezone.utc
TOKYO = tz.gettz("Asia/Tokyo")

# 2024-05-01T10:00:00Z in epoch milliseconds
EPOCH_MS = 1714557600000


# ---------------------------------------------------------------------------
# parse_timestamp
# ---------------------------------------------------------------------------

class TestParseTimestamp:
    def test_iso_with_z(self):
        assert parse_timestamp("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, tzinfo=UTC)

    def test_iso_with_offset(self):
        assert parse_timestamp("2024-05-01T19:00:00+09:00") == datetime(2024, 5, 1, 10, tzinfo=UTC)

    def test_iso_space_separator_is_naive(self):
        ts = parse_timestamp("2024-05-01 10:00:00")
        assert ts == datetime(2024, 5, 1, 10)
        assert ts.tzinfo is None

    def test_date_only(self):
        assert parse_timestamp("2024-05-01") == datetime(2024, 5, 1)

    def test_us_format(self):
        assert parse_timestamp("5/1/2024 10:00:00") == datetime(2024, 5, 1, 10)

    def test_strips_whitespace(self):
        assert parse_timestamp("  2024-05-01  ") == datetime(2024, 5, 1)

    @pytest.mark.parametrize("text", ["hello", "2024", "12", "", "   ", "2024-13-45"])
    def test_non_timestamps(self, text):
        assert parse_timestamp(text) is None

    def test_none(self):
        assert parse_timestamp(None) is None


# ---------------------------------------------------------------------------
# to_instant / resolve_tz
# ---------------------------------------------------------------------------

class TestToInstant:
    def test_naive_datetime_read_in_zone(self):
        assert to_instant(datetime(2024, 5, 1, 19), TOKYO) == datetime(2024, 5, 1, 10, tzinfo=UTC)

    def test_epoch_milliseconds(self):
        assert to_instant(EPOCH_MS) == datetime(2024, 5, 1, 10, tzinfo=UTC)

    def test_bool_is_not_a_timestamp(self):
        assert to_instant(True) is None

    def test_text_that_is_not_a_timestamp(self):
        assert to_instant("abc") is None


class TestResolveTz:
    def test_default_is_utc(self):
        assert resolve_tz(None) is UTC
        assert resolve_tz("") is UTC
        assert resolve_tz("utc") is UTC

    def test_named_zone(self):
        zone = resolve_tz("Asia/Tokyo")
        assert datetime(2024, 1, 1, tzinfo=zone).utcoffset().total_seconds() == 9 * 3600

    def test_unknown_zone_raises(self):
        with pytest.raises(ValueError, match="Unknown time zone"):
            resolve_tz("Nowhere/Atlantis")


# ---------------------------------------------------------------------------
# decode_cell / encode_cell
# ---------------------------------------------------------------------------

class TestDecodeCell:
    def test_none_is_blank(self):
        assert decode_cell(None) == ""

    def test_text_passes_through(self):
        assert decode_cell("Alice") == "Alice"

    def test_numbers_and_bools_pass_through(self):
        assert decode_cell(5) == 5
        assert decode_cell(2.5) == 2.5
        assert decode_cell(True) is True

    def test_date_text_becomes_datetime(self):
        assert decode_cell("2024-05-01 10:00:00") == datetime(2024, 5, 1, 10)


class TestEncodeCell:
    def test_naive_datetime(self):
        assert encode_cell(datetime(2024, 5, 1, 10)) == "2024-05-01 10:00:00"

    def test_aware_datetime_converted_to_zone(self):
        value = datetime(2024, 5, 1, 10, tzinfo=UTC)
        assert encode_cell(value, TOKYO) == "2024-05-01 19:00:00"

    def test_scalars_unchanged(self):
        assert encode_cell("x") == "x"
        assert encode_cell(3) == 3
        assert encode_cell(False) is False


# ---------------------------------------------------------------------------
# loose_equals
# ---------------------------------------------------------------------------

class TestLooseEquals:
    @pytest.mark.parametrize("lhs,rhs", [
        ("1", 1),
        (1, "1"),
        ("1", 1.0),
        (" 1 ", 1),
        (True, 1),
        (True, "1"),
        ("abc", "abc"),
        (10, 10.0),
    ])
    def test_equal(self, lhs, rhs):
        assert loose_equals(lhs, rhs) is True

    @pytest.mark.parametrize("lhs,rhs", [
        ("1", "1.0"),
        ("", 0),
        ("abc", 1),
        ("Alice", "alice"),
        (False, 1),
        ("1_0", 10),
    ])
    def test_not_equal(self, lhs, rhs):
        assert loose_equals(lhs, rhs) is False

    def test_blank_text_never_equals_zero(self):
        assert loose_equals("", 0) is False
        assert loose_equals(0, "") is False
        assert loose_equals("  ", 0.0) is False
        assert value_equals("", 0) is False

    def test_none_treated_as_blank(self):
        assert loose_equals(None, "") is True


# ---------------------------------------------------------------------------
# value_equals
# ---------------------------------------------------------------------------

class TestValueEquals:
    def test_stored_timestamp_matches_same_instant_in_other_text(self):
        stored = datetime(2024, 5, 1, 10)
        assert value_equals(stored, "2024-05-01T10:00:00Z")
        assert value_equals(stored, "2024-05-01T19:00:00+09:00")
        assert value_equals(stored, "2024-05-01 10:00:00")

    def test_stored_timestamp_read_in_sheet_zone(self):
        stored = datetime(2024, 5, 1, 19)
        assert value_equals(stored, "2024-05-01T10:00:00Z", TOKYO)
        assert not value_equals(stored, "2024-05-01T19:00:00Z", TOKYO)

    def test_stored_timestamp_vs_epoch_ms(self):
        assert value_equals(datetime(2024, 5, 1, 10), EPOCH_MS)

    def test_stored_timestamp_different_instant(self):
        assert not value_equals(datetime(2024, 5, 1, 10), "2024-05-01T10:00:01Z")

    def test_stored_timestamp_vs_non_timestamp(self):
        assert not value_equals(datetime(2024, 5, 1, 10), "abc")
        assert not value_equals(datetime(2024, 5, 1, 10), True)

    def test_only_stored_side_decides_timestamp_mode(self):
        incoming = datetime(2024, 5, 1, 10, tzinfo=UTC)
        assert not value_equals("2024-05-01T10:00:00Z", incoming)

    def test_non_timestamp_falls_back_to_loose(self):
        assert value_equals("1", 1)
        assert not value_equals("1", 2)
