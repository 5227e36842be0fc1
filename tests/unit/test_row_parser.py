"""Unit tests for nutritrack_etl.row_parser."""

from __future__ import annotations

import csv

import pytest

from csv_samples import HEADERS, build_csv, patient_row
from nutritrack_etl.row_parser import (
    FULL_COLUMN_MAP,
    MIN_COLUMNS,
    build_header_index,
    missing_required_headers,
    parse_row,
    split_line,
)
from nutritrack_etl.shared import RejectWriter, RunCounters


def _header_index():
    return build_header_index(",".join(HEADERS))


def _line(row) -> str:
    return build_csv([row]).splitlines()[1]


# ---------------------------------------------------------------------------
# Header helpers
# ---------------------------------------------------------------------------

class TestHeaderIndex:
    def test_full_header_has_min_columns(self):
        assert len(HEADERS) == MIN_COLUMNS
        assert len(FULL_COLUMN_MAP) == 60

    def test_positions(self):
        index = _header_index()
        assert index["User_ID"] == 0
        assert index["PhoneNumber"] == 1
        assert index["Sex"] == 2

    def test_strips_bom_and_whitespace(self):
        index = build_header_index("\ufeffUser_ID , PhoneNumber,Sex\r\n")
        assert index == {"User_ID": 0, "PhoneNumber": 1, "Sex": 2}

    def test_duplicate_header_keeps_first_position(self):
        index = build_header_index("User_ID,PhoneNumber,User_ID")
        assert index["User_ID"] == 0

    def test_missing_required(self):
        index = build_header_index("User_ID,Sex")
        assert missing_required_headers(index) == ["PhoneNumber"]

    def test_nothing_missing(self):
        assert missing_required_headers(_header_index()) == []


class TestSplitLine:
    def test_quoted_comma_kept_in_cell(self):
        assert split_line('1,"a,b",Male\n') == ["1", "a,b", "Male"]

    def test_empty_line(self):
        assert split_line("\r\n") == []


# ---------------------------------------------------------------------------
# parse_row: basic mode
# ---------------------------------------------------------------------------

class TestParseRowBasic:
    def test_identity_only(self):
        counters = RunCounters()
        row = patient_row("7", "61499999999", "Male", HEIFAtotalscoreMale="80")
        record = parse_row(_line(row), _header_index(), "basic", counters)
        assert record is not None
        assert (record.user_id, record.phone_number, record.sex) == ("7", "61499999999", "Male")
        assert record.heifa_total_score_male is None
        assert record.password == ""
        assert counters.rows_rejected == 0

    def test_short_row_skipped_and_counted(self):
        counters = RunCounters()
        record = parse_row("2,61400000002,Female,1.0,2.0", _header_index(), "basic", counters)
        assert record is None
        assert counters.rows_rejected == 1
        assert counters.reject_reasons == {"insufficient_columns": 1}

    def test_empty_user_id_skipped(self):
        counters = RunCounters()
        record = parse_row(_line(patient_row("", "61400000001", "Male")), _header_index(), "basic", counters)
        assert record is None
        assert counters.reject_reasons == {"missing_user_id_or_phone": 1}

    def test_whitespace_phone_skipped(self):
        counters = RunCounters()
        record = parse_row(_line(patient_row("9", "   ", "Male")), _header_index(), "basic", counters)
        assert record is None
        assert counters.rows_rejected == 1

    def test_blank_sex_skipped(self):
        counters = RunCounters()
        record = parse_row(_line(patient_row("9", "555", "  ")), _header_index(), "basic", counters)
        assert record is None
        assert counters.reject_reasons == {"missing_sex": 1}

    def test_undecodable_bytes_skipped(self):
        counters = RunCounters()
        line = _line(patient_row("9", "55\ufffd5", "Male"))
        record = parse_row(line, _header_index(), "full", counters)
        assert record is None
        assert counters.reject_reasons == {"undecodable_bytes": 1}

    def test_custom_min_columns(self):
        counters = RunCounters()
        index = build_header_index("User_ID,PhoneNumber,Sex")
        record = parse_row("1,555,Female", index, "basic", counters, min_columns=3)
        assert record is not None
        assert record.sex == "Female"


# ---------------------------------------------------------------------------
# parse_row: full mode
# ---------------------------------------------------------------------------

class TestParseRowFull:
    def test_numeric_fields_parsed(self):
        counters = RunCounters()
        row = patient_row(
            "1", "61400000001", "Male",
            HEIFAtotalscoreMale="72.5", WaterTotalmL="2600", Sodiummgmilligrams="1999.9",
        )
        record = parse_row(_line(row), _header_index(), "full", counters)
        assert record.heifa_total_score_male == 72.5
        assert record.water_total_ml == 2600.0
        assert record.sodium_mg_milligrams == 1999.9

    def test_bad_numeric_becomes_none_row_kept(self):
        counters = RunCounters()
        row = patient_row(
            "1", "61400000001", "Female",
            HEIFAtotalscoreFemale="n/a", FruitHEIFAscoreFemale="3.1",
        )
        record = parse_row(_line(row), _header_index(), "full", counters)
        assert record is not None
        assert record.heifa_total_score_female is None
        assert record.fruit_heifa_score_female == 3.1
        assert counters.rows_rejected == 0

    def test_missing_numeric_header_yields_none(self):
        counters = RunCounters()
        headers = [h for h in HEADERS if h != "WaterTotalmL"] + ["Spare"]
        index = build_header_index(",".join(headers))
        line = build_csv([patient_row("1", "555", "Male", Spare="x")], headers).splitlines()[1]
        record = parse_row(line, index, "full", counters)
        assert record is not None
        assert record.water_total_ml is None

    def test_every_mapped_field_is_a_record_attribute(self):
        counters = RunCounters()
        row = patient_row("1", "555", "Male", **{h: "1" for h in FULL_COLUMN_MAP})
        record = parse_row(_line(row), _header_index(), "full", counters)
        for attr in FULL_COLUMN_MAP.values():
            assert getattr(record, attr) == 1.0, attr


# ---------------------------------------------------------------------------
# Rejects file
# ---------------------------------------------------------------------------

class TestRejectsFile:
    def test_rejected_row_written(self, tmp_path):
        path = tmp_path / "rejects.csv"
        rejects = RejectWriter(path)
        counters = RunCounters()
        parse_row("2,555,Male", _header_index(), "full", counters, line_number=3, rejects=rejects)
        rejects.close()

        with path.open(newline="") as fh:
            rows = list(csv.DictReader(fh))
        assert len(rows) == 1
        assert rows[0]["phase"] == "full"
        assert rows[0]["line_number"] == "3"
        assert rows[0]["raw_line"] == "2,555,Male"
        assert rows[0]["_reject_reason"] == "insufficient_columns"

    def test_no_file_without_rejects(self, tmp_path):
        path = tmp_path / "rejects.csv"
        rejects = RejectWriter(path)
        parse_row(_line(patient_row("1", "555", "Male")), _header_index(), "basic", RunCounters(), rejects=rejects)
        rejects.close()
        assert not path.exists()

    def test_unwritable_rejects_file_still_counts(self, tmp_path):
        blocker = tmp_path / "not_a_dir"
        blocker.write_text("", encoding="utf-8")
        rejects = RejectWriter(blocker / "rejects.csv")
        counters = RunCounters()
        record = parse_row("2,555,Male", _header_index(), "basic", counters, line_number=3, rejects=rejects)
        rejects.close()

        assert record is None
        assert counters.rows_rejected == 1
        assert len(counters.warnings) == 1
        assert "line=3" in counters.warnings[0]


@pytest.mark.parametrize("mode", ["basic", "full"])
def test_unterminated_quote_is_recoverable(mode):
    counters = RunCounters()
    line = '1,"555' + "," * 70
    record = parse_row(line, _header_index(), mode, counters)
    # csv treats the rest of the line as one quoted cell
    assert record is None
    assert counters.rows_rejected == 1
