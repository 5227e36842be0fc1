"""nutritrack_etl.row_parser

Turns one delimited source line into a PatientRecord.

Two modes share the same row gate (no undecodable bytes, minimum column
count, non-empty User_ID, PhoneNumber and Sex):

  basic - identity fields only (user_id, phone_number, sex)
  full  - identity fields plus every numeric field in FULL_COLUMN_MAP

A bad numeric cell becomes None for that field only. A rejected row is
counted on RunCounters and optionally written to a RejectWriter; it
never raises to the caller, not even when the rejects file is unwritable.
"""

from __future__ import annotations

import csv
import logging
from typing import Literal

from nutritrack_etl.normalize import parse_float, trim
from nutritrack_etl.records import PatientRecord
from nutritrack_etl.shared import RejectWriter, RowParseFailure, RunCounters

log = logging.getLogger(__name__)

ParseMode = Literal["basic", "full"]

MIN_COLUMNS = 63

USER_ID_COLUMN = "User_ID"
PHONE_NUMBER_COLUMN = "PhoneNumber"
SEX_COLUMN = "Sex"

REQUIRED_HEADERS = (USER_ID_COLUMN, PHONE_NUMBER_COLUMN)

# Stands in for bytes the source decoder could not read.
REPLACEMENT_CHAR = "\ufffd"

# Source header -> PatientRecord field, for every numeric field.
FULL_COLUMN_MAP: dict[str, str] = {
    "HEIFAtotalscoreMale": "heifa_total_score_male",
    "HEIFAtotalscoreFemale": "heifa_total_score_female",
    "DiscretionaryHEIFAscoreMale": "discretionary_heifa_score_male",
    "DiscretionaryHEIFAscoreFemale": "discretionary_heifa_score_female",
    "Discretionaryservesize": "discretionary_serve_size",
    "VegetablesHEIFAscoreMale": "vegetables_heifa_score_male",
    "VegetablesHEIFAscoreFemale": "vegetables_heifa_score_female",
    "Vegetableswithlegumesallocatedservesize": "vegetables_with_legumes_allocated_serve_size",
    "LegumesallocatedVegetables": "legumes_allocated_vegetables",
    "Vegetablesvariationsscore": "vegetables_variations_score",
    "VegetablesCruciferous": "vegetables_cruciferous",
    "VegetablesTuberandbulb": "vegetables_tuber_and_bulb",
    "VegetablesOther": "vegetables_other",
    "Legumes": "legumes",
    "VegetablesGreen": "vegetables_green",
    "VegetablesRedandorange": "vegetables_red_and_orange",
    "FruitHEIFAscoreMale": "fruit_heifa_score_male",
    "FruitHEIFAscoreFemale": "fruit_heifa_score_female",
    "Fruitservesize": "fruit_serve_size",
    "Fruitvariationsscore": "fruit_variations_score",
    "FruitPome": "fruit_pome",
    "FruitTropicalandsubtropical": "fruit_tropical_and_subtropical",
    "FruitBerry": "fruit_berry",
    "FruitStone": "fruit_stone",
    "FruitCitrus": "fruit_citrus",
    "FruitOther": "fruit_other",
    "GrainsandcerealsHEIFAscoreMale": "grains_and_cereals_heifa_score_male",
    "GrainsandcerealsHEIFAscoreFemale": "grains_and_cereals_heifa_score_female",
    "Grainsandcerealsservesize": "grains_and_cereals_serve_size",
    "GrainsandcerealsNonwholegrains": "grains_and_cereals_non_whole_grains",
    "WholegrainsHEIFAscoreMale": "whole_grains_heifa_score_male",
    "WholegrainsHEIFAscoreFemale": "whole_grains_heifa_score_female",
    "Wholegrainsservesize": "whole_grains_serve_size",
    "MeatandalternativesHEIFAscoreMale": "meat_and_alternatives_heifa_score_male",
    "MeatandalternativesHEIFAscoreFemale": "meat_and_alternatives_heifa_score_female",
    "Meatandalternativeswithlegumesallocatedservesize": "meat_and_alternatives_with_legumes_allocated_serve_size",
    "LegumesallocatedMeatandalternatives": "legumes_allocated_meat_and_alternatives",
    "DairyandalternativesHEIFAscoreMale": "dairy_and_alternatives_heifa_score_male",
    "DairyandalternativesHEIFAscoreFemale": "dairy_and_alternatives_heifa_score_female",
    "Dairyandalternativesservesize": "dairy_and_alternatives_serve_size",
    "SodiumHEIFAscoreMale": "sodium_heifa_score_male",
    "SodiumHEIFAscoreFemale": "sodium_heifa_score_female",
    "Sodiummgmilligrams": "sodium_mg_milligrams",
    "AlcoholHEIFAscoreMale": "alcohol_heifa_score_male",
    "AlcoholHEIFAscoreFemale": "alcohol_heifa_score_female",
    "Alcoholstandarddrinks": "alcohol_standard_drinks",
    "WaterHEIFAscoreMale": "water_heifa_score_male",
    "WaterHEIFAscoreFemale": "water_heifa_score_female",
    "Water": "water",
    "WaterTotalmL": "water_total_ml",
    "BeverageTotalmL": "beverage_total_ml",
    "SugarHEIFAscoreMale": "sugar_heifa_score_male",
    "SugarHEIFAscoreFemale": "sugar_heifa_score_female",
    "Sugar": "sugar",
    "SaturatedFatHEIFAscoreMale": "saturated_fat_heifa_score_male",
    "SaturatedFatHEIFAscoreFemale": "saturated_fat_heifa_score_female",
    "SaturatedFat": "saturated_fat",
    "UnsaturatedFatHEIFAscoreMale": "unsaturated_fat_heifa_score_male",
    "UnsaturatedFatHEIFAscoreFemale": "unsaturated_fat_heifa_score_female",
    "UnsaturatedFatservesize": "unsaturated_fat_serve_size",
}


# ---------------------------------------------------------------------------
# Header helpers
# ---------------------------------------------------------------------------

def split_line(raw_line: str) -> list[str]:
    """Split one source line on commas, honouring double-quoted cells."""
    line = raw_line.rstrip("\r\n")
    if not line:
        return []
    return next(csv.reader([line]))


def build_header_index(header_line: str) -> dict[str, int]:
    """Map each header name (whitespace-stripped, BOM removed) to its position."""
    names = split_line(header_line.lstrip("\ufeff"))
    index: dict[str, int] = {}
    for position, name in enumerate(names):
        index.setdefault(name.strip(), position)
    return index


def missing_required_headers(header_index: dict[str, int]) -> list[str]:
    return [name for name in REQUIRED_HEADERS if name not in header_index]


def _cell(columns: list[str], header_index: dict[str, int], name: str) -> str | None:
    position = header_index.get(name)
    if position is None or position >= len(columns):
        return None
    return columns[position]


# ---------------------------------------------------------------------------
# Row parsing
# ---------------------------------------------------------------------------

def _build_record(
    columns: list[str],
    header_index: dict[str, int],
    mode: ParseMode,
    min_columns: int,
) -> PatientRecord:
    if len(columns) < min_columns:
        raise RowParseFailure("insufficient_columns")

    user_id = trim(_cell(columns, header_index, USER_ID_COLUMN))
    phone_number = trim(_cell(columns, header_index, PHONE_NUMBER_COLUMN))
    if not user_id or not phone_number:
        raise RowParseFailure("missing_user_id_or_phone")

    sex = trim(_cell(columns, header_index, SEX_COLUMN))
    if not sex:
        raise RowParseFailure("missing_sex")
    record = PatientRecord(user_id=user_id, phone_number=phone_number, sex=sex)
    if mode == "basic":
        return record

    for header, attr in FULL_COLUMN_MAP.items():
        setattr(record, attr, parse_float(_cell(columns, header_index, header)))
    return record


def parse_row(
    raw_line: str,
    header_index: dict[str, int],
    mode: ParseMode,
    counters: RunCounters,
    *,
    line_number: int | None = None,
    rejects: RejectWriter | None = None,
    min_columns: int = MIN_COLUMNS,
) -> PatientRecord | None:
    """Parse one data line; return None (and count the reject) when unusable."""
    try:
        if REPLACEMENT_CHAR in raw_line:
            raise RowParseFailure("undecodable_bytes")
        columns = split_line(raw_line)
        return _build_record(columns, header_index, mode, min_columns)
    except RowParseFailure as exc:
        reason = exc.reason
        if reason == "insufficient_columns":
            log.warning(
                "Row %s: insufficient columns. Found %d, need %d",
                line_number, len(columns), min_columns,
            )
        else:
            log.warning("Row %s: %s", line_number, reason)
    except (csv.Error, ValueError) as exc:
        reason = f"row_parse_error: {exc}"
        log.error("Error processing row %s: %s", line_number, exc)

    counters.record_reject(reason)
    if rejects is not None:
        try:
            rejects.write(mode, line_number, raw_line.rstrip("\r\n"), reason)
        except OSError as exc:
            log.error("Row %s: could not write reject: %s", line_number, exc)
            counters.warnings.append(f"reject_write_failed line={line_number}: {exc}")
    return None
