"""Synthetic nutrition CSV sources shared by unit and integration tests."""

from __future__ import annotations

from nutritrack_etl.row_parser import (
    FULL_COLUMN_MAP,
    PHONE_NUMBER_COLUMN,
    SEX_COLUMN,
    USER_ID_COLUMN,
)

HEADERS = [USER_ID_COLUMN, PHONE_NUMBER_COLUMN, SEX_COLUMN, *FULL_COLUMN_MAP]


def build_csv(rows: list[dict | str], headers: list[str] = HEADERS) -> str:
    """Render rows as CSV text under the full 63-column header.

    A dict row fills named columns (others blank); a str row is used
    verbatim, for deliberately malformed lines.
    """
    lines = [",".join(headers)]
    for row in rows:
        if isinstance(row, str):
            lines.append(row)
        else:
            lines.append(",".join(str(row.get(h, "")) for h in headers))
    return "\n".join(lines) + "\n"


def patient_row(user_id: str, phone: str, sex: str, **scores: str) -> dict:
    """One CSV row keyed by source header; scores use source header names."""
    row = {USER_ID_COLUMN: user_id, PHONE_NUMBER_COLUMN: phone, SEX_COLUMN: sex}
    row.update(scores)
    return row


THREE_ROWS_ONE_SHORT = [
    patient_row(
        "1", "61400000001", "Male",
        HEIFAtotalscoreMale="72.5", VegetablesHEIFAscoreMale="4.2",
        WaterTotalmL="2600", Vegetablesvariationsscore="2",
    ),
    "2,61400000002,Female,1.0,2.0",
    patient_row(
        "3", "61400000003", "Female",
        HEIFAtotalscoreFemale="55", Sodiummgmilligrams="2100",
    ),
]
