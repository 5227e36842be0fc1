"""Unit tests for nutritrack_etl.insights."""

from __future__ import annotations

import pytest

from nutritrack_etl.insights import (
    INSIGHT_COMPONENTS,
    QUALITY_DESCRIPTIONS,
    describe,
    gendered_score,
    project,
    summarize,
)
from nutritrack_etl.records import PATIENT_COLUMNS, PatientRecord


def _record(sex: str, **scores) -> PatientRecord:
    return PatientRecord(user_id="1", phone_number="555", sex=sex, **scores)


# ---------------------------------------------------------------------------
# project
# ---------------------------------------------------------------------------

class TestProject:
    def test_male_missing_vegetables_is_zero(self):
        view = project(_record("Male", vegetables_heifa_score_male=None))
        assert view.vegetables_score == 0.0

    def test_male_uses_male_variant(self):
        view = project(_record(
            "Male", heifa_total_score_male=71.2, heifa_total_score_female=40.0,
        ))
        assert view.total_score == 71.2

    def test_female_uses_female_variant(self):
        view = project(_record(
            "Female", heifa_total_score_male=71.2, heifa_total_score_female=40.0,
        ))
        assert view.total_score == 40.0

    def test_sex_comparison_is_case_insensitive(self):
        view = project(_record("MALE", water_heifa_score_male=5.0))
        assert view.water_score == 5.0

    def test_unrecognised_sex_uses_female_variant(self):
        view = project(_record("", sugar_heifa_score_female=2.5, sugar_heifa_score_male=9.0))
        assert view.sugar_score == 2.5

    def test_none_record(self):
        assert project(None) is None

    def test_all_components_present(self):
        view = project(_record("Female"))
        for name in INSIGHT_COMPONENTS:
            assert getattr(view, name) == 0.0

    @pytest.mark.parametrize("prefix", sorted(INSIGHT_COMPONENTS.values()))
    def test_every_prefix_names_two_columns(self, prefix):
        assert f"{prefix}_male" in PATIENT_COLUMNS
        assert f"{prefix}_female" in PATIENT_COLUMNS


class TestGenderedScore:
    def test_returns_value(self):
        assert gendered_score(_record("Female", fruit_heifa_score_female=3.0), "fruit_heifa_score") == 3.0


class TestSummarize:
    def test_both_totals_defaulted(self):
        s = summarize(_record("Male", heifa_total_score_male=60.0))
        assert s.heifa_total_score_male == 60.0
        assert s.heifa_total_score_female == 0.0
        assert s.user_id == "1"

    def test_none(self):
        assert summarize(None) is None


# ---------------------------------------------------------------------------
# describe
# ---------------------------------------------------------------------------

class TestDescribe:
    def test_fair_fallback_text(self):
        assert describe("Fair", None) == (
            "Your diet has some healthy elements, but could use improvement in certain areas."
        )

    def test_unknown_falls_to_excellent(self):
        assert describe("Unknown", None) == QUALITY_DESCRIPTIONS["quality_excellent_desc"]

    def test_excellent(self):
        assert describe("Excellent") == QUALITY_DESCRIPTIONS["quality_excellent_desc"]

    def test_poor_and_good(self):
        assert describe("Poor") == QUALITY_DESCRIPTIONS["quality_poor_desc"]
        assert describe("Good") == QUALITY_DESCRIPTIONS["quality_good_desc"]

    def test_localized_lookup_wins(self):
        strings = {"quality_good_desc": "Bon travail."}
        assert describe("Good", strings) == "Bon travail."

    def test_localized_lookup_missing_key_falls_back(self):
        assert describe("Poor", {}) == QUALITY_DESCRIPTIONS["quality_poor_desc"]

    def test_rating_is_case_sensitive(self):
        assert describe("fair") == QUALITY_DESCRIPTIONS["quality_excellent_desc"]
