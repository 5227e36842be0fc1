"""nutritrack_etl.insights

Gender-resolved projections of a stored PatientRecord.

Each HEIFA component is stored twice (male and female variant). The
record's own sex picks the authoritative variant; the other one is
ignored. Missing scores project as 0.0.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from nutritrack_etl.normalize import is_male
from nutritrack_etl.records import PatientRecord

# InsightView field -> stored column prefix (suffixed _male / _female).
INSIGHT_COMPONENTS: dict[str, str] = {
    "total_score": "heifa_total_score",
    "vegetables_score": "vegetables_heifa_score",
    "fruits_score": "fruit_heifa_score",
    "grains_score": "grains_and_cereals_heifa_score",
    "whole_grains_score": "whole_grains_heifa_score",
    "meat_score": "meat_and_alternatives_heifa_score",
    "dairy_score": "dairy_and_alternatives_heifa_score",
    "water_score": "water_heifa_score",
    "unsaturated_fats_score": "unsaturated_fat_heifa_score",
    "sodium_score": "sodium_heifa_score",
    "sugar_score": "sugar_heifa_score",
    "alcohol_score": "alcohol_heifa_score",
    "discretionary_score": "discretionary_heifa_score",
}

QUALITY_DESCRIPTIONS: dict[str, str] = {
    "quality_poor_desc": "There's significant room for improvement in your dietary choices.",
    "quality_fair_desc": "Your diet has some healthy elements, but could use improvement in certain areas.",
    "quality_good_desc": "You're making healthy choices with room for improvement.",
    "quality_excellent_desc": "You're making excellent dietary choices that support optimal health.",
}

_RATING_KEYS = {
    "Poor": "quality_poor_desc",
    "Fair": "quality_fair_desc",
    "Good": "quality_good_desc",
}


@dataclass(frozen=True)
class InsightView:
    sex: str
    total_score: float
    vegetables_score: float
    fruits_score: float
    grains_score: float
    whole_grains_score: float
    meat_score: float
    dairy_score: float
    water_score: float
    unsaturated_fats_score: float
    sodium_score: float
    sugar_score: float
    alcohol_score: float
    discretionary_score: float


@dataclass(frozen=True)
class NutritionSummary:
    """Identity plus both total scores, as shown on a summary screen."""

    user_id: str
    name: str
    sex: str
    heifa_total_score_male: float
    heifa_total_score_female: float


def gendered_score(record: PatientRecord, prefix: str) -> float:
    suffix = "male" if is_male(record.sex) else "female"
    value = getattr(record, f"{prefix}_{suffix}")
    return value if value is not None else 0.0


def project(record: PatientRecord | None) -> InsightView | None:
    if record is None:
        return None
    scores = {name: gendered_score(record, prefix) for name, prefix in INSIGHT_COMPONENTS.items()}
    return InsightView(sex=record.sex, **scores)


def summarize(record: PatientRecord | None) -> NutritionSummary | None:
    if record is None:
        return None
    return NutritionSummary(
        user_id=record.user_id,
        name=record.name,
        sex=record.sex,
        heifa_total_score_male=record.heifa_total_score_male or 0.0,
        heifa_total_score_female=record.heifa_total_score_female or 0.0,
    )


def describe(rating: str, strings: Mapping[str, str] | None = None) -> str:
    """Map a diet-quality rating to its descriptive sentence.

    Anything other than "Poor", "Fair" or "Good" (including "Excellent")
    gets the excellent description. `strings` is an optional localized
    lookup keyed like QUALITY_DESCRIPTIONS; keys it lacks fall back to
    the built-in English text.
    """
    key = _RATING_KEYS.get(rating, "quality_excellent_desc")
    if strings is not None and key in strings:
        return strings[key]
    return QUALITY_DESCRIPTIONS[key]
