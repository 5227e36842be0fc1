"""nutritrack_etl.records

Row-shaped dataclasses for the two persisted entities: one PatientRecord
per person (table ``patient``) and one FoodPreferences per person (table
``food_preferences``). Field names are also the database column names.
"""

from __future__ import annotations

from dataclasses import astuple, dataclass, fields
from typing import Any


@dataclass
class PatientRecord:
    user_id: str
    phone_number: str
    sex: str
    name: str = ""
    password: str = ""

    # HEIFA totals
    heifa_total_score_male: float | None = None
    heifa_total_score_female: float | None = None

    # Discretionary
    discretionary_heifa_score_male: float | None = None
    discretionary_heifa_score_female: float | None = None
    discretionary_serve_size: float | None = None

    # Vegetables
    vegetables_heifa_score_male: float | None = None
    vegetables_heifa_score_female: float | None = None
    vegetables_with_legumes_allocated_serve_size: float | None = None
    legumes_allocated_vegetables: float | None = None
    vegetables_variations_score: float | None = None
    vegetables_cruciferous: float | None = None
    vegetables_tuber_and_bulb: float | None = None
    vegetables_other: float | None = None
    legumes: float | None = None
    vegetables_green: float | None = None
    vegetables_red_and_orange: float | None = None

    # Fruit
    fruit_heifa_score_male: float | None = None
    fruit_heifa_score_female: float | None = None
    fruit_serve_size: float | None = None
    fruit_variations_score: float | None = None
    fruit_pome: float | None = None
    fruit_tropical_and_subtropical: float | None = None
    fruit_berry: float | None = None
    fruit_stone: float | None = None
    fruit_citrus: float | None = None
    fruit_other: float | None = None

    # Grains and cereals
    grains_and_cereals_heifa_score_male: float | None = None
    grains_and_cereals_heifa_score_female: float | None = None
    grains_and_cereals_serve_size: float | None = None
    grains_and_cereals_non_whole_grains: float | None = None
    whole_grains_heifa_score_male: float | None = None
    whole_grains_heifa_score_female: float | None = None
    whole_grains_serve_size: float | None = None

    # Meat and alternatives
    meat_and_alternatives_heifa_score_male: float | None = None
    meat_and_alternatives_heifa_score_female: float | None = None
    meat_and_alternatives_with_legumes_allocated_serve_size: float | None = None
    legumes_allocated_meat_and_alternatives: float | None = None

    # Dairy and alternatives
    dairy_and_alternatives_heifa_score_male: float | None = None
    dairy_and_alternatives_heifa_score_female: float | None = None
    dairy_and_alternatives_serve_size: float | None = None

    # Sodium
    sodium_heifa_score_male: float | None = None
    sodium_heifa_score_female: float | None = None
    sodium_mg_milligrams: float | None = None

    # Alcohol
    alcohol_heifa_score_male: float | None = None
    alcohol_heifa_score_female: float | None = None
    alcohol_standard_drinks: float | None = None

    # Water
    water_heifa_score_male: float | None = None
    water_heifa_score_female: float | None = None
    water: float | None = None
    water_total_ml: float | None = None
    beverage_total_ml: float | None = None

    # Sugar
    sugar_heifa_score_male: float | None = None
    sugar_heifa_score_female: float | None = None
    sugar: float | None = None

    # Fats
    saturated_fat_heifa_score_male: float | None = None
    saturated_fat_heifa_score_female: float | None = None
    saturated_fat: float | None = None
    unsaturated_fat_heifa_score_male: float | None = None
    unsaturated_fat_heifa_score_female: float | None = None
    unsaturated_fat_serve_size: float | None = None

    def as_row(self) -> tuple[Any, ...]:
        return astuple(self)


@dataclass
class FoodPreferences:
    user_id: str
    fruits: bool = False
    vegetables: bool = False
    grains: bool = False
    red_meat: bool = False
    seafood: bool = False
    poultry: bool = False
    fish: bool = False
    eggs: bool = False
    nuts_seeds: bool = False
    persona_id: int = 0
    persona_name: str = ""
    biggest_meal_time: str = ""
    sleep_time: str = ""
    wake_up_time: str = ""

    def as_row(self) -> tuple[Any, ...]:
        return astuple(self)


PATIENT_COLUMNS: tuple[str, ...] = tuple(f.name for f in fields(PatientRecord))
PATIENT_SCORE_COLUMNS: tuple[str, ...] = PATIENT_COLUMNS[5:]
PREFERENCE_COLUMNS: tuple[str, ...] = tuple(f.name for f in fields(FoodPreferences))
