"""Built-in ranking systems.

Presets are registered into the store by ``RegattaService.sync_presets`` and
serve as templates for custom systems. A preset with ``discipline=None``
applies to every discipline.
"""
from __future__ import annotations

from .models import DEFAULT_POINT_TABLE, RankingSystem

# Men's Cup / Women's Cup: all categories of a gender combined, points to clubs.
CLASSIC_CUP = RankingSystem(
    id="preset-classic-cup",
    code="CLASSIC_CUP",
    names={"en": "Classic Cup", "fr": "Coupe Classique"},
    group_by="gender",
    entity_type="club",
    journey_mode="all",
    point_mode="crew_club",
    point_table=dict(DEFAULT_POINT_TABLE),
    discipline="classic",
    is_preset=True,
    sort_order=1,
)

# One cup per age category, both genders together.
BEACH_CUP = RankingSystem(
    id="preset-beach-cup",
    code="BEACH_CUP",
    names={"en": "Beach Cup", "fr": "Coupe de Beach"},
    group_by="category",
    entity_type="club",
    journey_mode="all",
    point_mode="mixed",
    point_table=dict(DEFAULT_POINT_TABLE),
    discipline="beach",
    is_preset=True,
    sort_order=2,
)

CHAMPIONSHIP = RankingSystem(
    id="preset-championship-cat",
    code="CHAMPIONSHIP_CAT",
    names={"en": "Championship by Category", "fr": "Championnat par Catégorie"},
    group_by="category_gender",
    entity_type="club",
    journey_mode="final_only",
    point_mode="mixed",
    point_table=dict(DEFAULT_POINT_TABLE),
    tie_breakers=("total_time", "more_first_places", "alphabetical"),
    discipline=None,
    is_preset=True,
    sort_order=3,
)

BEACH_SPRINT_MEDALS = RankingSystem(
    id="preset-beach-sprint-medals",
    code="BEACH_SPRINT_MEDALS",
    names={"en": "Beach Sprint Medal Table", "fr": "Tableau des médailles Beach Sprint"},
    group_by="gender",
    entity_type="club",
    scoring_mode="medals",
    journey_mode="all",
    point_mode="crew_club",
    point_table=dict(DEFAULT_POINT_TABLE),
    discipline="beach",
    is_preset=True,
    sort_order=4,
)

# Athlete series where only the two best stages count.
BEST_OF_TWO = RankingSystem(
    id="preset-best-of-two",
    code="BEST_OF_TWO",
    names={"en": "Best of Two Stages", "fr": "Meilleures deux manches"},
    group_by="category_gender",
    entity_type="athlete",
    journey_mode="best_n",
    best_n_count=2,
    point_mode="skiff_athlete",
    point_table=dict(DEFAULT_POINT_TABLE),
    tie_breakers=("more_first_places", "total_time", "alphabetical"),
    discipline=None,
    is_preset=True,
    sort_order=5,
)

PRESETS: dict[str, RankingSystem] = {
    preset.code: preset
    for preset in (CLASSIC_CUP, BEACH_CUP, CHAMPIONSHIP, BEACH_SPRINT_MEDALS, BEST_OF_TWO)
}


def all_presets() -> list[RankingSystem]:
    return list(PRESETS.values())


def preset_by_code(code: str) -> RankingSystem | None:
    return PRESETS.get(code.upper())


def presets_for_discipline(discipline: str) -> list[RankingSystem]:
    """Presets of ``discipline`` plus the discipline-independent ones."""
    return [p for p in PRESETS.values() if p.discipline in (discipline, None)]


__all__ = [
    "CLASSIC_CUP",
    "BEACH_CUP",
    "CHAMPIONSHIP",
    "BEACH_SPRINT_MEDALS",
    "BEST_OF_TWO",
    "PRESETS",
    "all_presets",
    "preset_by_code",
    "presets_for_discipline",
]
