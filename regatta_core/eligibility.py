"""Entry eligibility against category, gender and boat-class constraints."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Mapping

from .errors import NotEligible, RegattaError
from .models import Athlete, BoatClass, Category, CompetitionEntry

logger = logging.getLogger(__name__)

GENDER_TO_SCOPE = {"male": "men", "female": "women"}


def age_on_season_cutoff(birth_date: date | None, season_year: int) -> int | None:
    """Age reached by Dec 31 of the season (rowing age rule)."""
    if birth_date is None:
        return None
    return season_year - birth_date.year


def crew_gender_scope(athletes: list[Athlete]) -> str:
    scopes = {GENDER_TO_SCOPE.get(a.gender, "mixed") for a in athletes}
    if len(scopes) == 1:
        return scopes.pop()
    return "mixed"


def eligibility_reasons(
    entry: CompetitionEntry,
    *,
    category: Category,
    boat_class: BoatClass,
    athletes: Mapping[str, Athlete],
    season_year: int,
) -> list[str]:
    """Every reason ``entry`` may not race; empty when eligible."""
    reasons: list[str] = []
    members = entry.members
    if len(members) != boat_class.crew_size:
        reasons.append(f"crew_size:{len(members)}!={boat_class.crew_size}")

    found: list[Athlete] = []
    for athlete_id in members:
        athlete = athletes.get(athlete_id)
        if athlete is None:
            reasons.append(f"unknown_athlete:{athlete_id}")
            continue
        found.append(athlete)
        if athlete.status != "active":
            reasons.append(f"athlete_inactive:{athlete_id}")
        scope = GENDER_TO_SCOPE.get(athlete.gender)
        if category.gender != "mixed" and scope != category.gender:
            reasons.append(f"gender:{athlete_id}")
        age = age_on_season_cutoff(athlete.birth_date, season_year)
        if age is None:
            reasons.append(f"missing_birth_date:{athlete_id}")
        elif age < category.min_age or (category.max_age is not None and age > category.max_age):
            reasons.append(f"age:{athlete_id}:{age}")

    if found:
        scope = crew_gender_scope(found) if category.gender == "mixed" else category.gender
        if scope not in boat_class.allowed_genders:
            reasons.append(f"boat_class_gender:{scope}")
    return reasons


def check_eligibility(
    entry: CompetitionEntry,
    *,
    category: Category,
    boat_class: BoatClass,
    athletes: Mapping[str, Athlete],
    season_year: int,
) -> None:
    """Raise ``NotEligible`` listing every failed constraint."""
    reasons = eligibility_reasons(
        entry,
        category=category,
        boat_class=boat_class,
        athletes=athletes,
        season_year=season_year,
    )
    if reasons:
        logger.warning(f"Entry {entry.id} not eligible: {reasons}")
        raise NotEligible(entry.id, reasons)


@dataclass(frozen=True)
class BatchResult:
    """Outcome of a sequential bulk action; ``failed`` is the remainder."""

    succeeded: tuple = ()
    failed: tuple[RegattaError, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.failed

    def as_dict(self) -> dict:
        return {
            "succeeded": [getattr(item, "id", item) for item in self.succeeded],
            "failed": [err.to_dict() for err in self.failed],
        }


__all__ = [
    "age_on_season_cutoff",
    "crew_gender_scope",
    "eligibility_reasons",
    "check_eligibility",
    "BatchResult",
]
