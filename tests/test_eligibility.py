from datetime import date

import pytest

from regatta_core import (
    Athlete,
    BoatClass,
    Category,
    CompetitionEntry,
    NotEligible,
    check_eligibility,
    eligibility_reasons,
)
from regatta_core.eligibility import age_on_season_cutoff, crew_gender_scope

DOUBLE = BoatClass(id="2x", code="2x", crew_size=2, allowed_genders=("men", "women"))
OPEN = Category(id="OPEN", abbreviation="OPEN", gender="mixed")


def _athlete(aid, gender="male", born=date(2000, 6, 1), status="active"):
    return Athlete(id=aid, first_name=aid, last_name="Test", gender=gender, birth_date=born, status=status)


def _entry(*crew):
    return CompetitionEntry(
        id="E1", competition_id="CMP", club_id="CA", category_id="OPEN", boat_class_id="2x", crew=crew
    )


def test_age_counts_to_end_of_season():
    assert age_on_season_cutoff(date(2008, 12, 31), 2026) == 18
    assert age_on_season_cutoff(None, 2026) is None


def test_crew_gender_scope():
    assert crew_gender_scope([_athlete("A"), _athlete("B")]) == "men"
    assert crew_gender_scope([_athlete("A"), _athlete("B", gender="female")]) == "mixed"


def test_eligible_crew_has_no_reasons():
    athletes = {"A": _athlete("A"), "B": _athlete("B")}
    assert eligibility_reasons(_entry("A", "B"), category=OPEN, boat_class=DOUBLE,
                               athletes=athletes, season_year=2026) == []


def test_every_failed_constraint_is_listed():
    athletes = {
        "A": _athlete("A", status="suspended"),
        "B": _athlete("B", gender="female", born=None),
    }
    reasons = eligibility_reasons(
        _entry("A", "B", "C"), category=OPEN, boat_class=DOUBLE, athletes=athletes, season_year=2026
    )
    assert reasons == [
        "crew_size:3!=2",
        "athlete_inactive:A",
        "missing_birth_date:B",
        "unknown_athlete:C",
        "boat_class_gender:mixed",
    ]


def test_check_eligibility_raises_not_eligible():
    junior = Category(id="JUN", abbreviation="JUN", gender="men", max_age=18)
    athletes = {"A": _athlete("A"), "B": _athlete("B")}
    with pytest.raises(NotEligible) as exc:
        check_eligibility(_entry("A", "B"), category=junior, boat_class=DOUBLE,
                          athletes=athletes, season_year=2026)
    assert exc.value.entity_id == "E1"
    assert exc.value.reasons == ("age:A:26", "age:B:26")
    assert exc.value.status_code == 422
