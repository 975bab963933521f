"""Immutable domain records shared by scoring, ranking and progression.

Records reference each other by id only. Lookups (athletes, clubs,
categories, boat classes) are resolved by the caller and handed in as plain
mappings, so no record owns another aggregate.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Literal, Mapping

Gender = Literal["male", "female"]
GenderScope = Literal["men", "women", "mixed"]
LaneStatus = Literal["ok", "dns", "dnf", "dsq"]
RaceStatus = Literal["scheduled", "completed"]
EventStatus = Literal["pending", "in_progress", "completed"]
Phase = Literal["time_trial", "repechage", "quarterfinal", "semifinal", "final_b", "final_a"]

# Progression order; an event's current phase only moves right.
RACE_PHASES: tuple[str, ...] = (
    "time_trial",
    "repechage",
    "quarterfinal",
    "semifinal",
    "final_b",
    "final_a",
)
KNOCKOUT_PHASES: tuple[str, ...] = ("repechage", "quarterfinal", "semifinal")
FINAL_PHASES: tuple[str, ...] = ("final_b", "final_a")
LANE_STATUSES: tuple[str, ...] = ("ok", "dns", "dnf", "dsq")
NON_FINISHER_STATUSES: frozenset[str] = frozenset({"dns", "dnf", "dsq"})

DEFAULT_LANE_CAPACITY = 6
DEFAULT_POINT_TABLE: Mapping[int, int] = {1: 20, 2: 12, 3: 8, 4: 6, 5: 4, 6: 3, 7: 2, 8: 1}

# Applied in order after the primary score; names always break the last tie.
TIE_BREAKER_METHODS: tuple[str, ...] = (
    "more_first_places",
    "more_second_places",
    "total_time",
    "best_time",
    "alphabetical",
)
DEFAULT_TIE_BREAKERS: tuple[str, ...] = (
    "more_first_places",
    "more_second_places",
    "total_time",
    "alphabetical",
)

# Race code prefixes per phase (TT1, REP2, QF3, SF1, FA, FB).
PHASE_CODES: Mapping[str, str] = {
    "time_trial": "TT",
    "repechage": "REP",
    "quarterfinal": "QF",
    "semifinal": "SF",
    "final_b": "FB",
    "final_a": "FA",
}


def phase_index(phase: str | None) -> int:
    """Position of ``phase`` in the progression order (-1 before seeding)."""
    if phase is None:
        return -1
    return RACE_PHASES.index(phase)


# ==================== REFERENCE DATA ====================


@dataclass(frozen=True)
class Athlete:
    id: str
    first_name: str
    last_name: str
    gender: Gender
    birth_date: date | None = None
    club_id: str | None = None
    status: str = "active"

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class Club:
    id: str
    code: str
    name: str

    @property
    def display_name(self) -> str:
        return self.name


@dataclass(frozen=True)
class Category:
    id: str
    abbreviation: str
    gender: GenderScope = "mixed"
    min_age: int = 0
    max_age: int | None = None
    titles: Mapping[str, str] = field(default_factory=dict)
    is_masters: bool = False


@dataclass(frozen=True)
class BoatClass:
    id: str
    code: str
    crew_size: int
    discipline: str = "classic"
    weight_class: str = "open"
    allowed_genders: tuple[str, ...] = ("men", "women", "mixed")
    lane_capacity: int = DEFAULT_LANE_CAPACITY

    @property
    def is_skiff(self) -> bool:
        return self.crew_size == 1


@dataclass(frozen=True)
class Stage:
    """One journey (scoring opportunity) of a multi-stage competition."""

    index: int
    name: str = ""
    is_final: bool = False


@dataclass(frozen=True)
class Competition:
    id: str
    code: str
    name: str = ""
    discipline: str = "classic"
    stages: tuple[Stage, ...] = ()


# ==================== REGISTRATION ====================


@dataclass(frozen=True)
class CompetitionEntry:
    """An approved registration: one athlete (skiff) or an ordered crew."""

    id: str
    competition_id: str
    club_id: str
    category_id: str
    boat_class_id: str
    athlete_id: str | None = None
    crew: tuple[str, ...] = ()
    seed: int | None = None
    status: str = "approved"
    submitted_order: int = 0

    @property
    def members(self) -> tuple[str, ...]:
        if self.athlete_id:
            return (self.athlete_id,)
        return tuple(self.crew)


# ==================== RACES ====================


@dataclass(frozen=True)
class Lane:
    lane: int
    entry_id: str
    club_id: str | None = None
    athlete_id: str | None = None
    crew: tuple[str, ...] = ()
    time_ms: int | None = None
    status: LaneStatus = "ok"
    position: int | None = None

    @property
    def members(self) -> tuple[str, ...]:
        if self.athlete_id:
            return (self.athlete_id,)
        return tuple(self.crew)

    @property
    def lead_athlete_id(self) -> str | None:
        # The first named crew member (stroke) stands for the boat.
        members = self.members
        return members[0] if members else None

    @property
    def is_finisher(self) -> bool:
        return self.status == "ok" and self.time_ms is not None


@dataclass(frozen=True)
class Race:
    id: str
    competition_id: str
    event_id: str
    heat_number: int = 1
    code: str = ""
    phase: str | None = None
    stage: int = 0
    lanes: tuple[Lane, ...] = ()
    status: RaceStatus = "scheduled"
    result_version: int = 0

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    def lane(self, number: int) -> Lane | None:
        for lane in self.lanes:
            if lane.lane == number:
                return lane
        return None


@dataclass(frozen=True)
class LaneResult:
    lane: int
    time_ms: int | None
    status: LaneStatus = "ok"


@dataclass(frozen=True)
class ResultRecord:
    """One append-only entry of the result log."""

    race_id: str
    version: int
    results: tuple[LaneResult, ...]
    reason: str | None = None


# ==================== EVENTS ====================


@dataclass(frozen=True)
class ProgressionConfig:
    has_repechage: bool = True
    time_trial_direct_advance: int = 4
    time_trial_to_repechage: int = 4
    repechage_advance: int = 1
    knockout_advance: int = 1
    repechage_heat_size: int = 2
    knockout_heat_size: int = 2


@dataclass(frozen=True)
class MedalWinner:
    entry_id: str
    club_id: str | None = None
    athlete_id: str | None = None
    crew: tuple[str, ...] = ()
    time_ms: int | None = None


@dataclass(frozen=True)
class Medals:
    gold: MedalWinner | None = None
    silver: MedalWinner | None = None
    bronze: MedalWinner | None = None

    def items(self) -> list[tuple[str, MedalWinner]]:
        out = []
        for name in ("gold", "silver", "bronze"):
            winner = getattr(self, name)
            if winner is not None:
                out.append((name, winner))
        return out


@dataclass(frozen=True)
class Event:
    """One boat class x category x gender combination within a competition."""

    id: str
    competition_id: str
    boat_class_id: str
    category_id: str
    gender: GenderScope
    name: str = ""
    config: ProgressionConfig = field(default_factory=ProgressionConfig)
    current_phase: str | None = None
    status: EventStatus = "pending"
    processed_phases: tuple[str, ...] = ()
    # Time-trial qualifiers held back while the repechage is raced.
    direct_qualifiers: tuple[Lane, ...] = ()
    medals: Medals | None = None


# ==================== RANKING SYSTEMS ====================


@dataclass(frozen=True)
class RankingSystem:
    id: str
    code: str
    names: Mapping[str, str] = field(default_factory=dict)
    group_by: Literal["gender", "category", "category_gender"] = "category_gender"
    entity_type: Literal["athlete", "club"] = "club"
    scoring_mode: Literal["points", "medals"] = "points"
    journey_mode: Literal["all", "final_only", "best_n"] = "all"
    best_n_count: int | None = None
    point_mode: Literal["skiff_athlete", "crew_club", "mixed"] = "mixed"
    point_table: Mapping[int, int] = field(default_factory=lambda: dict(DEFAULT_POINT_TABLE))
    tie_breakers: tuple[str, ...] = DEFAULT_TIE_BREAKERS
    max_scoring_position: int = 8
    dnf_gets_points_if_few_finishers: bool = True
    allowed_boat_classes: tuple[str, ...] = ()
    discipline: str | None = None
    is_active: bool = True
    is_preset: bool = False
    sort_order: int = 0

    def allows_boat_class(self, boat_class_id: str) -> bool:
        if not self.allowed_boat_classes:
            return True
        return boat_class_id in self.allowed_boat_classes


__all__ = [
    "RACE_PHASES",
    "KNOCKOUT_PHASES",
    "FINAL_PHASES",
    "LANE_STATUSES",
    "NON_FINISHER_STATUSES",
    "DEFAULT_LANE_CAPACITY",
    "DEFAULT_POINT_TABLE",
    "TIE_BREAKER_METHODS",
    "DEFAULT_TIE_BREAKERS",
    "PHASE_CODES",
    "phase_index",
    "Athlete",
    "Club",
    "Category",
    "BoatClass",
    "Stage",
    "Competition",
    "CompetitionEntry",
    "Lane",
    "Race",
    "LaneResult",
    "ResultRecord",
    "ProgressionConfig",
    "MedalWinner",
    "Medals",
    "Event",
    "RankingSystem",
]
