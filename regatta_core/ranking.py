"""Competition ranking aggregator (cup-style standings across stages).

Single source of truth for grouped standings across API/UI/export:
- Points: every completed race is scored by the system's point table
  (few-finishers rule included) and credited to the entity axis.
- Medals: straight races count positions 1-3; knockout events count the
  medals awarded when their finals were processed.
- Entities are ranked with standard competition ranking. The system's tie
  breakers (first places, second places, total time, name) only order equal
  totals, they never split a shared rank.
- The club medal table is Olympic style: gold first, then silver, then bronze.

A ranking is either complete or withheld: inconsistent race data raises
``DataInconsistency`` instead of producing partial standings.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from typing import Collection, Literal, Mapping, Sequence, Union

from .errors import DataInconsistency, ValidationError
from .models import (
    Athlete,
    BoatClass,
    Category,
    Club,
    DEFAULT_TIE_BREAKERS,
    Event,
    Lane,
    Race,
    RankingSystem,
    Stage,
)
from .scoring import MedalTally, race_points, resolve_finish_order, tally_medals

logger = logging.getLogger(__name__)

EntityKey = tuple[str, str]  # (entity_type, entity_id)
MEDAL_RANKS = {"gold": 1, "silver": 2, "bronze": 3}


@dataclass(frozen=True)
class RankingSnapshot:
    """Read-only view of a competition "as of now".

    ``athletes`` and ``clubs`` are the eligible entrant universe: results of
    anybody missing from them are left out after positions are computed.
    Races that are not completed are ignored.
    """

    competition_id: str
    events: Mapping[str, Event]
    races: Sequence[Race]
    athletes: Mapping[str, Athlete]
    clubs: Mapping[str, Club]
    categories: Mapping[str, Category]
    boat_classes: Mapping[str, BoatClass]
    stages: Sequence[Stage] = ()


@dataclass(frozen=True)
class GroupMetadata:
    key: str
    gender: str | None = None
    category_id: str | None = None
    category_abbreviation: str | None = None
    titles: Mapping[str, str] = field(default_factory=dict)

    def as_dict(self) -> dict:
        return {
            "groupKey": self.key,
            "gender": self.gender,
            "categoryId": self.category_id,
            "categoryAbbreviation": self.category_abbreviation,
            "titles": dict(self.titles),
        }


@dataclass(frozen=True)
class RankingEntry:
    rank: int
    entity_type: str
    entity_id: str
    entity_name: str
    total_points: int
    medals: MedalTally
    position_counts: Mapping[int, int]
    status_counts: Mapping[str, int]
    stage_points: Mapping[int, int]
    race_count: int
    counted_stages: tuple[int, ...] = ()
    total_time_ms: int = 0
    best_time_ms: int | None = None

    def as_dict(self) -> dict:
        return {
            "rank": self.rank,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "entityName": self.entity_name,
            "totalPoints": self.total_points,
            "raceCount": self.race_count,
            "totalTimeMs": self.total_time_ms,
            "bestTimeMs": self.best_time_ms,
            "gold": self.medals.gold,
            "silver": self.medals.silver,
            "bronze": self.medals.bronze,
            "totalMedals": self.medals.total,
            "positionCounts": dict(self.position_counts),
            "statusCounts": dict(self.status_counts),
            "stagePoints": dict(self.stage_points),
        }


# ==================== RENDER TARGETS ====================


@dataclass(frozen=True)
class AthleteSingleStage:
    scoring_mode: str = "points"
    kind: Literal["athlete_single_stage"] = "athlete_single_stage"

    @property
    def columns(self) -> tuple[str, ...]:
        if self.scoring_mode == "medals":
            return ("rank", "entityName", "gold", "silver", "bronze", "totalMedals")
        return ("rank", "entityName", "totalPoints", "raceCount")


@dataclass(frozen=True)
class AthleteMultiStage:
    stages: tuple[int, ...] = ()
    scoring_mode: str = "points"
    kind: Literal["athlete_multi_stage"] = "athlete_multi_stage"

    @property
    def columns(self) -> tuple[str, ...]:
        stage_cols = tuple(f"stage{index}" for index in self.stages)
        if self.scoring_mode == "medals":
            return ("rank", "entityName") + stage_cols + ("gold", "silver", "bronze", "totalMedals")
        return ("rank", "entityName") + stage_cols + ("totalPoints",)


@dataclass(frozen=True)
class ClubPoints:
    stages: tuple[int, ...] = ()
    kind: Literal["club_points"] = "club_points"

    @property
    def columns(self) -> tuple[str, ...]:
        stage_cols = tuple(f"stage{index}" for index in self.stages)
        return ("rank", "entityName") + stage_cols + (
            "totalPoints",
            "firstPlaces",
            "secondPlaces",
            "thirdPlaces",
        )


@dataclass(frozen=True)
class ClubMedals:
    kind: Literal["club_medals"] = "club_medals"

    @property
    def columns(self) -> tuple[str, ...]:
        return ("rank", "entityName", "gold", "silver", "bronze", "totalMedals")


RenderTarget = Union[AthleteSingleStage, AthleteMultiStage, ClubPoints, ClubMedals]


def render_target_for(system: RankingSystem, breakdown_stages: Sequence[int]) -> RenderTarget:
    stages = tuple(breakdown_stages)
    if system.entity_type == "club":
        if system.scoring_mode == "medals":
            return ClubMedals()
        return ClubPoints(stages=stages)
    if len(stages) > 1:
        return AthleteMultiStage(stages=stages, scoring_mode=system.scoring_mode)
    return AthleteSingleStage(scoring_mode=system.scoring_mode)


@dataclass(frozen=True)
class RankingReport:
    competition_id: str
    system_id: str | None
    group_by: str
    scoring_mode: str
    journey_mode: str
    stages: tuple[Stage, ...]
    rankings: Mapping[str, tuple[RankingEntry, ...]]
    group_metadata: Mapping[str, GroupMetadata]
    render_target: RenderTarget

    def to_payload(self) -> dict:
        return {
            "competitionId": self.competition_id,
            "rankingSystem": self.system_id,
            "groupBy": self.group_by,
            "scoringMode": self.scoring_mode,
            "journeyMode": self.journey_mode,
            "renderTarget": self.render_target.kind,
            "columns": list(self.render_target.columns),
            "stages": [
                {"index": s.index, "name": s.name, "isFinal": s.is_final} for s in self.stages
            ],
            "rankings": {
                key: [entry.as_dict() for entry in entries]
                for key, entries in self.rankings.items()
            },
            "groupMetadata": {key: meta.as_dict() for key, meta in self.group_metadata.items()},
        }


# ==================== AGGREGATION ====================


@dataclass
class _Contribution:
    """One lane's result credited to one entity."""

    event_id: str
    race_id: str
    stage: int
    points: int
    position: int | None
    status: str
    medal_rank: int | None = None
    time_ms: int | None = None
    # Medal records are not races and must not count as one.
    is_race: bool = True


def _group_of(event: Event, category: Category, group_by: str) -> GroupMetadata:
    gender = event.gender or category.gender
    if group_by == "gender":
        return GroupMetadata(key=gender, gender=gender)
    if group_by == "category":
        return GroupMetadata(
            key=category.id,
            category_id=category.id,
            category_abbreviation=category.abbreviation,
            titles=dict(category.titles),
        )
    return GroupMetadata(
        key=f"{category.id}_{gender}",
        gender=gender,
        category_id=category.id,
        category_abbreviation=category.abbreviation,
        titles=dict(category.titles),
    )


def _entity_for(lane: Lane, boat_class: BoatClass, system: RankingSystem) -> EntityKey | None:
    """Which entity a lane's result is credited to (None: not counted)."""
    athlete_id = lane.lead_athlete_id
    if system.entity_type == "athlete":
        return ("athlete", athlete_id) if athlete_id else None
    if system.point_mode == "crew_club":
        return ("club", lane.club_id) if lane.club_id else None
    if boat_class.is_skiff:
        return ("athlete", athlete_id) if athlete_id else None
    if system.point_mode == "skiff_athlete":
        return None
    return ("club", lane.club_id) if lane.club_id else None


def _check_race(race: Race, boat_class: BoatClass) -> None:
    if not race.lanes:
        raise DataInconsistency(f"completed race {race.id} has no lanes")
    if len(race.lanes) > boat_class.lane_capacity:
        raise DataInconsistency(
            f"race {race.id} has {len(race.lanes)} lanes, capacity is {boat_class.lane_capacity}"
        )
    for lane in race.lanes:
        if len(lane.members) != boat_class.crew_size:
            raise DataInconsistency(
                f"race {race.id} lane {lane.lane} names {len(lane.members)} athletes, "
                f"{boat_class.code} needs {boat_class.crew_size}"
            )
        if lane.status == "ok" and lane.time_ms is None:
            raise DataInconsistency(f"race {race.id} lane {lane.lane} has no recorded result")


def _terminal_stages(snapshot: RankingSnapshot, races: Sequence[Race]) -> dict[str, int]:
    """Terminal stage per event: the flagged final stage, else its last stage."""
    flagged = {stage.index for stage in snapshot.stages if stage.is_final}
    stages_by_event: dict[str, set[int]] = defaultdict(set)
    for race in races:
        stages_by_event[race.event_id].add(race.stage)
    terminal = {}
    for event_id, stages in stages_by_event.items():
        finals = stages & flagged
        terminal[event_id] = max(finals) if finals else max(stages)
    return terminal


def _final_stage_of(event: Event, races: Sequence[Race]) -> int:
    for race in races:
        if race.event_id == event.id and race.phase == "final_a":
            return race.stage
    stages = [race.stage for race in races if race.event_id == event.id]
    return max(stages) if stages else 0


def _stage_score(contribs: Sequence[_Contribution], scoring_mode: str) -> tuple:
    if scoring_mode == "medals":
        ranks = [c.medal_rank for c in contribs]
        gold, silver, bronze = ranks.count(1), ranks.count(2), ranks.count(3)
        return (gold + silver + bronze, gold, silver, bronze)
    return (sum(c.points for c in contribs),)


def _select_stages(
    contribs: Sequence[_Contribution], system: RankingSystem
) -> tuple[int, ...]:
    """Stages counted for one entity under ``best_n``."""
    by_stage: dict[int, list[_Contribution]] = defaultdict(list)
    for c in contribs:
        by_stage[c.stage].append(c)
    scored = sorted(
        by_stage.items(),
        key=lambda item: (tuple(-v for v in _stage_score(item[1], system.scoring_mode)), item[0]),
    )
    return tuple(sorted(stage for stage, _ in scored[: system.best_n_count]))


def _primary_value(entry: RankingEntry, scoring_mode: str) -> tuple:
    if scoring_mode == "medals":
        m = entry.medals
        return (m.total, m.gold, m.silver, m.bronze)
    return (entry.total_points,)


def _tie_break_value(entry: RankingEntry, method: str):
    if method == "more_first_places":
        return -entry.position_counts.get(1, 0)
    if method == "more_second_places":
        return -entry.position_counts.get(2, 0)
    if method == "total_time":
        # No recorded time sorts last.
        return entry.total_time_ms or float("inf")
    if method == "best_time":
        return entry.best_time_ms or float("inf")
    if method == "alphabetical":
        return entry.entity_name.lower()
    raise ValidationError(f"unknown tie breaker {method}")


def _assign_ranks(ordered: Sequence[RankingEntry], value) -> tuple[RankingEntry, ...]:
    """Standard competition ranks (1, 1, 3) over an already sorted list."""
    ranked: list[RankingEntry] = []
    previous = None
    for idx, entry in enumerate(ordered, start=1):
        current = value(entry)
        rank = ranked[-1].rank if ranked and current == previous else idx
        ranked.append(replace(entry, rank=rank))
        previous = current
    return tuple(ranked)


def rank_entries(
    entries: Sequence[RankingEntry],
    scoring_mode: str,
    tie_breakers: Sequence[str] = DEFAULT_TIE_BREAKERS,
) -> tuple[RankingEntry, ...]:
    """Order entries and assign standard competition ranks.

    Tie breakers decide the order among equal primary scores; entries with
    equal primary scores still share a rank.
    """

    def sort_key(entry: RankingEntry) -> tuple:
        primary = tuple(-v for v in _primary_value(entry, scoring_mode))
        breakers = tuple(_tie_break_value(entry, method) for method in tie_breakers)
        return primary + breakers + (entry.entity_name.lower(), entry.entity_id)

    ordered = sorted(entries, key=sort_key)
    return _assign_ranks(ordered, lambda e: _primary_value(e, scoring_mode))


def _entity_name(key: EntityKey, snapshot: RankingSnapshot) -> str:
    entity_type, entity_id = key
    if entity_type == "athlete":
        return snapshot.athletes[entity_id].display_name
    return snapshot.clubs[entity_id].display_name


def _in_universe(key: EntityKey, snapshot: RankingSnapshot) -> bool:
    entity_type, entity_id = key
    if entity_type == "athlete":
        return entity_id in snapshot.athletes
    return entity_id in snapshot.clubs


def _build_entry(
    key: EntityKey,
    contribs: Sequence[_Contribution],
    counted: Collection[int],
    breakdown: Sequence[int],
    snapshot: RankingSnapshot,
) -> RankingEntry:
    selected = [c for c in contribs if c.stage in counted]
    races = [c for c in selected if c.is_race]
    times = [c.time_ms for c in races if c.time_ms is not None]
    position_counts: dict[int, int] = defaultdict(int)
    status_counts: dict[str, int] = {"dns": 0, "dnf": 0, "dsq": 0}
    for c in races:
        if c.position is not None:
            position_counts[c.position] += 1
        if c.status in status_counts:
            status_counts[c.status] += 1
    medals = tally_medals((key, c.medal_rank) for c in selected).get(key, MedalTally())
    stage_points = {
        stage: sum(c.points for c in races if c.stage == stage) for stage in breakdown
    }
    return RankingEntry(
        rank=0,
        entity_type=key[0],
        entity_id=key[1],
        entity_name=_entity_name(key, snapshot),
        total_points=sum(c.points for c in races),
        medals=medals,
        position_counts=dict(sorted(position_counts.items())),
        status_counts=status_counts,
        stage_points=stage_points,
        race_count=len(races),
        counted_stages=tuple(sorted({c.stage for c in selected})),
        total_time_ms=sum(times),
        best_time_ms=min(times) if times else None,
    )


def compute_rankings(
    snapshot: RankingSnapshot,
    system: RankingSystem,
    *,
    stage_selector: Collection[int] | None = None,
) -> RankingReport:
    """
    Compute grouped standings for a competition.

    Args:
      snapshot: completed races plus the read-only lookups.
      system: ranking system configuration.
      stage_selector: optional stage indices to restrict the ranking to.

    Raises:
      ValidationError: the system is unusable (best_n without a count).
      DataInconsistency: race data contradicts itself; nothing is returned.
    """
    if system.journey_mode == "best_n" and not system.best_n_count:
        raise ValidationError(f"ranking system {system.code} uses best_n without bestNCount")
    selector = set(stage_selector) if stage_selector is not None else None

    races: list[Race] = []
    for race in snapshot.races:
        if not race.is_completed:
            continue
        if selector is not None and race.stage not in selector:
            continue
        event = snapshot.events.get(race.event_id)
        if event is None:
            raise DataInconsistency(f"race {race.id} belongs to unknown event {race.event_id}")
        if event.boat_class_id not in snapshot.boat_classes:
            raise DataInconsistency(f"event {event.id} has unknown boat class {event.boat_class_id}")
        if event.category_id not in snapshot.categories:
            raise DataInconsistency(f"event {event.id} has unknown category {event.category_id}")
        if not system.allows_boat_class(event.boat_class_id):
            continue
        _check_race(race, snapshot.boat_classes[event.boat_class_id])
        races.append(race)

    terminal = _terminal_stages(snapshot, races) if system.journey_mode == "final_only" else {}
    if terminal:
        races = [race for race in races if race.stage == terminal[race.event_id]]

    groups: dict[str, GroupMetadata] = {}
    contributions: dict[str, dict[EntityKey, list[_Contribution]]] = defaultdict(
        lambda: defaultdict(list)
    )

    def credit(group: GroupMetadata, lane: Lane, boat_class: BoatClass, contrib: _Contribution):
        key = _entity_for(lane, boat_class, system)
        if key is None or not _in_universe(key, snapshot):
            return
        contributions[group.key][key].append(contrib)

    for race in races:
        event = snapshot.events[race.event_id]
        boat_class = snapshot.boat_classes[event.boat_class_id]
        group = _group_of(event, snapshot.categories[event.category_id], system.group_by)
        groups.setdefault(group.key, group)
        straight = race.phase is None
        medal_positions = {}
        if straight:
            medal_positions = {
                lane.lane: pos for lane, pos in resolve_finish_order(race.lanes) if lane.is_finisher
            }
        for scored in race_points(race, system, boat_class.lane_capacity):
            lane = scored.lane
            credit(
                group,
                lane,
                boat_class,
                _Contribution(
                    event_id=event.id,
                    race_id=race.id,
                    stage=race.stage,
                    points=scored.points,
                    position=scored.position,
                    status=lane.status,
                    medal_rank=medal_positions.get(lane.lane),
                    time_ms=lane.time_ms if lane.is_finisher else None,
                ),
            )

    # Knockout events contribute the medals their finals awarded, counted in
    # the stage their final A was rowed.
    ranked_event_ids = {race.event_id for race in races}
    for event in snapshot.events.values():
        if event.id not in ranked_event_ids or event.medals is None:
            continue
        if event.status != "completed":
            continue
        boat_class = snapshot.boat_classes[event.boat_class_id]
        group = _group_of(event, snapshot.categories[event.category_id], system.group_by)
        stage = _final_stage_of(event, snapshot.races)
        if selector is not None and stage not in selector:
            continue
        if terminal and stage != terminal.get(event.id):
            continue
        for medal_name, winner in event.medals.items():
            medal_rank = MEDAL_RANKS[medal_name]
            lane = Lane(
                lane=0,
                entry_id=winner.entry_id,
                club_id=winner.club_id,
                athlete_id=winner.athlete_id,
                crew=tuple(winner.crew),
            )
            credit(
                group,
                lane,
                boat_class,
                _Contribution(
                    event_id=event.id,
                    race_id=f"{event.id}:medals",
                    stage=stage,
                    points=0,
                    position=None,
                    status="ok",
                    medal_rank=medal_rank,
                    is_race=False,
                ),
            )

    all_stages = sorted({race.stage for race in races})
    breakdown = all_stages if system.journey_mode == "all" and len(all_stages) > 1 else []

    rankings: dict[str, tuple[RankingEntry, ...]] = {}
    for group_key in groups:
        entries = []
        for key, contribs in contributions.get(group_key, {}).items():
            if system.journey_mode == "best_n":
                counted = _select_stages(contribs, system)
            else:
                counted = {c.stage for c in contribs}
            entries.append(_build_entry(key, contribs, counted, breakdown, snapshot))
        rankings[group_key] = rank_entries(entries, system.scoring_mode, system.tie_breakers)
        logger.debug(f"Group {group_key}: {len(entries)} ranked entities")

    stage_lookup = {stage.index: stage for stage in snapshot.stages}
    stages = tuple(stage_lookup.get(index, Stage(index=index)) for index in all_stages)
    return RankingReport(
        competition_id=snapshot.competition_id,
        system_id=system.id,
        group_by=system.group_by,
        scoring_mode=system.scoring_mode,
        journey_mode=system.journey_mode,
        stages=stages,
        rankings=rankings,
        group_metadata=groups,
        render_target=render_target_for(system, breakdown),
    )


def club_medal_standings(
    events: Sequence[Event], clubs: Mapping[str, Club]
) -> tuple[RankingEntry, ...]:
    """Olympic-style medal table over clubs for completed knockout events."""
    pairs: list[tuple[str, int]] = []
    for event in events:
        if event.status != "completed" or event.medals is None:
            continue
        for name, winner in event.medals.items():
            if winner.club_id and winner.club_id in clubs:
                pairs.append((winner.club_id, MEDAL_RANKS[name]))
    tallies = tally_medals(pairs)
    entries = [
        RankingEntry(
            rank=0,
            entity_type="club",
            entity_id=club_id,
            entity_name=clubs[club_id].display_name,
            total_points=0,
            medals=tally,
            position_counts={},
            status_counts={},
            stage_points={},
            race_count=0,
        )
        for club_id, tally in tallies.items()
    ]
    ordered = sorted(
        entries,
        key=lambda e: (-e.medals.gold, -e.medals.silver, -e.medals.bronze, e.entity_name.lower(), e.entity_id),
    )
    return _assign_ranks(ordered, lambda e: (e.medals.gold, e.medals.silver, e.medals.bronze))


__all__ = [
    "RankingSnapshot",
    "GroupMetadata",
    "RankingEntry",
    "AthleteSingleStage",
    "AthleteMultiStage",
    "ClubPoints",
    "ClubMedals",
    "RenderTarget",
    "RankingReport",
    "render_target_for",
    "rank_entries",
    "compute_rankings",
    "club_medal_standings",
]
