"""Bracket progression for elimination events (pure, no persistence).

One event moves through ``time_trial -> repechage -> quarterfinal ->
semifinal -> final_b/final_a``. Every operation here is a single guarded
transition: it takes a snapshot of the event and its races and returns the
next event state plus the races it generated. The caller persists the
outcome (under the event's lock) and nothing is mutated in place.

Key rules:
- A phase is processed once. Asking again raises ``AlreadyProcessed`` and
  leaves the event untouched; the record of who advanced stays reproducible.
- All races of the phase must be completed (``PhaseNotReady`` otherwise).
- Advancement counts are clamped to the entrants actually present.
- Inside a heat non-finishers rank last in lane order; in the time trial
  they rank last by (heat, lane).

Bracket layout:
- The quarterfinal is always four heats and the semifinal two. Qualifiers
  that fit two semifinal heats (4 with heats of two) start at the
  semifinal, fewer than 4 go straight to final A, the rest start at the
  quarterfinal. Qualifiers beyond four full heats are eliminated.
- First-round heats of two use standard bracket seeding (1v8, 4v5, 2v7,
  3v6). A missing seed is a bye: the heat keeps a single lane and its boat
  rows over, still recording a result to advance.
- Quarterfinal heats 1-2 feed semifinal 1, heats 3-4 feed semifinal 2.
- Semifinal winners race final A, the next finishers race final B.
- Gold/silver/bronze come from final A; bronze falls back to the final B
  winner when final A has fewer than three finishers.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Sequence

from .errors import (
    AlreadyProcessed,
    DataInconsistency,
    PhaseNotReady,
    StateConflict,
    ValidationError,
)
from .models import (
    FINAL_PHASES,
    PHASE_CODES,
    BoatClass,
    CompetitionEntry,
    Event,
    Lane,
    LaneResult,
    MedalWinner,
    Medals,
    Race,
    phase_index,
)
from .scoring import resolve_finish_order

logger = logging.getLogger(__name__)

# Closed transition table: processed phase -> phases its winners may race next.
TRANSITIONS: dict[str, tuple[str, ...]] = {
    "time_trial": ("repechage", "quarterfinal", "semifinal", "final_a"),
    "repechage": ("quarterfinal", "semifinal", "final_a"),
    "quarterfinal": ("semifinal",),
    "semifinal": ("final_a",),
    "final_a": (),
}

# Heats per first-round knockout phase; the semifinal always feeds one final A.
ROUND_HEATS: dict[str, int] = {"quarterfinal": 4, "semifinal": 2}


@dataclass(frozen=True)
class EventSnapshot:
    """Everything a transition reads: the event, its boat class and races."""

    event: Event
    boat_class: BoatClass
    races: tuple[Race, ...] = ()

    def phase_races(self, phase: str) -> list[Race]:
        return sorted(
            (race for race in self.races if race.phase == phase),
            key=lambda race: race.heat_number,
        )


@dataclass(frozen=True)
class ProgressionOutcome:
    """Result of one transition."""

    event: Event
    races: tuple[Race, ...]
    advanced: tuple[Lane, ...]
    eliminated: tuple[Lane, ...]
    next_phase: str | None
    message: str

    @property
    def advanced_count(self) -> int:
        return len(self.advanced)


# ==================== HELPERS ====================


def _entrant(lane: Lane) -> Lane:
    """Strip results so a lane can be seated in the next phase."""
    return replace(lane, lane=0, time_ms=None, status="ok", position=None)


def _entrant_from_entry(entry: CompetitionEntry) -> Lane:
    return Lane(
        lane=0,
        entry_id=entry.id,
        club_id=entry.club_id,
        athlete_id=entry.athlete_id,
        crew=tuple(entry.crew),
    )


def _chunk(items: Sequence[Lane], size: int) -> list[list[Lane]]:
    size = max(1, size)
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def _bracket_order(slots: int) -> list[int]:
    """Standard bracket seed order, e.g. 8 -> [1, 8, 4, 5, 2, 7, 3, 6]."""
    order = [1]
    while len(order) < slots:
        size = len(order) * 2
        order = [s for seed in order for s in (seed, size + 1 - seed)]
    return order


def _seeded_heats(entrants: Sequence[Lane], heat_size: int, heat_count: int) -> list[list[Lane]]:
    """Split seeded entrants into ``heat_count`` first-round heats."""
    if heat_size != 2:
        # Serpentine keeps heats balanced for wider heats.
        heats: list[list[Lane]] = [[] for _ in range(heat_count)]
        for idx, entrant in enumerate(entrants):
            row, col = divmod(idx, heat_count)
            heats[col if row % 2 == 0 else heat_count - 1 - col].append(entrant)
        return heats

    slots = heat_count * 2
    order = _bracket_order(slots)
    heats = []
    for i in range(0, slots, 2):
        pair = [entrants[seed - 1] for seed in order[i : i + 2] if seed <= len(entrants)]
        heats.append(pair)
    return heats


def _first_knockout_phase(count: int, heat_size: int) -> str:
    if count < 4:
        return "final_a"
    if count <= ROUND_HEATS["semifinal"] * heat_size:
        return "semifinal"
    return "quarterfinal"


def _make_race(
    event: Event,
    boat_class: BoatClass,
    phase: str,
    heat_number: int,
    entrants: Sequence[Lane],
    stage: int,
    *,
    single: bool = False,
) -> Race:
    if len(entrants) > boat_class.lane_capacity:
        raise ValidationError(
            f"{phase} heat {heat_number} needs {len(entrants)} lanes, "
            f"boat class {boat_class.code} allows {boat_class.lane_capacity}"
        )
    code = PHASE_CODES[phase] if single else f"{PHASE_CODES[phase]}{heat_number}"
    return Race(
        id=f"{event.id}:{code}",
        competition_id=event.competition_id,
        event_id=event.id,
        heat_number=heat_number,
        code=code,
        phase=phase,
        stage=stage,
        lanes=tuple(replace(lane, lane=idx) for idx, lane in enumerate(entrants, start=1)),
    )


def _make_heats(
    event: Event,
    boat_class: BoatClass,
    phase: str,
    heats: Sequence[Sequence[Lane]],
    stage: int,
) -> list[Race]:
    single = phase in FINAL_PHASES
    return [
        _make_race(event, boat_class, phase, number, heat, stage, single=single)
        for number, heat in enumerate(heats, start=1)
        if heat
    ]


def _check_forward(event: Event, next_phase: str) -> None:
    if phase_index(next_phase) <= phase_index(event.current_phase):
        raise DataInconsistency(
            f"event {event.id} cannot move from {event.current_phase} back to {next_phase}"
        )


def _guard(snapshot: EventSnapshot, phase: str) -> list[Race]:
    """Check that ``phase`` may be processed now and return its races."""
    event = snapshot.event
    if phase in event.processed_phases:
        raise AlreadyProcessed(f"{phase} of event {event.id} was already processed")
    if event.status == "completed":
        raise StateConflict(f"event {event.id} is completed")
    if event.status == "pending" or event.current_phase is None:
        raise PhaseNotReady(f"event {event.id} has not been seeded")
    if phase_index(phase) < phase_index(event.current_phase):
        # Skipped phase (e.g. repechage on an event without one).
        raise StateConflict(f"event {event.id} is already past {phase}")
    if phase != event.current_phase:
        raise PhaseNotReady(f"event {event.id} is in {event.current_phase}, not {phase}")

    races = snapshot.phase_races(phase)
    if not races:
        raise DataInconsistency(f"event {event.id} has no {phase} races")
    pending = [race.code or race.id for race in races if not race.is_completed]
    if pending:
        raise PhaseNotReady(f"{phase} races still pending: {', '.join(pending)}")
    return races


def _heat_order(race: Race) -> list[Lane]:
    return [lane for lane, _ in resolve_finish_order(race.lanes, rank_non_finishers=True)]


def _stage_of(races: Sequence[Race]) -> int:
    return races[0].stage if races else 0


def _knockout_outcome(
    snapshot: EventSnapshot,
    processed: str,
    qualifiers: Sequence[Lane],
    eliminated: Sequence[Lane],
    stage: int,
    *,
    finalists_b: Sequence[Lane] = (),
    next_phase: str | None = None,
    heats: Sequence[Sequence[Lane]] | None = None,
) -> ProgressionOutcome:
    """Seat ``qualifiers`` in the next knockout round and advance the event.

    ``heats`` fixes the draw of a later round; first rounds are seeded from
    the qualifier order.
    """
    event, boat_class = snapshot.event, snapshot.boat_class
    config = event.config
    if not qualifiers:
        raise DataInconsistency(f"nobody advances from {processed} of event {event.id}")

    heat_size = min(config.knockout_heat_size, boat_class.lane_capacity)
    next_phase = next_phase or _first_knockout_phase(len(qualifiers), heat_size)
    if next_phase not in TRANSITIONS[processed]:
        raise DataInconsistency(f"{processed} cannot lead to {next_phase}")
    _check_forward(event, next_phase)

    if heats is None and next_phase in ROUND_HEATS:
        bracket_size = ROUND_HEATS[next_phase] * heat_size
        if len(qualifiers) > bracket_size:
            logger.warning(
                f"Event {event.id}: {len(qualifiers)} qualifiers for a {bracket_size}-boat "
                f"{next_phase}, the last {len(qualifiers) - bracket_size} are eliminated"
            )
            eliminated = list(eliminated) + list(qualifiers[bracket_size:])
            qualifiers = qualifiers[:bracket_size]

    seats = [_entrant(lane) for lane in qualifiers]
    if next_phase == "final_a":
        races = _make_heats(event, boat_class, "final_a", [seats], stage)
        if finalists_b:
            races += _make_heats(
                event, boat_class, "final_b", [[_entrant(l) for l in finalists_b]], stage
            )
    elif heats is not None:
        draw = [[_entrant(lane) for lane in heat] for heat in heats]
        races = _make_heats(event, boat_class, next_phase, draw, stage)
    else:
        draw = _seeded_heats(seats, heat_size, ROUND_HEATS[next_phase])
        races = _make_heats(event, boat_class, next_phase, draw, stage)

    new_event = replace(
        event,
        current_phase=next_phase,
        processed_phases=event.processed_phases + (processed,),
        direct_qualifiers=(),
    )
    message = (
        f"{processed} processed: {len(qualifiers)} advance to {next_phase}, "
        f"{len(eliminated)} eliminated"
    )
    if finalists_b:
        message += f", {len(finalists_b)} to final_b"
    logger.info(f"Event {event.id}: {message}")
    return ProgressionOutcome(
        event=new_event,
        races=tuple(races),
        advanced=tuple(qualifiers) + tuple(finalists_b),
        eliminated=tuple(eliminated),
        next_phase=next_phase,
        message=message,
    )


# ==================== TRANSITIONS ====================


def by_submission(entry: CompetitionEntry) -> Any:
    """Default seeding rule: entry submission order."""
    return entry.submitted_order


def by_seed(entry: CompetitionEntry) -> Any:
    """Seeded entries first (seed 1 first), then the rest by submission."""
    return (entry.seed is None, entry.seed or 0, entry.submitted_order)


def seed_time_trial(
    event: Event,
    boat_class: BoatClass,
    entries: Sequence[CompetitionEntry],
    *,
    seeding: Callable[[CompetitionEntry], Any] | None = None,
    stage: int = 0,
) -> ProgressionOutcome:
    """Draw the time-trial heats and start the event.

    Args:
        event: a ``pending`` event
        boat_class: the event's boat class (lane capacity, crew size)
        entries: approved registrations
        seeding: sort key for lane order; seed, then submission order, when omitted
        stage: journey index the event's races count for in rankings

    Raises:
        ValidationError: no entries, or an entry does not fit the event
        AlreadyProcessed: the time trial was already drawn
    """
    if not entries:
        raise ValidationError("cannot seed a time trial without entries")
    if event.status != "pending" or event.current_phase is not None:
        raise AlreadyProcessed(f"time trial of event {event.id} was already seeded")
    if boat_class.id != event.boat_class_id:
        raise ValidationError(
            f"boat class {boat_class.id} does not belong to event {event.id}"
        )

    seen: set[str] = set()
    for entry in entries:
        if entry.id in seen:
            raise ValidationError(f"entry {entry.id} listed twice")
        seen.add(entry.id)
        if entry.boat_class_id != event.boat_class_id:
            raise ValidationError(f"entry {entry.id} is for another boat class")
        if entry.category_id != event.category_id:
            raise ValidationError(f"entry {entry.id} is for another category")
        if len(entry.members) != boat_class.crew_size:
            raise ValidationError(
                f"entry {entry.id} names {len(entry.members)} athletes, "
                f"{boat_class.code} needs {boat_class.crew_size}"
            )

    ordered = sorted(entries, key=seeding or by_seed)
    seats = [_entrant_from_entry(entry) for entry in ordered]
    heats = _chunk(seats, boat_class.lane_capacity)
    races = _make_heats(event, boat_class, "time_trial", heats, stage)

    new_event = replace(event, status="in_progress", current_phase="time_trial")
    message = f"time trial seeded: {len(seats)} entrants in {len(races)} heats"
    logger.info(f"Event {event.id}: {message}")
    return ProgressionOutcome(
        event=new_event,
        races=tuple(races),
        advanced=tuple(seats),
        eliminated=(),
        next_phase="time_trial",
        message=message,
    )


def time_trial_order(races: Sequence[Race]) -> list[Lane]:
    """All time-trial entrants ranked across heats.

    ``ok`` finishers by time; everybody else after them by (heat, lane).
    """
    seated = [(race.heat_number, lane) for race in races for lane in race.lanes]
    finishers = sorted(
        (item for item in seated if item[1].is_finisher),
        key=lambda item: (item[1].time_ms, item[0], item[1].lane),
    )
    others = sorted(
        (item for item in seated if not item[1].is_finisher),
        key=lambda item: (item[0], item[1].lane),
    )
    return [lane for _, lane in finishers + others]


def process_time_trial(snapshot: EventSnapshot) -> ProgressionOutcome:
    """Split the time-trial field into direct qualifiers, repechage and out."""
    races = _guard(snapshot, "time_trial")
    event, boat_class = snapshot.event, snapshot.boat_class
    config = event.config
    ranked = time_trial_order(races)
    stage = _stage_of(races)

    direct_count = min(config.time_trial_direct_advance, len(ranked))
    direct = ranked[:direct_count]
    repechage: list[Lane] = []
    if config.has_repechage:
        repechage = ranked[direct_count : direct_count + config.time_trial_to_repechage]
    eliminated = ranked[direct_count + len(repechage) :]

    if not repechage:
        return _knockout_outcome(snapshot, "time_trial", direct, eliminated, stage)

    _check_forward(event, "repechage")
    heat_size = min(config.repechage_heat_size, boat_class.lane_capacity)
    seats = [_entrant(lane) for lane in repechage]
    new_races = _make_heats(event, boat_class, "repechage", _chunk(seats, heat_size), stage)
    new_event = replace(
        event,
        current_phase="repechage",
        processed_phases=event.processed_phases + ("time_trial",),
        direct_qualifiers=tuple(_entrant(lane) for lane in direct),
    )
    message = (
        f"time_trial processed: {len(direct)} advance directly, "
        f"{len(repechage)} to repechage, {len(eliminated)} eliminated"
    )
    logger.info(f"Event {event.id}: {message}")
    return ProgressionOutcome(
        event=new_event,
        races=tuple(new_races),
        advanced=tuple(direct) + tuple(repechage),
        eliminated=tuple(eliminated),
        next_phase="repechage",
        message=message,
    )


def process_knockout(snapshot: EventSnapshot, phase: str) -> ProgressionOutcome:
    """Advance the top finishers of every heat of ``phase``.

    Repechage winners join the time-trial direct qualifiers; quarterfinal
    winners race the two semifinal heats; semifinal winners race final A and the next
    finishers of each heat race final B.
    """
    if phase not in ("repechage", "quarterfinal", "semifinal"):
        raise ValidationError(f"{phase} is not a knockout phase")
    races = _guard(snapshot, phase)
    event = snapshot.event
    config = event.config
    stage = _stage_of(races)
    per_heat = config.repechage_advance if phase == "repechage" else config.knockout_advance

    winners: list[Lane] = []
    winners_by_heat: list[list[Lane]] = []
    runners_up: list[Lane] = []
    eliminated: list[Lane] = []
    for race in races:
        order = _heat_order(race)
        take = min(per_heat, len(order))
        winners.extend(order[:take])
        winners_by_heat.append(order[:take])
        if phase == "semifinal":
            runners_up.extend(order[take : take * 2])
            eliminated.extend(order[take * 2 :])
        else:
            eliminated.extend(order[take:])

    if phase == "repechage":
        qualifiers = list(event.direct_qualifiers) + winners
        return _knockout_outcome(snapshot, phase, qualifiers, eliminated, stage)
    if phase == "quarterfinal":
        # Winners of the top half of the draw meet in semifinal 1.
        half = -(-len(winners_by_heat) // 2)
        semis = [
            [lane for heat in winners_by_heat[:half] for lane in heat],
            [lane for heat in winners_by_heat[half:] for lane in heat],
        ]
        return _knockout_outcome(
            snapshot, phase, winners, eliminated, stage, next_phase="semifinal", heats=semis
        )
    return _knockout_outcome(
        snapshot,
        phase,
        winners,
        eliminated,
        stage,
        finalists_b=runners_up,
        next_phase="final_a",
    )


def _medal_winner(lane: Lane) -> MedalWinner:
    return MedalWinner(
        entry_id=lane.entry_id,
        club_id=lane.club_id,
        athlete_id=lane.athlete_id,
        crew=tuple(lane.crew),
        time_ms=lane.time_ms,
    )


def process_finals(snapshot: EventSnapshot) -> ProgressionOutcome:
    """Award the medals and complete the event (terminal)."""
    event = snapshot.event
    if event.status == "completed":
        raise AlreadyProcessed(f"event {event.id} is already completed")
    final_a = _guard(snapshot, "final_a")
    final_b = snapshot.phase_races("final_b")
    pending_b = [race.code or race.id for race in final_b if not race.is_completed]
    if pending_b:
        raise PhaseNotReady(f"final_b races still pending: {', '.join(pending_b)}")
    if len(final_a) != 1:
        raise DataInconsistency(f"event {event.id} has {len(final_a)} final A races")

    podium = [lane for lane in _heat_order(final_a[0]) if lane.is_finisher]
    gold = podium[0] if len(podium) > 0 else None
    silver = podium[1] if len(podium) > 1 else None
    bronze = podium[2] if len(podium) > 2 else None
    if bronze is None and final_b:
        b_finishers = [lane for lane in _heat_order(final_b[0]) if lane.is_finisher]
        bronze = b_finishers[0] if b_finishers else None

    medals = Medals(
        gold=_medal_winner(gold) if gold else None,
        silver=_medal_winner(silver) if silver else None,
        bronze=_medal_winner(bronze) if bronze else None,
    )
    processed = ("final_b", "final_a") if final_b else ("final_a",)
    new_event = replace(
        event,
        status="completed",
        medals=medals,
        processed_phases=event.processed_phases + processed,
    )
    awarded = tuple(lane for lane in (gold, silver, bronze) if lane is not None)
    message = f"finals processed: {len(awarded)} medals awarded, event completed"
    logger.info(f"Event {event.id}: {message}")
    return ProgressionOutcome(
        event=new_event,
        races=(),
        advanced=awarded,
        eliminated=(),
        next_phase=None,
        message=message,
    )


def process_phase(snapshot: EventSnapshot, phase: str) -> ProgressionOutcome:
    """Dispatch ``phase`` to its transition."""
    if phase == "time_trial":
        return process_time_trial(snapshot)
    if phase in ("repechage", "quarterfinal", "semifinal"):
        return process_knockout(snapshot, phase)
    if phase in ("final", "final_a", "final_b"):
        return process_finals(snapshot)
    raise ValidationError(f"unknown phase: {phase}")


# ==================== RESULTS ====================


def _apply_results(race: Race, results: Sequence[LaneResult]) -> Race:
    by_lane = {result.lane: result for result in results}
    unknown = sorted(set(by_lane) - {lane.lane for lane in race.lanes})
    if unknown:
        raise ValidationError(f"race {race.id} has no lane(s) {unknown}")
    missing = sorted(lane.lane for lane in race.lanes if lane.lane not in by_lane)
    if missing:
        raise ValidationError(f"race {race.id} is missing results for lane(s) {missing}")

    lanes = [
        replace(
            lane,
            time_ms=by_lane[lane.lane].time_ms if by_lane[lane.lane].status == "ok" else None,
            status=by_lane[lane.lane].status,
            position=None,
        )
        for lane in race.lanes
    ]
    positions = {lane.lane: pos for lane, pos in resolve_finish_order(lanes)}
    lanes = [replace(lane, position=positions[lane.lane]) for lane in lanes]
    return replace(
        race,
        lanes=tuple(lanes),
        status="completed",
        result_version=race.result_version + 1,
    )


def record_results(race: Race, results: Sequence[LaneResult]) -> Race:
    """Attach results to a scheduled race and mark it completed.

    Raises:
        AlreadyProcessed: the race is already completed
        ValidationError: results do not match the race's lanes
    """
    if race.is_completed:
        raise AlreadyProcessed(f"race {race.code or race.id} already has results")
    return _apply_results(race, results)


def correct_results(race: Race, event: Event, results: Sequence[LaneResult]) -> Race:
    """Produce a corrected race value while its phase is still open.

    Raises:
        StateConflict: the race is not completed yet, or its phase has been
            processed and downstream races depend on it
    """
    if not race.is_completed:
        raise StateConflict(f"race {race.code or race.id} has no results to correct")
    if race.phase is not None and (
        race.phase in event.processed_phases or event.status == "completed"
    ):
        raise AlreadyProcessed(
            f"{race.phase} of event {event.id} was processed; results are final"
        )
    return _apply_results(race, results)


__all__ = [
    "TRANSITIONS",
    "EventSnapshot",
    "ProgressionOutcome",
    "by_submission",
    "by_seed",
    "seed_time_trial",
    "time_trial_order",
    "process_time_trial",
    "process_knockout",
    "process_finals",
    "process_phase",
    "record_results",
    "correct_results",
]
