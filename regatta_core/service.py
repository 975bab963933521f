"""Administrative facade over the pure scoring and progression core.

``RegattaService`` validates raw payloads, reads snapshots from a
``ResultStore``, runs the pure transitions and writes the outcome back.

Concurrency:
- Every event has its own ``threading.Lock`` (created under a registry
  lock). Seeding, recording/correcting results and processing a phase run
  under it, so the read-then-write of a transition is atomic per event.
- The lock registry keeps one lock per event id for the lifetime of the
  service; a service is meant to live as long as its store.
- The result log is appended before the race is saved, so a rejected
  append leaves the race untouched.
- Rankings and brackets are read without locking; they see the state as of
  the moment the store returned it.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import date
from typing import Any, Callable, Iterable, List, Optional

from . import progression
from .eligibility import BatchResult, check_eligibility
from .errors import RegattaError, StateConflict, ValidationError
from .models import (
    RACE_PHASES,
    CompetitionEntry,
    Event,
    Race,
    RankingSystem,
    ResultRecord,
)
from .presets import all_presets
from .ranking import RankingSnapshot, club_medal_standings, compute_rankings
from .scoring import format_ms_to_time
from .store import ResultStore
from .types import BracketPayload, LanePayload, ProcessPhasePayload, RacePayload, RankingsPayload
from .validation import InputSanitizer

logger = logging.getLogger(__name__)


def race_to_payload(race: Race) -> RacePayload:
    lanes: List[LanePayload] = [
        {
            "lane": lane.lane,
            "entryId": lane.entry_id,
            "clubId": lane.club_id,
            "athleteId": lane.athlete_id,
            "crew": list(lane.crew),
            "timeMs": lane.time_ms,
            "time": format_ms_to_time(lane.time_ms) if lane.time_ms is not None else None,
            "status": lane.status,
            "position": lane.position,
        }
        for lane in race.lanes
    ]
    return {
        "id": race.id,
        "eventId": race.event_id,
        "phase": race.phase,
        "heatNumber": race.heat_number,
        "code": race.code,
        "stage": race.stage,
        "status": race.status,
        "resultVersion": race.result_version,
        "lanes": lanes,
    }


class RegattaService:
    """Operations exposed to the federation's administrative API."""

    def __init__(self, store: ResultStore, *, season_year: Optional[int] = None):
        self.store = store
        self.season_year = season_year or date.today().year
        self._registry_lock = threading.Lock()
        self._event_locks: dict[str, threading.Lock] = {}

    def _event_lock(self, event_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._event_locks.get(event_id)
            if lock is None:
                lock = threading.Lock()
                self._event_locks[event_id] = lock
            return lock

    # ==================== RANKINGS ====================

    def get_rankings(
        self, competition_id: str, system_id: str, include_masters: bool = True
    ) -> RankingsPayload:
        """Grouped standings of a competition under one ranking system."""
        competition = self.store.get_competition(competition_id)
        system = self.store.get_ranking_system(system_id)
        categories = self.store.categories()

        events = {event.id: event for event in self.store.list_events(competition_id)}
        excluded: set[str] = set()
        if not include_masters:
            excluded = {
                event.id
                for event in events.values()
                if event.category_id in categories and categories[event.category_id].is_masters
            }
        races = self.store.list_races(competition_id=competition_id)
        snapshot = RankingSnapshot(
            competition_id=competition_id,
            events={k: v for k, v in events.items() if k not in excluded},
            races=tuple(race for race in races if race.event_id not in excluded),
            athletes=self.store.athletes(),
            clubs=self.store.clubs(),
            categories=categories,
            boat_classes=self.store.boat_classes(),
            stages=competition.stages,
        )
        report = compute_rankings(snapshot, system)
        logger.debug(
            f"Rankings for {competition_id} ({system.code}): {len(report.rankings)} groups"
        )
        return report.to_payload()

    def list_available_ranking_systems(self, competition_id: str) -> list[RankingSystem]:
        """Active systems for the competition's discipline or for any discipline."""
        competition = self.store.get_competition(competition_id)
        systems = [
            system
            for system in self.store.list_ranking_systems()
            if system.is_active and system.discipline in (competition.discipline, None)
        ]
        return sorted(systems, key=lambda s: (s.sort_order, s.code))

    def save_ranking_system(self, payload: dict) -> RankingSystem:
        """Create or replace a custom ranking system from an admin payload."""
        system = InputSanitizer.validate_ranking_system(payload)
        for existing in self.store.list_ranking_systems():
            if existing.id == system.id and existing.is_preset:
                raise StateConflict(f"ranking system {existing.code} is a preset")
        return self.store.save_ranking_system(replace(system, is_preset=False))

    def sync_presets(self) -> list[dict[str, str]]:
        """Create or update the built-in ranking systems (matched by code)."""
        by_code = {system.code: system for system in self.store.list_ranking_systems()}
        results = []
        for preset in all_presets():
            existing = by_code.get(preset.code)
            if existing is not None:
                self.store.save_ranking_system(replace(preset, id=existing.id))
                results.append({"code": preset.code, "action": "updated"})
            else:
                self.store.save_ranking_system(preset)
                results.append({"code": preset.code, "action": "created"})
        logger.info(f"Synced {len(results)} ranking presets")
        return results

    def get_club_standings(self, competition_id: str) -> list[dict]:
        """Medal table over clubs for the completed knockout events."""
        self.store.get_competition(competition_id)
        standings = club_medal_standings(
            self.store.list_events(competition_id), self.store.clubs()
        )
        return [entry.as_dict() for entry in standings]

    # ==================== EVENTS ====================

    def create_event(self, payload: dict) -> Event:
        """Create a knockout event for one boat class x category x gender."""
        command = InputSanitizer.validate_create_event(payload)
        self.store.get_competition(command.competitionId)
        boat_class = self.store.get_boat_class(command.boatClassId)
        category = self.store.get_category(command.categoryId)
        if command.gender not in boat_class.allowed_genders:
            raise ValidationError(
                f"boat class {boat_class.code} is not raced by {command.gender}"
            )

        event_id = f"{command.competitionId}:{boat_class.code}:{category.abbreviation}:{command.gender}"
        with self._event_lock(event_id):
            if any(e.id == event_id for e in self.store.list_events(command.competitionId)):
                raise StateConflict(f"event {event_id} already exists")
            event = Event(
                id=event_id,
                competition_id=command.competitionId,
                boat_class_id=boat_class.id,
                category_id=category.id,
                gender=command.gender,
                name=command.name or f"{boat_class.code} {category.abbreviation} {command.gender}",
                config=command.progressionConfig.to_config(),
            )
            self.store.save_event(event)
        logger.info(f"Created event {event.id}")
        return event

    def seed_time_trial(
        self,
        event_id: str,
        entries: Iterable[Any],
        seeding: Optional[Callable[[CompetitionEntry], Any]] = None,
        stage: int = 0,
    ) -> list[Race]:
        """Draw the time-trial heats of a pending event from approved entries."""
        parsed = [
            entry if isinstance(entry, CompetitionEntry) else InputSanitizer.validate_entry(entry)
            for entry in entries
        ]
        not_approved = [entry.id for entry in parsed if entry.status != "approved"]
        if not_approved:
            raise ValidationError(f"entries not approved: {', '.join(not_approved)}")

        with self._event_lock(event_id):
            event = self.store.get_event(event_id)
            boat_class = self.store.get_boat_class(event.boat_class_id)
            outcome = progression.seed_time_trial(
                event, boat_class, parsed, seeding=seeding, stage=stage
            )
            self.store.save_races(outcome.races)
            self.store.save_event(outcome.event)
        return list(outcome.races)

    # ==================== RESULTS ====================

    def record_race_results(self, race_id: str, results: list[dict]) -> Race:
        """Record the result of every lane and complete the race."""
        lane_results = InputSanitizer.validate_race_results(results)
        event_id = self.store.get_race(race_id).event_id
        with self._event_lock(event_id):
            race = progression.record_results(self.store.get_race(race_id), lane_results)
            self.store.append_result(
                ResultRecord(race_id=race.id, version=race.result_version, results=lane_results)
            )
            self.store.save_races([race])
        logger.info(f"Recorded results for race {race.id} (v{race.result_version})")
        return race

    def correct_race_results(self, race_id: str, results: list[dict], reason: str) -> Race:
        """Append corrected results while the race's phase is still open."""
        reason = InputSanitizer.sanitize_string(reason or "", 500)
        if not reason:
            raise ValidationError("a correction requires a reason")
        lane_results = InputSanitizer.validate_race_results(results)
        event_id = self.store.get_race(race_id).event_id
        with self._event_lock(event_id):
            race = self.store.get_race(race_id)
            event = self.store.get_event(race.event_id)
            corrected = progression.correct_results(race, event, lane_results)
            self.store.append_result(
                ResultRecord(
                    race_id=corrected.id,
                    version=corrected.result_version,
                    results=lane_results,
                    reason=reason,
                )
            )
            self.store.save_races([corrected])
        logger.info(f"Corrected race {race_id} (v{corrected.result_version}): {reason}")
        return corrected

    # ==================== PROGRESSION ====================

    def process_phase(self, event_id: str, phase: str) -> ProcessPhasePayload:
        """Advance an event past ``phase``; the phase is processed once."""
        with self._event_lock(event_id):
            event = self.store.get_event(event_id)
            snapshot = progression.EventSnapshot(
                event=event,
                boat_class=self.store.get_boat_class(event.boat_class_id),
                races=tuple(self.store.list_races(event_id=event_id)),
            )
            outcome = progression.process_phase(snapshot, phase)
            if outcome.races:
                self.store.save_races(outcome.races)
            self.store.save_event(outcome.event)
        return {"message": outcome.message, "advancedCount": outcome.advanced_count}

    def get_bracket(self, event_id: str) -> BracketPayload:
        event = self.store.get_event(event_id)
        phases: dict[str, list[RacePayload]] = {}
        for race in self.store.list_races(event_id=event_id):
            if race.phase in RACE_PHASES:
                phases.setdefault(race.phase, []).append(race_to_payload(race))
        return {
            "eventId": event.id,
            "currentPhase": event.current_phase,
            "status": event.status,
            "phases": phases,
        }

    # ==================== REGISTRATIONS ====================

    def approve_registrations(self, entries: Iterable[dict]) -> BatchResult:
        """Approve entries one by one; failures are reported, not fatal."""
        succeeded: list[CompetitionEntry] = []
        failed: list[RegattaError] = []
        athletes = self.store.athletes()
        for payload in entries:
            try:
                entry = InputSanitizer.validate_entry(payload)
                check_eligibility(
                    entry,
                    category=self.store.get_category(entry.category_id),
                    boat_class=self.store.get_boat_class(entry.boat_class_id),
                    athletes=athletes,
                    season_year=self.season_year,
                )
                succeeded.append(self.store.save_entry(replace(entry, status="approved")))
            except RegattaError as e:
                failed.append(e)
        if failed:
            logger.warning(f"Approved {len(succeeded)} entries, {len(failed)} rejected")
        return BatchResult(succeeded=tuple(succeeded), failed=tuple(failed))


__all__ = ["RegattaService", "race_to_payload"]
