"""Result store contract and an in-memory implementation.

Persistence is owned by the parent application. The core reads reference
data and races through ``ResultStore`` and writes back derived state
(events, newly generated races, appended result records). Results are an
append-only log: recording or correcting results never edits an earlier
``ResultRecord``.
"""
from __future__ import annotations

import logging
import threading
from typing import Iterable, Optional, Protocol, Sequence

from .errors import NotFound, StateConflict
from .models import (
    RACE_PHASES,
    Athlete,
    BoatClass,
    Category,
    Club,
    Competition,
    CompetitionEntry,
    Event,
    Race,
    RankingSystem,
    ResultRecord,
)

logger = logging.getLogger(__name__)


class ResultStore(Protocol):
    """Storage the service reads from and writes derived state to."""

    def get_competition(self, competition_id: str) -> Competition:
        """Fetch a competition or raise NotFound."""

    def get_event(self, event_id: str) -> Event:
        """Fetch an event or raise NotFound."""

    def get_race(self, race_id: str) -> Race:
        """Fetch a race or raise NotFound."""

    def get_boat_class(self, boat_class_id: str) -> BoatClass:
        """Fetch a boat class or raise NotFound."""

    def get_category(self, category_id: str) -> Category:
        """Fetch a category or raise NotFound."""

    def get_ranking_system(self, system_id: str) -> RankingSystem:
        """Fetch a ranking system or raise NotFound."""

    def list_events(self, competition_id: str) -> Sequence[Event]:
        """Events of a competition."""

    def list_races(
        self, *, event_id: str | None = None, competition_id: str | None = None
    ) -> Sequence[Race]:
        """Races filtered by event or competition, in phase/heat order."""

    def list_ranking_systems(self) -> Sequence[RankingSystem]:
        """All ranking systems."""

    def athletes(self) -> dict[str, Athlete]:
        """Athlete lookup (read-only reference data)."""

    def clubs(self) -> dict[str, Club]:
        """Club lookup (read-only reference data)."""

    def categories(self) -> dict[str, Category]:
        """Category lookup."""

    def boat_classes(self) -> dict[str, BoatClass]:
        """Boat class lookup."""

    def save_event(self, event: Event) -> Event:
        """Persist the event state."""

    def save_races(self, races: Iterable[Race]) -> None:
        """Persist new or replaced race values."""

    def save_entry(self, entry: CompetitionEntry) -> CompetitionEntry:
        """Persist a registration."""

    def save_ranking_system(self, system: RankingSystem) -> RankingSystem:
        """Create or replace a ranking system."""

    def append_result(self, record: ResultRecord) -> ResultRecord:
        """Append one record to the result log.

        Raises:
            StateConflict: the record's version does not follow the log
        """

    def result_log(self, race_id: str) -> Sequence[ResultRecord]:
        """All records of a race, oldest first."""


def _race_order(race: Race) -> tuple[int, int, int]:
    phase_pos = RACE_PHASES.index(race.phase) if race.phase in RACE_PHASES else -1
    return (race.stage, phase_pos, race.heat_number)


class InMemoryResultStore:
    """Dict-backed ``ResultStore`` used by tests and single-process tools."""

    def __init__(
        self,
        *,
        competitions: Iterable[Competition] = (),
        athletes: Iterable[Athlete] = (),
        clubs: Iterable[Club] = (),
        categories: Iterable[Category] = (),
        boat_classes: Iterable[BoatClass] = (),
        ranking_systems: Iterable[RankingSystem] = (),
    ):
        self._lock = threading.RLock()
        self._competitions = {c.id: c for c in competitions}
        self._athletes = {a.id: a for a in athletes}
        self._clubs = {c.id: c for c in clubs}
        self._categories = {c.id: c for c in categories}
        self._boat_classes = {b.id: b for b in boat_classes}
        self._ranking_systems = {s.id: s for s in ranking_systems}
        self._events: dict[str, Event] = {}
        self._races: dict[str, Race] = {}
        self._entries: dict[str, CompetitionEntry] = {}
        self._results: dict[str, list[ResultRecord]] = {}

    @staticmethod
    def _get(table: dict, key: str, what: str):
        try:
            return table[key]
        except KeyError:
            raise NotFound(f"{what} {key} not found") from None

    # -------------------- reads --------------------

    def get_competition(self, competition_id: str) -> Competition:
        return self._get(self._competitions, competition_id, "Competition")

    def get_event(self, event_id: str) -> Event:
        with self._lock:
            return self._get(self._events, event_id, "Event")

    def get_race(self, race_id: str) -> Race:
        with self._lock:
            return self._get(self._races, race_id, "Race")

    def get_boat_class(self, boat_class_id: str) -> BoatClass:
        return self._get(self._boat_classes, boat_class_id, "Boat class")

    def get_category(self, category_id: str) -> Category:
        return self._get(self._categories, category_id, "Category")

    def get_ranking_system(self, system_id: str) -> RankingSystem:
        with self._lock:
            return self._get(self._ranking_systems, system_id, "Ranking system")

    def get_entry(self, entry_id: str) -> Optional[CompetitionEntry]:
        with self._lock:
            return self._entries.get(entry_id)

    def list_events(self, competition_id: str) -> list[Event]:
        with self._lock:
            return [e for e in self._events.values() if e.competition_id == competition_id]

    def list_races(
        self, *, event_id: str | None = None, competition_id: str | None = None
    ) -> list[Race]:
        with self._lock:
            races = [
                race
                for race in self._races.values()
                if (event_id is None or race.event_id == event_id)
                and (competition_id is None or race.competition_id == competition_id)
            ]
        return sorted(races, key=_race_order)

    def list_ranking_systems(self) -> list[RankingSystem]:
        with self._lock:
            return list(self._ranking_systems.values())

    def athletes(self) -> dict[str, Athlete]:
        return dict(self._athletes)

    def clubs(self) -> dict[str, Club]:
        return dict(self._clubs)

    def categories(self) -> dict[str, Category]:
        return dict(self._categories)

    def boat_classes(self) -> dict[str, BoatClass]:
        return dict(self._boat_classes)

    # -------------------- writes --------------------

    def save_event(self, event: Event) -> Event:
        with self._lock:
            self._events[event.id] = event
        return event

    def save_races(self, races: Iterable[Race]) -> None:
        with self._lock:
            for race in races:
                self._races[race.id] = race

    def save_entry(self, entry: CompetitionEntry) -> CompetitionEntry:
        with self._lock:
            self._entries[entry.id] = entry
        return entry

    def save_ranking_system(self, system: RankingSystem) -> RankingSystem:
        with self._lock:
            self._ranking_systems[system.id] = system
        return system

    def append_result(self, record: ResultRecord) -> ResultRecord:
        with self._lock:
            log = self._results.setdefault(record.race_id, [])
            expected = len(log) + 1
            if record.version != expected:
                raise StateConflict(
                    f"result log for race {record.race_id} expects version {expected}, "
                    f"got {record.version}"
                )
            log.append(record)
        logger.debug(f"Appended result v{record.version} for race {record.race_id}")
        return record

    def result_log(self, race_id: str) -> list[ResultRecord]:
        with self._lock:
            return list(self._results.get(race_id, ()))


__all__ = ["ResultStore", "InMemoryResultStore"]
