"""Type definitions for the payloads exchanged with the parent API."""
from __future__ import annotations

from typing import Dict, List, Optional, TypedDict


class RaceResultPayload(TypedDict, total=False):
    """One lane of a RecordRaceResults request."""
    lane: int
    time: Optional[str]  # "MM:SS.cc" / "SS.cc" or milliseconds
    status: str  # 'ok' | 'dns' | 'dnf' | 'dsq'


class ProgressionConfigPayload(TypedDict, total=False):
    """
    Progression settings supplied with CreateEvent.

    All fields are optional (total=False); missing ones fall back to the
    federation defaults in ``validation.PROGRESSION_DEFAULTS``.
    """
    hasRepechage: bool
    timeTrialDirectAdvance: int
    timeTrialToRepechage: int
    repechageAdvance: int  # Top N per repechage heat
    knockoutAdvance: int  # Top N per QF/SF heat
    repechageHeatSize: int
    knockoutHeatSize: int


class EntryPayload(TypedDict, total=False):
    """A registration as handed over by the registration workflow."""
    id: str
    competitionId: str
    clubId: str
    categoryId: str
    boatClassId: str
    athleteId: Optional[str]
    crew: List[str]
    seed: Optional[int]
    status: str


class LanePayload(TypedDict, total=False):
    lane: int
    entryId: str
    clubId: Optional[str]
    athleteId: Optional[str]
    crew: List[str]
    timeMs: Optional[int]
    time: Optional[str]  # formatted, for display
    status: str
    position: Optional[int]


class RacePayload(TypedDict, total=False):
    id: str
    eventId: str
    phase: Optional[str]
    heatNumber: int
    code: str
    stage: int
    status: str
    resultVersion: int
    lanes: List[LanePayload]


class GroupMetadataPayload(TypedDict, total=False):
    groupKey: str
    gender: Optional[str]
    categoryId: Optional[str]
    categoryAbbreviation: Optional[str]
    titles: Dict[str, str]


class RankingEntryPayload(TypedDict, total=False):
    rank: int
    entityType: str  # 'athlete' | 'club'
    entityId: str
    entityName: str
    totalPoints: int
    raceCount: int
    gold: int
    silver: int
    bronze: int
    totalMedals: int
    positionCounts: Dict[int, int]
    statusCounts: Dict[str, int]
    # Only filled for journeyMode 'all' with more than one stage.
    stagePoints: Dict[int, int]


class RankingsPayload(TypedDict, total=False):
    """Response of GetRankings."""
    competitionId: str
    rankingSystem: Optional[str]
    groupBy: str
    scoringMode: str
    journeyMode: str
    renderTarget: str  # 'athlete_single_stage' | 'athlete_multi_stage' | 'club_points' | 'club_medals'
    columns: List[str]
    stages: List[Dict]
    rankings: Dict[str, List[RankingEntryPayload]]
    groupMetadata: Dict[str, GroupMetadataPayload]


class ProcessPhasePayload(TypedDict):
    """Response of ProcessPhase."""
    message: str
    advancedCount: int


class BracketPayload(TypedDict):
    """Response of GetBracket; only phases that have races are listed."""
    eventId: str
    currentPhase: Optional[str]
    status: str
    phases: Dict[str, List[RacePayload]]
