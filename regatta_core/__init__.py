from .errors import (
    AlreadyProcessed,
    DataInconsistency,
    NotEligible,
    NotFound,
    PhaseNotReady,
    RegattaError,
    StateConflict,
    ValidationError,
)
from .models import (
    DEFAULT_LANE_CAPACITY,
    DEFAULT_POINT_TABLE,
    DEFAULT_TIE_BREAKERS,
    RACE_PHASES,
    Athlete,
    BoatClass,
    Category,
    Club,
    Competition,
    CompetitionEntry,
    Event,
    Lane,
    LaneResult,
    MedalWinner,
    Medals,
    ProgressionConfig,
    Race,
    RankingSystem,
    ResultRecord,
    Stage,
)
from .types import (
    BracketPayload,
    ProcessPhasePayload,
    RaceResultPayload,
    RankingsPayload,
)
from .validation import InputSanitizer, PROGRESSION_DEFAULTS
from .scoring import (
    LanePoints,
    MedalTally,
    format_ms_to_time,
    parse_time_to_ms,
    points_for_position,
    race_points,
    resolve_finish_order,
    tally_medals,
)
from .ranking import (
    AthleteMultiStage,
    AthleteSingleStage,
    ClubMedals,
    ClubPoints,
    GroupMetadata,
    RankingEntry,
    RankingReport,
    RankingSnapshot,
    club_medal_standings,
    compute_rankings,
)
from .progression import (
    EventSnapshot,
    ProgressionOutcome,
    by_seed,
    by_submission,
    correct_results,
    process_finals,
    process_knockout,
    process_phase,
    process_time_trial,
    record_results,
    seed_time_trial,
)
from .eligibility import BatchResult, check_eligibility, eligibility_reasons
from .presets import all_presets, preset_by_code, presets_for_discipline
from .store import InMemoryResultStore, ResultStore
from .service import RegattaService

__all__ = [
    "RegattaError",
    "ValidationError",
    "NotFound",
    "StateConflict",
    "PhaseNotReady",
    "AlreadyProcessed",
    "NotEligible",
    "DataInconsistency",
    "DEFAULT_LANE_CAPACITY",
    "DEFAULT_POINT_TABLE",
    "DEFAULT_TIE_BREAKERS",
    "RACE_PHASES",
    "Athlete",
    "BoatClass",
    "Category",
    "Club",
    "Competition",
    "CompetitionEntry",
    "Event",
    "Lane",
    "LaneResult",
    "MedalWinner",
    "Medals",
    "ProgressionConfig",
    "Race",
    "RankingSystem",
    "ResultRecord",
    "Stage",
    "BracketPayload",
    "ProcessPhasePayload",
    "RaceResultPayload",
    "RankingsPayload",
    "InputSanitizer",
    "PROGRESSION_DEFAULTS",
    "LanePoints",
    "MedalTally",
    "format_ms_to_time",
    "parse_time_to_ms",
    "points_for_position",
    "race_points",
    "resolve_finish_order",
    "tally_medals",
    "AthleteMultiStage",
    "AthleteSingleStage",
    "ClubMedals",
    "ClubPoints",
    "GroupMetadata",
    "RankingEntry",
    "RankingReport",
    "RankingSnapshot",
    "club_medal_standings",
    "compute_rankings",
    "EventSnapshot",
    "ProgressionOutcome",
    "by_seed",
    "by_submission",
    "correct_results",
    "process_finals",
    "process_knockout",
    "process_phase",
    "process_time_trial",
    "record_results",
    "seed_time_trial",
    "BatchResult",
    "check_eligibility",
    "eligibility_reasons",
    "all_presets",
    "preset_by_code",
    "presets_for_discipline",
    "InMemoryResultStore",
    "ResultStore",
    "RegattaService",
]
