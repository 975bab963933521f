"""
Input validation schemas using Pydantic v2
Validates race results, event progression settings, entries and ranking systems
"""

import logging
import re
from typing import Dict, List, Optional, Self, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from . import errors
from .models import (
    DEFAULT_POINT_TABLE,
    DEFAULT_TIE_BREAKERS,
    LANE_STATUSES,
    TIE_BREAKER_METHODS,
    CompetitionEntry,
    LaneResult,
    ProgressionConfig,
    RankingSystem,
)
from .scoring import parse_time_to_ms

logger = logging.getLogger(__name__)

# Federation defaults for knockout events (time trial top 4 direct, next 4 to repechage).
PROGRESSION_DEFAULTS = {
    "hasRepechage": True,
    "timeTrialDirectAdvance": 4,
    "timeTrialToRepechage": 4,
    "repechageAdvance": 1,
    "knockoutAdvance": 1,
    "repechageHeatSize": 2,
    "knockoutHeatSize": 2,
}

GROUP_BY_OPTIONS = ("gender", "category", "category_gender")
ENTITY_TYPE_OPTIONS = ("athlete", "club")
SCORING_MODE_OPTIONS = ("points", "medals")
JOURNEY_MODE_OPTIONS = ("all", "final_only", "best_n")
POINT_MODE_OPTIONS = ("skiff_athlete", "crew_club", "mixed")
GENDER_SCOPE_OPTIONS = ("men", "women", "mixed")

# ==================== RACE RESULTS ====================


class RaceResultModel(BaseModel):
    """One lane of a RecordRaceResults request"""

    lane: int = Field(..., ge=1, le=12, description="Lane number (1-12)")
    time: Optional[Union[str, int]] = Field(
        None, description="Finish time 'MM:SS.cc' / 'SS.cc' or milliseconds"
    )
    status: str = Field("ok", description="'ok', 'dns', 'dnf' or 'dsq'")

    # Filled by the model validator from `time`
    time_ms: Optional[int] = None

    @field_validator("status", mode="before")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> str:
        """Normalize status casing and check it is known"""
        if v is None:
            return "ok"
        if not isinstance(v, str):
            raise ValueError("status must be a string")
        v = v.strip().lower()
        if v not in LANE_STATUSES:
            raise ValueError(f"status must be one of {LANE_STATUSES}, got {v}")
        return v

    @model_validator(mode="after")
    def resolve_time(self) -> Self:
        """Parse the time and require it for finishers"""
        self.time_ms = parse_time_to_ms(self.time)
        if self.status == "ok" and self.time_ms is None:
            raise ValueError(f"lane {self.lane}: status 'ok' requires a finish time")
        if self.status != "ok":
            # Non-finishers keep no time; a stray split would skew the order.
            self.time_ms = None
        return self

    def to_lane_result(self) -> LaneResult:
        return LaneResult(lane=self.lane, time_ms=self.time_ms, status=self.status)


class RaceResultsModel(BaseModel):
    results: List[RaceResultModel] = Field(..., min_length=1, max_length=12)

    @field_validator("results")
    @classmethod
    def validate_unique_lanes(cls, v: List[RaceResultModel]) -> List[RaceResultModel]:
        """Each lane may be reported once"""
        seen = set()
        for item in v:
            if item.lane in seen:
                raise ValueError(f"lane {item.lane} reported more than once")
            seen.add(item.lane)
        return v


# ==================== EVENT CONFIGURATION ====================


class ProgressionConfigModel(BaseModel):
    """Progression settings of a knockout event"""

    hasRepechage: bool = PROGRESSION_DEFAULTS["hasRepechage"]
    timeTrialDirectAdvance: int = Field(PROGRESSION_DEFAULTS["timeTrialDirectAdvance"], ge=0, le=64)
    timeTrialToRepechage: int = Field(PROGRESSION_DEFAULTS["timeTrialToRepechage"], ge=0, le=64)
    repechageAdvance: int = Field(
        PROGRESSION_DEFAULTS["repechageAdvance"], ge=1, le=8, description="Top N per repechage heat"
    )
    knockoutAdvance: int = Field(
        PROGRESSION_DEFAULTS["knockoutAdvance"], ge=1, le=8, description="Top N per QF/SF heat"
    )
    repechageHeatSize: int = Field(PROGRESSION_DEFAULTS["repechageHeatSize"], ge=1, le=8)
    knockoutHeatSize: int = Field(PROGRESSION_DEFAULTS["knockoutHeatSize"], ge=1, le=8)

    @model_validator(mode="after")
    def validate_advance_fits_heat(self) -> Self:
        """Cannot advance more boats than a heat holds"""
        if self.repechageAdvance > self.repechageHeatSize:
            raise ValueError("repechageAdvance cannot exceed repechageHeatSize")
        if self.knockoutAdvance > self.knockoutHeatSize:
            raise ValueError("knockoutAdvance cannot exceed knockoutHeatSize")
        if self.timeTrialDirectAdvance == 0 and not self.hasRepechage:
            raise ValueError("timeTrialDirectAdvance must be positive without a repechage")
        return self

    def to_config(self) -> ProgressionConfig:
        return ProgressionConfig(
            has_repechage=self.hasRepechage,
            time_trial_direct_advance=self.timeTrialDirectAdvance,
            time_trial_to_repechage=self.timeTrialToRepechage,
            repechage_advance=self.repechageAdvance,
            knockout_advance=self.knockoutAdvance,
            repechage_heat_size=self.repechageHeatSize,
            knockout_heat_size=self.knockoutHeatSize,
        )


class CreateEventModel(BaseModel):
    competitionId: str = Field(..., min_length=1, max_length=64)
    boatClassId: str = Field(..., min_length=1, max_length=64)
    categoryId: str = Field(..., min_length=1, max_length=64)
    gender: str = Field(..., description="'men', 'women' or 'mixed'")
    name: Optional[str] = Field(None, max_length=255)
    progressionConfig: ProgressionConfigModel = Field(default_factory=ProgressionConfigModel)

    @field_validator("gender", mode="before")
    @classmethod
    def validate_gender(cls, v: str) -> str:
        """Accept the short M/F/W spellings too"""
        if not isinstance(v, str):
            raise ValueError("gender must be a string")
        v = v.strip().lower()
        v = {"m": "men", "f": "women", "w": "women"}.get(v, v)
        if v not in GENDER_SCOPE_OPTIONS:
            raise ValueError(f"gender must be one of {GENDER_SCOPE_OPTIONS}, got {v}")
        return v

    model_config = ConfigDict(populate_by_name=True)


# ==================== ENTRIES ====================


class EntryModel(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    competitionId: str = Field(..., min_length=1, max_length=64)
    clubId: str = Field(..., min_length=1, max_length=64)
    categoryId: str = Field(..., min_length=1, max_length=64, description="Category is mandatory")
    boatClassId: str = Field(..., min_length=1, max_length=64)
    athleteId: Optional[str] = Field(None, min_length=1, max_length=64)
    crew: List[str] = Field(default_factory=list, max_length=12)
    seed: Optional[int] = Field(None, ge=1, le=999)
    status: str = "approved"
    submittedOrder: int = Field(0, ge=0)

    @model_validator(mode="after")
    def validate_athlete_or_crew(self) -> Self:
        """An entry names a single athlete or an ordered crew, not both"""
        if self.athleteId and self.crew:
            raise ValueError("entry cannot name both athleteId and crew")
        if not self.athleteId and not self.crew:
            raise ValueError("entry requires athleteId or crew")
        if len(set(self.crew)) != len(self.crew):
            raise ValueError("crew lists the same athlete twice")
        return self

    def to_entry(self) -> CompetitionEntry:
        return CompetitionEntry(
            id=self.id,
            competition_id=self.competitionId,
            club_id=self.clubId,
            category_id=self.categoryId,
            boat_class_id=self.boatClassId,
            athlete_id=self.athleteId,
            crew=tuple(self.crew),
            seed=self.seed,
            status=self.status,
            submitted_order=self.submittedOrder,
        )


# ==================== RANKING SYSTEMS ====================


class PointTableEntryModel(BaseModel):
    position: int = Field(..., ge=1)
    points: int = Field(..., ge=0)


class TieBreakerModel(BaseModel):
    priority: int = Field(..., ge=1)
    method: str


class RankingSystemModel(BaseModel):
    """Administrator-edited ranking system configuration"""

    id: str = Field(..., min_length=1, max_length=64)
    code: str = Field(..., min_length=1, max_length=50)
    names: Dict[str, str] = Field(default_factory=dict)
    groupBy: str = "category_gender"
    entityType: str = "club"
    scoringMode: str = "points"
    journeyMode: str = "all"
    bestNCount: Optional[int] = Field(None, ge=1, le=50)
    pointMode: str = "mixed"
    customPointTable: List[PointTableEntryModel] = Field(default_factory=list)
    tieBreakers: List[Union[str, TieBreakerModel]] = Field(
        default_factory=lambda: list(DEFAULT_TIE_BREAKERS), max_length=len(TIE_BREAKER_METHODS)
    )
    maxScoringPosition: int = Field(8, ge=0, le=100)
    dnfGetsPointsIfFewFinishers: bool = True
    allowedBoatClasses: List[str] = Field(default_factory=list)
    discipline: Optional[str] = None
    isActive: bool = True
    isPreset: bool = False
    sortOrder: int = 0

    @field_validator("code")
    @classmethod
    def validate_code(cls, v: str) -> str:
        """Codes are upper-case identifiers (CLASSIC_CUP)"""
        v = v.strip().upper()
        if not re.fullmatch(r"[A-Z0-9_]+", v):
            raise ValueError("code may only contain letters, digits and underscores")
        return v

    @field_validator("tieBreakers")
    @classmethod
    def validate_tie_breakers(cls, v: List[Union[str, TieBreakerModel]]) -> List[str]:
        """Accept plain method names or {priority, method} rows; store them in priority order"""
        if any(isinstance(item, TieBreakerModel) for item in v):
            rows = [
                item if isinstance(item, TieBreakerModel) else TieBreakerModel(priority=i + 1, method=item)
                for i, item in enumerate(v)
            ]
            methods = [row.method for row in sorted(rows, key=lambda row: row.priority)]
        else:
            methods = list(v)
        methods = [method.strip().lower() for method in methods]
        for method in methods:
            if method not in TIE_BREAKER_METHODS:
                raise ValueError(f"tie breaker must be one of {TIE_BREAKER_METHODS}, got {method}")
        if len(set(methods)) != len(methods):
            raise ValueError("tieBreakers lists a method twice")
        return methods

    @model_validator(mode="after")
    def validate_options(self) -> Self:
        """Check enum-like options and their dependencies"""
        checks = (
            ("groupBy", self.groupBy, GROUP_BY_OPTIONS),
            ("entityType", self.entityType, ENTITY_TYPE_OPTIONS),
            ("scoringMode", self.scoringMode, SCORING_MODE_OPTIONS),
            ("journeyMode", self.journeyMode, JOURNEY_MODE_OPTIONS),
            ("pointMode", self.pointMode, POINT_MODE_OPTIONS),
        )
        for name, value, allowed in checks:
            if value not in allowed:
                raise ValueError(f"{name} must be one of {allowed}, got {value}")
        if self.journeyMode == "best_n" and self.bestNCount is None:
            raise ValueError("journeyMode 'best_n' requires bestNCount")
        positions = [row.position for row in self.customPointTable]
        if len(set(positions)) != len(positions):
            raise ValueError("customPointTable lists a position twice")
        return self

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_system(self) -> RankingSystem:
        table = (
            {row.position: row.points for row in self.customPointTable}
            if self.customPointTable
            else dict(DEFAULT_POINT_TABLE)
        )
        return RankingSystem(
            id=self.id,
            code=self.code,
            names=dict(self.names),
            group_by=self.groupBy,
            entity_type=self.entityType,
            scoring_mode=self.scoringMode,
            journey_mode=self.journeyMode,
            best_n_count=self.bestNCount,
            point_mode=self.pointMode,
            point_table=table,
            tie_breakers=tuple(self.tieBreakers),
            max_scoring_position=self.maxScoringPosition,
            dnf_gets_points_if_few_finishers=self.dnfGetsPointsIfFewFinishers,
            allowed_boat_classes=tuple(self.allowedBoatClasses),
            discipline=self.discipline,
            is_active=self.isActive,
            is_preset=self.isPreset,
            sort_order=self.sortOrder,
        )


class InputSanitizer:
    """Utility class for input sanitization"""

    @staticmethod
    def sanitize_string(value: str, max_length: int = 255) -> str:
        """Sanitize string input"""
        if not isinstance(value, str):
            return str(value)[:max_length]

        value = value.strip()[:max_length]

        # Remove null bytes
        return value.replace("\0", "")

    @staticmethod
    def sanitize_name(name: str) -> str:
        """Sanitize an event or athlete name for display, keeping accented letters"""
        name = InputSanitizer.sanitize_string(name, 255)
        dangerous_chars = r'[<>{}[\]\\|;&$`"\*\x00-\x1f\x7f]'
        name = re.sub(dangerous_chars, "", name)
        return name.strip()

    @staticmethod
    def _validate(model: type[BaseModel], data: dict, what: str):
        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            logger.warning(f"{what} validation failed: {e}")
            raise errors.ValidationError(f"Invalid {what}: {e}") from e

    @staticmethod
    def validate_race_results(results: List[dict]) -> tuple[LaneResult, ...]:
        """
        Validate a RecordRaceResults payload

        Returns:
            tuple of LaneResult ordered by lane

        Raises:
            errors.ValidationError: If validation fails
        """
        if not isinstance(results, list):
            raise errors.ValidationError("results must be a list")
        validated = InputSanitizer._validate(RaceResultsModel, {"results": results}, "race results")
        return tuple(
            sorted((item.to_lane_result() for item in validated.results), key=lambda r: r.lane)
        )

    @staticmethod
    def validate_progression_config(payload: Optional[dict]) -> ProgressionConfig:
        return InputSanitizer._validate(
            ProgressionConfigModel, payload or {}, "progression config"
        ).to_config()

    @staticmethod
    def validate_create_event(payload: dict) -> CreateEventModel:
        model = InputSanitizer._validate(CreateEventModel, payload, "event")
        if model.name:
            model.name = InputSanitizer.sanitize_name(model.name)
        return model

    @staticmethod
    def validate_entry(payload: dict) -> CompetitionEntry:
        return InputSanitizer._validate(EntryModel, payload, "entry").to_entry()

    @staticmethod
    def validate_ranking_system(payload: dict) -> RankingSystem:
        return InputSanitizer._validate(RankingSystemModel, payload, "ranking system").to_system()


# ==================== EXPORT ====================

__all__ = [
    "PROGRESSION_DEFAULTS",
    "RaceResultModel",
    "RaceResultsModel",
    "ProgressionConfigModel",
    "CreateEventModel",
    "EntryModel",
    "TieBreakerModel",
    "RankingSystemModel",
    "InputSanitizer",
]
