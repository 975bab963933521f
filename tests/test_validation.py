import pytest

from regatta_core import InputSanitizer, LaneResult, ProgressionConfig, ValidationError


def test_race_results_are_parsed_and_sorted_by_lane():
    results = InputSanitizer.validate_race_results(
        [
            {"lane": 2, "time": "1:05.32"},
            {"lane": 1, "time": 64000},
            {"lane": 3, "status": "DNF", "time": "1:10.00"},
        ]
    )
    assert results == (
        LaneResult(lane=1, time_ms=64_000),
        LaneResult(lane=2, time_ms=65_320),
        LaneResult(lane=3, time_ms=None, status="dnf"),
    )


@pytest.mark.parametrize(
    "results",
    [
        [{"lane": 1, "time": "1:00.00"}, {"lane": 1, "time": "1:01.00"}],
        [{"lane": 1}],
        [{"lane": 1, "time": "fast"}],
        [{"lane": 1, "time": "1:00.00", "status": "retired"}],
        [{"lane": 0, "time": "1:00.00"}],
        [],
    ],
)
def test_invalid_race_results_raise_validation_error(results):
    with pytest.raises(ValidationError):
        InputSanitizer.validate_race_results(results)


def test_race_results_must_be_a_list():
    with pytest.raises(ValidationError):
        InputSanitizer.validate_race_results({"lane": 1})


def test_progression_config_defaults():
    assert InputSanitizer.validate_progression_config(None) == ProgressionConfig()
    config = InputSanitizer.validate_progression_config(
        {"hasRepechage": False, "timeTrialDirectAdvance": 8}
    )
    assert config.has_repechage is False
    assert config.time_trial_direct_advance == 8


@pytest.mark.parametrize(
    "payload",
    [
        {"repechageAdvance": 3, "repechageHeatSize": 2},
        {"knockoutAdvance": 2, "knockoutHeatSize": 1},
        {"hasRepechage": False, "timeTrialDirectAdvance": 0},
        {"timeTrialDirectAdvance": -1},
    ],
)
def test_progression_config_rejects_impossible_settings(payload):
    with pytest.raises(ValidationError):
        InputSanitizer.validate_progression_config(payload)


def test_create_event_accepts_short_gender_and_sanitizes_name():
    model = InputSanitizer.validate_create_event(
        {
            "competitionId": "CMP",
            "boatClassId": "1x",
            "categoryId": "SEN",
            "gender": "M",
            "name": "<b>Men's 1x</b>",
        }
    )
    assert model.gender == "men"
    assert model.name == "bMen's 1x/b"
    assert model.progressionConfig.to_config() == ProgressionConfig()


def test_create_event_requires_category():
    with pytest.raises(ValidationError):
        InputSanitizer.validate_create_event(
            {"competitionId": "CMP", "boatClassId": "1x", "gender": "men"}
        )


def test_entry_names_athlete_or_crew():
    entry = InputSanitizer.validate_entry(
        {
            "id": "E1",
            "competitionId": "CMP",
            "clubId": "CA",
            "categoryId": "SEN",
            "boatClassId": "2x",
            "crew": ["A1", "A2"],
        }
    )
    assert entry.members == ("A1", "A2")

    base = {"id": "E1", "competitionId": "CMP", "clubId": "CA", "categoryId": "SEN", "boatClassId": "1x"}
    with pytest.raises(ValidationError):
        InputSanitizer.validate_entry(base)
    with pytest.raises(ValidationError):
        InputSanitizer.validate_entry({**base, "athleteId": "A1", "crew": ["A2"]})
    with pytest.raises(ValidationError):
        InputSanitizer.validate_entry({**base, "crew": ["A1", "A1"]})


def test_ranking_system_payload():
    system = InputSanitizer.validate_ranking_system(
        {
            "id": "S1",
            "code": "spring_cup",
            "groupBy": "gender",
            "journeyMode": "best_n",
            "bestNCount": 3,
            "customPointTable": [{"position": 1, "points": 10}, {"position": 2, "points": 5}],
        }
    )
    assert system.code == "SPRING_CUP"
    assert system.best_n_count == 3
    assert system.point_table == {1: 10, 2: 5}
    assert system.is_preset is False


@pytest.mark.parametrize(
    "extra",
    [
        {"journeyMode": "best_n"},
        {"groupBy": "club"},
        {"scoringMode": "times"},
        {"code": "bad code!"},
        {"customPointTable": [{"position": 1, "points": 5}, {"position": 1, "points": 3}]},
        {"customPointTable": [{"position": 0, "points": 5}]},
    ],
)
def test_ranking_system_payload_rejects_bad_options(extra):
    with pytest.raises(ValidationError):
        InputSanitizer.validate_ranking_system({"id": "S1", "code": "CUP", **extra})


def test_sanitize_string_strips_null_bytes_and_truncates():
    assert InputSanitizer.sanitize_string("  ab\0c  ") == "abc"
    assert InputSanitizer.sanitize_string("x" * 300, 10) == "x" * 10


def test_ranking_system_tie_breakers():
    default = InputSanitizer.validate_ranking_system({"id": "S1", "code": "CUP"})
    assert default.tie_breakers == ("more_first_places", "more_second_places", "total_time", "alphabetical")

    ordered = InputSanitizer.validate_ranking_system(
        {
            "id": "S1",
            "code": "CUP",
            "tieBreakers": [
                {"priority": 2, "method": "alphabetical"},
                {"priority": 1, "method": "total_time"},
            ],
        }
    )
    assert ordered.tie_breakers == ("total_time", "alphabetical")

    with pytest.raises(ValidationError):
        InputSanitizer.validate_ranking_system({"id": "S1", "code": "CUP", "tieBreakers": ["coin_toss"]})
    with pytest.raises(ValidationError):
        InputSanitizer.validate_ranking_system(
            {"id": "S1", "code": "CUP", "tieBreakers": ["total_time", "total_time"]}
        )
