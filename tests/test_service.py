import threading
from datetime import date

import pytest

from regatta_core import (
    AlreadyProcessed,
    Athlete,
    BoatClass,
    Category,
    Club,
    Competition,
    Event,
    InMemoryResultStore,
    Lane,
    NotEligible,
    NotFound,
    PhaseNotReady,
    Race,
    RegattaService,
    ResultRecord,
    Stage,
    StateConflict,
    ValidationError,
)

EVENT_ID = "CMP:1x:SEN:men"


def _store():
    athletes = [
        Athlete(
            id=f"A{i}",
            first_name=f"Rower{i}",
            last_name="Test",
            gender="male",
            birth_date=date(2000, 5, 1),
            club_id="CA" if i % 2 else "CB",
        )
        for i in range(1, 9)
    ]
    athletes += [
        Athlete(id="YOUNG", first_name="Kid", last_name="Test", gender="male", birth_date=date(2013, 1, 1)),
        Athlete(id="WOMAN", first_name="Ida", last_name="Test", gender="female", birth_date=date(2000, 1, 1)),
        Athlete(id="OLD", first_name="Max", last_name="Test", gender="male", birth_date=date(1980, 1, 1)),
    ]
    return InMemoryResultStore(
        competitions=[
            Competition(id="CMP", code="BS26", discipline="beach", stages=(Stage(index=0, name="Day 1"),))
        ],
        athletes=athletes,
        clubs=[Club(id="CA", code="CA", name="Alpha RC"), Club(id="CB", code="CB", name="Bravo RC")],
        categories=[
            Category(id="SEN", abbreviation="SEN", gender="men", min_age=18),
            Category(id="MAS", abbreviation="MAS", gender="men", min_age=27, is_masters=True),
        ],
        boat_classes=[BoatClass(id="1x", code="1x", crew_size=1, discipline="beach")],
    )


def _entry(n, athlete=None, category="SEN"):
    athlete = athlete or f"A{n}"
    return {
        "id": f"E{n}",
        "competitionId": "CMP",
        "clubId": "CA" if n % 2 else "CB",
        "categoryId": category,
        "boatClassId": "1x",
        "athleteId": athlete,
        "submittedOrder": n,
    }


def _service(entrants=4, **config):
    service = RegattaService(_store(), season_year=2026)
    service.create_event(
        {
            "competitionId": "CMP",
            "boatClassId": "1x",
            "categoryId": "SEN",
            "gender": "men",
            "progressionConfig": config or {"hasRepechage": False, "timeTrialDirectAdvance": 4},
        }
    )
    batch = service.approve_registrations([_entry(n) for n in range(1, entrants + 1)])
    assert batch.ok
    service.seed_time_trial(EVENT_ID, batch.succeeded)
    return service


def _finish(service, phase):
    for race in service.store.list_races(event_id=EVENT_ID):
        if race.phase == phase and not race.is_completed:
            service.record_race_results(
                race.id,
                [
                    {"lane": lane.lane, "time": 60_000 + int(lane.entry_id[1:]) * 100}
                    for lane in race.lanes
                ],
            )


def test_full_event_from_seeding_to_medal_table():
    service = _service()
    _finish(service, "time_trial")
    assert service.process_phase(EVENT_ID, "time_trial")["advancedCount"] == 4

    bracket = service.get_bracket(EVENT_ID)
    assert bracket["currentPhase"] == "semifinal"
    assert [[lane["entryId"] for lane in race["lanes"]] for race in bracket["phases"]["semifinal"]] == [
        ["E1", "E4"],
        ["E2", "E3"],
    ]

    _finish(service, "semifinal")
    result = service.process_phase(EVENT_ID, "semifinal")
    assert result["advancedCount"] == 4
    assert "final_b" in result["message"]

    _finish(service, "final_b")
    _finish(service, "final_a")
    service.process_phase(EVENT_ID, "final")

    event = service.store.get_event(EVENT_ID)
    assert event.status == "completed"
    assert (event.medals.gold.entry_id, event.medals.silver.entry_id, event.medals.bronze.entry_id) == (
        "E1",
        "E2",
        "E3",
    )
    standings = service.get_club_standings("CMP")
    assert [(row["entityId"], row["gold"], row["bronze"], row["rank"]) for row in standings] == [
        ("CA", 1, 1, 1),
        ("CB", 0, 0, 2),
    ]

    service.sync_presets()
    rankings = service.get_rankings("CMP", "preset-beach-sprint-medals")
    assert rankings["renderTarget"] == "club_medals"
    assert [row["entityId"] for row in rankings["rankings"]["men"]] == ["CA", "CB"]


def test_processing_incomplete_phase_is_not_ready():
    service = _service()
    with pytest.raises(PhaseNotReady):
        service.process_phase(EVENT_ID, "time_trial")


def test_second_process_phase_conflicts_without_changing_state():
    service = _service()
    _finish(service, "time_trial")
    service.process_phase(EVENT_ID, "time_trial")
    event_before = service.store.get_event(EVENT_ID)
    races_before = service.store.list_races(event_id=EVENT_ID)

    with pytest.raises(StateConflict):
        service.process_phase(EVENT_ID, "time_trial")
    assert service.store.get_event(EVENT_ID) == event_before
    assert service.store.list_races(event_id=EVENT_ID) == races_before


def test_results_are_an_append_only_log():
    service = _service(entrants=2)
    race_id = f"{EVENT_ID}:TT1"
    service.record_race_results(race_id, [{"lane": 1, "time": "1:01.00"}, {"lane": 2, "time": "1:00.50"}])
    with pytest.raises(AlreadyProcessed):
        service.record_race_results(race_id, [{"lane": 1, "time": "1:00.00"}, {"lane": 2, "time": "1:00.50"}])
    with pytest.raises(ValidationError):
        service.correct_race_results(race_id, [{"lane": 1, "time": "1:00.00"}, {"lane": 2, "time": "1:00.50"}], "")

    race = service.correct_race_results(
        race_id,
        [{"lane": 1, "time": "1:00.00"}, {"lane": 2, "time": "1:00.50"}],
        "timing photo reviewed",
    )
    assert [lane.position for lane in race.lanes] == [1, 2]
    log = service.store.result_log(race_id)
    assert [record.version for record in log] == [1, 2]
    assert log[0].results[0].time_ms == 61_000
    assert log[1].reason == "timing photo reviewed"


def test_concurrent_process_phase_advances_the_event_once():
    service = _service()
    _finish(service, "time_trial")
    workers = 8
    barrier = threading.Barrier(workers)
    outcomes = []
    outcomes_lock = threading.Lock()

    def run():
        barrier.wait()
        try:
            result = service.process_phase(EVENT_ID, "time_trial")
        except StateConflict as exc:
            result = exc
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=run) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    succeeded = [result for result in outcomes if isinstance(result, dict)]
    assert len(succeeded) == 1
    assert succeeded[0]["advancedCount"] == 4
    assert all(isinstance(result, AlreadyProcessed) for result in outcomes if result not in succeeded)
    assert service.store.get_event(EVENT_ID).processed_phases == ("time_trial",)
    semis = [race for race in service.store.list_races(event_id=EVENT_ID) if race.phase == "semifinal"]
    assert len(semis) == 2


def test_rejected_log_append_leaves_race_scheduled():
    service = _service(entrants=2)
    race_id = f"{EVENT_ID}:TT1"
    service.store.append_result(ResultRecord(race_id=race_id, version=1, results=()))

    with pytest.raises(StateConflict):
        service.record_race_results(race_id, [{"lane": 1, "time": "1:01.00"}, {"lane": 2, "time": "1:00.50"}])
    assert service.store.get_race(race_id).status == "scheduled"
    assert len(service.store.result_log(race_id)) == 1


def test_approve_registrations_reports_each_failure():
    service = RegattaService(_store(), season_year=2026)
    batch = service.approve_registrations(
        [
            _entry(1),
            _entry(2, athlete="YOUNG"),
            _entry(3, athlete="WOMAN"),
            {"id": "E4", "competitionId": "CMP"},
            _entry(5, athlete="A5", category="MAS"),
        ]
    )
    assert not batch.ok
    assert [entry.id for entry in batch.succeeded] == ["E1"]
    assert [type(err) for err in batch.failed] == [NotEligible, NotEligible, ValidationError, NotEligible]
    assert batch.failed[0].reasons == ("age:YOUNG:13",)
    assert batch.failed[1].reasons == ("gender:WOMAN",)
    assert batch.as_dict()["failed"][0]["entityId"] == "E2"


def test_seed_time_trial_requires_approved_entries():
    service = RegattaService(_store(), season_year=2026)
    service.create_event({"competitionId": "CMP", "boatClassId": "1x", "categoryId": "SEN", "gender": "men"})
    with pytest.raises(ValidationError):
        service.seed_time_trial(EVENT_ID, [{**_entry(1), "status": "pending"}])


def test_create_event_checks_references_and_duplicates():
    service = RegattaService(_store(), season_year=2026)
    payload = {"competitionId": "CMP", "boatClassId": "1x", "categoryId": "SEN", "gender": "men"}
    event = service.create_event(payload)
    assert event.id == EVENT_ID
    assert event.config.time_trial_direct_advance == 4
    with pytest.raises(StateConflict):
        service.create_event(payload)
    with pytest.raises(NotFound):
        service.create_event({**payload, "categoryId": "NOPE"})


def test_presets_sync_and_discipline_filter():
    service = RegattaService(_store())
    first = service.sync_presets()
    assert {row["action"] for row in first} == {"created"}
    assert {row["action"] for row in service.sync_presets()} == {"updated"}

    codes = [system.code for system in service.list_available_ranking_systems("CMP")]
    assert codes == ["BEACH_CUP", "CHAMPIONSHIP_CAT", "BEACH_SPRINT_MEDALS", "BEST_OF_TWO"]


def test_custom_system_cannot_replace_preset():
    service = RegattaService(_store())
    service.sync_presets()
    with pytest.raises(StateConflict):
        service.save_ranking_system({"id": "preset-beach-cup", "code": "MINE"})
    saved = service.save_ranking_system({"id": "custom", "code": "mine", "pointMode": "skiff_athlete"})
    assert saved.code == "MINE"


def test_rankings_can_leave_out_masters():
    store = _store()
    service = RegattaService(store)
    service.save_ranking_system(
        {"id": "athletes", "code": "ATHLETES", "entityType": "athlete", "groupBy": "gender"}
    )
    for category in ("SEN", "MAS"):
        store.save_event(
            Event(id=f"EV-{category}", competition_id="CMP", boat_class_id="1x", category_id=category, gender="men")
        )
    store.save_races(
        [
            Race(id="R-SEN", competition_id="CMP", event_id="EV-SEN", status="completed",
                 lanes=(Lane(lane=1, entry_id="E1", club_id="CA", athlete_id="A1", time_ms=60_000),)),
            Race(id="R-MAS", competition_id="CMP", event_id="EV-MAS", status="completed",
                 lanes=(Lane(lane=1, entry_id="E9", athlete_id="OLD", time_ms=60_000),)),
        ]
    )

    everyone = service.get_rankings("CMP", "athletes")
    assert [row["entityId"] for row in everyone["rankings"]["men"]] == ["OLD", "A1"]
    no_masters = service.get_rankings("CMP", "athletes", include_masters=False)
    assert [row["entityId"] for row in no_masters["rankings"]["men"]] == ["A1"]


def test_unknown_ranking_system_is_not_found():
    with pytest.raises(NotFound):
        RegattaService(_store()).get_rankings("CMP", "missing")
