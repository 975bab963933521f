import pytest

from regatta_core import (
    DEFAULT_POINT_TABLE,
    Lane,
    Race,
    RankingSystem,
    format_ms_to_time,
    parse_time_to_ms,
    points_for_position,
    race_points,
    resolve_finish_order,
    tally_medals,
)


def _lane(n, time_ms=None, status="ok"):
    return Lane(lane=n, entry_id=f"E{n}", club_id=f"C{n}", athlete_id=f"A{n}", time_ms=time_ms, status=status)


def _race(*lanes):
    return Race(id="R1", competition_id="CMP", event_id="EV", lanes=tuple(lanes), status="completed")


def test_points_for_position_uses_table_and_cutoff():
    assert points_for_position(DEFAULT_POINT_TABLE, 8, 1) == 20
    assert points_for_position(DEFAULT_POINT_TABLE, 8, 8) == 1
    assert points_for_position(DEFAULT_POINT_TABLE, 3, 4) == 0
    assert points_for_position(DEFAULT_POINT_TABLE, 8, 9) == 0
    assert points_for_position(DEFAULT_POINT_TABLE, 8, None) == 0


def test_zero_max_scoring_position_lets_table_decide():
    table = {1: 5, 10: 1}
    assert points_for_position(table, 0, 10) == 1
    assert points_for_position(table, 0, 11) == 0


def test_equal_times_share_position_and_next_skips():
    lanes = [_lane(1, 60_000), _lane(2, 59_000), _lane(3, 59_000), _lane(4, 61_000)]
    order = resolve_finish_order(lanes)
    assert [(lane.lane, pos) for lane, pos in order] == [(2, 1), (3, 1), (1, 3), (4, 4)]


def test_non_finishers_unranked_without_rule():
    lanes = [_lane(1, 60_000), _lane(2, status="dnf"), _lane(3, 59_000)]
    order = resolve_finish_order(lanes)
    assert [(lane.lane, pos) for lane, pos in order] == [(3, 1), (1, 2), (2, None)]


def test_ok_lane_without_time_is_not_a_finisher():
    order = resolve_finish_order([_lane(1), _lane(2, 50_000)], rank_non_finishers=True)
    assert [(lane.lane, pos) for lane, pos in order] == [(2, 1), (1, 2)]


def test_few_finishers_rule_scores_non_finishers_in_lane_order():
    system = RankingSystem(id="S", code="S", dnf_gets_points_if_few_finishers=True)
    race = _race(
        _lane(1, status="dnf"),
        _lane(2, 62_000),
        _lane(3, status="dns"),
        _lane(4, 61_000),
        _lane(5, status="dsq"),
        _lane(6, status="dnf"),
    )
    scored = race_points(race, system, capacity=6)
    by_lane = {item.lane.lane: item for item in scored}
    assert by_lane[4].position == 1 and by_lane[4].points == 20
    assert by_lane[2].position == 2 and by_lane[2].points == 12
    assert [by_lane[n].position for n in (1, 3, 5, 6)] == [3, 4, 5, 6]
    assert [by_lane[n].points for n in (1, 3, 5, 6)] == [8, 6, 4, 3]
    assert by_lane[1].applied_dnf_rule is True
    assert by_lane[4].applied_dnf_rule is False


def test_few_finishers_rule_disabled_gives_zero():
    system = RankingSystem(id="S", code="S", dnf_gets_points_if_few_finishers=False)
    race = _race(_lane(1, 60_000), _lane(2, status="dnf"))
    by_lane = {item.lane.lane: item for item in race_points(race, system, capacity=6)}
    assert by_lane[2].position is None
    assert by_lane[2].points == 0


def test_full_field_of_finishers_skips_rule():
    system = RankingSystem(id="S", code="S", dnf_gets_points_if_few_finishers=True)
    race = _race(_lane(1, 60_000), _lane(2, 61_000), _lane(3, status="dnf"))
    by_lane = {item.lane.lane: item for item in race_points(race, system, capacity=2)}
    assert by_lane[3].position is None
    assert by_lane[3].points == 0


@pytest.mark.parametrize(
    "statuses",
    [
        ("ok", "ok", "ok", "ok", "ok", "ok"),
        ("ok", "dnf", "dns", "dsq", "dnf", "ok"),
        ("dnf", "dnf", "dnf", "dnf", "dnf", "dnf"),
        ("ok", "ok", "dnf"),
    ],
)
def test_race_points_never_exceed_lanes_times_winner_points(statuses):
    system = RankingSystem(id="S", code="S")
    lanes = [
        _lane(n, 60_000 if status == "ok" else None, status)
        for n, status in enumerate(statuses, start=1)
    ]
    total = sum(item.points for item in race_points(_race(*lanes), system, capacity=6))
    assert total <= len(lanes) * system.point_table[1]


def test_tied_winners_both_take_first_place_points():
    system = RankingSystem(id="S", code="S")
    race = _race(_lane(1, 60_000), _lane(2, 60_000), _lane(3, 61_000))
    points = [item.points for item in race_points(race, system, capacity=6)]
    assert points == [20, 20, 8]


def test_tally_medals_counts_top_three_only():
    tallies = tally_medals([("club-a", 1), ("club-a", 3), ("club-b", 2), ("club-b", 4), ("club-c", None)])
    assert tallies["club-a"].gold == 1 and tallies["club-a"].bronze == 1
    assert tallies["club-b"].silver == 1 and tallies["club-b"].total == 1
    assert tallies["club-c"].total == 0


def test_parse_time_to_ms_formats():
    assert parse_time_to_ms("1:05.32") == 65_320
    assert parse_time_to_ms("45.5") == 45_500
    assert parse_time_to_ms("45") == 45_000
    assert parse_time_to_ms(65_320) == 65_320
    assert parse_time_to_ms("") is None
    assert parse_time_to_ms(None) is None


@pytest.mark.parametrize("value", ["abc", "1:75.00", "1:2:3", "-1", "1:05.x"])
def test_parse_time_to_ms_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_time_to_ms(value)


def test_format_ms_to_time():
    assert format_ms_to_time(65_320) == "1:05.32"
    assert format_ms_to_time(45_500) == "45.50"
    assert format_ms_to_time(None) == ""
