"""Scoring policy: point tables, finish order and medal tallies.

Pure functions shared by the ranking aggregator and the progression
machine. Nothing here touches the result store.

Finish order rules:
- ``ok`` lanes with a time are ordered by ascending time; equal times share
  a position and the next position skips (1, 1, 3).
- Non-finishers (dns/dnf/dsq, or ``ok`` without a time) follow in lane order.
- Non-finishers receive positions only when the few-finishers rule applies
  (fewer ``ok`` finishers than the boat-class lane count) or when the caller
  ranks everybody (progression needs a total order inside a heat).
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Hashable, Iterable, Mapping, Sequence

from .models import Lane, Race, RankingSystem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LanePoints:
    lane: Lane
    position: int | None
    points: int
    applied_dnf_rule: bool = False


@dataclass(frozen=True)
class MedalTally:
    gold: int = 0
    silver: int = 0
    bronze: int = 0

    @property
    def total(self) -> int:
        return self.gold + self.silver + self.bronze

    def as_dict(self) -> dict[str, int]:
        return {
            "gold": self.gold,
            "silver": self.silver,
            "bronze": self.bronze,
            "total": self.total,
        }


def points_for_position(
    table: Mapping[int, int], max_scoring_position: int, position: int | None
) -> int:
    """Points the table awards for ``position``.

    A ``max_scoring_position`` of 0 means the table alone decides.
    """
    if position is None or position < 1:
        return 0
    if max_scoring_position and position > max_scoring_position:
        return 0
    return int(table.get(position, 0))


def resolve_finish_order(
    lanes: Sequence[Lane],
    *,
    capacity: int | None = None,
    dnf_gets_points_if_few_finishers: bool = False,
    rank_non_finishers: bool = False,
) -> list[tuple[Lane, int | None]]:
    """Order lanes by result and assign positions.

    Args:
        lanes: lanes of one race (results attached)
        capacity: boat-class lane count used by the few-finishers rule
        dnf_gets_points_if_few_finishers: ranking-system flag
        rank_non_finishers: always give non-finishers trailing positions

    Returns:
        ``[(lane, position), ...]`` finishers first, then non-finishers in
        lane order. ``position`` is ``None`` for non-finishers unless one of
        the two ranking rules applies.
    """
    finishers = sorted(
        (lane for lane in lanes if lane.is_finisher),
        key=lambda lane: (lane.time_ms, lane.lane),
    )
    non_finishers = sorted(
        (lane for lane in lanes if not lane.is_finisher),
        key=lambda lane: lane.lane,
    )

    ordered: list[tuple[Lane, int | None]] = []
    previous_time: int | None = None
    previous_position = 0
    for idx, lane in enumerate(finishers, start=1):
        if previous_time is not None and lane.time_ms == previous_time:
            position = previous_position
        else:
            position = idx
        ordered.append((lane, position))
        previous_time = lane.time_ms
        previous_position = position

    few_finishers = (
        dnf_gets_points_if_few_finishers
        and capacity is not None
        and len(finishers) < capacity
    )
    next_position = len(finishers) + 1
    for lane in non_finishers:
        if few_finishers or rank_non_finishers:
            ordered.append((lane, next_position))
            next_position += 1
        else:
            ordered.append((lane, None))
    return ordered


def race_points(race: Race, system: RankingSystem, capacity: int) -> list[LanePoints]:
    """Score every lane of a completed race under ``system``."""
    ordered = resolve_finish_order(
        race.lanes,
        capacity=capacity,
        dnf_gets_points_if_few_finishers=system.dnf_gets_points_if_few_finishers,
    )
    scored: list[LanePoints] = []
    for lane, position in ordered:
        points = points_for_position(system.point_table, system.max_scoring_position, position)
        scored.append(
            LanePoints(
                lane=lane,
                position=position,
                points=points,
                applied_dnf_rule=position is not None and not lane.is_finisher,
            )
        )
    logger.debug(
        f"Scored race {race.id}: "
        + ", ".join(f"L{item.lane.lane}={item.points}" for item in scored)
    )
    return scored


def tally_medals(entries: Iterable[tuple[Hashable, int | None]]) -> dict[Hashable, MedalTally]:
    """Count ranks 1/2/3 per entity.

    Args:
        entries: ``(entity_key, rank)`` pairs, one per counted race/stage.
    """
    counts: dict[Hashable, list[int]] = {}
    for key, rank in entries:
        bucket = counts.setdefault(key, [0, 0, 0])
        if rank in (1, 2, 3):
            bucket[rank - 1] += 1
    return {
        key: MedalTally(gold=vals[0], silver=vals[1], bronze=vals[2])
        for key, vals in counts.items()
    }


def parse_time_to_ms(value: Any) -> int | None:
    """Parse a race time into milliseconds.

    Examples:
        - "1:05.32" -> 65320
        - "45.5" -> 45500
        - 65320 -> 65320 (already milliseconds)
        - "" / None -> None

    Raises:
        ValueError: if a non-empty value cannot be parsed
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        if value < 0:
            raise ValueError("time must not be negative")
        return value
    if isinstance(value, float):
        if not math.isfinite(value) or value < 0:
            raise ValueError("time must be a finite positive number")
        return int(round(value))
    if not isinstance(value, str):
        raise ValueError(f"unsupported time value: {value!r}")

    text = value.strip()
    if not text:
        return None
    parts = text.split(":")
    if len(parts) > 2:
        raise ValueError(f"time must be MM:SS.cc or SS.cc, got {value!r}")
    try:
        minutes = int(parts[0]) if len(parts) == 2 else 0
        sec_text = parts[-1]
        sec_parts = sec_text.split(".")
        if len(sec_parts) > 2 or not sec_parts[0]:
            raise ValueError
        seconds = int(sec_parts[0])
        fraction = sec_parts[1] if len(sec_parts) == 2 else ""
    except ValueError:
        raise ValueError(f"time must be MM:SS.cc or SS.cc, got {value!r}")
    if not fraction.isdigit() and fraction:
        raise ValueError(f"time must be MM:SS.cc or SS.cc, got {value!r}")
    if minutes < 0 or seconds < 0 or (len(parts) == 2 and seconds > 59):
        raise ValueError(f"time out of range: {value!r}")
    # "45.5" is 45.50 s; keep up to millisecond precision
    millis = int((fraction + "000")[:3]) if fraction else 0
    return minutes * 60_000 + seconds * 1000 + millis


def format_ms_to_time(ms: int | None) -> str:
    """Format milliseconds as "M:SS.cc" (or "SS.cc" under a minute)."""
    if ms is None:
        return ""
    minutes = ms // 60_000
    seconds = (ms % 60_000) // 1000
    centiseconds = (ms % 1000) // 10
    if minutes > 0:
        return f"{minutes}:{seconds:02d}.{centiseconds:02d}"
    return f"{seconds}.{centiseconds:02d}"


__all__ = [
    "LanePoints",
    "MedalTally",
    "points_for_position",
    "resolve_finish_order",
    "race_points",
    "tally_medals",
    "parse_time_to_ms",
    "format_ms_to_time",
]
