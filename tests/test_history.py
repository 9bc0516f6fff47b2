from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from loadshare.domain.models import HistoricalLoadEntry, LoadTrend
from loadshare.services.history_service import (
    HistoryAggregator,
    HistoryValidationError,
    build_fatigue_state,
    category_load,
    daily_workload,
    fatigue_level,
    find_last_rest_day,
    load_trend,
    time_decay,
    time_weighted_load,
)
from loadshare.utils.clock import FixedClock, start_of_day
from loadshare.utils.config import get_settings


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _build_test_settings(**overrides):
    return replace(get_settings(), **overrides)


def _entry(days_ago: float, weight: float, *, user_id: str = "u1", category: str = "quotidien", **extra):
    return HistoricalLoadEntry(
        date=NOW - timedelta(days=days_ago),
        user_id=user_id,
        task_id=f"task-{days_ago}-{weight}",
        category=category,
        weight=weight,
        **extra,
    )


def test_time_decay_halves_every_half_life() -> None:
    assert time_decay(0) == 1.0
    assert time_decay(14, half_life_days=14) == pytest.approx(0.5)
    assert time_decay(28, half_life_days=14) == pytest.approx(0.25)
    assert time_decay(90, max_age_days=90) == 0.1


def test_time_weighted_load_without_entries_is_neutral() -> None:
    score = time_weighted_load([], "u1", now=NOW)

    assert score.score == 0.0
    assert score.decay_factor == 1.0
    assert score.age_in_days == 0


def test_time_weighted_load_decays_older_entries() -> None:
    entries = [_entry(0, 10), _entry(14, 10), _entry(1, 99, user_id="u2")]

    score = time_weighted_load(entries, "u1", now=NOW)

    assert score.score == 15.0
    assert score.decay_factor == pytest.approx(0.75)
    assert score.age_in_days == 7


def test_category_load_groups_by_category() -> None:
    entries = [_entry(0, 4, category="sante"), _entry(0, 2, category="ecole"), _entry(0, 1, category="sante")]

    assert category_load(entries, "u1", now=NOW) == {"sante": 5.0, "ecole": 2.0}


def test_load_trend_classification() -> None:
    assert load_trend([], "u1", now=NOW) == LoadTrend.STABLE
    assert load_trend([_entry(1, 10)], "u1", now=NOW) == LoadTrend.INCREASING
    assert load_trend([_entry(1, 10), _entry(10, 10)], "u1", now=NOW) == LoadTrend.STABLE
    assert load_trend([_entry(1, 5), _entry(10, 10)], "u1", now=NOW) == LoadTrend.DECREASING


def test_load_trend_rejects_empty_window() -> None:
    with pytest.raises(HistoryValidationError):
        load_trend([], "u1", now=NOW, window_days=0)


def test_fatigue_penalises_unknown_rest_day() -> None:
    assert fatigue_level([], "u1", now=NOW) == 10
    assert fatigue_level([], "u1", now=NOW, last_rest_day=NOW - timedelta(days=1)) == 0


def test_fatigue_grows_with_recent_load_and_missing_rest() -> None:
    entries = [_entry(day, 15) for day in range(7)]

    rested = fatigue_level(entries, "u1", now=NOW, last_rest_day=NOW - timedelta(days=1))
    strained = fatigue_level(entries, "u1", now=NOW, last_rest_day=NOW - timedelta(days=20))

    assert 0 <= rested <= 100
    assert strained > rested


def test_fatigue_is_capped_at_100() -> None:
    entries = [_entry(day, 200) for day in range(7)]

    assert fatigue_level(entries, "u1", now=NOW, last_rest_day=NOW - timedelta(days=60)) == 100


def test_fatigue_state_counts_consecutive_heavy_days() -> None:
    entries = [_entry(0.1, 12), _entry(1, 12), _entry(3, 12)]

    state = build_fatigue_state(entries, "u1", now=NOW, last_rest_day=NOW - timedelta(days=2))

    assert state.user_id == "u1"
    assert state.consecutive_high_load_days == 2
    assert state.recent_average_load == round(36 / 7, 1)
    assert state.to_dict()["weekly_load_trend"] == "increasing"


def test_find_last_rest_day_skips_active_days() -> None:
    entries = [_entry(0, 1), _entry(1, 1)]

    rest_day = find_last_rest_day(entries, "u1", now=NOW)

    assert rest_day == start_of_day(NOW) - timedelta(days=2)


def test_daily_workload_includes_empty_days() -> None:
    first_day = start_of_day(NOW) - timedelta(days=1)
    entries = [
        _entry(1, 2, minutes_spent=30),
        _entry(1, 3, minutes_spent=45),
    ]

    series = daily_workload(entries, "u1", start=first_day, end=NOW, max_daily_tasks=2)

    assert [day.task_count for day in series] == [2, 0]
    assert series[0].minutes_worked == 75
    assert series[0].load_percentage == 100
    assert series[0].was_overloaded
    assert not series[1].was_overloaded


def test_daily_workload_rejects_non_positive_capacity() -> None:
    with pytest.raises(HistoryValidationError):
        daily_workload([], "u1", start=NOW, end=NOW, max_daily_tasks=0)


def test_aggregator_uses_settings_and_clock() -> None:
    settings = _build_test_settings(history_half_life_days=7.0)
    aggregator = HistoryAggregator(settings=settings, clock=FixedClock(NOW))

    score = aggregator.time_weighted_load([_entry(7, 10)], "u1")

    assert aggregator.config.half_life_days == 7.0
    assert score.score == 5.0


def test_aggregator_rejects_invalid_settings() -> None:
    with pytest.raises(ValueError):
        HistoryAggregator(settings=_build_test_settings(history_half_life_days=0.0), clock=FixedClock(NOW))
