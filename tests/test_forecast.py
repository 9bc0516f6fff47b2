from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from loadshare.domain.models import LoadTrend, MemberAvailabilityWindow, WorkloadDataPoint
from loadshare.services.forecast_service import (
    AnomalyType,
    ForecastValidationError,
    PatternType,
    WorkloadForecaster,
    analyze_trend,
    build_seasonal_profile,
    detect_anomalies,
    detect_patterns,
    generate_proactive_distribution,
    linear_regression,
    predict_workload,
    predict_workload_range,
)
from loadshare.utils.clock import FixedClock
from loadshare.utils.config import get_settings


# Monday
SERIES_START = datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)
AFTER_SERIES = datetime(2026, 2, 2, 8, 0, tzinfo=timezone.utc)


def _build_test_settings(**overrides):
    return replace(get_settings(), **overrides)


def _build_series(counts, *, start: datetime = SERIES_START, with_categories: bool = False):
    return [
        WorkloadDataPoint(
            timestamp=start + timedelta(days=index),
            task_count=count,
            total_minutes=count * 15,
            categories={"quotidien": count // 2, "ecole": count - count // 2} if with_categories else {},
        )
        for index, count in enumerate(counts)
    ]


def _weekday_heavy_series(weeks: int = 4, **kwargs):
    return _build_series([10, 10, 10, 10, 10, 2, 2] * weeks, **kwargs)


def test_three_fold_spike_is_detected() -> None:
    counts = [10] * 21
    counts[14] = 30
    points = _build_series(counts)

    anomalies = detect_anomalies(points, sensitivity=2.0)

    assert len(anomalies) == 1
    spike = anomalies[0]
    assert spike.type == AnomalyType.SPIKE
    assert spike.timestamp == points[14].timestamp
    assert spike.actual_value == 30
    assert spike.expected_value == 13
    assert spike.severity == 5
    assert "Possible backlog or special event" in spike.possible_causes


def test_drop_mentions_weekend_and_holiday() -> None:
    counts = [10] * 21
    counts[12] = 0
    points = _build_series(counts)
    points[12] = points[12].model_copy(update={"is_holiday": True})

    anomalies = detect_anomalies(points)

    assert [anomaly.type for anomaly in anomalies] == [AnomalyType.DROP]
    assert anomalies[0].possible_causes == [
        "Holiday period",
        "Weekend effect",
        "Possible reduced activity or vacation",
    ]


def test_short_series_has_no_anomalies() -> None:
    counts = [10] * 13
    counts[-1] = 50

    assert detect_anomalies(_build_series(counts)) == []


def test_non_positive_sensitivity_is_rejected() -> None:
    with pytest.raises(ForecastValidationError):
        detect_anomalies(_build_series([10] * 21), sensitivity=0)


def test_linear_regression_fits_exact_line() -> None:
    result = linear_regression([0, 1, 2, 3], [1, 3, 5, 7])

    assert result.slope == pytest.approx(2.0)
    assert result.intercept == pytest.approx(1.0)
    assert result.r2 == pytest.approx(1.0)


def test_linear_regression_degenerate_inputs() -> None:
    assert linear_regression([1], [4]).slope == 0
    assert linear_regression([2, 2, 2], [1, 2, 3]).slope == 0
    with pytest.raises(ForecastValidationError):
        linear_regression([1, 2], [1])


def test_patterns_need_two_weeks_of_data() -> None:
    assert detect_patterns(_build_series([5] * 13)) == []


def test_weekday_pattern_is_detected() -> None:
    patterns = detect_patterns(_weekday_heavy_series())

    assert [pattern.type for pattern in patterns] == [PatternType.DAILY, PatternType.WEEKLY]
    daily = patterns[0]
    assert daily.phase == 0
    assert daily.confidence == pytest.approx(0.8)


def test_trend_requires_full_window() -> None:
    trend = analyze_trend(_build_series([5] * 20), now=AFTER_SERIES)

    assert trend.direction == LoadTrend.STABLE
    assert trend.rate == 0
    assert trend.confidence == 0
    assert trend.started_at == AFTER_SERIES


def test_rising_weekly_totals_are_an_increasing_trend() -> None:
    counts = [1] * 7 + [2] * 7 + [3] * 7 + [4] * 7

    trend = analyze_trend(_build_series(counts), now=AFTER_SERIES)

    assert trend.direction == LoadTrend.INCREASING
    assert trend.rate == pytest.approx(40.0)
    assert trend.confidence == pytest.approx(1.0)
    assert trend.started_at == SERIES_START


def test_trend_window_must_be_positive() -> None:
    with pytest.raises(ForecastValidationError):
        analyze_trend(_build_series([5] * 28), window_weeks=0, now=AFTER_SERIES)


def test_prediction_follows_weekday_pattern() -> None:
    points = _weekday_heavy_series()

    monday = predict_workload(points, AFTER_SERIES, now=AFTER_SERIES)
    saturday = predict_workload(points, AFTER_SERIES + timedelta(days=5), now=AFTER_SERIES)

    assert monday.predicted_task_count == 15
    assert saturday.predicted_task_count < monday.predicted_task_count
    assert monday.breakdown == []
    assert [factor.name for factor in monday.factors] == ["day_of_week", "trend", "weekly_pattern"]
    assert monday.factors[0].description == "Monday typically has more tasks"


def test_prediction_without_history_is_zero() -> None:
    result = predict_workload([], AFTER_SERIES, now=AFTER_SERIES)

    assert result.predicted_task_count == 0
    assert result.predicted_minutes == 0


def test_range_prediction_covers_each_day_with_categories() -> None:
    points = _weekday_heavy_series(with_categories=True)

    results = predict_workload_range(points, AFTER_SERIES, AFTER_SERIES + timedelta(days=2), now=AFTER_SERIES)

    assert [result.date for result in results] == [AFTER_SERIES + timedelta(days=offset) for offset in range(3)]
    assert {item.category for item in results[0].breakdown} == {"quotidien", "ecole"}


def test_proactive_distribution_uses_member_availability() -> None:
    forecaster = WorkloadForecaster(clock=FixedClock(AFTER_SERIES))
    points = _weekday_heavy_series(with_categories=True)
    availability = [
        MemberAvailabilityWindow(member_id="weekday", available_days=(0, 1, 2, 3, 4)),
        MemberAvailabilityWindow(member_id="weekend", available_days=(5, 6)),
    ]

    suggestions = forecaster.generate_proactive_distribution(points, availability, lookahead_days=1)

    assert len(suggestions) == 1
    monday = suggestions[0]
    assert monday.suggested_date == AFTER_SERIES
    assert monday.reason == "Predicted 15 tasks based on Monday pattern"
    assert all(preparation.suggested_assignees == ["weekday"] for preparation in monday.task_preparations)
    assert {preparation.priority for preparation in monday.task_preparations} == {6}


def test_seasonal_profile_finds_peak_days() -> None:
    january = [10] * 31
    january[14] = 30
    points = _build_series(january, start=datetime(2026, 1, 1, tzinfo=timezone.utc), with_categories=True)
    points += _build_series([4] * 3, start=datetime(2026, 2, 1, tzinfo=timezone.utc), with_categories=True)

    profiles = build_seasonal_profile(points)

    assert [profile.month for profile in profiles] == [1, 2]
    assert profiles[0].peak_days == [15]
    assert profiles[0].average_task_count == 11
    assert sum(profiles[0].category_weights.values()) == pytest.approx(1.0)
    assert profiles[1].average_task_count == 4


def test_forecaster_reads_sensitivity_from_settings() -> None:
    counts = [10] * 21
    counts[14] = 30
    points = _build_series(counts)
    strict = WorkloadForecaster(settings=_build_test_settings(anomaly_sensitivity=3.0), clock=FixedClock(AFTER_SERIES))

    assert strict.detect_anomalies(points) == []
    assert len(strict.detect_anomalies(points, sensitivity=2.0)) == 1


def test_forecaster_applies_min_points_setting_on_every_prediction_path() -> None:
    points = _weekday_heavy_series(with_categories=True)
    forecaster = WorkloadForecaster(
        settings=_build_test_settings(forecast_min_pattern_points=100),
        clock=FixedClock(AFTER_SERIES),
    )
    availability = [MemberAvailabilityWindow(member_id="weekday", available_days=(0, 1, 2, 3, 4))]

    single = forecaster.predict_workload(points, AFTER_SERIES)
    ranged = forecaster.predict_workload_range(points, AFTER_SERIES, AFTER_SERIES)

    assert single.predicted_task_count == 10
    assert [result.predicted_task_count for result in ranged] == [10]
    assert [factor.name for factor in ranged[0].factors] == ["day_of_week", "trend"]
    assert forecaster.generate_proactive_distribution(points, availability, lookahead_days=1) == []


def test_proactive_distribution_forwards_pattern_thresholds() -> None:
    points = _weekday_heavy_series(with_categories=True)
    availability = [MemberAvailabilityWindow(member_id="weekday", available_days=(0, 1, 2, 3, 4))]

    default = generate_proactive_distribution(points, availability, 1, now=AFTER_SERIES)
    strict = generate_proactive_distribution(points, availability, 1, now=AFTER_SERIES, min_points=100)

    assert len(default) == 1
    assert strict == []
