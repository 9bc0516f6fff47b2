"""Workload forecasting over daily task-volume series."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from loadshare.domain.models import LoadTrend, MemberAvailabilityWindow, WorkloadDataPoint
from loadshare.utils.clock import Clock, SystemClock, ensure_utc
from loadshare.utils.config import Settings, get_settings
from loadshare.utils.logger import get_logger


logger = get_logger(__name__)

DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
WEEKEND_DAYS = (5, 6)

DEFAULT_MIN_PATTERN_POINTS = 14
DEFAULT_MIN_MONTHLY_POINTS = 60
DEFAULT_ANOMALY_WINDOW = 7

DAILY_CONFIDENCE_FLOOR = 0.5
WEEKLY_CONFIDENCE_FLOOR = 0.4
MONTHLY_CONFIDENCE_FLOOR = 0.3

TREND_RATE_THRESHOLD = 5.0
CATEGORY_RECENT_POINTS = 14
CATEGORY_TREND_UP = 1.15
CATEGORY_TREND_DOWN = 0.85
PROACTIVE_MIN_CONFIDENCE = 0.4
PROACTIVE_MIN_TASKS = 2
PEAK_DAY_FACTOR = 1.2


class ForecastValidationError(ValueError):
    """Raised when forecast parameters are invalid."""


class PatternType(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class AnomalyType(StrEnum):
    SPIKE = "spike"
    DROP = "drop"


@dataclass(frozen=True)
class WorkloadPattern:
    type: PatternType
    periodicity: int
    amplitude: float
    phase: int
    confidence: float


@dataclass(frozen=True)
class RegressionResult:
    slope: float
    intercept: float
    r2: float


@dataclass(frozen=True)
class WorkloadTrend:
    direction: LoadTrend
    rate: float
    confidence: float
    started_at: datetime


@dataclass(frozen=True)
class CategoryPrediction:
    category: str
    predicted_count: int
    trend: LoadTrend


@dataclass(frozen=True)
class PredictionFactor:
    name: str
    impact: float
    description: str


@dataclass(frozen=True)
class PredictionResult:
    date: datetime
    predicted_task_count: int
    predicted_minutes: int
    confidence: float
    breakdown: list[CategoryPrediction] = field(default_factory=list)
    factors: list[PredictionFactor] = field(default_factory=list)


@dataclass(frozen=True)
class AnomalyDetection:
    timestamp: datetime
    type: AnomalyType
    severity: int
    expected_value: int
    actual_value: int
    possible_causes: list[str]


@dataclass(frozen=True)
class TaskPreparation:
    category: str
    estimated_count: int
    suggested_assignees: list[str]
    priority: int


@dataclass(frozen=True)
class ProactiveDistribution:
    suggested_date: datetime
    reason: str
    task_preparations: list[TaskPreparation]
    confidence: float


@dataclass(frozen=True)
class SeasonalProfile:
    month: int
    average_task_count: int
    average_minutes: int
    peak_days: list[int]
    category_weights: dict[str, float]


def day_name(day_of_week: int) -> str:
    if 0 <= day_of_week < len(DAY_NAMES):
        return DAY_NAMES[day_of_week]
    return "Unknown"


def _sorted_points(points: Sequence[WorkloadDataPoint]) -> list[WorkloadDataPoint]:
    return sorted(points, key=lambda point: point.timestamp)


def _build_series_frame(points: Sequence[WorkloadDataPoint]) -> pd.DataFrame:
    """One row per data point, in time order, with calendar keys precomputed."""

    frame = pd.DataFrame(
        [
            {
                "timestamp": point.timestamp,
                "task_count": point.task_count,
                "total_minutes": point.total_minutes,
                "day_of_week": point.day_of_week,
                "iso_year": point.iso_year,
                "week": point.week_of_year,
                "month": point.month,
                "day_of_month": point.timestamp.day,
            }
            for point in _sorted_points(points)
        ]
    )
    return frame.reset_index(drop=True)


def linear_regression(xs: Sequence[float], ys: Sequence[float]) -> RegressionResult:
    """Ordinary least squares fit of ``ys`` on ``xs``; R² is clamped to be non-negative."""
    if len(xs) != len(ys):
        raise ForecastValidationError("xs and ys must have the same length")
    n = len(xs)
    if n < 2:
        return RegressionResult(slope=0.0, intercept=0.0, r2=0.0)

    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    sum_x = float(x.sum())
    sum_y = float(y.sum())
    denominator = n * float((x * x).sum()) - sum_x * sum_x
    if denominator == 0:
        return RegressionResult(slope=0.0, intercept=sum_y / n, r2=0.0)

    slope = (n * float((x * y).sum()) - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n

    ss_total = float(((y - sum_y / n) ** 2).sum())
    ss_residual = float(((y - (slope * x + intercept)) ** 2).sum())
    r2 = 1 - ss_residual / ss_total if ss_total > 0 else 0.0
    return RegressionResult(slope=slope, intercept=intercept, r2=max(0.0, r2))


def _daily_pattern(frame: pd.DataFrame) -> WorkloadPattern:
    grouped = frame.groupby("day_of_week")["task_count"]
    day_means = grouped.mean().reindex(range(7), fill_value=0.0)
    day_stds = grouped.std(ddof=0).reindex(range(7), fill_value=0.0)

    overall_mean = float(day_means.mean())
    amplitude = float(day_means.max() - day_means.min())
    peak_day = int(day_means.idxmax())
    average_std = float(day_stds.mean())
    confidence = min(1.0, amplitude / (average_std + 1)) if amplitude > 0 else 0.0

    return WorkloadPattern(
        type=PatternType.DAILY,
        periodicity=7,
        amplitude=amplitude / max(overall_mean, 1.0),
        phase=peak_day,
        confidence=min(1.0, confidence * 0.8),
    )


def _weekly_pattern(frame: pd.DataFrame) -> WorkloadPattern:
    weekly_totals = frame.groupby(["iso_year", "week"])["task_count"].sum()
    average = float(weekly_totals.mean())
    spread = float(weekly_totals.std(ddof=0))
    weeks = len(weekly_totals)
    confidence = min(1.0, 0.6 + weeks / 52 * 0.4) if weeks >= 4 else 0.3
    return WorkloadPattern(
        type=PatternType.WEEKLY,
        periodicity=7,
        amplitude=spread / max(average, 1.0),
        phase=0,
        confidence=confidence,
    )


def _monthly_pattern(frame: pd.DataFrame) -> WorkloadPattern:
    monthly_means = frame.groupby("month")["task_count"].mean().sort_index()
    amplitude = float(monthly_means.max() - monthly_means.min()) / max(float(monthly_means.mean()), 1.0)
    return WorkloadPattern(
        type=PatternType.MONTHLY,
        periodicity=30,
        amplitude=amplitude,
        phase=int(monthly_means.idxmax()),
        confidence=0.5 if len(monthly_means) >= 6 else 0.2,
    )


def detect_patterns(
    points: Sequence[WorkloadDataPoint],
    *,
    min_points: int = DEFAULT_MIN_PATTERN_POINTS,
    min_monthly_points: int = DEFAULT_MIN_MONTHLY_POINTS,
) -> list[WorkloadPattern]:
    """Periodic components that clear their confidence floor; empty below ``min_points``."""
    if len(points) < min_points:
        return []

    frame = _build_series_frame(points)
    patterns: list[WorkloadPattern] = []

    daily = _daily_pattern(frame)
    if daily.confidence > DAILY_CONFIDENCE_FLOOR:
        patterns.append(daily)

    weekly = _weekly_pattern(frame)
    if weekly.confidence > WEEKLY_CONFIDENCE_FLOOR:
        patterns.append(weekly)

    if len(points) >= min_monthly_points:
        monthly = _monthly_pattern(frame)
        if monthly.confidence > MONTHLY_CONFIDENCE_FLOOR:
            patterns.append(monthly)

    return patterns


def analyze_trend(
    points: Sequence[WorkloadDataPoint],
    window_weeks: int = 4,
    *,
    now: datetime,
) -> WorkloadTrend:
    """Direction and weekly rate of change over the last ``window_weeks`` ISO weeks."""
    if window_weeks <= 0:
        raise ForecastValidationError("window_weeks must be > 0")
    now = ensure_utc(now)
    if len(points) < window_weeks * 7:
        return WorkloadTrend(direction=LoadTrend.STABLE, rate=0.0, confidence=0.0, started_at=now)

    frame = _build_series_frame(points)
    weekly = (
        frame.groupby(["iso_year", "week"], sort=True)
        .agg(total=("task_count", "sum"), started=("timestamp", "first"))
        .reset_index(drop=True)
    )
    totals = [float(total) for total in weekly["total"]]
    starts = [pd.Timestamp(value).to_pydatetime() for value in weekly["started"]]

    recent = totals[-window_weeks:]
    regression = linear_regression(list(range(len(recent))), recent)
    average_total = sum(recent) / len(recent)
    weekly_rate = regression.slope / average_total * 100 if average_total > 0 else 0.0

    direction = LoadTrend.STABLE
    if weekly_rate > TREND_RATE_THRESHOLD:
        direction = LoadTrend.INCREASING
    elif weekly_rate < -TREND_RATE_THRESHOLD:
        direction = LoadTrend.DECREASING

    start_index = 0
    last_total = totals[-1]
    for index in range(len(totals) - 2, -1, -1):
        change = last_total - totals[index]
        if (direction == LoadTrend.INCREASING and change <= 0) or (
            direction == LoadTrend.DECREASING and change >= 0
        ):
            start_index = index + 1
            break

    return WorkloadTrend(
        direction=direction,
        rate=round(weekly_rate, 1),
        confidence=min(1.0, regression.r2 + 0.2),
        started_at=ensure_utc(starts[start_index]),
    )


def _category_breakdown(
    points: Sequence[WorkloadDataPoint],
    day_adjustment: float,
) -> list[CategoryPrediction]:
    counts_by_category: dict[str, list[int]] = {}
    for point in _sorted_points(points):
        for category, count in point.categories.items():
            counts_by_category.setdefault(category, []).append(count)

    breakdown: list[CategoryPrediction] = []
    for category, counts in counts_by_category.items():
        average = float(np.mean(counts))
        recent_average = float(np.mean(counts[-CATEGORY_RECENT_POINTS:]))
        trend = LoadTrend.STABLE
        if recent_average > average * CATEGORY_TREND_UP:
            trend = LoadTrend.INCREASING
        elif recent_average < average * CATEGORY_TREND_DOWN:
            trend = LoadTrend.DECREASING
        breakdown.append(
            CategoryPrediction(
                category=category,
                predicted_count=round(average * day_adjustment),
                trend=trend,
            )
        )
    return breakdown


def predict_workload(
    points: Sequence[WorkloadDataPoint],
    target_date: datetime,
    include_categories: bool = False,
    *,
    now: datetime,
    window_weeks: int = 4,
    min_points: int = DEFAULT_MIN_PATTERN_POINTS,
    min_monthly_points: int = DEFAULT_MIN_MONTHLY_POINTS,
) -> PredictionResult:
    """Historical mean scaled by weekday, daily-pattern and trend adjustments."""
    target_date = ensure_utc(target_date)
    patterns = detect_patterns(points, min_points=min_points, min_monthly_points=min_monthly_points)
    trend = analyze_trend(points, window_weeks, now=now)

    task_counts = np.asarray([point.task_count for point in points], dtype=float)
    minutes = np.asarray([point.total_minutes for point in points], dtype=float)
    base_prediction = float(task_counts.mean()) if task_counts.size else 0.0
    base_minutes = float(minutes.mean()) if minutes.size else 0.0

    target_day = target_date.weekday()
    same_day = [point.task_count for point in points if point.day_of_week == target_day]
    day_adjustment = float(np.mean(same_day)) / max(base_prediction, 1.0) if same_day else 1.0

    pattern_multiplier = 1.0
    daily_pattern = next((pattern for pattern in patterns if pattern.type == PatternType.DAILY), None)
    if daily_pattern is not None and daily_pattern.confidence > DAILY_CONFIDENCE_FLOOR:
        day_offset = (target_day - daily_pattern.phase + 7) % 7
        pattern_multiplier += daily_pattern.amplitude * math.cos(day_offset / 7 * 2 * math.pi) * 0.5

    weeks_since_start = (target_date - trend.started_at).total_seconds() / 86400 / 7
    trend_adjustment = 1 + (trend.rate / 100) * weeks_since_start * trend.confidence

    multiplier = day_adjustment * pattern_multiplier * trend_adjustment
    predicted_task_count = max(0, round(base_prediction * multiplier))
    predicted_minutes = max(0, round(base_minutes * multiplier))

    if patterns:
        pattern_confidence = sum(pattern.confidence for pattern in patterns) / len(patterns)
    else:
        pattern_confidence = 0.3
    confidence = min(1.0, (pattern_confidence + trend.confidence) / 2)

    breakdown = _category_breakdown(points, day_adjustment) if include_categories else []

    factors = [
        PredictionFactor(
            name="day_of_week",
            impact=day_adjustment - 1,
            description=(
                f"{day_name(target_day)} typically has "
                f"{'more' if day_adjustment > 1 else 'fewer'} tasks"
            ),
        ),
        PredictionFactor(
            name="trend",
            impact=(trend_adjustment - 1) * trend.confidence,
            description=f"Workload is {trend.direction} at {abs(trend.rate)}% per week",
        ),
    ]
    if daily_pattern is not None:
        factors.append(
            PredictionFactor(
                name="weekly_pattern",
                impact=(pattern_multiplier - 1) * daily_pattern.confidence,
                description=f"Weekly pattern detected with {round(daily_pattern.confidence * 100)}% confidence",
            )
        )

    return PredictionResult(
        date=target_date,
        predicted_task_count=predicted_task_count,
        predicted_minutes=predicted_minutes,
        confidence=confidence,
        breakdown=breakdown,
        factors=factors,
    )


def predict_workload_range(
    points: Sequence[WorkloadDataPoint],
    start: datetime,
    end: datetime,
    *,
    now: datetime,
    window_weeks: int = 4,
    min_points: int = DEFAULT_MIN_PATTERN_POINTS,
    min_monthly_points: int = DEFAULT_MIN_MONTHLY_POINTS,
) -> list[PredictionResult]:
    """One prediction per day from ``start`` to ``end`` inclusive, with category breakdowns."""
    start = ensure_utc(start)
    end = ensure_utc(end)
    results: list[PredictionResult] = []
    current = start
    while current <= end:
        results.append(
            predict_workload(
                points,
                current,
                include_categories=True,
                now=now,
                window_weeks=window_weeks,
                min_points=min_points,
                min_monthly_points=min_monthly_points,
            )
        )
        current += timedelta(days=1)
    return results


def _possible_causes(point: WorkloadDataPoint, anomaly_type: AnomalyType) -> list[str]:
    causes: list[str] = []
    if point.is_holiday:
        causes.append("Holiday period")
    if point.day_of_week in WEEKEND_DAYS:
        causes.append("Weekend effect")
    if anomaly_type == AnomalyType.SPIKE:
        causes.append("Possible backlog or special event")
    else:
        causes.append("Possible reduced activity or vacation")
    return causes


def detect_anomalies(
    points: Sequence[WorkloadDataPoint],
    sensitivity: float = 2.0,
    *,
    window: int = DEFAULT_ANOMALY_WINDOW,
    min_points: int = DEFAULT_MIN_PATTERN_POINTS,
) -> list[AnomalyDetection]:
    """Points whose z-score against their trailing window exceeds ``sensitivity``.

    Each window ends at, and includes, the point being tested.
    """
    if sensitivity <= 0:
        raise ForecastValidationError("sensitivity must be > 0")
    if window <= 1:
        raise ForecastValidationError("window must be > 1")
    if len(points) < max(min_points, window):
        return []

    ordered = _sorted_points(points)
    counts = np.asarray([point.task_count for point in ordered], dtype=float)
    windows = np.lib.stride_tricks.sliding_window_view(counts, window)
    rolling_mean = windows.mean(axis=1)
    rolling_std = windows.std(axis=1)

    anomalies: list[AnomalyDetection] = []
    for offset, (expected, std) in enumerate(zip(rolling_mean, rolling_std)):
        point = ordered[offset + window - 1]
        actual = float(point.task_count)
        z_score = abs(actual - expected) / std if std > 0 else 0.0
        if z_score <= sensitivity:
            continue
        anomaly_type = AnomalyType.SPIKE if actual > expected else AnomalyType.DROP
        anomalies.append(
            AnomalyDetection(
                timestamp=point.timestamp,
                type=anomaly_type,
                severity=min(10, round(z_score * 2)),
                expected_value=round(float(expected)),
                actual_value=point.task_count,
                possible_causes=_possible_causes(point, anomaly_type),
            )
        )
    return anomalies


def _preparation_priority(trend: LoadTrend) -> int:
    if trend == LoadTrend.INCREASING:
        return 8
    if trend == LoadTrend.DECREASING:
        return 4
    return 6


def generate_proactive_distribution(
    points: Sequence[WorkloadDataPoint],
    availability: Sequence[MemberAvailabilityWindow],
    lookahead_days: int = 7,
    *,
    now: datetime,
    window_weeks: int = 4,
    min_points: int = DEFAULT_MIN_PATTERN_POINTS,
    min_monthly_points: int = DEFAULT_MIN_MONTHLY_POINTS,
) -> list[ProactiveDistribution]:
    """Per-day category preparation suggestions for the next ``lookahead_days`` days."""
    if lookahead_days < 0:
        raise ForecastValidationError("lookahead_days must be >= 0")
    now = ensure_utc(now)
    suggestions: list[ProactiveDistribution] = []

    for offset in range(lookahead_days):
        target = now + timedelta(days=offset)
        prediction = predict_workload(
            points,
            target,
            include_categories=True,
            now=now,
            window_weeks=window_weeks,
            min_points=min_points,
            min_monthly_points=min_monthly_points,
        )
        if prediction.confidence < PROACTIVE_MIN_CONFIDENCE or prediction.predicted_task_count < PROACTIVE_MIN_TASKS:
            continue

        weekday = target.weekday()
        available = [window.member_id for window in availability if weekday in window.available_days]
        if not available:
            continue

        preparations = [
            TaskPreparation(
                category=item.category,
                estimated_count=item.predicted_count,
                suggested_assignees=list(available),
                priority=_preparation_priority(item.trend),
            )
            for item in prediction.breakdown
            if item.predicted_count > 0
        ]
        if preparations:
            suggestions.append(
                ProactiveDistribution(
                    suggested_date=target,
                    reason=(
                        f"Predicted {prediction.predicted_task_count} tasks based on "
                        f"{day_name(weekday)} pattern"
                    ),
                    task_preparations=preparations,
                    confidence=prediction.confidence,
                )
            )
    return suggestions


def build_seasonal_profile(points: Sequence[WorkloadDataPoint]) -> list[SeasonalProfile]:
    """Per calendar month averages, peak days of month and category mix."""
    if not points:
        return []

    frame = _build_series_frame(points)
    profiles: list[SeasonalProfile] = []
    for month, month_frame in frame.groupby("month", sort=True):
        day_means = (
            month_frame.groupby("day_of_month")["task_count"]
            .mean()
            .reindex(range(1, 32), fill_value=0.0)
        )
        threshold = float(day_means.mean()) * PEAK_DAY_FACTOR
        peak_days = [int(day) for day, average in day_means.items() if average > threshold]

        category_totals: dict[str, int] = {}
        for point in points:
            if point.month != month:
                continue
            for category, count in point.categories.items():
                category_totals[category] = category_totals.get(category, 0) + count
        total_all = sum(category_totals.values())
        category_weights = {
            category: (total / total_all if total_all > 0 else 0.0)
            for category, total in category_totals.items()
        }

        profiles.append(
            SeasonalProfile(
                month=int(month),
                average_task_count=round(float(month_frame["task_count"].mean())),
                average_minutes=round(float(month_frame["total_minutes"].mean())),
                peak_days=peak_days,
                category_weights=category_weights,
            )
        )
    return profiles


class WorkloadForecaster:
    """Forecasting entry point bound to settings and a clock."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock or SystemClock()

    def detect_patterns(self, points: Sequence[WorkloadDataPoint]) -> list[WorkloadPattern]:
        return detect_patterns(
            points,
            min_points=self._settings.forecast_min_pattern_points,
            min_monthly_points=self._settings.forecast_min_monthly_points,
        )

    @staticmethod
    def linear_regression(xs: Sequence[float], ys: Sequence[float]) -> RegressionResult:
        return linear_regression(xs, ys)

    def analyze_trend(
        self,
        points: Sequence[WorkloadDataPoint],
        window_weeks: Optional[int] = None,
    ) -> WorkloadTrend:
        window = window_weeks if window_weeks is not None else self._settings.forecast_trend_window_weeks
        return analyze_trend(points, window, now=self._clock.now())

    def predict_workload(
        self,
        points: Sequence[WorkloadDataPoint],
        target_date: datetime,
        include_categories: bool = False,
    ) -> PredictionResult:
        return predict_workload(
            points,
            target_date,
            include_categories,
            now=self._clock.now(),
            window_weeks=self._settings.forecast_trend_window_weeks,
            min_points=self._settings.forecast_min_pattern_points,
            min_monthly_points=self._settings.forecast_min_monthly_points,
        )

    def predict_workload_range(
        self,
        points: Sequence[WorkloadDataPoint],
        start: datetime,
        end: datetime,
    ) -> list[PredictionResult]:
        results = predict_workload_range(
            points,
            start,
            end,
            now=self._clock.now(),
            window_weeks=self._settings.forecast_trend_window_weeks,
            min_points=self._settings.forecast_min_pattern_points,
            min_monthly_points=self._settings.forecast_min_monthly_points,
        )
        logger.info(
            "Workload range predicted | points=%s | start=%s | end=%s | days=%s",
            len(points),
            ensure_utc(start).isoformat(),
            ensure_utc(end).isoformat(),
            len(results),
        )
        return results

    def detect_anomalies(
        self,
        points: Sequence[WorkloadDataPoint],
        sensitivity: Optional[float] = None,
    ) -> list[AnomalyDetection]:
        anomalies = detect_anomalies(
            points,
            sensitivity if sensitivity is not None else self._settings.anomaly_sensitivity,
            window=self._settings.anomaly_window_days,
            min_points=self._settings.forecast_min_pattern_points,
        )
        if anomalies:
            logger.info(
                "Anomalies detected | points=%s | anomalies=%s | max_severity=%s",
                len(points),
                len(anomalies),
                max(anomaly.severity for anomaly in anomalies),
            )
        return anomalies

    def generate_proactive_distribution(
        self,
        points: Sequence[WorkloadDataPoint],
        availability: Sequence[MemberAvailabilityWindow],
        lookahead_days: int = 7,
    ) -> list[ProactiveDistribution]:
        suggestions = generate_proactive_distribution(
            points,
            availability,
            lookahead_days,
            now=self._clock.now(),
            window_weeks=self._settings.forecast_trend_window_weeks,
            min_points=self._settings.forecast_min_pattern_points,
            min_monthly_points=self._settings.forecast_min_monthly_points,
        )
        logger.info(
            "Proactive distribution generated | lookahead_days=%s | suggestions=%s",
            lookahead_days,
            len(suggestions),
        )
        return suggestions

    def build_seasonal_profile(self, points: Sequence[WorkloadDataPoint]) -> list[SeasonalProfile]:
        return build_seasonal_profile(points)
