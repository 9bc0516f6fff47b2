"""Household balance alerts, weekly digests, per-member trend reports and notification payloads.

Messages are phrased to describe the situation, never to blame a member.
Each message kind has a few interchangeable templates; the first one is used
unless a ``random.Random`` is supplied to vary the wording.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Mapping, Optional, Sequence

from loadshare.domain.constraints import AlertConfig, validate_alert_config
from loadshare.domain.models import HistoricalLoadEntry, LoadTrend
from loadshare.services.distribution_service import (
    _SEVERITY_RANK,
    AlertSeverity,
    LoadAlert,
    LoadAlertType,
    LoadRecommendation,
    RecommendationType,
    UserLoadSummary,
)
from loadshare.services.history_service import DEFAULT_HISTORY_CONFIG, load_trend
from loadshare.utils.clock import Clock, SystemClock, ensure_utc
from loadshare.utils.config import Settings, get_settings
from loadshare.utils.logger import get_logger


logger = get_logger(__name__)

DEFAULT_ALERT_CONFIG = AlertConfig()

BALANCED_SCORE = 70
WARNING_SCORE = 40
IMBALANCE_SEVERITY_THRESHOLDS = (60, 70, 80)
OVERLOAD_SEVERITY_THRESHOLDS = (80, 90, 100)
FATIGUE_SEVERITY_THRESHOLDS = (60, 70, 85)
FATIGUE_ALERT_LEVEL = 60
TREND_FATIGUE_LEVEL = 40
INACTIVE_SHARE = 20
REASSIGN_SPREAD = 20
DIGEST_TREND_MARGIN = 5
TREND_MAGNITUDE_THRESHOLD = 15
HIGH_WEEKLY_LOAD = 15
CRITICAL_PROJECTED_LOAD = 25


class BalanceAlertValidationError(ValueError):
    """Raised when balance alert inputs are invalid."""


class BalanceStatusLevel(StrEnum):
    BALANCED = "balanced"
    WARNING = "warning"
    CRITICAL = "critical"


class DigestTrend(StrEnum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class RiskLevel(StrEnum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


class NotificationType(StrEnum):
    ALERT = "alert"
    DIGEST = "digest"
    RECOMMENDATION = "recommendation"


POSITIVE_MESSAGES: dict[str, tuple[str, ...]] = {
    "balanced": (
        "The household load is well shared this week!",
        "Great teamwork on keeping things balanced.",
        "Your household is running in harmony.",
    ),
    "improving": (
        "The balance is improving, keep it up!",
        "Nice progress towards a fairer split.",
        "The recent adjustments are paying off.",
    ),
    "stable": (
        "Things are holding steady.",
        "No major change to report.",
    ),
}

ALERT_MESSAGES: dict[LoadAlertType, dict[AlertSeverity, tuple[str, ...]]] = {
    LoadAlertType.IMBALANCE: {
        AlertSeverity.LOW: (
            "A small adjustment could improve the balance.",
            "Consider sharing a few tasks differently.",
        ),
        AlertSeverity.MEDIUM: (
            "The split deserves attention to avoid fatigue.",
            "A few adjustments could help share things out.",
        ),
        AlertSeverity.HIGH: (
            "The load looks concentrated; rebalancing would help.",
            "It would be good to redistribute some responsibilities.",
        ),
        AlertSeverity.CRITICAL: (
            "The load is very unevenly shared right now.",
            "Rebalancing soon is recommended for everyone's wellbeing.",
        ),
    },
    LoadAlertType.OVERLOAD: {
        AlertSeverity.LOW: ("{user_name} has a high but manageable load.",),
        AlertSeverity.MEDIUM: (
            "{user_name} is starting to carry a lot.",
            "Consider lightening {user_name}'s load.",
        ),
        AlertSeverity.HIGH: ("{user_name} is carrying a heavy load; some support would be welcome.",),
        AlertSeverity.CRITICAL: ("{user_name} is overloaded; a break or some support is needed.",),
    },
    LoadAlertType.FATIGUE: {
        AlertSeverity.LOW: ("{user_name} shows slight signs of fatigue.",),
        AlertSeverity.MEDIUM: ("{user_name} seems tired; some rest would help.",),
        AlertSeverity.HIGH: ("{user_name} is building up fatigue; time to look after yourself.",),
        AlertSeverity.CRITICAL: ("{user_name} needs rest; wellbeing comes first.",),
    },
    LoadAlertType.INACTIVITY: {
        AlertSeverity.LOW: ("{user_name} has been less active lately.",),
        AlertSeverity.MEDIUM: ("{user_name} could pitch in more if available.",),
        AlertSeverity.HIGH: ("{user_name} has not taken part for a while.",),
        AlertSeverity.CRITICAL: ("{user_name} seems to be away; is everything ok?",),
    },
    LoadAlertType.TREND: {
        AlertSeverity.LOW: ("The trend is worth a light watch.",),
        AlertSeverity.MEDIUM: ("The trend deserves attention.",),
        AlertSeverity.HIGH: ("The trend is concerning.",),
        AlertSeverity.CRITICAL: ("The trend calls for action.",),
    },
    LoadAlertType.UNDERLOAD: {
        AlertSeverity.LOW: ("{user_name} has a light load.",),
        AlertSeverity.MEDIUM: ("{user_name} could take on more if available.",),
        AlertSeverity.HIGH: ("{user_name} has very few tasks assigned.",),
        AlertSeverity.CRITICAL: ("{user_name} has almost no tasks.",),
    },
}

TREND_DIRECTION_MESSAGES: dict[LoadTrend, tuple[str, ...]] = {
    LoadTrend.INCREASING: ("{user_name}'s load is rising; let's keep an eye on it together.",),
    LoadTrend.DECREASING: ("{user_name} is easing off; taking care of yourself matters.",),
}

RECOMMENDATION_MESSAGES: dict[RecommendationType, tuple[str, ...]] = {
    RecommendationType.REASSIGN: (
        "Moving a few tasks from {from_user} to {to_user} would improve the balance.",
        "Some tasks could be shared with {to_user}.",
    ),
    RecommendationType.REST: (
        "A rest period for {from_user} would be beneficial.",
        "Consider planning some recovery time for {from_user}.",
    ),
    RecommendationType.BALANCE: (
        "Reviewing how recurring tasks are shared together could help.",
        "A household chat about sharing responsibilities would be useful.",
    ),
    RecommendationType.SHARE: (
        "Some tasks could be done in pairs.",
        "Sharing some responsibilities would lower individual load.",
    ),
    RecommendationType.DELAY: ("Postponing a few non-urgent tasks would give everyone some breathing room.",),
}

ALERT_TITLES: dict[LoadAlertType, str] = {
    LoadAlertType.IMBALANCE: "Unbalanced split",
    LoadAlertType.OVERLOAD: "Overload detected",
    LoadAlertType.UNDERLOAD: "Low contribution",
    LoadAlertType.FATIGUE: "Fatigue detected",
    LoadAlertType.TREND: "Load trend",
    LoadAlertType.INACTIVITY: "Inactivity period",
}

RECOMMENDATION_TITLES: dict[RecommendationType, str] = {
    RecommendationType.REASSIGN: "Rebalancing suggestion",
    RecommendationType.REST: "Time to rest",
    RecommendationType.BALANCE: "Review the split",
    RecommendationType.SHARE: "Share the load",
    RecommendationType.DELAY: "Ease the schedule",
}


@dataclass(frozen=True)
class LoadExtreme:
    user_id: str
    user_name: str
    percentage: int


@dataclass(frozen=True)
class BalanceStatus:
    household_id: str
    status: BalanceStatusLevel
    balance_score: int
    imbalance_percentage: int
    alerts: list[LoadAlert]
    recommendations: list[LoadRecommendation]
    messages: list[str]
    generated_at: datetime
    most_loaded: Optional[LoadExtreme] = None
    least_loaded: Optional[LoadExtreme] = None

    def to_dict(self) -> dict[str, object]:
        def extreme(value: Optional[LoadExtreme]) -> Optional[dict[str, object]]:
            if value is None:
                return None
            return {"user_id": value.user_id, "user_name": value.user_name, "percentage": value.percentage}

        return {
            "household_id": self.household_id,
            "status": str(self.status),
            "balance_score": self.balance_score,
            "imbalance_percentage": self.imbalance_percentage,
            "most_loaded": extreme(self.most_loaded),
            "least_loaded": extreme(self.least_loaded),
            "alerts": [
                {
                    "type": str(alert.type),
                    "severity": str(alert.severity),
                    "message": alert.message,
                    "metric": alert.metric,
                    "user_id": alert.user_id,
                    "user_name": alert.user_name,
                }
                for alert in self.alerts
            ],
            "recommendations": [
                {
                    "type": str(recommendation.type),
                    "priority": recommendation.priority,
                    "description": recommendation.description,
                    "expected_improvement": recommendation.expected_improvement,
                    "from_user": recommendation.from_user,
                    "to_user": recommendation.to_user,
                }
                for recommendation in self.recommendations
            ],
            "messages": list(self.messages),
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass(frozen=True)
class DigestSummary:
    total_tasks: int
    completed_tasks: int
    completion_rate: int
    balance_score: int
    trend: DigestTrend


@dataclass(frozen=True)
class MemberWeekStats:
    user_id: str
    user_name: str
    tasks_assigned: int
    tasks_completed: int
    load_percentage: int
    trend: LoadTrend
    highlights: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class WeeklyDigest:
    household_id: str
    week_number: int
    year: int
    period_start: datetime
    period_end: datetime
    summary: DigestSummary
    member_stats: list[MemberWeekStats]
    alerts: list[str]
    positive_notes: list[str]
    suggestions: list[str]
    generated_at: datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "household_id": self.household_id,
            "week_number": self.week_number,
            "year": self.year,
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "summary": {
                "total_tasks": self.summary.total_tasks,
                "completed_tasks": self.summary.completed_tasks,
                "completion_rate": self.summary.completion_rate,
                "balance_score": self.summary.balance_score,
                "trend": str(self.summary.trend),
            },
            "member_stats": [
                {
                    "user_id": stats.user_id,
                    "user_name": stats.user_name,
                    "tasks_assigned": stats.tasks_assigned,
                    "tasks_completed": stats.tasks_completed,
                    "load_percentage": stats.load_percentage,
                    "trend": str(stats.trend),
                    "highlights": list(stats.highlights),
                }
                for stats in self.member_stats
            ],
            "alerts": list(self.alerts),
            "positive_notes": list(self.positive_notes),
            "suggestions": list(self.suggestions),
            "generated_at": self.generated_at.isoformat(),
        }


@dataclass(frozen=True)
class TrendAnalysis:
    user_id: str
    user_name: str
    period_start: datetime
    period_end: datetime
    period_days: int
    direction: LoadTrend
    magnitude: int
    weekly_average: float
    previous_weekly_average: float
    projected_load: float
    risk_level: RiskLevel
    narrative: str


@dataclass(frozen=True)
class NotificationPayload:
    type: NotificationType
    title: str
    body: str
    severity: Optional[AlertSeverity] = None
    action_url: Optional[str] = None
    data: dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "type": str(self.type),
            "title": self.title,
            "body": self.body,
            "severity": str(self.severity) if self.severity is not None else None,
            "action_url": self.action_url,
            "data": dict(self.data),
        }


def alert_config_from_settings(settings: Settings) -> AlertConfig:
    config = AlertConfig(
        imbalance_threshold=settings.balance_imbalance_threshold,
        overload_threshold=settings.balance_overload_threshold,
        trend_window_days=settings.balance_trend_window_days,
        reference_weekly_load=settings.balance_reference_weekly_load,
        enable_weekly_digest=settings.balance_enable_weekly_digest,
        enable_real_time_alerts=settings.balance_enable_real_time_alerts,
        suppress_positive_messages=settings.balance_suppress_positive_messages,
    )
    validate_alert_config(config)
    return config


def _pick(templates: Sequence[str], rng: Optional[random.Random]) -> str:
    if rng is None:
        return templates[0]
    return rng.choice(templates)


def severity_for(value: float, thresholds: Sequence[float]) -> AlertSeverity:
    medium, high, critical = thresholds
    if value >= critical:
        return AlertSeverity.CRITICAL
    if value >= high:
        return AlertSeverity.HIGH
    if value >= medium:
        return AlertSeverity.MEDIUM
    return AlertSeverity.LOW


def generate_alert_message(
    alert_type: LoadAlertType,
    severity: AlertSeverity,
    user_name: str = "",
    rng: Optional[random.Random] = None,
) -> str:
    templates = ALERT_MESSAGES.get(alert_type, {}).get(severity)
    if not templates:
        return f"{alert_type} alert: {severity}"
    return _pick(templates, rng).format(user_name=user_name)


def generate_positive_message(kind: str, rng: Optional[random.Random] = None) -> str:
    if kind not in POSITIVE_MESSAGES:
        raise BalanceAlertValidationError(f"unknown positive message kind: {kind}")
    return _pick(POSITIVE_MESSAGES[kind], rng)


def generate_recommendation_message(
    recommendation_type: RecommendationType,
    from_user: Optional[str] = None,
    to_user: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> str:
    return _pick(RECOMMENDATION_MESSAGES[recommendation_type], rng).format(
        from_user=from_user or "a member",
        to_user=to_user or "another member",
    )


def share_balance_score(percentages: Sequence[float]) -> int:
    """100 minus twice the mean distance of each share from an even split."""
    if not percentages:
        return 100
    ideal = 100 / len(percentages)
    average_deviation = sum(abs(value - ideal) for value in percentages) / len(percentages)
    return max(0, round(100 - average_deviation * 2))


def _status_level(score: int) -> BalanceStatusLevel:
    if score >= BALANCED_SCORE:
        return BalanceStatusLevel.BALANCED
    if score >= WARNING_SCORE:
        return BalanceStatusLevel.WARNING
    return BalanceStatusLevel.CRITICAL


def _user_alert(alert_type: LoadAlertType, severity: AlertSeverity, user: UserLoadSummary, metric: float, message: str):
    return LoadAlert(
        type=alert_type,
        severity=severity,
        message=message,
        metric=metric,
        user_id=user.user_id,
        user_name=user.user_name,
    )


def analyze_balance_status(
    household_id: str,
    users: Sequence[UserLoadSummary],
    config: AlertConfig = DEFAULT_ALERT_CONFIG,
    *,
    now: datetime,
    max_loads: Optional[Mapping[str, float]] = None,
    rng: Optional[random.Random] = None,
) -> BalanceStatus:
    """Classify the household split and collect the alerts and recommendations it calls for.

    Overload is measured against ``max_loads[user_id]`` when given and
    ``config.reference_weekly_load`` otherwise.
    """
    now = ensure_utc(now)
    if not users:
        return BalanceStatus(
            household_id=household_id,
            status=BalanceStatusLevel.BALANCED,
            balance_score=100,
            imbalance_percentage=0,
            alerts=[],
            recommendations=[],
            messages=["No active members in the household."],
            generated_at=now,
        )

    max_loads = max_loads or {}
    by_share = sorted(users, key=lambda user: user.balance_percentage, reverse=True)
    most_loaded, least_loaded = by_share[0], by_share[-1]
    spread = most_loaded.balance_percentage - least_loaded.balance_percentage

    score = share_balance_score([user.balance_percentage for user in users])
    status = _status_level(score)

    messages: list[str] = []
    if status == BalanceStatusLevel.BALANCED and not config.suppress_positive_messages:
        messages.append(generate_positive_message("balanced", rng))

    alerts: list[LoadAlert] = []
    if len(users) > 1 and most_loaded.balance_percentage > config.imbalance_threshold:
        severity = severity_for(most_loaded.balance_percentage, IMBALANCE_SEVERITY_THRESHOLDS)
        alerts.append(
            _user_alert(
                LoadAlertType.IMBALANCE,
                severity,
                most_loaded,
                most_loaded.balance_percentage,
                generate_alert_message(LoadAlertType.IMBALANCE, severity, most_loaded.user_name, rng),
            )
        )

    for user in users:
        capacity = max_loads.get(user.user_id, config.reference_weekly_load)
        load_ratio = user.current_load / capacity * 100 if capacity > 0 else 0.0
        if load_ratio >= config.overload_threshold:
            severity = severity_for(load_ratio, OVERLOAD_SEVERITY_THRESHOLDS)
            alerts.append(
                _user_alert(
                    LoadAlertType.OVERLOAD,
                    severity,
                    user,
                    round(load_ratio, 1),
                    generate_alert_message(LoadAlertType.OVERLOAD, severity, user.user_name, rng),
                )
            )

        if user.fatigue_level >= FATIGUE_ALERT_LEVEL:
            severity = severity_for(user.fatigue_level, FATIGUE_SEVERITY_THRESHOLDS)
            alerts.append(
                _user_alert(
                    LoadAlertType.FATIGUE,
                    severity,
                    user,
                    user.fatigue_level,
                    generate_alert_message(LoadAlertType.FATIGUE, severity, user.user_name, rng),
                )
            )

        if user.load_trend == LoadTrend.INCREASING and user.fatigue_level > TREND_FATIGUE_LEVEL:
            alerts.append(
                _user_alert(
                    LoadAlertType.TREND,
                    AlertSeverity.MEDIUM,
                    user,
                    user.fatigue_level,
                    _pick(TREND_DIRECTION_MESSAGES[LoadTrend.INCREASING], rng).format(user_name=user.user_name),
                )
            )

        if len(users) > 1 and user.balance_percentage < INACTIVE_SHARE and user.completed_tasks == 0:
            alerts.append(
                _user_alert(
                    LoadAlertType.INACTIVITY,
                    AlertSeverity.LOW,
                    user,
                    user.balance_percentage,
                    generate_alert_message(LoadAlertType.INACTIVITY, AlertSeverity.LOW, user.user_name, rng),
                )
            )

    recommendations: list[LoadRecommendation] = []
    if status != BalanceStatusLevel.BALANCED and spread > REASSIGN_SPREAD:
        recommendations.append(
            LoadRecommendation(
                type=RecommendationType.REASSIGN,
                priority=8,
                description=generate_recommendation_message(
                    RecommendationType.REASSIGN, most_loaded.user_name, least_loaded.user_name, rng
                ),
                expected_improvement=round(spread / 3),
                from_user=most_loaded.user_id,
                to_user=least_loaded.user_id,
            )
        )
    for user in users:
        if user.fatigue_level >= FATIGUE_ALERT_LEVEL:
            recommendations.append(
                LoadRecommendation(
                    type=RecommendationType.REST,
                    priority=10 if user.fatigue_level >= 80 else 7,
                    description=generate_recommendation_message(RecommendationType.REST, user.user_name, rng=rng),
                    expected_improvement=20,
                    from_user=user.user_id,
                )
            )

    alerts.sort(key=lambda alert: _SEVERITY_RANK[alert.severity], reverse=True)
    recommendations.sort(key=lambda recommendation: recommendation.priority, reverse=True)

    critical_count = sum(1 for alert in alerts if alert.severity == AlertSeverity.CRITICAL)
    if critical_count and status != BalanceStatusLevel.BALANCED:
        messages.append(f"{critical_count} item(s) need immediate attention.")

    return BalanceStatus(
        household_id=household_id,
        status=status,
        balance_score=score,
        imbalance_percentage=spread,
        alerts=alerts,
        recommendations=recommendations,
        messages=messages,
        generated_at=now,
        most_loaded=LoadExtreme(most_loaded.user_id, most_loaded.user_name, most_loaded.balance_percentage),
        least_loaded=LoadExtreme(least_loaded.user_id, least_loaded.user_name, least_loaded.balance_percentage),
    )


def _user_totals(entries: Sequence[HistoricalLoadEntry], user_ids: Sequence[str]) -> dict[str, float]:
    totals = {user_id: 0.0 for user_id in user_ids}
    for entry in entries:
        if entry.user_id in totals:
            totals[entry.user_id] += entry.weight
    return totals


def week_balance_score(entries: Sequence[HistoricalLoadEntry], users: Sequence[UserLoadSummary]) -> int:
    """Share-based balance of one week's entries; 100 for a single member or an empty week."""
    if len(users) <= 1:
        return 100
    totals = _user_totals(entries, [user.user_id for user in users])
    total = sum(totals.values())
    if total == 0:
        return 100
    return share_balance_score([load / total * 100 for load in totals.values()])


def generate_weekly_digest(
    household_id: str,
    users: Sequence[UserLoadSummary],
    history: Sequence[HistoricalLoadEntry],
    week_start: datetime,
    week_end: datetime,
    *,
    now: datetime,
    trend_window_days: int = DEFAULT_HISTORY_CONFIG.recent_window_days,
    rng: Optional[random.Random] = None,
) -> WeeklyDigest:
    week_start = ensure_utc(week_start)
    week_end = ensure_utc(week_end)
    if week_end < week_start:
        raise BalanceAlertValidationError("week_end must not be before week_start")
    now = ensure_utc(now)
    year, week_number, _ = week_start.isocalendar()

    week_entries = [entry for entry in history if week_start <= entry.date <= week_end]
    total_tasks = len(week_entries)
    completed_tasks = sum(1 for entry in week_entries if entry.was_completed)
    completion_rate = round(completed_tasks / total_tasks * 100) if total_tasks else 0

    score = week_balance_score(week_entries, users)
    previous_start = week_start - timedelta(days=7)
    previous_entries = [entry for entry in history if previous_start <= entry.date < week_start]
    previous_score = week_balance_score(previous_entries, users)
    if score > previous_score + DIGEST_TREND_MARGIN:
        trend = DigestTrend.IMPROVING
    elif score < previous_score - DIGEST_TREND_MARGIN:
        trend = DigestTrend.DECLINING
    else:
        trend = DigestTrend.STABLE

    totals = _user_totals(week_entries, [user.user_id for user in users])
    total_load = sum(totals.values())
    ideal = 100 / len(users) if users else 0

    member_stats: list[MemberWeekStats] = []
    for user in users:
        user_entries = [entry for entry in week_entries if entry.user_id == user.user_id]
        assigned = len(user_entries)
        completed = sum(1 for entry in user_entries if entry.was_completed)
        load_percentage = round(totals[user.user_id] / total_load * 100) if total_load > 0 else 0

        highlights: list[str] = []
        if completed > 5:
            highlights.append(f"{completed} tasks completed")
        if load_percentage > ideal + 10:
            highlights.append("Heavier load this week")
        elif load_percentage < ideal - 10 and assigned > 0:
            highlights.append("Lighter week")

        member_stats.append(
            MemberWeekStats(
                user_id=user.user_id,
                user_name=user.user_name,
                tasks_assigned=assigned,
                tasks_completed=completed,
                load_percentage=load_percentage,
                trend=load_trend(history, user.user_id, now=now, window_days=trend_window_days),
                highlights=highlights,
            )
        )

    alerts: list[str] = []
    if score < 50:
        alerts.append("The split was uneven this week.")
    if total_tasks and completion_rate < 70:
        alerts.append(f"Low completion rate ({completion_rate}%); maybe too many tasks?")
    for stats in member_stats:
        if stats.load_percentage > 60:
            alerts.append(f"{stats.user_name} carried a heavy load ({stats.load_percentage}%).")

    positive_notes: list[str] = []
    if score >= BALANCED_SCORE:
        positive_notes.append(generate_positive_message("balanced", rng))
    if trend == DigestTrend.IMPROVING:
        positive_notes.append(generate_positive_message("improving", rng))
    if completion_rate >= 90:
        positive_notes.append("Excellent completion rate this week!")
    contributors = sorted(
        (stats for stats in member_stats if stats.tasks_completed >= 3),
        key=lambda stats: stats.tasks_completed,
        reverse=True,
    )
    if contributors:
        top = contributors[0]
        positive_notes.append(f"Well done {top.user_name} for {top.tasks_completed} completed tasks.")

    suggestions: list[str] = []
    if trend == DigestTrend.DECLINING:
        suggestions.append("Take some time to talk about how tasks are shared.")
    if score < 60:
        suggestions.append(generate_recommendation_message(RecommendationType.BALANCE, rng=rng))

    return WeeklyDigest(
        household_id=household_id,
        week_number=week_number,
        year=year,
        period_start=week_start,
        period_end=week_end,
        summary=DigestSummary(
            total_tasks=total_tasks,
            completed_tasks=completed_tasks,
            completion_rate=completion_rate,
            balance_score=score,
            trend=trend,
        ),
        member_stats=member_stats,
        alerts=alerts,
        positive_notes=positive_notes,
        suggestions=suggestions,
        generated_at=now,
    )


def analyze_load_trend(
    user_id: str,
    user_name: str,
    history: Sequence[HistoricalLoadEntry],
    window_days: int = DEFAULT_ALERT_CONFIG.trend_window_days,
    *,
    now: datetime,
) -> TrendAnalysis:
    """Compare this window's weekly load with the previous window and project it forward."""
    if window_days <= 0:
        raise BalanceAlertValidationError("window_days must be > 0")
    now = ensure_utc(now)
    window_start = now - timedelta(days=window_days)
    previous_start = window_start - timedelta(days=window_days)

    current_total = 0.0
    previous_total = 0.0
    for entry in history:
        if entry.user_id != user_id:
            continue
        if entry.date >= window_start:
            current_total += entry.weight
        elif entry.date >= previous_start:
            previous_total += entry.weight

    weekly_average = current_total / window_days * 7
    previous_weekly_average = previous_total / window_days * 7

    magnitude = 0
    if previous_weekly_average > 0:
        magnitude = round((weekly_average - previous_weekly_average) / previous_weekly_average * 100)
        if magnitude > TREND_MAGNITUDE_THRESHOLD:
            direction = LoadTrend.INCREASING
        elif magnitude < -TREND_MAGNITUDE_THRESHOLD:
            direction = LoadTrend.DECREASING
        else:
            direction = LoadTrend.STABLE
    else:
        direction = LoadTrend.INCREASING if weekly_average > 0 else LoadTrend.STABLE

    projected_load = max(0.0, weekly_average * (1 + magnitude / 100))

    if direction == LoadTrend.INCREASING and weekly_average > HIGH_WEEKLY_LOAD:
        risk_level = RiskLevel.CRITICAL if projected_load > CRITICAL_PROJECTED_LOAD else RiskLevel.HIGH
    elif direction == LoadTrend.INCREASING:
        risk_level = RiskLevel.MODERATE
    else:
        risk_level = RiskLevel.LOW

    if direction == LoadTrend.INCREASING:
        narrative = f"{user_name}'s load is rising (+{abs(magnitude)}%). "
        if risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            narrative += "Close attention is recommended."
        else:
            narrative += "Worth watching over the next few days."
    elif direction == LoadTrend.DECREASING:
        narrative = f"{user_name} is easing off (-{abs(magnitude)}%). Taking care of yourself matters."
    else:
        narrative = f"{user_name}'s load is steady."
        if weekly_average > HIGH_WEEKLY_LOAD:
            narrative += " Remember to keep a sustainable pace."

    return TrendAnalysis(
        user_id=user_id,
        user_name=user_name,
        period_start=window_start,
        period_end=now,
        period_days=window_days,
        direction=direction,
        magnitude=abs(magnitude),
        weekly_average=round(weekly_average, 1),
        previous_weekly_average=round(previous_weekly_average, 1),
        projected_load=round(projected_load, 1),
        risk_level=risk_level,
        narrative=narrative.strip(),
    )


def create_alert_notification(alert: LoadAlert, household_id: str) -> NotificationPayload:
    return NotificationPayload(
        type=NotificationType.ALERT,
        title=ALERT_TITLES.get(alert.type, "Household alert"),
        body=alert.message,
        severity=alert.severity,
        action_url=f"/household/{household_id}/distribution",
        data={"alert_type": str(alert.type), "user_id": alert.user_id, "metric": alert.metric},
    )


def create_digest_notification(digest: WeeklyDigest) -> NotificationPayload:
    return NotificationPayload(
        type=NotificationType.DIGEST,
        title=f"Week {digest.week_number} summary",
        body=(
            f"Balance score: {digest.summary.balance_score}/100. "
            f"{digest.summary.completed_tasks} tasks completed."
        ),
        action_url=f"/household/{digest.household_id}/reports",
        data={
            "week_number": digest.week_number,
            "year": digest.year,
            "balance_score": digest.summary.balance_score,
            "completion_rate": digest.summary.completion_rate,
        },
    )


def create_recommendation_notification(
    recommendation: LoadRecommendation,
    household_id: str,
) -> NotificationPayload:
    return NotificationPayload(
        type=NotificationType.RECOMMENDATION,
        title=RECOMMENDATION_TITLES.get(recommendation.type, "Suggestion"),
        body=recommendation.description,
        action_url=f"/household/{household_id}/distribution",
        data={
            "recommendation_type": str(recommendation.type),
            "priority": recommendation.priority,
            "from_user": recommendation.from_user,
            "to_user": recommendation.to_user,
            "expected_improvement": recommendation.expected_improvement,
        },
    )


class BalanceAlertService:
    """Balance checks and notifications bound to settings and a clock."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock or SystemClock()
        self._rng = rng
        self._config = alert_config_from_settings(self._settings)

    @property
    def config(self) -> AlertConfig:
        return self._config

    def analyze_balance_status(
        self,
        household_id: str,
        users: Sequence[UserLoadSummary],
        max_loads: Optional[Mapping[str, float]] = None,
    ) -> BalanceStatus:
        status = analyze_balance_status(
            household_id,
            users,
            self._config,
            now=self._clock.now(),
            max_loads=max_loads,
            rng=self._rng,
        )
        logger.info(
            "Balance status analyzed | household_id=%s | status=%s | score=%s | alerts=%s | recommendations=%s",
            household_id,
            status.status,
            status.balance_score,
            len(status.alerts),
            len(status.recommendations),
        )
        return status

    def generate_weekly_digest(
        self,
        household_id: str,
        users: Sequence[UserLoadSummary],
        history: Sequence[HistoricalLoadEntry],
        week_start: datetime,
        week_end: datetime,
    ) -> WeeklyDigest:
        digest = generate_weekly_digest(
            household_id,
            users,
            history,
            week_start,
            week_end,
            now=self._clock.now(),
            trend_window_days=self._settings.history_recent_window_days,
            rng=self._rng,
        )
        logger.info(
            "Weekly digest generated | household_id=%s | week=%s-%s | score=%s | trend=%s",
            household_id,
            digest.year,
            digest.week_number,
            digest.summary.balance_score,
            digest.summary.trend,
        )
        return digest

    def analyze_load_trend(
        self,
        user_id: str,
        user_name: str,
        history: Sequence[HistoricalLoadEntry],
    ) -> TrendAnalysis:
        analysis = analyze_load_trend(
            user_id,
            user_name,
            history,
            self._config.trend_window_days,
            now=self._clock.now(),
        )
        if analysis.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            logger.warning(
                "Rising load | user_id=%s | weekly_average=%.1f | projected=%.1f | risk=%s",
                user_id,
                analysis.weekly_average,
                analysis.projected_load,
                analysis.risk_level,
            )
        return analysis

    def alert_notifications(self, status: BalanceStatus) -> list[NotificationPayload]:
        if not self._config.enable_real_time_alerts:
            return []
        return [create_alert_notification(alert, status.household_id) for alert in status.alerts]

    def recommendation_notifications(self, status: BalanceStatus) -> list[NotificationPayload]:
        if not self._config.enable_real_time_alerts:
            return []
        return [
            create_recommendation_notification(recommendation, status.household_id)
            for recommendation in status.recommendations
        ]

    def digest_notification(self, digest: WeeklyDigest) -> Optional[NotificationPayload]:
        if not self._config.enable_weekly_digest:
            logger.debug("Weekly digest notification disabled | household_id=%s", digest.household_id)
            return None
        return create_digest_notification(digest)
