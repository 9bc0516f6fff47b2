"""Household load dashboard: per-member summaries, alerts and recommendations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Mapping, Optional, Sequence

from loadshare.domain.constraints import HistoryConfig
from loadshare.domain.models import HistoricalLoadEntry, LoadTrend, Member, Task
from loadshare.services.fairness_service import balance_score, gini_coefficient
from loadshare.services.history_service import (
    DEFAULT_HISTORY_CONFIG,
    category_load,
    decayed_total,
    fatigue_level,
    history_config_from_settings,
    load_trend,
)
from loadshare.services.weight_service import calculate_task_weight
from loadshare.utils.clock import Clock, SystemClock, ensure_utc
from loadshare.utils.config import Settings, get_settings
from loadshare.utils.logger import get_logger


logger = get_logger(__name__)

WEEK_DAYS = 7
MONTH_DAYS = 30


class AlertSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class LoadAlertType(StrEnum):
    IMBALANCE = "imbalance"
    OVERLOAD = "overload"
    UNDERLOAD = "underload"
    FATIGUE = "fatigue"
    TREND = "trend"
    INACTIVITY = "inactivity"


class RecommendationType(StrEnum):
    REASSIGN = "reassign"
    REST = "rest"
    BALANCE = "balance"
    SHARE = "share"
    DELAY = "delay"


_SEVERITY_RANK = {
    AlertSeverity.CRITICAL: 4,
    AlertSeverity.HIGH: 3,
    AlertSeverity.MEDIUM: 2,
    AlertSeverity.LOW: 1,
}


@dataclass(frozen=True)
class UserLoadSummary:
    user_id: str
    user_name: str
    current_load: float
    weekly_load: float
    monthly_load: float
    load_trend: LoadTrend
    fatigue_level: int
    balance_percentage: int
    pending_tasks: int
    completed_tasks: int
    category_breakdown: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class LoadAlert:
    type: LoadAlertType
    severity: AlertSeverity
    message: str
    metric: float
    user_id: Optional[str] = None
    user_name: Optional[str] = None


@dataclass(frozen=True)
class LoadRecommendation:
    type: RecommendationType
    priority: int
    description: str
    expected_improvement: int
    from_user: Optional[str] = None
    to_user: Optional[str] = None


@dataclass(frozen=True)
class LoadDistribution:
    household_id: str
    calculated_at: datetime
    total_weight: float
    users: list[UserLoadSummary]
    balance_score: int
    gini_coefficient: float
    alerts: list[LoadAlert]
    recommendations: list[LoadRecommendation]

    def to_dict(self) -> dict[str, object]:
        return {
            "household_id": self.household_id,
            "calculated_at": self.calculated_at.isoformat(),
            "total_weight": self.total_weight,
            "users": [
                {
                    "user_id": user.user_id,
                    "user_name": user.user_name,
                    "current_load": user.current_load,
                    "weekly_load": user.weekly_load,
                    "monthly_load": user.monthly_load,
                    "load_trend": str(user.load_trend),
                    "fatigue_level": user.fatigue_level,
                    "balance_percentage": user.balance_percentage,
                    "pending_tasks": user.pending_tasks,
                    "completed_tasks": user.completed_tasks,
                    "category_breakdown": dict(user.category_breakdown),
                }
                for user in self.users
            ],
            "balance_score": self.balance_score,
            "gini_coefficient": self.gini_coefficient,
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
        }


def fatigue_level_label(level: float) -> str:
    if level <= 20:
        return "Rested"
    if level <= 40:
        return "Normal"
    if level <= 60:
        return "Tired"
    if level <= 80:
        return "Exhausted"
    return "Burnout risk"


def balance_status_label(score: float) -> str:
    if score >= 80:
        return "Balanced"
    if score >= 60:
        return "Acceptable"
    if score >= 40:
        return "Unbalanced"
    return "Critical"


def pending_weight(tasks: Sequence[Task], *, now: datetime) -> float:
    return sum(calculate_task_weight(task, now=now).adjusted_weight for task in tasks)


def build_user_load_summary(
    member: Member,
    pending_tasks: Sequence[Task],
    history: Sequence[HistoricalLoadEntry],
    total_household_load: float,
    *,
    now: datetime,
    last_rest_day: Optional[datetime] = None,
    config: HistoryConfig = DEFAULT_HISTORY_CONFIG,
) -> UserLoadSummary:
    now = ensure_utc(now)
    week_ago = now - timedelta(days=WEEK_DAYS)
    month_ago = now - timedelta(days=MONTH_DAYS)

    current_load = pending_weight(pending_tasks, now=now)
    user_history = [entry for entry in history if entry.user_id == member.id]
    weekly_load = sum(entry.weight for entry in user_history if entry.date >= week_ago)
    monthly_load = sum(entry.weight for entry in user_history if entry.date >= month_ago)

    if total_household_load > 0:
        balance_percentage = round((current_load + weekly_load) / total_household_load * 100)
    else:
        balance_percentage = 0

    return UserLoadSummary(
        user_id=member.id,
        user_name=member.display_name,
        current_load=round(current_load, 1),
        weekly_load=round(weekly_load, 1),
        monthly_load=round(monthly_load, 1),
        load_trend=load_trend(user_history, member.id, now=now, window_days=config.recent_window_days),
        fatigue_level=fatigue_level(user_history, member.id, now=now, last_rest_day=last_rest_day, config=config),
        balance_percentage=balance_percentage,
        pending_tasks=len(pending_tasks),
        completed_tasks=sum(1 for entry in user_history if entry.was_completed),
        category_breakdown=category_load(user_history, member.id, now=now, config=config),
    )


def generate_load_alerts(users: Sequence[UserLoadSummary], score: int) -> list[LoadAlert]:
    alerts: list[LoadAlert] = []

    if score < 40:
        alerts.append(
            LoadAlert(
                type=LoadAlertType.IMBALANCE,
                severity=AlertSeverity.CRITICAL,
                message=f"Critical imbalance: score {score}/100",
                metric=score,
            )
        )
    elif score < 60:
        alerts.append(
            LoadAlert(
                type=LoadAlertType.IMBALANCE,
                severity=AlertSeverity.HIGH,
                message=f"Significant imbalance: score {score}/100",
                metric=score,
            )
        )
    elif score < 80:
        alerts.append(
            LoadAlert(
                type=LoadAlertType.IMBALANCE,
                severity=AlertSeverity.MEDIUM,
                message=f"Slight imbalance: score {score}/100",
                metric=score,
            )
        )

    for user in users:
        if user.fatigue_level >= 80:
            alerts.append(
                LoadAlert(
                    type=LoadAlertType.FATIGUE,
                    severity=AlertSeverity.CRITICAL,
                    message=f"{user.user_name} is at risk of overload (fatigue: {user.fatigue_level}%)",
                    metric=user.fatigue_level,
                    user_id=user.user_id,
                    user_name=user.user_name,
                )
            )
        elif user.fatigue_level >= 60:
            alerts.append(
                LoadAlert(
                    type=LoadAlertType.FATIGUE,
                    severity=AlertSeverity.HIGH,
                    message=f"{user.user_name} shows signs of fatigue ({user.fatigue_level}%)",
                    metric=user.fatigue_level,
                    user_id=user.user_id,
                    user_name=user.user_name,
                )
            )

        if user.balance_percentage > 60:
            alerts.append(
                LoadAlert(
                    type=LoadAlertType.OVERLOAD,
                    severity=AlertSeverity.HIGH if user.balance_percentage > 70 else AlertSeverity.MEDIUM,
                    message=f"{user.user_name} carries {user.balance_percentage}% of the total load",
                    metric=user.balance_percentage,
                    user_id=user.user_id,
                    user_name=user.user_name,
                )
            )

        if len(users) > 1 and user.balance_percentage < 30:
            alerts.append(
                LoadAlert(
                    type=LoadAlertType.UNDERLOAD,
                    severity=AlertSeverity.LOW,
                    message=f"{user.user_name} has a reduced load ({user.balance_percentage}%)",
                    metric=user.balance_percentage,
                    user_id=user.user_id,
                    user_name=user.user_name,
                )
            )

        if user.load_trend == LoadTrend.INCREASING and user.fatigue_level > 40:
            alerts.append(
                LoadAlert(
                    type=LoadAlertType.TREND,
                    severity=AlertSeverity.MEDIUM,
                    message=f"Rising load for {user.user_name}",
                    metric=user.fatigue_level,
                    user_id=user.user_id,
                    user_name=user.user_name,
                )
            )

    return sorted(alerts, key=lambda alert: _SEVERITY_RANK[alert.severity], reverse=True)


def generate_recommendations(
    users: Sequence[UserLoadSummary],
    alerts: Sequence[LoadAlert],
) -> list[LoadRecommendation]:
    if len(users) < 2:
        return []

    recommendations: list[LoadRecommendation] = []
    by_share = sorted(users, key=lambda user: user.balance_percentage, reverse=True)
    most_loaded, least_loaded = by_share[0], by_share[-1]
    spread = most_loaded.balance_percentage - least_loaded.balance_percentage

    if spread > 20:
        recommendations.append(
            LoadRecommendation(
                type=RecommendationType.REASSIGN,
                priority=8,
                description=f"Reassign some tasks from {most_loaded.user_name} to {least_loaded.user_name}",
                expected_improvement=round(spread / 3),
                from_user=most_loaded.user_id,
                to_user=least_loaded.user_id,
            )
        )

    for user in users:
        if user.fatigue_level >= 60:
            recommendations.append(
                LoadRecommendation(
                    type=RecommendationType.REST,
                    priority=10 if user.fatigue_level >= 80 else 7,
                    description=f"Plan a rest period for {user.user_name}",
                    expected_improvement=20,
                    from_user=user.user_id,
                )
            )

    if any(alert.type == LoadAlertType.IMBALANCE and alert.severity != AlertSeverity.LOW for alert in alerts):
        recommendations.append(
            LoadRecommendation(
                type=RecommendationType.BALANCE,
                priority=6,
                description="Review how recurring tasks are shared to improve fairness",
                expected_improvement=15,
            )
        )

    return sorted(recommendations, key=lambda recommendation: recommendation.priority, reverse=True)


def calculate_load_distribution(
    household_id: str,
    users: Sequence[Member],
    pending_tasks_by_user: Mapping[str, Sequence[Task]],
    history: Sequence[HistoricalLoadEntry],
    *,
    now: datetime,
    last_rest_days: Optional[Mapping[str, datetime]] = None,
    config: HistoryConfig = DEFAULT_HISTORY_CONFIG,
) -> LoadDistribution:
    now = ensure_utc(now)
    last_rest_days = last_rest_days or {}

    user_loads: list[float] = []
    for user in users:
        pending = pending_weight(pending_tasks_by_user.get(user.id, ()), now=now)
        user_loads.append(pending + decayed_total(history, user.id, now=now, config=config))
    total_weight = sum(user_loads)

    summaries = [
        build_user_load_summary(
            user,
            pending_tasks_by_user.get(user.id, ()),
            history,
            total_weight,
            now=now,
            last_rest_day=last_rest_days.get(user.id),
            config=config,
        )
        for user in users
    ]
    score = balance_score(user_loads)
    alerts = generate_load_alerts(summaries, score)

    return LoadDistribution(
        household_id=household_id,
        calculated_at=now,
        total_weight=round(total_weight, 1),
        users=summaries,
        balance_score=score,
        gini_coefficient=gini_coefficient(user_loads),
        alerts=alerts,
        recommendations=generate_recommendations(summaries, alerts),
    )


class LoadDistributionService:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock or SystemClock()
        self._config = history_config_from_settings(self._settings)

    def calculate_load_distribution(
        self,
        household_id: str,
        users: Sequence[Member],
        pending_tasks_by_user: Mapping[str, Sequence[Task]],
        history: Sequence[HistoricalLoadEntry],
        last_rest_days: Optional[Mapping[str, datetime]] = None,
    ) -> LoadDistribution:
        distribution = calculate_load_distribution(
            household_id,
            users,
            pending_tasks_by_user,
            history,
            now=self._clock.now(),
            last_rest_days=last_rest_days,
            config=self._config,
        )
        logger.info(
            "Load distribution calculated | household_id=%s | users=%s | total_weight=%.1f | balance=%s | gini=%.2f | alerts=%s",
            household_id,
            len(distribution.users),
            distribution.total_weight,
            distribution.balance_score,
            distribution.gini_coefficient,
            len(distribution.alerts),
        )
        return distribution
