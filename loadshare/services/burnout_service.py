"""Workload health classification, overload alerts, recovery plans and auto-balancing."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Optional, Sequence

from loadshare.domain.constraints import BurnoutConfig, validate_burnout_config
from loadshare.domain.models import DailyWorkload, PendingTask
from loadshare.utils.clock import Clock, SystemClock, ensure_utc, whole_days_between
from loadshare.utils.config import Settings, get_settings
from loadshare.utils.identifiers import IdSource, uuid_id_source
from loadshare.utils.logger import get_logger


logger = get_logger(__name__)

DEFAULT_BURNOUT_CONFIG = BurnoutConfig(
    warning_load_percent=80.0,
    critical_load_percent=100.0,
    max_consecutive_high_days=3,
    min_rest_day_interval=7,
    enabled=True,
    auto_redistribute=True,
)

HEALTHY_MAX = 60
ELEVATED_MAX = 80
HIGH_MAX = 100
CRITICAL_MAX = 120

HIGH_VARIANCE_STD = 30
LONG_DAY_MINUTES = 480
LONG_DAY_COUNT = 3

RECOVERY_CANDIDATE_MAX_PERCENT = 80
AUTO_BALANCE_TARGET_PERCENT = 70
ESTIMATED_TASK_LOAD_PERCENT = 10
UNDERLOAD_MARGIN = 20
RECIPIENT_MARGIN = 10

TREND_WINDOW = 7
TREND_TOLERANCE = 10

NO_REBALANCING_NEEDED = "No rebalancing needed or no available members"
AUTO_BALANCE_DISABLED = "Auto-balancing is disabled"
NOTHING_REDISTRIBUTED = "No tasks could be redistributed"


class BurnoutValidationError(ValueError):
    """Raised when burnout monitoring inputs are invalid."""


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    ELEVATED = "elevated"
    HIGH = "high"
    CRITICAL = "critical"
    BURNOUT_RISK = "burnout_risk"


class StressLevel(StrEnum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    SEVERE = "severe"


class StressIndicatorType(StrEnum):
    CONSECUTIVE_OVERLOAD = "consecutive_overload"
    NO_REST = "no_rest"
    HIGH_VARIANCE = "high_variance"
    LONG_TASKS = "long_tasks"


class AlertLevel(StrEnum):
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


class ActionType(StrEnum):
    REST = "rest"
    REDISTRIBUTE = "redistribute"
    DELAY = "delay"
    DELEGATE = "delegate"


class RecoveryType(StrEnum):
    SHORT_BREAK = "short_break"
    LIGHT_DAY = "light_day"
    DAY_OFF = "day_off"
    EXTENDED_REST = "extended_rest"


class RecoveryAction(StrEnum):
    POSTPONE = "postpone"
    REASSIGN = "reassign"


class TrendDirection(StrEnum):
    IMPROVING = "improving"
    STABLE = "stable"
    WORSENING = "worsening"


_HEALTH_SEVERITY = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.ELEVATED: 1,
    HealthStatus.HIGH: 2,
    HealthStatus.CRITICAL: 3,
    HealthStatus.BURNOUT_RISK: 4,
}

_ALERT_SEVERITY = {
    AlertLevel.EMERGENCY: 3,
    AlertLevel.CRITICAL: 2,
    AlertLevel.WARNING: 1,
}

_RECOVERY_DAYS = {
    RecoveryType.SHORT_BREAK: 0.5,
    RecoveryType.LIGHT_DAY: 1.0,
    RecoveryType.DAY_OFF: 1.0,
    RecoveryType.EXTENDED_REST: 3.0,
}

_RECOVERY_LOAD_FACTOR = {
    RecoveryType.SHORT_BREAK: 0.5,
    RecoveryType.LIGHT_DAY: 0.3,
    RecoveryType.DAY_OFF: 0.0,
    RecoveryType.EXTENDED_REST: 0.0,
}

_DAILY_LIMIT_FACTOR = {
    HealthStatus.HEALTHY: 1.0,
    HealthStatus.ELEVATED: 0.8,
    HealthStatus.HIGH: 0.6,
    HealthStatus.CRITICAL: 0.3,
    HealthStatus.BURNOUT_RISK: 0.0,
}


@dataclass(frozen=True)
class StressIndicator:
    type: StressIndicatorType
    severity: int
    description: str
    detected_at: datetime


@dataclass(frozen=True)
class MemberWorkloadState:
    member_id: str
    member_name: str
    current_load: float
    max_load: float
    load_percentage: int
    consecutive_high_load_days: int
    recent_workload: list[DailyWorkload]
    health_status: HealthStatus
    stress_indicators: list[StressIndicator]
    last_rest_day: Optional[datetime] = None


@dataclass(frozen=True)
class SuggestedAction:
    type: ActionType
    description: str
    priority: int
    estimated_relief: int


@dataclass(frozen=True)
class OverloadAlert:
    alert_id: str
    member_id: str
    member_name: str
    alert_type: AlertLevel
    reason: str
    load_percentage: int
    consecutive_days: int
    task_count: float
    suggested_actions: list[SuggestedAction]
    created_at: datetime


@dataclass(frozen=True)
class RecoveryTask:
    action: RecoveryAction
    task_id: str
    task_name: str
    new_assignee: Optional[str] = None
    new_date: Optional[datetime] = None


@dataclass(frozen=True)
class RecoveryPlan:
    plan_id: str
    member_id: str
    type: RecoveryType
    start_date: datetime
    end_date: datetime
    reduced_load: float
    reason: str
    tasks: list[RecoveryTask] = field(default_factory=list)


@dataclass(frozen=True)
class RedistributedTask:
    task_id: str
    task_name: str
    from_member: str
    to_member: str
    reason: str


@dataclass(frozen=True)
class BalanceResult:
    success: bool
    redistributed_tasks: list[RedistributedTask]
    members_affected: list[str]
    load_reduction: dict[str, int]
    message: str


@dataclass(frozen=True)
class WorkloadHealthReport:
    household_id: str
    generated_at: datetime
    period_start: datetime
    period_end: datetime
    overall_health: HealthStatus
    member_states: list[MemberWorkloadState]
    alerts: list[OverloadAlert]
    recommendations: list[str]
    trend_direction: TrendDirection
    risk_members: list[str]
    healthy_members: list[str]


def burnout_config_from_settings(settings: Settings) -> BurnoutConfig:
    config = BurnoutConfig(
        warning_load_percent=settings.burnout_warning_load_percent,
        critical_load_percent=settings.burnout_critical_load_percent,
        max_consecutive_high_days=settings.burnout_max_consecutive_high_days,
        min_rest_day_interval=settings.burnout_min_rest_day_interval,
        enabled=settings.auto_balance_enabled,
        auto_redistribute=settings.auto_balance_enabled,
    )
    validate_burnout_config(config)
    return config


def health_status(load_percentage: float) -> HealthStatus:
    if load_percentage <= HEALTHY_MAX:
        return HealthStatus.HEALTHY
    if load_percentage <= ELEVATED_MAX:
        return HealthStatus.ELEVATED
    if load_percentage <= HIGH_MAX:
        return HealthStatus.HIGH
    if load_percentage <= CRITICAL_MAX:
        return HealthStatus.CRITICAL
    return HealthStatus.BURNOUT_RISK


def assess_stress_level(indicators: Sequence[StressIndicator]) -> StressLevel:
    if not indicators:
        return StressLevel.LOW
    severities = [indicator.severity for indicator in indicators]
    average = sum(severities) / len(severities)
    peak = max(severities)
    if peak >= 9 or average >= 7:
        return StressLevel.SEVERE
    if peak >= 7 or average >= 5:
        return StressLevel.HIGH
    if peak >= 4 or average >= 3:
        return StressLevel.MODERATE
    return StressLevel.LOW


def _trailing_count(workload: Sequence[DailyWorkload], predicate) -> int:
    count = 0
    for day in reversed(workload):
        if not predicate(day):
            break
        count += 1
    return count


def detect_stress_indicators(
    recent_workload: Sequence[DailyWorkload],
    *,
    now: datetime,
    last_rest_day: Optional[datetime] = None,
    config: BurnoutConfig = DEFAULT_BURNOUT_CONFIG,
) -> list[StressIndicator]:
    """Independent checks over a chronologically ordered daily window."""
    if not recent_workload:
        return []
    now = ensure_utc(now)
    indicators: list[StressIndicator] = []

    consecutive = _trailing_count(recent_workload, lambda day: day.was_overloaded)
    if consecutive >= config.max_consecutive_high_days:
        indicators.append(
            StressIndicator(
                type=StressIndicatorType.CONSECUTIVE_OVERLOAD,
                severity=min(10, 5 + consecutive),
                description=f"{consecutive} consecutive days of high workload",
                detected_at=now,
            )
        )

    if last_rest_day is not None:
        days_since_rest = whole_days_between(now, last_rest_day)
        if days_since_rest > config.min_rest_day_interval * 2:
            indicators.append(
                StressIndicator(
                    type=StressIndicatorType.NO_REST,
                    severity=min(10, days_since_rest // config.min_rest_day_interval + 3),
                    description=f"{days_since_rest} days since last rest day",
                    detected_at=now,
                )
            )

    percentages = [day.load_percentage for day in recent_workload]
    mean = sum(percentages) / len(percentages)
    std_dev = math.sqrt(sum((value - mean) ** 2 for value in percentages) / len(percentages))
    if std_dev > HIGH_VARIANCE_STD:
        indicators.append(
            StressIndicator(
                type=StressIndicatorType.HIGH_VARIANCE,
                severity=min(10, math.floor(std_dev / 10) + 2),
                description=f"High workload variance (±{round(std_dev)}%)",
                detected_at=now,
            )
        )

    long_days = sum(1 for day in recent_workload if day.minutes_worked > LONG_DAY_MINUTES)
    if long_days >= LONG_DAY_COUNT:
        indicators.append(
            StressIndicator(
                type=StressIndicatorType.LONG_TASKS,
                severity=min(10, long_days + 3),
                description=f"{long_days} days with 8+ hours of work recently",
                detected_at=now,
            )
        )

    return indicators


def build_member_workload_state(
    member_id: str,
    member_name: str,
    current_load: float,
    max_load: float,
    recent_workload: Sequence[DailyWorkload],
    *,
    now: datetime,
    last_rest_day: Optional[datetime] = None,
    config: BurnoutConfig = DEFAULT_BURNOUT_CONFIG,
) -> MemberWorkloadState:
    if current_load < 0:
        raise BurnoutValidationError("current_load must be >= 0")
    if max_load < 0:
        raise BurnoutValidationError("max_load must be >= 0")
    load_percentage = current_load / max_load * 100 if max_load > 0 else 0.0
    consecutive = _trailing_count(
        recent_workload,
        lambda day: day.load_percentage >= config.warning_load_percent,
    )
    return MemberWorkloadState(
        member_id=member_id,
        member_name=member_name,
        current_load=current_load,
        max_load=max_load,
        load_percentage=round(load_percentage),
        consecutive_high_load_days=consecutive,
        recent_workload=list(recent_workload),
        health_status=health_status(load_percentage),
        stress_indicators=detect_stress_indicators(
            recent_workload,
            now=now,
            last_rest_day=last_rest_day,
            config=config,
        ),
        last_rest_day=ensure_utc(last_rest_day) if last_rest_day is not None else None,
    )


def _classify_overload(
    state: MemberWorkloadState,
    config: BurnoutConfig,
) -> tuple[Optional[AlertLevel], str]:
    load = state.load_percentage
    if state.health_status == HealthStatus.BURNOUT_RISK:
        return AlertLevel.EMERGENCY, "Severe burnout risk detected"
    if state.health_status == HealthStatus.CRITICAL or load >= config.critical_load_percent:
        return AlertLevel.CRITICAL, f"Workload at {load}% of capacity"
    if state.consecutive_high_load_days >= config.max_consecutive_high_days:
        return AlertLevel.CRITICAL, f"{state.consecutive_high_load_days} consecutive high-load days"
    if state.health_status == HealthStatus.HIGH or load >= config.warning_load_percent:
        return AlertLevel.WARNING, f"Elevated workload at {load}%"
    if any(indicator.severity >= 7 for indicator in state.stress_indicators):
        return AlertLevel.WARNING, "High stress indicators detected"
    return None, ""


def suggested_actions(alert_type: AlertLevel, load_percentage: float) -> list[SuggestedAction]:
    actions: list[SuggestedAction] = []
    if alert_type in (AlertLevel.EMERGENCY, AlertLevel.CRITICAL):
        actions.append(
            SuggestedAction(
                type=ActionType.REST,
                description="Schedule immediate rest period",
                priority=10,
                estimated_relief=30,
            )
        )
        actions.append(
            SuggestedAction(
                type=ActionType.REDISTRIBUTE,
                description="Redistribute pending tasks to other members",
                priority=9,
                estimated_relief=25,
            )
        )
    if load_percentage > 100:
        actions.append(
            SuggestedAction(
                type=ActionType.DELAY,
                description="Delay non-urgent tasks",
                priority=7,
                estimated_relief=15,
            )
        )
    actions.append(
        SuggestedAction(
            type=ActionType.DELEGATE,
            description="Delegate upcoming tasks",
            priority=6,
            estimated_relief=20,
        )
    )
    return actions


def check_overload(
    state: MemberWorkloadState,
    *,
    now: datetime,
    alert_id: str,
    config: BurnoutConfig = DEFAULT_BURNOUT_CONFIG,
) -> Optional[OverloadAlert]:
    alert_type, reason = _classify_overload(state, config)
    if alert_type is None:
        return None
    return OverloadAlert(
        alert_id=alert_id,
        member_id=state.member_id,
        member_name=state.member_name,
        alert_type=alert_type,
        reason=reason,
        load_percentage=state.load_percentage,
        consecutive_days=state.consecutive_high_load_days,
        task_count=state.current_load,
        suggested_actions=suggested_actions(alert_type, state.load_percentage),
        created_at=ensure_utc(now),
    )


def determine_recovery_type(state: MemberWorkloadState) -> RecoveryType:
    stress = assess_stress_level(state.stress_indicators)
    if state.health_status == HealthStatus.BURNOUT_RISK or stress == StressLevel.SEVERE:
        return RecoveryType.EXTENDED_REST
    if state.health_status == HealthStatus.CRITICAL or stress == StressLevel.HIGH:
        return RecoveryType.DAY_OFF
    if state.health_status == HealthStatus.HIGH or stress == StressLevel.MODERATE:
        return RecoveryType.LIGHT_DAY
    return RecoveryType.SHORT_BREAK


def recovery_duration_days(recovery_type: RecoveryType) -> float:
    return _RECOVERY_DAYS[recovery_type]


def recovery_load(recovery_type: RecoveryType, normal_max: float) -> float:
    return normal_max * _RECOVERY_LOAD_FACTOR[recovery_type]


def create_recovery_plan(
    state: MemberWorkloadState,
    teammates: Sequence[MemberWorkloadState],
    pending_tasks: Sequence[PendingTask],
    *,
    now: datetime,
    plan_id: str,
) -> RecoveryPlan:
    """Plan a recovery window; full-rest plans hand off or postpone every pending task."""
    recovery_type = determine_recovery_type(state)
    start = ensure_utc(now)
    end = start + timedelta(days=recovery_duration_days(recovery_type))

    candidates = sorted(
        (
            teammate
            for teammate in teammates
            if teammate.member_id != state.member_id
            and teammate.load_percentage < RECOVERY_CANDIDATE_MAX_PERCENT
        ),
        key=lambda teammate: teammate.load_percentage,
    )

    tasks: list[RecoveryTask] = []
    for task in pending_tasks:
        if recovery_type in (RecoveryType.DAY_OFF, RecoveryType.EXTENDED_REST):
            if task.can_reassign and candidates:
                tasks.append(
                    RecoveryTask(
                        action=RecoveryAction.REASSIGN,
                        task_id=task.id,
                        task_name=task.name,
                        new_assignee=candidates[0].member_id,
                    )
                )
            elif task.can_delay:
                tasks.append(
                    RecoveryTask(
                        action=RecoveryAction.POSTPONE,
                        task_id=task.id,
                        task_name=task.name,
                        new_date=end,
                    )
                )
        elif recovery_type == RecoveryType.LIGHT_DAY and task.can_delay:
            tasks.append(
                RecoveryTask(
                    action=RecoveryAction.POSTPONE,
                    task_id=task.id,
                    task_name=task.name,
                    new_date=end,
                )
            )

    return RecoveryPlan(
        plan_id=plan_id,
        member_id=state.member_id,
        type=recovery_type,
        start_date=start,
        end_date=end,
        reduced_load=recovery_load(recovery_type, state.max_load),
        reason=f"Recovery from {state.health_status} workload status",
        tasks=tasks,
    )


def auto_balance_workload(
    states: Sequence[MemberWorkloadState],
    pending_tasks: Sequence[PendingTask],
    config: BurnoutConfig = DEFAULT_BURNOUT_CONFIG,
) -> BalanceResult:
    """Move low-priority reassignable tasks from overloaded to underloaded members.

    Each moved task is counted as a fixed share of capacity. Moving stops for a
    member once its reduction target is met or no recipient has room left.
    """
    if not config.enabled or not config.auto_redistribute:
        return BalanceResult(
            success=False,
            redistributed_tasks=[],
            members_affected=[],
            load_reduction={},
            message=AUTO_BALANCE_DISABLED,
        )

    overloaded = sorted(
        (state for state in states if state.load_percentage >= config.warning_load_percent),
        key=lambda state: state.load_percentage,
        reverse=True,
    )
    underloaded = sorted(
        (state for state in states if state.load_percentage < config.warning_load_percent - UNDERLOAD_MARGIN),
        key=lambda state: state.load_percentage,
    )
    if not overloaded or not underloaded:
        return BalanceResult(
            success=True,
            redistributed_tasks=[],
            members_affected=[],
            load_reduction={},
            message=NO_REBALANCING_NEEDED,
        )

    redistributed: list[RedistributedTask] = []
    received: dict[str, int] = {}
    load_reduction: dict[str, int] = {}
    recipient_ceiling = config.warning_load_percent - RECIPIENT_MARGIN

    for over in overloaded:
        # 1 = high priority, so the least important tasks move first
        movable = sorted(
            (task for task in pending_tasks if task.assigned_to == over.member_id and task.can_reassign),
            key=lambda task: task.priority,
            reverse=True,
        )
        target_reduction = over.load_percentage - AUTO_BALANCE_TARGET_PERCENT
        moved = 0
        for task in movable:
            if moved * ESTIMATED_TASK_LOAD_PERCENT >= target_reduction:
                break
            recipient = next(
                (
                    under
                    for under in underloaded
                    if under.load_percentage + received.get(under.member_id, 0) * ESTIMATED_TASK_LOAD_PERCENT
                    < recipient_ceiling
                ),
                None,
            )
            if recipient is None:
                break
            redistributed.append(
                RedistributedTask(
                    task_id=task.id,
                    task_name=task.name,
                    from_member=over.member_id,
                    to_member=recipient.member_id,
                    reason=f"Balancing workload from {over.member_name} to {recipient.member_name}",
                )
            )
            received[recipient.member_id] = received.get(recipient.member_id, 0) + 1
            moved += 1
        if moved > 0:
            load_reduction[over.member_id] = moved * ESTIMATED_TASK_LOAD_PERCENT

    affected: list[str] = []
    for task in redistributed:
        for member_id in (task.from_member, task.to_member):
            if member_id not in affected:
                affected.append(member_id)

    if redistributed:
        message = f"Redistributed {len(redistributed)} tasks across {len(affected)} members"
    else:
        message = NOTHING_REDISTRIBUTED
    return BalanceResult(
        success=bool(redistributed),
        redistributed_tasks=redistributed,
        members_affected=affected,
        load_reduction=load_reduction,
        message=message,
    )


def trend_direction(states: Sequence[MemberWorkloadState]) -> TrendDirection:
    history = [day.load_percentage for state in states for day in state.recent_workload]
    if len(history) < TREND_WINDOW:
        return TrendDirection.STABLE
    recent = history[-TREND_WINDOW:]
    older = history[-2 * TREND_WINDOW : -TREND_WINDOW]
    recent_average = sum(recent) / len(recent)
    older_average = sum(older) / len(older) if older else recent_average
    if recent_average < older_average - TREND_TOLERANCE:
        return TrendDirection.IMPROVING
    if recent_average > older_average + TREND_TOLERANCE:
        return TrendDirection.WORSENING
    return TrendDirection.STABLE


def overall_health(states: Sequence[MemberWorkloadState]) -> HealthStatus:
    if not states:
        return HealthStatus.HEALTHY
    return max((state.health_status for state in states), key=lambda status: _HEALTH_SEVERITY[status])


def needs_immediate_intervention(state: MemberWorkloadState) -> bool:
    return (
        state.health_status in (HealthStatus.BURNOUT_RISK, HealthStatus.CRITICAL)
        or any(indicator.severity >= 9 for indicator in state.stress_indicators)
        or state.consecutive_high_load_days >= 5
    )


def workload_score(state: MemberWorkloadState) -> int:
    """0-100, higher means more overloaded."""
    indicators = state.stress_indicators
    average_severity = sum(indicator.severity for indicator in indicators) / len(indicators) if indicators else 0.0
    score = state.load_percentage + average_severity * 3 + state.consecutive_high_load_days * 5
    return min(100, round(score))


def recommended_daily_limit(state: MemberWorkloadState) -> int:
    normal_limit = math.floor(state.max_load / 5)
    return math.floor(normal_limit * _DAILY_LIMIT_FACTOR[state.health_status])


def create_daily_workload(
    day: datetime,
    task_count: int,
    minutes_worked: float,
    max_daily_tasks: int,
    overload_percent: float = DEFAULT_BURNOUT_CONFIG.warning_load_percent,
) -> DailyWorkload:
    if task_count < 0:
        raise BurnoutValidationError("task_count must be >= 0")
    if minutes_worked < 0:
        raise BurnoutValidationError("minutes_worked must be >= 0")
    return DailyWorkload.from_counts(day, task_count, minutes_worked, max_daily_tasks, overload_percent)


class BurnoutMonitor:
    """Household workload health checks bound to settings, a clock and an id source."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        id_source: Optional[IdSource] = None,
        config: Optional[BurnoutConfig] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock or SystemClock()
        self._id_source = id_source or uuid_id_source
        if config is not None:
            validate_burnout_config(config)
            self._config = config
        else:
            self._config = burnout_config_from_settings(self._settings)

    @property
    def config(self) -> BurnoutConfig:
        return self._config

    def detect_stress_indicators(
        self,
        recent_workload: Sequence[DailyWorkload],
        last_rest_day: Optional[datetime] = None,
    ) -> list[StressIndicator]:
        return detect_stress_indicators(
            recent_workload,
            now=self._clock.now(),
            last_rest_day=last_rest_day,
            config=self._config,
        )

    def build_member_workload_state(
        self,
        member_id: str,
        member_name: str,
        current_load: float,
        max_load: float,
        recent_workload: Sequence[DailyWorkload],
        last_rest_day: Optional[datetime] = None,
    ) -> MemberWorkloadState:
        return build_member_workload_state(
            member_id,
            member_name,
            current_load,
            max_load,
            recent_workload,
            now=self._clock.now(),
            last_rest_day=last_rest_day,
            config=self._config,
        )

    def check_overload(self, state: MemberWorkloadState) -> Optional[OverloadAlert]:
        alert = check_overload(
            state,
            now=self._clock.now(),
            alert_id=self._id_source(),
            config=self._config,
        )
        if alert is not None:
            logger.warning(
                "Overload detected | member_id=%s | alert_type=%s | load_percentage=%s | consecutive_days=%s",
                alert.member_id,
                alert.alert_type,
                alert.load_percentage,
                alert.consecutive_days,
            )
        return alert

    def check_household_overload(self, states: Sequence[MemberWorkloadState]) -> list[OverloadAlert]:
        alerts = [alert for alert in (self.check_overload(state) for state in states) if alert is not None]
        return sorted(alerts, key=lambda alert: _ALERT_SEVERITY[alert.alert_type], reverse=True)

    def create_recovery_plan(
        self,
        state: MemberWorkloadState,
        teammates: Sequence[MemberWorkloadState],
        pending_tasks: Sequence[PendingTask],
    ) -> RecoveryPlan:
        plan = create_recovery_plan(
            state,
            teammates,
            pending_tasks,
            now=self._clock.now(),
            plan_id=self._id_source(),
        )
        logger.info(
            "Recovery plan created | plan_id=%s | member_id=%s | type=%s | tasks=%s",
            plan.plan_id,
            plan.member_id,
            plan.type,
            len(plan.tasks),
        )
        return plan

    def auto_balance_workload(
        self,
        states: Sequence[MemberWorkloadState],
        pending_tasks: Sequence[PendingTask],
    ) -> BalanceResult:
        result = auto_balance_workload(states, pending_tasks, self._config)
        logger.info(
            "Auto-balance finished | success=%s | moved=%s | members_affected=%s | message=%s",
            result.success,
            len(result.redistributed_tasks),
            len(result.members_affected),
            result.message,
        )
        return result

    def generate_health_report(
        self,
        household_id: str,
        states: Sequence[MemberWorkloadState],
        period_start: datetime,
        period_end: datetime,
    ) -> WorkloadHealthReport:
        alerts = self.check_household_overload(states)
        health = overall_health(states)
        risk_members = [
            state.member_name
            for state in states
            if state.health_status in (HealthStatus.HIGH, HealthStatus.CRITICAL, HealthStatus.BURNOUT_RISK)
        ]
        healthy_members = [state.member_name for state in states if state.health_status == HealthStatus.HEALTHY]

        recommendations: list[str] = []
        if risk_members:
            recommendations.append(f"Prioritize reducing load for: {', '.join(risk_members)}")
        if any(alert.alert_type == AlertLevel.EMERGENCY for alert in alerts):
            recommendations.append("Immediate intervention required - emergency alerts detected")
        no_rest = [
            state.member_name
            for state in states
            if any(indicator.type == StressIndicatorType.NO_REST for indicator in state.stress_indicators)
        ]
        if no_rest:
            recommendations.append(f"Schedule rest days for: {', '.join(no_rest)}")
        if health == HealthStatus.HEALTHY and len(healthy_members) == len(states):
            recommendations.append("Workload distribution is healthy - maintain current balance")

        report = WorkloadHealthReport(
            household_id=household_id,
            generated_at=self._clock.now(),
            period_start=ensure_utc(period_start),
            period_end=ensure_utc(period_end),
            overall_health=health,
            member_states=list(states),
            alerts=alerts,
            recommendations=recommendations,
            trend_direction=trend_direction(states),
            risk_members=risk_members,
            healthy_members=healthy_members,
        )
        logger.info(
            "Health report generated | household_id=%s | overall_health=%s | alerts=%s | trend=%s",
            household_id,
            report.overall_health,
            len(report.alerts),
            report.trend_direction,
        )
        return report

    def create_daily_workload(
        self,
        day: datetime,
        task_count: int,
        minutes_worked: float,
        max_daily_tasks: int,
    ) -> DailyWorkload:
        return create_daily_workload(
            day,
            task_count,
            minutes_worked,
            max_daily_tasks,
            overload_percent=self._config.warning_load_percent,
        )
