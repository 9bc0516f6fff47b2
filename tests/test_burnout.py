from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from loadshare.domain.constraints import BurnoutConfig
from loadshare.domain.models import DailyWorkload, PendingTask
from loadshare.services.burnout_service import (
    DEFAULT_BURNOUT_CONFIG,
    NO_REBALANCING_NEEDED,
    AlertLevel,
    ActionType,
    BurnoutMonitor,
    BurnoutValidationError,
    HealthStatus,
    RecoveryAction,
    RecoveryType,
    StressIndicatorType,
    auto_balance_workload,
    build_member_workload_state,
    detect_stress_indicators,
    determine_recovery_type,
    health_status,
    needs_immediate_intervention,
    recommended_daily_limit,
    recovery_duration_days,
    recovery_load,
    workload_score,
)
from loadshare.utils.clock import FixedClock
from loadshare.utils.config import get_settings
from loadshare.utils.identifiers import SequentialIdSource


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _build_test_settings(**overrides):
    return replace(get_settings(), **overrides)


def _build_monitor(**overrides) -> BurnoutMonitor:
    return BurnoutMonitor(
        settings=_build_test_settings(**overrides),
        clock=FixedClock(NOW),
        id_source=SequentialIdSource("alert"),
    )


def _workload(task_counts, *, minutes: float = 60, max_daily_tasks: int = 10) -> list[DailyWorkload]:
    start = NOW - timedelta(days=len(task_counts))
    return [
        DailyWorkload.from_counts(start + timedelta(days=index), count, minutes, max_daily_tasks)
        for index, count in enumerate(task_counts)
    ]


def _state(member_id: str, current_load: float, max_load: float = 20, recent=(), last_rest_day=NOW):
    return build_member_workload_state(
        member_id,
        member_id.title(),
        current_load,
        max_load,
        list(recent),
        now=NOW,
        last_rest_day=last_rest_day,
    )


@pytest.mark.parametrize(
    ("load", "expected"),
    [
        (0, HealthStatus.HEALTHY),
        (60, HealthStatus.HEALTHY),
        (61, HealthStatus.ELEVATED),
        (80, HealthStatus.ELEVATED),
        (100, HealthStatus.HIGH),
        (120, HealthStatus.CRITICAL),
        (121, HealthStatus.BURNOUT_RISK),
    ],
)
def test_health_status_thresholds(load: float, expected: HealthStatus) -> None:
    assert health_status(load) == expected


def test_consecutive_overload_indicator() -> None:
    indicators = detect_stress_indicators(_workload([2, 9, 9, 9]), now=NOW)

    overload = [item for item in indicators if item.type == StressIndicatorType.CONSECUTIVE_OVERLOAD]
    assert len(overload) == 1
    assert overload[0].severity == 8


def test_missing_rest_indicator() -> None:
    indicators = detect_stress_indicators(
        _workload([2, 2, 2]),
        now=NOW,
        last_rest_day=NOW - timedelta(days=20),
    )

    assert [(item.type, item.severity) for item in indicators] == [(StressIndicatorType.NO_REST, 5)]


def test_high_variance_indicator() -> None:
    indicators = detect_stress_indicators(_workload([0, 10, 0, 10]), now=NOW, last_rest_day=NOW)

    variance = [item for item in indicators if item.type == StressIndicatorType.HIGH_VARIANCE]
    assert variance[0].severity == 7
    assert variance[0].description == "High workload variance (±50%)"


def test_long_days_indicator() -> None:
    indicators = detect_stress_indicators(_workload([1, 1, 1], minutes=500), now=NOW, last_rest_day=NOW)

    assert [(item.type, item.severity) for item in indicators] == [(StressIndicatorType.LONG_TASKS, 6)]


def test_empty_window_has_no_indicators() -> None:
    assert detect_stress_indicators([], now=NOW, last_rest_day=NOW - timedelta(days=60)) == []


def test_state_counts_trailing_high_days() -> None:
    state = _state("a", 10, recent=_workload([9, 2, 8, 9]))

    assert state.load_percentage == 50
    assert state.health_status == HealthStatus.HEALTHY
    assert state.consecutive_high_load_days == 2


def test_healthy_member_has_no_alert() -> None:
    monitor = _build_monitor()

    assert monitor.check_overload(_state("a", 8)) is None


def test_burnout_risk_raises_emergency_with_all_actions() -> None:
    monitor = _build_monitor()

    alert = monitor.check_overload(_state("a", 26))

    assert alert.alert_id == "alert-1"
    assert alert.alert_type == AlertLevel.EMERGENCY
    assert alert.reason == "Severe burnout risk detected"
    assert [action.type for action in alert.suggested_actions] == [
        ActionType.REST,
        ActionType.REDISTRIBUTE,
        ActionType.DELAY,
        ActionType.DELEGATE,
    ]


def test_elevated_load_raises_warning() -> None:
    alert = _build_monitor().check_overload(_state("a", 16.4))

    assert alert.alert_type == AlertLevel.WARNING
    assert alert.reason == "Elevated workload at 82%"
    assert [action.type for action in alert.suggested_actions] == [ActionType.DELEGATE]


def test_household_alerts_are_ordered_by_severity() -> None:
    monitor = _build_monitor()
    states = [_state("warn", 17), _state("ok", 4), _state("burning", 30), _state("crit", 22)]

    alerts = monitor.check_household_overload(states)

    assert [alert.member_id for alert in alerts] == ["burning", "crit", "warn"]
    assert [alert.alert_type for alert in alerts] == [
        AlertLevel.EMERGENCY,
        AlertLevel.CRITICAL,
        AlertLevel.WARNING,
    ]


def test_recovery_parameters() -> None:
    assert recovery_duration_days(RecoveryType.SHORT_BREAK) == 0.5
    assert recovery_duration_days(RecoveryType.EXTENDED_REST) == 3
    assert recovery_load(RecoveryType.LIGHT_DAY, 20) == pytest.approx(6.0)
    assert recovery_load(RecoveryType.DAY_OFF, 20) == 0
    assert determine_recovery_type(_state("a", 4)) == RecoveryType.SHORT_BREAK
    assert determine_recovery_type(_state("a", 19)) == RecoveryType.LIGHT_DAY


def test_extended_rest_plan_hands_off_every_pending_task() -> None:
    monitor = _build_monitor()
    exhausted = _state("a", 30)
    teammates = [_state("b", 12), _state("c", 4), _state("d", 18)]
    pending = [
        PendingTask(id="p1", name="Dishes", assigned_to="a"),
        PendingTask(id="p2", name="Taxes", assigned_to="a", can_reassign=False),
        PendingTask(id="p3", name="Doctor", assigned_to="a", can_reassign=False, can_delay=False),
    ]

    plan = monitor.create_recovery_plan(exhausted, teammates, pending)

    assert plan.type == RecoveryType.EXTENDED_REST
    assert plan.start_date == NOW
    assert plan.end_date == NOW + timedelta(days=3)
    assert plan.reduced_load == 0
    assert plan.reason == "Recovery from burnout_risk workload status"
    assert [(task.task_id, task.action) for task in plan.tasks] == [
        ("p1", RecoveryAction.REASSIGN),
        ("p2", RecoveryAction.POSTPONE),
    ]
    assert plan.tasks[0].new_assignee == "c"
    assert plan.tasks[1].new_date == plan.end_date


def test_auto_balance_without_overload_is_a_no_op() -> None:
    states = [_state("a", 8), _state("b", 4)]

    result = auto_balance_workload(states, [], DEFAULT_BURNOUT_CONFIG)

    assert result.success
    assert result.redistributed_tasks == []
    assert result.message == NO_REBALANCING_NEEDED
    assert result.message == "No rebalancing needed or no available members"


def test_auto_balance_disabled() -> None:
    config = BurnoutConfig(
        warning_load_percent=80,
        critical_load_percent=100,
        max_consecutive_high_days=3,
        min_rest_day_interval=7,
        enabled=False,
    )

    result = auto_balance_workload([_state("a", 20), _state("b", 2)], [], config)

    assert not result.success
    assert result.message == "Auto-balancing is disabled"


def test_auto_balance_moves_lowest_priority_tasks_first() -> None:
    monitor = _build_monitor()
    states = [_state("over", 20), _state("under", 4)]
    pending = [
        PendingTask(id="urgent", assigned_to="over", priority=1),
        PendingTask(id="chore", assigned_to="over", priority=3),
        PendingTask(id="routine", assigned_to="over", priority=2),
        PendingTask(id="fixed", assigned_to="over", priority=3, can_reassign=False),
        PendingTask(id="urgent-2", assigned_to="over", priority=1),
    ]

    result = monitor.auto_balance_workload(states, pending)

    assert result.success
    assert [task.task_id for task in result.redistributed_tasks] == ["chore", "routine", "urgent"]
    assert {task.to_member for task in result.redistributed_tasks} == {"under"}
    assert result.load_reduction == {"over": 30}
    assert result.members_affected == ["over", "under"]
    assert result.message == "Redistributed 3 tasks across 2 members"


def test_auto_balance_with_nothing_movable_reports_failure() -> None:
    states = [_state("over", 20), _state("under", 4)]
    pending = [PendingTask(id="fixed", assigned_to="over", can_reassign=False)]

    result = auto_balance_workload(states, pending)

    assert not result.success
    assert result.message == "No tasks could be redistributed"


def test_health_report_for_healthy_household() -> None:
    report = _build_monitor().generate_health_report(
        "house-1",
        [_state("a", 4), _state("b", 6)],
        NOW - timedelta(days=7),
        NOW,
    )

    assert report.overall_health == HealthStatus.HEALTHY
    assert report.alerts == []
    assert report.healthy_members == ["A", "B"]
    assert report.recommendations == ["Workload distribution is healthy - maintain current balance"]


def test_health_report_escalates_burnout_risk() -> None:
    states = [
        _state("a", 30),
        _state("b", 4, last_rest_day=NOW - timedelta(days=20), recent=_workload([1, 1])),
    ]

    report = _build_monitor().generate_health_report("house-1", states, NOW - timedelta(days=7), NOW)

    assert report.overall_health == HealthStatus.BURNOUT_RISK
    assert report.risk_members == ["A"]
    assert report.recommendations == [
        "Prioritize reducing load for: A",
        "Immediate intervention required - emergency alerts detected",
        "Schedule rest days for: B",
    ]


def test_intervention_score_and_daily_limit() -> None:
    calm = _state("a", 10)
    critical = _state("b", 23)

    assert not needs_immediate_intervention(calm)
    assert needs_immediate_intervention(critical)
    assert workload_score(calm) == 50
    assert workload_score(critical) == 100
    assert recommended_daily_limit(calm) == 4
    assert recommended_daily_limit(_state("c", 19)) == 2
    assert recommended_daily_limit(critical) == 1


def test_monitor_rejects_inverted_thresholds() -> None:
    with pytest.raises(ValueError):
        _build_monitor(burnout_warning_load_percent=90.0, burnout_critical_load_percent=80.0)


def test_monitor_daily_workload_uses_warning_threshold() -> None:
    monitor = _build_monitor(burnout_warning_load_percent=70.0, burnout_critical_load_percent=100.0)

    day = monitor.create_daily_workload(NOW, task_count=7, minutes_worked=200, max_daily_tasks=10)

    assert day.load_percentage == 70
    assert day.was_overloaded


def test_monitor_daily_workload_rejects_negative_counts() -> None:
    monitor = _build_monitor()

    with pytest.raises(BurnoutValidationError):
        monitor.create_daily_workload(NOW, task_count=-1, minutes_worked=30, max_daily_tasks=10)
    with pytest.raises(BurnoutValidationError):
        monitor.create_daily_workload(NOW, task_count=2, minutes_worked=-5, max_daily_tasks=10)
