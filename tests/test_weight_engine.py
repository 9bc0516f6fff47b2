from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from loadshare.domain.models import Task
from loadshare.services.weight_service import (
    CATEGORY_PROFILES,
    WeightEngine,
    WeightValidationError,
    calculate_task_weight,
    complexity_multiplier,
    deadline_multiplier,
    recurrence_multiplier,
)
from loadshare.utils.clock import FixedClock


NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _build_task(**overrides) -> Task:
    payload = {"id": "t1", "title": "Vaccination", "category": "sante"}
    payload.update(overrides)
    return Task(**payload)


def test_critical_urgent_health_task_weight() -> None:
    task = _build_task(priority=1, is_critical=True)

    result = calculate_task_weight(task, now=NOW)

    complexity = complexity_multiplier(CATEGORY_PROFILES["sante"])
    assert result.base_weight == 4
    assert result.adjusted_weight == round(4 * 1.5 * 1.4 * complexity, 1)
    assert result.adjusted_weight == 12.0
    assert result.components.complexity_multiplier == 1.43
    assert "Priority 1: x1.5" in result.explanation
    assert "Critical: x1.4" in result.explanation
    assert "Complexity: x1.43" in result.explanation


def test_unknown_category_uses_default_profile() -> None:
    result = calculate_task_weight(_build_task(category="jardinage"), now=NOW)

    assert result.base_weight == 2
    assert result.adjusted_weight == 2.6
    assert result.explanation[0] == "Base: 2 (category jardinage)"


@pytest.mark.parametrize(
    ("offset", "expected"),
    [
        (timedelta(days=-1), 1.8),
        (timedelta(hours=3), 1.5),
        (timedelta(days=1, hours=1), 1.3),
        (timedelta(days=5), 1.1),
        (timedelta(days=10), 1.0),
    ],
)
def test_deadline_multiplier_by_whole_days(offset: timedelta, expected: float) -> None:
    assert deadline_multiplier(NOW + offset, NOW) == expected


def test_missing_deadline_is_neutral() -> None:
    assert deadline_multiplier(None, NOW) == 1.0


def test_recurrence_discounts() -> None:
    assert recurrence_multiplier("daily") == 0.6
    assert recurrence_multiplier("Hebdomadaire") == 0.8
    assert recurrence_multiplier("monthly") == 0.9
    assert recurrence_multiplier(None) == 1.0
    assert recurrence_multiplier("  ") == 1.0
    assert recurrence_multiplier("fortnightly") == 0.8


def test_low_fatigue_is_not_applied() -> None:
    result = calculate_task_weight(_build_task(), now=NOW, fatigue_level=10)

    assert result.components.fatigue_multiplier == 1.0
    assert not any(line.startswith("Fatigue") for line in result.explanation)


def test_fatigue_above_threshold_scales_weight() -> None:
    rested = calculate_task_weight(_build_task(), now=NOW)
    tired = calculate_task_weight(_build_task(), now=NOW, fatigue_level=45)

    assert "Fatigue (45%): x1.2" in tired.explanation
    assert tired.adjusted_weight > rested.adjusted_weight


def test_fatigue_out_of_range_raises() -> None:
    with pytest.raises(WeightValidationError):
        calculate_task_weight(_build_task(), now=NOW, fatigue_level=101)


def test_coordination_and_deadline_are_explained() -> None:
    task = _build_task(requires_coordination=True, due_date=NOW - timedelta(days=2), recurrence="weekly")

    result = calculate_task_weight(task, now=NOW)

    assert "Coordination: x1.2" in result.explanation
    assert "Deadline: x1.8" in result.explanation
    assert "Recurrence: x0.8" in result.explanation


def test_engine_uses_injected_clock() -> None:
    engine = WeightEngine(clock=FixedClock(NOW))
    task = _build_task(due_date=NOW + timedelta(hours=2))

    result = engine.calculate_task_weight(task)

    assert result.components.deadline_multiplier == 1.5


def test_engine_total_weight_sums_adjusted_weights() -> None:
    engine = WeightEngine(clock=FixedClock(NOW))
    tasks = [_build_task(id="t1"), _build_task(id="t2", category="quotidien")]

    expected = round(
        sum(calculate_task_weight(task, now=NOW).adjusted_weight for task in tasks),
        1,
    )
    assert engine.total_weight(tasks) == expected
