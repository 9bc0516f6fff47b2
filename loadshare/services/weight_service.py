"""Task load weighting: category profile times priority, deadline and context multipliers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from loadshare.domain.models import Task, WeightComponents, WeightResult
from loadshare.utils.clock import Clock, SystemClock, ensure_utc, whole_days_between
from loadshare.utils.config import Settings, get_settings
from loadshare.utils.logger import get_logger


logger = get_logger(__name__)


class WeightValidationError(ValueError):
    """Raised when weighting arguments are out of range."""


@dataclass(frozen=True)
class CategoryProfile:
    base_weight: float
    energy_cost: float
    mental_load: float
    time_required: float


DEFAULT_CATEGORY = "autre"

CATEGORY_PROFILES: dict[str, CategoryProfile] = {
    "ecole": CategoryProfile(base_weight=3, energy_cost=0.4, mental_load=0.6, time_required=0.5),
    "sante": CategoryProfile(base_weight=4, energy_cost=0.5, mental_load=0.7, time_required=0.6),
    "administratif": CategoryProfile(base_weight=4, energy_cost=0.3, mental_load=0.8, time_required=0.4),
    "quotidien": CategoryProfile(base_weight=2, energy_cost=0.6, mental_load=0.2, time_required=0.3),
    "social": CategoryProfile(base_weight=2, energy_cost=0.4, mental_load=0.3, time_required=0.4),
    "activites": CategoryProfile(base_weight=3, energy_cost=0.5, mental_load=0.4, time_required=0.6),
    "logistique": CategoryProfile(base_weight=2, energy_cost=0.7, mental_load=0.2, time_required=0.3),
    DEFAULT_CATEGORY: CategoryProfile(base_weight=2, energy_cost=0.4, mental_load=0.4, time_required=0.4),
}

PRIORITY_MULTIPLIERS = {1: 1.5, 2: 1.0, 3: 0.8}

DEADLINE_OVERDUE = 1.8
DEADLINE_TODAY = 1.5
DEADLINE_TOMORROW = 1.3
DEADLINE_THIS_WEEK = 1.1
DEADLINE_NONE = 1.0

CRITICAL_MULTIPLIER = 1.4
COORDINATION_MULTIPLIER = 1.2

_RECURRENCE_ALIASES = {
    "daily": 0.6,
    "jour": 0.6,
    "quotidien": 0.6,
    "weekly": 0.8,
    "semaine": 0.8,
    "hebdomadaire": 0.8,
    "monthly": 0.9,
    "mois": 0.9,
    "mensuel": 0.9,
}
RECURRENCE_ONE_OFF = 1.0
RECURRENCE_FALLBACK = _RECURRENCE_ALIASES["weekly"]

# fatigue multiplier only applies above this level
FATIGUE_APPLY_THRESHOLD = 20


def get_category_weight(category: str) -> CategoryProfile:
    return CATEGORY_PROFILES.get(category, CATEGORY_PROFILES[DEFAULT_CATEGORY])


def priority_multiplier(priority: int) -> float:
    return PRIORITY_MULTIPLIERS.get(priority, 1.0)


def deadline_multiplier(due_date: Optional[datetime], now: datetime) -> float:
    if due_date is None:
        return DEADLINE_NONE
    days_until_due = whole_days_between(due_date, now)
    if days_until_due < 0:
        return DEADLINE_OVERDUE
    if days_until_due == 0:
        return DEADLINE_TODAY
    if days_until_due == 1:
        return DEADLINE_TOMORROW
    if days_until_due <= 7:
        return DEADLINE_THIS_WEEK
    return DEADLINE_NONE


def recurrence_multiplier(recurrence: Optional[str]) -> float:
    """Discount for routine work; unrecognised patterns count as weekly."""
    if recurrence is None or not recurrence.strip():
        return RECURRENCE_ONE_OFF
    return _RECURRENCE_ALIASES.get(recurrence.strip().lower(), RECURRENCE_FALLBACK)


def fatigue_multiplier(fatigue_level: float) -> float:
    if fatigue_level <= 20:
        return 1.0
    if fatigue_level <= 40:
        return 1.1
    if fatigue_level <= 60:
        return 1.2
    if fatigue_level <= 80:
        return 1.4
    return 1.6


def complexity_multiplier(profile: CategoryProfile) -> float:
    return 1 + (
        profile.energy_cost * 0.2
        + profile.mental_load * 0.3
        + profile.time_required * 0.2
    )


def _validate_fatigue_level(fatigue_level: float) -> None:
    if not 0 <= fatigue_level <= 100:
        raise WeightValidationError("fatigue_level must be between 0 and 100")


def _format_factor(value: float) -> str:
    return f"x{value:g}"


def calculate_task_weight(task: Task, *, now: datetime, fatigue_level: float = 0) -> WeightResult:
    """Weigh a task; the explanation lists every factor that changed the result."""
    _validate_fatigue_level(fatigue_level)
    now = ensure_utc(now)
    profile = get_category_weight(task.category)
    explanation = [f"Base: {profile.base_weight:g} (category {task.category})"]

    priority = priority_multiplier(task.priority)
    deadline = deadline_multiplier(task.due_date, now)
    recurrence = recurrence_multiplier(task.recurrence)
    complexity = complexity_multiplier(profile)
    fatigue = fatigue_multiplier(fatigue_level)

    adjusted = float(profile.base_weight)

    adjusted *= priority
    if priority != 1.0:
        explanation.append(f"Priority {task.priority}: {_format_factor(priority)}")

    adjusted *= deadline
    if deadline != 1.0:
        explanation.append(f"Deadline: {_format_factor(deadline)}")

    adjusted *= recurrence
    if recurrence != 1.0:
        explanation.append(f"Recurrence: {_format_factor(recurrence)}")

    if task.is_critical:
        adjusted *= CRITICAL_MULTIPLIER
        explanation.append(f"Critical: {_format_factor(CRITICAL_MULTIPLIER)}")

    if task.requires_coordination:
        adjusted *= COORDINATION_MULTIPLIER
        explanation.append(f"Coordination: {_format_factor(COORDINATION_MULTIPLIER)}")

    adjusted *= complexity
    explanation.append(f"Complexity: x{complexity:.2f}")

    if fatigue_level > FATIGUE_APPLY_THRESHOLD:
        adjusted *= fatigue
        explanation.append(f"Fatigue ({fatigue_level:g}%): {_format_factor(fatigue)}")

    return WeightResult(
        task_id=task.id,
        base_weight=round(float(profile.base_weight), 1),
        adjusted_weight=round(adjusted, 1),
        components=WeightComponents(
            category_weight=float(profile.base_weight),
            priority_multiplier=priority,
            deadline_multiplier=deadline,
            recurrence_multiplier=recurrence,
            complexity_multiplier=round(complexity, 2),
            fatigue_multiplier=fatigue,
        ),
        explanation=explanation,
    )


class WeightEngine:
    """Clock-bound facade over the weighting functions."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock or SystemClock()

    def calculate_task_weight(
        self,
        task: Task,
        fatigue_level: float = 0,
        now: Optional[datetime] = None,
    ) -> WeightResult:
        result = calculate_task_weight(
            task,
            now=now if now is not None else self._clock.now(),
            fatigue_level=fatigue_level,
        )
        logger.debug(
            "Task weighed | task_id=%s | category=%s | base=%.1f | adjusted=%.1f",
            task.id,
            task.category,
            result.base_weight,
            result.adjusted_weight,
        )
        return result

    def total_weight(self, tasks: list[Task], now: Optional[datetime] = None) -> float:
        moment = now if now is not None else self._clock.now()
        return round(
            sum(calculate_task_weight(task, now=moment).adjusted_weight for task in tasks),
            1,
        )
