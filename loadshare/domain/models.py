"""Domain models for load weighting, fair assignment and workload health.

Inputs are validated pydantic snapshots: malformed values (priority outside
1-3, negative weights, unparsable dates) fail at construction with a
``pydantic.ValidationError`` naming the offending field. Outputs are frozen
dataclasses produced by the services.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import StrEnum
from typing import Annotated, Any, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
)

from loadshare.utils.clock import ensure_utc


def _coerce_calendar_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return ensure_utc(value)
    return value


UtcDateTime = Annotated[
    datetime,
    BeforeValidator(_coerce_calendar_value),
    AfterValidator(ensure_utc),
]


class LoadTrend(StrEnum):
    DECREASING = "decreasing"
    STABLE = "stable"
    INCREASING = "increasing"


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class Task(_Snapshot):
    id: str = Field(min_length=1)
    title: str = ""
    category: str = Field(min_length=1)
    priority: int = Field(default=2, ge=1, le=3)
    due_date: Optional[UtcDateTime] = None
    recurrence: Optional[str] = None
    is_critical: bool = False
    requires_coordination: bool = False
    required_skills: tuple[str, ...] = ()
    estimated_minutes: float = Field(default=0.0, ge=0.0)
    task_type: Optional[str] = None


class ExclusionPeriod(_Snapshot):
    start: UtcDateTime
    end: UtcDateTime
    reason: Optional[str] = None

    @field_validator("end")
    @classmethod
    def validate_end_after_start(cls, value: datetime, info: ValidationInfo) -> datetime:
        start = info.data.get("start")
        if start is not None and value < start:
            raise ValueError("end must not be before start")
        return value

    def contains(self, moment: datetime) -> bool:
        return self.start <= ensure_utc(moment) <= self.end


class Member(_Snapshot):
    id: str = Field(min_length=1)
    name: str = ""
    is_active: bool = True
    current_load: float = Field(default=0.0, ge=0.0)
    max_weekly_load: float = Field(default=20.0, gt=0.0)
    preferred_categories: tuple[str, ...] = ()
    blocked_categories: tuple[str, ...] = ()
    skills: tuple[str, ...] = ()
    exclusion_periods: tuple[ExclusionPeriod, ...] = ()

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def load_percentage(self) -> float:
        if self.max_weekly_load <= 0:
            return 100.0
        return self.current_load / self.max_weekly_load * 100.0

    def with_load(self, current_load: float) -> "Member":
        return self.model_copy(update={"current_load": float(current_load)})

    def with_exclusion_periods(self, periods: tuple[ExclusionPeriod, ...]) -> "Member":
        return self.model_copy(update={"exclusion_periods": tuple(periods)})


class HistoricalLoadEntry(_Snapshot):
    date: UtcDateTime
    user_id: str = Field(min_length=1)
    task_id: str = Field(min_length=1)
    category: str = Field(min_length=1)
    weight: float = Field(ge=0.0)
    was_completed: bool = True
    minutes_spent: Optional[float] = Field(default=None, ge=0.0)


class WorkloadDataPoint(_Snapshot):
    timestamp: UtcDateTime
    task_count: int = Field(ge=0)
    total_minutes: float = Field(default=0.0, ge=0.0)
    categories: dict[str, int] = Field(default_factory=dict)
    is_holiday: bool = False

    @field_validator("categories")
    @classmethod
    def validate_category_counts(cls, value: dict[str, int]) -> dict[str, int]:
        for category, count in value.items():
            if count < 0:
                raise ValueError(f"category count for '{category}' must be >= 0")
        return value

    @property
    def day_of_week(self) -> int:
        """Monday is 0, Sunday is 6."""
        return self.timestamp.weekday()

    @property
    def week_of_year(self) -> int:
        return self.timestamp.isocalendar().week

    @property
    def iso_year(self) -> int:
        return self.timestamp.isocalendar().year

    @property
    def month(self) -> int:
        return self.timestamp.month


class PendingTask(_Snapshot):
    """A not-yet-done task as seen by the burnout tooling (1 = high priority)."""

    id: str = Field(min_length=1)
    name: str = ""
    assigned_to: Optional[str] = None
    priority: int = Field(default=2, ge=1, le=3)
    can_delay: bool = True
    can_reassign: bool = True


class MemberAvailabilityWindow(_Snapshot):
    member_id: str = Field(min_length=1)
    name: str = ""
    available_days: tuple[int, ...] = (0, 1, 2, 3, 4)

    @field_validator("available_days")
    @classmethod
    def validate_weekdays(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        for day in value:
            if not 0 <= day <= 6:
                raise ValueError("available_days entries must be between 0 (Monday) and 6 (Sunday)")
        return value


class SkillLevel(_Snapshot):
    level: float = Field(default=0.0, ge=0.0, le=10.0)
    experience: int = Field(default=0, ge=0)
    last_used: Optional[UtcDateTime] = None
    growth_rate: float = 0.0


class SkillProfile(_Snapshot):
    """What a member can do and would like to do, used for delegation."""

    member_id: str = Field(min_length=1)
    skills: dict[str, SkillLevel] = Field(default_factory=dict)
    preferred_categories: tuple[str, ...] = ()
    learning_interests: tuple[str, ...] = ()
    certifications: tuple[str, ...] = ()

    def skill_level(self, skill: str) -> float:
        known = self.skills.get(skill)
        return known.level if known is not None else 0.0


class AvailabilitySlot(_Snapshot):
    """A time window on a given day with room for ``capacity`` more tasks."""

    member_id: str = Field(min_length=1)
    date: UtcDateTime
    start_time: time
    end_time: time
    capacity: int = Field(default=0, ge=0)
    preferred_task_types: tuple[str, ...] = ()

    @field_validator("end_time")
    @classmethod
    def validate_end_after_start(cls, value: time, info: ValidationInfo) -> time:
        start = info.data.get("start_time")
        if start is not None and value < start:
            raise ValueError("end_time must not be before start_time")
        return value

    @property
    def available_minutes(self) -> int:
        start = self.start_time.hour * 60 + self.start_time.minute
        end = self.end_time.hour * 60 + self.end_time.minute
        return end - start

    def falls_on(self, moment: datetime) -> bool:
        return self.date.date() == ensure_utc(moment).date()


class DelegationCandidate(_Snapshot):
    id: str = Field(min_length=1)
    name: str = ""
    skill_profile: SkillProfile
    availability: tuple[AvailabilitySlot, ...] = ()
    current_load: float = Field(default=0.0, ge=0.0)
    max_load: float = Field(default=20.0, ge=0.0)

    @classmethod
    def from_member(
        cls,
        member: Member,
        skill_profile: Optional[SkillProfile] = None,
        availability: tuple[AvailabilitySlot, ...] = (),
    ) -> "DelegationCandidate":
        profile = skill_profile or SkillProfile(
            member_id=member.id,
            preferred_categories=member.preferred_categories,
        )
        return cls(
            id=member.id,
            name=member.display_name,
            skill_profile=profile,
            availability=tuple(availability),
            current_load=member.current_load,
            max_load=member.max_weekly_load,
        )

    @property
    def display_name(self) -> str:
        return self.name or self.id

    @property
    def load_percentage(self) -> float:
        if self.max_load <= 0:
            return 100.0
        return self.current_load / self.max_load * 100.0


@dataclass(frozen=True)
class WeightComponents:
    category_weight: float
    priority_multiplier: float
    deadline_multiplier: float
    recurrence_multiplier: float
    complexity_multiplier: float
    fatigue_multiplier: float


@dataclass(frozen=True)
class WeightResult:
    task_id: str
    base_weight: float
    adjusted_weight: float
    components: WeightComponents
    explanation: list[str]


@dataclass(frozen=True)
class EligibilityVerdict:
    eligible: bool
    code: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class ScoreComponents:
    load_balance: float = 0.0
    category_preference: float = 0.0
    skill_match: float = 0.0
    availability: float = 0.0
    rotation: float = 0.0
    fatigue: float = 0.0

    def to_dict(self) -> dict[str, float]:
        return {
            "load_balance": self.load_balance,
            "category_preference": self.category_preference,
            "skill_match": self.skill_match,
            "availability": self.availability,
            "rotation": self.rotation,
            "fatigue": self.fatigue,
        }


@dataclass(frozen=True)
class AssignmentScore:
    user_id: str
    user_name: str
    total_score: int
    components: ScoreComponents
    eligible: bool
    disqualify_reason: Optional[str] = None
    disqualify_code: Optional[str] = None


@dataclass(frozen=True)
class AlternativeCandidate:
    user_id: str
    user_name: str
    score: int


@dataclass(frozen=True)
class AssignmentSelection:
    task_id: str
    assigned_to: Optional[str]
    assigned_to_name: Optional[str]
    score: Optional[AssignmentScore]
    alternatives: list[AlternativeCandidate]
    was_forced: bool
    explanation: list[str]
    candidate_scores: list[AssignmentScore] = field(default_factory=list)

    @property
    def assigned(self) -> bool:
        return self.assigned_to is not None


@dataclass(frozen=True)
class UnassignedTask:
    task_id: str
    reason: str
    details: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class BalanceImpact:
    before_score: int
    after_score: int

    @property
    def improvement(self) -> int:
        return self.after_score - self.before_score


@dataclass(frozen=True)
class DailyWorkload:
    date: datetime
    task_count: int
    minutes_worked: float
    load_percentage: float
    was_overloaded: bool

    @classmethod
    def from_counts(
        cls,
        day: datetime,
        task_count: int,
        minutes_worked: float,
        max_daily_tasks: int,
        overload_percent: float = 80.0,
    ) -> "DailyWorkload":
        if max_daily_tasks > 0:
            load_percentage = round(task_count / max_daily_tasks * 100)
        else:
            load_percentage = 0
        return cls(
            date=ensure_utc(day),
            task_count=task_count,
            minutes_worked=minutes_worked,
            load_percentage=float(load_percentage),
            was_overloaded=load_percentage >= overload_percent,
        )


class AssignedTask(_Snapshot):
    """An existing assignment considered for rebalancing."""

    task_id: str = Field(min_length=1)
    title: str = ""
    category: str = Field(min_length=1)
    assigned_to: str = Field(min_length=1)
    weight: float = Field(ge=0.0)
