"""Hard assignment constraints and exclusion-period bookkeeping."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Optional, Sequence

from loadshare.domain.models import EligibilityVerdict, ExclusionPeriod, Member, Task
from loadshare.utils.clock import Clock, SystemClock, ensure_utc
from loadshare.utils.logger import get_logger


logger = get_logger(__name__)

MIN_SKILL_MATCH_RATIO = 0.5
DEFAULT_EXCLUSION_REASON = "Exclusion period"


class IneligibilityCode(StrEnum):
    INACTIVE = "inactive"
    EXCLUDED = "excluded"
    BLOCKED_CATEGORY = "blocked_category"
    INSUFFICIENT_SKILLS = "insufficient_skills"
    OVER_CAPACITY = "over_capacity"


@dataclass(frozen=True)
class SkillMatch:
    has_skills: bool
    match_ratio: float


def find_exclusion(member: Member, moment: datetime) -> Optional[ExclusionPeriod]:
    for period in member.exclusion_periods:
        if period.contains(moment):
            return period
    return None


def is_in_exclusion_period(member: Member, moment: datetime) -> bool:
    return find_exclusion(member, moment) is not None


def can_handle_category(member: Member, category: str) -> bool:
    return category not in member.blocked_categories


def skill_match(member: Member, required_skills: Sequence[str]) -> SkillMatch:
    if not required_skills:
        return SkillMatch(has_skills=True, match_ratio=1.0)
    owned = set(member.skills)
    matched = sum(1 for skill in required_skills if skill in owned)
    ratio = matched / len(required_skills)
    return SkillMatch(has_skills=ratio >= MIN_SKILL_MATCH_RATIO, match_ratio=ratio)


def has_capacity(member: Member) -> bool:
    return member.load_percentage < 100


def check_eligibility(member: Member, task: Task, *, target_date: datetime) -> EligibilityVerdict:
    """Run the ordered checks and stop at the first failure."""
    if not member.is_active:
        return EligibilityVerdict(
            eligible=False,
            code=IneligibilityCode.INACTIVE,
            reason="Member is inactive",
        )

    exclusion = find_exclusion(member, target_date)
    if exclusion is not None:
        return EligibilityVerdict(
            eligible=False,
            code=IneligibilityCode.EXCLUDED,
            reason=exclusion.reason or DEFAULT_EXCLUSION_REASON,
        )

    if not can_handle_category(member, task.category):
        return EligibilityVerdict(
            eligible=False,
            code=IneligibilityCode.BLOCKED_CATEGORY,
            reason=f"Blocked category: {task.category}",
        )

    skills = skill_match(member, task.required_skills)
    if not skills.has_skills:
        return EligibilityVerdict(
            eligible=False,
            code=IneligibilityCode.INSUFFICIENT_SKILLS,
            reason=f"Insufficient skills ({round(skills.match_ratio * 100)}%)",
        )

    if not has_capacity(member):
        return EligibilityVerdict(
            eligible=False,
            code=IneligibilityCode.OVER_CAPACITY,
            reason=f"Capacity exceeded ({round(member.load_percentage)}%)",
        )

    return EligibilityVerdict(eligible=True)


def add_exclusion_period(member: Member, period: ExclusionPeriod) -> Member:
    return member.with_exclusion_periods(member.exclusion_periods + (period,))


def cleanup_exclusion_periods(member: Member, reference: datetime) -> Member:
    """Drop periods that ended before ``reference``."""
    reference = ensure_utc(reference)
    return member.with_exclusion_periods(
        tuple(period for period in member.exclusion_periods if period.end >= reference)
    )


def upcoming_exclusions(member: Member, *, now: datetime, days_ahead: int = 7) -> list[ExclusionPeriod]:
    now = ensure_utc(now)
    cutoff = now + timedelta(days=days_ahead)
    return [period for period in member.exclusion_periods if now <= period.start <= cutoff]


class EligibilityFilter:
    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or SystemClock()

    def check(
        self,
        member: Member,
        task: Task,
        target_date: Optional[datetime] = None,
    ) -> EligibilityVerdict:
        moment = ensure_utc(target_date) if target_date is not None else self._clock.now()
        verdict = check_eligibility(member, task, target_date=moment)
        if not verdict.eligible:
            logger.debug(
                "Candidate rejected | member_id=%s | task_id=%s | code=%s",
                member.id,
                task.id,
                verdict.code,
            )
        return verdict

    def eligible_members(
        self,
        members: Sequence[Member],
        task: Task,
        target_date: Optional[datetime] = None,
    ) -> list[Member]:
        return [member for member in members if self.check(member, task, target_date).eligible]

    def cleanup_exclusion_periods(self, member: Member, reference: Optional[datetime] = None) -> Member:
        return cleanup_exclusion_periods(member, reference if reference is not None else self._clock.now())

    def upcoming_exclusions(self, member: Member, days_ahead: int = 7) -> list[ExclusionPeriod]:
        return upcoming_exclusions(member, now=self._clock.now(), days_ahead=days_ahead)
