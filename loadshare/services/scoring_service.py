"""Multi-factor candidate scoring for a single task."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from loadshare.domain.constraints import ScoringWeights, validate_scoring_weights
from loadshare.domain.models import AssignmentScore, HistoricalLoadEntry, Member, ScoreComponents, Task
from loadshare.services.eligibility_service import check_eligibility
from loadshare.services.history_service import fatigue_level as history_fatigue_level
from loadshare.services.history_service import history_config_from_settings
from loadshare.services.rotation_service import RotationTracker
from loadshare.utils.clock import Clock, SystemClock, ensure_utc, whole_days_between
from loadshare.utils.config import Settings, get_settings
from loadshare.utils.logger import get_logger


logger = get_logger(__name__)

CANONICAL_WEIGHTS = ScoringWeights()

NEUTRAL_LOAD_BALANCE = 50.0
PREFERENCE_BASELINE = 50.0
PREFERENCE_BONUS = 40.0
NON_PREFERRED_PENALTY = 5.0
EXCLUSION_PROXIMITY_DAYS = 3
EXCLUSION_PROXIMITY_PENALTY = 20.0


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def load_balance_score(member: Member, all_members: Sequence[Member]) -> float:
    """Members below their ideal share score above 50, members above it below 50."""
    total_load = sum(candidate.current_load for candidate in all_members)
    if total_load == 0 or not all_members:
        return NEUTRAL_LOAD_BALANCE
    member_share = member.current_load / total_load * 100
    ideal_share = 100 / len(all_members)
    return _clamp(50 - (member_share - ideal_share))


def category_preference_score(member: Member, category: str) -> float:
    score = PREFERENCE_BASELINE
    if category in member.preferred_categories:
        score += PREFERENCE_BONUS
    else:
        score -= NON_PREFERRED_PENALTY
    return _clamp(score)


def skill_match_score(member: Member, required_skills: Sequence[str]) -> float:
    if not required_skills:
        return 100.0
    owned = set(member.skills)
    matched = sum(1 for skill in required_skills if skill in owned)
    return float(round(matched / len(required_skills) * 100))


def availability_score(member: Member, reference: datetime) -> float:
    score = 100.0
    load_percentage = member.load_percentage
    if load_percentage >= 90:
        score -= 50
    elif load_percentage >= 70:
        score -= 30
    elif load_percentage >= 50:
        score -= 10

    for period in member.exclusion_periods:
        days_until = whole_days_between(period.start, reference)
        if 0 < days_until <= EXCLUSION_PROXIMITY_DAYS:
            score -= EXCLUSION_PROXIMITY_PENALTY

    return _clamp(score)


def rotation_score(days_since_assigned: Optional[int]) -> float:
    if days_since_assigned is None or days_since_assigned >= 14:
        return 100.0
    if days_since_assigned >= 7:
        return 80.0
    if days_since_assigned >= 3:
        return 60.0
    if days_since_assigned >= 1:
        return 40.0
    return 20.0


def fatigue_score(fatigue: float) -> float:
    if fatigue <= 20:
        return 100.0
    if fatigue <= 40:
        return 80.0
    if fatigue <= 60:
        return 60.0
    if fatigue <= 80:
        return 40.0
    return 20.0


def weighted_total(components: ScoreComponents, weights: ScoringWeights = CANONICAL_WEIGHTS) -> int:
    total = (
        components.load_balance * weights.load_balance
        + components.category_preference * weights.category_preference
        + components.skill_match * weights.skill_match
        + components.availability * weights.availability
        + components.rotation * weights.rotation
        + components.fatigue * weights.fatigue
    )
    return int(_clamp(round(total)))


def ineligible_score(member: Member, reason: Optional[str], code: Optional[str]) -> AssignmentScore:
    return AssignmentScore(
        user_id=member.id,
        user_name=member.display_name,
        total_score=0,
        components=ScoreComponents(),
        eligible=False,
        disqualify_reason=reason or "Member is not eligible",
        disqualify_code=code,
    )


class ScoringEngine:
    """Scores candidates with a fixed, validated weight profile."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        weights: Optional[ScoringWeights] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock or SystemClock()
        self._weights = weights or CANONICAL_WEIGHTS
        validate_scoring_weights(self._weights)
        self._history_config = history_config_from_settings(self._settings)

    @property
    def weights(self) -> ScoringWeights:
        return self._weights

    def score_candidate(
        self,
        member: Member,
        task: Task,
        all_members: Sequence[Member],
        history: Sequence[HistoricalLoadEntry],
        tracker: RotationTracker,
        target_date: Optional[datetime] = None,
        fatigue_level: Optional[float] = None,
    ) -> AssignmentScore:
        now = self._clock.now()
        reference = ensure_utc(target_date) if target_date is not None else now

        verdict = check_eligibility(member, task, target_date=reference)
        if not verdict.eligible:
            return ineligible_score(member, verdict.reason, verdict.code)

        if fatigue_level is None:
            fatigue_level = history_fatigue_level(
                history,
                member.id,
                now=now,
                config=self._history_config,
            )

        components = ScoreComponents(
            load_balance=load_balance_score(member, all_members),
            category_preference=category_preference_score(member, task.category),
            skill_match=skill_match_score(member, task.required_skills),
            availability=availability_score(member, reference),
            rotation=rotation_score(tracker.days_since(task.category, member.id, reference)),
            fatigue=fatigue_score(fatigue_level),
        )
        score = AssignmentScore(
            user_id=member.id,
            user_name=member.display_name,
            total_score=weighted_total(components, self._weights),
            components=components,
            eligible=True,
        )
        logger.debug(
            "Candidate scored | task_id=%s | member_id=%s | total=%s | components=%s",
            task.id,
            member.id,
            score.total_score,
            components.to_dict(),
        )
        return score

    def score_all(
        self,
        task: Task,
        candidates: Sequence[Member],
        history: Sequence[HistoricalLoadEntry],
        tracker: RotationTracker,
        target_date: Optional[datetime] = None,
    ) -> list[AssignmentScore]:
        return [
            self.score_candidate(
                candidate,
                task,
                candidates,
                history,
                tracker,
                target_date=target_date,
            )
            for candidate in candidates
        ]
