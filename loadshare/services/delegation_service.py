"""Delegation suggestions, smart assignment and the delegation request lifecycle."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Mapping, Optional, Sequence

import numpy as np

from loadshare.domain.constraints import DelegationPolicy, validate_delegation_policy
from loadshare.domain.models import (
    AvailabilitySlot,
    DelegationCandidate,
    SkillLevel,
    SkillProfile,
    Task,
)
from loadshare.utils.clock import Clock, SystemClock, ensure_utc
from loadshare.utils.config import Settings, get_settings
from loadshare.utils.identifiers import IdSource, uuid_id_source
from loadshare.utils.logger import get_logger


logger = get_logger(__name__)

DEFAULT_DELEGATION_POLICY = DelegationPolicy()

MIN_SUGGESTION_SCORE = 40
MAX_SMART_ALTERNATIVES = 3

PREFERRED_CATEGORY_SCORE = 90
NEUTRAL_CATEGORY_SCORE = 50
NO_SKILL_PREFERRED_SCORE = 80
NO_SKILL_NEUTRAL_SCORE = 60
LEARNING_SKILL_SCORE = 30
MISSING_SKILL_SCORE = 10
CERTIFICATION_BONUS = 5
MAX_CERTIFICATION_BONUS = 15

NO_AVAILABILITY_SCORE = 20
STRONG_FACTOR_IMPACT = 0.3
HISTORY_BONUS_SCALE = 20
HISTORY_CONFIDENCE_BOOST = 0.15
HISTORY_CONFIDENCE_MIN_RECORDS = 5

ACCEPTED_STATUSES = frozenset({"accepted", "completed"})


class DelegationValidationError(ValueError):
    """Raised when delegation inputs are invalid."""


class DelegationStateError(DelegationValidationError):
    """Raised when a request is moved through an invalid lifecycle transition."""


class DelegationReason(StrEnum):
    OVERLOAD = "overload"
    SKILL_MATCH = "skill_match"
    PREFERENCE_MATCH = "preference_match"
    AVAILABILITY = "availability"
    FAIRNESS = "fairness"
    EFFICIENCY = "efficiency"
    LEARNING_OPPORTUNITY = "learning_opportunity"


class DelegationStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    EXPIRED = "expired"
    COMPLETED = "completed"


_REASON_SUMMARY = {
    DelegationReason.OVERLOAD: "to reduce workload",
    DelegationReason.SKILL_MATCH: "based on skill match",
    DelegationReason.PREFERENCE_MATCH: "based on preferences",
    DelegationReason.AVAILABILITY: "based on availability",
    DelegationReason.FAIRNESS: "for fair distribution",
    DelegationReason.EFFICIENCY: "for efficiency",
    DelegationReason.LEARNING_OPPORTUNITY: "as a learning opportunity",
}


@dataclass(frozen=True)
class DelegationFactor:
    name: str
    impact: float
    description: str
    weight: float


@dataclass(frozen=True)
class FactorScore:
    score: int
    factors: list[DelegationFactor]


@dataclass(frozen=True)
class BestWindow:
    date: datetime
    score: int
    slot: AvailabilitySlot


@dataclass(frozen=True)
class DelegationSuggestion:
    suggestion_id: str
    task_id: str
    task_name: str
    task_category: str
    from_member: str
    to_member: str
    to_member_name: str
    reason: DelegationReason
    score: int
    confidence: float
    factors: list[DelegationFactor]
    expires_at: datetime
    created_at: datetime

    def summary(self) -> str:
        return (
            f'Delegate "{self.task_name}" to {self.to_member_name} '
            f"{_REASON_SUMMARY[self.reason]} (Score: {self.score})"
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "suggestion_id": self.suggestion_id,
            "task_id": self.task_id,
            "task_name": self.task_name,
            "task_category": self.task_category,
            "from_member": self.from_member,
            "to_member": self.to_member,
            "to_member_name": self.to_member_name,
            "reason": str(self.reason),
            "score": self.score,
            "confidence": self.confidence,
            "factors": [
                {
                    "name": factor.name,
                    "impact": factor.impact,
                    "description": factor.description,
                    "weight": factor.weight,
                }
                for factor in self.factors
            ],
            "expires_at": self.expires_at.isoformat(),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class DelegationFeedback:
    accepted: bool
    would_accept_again: bool
    rating: Optional[int] = None
    comment: Optional[str] = None
    time_to_complete: Optional[float] = None

    def __post_init__(self) -> None:
        if self.rating is not None and not 1 <= self.rating <= 5:
            raise DelegationValidationError("rating must be between 1 and 5")
        if self.time_to_complete is not None and self.time_to_complete < 0:
            raise DelegationValidationError("time_to_complete must be >= 0")


@dataclass(frozen=True)
class DelegationRequest:
    request_id: str
    task_id: str
    from_member: str
    to_member: str
    reason: str
    status: DelegationStatus
    requested_at: datetime
    responded_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    feedback: Optional[DelegationFeedback] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "request_id": self.request_id,
            "task_id": self.task_id,
            "from_member": self.from_member,
            "to_member": self.to_member,
            "reason": self.reason,
            "status": str(self.status),
            "requested_at": self.requested_at.isoformat(),
            "responded_at": self.responded_at.isoformat() if self.responded_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "feedback": None
            if self.feedback is None
            else {
                "accepted": self.feedback.accepted,
                "would_accept_again": self.feedback.would_accept_again,
                "rating": self.feedback.rating,
                "comment": self.feedback.comment,
                "time_to_complete": self.feedback.time_to_complete,
            },
        }


@dataclass(frozen=True)
class DelegationRecord:
    delegation_id: str
    task_category: str
    from_member: str
    to_member: str
    status: DelegationStatus
    timestamp: datetime
    feedback: Optional[DelegationFeedback] = None


@dataclass(frozen=True)
class DelegationHistory:
    member_id: str
    delegations_received: tuple[DelegationRecord, ...] = ()
    delegations_sent: tuple[DelegationRecord, ...] = ()
    acceptance_rate: float = 0.0
    avg_completion_time: float = 0.0
    category_preferences: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class DelegationAlternative:
    member_id: str
    member_name: str
    score: int
    available_capacity: float
    reason: str


@dataclass(frozen=True)
class SmartAssignment:
    task_id: str
    recommended_member: str
    alternatives: list[DelegationAlternative]
    reasoning: list[str]
    score: int
    auto_assignable: bool


def delegation_policy_from_settings(settings: Settings) -> DelegationPolicy:
    policy = DelegationPolicy(
        auto_suggest_enabled=settings.delegation_auto_suggest_enabled,
        auto_assign_threshold=settings.delegation_auto_assign_threshold,
        max_pending_per_member=settings.delegation_max_pending_per_member,
        expiration_hours=settings.delegation_expiration_hours,
        require_acceptance=settings.delegation_require_acceptance,
    )
    validate_delegation_policy(policy)
    return policy


def create_skill_profile(
    member_id: str,
    preferred_categories: Sequence[str] = (),
    learning_interests: Sequence[str] = (),
) -> SkillProfile:
    return SkillProfile(
        member_id=member_id,
        preferred_categories=tuple(preferred_categories),
        learning_interests=tuple(learning_interests),
    )


def create_delegation_history(member_id: str) -> DelegationHistory:
    return DelegationHistory(member_id=member_id)


def calculate_skill_match_score(
    profile: SkillProfile,
    required_skills: Sequence[str],
    task_category: str,
) -> FactorScore:
    """Average per-skill score (level out of 10, as a percentage) plus a certification bonus.

    Missing skills score 30 when the member wants to learn them and 10
    otherwise; every skill carries the same weight.
    """
    if not required_skills:
        preferred = task_category in profile.preferred_categories
        return FactorScore(
            score=NO_SKILL_PREFERRED_SCORE if preferred else NO_SKILL_NEUTRAL_SCORE,
            factors=[
                DelegationFactor(
                    name="no_skill_requirement",
                    impact=STRONG_FACTOR_IMPACT if preferred else 0.0,
                    description=(
                        "Task category matches member preference" if preferred else "No specific skills required"
                    ),
                    weight=1.0,
                )
            ],
        )

    factors: list[DelegationFactor] = []
    weight = 1 / len(required_skills)
    total = 0.0
    for skill in required_skills:
        known = profile.skills.get(skill)
        if known is not None:
            skill_score = known.level / 10 * 100
            total += skill_score * weight
            factors.append(
                DelegationFactor(
                    name=f"skill_{skill}",
                    impact=(skill_score - 50) / 50,
                    description=f"{skill}: level {known.level:g}/10 ({known.experience} tasks completed)",
                    weight=weight,
                )
            )
        elif skill in profile.learning_interests:
            total += LEARNING_SKILL_SCORE * weight
            factors.append(
                DelegationFactor(
                    name=f"learning_{skill}",
                    impact=-0.2,
                    description=f"{skill}: not skilled yet but interested in learning",
                    weight=weight,
                )
            )
        else:
            total += MISSING_SKILL_SCORE * weight
            factors.append(
                DelegationFactor(
                    name=f"skill_{skill}",
                    impact=-0.5,
                    description=f"{skill}: skill not found",
                    weight=weight,
                )
            )

    lowered = [skill.lower() for skill in required_skills]
    relevant_certifications = [
        certification
        for certification in profile.certifications
        if any(skill in certification.lower() for skill in lowered)
    ]
    if relevant_certifications:
        bonus = min(MAX_CERTIFICATION_BONUS, len(relevant_certifications) * CERTIFICATION_BONUS)
        total += bonus
        factors.append(
            DelegationFactor(
                name="certifications",
                impact=bonus / 30,
                description=f"Has {len(relevant_certifications)} relevant certification(s)",
                weight=0.15,
            )
        )

    return FactorScore(score=min(100, round(total)), factors=factors)


def update_skill_profile(
    profile: SkillProfile,
    skills: Sequence[str],
    performance: float,
    *,
    now: datetime,
) -> SkillProfile:
    """Record one completed task using ``skills``; ``performance`` is a 0-10 rating."""
    if not 0 <= performance <= 10:
        raise DelegationValidationError("performance must be between 0 and 10")
    now = ensure_utc(now)
    updated = dict(profile.skills)
    for skill in skills:
        existing = updated.get(skill)
        if existing is None:
            updated[skill] = SkillLevel(
                level=min(3.0, performance / 3),
                experience=1,
                last_used=now,
                growth_rate=0.1,
            )
            continue
        growth = 0.1 if performance >= 7 else 0.05 if performance >= 5 else 0.0
        updated[skill] = SkillLevel(
            level=min(10.0, existing.level + growth),
            experience=existing.experience + 1,
            last_used=now,
            growth_rate=(existing.growth_rate + growth) / 2,
        )
    return profile.model_copy(update={"skills": updated})


def calculate_availability_score(
    slots: Sequence[AvailabilitySlot],
    task_date: datetime,
    estimated_minutes: float,
) -> FactorScore:
    relevant = [slot for slot in slots if slot.falls_on(task_date)]
    if not relevant:
        return FactorScore(
            score=NO_AVAILABILITY_SCORE,
            factors=[
                DelegationFactor(
                    name="no_availability",
                    impact=-0.8,
                    description="No availability windows on the target date",
                    weight=1.0,
                )
            ],
        )

    factors: list[DelegationFactor] = []
    available_minutes = sum(slot.available_minutes for slot in relevant)
    capacity = sum(slot.capacity for slot in relevant)

    if available_minutes < estimated_minutes:
        factors.append(
            DelegationFactor(
                name="insufficient_time",
                impact=-0.5,
                description=f"Only {available_minutes} minutes available, need {estimated_minutes:g}",
                weight=0.5,
            )
        )

    if capacity <= 0:
        factors.append(
            DelegationFactor(
                name="no_capacity",
                impact=-0.7,
                description="Member has no remaining task capacity",
                weight=0.3,
            )
        )
    else:
        factors.append(
            DelegationFactor(
                name="available_capacity",
                impact=min(0.5, capacity / 5 * 0.5),
                description=f"{capacity} task(s) remaining capacity",
                weight=0.3,
            )
        )

    score = 50
    if available_minutes >= estimated_minutes:
        score += 25
    elif available_minutes >= estimated_minutes * 0.7:
        score += 10
    if capacity > 0:
        score += min(25, capacity * 5)

    return FactorScore(score=max(0, min(100, score)), factors=factors)


def find_best_windows(
    slots: Sequence[AvailabilitySlot],
    estimated_minutes: float,
    days_ahead: int = 7,
    *,
    now: datetime,
) -> list[BestWindow]:
    """Slots over the next ``days_ahead`` days long enough for the task, best first."""
    now = ensure_utc(now)
    results: list[BestWindow] = []
    for offset in range(days_ahead):
        target = now + timedelta(days=offset)
        for slot in slots:
            if not slot.falls_on(target) or slot.capacity <= 0:
                continue
            if slot.available_minutes < estimated_minutes:
                continue
            if estimated_minutes > 0:
                score = round(slot.available_minutes / estimated_minutes * 50 + slot.capacity * 10)
            else:
                score = 100
            results.append(BestWindow(date=target, score=min(100, score), slot=slot))
    return sorted(results, key=lambda window: window.score, reverse=True)


def fairness_score(candidate: DelegationCandidate) -> float:
    return max(0.0, 100 - candidate.load_percentage)


def _confidence(factors: Sequence[DelegationFactor], history: Optional[DelegationHistory]) -> float:
    impacts = np.asarray([factor.impact for factor in factors], dtype=float)
    confidence = 0.5
    if impacts.size:
        confidence += float(impacts.mean()) * 0.3 - float(impacts.var()) * 0.2
    if history is not None and len(history.delegations_received) >= HISTORY_CONFIDENCE_MIN_RECORDS:
        confidence += HISTORY_CONFIDENCE_BOOST
    return max(0.1, min(0.95, confidence))


def _primary_reason(
    factors: Sequence[DelegationFactor],
    candidate: DelegationCandidate,
    assignee: Optional[DelegationCandidate],
) -> DelegationReason:
    top = max(factors, key=lambda factor: factor.impact) if factors else None
    if top is not None and top.impact > STRONG_FACTOR_IMPACT:
        if top.name.startswith("skill_"):
            return DelegationReason.SKILL_MATCH
        if top.name == "preference":
            return DelegationReason.PREFERENCE_MATCH
        if top.name == "fairness":
            return DelegationReason.FAIRNESS
    if assignee is not None and assignee.current_load >= assignee.max_load:
        return DelegationReason.OVERLOAD
    if candidate.current_load < candidate.max_load * 0.5:
        return DelegationReason.AVAILABILITY
    if any(factor.name.startswith("learning_") for factor in factors):
        return DelegationReason.LEARNING_OPPORTUNITY
    return DelegationReason.EFFICIENCY


def pending_counts(requests: Sequence[DelegationRequest]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for request in requests:
        if request.status == DelegationStatus.PENDING:
            counts[request.to_member] = counts.get(request.to_member, 0) + 1
    return counts


def generate_delegation_suggestions(
    task: Task,
    current_assignee: str,
    candidates: Sequence[DelegationCandidate],
    history: Mapping[str, DelegationHistory],
    policy: DelegationPolicy = DEFAULT_DELEGATION_POLICY,
    *,
    now: datetime,
    id_source: IdSource = uuid_id_source,
    pending_requests: Sequence[DelegationRequest] = (),
) -> list[DelegationSuggestion]:
    """Scored hand-off targets for ``task`` other than ``current_assignee``, best first.

    Members already holding ``max_pending_per_member`` pending requests are
    skipped and suggestions scoring under 40 are dropped.
    """
    if not policy.auto_suggest_enabled:
        return []
    now = ensure_utc(now)
    target_date = task.due_date or now
    pending = pending_counts(pending_requests)
    assignee = next((candidate for candidate in candidates if candidate.id == current_assignee), None)

    suggestions: list[DelegationSuggestion] = []
    for candidate in candidates:
        if candidate.id == current_assignee:
            continue
        if pending.get(candidate.id, 0) >= policy.max_pending_per_member:
            logger.debug(
                "Delegation candidate skipped | member_id=%s | pending=%s",
                candidate.id,
                pending[candidate.id],
            )
            continue

        profile = candidate.skill_profile
        skill_match = calculate_skill_match_score(profile, task.required_skills, task.category)
        availability = calculate_availability_score(candidate.availability, target_date, task.estimated_minutes)
        fairness = fairness_score(candidate)
        preferred = task.category in profile.preferred_categories
        preference = PREFERRED_CATEGORY_SCORE if preferred else NEUTRAL_CATEGORY_SCORE

        factors = [*skill_match.factors, *availability.factors]
        factors.append(
            DelegationFactor(
                name="fairness",
                impact=(fairness - 50) / 50,
                description=f"Current load: {round(candidate.load_percentage)}%",
                weight=policy.fairness_weight,
            )
        )
        factors.append(
            DelegationFactor(
                name="preference",
                impact=(preference - 50) / 50,
                description="Category is preferred" if preferred else "Category is neutral",
                weight=policy.preference_weight,
            )
        )

        total = (
            skill_match.score * policy.skill_match_weight
            + availability.score * policy.availability_weight
            + fairness * policy.fairness_weight
            + preference * policy.preference_weight
        )

        member_history = history.get(candidate.id)
        if member_history is not None:
            acceptance = member_history.category_preferences.get(task.category, 0.5)
            total += (acceptance - 0.5) * HISTORY_BONUS_SCALE
            factors.append(
                DelegationFactor(
                    name="history",
                    impact=acceptance - 0.5,
                    description=f"Historical acceptance rate for {task.category}: {round(acceptance * 100)}%",
                    weight=0.1,
                )
            )

        if total < MIN_SUGGESTION_SCORE:
            continue

        suggestions.append(
            DelegationSuggestion(
                suggestion_id=id_source(),
                task_id=task.id,
                task_name=task.title or task.id,
                task_category=task.category,
                from_member=current_assignee,
                to_member=candidate.id,
                to_member_name=candidate.display_name,
                reason=_primary_reason(factors, candidate, assignee),
                score=round(total),
                confidence=_confidence(factors, member_history),
                factors=factors,
                expires_at=now + timedelta(hours=policy.expiration_hours),
                created_at=now,
            )
        )

    return sorted(suggestions, key=lambda suggestion: suggestion.score, reverse=True)


def generate_smart_assignment(
    task: Task,
    candidates: Sequence[DelegationCandidate],
    policy: DelegationPolicy = DEFAULT_DELEGATION_POLICY,
    *,
    now: datetime,
    max_alternatives: int = MAX_SMART_ALTERNATIVES,
) -> Optional[SmartAssignment]:
    """Best member for a not-yet-assigned task; ``None`` when nobody is available."""
    if not candidates:
        return None
    target_date = task.due_date or ensure_utc(now)

    ranked: list[tuple[DelegationCandidate, int, list[str]]] = []
    for candidate in candidates:
        reasoning: list[str] = []
        skill_match = calculate_skill_match_score(candidate.skill_profile, task.required_skills, task.category)
        if skill_match.score > 70:
            reasoning.append("Strong skill match")
        elif skill_match.score < 40:
            reasoning.append("Limited skill match")

        availability = calculate_availability_score(candidate.availability, target_date, task.estimated_minutes)
        if availability.score > 70:
            reasoning.append("Good availability")
        elif availability.score < 40:
            reasoning.append("Limited availability")

        fairness = fairness_score(candidate)
        if fairness > 70:
            reasoning.append("Has capacity available")
        elif fairness < 30:
            reasoning.append("Already heavily loaded")

        if task.category in candidate.skill_profile.preferred_categories:
            preference = PREFERRED_CATEGORY_SCORE
            reasoning.append("Prefers this category")
        else:
            preference = NEUTRAL_CATEGORY_SCORE

        score = (
            skill_match.score * policy.skill_match_weight
            + availability.score * policy.availability_weight
            + fairness * policy.fairness_weight
            + preference * policy.preference_weight
        )
        ranked.append((candidate, round(score), reasoning))

    ranked.sort(key=lambda item: item[1], reverse=True)
    best, best_score, best_reasoning = ranked[0]
    alternatives = [
        DelegationAlternative(
            member_id=candidate.id,
            member_name=candidate.display_name,
            score=score,
            available_capacity=max(0.0, candidate.max_load - candidate.current_load),
            reason=reasoning[0] if reasoning else "Available",
        )
        for candidate, score, reasoning in ranked[1 : 1 + max_alternatives]
    ]
    return SmartAssignment(
        task_id=task.id,
        recommended_member=best.id,
        alternatives=alternatives,
        reasoning=best_reasoning,
        score=best_score,
        auto_assignable=best_score >= policy.auto_assign_threshold,
    )


def create_delegation_request(
    suggestion: DelegationSuggestion,
    custom_reason: Optional[str] = None,
    *,
    now: datetime,
    request_id: str,
    require_acceptance: bool = True,
) -> DelegationRequest:
    """A pending request, or an already accepted one when acceptance is not required."""
    now = ensure_utc(now)
    request = DelegationRequest(
        request_id=request_id,
        task_id=suggestion.task_id,
        from_member=suggestion.from_member,
        to_member=suggestion.to_member,
        reason=custom_reason or f"Suggested delegation: {suggestion.reason}",
        status=DelegationStatus.PENDING,
        requested_at=now,
    )
    if require_acceptance:
        return request
    return replace(
        request,
        status=DelegationStatus.ACCEPTED,
        responded_at=now,
        feedback=DelegationFeedback(accepted=True, would_accept_again=True),
    )


def process_delegation_response(
    request: DelegationRequest,
    accepted: bool,
    *,
    now: datetime,
    rating: Optional[int] = None,
    comment: Optional[str] = None,
    would_accept_again: Optional[bool] = None,
) -> DelegationRequest:
    if request.status != DelegationStatus.PENDING:
        raise DelegationStateError(f"cannot respond to a {request.status} request")
    return replace(
        request,
        status=DelegationStatus.ACCEPTED if accepted else DelegationStatus.DECLINED,
        responded_at=ensure_utc(now),
        feedback=DelegationFeedback(
            accepted=accepted,
            rating=rating,
            comment=comment,
            would_accept_again=accepted if would_accept_again is None else would_accept_again,
        ),
    )


def complete_delegation(
    request: DelegationRequest,
    *,
    now: datetime,
    rating: Optional[int] = None,
    comment: Optional[str] = None,
    time_to_complete: Optional[float] = None,
) -> DelegationRequest:
    if request.status != DelegationStatus.ACCEPTED:
        raise DelegationStateError(f"cannot complete a {request.status} request")
    previous = request.feedback or DelegationFeedback(accepted=True, would_accept_again=True)
    return replace(
        request,
        status=DelegationStatus.COMPLETED,
        completed_at=ensure_utc(now),
        feedback=replace(
            previous,
            accepted=True,
            rating=rating if rating is not None else previous.rating,
            comment=comment if comment is not None else previous.comment,
            time_to_complete=time_to_complete if time_to_complete is not None else previous.time_to_complete,
        ),
    )


def expired_delegations(
    requests: Sequence[DelegationRequest],
    expiration_hours: float = DEFAULT_DELEGATION_POLICY.expiration_hours,
    *,
    now: datetime,
) -> list[DelegationRequest]:
    """Pending requests older than ``expiration_hours``."""
    cutoff = ensure_utc(now) - timedelta(hours=expiration_hours)
    return [
        request
        for request in requests
        if request.status == DelegationStatus.PENDING and request.requested_at < cutoff
    ]


def expire_delegations(
    requests: Sequence[DelegationRequest],
    expiration_hours: float = DEFAULT_DELEGATION_POLICY.expiration_hours,
    *,
    now: datetime,
) -> list[DelegationRequest]:
    """Same requests in order, with overdue pending ones moved to ``expired``."""
    now = ensure_utc(now)
    stale = {request.request_id for request in expired_delegations(requests, expiration_hours, now=now)}
    return [
        replace(request, status=DelegationStatus.EXPIRED, responded_at=now) if request.request_id in stale else request
        for request in requests
    ]


def update_delegation_history(
    history: DelegationHistory,
    request: DelegationRequest,
    task_category: str,
    *,
    now: datetime,
) -> DelegationHistory:
    """Append ``request`` to the recipient's history and refresh its acceptance statistics."""
    if request.to_member != history.member_id:
        raise DelegationValidationError(
            f"request {request.request_id} was sent to {request.to_member}, not {history.member_id}"
        )
    record = DelegationRecord(
        delegation_id=request.request_id,
        task_category=task_category,
        from_member=request.from_member,
        to_member=request.to_member,
        status=request.status,
        timestamp=ensure_utc(now),
        feedback=request.feedback,
    )
    received = (*history.delegations_received, record)

    accepted = sum(1 for item in received if item.status in ACCEPTED_STATUSES)
    acceptance_rate = accepted / len(received)

    in_category = [item for item in received if item.task_category == task_category]
    category_accepted = sum(1 for item in in_category if item.status in ACCEPTED_STATUSES)
    category_preferences = dict(history.category_preferences)
    category_preferences[task_category] = category_accepted / len(in_category)

    timed = [
        item.feedback.time_to_complete
        for item in received
        if item.feedback is not None and item.feedback.time_to_complete
    ]
    avg_completion_time = sum(timed) / len(timed) if timed else history.avg_completion_time

    return replace(
        history,
        delegations_received=received,
        acceptance_rate=acceptance_rate,
        avg_completion_time=avg_completion_time,
        category_preferences=category_preferences,
    )


class DelegationService:
    """Delegation workflow bound to settings, a clock and an id source."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        id_source: Optional[IdSource] = None,
        policy: Optional[DelegationPolicy] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock or SystemClock()
        self._id_source = id_source or uuid_id_source
        self._policy = policy or delegation_policy_from_settings(self._settings)
        validate_delegation_policy(self._policy)

    @property
    def policy(self) -> DelegationPolicy:
        return self._policy

    def generate_delegation_suggestions(
        self,
        task: Task,
        current_assignee: str,
        candidates: Sequence[DelegationCandidate],
        history: Optional[Mapping[str, DelegationHistory]] = None,
        pending_requests: Sequence[DelegationRequest] = (),
    ) -> list[DelegationSuggestion]:
        suggestions = generate_delegation_suggestions(
            task,
            current_assignee,
            candidates,
            history or {},
            self._policy,
            now=self._clock.now(),
            id_source=self._id_source,
            pending_requests=pending_requests,
        )
        logger.info(
            "Delegation suggestions generated | task_id=%s | from=%s | candidates=%s | suggestions=%s | top=%s",
            task.id,
            current_assignee,
            len(candidates),
            len(suggestions),
            suggestions[0].to_member if suggestions else None,
        )
        return suggestions

    def generate_smart_assignment(
        self,
        task: Task,
        candidates: Sequence[DelegationCandidate],
    ) -> Optional[SmartAssignment]:
        assignment = generate_smart_assignment(
            task,
            candidates,
            self._policy,
            now=self._clock.now(),
            max_alternatives=self._settings.assignment_max_alternatives,
        )
        if assignment is None:
            logger.warning("Smart assignment skipped | task_id=%s | reason=no_candidates", task.id)
            return None
        logger.info(
            "Smart assignment computed | task_id=%s | member_id=%s | score=%s | auto_assignable=%s",
            task.id,
            assignment.recommended_member,
            assignment.score,
            assignment.auto_assignable,
        )
        return assignment

    def find_best_windows(
        self,
        slots: Sequence[AvailabilitySlot],
        estimated_minutes: float,
        days_ahead: int = 7,
    ) -> list[BestWindow]:
        return find_best_windows(slots, estimated_minutes, days_ahead, now=self._clock.now())

    def update_skill_profile(self, profile: SkillProfile, skills: Sequence[str], performance: float) -> SkillProfile:
        return update_skill_profile(profile, skills, performance, now=self._clock.now())

    def create_request(
        self,
        suggestion: DelegationSuggestion,
        custom_reason: Optional[str] = None,
    ) -> DelegationRequest:
        request = create_delegation_request(
            suggestion,
            custom_reason,
            now=self._clock.now(),
            request_id=self._id_source(),
            require_acceptance=self._policy.require_acceptance,
        )
        logger.info(
            "Delegation requested | request_id=%s | task_id=%s | from=%s | to=%s | status=%s",
            request.request_id,
            request.task_id,
            request.from_member,
            request.to_member,
            request.status,
        )
        return request

    def respond(self, request: DelegationRequest, accepted: bool, **feedback) -> DelegationRequest:
        updated = process_delegation_response(request, accepted, now=self._clock.now(), **feedback)
        logger.info("Delegation answered | request_id=%s | status=%s", updated.request_id, updated.status)
        return updated

    def complete(self, request: DelegationRequest, **feedback) -> DelegationRequest:
        updated = complete_delegation(request, now=self._clock.now(), **feedback)
        logger.info("Delegation completed | request_id=%s", updated.request_id)
        return updated

    def expire_stale(self, requests: Sequence[DelegationRequest]) -> list[DelegationRequest]:
        updated = expire_delegations(requests, self._policy.expiration_hours, now=self._clock.now())
        expired = sum(
            1
            for before, after in zip(requests, updated)
            if before.status != after.status
        )
        if expired:
            logger.info("Delegations expired | count=%s", expired)
        return updated

    def record_outcome(
        self,
        history: DelegationHistory,
        request: DelegationRequest,
        task_category: str,
    ) -> DelegationHistory:
        return update_delegation_history(history, request, task_category, now=self._clock.now())
