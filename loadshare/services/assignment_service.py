"""Assignee selection for single tasks and simulated batches."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional, Sequence

from loadshare.domain.constraints import ScoringWeights
from loadshare.domain.models import (
    AlternativeCandidate,
    AssignedTask,
    AssignmentScore,
    AssignmentSelection,
    BalanceImpact,
    HistoricalLoadEntry,
    Member,
    Task,
    UnassignedTask,
)
from loadshare.services.eligibility_service import can_handle_category
from loadshare.services.fairness_service import balance_score
from loadshare.services.history_service import fatigue_level, history_config_from_settings
from loadshare.services.rotation_service import RotationTracker
from loadshare.services.scoring_service import ScoringEngine
from loadshare.services.weight_service import calculate_task_weight
from loadshare.utils.clock import Clock, SystemClock, ensure_utc
from loadshare.utils.config import Settings, get_settings
from loadshare.utils.identifiers import IdSource, uuid_id_source
from loadshare.utils.logger import get_logger


logger = get_logger(__name__)

NO_ELIGIBLE_MEMBER_FOUND = "No eligible member found"
NO_ELIGIBLE_MEMBER_AVAILABLE = "No eligible member available"

OVERLOAD_FACTOR = 1.2
UNDERLOAD_FACTOR = 0.8
RECIPIENT_CEILING_FACTOR = 1.1
MAX_REASSIGNMENT_SUGGESTIONS = 5


class AssignmentValidationError(ValueError):
    """Raised when assignment inputs are inconsistent."""


@dataclass(frozen=True)
class BatchAssignmentResult:
    run_id: str
    assignments: list[AssignmentSelection]
    unassigned: list[UnassignedTask]
    balance_impact: BalanceImpact
    members: list[Member]
    tracker: RotationTracker


@dataclass(frozen=True)
class ReassignmentSuggestion:
    task_id: str
    task_title: str
    from_user_id: str
    from_user_name: str
    to_user_id: str
    to_user_name: str
    reason: str
    balance_impact: int


@dataclass(frozen=True)
class AssignmentStats:
    total: int
    assigned: int
    forced: int
    average_score: int
    by_user: dict[str, int] = field(default_factory=dict)


def _validate_candidates(candidates: Sequence[Member]) -> None:
    seen: set[str] = set()
    for candidate in candidates:
        if candidate.id in seen:
            raise AssignmentValidationError(f"duplicate candidate id: {candidate.id}")
        seen.add(candidate.id)


def build_rationale(
    best: AssignmentScore,
    task: Task,
    *,
    good_threshold: float = 70.0,
    concern_threshold: float = 50.0,
) -> list[str]:
    lines = [f"Best candidate: {best.user_name} (score: {best.total_score})"]
    if best.components.load_balance > good_threshold:
        lines.append("Current load is balanced")
    if best.components.category_preference > good_threshold:
        lines.append(f"Prefers category {task.category}")
    if best.components.rotation < concern_threshold:
        lines.append("Warning: low rotation for this category")
    if best.components.fatigue < concern_threshold:
        lines.append("Warning: high fatigue level")
    return lines


def sort_batch_tasks(tasks: Sequence[Task]) -> list[Task]:
    """Critical tasks first, then by priority (1 = high)."""
    return sorted(tasks, key=lambda task: (not task.is_critical, task.priority))


def suggest_reassignments(
    assignments: Sequence[AssignedTask],
    members: Sequence[Member],
) -> list[ReassignmentSuggestion]:
    """Propose moving light tasks from overloaded members to underloaded ones."""
    if not members:
        return []
    loads = {member.id: member.current_load for member in members}
    total_load = sum(loads.values())
    if total_load == 0:
        return []
    average_load = total_load / len(members)

    overloaded = [member for member in members if loads[member.id] > average_load * OVERLOAD_FACTOR]
    underloaded = [member for member in members if loads[member.id] < average_load * UNDERLOAD_FACTOR]

    suggestions: list[ReassignmentSuggestion] = []
    for over in overloaded:
        own_tasks = sorted(
            (assignment for assignment in assignments if assignment.assigned_to == over.id),
            key=lambda assignment: assignment.weight,
        )
        for assignment in own_tasks:
            recipient = next(
                (
                    candidate
                    for candidate in underloaded
                    if can_handle_category(candidate, assignment.category)
                    and loads[candidate.id] + assignment.weight < average_load * RECIPIENT_CEILING_FACTOR
                ),
                None,
            )
            if recipient is not None:
                suggestions.append(
                    ReassignmentSuggestion(
                        task_id=assignment.task_id,
                        task_title=assignment.title,
                        from_user_id=over.id,
                        from_user_name=over.display_name,
                        to_user_id=recipient.id,
                        to_user_name=recipient.display_name,
                        reason=f"Rebalance the load of {over.display_name}",
                        balance_impact=round(assignment.weight / total_load * 100),
                    )
                )
                loads[over.id] -= assignment.weight
                loads[recipient.id] += assignment.weight
            if len(suggestions) >= MAX_REASSIGNMENT_SUGGESTIONS:
                return suggestions
    return suggestions


def assignment_stats(selections: Sequence[AssignmentSelection]) -> AssignmentStats:
    assigned = [selection for selection in selections if selection.assigned]
    by_user = Counter(selection.assigned_to_name or selection.assigned_to for selection in assigned)
    scores = [selection.score.total_score for selection in assigned if selection.score is not None]
    return AssignmentStats(
        total=len(selections),
        assigned=len(assigned),
        forced=sum(1 for selection in selections if selection.was_forced),
        average_score=round(sum(scores) / len(scores)) if scores else 0,
        by_user=dict(by_user),
    )


class AssignmentSelector:
    """Picks the best-fit member for a task, or honours an explicit override."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        weights: Optional[ScoringWeights] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock or SystemClock()
        self._scoring = ScoringEngine(settings=self._settings, clock=self._clock, weights=weights)
        self._history_config = history_config_from_settings(self._settings)

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def settings(self) -> Settings:
        return self._settings

    def fatigue_levels(
        self,
        candidates: Sequence[Member],
        history: Sequence[HistoricalLoadEntry],
    ) -> dict[str, int]:
        now = self._clock.now()
        return {
            candidate.id: fatigue_level(history, candidate.id, now=now, config=self._history_config)
            for candidate in candidates
        }

    def _score(
        self,
        member: Member,
        task: Task,
        candidates: Sequence[Member],
        history: Sequence[HistoricalLoadEntry],
        tracker: RotationTracker,
        target_date: Optional[datetime],
        fatigue_levels: Optional[Mapping[str, float]],
    ) -> AssignmentScore:
        return self._scoring.score_candidate(
            member,
            task,
            candidates,
            history,
            tracker,
            target_date=target_date,
            fatigue_level=fatigue_levels.get(member.id) if fatigue_levels is not None else None,
        )

    def select_assignee(
        self,
        task: Task,
        candidates: Sequence[Member],
        history: Sequence[HistoricalLoadEntry],
        tracker: RotationTracker,
        target_date: Optional[datetime] = None,
        force_assignee: Optional[str] = None,
        fatigue_levels: Optional[Mapping[str, float]] = None,
    ) -> AssignmentSelection:
        _validate_candidates(candidates)

        if force_assignee is not None:
            forced = next((candidate for candidate in candidates if candidate.id == force_assignee), None)
            if forced is not None:
                score = self._score(forced, task, candidates, history, tracker, target_date, fatigue_levels)
                explanation = [f"Forced assignment to {forced.display_name}"]
                if not score.eligible:
                    explanation.append(f"Warning: {score.disqualify_reason}")
                    logger.warning(
                        "Forced assignment to ineligible member | task_id=%s | member_id=%s | reason=%s",
                        task.id,
                        forced.id,
                        score.disqualify_reason,
                    )
                return AssignmentSelection(
                    task_id=task.id,
                    assigned_to=forced.id,
                    assigned_to_name=forced.display_name,
                    score=score,
                    alternatives=[],
                    was_forced=True,
                    explanation=explanation,
                    candidate_scores=[score],
                )
            logger.warning(
                "Forced assignee not among candidates | task_id=%s | member_id=%s",
                task.id,
                force_assignee,
            )

        scores = [
            self._score(candidate, task, candidates, history, tracker, target_date, fatigue_levels)
            for candidate in candidates
        ]
        eligible = [score for score in scores if score.eligible]

        if not eligible:
            explanation = [NO_ELIGIBLE_MEMBER_FOUND]
            explanation.extend(
                f"{score.user_name}: {score.disqualify_reason}"
                for score in scores
                if score.disqualify_reason
            )
            logger.info(
                "No eligible candidate | task_id=%s | candidates=%s",
                task.id,
                len(candidates),
            )
            return AssignmentSelection(
                task_id=task.id,
                assigned_to=None,
                assigned_to_name=None,
                score=None,
                alternatives=[],
                was_forced=False,
                explanation=explanation,
                candidate_scores=scores,
            )

        ranked = sorted(eligible, key=lambda score: score.total_score, reverse=True)
        best = ranked[0]
        limit = self._settings.assignment_max_alternatives
        alternatives = [
            AlternativeCandidate(user_id=score.user_id, user_name=score.user_name, score=score.total_score)
            for score in ranked[1 : limit + 1]
        ]
        explanation = build_rationale(
            best,
            task,
            good_threshold=self._settings.rationale_good_threshold,
            concern_threshold=self._settings.rationale_concern_threshold,
        )
        logger.debug(
            "Assignee selected | task_id=%s | member_id=%s | score=%s | alternatives=%s",
            task.id,
            best.user_id,
            best.total_score,
            len(alternatives),
        )
        return AssignmentSelection(
            task_id=task.id,
            assigned_to=best.user_id,
            assigned_to_name=best.user_name,
            score=best,
            alternatives=alternatives,
            was_forced=False,
            explanation=explanation,
            candidate_scores=scores,
        )

    def suggest_reassignments(
        self,
        assignments: Sequence[AssignedTask],
        members: Sequence[Member],
    ) -> list[ReassignmentSuggestion]:
        return suggest_reassignments(assignments, members)

    def assignment_stats(self, selections: Sequence[AssignmentSelection]) -> AssignmentStats:
        return assignment_stats(selections)


class BatchAssigner:
    """Assigns a task list against an in-memory copy of the member pool.

    Caller snapshots are never modified: the result carries the updated
    member list and rotation tracker for the caller to persist.
    """

    def __init__(
        self,
        selector: Optional[AssignmentSelector] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        id_source: Optional[IdSource] = None,
    ) -> None:
        self._selector = selector or AssignmentSelector(settings=settings, clock=clock)
        self._clock = self._selector.clock
        self._id_source = id_source or uuid_id_source

    def assign_batch(
        self,
        tasks: Sequence[Task],
        candidates: Sequence[Member],
        history: Sequence[HistoricalLoadEntry],
        tracker: RotationTracker,
        target_date: Optional[datetime] = None,
    ) -> BatchAssignmentResult:
        _validate_candidates(candidates)
        run_id = self._id_source()
        now = self._clock.now()
        assigned_at = ensure_utc(target_date) if target_date is not None else now

        members = list(candidates)
        index_by_id = {member.id: index for index, member in enumerate(members)}
        before = balance_score([member.current_load for member in members])
        fatigue_levels = self._selector.fatigue_levels(members, history)

        logger.info(
            "Batch assignment started | run_id=%s | tasks=%s | candidates=%s | balance_before=%s",
            run_id,
            len(tasks),
            len(members),
            before,
        )

        assignments: list[AssignmentSelection] = []
        unassigned: list[UnassignedTask] = []
        for task in sort_batch_tasks(tasks):
            selection = self._selector.select_assignee(
                task,
                members,
                history,
                tracker,
                target_date=target_date,
                fatigue_levels=fatigue_levels,
            )
            if not selection.assigned:
                unassigned.append(
                    UnassignedTask(
                        task_id=task.id,
                        reason=NO_ELIGIBLE_MEMBER_AVAILABLE,
                        details=selection.explanation[1:],
                    )
                )
                continue

            assignments.append(selection)
            weight = calculate_task_weight(task, now=now).adjusted_weight
            index = index_by_id[selection.assigned_to]
            winner = members[index]
            members[index] = winner.with_load(winner.current_load + weight)
            tracker = tracker.update(winner.id, task.category, task.task_type, at=assigned_at)

        after = balance_score([member.current_load for member in members])
        impact = BalanceImpact(before_score=before, after_score=after)
        logger.info(
            "Batch assignment completed | run_id=%s | assigned=%s | unassigned=%s | balance_before=%s | balance_after=%s",
            run_id,
            len(assignments),
            len(unassigned),
            before,
            after,
        )
        return BatchAssignmentResult(
            run_id=run_id,
            assignments=assignments,
            unassigned=unassigned,
            balance_impact=impact,
            members=members,
            tracker=tracker,
        )
