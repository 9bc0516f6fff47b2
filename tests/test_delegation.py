from __future__ import annotations

from dataclasses import replace
from datetime import datetime, time, timedelta, timezone

import pytest

from loadshare.domain.constraints import DelegationPolicy
from loadshare.domain.models import (
    AvailabilitySlot,
    DelegationCandidate,
    Member,
    SkillLevel,
    SkillProfile,
    Task,
)
from loadshare.services.delegation_service import (
    DelegationHistory,
    DelegationReason,
    DelegationRequest,
    DelegationService,
    DelegationStateError,
    DelegationStatus,
    DelegationValidationError,
    calculate_availability_score,
    calculate_skill_match_score,
    complete_delegation,
    create_delegation_request,
    expire_delegations,
    expired_delegations,
    find_best_windows,
    generate_delegation_suggestions,
    generate_smart_assignment,
    process_delegation_response,
    update_delegation_history,
    update_skill_profile,
)
from loadshare.utils.clock import FixedClock
from loadshare.utils.config import get_settings
from loadshare.utils.identifiers import SequentialIdSource


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
TODAY = datetime(2026, 3, 10, tzinfo=timezone.utc)


def _build_test_settings(**overrides):
    return replace(get_settings(), **overrides)


def _slot(member_id: str, day: datetime = TODAY, start=time(9, 0), end=time(12, 0), capacity: int = 2):
    return AvailabilitySlot(member_id=member_id, date=day, start_time=start, end_time=end, capacity=capacity)


def _task(**overrides) -> Task:
    values = {
        "id": "t1",
        "title": "Fix sink",
        "category": "repairs",
        "required_skills": ("plumbing",),
        "estimated_minutes": 60,
        "due_date": NOW,
    }
    values.update(overrides)
    return Task(**values)


def _bob(preferred=(), current_load: float = 5) -> DelegationCandidate:
    return DelegationCandidate(
        id="bob",
        name="Bob",
        skill_profile=SkillProfile(
            member_id="bob",
            skills={"plumbing": SkillLevel(level=8, experience=4)},
            preferred_categories=tuple(preferred),
        ),
        availability=(_slot("bob"),),
        current_load=current_load,
        max_load=20,
    )


def _carol() -> DelegationCandidate:
    return DelegationCandidate(
        id="carol",
        name="Carol",
        skill_profile=SkillProfile(member_id="carol"),
        current_load=18,
        max_load=20,
    )


def _alice(current_load: float = 20) -> DelegationCandidate:
    return DelegationCandidate(
        id="alice",
        name="Alice",
        skill_profile=SkillProfile(member_id="alice"),
        current_load=current_load,
        max_load=20,
    )


def _pending(request_id: str, to_member: str, requested_at: datetime = NOW) -> DelegationRequest:
    return DelegationRequest(
        request_id=request_id,
        task_id="t0",
        from_member="alice",
        to_member=to_member,
        reason="help",
        status=DelegationStatus.PENDING,
        requested_at=requested_at,
    )


def _suggestions(candidates, **kwargs):
    return generate_delegation_suggestions(
        _task(**kwargs.pop("task", {})),
        "alice",
        candidates,
        kwargs.pop("history", {}),
        kwargs.pop("policy", DelegationPolicy()),
        now=NOW,
        id_source=SequentialIdSource("sugg"),
        **kwargs,
    )


def test_skill_match_without_requirements_uses_category_preference():
    profile = SkillProfile(member_id="bob", preferred_categories=("repairs",))

    assert calculate_skill_match_score(profile, (), "repairs").score == 80
    assert calculate_skill_match_score(profile, (), "cooking").score == 60


def test_skill_match_averages_known_and_learning_skills():
    profile = SkillProfile(
        member_id="bob",
        skills={"plumbing": SkillLevel(level=6, experience=2)},
        learning_interests=("painting",),
    )

    result = calculate_skill_match_score(profile, ("plumbing", "painting"), "repairs")

    assert result.score == 45
    assert [factor.name for factor in result.factors] == ["skill_plumbing", "learning_painting"]


def test_relevant_certification_adds_bonus():
    profile = SkillProfile(
        member_id="bob",
        skills={"plumbing": SkillLevel(level=8, experience=4)},
        certifications=("Certified Plumbing Technician", "First aid"),
    )

    result = calculate_skill_match_score(profile, ("plumbing",), "repairs")

    assert result.score == 85
    assert result.factors[-1].name == "certifications"


def test_update_skill_profile_grows_existing_and_seeds_new_skills():
    profile = SkillProfile(member_id="bob", skills={"plumbing": SkillLevel(level=8, experience=4)})

    updated = update_skill_profile(profile, ("plumbing", "tiling"), 8, now=NOW)

    assert updated.skills["plumbing"].level == pytest.approx(8.1)
    assert updated.skills["plumbing"].experience == 5
    assert updated.skills["plumbing"].growth_rate == pytest.approx(0.05)
    assert updated.skills["tiling"].level == pytest.approx(8 / 3)
    assert updated.skills["tiling"].experience == 1
    assert profile.skills["plumbing"].level == 8

    with pytest.raises(DelegationValidationError):
        update_skill_profile(profile, ("plumbing",), 11, now=NOW)


def test_availability_score_penalises_short_window_and_no_capacity():
    slot = _slot("bob", start=time(9, 0), end=time(9, 30), capacity=0)

    result = calculate_availability_score([slot], NOW, 40)

    assert result.score == 60
    assert {factor.name for factor in result.factors} == {"insufficient_time", "no_capacity"}
    assert calculate_availability_score([slot], NOW + timedelta(days=1), 40).score == 20


def test_best_windows_rank_by_fit_and_skip_full_slots():
    slots = [
        _slot("bob", day=TODAY + timedelta(days=1), end=time(10, 0), capacity=2),
        _slot("bob", capacity=1),
        _slot("bob", capacity=0),
    ]

    windows = find_best_windows(slots, 60, now=NOW)

    assert [window.score for window in windows] == [100, 70]
    assert windows[0].slot.capacity == 1


def test_suggestions_exclude_assignee_and_low_scores():
    suggestions = _suggestions([_alice(), _bob(), _carol()])

    assert len(suggestions) == 1
    suggestion = suggestions[0]
    assert suggestion.to_member == "bob"
    assert suggestion.score == 74
    assert suggestion.reason == DelegationReason.SKILL_MATCH
    assert suggestion.suggestion_id == "sugg-1"
    assert suggestion.expires_at == NOW + timedelta(hours=24)
    assert suggestion.confidence == pytest.approx(0.586125)
    assert suggestion.summary() == 'Delegate "Fix sink" to Bob based on skill match (Score: 74)'
    assert suggestion.to_dict()["reason"] == "skill_match"


def test_category_acceptance_history_raises_score():
    history = {"bob": DelegationHistory(member_id="bob", category_preferences={"repairs": 1.0})}

    suggestions = _suggestions([_bob()], history=history)

    assert suggestions[0].score == 84


def test_members_at_pending_limit_are_skipped():
    policy = DelegationPolicy(max_pending_per_member=1)

    assert _suggestions([_bob()], policy=policy, pending_requests=[_pending("r1", "bob")]) == []
    assert len(_suggestions([_bob()], policy=policy, pending_requests=[_pending("r1", "carol")])) == 1


def test_disabled_auto_suggest_returns_nothing():
    assert _suggestions([_bob()], policy=DelegationPolicy(auto_suggest_enabled=False)) == []


def test_overloaded_assignee_gives_overload_reason():
    dave = DelegationCandidate(id="dave", skill_profile=SkillProfile(member_id="dave"), current_load=10, max_load=20)
    task = {"required_skills": ()}

    with_assignee = _suggestions([_alice(), dave], task=task)
    without_assignee = _suggestions([dave], task=task)

    assert with_assignee[0].score == 46
    assert with_assignee[0].reason == DelegationReason.OVERLOAD
    assert without_assignee[0].reason == DelegationReason.EFFICIENCY


def test_smart_assignment_ranks_candidates_with_reasoning():
    assignment = generate_smart_assignment(_task(), [_carol(), _bob(preferred=("repairs",))], now=NOW)

    assert assignment.recommended_member == "bob"
    assert assignment.score == 82
    assert assignment.reasoning == [
        "Strong skill match",
        "Good availability",
        "Has capacity available",
        "Prefers this category",
    ]
    assert assignment.auto_assignable is False
    assert len(assignment.alternatives) == 1
    alternative = assignment.alternatives[0]
    assert alternative.member_id == "carol"
    assert alternative.score == 20
    assert alternative.reason == "Limited skill match"
    assert alternative.available_capacity == pytest.approx(2.0)


def test_smart_assignment_threshold_and_empty_candidates():
    policy = DelegationPolicy(auto_assign_threshold=80)

    assert generate_smart_assignment(_task(), [_bob(preferred=("repairs",))], policy, now=NOW).auto_assignable
    assert generate_smart_assignment(_task(), [], now=NOW) is None


def test_request_lifecycle_allows_only_forward_transitions():
    suggestion = _suggestions([_bob()])[0]
    request = create_delegation_request(suggestion, now=NOW, request_id="req-1")

    assert request.status == DelegationStatus.PENDING
    assert request.reason == "Suggested delegation: skill_match"

    accepted = process_delegation_response(request, True, now=NOW + timedelta(hours=1), rating=5)
    assert accepted.status == DelegationStatus.ACCEPTED
    assert accepted.feedback.rating == 5
    with pytest.raises(DelegationStateError):
        process_delegation_response(accepted, False, now=NOW)

    done = complete_delegation(accepted, now=NOW + timedelta(hours=3), time_to_complete=45)
    assert done.status == DelegationStatus.COMPLETED
    assert done.feedback.time_to_complete == 45
    assert done.feedback.rating == 5
    assert request.status == DelegationStatus.PENDING

    with pytest.raises(DelegationStateError):
        complete_delegation(request, now=NOW)


def test_request_without_acceptance_starts_accepted():
    suggestion = _suggestions([_bob()])[0]

    request = create_delegation_request(
        suggestion, "Covering while away", now=NOW, request_id="req-1", require_acceptance=False
    )

    assert request.status == DelegationStatus.ACCEPTED
    assert request.reason == "Covering while away"
    assert request.responded_at == NOW


def test_feedback_rating_must_be_one_to_five():
    with pytest.raises(DelegationValidationError):
        process_delegation_response(_pending("r1", "bob"), True, now=NOW, rating=6)


def test_only_stale_pending_requests_expire():
    stale = _pending("r1", "bob", NOW - timedelta(hours=25))
    fresh = _pending("r2", "bob", NOW - timedelta(hours=2))
    answered = replace(_pending("r3", "bob", NOW - timedelta(hours=30)), status=DelegationStatus.ACCEPTED)
    requests = [stale, fresh, answered]

    assert expired_delegations(requests, now=NOW) == [stale]
    updated = expire_delegations(requests, now=NOW)
    assert [request.status for request in updated] == [
        DelegationStatus.EXPIRED,
        DelegationStatus.PENDING,
        DelegationStatus.ACCEPTED,
    ]


def test_history_tracks_acceptance_and_completion_time():
    history = DelegationHistory(member_id="bob")
    accepted = process_delegation_response(_pending("r1", "bob"), True, now=NOW)
    done = complete_delegation(accepted, now=NOW, time_to_complete=45)
    declined = process_delegation_response(_pending("r2", "bob"), False, now=NOW)

    history = update_delegation_history(history, done, "repairs", now=NOW)
    assert history.acceptance_rate == 1.0
    assert history.avg_completion_time == 45

    history = update_delegation_history(history, declined, "repairs", now=NOW)
    assert history.acceptance_rate == pytest.approx(0.5)
    assert history.category_preferences["repairs"] == pytest.approx(0.5)
    assert history.avg_completion_time == 45
    assert len(history.delegations_received) == 2


def test_history_rejects_requests_for_other_members():
    with pytest.raises(DelegationValidationError):
        update_delegation_history(DelegationHistory(member_id="carol"), _pending("r1", "bob"), "repairs", now=NOW)


def test_candidate_from_member_uses_member_preferences():
    member = Member(id="bob", name="Bob", current_load=4, max_weekly_load=16, preferred_categories=("repairs",))

    candidate = DelegationCandidate.from_member(member)

    assert candidate.skill_profile.preferred_categories == ("repairs",)
    assert candidate.load_percentage == pytest.approx(25.0)


def test_service_reads_policy_from_settings():
    service = DelegationService(
        settings=_build_test_settings(delegation_require_acceptance=False, delegation_expiration_hours=2.0),
        clock=FixedClock(NOW),
        id_source=SequentialIdSource("req"),
    )

    suggestion = service.generate_delegation_suggestions(_task(), "alice", [_alice(), _bob()])[0]
    request = service.create_request(suggestion)

    assert suggestion.expires_at == NOW + timedelta(hours=2)
    assert request.status == DelegationStatus.ACCEPTED
    assert request.request_id == "req-2"


def test_service_expires_with_configured_window():
    service = DelegationService(
        settings=_build_test_settings(delegation_expiration_hours=1.0),
        clock=FixedClock(NOW),
    )

    updated = service.expire_stale([_pending("r1", "bob", NOW - timedelta(hours=2))])

    assert updated[0].status == DelegationStatus.EXPIRED


def test_service_rejects_invalid_policy():
    with pytest.raises(ValueError):
        DelegationService(settings=_build_test_settings(delegation_auto_assign_threshold=150.0))
    with pytest.raises(ValueError):
        DelegationService(policy=DelegationPolicy(skill_match_weight=0.5))
