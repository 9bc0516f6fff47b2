from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

import pytest
from pydantic import ValidationError

from loadshare.domain.models import (
    AvailabilitySlot,
    DailyWorkload,
    DelegationCandidate,
    ExclusionPeriod,
    HistoricalLoadEntry,
    Member,
    MemberAvailabilityWindow,
    PendingTask,
    SkillLevel,
    SkillProfile,
    Task,
    WorkloadDataPoint,
)


def test_task_priority_outside_range_is_rejected() -> None:
    with pytest.raises(ValidationError) as excinfo:
        Task(id="t1", category="sante", priority=4)
    assert "priority" in str(excinfo.value)


def test_task_is_frozen() -> None:
    task = Task(id="t1", category="sante")
    with pytest.raises(ValidationError):
        task.priority = 1


def test_unknown_task_field_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Task(id="t1", category="sante", urgency="high")


def test_negative_history_weight_is_rejected() -> None:
    with pytest.raises(ValidationError) as excinfo:
        HistoricalLoadEntry(
            date=datetime(2026, 3, 1, tzinfo=timezone.utc),
            user_id="u1",
            task_id="t1",
            category="sante",
            weight=-1,
        )
    assert "weight" in str(excinfo.value)


def test_malformed_date_is_rejected() -> None:
    with pytest.raises(ValidationError):
        HistoricalLoadEntry(date="not-a-date", user_id="u1", task_id="t1", category="sante", weight=1)


def test_naive_and_date_values_are_read_as_utc() -> None:
    entry = HistoricalLoadEntry(
        date=datetime(2026, 3, 1, 9, 30),
        user_id="u1",
        task_id="t1",
        category="sante",
        weight=1,
    )
    period = ExclusionPeriod(start=date(2026, 3, 2), end=date(2026, 3, 4))

    assert entry.date.tzinfo == timezone.utc
    assert period.start == datetime(2026, 3, 2, tzinfo=timezone.utc)


def test_exclusion_end_before_start_is_rejected() -> None:
    with pytest.raises(ValidationError):
        ExclusionPeriod(
            start=datetime(2026, 3, 5, tzinfo=timezone.utc),
            end=datetime(2026, 3, 1, tzinfo=timezone.utc),
        )


def test_exclusion_contains_both_bounds() -> None:
    start = datetime(2026, 3, 1, tzinfo=timezone.utc)
    period = ExclusionPeriod(start=start, end=start + timedelta(days=2))

    assert period.contains(start)
    assert period.contains(start + timedelta(days=2))
    assert not period.contains(start + timedelta(days=2, seconds=1))


def test_member_load_helpers_return_copies() -> None:
    member = Member(id="m1", current_load=5, max_weekly_load=20)
    loaded = member.with_load(15)

    assert member.current_load == 5
    assert loaded.current_load == 15
    assert loaded.load_percentage == pytest.approx(75.0)
    assert member.display_name == "m1"


def test_member_max_weekly_load_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Member(id="m1", max_weekly_load=0)


def test_pending_task_priority_is_validated() -> None:
    with pytest.raises(ValidationError):
        PendingTask(id="p1", priority=0)


def test_availability_window_rejects_unknown_weekday() -> None:
    with pytest.raises(ValidationError):
        MemberAvailabilityWindow(member_id="m1", available_days=(0, 7))


def test_workload_data_point_calendar_fields() -> None:
    point = WorkloadDataPoint(timestamp=datetime(2026, 1, 5, 8, tzinfo=timezone.utc), task_count=3)

    assert point.day_of_week == 0
    assert point.week_of_year == 2
    assert point.iso_year == 2026
    assert point.month == 1


def test_workload_data_point_rejects_negative_category_count() -> None:
    with pytest.raises(ValidationError):
        WorkloadDataPoint(
            timestamp=datetime(2026, 1, 5, tzinfo=timezone.utc),
            task_count=1,
            categories={"quotidien": -1},
        )


def test_daily_workload_from_counts() -> None:
    day = datetime(2026, 3, 1, tzinfo=timezone.utc)

    busy = DailyWorkload.from_counts(day, task_count=9, minutes_worked=300, max_daily_tasks=10)
    idle = DailyWorkload.from_counts(day, task_count=2, minutes_worked=30, max_daily_tasks=10)
    unbounded = DailyWorkload.from_counts(day, task_count=5, minutes_worked=0, max_daily_tasks=0)

    assert busy.load_percentage == 90
    assert busy.was_overloaded
    assert idle.load_percentage == 20
    assert not idle.was_overloaded
    assert unbounded.load_percentage == 0


def test_availability_slot_rejects_inverted_times() -> None:
    with pytest.raises(ValidationError):
        AvailabilitySlot(
            member_id="a",
            date=date(2026, 3, 10),
            start_time=time(12, 0),
            end_time=time(9, 0),
        )


def test_availability_slot_minutes_and_day_match() -> None:
    slot = AvailabilitySlot(
        member_id="a",
        date=date(2026, 3, 10),
        start_time=time(9, 15),
        end_time=time(11, 0),
        capacity=1,
    )

    assert slot.available_minutes == 105
    assert slot.falls_on(datetime(2026, 3, 10, 22, 30, tzinfo=timezone.utc))
    assert not slot.falls_on(datetime(2026, 3, 11, 0, 0, tzinfo=timezone.utc))


def test_skill_level_is_bounded_and_missing_skills_read_as_zero() -> None:
    profile = SkillProfile(member_id="a", skills={"cooking": SkillLevel(level=7, experience=3)})

    assert profile.skill_level("cooking") == 7
    assert profile.skill_level("plumbing") == 0.0
    with pytest.raises(ValidationError):
        SkillLevel(level=11)


def test_delegation_candidate_with_zero_capacity_is_fully_loaded() -> None:
    candidate = DelegationCandidate(id="a", skill_profile=SkillProfile(member_id="a"), max_load=0)

    assert candidate.load_percentage == 100.0
    assert candidate.display_name == "a"
