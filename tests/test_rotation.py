from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from loadshare.services.rotation_service import RotationTracker, create_rotation_tracker
from loadshare.utils.clock import FixedClock


NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def test_update_returns_new_tracker() -> None:
    tracker = create_rotation_tracker()

    updated = tracker.update("m1", "sante", at=NOW)

    assert tracker.last_assigned("sante", "m1") is None
    assert tracker.version == 0
    assert updated.last_assigned("sante", "m1") == NOW
    assert updated.version == 1


def test_timestamps_never_move_backwards() -> None:
    tracker = create_rotation_tracker().update("m1", "sante", at=NOW)

    stale = tracker.update("m1", "sante", at=NOW - timedelta(days=3))
    fresh = tracker.update("m1", "sante", at=NOW + timedelta(days=1))

    assert stale.last_assigned("sante", "m1") == NOW
    assert stale.version == 2
    assert fresh.last_assigned("sante", "m1") == NOW + timedelta(days=1)


def test_task_type_is_tracked_when_given() -> None:
    tracker = create_rotation_tracker().update("m1", "quotidien", task_type="dishes", at=NOW)

    assert tracker.last_assigned_task_type("dishes", "m1") == NOW
    assert tracker.last_assigned_task_type("laundry", "m1") is None


def test_days_since_unknown_pair_is_none() -> None:
    tracker = create_rotation_tracker().update("m1", "sante", at=NOW - timedelta(days=4))

    assert tracker.days_since("sante", "m1", NOW) == 4
    assert tracker.days_since("sante", "m2", NOW) is None
    assert tracker.days_since("ecole", "m1", NOW) is None


def test_rotation_status_lists_longest_idle_first() -> None:
    tracker = (
        create_rotation_tracker()
        .update("m1", "sante", at=NOW - timedelta(days=1))
        .update("m2", "sante", at=NOW - timedelta(days=9))
        .update("m3", "sante", at=NOW - timedelta(days=3))
    )

    status = tracker.category_rotation_status("sante", NOW)

    assert [item.member_id for item in status] == ["m2", "m3", "m1"]
    assert [item.days_since for item in status] == [9, 3, 1]


def test_tracker_survives_serialisation() -> None:
    tracker = create_rotation_tracker().update("m1", "sante", task_type="vaccine", at=NOW)

    payload = tracker.to_dict()
    restored = RotationTracker.from_dict(payload)

    assert payload["categories"] == {"sante": {"m1": NOW.isoformat()}}
    assert restored.version == tracker.version
    assert restored.last_assigned("sante", "m1") == NOW
    assert restored.last_assigned_task_type("vaccine", "m1") == NOW


def test_update_requires_an_explicit_timestamp() -> None:
    tracker = create_rotation_tracker()

    with pytest.raises(TypeError):
        tracker.update("m1", "sante")

    clock = FixedClock(NOW)
    assert tracker.update("m1", "sante", at=clock.now()).last_assigned("sante", "m1") == NOW
