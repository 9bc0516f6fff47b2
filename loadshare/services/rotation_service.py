"""Persistent record of who last handled each category and task type."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Mapping, Optional

from loadshare.utils.clock import ensure_utc, whole_days_between


LastAssigned = Mapping[str, Mapping[str, datetime]]


def _frozen(mapping: dict[str, Mapping[str, datetime]]) -> LastAssigned:
    return MappingProxyType(mapping)


def _empty() -> LastAssigned:
    return _frozen({})


def _with_assignment(
    maps: LastAssigned,
    key: str,
    member_id: str,
    at: datetime,
) -> LastAssigned:
    """Copy the outer map, replacing only the inner map for ``key``."""
    inner = dict(maps.get(key, {}))
    previous = inner.get(member_id)
    if previous is not None and previous >= at:
        return maps
    inner[member_id] = at
    outer = dict(maps)
    outer[key] = MappingProxyType(inner)
    return _frozen(outer)


@dataclass(frozen=True)
class RotationStatus:
    member_id: str
    last_assigned: datetime
    days_since: int


@dataclass(frozen=True)
class RotationTracker:
    """Immutable snapshot; every update returns a new tracker with a higher version.

    Timestamps for a (key, member) pair never move backwards: an update older
    than the stored value leaves the pair untouched.
    """

    category_last_assigned: LastAssigned = field(default_factory=_empty)
    task_type_last_assigned: LastAssigned = field(default_factory=_empty)
    version: int = 0

    def update(
        self,
        member_id: str,
        category: str,
        task_type: Optional[str] = None,
        *,
        at: datetime,
    ) -> "RotationTracker":
        moment = ensure_utc(at)
        categories = _with_assignment(self.category_last_assigned, category, member_id, moment)
        task_types = self.task_type_last_assigned
        if task_type:
            task_types = _with_assignment(task_types, task_type, member_id, moment)
        return RotationTracker(
            category_last_assigned=categories,
            task_type_last_assigned=task_types,
            version=self.version + 1,
        )

    def last_assigned(self, category: str, member_id: str) -> Optional[datetime]:
        return self.category_last_assigned.get(category, {}).get(member_id)

    def last_assigned_task_type(self, task_type: str, member_id: str) -> Optional[datetime]:
        return self.task_type_last_assigned.get(task_type, {}).get(member_id)

    def days_since(self, category: str, member_id: str, now: datetime) -> Optional[int]:
        last = self.last_assigned(category, member_id)
        if last is None:
            return None
        return whole_days_between(now, last)

    def category_rotation_status(self, category: str, now: datetime) -> list[RotationStatus]:
        """Known members for ``category``, longest idle first."""
        members = self.category_last_assigned.get(category, {})
        status = [
            RotationStatus(
                member_id=member_id,
                last_assigned=last,
                days_since=whole_days_between(now, last),
            )
            for member_id, last in members.items()
        ]
        return sorted(status, key=lambda item: item.days_since, reverse=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "categories": {
                key: {member_id: moment.isoformat() for member_id, moment in inner.items()}
                for key, inner in self.category_last_assigned.items()
            },
            "task_types": {
                key: {member_id: moment.isoformat() for member_id, moment in inner.items()}
                for key, inner in self.task_type_last_assigned.items()
            },
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "RotationTracker":
        def _load(section: Mapping[str, Mapping[str, str]]) -> LastAssigned:
            return _frozen(
                {
                    key: MappingProxyType(
                        {
                            member_id: ensure_utc(datetime.fromisoformat(raw))
                            for member_id, raw in inner.items()
                        }
                    )
                    for key, inner in section.items()
                }
            )

        return cls(
            category_last_assigned=_load(payload.get("categories", {})),
            task_type_last_assigned=_load(payload.get("task_types", {})),
            version=int(payload.get("version", 0)),
        )


def create_rotation_tracker() -> RotationTracker:
    return RotationTracker()
