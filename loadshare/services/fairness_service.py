"""Fairness metrics over load vectors and per-member fair-share reporting."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence

import numpy as np

from loadshare.domain.models import HistoricalLoadEntry, Member
from loadshare.utils.clock import Clock, SystemClock, ensure_utc
from loadshare.utils.config import Settings, get_settings
from loadshare.utils.logger import get_logger


logger = get_logger(__name__)

OVERLOADED_SHARE_PERCENT = 120
UNDERLOADED_SHARE_PERCENT = 80
LOW_FAIRNESS_INDEX = 70
LOW_PREFERENCE_ALIGNMENT = 30
REBALANCE_OVER_PERCENT = 130
REBALANCE_UNDER_PERCENT = 70
MAX_REBALANCE_SUGGESTIONS = 5


@dataclass(frozen=True)
class MemberFairnessStats:
    member_id: str
    member_name: str
    tasks_assigned: int
    tasks_completed: int
    minutes_worked: float
    fair_share_percentage: int
    category_distribution: dict[str, int]
    preference_alignment: int


@dataclass(frozen=True)
class FairnessReport:
    household_id: str
    period_start: datetime
    period_end: datetime
    member_stats: list[MemberFairnessStats]
    overall_fairness_index: int
    recommendations: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "household_id": self.household_id,
            "period": {
                "start": self.period_start.isoformat(),
                "end": self.period_end.isoformat(),
            },
            "member_stats": [
                {
                    "member_id": stats.member_id,
                    "member_name": stats.member_name,
                    "tasks_assigned": stats.tasks_assigned,
                    "tasks_completed": stats.tasks_completed,
                    "minutes_worked": stats.minutes_worked,
                    "fair_share_percentage": stats.fair_share_percentage,
                    "category_distribution": dict(stats.category_distribution),
                    "preference_alignment": stats.preference_alignment,
                }
                for stats in self.member_stats
            ],
            "overall_fairness_index": self.overall_fairness_index,
            "recommendations": list(self.recommendations),
        }


@dataclass(frozen=True)
class RebalanceSuggestion:
    action: str
    from_member: str
    to_member: str
    impact: int


def balance_score(loads: Sequence[float]) -> int:
    """100 when every member carries the same share, falling by twice the mean deviation."""
    if len(loads) <= 1:
        return 100
    total = float(sum(loads))
    if total == 0:
        return 100
    ideal = 100 / len(loads)
    deviations = [abs(load / total * 100 - ideal) for load in loads]
    average_deviation = sum(deviations) / len(deviations)
    return max(0, round(100 - average_deviation * 2))


def gini_coefficient(values: Sequence[float], *, normalized: bool = True) -> float:
    """Mean absolute difference over twice the mean, in [0, 1].

    With ``normalized`` (the default) the raw value is scaled by ``n / (n - 1)``
    so the most unequal split of any group size (one member carrying
    everything) is 1.0. Pass ``normalized=False`` for the plain
    ``sum |vi - vj| / (2 n^2 mean)`` form, which gives 0.5 for ``[10, 0]``.
    """
    if len(values) == 0:
        return 0.0
    array = np.asarray(values, dtype=float)
    n = array.size
    mean = float(array.mean())
    if mean == 0 or n == 1:
        return 0.0
    pairwise = float(np.abs(np.subtract.outer(array, array)).sum())
    gini = pairwise / (2 * n * n * mean)
    if normalized:
        gini *= n / (n - 1)
    return round(min(1.0, max(0.0, gini)), 2)


def fair_shares(members: Sequence[Member]) -> dict[str, float]:
    """Capacity-proportional share of household work, in percent."""
    if not members:
        return {}
    total_capacity = sum(member.max_weekly_load for member in members)
    if total_capacity == 0:
        equal = 100 / len(members)
        return {member.id: equal for member in members}
    return {member.id: member.max_weekly_load / total_capacity * 100 for member in members}


def _entries_in_period(
    history: Sequence[HistoricalLoadEntry],
    period_start: datetime,
    period_end: datetime,
) -> list[HistoricalLoadEntry]:
    return [entry for entry in history if period_start <= entry.date <= period_end]


def generate_fairness_report(
    household_id: str,
    members: Sequence[Member],
    history: Sequence[HistoricalLoadEntry],
    *,
    period_start: datetime,
    period_end: datetime,
) -> FairnessReport:
    period_start = ensure_utc(period_start)
    period_end = ensure_utc(period_end)
    entries = _entries_in_period(history, period_start, period_end)
    shares = fair_shares(members)

    assigned_counts = Counter(entry.user_id for entry in entries)
    total_tasks = sum(assigned_counts[member.id] for member in members)

    member_stats: list[MemberFairnessStats] = []
    for member in members:
        member_entries = [entry for entry in entries if entry.user_id == member.id]
        assigned = len(member_entries)
        category_counts = Counter(entry.category for entry in member_entries)

        actual_share = assigned / total_tasks * 100 if total_tasks > 0 else 0.0
        fair_share = shares.get(member.id, 0.0)
        fair_share_percentage = actual_share / fair_share * 100 if fair_share > 0 else 0.0

        preferred_count = sum(
            count
            for category, count in category_counts.items()
            if category in member.preferred_categories
        )
        preference_alignment = round(preferred_count / assigned * 100) if assigned > 0 else 50

        member_stats.append(
            MemberFairnessStats(
                member_id=member.id,
                member_name=member.display_name,
                tasks_assigned=assigned,
                tasks_completed=sum(1 for entry in member_entries if entry.was_completed),
                minutes_worked=float(sum(entry.minutes_spent or 0.0 for entry in member_entries)),
                fair_share_percentage=round(fair_share_percentage),
                category_distribution=dict(category_counts),
                preference_alignment=preference_alignment,
            )
        )

    if member_stats:
        deviations = [abs(100 - stats.fair_share_percentage) for stats in member_stats]
        overall_index = max(0, round(100 - sum(deviations) / len(deviations)))
    else:
        overall_index = 100

    recommendations: list[str] = []
    overloaded = [stats.member_name for stats in member_stats if stats.fair_share_percentage > OVERLOADED_SHARE_PERCENT]
    underloaded = [stats.member_name for stats in member_stats if stats.fair_share_percentage < UNDERLOADED_SHARE_PERCENT]
    if overloaded:
        recommendations.append(f"Consider reducing load for: {', '.join(overloaded)}")
    if underloaded:
        recommendations.append(f"Consider assigning more tasks to: {', '.join(underloaded)}")
    if overall_index < LOW_FAIRNESS_INDEX:
        recommendations.append("Overall distribution could be improved")
    misaligned = [stats.member_name for stats in member_stats if stats.preference_alignment < LOW_PREFERENCE_ALIGNMENT]
    if misaligned:
        recommendations.append(f"Task preferences not well-matched for: {', '.join(misaligned)}")

    return FairnessReport(
        household_id=household_id,
        period_start=period_start,
        period_end=period_end,
        member_stats=member_stats,
        overall_fairness_index=overall_index,
        recommendations=recommendations,
    )


def suggest_rebalancing(report: FairnessReport) -> list[RebalanceSuggestion]:
    overloaded = [stats for stats in report.member_stats if stats.fair_share_percentage > REBALANCE_OVER_PERCENT]
    underloaded = [stats for stats in report.member_stats if stats.fair_share_percentage < REBALANCE_UNDER_PERCENT]

    suggestions = [
        RebalanceSuggestion(
            action="transfer_tasks",
            from_member=over.member_name,
            to_member=under.member_name,
            impact=round(
                min(over.fair_share_percentage - 100, 100 - under.fair_share_percentage) / 2
            ),
        )
        for over in overloaded
        for under in underloaded
    ]
    suggestions.sort(key=lambda suggestion: suggestion.impact, reverse=True)
    return suggestions[:MAX_REBALANCE_SUGGESTIONS]


class FairnessMetrics:
    """Household-level fairness reporting bound to a clock."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock or SystemClock()

    @staticmethod
    def balance_score(loads: Sequence[float]) -> int:
        return balance_score(loads)

    @staticmethod
    def gini_coefficient(values: Sequence[float]) -> float:
        return gini_coefficient(values)

    def generate_fairness_report(
        self,
        household_id: str,
        members: Sequence[Member],
        history: Sequence[HistoricalLoadEntry],
        period_start: datetime,
        period_end: Optional[datetime] = None,
    ) -> FairnessReport:
        report = generate_fairness_report(
            household_id,
            members,
            history,
            period_start=period_start,
            period_end=period_end if period_end is not None else self._clock.now(),
        )
        logger.info(
            "Fairness report generated | household_id=%s | members=%s | fairness_index=%s | recommendations=%s",
            household_id,
            len(report.member_stats),
            report.overall_fairness_index,
            len(report.recommendations),
        )
        return report

    def suggest_rebalancing(self, report: FairnessReport) -> list[RebalanceSuggestion]:
        return suggest_rebalancing(report)
