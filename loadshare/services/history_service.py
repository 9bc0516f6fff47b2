"""Time-decayed historical load, load trend and fatigue estimation."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from loadshare.domain.constraints import HistoryConfig, validate_history_config
from loadshare.domain.models import DailyWorkload, HistoricalLoadEntry, LoadTrend
from loadshare.utils.clock import Clock, SystemClock, ensure_utc, start_of_day, whole_days_between
from loadshare.utils.config import Settings, get_settings
from loadshare.utils.logger import get_logger


logger = get_logger(__name__)

TREND_CHANGE_THRESHOLD = 0.15
HIGH_LOAD_FACTOR = 1.2
FATIGUE_STATE_LOOKBACK_DAYS = 14
MISSING_REST_DAY_PENALTY = 10
REST_GRACE_DAYS = 7
MAX_REST_PENALTY = 20

DEFAULT_HISTORY_CONFIG = HistoryConfig(
    half_life_days=14.0,
    max_age_days=90,
    recent_window_days=7,
    healthy_daily_load=12.0,
)


class HistoryValidationError(ValueError):
    """Raised when history aggregation arguments are invalid."""


@dataclass(frozen=True)
class TimeWeightedScore:
    score: float
    decay_factor: float
    age_in_days: int


@dataclass(frozen=True)
class FatigueState:
    user_id: str
    current_fatigue: int
    consecutive_high_load_days: int
    last_rest_day: Optional[datetime]
    recent_average_load: float
    weekly_load_trend: LoadTrend

    def to_dict(self) -> dict[str, object]:
        return {
            "user_id": self.user_id,
            "current_fatigue": self.current_fatigue,
            "consecutive_high_load_days": self.consecutive_high_load_days,
            "last_rest_day": self.last_rest_day.isoformat() if self.last_rest_day else None,
            "recent_average_load": self.recent_average_load,
            "weekly_load_trend": str(self.weekly_load_trend),
        }


def _entries_for(entries: Iterable[HistoricalLoadEntry], user_id: str) -> list[HistoricalLoadEntry]:
    return [entry for entry in entries if entry.user_id == user_id]


def _daily_totals(entries: Iterable[HistoricalLoadEntry]) -> dict[date, float]:
    totals: dict[date, float] = defaultdict(float)
    for entry in entries:
        totals[entry.date.date()] += entry.weight
    return dict(totals)


def time_decay(
    age_days: float,
    *,
    half_life_days: float = DEFAULT_HISTORY_CONFIG.half_life_days,
    max_age_days: int = DEFAULT_HISTORY_CONFIG.max_age_days,
) -> float:
    if age_days <= 0:
        return 1.0
    if age_days >= max_age_days:
        return 0.1
    return 0.5 ** (age_days / half_life_days)


def time_weighted_load(
    entries: Iterable[HistoricalLoadEntry],
    user_id: str,
    *,
    now: datetime,
    config: HistoryConfig = DEFAULT_HISTORY_CONFIG,
) -> TimeWeightedScore:
    user_entries = _entries_for(entries, user_id)
    if not user_entries:
        return TimeWeightedScore(score=0.0, decay_factor=1.0, age_in_days=0)

    weighted_sum = 0.0
    total_decay = 0.0
    total_age = 0
    for entry in user_entries:
        age = whole_days_between(now, entry.date)
        decay = time_decay(age, half_life_days=config.half_life_days, max_age_days=config.max_age_days)
        weighted_sum += entry.weight * decay
        total_decay += decay
        total_age += age

    return TimeWeightedScore(
        score=round(weighted_sum, 1),
        decay_factor=total_decay / len(user_entries),
        age_in_days=round(total_age / len(user_entries)),
    )


def category_load(
    entries: Iterable[HistoricalLoadEntry],
    user_id: str,
    *,
    now: datetime,
    config: HistoryConfig = DEFAULT_HISTORY_CONFIG,
) -> dict[str, float]:
    loads: dict[str, float] = defaultdict(float)
    for entry in _entries_for(entries, user_id):
        age = whole_days_between(now, entry.date)
        decay = time_decay(age, half_life_days=config.half_life_days, max_age_days=config.max_age_days)
        loads[entry.category] += entry.weight * decay
    return {category: round(value, 1) for category, value in loads.items()}


def decayed_total(
    entries: Iterable[HistoricalLoadEntry],
    user_id: str,
    *,
    now: datetime,
    config: HistoryConfig = DEFAULT_HISTORY_CONFIG,
) -> float:
    """Unrounded decayed weight sum, used when loads are compared across members."""
    return sum(
        entry.weight
        * time_decay(
            whole_days_between(now, entry.date),
            half_life_days=config.half_life_days,
            max_age_days=config.max_age_days,
        )
        for entry in _entries_for(entries, user_id)
    )


def load_trend(
    entries: Iterable[HistoricalLoadEntry],
    user_id: str,
    *,
    now: datetime,
    window_days: int = DEFAULT_HISTORY_CONFIG.recent_window_days,
) -> LoadTrend:
    if window_days <= 0:
        raise HistoryValidationError("window_days must be > 0")
    now = ensure_utc(now)
    recent_cutoff = now - timedelta(days=window_days)
    previous_cutoff = now - timedelta(days=window_days * 2)

    recent_load = 0.0
    previous_load = 0.0
    for entry in _entries_for(entries, user_id):
        if entry.date >= recent_cutoff:
            recent_load += entry.weight
        elif entry.date >= previous_cutoff:
            previous_load += entry.weight

    recent_daily = recent_load / window_days
    previous_daily = previous_load / window_days
    if previous_daily == 0:
        return LoadTrend.INCREASING if recent_daily > 0 else LoadTrend.STABLE

    change = (recent_daily - previous_daily) / previous_daily
    if change > TREND_CHANGE_THRESHOLD:
        return LoadTrend.INCREASING
    if change < -TREND_CHANGE_THRESHOLD:
        return LoadTrend.DECREASING
    return LoadTrend.STABLE


def _consecutive_heavy_active_days(daily_totals: dict[date, float], threshold: float) -> int:
    """Count back from the latest active day while days are adjacent and heavy."""
    streak = 0
    previous_day: Optional[date] = None
    for day in sorted(daily_totals, reverse=True):
        if previous_day is not None and (previous_day - day).days != 1:
            break
        if daily_totals[day] < threshold:
            break
        streak += 1
        previous_day = day
    return streak


def fatigue_level(
    entries: Iterable[HistoricalLoadEntry],
    user_id: str,
    *,
    now: datetime,
    last_rest_day: Optional[datetime] = None,
    config: HistoryConfig = DEFAULT_HISTORY_CONFIG,
) -> int:
    """Estimate fatigue (0-100) from recent intensity, heavy-day streaks and rest recency."""
    now = ensure_utc(now)
    window = config.recent_window_days
    recent_cutoff = now - timedelta(days=window)
    recent_entries = [entry for entry in _entries_for(entries, user_id) if entry.date >= recent_cutoff]

    average_daily_load = sum(entry.weight for entry in recent_entries) / window
    fatigue = min(100.0, average_daily_load / config.healthy_daily_load * 50)

    heavy_threshold = config.healthy_daily_load * HIGH_LOAD_FACTOR
    fatigue += _consecutive_heavy_active_days(_daily_totals(recent_entries), heavy_threshold) * 5

    if last_rest_day is not None:
        days_since_rest = whole_days_between(now, last_rest_day)
        if days_since_rest > REST_GRACE_DAYS:
            fatigue += min(MAX_REST_PENALTY, (days_since_rest - REST_GRACE_DAYS) * 2)
    else:
        fatigue += MISSING_REST_DAY_PENALTY

    return int(min(100, max(0, round(fatigue))))


def build_fatigue_state(
    entries: Iterable[HistoricalLoadEntry],
    user_id: str,
    *,
    now: datetime,
    last_rest_day: Optional[datetime] = None,
    config: HistoryConfig = DEFAULT_HISTORY_CONFIG,
) -> FatigueState:
    now = ensure_utc(now)
    user_entries = _entries_for(entries, user_id)
    fatigue = fatigue_level(user_entries, user_id, now=now, last_rest_day=last_rest_day, config=config)
    trend = load_trend(user_entries, user_id, now=now, window_days=config.recent_window_days)

    daily_totals = _daily_totals(user_entries)
    consecutive = 0
    for offset in range(FATIGUE_STATE_LOOKBACK_DAYS):
        day = (now - timedelta(days=offset)).date()
        if daily_totals.get(day, 0.0) >= config.healthy_daily_load:
            consecutive += 1
        else:
            break

    recent_cutoff = now - timedelta(days=config.recent_window_days)
    recent_total = sum(entry.weight for entry in user_entries if entry.date >= recent_cutoff)

    return FatigueState(
        user_id=user_id,
        current_fatigue=fatigue,
        consecutive_high_load_days=consecutive,
        last_rest_day=ensure_utc(last_rest_day) if last_rest_day is not None else None,
        recent_average_load=round(recent_total / config.recent_window_days, 1),
        weekly_load_trend=trend,
    )


def find_last_rest_day(
    entries: Iterable[HistoricalLoadEntry],
    user_id: str,
    *,
    now: datetime,
    lookback_days: int = 30,
) -> Optional[datetime]:
    """Most recent day inside the lookback with no recorded activity, if any."""
    active_days = {entry.date.date() for entry in _entries_for(entries, user_id)}
    today = start_of_day(now)
    for offset in range(lookback_days + 1):
        day = today - timedelta(days=offset)
        if day.date() not in active_days:
            return day
    return None


def daily_workload(
    entries: Iterable[HistoricalLoadEntry],
    user_id: str,
    *,
    start: datetime,
    end: datetime,
    max_daily_tasks: int,
    overload_percent: float = 80.0,
) -> list[DailyWorkload]:
    """One ``DailyWorkload`` per calendar day in ``[start, end]``, empty days included."""
    if max_daily_tasks <= 0:
        raise HistoryValidationError("max_daily_tasks must be > 0")
    first_day = start_of_day(start)
    last_day = start_of_day(end)
    if last_day < first_day:
        raise HistoryValidationError("end must not be before start")

    counts: dict[date, int] = defaultdict(int)
    minutes: dict[date, float] = defaultdict(float)
    for entry in _entries_for(entries, user_id):
        key = entry.date.date()
        counts[key] += 1
        minutes[key] += entry.minutes_spent or 0.0

    series: list[DailyWorkload] = []
    day = first_day
    while day <= last_day:
        key = day.date()
        series.append(
            DailyWorkload.from_counts(
                day,
                task_count=counts.get(key, 0),
                minutes_worked=minutes.get(key, 0.0),
                max_daily_tasks=max_daily_tasks,
                overload_percent=overload_percent,
            )
        )
        day += timedelta(days=1)
    return series


def history_config_from_settings(settings: Settings) -> HistoryConfig:
    config = HistoryConfig(
        half_life_days=settings.history_half_life_days,
        max_age_days=settings.history_max_age_days,
        recent_window_days=settings.history_recent_window_days,
        healthy_daily_load=settings.healthy_daily_load,
    )
    validate_history_config(config)
    return config


class HistoryAggregator:
    """Reads the append-only completion log relative to an injectable clock."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock or SystemClock()
        self._config = history_config_from_settings(self._settings)

    @property
    def config(self) -> HistoryConfig:
        return self._config

    def _now(self, now: Optional[datetime]) -> datetime:
        return ensure_utc(now) if now is not None else self._clock.now()

    def time_decay(self, age_days: float) -> float:
        return time_decay(
            age_days,
            half_life_days=self._config.half_life_days,
            max_age_days=self._config.max_age_days,
        )

    def time_weighted_load(
        self,
        entries: Iterable[HistoricalLoadEntry],
        user_id: str,
        now: Optional[datetime] = None,
    ) -> TimeWeightedScore:
        return time_weighted_load(entries, user_id, now=self._now(now), config=self._config)

    def category_load(
        self,
        entries: Iterable[HistoricalLoadEntry],
        user_id: str,
        now: Optional[datetime] = None,
    ) -> dict[str, float]:
        return category_load(entries, user_id, now=self._now(now), config=self._config)

    def decayed_total(
        self,
        entries: Iterable[HistoricalLoadEntry],
        user_id: str,
        now: Optional[datetime] = None,
    ) -> float:
        return decayed_total(entries, user_id, now=self._now(now), config=self._config)

    def load_trend(
        self,
        entries: Iterable[HistoricalLoadEntry],
        user_id: str,
        now: Optional[datetime] = None,
        window_days: Optional[int] = None,
    ) -> LoadTrend:
        return load_trend(
            entries,
            user_id,
            now=self._now(now),
            window_days=window_days if window_days is not None else self._config.recent_window_days,
        )

    def fatigue_level(
        self,
        entries: Iterable[HistoricalLoadEntry],
        user_id: str,
        last_rest_day: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> int:
        return fatigue_level(
            entries,
            user_id,
            now=self._now(now),
            last_rest_day=last_rest_day,
            config=self._config,
        )

    def build_fatigue_state(
        self,
        entries: Iterable[HistoricalLoadEntry],
        user_id: str,
        last_rest_day: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> FatigueState:
        state = build_fatigue_state(
            entries,
            user_id,
            now=self._now(now),
            last_rest_day=last_rest_day,
            config=self._config,
        )
        logger.debug(
            "Fatigue state built | user_id=%s | fatigue=%s | consecutive_high_days=%s | trend=%s",
            user_id,
            state.current_fatigue,
            state.consecutive_high_load_days,
            state.weekly_load_trend,
        )
        return state

    def find_last_rest_day(
        self,
        entries: Iterable[HistoricalLoadEntry],
        user_id: str,
        now: Optional[datetime] = None,
        lookback_days: int = 30,
    ) -> Optional[datetime]:
        return find_last_rest_day(entries, user_id, now=self._now(now), lookback_days=lookback_days)

    def daily_workload(
        self,
        entries: Iterable[HistoricalLoadEntry],
        user_id: str,
        max_daily_tasks: int,
        start: datetime,
        end: Optional[datetime] = None,
    ) -> list[DailyWorkload]:
        return daily_workload(
            entries,
            user_id,
            start=start,
            end=self._now(end),
            max_daily_tasks=max_daily_tasks,
            overload_percent=self._settings.burnout_warning_load_percent,
        )
