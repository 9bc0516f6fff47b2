"""Environment-driven runtime settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache


_ENV_PREFIX = "LOADSHARE_"


def _env_str(name: str, default: str) -> str:
    return os.getenv(f"{_ENV_PREFIX}{name}", default)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{_ENV_PREFIX}{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{_ENV_PREFIX}{name} must be a number, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(f"{_ENV_PREFIX}{name}")
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Immutable settings shared by every engine service.

    Services receive a ``Settings`` instance explicitly; tests derive variants
    with ``dataclasses.replace`` instead of touching the environment.
    """

    app_name: str
    app_version: str
    log_level: str

    history_half_life_days: float
    history_max_age_days: int
    history_recent_window_days: int
    healthy_daily_load: float

    assignment_max_alternatives: int
    rationale_good_threshold: float
    rationale_concern_threshold: float

    burnout_warning_load_percent: float
    burnout_critical_load_percent: float
    burnout_max_consecutive_high_days: int
    burnout_min_rest_day_interval: int
    auto_balance_enabled: bool

    forecast_min_pattern_points: int
    forecast_min_monthly_points: int
    forecast_trend_window_weeks: int
    anomaly_sensitivity: float
    anomaly_window_days: int

    delegation_auto_suggest_enabled: bool
    delegation_auto_assign_threshold: float
    delegation_max_pending_per_member: int
    delegation_expiration_hours: float
    delegation_require_acceptance: bool

    balance_imbalance_threshold: float
    balance_overload_threshold: float
    balance_trend_window_days: int
    balance_reference_weekly_load: float
    balance_enable_weekly_digest: bool
    balance_enable_real_time_alerts: bool
    balance_suppress_positive_messages: bool


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        app_name=_env_str("APP_NAME", "loadshare"),
        app_version=_env_str("APP_VERSION", "0.1.0"),
        log_level=_env_str("LOG_LEVEL", "INFO"),
        history_half_life_days=_env_float("HISTORY_HALF_LIFE_DAYS", 14.0),
        history_max_age_days=_env_int("HISTORY_MAX_AGE_DAYS", 90),
        history_recent_window_days=_env_int("HISTORY_RECENT_WINDOW_DAYS", 7),
        healthy_daily_load=_env_float("HEALTHY_DAILY_LOAD", 12.0),
        assignment_max_alternatives=_env_int("ASSIGNMENT_MAX_ALTERNATIVES", 3),
        rationale_good_threshold=_env_float("RATIONALE_GOOD_THRESHOLD", 70.0),
        rationale_concern_threshold=_env_float("RATIONALE_CONCERN_THRESHOLD", 50.0),
        burnout_warning_load_percent=_env_float("BURNOUT_WARNING_LOAD_PERCENT", 80.0),
        burnout_critical_load_percent=_env_float("BURNOUT_CRITICAL_LOAD_PERCENT", 100.0),
        burnout_max_consecutive_high_days=_env_int("BURNOUT_MAX_CONSECUTIVE_HIGH_DAYS", 3),
        burnout_min_rest_day_interval=_env_int("BURNOUT_MIN_REST_DAY_INTERVAL", 7),
        auto_balance_enabled=_env_bool("AUTO_BALANCE_ENABLED", True),
        forecast_min_pattern_points=_env_int("FORECAST_MIN_PATTERN_POINTS", 14),
        forecast_min_monthly_points=_env_int("FORECAST_MIN_MONTHLY_POINTS", 60),
        forecast_trend_window_weeks=_env_int("FORECAST_TREND_WINDOW_WEEKS", 4),
        anomaly_sensitivity=_env_float("ANOMALY_SENSITIVITY", 2.0),
        anomaly_window_days=_env_int("ANOMALY_WINDOW_DAYS", 7),
        delegation_auto_suggest_enabled=_env_bool("DELEGATION_AUTO_SUGGEST_ENABLED", True),
        delegation_auto_assign_threshold=_env_float("DELEGATION_AUTO_ASSIGN_THRESHOLD", 85.0),
        delegation_max_pending_per_member=_env_int("DELEGATION_MAX_PENDING_PER_MEMBER", 5),
        delegation_expiration_hours=_env_float("DELEGATION_EXPIRATION_HOURS", 24.0),
        delegation_require_acceptance=_env_bool("DELEGATION_REQUIRE_ACCEPTANCE", True),
        balance_imbalance_threshold=_env_float("BALANCE_IMBALANCE_THRESHOLD", 60.0),
        balance_overload_threshold=_env_float("BALANCE_OVERLOAD_THRESHOLD", 80.0),
        balance_trend_window_days=_env_int("BALANCE_TREND_WINDOW_DAYS", 14),
        balance_reference_weekly_load=_env_float("BALANCE_REFERENCE_WEEKLY_LOAD", 20.0),
        balance_enable_weekly_digest=_env_bool("BALANCE_ENABLE_WEEKLY_DIGEST", True),
        balance_enable_real_time_alerts=_env_bool("BALANCE_ENABLE_REAL_TIME_ALERTS", True),
        balance_suppress_positive_messages=_env_bool("BALANCE_SUPPRESS_POSITIVE_MESSAGES", False),
    )
