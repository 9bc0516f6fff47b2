"""Domain-level validation rules for scoring, history, burnout, delegation and alert tuning."""

from __future__ import annotations

import math
from dataclasses import dataclass


@dataclass(frozen=True)
class ScoringWeights:
    load_balance: float = 0.30
    category_preference: float = 0.20
    skill_match: float = 0.15
    availability: float = 0.15
    rotation: float = 0.10
    fatigue: float = 0.10

    def as_dict(self) -> dict[str, float]:
        return {
            "load_balance": self.load_balance,
            "category_preference": self.category_preference,
            "skill_match": self.skill_match,
            "availability": self.availability,
            "rotation": self.rotation,
            "fatigue": self.fatigue,
        }


@dataclass(frozen=True)
class HistoryConfig:
    half_life_days: float
    max_age_days: int
    recent_window_days: int
    healthy_daily_load: float


@dataclass(frozen=True)
class BurnoutConfig:
    warning_load_percent: float
    critical_load_percent: float
    max_consecutive_high_days: int
    min_rest_day_interval: int
    enabled: bool = True
    auto_redistribute: bool = True


def validate_scoring_weights(weights: ScoringWeights) -> None:
    values = weights.as_dict()
    for name, value in values.items():
        if value < 0.0:
            raise ValueError(f"{name} weight must be >= 0")
    if not math.isclose(sum(values.values()), 1.0, abs_tol=1e-9):
        raise ValueError("scoring weights must sum to 1.0")


def validate_history_config(config: HistoryConfig) -> None:
    if config.half_life_days <= 0:
        raise ValueError("half_life_days must be > 0")
    if config.max_age_days <= 0:
        raise ValueError("max_age_days must be > 0")
    if config.recent_window_days <= 0:
        raise ValueError("recent_window_days must be > 0")
    if config.healthy_daily_load <= 0:
        raise ValueError("healthy_daily_load must be > 0")


def validate_burnout_config(config: BurnoutConfig) -> None:
    if config.warning_load_percent <= 0:
        raise ValueError("warning_load_percent must be > 0")
    if config.critical_load_percent < config.warning_load_percent:
        raise ValueError("critical_load_percent must be >= warning_load_percent")
    if config.max_consecutive_high_days <= 0:
        raise ValueError("max_consecutive_high_days must be > 0")
    if config.min_rest_day_interval <= 0:
        raise ValueError("min_rest_day_interval must be > 0")


@dataclass(frozen=True)
class DelegationPolicy:
    auto_suggest_enabled: bool = True
    auto_assign_threshold: float = 85.0
    max_pending_per_member: int = 5
    expiration_hours: float = 24.0
    require_acceptance: bool = True
    skill_match_weight: float = 0.30
    availability_weight: float = 0.25
    fairness_weight: float = 0.25
    preference_weight: float = 0.20

    def weights(self) -> dict[str, float]:
        return {
            "skill_match": self.skill_match_weight,
            "availability": self.availability_weight,
            "fairness": self.fairness_weight,
            "preference": self.preference_weight,
        }


@dataclass(frozen=True)
class AlertConfig:
    imbalance_threshold: float = 60.0
    overload_threshold: float = 80.0
    trend_window_days: int = 14
    reference_weekly_load: float = 20.0
    enable_weekly_digest: bool = True
    enable_real_time_alerts: bool = True
    suppress_positive_messages: bool = False


def validate_delegation_policy(policy: DelegationPolicy) -> None:
    weights = policy.weights()
    for name, value in weights.items():
        if value < 0.0:
            raise ValueError(f"{name} weight must be >= 0")
    if not math.isclose(sum(weights.values()), 1.0, abs_tol=1e-9):
        raise ValueError("delegation weights must sum to 1.0")
    if not 0 <= policy.auto_assign_threshold <= 100:
        raise ValueError("auto_assign_threshold must be between 0 and 100")
    if policy.max_pending_per_member <= 0:
        raise ValueError("max_pending_per_member must be > 0")
    if policy.expiration_hours <= 0:
        raise ValueError("expiration_hours must be > 0")


def validate_alert_config(config: AlertConfig) -> None:
    for name in ("imbalance_threshold", "overload_threshold"):
        value = getattr(config, name)
        if not 0 <= value <= 100:
            raise ValueError(f"{name} must be between 0 and 100")
    if config.trend_window_days <= 0:
        raise ValueError("trend_window_days must be > 0")
    if config.reference_weekly_load <= 0:
        raise ValueError("reference_weekly_load must be > 0")
