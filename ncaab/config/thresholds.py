"""
Centralized Threshold Configuration for the Latent Team System
==============================================================
Frozen dataclasses containing every tunable constant of the control loop.

Each dataclass validates itself in ``__post_init__`` so an out-of-range
value fails at construction with ``InvalidConfigError`` instead of
surfacing mid-training.

Usage:
    from ncaab.config.thresholds import (
        POSTERIOR_UPDATE_CONFIG,
        FEEDBACK_CONFIG,
        get_feedback_config,
    )

    rate = POSTERIOR_UPDATE_CONFIG.base_learning_rate  # 0.1
    config = get_feedback_config(feedback_threshold=0.8)

Example:
    >>> from ncaab.config.thresholds import FEEDBACK_CONFIG
    >>> FEEDBACK_CONFIG.decay_rate
    0.99
"""

from dataclasses import dataclass, replace

from ncaab.config.constants import FEATURE_MAX, FEATURE_MIN, PRIOR_MEAN
from ncaab.core.exceptions import InvalidConfigError

__all__ = [
    "PosteriorUpdateConfig",
    "FeedbackConfig",
    "ImmutabilityConfig",
    "POSTERIOR_UPDATE_CONFIG",
    "FEEDBACK_CONFIG",
    "IMMUTABILITY_CONFIG",
    "get_posterior_update_config",
    "get_feedback_config",
    "get_immutability_config",
]


def _require_positive(key: str, value: float) -> None:
    if value <= 0:
        raise InvalidConfigError(key, value, "must be > 0")


def _require_unit_interval(key: str, value: float, open_low: bool = False) -> None:
    if open_low:
        if not 0 < value <= 1:
            raise InvalidConfigError(key, value, "must be in (0, 1]")
    elif not 0 <= value <= 1:
        raise InvalidConfigError(key, value, "must be in [0, 1]")


# =============================================================================
# POSTERIOR UPDATES
# =============================================================================


@dataclass(frozen=True)
class PosteriorUpdateConfig:
    """Per-team posterior update parameters.

    Attributes:
        base_learning_rate: Step size for established teams
        new_threshold: Teams with fewer observations get 2x the base rate
        established_threshold: Teams with fewer observations (but at least
            ``new_threshold``) get 1.5x the base rate
        regression_strength: Pull toward ``prior_mean`` after every update
        base_uncertainty: Uncertainty multiplier for a team with no games
        uncertainty_decay_rate: Per-game multiplicative decay of uncertainty
        uncertainty_floor: Lower bound on uncertainty
        std_dev_decay_rate: Per-game multiplicative decay of posterior stdDev
        min_std_dev: Lower bound on every posterior stdDev entry
        feature_min: Lower clamp of posterior means
        feature_max: Upper clamp of posterior means
        prior_mean: Regression target
    """

    base_learning_rate: float = 0.1
    new_threshold: int = 5
    established_threshold: int = 10
    regression_strength: float = 0.05
    base_uncertainty: float = 1.0
    uncertainty_decay_rate: float = 0.95
    uncertainty_floor: float = 0.1
    std_dev_decay_rate: float = 0.95
    min_std_dev: float = 0.1
    feature_min: float = FEATURE_MIN
    feature_max: float = FEATURE_MAX
    prior_mean: float = PRIOR_MEAN

    def __post_init__(self):
        _require_positive("base_learning_rate", self.base_learning_rate)
        if self.new_threshold < 0:
            raise InvalidConfigError("new_threshold", self.new_threshold, "must be >= 0")
        if self.established_threshold < self.new_threshold:
            raise InvalidConfigError(
                "established_threshold",
                self.established_threshold,
                f"must be >= new_threshold ({self.new_threshold})",
            )
        _require_unit_interval("regression_strength", self.regression_strength)
        _require_unit_interval("base_uncertainty", self.base_uncertainty, open_low=True)
        _require_unit_interval("uncertainty_decay_rate", self.uncertainty_decay_rate, open_low=True)
        _require_unit_interval("uncertainty_floor", self.uncertainty_floor, open_low=True)
        _require_unit_interval("std_dev_decay_rate", self.std_dev_decay_rate, open_low=True)
        _require_positive("min_std_dev", self.min_std_dev)
        if self.feature_min >= self.feature_max:
            raise InvalidConfigError(
                "feature_min", self.feature_min, f"must be < feature_max ({self.feature_max})"
            )
        if not self.feature_min <= self.prior_mean <= self.feature_max:
            raise InvalidConfigError("prior_mean", self.prior_mean, "must lie in the feature range")


# =============================================================================
# FEEDBACK COORDINATION
# =============================================================================


@dataclass(frozen=True)
class FeedbackConfig:
    """Coupled training parameters.

    Attributes:
        feedback_threshold: Predictor loss above which feedback fires
        initial_coefficient: Starting feedback coefficient
        decay_rate: Per-step multiplicative decay of the coefficient
        min_coefficient: Floor of the coefficient
        convergence_threshold: Sample variance of recent predictor losses
            below which training counts as converged
        stability_window: Trailing history length used for convergence
            and stability analysis
        max_stable_feedback_rate: Highest feedback rate still considered
            stable
        max_history_length: Loss history entries retained
        epsilon: Probability clamp used by the cross-entropy loss
    """

    feedback_threshold: float = 0.5
    initial_coefficient: float = 0.1
    decay_rate: float = 0.99
    min_coefficient: float = 0.001
    convergence_threshold: float = 1e-6
    stability_window: int = 10
    max_stable_feedback_rate: float = 0.5
    max_history_length: int = 1000
    epsilon: float = 1e-7

    def __post_init__(self):
        if self.feedback_threshold < 0:
            raise InvalidConfigError("feedback_threshold", self.feedback_threshold, "must be >= 0")
        _require_positive("initial_coefficient", self.initial_coefficient)
        _require_unit_interval("decay_rate", self.decay_rate, open_low=True)
        _require_positive("min_coefficient", self.min_coefficient)
        if self.min_coefficient > self.initial_coefficient:
            raise InvalidConfigError(
                "min_coefficient",
                self.min_coefficient,
                f"must be <= initial_coefficient ({self.initial_coefficient})",
            )
        _require_positive("convergence_threshold", self.convergence_threshold)
        if self.stability_window < 2:
            raise InvalidConfigError("stability_window", self.stability_window, "must be >= 2")
        _require_unit_interval("max_stable_feedback_rate", self.max_stable_feedback_rate)
        if self.max_history_length < 2 * self.stability_window:
            raise InvalidConfigError(
                "max_history_length",
                self.max_history_length,
                f"must hold two stability windows ({2 * self.stability_window})",
            )
        if not 0 < self.epsilon < 0.5:
            raise InvalidConfigError("epsilon", self.epsilon, "must be in (0, 0.5)")


# =============================================================================
# IMMUTABILITY GUARD
# =============================================================================


@dataclass(frozen=True)
class ImmutabilityConfig:
    """Frozen encoder validation parameters.

    Attributes:
        validation_interval_ms: Minimum time between periodic validations
    """

    validation_interval_ms: int = 60_000

    def __post_init__(self):
        if self.validation_interval_ms < 0:
            raise InvalidConfigError(
                "validation_interval_ms", self.validation_interval_ms, "must be >= 0"
            )


# =============================================================================
# SINGLETON INSTANCES
# =============================================================================

POSTERIOR_UPDATE_CONFIG = PosteriorUpdateConfig()
FEEDBACK_CONFIG = FeedbackConfig()
IMMUTABILITY_CONFIG = ImmutabilityConfig()


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def get_posterior_update_config(**overrides) -> PosteriorUpdateConfig:
    """Default posterior config with keyword overrides (validated)."""
    return replace(POSTERIOR_UPDATE_CONFIG, **overrides)


def get_feedback_config(**overrides) -> FeedbackConfig:
    """Default feedback config with keyword overrides (validated)."""
    return replace(FEEDBACK_CONFIG, **overrides)


def get_immutability_config(**overrides) -> ImmutabilityConfig:
    """Default immutability config with keyword overrides (validated)."""
    return replace(IMMUTABILITY_CONFIG, **overrides)
