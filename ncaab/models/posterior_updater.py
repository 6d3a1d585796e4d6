"""
Posterior Update Engine
=======================
Incremental, uncertainty-weighted correction of per-team latent posteriors.

For a team with ``n`` prior observations:

    rate        = 2.0x base    if n < new_threshold
                  1.5x base    if n < established_threshold
                  1.0x base    otherwise
    uncertainty = clamp(base_uncertainty * decay^n, floor, 1.0)
    mean'       = clamp(regress(mean + rate * uncertainty * delta))
    std_dev'    = max(min_std_dev, std_dev * std_dev_decay_rate)

``regress`` pulls every entry toward ``prior_mean`` by ``regression_strength``.
This is a heuristic correction, not a closed-form Bayesian update; no
covariance is tracked.

Delta vector (bounded to +/- DELTA_BOUND):
    [0] offensive efficiency gap  (actual ppp - expected ppp) / 2
    [1] defensive efficiency gap  -0.5 * [0]
    [2] pace gap                  (actual poss - expected poss) / 20
    [3] shooting gap              actual eFG% - expected shooting rate
    [4:] uniform noise in +/- 0.01 for unmodeled factors

Usage:
    from ncaab.models.posterior_updater import PosteriorUpdateEngine

    engine = PosteriorUpdateEngine(store, encoder=frozen_encoder)
    result = engine.update_entity("duke", actual, predicted, features=game_features)
    summary = engine.batch_update(updates)
    print(summary.to_dict())
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from pydantic import ValidationError

from ncaab.config.constants import (
    DEFAULT_EFG_PCT,
    DEFAULT_POINTS_PER_POSSESSION,
    DEFAULT_POSSESSIONS,
    DELTA_BOUND,
    DOMAIN_DELTA_DIMS,
    EFFICIENCY_DELTA_SCALE,
    LATENT_DIM,
    NOISE_DELTA_SCALE,
    PACE_DELTA_SCALE,
)
from ncaab.config.thresholds import POSTERIOR_UPDATE_CONFIG, PosteriorUpdateConfig
from ncaab.core.exceptions import (
    MalformedObservationError,
    MissingEntityError,
    TransientObservationError,
)
from ncaab.core.schemas import (
    EntityUpdate,
    LatentPosterior,
    PerformanceStats,
    PredictedPerformance,
)
from ncaab.models.frozen_encoder import FrozenEncoder
from ncaab.storage.posterior_store import PosteriorStore

logger = logging.getLogger(__name__)

# Asymptotic confidence reached by long-lived teams
MAX_CONFIDENCE = 0.8
CONFIDENCE_GAMES_SCALE = 20.0


@dataclass
class PosteriorUpdateResult:
    """Outcome of one entity update."""

    entity_id: str
    posterior: LatentPosterior
    average_change: float
    learning_rate: float
    uncertainty: float

    @property
    def observation_count(self) -> int:
        return self.posterior.observation_count

    def to_dict(self) -> dict:
        return {
            "entity_id": self.entity_id,
            "average_change": self.average_change,
            "learning_rate": self.learning_rate,
            "uncertainty": self.uncertainty,
            "observation_count": self.observation_count,
        }


@dataclass
class UpdateFailure:
    """One failed item of a batch update."""

    index: int
    entity_id: Optional[str]
    reason: str

    def to_dict(self) -> dict:
        return {"index": self.index, "entity_id": self.entity_id, "reason": self.reason}


@dataclass
class BatchUpdateSummary:
    """Completion report of a batch update, produced even under partial failure."""

    total: int
    success: int
    failures: List[UpdateFailure] = field(default_factory=list)
    results: List[PosteriorUpdateResult] = field(default_factory=list)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def success_rate(self) -> float:
        return self.success / max(self.total, 1)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "success": self.success,
            "failure_count": self.failure_count,
            "failures": [f.to_dict() for f in self.failures],
        }


class PosteriorUpdateEngine:
    """
    Applies per-game posterior corrections and persists them.

    Teams without a stored posterior are initialized from the frozen
    encoder's encoding of their features.
    """

    def __init__(
        self,
        store: PosteriorStore,
        encoder: Optional[FrozenEncoder] = None,
        config: Optional[PosteriorUpdateConfig] = None,
        latent_dim: int = LATENT_DIM,
        rng: Optional[np.random.Generator] = None,
    ):
        self.store = store
        self.encoder = encoder
        self.config = config or POSTERIOR_UPDATE_CONFIG
        self.latent_dim = encoder.latent_dim if encoder is not None else latent_dim
        self.rng = rng if rng is not None else np.random.default_rng()

    # =========================================================================
    # Update rule components
    # =========================================================================

    def learning_rate(self, observation_count: int) -> float:
        base = self.config.base_learning_rate
        if observation_count < self.config.new_threshold:
            return base * 2.0
        if observation_count < self.config.established_threshold:
            return base * 1.5
        return base

    def uncertainty(self, observation_count: int) -> float:
        raw = self.config.base_uncertainty * self.config.uncertainty_decay_rate**observation_count
        return float(np.clip(raw, self.config.uncertainty_floor, 1.0))

    @staticmethod
    def confidence(observation_count: int) -> float:
        """Asymptotic confidence in a posterior, approaching 0.8."""
        return float(
            MAX_CONFIDENCE * (1.0 - np.exp(-3.0 * observation_count / CONFIDENCE_GAMES_SCALE))
        )

    def delta(
        self,
        actual: Union[PerformanceStats, Dict[str, Any]],
        predicted: Union[PredictedPerformance, Dict[str, Any]],
    ) -> np.ndarray:
        """Bounded observed-minus-expected performance vector."""
        actual = _coerce(PerformanceStats, actual)
        predicted = _coerce(PredictedPerformance, predicted)

        actual_pace = actual.possessions or DEFAULT_POSSESSIONS
        predicted_pace = predicted.possessions or DEFAULT_POSSESSIONS
        predicted_ppp = (
            predicted.expected_points
            if predicted.expected_points is not None
            else DEFAULT_POINTS_PER_POSSESSION
        )
        actual_efg = (
            actual.effective_fg_pct if actual.effective_fg_pct is not None else DEFAULT_EFG_PCT
        )
        predicted_efg = predicted.score_prob if predicted.score_prob is not None else DEFAULT_EFG_PCT

        offensive = (actual.score / actual_pace - predicted_ppp) / EFFICIENCY_DELTA_SCALE
        domain = np.array(
            [
                offensive,
                -0.5 * offensive,
                (actual_pace - predicted_pace) / PACE_DELTA_SCALE,
                actual_efg - predicted_efg,
            ]
        )

        delta = np.empty(self.latent_dim)
        n_domain = min(DOMAIN_DELTA_DIMS, self.latent_dim)
        delta[:n_domain] = domain[:n_domain]
        delta[n_domain:] = self.rng.uniform(
            -NOISE_DELTA_SCALE, NOISE_DELTA_SCALE, self.latent_dim - n_domain
        )
        # Unvalidated inputs (model_construct) can still carry inf/NaN
        delta = np.nan_to_num(delta, nan=0.0, posinf=DELTA_BOUND, neginf=-DELTA_BOUND)
        return np.clip(delta, -DELTA_BOUND, DELTA_BOUND)

    @staticmethod
    def apply_update(
        mean: Sequence[float], delta: Sequence[float], rate: float, uncertainty: float
    ) -> np.ndarray:
        return np.asarray(mean, dtype=np.float64) + rate * uncertainty * np.asarray(delta)

    def regress_to_mean(
        self, vector: Sequence[float], strength: Optional[float] = None
    ) -> np.ndarray:
        if strength is None:
            strength = self.config.regression_strength
        vector = np.asarray(vector, dtype=np.float64)
        return vector + strength * (self.config.prior_mean - vector)

    def clamp(
        self, vector: Sequence[float], lo: Optional[float] = None, hi: Optional[float] = None
    ) -> np.ndarray:
        lo = self.config.feature_min if lo is None else lo
        hi = self.config.feature_max if hi is None else hi
        return np.clip(np.asarray(vector, dtype=np.float64), lo, hi)

    def decay_std_dev(self, std_dev: Sequence[float]) -> np.ndarray:
        decayed = np.asarray(std_dev, dtype=np.float64) * self.config.std_dev_decay_rate
        return np.maximum(decayed, self.config.min_std_dev)

    # =========================================================================
    # Entity updates
    # =========================================================================

    def initial_posterior(
        self, features: Sequence[float], entity_id: Optional[str] = None
    ) -> LatentPosterior:
        """First posterior of a team, from the frozen encoder."""
        if self.encoder is None:
            raise MissingEntityError(entity_id or "unknown")
        if len(features) != self.encoder.input_dim:
            raise MalformedObservationError(
                "features", self.encoder.input_dim, len(features), entity_id=entity_id
            )

        encoding = self.encoder.encode(features)
        return LatentPosterior(
            mean=self.clamp(encoding.mean).tolist(),
            std_dev=np.maximum(encoding.std_dev, self.config.min_std_dev).tolist(),
            observation_count=0,
        )

    def update_entity(
        self,
        entity_id: str,
        actual: Union[PerformanceStats, Dict[str, Any]],
        predicted: Union[PredictedPerformance, Dict[str, Any]],
        features: Optional[Sequence[float]] = None,
    ) -> PosteriorUpdateResult:
        """
        Fold one game into a team's posterior and persist it.

        Raises:
            MissingEntityError: No stored posterior and no fallback features
            MalformedObservationError: Fallback features or stored posterior
                have the wrong dimension
        """
        posterior = self.store.get(entity_id)
        if posterior is None:
            if features is None:
                raise MissingEntityError(entity_id)
            posterior = self.initial_posterior(features, entity_id=entity_id)
            logger.info("Initialized posterior from frozen encoder", extra={"entity_id": entity_id})
        elif posterior.latent_dim != self.latent_dim:
            raise MalformedObservationError(
                "posterior", self.latent_dim, posterior.latent_dim, entity_id=entity_id
            )

        count = posterior.observation_count
        rate = self.learning_rate(count)
        uncertainty = self.uncertainty(count)
        old_mean = np.asarray(posterior.mean, dtype=np.float64)

        new_mean = self.apply_update(old_mean, self.delta(actual, predicted), rate, uncertainty)
        new_mean = self.clamp(self.regress_to_mean(new_mean))
        new_std_dev = self.decay_std_dev(posterior.std_dev)

        updated = LatentPosterior(
            mean=new_mean.tolist(),
            std_dev=new_std_dev.tolist(),
            observation_count=count + 1,
            last_updated=datetime.now(),
        )
        self.store.put(entity_id, updated)
        self.store.touch_observation_timestamp(entity_id)

        average_change = float(np.mean(np.abs(new_mean - old_mean)))
        logger.debug(
            "Posterior updated",
            extra={
                "entity_id": entity_id,
                "observation_count": count + 1,
                "learning_rate": rate,
                "uncertainty": uncertainty,
                "average_change": average_change,
            },
        )
        return PosteriorUpdateResult(
            entity_id=entity_id,
            posterior=updated,
            average_change=average_change,
            learning_rate=rate,
            uncertainty=uncertainty,
        )

    def update_from_game(
        self,
        home: Union[EntityUpdate, Dict[str, Any]],
        away: Union[EntityUpdate, Dict[str, Any]],
    ) -> Tuple[PosteriorUpdateResult, PosteriorUpdateResult]:
        """Update both teams of one game; home first."""
        home = _coerce(EntityUpdate, home)
        away = _coerce(EntityUpdate, away)
        home_result = self.update_entity(home.entity_id, home.actual, home.predicted, home.features)
        away_result = self.update_entity(away.entity_id, away.actual, away.predicted, away.features)
        return home_result, away_result

    def batch_update(
        self, items: Sequence[Union[EntityUpdate, Dict[str, Any]]]
    ) -> BatchUpdateSummary:
        """
        Update each item independently; failures are collected, not raised.

        Only per-observation errors are collected. Integrity and storage
        errors still propagate.
        """
        summary = BatchUpdateSummary(total=len(items), success=0)

        for index, item in enumerate(items):
            entity_id = item.get("entity_id") if isinstance(item, dict) else item.entity_id
            try:
                update = _coerce(EntityUpdate, item)
                result = self.update_entity(
                    update.entity_id, update.actual, update.predicted, update.features
                )
            except (TransientObservationError, ValidationError) as e:
                summary.failures.append(UpdateFailure(index=index, entity_id=entity_id, reason=str(e)))
                logger.warning(
                    "Batch item failed",
                    extra={"index": index, "entity_id": entity_id, "error": str(e)},
                )
                continue

            summary.results.append(result)
            summary.success += 1

        logger.info(
            "Batch posterior update complete",
            extra={
                "total": summary.total,
                "success": summary.success,
                "failure_count": summary.failure_count,
            },
        )
        return summary


def _coerce(model_cls, value):
    if isinstance(value, model_cls):
        return value
    return model_cls.model_validate(value)
