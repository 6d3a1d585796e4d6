"""
Feedback Coordinator
====================
Coupled training of the representation learner and the transition predictor.

One training step, committed atomically:

    1. predict   predictor(team representations + context)
    2. score     cross-entropy against observed transition frequencies
    3. decide    feedback fires iff predictor_loss > feedback_threshold
    4. learner   own objective, plus coefficient * predictor_loss if fired
    5. predictor supervised update on the ground truth
    6. decay     coefficient = max(min_coefficient, coefficient * decay_rate)
    7. record    append to loss history, advance iteration

The successor ``FeedbackState`` is built only after every phase succeeds and
is swapped in under a lock. Both models are snapshotted before the step
and restored on failure, so a failed model call leaves the previous state
and parameters untouched.

Usage:
    from ncaab.models.feedback_coordinator import FeedbackCoordinator

    coordinator = FeedbackCoordinator(vae, predictor)
    result = coordinator.train_step(observation)

    if coordinator.check_convergence():
        coordinator.save_state("checkpoints/feedback_state.json")

    print(coordinator.analyze_stability().to_dict())
"""

import json
import logging
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from pydantic import ValidationError

from ncaab.config.constants import PRIOR_MEAN
from ncaab.config.thresholds import FEEDBACK_CONFIG, FeedbackConfig
from ncaab.core.exceptions import (
    InvalidConfigError,
    InvalidStateError,
    MalformedObservationError,
    ModelError,
    ModelTrainingError,
    TransientObservationError,
)
from ncaab.core.experiment_tracking import ExperimentTracker
from ncaab.core.schemas import FeedbackState, LossRecord, TrainingObservation
from ncaab.models.interfaces import Predictor, RepresentationLearner
from ncaab.models.reference import build_predictor_input

logger = logging.getLogger(__name__)

HISTORY_COLUMNS = ["iteration", "predictor_loss", "representation_loss", "feedback_triggered"]


def cross_entropy(
    actual: Sequence[float], predicted: Sequence[float], epsilon: float = FEEDBACK_CONFIG.epsilon
) -> float:
    """-sum(actual * log(clip(predicted, eps, 1 - eps)))"""
    actual = np.asarray(actual, dtype=np.float64)
    predicted = np.clip(np.asarray(predicted, dtype=np.float64), epsilon, 1.0 - epsilon)
    if actual.shape != predicted.shape:
        raise MalformedObservationError("predicted", actual.shape[0], predicted.shape[0])
    return float(-np.sum(actual * np.log(predicted)))


def history_converged(loss_history: Sequence[LossRecord], config: FeedbackConfig) -> bool:
    """Sample variance of the trailing window's predictor losses below threshold."""
    window = config.stability_window
    if len(loss_history) < window:
        return False

    losses = [r.predictor_loss for r in loss_history[-window:]]
    return float(np.var(losses, ddof=1)) < config.convergence_threshold


def stability_report(state: FeedbackState, config: FeedbackConfig) -> "StabilityReport":
    """
    Stable when the trailing window's feedback rate is at most
    ``max_stable_feedback_rate`` and not above the preceding window's.

    With no complete preceding window the non-increasing condition holds
    trivially.
    """
    window = config.stability_window
    history = state.loss_history
    coefficient_decay = 1.0 - state.current_coefficient / config.initial_coefficient

    if len(history) < window:
        return StabilityReport(
            stable=False,
            reason="insufficient_history",
            feedback_rate=0.0,
            previous_feedback_rate=None,
            coefficient_decay=coefficient_decay,
            recent_feedback_triggers=sum(r.feedback_triggered for r in history),
        )

    recent_triggers = sum(r.feedback_triggered for r in history[-window:])
    feedback_rate = recent_triggers / window

    previous_rate = None
    if len(history) >= 2 * window:
        previous = history[-2 * window : -window]
        previous_rate = sum(r.feedback_triggered for r in previous) / window

    if feedback_rate > config.max_stable_feedback_rate:
        stable, reason = False, "feedback_rate_high"
    elif previous_rate is not None and feedback_rate > previous_rate:
        stable, reason = False, "feedback_rate_increasing"
    else:
        stable, reason = True, "stable"

    return StabilityReport(
        stable=stable,
        reason=reason,
        feedback_rate=feedback_rate,
        previous_feedback_rate=previous_rate,
        coefficient_decay=coefficient_decay,
        recent_feedback_triggers=recent_triggers,
    )


@dataclass
class TrainingStepResult:
    """Losses and feedback decision of one committed step."""

    iteration: int
    predictor_loss: float
    representation_loss: float
    feedback_triggered: bool
    feedback_coefficient: float
    feedback_loss: float
    next_coefficient: float
    representation_losses: Dict[str, float] = field(default_factory=dict)
    predictor_losses: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "iteration": self.iteration,
            "predictor_loss": self.predictor_loss,
            "representation_loss": self.representation_loss,
            "feedback_triggered": self.feedback_triggered,
            "feedback_coefficient": self.feedback_coefficient,
            "feedback_loss": self.feedback_loss,
            "next_coefficient": self.next_coefficient,
        }


@dataclass
class StabilityReport:
    """Feedback-rate health of the coupled system over the trailing window."""

    stable: bool
    reason: str
    feedback_rate: float
    previous_feedback_rate: Optional[float]
    coefficient_decay: float
    recent_feedback_triggers: int

    def to_dict(self) -> dict:
        return {
            "stable": self.stable,
            "reason": self.reason,
            "feedback_rate": self.feedback_rate,
            "previous_feedback_rate": self.previous_feedback_rate,
            "coefficient_decay": self.coefficient_decay,
            "recent_feedback_triggers": self.recent_feedback_triggers,
        }


@dataclass
class BatchTrainingSummary:
    """Aggregate of a sequential training batch."""

    total: int
    success: int
    avg_predictor_loss: float
    avg_representation_loss: float
    feedback_trigger_rate: float
    steps: List[TrainingStepResult] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "success": self.success,
            "failure_count": self.failure_count,
            "avg_predictor_loss": self.avg_predictor_loss,
            "avg_representation_loss": self.avg_representation_loss,
            "feedback_trigger_rate": self.feedback_trigger_rate,
            "failures": list(self.failures),
        }


class FeedbackCoordinator:
    """
    Drives coupled training steps and owns the ``FeedbackState``.

    Args:
        learner: Representation learner (see ``ncaab.models.interfaces``)
        predictor: Transition predictor consuming both teams' distributions
        config: Feedback parameters; defaults to ``FEEDBACK_CONFIG``
        tracker: Optional MLflow tracker; per-step metrics are logged when
            a run is active
        state: State to resume from; defaults to a fresh state
    """

    def __init__(
        self,
        learner: RepresentationLearner,
        predictor: Predictor,
        config: Optional[FeedbackConfig] = None,
        tracker: Optional[ExperimentTracker] = None,
        state: Optional[FeedbackState] = None,
    ):
        self.learner = learner
        self.predictor = predictor
        self.config = config or FEEDBACK_CONFIG
        self.tracker = tracker
        self.context_dim = predictor.input_dim - 4 * learner.latent_dim
        if self.context_dim < 0:
            raise InvalidConfigError(
                "predictor.input_dim",
                predictor.input_dim,
                f"must cover four latent vectors of size {learner.latent_dim}",
            )

        self._lock = threading.Lock()
        self._state = self._initial_state()
        if state is not None:
            self.restore(state)

    def _initial_state(self) -> FeedbackState:
        return FeedbackState(current_coefficient=self.config.initial_coefficient)

    @property
    def state(self) -> FeedbackState:
        return self._state

    @property
    def current_coefficient(self) -> float:
        return self._state.current_coefficient

    @property
    def iteration(self) -> int:
        return self._state.iteration

    # =========================================================================
    # Training
    # =========================================================================

    def predictor_input(self, observation: TrainingObservation) -> np.ndarray:
        """Team A/B distributions plus context, encoding the game when no posteriors are given."""
        if observation.has_team_representations:
            team_a = (observation.team_a_mean, observation.team_a_std_dev)
            team_b = (observation.team_b_mean, observation.team_b_std_dev)
        else:
            mean, std_dev = self.learner.forward(observation.game_features)
            team_a = team_b = (mean, std_dev)

        context = observation.game_context
        if context is None:
            context = np.full(self.context_dim, PRIOR_MEAN)
        return build_predictor_input(team_a[0], team_a[1], team_b[0], team_b[1], context)

    def train_step(
        self, observation: Union[TrainingObservation, Dict[str, Any]]
    ) -> TrainingStepResult:
        """
        Run one coupled training step and commit its state.

        Raises:
            TransientObservationError: Malformed observation, or a model
                call failed or timed out; the state is left unchanged
        """
        if not isinstance(observation, TrainingObservation):
            observation = TrainingObservation.model_validate(observation)

        actual = np.asarray(observation.actual_transition_probs, dtype=np.float64)
        if actual.shape[0] != self.predictor.output_dim:
            raise MalformedObservationError(
                "actual_transition_probs", self.predictor.output_dim, actual.shape[0]
            )

        with self._lock:
            state = self._state
            coefficient = state.current_coefficient
            snapshots = (self.learner.get_parameters(), self.predictor.get_parameters())

            try:
                inputs = self.predictor_input(observation)
                predicted = self.predictor.forward(inputs)
                predictor_loss = cross_entropy(actual, predicted, self.config.epsilon)

                triggered = predictor_loss > self.config.feedback_threshold
                feedback_loss = coefficient * predictor_loss if triggered else 0.0

                learner_losses = self.learner.train_step(
                    observation.game_features, aux_loss=feedback_loss
                )
                representation_loss = learner_losses.get("total_loss")
                if representation_loss is None:
                    raise ModelTrainingError(
                        "Learner returned no total_loss", model_name=type(self.learner).__name__
                    )
                predictor_losses = self.predictor.train_step(inputs, actual)
            except (ModelError, TimeoutError) as e:
                self._restore_parameters(snapshots)
                raise TransientObservationError(f"Training step failed: {e}") from e
            except Exception:
                self._restore_parameters(snapshots)
                raise

            next_coefficient = max(self.config.min_coefficient, coefficient * self.config.decay_rate)
            record = LossRecord(
                iteration=state.iteration,
                predictor_loss=predictor_loss,
                representation_loss=float(representation_loss),
                feedback_triggered=triggered,
            )
            history = list(state.loss_history)
            history.append(record)
            history = history[-self.config.max_history_length :]

            self._state = FeedbackState(
                current_coefficient=next_coefficient,
                iteration=state.iteration + 1,
                loss_history=history,
                total_feedback_triggers=state.total_feedback_triggers + int(triggered),
            )

        result = TrainingStepResult(
            iteration=record.iteration,
            predictor_loss=predictor_loss,
            representation_loss=record.representation_loss,
            feedback_triggered=triggered,
            feedback_coefficient=coefficient,
            feedback_loss=feedback_loss,
            next_coefficient=next_coefficient,
            representation_losses=dict(learner_losses),
            predictor_losses=dict(predictor_losses),
        )
        self._log_step(result)
        return result

    def train_batch(
        self, observations: Sequence[Union[TrainingObservation, Dict[str, Any]]]
    ) -> BatchTrainingSummary:
        """Sequential steps; per-observation failures are collected."""
        steps: List[TrainingStepResult] = []
        failures: List[Dict[str, Any]] = []

        for index, observation in enumerate(observations):
            try:
                steps.append(self.train_step(observation))
            except (TransientObservationError, ValidationError) as e:
                failures.append({"index": index, "reason": str(e)})
                logger.warning("Training observation skipped", extra={"index": index, "error": str(e)})

        if steps:
            avg_predictor = float(np.mean([s.predictor_loss for s in steps]))
            avg_representation = float(np.mean([s.representation_loss for s in steps]))
            trigger_rate = sum(s.feedback_triggered for s in steps) / len(steps)
        else:
            avg_predictor = avg_representation = trigger_rate = 0.0

        summary = BatchTrainingSummary(
            total=len(observations),
            success=len(steps),
            avg_predictor_loss=avg_predictor,
            avg_representation_loss=avg_representation,
            feedback_trigger_rate=trigger_rate,
            steps=steps,
            failures=failures,
        )
        logger.info(
            "Training batch complete",
            extra={
                "total": summary.total,
                "success": summary.success,
                "avg_predictor_loss": round(avg_predictor, 6),
                "feedback_trigger_rate": round(trigger_rate, 4),
                "coefficient": self.current_coefficient,
            },
        )
        return summary

    def _log_step(self, result: TrainingStepResult) -> None:
        logger.debug("Training step committed", extra=result.to_dict())
        if self.tracker is not None and self.tracker.active:
            self.tracker.log_metrics(
                {
                    "predictor_loss": result.predictor_loss,
                    "representation_loss": result.representation_loss,
                    "feedback_coefficient": result.feedback_coefficient,
                    "feedback_triggered": result.feedback_triggered,
                },
                step=result.iteration,
            )

    def _restore_parameters(self, snapshots) -> None:
        learner_params, predictor_params = snapshots
        self.learner.set_parameters(learner_params)
        self.predictor.set_parameters(predictor_params)
        logger.warning("Training step rolled back", extra={"iteration": self._state.iteration})

    # =========================================================================
    # Monitoring
    # =========================================================================

    def check_convergence(self) -> bool:
        return history_converged(self._state.loss_history, self.config)

    def analyze_stability(self) -> StabilityReport:
        return stability_report(self._state, self.config)

    def training_stats(self) -> Dict[str, Any]:
        state = self._state
        history = state.loss_history
        return {
            "total_iterations": state.iteration,
            "feedback_triggers": state.total_feedback_triggers,
            "current_coefficient": state.current_coefficient,
            "convergence_achieved": self.check_convergence(),
            "stability": self.analyze_stability().to_dict(),
            "loss_history_length": len(history),
            "average_predictor_loss": (
                float(np.mean([r.predictor_loss for r in history])) if history else 0.0
            ),
            "average_representation_loss": (
                float(np.mean([r.representation_loss for r in history])) if history else 0.0
            ),
        }

    def history_frame(self) -> pd.DataFrame:
        """Loss history as a DataFrame, one row per recorded step."""
        rows = [r.model_dump() for r in self._state.loss_history]
        return pd.DataFrame(rows, columns=HISTORY_COLUMNS)

    # =========================================================================
    # Control
    # =========================================================================

    def reset(self) -> None:
        with self._lock:
            self._state = self._initial_state()
        logger.info("Feedback state reset", extra={"coefficient": self.config.initial_coefficient})

    def set_feedback_threshold(self, threshold: float) -> None:
        with self._lock:
            self.config = replace(self.config, feedback_threshold=threshold)
        logger.info("Feedback threshold updated", extra={"feedback_threshold": threshold})

    def set_decay_parameters(
        self, decay_rate: Optional[float] = None, min_coefficient: Optional[float] = None
    ) -> None:
        """
        Change decay rate and/or floor.

        The floor may not exceed the current coefficient, since raising the
        coefficient up to it would be growth.
        """
        with self._lock:
            overrides = {}
            if decay_rate is not None:
                overrides["decay_rate"] = decay_rate
            if min_coefficient is not None:
                if min_coefficient > self._state.current_coefficient:
                    raise InvalidConfigError(
                        "min_coefficient",
                        min_coefficient,
                        f"must be <= current coefficient ({self._state.current_coefficient})",
                    )
                overrides["min_coefficient"] = min_coefficient
            self.config = replace(self.config, **overrides)
        logger.info("Decay parameters updated", extra=overrides)

    # =========================================================================
    # Persistence
    # =========================================================================

    def restore(self, state: Union[FeedbackState, Dict[str, Any]]) -> None:
        """Resume from a persisted state; training continues from its coefficient and iteration."""
        if not isinstance(state, FeedbackState):
            state = FeedbackState.from_record(state)

        if state.current_coefficient < self.config.min_coefficient:
            raise InvalidStateError(
                f"Persisted coefficient {state.current_coefficient} is below "
                f"min_coefficient {self.config.min_coefficient}",
                operation="restore",
            )
        if len(state.loss_history) > self.config.max_history_length:
            state = state.model_copy(
                update={"loss_history": state.loss_history[-self.config.max_history_length :]}
            )

        with self._lock:
            self._state = state

    def save_state(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self._state.to_record(), f, indent=2)
        logger.info(
            "Feedback state saved",
            extra={"path": str(path), "iteration": self._state.iteration},
        )
        return path

    def load_state(self, path: Union[str, Path]) -> FeedbackState:
        try:
            with open(path) as f:
                record = json.load(f)
            state = FeedbackState.from_record(record)
        except (OSError, ValueError) as e:
            raise InvalidStateError(
                f"Cannot load feedback state from {path}: {e}", operation="load_state"
            ) from e

        self.restore(state)
        logger.info(
            "Feedback state loaded",
            extra={
                "path": str(path),
                "iteration": state.iteration,
                "coefficient": state.current_coefficient,
            },
        )
        return self._state
