"""
Online Team Updater
===================
Processes completed games through the full control loop.

Per game:
    1. Periodic immutability check of the frozen encoder (drift is fatal)
    2. Posterior updates for home and away teams
    3. Coupled training step using the two updated posteriors (a failure here
       leaves the posteriors committed and is reported as such)
    4. Checkpoint every ``checkpoint_every`` steps when a directory is set

Checkpoints are written between steps, never during one.

Usage:
    from ncaab.models.online_updater import OnlineTeamUpdater

    updater = OnlineTeamUpdater(encoder, engine, coordinator,
                                checkpoint_dir="checkpoints", checkpoint_every=50)
    summary = updater.process_games(games)
    print(summary.to_dict())
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
from pydantic import ValidationError

from ncaab.core.exceptions import PartialGameUpdateError, TransientObservationError
from ncaab.core.schemas import GameObservation, TrainingObservation
from ncaab.models.feedback_coordinator import FeedbackCoordinator, TrainingStepResult
from ncaab.models.frozen_encoder import FrozenEncoder
from ncaab.models.posterior_updater import PosteriorUpdateEngine, PosteriorUpdateResult

logger = logging.getLogger(__name__)

COORDINATOR_STATE_FILE = "feedback_state.json"
ENCODER_STATE_FILE = "frozen_encoder.json"
LEARNER_WEIGHTS_FILE = "representation_learner.npz"
PREDICTOR_WEIGHTS_FILE = "transition_predictor.npz"


@dataclass
class GameUpdateResult:
    game_id: str
    home: PosteriorUpdateResult
    away: PosteriorUpdateResult
    training: TrainingStepResult

    def to_dict(self) -> dict:
        return {
            "game_id": self.game_id,
            "home": self.home.to_dict(),
            "away": self.away.to_dict(),
            "training": self.training.to_dict(),
        }


@dataclass
class OnlineRunSummary:
    total: int
    processed: int = 0
    results: List[GameUpdateResult] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)
    checkpoints: List[str] = field(default_factory=list)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "processed": self.processed,
            "failure_count": self.failure_count,
            "failures": list(self.failures),
            "checkpoints": list(self.checkpoints),
        }


class OnlineTeamUpdater:
    """Wires the frozen encoder, posterior engine and coordinator together."""

    def __init__(
        self,
        encoder: FrozenEncoder,
        engine: PosteriorUpdateEngine,
        coordinator: FeedbackCoordinator,
        checkpoint_dir: Optional[Union[str, Path]] = None,
        checkpoint_every: int = 0,
    ):
        self.encoder = encoder
        self.engine = engine
        self.coordinator = coordinator
        self.checkpoint_dir = Path(checkpoint_dir) if checkpoint_dir else None
        self.checkpoint_every = checkpoint_every

    def ensure_encoder_integrity(self) -> None:
        """Raises IntegrityViolationError if the frozen encoder drifted."""
        if not self.encoder.validate_periodically():
            self.encoder.validate(strict=True)

    def process_game(self, game: Union[GameObservation, Dict[str, Any]]) -> GameUpdateResult:
        if not isinstance(game, GameObservation):
            game = GameObservation.model_validate(game)

        self.ensure_encoder_integrity()

        # New teams fall back to the game's own features
        home = game.home
        away = game.away
        if home.features is None:
            home = home.model_copy(update={"features": game.game_features})
        if away.features is None:
            away = away.model_copy(update={"features": game.game_features})

        # Each committed posterior stays committed if a later phase fails
        committed: List[str] = []
        try:
            home_result = self.engine.update_entity(
                home.entity_id, home.actual, home.predicted, home.features
            )
            committed.append(home.entity_id)
            away_result = self.engine.update_entity(
                away.entity_id, away.actual, away.predicted, away.features
            )
            committed.append(away.entity_id)

            observation = TrainingObservation(
                game_features=game.game_features,
                actual_transition_probs=game.actual_transition_probs,
                team_a_mean=home_result.posterior.mean,
                team_a_std_dev=home_result.posterior.std_dev,
                team_b_mean=away_result.posterior.mean,
                team_b_std_dev=away_result.posterior.std_dev,
                game_context=game.game_context,
            )
            training = self.coordinator.train_step(observation)
        except (TransientObservationError, ValidationError) as e:
            if not committed:
                raise
            raise PartialGameUpdateError(game.game_id, committed, str(e)) from e

        logger.info(
            "Game processed",
            extra={
                "game_id": game.game_id,
                "home": home.entity_id,
                "away": away.entity_id,
                "predictor_loss": round(training.predictor_loss, 6),
                "feedback_triggered": training.feedback_triggered,
            },
        )
        return GameUpdateResult(
            game_id=game.game_id, home=home_result, away=away_result, training=training
        )

    def process_games(
        self, games: Sequence[Union[GameObservation, Dict[str, Any]]]
    ) -> OnlineRunSummary:
        """Process games in order; per-game transient failures are collected."""
        summary = OnlineRunSummary(total=len(games))

        for index, game in enumerate(games):
            game_id = game.get("game_id") if isinstance(game, dict) else game.game_id
            try:
                result = self.process_game(game)
            except PartialGameUpdateError as e:
                summary.failures.append(
                    {
                        "index": index,
                        "game_id": game_id,
                        "reason": str(e),
                        "posteriors_committed": True,
                        "committed_entities": e.committed_entities,
                    }
                )
                logger.warning(
                    "Game training failed after posterior commit",
                    extra={"index": index, "game_id": game_id, "entities": e.committed_entities},
                )
                continue
            except (TransientObservationError, ValidationError) as e:
                summary.failures.append(
                    {
                        "index": index,
                        "game_id": game_id,
                        "reason": str(e),
                        "posteriors_committed": False,
                    }
                )
                logger.warning(
                    "Game skipped", extra={"index": index, "game_id": game_id, "error": str(e)}
                )
                continue

            summary.results.append(result)
            summary.processed += 1

            if self._checkpoint_due():
                summary.checkpoints.append(str(self.checkpoint(self.checkpoint_dir)))

        logger.info(
            "Online update run complete",
            extra={
                "total": summary.total,
                "processed": summary.processed,
                "failure_count": summary.failure_count,
            },
        )
        return summary

    def _checkpoint_due(self) -> bool:
        if self.checkpoint_dir is None or self.checkpoint_every <= 0:
            return False
        return self.coordinator.iteration % self.checkpoint_every == 0

    def checkpoint(self, directory: Union[str, Path]) -> Path:
        """Write coordinator state, frozen encoder and model weights to ``directory``."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        self.coordinator.save_state(directory / COORDINATOR_STATE_FILE)
        self.encoder.save(directory / ENCODER_STATE_FILE)
        np.savez(directory / LEARNER_WEIGHTS_FILE, *self.coordinator.learner.get_parameters())
        np.savez(directory / PREDICTOR_WEIGHTS_FILE, *self.coordinator.predictor.get_parameters())

        logger.info(
            "Checkpoint written",
            extra={"directory": str(directory), "iteration": self.coordinator.iteration},
        )
        return directory
