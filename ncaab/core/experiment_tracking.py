"""
Experiment Tracking
===================
Optional MLflow recording of coupled training runs.

A tracker handed to ``FeedbackCoordinator`` receives the predictor loss,
representation loss, coefficient and feedback flag of every committed
step, keyed by iteration. Without the ``tracking`` extra installed every
call is a no-op, so training code never branches on MLflow.

Usage:
    from ncaab.core.experiment_tracking import ExperimentTracker

    tracker = ExperimentTracker(experiment_name="ncaab-latent")

    with tracker.start_run(run_name="season_2025_replay"):
        tracker.log_params(FEEDBACK_CONFIG)
        coordinator = FeedbackCoordinator(vae, predictor, tracker=tracker)
        coordinator.train_batch(observations)
        tracker.log_artifact("checkpoints/feedback_state.json")

The tracking URI comes from ``MLFLOW_TRACKING_URI`` (a local SQLite file
when unset).
"""

import logging
import os
from contextlib import contextmanager
from dataclasses import asdict, is_dataclass
from datetime import datetime
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TRACKING_URI = "sqlite:///mlruns.db"
EXPERIMENT_TAGS = {"project": "ncaab-latent", "model": "latent-team-feedback"}

try:
    import mlflow

    MLFLOW_AVAILABLE = True
except ImportError:
    MLFLOW_AVAILABLE = False
    logger.warning("MLflow not installed. Install with: pip install 'ncaab-latent[tracking]'")


class ExperimentTracker:
    """Records one experiment's training runs; inert when MLflow is absent."""

    def __init__(
        self,
        experiment_name: str = "ncaab-latent",
        tracking_uri: Optional[str] = None,
    ):
        self.experiment_name = experiment_name
        self.tracking_uri = tracking_uri or os.getenv("MLFLOW_TRACKING_URI", DEFAULT_TRACKING_URI)
        self.enabled = MLFLOW_AVAILABLE
        self._run = None

        if self.enabled:
            self._open_experiment()

    def _open_experiment(self):
        mlflow.set_tracking_uri(self.tracking_uri)
        if mlflow.get_experiment_by_name(self.experiment_name) is None:
            mlflow.create_experiment(self.experiment_name, tags=dict(EXPERIMENT_TAGS))
        mlflow.set_experiment(self.experiment_name)
        logger.info(
            "Experiment tracking enabled",
            extra={"experiment": self.experiment_name, "tracking_uri": self.tracking_uri},
        )

    @property
    def active(self) -> bool:
        """True when metrics will actually be recorded."""
        return self.enabled and self._run is not None

    @contextmanager
    def start_run(
        self,
        run_name: Optional[str] = None,
        tags: Optional[Dict[str, str]] = None,
        nested: bool = False,
    ):
        """Yields the MLflow run (None when disabled); the run always ends on exit."""
        if not self.enabled:
            yield None
            return

        run_tags = {
            "timestamp": datetime.now().isoformat(),
            "environment": os.getenv("ENVIRONMENT", "development"),
            **(tags or {}),
        }
        try:
            self._run = mlflow.start_run(run_name=run_name, tags=run_tags, nested=nested)
            yield self._run
        finally:
            if self._run:
                mlflow.end_run()
                self._run = None

    def log_params(self, params: Any):
        """Log a config dataclass or dict; non-scalar values are stringified."""
        if not self.active:
            return

        if is_dataclass(params):
            params = asdict(params)

        mlflow.log_params(
            {
                key: value if isinstance(value, (str, int, float, bool)) else str(value)
                for key, value in params.items()
            }
        )

    def log_metrics(self, metrics: Dict[str, float], step: Optional[int] = None):
        """Booleans are logged as 0/1; non-numeric values are skipped."""
        if not self.active:
            return

        for key, value in metrics.items():
            if isinstance(value, (bool, int, float)):
                mlflow.log_metric(key, float(value), step=step)

    def log_artifact(self, local_path: str, artifact_path: Optional[str] = None):
        if not self.active:
            return
        mlflow.log_artifact(local_path, artifact_path)
