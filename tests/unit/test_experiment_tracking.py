"""
Unit Tests for Experiment Tracking
==================================
Tests for the MLflow wrapper. MLflow itself is always mocked so no
experiments are created and the tests pass without the tracking extra.
"""

from dataclasses import dataclass
from unittest.mock import MagicMock, patch

import pytest

MODULE = "ncaab.core.experiment_tracking"


@pytest.fixture
def mock_mlflow():
    """MLflow available and fully mocked."""
    mlflow = MagicMock()
    mlflow.get_experiment_by_name.return_value = None
    with patch(f"{MODULE}.MLFLOW_AVAILABLE", True), patch(
        f"{MODULE}.mlflow", mlflow, create=True
    ):
        yield mlflow


class TestTrackerInitialization:
    """Tests for ExperimentTracker construction."""

    @patch(f"{MODULE}.MLFLOW_AVAILABLE", False)
    def test_defaults(self, monkeypatch):
        """Test default experiment name and tracking URI."""
        from ncaab.core.experiment_tracking import ExperimentTracker

        monkeypatch.delenv("MLFLOW_TRACKING_URI", raising=False)
        tracker = ExperimentTracker()
        assert tracker.experiment_name == "ncaab-latent"
        assert tracker.tracking_uri == "sqlite:///mlruns.db"

    @patch(f"{MODULE}.MLFLOW_AVAILABLE", False)
    def test_uri_from_env(self, monkeypatch):
        """Test MLFLOW_TRACKING_URI is honoured."""
        from ncaab.core.experiment_tracking import ExperimentTracker

        monkeypatch.setenv("MLFLOW_TRACKING_URI", "http://mlflow.test:5000")
        assert ExperimentTracker().tracking_uri == "http://mlflow.test:5000"

    def test_creates_missing_experiment(self, mock_mlflow):
        """Test a new experiment is created with project tags."""
        from ncaab.core.experiment_tracking import ExperimentTracker

        ExperimentTracker(experiment_name="replay", tracking_uri="sqlite:///t.db")

        mock_mlflow.set_tracking_uri.assert_called_once_with("sqlite:///t.db")
        mock_mlflow.create_experiment.assert_called_once()
        assert mock_mlflow.create_experiment.call_args[0][0] == "replay"
        assert mock_mlflow.create_experiment.call_args[1]["tags"]["project"] == "ncaab-latent"
        mock_mlflow.set_experiment.assert_called_once_with("replay")

    def test_reuses_existing_experiment(self, mock_mlflow):
        """Test existing experiments are not recreated."""
        from ncaab.core.experiment_tracking import ExperimentTracker

        mock_mlflow.get_experiment_by_name.return_value = MagicMock()
        ExperimentTracker()
        mock_mlflow.create_experiment.assert_not_called()


class TestTrackerDisabled:
    """Tests for the no-op behaviour without MLflow."""

    @patch(f"{MODULE}.MLFLOW_AVAILABLE", False)
    def test_everything_is_a_no_op(self, tmp_path):
        """Test runs yield None and logging calls do nothing."""
        from ncaab.core.experiment_tracking import ExperimentTracker

        tracker = ExperimentTracker()
        assert tracker.enabled is False

        with tracker.start_run(run_name="offline") as run:
            assert run is None
            assert tracker.active is False
            tracker.log_params({"decay_rate": 0.99})
            tracker.log_metrics({"predictor_loss": 0.4}, step=1)
            tracker.log_artifact(str(tmp_path))


class TestTrackerLogging:
    """Tests for logging inside an active run."""

    def test_run_lifecycle(self, mock_mlflow):
        """Test start_run starts and always ends the MLflow run."""
        from ncaab.core.experiment_tracking import ExperimentTracker

        tracker = ExperimentTracker()
        with tracker.start_run(run_name="season_2025", tags={"split": "train"}):
            assert tracker.active is True

        assert tracker.active is False
        kwargs = mock_mlflow.start_run.call_args[1]
        assert kwargs["run_name"] == "season_2025"
        assert kwargs["tags"]["split"] == "train"
        assert "timestamp" in kwargs["tags"]
        mock_mlflow.end_run.assert_called_once()

    def test_run_ended_on_error(self, mock_mlflow):
        """Test the run is closed when the body raises."""
        from ncaab.core.experiment_tracking import ExperimentTracker

        tracker = ExperimentTracker()
        with pytest.raises(RuntimeError):
            with tracker.start_run():
                raise RuntimeError("boom")

        mock_mlflow.end_run.assert_called_once()
        assert tracker.active is False

    def test_log_params_flattens_dataclass(self, mock_mlflow):
        """Test config dataclasses are logged field by field."""
        from ncaab.config.thresholds import FEEDBACK_CONFIG
        from ncaab.core.experiment_tracking import ExperimentTracker

        tracker = ExperimentTracker()
        with tracker.start_run():
            tracker.log_params(FEEDBACK_CONFIG)

        logged = mock_mlflow.log_params.call_args[0][0]
        assert logged["decay_rate"] == 0.99
        assert logged["stability_window"] == 10

    def test_log_params_stringifies_complex_values(self, mock_mlflow):
        """Test non-scalar values become strings."""
        from ncaab.core.experiment_tracking import ExperimentTracker

        @dataclass
        class EncoderSettings:
            hidden_dims: tuple = (128, 64)
            latent_dim: int = 32

        tracker = ExperimentTracker()
        with tracker.start_run():
            tracker.log_params(EncoderSettings())

        logged = mock_mlflow.log_params.call_args[0][0]
        assert logged == {"hidden_dims": "(128, 64)", "latent_dim": 32}

    def test_log_metrics_with_step(self, mock_mlflow):
        """Test booleans are logged as floats and non-numbers skipped."""
        from ncaab.core.experiment_tracking import ExperimentTracker

        tracker = ExperimentTracker()
        with tracker.start_run():
            tracker.log_metrics(
                {"predictor_loss": 0.7, "feedback_triggered": True, "note": "skip"}, step=12
            )

        calls = {c[0][0]: (c[0][1], c[1]["step"]) for c in mock_mlflow.log_metric.call_args_list}
        assert calls == {"predictor_loss": (0.7, 12), "feedback_triggered": (1.0, 12)}

    def test_log_artifact(self, mock_mlflow, tmp_path):
        """Test artifacts are forwarded to MLflow."""
        from ncaab.core.experiment_tracking import ExperimentTracker

        tracker = ExperimentTracker()
        with tracker.start_run():
            tracker.log_artifact(str(tmp_path), "checkpoints")

        mock_mlflow.log_artifact.assert_called_once_with(str(tmp_path), "checkpoints")

    def test_no_logging_outside_run(self, mock_mlflow):
        """Test enabled trackers still ignore calls without a run."""
        from ncaab.core.experiment_tracking import ExperimentTracker

        tracker = ExperimentTracker()
        tracker.log_metrics({"predictor_loss": 0.1})
        mock_mlflow.log_metric.assert_not_called()
