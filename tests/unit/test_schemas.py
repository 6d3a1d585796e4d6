"""
Unit Tests for Pydantic Schemas
===============================
Tests for data validation models and persisted state layouts.
"""

import pytest
from pydantic import ValidationError


class TestLatentPosterior:
    """Tests for LatentPosterior schema."""

    def test_valid_posterior(self):
        """Test a valid posterior."""
        from ncaab.core.schemas import LatentPosterior

        posterior = LatentPosterior(mean=[0.5] * 4, std_dev=[1.0] * 4, observation_count=3)
        assert posterior.latent_dim == 4
        assert posterior.observation_count == 3

    def test_mismatched_lengths(self):
        """Test mean and std_dev must share the latent dimension."""
        from ncaab.core.schemas import LatentPosterior

        with pytest.raises(ValidationError, match="std_dev has 3"):
            LatentPosterior(mean=[0.5] * 4, std_dev=[1.0] * 3)

    @pytest.mark.parametrize("bad", [0.0, -0.1])
    def test_non_positive_std_dev(self, bad):
        """Test every stdDev entry must be > 0."""
        from ncaab.core.schemas import LatentPosterior

        with pytest.raises(ValidationError):
            LatentPosterior(mean=[0.5, 0.5], std_dev=[1.0, bad])

    def test_negative_count(self):
        """Test observation count cannot be negative."""
        from ncaab.core.schemas import LatentPosterior

        with pytest.raises(ValidationError):
            LatentPosterior(mean=[0.5], std_dev=[1.0], observation_count=-1)

    def test_frozen(self):
        """Test posteriors are immutable values."""
        from ncaab.core.schemas import LatentPosterior

        posterior = LatentPosterior(mean=[0.5], std_dev=[1.0])
        with pytest.raises(ValidationError):
            posterior.observation_count = 5


class TestTrainingObservation:
    """Tests for TrainingObservation schema."""

    def test_without_representations(self):
        """Test observation without team vectors."""
        from ncaab.core.schemas import TrainingObservation

        obs = TrainingObservation(game_features=[0.1, 0.2], actual_transition_probs=[1.0, 0.0])
        assert obs.has_team_representations is False

    def test_partial_representations_rejected(self):
        """Test team vectors must be given for both teams or neither."""
        from ncaab.core.schemas import TrainingObservation

        with pytest.raises(ValidationError, match="both teams or neither"):
            TrainingObservation(
                game_features=[0.1],
                actual_transition_probs=[1.0],
                team_a_mean=[0.5],
                team_a_std_dev=[1.0],
            )

    def test_probability_out_of_range(self):
        """Test transition frequencies must be probabilities."""
        from ncaab.core.schemas import TrainingObservation

        with pytest.raises(ValidationError, match="Invalid probability"):
            TrainingObservation(game_features=[0.1], actual_transition_probs=[1.2, -0.2])


class TestFeedbackState:
    """Tests for the persisted coordinator state."""

    def test_record_uses_camel_case(self):
        """Test persisted field names."""
        from ncaab.core.schemas import FeedbackState, LossRecord

        state = FeedbackState(
            current_coefficient=0.05,
            iteration=2,
            loss_history=[
                LossRecord(
                    iteration=0,
                    predictor_loss=0.9,
                    representation_loss=0.3,
                    feedback_triggered=True,
                ),
                LossRecord(
                    iteration=1,
                    predictor_loss=0.4,
                    representation_loss=0.2,
                    feedback_triggered=False,
                ),
            ],
            total_feedback_triggers=1,
        )
        record = state.to_record()

        assert set(record) == {
            "currentCoefficient",
            "iteration",
            "lossHistory",
            "totalFeedbackTriggers",
        }
        assert record["lossHistory"][0] == {
            "iteration": 0,
            "predictorLoss": 0.9,
            "representationLoss": 0.3,
            "feedbackTriggered": True,
        }

    def test_round_trip_preserves_order(self):
        """Test from_record(to_record(state)) == state, history order included."""
        from ncaab.core.schemas import FeedbackState, LossRecord

        history = [
            LossRecord(
                iteration=i,
                predictor_loss=1.0 / (i + 1),
                representation_loss=0.1 * i,
                feedback_triggered=i % 2 == 0,
            )
            for i in range(7)
        ]
        state = FeedbackState(
            current_coefficient=0.0932065,
            iteration=7,
            loss_history=history,
            total_feedback_triggers=4,
        )

        restored = FeedbackState.from_record(state.to_record())
        assert restored == state
        assert [r.iteration for r in restored.loss_history] == list(range(7))

    def test_from_camel_case_record(self):
        """Test a hand-written persisted record loads."""
        from ncaab.core.schemas import FeedbackState

        state = FeedbackState.from_record(
            {"currentCoefficient": 0.1, "iteration": 0, "lossHistory": [], "totalFeedbackTriggers": 0}
        )
        assert state.current_coefficient == 0.1

    def test_non_positive_coefficient_rejected(self):
        """Test coefficient must be positive."""
        from ncaab.core.schemas import FeedbackState

        with pytest.raises(ValidationError):
            FeedbackState(current_coefficient=0.0)


class TestFrozenEncoderState:
    """Tests for the persisted frozen encoder layout."""

    def test_parameter_blob_size_check(self):
        """Test blob data must fill its shape."""
        from ncaab.core.schemas import ParameterBlob

        ParameterBlob(shape=[2, 3], data=[0.0] * 6)
        with pytest.raises(ValidationError, match="needs 6 values"):
            ParameterBlob(shape=[2, 3], data=[0.0] * 5)

    def test_record_layout(self):
        """Test persisted field names."""
        from ncaab.core.schemas import FrozenEncoderState, ParameterBlob

        state = FrozenEncoderState(
            input_dim=3,
            latent_dim=1,
            frozen=True,
            fingerprint="abc123",
            parameter_blobs=[
                ParameterBlob(shape=[2, 3], data=[0.1] * 6),
                ParameterBlob(shape=[2], data=[0.0, 0.0]),
            ],
        )
        record = state.to_record()

        assert set(record) == {"inputDim", "latentDim", "frozen", "fingerprint", "parameterBlobs"}
        assert FrozenEncoderState.from_record(record) == state


class TestGameObservation:
    """Tests for GameObservation schema."""

    def test_same_team_rejected(self):
        """Test home and away must differ."""
        from ncaab.core.schemas import GameObservation

        side = {"entity_id": "duke", "actual": {"score": 70}, "predicted": {}}
        with pytest.raises(ValidationError, match="both duke"):
            GameObservation(
                game_id="g1",
                home=side,
                away=side,
                game_features=[0.5],
                actual_transition_probs=[1.0],
            )
