"""
Unit Tests for the Reference Models
===================================
Tests for the numpy VAE and softmax transition predictor.
"""

import numpy as np
import pytest

INPUT_DIM = 8
LATENT_DIM = 3
CONTEXT_DIM = 2
OUTPUT_DIM = 4


@pytest.fixture
def vae():
    from ncaab.models.reference import LinearVariationalAutoencoder

    return LinearVariationalAutoencoder(INPUT_DIM, LATENT_DIM, seed=11)


@pytest.fixture
def predictor():
    from ncaab.models.reference import SoftmaxTransitionPredictor

    return SoftmaxTransitionPredictor(LATENT_DIM, CONTEXT_DIM, OUTPUT_DIM, seed=5)


@pytest.fixture
def features():
    return np.linspace(0.2, 0.8, INPUT_DIM)


class TestBuildPredictorInput:
    """Tests for the predictor input layout."""

    def test_concatenation_order(self):
        """Test A mean, A std, B mean, B std, context."""
        from ncaab.models.reference import build_predictor_input

        x = build_predictor_input([1, 2], [3, 4], [5, 6], [7, 8], [9])
        assert x.tolist() == [1, 2, 3, 4, 5, 6, 7, 8, 9]
        assert x.dtype == np.float64


class TestLinearVariationalAutoencoder:
    """Tests for the reference representation learner."""

    def test_forward_shapes(self, vae, features):
        """Test forward returns a mean and a positive std per latent dim."""
        mean, std_dev = vae.forward(features)
        assert mean.shape == (LATENT_DIM,)
        assert std_dev.shape == (LATENT_DIM,)
        assert np.all(std_dev > 0)

    def test_wrong_input_length(self, vae):
        """Test short feature vectors are malformed observations."""
        from ncaab.core.exceptions import MalformedObservationError

        with pytest.raises(MalformedObservationError, match="game_features"):
            vae.forward([0.5] * (INPUT_DIM - 1))

    def test_training_reduces_loss(self, features):
        """Test repeated steps on one game lower the objective."""
        from ncaab.models.reference import LinearVariationalAutoencoder

        model = LinearVariationalAutoencoder(
            INPUT_DIM, LATENT_DIM, learning_rate=0.05, beta_min=0.1, beta_max=0.1, seed=2
        )
        first = model.train_step(features)["vae_loss"]
        for _ in range(300):
            last = model.train_step(features)["vae_loss"]
        assert last < first

    def test_loss_breakdown(self, vae, features):
        """Test total = reconstruction + beta * KL + feedback."""
        losses = vae.train_step(features, aux_loss=0.3)

        assert losses["vae_loss"] == pytest.approx(
            losses["reconstruction_loss"] + losses["beta"] * losses["kl_loss"]
        )
        assert losses["total_loss"] == pytest.approx(losses["vae_loss"] + 0.3)
        assert losses["feedback_loss"] == 0.3

    def test_feedback_scales_step(self, features):
        """Test aux_loss = 1 doubles the parameter update."""
        from ncaab.models.reference import LinearVariationalAutoencoder

        plain = LinearVariationalAutoencoder(INPUT_DIM, LATENT_DIM, seed=4)
        coupled = LinearVariationalAutoencoder(INPUT_DIM, LATENT_DIM, seed=4)
        start = plain.get_parameters()

        plain.train_step(features, aux_loss=0.0)
        coupled.train_step(features, aux_loss=1.0)

        for before, p, c in zip(start, plain.get_parameters(), coupled.get_parameters()):
            np.testing.assert_allclose(c - before, 2.0 * (p - before), atol=1e-12)

    def test_beta_annealing(self, features):
        """Test beta ramps linearly to beta_max over the warmup."""
        from ncaab.models.reference import LinearVariationalAutoencoder

        model = LinearVariationalAutoencoder(
            INPUT_DIM, LATENT_DIM, beta_min=0.1, beta_max=3.0, warmup_steps=10, seed=1
        )
        assert model.current_beta() == pytest.approx(0.1)
        for _ in range(5):
            model.train_step(features)
        assert model.current_beta() == pytest.approx(1.55)
        for _ in range(5):
            model.train_step(features)
        assert model.current_beta() == pytest.approx(3.0)

    def test_supervised_target_length(self, vae, features):
        """Test an explicit target must match the input dimension."""
        from ncaab.core.exceptions import MalformedObservationError

        with pytest.raises(MalformedObservationError, match="target"):
            vae.train_step(features, target=[0.5] * 3)

    def test_encoder_parameters_are_copies(self, vae):
        """Test callers cannot mutate the live encoder."""
        weights, _ = vae.encoder_parameters()
        weights[:] = 0.0
        assert np.any(vae.enc_w != 0.0)

    def test_set_parameters_round_trip(self, vae, features):
        """Test loading another model's parameters reproduces its encoding."""
        from ncaab.models.reference import LinearVariationalAutoencoder

        other = LinearVariationalAutoencoder(INPUT_DIM, LATENT_DIM, seed=99)
        vae.set_parameters(other.get_parameters())

        np.testing.assert_allclose(vae.forward(features)[0], other.forward(features)[0])

    def test_set_parameters_wrong_shape(self, vae):
        """Test mismatched shapes raise ModelLoadError."""
        from ncaab.core.exceptions import ModelLoadError

        params = vae.get_parameters()
        params[0] = params[0][:, :-1]
        with pytest.raises(ModelLoadError):
            vae.set_parameters(params)

    def test_frozen_copy_matches(self, vae, features):
        """Test a frozen copy of the encoder reproduces forward()."""
        from ncaab.models.frozen_encoder import FrozenEncoder

        frozen = FrozenEncoder.from_existing_model(vae)
        mean, std_dev = vae.forward(features)
        encoding = frozen.encode(features)

        np.testing.assert_allclose(encoding.mean, mean)
        np.testing.assert_allclose(encoding.std_dev, std_dev)

    def test_protocol_conformance(self, vae):
        """Test the VAE satisfies the learner contract."""
        from ncaab.models.interfaces import RepresentationLearner

        assert isinstance(vae, RepresentationLearner)


class TestSoftmaxTransitionPredictor:
    """Tests for the reference transition predictor."""

    def test_input_dim(self, predictor):
        """Test input covers four latent vectors plus context."""
        assert predictor.input_dim == 4 * LATENT_DIM + CONTEXT_DIM

    def test_forward_is_distribution(self, predictor):
        """Test outputs are positive and sum to one."""
        probs = predictor.forward(np.full(predictor.input_dim, 0.5))
        assert probs.shape == (OUTPUT_DIM,)
        assert np.all(probs > 0)
        assert probs.sum() == pytest.approx(1.0)

    def test_forward_stable_for_large_inputs(self, predictor):
        """Test extreme logits do not overflow."""
        predictor.weights[0] = 1e4
        probs = predictor.forward(np.ones(predictor.input_dim))
        assert np.all(np.isfinite(probs))
        assert probs[0] == pytest.approx(1.0)

    def test_training_reduces_cross_entropy(self, predictor):
        """Test repeated steps fit a fixed target."""
        x = np.linspace(0.0, 1.0, predictor.input_dim)
        target = np.array([0.7, 0.1, 0.1, 0.1])

        first = predictor.train_step(x, target)["cross_entropy"]
        for _ in range(200):
            last = predictor.train_step(x, target)["cross_entropy"]
        assert last < first

    def test_aux_added_to_total(self, predictor):
        """Test aux_loss is reported on top of the cross-entropy."""
        losses = predictor.train_step(
            np.zeros(predictor.input_dim), [1.0, 0.0, 0.0, 0.0], aux_loss=0.2
        )
        assert losses["total_loss"] == pytest.approx(losses["cross_entropy"] + 0.2)

    def test_wrong_target_length(self, predictor):
        """Test malformed transition targets are rejected."""
        from ncaab.core.exceptions import MalformedObservationError

        with pytest.raises(MalformedObservationError, match="transition_target"):
            predictor.train_step(np.zeros(predictor.input_dim), [1.0, 0.0])

    def test_set_parameters_wrong_shape(self, predictor):
        """Test mismatched shapes raise ModelLoadError."""
        from ncaab.core.exceptions import ModelLoadError

        with pytest.raises(ModelLoadError, match="SoftmaxTransitionPredictor"):
            predictor.set_parameters([np.zeros((OUTPUT_DIM, 3)), np.zeros(OUTPUT_DIM)])

    def test_protocol_conformance(self, predictor):
        """Test the predictor satisfies the predictor contract."""
        from ncaab.models.interfaces import Predictor

        assert isinstance(predictor, Predictor)
