"""
Pytest Configuration and Fixtures
=================================
Provides database mocking, lightweight stand-in models, and sample data.

Note: Project paths are configured via pyproject.toml [tool.pytest.ini_options] pythonpath.
"""

from typing import Dict, List, Optional

import numpy as np
import pytest

# Small dimensions keep the tests fast; the algorithms are dimension-agnostic
TEST_INPUT_DIM = 8
TEST_LATENT_DIM = 6
TEST_CONTEXT_DIM = 2
TEST_OUTPUT_DIM = 3
TEST_HIDDEN_DIMS = (5,)

# =============================================================================
# DATABASE MOCKING FIXTURES
# =============================================================================


class MockCursor:
    """Mock database cursor that returns predefined results."""

    def __init__(self, results: Optional[List] = None, error: Optional[Exception] = None):
        self.results = results or []
        self.error = error
        self.description = None
        self.queries = []

    def execute(self, query: str, params: tuple = None):
        """Mock execute - stores query for inspection, optionally raises."""
        if self.error is not None:
            raise self.error
        self.last_query = query
        self.last_params = params
        self.queries.append((query, params))

    def fetchone(self):
        """Return first result or None."""
        if self.results:
            return self.results[0]
        return None

    def fetchall(self):
        """Return all results."""
        return self.results

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *args):
        pass


class MockConnection:
    """Mock database connection handing out cursors with canned results."""

    def __init__(self, results: Optional[List] = None, error: Optional[Exception] = None):
        self.results = results or []
        self.error = error
        self.cursors: List[MockCursor] = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self):
        cursor = MockCursor(self.results, self.error)
        self.cursors.append(cursor)
        return cursor

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *args):
        pass


@pytest.fixture
def make_connection():
    """Factory for mock connections with canned rows or a driver error."""
    return MockConnection


# =============================================================================
# STAND-IN MODELS
# =============================================================================


class FakeLearner:
    """Representation learner with scripted losses that records every call."""

    def __init__(
        self,
        input_dim: int = TEST_INPUT_DIM,
        latent_dim: int = TEST_LATENT_DIM,
        total_loss: float = 0.25,
    ):
        self.input_dim = input_dim
        self.latent_dim = latent_dim
        self.total_loss = total_loss
        self.aux_losses: List[float] = []
        self.fail_with: Optional[Exception] = None
        rng = np.random.default_rng(3)
        self._weights = rng.normal(0, 0.3, (2 * latent_dim, input_dim))
        self._bias = np.zeros(2 * latent_dim)

    def forward(self, features):
        return np.full(self.latent_dim, 0.5), np.ones(self.latent_dim)

    def train_step(self, features, target=None, aux_loss: float = 0.0) -> Dict[str, float]:
        if self.fail_with is not None:
            raise self.fail_with
        self.aux_losses.append(aux_loss)
        return {"total_loss": self.total_loss + aux_loss, "feedback_loss": aux_loss}

    def encoder_parameters(self):
        return [self._weights.copy(), self._bias.copy()]

    def get_parameters(self):
        return self.encoder_parameters()

    def set_parameters(self, parameters):
        self._weights, self._bias = (np.array(p) for p in parameters)


class FakePredictor:
    """Predictor returning a fixed probability vector."""

    def __init__(
        self,
        latent_dim: int = TEST_LATENT_DIM,
        context_dim: int = TEST_CONTEXT_DIM,
        output_dim: int = TEST_OUTPUT_DIM,
    ):
        self.input_dim = 4 * latent_dim + context_dim
        self.output_dim = output_dim
        self.probabilities = np.full(output_dim, 1.0 / output_dim)
        self.inputs: List[np.ndarray] = []
        self.train_calls = 0
        self.fail_with: Optional[Exception] = None

    def forward(self, inputs):
        if self.fail_with is not None:
            raise self.fail_with
        self.inputs.append(np.asarray(inputs))
        return self.probabilities.copy()

    def train_step(self, inputs, target, aux_loss: float = 0.0) -> Dict[str, float]:
        self.train_calls += 1
        return {"total_loss": 0.0}

    def get_parameters(self):
        return [self.probabilities.copy()]

    def set_parameters(self, parameters):
        self.probabilities = np.array(parameters[0])


@pytest.fixture
def fake_learner():
    """Scripted representation learner."""
    return FakeLearner()


@pytest.fixture
def fake_predictor():
    """Predictor with uniform output (loss = log(3) against a one-hot target)."""
    return FakePredictor()


@pytest.fixture
def feedback_config():
    """Feedback config with a short window for fast convergence tests."""
    from ncaab.config.thresholds import get_feedback_config

    return get_feedback_config(stability_window=5, max_history_length=20)


@pytest.fixture
def coordinator(fake_learner, fake_predictor, feedback_config):
    """Coordinator over the stand-in models."""
    from ncaab.models.feedback_coordinator import FeedbackCoordinator

    return FeedbackCoordinator(fake_learner, fake_predictor, config=feedback_config)


# =============================================================================
# ENCODER / POSTERIOR FIXTURES
# =============================================================================


@pytest.fixture
def unfrozen_encoder():
    """Encoder with random parameters loaded but not yet frozen."""
    from ncaab.models.frozen_encoder import FrozenEncoder

    encoder = FrozenEncoder.new_with_dimensions(
        TEST_INPUT_DIM, TEST_LATENT_DIM, hidden_dims=TEST_HIDDEN_DIMS
    )
    encoder.initialize_random(seed=7)
    return encoder


@pytest.fixture
def frozen_encoder(unfrozen_encoder):
    """Frozen encoder ready for inference."""
    unfrozen_encoder.freeze()
    return unfrozen_encoder


@pytest.fixture
def memory_store():
    """Empty in-memory posterior store."""
    from ncaab.storage.posterior_store import InMemoryPosteriorStore

    return InMemoryPosteriorStore()


@pytest.fixture
def engine(memory_store, frozen_encoder):
    """Posterior engine with deterministic noise."""
    from ncaab.models.posterior_updater import PosteriorUpdateEngine

    return PosteriorUpdateEngine(memory_store, encoder=frozen_encoder, rng=np.random.default_rng(0))


@pytest.fixture
def sample_features():
    """Normalized game features for the test encoder."""
    return np.linspace(0.1, 0.9, TEST_INPUT_DIM).tolist()


@pytest.fixture
def sample_actual():
    """Box score of a strong offensive game."""
    return {"score": 84.0, "possessions": 70.0, "effective_fg_pct": 0.56}


@pytest.fixture
def sample_predicted():
    """Pre-game expectation slightly below the actual result."""
    return {"expected_points": 1.05, "possessions": 68.0, "score_prob": 0.50}


@pytest.fixture
def sample_observation(sample_features):
    """Training observation with a one-hot transition target."""
    return {
        "game_features": sample_features,
        "actual_transition_probs": [1.0, 0.0, 0.0],
    }


@pytest.fixture
def make_posterior():
    """Factory for posteriors with a given count and fill values."""
    from ncaab.core.schemas import LatentPosterior

    def _make(observation_count: int = 0, mean: float = 0.5, std_dev: float = 1.0):
        return LatentPosterior(
            mean=[mean] * TEST_LATENT_DIM,
            std_dev=[std_dev] * TEST_LATENT_DIM,
            observation_count=observation_count,
        )

    return _make
