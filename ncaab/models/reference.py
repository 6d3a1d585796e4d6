"""
Reference Models
================
Small numpy implementations of the representation learner and predictor.

    LinearVariationalAutoencoder:
        encoder   x[input_dim] -> [mean, logVar][2 * latent_dim]  (linear)
        decoder   z[latent_dim] -> x_hat[input_dim]               (sigmoid)
        objective MSE(x, x_hat) + beta * KL(N(mean, var) || N(0, 1)) + aux

    SoftmaxTransitionPredictor:
        input     [A_mean, A_std, B_mean, B_std, context]
        output    softmax over transition outcomes
        objective cross-entropy against observed transition frequencies

Both are trained with plain SGD on analytic gradients. They are meant for
tests, demos and cold-start pretraining, not for production accuracy.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from ncaab.config.constants import GAME_CONTEXT_DIM, INPUT_DIM, LATENT_DIM, TRANSITION_DIM
from ncaab.core.exceptions import MalformedObservationError, ModelLoadError

logger = logging.getLogger(__name__)


def _as_vector(values: Sequence[float], expected: int, field: str) -> np.ndarray:
    vector = np.asarray(values, dtype=np.float64).reshape(-1)
    if vector.shape[0] != expected:
        raise MalformedObservationError(field, expected, vector.shape[0])
    return vector


def _check_shapes(parameters: List[np.ndarray], expected: List[Tuple[int, ...]], name: str):
    shapes = [tuple(np.shape(p)) for p in parameters]
    if shapes != expected:
        raise ModelLoadError(name, f"expected shapes {expected}, got {shapes}")


def build_predictor_input(
    team_a_mean: Sequence[float],
    team_a_std_dev: Sequence[float],
    team_b_mean: Sequence[float],
    team_b_std_dev: Sequence[float],
    game_context: Sequence[float],
) -> np.ndarray:
    """Concatenate both team distributions and the game context."""
    return np.concatenate(
        [
            np.asarray(team_a_mean, dtype=np.float64),
            np.asarray(team_a_std_dev, dtype=np.float64),
            np.asarray(team_b_mean, dtype=np.float64),
            np.asarray(team_b_std_dev, dtype=np.float64),
            np.asarray(game_context, dtype=np.float64),
        ]
    )


class LinearVariationalAutoencoder:
    """
    Linear beta-VAE over normalized game features.

    The mean is used as the latent code during training, so updates are
    deterministic given the data. ``aux_loss`` (the predictor feedback term)
    is added to the reported objective and scales the step by
    ``1 + aux_loss``: a poorly predicting system moves its representations
    faster.
    """

    def __init__(
        self,
        input_dim: int = INPUT_DIM,
        latent_dim: int = LATENT_DIM,
        learning_rate: float = 0.01,
        beta_min: float = 0.1,
        beta_max: float = 3.0,
        warmup_steps: int = 50,
        seed: Optional[int] = None,
    ):
        self.input_dim = input_dim
        self.latent_dim = latent_dim
        self.learning_rate = learning_rate
        self.beta_min = beta_min
        self.beta_max = beta_max
        self.warmup_steps = warmup_steps
        self.training_step = 0

        rng = np.random.default_rng(seed)
        self.enc_w = rng.normal(0, np.sqrt(1.0 / input_dim), (2 * latent_dim, input_dim))
        self.enc_b = np.zeros(2 * latent_dim)
        self.dec_w = rng.normal(0, np.sqrt(1.0 / latent_dim), (input_dim, latent_dim))
        self.dec_b = np.zeros(input_dim)

    def current_beta(self) -> float:
        """KL weight, annealed linearly from beta_min to beta_max."""
        if self.training_step < self.warmup_steps:
            progress = self.training_step / self.warmup_steps
            return self.beta_min + (self.beta_max - self.beta_min) * progress
        return self.beta_max

    def _encode(self, x: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        h = self.enc_w @ x + self.enc_b
        return h[: self.latent_dim], h[self.latent_dim :]

    def forward(self, features: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
        x = _as_vector(features, self.input_dim, "game_features")
        mean, log_var = self._encode(x)
        return mean, np.exp(0.5 * log_var)

    def decode(self, z: Sequence[float]) -> np.ndarray:
        z = _as_vector(z, self.latent_dim, "latent")
        return 1.0 / (1.0 + np.exp(-(self.dec_w @ z + self.dec_b)))

    def train_step(
        self,
        features: Sequence[float],
        target: Optional[Sequence[float]] = None,
        aux_loss: float = 0.0,
    ) -> Dict[str, float]:
        x = _as_vector(features, self.input_dim, "game_features")
        # Unsupervised: reconstruct the input unless a target is given
        y = x if target is None else _as_vector(target, self.input_dim, "target")

        mean, log_var = self._encode(x)
        recon = 1.0 / (1.0 + np.exp(-(self.dec_w @ mean + self.dec_b)))
        beta = self.current_beta()

        reconstruction_loss = float(np.mean((recon - y) ** 2))
        kl_loss = float(-0.5 * np.sum(1 + log_var - mean**2 - np.exp(log_var)))
        vae_loss = reconstruction_loss + beta * kl_loss
        total_loss = vae_loss + aux_loss

        grad_pre = (2.0 / self.input_dim) * (recon - y) * recon * (1.0 - recon)
        grad_dec_w = np.outer(grad_pre, mean)
        grad_dec_b = grad_pre
        grad_mean = self.dec_w.T @ grad_pre + beta * mean
        grad_log_var = beta * 0.5 * (np.exp(log_var) - 1.0)
        grad_h = np.concatenate([grad_mean, grad_log_var])

        step = self.learning_rate * (1.0 + aux_loss)
        self.enc_w -= step * np.outer(grad_h, x)
        self.enc_b -= step * grad_h
        self.dec_w -= step * grad_dec_w
        self.dec_b -= step * grad_dec_b
        self.training_step += 1

        return {
            "total_loss": total_loss,
            "vae_loss": vae_loss,
            "reconstruction_loss": reconstruction_loss,
            "kl_loss": kl_loss,
            "feedback_loss": aux_loss,
            "beta": beta,
        }

    def encoder_parameters(self) -> List[np.ndarray]:
        return [self.enc_w.copy(), self.enc_b.copy()]

    def get_parameters(self) -> List[np.ndarray]:
        return [self.enc_w.copy(), self.enc_b.copy(), self.dec_w.copy(), self.dec_b.copy()]

    def set_parameters(self, parameters: List[np.ndarray]) -> None:
        expected = [
            (2 * self.latent_dim, self.input_dim),
            (2 * self.latent_dim,),
            (self.input_dim, self.latent_dim),
            (self.input_dim,),
        ]
        _check_shapes(parameters, expected, "LinearVariationalAutoencoder")
        self.enc_w, self.enc_b, self.dec_w, self.dec_b = (
            np.array(p, dtype=np.float64) for p in parameters
        )


class SoftmaxTransitionPredictor:
    """Multinomial logistic regression over team representations and context."""

    def __init__(
        self,
        latent_dim: int = LATENT_DIM,
        context_dim: int = GAME_CONTEXT_DIM,
        output_dim: int = TRANSITION_DIM,
        learning_rate: float = 0.05,
        seed: Optional[int] = None,
    ):
        self.latent_dim = latent_dim
        self.context_dim = context_dim
        self.input_dim = 4 * latent_dim + context_dim
        self.output_dim = output_dim
        self.learning_rate = learning_rate

        rng = np.random.default_rng(seed)
        self.weights = rng.normal(0, 0.01, (output_dim, self.input_dim))
        self.bias = np.zeros(output_dim)

    def forward(self, inputs: Sequence[float]) -> np.ndarray:
        x = _as_vector(inputs, self.input_dim, "predictor_input")
        logits = self.weights @ x + self.bias
        logits -= logits.max()
        exp = np.exp(logits)
        return exp / exp.sum()

    def train_step(
        self,
        inputs: Sequence[float],
        target: Sequence[float],
        aux_loss: float = 0.0,
    ) -> Dict[str, float]:
        x = _as_vector(inputs, self.input_dim, "predictor_input")
        y = _as_vector(target, self.output_dim, "transition_target")
        probs = self.forward(x)
        loss = float(-np.sum(y * np.log(np.clip(probs, 1e-7, 1.0))))

        # d(CE)/d(logits) for softmax outputs
        grad_logits = probs * y.sum() - y
        self.weights -= self.learning_rate * np.outer(grad_logits, x)
        self.bias -= self.learning_rate * grad_logits

        return {"total_loss": loss + aux_loss, "cross_entropy": loss}

    def get_parameters(self) -> List[np.ndarray]:
        return [self.weights.copy(), self.bias.copy()]

    def set_parameters(self, parameters: List[np.ndarray]) -> None:
        _check_shapes(
            parameters,
            [(self.output_dim, self.input_dim), (self.output_dim,)],
            "SoftmaxTransitionPredictor",
        )
        self.weights, self.bias = (np.array(p, dtype=np.float64) for p in parameters)
