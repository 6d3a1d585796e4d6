"""
Frozen Encoder
==============
Inference-only snapshot of a trained encoder with an immutability guard.

After ``freeze()`` the parameter arrays are read-only and their fingerprint
is recorded. ``validate()`` recomputes the fingerprint and reports any
drift; a frozen encoder that no longer matches must not be used.

Fingerprint:
    SHA-256 over, for each parameter array in order, its shape followed by
    its values quantized to FINGERPRINT_RESOLUTION (1e-7) as little-endian
    int64. Any single-value perturbation of 1e-6 or more changes the
    digest; perturbations below ~5e-8 can round to the same step and pass.

Usage:
    from ncaab.models.frozen_encoder import FrozenEncoder

    encoder = FrozenEncoder.from_existing_model(trained_vae)
    encoding = encoder.encode(game_features)

    if not encoder.validate_periodically():
        ...  # drift detected and logged

    encoder.save("checkpoints/frozen_encoder.json")
    restored = FrozenEncoder.load("checkpoints/frozen_encoder.json")
"""

import hashlib
import json
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np

from ncaab.config.constants import (
    ENCODER_HIDDEN_DIMS,
    FINGERPRINT_DISPLAY_CHARS,
    FINGERPRINT_RESOLUTION,
)
from ncaab.config.thresholds import IMMUTABILITY_CONFIG, ImmutabilityConfig
from ncaab.core.exceptions import (
    IntegrityViolationError,
    InvalidStateError,
    MalformedObservationError,
    ModelLoadError,
)
from ncaab.core.schemas import FrozenEncoderState, ParameterBlob

logger = logging.getLogger(__name__)


def compute_fingerprint(
    parameters: Sequence[np.ndarray], resolution: float = FINGERPRINT_RESOLUTION
) -> str:
    """Order-sensitive SHA-256 digest of a parameter list."""
    digest = hashlib.sha256()
    digest.update(np.int64(len(parameters)).astype("<i8").tobytes())
    for array in parameters:
        array = np.asarray(array, dtype=np.float64)
        digest.update(np.asarray(array.shape, dtype="<i8").tobytes())
        quantized = np.round(array / resolution).astype("<i8")
        digest.update(quantized.tobytes())
    return digest.hexdigest()


def layer_shapes(
    input_dim: int, latent_dim: int, hidden_dims: Sequence[int]
) -> List[Tuple[int, ...]]:
    """Expected [W1, b1, ..., Wn, bn] shapes; weights are (out, in)."""
    shapes = []
    fan_in = input_dim
    for width in list(hidden_dims) + [2 * latent_dim]:
        shapes.append((width, fan_in))
        shapes.append((width,))
        fan_in = width
    return shapes


class Encoding(NamedTuple):
    """Latent distribution produced for one input."""

    mean: np.ndarray
    std_dev: np.ndarray


@dataclass
class ImmutabilityRecord:
    """Snapshot of the guard's bookkeeping."""

    fingerprint: Optional[str]
    validation_count: int
    last_validation_time: Optional[datetime]
    frozen: bool

    def to_dict(self) -> dict:
        return {
            "fingerprint": self.fingerprint,
            "validation_count": self.validation_count,
            "last_validation_time": (
                self.last_validation_time.isoformat() if self.last_validation_time else None
            ),
            "frozen": self.frozen,
        }


class FrozenEncoder:
    """
    Dense ReLU encoder whose parameters cannot change after ``freeze()``.

    The final layer has width ``2 * latent_dim`` and is split into mean and
    log-variance; ``std_dev = exp(0.5 * log_var)``.

    Build one with ``from_existing_model`` (copies a trained learner's
    encoder and freezes it) or ``new_with_dimensions`` (empty; load or
    initialize parameters, then freeze).
    """

    def __init__(
        self,
        input_dim: int,
        latent_dim: int,
        hidden_dims: Sequence[int] = ENCODER_HIDDEN_DIMS,
        config: Optional[ImmutabilityConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if input_dim <= 0 or latent_dim <= 0:
            raise InvalidStateError(
                f"Encoder dimensions must be positive (input={input_dim}, latent={latent_dim})",
                operation="init",
            )
        self.input_dim = input_dim
        self.latent_dim = latent_dim
        self.hidden_dims = tuple(hidden_dims)
        self.config = config or IMMUTABILITY_CONFIG
        self._clock = clock

        self._parameters: Optional[List[np.ndarray]] = None
        self._fingerprint: Optional[str] = None
        self._frozen = False
        self.frozen_at: Optional[datetime] = None

        self.validation_count = 0
        self.last_validation_time: Optional[datetime] = None
        self._last_validation_tick: Optional[float] = None

        self.inference_count = 0
        self._total_inference_seconds = 0.0

    # =========================================================================
    # Construction
    # =========================================================================

    @classmethod
    def from_existing_model(
        cls, model, config: Optional[ImmutabilityConfig] = None
    ) -> "FrozenEncoder":
        """
        Copy a trained learner's encoder and freeze it.

        Args:
            model: Object exposing ``input_dim``, ``latent_dim`` and
                ``encoder_parameters()`` ([W1, b1, ..., Wn, bn])

        Returns:
            Frozen encoder sharing no memory with ``model``
        """
        parameters = [np.array(p, dtype=np.float64) for p in model.encoder_parameters()]
        if len(parameters) < 2 or len(parameters) % 2:
            raise ModelLoadError(
                type(model).__name__, f"expected weight/bias pairs, got {len(parameters)} arrays"
            )
        hidden_dims = tuple(w.shape[0] for w in parameters[:-2:2])

        encoder = cls(model.input_dim, model.latent_dim, hidden_dims, config=config)
        encoder.load_parameters(parameters)
        encoder.freeze()
        logger.info(
            "Frozen encoder created from trained model",
            extra={"source": type(model).__name__, "hidden_dims": list(hidden_dims)},
        )
        return encoder

    @classmethod
    def new_with_dimensions(
        cls,
        input_dim: int,
        latent_dim: int,
        hidden_dims: Sequence[int] = ENCODER_HIDDEN_DIMS,
        config: Optional[ImmutabilityConfig] = None,
    ) -> "FrozenEncoder":
        """Unfrozen encoder with no parameters loaded."""
        return cls(input_dim, latent_dim, hidden_dims, config=config)

    def load_parameters(self, parameters: Sequence[np.ndarray]) -> None:
        """Load [W1, b1, ..., Wn, bn]; only allowed before freezing."""
        if self._frozen:
            raise InvalidStateError(
                "Cannot load parameters into a frozen encoder", operation="load_parameters"
            )

        expected = layer_shapes(self.input_dim, self.latent_dim, self.hidden_dims)
        arrays = [np.array(p, dtype=np.float64) for p in parameters]
        actual = [a.shape for a in arrays]
        if actual != expected:
            raise ModelLoadError("parameters", f"expected shapes {expected}, got {actual}")
        if not all(np.all(np.isfinite(a)) for a in arrays):
            raise ModelLoadError("parameters", "non-finite values")

        self._parameters = arrays

    def initialize_random(self, seed: Optional[int] = None) -> None:
        """He-initialize parameters when no pretrained weights exist."""
        logger.warning(
            "Initializing frozen encoder with random weights; no pretrained parameters",
            extra={"seed": seed},
        )
        rng = np.random.default_rng(seed)
        parameters = []
        for shape in layer_shapes(self.input_dim, self.latent_dim, self.hidden_dims):
            if len(shape) == 2:
                parameters.append(rng.normal(0.0, np.sqrt(2.0 / shape[1]), shape))
            else:
                parameters.append(np.zeros(shape))
        self.load_parameters(parameters)

    # =========================================================================
    # Freeze / validate
    # =========================================================================

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    @property
    def fingerprint(self) -> Optional[str]:
        return self._fingerprint

    def freeze(self) -> str:
        """
        Record the fingerprint and make parameters read-only.

        Freezing an already frozen encoder re-validates it strictly instead
        of re-recording, so drift can never be absorbed into a new
        fingerprint.

        Returns:
            The recorded fingerprint
        """
        if self._parameters is None:
            raise InvalidStateError("No parameters loaded", operation="freeze")

        if self._frozen:
            self.validate(strict=True)
            return self._fingerprint

        for array in self._parameters:
            array.setflags(write=False)
        self._fingerprint = compute_fingerprint(self._parameters)
        self._frozen = True
        self.frozen_at = datetime.now()

        logger.info(
            "Encoder frozen",
            extra={
                "fingerprint": self._short(self._fingerprint),
                "parameter_count": self.parameter_count,
            },
        )
        return self._fingerprint

    def validate(self, strict: bool = False) -> bool:
        """
        Recompute the fingerprint and compare it to the recorded one.

        Args:
            strict: Raise on mismatch instead of returning False

        Returns:
            True when parameters are unchanged

        Raises:
            IntegrityViolationError: On mismatch when ``strict``
            InvalidStateError: If the encoder was never frozen
        """
        if not self._frozen:
            raise InvalidStateError("Encoder is not frozen", operation="validate")

        current = compute_fingerprint(self._parameters)
        if current != self._fingerprint:
            logger.error(
                "Frozen encoder parameters changed",
                extra={
                    "expected": self._short(self._fingerprint),
                    "actual": self._short(current),
                    "validation_count": self.validation_count,
                },
            )
            if strict:
                raise IntegrityViolationError(self._fingerprint, current)
            return False

        self.validation_count += 1
        self.last_validation_time = datetime.now()
        self._last_validation_tick = self._clock()
        return True

    def validate_periodically(self, min_interval_ms: Optional[int] = None) -> bool:
        """Non-strict validate, skipped while the last success is recent."""
        if min_interval_ms is None:
            min_interval_ms = self.config.validation_interval_ms

        if self._last_validation_tick is not None:
            elapsed_ms = (self._clock() - self._last_validation_tick) * 1000.0
            if elapsed_ms < min_interval_ms:
                return True

        return self.validate(strict=False)

    def record(self) -> ImmutabilityRecord:
        return ImmutabilityRecord(
            fingerprint=self._fingerprint,
            validation_count=self.validation_count,
            last_validation_time=self.last_validation_time,
            frozen=self._frozen,
        )

    # =========================================================================
    # Inference
    # =========================================================================

    def encode(self, features: Sequence[float]) -> Encoding:
        """Pure inference pass to (mean, std_dev)."""
        if not self._frozen:
            raise InvalidStateError("Encoder must be frozen before encoding", operation="encode")

        x = np.asarray(features, dtype=np.float64).reshape(-1)
        if x.shape[0] != self.input_dim:
            raise MalformedObservationError("encoder_input", self.input_dim, x.shape[0])

        start = time.perf_counter()
        h = x
        n_layers = len(self._parameters) // 2
        for layer in range(n_layers):
            weight = self._parameters[2 * layer]
            bias = self._parameters[2 * layer + 1]
            h = weight @ h + bias
            if layer < n_layers - 1:
                h = np.maximum(h, 0.0)

        mean = h[: self.latent_dim].copy()
        log_var = h[self.latent_dim :]
        std_dev = np.exp(0.5 * log_var)

        self.inference_count += 1
        self._total_inference_seconds += time.perf_counter() - start
        return Encoding(mean=mean, std_dev=std_dev)

    def get_parameters(self) -> List[np.ndarray]:
        """Writable copies; the originals stay read-only."""
        if self._parameters is None:
            return []
        return [p.copy() for p in self._parameters]

    @property
    def parameter_count(self) -> int:
        if self._parameters is None:
            return 0
        return int(sum(p.size for p in self._parameters))

    def stats(self) -> Dict[str, Any]:
        avg_ms = (
            self._total_inference_seconds / self.inference_count * 1000.0
            if self.inference_count
            else 0.0
        )
        return {
            "frozen": self._frozen,
            "input_dim": self.input_dim,
            "latent_dim": self.latent_dim,
            "parameter_count": self.parameter_count,
            "inference_count": self.inference_count,
            "avg_inference_ms": avg_ms,
            "validation_count": self.validation_count,
            "last_validation_time": (
                self.last_validation_time.isoformat() if self.last_validation_time else None
            ),
            "fingerprint": self._short(self._fingerprint),
        }

    # =========================================================================
    # Persistence
    # =========================================================================

    def to_state(self) -> FrozenEncoderState:
        if not self._frozen:
            raise InvalidStateError("Only a frozen encoder can be serialized", operation="to_state")
        return FrozenEncoderState(
            input_dim=self.input_dim,
            latent_dim=self.latent_dim,
            frozen=True,
            fingerprint=self._fingerprint,
            parameter_blobs=[
                ParameterBlob(shape=list(p.shape), data=p.ravel().tolist())
                for p in self._parameters
            ],
        )

    @classmethod
    def from_state(
        cls,
        state: Union[FrozenEncoderState, Dict[str, Any]],
        config: Optional[ImmutabilityConfig] = None,
    ) -> "FrozenEncoder":
        """
        Rebuild an encoder from persisted state.

        Raises:
            IntegrityViolationError: If the stored parameters do not match
                the stored fingerprint
            ModelLoadError: If blob shapes do not form a valid encoder
        """
        if not isinstance(state, FrozenEncoderState):
            state = FrozenEncoderState.from_record(state)

        parameters = [
            np.asarray(blob.data, dtype=np.float64).reshape(blob.shape)
            for blob in state.parameter_blobs
        ]
        if len(parameters) % 2 or any(p.ndim != 2 for p in parameters[::2]):
            raise ModelLoadError("state", "parameter blobs must be weight/bias pairs")
        hidden_dims = tuple(w.shape[0] for w in parameters[:-2:2])

        encoder = cls(state.input_dim, state.latent_dim, hidden_dims, config=config)
        encoder.load_parameters(parameters)

        if state.frozen:
            actual = compute_fingerprint(encoder._parameters)
            if actual != state.fingerprint:
                logger.error(
                    "Persisted encoder does not match its fingerprint",
                    extra={
                        "expected": cls._short(state.fingerprint),
                        "actual": cls._short(actual),
                    },
                )
                raise IntegrityViolationError(state.fingerprint, actual)
            encoder.freeze()
        return encoder

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_state().to_record(), f)
        logger.info(
            "Frozen encoder saved",
            extra={"path": str(path), "fingerprint": self._short(self._fingerprint)},
        )
        return path

    @classmethod
    def load(
        cls, path: Union[str, Path], config: Optional[ImmutabilityConfig] = None
    ) -> "FrozenEncoder":
        try:
            with open(path) as f:
                record = json.load(f)
            state = FrozenEncoderState.from_record(record)
        except (OSError, ValueError) as e:
            raise ModelLoadError(str(path), str(e)) from e

        encoder = cls.from_state(state, config=config)
        logger.info(
            "Frozen encoder loaded",
            extra={"path": str(path), "fingerprint": cls._short(encoder.fingerprint)},
        )
        return encoder

    @staticmethod
    def _short(fingerprint: Optional[str]) -> Optional[str]:
        if fingerprint is None:
            return None
        return fingerprint[:FINGERPRINT_DISPLAY_CHARS]
