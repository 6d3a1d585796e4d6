"""
Model Interfaces
================
Structural contracts for the two opaque models the coordinator drives.

Any object with these attributes works; the numpy models in
``ncaab.models.reference`` are one implementation.
"""

from typing import Dict, List, Optional, Protocol, Sequence, Tuple, runtime_checkable

import numpy as np


@runtime_checkable
class RepresentationLearner(Protocol):
    """Encoder/decoder learning team representations from game features."""

    input_dim: int
    latent_dim: int

    def forward(self, features: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
        """Encode features to (mean, stdDev) of the latent distribution."""
        ...

    def train_step(
        self,
        features: Sequence[float],
        target: Optional[Sequence[float]] = None,
        aux_loss: float = 0.0,
    ) -> Dict[str, float]:
        """One update; returns at least ``total_loss``."""
        ...

    def encoder_parameters(self) -> List[np.ndarray]:
        """Ordered encoder parameters [W1, b1, ..., Wn, bn]."""
        ...

    def get_parameters(self) -> List[np.ndarray]:
        ...

    def set_parameters(self, parameters: List[np.ndarray]) -> None:
        ...


@runtime_checkable
class Predictor(Protocol):
    """Transition-probability model consuming team representations."""

    input_dim: int
    output_dim: int

    def forward(self, inputs: Sequence[float]) -> np.ndarray:
        """Predicted probability vector of length ``output_dim``."""
        ...

    def train_step(
        self,
        inputs: Sequence[float],
        target: Sequence[float],
        aux_loss: float = 0.0,
    ) -> Dict[str, float]:
        """One supervised update; returns at least ``total_loss``."""
        ...

    def get_parameters(self) -> List[np.ndarray]:
        ...

    def set_parameters(self, parameters: List[np.ndarray]) -> None:
        ...
