"""
Shared Constants for the Latent Team System
===========================================
Fixed dimensions and domain constants used across modules.

This module contains:
- Latent / input / output dimensions of the encoder and predictor
- The normalized feature range and its prior mean
- Bounds on performance deltas
- Fingerprint resolution for frozen encoder validation

Example:
    >>> from ncaab.config.constants import LATENT_DIM, PRIOR_MEAN
    >>> LATENT_DIM
    16
    >>> PRIOR_MEAN
    0.5
"""

from typing import Tuple

# =============================================================================
# DIMENSIONS
# =============================================================================

# Normalized game feature vector consumed by the encoder
INPUT_DIM: int = 80

# Latent team distribution N(mean, stdDev^2)
LATENT_DIM: int = 16

# Game context features appended to the predictor input
GAME_CONTEXT_DIM: int = 10

# Hidden layer widths of the frozen encoder
ENCODER_HIDDEN_DIMS: Tuple[int, ...] = (64, 32)

# Possession transition outcomes predicted per game
TRANSITION_LABELS: Tuple[str, ...] = (
    "made_two",
    "missed_two",
    "made_three",
    "missed_three",
    "free_throw",
    "turnover",
    "offensive_rebound",
    "defensive_rebound",
)
TRANSITION_DIM: int = len(TRANSITION_LABELS)

# =============================================================================
# FEATURE RANGE
# =============================================================================

FEATURE_MIN: float = 0.0
FEATURE_MAX: float = 1.0

# Midpoint of the normalized range, target of regression to the mean
PRIOR_MEAN: float = (FEATURE_MIN + FEATURE_MAX) / 2

# =============================================================================
# PERFORMANCE DELTAS
# =============================================================================

# Every delta entry is clipped to [-DELTA_BOUND, DELTA_BOUND]
DELTA_BOUND: float = 1.0

# Leading dimensions derived from box-score gaps; the rest are noise
DOMAIN_DELTA_DIMS: int = 4

# Half-width of the uniform perturbation for unmodeled dimensions
NOISE_DELTA_SCALE: float = 0.01

# Defaults when a box score omits a value
DEFAULT_POSSESSIONS: float = 70.0
DEFAULT_POINTS_PER_POSSESSION: float = 1.0
DEFAULT_EFG_PCT: float = 0.50

# Normalizers for the domain deltas
EFFICIENCY_DELTA_SCALE: float = 2.0
PACE_DELTA_SCALE: float = 20.0

# =============================================================================
# FINGERPRINTING
# =============================================================================

# Parameters are quantized to this step before hashing. Perturbations of
# 1e-6 move the quantized value by ~10 steps and are always detected;
# perturbations below ~5e-8 may round to the same step and pass.
FINGERPRINT_RESOLUTION: float = 1e-7

# Number of hex characters shown when logging a fingerprint
FINGERPRINT_DISPLAY_CHARS: int = 8
