"""
Latent Team System Core Module
==============================
Core utilities shared by the control loop:
- Custom exceptions
- Data validation (Pydantic schemas)
- Structured logging configuration
- Experiment tracking (MLflow integration, see ncaab.core.experiment_tracking)
"""

from ncaab.core.exceptions import (
    ConfigurationError,
    IntegrityViolationError,
    InvalidConfigError,
    InvalidStateError,
    LatentSystemError,
    MalformedObservationError,
    MissingConfigError,
    MissingEntityError,
    ModelError,
    ModelLoadError,
    ModelTrainingError,
    StorageConnectionError,
    StorageError,
    TransientObservationError,
)
from ncaab.core.logging_config import add_logging_args, get_logger, setup_logging
from ncaab.core.schemas import (
    EntityUpdate,
    FeedbackState,
    FrozenEncoderState,
    GameObservation,
    LatentPosterior,
    LossRecord,
    ParameterBlob,
    PerformanceStats,
    PredictedPerformance,
    TrainingObservation,
)

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "add_logging_args",
    # Schemas
    "LatentPosterior",
    "PerformanceStats",
    "PredictedPerformance",
    "EntityUpdate",
    "TrainingObservation",
    "LossRecord",
    "FeedbackState",
    "ParameterBlob",
    "FrozenEncoderState",
    "GameObservation",
    # Base Exception
    "LatentSystemError",
    # Integrity / State
    "IntegrityViolationError",
    "InvalidStateError",
    # Observation
    "TransientObservationError",
    "MissingEntityError",
    "MalformedObservationError",
    # Model
    "ModelError",
    "ModelLoadError",
    "ModelTrainingError",
    # Storage
    "StorageError",
    "StorageConnectionError",
    # Configuration
    "ConfigurationError",
    "MissingConfigError",
    "InvalidConfigError",
]
