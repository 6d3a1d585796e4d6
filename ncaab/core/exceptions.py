"""
Custom Exceptions for the Latent Team System
============================================
Centralized exception definitions for the posterior / feedback control loop.

Propagation policy:
    - IntegrityViolationError and ConfigurationError always reach the caller.
    - InvalidStateError is a programmer error and is fatal for the call.
    - TransientObservationError is scoped to one observation; batch flows
      collect it per item instead of raising.

Usage:
    from ncaab.core.exceptions import (
        IntegrityViolationError,
        TransientObservationError,
    )

    if current != recorded:
        raise IntegrityViolationError(recorded, current)
"""

from typing import Optional


class LatentSystemError(Exception):
    """Base exception for all latent team system errors."""

    pass


# =============================================================================
# Integrity / State Errors
# =============================================================================


class IntegrityViolationError(LatentSystemError):
    """Raised when a frozen component's fingerprint no longer matches."""

    def __init__(self, expected: str, actual: str, component: str = "frozen encoder"):
        self.expected = expected
        self.actual = actual
        self.component = component
        message = (
            f"Integrity violation: {component} parameters changed "
            f"(expected={expected[:8]}..., actual={actual[:8]}...)"
        )
        super().__init__(message)


class InvalidStateError(LatentSystemError):
    """Raised when an operation is invoked before its required setup."""

    def __init__(self, message: str, operation: Optional[str] = None):
        self.operation = operation
        if operation:
            message = f"{message} (operation={operation})"
        super().__init__(message)


# =============================================================================
# Observation Errors
# =============================================================================


class TransientObservationError(LatentSystemError):
    """Raised when a single observation cannot be processed."""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        self.entity_id = entity_id
        if entity_id:
            message = f"{message} (entity={entity_id})"
        super().__init__(message)


class MissingEntityError(TransientObservationError):
    """Raised when an entity has no posterior and no fallback input."""

    def __init__(self, entity_id: str):
        super().__init__("No posterior or fallback features available", entity_id=entity_id)


class MalformedObservationError(TransientObservationError):
    """Raised when an input vector has the wrong length or invalid values."""

    def __init__(
        self,
        field: str,
        expected: int,
        actual: int,
        entity_id: Optional[str] = None,
    ):
        self.field = field
        self.expected = expected
        self.actual = actual
        message = f"Malformed {field}: expected length {expected}, got {actual}"
        super().__init__(message, entity_id=entity_id)


class PartialGameUpdateError(TransientObservationError):
    """Raised when a game's posteriors were committed but its training step failed."""

    def __init__(self, game_id: str, committed_entities, reason: str):
        self.game_id = game_id
        self.committed_entities = list(committed_entities)
        super().__init__(f"Training failed after posterior commit for game {game_id}: {reason}")


# =============================================================================
# Model Errors
# =============================================================================


class ModelError(LatentSystemError):
    """Base exception for model-related errors."""

    pass


class ModelLoadError(ModelError):
    """Raised when persisted parameters cannot be loaded."""

    def __init__(self, source: str, reason: Optional[str] = None):
        self.source = source
        self.reason = reason
        message = f"Failed to load model parameters: {source}"
        if reason:
            message = f"{message} - {reason}"
        super().__init__(message)


class ModelTrainingError(ModelError):
    """Raised when an opaque model fails during a training call."""

    def __init__(self, message: str, model_name: Optional[str] = None):
        self.model_name = model_name
        if model_name:
            message = f"{message} (model={model_name})"
        super().__init__(message)


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(LatentSystemError):
    """Base exception for posterior storage errors."""

    pass


class StorageConnectionError(StorageError):
    """Raised when the posterior database cannot be reached."""

    def __init__(self, database: str, host: Optional[str] = None, port: Optional[int] = None):
        self.database = database
        self.host = host
        self.port = port
        message = f"Failed to connect to database: {database}"
        if host and port:
            message = f"{message} ({host}:{port})"
        super().__init__(message)


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(LatentSystemError):
    """Base exception for configuration errors."""

    pass


class MissingConfigError(ConfigurationError):
    """Raised when required configuration is missing."""

    def __init__(self, config_key: str, source: Optional[str] = None):
        self.config_key = config_key
        self.source = source
        message = f"Missing required configuration: {config_key}"
        if source:
            message = f"{message} (expected in {source})"
        super().__init__(message)


class InvalidConfigError(ConfigurationError):
    """Raised when a configuration value is out of range."""

    def __init__(self, config_key: str, value, reason: Optional[str] = None):
        self.config_key = config_key
        self.value = value
        self.reason = reason
        message = f"Invalid configuration: {config_key}={value}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
