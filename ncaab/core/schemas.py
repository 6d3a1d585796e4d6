"""
Pydantic Models for Data Validation
===================================
Type-safe records for posteriors, observations and persisted state.

Persisted coordinator and encoder state use camelCase aliases so the JSON
layout is stable across implementations; Python code uses the snake_case
field names.

Usage:
    from ncaab.core.schemas import LatentPosterior, FeedbackState

    posterior = LatentPosterior(mean=[0.5] * 16, std_dev=[1.0] * 16)

    state = FeedbackState(current_coefficient=0.1)
    record = state.to_record()          # {"currentCoefficient": 0.1, ...}
    restored = FeedbackState.from_record(record)
    assert restored == state
"""

import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class LatentPosterior(BaseModel):
    """
    A team's latent distribution N(mean, stdDev^2).

    Created on a team's first observation and replaced once per processed
    game.
    """

    model_config = ConfigDict(frozen=True)

    mean: List[float] = Field(..., min_length=1, description="Posterior mean vector")
    std_dev: List[float] = Field(..., min_length=1, description="Posterior stdDev vector")
    observation_count: int = Field(0, ge=0, description="Games folded into the posterior")
    last_updated: datetime.datetime = Field(default_factory=datetime.datetime.now)

    @field_validator("std_dev")
    @classmethod
    def std_dev_positive(cls, v: List[float]) -> List[float]:
        """Every stdDev entry must be strictly positive."""
        for i, s in enumerate(v):
            if not s > 0:
                raise ValueError(f"std_dev[{i}] must be > 0, got {s}")
        return v

    @model_validator(mode="after")
    def validate_dimensions(self):
        """Mean and stdDev share the latent dimension."""
        if len(self.mean) != len(self.std_dev):
            raise ValueError(
                f"mean has {len(self.mean)} entries but std_dev has {len(self.std_dev)}"
            )
        return self

    @property
    def latent_dim(self) -> int:
        return len(self.mean)


class PerformanceStats(BaseModel):
    """Observed box-score summary for one team in one game."""

    model_config = ConfigDict(allow_inf_nan=False)

    score: float = Field(..., ge=0, description="Points scored")
    possessions: Optional[float] = Field(None, gt=0, description="Possessions used")
    effective_fg_pct: Optional[float] = Field(None, ge=0, le=1, description="eFG%")


class PredictedPerformance(BaseModel):
    """Pre-game expectation for one team in one game."""

    model_config = ConfigDict(allow_inf_nan=False)

    expected_points: Optional[float] = Field(
        None, ge=0, description="Expected points per possession"
    )
    possessions: Optional[float] = Field(None, gt=0, description="Expected possessions")
    score_prob: Optional[float] = Field(None, ge=0, le=1, description="Expected shooting rate")


class EntityUpdate(BaseModel):
    """One item of a batch posterior update."""

    model_config = ConfigDict(allow_inf_nan=False)

    entity_id: str = Field(..., min_length=1)
    actual: PerformanceStats
    predicted: PredictedPerformance
    features: Optional[List[float]] = Field(
        None, description="Normalized game features for fallback encoding"
    )


class TrainingObservation(BaseModel):
    """
    One game used for a coupled training step.

    Team representations are optional: when omitted, the representation
    learner's own encoding of ``game_features`` is used for both teams.
    """

    model_config = ConfigDict(allow_inf_nan=False)

    game_features: List[float] = Field(..., min_length=1)
    actual_transition_probs: List[float] = Field(..., min_length=1)
    team_a_mean: Optional[List[float]] = None
    team_a_std_dev: Optional[List[float]] = None
    team_b_mean: Optional[List[float]] = None
    team_b_std_dev: Optional[List[float]] = None
    game_context: Optional[List[float]] = None

    @field_validator("actual_transition_probs")
    @classmethod
    def probabilities_in_range(cls, v: List[float]) -> List[float]:
        """Ground-truth frequencies must be probabilities."""
        for i, p in enumerate(v):
            if not 0 <= p <= 1:
                raise ValueError(f"Invalid probability at index {i}: {p}")
        return v

    @model_validator(mode="after")
    def representations_complete(self):
        """Either all four team vectors are provided or none."""
        provided = [
            self.team_a_mean is not None,
            self.team_a_std_dev is not None,
            self.team_b_mean is not None,
            self.team_b_std_dev is not None,
        ]
        if any(provided) and not all(provided):
            raise ValueError("team representations must be provided for both teams or neither")
        return self

    @property
    def has_team_representations(self) -> bool:
        return self.team_a_mean is not None


# =============================================================================
# Persisted coordinator state
# =============================================================================


class LossRecord(BaseModel):
    """One recorded training step."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    iteration: int = Field(..., ge=0)
    predictor_loss: float = Field(..., alias="predictorLoss")
    representation_loss: float = Field(..., alias="representationLoss")
    feedback_triggered: bool = Field(..., alias="feedbackTriggered")


class FeedbackState(BaseModel):
    """
    Complete mutable state of the feedback coordinator.

    Instances are immutable; a training step builds the successor state and
    the coordinator swaps it in only after the step fully succeeds.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    current_coefficient: float = Field(..., gt=0, alias="currentCoefficient")
    iteration: int = Field(0, ge=0)
    loss_history: List[LossRecord] = Field(default_factory=list, alias="lossHistory")
    total_feedback_triggers: int = Field(0, ge=0, alias="totalFeedbackTriggers")

    def to_record(self) -> Dict[str, Any]:
        """JSON-compatible record with the persisted field names."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "FeedbackState":
        """Rebuild state from a persisted record."""
        return cls.model_validate(record)


# =============================================================================
# Persisted frozen encoder state
# =============================================================================


class ParameterBlob(BaseModel):
    """A single parameter array flattened in C order."""

    shape: List[int] = Field(..., min_length=1)
    data: List[float]

    @model_validator(mode="after")
    def size_matches_shape(self):
        """Flattened data must fill the declared shape exactly."""
        expected = 1
        for dim in self.shape:
            expected *= dim
        if expected != len(self.data):
            raise ValueError(f"shape {self.shape} needs {expected} values, got {len(self.data)}")
        return self


class FrozenEncoderState(BaseModel):
    """Serialized frozen encoder."""

    model_config = ConfigDict(populate_by_name=True)

    input_dim: int = Field(..., gt=0, alias="inputDim")
    latent_dim: int = Field(..., gt=0, alias="latentDim")
    frozen: bool
    fingerprint: str = Field(..., min_length=1)
    parameter_blobs: List[ParameterBlob] = Field(..., min_length=2, alias="parameterBlobs")

    def to_record(self) -> Dict[str, Any]:
        """JSON-compatible record with the persisted field names."""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "FrozenEncoderState":
        """Rebuild state from a persisted record."""
        return cls.model_validate(record)


class GameObservation(BaseModel):
    """A completed game as consumed by the online updater."""

    model_config = ConfigDict(allow_inf_nan=False)

    game_id: str = Field(..., min_length=1)
    home: EntityUpdate
    away: EntityUpdate
    game_features: List[float] = Field(..., min_length=1)
    actual_transition_probs: List[float] = Field(..., min_length=1)
    game_context: Optional[List[float]] = None

    @model_validator(mode="after")
    def distinct_teams(self):
        """A game needs two different teams."""
        if self.home.entity_id == self.away.entity_id:
            raise ValueError(f"home and away are both {self.home.entity_id}")
        return self
