# NCAAB Configuration Module
import os

# =============================================================================
# Environment Detection
# =============================================================================
ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()
IS_PRODUCTION = ENVIRONMENT == "production"
IS_DEVELOPMENT = ENVIRONMENT == "development"


def get_environment() -> str:
    """Get current environment name."""
    return ENVIRONMENT


def is_production() -> bool:
    """Check if running in production."""
    return IS_PRODUCTION


from .constants import (
    DELTA_BOUND,
    FEATURE_MAX,
    FEATURE_MIN,
    FINGERPRINT_RESOLUTION,
    GAME_CONTEXT_DIM,
    INPUT_DIM,
    LATENT_DIM,
    PRIOR_MEAN,
    TRANSITION_DIM,
    TRANSITION_LABELS,
)
from .database import get_db_config, get_team_db_config
from .thresholds import (
    FEEDBACK_CONFIG,
    IMMUTABILITY_CONFIG,
    POSTERIOR_UPDATE_CONFIG,
    FeedbackConfig,
    ImmutabilityConfig,
    PosteriorUpdateConfig,
    get_feedback_config,
    get_immutability_config,
    get_posterior_update_config,
)

__all__ = [
    # Environment
    "ENVIRONMENT",
    "IS_PRODUCTION",
    "IS_DEVELOPMENT",
    "get_environment",
    "is_production",
    # Constants
    "INPUT_DIM",
    "LATENT_DIM",
    "GAME_CONTEXT_DIM",
    "TRANSITION_DIM",
    "TRANSITION_LABELS",
    "FEATURE_MIN",
    "FEATURE_MAX",
    "PRIOR_MEAN",
    "DELTA_BOUND",
    "FINGERPRINT_RESOLUTION",
    # Database
    "get_db_config",
    "get_team_db_config",
    # Thresholds
    "PosteriorUpdateConfig",
    "FeedbackConfig",
    "ImmutabilityConfig",
    "POSTERIOR_UPDATE_CONFIG",
    "FEEDBACK_CONFIG",
    "IMMUTABILITY_CONFIG",
    "get_posterior_update_config",
    "get_feedback_config",
    "get_immutability_config",
]
