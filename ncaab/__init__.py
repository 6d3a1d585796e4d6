"""
NCAAB Latent Team Representation System
=======================================
Per-team latent posteriors updated game by game, with a frozen encoder for
cold-start encodings and a feedback loop coupling the representation learner
and the transition-probability predictor.

Subpackages:
    config: Constants, thresholds and database configuration
    core: Exceptions, schemas, logging, experiment tracking
    models: Frozen encoder, posterior updates, feedback coordination
    storage: Posterior persistence backends
"""

__version__ = "1.0.0"
__author__ = "untitled114"
