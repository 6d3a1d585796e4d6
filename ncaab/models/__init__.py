"""
Latent Team Models
==================
Control loop around the opaque representation learner and predictor.

Components:
    - FrozenEncoder: inference-only encoder with an immutability guard
    - PosteriorUpdateEngine: per-team incremental posterior updates
    - FeedbackCoordinator: threshold-triggered coupled training
    - OnlineTeamUpdater: per-game orchestration of the three
"""
