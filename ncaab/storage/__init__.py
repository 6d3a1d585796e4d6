"""Posterior storage backends."""

from ncaab.storage.posterior_store import (
    POSTERIOR_TABLE,
    InMemoryPosteriorStore,
    PosteriorStore,
    PostgresPosteriorStore,
)

__all__ = [
    "POSTERIOR_TABLE",
    "PosteriorStore",
    "InMemoryPosteriorStore",
    "PostgresPosteriorStore",
]
