"""Exception hierarchy for the recommendation engine and its training job."""

from __future__ import annotations


class RecommendationError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(RecommendationError):
    """The request cannot be served as given (e.g. a bad user id)."""


class DataSourceError(RecommendationError):
    """A data-access collaborator failed while a generator was running."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class ModelUnavailable(RecommendationError):
    """Matrix-factorization scoring was requested before any model was trained."""


class DeadlineExceeded(RecommendationError):
    """The request did not finish within its deadline."""


class TrainingError(RecommendationError):
    """Matrix-factorization training failed."""


class DataError(TrainingError):
    """A training interaction is missing its user id, item id or weight."""


class TrainingCancelled(TrainingError):
    """Training stopped because its deadline passed or it was cancelled."""
