from __future__ import annotations


class CoverQuestError(Exception):
    """Base class for failures that map onto a structured HTTP error."""

    kind = "internal_error"
    default_status_code = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code if status_code is not None else self.default_status_code


class ConfigurationError(CoverQuestError):
    """Raised when a required credential or setting is missing."""

    kind = "configuration_error"
    default_status_code = 500


class NotFoundError(CoverQuestError):
    kind = "not_found"
    default_status_code = 404


class InvalidRequestError(CoverQuestError):
    kind = "invalid_request"
    default_status_code = 400


class GameAlreadyCompleteError(CoverQuestError):
    """Raised when a guess is submitted against a finished game."""

    kind = "game_already_complete"
    default_status_code = 400


class GameNotCompleteError(CoverQuestError):
    kind = "game_not_complete"
    default_status_code = 403


class EnrichmentFailure(CoverQuestError):
    """Raised by secondary metadata lookups; callers degrade instead of failing."""

    kind = "enrichment_failure"
    default_status_code = 502


class UpstreamError(CoverQuestError):
    kind = "upstream_error"
    default_status_code = 502


class StorageFailure(CoverQuestError):
    kind = "storage_failure"
    default_status_code = 503


class PoolExhaustionError(CoverQuestError):
    """Raised when no candidate survives pool filtering."""

    kind = "pool_exhausted"
    default_status_code = 503


class EmptyPoolError(PoolExhaustionError):
    pass


class PosterRenderError(CoverQuestError):
    kind = "poster_render_error"
    default_status_code = 500
