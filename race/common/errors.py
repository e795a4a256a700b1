"""
Error taxonomy for the retrieval engine.

Fatal kinds abort the pipeline and surface to the facade caller.
PartialDataError is recoverable: it is created at the orchestrator or
labeler boundary, logged, recorded on the result, and never re-raised.
"""

from typing import Optional


class RaceError(Exception):
    """Base class for all engine errors."""
    pass


class ValidationError(RaceError):
    """Malformed scope, date or query input. Raised before any external call."""
    pass


class AuthorizationError(RaceError):
    """Caller is not a member of the requested circle."""

    def __init__(self, circle_id: str, user_id: str):
        self.circle_id = circle_id
        self.user_id = user_id
        super().__init__(f"User {user_id} is not authorized to access circle {circle_id}")


class EmbeddingError(RaceError):
    """Embedding generation failed or timed out."""
    pass


class UpstreamRetrievalError(RaceError):
    """Vector index query failed or timed out."""
    pass


class PartialDataError(RaceError):
    """A non-essential source (event store, profile lookup) was unavailable."""

    def __init__(self, source: str, message: str, cause: Optional[BaseException] = None):
        self.source = source
        self.cause = cause
        super().__init__(f"{source}: {message}")


class GenerationError(RaceError):
    """Generation port failed or timed out."""
    pass
