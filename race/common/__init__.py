"""
RACE Common Module

Shared infrastructure for the retriever: configuration, error types,
schemas, port definitions and the default port implementations.
"""

from .config import RaceConfig, load_config, save_config
from .embedding_service import EmbeddingService
from .errors import (
    AuthorizationError,
    EmbeddingError,
    GenerationError,
    PartialDataError,
    RaceError,
    UpstreamRetrievalError,
    ValidationError,
)
from .llm_client import LLMClient, create_llm_client
from .vector_index import InMemoryVectorIndex

__all__ = [
    "RaceConfig",
    "load_config",
    "save_config",
    "EmbeddingService",
    "AuthorizationError",
    "EmbeddingError",
    "GenerationError",
    "PartialDataError",
    "RaceError",
    "UpstreamRetrievalError",
    "ValidationError",
    "LLMClient",
    "create_llm_client",
    "InMemoryVectorIndex",
]
