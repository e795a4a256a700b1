"""
RACE - Retrieval-Augmented Context Engine

Turns a natural-language question about a user's personal data (diary text,
voice transcripts, photos, health and location samples) into an answer
grounded in that data.

Philosophy:
- Every structure lives for one query and is discarded afterwards
- Read-only with respect to the underlying stores
- Fail closed on privacy: when in doubt, exclude
- A degraded answer is still an answer; a failed one says why

Usage:
    from race.common import load_config, EmbeddingService, LLMClient
    from race.retriever import RAGEngine, TemporalIntentParser, QueryIntentClassifier
"""

__version__ = "0.1.0"
