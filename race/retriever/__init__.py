"""
RACE Retriever - Retrieval-Augmented Context Engine

Turns a question about a user's personal data into a grounded answer.

Key Components:
- TemporalIntentParser: Relative time phrases -> absolute date ranges
- QueryIntentClassifier: Advisory routing hints (count / data type / activity)
- RetrievalOrchestrator: Concurrent vector-index and event-store retrieval
- CircleAccessGate: Membership check and sharing filters for circle queries
- ContextAssembler: Ranked, attributed, length-bounded context
- RAGEngine: Facade over the five query modes

Pipeline:
1. Parse temporal intent and classify the query
2. Embed the query
3. Retrieve vectors (+ events for temporal queries)
4. Assemble context with attributions
5. Generate the answer
"""

from .assembler import AssembledContext, ContextAssembler, NO_DATA_FALLBACK
from .circle_gate import CircleAccessGate, CircleContextLabeler, DataTypeFilter
from .engine import RAGEngine
from .orchestrator import CircleScope, RetrievalOrchestrator, RetrievalResult, UserScope
from .query_classifier import QueryClassification, QueryIntentClassifier
from .temporal import DateRange, TemporalIntent, TemporalIntentParser

__all__ = [
    "AssembledContext",
    "ContextAssembler",
    "NO_DATA_FALLBACK",
    "CircleAccessGate",
    "CircleContextLabeler",
    "DataTypeFilter",
    "RAGEngine",
    "CircleScope",
    "RetrievalOrchestrator",
    "RetrievalResult",
    "UserScope",
    "QueryClassification",
    "QueryIntentClassifier",
    "DateRange",
    "TemporalIntent",
    "TemporalIntentParser",
]
