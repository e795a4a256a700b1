"""
RACE Schemas

Pydantic models for retrieved items, attribution and circle configuration.
"""

from .personal_data import (
    DataType,
    DATE_FIELDS,
    first_present,
    VectorMetadata,
    VectorMatch,
    ExtractedEvent,
    ContextReference,
    ChatMessage,
    QueryResult,
)
from .circle import Circle, DataSharing, UserProfile, SHARING_TYPE_TAGS

__all__ = [
    "DataType",
    "DATE_FIELDS",
    "first_present",
    "VectorMetadata",
    "VectorMatch",
    "ExtractedEvent",
    "ContextReference",
    "ChatMessage",
    "QueryResult",
    "Circle",
    "DataSharing",
    "UserProfile",
    "SHARING_TYPE_TAGS",
]
