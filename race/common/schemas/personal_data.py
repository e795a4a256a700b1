"""
Personal Data Schemas

Retrieved items, attribution references and query results.

Upstream records come from two stores that never agreed on one shape:
- Vector matches carry free-form metadata (type, text, and one of several
  date fields depending on when the record was ingested)
- Extracted events carry an AI-parsed datetime and a confidence

Field names mirror the stores (camelCase) through aliases; Python code uses
snake_case attributes.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Enums
# ============================================================================

class DataType(str, Enum):
    """Vector `type` tags used across the personal data index"""
    HEALTH = "health"
    LOCATION = "location"
    SHARED_ACTIVITY = "shared_activity"
    VOICE = "voice"
    PHOTO = "photo"


# Legacy-schema accommodation: records were written with different timestamp
# field names over time. Order matters.
DATE_FIELDS = ("date", "createdAt", "timestamp")

DateValue = Union[str, int, float]


def first_present(source: Any, fields: Sequence[str]) -> Optional[Any]:
    """Return the first non-empty value among `fields` of a mapping or model."""
    for name in fields:
        if isinstance(source, dict):
            value = source.get(name)
        else:
            value = getattr(source, name, None)
        if value is not None and value != "":
            return value
    return None


# ============================================================================
# Retrieved items
# ============================================================================

class VectorMetadata(BaseModel):
    """Metadata stored alongside each vector"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str = ""
    text: str = ""
    date: Optional[DateValue] = None
    created_at: Optional[DateValue] = Field(default=None, alias="createdAt")
    timestamp: Optional[DateValue] = None
    user_id: Optional[str] = Field(default=None, alias="userId")
    activity: Optional[str] = None

    @property
    def date_value(self) -> Optional[DateValue]:
        """First present of date / createdAt / timestamp"""
        return first_present(
            {"date": self.date, "createdAt": self.created_at, "timestamp": self.timestamp},
            DATE_FIELDS,
        )


class VectorMatch(BaseModel):
    """A nearest-neighbour hit from the vector index"""
    id: str
    score: float = Field(ge=0.0, le=1.0)
    metadata: VectorMetadata = Field(default_factory=VectorMetadata)


class ExtractedEvent(BaseModel):
    """An event extracted from user content with an absolute datetime"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    description: Optional[str] = None
    when: datetime = Field(..., alias="datetime")
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


# ============================================================================
# Attribution and results
# ============================================================================

class ContextReference(BaseModel):
    """Pointer back to a retrieved vector, used for UI attribution"""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    score: float
    type: str
    snippet: str
    user_id: Optional[str] = Field(default=None, alias="userId")


class ChatMessage(BaseModel):
    """One turn of conversation history"""
    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: Optional[str] = None


class QueryResult(BaseModel):
    """What every facade entry point returns"""
    model_config = ConfigDict(populate_by_name=True)

    response: str
    context_used: List[ContextReference] = Field(default_factory=list, alias="contextUsed")
    degraded_sources: List[str] = Field(default_factory=list, alias="degradedSources")
    temporal_label: Optional[str] = Field(default=None, alias="temporalLabel")

    @property
    def is_degraded(self) -> bool:
        return bool(self.degraded_sources)
