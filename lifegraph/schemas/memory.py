"""Schemas for the memory knowledge graph: extraction payloads and API I/O."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from lifegraph.utils.canonical_key import clip_snippet, normalize_entity_name


class EntityType(str, Enum):
    """Closed set of entity categories stored in the graph."""

    PERSON = "person"
    PLACE = "place"
    EVENT = "event"
    TIME_PERIOD = "time period"
    EMOTION = "emotion"

    @classmethod
    def from_label(cls, label: str) -> Optional["EntityType"]:
        """Parse a loose label (``time_period``, ``people``, ``Places``...).

        Returns:
            The matching EntityType, or None for unknown labels
        """
        if not label:
            return None
        key = label.strip().lower().replace("_", " ").replace("-", " ")
        key = " ".join(key.split())
        return _ENTITY_TYPE_ALIASES.get(key)


_ENTITY_TYPE_ALIASES: Dict[str, EntityType] = {
    "person": EntityType.PERSON,
    "people": EntityType.PERSON,
    "persons": EntityType.PERSON,
    "place": EntityType.PLACE,
    "places": EntityType.PLACE,
    "event": EntityType.EVENT,
    "events": EntityType.EVENT,
    "time period": EntityType.TIME_PERIOD,
    "time periods": EntityType.TIME_PERIOD,
    "timeperiod": EntityType.TIME_PERIOD,
    "emotion": EntityType.EMOTION,
    "emotions": EntityType.EMOTION,
}

# Extraction result category -> stored entity type
CATEGORY_ENTITY_TYPES: Dict[str, EntityType] = {
    "people": EntityType.PERSON,
    "places": EntityType.PLACE,
    "events": EntityType.EVENT,
    "time_periods": EntityType.TIME_PERIOD,
    "emotions": EntityType.EMOTION,
}


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"
    MIXED = "mixed"


# ---------------------------------------------------------------------------
# Extraction payload (what the LLM returns)
# ---------------------------------------------------------------------------

class ExtractedEntity(BaseModel):
    """One named item from an extraction category."""

    name: str
    context: Optional[str] = None
    sentiment: Sentiment = Sentiment.NEUTRAL

    @field_validator("name", mode="before")
    @classmethod
    def _normalize_name(cls, value: Any) -> str:
        return normalize_entity_name(value) if isinstance(value, str) else ""

    @field_validator("context", mode="before")
    @classmethod
    def _clip_context(cls, value: Any) -> Optional[str]:
        return clip_snippet(value) if isinstance(value, str) else None

    @field_validator("sentiment", mode="before")
    @classmethod
    def _coerce_sentiment(cls, value: Any) -> Sentiment:
        if isinstance(value, str):
            try:
                return Sentiment(value.strip().lower())
            except ValueError:
                pass
        return Sentiment.NEUTRAL


class ExtractedRelationship(BaseModel):
    """An edge between two names produced in the same extraction."""

    entity1: str
    entity2: str
    type: str = "related to"
    description: Optional[str] = None

    @field_validator("entity1", "entity2", mode="before")
    @classmethod
    def _normalize_endpoint(cls, value: Any) -> str:
        return normalize_entity_name(value) if isinstance(value, str) else ""

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip():
            return " ".join(value.split())[:100]
        return "related to"

    @field_validator("description", mode="before")
    @classmethod
    def _clip_description(cls, value: Any) -> Optional[str]:
        return clip_snippet(value) if isinstance(value, str) else None


class ExtractionResult(BaseModel):
    """Parsed extraction; every category defaults to empty."""

    people: List[ExtractedEntity] = Field(default_factory=list)
    places: List[ExtractedEntity] = Field(default_factory=list)
    events: List[ExtractedEntity] = Field(default_factory=list)
    time_periods: List[ExtractedEntity] = Field(default_factory=list)
    emotions: List[ExtractedEntity] = Field(default_factory=list)
    relationships: List[ExtractedRelationship] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not any(getattr(self, field) for field in type(self).model_fields)

    def entity_count(self) -> int:
        return sum(len(getattr(self, category)) for category in CATEGORY_ENTITY_TYPES)


# ---------------------------------------------------------------------------
# API payloads
# ---------------------------------------------------------------------------

class ExtractRequest(BaseModel):
    """Body of ``POST /memory/extract``."""

    model_config = ConfigDict(populate_by_name=True)

    text: Optional[str] = Field(None, description="Narrative text to extract from")
    chapter_id: Optional[str] = Field(None, alias="chapterId")
    question_id: Optional[str] = Field(None, alias="questionId")
    story_id: Optional[str] = Field(None, alias="storyId")


class MemoryEntityResponse(BaseModel):
    """Stored entity as returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entity_type: str
    name: str
    description: Optional[str] = None
    mention_count: int
    first_mentioned_chapter: Optional[str] = None
    first_mentioned_question: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ExtractResponse(BaseModel):
    entities: List[MemoryEntityResponse] = Field(default_factory=list)
    relationships: int = Field(0, description="Relationships linked during this run")
    raw: Dict[str, Any] = Field(default_factory=dict, description="Parsed extraction as returned by the model")
    message: Optional[str] = None


class EntityListResponse(BaseModel):
    entities: List[MemoryEntityResponse]


class ContextStats(BaseModel):
    """Distinct counts per category, independent of truncation."""

    people: int = 0
    places: int = 0
    events: int = 0
    time_periods: int = 0
    emotions: int = 0
    relationships: int = 0


class ContextResponse(BaseModel):
    context: str
    stats: Optional[ContextStats] = Field(None, description="Omitted for the compact variant")


class ConnectedEntity(BaseModel):
    connected_to: str
    connected_type: str
    relationship_type: str
    description: Optional[str] = None


class MentionSummary(BaseModel):
    context: Optional[str] = None
    sentiment: str
    story_id: Optional[str] = None
    chapter_id: Optional[str] = None
    question_id: Optional[str] = None
    created_at: Optional[datetime] = None


class EntityRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entity_type: str
    name: str


class ConnectionsResponse(BaseModel):
    entity: Optional[EntityRef] = None
    connections: List[ConnectedEntity] = Field(default_factory=list)
    mentions: List[MentionSummary] = Field(default_factory=list)
    message: Optional[str] = None
