"""SQLAlchemy models for the per-user knowledge graph."""

import uuid
from datetime import datetime

from sqlalchemy import (
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lifegraph.core.database import Base


class MemoryEntity(Base):
    """A person, place, event, time period or emotion in a user's life story.

    One row per (user, type, case-folded name); later extractions naming the
    same entity only bump ``mention_count``.
    """

    __tablename__ = "memory_entities"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str] = mapped_column(
        String(50), nullable=False
    )  # person | place | event | time period | emotion
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    name_key: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    mention_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    first_mentioned_chapter: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_mentioned_question: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    # Relationships
    mentions: Mapped[list["MemoryMention"]] = relationship(
        "MemoryMention", back_populates="entity", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("user_id", "entity_type", "name_key", name="uq_memory_entity_user_type_name"),
        Index("idx_memory_entities_user_type", "user_id", "entity_type"),
        Index("idx_memory_entities_user_mentions", "user_id", "mention_count"),
    )


class MemoryMention(Base):
    """One occurrence of an entity in a saved narrative answer."""

    __tablename__ = "memory_mentions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("memory_entities.id", ondelete="CASCADE"), nullable=False
    )
    story_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    chapter_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    question_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    context: Mapped[str | None] = mapped_column(Text, nullable=True)
    sentiment: Mapped[str] = mapped_column(
        String(20), nullable=False, default="neutral", server_default="neutral"
    )  # positive | negative | neutral | mixed
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    entity: Mapped["MemoryEntity"] = relationship("MemoryEntity", back_populates="mentions")

    __table_args__ = (
        Index("idx_memory_mentions_entity", "entity_id", "created_at"),
        Index("idx_memory_mentions_story", "story_id"),
    )


class MemoryRelationship(Base):
    """Directed edge between two entities of the same user."""

    __tablename__ = "memory_relationships"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    entity1_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("memory_entities.id", ondelete="CASCADE"), nullable=False
    )
    entity2_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("memory_entities.id", ondelete="CASCADE"), nullable=False
    )
    relationship_type: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "entity1_id", "entity2_id", "relationship_type", name="uq_memory_relationship_edge"
        ),
        Index("idx_memory_relationships_entity1", "entity1_id"),
        Index("idx_memory_relationships_entity2", "entity2_id"),
    )
