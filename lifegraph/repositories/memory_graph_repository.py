"""Repository for the per-user memory knowledge graph.

Writes are single statements that commit on their own, so a caller can
isolate each entity, mention or relationship write from its siblings.
"""

import uuid
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import case, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from lifegraph.database.models import MemoryEntity, MemoryMention, MemoryRelationship
from lifegraph.repositories.base_repository import BaseRepository
from lifegraph.schemas.memory import EntityType, Sentiment
from lifegraph.utils.canonical_key import clip_snippet, generate_name_key, normalize_entity_name


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class MemoryGraphRepository(BaseRepository[MemoryEntity]):
    """Repository for MemoryEntity, MemoryMention and MemoryRelationship rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, MemoryEntity)

    def _insert(self, table):
        """Dialect-specific INSERT supporting ON CONFLICT clauses."""
        dialect = self.session.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite.insert(table)
        return postgresql.insert(table)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert_entity(
        self,
        user_id: str,
        entity_type: EntityType,
        name: str,
        description: Optional[str] = None,
        chapter_id: Optional[str] = None,
        question_id: Optional[str] = None,
    ) -> Optional[uuid.UUID]:
        """Insert an entity or bump the mention count of the existing one.

        A single ``INSERT ... ON CONFLICT (user_id, entity_type, name_key)
        DO UPDATE`` so concurrent runs for the same user cannot create two
        rows for one entity. The first spelling, description and chapter
        stay as they were.

        Args:
            user_id: Owner of the graph
            entity_type: Category of the entity
            name: Raw or normalized display name
            description: Context snippet from the extraction
            chapter_id: Chapter of the answer being processed
            question_id: Question of the answer being processed

        Returns:
            The entity id, or None when the name normalizes to nothing
        """
        display_name = normalize_entity_name(name)
        name_key = generate_name_key(display_name)
        if not name_key:
            return None

        stmt = (
            self._insert(MemoryEntity)
            .values(
                id=uuid.uuid4(),
                user_id=user_id,
                entity_type=EntityType(entity_type).value,
                name=display_name,
                name_key=name_key,
                description=clip_snippet(description),
                mention_count=1,
                first_mentioned_chapter=chapter_id,
                first_mentioned_question=question_id,
            )
            .on_conflict_do_update(
                index_elements=["user_id", "entity_type", "name_key"],
                set_={
                    "mention_count": MemoryEntity.mention_count + 1,
                    "updated_at": func.now(),
                },
            )
            .returning(MemoryEntity.id)
        )

        result = await self.session.execute(stmt)
        entity_id = result.scalar_one()
        await self.session.commit()
        return entity_id

    async def record_mention(
        self,
        entity_id: uuid.UUID,
        story_id: Optional[str],
        context: Optional[str] = None,
        sentiment: Sentiment = Sentiment.NEUTRAL,
        chapter_id: Optional[str] = None,
        question_id: Optional[str] = None,
    ) -> MemoryMention:
        """Append a mention row for an entity."""
        mention = MemoryMention(
            entity_id=entity_id,
            story_id=story_id,
            chapter_id=chapter_id,
            question_id=question_id,
            context=clip_snippet(context),
            sentiment=Sentiment(sentiment).value,
        )
        self.session.add(mention)
        await self.session.flush()
        await self.session.commit()
        return mention

    async def resolve_entity_id(self, user_id: str, name: str) -> Optional[uuid.UUID]:
        """Find the user's entity named ``name`` regardless of type or case.

        When the same name exists under several types, the most mentioned
        (then oldest) one wins.
        """
        name_key = generate_name_key(name)
        if not name_key:
            return None

        query = (
            select(MemoryEntity.id)
            .where(MemoryEntity.user_id == user_id, MemoryEntity.name_key == name_key)
            .order_by(MemoryEntity.mention_count.desc(), MemoryEntity.created_at.asc())
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def link_relationship(
        self,
        user_id: str,
        name1: str,
        name2: str,
        relationship_type: Optional[str] = None,
        description: Optional[str] = None,
        known_ids: Optional[Dict[str, uuid.UUID]] = None,
    ) -> bool:
        """Link two of the user's entities by name.

        Args:
            user_id: Owner of the graph
            name1: Source entity name
            name2: Target entity name
            relationship_type: Verb phrase ("father of", "lived in"...)
            description: Free-text detail
            known_ids: name_key -> id map from the current run, consulted
                before the database lookup

        Returns:
            True if a new edge was stored, False if an endpoint did not
            resolve or the edge already existed
        """
        known_ids = known_ids or {}

        entity1_id = known_ids.get(generate_name_key(name1)) or await self.resolve_entity_id(user_id, name1)
        entity2_id = known_ids.get(generate_name_key(name2)) or await self.resolve_entity_id(user_id, name2)

        if entity1_id is None or entity2_id is None:
            self.logger.debug(
                "Skipping relationship with unresolved endpoint",
                extra={"user_id": user_id, "entity1": name1, "entity2": name2},
            )
            return False

        rel_type = " ".join((relationship_type or "").split())[:100] or "related to"

        stmt = (
            self._insert(MemoryRelationship)
            .values(
                id=uuid.uuid4(),
                entity1_id=entity1_id,
                entity2_id=entity2_id,
                relationship_type=rel_type,
                description=clip_snippet(description),
            )
            .on_conflict_do_nothing(
                index_elements=["entity1_id", "entity2_id", "relationship_type"]
            )
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return bool(result.rowcount)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_entities(
        self, user_id: str, entity_type: Optional[EntityType] = None
    ) -> Sequence[MemoryEntity]:
        """All of a user's entities ranked by mention count desc, name asc."""
        query = select(MemoryEntity).where(MemoryEntity.user_id == user_id)
        if entity_type is not None:
            query = query.where(MemoryEntity.entity_type == EntityType(entity_type).value)
        query = query.order_by(MemoryEntity.mention_count.desc(), MemoryEntity.name.asc())

        result = await self.session.execute(query)
        return result.scalars().all()

    async def top_entities(
        self, user_id: str, entity_type: EntityType, limit: int
    ) -> List[Dict[str, Any]]:
        """Top ``limit`` names of one category by mention count."""
        query = (
            select(MemoryEntity.name, MemoryEntity.mention_count)
            .where(
                MemoryEntity.user_id == user_id,
                MemoryEntity.entity_type == EntityType(entity_type).value,
            )
            .order_by(MemoryEntity.mention_count.desc(), MemoryEntity.name.asc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [{"name": row.name, "mention_count": row.mention_count} for row in result]

    async def count_entities_by_type(self, user_id: str) -> Dict[EntityType, int]:
        """Distinct entity counts per category (missing categories are 0)."""
        query = (
            select(MemoryEntity.entity_type, func.count())
            .where(MemoryEntity.user_id == user_id)
            .group_by(MemoryEntity.entity_type)
        )
        result = await self.session.execute(query)

        counts = {entity_type: 0 for entity_type in EntityType}
        for entity_type, total in result:
            parsed = EntityType.from_label(entity_type)
            if parsed is not None:
                counts[parsed] = total
        return counts

    async def list_relationships(self, user_id: str, limit: int) -> List[Dict[str, Any]]:
        """Most recent edges between the user's entities."""
        source = aliased(MemoryEntity)
        target = aliased(MemoryEntity)

        query = (
            select(
                source.name.label("entity1"),
                target.name.label("entity2"),
                MemoryRelationship.relationship_type,
                MemoryRelationship.description,
            )
            .join(source, MemoryRelationship.entity1_id == source.id)
            .join(target, MemoryRelationship.entity2_id == target.id)
            .where(source.user_id == user_id)
            .order_by(MemoryRelationship.created_at.desc(), MemoryRelationship.relationship_type.asc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [dict(row._mapping) for row in result]

    async def count_relationships(self, user_id: str) -> int:
        query = (
            select(func.count())
            .select_from(MemoryRelationship)
            .join(MemoryEntity, MemoryRelationship.entity1_id == MemoryEntity.id)
            .where(MemoryEntity.user_id == user_id)
        )
        result = await self.session.execute(query)
        return result.scalar_one()

    async def find_entity_by_name_fragment(self, user_id: str, fragment: str) -> Optional[MemoryEntity]:
        """Case-insensitive substring lookup; the most mentioned match wins."""
        fragment = normalize_entity_name(fragment)
        if not fragment:
            return None

        query = (
            select(MemoryEntity)
            .where(
                MemoryEntity.user_id == user_id,
                MemoryEntity.name.ilike(f"%{_escape_like(fragment)}%", escape="\\"),
            )
            .order_by(MemoryEntity.mention_count.desc(), MemoryEntity.name.asc())
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def get_connections(self, entity_id: uuid.UUID) -> List[Dict[str, Any]]:
        """1-hop edges of an entity, in either direction."""
        source = aliased(MemoryEntity)
        target = aliased(MemoryEntity)
        is_source = MemoryRelationship.entity1_id == entity_id

        query = (
            select(
                case((is_source, target.name), else_=source.name).label("connected_to"),
                case((is_source, target.entity_type), else_=source.entity_type).label("connected_type"),
                MemoryRelationship.relationship_type,
                MemoryRelationship.description,
            )
            .join(source, MemoryRelationship.entity1_id == source.id)
            .join(target, MemoryRelationship.entity2_id == target.id)
            .where((MemoryRelationship.entity1_id == entity_id) | (MemoryRelationship.entity2_id == entity_id))
            .order_by(MemoryRelationship.created_at.desc())
        )
        result = await self.session.execute(query)
        return [dict(row._mapping) for row in result]

    async def get_recent_mentions(self, entity_id: uuid.UUID, limit: int = 5) -> Sequence[MemoryMention]:
        """Newest mentions of an entity."""
        query = (
            select(MemoryMention)
            .where(MemoryMention.entity_id == entity_id)
            .order_by(MemoryMention.created_at.desc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return result.scalars().all()
