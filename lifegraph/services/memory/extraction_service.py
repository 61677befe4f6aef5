"""Extraction orchestrator: narrative answer in, graph rows out."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from lifegraph.core.config import MemorySettings, settings
from lifegraph.core.rate_limiter import RateLimiter, get_rate_limiter
from lifegraph.core.unified_llm import UnifiedLLMClient
from lifegraph.database.models import MemoryEntity
from lifegraph.repositories.memory_graph_repository import MemoryGraphRepository
from lifegraph.schemas.memory import CATEGORY_ENTITY_TYPES, ExtractionResult
from lifegraph.services.memory.extraction_client import MemoryExtractionClient
from lifegraph.utils.canonical_key import generate_name_key
from lifegraph.utils.logging import get_logger
from lifegraph.utils.prompt_sanitizer import sanitize_for_prompt

LOGGER = get_logger(__name__)


@dataclass
class ExtractionOutcome:
    """What a single extraction run stored."""

    entities: List[MemoryEntity] = field(default_factory=list)
    relationships_linked: int = 0
    raw: Dict[str, Any] = field(default_factory=dict)
    skipped_reason: Optional[str] = None
    failed_writes: int = 0


class MemoryExtractionService:
    """Runs sanitize -> extract -> merge for one narrative answer.

    Entities of all five categories are written before any relationship so
    that edges between names introduced in the same answer resolve. Each
    write commits on its own; a failing write is rolled back and logged and
    the remaining items are still processed.
    """

    def __init__(
        self,
        session: AsyncSession,
        llm_client: Optional[UnifiedLLMClient],
        rate_limiter: Optional[RateLimiter] = None,
        memory_settings: Optional[MemorySettings] = None,
    ):
        """Initialize the service.

        Args:
            session: Database session used for all writes of the run
            llm_client: Configured LLM client, or None when no credential is set
            rate_limiter: Per-user LLM budget (process-wide instance by default)
            memory_settings: Thresholds (application settings by default)
        """
        self.session = session
        self.repository = MemoryGraphRepository(session)
        self.extraction_client = MemoryExtractionClient(llm_client) if llm_client else None
        self.rate_limiter = rate_limiter if rate_limiter is not None else get_rate_limiter()
        self.config = memory_settings or settings.memory

    def is_eligible(self, text: Optional[str]) -> Optional[str]:
        """Return the reason a text is skipped, or None if it can be processed."""
        if not text or len(text.strip()) < self.config.min_text_length:
            return "text_too_short"
        if self.extraction_client is None:
            return "llm_not_configured"
        return None

    async def extract_and_store(
        self,
        user_id: str,
        text: Optional[str],
        chapter_id: Optional[str] = None,
        question_id: Optional[str] = None,
        story_id: Optional[str] = None,
    ) -> ExtractionOutcome:
        """Extract entities from ``text`` and merge them into the user's graph.

        Args:
            user_id: Owner of the graph
            text: Narrative answer
            chapter_id: Chapter the answer belongs to
            question_id: Question the answer responds to
            story_id: Saved answer id; mentions are only recorded when given

        Returns:
            ExtractionOutcome describing what was stored

        Raises:
            RateLimitError: If the user's LLM budget is exhausted
            APIClientError: If the LLM call fails
        """
        skipped_reason = self.is_eligible(text)
        if skipped_reason:
            LOGGER.info(
                "Skipping entity extraction",
                extra={"user_id": user_id, "reason": skipped_reason},
            )
            return ExtractionOutcome(skipped_reason=skipped_reason)

        self.rate_limiter.enforce(user_id)

        safe_text = sanitize_for_prompt(text, self.config.max_prompt_chars)
        result, raw = await self.extraction_client.extract(safe_text)

        outcome = ExtractionOutcome(raw=raw)
        if result.is_empty:
            return outcome

        known_ids = await self._store_entities(
            outcome, user_id, result, chapter_id, question_id, story_id
        )
        await self._store_relationships(outcome, user_id, result, known_ids)

        LOGGER.info(
            "Entity extraction stored",
            extra={
                "user_id": user_id,
                "story_id": story_id,
                "entities": len(outcome.entities),
                "relationships": outcome.relationships_linked,
                "failed_writes": outcome.failed_writes,
            },
        )
        return outcome

    async def _store_entities(
        self,
        outcome: ExtractionOutcome,
        user_id: str,
        result: ExtractionResult,
        chapter_id: Optional[str],
        question_id: Optional[str],
        story_id: Optional[str],
    ) -> Dict[str, UUID]:
        known_ids: Dict[str, UUID] = {}
        seen: set = set()
        stored_ids: List[UUID] = []

        for category, entity_type in CATEGORY_ENTITY_TYPES.items():
            for item in getattr(result, category):
                try:
                    entity_id = await self.repository.upsert_entity(
                        user_id=user_id,
                        entity_type=entity_type,
                        name=item.name,
                        description=item.context,
                        chapter_id=chapter_id,
                        question_id=question_id,
                    )
                except SQLAlchemyError as e:
                    await self._write_failed(outcome, "Failed to store entity", e, {
                        "user_id": user_id,
                        "entity_type": entity_type.value,
                        "entity_name": item.name,
                    })
                    continue

                if entity_id is None:
                    continue

                known_ids.setdefault(generate_name_key(item.name), entity_id)
                if entity_id not in seen:
                    seen.add(entity_id)
                    stored_ids.append(entity_id)

                if not story_id:
                    continue

                # The entity row is already committed; only the mention is lost
                try:
                    await self.repository.record_mention(
                        entity_id=entity_id,
                        story_id=story_id,
                        context=item.context,
                        sentiment=item.sentiment,
                        chapter_id=chapter_id,
                        question_id=question_id,
                    )
                except SQLAlchemyError as e:
                    await self._write_failed(outcome, "Failed to record mention", e, {
                        "user_id": user_id,
                        "entity_id": str(entity_id),
                        "story_id": story_id,
                    })

        for entity_id in stored_ids:
            entity = await self.repository.get_by_id(entity_id)
            if entity is not None:
                # Pick up counts bumped by this run's upserts
                await self.session.refresh(entity)
                outcome.entities.append(entity)

        return known_ids

    async def _store_relationships(
        self,
        outcome: ExtractionOutcome,
        user_id: str,
        result: ExtractionResult,
        known_ids: Dict[str, UUID],
    ) -> None:
        for rel in result.relationships:
            try:
                linked = await self.repository.link_relationship(
                    user_id=user_id,
                    name1=rel.entity1,
                    name2=rel.entity2,
                    relationship_type=rel.type,
                    description=rel.description,
                    known_ids=known_ids,
                )
                if linked:
                    outcome.relationships_linked += 1

            except SQLAlchemyError as e:
                await self._write_failed(outcome, "Failed to store relationship", e, {
                    "user_id": user_id,
                    "entity1": rel.entity1,
                    "entity2": rel.entity2,
                })

    async def _write_failed(
        self,
        outcome: ExtractionOutcome,
        message: str,
        error: SQLAlchemyError,
        context: Dict[str, Any],
    ) -> None:
        """Roll back a failed write and count it; the run continues."""
        outcome.failed_writes += 1
        await self.session.rollback()
        LOGGER.error(message, exc_info=True, extra={**context, "error": str(error)})
