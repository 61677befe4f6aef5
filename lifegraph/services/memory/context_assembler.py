"""Builds the bounded memory context block handed to generation prompts.

The block summarizes the most mentioned entities of a user's graph in
labeled sections. Its size is capped by a character budget so prompt cost
stays flat no matter how large the graph grows.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from lifegraph.core.config import MemorySettings, settings
from lifegraph.repositories.memory_graph_repository import MemoryGraphRepository
from lifegraph.schemas.memory import ContextStats, EntityType
from lifegraph.utils.logging import get_logger

LOGGER = get_logger(__name__)

MAX_LABEL_CHARS = 80
MAX_DESCRIPTION_CHARS = 120

COMPACT_PEOPLE_LIMIT = 8
COMPACT_PLACES_LIMIT = 6

SECTION_HEADERS = {
    EntityType.PERSON: "**People mentioned in this autobiography:**",
    EntityType.PLACE: "**Places mentioned:**",
    EntityType.EVENT: "**Life events mentioned:**",
    EntityType.TIME_PERIOD: "**Time periods mentioned:**",
    EntityType.EMOTION: "**Emotions expressed:**",
}
RELATIONSHIPS_HEADER = "**Known relationships:**"


def _clip(label: Optional[str], limit: int) -> str:
    label = " ".join((label or "").split())
    if len(label) <= limit:
        return label
    return label[: limit - 3].rstrip() + "..."


@dataclass
class MemoryContext:
    """Rendered context block plus raw graph statistics."""

    text: str = ""
    stats: ContextStats = field(default_factory=ContextStats)


class _BudgetedText:
    """Accumulates sections and lines until the character budget is spent."""

    def __init__(self, max_chars: int):
        self.max_chars = max_chars
        self.parts: List[str] = []
        self.length = 0
        self.full = False

    def _cost(self, text: str) -> int:
        # Separator newline before every part but the first
        return len(text) + (1 if self.parts else 0)

    def add_section(self, header: str, lines: List[str]) -> None:
        if self.full or not lines:
            return

        prefix = "\n" if self.parts else ""
        header_cost = self._cost(prefix + header)
        first_line_cost = len(lines[0]) + 1
        if self.length + header_cost + first_line_cost > self.max_chars:
            self.full = True
            return

        self.parts.append(prefix + header)
        self.length += header_cost

        for line in lines:
            cost = self._cost(line)
            if self.length + cost > self.max_chars:
                self.full = True
                return
            self.parts.append(line)
            self.length += cost

    def render(self) -> str:
        return "\n".join(self.parts)


class MemoryContextAssembler:
    """Reads a user's graph and renders it for prompt concatenation."""

    def __init__(self, session: AsyncSession, memory_settings: Optional[MemorySettings] = None):
        self.session = session
        self.repository = MemoryGraphRepository(session)
        self.config = memory_settings or settings.memory

    def _limit_for(self, entity_type: EntityType) -> int:
        if entity_type == EntityType.PERSON:
            return self.config.context_people_limit
        if entity_type == EntityType.PLACE:
            return self.config.context_places_limit
        return self.config.context_minor_limit

    async def build_context(self, user_id: str) -> MemoryContext:
        """Build the context block for ``user_id``.

        Returns:
            MemoryContext whose text is "" for an empty graph
        """
        counts = await self.repository.count_entities_by_type(user_id)
        relationship_count = await self.repository.count_relationships(user_id)

        stats = ContextStats(
            people=counts[EntityType.PERSON],
            places=counts[EntityType.PLACE],
            events=counts[EntityType.EVENT],
            time_periods=counts[EntityType.TIME_PERIOD],
            emotions=counts[EntityType.EMOTION],
            relationships=relationship_count,
        )

        if not any(counts.values()) and not relationship_count:
            return MemoryContext(text="", stats=stats)

        block = _BudgetedText(self.config.context_max_chars)

        for entity_type, header in SECTION_HEADERS.items():
            if not counts[entity_type]:
                continue
            rows = await self.repository.top_entities(user_id, entity_type, self._limit_for(entity_type))
            block.add_section(header, [self._format_entity(entity_type, row) for row in rows])

        if relationship_count and not block.full:
            rows = await self.repository.list_relationships(
                user_id, self.config.context_relationship_limit
            )
            block.add_section(RELATIONSHIPS_HEADER, [self._format_relationship(row) for row in rows])

        text = block.render()
        LOGGER.debug(
            "Built memory context",
            extra={"user_id": user_id, "chars": len(text), "truncated": block.full},
        )
        return MemoryContext(text=text, stats=stats)

    async def build_compact_context(self, user_id: str) -> str:
        """One-line variant used by voice sessions."""
        people = await self.repository.top_entities(user_id, EntityType.PERSON, COMPACT_PEOPLE_LIMIT)
        places = await self.repository.top_entities(user_id, EntityType.PLACE, COMPACT_PLACES_LIMIT)

        parts = []
        if people:
            parts.append(
                "People in their story: "
                + ", ".join(_clip(row["name"], MAX_LABEL_CHARS) for row in people)
                + "."
            )
        if places:
            parts.append(
                "Places mentioned: "
                + ", ".join(_clip(row["name"], MAX_LABEL_CHARS) for row in places)
                + "."
            )
        return " ".join(parts)

    @staticmethod
    def _format_entity(entity_type: EntityType, row: dict) -> str:
        name = _clip(row["name"], MAX_LABEL_CHARS)
        if entity_type == EntityType.PERSON:
            count = row["mention_count"]
            return f"- {name} (mentioned {count} {'time' if count == 1 else 'times'})"
        return f"- {name}"

    @staticmethod
    def _format_relationship(row: dict) -> str:
        line = (
            f"- {_clip(row['entity1'], MAX_LABEL_CHARS)} "
            f"{_clip(row['relationship_type'], MAX_LABEL_CHARS)} "
            f"{_clip(row['entity2'], MAX_LABEL_CHARS)}"
        )
        if row.get("description"):
            line += f" ({_clip(row['description'], MAX_DESCRIPTION_CHARS)})"
        return line
