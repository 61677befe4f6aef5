"""Unit tests for the memory context block."""

import pytest

from lifegraph.core.config import MemorySettings
from lifegraph.database.models import MemoryEntity
from lifegraph.repositories.memory_graph_repository import MemoryGraphRepository
from lifegraph.schemas.memory import EntityType
from lifegraph.services.memory.context_assembler import (
    RELATIONSHIPS_HEADER,
    SECTION_HEADERS,
    MemoryContextAssembler,
)

USER = "user-1"


@pytest.fixture
def repo(db_session) -> MemoryGraphRepository:
    return MemoryGraphRepository(db_session)


@pytest.fixture
def assembler(db_session) -> MemoryContextAssembler:
    return MemoryContextAssembler(db_session, MemorySettings())


@pytest.mark.asyncio
async def test_empty_graph_yields_empty_context(assembler):
    context = await assembler.build_context(USER)

    assert context.text == ""
    assert context.stats.model_dump() == {
        "people": 0,
        "places": 0,
        "events": 0,
        "time_periods": 0,
        "emotions": 0,
        "relationships": 0,
    }
    assert await assembler.build_compact_context(USER) == ""


@pytest.mark.asyncio
async def test_sections_are_rendered_in_order(assembler, repo):
    """Test the labeled sections and their line formats."""
    await repo.upsert_entity(USER, EntityType.PERSON, "Father")
    await repo.upsert_entity(USER, EntityType.PERSON, "Father")
    await repo.upsert_entity(USER, EntityType.PERSON, "Mother")
    await repo.upsert_entity(USER, EntityType.PLACE, "Detroit")
    await repo.upsert_entity(USER, EntityType.EVENT, "moving to Ohio")
    await repo.upsert_entity(USER, EntityType.TIME_PERIOD, "the 1960s")
    await repo.upsert_entity(USER, EntityType.EMOTION, "pride")
    await repo.link_relationship(USER, "Father", "Detroit", "lived in", "after the war")

    context = await assembler.build_context(USER)
    text = context.text

    assert "- Father (mentioned 2 times)" in text
    assert "- Mother (mentioned 1 time)" in text
    assert text.index("- Father") < text.index("- Mother")
    assert "- Detroit" in text
    assert "- the 1960s" in text
    assert "- Father lived in Detroit (after the war)" in text

    positions = [text.index(header) for header in SECTION_HEADERS.values()]
    assert positions == sorted(positions)
    assert text.index(RELATIONSHIPS_HEADER) > positions[-1]

    assert context.stats.people == 2
    assert context.stats.relationships == 1


@pytest.mark.asyncio
async def test_other_users_are_not_included(assembler, repo):
    await repo.upsert_entity("someone-else", EntityType.PERSON, "Stranger")

    context = await assembler.build_context(USER)

    assert context.text == ""


@pytest.mark.asyncio
async def test_large_graph_stays_within_budget(assembler, db_session):
    """Test that a thousand people still render a bounded block."""
    db_session.add_all(
        [
            MemoryEntity(
                user_id=USER,
                entity_type=EntityType.PERSON.value,
                name=f"Person {index:04d}",
                name_key=f"person {index:04d}",
                mention_count=index % 7 + 1,
            )
            for index in range(1000)
        ]
    )
    await db_session.commit()

    context = await assembler.build_context(USER)

    assert context.stats.people == 1000
    assert 0 < len(context.text) <= 2000
    assert context.text.count("- Person") == 10


@pytest.mark.asyncio
async def test_small_budget_truncates_whole_lines(db_session, repo):
    for index in range(20):
        await repo.upsert_entity(USER, EntityType.PERSON, f"Somebody With A Long Name {index}")
    assembler = MemoryContextAssembler(db_session, MemorySettings(MEMORY_CONTEXT_MAX_CHARS=100))

    context = await assembler.build_context(USER)

    assert len(context.text) <= 100
    assert context.text.startswith(SECTION_HEADERS[EntityType.PERSON])
    assert all(line.endswith(")") for line in context.text.splitlines()[1:])
    assert context.stats.people == 20


@pytest.mark.asyncio
async def test_long_labels_are_clipped(assembler, repo):
    await repo.upsert_entity(USER, EntityType.PLACE, "A" * 200)

    context = await assembler.build_context(USER)

    place_line = context.text.splitlines()[-1]
    assert place_line.endswith("...")
    assert len(place_line) == len("- ") + 80


@pytest.mark.asyncio
async def test_compact_context(assembler, repo):
    await repo.upsert_entity(USER, EntityType.PERSON, "Father")
    await repo.upsert_entity(USER, EntityType.PERSON, "Mother")
    await repo.upsert_entity(USER, EntityType.PERSON, "Mother")
    await repo.upsert_entity(USER, EntityType.PLACE, "Detroit")
    await repo.upsert_entity(USER, EntityType.EMOTION, "pride")

    compact = await assembler.build_compact_context(USER)

    assert compact == "People in their story: Mother, Father. Places mentioned: Detroit."
