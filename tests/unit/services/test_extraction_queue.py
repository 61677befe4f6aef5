"""Unit tests for the background extraction queue."""

import asyncio
import json

import pytest
from unittest.mock import AsyncMock

from sqlalchemy import select

from lifegraph.core.config import MemorySettings
from lifegraph.core.exceptions import APIClientError
from lifegraph.core.rate_limiter import RateLimiter
from lifegraph.database.models import MemoryEntity
from lifegraph.services.memory import extraction_queue as extraction_queue_module
from lifegraph.services.memory.context_cache import ContextCache
from lifegraph.services.memory.extraction_queue import (
    ExtractionJob,
    ExtractionQueue,
    enqueue_answer_extraction,
)

USER = "user-1"
ANSWER = "My father worked at the Ford factory in Detroit for thirty years."


def _settings(**overrides) -> MemorySettings:
    values = {
        "MEMORY_EXTRACTION_WORKERS": 1,
        "MEMORY_EXTRACTION_QUEUE_SIZE": 10,
        "MEMORY_EXTRACTION_TIMEOUT_SECONDS": 5,
    }
    values.update(overrides)
    return MemorySettings(**values)


@pytest.fixture
def cache() -> ContextCache:
    return ContextCache()


@pytest.fixture
def make_queue(session_factory, mock_llm_client, rate_limiter, cache):
    def factory(llm_client=mock_llm_client, limiter=rate_limiter, **overrides) -> ExtractionQueue:
        return ExtractionQueue(
            session_factory=session_factory,
            llm_client_factory=lambda: llm_client,
            rate_limiter=limiter,
            cache=cache,
            memory_settings=_settings(**overrides),
        )

    return factory


@pytest.mark.asyncio
async def test_job_is_processed_in_background(make_queue, mock_llm_client, session_factory, cache):
    """Test that a submitted job lands in the graph and clears the cache."""
    mock_llm_client.generate_content = AsyncMock(
        return_value=json.dumps({"people": [{"name": "Father"}], "places": [{"name": "Detroit"}]})
    )
    cache.set(USER, "stale context")
    queue = make_queue()
    await queue.start()

    assert queue.submit(ExtractionJob(user_id=USER, text=ANSWER, story_id="story-1"))
    await queue.join()
    await queue.stop()

    assert queue.stats()["processed"] == 1
    assert queue.stats()["failed"] == 0
    assert cache.get(USER) is None

    async with session_factory() as session:
        names = (await session.execute(select(MemoryEntity.name))).scalars().all()
    assert sorted(names) == ["Detroit", "Father"]


@pytest.mark.asyncio
async def test_submit_before_start_drops_job(make_queue):
    queue = make_queue()

    assert not queue.submit(ExtractionJob(user_id=USER, text=ANSWER))
    assert queue.stats()["dropped"] == 1


@pytest.mark.asyncio
async def test_full_queue_drops_job(make_queue):
    queue = make_queue(MEMORY_EXTRACTION_WORKERS=0, MEMORY_EXTRACTION_QUEUE_SIZE=1)
    await queue.start()

    assert queue.submit(ExtractionJob(user_id=USER, text=ANSWER))
    assert not queue.submit(ExtractionJob(user_id=USER, text=ANSWER))

    assert queue.stats()["backlog"] == 1
    assert queue.stats()["dropped"] == 1
    await queue.stop()


@pytest.mark.asyncio
async def test_llm_failure_is_contained(make_queue, mock_llm_client):
    mock_llm_client.generate_content = AsyncMock(side_effect=APIClientError("upstream down"))
    queue = make_queue()
    await queue.start()

    queue.submit(ExtractionJob(user_id=USER, text=ANSWER))
    queue.submit(ExtractionJob(user_id=USER, text=ANSWER))
    await queue.join()

    assert queue.stats()["failed"] == 2
    assert queue.is_running
    await queue.stop()


@pytest.mark.asyncio
async def test_slow_job_times_out(make_queue, mock_llm_client):
    async def slow_generate(**kwargs):
        await asyncio.sleep(5)
        return "{}"

    mock_llm_client.generate_content = slow_generate
    queue = make_queue(MEMORY_EXTRACTION_TIMEOUT_SECONDS=0.05)
    await queue.start()

    queue.submit(ExtractionJob(user_id=USER, text=ANSWER))
    await queue.join()

    assert queue.stats()["failed"] == 1
    assert queue.stats()["processed"] == 0
    await queue.stop()


@pytest.mark.asyncio
async def test_rate_limited_job_is_dropped(make_queue, mock_llm_client):
    queue = make_queue(limiter=RateLimiter(max_calls=0, window_seconds=60, gc_probability=0.0))
    await queue.start()

    queue.submit(ExtractionJob(user_id=USER, text=ANSWER))
    await queue.join()

    assert queue.stats()["failed"] == 1
    mock_llm_client.generate_content.assert_not_called()
    await queue.stop()


@pytest.mark.asyncio
async def test_unconfigured_llm_skips_quietly(make_queue):
    queue = make_queue(llm_client=None)
    await queue.start()

    queue.submit(ExtractionJob(user_id=USER, text=ANSWER))
    await queue.join()

    assert queue.stats()["processed"] == 1
    await queue.stop()


@pytest.mark.asyncio
async def test_stop_cancels_workers(make_queue):
    queue = make_queue(MEMORY_EXTRACTION_WORKERS=2)
    await queue.start()
    assert queue.stats()["workers"] == 2

    await queue.stop()

    assert not queue.is_running
    assert not queue.submit(ExtractionJob(user_id=USER, text=ANSWER))


@pytest.mark.asyncio
async def test_enqueue_answer_extraction_uses_process_queue(make_queue, monkeypatch):
    queue = make_queue(MEMORY_EXTRACTION_WORKERS=0)
    await queue.start()
    monkeypatch.setattr(extraction_queue_module, "_extraction_queue", queue)

    queued = enqueue_answer_extraction(USER, ANSWER, chapter_id="ch-1", story_id="story-1")

    assert queued
    assert queue.stats()["backlog"] == 1
    await queue.stop()
